"""
Integration Tests for Streak Tracking

Streaks computed from stored sessions in each user's own timezone.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from studytrack.domain.temporal import FixedClock
from studytrack.middleware.error_handling import NotFoundError
from studytrack.services.study import StreakTrackingService

pytestmark = pytest.mark.integration


class TestStreakTracking:
    """Tests for StreakTrackingService."""

    @pytest.mark.asyncio
    async def test_three_days_then_gap(
        self, session_maker, make_user, make_topic, seed_completed_session
    ) -> None:
        """Mar 1-3 consecutive, then Mar 7 after a gap."""
        user = await make_user()
        topic = await make_topic()
        for day in (1, 2, 3, 7):
            await seed_completed_session(
                user.id, topic.id, datetime(2024, 3, day, 12, tzinfo=timezone.utc)
            )

        clock = FixedClock(datetime(2024, 3, 7, 18, tzinfo=timezone.utc))
        service = StreakTrackingService(session_maker, clock)

        result = await service.calculate_for_user(user.id)
        assert result.longest == 3
        assert result.current == 1

        data = await service.get_streak_data(user.id)
        assert data.current_streak == 1
        assert data.longest_streak == 3
        assert data.streak_start == date(2024, 3, 7)
        assert data.is_active_today is True
        assert data.days_this_week == 4
        assert data.days_this_month == 4
        assert data.milestones_reached == [3]
        assert data.next_milestone == 3

    @pytest.mark.asyncio
    async def test_streak_survives_until_end_of_next_day(
        self, session_maker, make_user, make_topic, seed_completed_session
    ) -> None:
        user = await make_user()
        topic = await make_topic()
        for day in (1, 2):
            await seed_completed_session(
                user.id, topic.id, datetime(2024, 3, day, 12, tzinfo=timezone.utc)
            )

        tomorrow = StreakTrackingService(
            session_maker, FixedClock(datetime(2024, 3, 3, 23, 59, tzinfo=timezone.utc))
        )
        later = StreakTrackingService(
            session_maker, FixedClock(datetime(2024, 3, 4, 0, 1, tzinfo=timezone.utc))
        )

        assert (await tomorrow.calculate_for_user(user.id)).current == 2
        assert (await later.calculate_for_user(user.id)).current == 0

    @pytest.mark.asyncio
    async def test_uses_user_timezone(
        self, session_maker, make_user, make_topic, seed_completed_session
    ) -> None:
        """Late-evening sessions in Los Angeles fall on the next UTC day."""
        user = await make_user(tz="America/Los_Angeles")
        topic = await make_topic()
        # 20:00 PST on Mar 1 and Mar 2
        for day in (2, 3):
            await seed_completed_session(
                user.id, topic.id, datetime(2024, 3, day, 4, tzinfo=timezone.utc)
            )

        clock = FixedClock(datetime(2024, 3, 3, 5, tzinfo=timezone.utc))
        data = await StreakTrackingService(session_maker, clock).get_streak_data(user.id)

        assert data.last_study_day == date(2024, 3, 2)
        assert data.streak_start == date(2024, 3, 1)
        assert data.current_streak == 2
        assert data.is_active_today is True

    @pytest.mark.asyncio
    async def test_only_completed_sessions_count(
        self, streak_service, session_service, make_user, make_topic
    ) -> None:
        user = await make_user()
        topic = await make_topic()
        session = await session_service.create_session(user.id, topic.id, 25)
        await session_service.start_session(session.id)
        await session_service.cancel_session(session.id)

        data = await streak_service.get_streak_data(user.id)

        assert data.current_streak == 0
        assert data.longest_streak == 0
        assert data.next_milestone == 3

    @pytest.mark.asyncio
    async def test_unknown_user(self, streak_service) -> None:
        with pytest.raises(NotFoundError):
            await streak_service.get_streak_data(31337)

    @pytest.mark.asyncio
    async def test_invalid_timezone_falls_back(
        self, session_maker, make_user, make_topic, seed_completed_session, clock
    ) -> None:
        user = await make_user(tz="Not/AZone")
        topic = await make_topic()
        await seed_completed_session(user.id, topic.id, clock.now() - timedelta(hours=2))

        data = await StreakTrackingService(session_maker, clock).get_streak_data(user.id)

        assert data.current_streak == 1
        assert data.last_study_day == clock.now().date()
