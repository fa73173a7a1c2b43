"""
Integration Tests for the Sessions and Analytics APIs

Drives the HTTP endpoints against the test database with a fixed clock.

Run with: pytest tests/integration/test_sessions_api.py -v
"""

from datetime import timedelta

import pytest
import pytest_asyncio

pytestmark = pytest.mark.integration


# ============================================================================
# Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def owner(make_user, make_topic):
    user = await make_user()
    topic = await make_topic(milestones=[{"id": "m1", "title": "Basics"}])
    return user, topic


async def create(api_client, user_id: int, topic_id: int, **extra):
    payload = {"user_id": user_id, "topic_id": topic_id, "planned_duration": 25, **extra}
    return await api_client.post("/api/sessions", json=payload)


# ============================================================================
# Lifecycle
# ============================================================================


class TestSessionLifecycleApi:
    """Tests for the lifecycle endpoints."""

    @pytest.mark.asyncio
    async def test_create_returns_201(self, api_client, owner) -> None:
        user, topic = owner

        response = await create(
            api_client, user.id, topic.id, session_type="pomodoro", tags=["go"]
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "planned"
        assert data["session_type"] == "pomodoro"
        assert data["tags"] == ["go"]
        assert data["version"] == 1

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, api_client, owner, clock) -> None:
        user, topic = owner
        session_id = (await create(api_client, user.id, topic.id)).json()["id"]

        response = await api_client.put(f"/api/sessions/{session_id}/start")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

        clock.advance(minutes=10)
        response = await api_client.put(f"/api/sessions/{session_id}/pause")
        assert response.json()["status"] == "paused"

        clock.advance(minutes=10)
        response = await api_client.put(
            f"/api/sessions/{session_id}/resume", json={"pause_duration": 10}
        )
        assert response.json()["paused_time"] == 10

        clock.advance(minutes=5)
        response = await api_client.put(
            f"/api/sessions/{session_id}/complete",
            json={
                "productivity": {"rating": 4},
                "completed_milestones": ["m1"],
                "topic_rating": 5,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["session"]["status"] == "completed"
        assert body["session"]["actual_duration"] == 15
        assert body["session"]["efficiency"] == 60
        assert body["topic_completed"] is True
        assert body["warnings"] == []

        stats = (await api_client.get(f"/api/analytics/users/{user.id}/statistics")).json()
        assert stats["total_sessions"] == 1
        assert stats["completed_topics"] == 1
        assert stats["total_study_hours"] == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_illegal_transition_is_409(self, api_client, owner) -> None:
        user, topic = owner
        session_id = (await create(api_client, user.id, topic.id)).json()["id"]

        response = await api_client.put(f"/api/sessions/{session_id}/pause")

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["error"] == "state_transition_error"
        assert detail["details"]["current_status"] == "planned"

    @pytest.mark.asyncio
    async def test_second_open_session_is_409(self, api_client, owner) -> None:
        user, topic = owner
        session_id = (await create(api_client, user.id, topic.id)).json()["id"]
        await api_client.put(f"/api/sessions/{session_id}/start")

        response = await create(api_client, user.id, topic.id)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "conflict"

    @pytest.mark.asyncio
    async def test_unknown_fields_are_422(self, api_client, owner) -> None:
        user, topic = owner

        response = await create(api_client, user.id, topic.id, mood="sleepy")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_session_is_404(self, api_client) -> None:
        response = await api_client.get("/api/sessions/9999")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_cancel_break_update_delete(self, api_client, owner) -> None:
        user, topic = owner
        session_id = (await create(api_client, user.id, topic.id)).json()["id"]

        response = await api_client.post(f"/api/sessions/{session_id}/break", json={})
        assert response.status_code == 200
        assert len(response.json()["breaks"]) == 1

        response = await api_client.put(
            f"/api/sessions/{session_id}", json={"notes": "warm-up", "tags": ["a"]}
        )
        assert response.json()["notes"] == "warm-up"

        response = await api_client.put(
            f"/api/sessions/{session_id}/cancel", json={"reason": "meeting"}
        )
        assert response.json()["status"] == "cancelled"

        response = await api_client.delete(f"/api/sessions/{session_id}")
        assert response.status_code == 200
        assert response.json()["success"] is True

        response = await api_client.get(f"/api/sessions/{session_id}")
        assert response.status_code == 404


# ============================================================================
# Queries
# ============================================================================


class TestSessionQueriesApi:
    """Tests for list, active, today and stats endpoints."""

    @pytest.mark.asyncio
    async def test_list_and_active(self, api_client, owner) -> None:
        user, topic = owner
        first = (await create(api_client, user.id, topic.id)).json()["id"]
        second = (await create(api_client, user.id, topic.id)).json()["id"]
        await api_client.put(f"/api/sessions/{second}/start")

        response = await api_client.get(
            "/api/sessions", params={"user_id": user.id, "page_size": 1}
        )
        body = response.json()
        assert body["total"] == 2
        assert body["has_more"] is True
        assert len(body["items"]) == 1

        planned = await api_client.get(
            "/api/sessions", params={"user_id": user.id, "status": "planned"}
        )
        assert [s["id"] for s in planned.json()["items"]] == [first]

        active = await api_client.get("/api/sessions/active", params={"user_id": user.id})
        assert active.json()["id"] == second

    @pytest.mark.asyncio
    async def test_no_active_session_is_null(self, api_client, owner) -> None:
        user, _ = owner

        response = await api_client.get("/api/sessions/active", params={"user_id": user.id})

        assert response.status_code == 200
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_today_and_stats(
        self, api_client, owner, seed_completed_session, clock
    ) -> None:
        user, topic = owner
        await seed_completed_session(
            user.id, topic.id, clock.now() - timedelta(hours=2), productivity_rating=3
        )
        await seed_completed_session(
            user.id, topic.id, clock.now() - timedelta(days=1), minutes=45
        )

        today = (
            await api_client.get("/api/sessions/today", params={"user_id": user.id})
        ).json()
        assert today["total_sessions"] == 1
        assert today["average_productivity"] == 3.0

        response = await api_client.get(
            "/api/sessions/stats", params={"user_id": user.id, "days": 7}
        )
        assert response.status_code == 200
        stats = response.json()
        assert stats["overview"]["total_sessions"] == 2
        assert stats["overview"]["total_time"] == 75
        assert stats["streaks"]["current_streak"] == 2
        assert [d["date"] for d in stats["daily_stats"]] == ["2024-03-14", "2024-03-15"]
        assert stats["type_breakdown"][0]["session_type"] == "focused"
        assert stats["top_topics"][0]["topic_id"] == topic.id

    @pytest.mark.asyncio
    async def test_stats_rejects_reversed_range(self, api_client, owner) -> None:
        user, _ = owner

        response = await api_client.get(
            "/api/sessions/stats",
            params={
                "user_id": user.id,
                "start_date": "2024-03-10T00:00:00Z",
                "end_date": "2024-03-01T00:00:00Z",
            },
        )

        assert response.status_code == 422


# ============================================================================
# Analytics
# ============================================================================


class TestAnalyticsApi:
    """Tests for the analytics endpoints."""

    @pytest.mark.asyncio
    async def test_overview_respects_time_range(
        self, api_client, owner, seed_completed_session, clock
    ) -> None:
        user, topic = owner
        await seed_completed_session(user.id, topic.id, clock.now() - timedelta(days=2))
        await seed_completed_session(user.id, topic.id, clock.now() - timedelta(days=20))

        week = await api_client.get(
            "/api/analytics/overview", params={"user_id": user.id, "time_range": "7d"}
        )
        everything = await api_client.get(
            "/api/analytics/overview", params={"user_id": user.id, "time_range": "all"}
        )

        assert week.json()["overview"]["total_sessions"] == 1
        assert everything.json()["overview"]["total_sessions"] == 2
        assert everything.json()["time_range"] == "all"

    @pytest.mark.asyncio
    async def test_daily_window_validation(self, api_client, owner) -> None:
        user, _ = owner

        response = await api_client.get(
            "/api/analytics/daily", params={"user_id": user.id, "days": 0}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_streak_for_unknown_user_is_404(self, api_client) -> None:
        response = await api_client.get("/api/analytics/streak", params={"user_id": 777})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_reconcile(self, api_client, make_user) -> None:
        user = await make_user(total_sessions=9, total_study_hours=3.0)

        response = await api_client.post(f"/api/analytics/users/{user.id}/reconcile")

        assert response.status_code == 200
        assert response.json()["total_sessions"] == 0
        assert response.json()["total_study_hours"] == 0

    @pytest.mark.asyncio
    async def test_topic_completion_time(self, api_client, owner) -> None:
        _, topic = owner

        response = await api_client.get(
            f"/api/analytics/topics/{topic.id}/completion-time"
        )

        assert response.json() == {"topic_id": topic.id, "average_completion_time": 0}
