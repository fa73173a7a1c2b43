"""
Domain layer: pure study-tracking rules.

- temporal: clocks, calendar-day truncation, duration arithmetic
- sessions: study-session state machine over immutable snapshots
- streaks: consecutive-day streak calculation
- progress: topic progress and rating arithmetic
- events: domain events emitted by session transitions
"""
