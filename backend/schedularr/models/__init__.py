"""Re-export all SQLAlchemy models for Alembic and import convenience."""

from schedularr.models.tables import (  # noqa: F401
    Content, Episode, WatchHistory, QueueItem, ScheduleEntry,
)
