"""Health and system status endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from schedularr.database import get_db
from schedularr.models import Content, Episode, QueueItem, ScheduleEntry

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service health check — reports integration status."""
    integrations = getattr(request.app.state, "integrations", {})
    return {
        "status": "ok",
        "version": "0.1.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": integrations,
    }


@router.get("/stats")
async def system_stats(db: AsyncSession = Depends(get_db)):
    """System statistics — cached content, episodes, queue and schedule sizes."""
    async def count(model) -> int:
        result = await db.execute(select(func.count()).select_from(model))
        return result.scalar() or 0

    return {
        "content": await count(Content),
        "episodes": await count(Episode),
        "queue_items": await count(QueueItem),
        "schedule_entries": await count(ScheduleEntry),
    }
