"""Notification log - append-only history of send attempts."""
import logging
from datetime import datetime, timedelta
from typing import Optional, List

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import NotificationLog

logger = logging.getLogger(__name__)

# Error text markers that point at a bad token rather than a provider hiccup
TOKEN_ERROR_MARKERS = ("Invalid", "Device")
RECENT_ERROR_WINDOW = timedelta(days=7)


async def log_notification(
    session: AsyncSession,
    *,
    notification_type: str,
    title: str,
    body: str,
    status: str,
    user_id: Optional[str] = None,
    data: Optional[dict] = None,
    ticket_id: Optional[str] = None,
    error: Optional[str] = None,
) -> NotificationLog:
    """Append one entry to the log."""
    entry = NotificationLog(
        user_id=user_id,
        title=title,
        body=body,
        data=data or {},
        type=notification_type,
        status=status,
        ticket_id=ticket_id,
        error=error,
        sent_at=datetime.utcnow(),
    )
    session.add(entry)
    await session.commit()
    await session.refresh(entry)

    if status == "error":
        logger.warning(f"Logged failed {notification_type} notification for {user_id or 'broadcast'}: {error}")
    return entry


async def count_recent_errors(
    session: AsyncSession,
    user_id: str,
    now: Optional[datetime] = None,
) -> int:
    """Count token-related errors for a user in the trailing 7 days.

    The marker match is case-sensitive, so it runs in Python rather than
    relying on the database's LIKE collation.
    """
    cutoff = (now or datetime.utcnow()) - RECENT_ERROR_WINDOW
    result = await session.execute(
        select(NotificationLog.error).where(
            and_(
                NotificationLog.user_id == user_id,
                NotificationLog.status == "error",
                NotificationLog.sent_at > cutoff,
            )
        )
    )
    return sum(
        1
        for (error,) in result.all()
        if error and any(marker in error for marker in TOKEN_ERROR_MARKERS)
    )


async def get_history(session: AsyncSession, limit: int = 20) -> List[NotificationLog]:
    """Get the most recent log entries, newest first."""
    result = await session.execute(
        select(NotificationLog)
        .order_by(NotificationLog.sent_at.desc(), NotificationLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
