"""Broadcast fan-out to every registered device."""
import asyncio
import logging
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import Device
from . import device_registry
from .notification_log import log_notification
from .push_sender import PushMessage, PushSenderService, SendResult, is_valid_token

logger = logging.getLogger(__name__)

# Maximum concurrent device lookups, each in its own session
MAX_CONCURRENT_LOOKUPS = 10


async def resolve_devices(
    session_factory: async_sessionmaker,
    user_ids: List[str],
) -> List[Optional[Device]]:
    """Resolve user ids to device rows concurrently."""
    semaphore = asyncio.Semaphore(MAX_CONCURRENT_LOOKUPS)

    async def lookup_with_limit(user_id: str) -> Optional[Device]:
        async with semaphore:
            async with session_factory() as lookup_session:
                return await device_registry.find_by_user(lookup_session, user_id)

    return await asyncio.gather(*[lookup_with_limit(uid) for uid in user_ids])


def build_messages(devices: List[Optional[Device]], title: str, body: str, data: dict) -> List[PushMessage]:
    """One message per device whose token passes the syntax check."""
    payload = {**data, "broadcast": True}
    return [
        PushMessage(to=device.expo_push_token, title=title, body=body, data=dict(payload), sound="default")
        for device in devices
        if device is not None and is_valid_token(device.expo_push_token)
    ]


async def broadcast(
    session: AsyncSession,
    session_factory: async_sessionmaker,
    sender: PushSenderService,
    title: str,
    body: str,
    data: Optional[dict] = None,
) -> SendResult:
    """Send one notification to all valid registered devices.

    Exactly one log entry is written for the whole broadcast; per-recipient
    outcomes are only reflected in the returned counts.
    """
    data = data or {}
    users = await device_registry.list_users(session)
    devices = await resolve_devices(session_factory, [user["user_id"] for user in users])

    messages = build_messages(devices, title, body, data)
    skipped = len(users) - len(messages)
    if skipped:
        logger.info(f"Broadcast skipping {skipped} devices without a valid token")

    try:
        result = await sender.send(messages)
    except Exception as e:
        await log_notification(
            session,
            notification_type="broadcast",
            user_id=None,
            title=title,
            body=body,
            data=data,
            status="error",
            error=str(e) or type(e).__name__,
        )
        raise

    all_failed = result.fail_count > 0 and result.success_count == 0
    await log_notification(
        session,
        notification_type="broadcast",
        user_id=None,
        title=title,
        body=body,
        data=data,
        status="error" if all_failed else "sent",
        ticket_id=None,
        error=f"All {result.fail_count} messages failed" if all_failed else None,
    )

    logger.info(
        f"Broadcast to {len(messages)} devices: {result.success_count} success, {result.fail_count} failed"
    )
    return result
