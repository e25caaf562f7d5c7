"""Device registry - persistence operations over the devices table."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Device, NotificationLog

logger = logging.getLogger(__name__)


@dataclass
class DeviceData:
    """Profile fields supplied on registration."""
    expo_push_token: str
    platform: str = "unknown"
    app_version: str = "1.1.0"
    device_name: str = "Unknown Device"
    device_model: str = "Unknown Model"


async def find_by_user(session: AsyncSession, user_id: str) -> Optional[Device]:
    """Get the device registered for a user."""
    result = await session.execute(select(Device).where(Device.user_id == user_id))
    return result.scalar_one_or_none()


async def find_by_token(session: AsyncSession, token: str) -> Optional[Device]:
    """Get the first device holding a token."""
    result = await session.execute(
        select(Device).where(Device.expo_push_token == token).order_by(Device.user_id).limit(1)
    )
    return result.scalar_one_or_none()


async def upsert(session: AsyncSession, user_id: str, data: DeviceData) -> Device:
    """Create or overwrite the device for a user.

    registered_at is kept on update. token_updated_at only moves when the
    token value actually changes.
    """
    now = datetime.utcnow()
    device = await find_by_user(session, user_id)

    if device is None:
        device = Device(
            user_id=user_id,
            expo_push_token=data.expo_push_token,
            platform=data.platform,
            app_version=data.app_version,
            device_name=data.device_name,
            device_model=data.device_model,
            registered_at=now,
            last_active=now,
            token_updated_at=now,
        )
        session.add(device)
        logger.info(f"New device registered for user {user_id}")
    else:
        if device.expo_push_token != data.expo_push_token:
            device.token_updated_at = now
        device.expo_push_token = data.expo_push_token
        device.platform = data.platform
        device.app_version = data.app_version
        device.device_name = data.device_name
        device.device_model = data.device_model
        device.last_active = now
        logger.info(f"Device updated for user {user_id}")

    await session.commit()
    await session.refresh(device)
    return device


async def touch_last_active(session: AsyncSession, user_id: str) -> None:
    """Refresh last_active for a user's device, if any."""
    device = await find_by_user(session, user_id)
    if device is None:
        return
    device.last_active = datetime.utcnow()
    await session.commit()


async def delete_device(session: AsyncSession, user_id: str) -> bool:
    """Delete a user's notification history and device in one transaction.

    Returns:
        True if a device row existed
    """
    try:
        await session.execute(delete(NotificationLog).where(NotificationLog.user_id == user_id))
        result = await session.execute(delete(Device).where(Device.user_id == user_id))
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    removed = result.rowcount > 0
    logger.info(f"Device delete for user {user_id}: {'removed' if removed else 'not found'}")
    return removed


async def list_users(session: AsyncSession) -> List[dict]:
    """List user id and platform for every registered device."""
    result = await session.execute(
        select(Device.user_id, Device.platform).order_by(Device.user_id)
    )
    return [{"user_id": user_id, "platform": platform} for user_id, platform in result.all()]
