"""Registration reconciliation for incoming device registrations."""
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Device
from . import device_registry
from .device_registry import DeviceData
from .scheduler import SchedulerService

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    """Classification of a registration."""
    user_id: str
    is_update: bool
    is_same_token: bool
    device: Device
    welcome_scheduled: bool = False


async def register_device(
    session: AsyncSession,
    scheduler: SchedulerService,
    user_id: str,
    data: DeviceData,
    silent: bool = False,
) -> RegistrationResult:
    """Register or refresh a user's device.

    The device is looked up by user first and by token second, to catch a
    physical device coming back under another identifier. The write always
    happens. A welcome notification is scheduled unless the registration is
    silent or nothing changed; the caller never waits for it.
    """
    existing = await device_registry.find_by_user(session, user_id)
    if existing is None:
        existing = await device_registry.find_by_token(session, data.expo_push_token)

    is_update = existing is not None
    is_same_token = (
        existing is not None
        and existing.expo_push_token == data.expo_push_token
        and existing.user_id == user_id
    )

    device = await device_registry.upsert(session, user_id, data)

    welcome_scheduled = False
    if not silent and not is_same_token:
        welcome_scheduled = scheduler.schedule_welcome(user_id, data.expo_push_token) is not None

    logger.info(
        f"Registration for {user_id}: update={is_update} same_token={is_same_token} "
        f"token={data.expo_push_token[:20]}..."
    )
    return RegistrationResult(
        user_id=user_id,
        is_update=is_update,
        is_same_token=is_same_token,
        device=device,
        welcome_scheduled=welcome_scheduled,
    )
