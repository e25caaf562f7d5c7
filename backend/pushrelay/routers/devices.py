"""Device registration API endpoints."""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import Principal, get_current_principal
from ..database import get_db
from ..models import Device
from ..schemas.device import (
    RegisterRequest,
    RegisterResponse,
    VerifyTokenRequest,
    DeviceResponse,
    TokenInfo,
    TokenInfoResponse,
    MeResponse,
    UsersResponse,
    MessageResponse,
)
from ..services import device_registry
from ..services.device_registry import DeviceData
from ..services.notification_log import count_recent_errors
from ..services.push_sender import is_valid_token
from ..services.registration import register_device
from ..services.scheduler import SchedulerService, get_scheduler
from ..services.token_health import evaluate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["devices"])

TOKEN_PREVIEW_LENGTH = 20


def _build_token_info(device: Device, now: datetime) -> TokenInfo:
    """Build a masked TokenInfo from a device row."""
    token = device.expo_push_token
    return TokenInfo(
        has_token=bool(token),
        token_preview=f"{token[:TOKEN_PREVIEW_LENGTH]}..." if token else None,
        platform=device.platform,
        app_version=device.app_version,
        device_name=device.device_name,
        device_model=device.device_model,
        registered_at=device.registered_at,
        last_active=device.last_active,
        token_updated_at=device.token_updated_at,
        days_since_registration=int((now - device.registered_at).total_seconds() // 86400),
        hours_since_active=int((now - device.last_active).total_seconds() // 3600),
    )


@router.post("/register", response_model=RegisterResponse)
async def register(
    request: RegisterRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Register a device or refresh an existing registration.

    The mobile app calls this on every launch. A welcome notification is
    sent shortly afterwards unless the registration is silent or the token
    did not change.
    """
    if not is_valid_token(request.expo_push_token):
        raise HTTPException(status_code=400, detail="Invalid Expo push token")

    result = await register_device(
        db,
        scheduler,
        principal.user_id,
        DeviceData(
            expo_push_token=request.expo_push_token,
            platform=request.platform,
            app_version=request.app_version,
            device_name=request.device_name,
            device_model=request.device_model,
        ),
        silent=request.silent_registration,
    )

    return RegisterResponse(
        message="Updated" if result.is_update else "Registered",
        user_id=result.user_id,
        is_update=result.is_update,
        is_same_token=result.is_same_token,
    )


@router.post("/verify-token")
async def verify_token(
    request: VerifyTokenRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Tell the client whether the token it holds is still trusted."""
    device = await device_registry.find_by_user(db, principal.user_id)
    recent_errors = await count_recent_errors(db, principal.user_id) if device else 0

    verdict = evaluate(device, request.expo_push_token, recent_errors)
    if not verdict.valid:
        logger.info(f"Token check for {principal.user_id}: {verdict.reason}")
    return verdict.to_response()


@router.get("/token-info", response_model=TokenInfoResponse)
async def token_info(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Get a masked summary of the caller's registered token."""
    device = await device_registry.find_by_user(db, principal.user_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")

    return TokenInfoResponse(token_info=_build_token_info(device, datetime.utcnow()))


@router.delete("/unregister", response_model=MessageResponse)
async def unregister(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Delete the caller's device together with its notification history."""
    scheduler.cancel_welcome(principal.user_id)
    removed = await device_registry.delete_device(db, principal.user_id)

    if not removed:
        return MessageResponse(message="No device registered")
    return MessageResponse(message="Device and notification history deleted")


@router.get("/me", response_model=MeResponse)
async def me(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Get the caller's identifier and device, if any."""
    device = await device_registry.find_by_user(db, principal.user_id)
    return MeResponse(
        user_id=principal.user_id,
        device=DeviceResponse.model_validate(device) if device else None,
    )


@router.get("/users", response_model=UsersResponse)
async def list_users(db: AsyncSession = Depends(get_db)):
    """List registered users and their platforms (public, for the dashboard)."""
    users = await device_registry.list_users(db)
    return UsersResponse(users=users)
