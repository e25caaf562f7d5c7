"""Notification sending API endpoints."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..auth import Principal, get_current_principal, require_admin
from ..config import settings
from ..database import get_db, get_session_factory
from ..models import Device
from ..schemas.notification import (
    SendRequest,
    SendResponse,
    TestTokenResponse,
    BroadcastStats,
    BroadcastResponse,
    HistoryEntry,
    HistoryResponse,
)
from ..services import device_registry
from ..services.broadcast import broadcast as run_broadcast
from ..services.notification_log import log_notification, get_history
from ..services.push_sender import (
    PushSenderService,
    SendResult,
    get_push_sender,
    delivery_error,
    extract_ticket_id,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["notifications"])

TEST_TITLE = "Test notification"
TEST_BODY = "This is a test notification to verify your token"


async def _get_sendable_device(db: AsyncSession, user_id: str) -> Device:
    """Get the caller's device or raise 404."""
    device = await device_registry.find_by_user(db, user_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device is not registered")
    if not device.expo_push_token:
        raise HTTPException(status_code=404, detail="No push token stored for this device")
    return device


async def _send_and_record(
    db: AsyncSession,
    sender: PushSenderService,
    token: str,
    *,
    notification_type: str,
    user_id: str,
    title: str,
    body: str,
    data: dict,
    payload_data: Optional[dict] = None,
) -> SendResult:
    """Send to one token and log the outcome, whatever it is.

    Raises 502 if no ticket came back. Unexpected sender errors are logged
    and re-raised.
    """
    entry = {
        "notification_type": notification_type,
        "user_id": user_id,
        "title": title,
        "body": body,
        "data": data,
    }
    try:
        result = await sender.send_one(token, title, body, data if payload_data is None else payload_data)
    except Exception as e:
        await log_notification(db, **entry, status="error", error=str(e) or type(e).__name__)
        raise

    error = delivery_error(result)
    ticket = result.tickets[0] if result.tickets else None
    await log_notification(
        db,
        **entry,
        status="error" if error else "sent",
        ticket_id=extract_ticket_id(ticket),
        error=error,
    )

    if result.fail_count or not result.tickets:
        raise HTTPException(status_code=502, detail=error)
    return result


@router.post("/send", response_model=SendResponse)
async def send_to_self(
    request: SendRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    sender: PushSenderService = Depends(get_push_sender),
):
    """Send a notification to the caller's own device."""
    device = await _get_sendable_device(db, principal.user_id)
    await device_registry.touch_last_active(db, principal.user_id)

    result = await _send_and_record(
        db,
        sender,
        device.expo_push_token,
        notification_type="single",
        user_id=principal.user_id,
        title=request.title,
        body=request.body,
        data=request.data,
    )

    ticket = result.tickets[0]
    return SendResponse(
        success=ticket.status == "ok",
        message="Notification sent" if ticket.status == "ok" else "Notification rejected by provider",
        ticket=ticket.to_dict(),
    )


@router.post("/test-token", response_model=TestTokenResponse)
async def test_token(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    sender: PushSenderService = Depends(get_push_sender),
):
    """Send a test notification to check the caller's token end to end."""
    device = await _get_sendable_device(db, principal.user_id)
    await device_registry.touch_last_active(db, principal.user_id)

    now = datetime.utcnow()
    result = await _send_and_record(
        db,
        sender,
        device.expo_push_token,
        notification_type="test",
        user_id=principal.user_id,
        title=TEST_TITLE,
        body=TEST_BODY,
        data={"type": "test"},
        payload_data={"type": "test", "timestamp": now.isoformat()},
    )

    ticket = result.tickets[0]
    return TestTokenResponse(
        success=ticket.status == "ok",
        message="Test notification sent" if ticket.status == "ok" else "Test notification rejected by provider",
        ticket=ticket.to_dict(),
        timestamp=now,
    )


@router.post("/broadcast", response_model=BroadcastResponse)
async def broadcast(
    request: SendRequest,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    sender: PushSenderService = Depends(get_push_sender),
):
    """Send a notification to every registered device with a valid token."""
    result = await run_broadcast(db, session_factory, sender, request.title, request.body, request.data)
    logger.info(f"Broadcast by {admin.user_id} finished")

    return BroadcastResponse(
        stats=BroadcastStats(
            success_count=result.success_count,
            fail_count=result.fail_count,
            tickets=len(result.tickets),
        )
    )


@router.get("/history", response_model=HistoryResponse)
async def history(
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Get the most recent notification log entries."""
    entries = await get_history(db, settings.history_limit)
    return HistoryResponse(history=[HistoryEntry.model_validate(entry) for entry in entries])
