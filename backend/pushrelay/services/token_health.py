"""Token health evaluation for a user's registered push token.

Checks run in a fixed order and the first match wins. Registration-state
checks come before error-rate and activity checks.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Any

from ..models import Device
from .push_sender import is_valid_token

MAX_RECENT_ERRORS = 3
INACTIVE_AFTER = timedelta(days=30)

DEVICE_NOT_REGISTERED = "device_not_registered"
NO_TOKEN_IN_DB = "no_token_in_db"
TOKEN_CHANGED = "token_changed"
TOO_MANY_ERRORS = "too_many_errors"
DEVICE_INACTIVE = "device_inactive"

_MESSAGES = {
    DEVICE_NOT_REGISTERED: "Device is not registered",
    NO_TOKEN_IN_DB: "No token stored for this device",
    TOKEN_CHANGED: "Token has been updated",
    TOO_MANY_ERRORS: "Too many recent delivery errors",
    DEVICE_INACTIVE: "Device has been inactive for more than 30 days",
}


@dataclass
class TokenVerdict:
    """Outcome of a token health check."""
    valid: bool
    reason: Optional[str]
    message: str
    extra: dict = field(default_factory=dict)

    def to_response(self) -> dict:
        body: dict[str, Any] = {"valid": self.valid}
        if self.reason:
            body["reason"] = self.reason
        body["message"] = self.message
        body.update(self.extra)
        return body


def _invalid(reason: str, **extra) -> TokenVerdict:
    return TokenVerdict(valid=False, reason=reason, message=_MESSAGES[reason], extra=extra)


def is_inactive(last_active: datetime, now: datetime) -> bool:
    """A device is inactive when last seen strictly more than 30 days ago."""
    return last_active < now - INACTIVE_AFTER


def evaluate(
    device: Optional[Device],
    requested_token: str,
    recent_errors: int,
    now: Optional[datetime] = None,
) -> TokenVerdict:
    """Derive a verdict for the token a client believes is registered.

    Args:
        device: The user's device row, or None
        requested_token: Token the client sent
        recent_errors: Token-related errors logged in the last 7 days
        now: Reference time, defaults to utcnow

    Returns:
        TokenVerdict; provider syntax validity is reported but never
        decides the verdict
    """
    now = now or datetime.utcnow()

    if device is None:
        return _invalid(DEVICE_NOT_REGISTERED)

    if not device.expo_push_token:
        return _invalid(NO_TOKEN_IN_DB)

    if device.expo_push_token != requested_token:
        return _invalid(TOKEN_CHANGED, currentToken=device.expo_push_token)

    if recent_errors > MAX_RECENT_ERRORS:
        return _invalid(TOO_MANY_ERRORS, recentErrors=recent_errors)

    if is_inactive(device.last_active, now):
        return _invalid(DEVICE_INACTIVE, lastActive=device.last_active)

    return TokenVerdict(
        valid=True,
        reason=None,
        message="Token is valid",
        extra={
            "token_matches": True,
            "is_active": True,
            "last_active": device.last_active,
            "token_updated_at": device.token_updated_at,
            "expo_valid": is_valid_token(requested_token),
            "recent_errors": recent_errors,
        },
    )
