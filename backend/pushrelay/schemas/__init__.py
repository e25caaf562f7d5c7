"""Pydantic schemas for API request/response models."""
from .device import (
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
from .notification import (
    SendRequest,
    SendResponse,
    TestTokenResponse,
    BroadcastStats,
    BroadcastResponse,
    HistoryEntry,
    HistoryResponse,
)

__all__ = [
    "RegisterRequest",
    "RegisterResponse",
    "VerifyTokenRequest",
    "DeviceResponse",
    "TokenInfo",
    "TokenInfoResponse",
    "MeResponse",
    "UsersResponse",
    "MessageResponse",
    "SendRequest",
    "SendResponse",
    "TestTokenResponse",
    "BroadcastStats",
    "BroadcastResponse",
    "HistoryEntry",
    "HistoryResponse",
]
