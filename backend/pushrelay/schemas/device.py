"""Device registration schemas."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Request to register a device for push notifications."""
    model_config = ConfigDict(populate_by_name=True)

    expo_push_token: str = Field(..., alias="expoPushToken", min_length=1)
    platform: str = "unknown"
    app_version: str = Field("1.1.0", alias="appVersion")
    device_name: str = Field("Unknown Device", alias="deviceName")
    device_model: str = Field("Unknown Model", alias="deviceModel")
    # Suppresses the welcome notification
    silent_registration: bool = Field(False, alias="silentRegistration")


class RegisterResponse(BaseModel):
    """Response after registering a device."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    user_id: str = Field(..., serialization_alias="userId")
    is_update: bool = Field(..., serialization_alias="isUpdate")
    is_same_token: bool = Field(..., serialization_alias="isSameToken")


class VerifyTokenRequest(BaseModel):
    """Request to check the health of a client's token."""
    model_config = ConfigDict(populate_by_name=True)

    expo_push_token: str = Field(..., alias="expoPushToken", min_length=1)


class DeviceResponse(BaseModel):
    """Stored device record."""
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    expo_push_token: Optional[str] = None
    platform: Optional[str] = None
    app_version: Optional[str] = None
    device_name: Optional[str] = None
    device_model: Optional[str] = None
    registered_at: datetime
    last_active: datetime
    token_updated_at: datetime


class TokenInfo(BaseModel):
    """Masked view of a device's token and activity."""
    has_token: bool
    token_preview: Optional[str] = None
    platform: Optional[str] = None
    app_version: Optional[str] = None
    device_name: Optional[str] = None
    device_model: Optional[str] = None
    registered_at: datetime
    last_active: datetime
    token_updated_at: datetime
    days_since_registration: int
    hours_since_active: int


class TokenInfoResponse(BaseModel):
    success: bool = True
    token_info: TokenInfo


class MeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    user_id: str = Field(..., serialization_alias="userId")
    device: Optional[DeviceResponse] = None


class UserSummary(BaseModel):
    user_id: str
    platform: Optional[str] = None


class UsersResponse(BaseModel):
    success: bool = True
    users: List[UserSummary]


class MessageResponse(BaseModel):
    success: bool = True
    message: str
