"""Device model - binds a user identifier to an Expo push token."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime

from ..database import Base


class Device(Base):
    """Registered device for push notifications, one per user."""

    __tablename__ = "devices"

    user_id = Column(String, primary_key=True)
    # Not unique: a token can sit on two rows until the old owner re-registers
    expo_push_token = Column(String, nullable=True, index=True)
    platform = Column(String, default="unknown")  # ios, android, web
    app_version = Column(String, nullable=True)
    device_name = Column(String, nullable=True)
    device_model = Column(String, nullable=True)
    registered_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_active = Column(DateTime, default=datetime.utcnow, nullable=False)
    token_updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Device user={self.user_id} platform={self.platform}>"
