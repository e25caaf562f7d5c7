"""NotificationLog model - append-only record of send attempts."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON

from ..database import Base


NOTIFICATION_TYPES = ("single", "test", "welcome", "broadcast")
NOTIFICATION_STATUSES = ("sent", "error")


class NotificationLog(Base):
    """One row per push send attempt, successful or not."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # No foreign key to devices; NULL for broadcasts
    user_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    type = Column(String, nullable=False)  # single, test, welcome, broadcast
    status = Column(String, nullable=False)  # sent, error
    ticket_id = Column(String, nullable=True)
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
