"""Database models."""
from .device import Device
from .notification import NotificationLog

__all__ = ["Device", "NotificationLog"]
