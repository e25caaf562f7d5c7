"""Services for push delivery, device registration, and notification logging."""
from .push_sender import PushSenderService, push_sender_service
from .scheduler import SchedulerService, scheduler_service

__all__ = ["PushSenderService", "push_sender_service", "SchedulerService", "scheduler_service"]
