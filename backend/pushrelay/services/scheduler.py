"""Scheduler service - runs deferred, best-effort notification jobs.

The welcome notification after registration is the only detached work in
the service. It runs as a one-shot APScheduler job a short delay after the
registration request, in its own database session. Its outcome is written
to the notification log and never reaches the original caller. Pending jobs
are lost if the process stops before they fire.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import settings
from ..database import async_session
from .notification_log import log_notification
from .push_sender import PushSenderService, push_sender_service, delivery_error, extract_ticket_id

logger = logging.getLogger(__name__)

WELCOME_TITLE = "Device registered"
WELCOME_BODY = "You will now receive notifications"
WELCOME_DATA = {"type": "welcome"}


class SchedulerService:
    """Service for scheduling deferred welcome notifications."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        sender: Optional[PushSenderService] = None,
    ):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self.session_factory = session_factory or async_session
        self.sender = sender or push_sender_service

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    def stop(self):
        """Stop the scheduler. Pending jobs are dropped."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    @staticmethod
    def welcome_job_id(user_id: str) -> str:
        return f"welcome:{user_id}"

    def schedule_welcome(
        self,
        user_id: str,
        token: str,
        delay_seconds: Optional[float] = None,
    ) -> Optional[str]:
        """Schedule the welcome notification for a freshly registered token.

        A newer registration for the same user replaces a job that has not
        fired yet.

        Returns:
            The job id, or None if the scheduler is not running
        """
        if not self.scheduler or not self._running:
            logger.warning(f"Scheduler not running, welcome notification for {user_id} dropped")
            return None

        delay = settings.welcome_delay_seconds if delay_seconds is None else delay_seconds
        job_id = self.welcome_job_id(user_id)
        self.scheduler.add_job(
            self.send_welcome,
            trigger=DateTrigger(run_date=datetime.now() + timedelta(seconds=delay)),
            args=[user_id, token],
            id=job_id,
            replace_existing=True,
            misfire_grace_time=60,
        )
        logger.debug(f"Welcome notification scheduled for {user_id} in {delay}s")
        return job_id

    def cancel_welcome(self, user_id: str) -> bool:
        """Cancel a pending welcome notification."""
        if not self.scheduler:
            return False
        job = self.scheduler.get_job(self.welcome_job_id(user_id))
        if job is None:
            return False
        job.remove()
        return True

    async def send_welcome(self, user_id: str, token: str):
        """Send the welcome notification and record the outcome.

        Every failure ends up in the notification log; nothing is raised.
        """
        ticket_id = None
        try:
            result = await self.sender.send_one(token, WELCOME_TITLE, WELCOME_BODY, dict(WELCOME_DATA))
            error = delivery_error(result)
            if result.tickets:
                ticket_id = extract_ticket_id(result.tickets[0])
        except Exception as e:
            logger.error(f"Welcome notification for {user_id} failed: {e}")
            error = str(e) or type(e).__name__

        try:
            async with self.session_factory() as session:
                await log_notification(
                    session,
                    notification_type="welcome",
                    user_id=user_id,
                    title=WELCOME_TITLE,
                    body=WELCOME_BODY,
                    data=dict(WELCOME_DATA),
                    status="error" if error else "sent",
                    ticket_id=ticket_id,
                    error=error,
                )
        except Exception as e:
            logger.error(f"Could not record welcome notification for {user_id}: {e}")


# Global instance
scheduler_service = SchedulerService()


def get_scheduler() -> SchedulerService:
    """Dependency returning the shared scheduler."""
    return scheduler_service
