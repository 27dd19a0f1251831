"""
Background jobs. Currently only drains the notification retry queue.
"""
import logging
import os
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

RETRY_INTERVAL_SECONDS = int(os.getenv("NOTIFICATION_RETRY_SECONDS", "60"))


class NotificationRetryScheduler:
    def __init__(self, dispatcher: NotificationDispatcher, interval_seconds: int = RETRY_INTERVAL_SECONDS):
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self.scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
            },
        )

    def start(self):
        if self.scheduler.running:
            return

        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="notification_retry",
            name="Retry undelivered notifications",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Notification retry job every %ss", self.interval_seconds)

    def run_once(self) -> int:
        if not self.dispatcher.pending_count:
            return 0

        delivered = self.dispatcher.retry_pending()
        logger.info("Redelivered %d notifications, %d still pending", delivered, self.dispatcher.pending_count)
        return delivered

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
