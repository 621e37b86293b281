"""
DCLense - Scheduled tasks
- Daily reminders at 08:00 Europe/Belgrade
"""

import logging

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config import REMINDER_TIMEZONE, REMINDER_HOUR

logger = logging.getLogger("scheduler")


class TaskScheduler:
    """Scheduled jobs, bound to the app's database"""

    def __init__(self, db=None, email=None, tz_name: str = None):
        self.tz = pytz.timezone(tz_name or REMINDER_TIMEZONE)
        self.scheduler = AsyncIOScheduler(timezone=self.tz)
        self.db = db
        self.email = email

    def start(self, db=None):
        if db is not None:
            self.db = db
        if self.email is None:
            from email_service import email_service
            self.email = email_service

        self.scheduler.add_job(
            self.send_daily_reminders,
            CronTrigger(hour=REMINDER_HOUR, minute=0, timezone=self.tz),
            id="daily_reminders",
            name="Daily reminders",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info(f"Scheduler started (daily reminders at {REMINDER_HOUR:02d}:00 {self.tz.zone})")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")

    # ==================== JOBS ====================

    async def send_daily_reminders(self):
        from services.reminders import run_daily_reminders

        try:
            result = await run_daily_reminders(self.db, self.email)
            failed = [r for r in result["results"] if not r["success"]]
            if failed:
                logger.warning(f"[DAILY_REMINDERS] {len(failed)} digest(s) failed")
            return result
        except Exception as e:
            logger.error(f"Daily reminders job error: {str(e)}")
            self.email.send_critical_alert("CRON_FAILURE", "Daily reminders job failed", {"error": str(e)})
            return None


# Singleton
task_scheduler = TaskScheduler()
