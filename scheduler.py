import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import session_scope
from months import month_of
from recurrence import local_today
from services import MonthService


logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.enabled = settings.auto_generate
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        month = month_of(local_today()).slug
        logger.info(f"scheduler_run: source={source} month={month}")
        with session_scope() as session:
            created = MonthService(session).ensure(month)
        logger.info(f"scheduler_run: source={source} month={month} created={created}")

    def start(self) -> None:
        if not self.enabled:
            logger.info("Scheduler disabled (BUDGET_AUTO_GENERATE is off)")
            return

        self._run_job("startup")

        trigger = CronTrigger(hour=0, minute=5)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily_00:05"],
            id="month_generation_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily 00:05 month generation")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
