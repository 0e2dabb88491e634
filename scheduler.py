import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import SessionFactory, session_scope
from periods import previous_month
from reports import build_report_engine, local_now
from services import InternalError, UserService


logger = logging.getLogger(__name__)


def warm_previous_month(factory: Optional[SessionFactory] = None) -> int:
    """Fill the report cache for last month; returns how many reports were stored."""
    year, month = previous_month(local_now().date())
    stored = 0
    with session_scope(factory) as session:
        user_ids = [user.id for user in UserService(session).list_all()]
        engine = build_report_engine(session)
        for user_id in user_ids:
            try:
                report = engine.get_monthly_report(user_id, year, month)
            except InternalError:
                logger.exception(
                    f"report_warmup_failed: user_id={user_id} year={year} month={month}"
                )
                continue
            if report.persisted:
                stored += 1
    return stored


class SchedulerManager:
    def __init__(self, factory: Optional[SessionFactory] = None) -> None:
        settings = get_settings()
        self.factory = factory
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"report_warmup: source={source}")
        try:
            count = warm_previous_month(self.factory)
        except InternalError:
            logger.exception(f"report_warmup: source={source} failed")
            return
        logger.info(f"report_warmup: source={source} reports_stored={count}")

    def start(self) -> None:
        self._run_job("startup")

        trigger = CronTrigger(day=1, hour=0, minute=10)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["monthly_00:10"],
            id="report_warmup_monthly",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info("Scheduler started with monthly report warm-up on day 1 at 00:10")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
