import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from fx_rates import FxRateService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, fx_service: Optional[FxRateService] = None) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        self.fx_service = fx_service or FxRateService(settings)

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"scheduler_run: source={source}")
        try:
            table = self.fx_service.rate_table(force=True)
        except (RuntimeError, ValueError) as exc:
            # Retried on the next run.
            logger.error(f"scheduler_run: source={source} fx_refresh_failed={exc}")
            return
        logger.info(
            f"scheduler_run: source={source} provider={table.provider} "
            f"base={table.base} currencies={len(table.rates)}"
        )

    def start(self) -> None:
        self._run_job("startup")

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["hourly_fx_refresh"],
            id="fx_refresh_hourly",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with hourly FX refresh")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
