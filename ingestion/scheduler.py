import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from ingestion.runner import ProcessingOrchestrator

logger = logging.getLogger(__name__)

PROCESSING_JOB_ID = "process_new_files"
STUCK_SWEEP_JOB_ID = "recover_stuck_files"
CLEANUP_JOB_ID = "cleanup_processed_files"


class ProcessingScheduler:
    """
    Periodic processing, stuck-file sweep and daily retention cleanup.

    Pausing the orchestrator skips processing ticks only; sweeps and cleanup
    keep running.
    """

    def __init__(self, orchestrator: ProcessingOrchestrator, config=None):
        self.orchestrator = orchestrator
        self.config = config or settings
        self.scheduler = AsyncIOScheduler()

    async def run_processing_job(self):
        """Job to process newly arrived files"""
        if self.orchestrator.paused:
            logger.info("Scheduler: processing is paused, skipping tick")
            return
        logger.info("Scheduler: Starting processing job")
        try:
            summary = await self.orchestrator.process_new_files()
            logger.info(f"Scheduler: {summary}")
        except Exception as e:
            logger.error(f"Scheduler: processing job failed - {e}")

    async def run_stuck_sweep_job(self):
        try:
            recovered = await self.orchestrator.recover_stuck_files()
            if recovered:
                logger.info(f"Scheduler: recovered {recovered} stuck files")
        except Exception as e:
            logger.error(f"Scheduler: stuck file sweep failed - {e}")

    async def run_cleanup_job(self):
        logger.info("Scheduler: Starting retention cleanup")
        try:
            deleted = await self.orchestrator.cleanup_old_processed_files()
            logger.info(f"Scheduler: cleaned up {deleted} processed file records")
        except Exception as e:
            logger.error(f"Scheduler: cleanup job failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_processing_job,
            trigger=IntervalTrigger(minutes=self.config.PROCESSING_INTERVAL_MINUTES),
            id=PROCESSING_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.run_stuck_sweep_job,
            trigger=IntervalTrigger(minutes=self.config.STUCK_SWEEP_INTERVAL_MINUTES),
            id=STUCK_SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.run_cleanup_job,
            trigger=CronTrigger(hour=self.config.CLEANUP_HOUR, minute=0),
            id=CLEANUP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Processing scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Processing scheduler stopped")
