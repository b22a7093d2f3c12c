"""Periodic scheduler runs via APScheduler."""

import logging
from datetime import datetime

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from .adapters.activity_log import SqliteActivityLog
from .adapters.sqlite_store import SqliteMaintenanceStore
from .config import Config, load_config
from .scheduler import run_maintenance_scheduler

logger = logging.getLogger(__name__)


def scheduled_run(store: SqliteMaintenanceStore, audit_log: SqliteActivityLog, config: Config) -> None:
    """One periodic pass. Errors are logged so the next trigger still fires."""
    logger.info("Running scheduled maintenance pass")
    try:
        result = run_maintenance_scheduler(
            store,
            audit_log,
            account_id=config.account_id,
            lookahead_months=config.lookahead_months,
            now=datetime.now(),
        )
    except Exception as e:
        logger.error(f"Scheduled maintenance pass failed: {e}")
        return

    failed = [t.template_id for t in result.templates if t.error]
    if failed:
        logger.warning(f"Templates failed this pass: {', '.join(failed)}")
    logger.info(f"Scheduled pass created {result.created} task(s) across {result.processed} template(s)")


def setup_scheduler(config: Config | None = None) -> BlockingScheduler:
    """Set up the daily scheduler job."""
    if config is None:
        config = load_config()

    store = SqliteMaintenanceStore(config.database_path)
    audit_log = SqliteActivityLog(config.database_path)
    scheduler = BlockingScheduler(timezone=config.timezone or "UTC")

    hour, minute = config.scheduler_hour_minute()
    scheduler.add_job(
        scheduled_run,
        CronTrigger(hour=hour, minute=minute),
        args=[store, audit_log, config],
        id="maintenance_scheduler",
        coalesce=True,
        max_instances=1,
    )
    logger.info(f"Scheduled maintenance pass at {hour:02d}:{minute:02d} ({config.timezone})")
    return scheduler


def run_daemon(config: Config | None = None) -> None:
    """Run the scheduler daemon until interrupted."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )
    scheduler = setup_scheduler(config)
    logger.info("Starting Upkeep scheduler daemon...")
    scheduler.start()
