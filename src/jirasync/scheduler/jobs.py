"""
APScheduler job for scheduled Jira syncs.

One cron job runs SyncOrchestrator.execute_sync on ``settings.sync_cron``.
``max_instances=1`` with ``coalesce=True`` means a slow run is never overlapped
by the next tick; missed ticks collapse into a single run.
"""
import logging
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from jirasync.config import SyncConfig, get_settings
from jirasync.models.sync import utc_now

logger = logging.getLogger(__name__)

SCHEDULED_SYNC_JOB_ID = "scheduled_jira_sync"


def build_orchestrator(engine, settings=None):
    """
    Wire a SyncOrchestrator from settings.

    Args:
        engine: SQLAlchemy engine shared by the repositories and reconciler.
        settings: Settings instance; defaults to get_settings().

    Returns:
        A ready SyncOrchestrator.
    """
    from jirasync.db.repositories import (
        QueryRepository,
        SyncHistoryRepository,
        TemplateRepository,
    )
    from jirasync.jira.client import JiraClient
    from jirasync.notifications import Escalator, build_notification_sink
    from jirasync.sync.batch import BatchProcessor
    from jirasync.sync.orchestrator import SyncOrchestrator
    from jirasync.sync.pagination import PaginatedFetcher
    from jirasync.sync.reconcile import ProjectReconciler
    from jirasync.sync.retry import RetryExecutor, RetryPolicy
    from jirasync.sync.transform import RecordTransformer

    settings = settings or get_settings()
    config = SyncConfig.from_settings(settings)

    client = JiraClient(
        base_url=settings.jira_base_url,
        api_token=settings.jira_api_token,
        timeout=settings.jira_timeout_seconds,
        default_retry_after=config.default_retry_after,
    )
    retry = RetryExecutor(
        policy=RetryPolicy.from_config(config),
        escalator=Escalator(build_notification_sink(settings)),
        default_retry_after=config.default_retry_after,
    )
    return SyncOrchestrator(
        queries=QueryRepository(engine),
        history_repository=SyncHistoryRepository(engine),
        fetcher=PaginatedFetcher(client, retry, page_size=config.page_size),
        batch_processor=BatchProcessor(
            transformer=RecordTransformer(TemplateRepository(engine)),
            applier=ProjectReconciler(engine),
            config=config,
        ),
        config=config,
        client=client,
    )


def build_scheduler(engine) -> BlockingScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine handed to each scheduled run.

    Returns:
        Configured BlockingScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = BlockingScheduler()

    scheduler.add_job(
        _scheduled_sync,
        trigger=CronTrigger.from_crontab(settings.sync_cron),
        id=SCHEDULED_SYNC_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"engine": engine},
    )

    return scheduler


def _scheduled_sync(engine) -> None:
    """
    Scheduled job body. Never raises, so the scheduler keeps ticking.
    """
    from jirasync.models.sync import SyncType

    logger.info("Scheduled Jira sync starting at %s", utc_now().isoformat())

    try:
        orchestrator = build_orchestrator(engine)
        history = orchestrator.execute_sync(SyncType.SCHEDULED, "system")
        logger.info(
            "Scheduled Jira sync %s: %s (%d ok, %d errors, %.1fs)",
            history.id,
            history.sync_status.value,
            history.success_count,
            history.error_count,
            history.duration_seconds,
        )
    except Exception as exc:
        logger.error("Scheduled Jira sync failed: %s", exc)
