"""
Main entrypoint.

Usage:
    python -m jirasync                    # starts the cron scheduler
    python -m jirasync run [--user NAME]  # one manual sync, then exit
    python -m jirasync check              # test the Jira connection
"""
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _triggered_by(args) -> str:
    if "--user" in args:
        index = args.index("--user")
        if index + 1 < len(args):
            return args[index + 1]
    return "cli"


def _run_manual(args) -> int:
    from jirasync.db.engine import get_engine
    from jirasync.models.sync import SyncStatus, SyncType
    from jirasync.scheduler.jobs import build_orchestrator

    orchestrator = build_orchestrator(get_engine())
    history = orchestrator.execute_sync(SyncType.MANUAL, _triggered_by(args))

    print(f"Sync {history.id}: {history.sync_status.value} in {history.duration_seconds:.1f}s")
    for detail in history.details:
        first_line = (detail.result or "").split("\n", 1)[0]
        print(f"  {detail.seq:>4} [{detail.status.value:<7}] {detail.operation}: {first_line}")
    return 0 if history.sync_status is SyncStatus.COMPLETED else 1


def _run_check() -> int:
    from jirasync.db.engine import get_engine
    from jirasync.scheduler.jobs import build_orchestrator

    ok = build_orchestrator(get_engine()).test_connection()
    print("Jira connection OK" if ok else "Jira connection FAILED")
    return 0 if ok else 1


def _run_scheduler() -> None:
    from jirasync.config import get_settings
    from jirasync.db.engine import get_engine
    from jirasync.scheduler.jobs import build_scheduler

    settings = get_settings()
    if not settings.jira_base_url or not settings.jira_api_token:
        logger.error("JIRA_BASE_URL and JIRA_API_TOKEN must be set. See .env.example.")
        sys.exit(1)

    scheduler = build_scheduler(get_engine())
    logger.info("Scheduler started (cron: %s). Press Ctrl+C to stop.", settings.sync_cron)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
        scheduler.shutdown()
        logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument: `run`, `check`, or nothing for the scheduler
    command = sys.argv[1] if len(sys.argv) > 1 else None
    if command == "run":
        sys.exit(_run_manual(sys.argv[2:]))
    elif command == "check":
        sys.exit(_run_check())
    else:
        _run_scheduler()
