"""Grant allocation service entry point with APScheduler.

- 15-minute QuickBooks report sync using APScheduler
- One-shot commands for sync, categorization, ledger submission and summaries:

    python -m grant_allocation.main                      # scheduler
    python -m grant_allocation.main --sync
    python -m grant_allocation.main --categorize <user_id> [--refresh]
    python -m grant_allocation.main --submit <run_id>
    python -m grant_allocation.main --summary [<run_id>]
    python -m grant_allocation.main --grants
"""

import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import Config, load_config
from .adapters import AnthropicRecommender, QuickBooksLedger
from .database import SupabaseClient
from .reporter import RunSummaryReporter, format_grant_profiles, format_submission
from .runs import RunManager, SubmissionPipeline
from .scorer import load_settings
from .sync import LedgerSync

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: SupabaseClient
    ledger: QuickBooksLedger
    sync: LedgerSync
    runs: RunManager
    submission: SubmissionPipeline
    reporter: RunSummaryReporter


async def build_services(config: Config) -> Services:
    """Wire adapters and pipeline components from configuration."""
    store = await SupabaseClient.connect(config.supabase_url, config.supabase_key)
    ledger = QuickBooksLedger(
        store,
        client_id=config.qb_client_id,
        client_secret=config.qb_client_secret,
        environment=config.qb_environment,
    )
    recommender = AnthropicRecommender(
        api_key=config.anthropic_api_key,
        model=config.llm_model,
        max_tokens=config.llm_max_tokens,
        temperature=config.llm_temperature,
    )
    settings = load_settings(config.allocation_settings_path)
    return Services(
        store=store,
        ledger=ledger,
        sync=LedgerSync(ledger, store),
        runs=RunManager(ledger, recommender, store, settings),
        submission=SubmissionPipeline(ledger, store),
        reporter=RunSummaryReporter(store),
    )


async def sync_reports(services: Services) -> None:
    """Scheduled job: refresh cached QuickBooks reports.

    Failures are logged and swallowed; the next tick tries again.
    """
    start_time = datetime.utcnow()
    try:
        synced = await services.sync.sync_all()
    except Exception as e:
        logger.error(f"Report sync failed: {e}", exc_info=True)
        return
    if synced:
        duration = (datetime.utcnow() - start_time).total_seconds()
        logger.info(f"Report sync completed in {duration:.2f} seconds")


async def categorize(services: Services, user_id: str, refresh: bool = False) -> str:
    """Start a categorization run, optionally syncing reports first."""
    if refresh:
        await services.sync.sync_all()
    run_id = await services.runs.start_run(user_id)
    print(await services.reporter.summarize(run_id))
    return run_id


async def submit(services: Services, run_id: str) -> None:
    summary = await services.submission.submit_run(run_id)
    print(format_submission(run_id, summary))


async def show_grants(services: Services, today: Optional[date] = None) -> None:
    """Print pacing and per-category headroom for every active grant."""
    profile_set = await services.runs.grant_profiles(today)
    print(format_grant_profiles(profile_set.profiles))


async def run_command(argv: list) -> None:
    """Dispatch a one-shot CLI command."""
    config = load_config()
    logging.getLogger().setLevel(config.log_level)
    services = await build_services(config)

    command = argv[0]
    if command == "--sync":
        await services.sync.sync_all()
    elif command == "--categorize" and len(argv) > 1:
        await categorize(services, argv[1], refresh="--refresh" in argv[2:])
    elif command == "--submit" and len(argv) > 1:
        await submit(services, argv[1])
    elif command == "--summary":
        print(await services.reporter.summarize(argv[1] if len(argv) > 1 else None))
    elif command == "--grants":
        await show_grants(services)
    else:
        raise SystemExit(__doc__)


async def run_scheduler() -> None:
    """Start APScheduler for continuous report sync."""
    config = load_config()

    # Configure logging level
    logging.getLogger().setLevel(config.log_level)

    logger.info("Initializing Grant Allocation Service")
    logger.info(f"Sync interval: {config.sync_interval_minutes} minutes")

    services = await build_services(config)

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        sync_reports,
        trigger=IntervalTrigger(minutes=config.sync_interval_minutes),
        args=[services],
        id="sync_ledger_reports",
        name="Sync QuickBooks reports",
        replace_existing=True,
        max_instances=1,  # Prevent overlapping runs
    )
    scheduler.start()
    logger.info("Scheduler started")

    # Run first sync immediately
    await sync_reports(services)

    try:
        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down scheduler...")
        scheduler.shutdown()
        logger.info("Scheduler stopped")


def main(argv=None) -> None:
    argv = sys.argv[1:] if argv is None else argv
    try:
        if argv:
            asyncio.run(run_command(argv))
        else:
            asyncio.run(run_scheduler())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
