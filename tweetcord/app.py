from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time

import schedule
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from tweetcord.config.logging import setup_logging
from tweetcord.config.settings import Settings, load_settings
from tweetcord.errors import TRANSIENT_ERRORS, ConfigError, RunFailed
from tweetcord.fetchers.twitter_fetcher import TwitterFetcher
from tweetcord.models.types import RunOutcome, RunStatus
from tweetcord.pipeline import RunOrchestrator
from tweetcord.publishers.delivery import DeliveryPipeline
from tweetcord.publishers.discord_publisher import DiscordPublisher
from tweetcord.publishers.formatters import get_formatter
from tweetcord.storage.database import SqliteWatermarkStore
from tweetcord.storage.watermark import (
    EnvWatermarkStore,
    FileWatermarkStore,
    MemoryWatermarkStore,
    WatermarkStore,
)

logger = logging.getLogger(__name__)

RUN_ATTEMPTS = 3


def build_store(settings: Settings) -> WatermarkStore:
    backend = settings.watermark_backend
    if backend == "memory":
        return MemoryWatermarkStore()
    if backend == "env":
        return EnvWatermarkStore()
    if backend == "sqlite":
        return SqliteWatermarkStore(settings.watermark_path)
    return FileWatermarkStore(settings.watermark_path)


def build_orchestrator(settings: Settings, store: WatermarkStore) -> RunOrchestrator:
    publisher = DiscordPublisher(
        settings.discord_webhook_url,
        thread_id=settings.discord_thread_id,
        formatter=get_formatter(settings.message_style),
    )
    return RunOrchestrator(
        source=TwitterFetcher(settings.x_bearer_token),
        store=store,
        delivery=DeliveryPipeline(publisher, pacing_seconds=settings.pacing_seconds),
        account_handle=settings.x_username,
        notifier=publisher,
        max_results=settings.max_results,
        run_timeout_seconds=settings.run_timeout_seconds,
    )


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, RunFailed) and isinstance(exc.__cause__, TRANSIENT_ERRORS)


def run_with_retries(orchestrator: RunOrchestrator, attempts: int = RUN_ATTEMPTS) -> RunOutcome:
    """Run one cycle, re-running the whole cycle on transient failures.

    Backoff doubles from 1s up to 10s. Non-transient failures and the last
    transient one propagate as ``RunFailed``.
    """
    retrying = Retrying(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retrying(orchestrator.run)


def run_once(orchestrator: RunOrchestrator, store: WatermarkStore) -> RunOutcome:
    try:
        outcome = run_with_retries(orchestrator)
    except RunFailed as exc:
        outcome = exc.outcome

    log = logger.info if outcome.ok else logger.warning
    log("Run outcome: %s", outcome.message)
    if isinstance(store, SqliteWatermarkStore):
        store.record_run(outcome)
    return outcome


def run_forever(settings: Settings, orchestrator: RunOrchestrator, store: WatermarkStore) -> None:
    stopping = False

    def _shutdown(sig: int, _frame: object) -> None:
        nonlocal stopping
        logger.info("Received signal %s, shutting down...", sig)
        stopping = True

    if isinstance(store, EnvWatermarkStore):
        logger.warning(
            "WATERMARK_BACKEND=env cannot persist the watermark; every scheduled run "
            "will re-deliver the whole fetch window. Use file or sqlite for the loop."
        )

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    run_once(orchestrator, store)

    schedule.every(settings.check_interval_minutes).minutes.do(run_once, orchestrator, store)
    logger.info("Scheduler started: checking @%s every %d min",
                settings.x_username, settings.check_interval_minutes)

    try:
        while not stopping:
            schedule.run_pending()
            time.sleep(1)
    finally:
        schedule.clear()


def print_history(store: WatermarkStore, limit: int) -> int:
    if not isinstance(store, SqliteWatermarkStore):
        logger.error("Run history needs WATERMARK_BACKEND=sqlite (current store: %s)", store.name)
        return 2
    for run in store.recent_runs(limit):
        print(json.dumps(run))
    return 0


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tweetcord",
        description="Forward new posts from an X account to a Discord webhook.",
    )
    parser.add_argument("--once", action="store_true", help="run a single check and exit")
    parser.add_argument("--json", action="store_true", help="print the run outcome as JSON (with --once)")
    parser.add_argument(
        "--history", type=int, metavar="N", help="print the last N recorded runs (sqlite store) and exit"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


def cli(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        settings = load_settings()
    except ConfigError as exc:
        setup_logging(log_file=None)
        logger.error("%s", exc)
        return 2

    setup_logging(logging.DEBUG if args.verbose else logging.INFO, log_file=settings.log_file)
    logger.info(
        "Starting TweetCord: @%s -> Discord (thread: %s, store: %s)",
        settings.x_username,
        settings.discord_thread_id or "N/A (posts to channel)",
        settings.watermark_backend,
    )

    store = build_store(settings)
    try:
        if args.history is not None:
            return print_history(store, args.history)

        orchestrator = build_orchestrator(settings, store)
        if not args.once:
            run_forever(settings, orchestrator, store)
            return 0

        outcome = run_once(orchestrator, store)
        if args.json:
            print(json.dumps(outcome.to_dict()))
        return 1 if outcome.status is RunStatus.ERROR else 0
    except ConfigError as exc:
        logger.error("%s", exc)
        return 2
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(cli())
