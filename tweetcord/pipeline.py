"""
One polling cycle of the bot.

    Validating → Fetching → Diffing → Delivering → Persisting → Done

with an ErrorReporting branch reachable from every state after Validating.

- A rate-limited fetch ends the run quietly with a ``rate_limited`` outcome;
  the next scheduled run retries.
- Any other fetch failure is reported to the destination (best effort) and
  raised as ``RunFailed`` so the caller can decide whether to retry.
- Per-post delivery failures are absorbed by the delivery pipeline. The
  watermark moves to the newest fetched post as soon as at least one post
  went out, so one bounced message never causes the batch to be re-sent.
- A batch cut short by ``Forbidden`` or the run deadline only advances the
  watermark past the posts it got through; the rest stay new.
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Protocol

from tweetcord.errors import ConfigError, Forbidden, RateLimited, RunFailed, RunTimeout
from tweetcord.models.types import FetchResult, Item, RunOutcome, RunStatus
from tweetcord.processors.diff import compute_new
from tweetcord.publishers.delivery import DeliveryPipeline, DeliveryReport
from tweetcord.storage.watermark import WatermarkStore

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING = "fetching"
    DIFFING = "diffing"
    DELIVERING = "delivering"
    PERSISTING = "persisting"
    ERROR_REPORTING = "error_reporting"
    DONE = "done"


class Source(Protocol):
    def fetch_latest(self, handle: str, max_results: int = 5) -> FetchResult:
        ...


class Notifier(Protocol):
    def send_text(self, text: str) -> None:
        ...


class RunOrchestrator:
    """
    Runs fetch, diff, deliver and persist strictly in order for one account.

    Usage:
        orchestrator = RunOrchestrator(fetcher, store, delivery, "nasa", notifier=publisher)
        outcome = orchestrator.run()

    Overlapping runs are not guarded against; the polling interval is
    expected to be far longer than a single run.
    """

    def __init__(
        self,
        source: Source,
        store: WatermarkStore,
        delivery: DeliveryPipeline,
        account_handle: str,
        *,
        notifier: Notifier | None = None,
        max_results: int = 5,
        run_timeout_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._store = store
        self._delivery = delivery
        self._notifier = notifier
        self.account_handle = (account_handle or "").lstrip("@")
        self.max_results = max_results
        self.run_timeout_seconds = run_timeout_seconds
        self._clock = clock
        self.state = RunState.IDLE

    def _enter(self, state: RunState) -> None:
        logger.debug("Run state %s -> %s", self.state.value, state.value)
        self.state = state

    def _validate(self) -> None:
        if not self.account_handle:
            raise ConfigError("No account handle configured")
        if self.max_results < 1:
            raise ConfigError(f"max_results must be positive, got {self.max_results}")
        if self.run_timeout_seconds <= 0:
            raise ConfigError(f"run_timeout_seconds must be positive, got {self.run_timeout_seconds}")

    def run(self) -> RunOutcome:
        """Execute one polling cycle.

        Returns:
            RunOutcome with status ``ok`` or ``rate_limited``.

        Raises:
            ConfigError: the orchestrator is misconfigured; nothing was fetched.
            RunFailed: the run ended with an ``error`` outcome.
        """
        self._enter(RunState.VALIDATING)
        self._validate()

        logger.info("Starting check for new posts from @%s", self.account_handle)
        deadline = self._clock() + self.run_timeout_seconds

        self._enter(RunState.FETCHING)
        try:
            fetched = self._source.fetch_latest(self.account_handle, self.max_results)
        except RateLimited as exc:
            logger.warning("Rate limit hit, will retry on the next scheduled run: %s", exc)
            return self._finish(
                RunOutcome(
                    status=RunStatus.RATE_LIMITED,
                    message="Rate limit exceeded - will retry on the next scheduled run",
                )
            )
        except Exception as exc:
            raise self._fail(exc) from exc

        if self._clock() > deadline:
            timeout = RunTimeout(f"fetch exceeded the {self.run_timeout_seconds}s run budget")
            raise self._fail(timeout) from timeout

        self._enter(RunState.DIFFING)
        if not fetched.items:
            logger.info("No posts found for @%s", self.account_handle)
            return self._finish(RunOutcome(status=RunStatus.OK, message="No posts found"))

        watermark = self._store.read()
        new_items = compute_new(fetched.items, watermark)
        if not new_items:
            logger.info(
                "No new posts since last check (newest %s, watermark %s)",
                fetched.newest_id,
                watermark or "none",
            )
            return self._finish(
                RunOutcome(
                    status=RunStatus.OK,
                    message="No new posts since last check",
                    newest_item_id=fetched.newest_id,
                )
            )

        logger.info(
            "Found %d new post(s) (watermark %s)", len(new_items), watermark or "none"
        )

        self._enter(RunState.DELIVERING)
        author = fetched.author_for(fetched.account_id, self.account_handle)
        report = self._delivery.deliver_all(new_items, author, fetched.media, deadline=deadline)

        if report.delivered > 0:
            self._enter(RunState.PERSISTING)
            self._store.write(self._settled_id(new_items, report, fetched.newest_id))
        else:
            logger.warning("Nothing delivered, keeping watermark %s", watermark or "none")

        if report.aborted is not None:
            raise self._fail(
                report.aborted,
                items_processed=report.delivered,
                items_failed=report.failed,
                newest_item_id=fetched.newest_id,
                notify=not isinstance(report.aborted, Forbidden),
            ) from report.aborted

        message = f"Processed {report.delivered} new post(s)"
        if report.failed:
            message += f", {report.failed} failed"
        return self._finish(
            RunOutcome(
                status=RunStatus.OK,
                message=message,
                items_processed=report.delivered,
                newest_item_id=fetched.newest_id,
                items_failed=report.failed,
            )
        )

    @staticmethod
    def _settled_id(new_items: list[Item], report: DeliveryReport, newest_id: str | None) -> str | None:
        """Id the watermark may advance to after a batch.

        A full batch settles every fetched post. An aborted one settles only
        the posts before the abort, so the rest are picked up next run; the
        post that hit ``Forbidden`` itself was never accepted.
        """
        if report.aborted is None:
            return newest_id
        settled = report.attempted
        if isinstance(report.aborted, Forbidden):
            settled -= 1
        return new_items[settled - 1].id

    def _finish(self, outcome: RunOutcome) -> RunOutcome:
        self._enter(RunState.DONE)
        logger.info(
            "Check finished: %s (%s, processed=%d)",
            outcome.status.value,
            outcome.message,
            outcome.items_processed,
        )
        return outcome

    def _fail(
        self,
        exc: Exception,
        *,
        items_processed: int = 0,
        items_failed: int = 0,
        newest_item_id: str | None = None,
        notify: bool = True,
    ) -> RunFailed:
        failed_state = self.state
        self._enter(RunState.ERROR_REPORTING)
        logger.error("Run failed while %s: %s", failed_state.value, exc)
        if notify:
            self._notify_error(exc)

        outcome = RunOutcome(
            status=RunStatus.ERROR,
            message=f"{type(exc).__name__}: {exc}",
            items_processed=items_processed,
            newest_item_id=newest_item_id,
            items_failed=items_failed,
        )
        self._enter(RunState.DONE)
        return RunFailed(outcome)

    def _notify_error(self, exc: Exception) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.send_text(f"⚠️ **TweetCord Bot Error**: {exc}")
        except Exception as notify_exc:
            logger.error("Failed to send error notification: %s", notify_exc)
