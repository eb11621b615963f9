from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

from tweetcord.errors import DestinationError, Forbidden, PartialDeliveryFailure, RunTimeout, TweetCordError
from tweetcord.models.types import Author, Item, Media

logger = logging.getLogger(__name__)

DEFAULT_PACING_SECONDS = 1.0


class ItemPublisher(Protocol):
    def send_item(self, item: Item, author: Author, media: Sequence[Media] = ()) -> None:
        ...


@dataclass
class DeliveryReport:
    """What happened to one batch.

    ``aborted`` is set when the batch stopped early because the destination
    refused every post or the run ran out of time.
    """

    attempted: int = 0
    delivered: int = 0
    failures: list[PartialDeliveryFailure] = field(default_factory=list)
    aborted: TweetCordError | None = None

    @property
    def failed(self) -> int:
        return len(self.failures)


class DeliveryPipeline:
    """Sends new posts one at a time, oldest-first, with a pause in between."""

    def __init__(
        self,
        publisher: ItemPublisher,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._publisher = publisher
        self._pacing_seconds = pacing_seconds
        self._sleep = sleep
        self._clock = clock

    def deliver_all(
        self,
        items: Sequence[Item],
        author: Author,
        media: Sequence[Media] = (),
        deadline: float | None = None,
    ) -> DeliveryReport:
        report = DeliveryReport()

        for index, item in enumerate(items):
            if deadline is not None and self._clock() > deadline:
                report.aborted = RunTimeout(
                    f"run budget exhausted after {report.attempted} of {len(items)} posts"
                )
                logger.error("%s", report.aborted)
                break

            if index > 0 and self._pacing_seconds > 0:
                self._sleep(self._pacing_seconds)

            logger.info("Delivering post %s (%d/%d)", item.id, index + 1, len(items))
            report.attempted += 1
            try:
                self._publisher.send_item(item, author, [m for m in media if m.key in item.media_keys])
            except Forbidden as exc:
                report.failures.append(PartialDeliveryFailure(item.id, exc))
                logger.error("Destination refused post %s, stopping batch: %s", item.id, exc)
                report.aborted = exc
                break
            except DestinationError as exc:
                report.failures.append(PartialDeliveryFailure(item.id, exc))
                logger.error("Skipping post %s: %s", item.id, exc)
                continue
            except Exception as exc:
                report.failures.append(PartialDeliveryFailure(item.id, exc))
                logger.exception("Skipping post %s after unexpected error: %s", item.id, exc)
                continue
            report.delivered += 1

        logger.info(
            "Delivered %d of %d posts (%d failed)",
            report.delivered,
            len(items),
            report.failed,
        )
        return report
