from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tweetcord.models.types import RunOutcome


class TweetCordError(Exception):
    """Base class for every error raised by the bot."""


class ConfigError(TweetCordError):
    """Required configuration is missing or malformed. No run is attempted."""


class SourceError(TweetCordError):
    """The X API could not return the account's posts."""


class NotFound(SourceError):
    pass


class RateLimited(SourceError):
    """The upstream request budget is exhausted (HTTP 429)."""


class Unauthorized(SourceError):
    pass


class DestinationError(TweetCordError):
    """The chat destination refused or failed to accept a message."""


class Forbidden(DestinationError):
    pass


class PayloadRejected(DestinationError):
    """The destination accepted the request but rejected its body (HTTP 400)."""


class NetworkError(SourceError, DestinationError):
    """Transport failure or upstream 5xx, on either side of the pipeline."""


class RunTimeout(TweetCordError):
    """The run exceeded its wall-clock budget."""


class PartialDeliveryFailure(TweetCordError):
    """A single post could not be delivered. Recorded, never raised out of a batch."""

    def __init__(self, item_id: str, cause: Exception) -> None:
        super().__init__(f"delivery of {item_id} failed: {cause}")
        self.item_id = item_id
        self.cause = cause


class RunFailed(TweetCordError):
    """A run ended with an ``error`` outcome.

    The outcome is attached so callers can log or return it; the triggering
    error is chained as ``__cause__``.
    """

    def __init__(self, outcome: "RunOutcome") -> None:
        super().__init__(outcome.message)
        self.outcome = outcome


TRANSIENT_ERRORS = (NetworkError, RunTimeout)
