from __future__ import annotations

import logging

import requests
import tweepy
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from tweetcord.errors import NetworkError, NotFound, RateLimited, SourceError, Unauthorized
from tweetcord.models.types import Author, FetchResult, Item, Media, MediaKind

logger = logging.getLogger(__name__)

# The v2 timeline endpoint rejects max_results outside this window.
API_MIN_RESULTS = 5
API_MAX_RESULTS = 100

TWEET_FIELDS = ["created_at", "author_id", "public_metrics", "attachments"]
EXPANSIONS = ["author_id", "attachments.media_keys"]
USER_FIELDS = ["username", "name", "verified", "profile_image_url"]
MEDIA_FIELDS = ["media_key", "type", "url", "preview_image_url", "width", "height"]


def _translate_error(exc: Exception, context: str) -> SourceError:
    if isinstance(exc, tweepy.TooManyRequests):
        logger.error("429 Rate-limit exceeded while %s", context)
        return RateLimited(f"X API rate limit exceeded while {context}")
    if isinstance(exc, (tweepy.Unauthorized, tweepy.Forbidden)):
        logger.error("Unauthorized while %s. Check X_BEARER_TOKEN.", context)
        return Unauthorized(f"X API refused credentials while {context}: {exc}")
    if isinstance(exc, tweepy.NotFound):
        return NotFound(f"X API found nothing while {context}: {exc}")
    if isinstance(exc, tweepy.BadRequest):
        logger.error("X API rejected the request while %s: %s", context, exc)
        return SourceError(f"X API rejected the request while {context}: {exc}")
    logger.error("X API transport error while %s: %s", context, exc)
    return NetworkError(f"X API unreachable while {context}: {exc}")


def _to_item(tweet) -> Item:
    metrics = getattr(tweet, "public_metrics", None) or {}
    attachments = getattr(tweet, "attachments", None) or {}
    return Item(
        id=str(tweet.id),
        author_id=str(getattr(tweet, "author_id", "") or ""),
        text=tweet.text,
        created_at=getattr(tweet, "created_at", None),
        likes=metrics.get("like_count", 0),
        shares=metrics.get("retweet_count", 0),
        replies=metrics.get("reply_count", 0),
        media_keys=tuple(attachments.get("media_keys", ())),
    )


def _to_author(user) -> Author:
    return Author(
        id=str(user.id),
        handle=user.username,
        display_name=getattr(user, "name", None) or user.username,
        verified=bool(getattr(user, "verified", False)),
        avatar_url=getattr(user, "profile_image_url", None),
    )


def _to_media(media) -> Media | None:
    try:
        kind = MediaKind(media.type)
    except ValueError:
        logger.debug("Ignoring media %s of unknown type %r", media.media_key, media.type)
        return None
    return Media(
        key=media.media_key,
        kind=kind,
        url=getattr(media, "url", None),
        preview_url=getattr(media, "preview_image_url", None),
        width=getattr(media, "width", None),
        height=getattr(media, "height", None),
    )


class TwitterFetcher:
    """Reads an account's latest original posts from the X API v2."""

    def __init__(self, bearer_token: str, client: tweepy.Client | None = None) -> None:
        self._client = client or tweepy.Client(bearer_token=bearer_token)
        self._user_ids: dict[str, str] = {}

    def resolve_user_id(self, handle: str) -> str:
        handle = handle.lstrip("@").lower()
        cached = self._user_ids.get(handle)
        if cached is not None:
            return cached

        logger.info("Looking up user id for @%s", handle)
        response = self._call(self._client.get_user, f"looking up @{handle}", username=handle)
        if response.data is None:
            raise NotFound(f"Account @{handle} not found")

        user_id = str(response.data.id)
        self._user_ids[handle] = user_id
        logger.info("Found user id %s for @%s", user_id, handle)
        return user_id

    def fetch_latest(self, handle: str, max_results: int = 5) -> FetchResult:
        user_id = self.resolve_user_id(handle)
        requested = min(max(max_results, API_MIN_RESULTS), API_MAX_RESULTS)

        logger.info("Fetching latest %d posts from @%s", max_results, handle)
        response = self._call(
            self._client.get_users_tweets,
            f"fetching posts from @{handle}",
            id=user_id,
            max_results=requested,
            exclude=["retweets", "replies"],
            tweet_fields=TWEET_FIELDS,
            expansions=EXPANSIONS,
            user_fields=USER_FIELDS,
            media_fields=MEDIA_FIELDS,
        )
        if not response.data:
            logger.info("No posts returned for @%s", handle)
            return FetchResult(account_id=user_id)

        includes = response.includes or {}
        items = [_to_item(tweet) for tweet in response.data][:max_results]
        authors = [_to_author(user) for user in includes.get("users", [])]
        media = [m for m in (_to_media(raw) for raw in includes.get("media", [])) if m is not None]

        logger.info("Fetched %d posts from @%s (newest %s)", len(items), handle, items[0].id)
        return FetchResult(items=items, authors=authors, media=media, account_id=user_id)

    @retry(
        retry=retry_if_exception_type(NetworkError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        reraise=True,
    )
    def _call(self, method, context: str, **kwargs):
        try:
            return method(**kwargs)
        except (tweepy.TweepyException, requests.RequestException) as exc:
            raise _translate_error(exc, context) from exc
