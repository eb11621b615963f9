from __future__ import annotations

import logging
from typing import Any, Sequence

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from tweetcord.errors import DestinationError, Forbidden, NetworkError, PayloadRejected
from tweetcord.models.types import Author, Item, Media
from tweetcord.publishers.formatters import EmbedFormatter, LinkFormatter, Message

logger = logging.getLogger(__name__)

_HTTP_HEADERS = {"User-Agent": "TweetCordBot/1.0"}


def _check_response(resp: requests.Response) -> None:
    status = resp.status_code
    if status < 300:
        return
    detail = resp.text[:200]
    if status == 400:
        raise PayloadRejected(f"Discord rejected the message (400): {detail}")
    if status in (401, 403, 404):
        raise Forbidden(f"Discord webhook refused the post ({status}): {detail}")
    if status == 429 or status >= 500:
        raise NetworkError(f"Discord webhook unavailable ({status}): {detail}")
    raise DestinationError(f"Discord webhook error ({status}): {detail}")


class DiscordPublisher:
    """Posts messages to a Discord webhook, optionally inside a thread.

    How a post is rendered is decided by the formatter passed in; with the
    embed formatter a rejected embed is retried once as a plain link.
    """

    def __init__(
        self,
        webhook_url: str,
        thread_id: str | None = None,
        formatter: EmbedFormatter | LinkFormatter | None = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._thread_id = thread_id
        self._formatter = formatter or EmbedFormatter()
        self._fallback = LinkFormatter()

    @retry(
        retry=retry_if_exception_type(NetworkError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def post(self, content: str, embed: dict[str, Any] | None = None) -> None:
        payload: dict[str, Any] = {"content": content}
        if embed:
            payload["embeds"] = [embed]
        params = {"thread_id": self._thread_id} if self._thread_id else None

        try:
            resp = requests.post(
                self._webhook_url,
                json=payload,
                params=params,
                headers=_HTTP_HEADERS,
                timeout=(5, 20),
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Discord webhook unreachable: {exc}") from exc
        _check_response(resp)
        logger.debug("Message sent to Discord: %s", content[:50])

    def send_message(self, message: Message) -> None:
        self.post(message.content, message.embed)

    def send_item(self, item: Item, author: Author, media: Sequence[Media] = ()) -> None:
        message = self._formatter.format(item, author, media)
        try:
            self.send_message(message)
        except PayloadRejected as exc:
            if message.embed is None:
                raise
            logger.warning("Embed for post %s rejected, falling back to link only: %s", item.id, exc)
            self.send_message(self._fallback.format(item, author, media))

    def send_text(self, text: str) -> None:
        self.post(text)
