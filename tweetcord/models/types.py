from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum


class MediaKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"
    ANIMATED_GIF = "animated_gif"


class RunStatus(str, Enum):
    OK = "ok"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


@dataclass(frozen=True)
class Item:
    """A single post fetched from the tracked account."""

    id: str
    author_id: str
    text: str
    created_at: datetime | None = None
    likes: int = 0
    shares: int = 0
    replies: int = 0
    media_keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class Author:
    """The account that wrote a post, as returned in the fetch side list."""

    id: str
    handle: str
    display_name: str
    verified: bool = False
    avatar_url: str | None = None

    @property
    def profile_url(self) -> str:
        return f"https://x.com/{self.handle}"

    def post_url(self, item_id: str) -> str:
        return f"{self.profile_url}/status/{item_id}"


@dataclass(frozen=True)
class Media:
    """A photo, video or animated image attached to one or more posts."""

    key: str
    kind: MediaKind
    url: str | None = None
    preview_url: str | None = None
    width: int | None = None
    height: int | None = None

    @property
    def display_url(self) -> str | None:
        if self.kind is MediaKind.PHOTO:
            return self.url
        return self.preview_url


@dataclass
class FetchResult:
    """Posts newest-first, exactly as the source returned them, plus side lists."""

    items: list[Item] = field(default_factory=list)
    authors: list[Author] = field(default_factory=list)
    media: list[Media] = field(default_factory=list)
    account_id: str | None = None

    @property
    def newest_id(self) -> str | None:
        return self.items[0].id if self.items else None

    def author_for(self, author_id: str | None, fallback_handle: str) -> Author:
        for author in self.authors:
            if author.id == author_id:
                return author
        return Author(
            id=author_id or "",
            handle=fallback_handle,
            display_name=fallback_handle,
            verified=False,
        )


@dataclass
class RunOutcome:
    """The structured result of one polling cycle."""

    status: RunStatus
    message: str
    items_processed: int = 0
    newest_item_id: str | None = None
    items_failed: int = 0

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.OK

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data
