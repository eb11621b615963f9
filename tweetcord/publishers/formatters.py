from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from tweetcord.models.types import Author, Item, Media, MediaKind

X_BLUE = 0x1DA1F2
X_ICON_URL = "https://abs.twimg.com/icons/apple-touch-icon-192x192.png"


@dataclass(frozen=True)
class Message:
    """A destination message: plain text plus an optional rich embed."""

    content: str
    embed: dict[str, Any] | None = None


def headline(author: Author) -> str:
    return f"🐦 **New post from @{author.handle}**"


class LinkFormatter:
    """Plain text with the post URL; Discord unfurls the link itself."""

    name = "link"

    def format(self, item: Item, author: Author, media: Sequence[Media] = ()) -> Message:
        return Message(content=f"{headline(author)}\n{author.post_url(item.id)}")


class EmbedFormatter:
    """Rich embed mirroring the post: author line, text, engagement, first media."""

    name = "embed"

    def format(self, item: Item, author: Author, media: Sequence[Media] = ()) -> Message:
        return Message(content=headline(author), embed=self.build_embed(item, author, media))

    def build_embed(self, item: Item, author: Author, media: Sequence[Media] = ()) -> dict[str, Any]:
        name = f"{author.display_name} (@{author.handle})"
        if author.verified:
            name += " ✓"

        embed: dict[str, Any] = {
            "color": X_BLUE,
            "author": {
                "name": name,
                "url": author.profile_url,
                "icon_url": author.avatar_url or X_ICON_URL,
            },
            "description": item.text,
            "fields": [
                {
                    "name": "📊 Engagement",
                    "value": f"👍 {item.likes} | 🔄 {item.shares} | 💬 {item.replies}",
                    "inline": True,
                }
            ],
            "footer": {"text": "X (formerly Twitter)", "icon_url": X_ICON_URL},
            "url": author.post_url(item.id),
        }
        if item.created_at is not None:
            embed["timestamp"] = item.created_at.isoformat()

        attached = [m for m in media if m.key in item.media_keys]
        if attached:
            first = attached[0]
            if first.display_url:
                embed["image"] = {"url": first.display_url}
            if first.kind is not MediaKind.PHOTO and first.preview_url:
                embed["fields"].append(
                    {
                        "name": "🎥 Media",
                        "value": "Video content" if first.kind is MediaKind.VIDEO else "Animated GIF",
                        "inline": True,
                    }
                )
            if len(attached) > 1:
                embed["fields"].append(
                    {
                        "name": "📸 Additional Media",
                        "value": f"{len(attached) - 1} more item(s) - view on X",
                        "inline": True,
                    }
                )
        return embed


FORMATTERS = {
    EmbedFormatter.name: EmbedFormatter,
    LinkFormatter.name: LinkFormatter,
}


def get_formatter(style: str):
    try:
        return FORMATTERS[style]()
    except KeyError:
        raise ValueError(f"Unknown message style {style!r}") from None
