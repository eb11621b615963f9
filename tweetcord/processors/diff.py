from __future__ import annotations

from typing import Sequence

from tweetcord.models.types import Item


def compute_new(fetched: Sequence[Item], watermark: str | None) -> list[Item]:
    """Return the posts newer than *watermark*, oldest-first.

    *fetched* must be newest-first, as the source returns it. When the
    watermark is absent, or no longer inside the fetched window (the window
    moved past it or the post was deleted), every fetched post counts as new.
    Re-delivering a post is preferred over silently dropping one.
    """
    if not fetched:
        return []

    newer = list(fetched)
    if watermark is not None:
        for position, item in enumerate(fetched):
            if item.id == watermark:
                newer = list(fetched[:position])
                break

    newer.reverse()
    return newer
