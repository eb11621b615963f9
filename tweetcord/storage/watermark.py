"""Watermark stores: where the id of the last delivered post is kept.

Every store shares the same failure contract. A failed ``read`` is logged
and reported as "no watermark", so the whole fetch window is treated as new
(duplicates after storage loss are accepted over skipped runs). A failed
``write`` is logged and returns ``False`` without failing the run.
"""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class WatermarkStore(ABC):
    """Single-value key/value store for the delivery cursor."""

    name = "watermark"

    @abstractmethod
    def _load(self) -> str | None:
        ...

    @abstractmethod
    def _save(self, item_id: str) -> None:
        ...

    def read(self) -> str | None:
        try:
            value = self._load()
        except Exception as exc:
            logger.warning(
                "Could not read watermark from %s, treating all fetched posts as new: %s",
                self.name,
                exc,
            )
            return None
        value = (value or "").strip()
        return value or None

    def write(self, item_id: str) -> bool:
        try:
            self._save(item_id)
        except Exception as exc:
            logger.error("Could not save watermark %s to %s: %s", item_id, self.name, exc)
            return False
        logger.info("Saved watermark %s to %s", item_id, self.name)
        return True

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class MemoryWatermarkStore(WatermarkStore):
    """Keeps the watermark for the lifetime of the process only."""

    name = "memory"

    def __init__(self, initial: str | None = None) -> None:
        self._value = initial

    def _load(self) -> str | None:
        return self._value

    def _save(self, item_id: str) -> None:
        self._value = item_id


class FileWatermarkStore(WatermarkStore):
    def __init__(self, path: str | os.PathLike = "last_tweet_id.txt") -> None:
        self._path = Path(path)
        self.name = f"file:{self._path}"

    def _load(self) -> str | None:
        if not self._path.exists():
            return None
        return self._path.read_text(encoding="utf-8")

    def _save(self, item_id: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(item_id, encoding="utf-8")
        os.replace(tmp_path, self._path)


class EnvWatermarkStore(WatermarkStore):
    """Seeds the watermark from an environment variable.

    Environment variables cannot be persisted from inside the process, so
    ``write`` only logs the new value and reports it as not saved.
    """

    def __init__(self, env_key: str = "LAST_TWEET_ID") -> None:
        self._env_key = env_key
        self.name = f"env:{env_key}"

    def _load(self) -> str | None:
        return os.getenv(self._env_key)

    def _save(self, item_id: str) -> None:
        raise NotImplementedError(
            f"cannot persist {self._env_key}={item_id}; set it in the environment"
        )
