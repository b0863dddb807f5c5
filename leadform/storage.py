from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from .logging import get_logger

logger = get_logger(__name__)


class LocalStorage:
    """Client-local string key/value store, modelled on the browser's localStorage."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> Iterator[str]:
        raise NotImplementedError


class MemoryStorage(LocalStorage):
    """Process-local storage; nothing survives the interpreter."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._items))


class JsonFileStorage(LocalStorage):
    """Single JSON file holding every key. Each write is flushed to disk before returning."""

    def __init__(self, path: Union[str, os.PathLike[str]]):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with self.path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
            return {str(key): str(value) for key, value in raw.items()}
        except (json.JSONDecodeError, AttributeError, ValueError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, exc)
            return {}

    def _write(self, items: Dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(items, fh, ensure_ascii=False, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = str(value)
        self._write(items)
        logger.debug("Stored %s=%s in %s", key, value, self.path)

    def remove_item(self, key: str) -> None:
        items = self._read()
        if key in items:
            del items[key]
            self._write(items)

    def keys(self) -> Iterator[str]:
        return iter(list(self._read()))
