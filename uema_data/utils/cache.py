from __future__ import annotations

import asyncio
import hashlib
import json
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable

from uema_data.utils.logging import get_logger
from uema_data.utils.observability import get_metrics

log = get_logger(__name__)

USER_KEY = "uema_user"
AUTHENTICATED_KEY = "uema_authenticated"
CHATS_KEY = "uema_chats"
SESSION_KEYS = (USER_KEY, AUTHENTICATED_KEY, CHATS_KEY)


class CacheError(RuntimeError):
    """Base error for the local cache store."""


class CacheWriteError(CacheError):
    """Raised when a blob cannot be persisted or removed."""


def _key_filename(key: str) -> str:
    safe = re.sub(r"[^a-zA-Z0-9._-]", "_", key.strip() or "blank")
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:8]
    return f"{safe[:40]}_{digest}.json"


def json_loads(value: str | None, default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def json_dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


class LocalCacheStore:
    """Keyed JSON blobs persisted as one file per key under ``root``.

    Reads never raise: an unreadable entry is logged and reported as absent.
    ``set``, ``remove`` and ``update`` raise ``CacheWriteError``. Every operation
    on a key runs under that key's lock, so read-modify-write cycles issued
    through ``update`` cannot interleave.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _path(self, key: str) -> Path:
        return self.root / _key_filename(key)

    def _read_sync(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write_sync(self, key: str, blob: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(blob, encoding="utf-8")
        tmp_path.replace(path)

    def _remove_sync(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def _get_unlocked(self, key: str) -> str | None:
        try:
            return await asyncio.to_thread(self._read_sync, key)
        except (OSError, UnicodeDecodeError) as exc:
            get_metrics().increment_counter("cache_error::read")
            log.warning("cache_read_failed", key=key, error=str(exc))
            return None

    async def _set_unlocked(self, key: str, blob: str) -> None:
        try:
            await asyncio.to_thread(self._write_sync, key, blob)
        except OSError as exc:
            get_metrics().increment_counter("cache_error::write")
            log.error("cache_write_failed", key=key, error=str(exc))
            raise CacheWriteError(f"Unable to persist cache key {key!r}") from exc

    async def get(self, key: str) -> str | None:
        async with self._lock_for(key):
            return await self._get_unlocked(key)

    async def set(self, key: str, blob: str) -> None:
        async with self._lock_for(key):
            await self._set_unlocked(key, blob)

    async def remove(self, keys: Iterable[str]) -> None:
        failed = []
        for key in keys:
            async with self._lock_for(key):
                try:
                    await asyncio.to_thread(self._remove_sync, key)
                except OSError as exc:
                    get_metrics().increment_counter("cache_error::remove")
                    log.error("cache_remove_failed", key=key, error=str(exc))
                    failed.append(key)
        if failed:
            raise CacheWriteError(f"Unable to remove cache keys {failed!r}")

    async def update(
        self,
        key: str,
        mutate: Callable[[str | None], str] | Callable[[str | None], Awaitable[str]],
    ) -> str:
        """Apply ``mutate`` to the current blob and persist the result atomically for this key."""

        async with self._lock_for(key):
            current = await self._get_unlocked(key)
            result = mutate(current)
            if asyncio.iscoroutine(result):
                result = await result
            await self._set_unlocked(key, result)
            return result

    async def get_json(self, key: str, default: Any = None) -> Any:
        return json_loads(await self.get(key), default)

    async def set_json(self, key: str, value: Any) -> None:
        await self.set(key, json_dumps(value))

    async def initialize(self) -> None:
        """Seed the chat list with an empty sequence once per process."""

        if self._initialized:
            return
        async with self._lock_for(CHATS_KEY):
            if await self._get_unlocked(CHATS_KEY) is None:
                try:
                    await self._set_unlocked(CHATS_KEY, json_dumps([]))
                except CacheWriteError:
                    # retried on the next call
                    return
                log.info("cache_chats_seeded", root=str(self.root))
        self._initialized = True

    async def clear_session(self) -> None:
        await self.remove(SESSION_KEYS)
