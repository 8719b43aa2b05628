"""Key-value store capability shared by the device registry and the credential cache.

Production deployments plug in any durable store that can satisfy
:class:`KeyValueStore`; :class:`MemoryStore` backs the tests and
:class:`JsonFileStore` persists to a single local file.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import tempfile
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyPage:
    """One page of a prefix listing.

    ``cursor`` is ``None`` once the listing is exhausted; otherwise pass it
    back to :meth:`KeyValueStore.list_keys` to fetch the next page.
    """

    keys: list[str]
    cursor: str | None = None


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str, *, ttl: float | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list_keys(self, prefix: str, cursor: str | None = None) -> KeyPage: ...


class MemoryStore:
    """In-process store with lazy TTL expiry and key-based pagination."""

    def __init__(self, *, page_size: int = 1000, clock: Callable[[], float] = time.time) -> None:
        if page_size < 1:
            raise ValueError("page_size must be at least 1.")
        self._page_size = page_size
        self._clock = clock
        # key -> (value, expires_at or None)
        self._data: dict[str, tuple[str, float | None]] = {}

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def put(self, key: str, value: str, *, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self, prefix: str, cursor: str | None = None) -> KeyPage:
        """List live keys starting with *prefix* in sorted order.

        The cursor is the last key of the previous page, so keys deleted
        between calls do not shift later entries out of the scan.
        """
        candidates = sorted(
            k for k in list(self._data) if k.startswith(prefix) and (cursor is None or k > cursor)
        )
        keys: list[str] = []
        for k in candidates:
            if self._live(k) is None:
                continue
            if len(keys) == self._page_size:
                return KeyPage(keys, cursor=keys[-1])
            keys.append(k)
        return KeyPage(keys)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._live(key) is not None


class StoreError(RuntimeError):
    """Raised when a persisted store cannot be read back."""


class JsonFileStore(MemoryStore):
    """:class:`MemoryStore` persisted to a JSON file shared between processes.

    Every operation re-reads the file under an ``flock`` on a sibling
    ``.lock`` file (shared for reads, exclusive for writes), so ``serve`` and
    the CLI can work on one data directory at the same time.  Writes go to a
    ``0o600`` temp file that replaces the live one, since the file holds
    live publisher credentials.
    """

    def __init__(
        self,
        path: Path,
        *,
        page_size: int = 1000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(page_size=page_size, clock=clock)
        self._path = path
        self._lock_path = path.with_name(f"{path.name}.lock")
        with self._locked(fcntl.LOCK_SH):
            self._load()
        logger.debug("Loaded %d keys from %s", len(self._data), path)

    @property
    def path(self) -> Path:
        return self._path

    async def get(self, key: str) -> str | None:
        with self._locked(fcntl.LOCK_SH):
            self._load()
            return await super().get(key)

    async def put(self, key: str, value: str, *, ttl: float | None = None) -> None:
        with self._locked(fcntl.LOCK_EX):
            self._load()
            await super().put(key, value, ttl=ttl)
            self._save()

    async def delete(self, key: str) -> None:
        with self._locked(fcntl.LOCK_EX):
            self._load()
            await super().delete(key)
            self._save()

    async def list_keys(self, prefix: str, cursor: str | None = None) -> KeyPage:
        with self._locked(fcntl.LOCK_SH):
            self._load()
            return await super().list_keys(prefix, cursor)

    @contextlib.contextmanager
    def _locked(self, operation: int) -> Iterator[None]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, operation)
            yield
        finally:
            os.close(fd)

    def _load(self) -> None:
        try:
            raw = json.loads(self._path.read_text())
            data = {k: (str(v["value"]), v.get("expires_at")) for k, v in raw.items()}
        except FileNotFoundError:
            self._data = {}
            return
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise StoreError(f"Store file {self._path} is corrupt: {e}") from e
        self._data = data

    def _save(self) -> None:
        now = self._clock()
        payload = {
            k: {"value": v, "expires_at": exp}
            for k, (v, exp) in self._data.items()
            if exp is None or exp > now
        }
        # mkstemp creates the file with mode 0o600.
        fd, tmp = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp)
            raise
