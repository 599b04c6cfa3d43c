"""In-memory artifact store keyed by opaque session ids.

Entries live at most ``ttl_seconds``. The store holds at most
``max_entries`` entries and at most ``max_bytes`` of payload; the oldest
entries are evicted first once either cap is exceeded.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    data: bytes
    content_type: str
    origin: str = ""
    filename: str = ""
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def size(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_type": self.content_type,
            "origin": self.origin,
            "filename": self.filename,
            "created_at": self.created_at,
            "size": self.size,
        }


def new_session_id() -> str:
    return uuid.uuid4().hex


class ArtifactStore:
    def __init__(
        self,
        *,
        max_entries: Optional[int] = 256,
        ttl_seconds: Optional[float] = None,
        max_bytes: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "artifacts",
    ) -> None:
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_bytes is not None and max_bytes <= 0:
            raise ValueError("max_bytes must be > 0")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self.max_bytes = max_bytes
        self.name = name
        self._clock = clock
        self._items: "OrderedDict[str, Tuple[float, Artifact]]" = OrderedDict()
        self._total_bytes = 0
        self._lock = threading.Lock()

    @classmethod
    def from_profile(cls, store_cfg: Dict[str, Any], *, name: str = "artifacts") -> "ArtifactStore":
        max_entries = store_cfg.get("max_entries")
        ttl = store_cfg.get("ttl_seconds")
        max_bytes = store_cfg.get("max_bytes")
        return cls(
            max_entries=int(max_entries) if max_entries is not None else None,
            ttl_seconds=float(ttl) if ttl is not None else None,
            max_bytes=int(max_bytes) if max_bytes is not None else None,
            name=name,
        )

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    def new_id(self) -> str:
        return new_session_id()

    def put(self, key: str, artifact: Artifact) -> None:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            self._remove(key)
            self._items[key] = (now, artifact)
            self._total_bytes += artifact.size
            # The newest entry is always kept, even when it alone exceeds max_bytes.
            while len(self._items) > 1 and self._over_budget():
                evicted, (_, old) = self._items.popitem(last=False)
                self._total_bytes -= old.size
                log.info("%s store full, evicted %s (%d bytes held)", self.name, evicted, self._total_bytes)

    def get(self, key: str) -> Optional[Artifact]:
        now = self._clock()
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return None
            stored_at, artifact = entry
            if self._expired(stored_at, now):
                self._remove(key)
                log.debug("%s entry %s expired", self.name, key)
                return None
            return artifact

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._items)

    def _over_budget(self) -> bool:
        if self.max_entries is not None and len(self._items) > self.max_entries:
            return True
        return self.max_bytes is not None and self._total_bytes > self.max_bytes

    def _remove(self, key: str) -> None:
        entry = self._items.pop(key, None)
        if entry is not None:
            self._total_bytes -= entry[1].size

    def _expired(self, stored_at: float, now: float) -> bool:
        return self.ttl_seconds is not None and (now - stored_at) >= self.ttl_seconds

    def _purge_expired(self, now: float) -> None:
        # Insertion order == age order, so stop at the first live entry.
        if self.ttl_seconds is None:
            return
        while self._items:
            key, (stored_at, _) = next(iter(self._items.items()))
            if not self._expired(stored_at, now):
                break
            self._remove(key)
