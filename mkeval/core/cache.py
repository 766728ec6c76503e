# SPDX-License-Identifier: MIT
"""Cache of parsed makefiles.

Parsing is pure, so a parsed file can be reused whenever the same bytes
are read again. The cache is keyed by path and remembers the digest of
the bytes it parsed; a lookup with a different digest misses.

One cache may be shared by evaluations running on different threads;
every operation takes the cache lock.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mkeval.core.statements import Makefile

logger = logging.getLogger(__name__)


class MakefileCache:
    """Thread-safe map from path to (digest, parsed makefile)."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[bytes, Makefile]] = {}
        self._lock = threading.Lock()

    def lookup(self, filename: str, digest: bytes | None = None) -> Makefile | None:
        """Return the parsed makefile for ``filename``.

        Args:
            filename: The path as it was included.
            digest: Digest of the bytes just read; if given, an entry
                parsed from different bytes is treated as a miss.
        """
        with self._lock:
            entry = self._entries.get(filename)
        if entry is None:
            return None
        cached_digest, mk = entry
        if digest is not None and digest != cached_digest:
            logger.debug("cache entry for %s is stale", filename)
            return None
        return mk

    def insert(self, filename: str, digest: bytes, makefile: Makefile) -> None:
        with self._lock:
            self._entries[filename] = (digest, makefile)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, filename: object) -> bool:
        with self._lock:
            return filename in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Shared by every evaluation that enables caching without passing its own.
_default_cache = MakefileCache()


def get_default_cache() -> MakefileCache:
    """Get the process-wide makefile cache."""
    return _default_cache
