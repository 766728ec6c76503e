# SPDX-License-Identifier: MIT
"""Consistency tracking for makefiles read during one evaluation.

Every include is recorded with the hash of what was read (or the fact
that it was missing). Reading the same path again with a different
outcome marks it INCONSISTENT: the file changed while we were
evaluating, so a cached result built from it can't be trusted.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mkeval.util.source_location import SourceLocation

logger = logging.getLogger(__name__)

# Digest recorded for files that could not be read.
MISSING_DIGEST = hashlib.sha1(b"").digest()


class FileState(IntEnum):
    EXISTS = 0
    NOT_EXISTS = 1
    # Modified while the evaluation was running.
    INCONSISTENT = 2


@dataclass
class ReadMakefile:
    """What was seen the first time a makefile was read.

    Attributes:
        filename: The path as it was included.
        hash: SHA-1 digest of the contents.
        state: Consistency state; INCONSISTENT is final.
    """

    filename: str
    hash: bytes
    state: FileState


def digest(content: bytes) -> bytes:
    """SHA-1 digest used both for tracking and for parse-cache validity."""
    return hashlib.sha1(content).digest()


class ReadFileTracker:
    """Per-path state machine over EXISTS, NOT_EXISTS and INCONSISTENT.

    A disabled tracker (caching off) ignores every update.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._files: dict[str, ReadMakefile] = {}

    def update(
        self,
        filename: str,
        file_hash: bytes,
        state: FileState,
        location: SourceLocation | None = None,
    ) -> None:
        """Record one read of ``filename``.

        Args:
            filename: The path that was read.
            file_hash: Digest of the bytes read (MISSING_DIGEST if missing).
            state: EXISTS or NOT_EXISTS for this read.
            location: The include that caused the read, for warnings.
        """
        if not self.enabled:
            return

        rm = self._files.get(filename)
        if rm is None:
            self._files[filename] = ReadMakefile(filename, file_hash, state)
            return

        if rm.state == FileState.EXISTS:
            if state != FileState.EXISTS:
                self._warn(location, "%s was removed after the previous read", filename)
                rm.state = FileState.INCONSISTENT
            elif file_hash != rm.hash:
                self._warn(location, "%s was modified after the previous read", filename)
                rm.state = FileState.INCONSISTENT
        elif rm.state == FileState.NOT_EXISTS:
            if state != FileState.NOT_EXISTS:
                self._warn(location, "%s was created after the previous read", filename)
                rm.state = FileState.INCONSISTENT

    def get(self, filename: str) -> ReadMakefile | None:
        return self._files.get(filename)

    def records(self) -> list[ReadMakefile]:
        return list(self._files.values())

    def __len__(self) -> int:
        return len(self._files)

    @staticmethod
    def _warn(location: SourceLocation | None, fmt: str, filename: str) -> None:
        if location is not None:
            logger.warning("%s: " + fmt, location, filename)
        else:
            logger.warning(fmt, filename)
