# SPDX-License-Identifier: MIT
"""Source locations for statements, rules and diagnostics."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SourceLocation:
    """A position in a makefile.

    Attributes:
        filename: Path of the makefile as it was read.
        lineno: 1-based line number (0 when unknown).
    """

    filename: str
    lineno: int = 0

    def __str__(self) -> str:
        if self.lineno:
            return f"{self.filename}:{self.lineno}"
        return self.filename
