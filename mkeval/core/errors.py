# SPDX-License-Identifier: MIT
"""Custom exceptions for mkeval.

All mkeval exceptions inherit from MkevalError, which includes
optional source location information for better error messages.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mkeval.util.source_location import SourceLocation


class MkevalError(Exception):
    """Base class for all mkeval exceptions.

    Attributes:
        message: The error message.
        location: Optional source location where the error occurred.
    """

    def __init__(
        self,
        message: str,
        location: SourceLocation | None = None,
    ) -> None:
        self.message = message
        self.location = location
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.location:
            return f"{self.location}: {self.message}"
        return self.message


class ParseError(MkevalError):
    """Malformed expression, makefile or rule text."""


class SemanticError(MkevalError):
    """Well-formed input that cannot be evaluated.

    Raised for empty variable names, commands before the first target,
    self-referencing recursive variables and ``$(error ...)``.
    """


class IncludeError(MkevalError):
    """A required include could not be read.

    Attributes:
        path: The path that failed to read.
    """

    def __init__(
        self,
        path: str,
        reason: str,
        location: SourceLocation | None = None,
    ) -> None:
        self.path = path
        super().__init__(f"{path}: {reason}", location)


class EvalError(MkevalError):
    """Evaluation of a top-level makefile failed.

    Attributes:
        filename: The top-level makefile being evaluated.
        cause: The fatal error that aborted evaluation.
    """

    def __init__(
        self,
        filename: str,
        cause: MkevalError,
        location: SourceLocation | None = None,
    ) -> None:
        self.filename = filename
        self.cause = cause
        super().__init__(cause.message, location or cause.location)

    def _format_message(self) -> str:
        if self.location:
            return f"eval {self.filename}: {self.location}: {self.message}"
        return f"eval {self.filename}: {self.message}"
