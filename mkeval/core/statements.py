# SPDX-License-Identifier: MIT
"""Parsed makefile statements.

Statements keep their text unexpanded; expansion happens when the
evaluator reaches them, so the same parsed file can be evaluated again
(for example from the parse cache) under different variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from mkeval.util.source_location import SourceLocation


class Statement:
    """Base class for parsed statements."""

    location: SourceLocation


@dataclass
class AssignStmt(Statement):
    """``lhs op rhs`` where op is ``=``, ``:=``, ``::=``, ``+=`` or ``?=``."""

    lhs: str
    rhs: str
    op: str
    location: SourceLocation


@dataclass
class MaybeRuleStmt(Statement):
    """A line that is a rule header unless expansion turns it into an assignment.

    Attributes:
        expr: The whole raw line.
        equal_index: Index of the first top-level ``=`` before any ``;``, or -1.
        semicolon_index: Index of the first top-level ``;``, or -1.
    """

    expr: str
    equal_index: int
    semicolon_index: int
    location: SourceLocation


@dataclass
class CommandStmt(Statement):
    """A tab-prefixed line, without its tab."""

    cmd: str
    location: SourceLocation


@dataclass
class IfStmt(Statement):
    """``ifdef``/``ifndef`` (``rhs`` unused) or ``ifeq``/``ifneq``."""

    op: str
    lhs: str
    rhs: str
    location: SourceLocation
    true_stmts: list[Statement] = field(default_factory=list)
    false_stmts: list[Statement] = field(default_factory=list)


@dataclass
class IncludeStmt(Statement):
    """``include`` (required) or ``-include`` (optional)."""

    expr: str
    op: str
    location: SourceLocation

    @property
    def required(self) -> bool:
        return self.op == "include"


@dataclass
class ExportStmt(Statement):
    """``export names`` (``export`` True) or ``unexport names``."""

    expr: str
    export: bool
    location: SourceLocation


@dataclass
class Makefile:
    """One parsed file."""

    filename: str
    stmts: list[Statement] = field(default_factory=list)
