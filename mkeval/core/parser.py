# SPDX-License-Identifier: MIT
"""Makefile parser.

Turns makefile text into a list of statements. The parser only decides
what it can decide without expanding anything:

- A tab-prefixed line is a command.
- A line whose first top-level separator is ``=`` (or ``:=``) is an
  assignment.
- Any other line is a MaybeRuleStmt; whether it is a rule or a
  target-specific assignment is settled by the evaluator after expansion.

Directives (conditionals, include, define, export) are recognized by
their first word.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from mkeval.core.errors import ParseError
from mkeval.core.statements import (
    AssignStmt,
    CommandStmt,
    ExportStmt,
    IfStmt,
    IncludeStmt,
    Makefile,
    MaybeRuleStmt,
    Statement,
)
from mkeval.util.source_location import SourceLocation
from mkeval.util.strutil import find_comment, find_top_level, strip_comment

_CONDITIONALS = ("ifdef", "ifndef", "ifeq", "ifneq")
_INCLUDES = {"include": "include", "-include": "-include", "sinclude": "-include"}
# Longest first, so "define X :=" is not read as "X :" "=".
_ASSIGN_OPS = ("::=", ":=", "+=", "?=", "=")
_FIRST_WORD = re.compile(r"([^\s(]*)\s*(.*)$", re.DOTALL)


def parse_makefile(data: bytes, filename: str, lineno: int = 1) -> Makefile:
    """Parse the raw bytes of a makefile."""
    text = data.decode("utf-8", errors="surrogateescape")
    return parse_makefile_string(text, filename, lineno)


def parse_makefile_string(text: str, filename: str, lineno: int = 1) -> Makefile:
    """Parse makefile text.

    Args:
        text: The makefile contents.
        filename: Name recorded in statement locations.
        lineno: Line number of the first line of ``text``.

    Raises:
        ParseError: On unbalanced conditionals or defines, or malformed
            conditional operands.
    """
    return _Parser(text, filename, lineno).parse()


@dataclass
class _IfFrame:
    stmt: IfStmt
    in_else: bool = False
    # Opened by "else ifeq ..."; closed by the same endif as its parent.
    chained: bool = False


class _Parser:
    def __init__(self, text: str, filename: str, lineno: int) -> None:
        self.lines = text.replace("\r\n", "\n").split("\n")
        self.filename = filename
        self.first_lineno = lineno
        self.index = 0
        self.mk = Makefile(filename)
        self.stack: list[_IfFrame] = []

    def parse(self) -> Makefile:
        while self.index < len(self.lines):
            lineno = self.first_lineno + self.index
            line = self._read_line()
            self._parse_line(line, SourceLocation(self.filename, lineno))
        if self.stack:
            raise ParseError("*** missing 'endif'.", self.stack[-1].stmt.location)
        return self.mk

    # -------------------------------------------------------------------------
    # Lines
    # -------------------------------------------------------------------------

    def _read_line(self) -> str:
        """Read one logical line, joining backslash continuations."""
        pieces = [self.lines[self.index]]
        self.index += 1
        while _continues(pieces[-1]) and self.index < len(self.lines):
            pieces.append(self.lines[self.index])
            self.index += 1
        if len(pieces) == 1:
            return pieces[0]
        if pieces[0].startswith("\t"):
            # Commands keep the backslash-newline for the shell.
            rest = [p[1:] if p.startswith("\t") else p for p in pieces[1:]]
            return "\n".join([pieces[0]] + rest)
        parts = []
        last = len(pieces) - 1
        for i, piece in enumerate(pieces):
            if i < last:
                piece = piece[:-1].rstrip()
            if i > 0:
                piece = piece.lstrip()
            parts.append(piece)
        return " ".join(parts)

    def _add(self, stmt: Statement) -> None:
        if not self.stack:
            self.mk.stmts.append(stmt)
            return
        frame = self.stack[-1]
        if frame.in_else:
            frame.stmt.false_stmts.append(stmt)
        else:
            frame.stmt.true_stmts.append(stmt)

    def _parse_line(self, line: str, loc: SourceLocation) -> None:
        if line.startswith("\t"):
            word = line.split(None, 1)[0] if line.strip() else ""
            if word not in _CONDITIONALS and word not in ("else", "endif"):
                if line[1:].strip():
                    self._add(CommandStmt(line[1:], loc))
                return

        text = strip_comment(line).strip()
        if not text:
            return
        m = _FIRST_WORD.match(text)
        assert m is not None
        word, rest = m.group(1), m.group(2)

        if word in _CONDITIONALS:
            self._open_if(word, rest, loc, chained=False)
        elif word == "else":
            self._else(rest, loc)
        elif word == "endif":
            if not self.stack:
                raise ParseError("*** extraneous 'endif'.", loc)
            while self.stack.pop().chained:
                pass
        elif _is_directive(word, rest, "define"):
            self._define(rest, loc)
        elif _is_directive(word, rest, "endef"):
            raise ParseError("*** extraneous 'endef'.", loc)
        elif word in _INCLUDES and _is_directive(word, rest, word):
            self._add(IncludeStmt(rest, _INCLUDES[word], loc))
        elif word in ("export", "unexport") and _is_directive(word, rest, word):
            self._export(word == "export", rest, loc)
        elif _is_directive(word, rest, "override"):
            self._parse_line(rest, loc)
        else:
            self._add(self._assign_or_rule(line.lstrip(" "), loc))

    def _assign_or_rule(self, line: str, loc: SourceLocation) -> Statement:
        text = strip_comment(line)
        i = find_top_level(text, ":=")
        if i >= 0 and text[i] == "=":
            start = i
            if i > 0 and text[i - 1] in "+?":
                start -= 1
            return AssignStmt(
                lhs=text[:start].strip(),
                rhs=text[i + 1 :].lstrip(),
                op=text[start : i + 1],
                location=loc,
            )
        if i >= 0:
            for op in ("::=", ":="):
                if text.startswith(op, i):
                    return AssignStmt(
                        lhs=text[:i].strip(),
                        rhs=text[i + len(op) :].lstrip(),
                        op=op,
                        location=loc,
                    )

        # Keep the text after ';' raw: it is a command, '#' included.
        comment = find_comment(line)
        semicolon = find_top_level(line, ";")
        if semicolon >= 0 and (comment < 0 or semicolon < comment):
            head = strip_comment(line[:semicolon])
            expr = head + line[semicolon:]
            semicolon = len(head)
        else:
            expr = text.rstrip()
            semicolon = -1
        equal = find_top_level(expr, "=")
        if semicolon >= 0 and equal > semicolon:
            equal = -1
        return MaybeRuleStmt(expr, equal, semicolon, loc)

    # -------------------------------------------------------------------------
    # Directives
    # -------------------------------------------------------------------------

    def _open_if(self, op: str, rest: str, loc: SourceLocation, chained: bool) -> None:
        if op in ("ifdef", "ifndef"):
            if not rest:
                raise ParseError(f"*** invalid syntax in conditional: '{op}'.", loc)
            stmt = IfStmt(op, rest, "", loc)
        else:
            lhs, rhs = _parse_eq_operands(op, rest, loc)
            stmt = IfStmt(op, lhs, rhs, loc)
        self._add(stmt)
        self.stack.append(_IfFrame(stmt, chained=chained))

    def _else(self, rest: str, loc: SourceLocation) -> None:
        if not self.stack or self.stack[-1].in_else:
            raise ParseError("*** extraneous 'else'.", loc)
        self.stack[-1].in_else = True
        if not rest:
            return
        m = _FIRST_WORD.match(rest)
        assert m is not None
        if m.group(1) not in _CONDITIONALS:
            raise ParseError("*** extraneous text after 'else' directive.", loc)
        self._open_if(m.group(1), m.group(2), loc, chained=True)

    def _define(self, rest: str, loc: SourceLocation) -> None:
        name, op = rest, "="
        for candidate in _ASSIGN_OPS:
            if rest.endswith(candidate):
                name, op = rest[: -len(candidate)].strip(), candidate
                break
        body: list[str] = []
        depth = 1
        while self.index < len(self.lines):
            line = self.lines[self.index]
            self.index += 1
            word = line.strip().split(None, 1)[0] if line.strip() else ""
            if word == "define":
                depth += 1
            elif word == "endef":
                depth -= 1
                if depth == 0:
                    self._add(AssignStmt(name, "\n".join(body), op, loc))
                    return
            body.append(line)
        raise ParseError("*** missing 'endef', unterminated 'define'.", loc)

    def _export(self, export: bool, rest: str, loc: SourceLocation) -> None:
        if export and find_top_level(rest, "=") >= 0:
            stmt = self._assign_or_rule(rest, loc)
            self._add(stmt)
            if isinstance(stmt, AssignStmt):
                self._add(ExportStmt(stmt.lhs, True, loc))
            return
        self._add(ExportStmt(rest, export, loc))


def _continues(line: str) -> bool:
    count = len(line) - len(line.rstrip("\\"))
    return count % 2 == 1


def _is_directive(word: str, rest: str, directive: str) -> bool:
    """True if ``word`` is ``directive`` and the line isn't an assignment or rule."""
    if word != directive:
        return False
    return not (rest.startswith(_ASSIGN_OPS) or rest.startswith(":"))


def _parse_eq_operands(op: str, rest: str, loc: SourceLocation) -> tuple[str, str]:
    """Split ``(a,b)``, ``"a" "b"`` or ``'a' 'b'`` into its two operands."""
    rest = rest.strip()
    if rest.startswith("(") and rest.endswith(")"):
        body = rest[1:-1]
        comma = find_top_level(body, ",")
        if comma >= 0:
            return body[:comma].strip(), body[comma + 1 :].strip()
    elif rest[:1] in ("'", '"'):
        lhs, remainder = _quoted(rest)
        if lhs is not None and remainder[:1] in ("'", '"'):
            rhs, trailing = _quoted(remainder)
            if rhs is not None and not trailing:
                return lhs, rhs
    raise ParseError(f"*** invalid syntax in conditional: '{op} {rest}'.", loc)


def _quoted(text: str) -> tuple[str | None, str]:
    quote = text[0]
    end = text.find(quote, 1)
    if end < 0:
        return None, ""
    return text[1:end], text[end + 1 :].strip()
