# SPDX-License-Identifier: MIT
"""Small text helpers shared by the makefile and rule parsers."""

from __future__ import annotations

# Characters make treats as word separators.
WHITESPACE = " \t\n\r\v\f"

_CLOSERS = {"(": ")", "{": "}"}


def find_top_level(text: str, chars: str, start: int = 0) -> int:
    """Find the first of ``chars`` outside any variable reference.

    ``$(...)`` and ``${...}`` (including nested ones) are skipped, as is
    the escaped dollar ``$$``.

    Returns:
        The index of the match, or -1.
    """
    i = start
    n = len(text)
    while i < n:
        c = text[i]
        if c == "$" and i + 1 < n:
            nc = text[i + 1]
            if nc == "$":
                i += 2
                continue
            if nc in _CLOSERS:
                i = _skip_reference(text, i + 1)
                continue
            i += 2
            continue
        if c in chars:
            return i
        i += 1
    return -1


def _skip_reference(text: str, i: int) -> int:
    """Return the index just past the reference opened at ``text[i]``.

    Only the opener's own bracket kind nests, so ``${a(b}`` ends at ``}``.
    """
    opener = text[i]
    closer = _CLOSERS[opener]
    depth = 1
    i += 1
    n = len(text)
    while i < n:
        c = text[i]
        i += 1
        if c == opener:
            depth += 1
        elif c == closer:
            depth -= 1
            if depth == 0:
                break
    return i


def split_spaces(text: str) -> list[str]:
    """Split on make whitespace, dropping empty words."""
    return text.split()


def strip_comment(line: str) -> str:
    """Remove a trailing ``#`` comment; ``\\#`` is a literal hash."""
    out: list[str] = []
    i = 0
    n = len(line)
    while i < n:
        c = line[i]
        if c == "\\" and i + 1 < n and line[i + 1] == "#":
            out.append("#")
            i += 2
            continue
        if c == "#":
            break
        out.append(c)
        i += 1
    return "".join(out)


def find_comment(line: str) -> int:
    """Index of the first unescaped ``#`` or -1."""
    i = 0
    n = len(line)
    while i < n:
        c = line[i]
        if c == "\\" and i + 1 < n and line[i + 1] == "#":
            i += 2
            continue
        if c == "#":
            return i
        i += 1
    return -1
