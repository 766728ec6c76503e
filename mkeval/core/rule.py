# SPDX-License-Identifier: MIT
"""Build rules and the rule-line parser.

A rule line has already been expanded by the time it reaches
``Rule.parse``; the parser only splits it into outputs, output patterns
and inputs, or reports the target-specific assignment it carries.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from mkeval.core.errors import ParseError
from mkeval.util.source_location import SourceLocation
from mkeval.util.strutil import split_spaces


@dataclass(frozen=True)
class Pattern:
    """A word pattern with at most one ``%`` wildcard.

    Example:
        Pattern("%.o").match("foo.o")          # "foo"
        Pattern("%.c").subst("%.o", "a.c")     # "a.o"
    """

    text: str

    def is_pattern(self) -> bool:
        return "%" in self.text

    def match(self, word: str) -> str | None:
        """Return the stem matched by ``%``, or None if ``word`` doesn't match.

        A pattern without ``%`` matches only itself, with an empty stem.
        """
        index = self.text.find("%")
        if index < 0:
            return "" if word == self.text else None
        prefix = self.text[:index]
        suffix = self.text[index + 1 :]
        if len(word) < len(prefix) + len(suffix):
            return None
        if not word.startswith(prefix) or not word.endswith(suffix):
            return None
        return word[len(prefix) : len(word) - len(suffix)]

    def subst(self, repl: str, word: str) -> str:
        """Rewrite ``word`` through ``repl`` if it matches, else return it."""
        stem = self.match(word)
        if stem is None:
            return word
        if "%" in repl:
            return repl.replace("%", stem, 1)
        return repl

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class RuleAssign:
    """A target-specific assignment found on a rule line (``out: VAR op value``)."""

    lhs: str
    rhs: str
    op: str


@dataclass
class Rule:
    """One build rule.

    Attributes:
        outputs: Literal output names.
        output_patterns: Output patterns (``%.o``); for a static pattern
            rule, the target pattern.
        inputs: Prerequisites.
        order_only_inputs: Prerequisites after ``|``.
        cmds: Unexpanded command lines, in order.
        location: Where the rule header was written.
        cmd_lineno: Line number of the first command (0 if none).
        is_double_colon: True for ``out:: in`` rules.
    """

    location: SourceLocation | None = None
    outputs: list[str] = field(default_factory=list)
    output_patterns: list[Pattern] = field(default_factory=list)
    inputs: list[str] = field(default_factory=list)
    order_only_inputs: list[str] = field(default_factory=list)
    cmds: list[str] = field(default_factory=list)
    cmd_lineno: int = 0
    is_double_colon: bool = False

    def parse(self, line: str) -> RuleAssign | None:
        """Fill this rule from an expanded rule line.

        Returns:
            The target-specific assignment if the line is one, else None.

        Raises:
            ParseError: If the line is not a valid rule line.
        """
        index = line.find(":")
        if index < 0:
            raise ParseError("*** missing separator.", self.location)

        first = line[:index]
        words = split_spaces(first)
        if any("%" in w for w in words):
            if len(words) != 1:
                raise ParseError(
                    "*** mixed implicit and normal rules: deprecated syntax",
                    self.location,
                )
            self.output_patterns = [Pattern(words[0])]
        else:
            self.outputs = words

        index += 1
        if index < len(line) and line[index] == ":":
            self.is_double_colon = True
            index += 1

        rest = line[index:]
        assign = _parse_assign(rest)
        if assign is not None:
            return assign

        index = rest.find(":")
        if index < 0:
            self._parse_inputs(rest)
            return None

        # Static pattern rule: outputs: target-pattern: prereq-patterns
        if self.output_patterns:
            raise ParseError(
                "*** mixed implicit and normal rules: deprecated syntax",
                self.location,
            )
        target_patterns = split_spaces(rest[:index])
        if len(target_patterns) != 1:
            raise ParseError("*** multiple target patterns.", self.location)
        self.output_patterns = [Pattern(target_patterns[0])]
        self._parse_inputs(rest[index + 1 :])
        return None

    def _parse_inputs(self, text: str) -> None:
        normal, bar, order_only = text.partition("|")
        self.inputs = split_spaces(normal)
        if bar:
            self.order_only_inputs = split_spaces(order_only)

    def header(self) -> str:
        """Render the rule header the way it would appear in a makefile."""
        outs = self.outputs + [str(p) for p in self.output_patterns]
        sep = "::" if self.is_double_colon else ":"
        line = " ".join(outs) + sep
        if self.inputs:
            line += " " + " ".join(self.inputs)
        if self.order_only_inputs:
            line += " | " + " ".join(self.order_only_inputs)
        return line


def _parse_assign(text: str) -> RuleAssign | None:
    index = text.find("=")
    if index < 0:
        return None
    start = index
    if text[:index].endswith("::"):
        op = ":="
        start -= 2
    elif index > 0 and text[index - 1] in ":+?":
        op = text[index - 1] + "="
        start -= 1
    else:
        op = "="
    return RuleAssign(
        lhs=text[:start].strip(),
        rhs=text[index + 1 :].lstrip(),
        op=op,
    )
