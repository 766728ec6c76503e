# SPDX-License-Identifier: MIT
"""Expression values and the expression parser.

Make text is parsed once into an immutable tree of values:

- Literal text: ``foo``, and ``$$`` which becomes a literal ``$``
- Variable references: ``$(NAME)``, ``${NAME}``, ``$X``, ``$($(NAME))``
- Positional parameters: ``$1``, ``$(12)`` (``$0`` is the called name)
- Substitution references: ``$(NAME:.c=.o)``, ``$(NAME:%.c=%.o)``
- Function calls: ``$(subst a,b,text)``; arguments stay unevaluated
- Concatenations of the above

Evaluating a value appends its expansion to a ``list[str]`` sink. Values
hold no state, so a recursive variable's tree can be evaluated any number
of times against a changing context.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from mkeval.core import funcs
from mkeval.core.errors import ParseError
from mkeval.core.rule import Pattern
from mkeval.util.strutil import split_spaces

if TYPE_CHECKING:
    from mkeval.core.vars import Var
    from mkeval.util.source_location import SourceLocation


class EvalContext(Protocol):
    """What a value needs from the evaluator it is expanded against."""

    location: SourceLocation

    def lookup_var(self, name: str) -> Var: ...

    def param(self, index: int) -> str: ...

    def params(self, values: Sequence[str]) -> AbstractContextManager[None]: ...

    def expand(self, value: Value) -> str: ...

    def expanding(self, name: str) -> AbstractContextManager[None]: ...


class Value:
    """Base class for expression nodes."""

    __slots__ = ()

    def eval(self, out: list[str], ctx: EvalContext) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Value):
    text: str

    def eval(self, out: list[str], ctx: EvalContext) -> None:
        if self.text:
            out.append(self.text)


@dataclass(frozen=True)
class VarRef(Value):
    """Reference to a variable; ``name`` is computed when not a plain string."""

    name: str | Value

    def eval(self, out: list[str], ctx: EvalContext) -> None:
        name = self.name if isinstance(self.name, str) else ctx.expand(self.name)
        var = ctx.lookup_var(name)
        if var.is_recursive():
            with ctx.expanding(name):
                var.eval(out, ctx)
        else:
            var.eval(out, ctx)


@dataclass(frozen=True)
class ParamRef(Value):
    index: int

    def eval(self, out: list[str], ctx: EvalContext) -> None:
        value = ctx.param(self.index)
        if value:
            out.append(value)


@dataclass(frozen=True)
class VarSubst(Value):
    """``$(name:pat=repl)``, applied word by word."""

    name: str | Value
    pat: Value
    repl: Value

    def eval(self, out: list[str], ctx: EvalContext) -> None:
        text = ctx.expand(VarRef(self.name))
        pat = ctx.expand(self.pat)
        repl = ctx.expand(self.repl)
        if "%" not in pat:
            pat = "%" + pat
            repl = "%" + repl
        pattern = Pattern(pat)
        out.append(" ".join(pattern.subst(repl, w) for w in split_spaces(text)))


@dataclass(frozen=True)
class FuncCall(Value):
    name: str
    args: tuple[Value, ...]

    def eval(self, out: list[str], ctx: EvalContext) -> None:
        funcs.FUNCS[self.name].impl(ctx, out, self.args)


@dataclass(frozen=True)
class Concat(Value):
    parts: tuple[Value, ...]

    def eval(self, out: list[str], ctx: EvalContext) -> None:
        for part in self.parts:
            part.eval(out, ctx)


def concat(parts: Sequence[Value]) -> Value:
    """Build the smallest value equivalent to ``parts`` in sequence."""
    if not parts:
        return Literal("")
    if len(parts) == 1:
        return parts[0]
    return Concat(tuple(parts))


# =============================================================================
# Parsing
# =============================================================================

_FUNC_NAME = re.compile(r"[a-z][a-z0-9-]*")
_CLOSERS = {"(": ")", "{": "}"}
_OPENERS = {")": "(", "}": "{"}


def parse_expr(text: str, terminators: str = "") -> tuple[Value, int]:
    """Parse make text into a value.

    Args:
        text: The raw text.
        terminators: Characters that end the expression when they appear
            outside a reference and outside balanced parentheses.

    Returns:
        The parsed value and the number of characters consumed (the index
        of the terminator, or ``len(text)``).

    Raises:
        ParseError: On an unterminated reference or function call.
    """
    return _ExprParser(text).parse(0, terminators)


class _ExprParser:
    def __init__(self, text: str) -> None:
        self.text = text

    def parse(self, i: int, terms: str, close: str = "") -> tuple[Value, int]:
        """Parse up to a top-level terminator.

        Inside a reference closed by ``close`` only that bracket kind
        nests; elsewhere both kinds do.
        """
        text = self.text
        n = len(text)
        parts: list[Value] = []
        lit: list[str] = []
        if close:
            openers, closers = _OPENERS[close], close
        else:
            openers, closers = "({", ")}"
        depth = 0
        while i < n:
            c = text[i]
            if depth == 0 and c in terms:
                break
            if c == "$":
                if i + 1 >= n:
                    lit.append(c)
                    i += 1
                    continue
                nc = text[i + 1]
                if nc == "$":
                    lit.append("$")
                    i += 2
                    continue
                if lit:
                    parts.append(Literal("".join(lit)))
                    lit = []
                if nc in _CLOSERS:
                    node, i = self._parse_reference(i + 1)
                else:
                    node = ParamRef(int(nc)) if nc.isdigit() else VarRef(nc)
                    i += 2
                parts.append(node)
                continue
            if terms:
                if c in openers:
                    depth += 1
                elif depth and c in closers:
                    depth -= 1
            lit.append(c)
            i += 1
        if lit:
            parts.append(Literal("".join(lit)))
        return concat(parts), i

    def _parse_reference(self, i: int) -> tuple[Value, int]:
        """Parse the reference whose opening paren/brace is at ``i``."""
        text = self.text
        n = len(text)
        close = _CLOSERS[text[i]]
        start = i + 1

        m = _FUNC_NAME.match(text, start)
        if (
            m is not None
            and m.group() in funcs.FUNCS
            and m.end() < n
            and text[m.end()] in " \t"
        ):
            return self._parse_function(m.group(), m.end(), close)

        name, k = self.parse(start, ":" + close, close)
        if k >= n:
            raise ParseError("*** unterminated variable reference.")
        if text[k] == close:
            if isinstance(name, Literal) and name.text.isdigit():
                return ParamRef(int(name.text)), k + 1
            return VarRef(_as_name(name)), k + 1

        pat, k = self.parse(k + 1, "=" + close, close)
        if k >= n:
            raise ParseError("*** unterminated variable reference.")
        if text[k] == close:
            # No '=', so the colon belongs to the name.
            if isinstance(name, Literal) and isinstance(pat, Literal):
                return VarRef(f"{name.text}:{pat.text}"), k + 1
            return VarRef(concat([name, Literal(":"), pat])), k + 1

        repl, k = self.parse(k + 1, close, close)
        if k >= n:
            raise ParseError("*** unterminated variable reference.")
        return VarSubst(_as_name(name), pat, repl), k + 1

    def _parse_function(self, name: str, i: int, close: str) -> tuple[Value, int]:
        text = self.text
        n = len(text)
        arity = funcs.FUNCS[name].arity
        while i < n and text[i] in " \t":
            i += 1
        args: list[Value] = []
        while True:
            # The last argument of a fixed-arity function keeps its commas.
            if arity and len(args) == arity - 1:
                terms = close
            else:
                terms = "," + close
            arg, i = self.parse(i, terms, close)
            args.append(arg)
            if i >= n:
                raise ParseError(
                    f"*** unterminated call to function '{name}': missing '{close}'."
                )
            if text[i] == close:
                return FuncCall(name, tuple(args)), i + 1
            i += 1


def _as_name(value: Value) -> str | Value:
    if isinstance(value, Literal):
        return value.text
    return value
