# SPDX-License-Identifier: MIT
"""Variable bindings and tables.

A variable has a flavor that decides how it expands:

- RECURSIVE (``=``): holds an expression tree, re-expanded on every use
- SIMPLE (``:=``): holds text that was expanded once, at assignment
- TARGET_SPECIFIC: wraps another binding plus the operator that made it,
  for the rule stage to re-apply per target
- UNDEFINED: the sentinel for names that were never assigned

The flavor is fixed when a binding is created; ``+=`` keeps it.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from mkeval.core.expr import Concat, Literal, Value, parse_expr

if TYPE_CHECKING:
    from mkeval.core.expr import EvalContext


class Flavor(Enum):
    UNDEFINED = "undefined"
    RECURSIVE = "recursive"
    SIMPLE = "simple"
    TARGET_SPECIFIC = "target-specific"


@dataclass(frozen=True)
class Var:
    """One variable binding.

    Attributes:
        flavor: How the binding expands.
        text: The expanded text (SIMPLE) or the source text (RECURSIVE).
        expr: The expression tree of a RECURSIVE binding.
        base: The wrapped binding of a TARGET_SPECIFIC one.
        op: The assignment operator of a TARGET_SPECIFIC binding.
    """

    flavor: Flavor
    text: str = ""
    expr: Value | None = None
    base: Var | None = None
    op: str = ""

    @classmethod
    def simple(cls, text: str) -> Var:
        return cls(Flavor.SIMPLE, text=text)

    @classmethod
    def recursive(cls, expr: Value, text: str) -> Var:
        return cls(Flavor.RECURSIVE, text=text, expr=expr)

    @classmethod
    def target_specific(cls, base: Var, op: str) -> Var:
        return cls(Flavor.TARGET_SPECIFIC, base=base, op=op)

    def is_defined(self) -> bool:
        if self.flavor is Flavor.TARGET_SPECIFIC:
            assert self.base is not None
            return self.base.is_defined()
        return self.flavor is not Flavor.UNDEFINED

    def is_recursive(self) -> bool:
        if self.flavor is Flavor.TARGET_SPECIFIC:
            assert self.base is not None
            return self.base.is_recursive()
        return self.flavor is Flavor.RECURSIVE

    def eval(self, out: list[str], ctx: EvalContext) -> None:
        flavor = self.flavor
        if flavor is Flavor.SIMPLE:
            if self.text:
                out.append(self.text)
        elif flavor is Flavor.RECURSIVE:
            assert self.expr is not None
            self.expr.eval(out, ctx)
        elif flavor is Flavor.TARGET_SPECIFIC:
            assert self.base is not None
            self.base.eval(out, ctx)

    def string(self) -> str:
        """The unexpanded value, as ``$(value NAME)`` reports it."""
        if self.flavor is Flavor.TARGET_SPECIFIC:
            assert self.base is not None
            return self.base.string()
        return self.text

    def append(self, ctx: EvalContext, rhs: str) -> Var:
        """Return the binding that ``NAME += rhs`` produces.

        SIMPLE bindings expand ``rhs`` now and stay SIMPLE. RECURSIVE and
        UNDEFINED bindings join the unexpanded trees, so the result is
        re-expanded as a whole on each use.
        """
        flavor = self.flavor
        if flavor is Flavor.TARGET_SPECIFIC:
            assert self.base is not None
            return Var.target_specific(self.base.append(ctx, rhs), self.op)
        value, _ = parse_expr(rhs)
        if flavor is Flavor.SIMPLE:
            return Var.simple(self.text + " " + ctx.expand(value))
        old = self.expr if self.expr is not None else Literal("")
        return Var.recursive(
            Concat((old, Literal(" "), value)),
            self.text + " " + rhs,
        )

    def __repr__(self) -> str:
        if self.flavor is Flavor.TARGET_SPECIFIC:
            return f"Var({self.flavor.value}, {self.op!r}, {self.base!r})"
        return f"Var({self.flavor.value}, {self.text!r})"


UNDEFINED = Var(Flavor.UNDEFINED)


class Vars:
    """A table of variable bindings.

    The table itself has no scoping; which tables are consulted, and in
    what order, is up to the evaluator.
    """

    def __init__(self, data: dict[str, Var] | None = None) -> None:
        self._data: dict[str, Var] = dict(data) if data else {}

    def lookup(self, name: str) -> Var:
        """Return the binding for ``name``, or UNDEFINED."""
        return self._data.get(name, UNDEFINED)

    def assign(self, name: str, var: Var) -> None:
        self._data[name] = var

    def copy(self) -> Vars:
        return Vars(self._data)

    def items(self) -> Iterator[tuple[str, Var]]:
        return iter(self._data.items())

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Vars({self._data!r})"


def eval_rhs(ctx: EvalContext, current: Var, op: str, rhs: str) -> Var:
    """Build the binding an assignment produces.

    Args:
        ctx: Context to expand ``:=`` and ``+=`` right-hand sides against.
        current: The binding the name has in the scope being assigned into.
        op: One of ``=``, ``:=``, ``::=``, ``+=``, ``?=``.
        rhs: The unexpanded right-hand side.
    """
    if op in (":=", "::="):
        value, _ = parse_expr(rhs)
        return Var.simple(ctx.expand(value))
    if op == "+=":
        return current.append(ctx, rhs)
    if op == "?=" and current.is_defined():
        return current
    value, _ = parse_expr(rhs)
    return Var.recursive(value, rhs)
