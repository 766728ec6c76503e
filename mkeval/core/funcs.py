# SPDX-License-Identifier: MIT
"""Built-in make functions.

Each function receives its arguments unevaluated and expands only what
it needs, so ``$(if ...)``, ``$(and ...)`` and ``$(or ...)`` can skip
the branches they don't take.
"""

from __future__ import annotations

import glob
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mkeval.core.errors import SemanticError
from mkeval.core.rule import Pattern
from mkeval.util.strutil import split_spaces

if TYPE_CHECKING:
    from mkeval.core.expr import EvalContext, Value

logger = logging.getLogger(__name__)

FuncImpl = Callable[..., None]


@dataclass(frozen=True)
class Func:
    """A built-in function.

    Attributes:
        impl: Called as ``impl(ctx, out, args)``.
        arity: Maximum argument count; commas in the last argument are
            literal. 0 means variadic.
    """

    impl: FuncImpl
    arity: int


def _strip(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    out.append(" ".join(split_spaces(ctx.expand(args[0]))))


def _subst(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    _require(args, 3, "subst", ctx)
    old, new, text = (ctx.expand(a) for a in args)
    out.append(text.replace(old, new) if old else text)


def _patsubst(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    _require(args, 3, "patsubst", ctx)
    pat, repl, text = (ctx.expand(a) for a in args)
    pattern = Pattern(pat)
    out.append(" ".join(pattern.subst(repl, w) for w in split_spaces(text)))


def _words(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    out.append(str(len(split_spaces(ctx.expand(args[0])))))


def _word(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    _require(args, 2, "word", ctx)
    index_text = ctx.expand(args[0]).strip()
    if not index_text.isdigit() or int(index_text) == 0:
        raise SemanticError(
            f"*** non-numeric or zero first argument to 'word' function: '{index_text}'.",
            ctx.location,
        )
    words = split_spaces(ctx.expand(args[1]))
    index = int(index_text)
    if index <= len(words):
        out.append(words[index - 1])


def _firstword(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    words = split_spaces(ctx.expand(args[0]))
    if words:
        out.append(words[0])


def _if(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    _require(args, 2, "if", ctx)
    if ctx.expand(args[0]).strip():
        args[1].eval(out, ctx)
    elif len(args) > 2:
        args[2].eval(out, ctx)


def _and(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    result = ""
    for arg in args:
        result = ctx.expand(arg).strip()
        if not result:
            return
    out.append(result)


def _or(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    for arg in args:
        result = ctx.expand(arg).strip()
        if result:
            out.append(result)
            return


def _value(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    out.append(ctx.lookup_var(ctx.expand(args[0])).string())


def _call(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    name = ctx.expand(args[0]).strip()
    params = [name] + [ctx.expand(a) for a in args[1:]]
    logger.debug("call %s %r", name, params[1:])
    # No self-reference guard here: a function may call itself through
    # $(call), terminating on its arguments.
    with ctx.params(params):
        ctx.lookup_var(name).eval(out, ctx)


def _wildcard(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    files: list[str] = []
    for pat in split_spaces(ctx.expand(args[0])):
        files.extend(sorted(glob.glob(pat)))
    out.append(" ".join(files))


def _info(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    logger.info("%s", ctx.expand(args[0]))


def _warning(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    logger.warning("%s: %s", ctx.location, ctx.expand(args[0]))


def _error(ctx: EvalContext, out: list[str], args: Sequence[Value]) -> None:
    raise SemanticError(f"*** {ctx.expand(args[0])}.", ctx.location)


def _require(args: Sequence[Value], count: int, name: str, ctx: EvalContext) -> None:
    if len(args) < count:
        raise SemanticError(
            f"*** insufficient number of arguments ({len(args)}) to function '{name}'.",
            ctx.location,
        )


FUNCS: dict[str, Func] = {
    "strip": Func(_strip, 1),
    "subst": Func(_subst, 3),
    "patsubst": Func(_patsubst, 3),
    "words": Func(_words, 1),
    "word": Func(_word, 2),
    "firstword": Func(_firstword, 1),
    "if": Func(_if, 3),
    "and": Func(_and, 0),
    "or": Func(_or, 0),
    "value": Func(_value, 1),
    "call": Func(_call, 0),
    "wildcard": Func(_wildcard, 1),
    "info": Func(_info, 1),
    "warning": Func(_warning, 1),
    "error": Func(_error, 1),
}
