# SPDX-License-Identifier: MIT
"""Makefile evaluator.

The evaluator walks parsed statements in source order and builds up:

- the variables assigned by this run (on top of inherited ones)
- the rules, with their commands
- target-specific variables, per output name or pattern
- the export/unexport table
- consistency records for every included makefile

Includes are evaluated in the same Evaluator, so everything they define
lands in the one result. ``evaluate()`` is the only place errors are
caught: any fatal MkevalError raised during the walk becomes an
EvalError for the top-level file.
"""

from __future__ import annotations

import glob
import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

from mkeval.core.cache import MakefileCache
from mkeval.core.errors import (
    EvalError,
    IncludeError,
    MkevalError,
    ParseError,
    SemanticError,
)
from mkeval.core.expr import Literal, Value, VarRef, parse_expr
from mkeval.core.options import EvalOptions
from mkeval.core.parser import parse_makefile, parse_makefile_string
from mkeval.core.readfiles import (
    MISSING_DIGEST,
    FileState,
    ReadFileTracker,
    ReadMakefile,
    digest,
)
from mkeval.core.rule import Rule, RuleAssign
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
from mkeval.core.vars import Flavor, Var, Vars, eval_rhs
from mkeval.util.source_location import SourceLocation
from mkeval.util.strutil import split_spaces

logger = logging.getLogger(__name__)

MAKEFILE_LIST = "MAKEFILE_LIST"

_GLOB_CHARS = "*?["


@dataclass(frozen=True)
class EvalResult:
    """Everything one evaluation produced.

    Attributes:
        vars: Variables assigned by this run (inherited ones excluded
            unless reassigned).
        rules: Rules in the order they were defined.
        rule_vars: Target-specific variables, keyed by output name or
            output pattern.
        read_makefiles: Consistency records of included makefiles (empty
            when caching is off).
        exports: Exported (True) and unexported (False) names.
    """

    vars: Vars
    rules: tuple[Rule, ...]
    rule_vars: Mapping[str, Vars]
    read_makefiles: tuple[ReadMakefile, ...]
    exports: Mapping[str, bool]

    def expand_var(self, name: str, inherited: Vars | None = None) -> str:
        """Expand ``name`` as it stands at the end of the evaluation.

        Raises:
            SemanticError: If the expansion itself fails.
        """
        ev = Evaluator(inherited)
        ev.out_vars = self.vars
        try:
            return ev.evaluate_var(name)
        except RecursionError as e:
            raise SemanticError("*** recursion too deep.", ev.location) from e


class Evaluator:
    """State of one evaluation run.

    Values are expanded against the evaluator, so it also implements the
    expression context: variable lookup, positional parameters, scratch
    buffers and the self-reference guard.

    Attributes:
        inherited: Variables visible to the run but never modified by it.
        out_vars: Variables assigned by this run.
        out_rules: Rules defined so far.
        out_rule_vars: Target-specific variables per output.
        current_scope: The target-specific table being assigned into, only
            set while a target-specific assignment is evaluated.
        last_rule: The rule commands attach to; cleared by any statement
            that is not a command.
        read_makefiles: Consistency tracker for includes.
        exports: Export flags by name.
        location: The statement being evaluated, for diagnostics.
    """

    def __init__(
        self,
        inherited: Vars | None = None,
        options: EvalOptions | None = None,
    ) -> None:
        self.options = options or EvalOptions()
        self.inherited = inherited if inherited is not None else Vars()
        self.out_vars = Vars()
        self.out_rules: list[Rule] = []
        self.out_rule_vars: dict[str, Vars] = {}
        self.current_scope: Vars | None = None
        self.last_rule: Rule | None = None
        self.read_makefiles = ReadFileTracker(enabled=self.options.use_cache)
        self.exports: dict[str, bool] = {}
        self.location = SourceLocation("")
        self._cache = self.options.get_cache()
        self._param_vars: list[str] = []
        self._expanding: set[str] = set()
        self._buffers: list[list[str]] = []
        self._handlers: dict[type, Callable[[Any], None]] = {
            AssignStmt: self._eval_assign,
            MaybeRuleStmt: self._eval_maybe_rule,
            CommandStmt: self._eval_command,
            IfStmt: self._eval_if,
            IncludeStmt: self._eval_include,
            ExportStmt: self._eval_export,
        }

    # -------------------------------------------------------------------------
    # Expression context
    # -------------------------------------------------------------------------

    def lookup_var(self, name: str) -> Var:
        """Look up ``name``: current target scope, this run, then inherited."""
        if self.current_scope is not None:
            var = self.current_scope.lookup(name)
            if var.is_defined():
                return var
        var = self.out_vars.lookup(name)
        if var.is_defined():
            return var
        return self.inherited.lookup(name)

    def lookup_var_in_current_scope(self, name: str) -> Var:
        """Look up ``name`` in the scope an assignment would write to."""
        if self.current_scope is not None:
            return self.current_scope.lookup(name)
        var = self.out_vars.lookup(name)
        if var.is_defined():
            return var
        return self.inherited.lookup(name)

    def param(self, index: int) -> str:
        if index < len(self._param_vars):
            return self._param_vars[index]
        return ""

    @contextmanager
    def params(self, values: Sequence[str]) -> Iterator[None]:
        """Bind ``$0``, ``$1``... for the duration of a ``$(call)``."""
        saved = self._param_vars
        self._param_vars = list(values)
        try:
            yield
        finally:
            self._param_vars = saved

    @contextmanager
    def scratch(self) -> Iterator[list[str]]:
        """Borrow an empty output buffer; it is returned even on errors."""
        buf = self._buffers.pop() if self._buffers else []
        try:
            yield buf
        finally:
            buf.clear()
            self._buffers.append(buf)

    def expand(self, value: Value) -> str:
        with self.scratch() as buf:
            value.eval(buf, self)
            return "".join(buf)

    @contextmanager
    def expanding(self, name: str) -> Iterator[None]:
        """Guard the expansion of recursive variable ``name``."""
        if name in self._expanding:
            raise SemanticError(
                f"*** Recursive variable '{name}' references itself (eventually).",
                self.location,
            )
        self._expanding.add(name)
        try:
            yield
        finally:
            self._expanding.discard(name)

    def evaluate_var(self, name: str) -> str:
        """Expand variable ``name`` in the current context."""
        return self.expand(VarRef(name))

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def eval_makefile(self, mk: Makefile) -> None:
        for stmt in mk.stmts:
            self.eval_statement(stmt)

    def eval_statement(self, stmt: Statement) -> None:
        handler = self._handlers.get(type(stmt))
        if handler is None:
            raise TypeError(f"unknown statement: {stmt!r}")
        handler(stmt)

    def _parse(self, text: str) -> Value:
        value, _ = parse_expr(text)
        return value

    def _eval_assign(self, stmt: AssignStmt) -> None:
        self.last_rule = None
        lhs, rhs = self._eval_assign_ast(stmt.lhs, stmt.op, stmt.rhs, stmt.location)
        logger.debug("ASSIGN: %s=%r (flavor:%s)", lhs, rhs.string(), rhs.flavor.value)
        if not lhs:
            raise SemanticError("*** empty variable name.", stmt.location)
        self.out_vars.assign(lhs, rhs)

    def _eval_assign_ast(
        self, lhs_text: str, op: str, rhs_text: str, location: SourceLocation
    ) -> tuple[str, Var]:
        self.location = location
        value = self._parse(lhs_text)
        if isinstance(value, Literal):
            lhs = value.text
        else:
            lhs = self.expand(value).strip()
        current = self.lookup_var_in_current_scope(lhs)
        return lhs, eval_rhs(self, current, op, rhs_text)

    def _set_target_specific_var(
        self, assign: RuleAssign, output: str, location: SourceLocation
    ) -> None:
        scope = self.out_rule_vars.get(output)
        if scope is None:
            scope = Vars()
            self.out_rule_vars[output] = scope
        self.current_scope = scope
        try:
            lhs, rhs = self._eval_assign_ast(assign.lhs, assign.op, assign.rhs, location)
        finally:
            self.current_scope = None
        # Appending to an existing target-specific binding keeps its operator.
        if rhs.flavor is not Flavor.TARGET_SPECIFIC:
            rhs = Var.target_specific(rhs, assign.op)
        logger.debug(
            "rule outputs:%r assign:%s=%r (flavor:%s)",
            output,
            lhs,
            rhs.string(),
            rhs.base.flavor.value if rhs.base else "",
        )
        scope.assign(lhs, rhs)

    def _eval_maybe_rule(self, stmt: MaybeRuleStmt) -> None:
        self.last_rule = None
        self.location = stmt.location

        expr = stmt.expr
        if stmt.semicolon_index >= 0:
            expr = expr[: stmt.semicolon_index]
        if stmt.equal_index >= 0:
            expr = expr[: stmt.equal_index]
        line = self.expand(self._parse(expr))
        if stmt.equal_index >= 0:
            line += stmt.expr[stmt.equal_index :]
        logger.debug("rule? %r=>%r", stmt.expr, line)

        # A line of only separators, e.g. an expansion that came out empty.
        if not line.rstrip(" \t\n;"):
            return

        rule = Rule(location=stmt.location)
        assign = rule.parse(line)
        if assign is not None and stmt.semicolon_index >= 0:
            # The text after ';' is part of the assigned value.
            rule = Rule(location=stmt.location)
            assign = rule.parse(self.expand(self._parse(stmt.expr)))
        if assign is not None:
            for output in rule.outputs:
                self._set_target_specific_var(assign, output, stmt.location)
            for pattern in rule.output_patterns:
                self._set_target_specific_var(assign, str(pattern), stmt.location)
            return

        if stmt.semicolon_index >= 0:
            rule.cmds.append(stmt.expr[stmt.semicolon_index + 1 :].lstrip())
            rule.cmd_lineno = stmt.location.lineno
        logger.debug(
            "rule outputs:%r inputs:%r cmds:%r", rule.outputs, rule.inputs, rule.cmds
        )
        self.last_rule = rule
        self.out_rules.append(rule)

    def _eval_command(self, stmt: CommandStmt) -> None:
        self.location = stmt.location
        rule = self.last_rule
        if rule is None:
            # Still possibly an assignment, just indented with a tab.
            if "=" in stmt.cmd:
                mk = parse_makefile_string(
                    stmt.cmd.lstrip(), stmt.location.filename, stmt.location.lineno
                )
                if len(mk.stmts) == 1 and isinstance(mk.stmts[0], AssignStmt):
                    self.eval_statement(mk.stmts[0])
                return
            text = stmt.cmd.strip()
            if not text or text.startswith("#"):
                return
            raise SemanticError(
                "*** commands commence before first target.", stmt.location
            )
        rule.cmds.append(stmt.cmd)
        if rule.cmd_lineno == 0:
            rule.cmd_lineno = stmt.location.lineno

    def _eval_if(self, stmt: IfStmt) -> None:
        self.location = stmt.location
        if stmt.op in ("ifdef", "ifndef"):
            name = self.expand(self._parse(stmt.lhs)).strip()
            value = self.evaluate_var(name)
            is_true = bool(value) == (stmt.op == "ifdef")
            logger.debug("%s lhs=%r value=%r => %s", stmt.op, stmt.lhs, value, is_true)
        elif stmt.op in ("ifeq", "ifneq"):
            lhs = self.expand(self._parse(stmt.lhs))
            rhs = self.expand(self._parse(stmt.rhs))
            is_true = (lhs == rhs) == (stmt.op == "ifeq")
            logger.debug(
                "%s lhs=%r %r rhs=%r %r => %s",
                stmt.op,
                stmt.lhs,
                lhs,
                stmt.rhs,
                rhs,
                is_true,
            )
        else:
            raise ParseError(f"unknown if statement: {stmt.op!r}", stmt.location)

        for s in stmt.true_stmts if is_true else stmt.false_stmts:
            self.eval_statement(s)

    def _eval_export(self, stmt: ExportStmt) -> None:
        self.last_rule = None
        self.location = stmt.location
        for name in split_spaces(self.expand(self._parse(stmt.expr))):
            self.exports[name] = stmt.export

    def _eval_include(self, stmt: IncludeStmt) -> None:
        self.last_rule = None
        self.location = stmt.location
        logger.debug("%s: include %r", stmt.location, stmt.expr)

        files: list[str] = []
        for pat in split_spaces(self.expand(self._parse(stmt.expr))):
            if any(c in pat for c in _GLOB_CHARS):
                files.extend(sorted(glob.glob(pat)))
            else:
                files.append(pat)

        for filename in files:
            try:
                content = Path(filename).read_bytes()
            except OSError as e:
                if stmt.required:
                    raise IncludeError(
                        filename, e.strerror or str(e), stmt.location
                    ) from e
                # The prefix only hides missing files: an existing file
                # under it was read and recorded above, not skipped.
                prefix = self.options.ignore_optional_include
                if prefix and filename.startswith(prefix):
                    continue
                self.read_makefiles.update(
                    filename, MISSING_DIGEST, FileState.NOT_EXISTS, stmt.location
                )
                continue
            file_hash = digest(content)
            self.read_makefiles.update(
                filename, file_hash, FileState.EXISTS, stmt.location
            )
            self._eval_include_file(filename, content, file_hash)

    def _eval_include_file(self, filename: str, content: bytes, file_hash: bytes) -> None:
        mk = load_makefile(filename, content, self._cache, file_hash)
        self.append_makefile_list(mk.filename)
        self.eval_makefile(mk)

    def append_makefile_list(self, filename: str) -> None:
        makefile_list = self.out_vars.lookup(MAKEFILE_LIST)
        if not makefile_list.is_defined():
            makefile_list = self.inherited.lookup(MAKEFILE_LIST)
        makefile_list = makefile_list.append(self, filename.replace("$", "$$"))
        self.out_vars.assign(MAKEFILE_LIST, makefile_list)

    def result(self) -> EvalResult:
        return EvalResult(
            vars=self.out_vars,
            rules=tuple(self.out_rules),
            rule_vars=MappingProxyType(dict(self.out_rule_vars)),
            read_makefiles=tuple(self.read_makefiles.records()),
            exports=MappingProxyType(dict(self.exports)),
        )


def load_makefile(
    filename: str,
    content: bytes,
    cache: MakefileCache | None,
    file_hash: bytes | None = None,
) -> Makefile:
    """Parse ``content``, reusing a cached parse of the same bytes if any."""
    if cache is None:
        logger.debug("Reading makefile %r", filename)
        return parse_makefile(content, filename)
    if file_hash is None:
        file_hash = digest(content)
    mk = cache.lookup(filename, file_hash)
    if mk is None:
        logger.debug("Reading makefile %r", filename)
        mk = parse_makefile(content, filename)
        cache.insert(filename, file_hash, mk)
    return mk


def evaluate(
    makefile: Makefile,
    inherited: Vars | None = None,
    options: EvalOptions | None = None,
) -> EvalResult:
    """Evaluate a parsed makefile.

    Args:
        makefile: The parsed top-level makefile.
        inherited: Variables visible to the makefile (environment, command
            line). Only read, never modified.
        options: Caching and include options.

    Returns:
        The evaluation result.

    Raises:
        EvalError: If evaluation hit a fatal error; ``cause`` holds it.
    """
    ev = Evaluator(inherited, options)
    ev.location = SourceLocation(makefile.filename)
    try:
        ev.append_makefile_list(makefile.filename)
        ev.eval_makefile(makefile)
    except MkevalError as e:
        raise EvalError(makefile.filename, e, e.location or ev.location) from e
    except RecursionError as e:
        # A makefile including itself, or a $(call) that never bottoms out.
        err = SemanticError("*** recursion too deep.", ev.location)
        raise EvalError(makefile.filename, err, ev.location) from e
    return ev.result()


def evaluate_file(
    path: str | Path,
    inherited: Vars | None = None,
    options: EvalOptions | None = None,
) -> EvalResult:
    """Read, parse and evaluate a top-level makefile.

    Raises:
        EvalError: If the file can't be read or parsed, or evaluation fails.
    """
    options = options or EvalOptions()
    filename = str(path)
    try:
        content = Path(filename).read_bytes()
    except OSError as e:
        raise EvalError(filename, IncludeError(filename, e.strerror or str(e))) from e
    try:
        mk = load_makefile(filename, content, options.get_cache())
    except ParseError as e:
        raise EvalError(filename, e) from e
    return evaluate(mk, inherited, options)
