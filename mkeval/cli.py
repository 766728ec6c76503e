# SPDX-License-Identifier: MIT
"""Command-line interface for mkeval."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from mkeval.core.errors import MkevalError
from mkeval.core.evaluator import EvalResult, evaluate_file
from mkeval.core.options import EvalOptions
from mkeval.core.rule import Rule
from mkeval.core.vars import Var, Vars

# Set up logging
logger = logging.getLogger("mkeval")

# Searched in order when no -f is given, as make does.
DEFAULT_MAKEFILES = ("GNUmakefile", "makefile", "Makefile")

COMMANDS = ("eval", "vars", "rules")


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Configure logging based on verbosity level."""
    if debug:
        level = logging.DEBUG
        fmt = "%(levelname)s: %(name)s: %(message)s"
    elif verbose:
        level = logging.INFO
        fmt = "%(levelname)s: %(message)s"
    else:
        level = logging.WARNING
        fmt = "%(levelname)s: %(message)s"

    logging.basicConfig(level=level, format=fmt)


def find_makefile(name: str | None = None, search_dir: Path | None = None) -> Path | None:
    """Find the makefile to evaluate.

    Args:
        name: Explicit makefile name (``-f``); otherwise the default names
            are tried in order.
        search_dir: Directory to search in (default: current dir, so the
            returned path stays relative)

    Returns:
        Path to the makefile if found, None otherwise.
    """
    if search_dir is None:
        search_dir = Path()

    names = (name,) if name else DEFAULT_MAKEFILES
    for candidate in names:
        path = search_dir / candidate
        if path.exists() and path.is_file():
            return path

    return None


def parse_variables(args: list[str]) -> tuple[dict[str, str], list[str]]:
    """Parse KEY=value arguments from a list.

    Args:
        args: List of arguments.

    Returns:
        Tuple of (variables dict, remaining args).
    """
    variables: dict[str, str] = {}
    remaining: list[str] = []

    for arg in args:
        if "=" in arg and not arg.startswith("-"):
            key, _, value = arg.partition("=")
            if key:  # Valid KEY=value
                variables[key] = value
            else:
                remaining.append(arg)
        else:
            remaining.append(arg)

    return variables, remaining


def inherited_vars(
    variables: Mapping[str, str], environ: Mapping[str, str] | None = None
) -> Vars:
    """Build the inherited table: the environment, then command-line variables.

    Both are simple variables, so their values are never re-expanded.
    """
    env = os.environ if environ is None else environ
    table = Vars()
    for name, value in env.items():
        table.assign(name, Var.simple(value))
    for name, value in variables.items():
        table.assign(name, Var.simple(value))
    return table


def _var_to_dict(var: Var) -> dict[str, Any]:
    d: dict[str, Any] = {"flavor": var.flavor.value, "value": var.string()}
    if var.op:
        d["op"] = var.op
    if var.base is not None:
        d["base_flavor"] = var.base.flavor.value
    return d


def _rule_to_dict(rule: Rule) -> dict[str, Any]:
    return {
        "location": str(rule.location) if rule.location else None,
        "outputs": list(rule.outputs),
        "output_patterns": [str(p) for p in rule.output_patterns],
        "inputs": list(rule.inputs),
        "order_only_inputs": list(rule.order_only_inputs),
        "is_double_colon": rule.is_double_colon,
        "cmds": list(rule.cmds),
        "cmd_lineno": rule.cmd_lineno,
    }


def result_to_dict(result: EvalResult) -> dict[str, Any]:
    """Convert an evaluation result into JSON-serializable data."""
    return {
        "vars": {name: _var_to_dict(var) for name, var in result.vars.items()},
        "rules": [_rule_to_dict(r) for r in result.rules],
        "rule_vars": {
            output: {name: _var_to_dict(var) for name, var in table.items()}
            for output, table in result.rule_vars.items()
        },
        "exports": dict(result.exports),
        "read_makefiles": [
            {"filename": rm.filename, "hash": rm.hash.hex(), "state": rm.state.name}
            for rm in result.read_makefiles
        ],
    }


def _evaluate(args: argparse.Namespace) -> tuple[EvalResult, Vars] | None:
    """Evaluate the makefile selected by ``args``; None after logging a failure."""
    variables, remaining = parse_variables(getattr(args, "extra", []))
    if remaining:
        logger.error("Unexpected arguments: %s", " ".join(remaining))
        return None

    path = find_makefile(args.file)
    if path is None:
        if args.file:
            logger.error("%s: No such file", args.file)
        else:
            logger.error("No makefile found in %s", Path.cwd())
        return None

    options = EvalOptions.from_env()
    if args.use_cache:
        options.use_cache = True
    if args.ignore_optional_include is not None:
        options.ignore_optional_include = args.ignore_optional_include

    inherited = inherited_vars(variables)
    logger.info("Evaluating %s", path)
    if variables:
        logger.debug("  command line variables: %s", variables)

    try:
        result = evaluate_file(path, inherited, options)
    except MkevalError as e:
        logger.error("%s", e)
        return None
    return result, inherited


def cmd_eval(args: argparse.Namespace) -> int:
    """Evaluate and print the result as JSON."""
    evaluated = _evaluate(args)
    if evaluated is None:
        return 1
    result, _ = evaluated
    print(json.dumps(result_to_dict(result), indent=2, sort_keys=True))
    return 0


def cmd_vars(args: argparse.Namespace) -> int:
    """Evaluate and print each assigned variable with its expanded value."""
    evaluated = _evaluate(args)
    if evaluated is None:
        return 1
    result, inherited = evaluated

    try:
        for name in sorted(result.vars):
            print(f"{name} = {result.expand_var(name, inherited)}")
    except MkevalError as e:
        logger.error("%s", e)
        return 1
    return 0


def cmd_rules(args: argparse.Namespace) -> int:
    """Evaluate and print each rule header followed by its commands."""
    evaluated = _evaluate(args)
    if evaluated is None:
        return 1
    result, _ = evaluated

    for rule in result.rules:
        print(rule.header())
        for cmd in rule.cmds:
            print(f"\t{cmd}")
    return 0


def add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common arguments to a parser."""
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--debug", action="store_true", help="Debug output")
    parser.add_argument(
        "-f", "--file", metavar="FILE", help="Makefile to evaluate (default: Makefile)"
    )
    parser.add_argument(
        "--use-cache",
        action="store_true",
        help="Reuse parsed makefiles and track include consistency",
    )
    parser.add_argument(
        "--ignore-optional-include",
        metavar="PREFIX",
        help="Don't record missing optional includes under PREFIX",
    )
    parser.add_argument(
        "extra",
        nargs="*",
        help="Variables (KEY=value)",
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the mkeval CLI."""
    parser = argparse.ArgumentParser(
        prog="mkeval",
        description="Evaluate a makefile into variables, rules and exports.",
        epilog="Run 'mkeval <command> --help' for command-specific help.",
    )
    from mkeval import __version__

    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # mkeval eval
    eval_parser = subparsers.add_parser(
        "eval", help="Print the evaluation result as JSON (default)"
    )
    add_common_args(eval_parser)
    eval_parser.set_defaults(func=cmd_eval)

    # mkeval vars
    vars_parser = subparsers.add_parser(
        "vars", help="Print the variables the makefile assigns"
    )
    add_common_args(vars_parser)
    vars_parser.set_defaults(func=cmd_vars)

    # mkeval rules
    rules_parser = subparsers.add_parser("rules", help="Print the rules")
    add_common_args(rules_parser)
    rules_parser.set_defaults(func=cmd_rules)

    if argv is None:
        argv = sys.argv[1:]
    # No subcommand given: 'eval' is the default.
    if not argv or argv[0] not in (*COMMANDS, "-h", "--help", "--version"):
        argv = ["eval", *argv]

    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.debug)

    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
