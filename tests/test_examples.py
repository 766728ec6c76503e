# SPDX-License-Identifier: MIT
"""Test runner for example projects.

Discovers and evaluates all example projects in examples/.
Each example is a self-contained makefile with a test.toml describing
what evaluating it must produce, so it serves as both a test and
documentation for users.

Tests both invocation methods:
- Direct: mkeval.evaluate_file()
- CLI: python -m mkeval
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any

import pytest

from mkeval.cli import inherited_vars, result_to_dict
from mkeval.core.cache import MakefileCache
from mkeval.core.errors import EvalError
from mkeval.core.evaluator import EvalResult, evaluate_file
from mkeval.core.options import EvalOptions

# Try to import tomllib (Python 3.11+) or tomli as fallback
try:
    import tomllib
except ImportError:
    try:
        import tomli as tomllib  # type: ignore[import-not-found]
    except ImportError:
        tomllib = None  # type: ignore[assignment]


PROJECT_ROOT = Path(__file__).parent.parent
EXAMPLES_DIR = PROJECT_ROOT / "examples"


def discover_examples() -> list[Path]:
    """Discover all example directories that have a Makefile and test.toml."""
    examples = []
    if not EXAMPLES_DIR.exists():
        return examples

    for item in sorted(EXAMPLES_DIR.iterdir()):
        if (
            item.is_dir()
            and (item / "Makefile").exists()
            and (item / "test.toml").exists()
        ):
            examples.append(item)

    return examples


def load_test_config(example_dir: Path) -> dict[str, Any]:
    """Load test.toml configuration."""
    if tomllib is None:
        pytest.skip("tomllib/tomli not available")

    config_file = example_dir / "test.toml"
    with open(config_file, "rb") as f:
        return tomllib.load(f)


def run_cli(work_dir: Path, command: str, config: dict[str, Any]) -> str:
    """Run ``python -m mkeval <command>`` in work_dir and return stdout.

    The environment is kept minimal so that the makefile only inherits the
    variables the example asks for.
    """
    variables = config.get("variables", {})
    options = config.get("options", {})

    cmd = [sys.executable, "-m", "mkeval", command]
    if options.get("use_cache"):
        cmd.append("--use-cache")
    cmd.extend(f"{k}={v}" for k, v in variables.items())

    env = {"PATH": os.environ.get("PATH", ""), "PYTHONPATH": str(PROJECT_ROOT)}
    if "SYSTEMROOT" in os.environ:
        env["SYSTEMROOT"] = os.environ["SYSTEMROOT"]

    result = subprocess.run(cmd, cwd=work_dir, capture_output=True, text=True, env=env)
    expected_error = config.get("expect", {}).get("error")
    if expected_error:
        assert result.returncode == 1, f"Expected failure, got:\n{result.stdout}"
        assert expected_error in result.stderr
        return ""

    if result.returncode != 0:
        pytest.fail(
            f"mkeval {command} failed:\n"
            f"stdout: {result.stdout}\n"
            f"stderr: {result.stderr}"
        )
    return result.stdout


def parse_vars_output(output: str) -> dict[str, str]:
    """Parse ``NAME = value`` lines printed by ``mkeval vars``."""
    values = {}
    for line in output.splitlines():
        name, sep, value = line.partition(" = ")
        if sep:
            values[name] = value
    return values


def parse_rules_output(output: str) -> list[dict[str, Any]]:
    """Parse rule headers and tab-indented commands printed by ``mkeval rules``."""
    rules: list[dict[str, Any]] = []
    for line in output.splitlines():
        if line.startswith("\t"):
            rules[-1]["cmds"].append(line[1:])
        else:
            rules.append({"header": line, "cmds": []})
    return rules


def check_expectations(
    expect: dict[str, Any],
    var_values: dict[str, str],
    rules: list[dict[str, Any]],
    data: dict[str, Any],
) -> None:
    """Compare an evaluation against the [expect] table.

    Args:
        expect: The [expect] table of test.toml
        var_values: Expanded variable values
        rules: Rules as header/cmds dicts
        data: The JSON form of the result (see mkeval.cli.result_to_dict)
    """
    for name, value in expect.get("vars", {}).items():
        assert var_values.get(name) == value, f"variable {name}"

    if "makefile_list" in expect:
        assert var_values["MAKEFILE_LIST"].split() == expect["makefile_list"]

    if "rules" in expect:
        assert rules == [
            {"header": r["header"], "cmds": list(r.get("cmds", []))}
            for r in expect["rules"]
        ]

    if "exports" in expect:
        assert data["exports"] == expect["exports"]

    for output, table in expect.get("rule_vars", {}).items():
        assert output in data["rule_vars"], f"no target-specific variables for {output}"
        for name, value in table.items():
            assert data["rule_vars"][output][name]["value"] == value

    if "read_makefiles" in expect:
        states = {rm["filename"]: rm["state"] for rm in data["read_makefiles"]}
        assert states == expect["read_makefiles"]


def run_direct(work_dir: Path, config: dict[str, Any], monkeypatch) -> None:
    monkeypatch.chdir(work_dir)
    inherited = inherited_vars(config.get("variables", {}), environ={})
    opts = config.get("options", {})
    options = EvalOptions(use_cache=bool(opts.get("use_cache")), cache=MakefileCache())
    expect = config.get("expect", {})

    if "error" in expect:
        with pytest.raises(EvalError) as exc:
            evaluate_file("Makefile", inherited, options)
        assert str(exc.value) == expect["error"]
        return

    result: EvalResult = evaluate_file("Makefile", inherited, options)
    var_values = {name: result.expand_var(name, inherited) for name in result.vars}
    rules = [{"header": r.header(), "cmds": list(r.cmds)} for r in result.rules]
    check_expectations(expect, var_values, rules, result_to_dict(result))


def run_via_cli(work_dir: Path, config: dict[str, Any]) -> None:
    expect = config.get("expect", {})
    if "error" in expect:
        run_cli(work_dir, "eval", config)
        return

    var_values = parse_vars_output(run_cli(work_dir, "vars", config))
    rules = parse_rules_output(run_cli(work_dir, "rules", config))
    data = json.loads(run_cli(work_dir, "eval", config))
    check_expectations(expect, var_values, rules, data)


def run_example(
    example_dir: Path, tmp_path: Path, invocation: str, monkeypatch
) -> None:
    """Evaluate a single example project.

    Args:
        example_dir: Path to the example directory
        tmp_path: Temporary directory for test isolation
        invocation: How to evaluate the makefile:
            - "direct": mkeval.evaluate_file()
            - "cli": python -m mkeval
        monkeypatch: Used to run from the copied example directory
    """
    config = load_test_config(example_dir)

    # Copy example to temp directory so globbing sees only its files
    work_dir = tmp_path / example_dir.name
    shutil.copytree(example_dir, work_dir)

    if invocation == "direct":
        run_direct(work_dir, config, monkeypatch)
    else:
        run_via_cli(work_dir, config)


# Discover examples and create test parameters
EXAMPLES = discover_examples()

# Invocation methods to test
INVOCATIONS = ["direct", "cli"]


@pytest.mark.parametrize("invocation", INVOCATIONS, ids=INVOCATIONS)
@pytest.mark.parametrize(
    "example_dir",
    EXAMPLES,
    ids=[e.name for e in EXAMPLES],
)
def test_example(
    example_dir: Path, tmp_path: Path, invocation: str, monkeypatch
) -> None:
    """Evaluate an example project end-to-end.

    Tests both invocation methods:
    - direct: mkeval.evaluate_file()
    - cli: python -m mkeval
    """
    run_example(example_dir, tmp_path, invocation, monkeypatch)


# If no examples found, create a placeholder test
if not EXAMPLES:

    def test_no_examples() -> None:
        """Placeholder when no examples are found."""
        pytest.skip("No example projects found in examples/")
