# SPDX-License-Identifier: MIT
"""Tests for mkeval CLI."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from mkeval.cli import (
    find_makefile,
    inherited_vars,
    main,
    parse_variables,
    result_to_dict,
    setup_logging,
)
from mkeval.core.evaluator import evaluate
from mkeval.core.parser import parse_makefile_string
from mkeval.core.vars import Flavor

PROJECT_ROOT = Path(__file__).parent.parent

MAKEFILE = """\
CC = cc
CFLAGS := -O2
OBJS = main.o util.o
export CC

prog: $(OBJS)
\t$(CC) -o $@ $^

%.o: %.c
\t$(CC) $(CFLAGS) -c $<

debug: CFLAGS += -g
"""


def run_cli(*args: str, cwd: Path) -> subprocess.CompletedProcess[str]:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in (str(PROJECT_ROOT), env.get("PYTHONPATH", "")) if p
    )
    return subprocess.run(
        [sys.executable, "-m", "mkeval", *args],
        capture_output=True,
        text=True,
        cwd=cwd,
        env=env,
    )


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "Makefile").write_text(MAKEFILE)
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MKEVAL_USE_CACHE", raising=False)
    monkeypatch.delenv("MKEVAL_IGNORE_OPTIONAL_INCLUDE", raising=False)
    return tmp_path


class TestFindMakefile:
    """Tests for find_makefile function."""

    def test_default_name(self, tmp_path: Path) -> None:
        (tmp_path / "Makefile").write_text("")
        assert find_makefile(search_dir=tmp_path) == tmp_path / "Makefile"

    def test_gnumakefile_preferred(self, tmp_path: Path) -> None:
        (tmp_path / "Makefile").write_text("")
        (tmp_path / "GNUmakefile").write_text("")
        assert find_makefile(search_dir=tmp_path) == tmp_path / "GNUmakefile"

    def test_explicit_name(self, tmp_path: Path) -> None:
        (tmp_path / "build.mk").write_text("")
        assert find_makefile("build.mk", tmp_path) == tmp_path / "build.mk"

    def test_not_found(self, tmp_path: Path) -> None:
        assert find_makefile(search_dir=tmp_path) is None
        assert find_makefile("build.mk", tmp_path) is None

    def test_ignores_directories(self, tmp_path: Path) -> None:
        (tmp_path / "Makefile").mkdir()
        assert find_makefile(search_dir=tmp_path) is None

    def test_relative_to_cwd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / "Makefile").write_text("")
        monkeypatch.chdir(tmp_path)
        assert str(find_makefile()) == "Makefile"


class TestParseVariables:
    def test_split(self) -> None:
        variables, remaining = parse_variables(["CC=clang", "all", "X=a=b", "=bad"])
        assert variables == {"CC": "clang", "X": "a=b"}
        assert remaining == ["all", "=bad"]

    def test_options_not_variables(self) -> None:
        variables, remaining = parse_variables(["--opt=1"])
        assert variables == {}
        assert remaining == ["--opt=1"]


class TestInheritedVars:
    def test_command_line_overrides_environment(self) -> None:
        table = inherited_vars({"CC": "clang"}, {"CC": "gcc", "HOME": "/home/u"})
        assert table.lookup("CC").string() == "clang"
        assert table.lookup("HOME").string() == "/home/u"
        assert table.lookup("CC").flavor is Flavor.SIMPLE

    def test_values_not_expanded(self) -> None:
        table = inherited_vars({"X": "$(Y)"}, {})
        assert table.lookup("X").flavor is Flavor.SIMPLE
        assert table.lookup("X").string() == "$(Y)"


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_normal(self) -> None:
        setup_logging(verbose=False, debug=False)

    def test_setup_logging_verbose(self) -> None:
        setup_logging(verbose=True, debug=False)

    def test_setup_logging_debug(self) -> None:
        setup_logging(verbose=False, debug=True)


class TestResultToDict:
    def test_shape(self) -> None:
        result = evaluate(parse_makefile_string(MAKEFILE, "Makefile"))
        data = result_to_dict(result)
        assert data["vars"]["CFLAGS"] == {"flavor": "simple", "value": "-O2"}
        assert data["vars"]["CC"] == {"flavor": "recursive", "value": "cc"}
        prog, pattern = data["rules"]
        assert prog["outputs"] == ["prog"]
        assert prog["inputs"] == ["main.o", "util.o"]
        assert prog["cmds"] == ["$(CC) -o $@ $^"]
        assert prog["location"] == "Makefile:6"
        assert pattern["output_patterns"] == ["%.o"]
        assert data["rule_vars"]["debug"]["CFLAGS"] == {
            "flavor": "target-specific",
            "value": " -g",
            "op": "+=",
            "base_flavor": "recursive",
        }
        assert data["exports"] == {"CC": True}
        assert data["read_makefiles"] == []
        json.dumps(data)


class TestMain:
    def test_eval_is_default(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main([]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [r["outputs"] for r in data["rules"]] == [["prog"], []]

    def test_vars(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["vars"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert "CC = cc" in lines
        assert "OBJS = main.o util.o" in lines
        assert "MAKEFILE_LIST =  Makefile" in lines

    def test_command_line_variables(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        (project / "Makefile").write_text("MSG := hello $(WHO)\n")
        assert main(["vars", "WHO=world"]) == 0
        assert "MSG = hello world" in capsys.readouterr().out.splitlines()

    def test_rules(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["rules"]) == 0
        out = capsys.readouterr().out
        assert out.splitlines() == [
            "prog: main.o util.o",
            "\t$(CC) -o $@ $^",
            "%.o: %.c",
            "\t$(CC) $(CFLAGS) -c $<",
        ]

    def test_explicit_file(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        (project / "other.mk").write_text("X := 1\n")
        assert main(["vars", "-f", "other.mk"]) == 0
        assert "X = 1" in capsys.readouterr().out.splitlines()

    def test_use_cache_records_includes(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        (project / "Makefile").write_text("-include missing.mk\n")
        assert main(["eval", "--use-cache"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["read_makefiles"][0]["filename"] == "missing.mk"
        assert data["read_makefiles"][0]["state"] == "NOT_EXISTS"

    def test_ignore_optional_include(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        (project / "Makefile").write_text("-include out/missing.mk\n")
        assert main(["--use-cache", "--ignore-optional-include", "out/"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["read_makefiles"] == []

    def test_missing_makefile(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog
    ) -> None:
        monkeypatch.chdir(tmp_path)
        assert main(["vars"]) == 1
        assert "No makefile found" in caplog.text

    def test_missing_explicit_file(self, project: Path, caplog) -> None:
        assert main(["-f", "nope.mk"]) == 1
        assert "nope.mk: No such file" in caplog.text

    def test_eval_error(self, project: Path, caplog) -> None:
        (project / "Makefile").write_text("\techo before target\n")
        assert main(["rules"]) == 1
        assert (
            "eval Makefile: Makefile:1: *** commands commence before first target."
            in caplog.text
        )

    def test_endless_recursion(self, project: Path, caplog) -> None:
        (project / "a.mk").write_text("include a.mk\n")
        (project / "Makefile").write_text("include a.mk\n")
        assert main(["eval"]) == 1
        assert "*** recursion too deep." in caplog.text

    def test_endless_call_while_printing_vars(self, project: Path, caplog) -> None:
        (project / "Makefile").write_text("f = $(call f)\n")
        assert main(["vars"]) == 1
        assert "*** recursion too deep." in caplog.text

    def test_unexpected_argument(self, project: Path, caplog) -> None:
        assert main(["vars", "target"]) == 1
        assert "Unexpected arguments: target" in caplog.text


class TestCLISubprocess:
    """Tests running the installed entry point."""

    def test_help(self) -> None:
        result = run_cli("--help", cwd=PROJECT_ROOT)
        assert result.returncode == 0
        assert "mkeval" in result.stdout
        assert "vars" in result.stdout
        assert "rules" in result.stdout

    def test_version(self) -> None:
        from mkeval import __version__

        result = run_cli("--version", cwd=PROJECT_ROOT)
        assert result.returncode == 0
        assert __version__ in result.stdout

    def test_vars(self, tmp_path: Path) -> None:
        (tmp_path / "Makefile").write_text("A := 1\nB = $(A)$(A)\n")
        result = run_cli("vars", cwd=tmp_path)
        assert result.returncode == 0
        assert "B = 11" in result.stdout.splitlines()

    def test_error_exit_code(self, tmp_path: Path) -> None:
        (tmp_path / "Makefile").write_text("$(error stop here)\n")
        result = run_cli(cwd=tmp_path)
        assert result.returncode == 1
        assert "*** stop here." in result.stderr
