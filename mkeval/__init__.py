# SPDX-License-Identifier: MIT
"""
mkeval: A makefile evaluator.

mkeval parses makefiles and evaluates them the way make's first phase
does: variables are assigned and expanded, conditionals and includes are
resolved, and rules are collected with their commands and target-specific
variables. Nothing is built; the result is data for a later stage.
"""

from __future__ import annotations

# Re-export commonly used classes for convenient imports
from mkeval.core.errors import EvalError, MkevalError  # noqa: E402
from mkeval.core.evaluator import EvalResult, evaluate, evaluate_file  # noqa: E402
from mkeval.core.options import EvalOptions  # noqa: E402
from mkeval.core.parser import parse_makefile, parse_makefile_string  # noqa: E402
from mkeval.core.vars import Var, Vars  # noqa: E402

__version__ = "0.1.0"

__all__ = [
    "EvalError",
    "EvalOptions",
    "EvalResult",
    "MkevalError",
    "Var",
    "Vars",
    "__version__",
    "evaluate",
    "evaluate_file",
    "parse_makefile",
    "parse_makefile_string",
]
