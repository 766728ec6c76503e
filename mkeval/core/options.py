# SPDX-License-Identifier: MIT
"""Evaluation options."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from mkeval.core.cache import MakefileCache, get_default_cache

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class EvalOptions:
    """Options for one evaluation.

    Attributes:
        use_cache: Use the parse cache and track read-file consistency.
        ignore_optional_include: Optional includes under this path prefix
            are skipped without being recorded when missing. Empty
            disables the check.
        cache: Parse cache to use; defaults to the process-wide one.
    """

    use_cache: bool = False
    ignore_optional_include: str = ""
    cache: MakefileCache | None = None

    def get_cache(self) -> MakefileCache | None:
        """The cache to consult, or None when caching is off."""
        if not self.use_cache:
            return None
        return self.cache if self.cache is not None else get_default_cache()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EvalOptions:
        """Build options from the environment.

        Reads:
            MKEVAL_USE_CACHE: "1"/"true"/"yes"/"on" enables caching.
            MKEVAL_IGNORE_OPTIONAL_INCLUDE: the ignore prefix.

        Args:
            environ: Mapping to read instead of ``os.environ``.
        """
        env = os.environ if environ is None else environ
        use_cache = env.get("MKEVAL_USE_CACHE", "").strip().lower() in _TRUE_VALUES
        return cls(
            use_cache=use_cache,
            ignore_optional_include=env.get("MKEVAL_IGNORE_OPTIONAL_INCLUDE", ""),
        )
