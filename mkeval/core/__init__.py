# SPDX-License-Identifier: MIT
"""Core evaluation: expressions, variables, statements, rules and the evaluator."""
