# SPDX-License-Identifier: MIT
"""Utilities shared by the core modules."""
