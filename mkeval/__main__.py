# SPDX-License-Identifier: MIT
"""Allow running mkeval as ``python -m mkeval``."""

import sys

from mkeval.cli import main

sys.exit(main())
