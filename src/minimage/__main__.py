"""Package entry point: ``python -m minimage``."""

from __future__ import annotations

import sys

from minimage.cli import main

if __name__ == "__main__":
    sys.exit(main())
