"""Entry point for ``python -m gss_exchange``."""
from __future__ import annotations

import sys

from gss_exchange.cli import main

if __name__ == "__main__":
    sys.exit(main())
