"""Development runner.
Usage: python run.py  (reads .env if present; same as `apihub serve`)
"""

from __future__ import annotations

import sys

from apihub.cli import main

if __name__ == "__main__":  # pragma: no cover
    sys.exit(main(["serve", *sys.argv[1:]]))
