"""Entry point for ``python -m publish.synths``."""

import sys

from publish.synths.cli import main

if __name__ == "__main__":
    sys.exit(main())
