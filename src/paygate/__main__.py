# src/paygate/__main__.py
"""Allow ``python -m paygate``."""

import sys

from paygate.app import main

if __name__ == "__main__":
    sys.exit(main())
