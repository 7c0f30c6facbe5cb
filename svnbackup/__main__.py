#!/usr/bin/env python3
"""
Command-line interface entry point for the svnbackup package.

This module allows the package to be executed as a script using:
python -m svnbackup
"""

import sys
from .cli import main
from .errors import EX_SOFTWARE


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(EX_SOFTWARE)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(EX_SOFTWARE)
