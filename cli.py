#!/usr/bin/env python3
"""
Convenience shim for 'python cli.py'.

Installed environments should use the 'stitchfloor' command or
'python -m stitchfloor' instead.
"""
import sys

if __name__ == "__main__":
    from stitchfloor.cli import main
    sys.exit(main())
