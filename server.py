#!/usr/bin/env python3
"""
Convenience shim for 'python server.py'.

Installed environments should use the 'stitchfloor-server' command or
'python -m stitchfloor.server' instead.
"""
import sys

if __name__ == "__main__":
    from stitchfloor.server import main
    sys.exit(main())
