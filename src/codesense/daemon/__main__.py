"""Entry point for the Codesense daemon.

Usage:
    python -m codesense.daemon [--port N] [--persistent] [--verbose] [--no-port-file]
"""

from ..cli import main

if __name__ == "__main__":
    main()
