"""
Entry point for running the tsume package as a module.

Usage:
    python -m tsume --help
    python -m tsume results.sfen 100
    python -m tsume results.sfen 1000 --workers 16
"""

from tsume.cli import main

if __name__ == "__main__":
    main()
