"""
Entry point for running the voter as a module.

Usage:
    python -m bridge_voter
"""

from bridge_voter.cli import main

if __name__ == "__main__":
    main()
