"""CLI entry point for clipvault.cli module.

Enables execution via: python -m clipvault.cli
"""

from clipvault.cli.find_orphans import main

if __name__ == "__main__":
    main()
