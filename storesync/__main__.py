"""Main entry point when executing storesync as a package.

This allows running the package using python -m storesync.
"""

from storesync.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
