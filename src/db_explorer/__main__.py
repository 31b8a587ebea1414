"""Entry point for running db_explorer as a module."""

from db_explorer.server import cli_entry

if __name__ == "__main__":
    cli_entry()
