"""Driver CLI entry point."""

from __future__ import annotations

from gremlin_driver.cli import app

if __name__ == "__main__":
    app()
