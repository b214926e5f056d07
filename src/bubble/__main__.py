"""Bubble CLI entry point."""

from __future__ import annotations

from bubble.cli import app

if __name__ == "__main__":
    app()
