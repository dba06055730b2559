"""Luminote: a daily gratitude journal with time-capsule notes."""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = ["__version__", "main"]


def main(argv: list[str] | None = None) -> int:
    """Console entry point; the CLI module is only imported when it runs."""
    from .app import main as run_cli

    return run_cli(argv)
