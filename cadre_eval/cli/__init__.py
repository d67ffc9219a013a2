"""Command-line interface."""

from cadre_eval.cli.main import app

__all__ = ["app"]
