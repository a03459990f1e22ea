"""Command-line interface for fine-format."""

from __future__ import annotations

from fine_format.cli.main import app

__all__ = ["app"]
