"""Input utilities for CLI commands."""

from __future__ import annotations

import json
import sys

import click


def read_json_stdin() -> dict:
    """Read a JSON object from stdin.

    Raises UsageError for interactive terminals and for input that is not
    a JSON object.
    """
    if sys.stdin.isatty():
        raise click.UsageError("Expected JSON on stdin")

    try:
        data = json.load(sys.stdin)
    except json.JSONDecodeError as e:
        raise click.UsageError(f"Invalid JSON on stdin: {e}") from e
    if not isinstance(data, dict):
        raise click.UsageError("Expected a JSON object on stdin")
    return data
