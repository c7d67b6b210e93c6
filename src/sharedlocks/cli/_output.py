"""Output formatting helpers for the CLI."""

from __future__ import annotations

import json
import sys
from typing import Any


def _dump(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def print_table(headers: list[str], rows: list[list[Any]], *, json_mode: bool = False) -> None:
    """Print rows as aligned columns, or as a JSON array of objects."""
    if json_mode:
        _dump([dict(zip(headers, row)) for row in rows])
        return
    if not rows:
        return

    cells = [[str(v) for v in row] for row in rows]
    widths = [max(len(h), *(len(r[i]) for r in cells)) for i, h in enumerate(headers)]
    print("  ".join(h.ljust(w) for h, w in zip(headers, widths)).rstrip())
    print("  ".join("-" * w for w in widths))
    for row in cells:
        print("  ".join(v.ljust(w) for v, w in zip(row, widths)).rstrip())


def print_object(data: dict[str, Any], *, json_mode: bool = False) -> None:
    """Print a mapping as JSON or ``key: value`` lines."""
    if json_mode:
        _dump(data)
        return
    for key, value in data.items():
        print(f"{key}: {value}")


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)
