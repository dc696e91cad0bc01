# ---------------------------------------------------------------------------- #

from __future__ import annotations

from datetime import datetime
from sys import stderr

# ---------------------------------------------------------------------------- #


def log(obj: object) -> None:
    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")
    print(f"\033[36m[{now}]\033[0m {obj}", file=stderr, flush=True)


def format_bool(value: bool) -> str:
    """Format a bool the way the driver's command-line flags expect it."""
    return "true" if value else "false"


# ---------------------------------------------------------------------------- #
