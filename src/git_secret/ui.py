"""User-facing output helpers.

Every line printed to the terminal goes through these helpers so that messages
carry a consistent ``git-secret:`` prefix. Library modules never print directly;
they either log or return data for the command layer to report.
"""

import sys
from typing import NoReturn

from rich.console import Console

from .constants import APP_NAME


console = Console(highlight=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, soft_wrap=True)


def message(text: str) -> None:
    """Prints an informational line to stdout."""
    console.print(f"{APP_NAME}: {text}", markup=False)


def warn(text: str) -> None:
    """Prints a non-fatal warning line to stderr."""
    err_console.print(f"{APP_NAME}: warning: {text}", style="yellow", markup=False)


def abort(text: str) -> NoReturn:
    """Prints a single diagnostic line to stderr and exits with status 1."""
    err_console.print(f"{APP_NAME}: abort: {text}", style="bold red", markup=False)
    sys.exit(1)
