"""git-secret: Store encrypted secrets inside a git repository.

This package provides the command-line interface, the recipient keyring, the
tracked path mapping, and the hide/reveal pipelines that encrypt tracked files
for every recipient and decrypt them back into the working tree.
"""

from . import (
    cli,
    config,
    constants,
    crypto,
    errors,
    git_wrapper,
    hide,
    keyring,
    layout,
    mapping,
    ops,
    pipeline,
    reveal,
    ui,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "crypto",
    "errors",
    "git_wrapper",
    "hide",
    "keyring",
    "layout",
    "mapping",
    "ops",
    "pipeline",
    "reveal",
    "ui",
]
