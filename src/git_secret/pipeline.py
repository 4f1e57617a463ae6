"""Shared per-entry control flow for the hide and reveal pipelines.

Every per-entry check returns an `Outcome`. The pipeline driver interprets it
the same way everywhere: carry on, skip the entry (optionally with a warning),
or abort the whole run.
"""

import enum
from dataclasses import dataclass

from . import ui
from .errors import PipelineAborted


class OutcomeKind(enum.Enum):
    CONTINUE = "continue"
    SKIP = "skip"
    FATAL = "fatal"


@dataclass(frozen=True)
class Outcome:
    """Result of one per-entry step.

    Attributes:
        kind (OutcomeKind): What the driver should do next.
        reason (str): Human-readable explanation for SKIP and FATAL.
        quiet (bool): For SKIP, report only in verbose mode instead of warning.
    """

    kind: OutcomeKind
    reason: str = ""
    quiet: bool = False

    @classmethod
    def proceed(cls) -> "Outcome":
        return cls(OutcomeKind.CONTINUE)

    @classmethod
    def skip(cls, reason: str, quiet: bool = False) -> "Outcome":
        return cls(OutcomeKind.SKIP, reason, quiet)

    @classmethod
    def fatal(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.FATAL, reason)

    @classmethod
    def warn_or_abort(cls, force_continue: bool, reason: str) -> "Outcome":
        """A per-entry failure: skipped with a warning if continuing, else fatal."""
        return cls.skip(reason) if force_continue else cls.fatal(reason)


def resolve(outcome: Outcome, verbose: bool = False) -> bool:
    """Applies an outcome.

    Args:
        outcome (Outcome): The step result.
        verbose (bool): Whether quiet skips are reported.

    Returns:
        bool: True if processing of the entry should continue.

    Raises:
        PipelineAborted: If the outcome is FATAL.
    """
    if outcome.kind is OutcomeKind.CONTINUE:
        return True
    if outcome.kind is OutcomeKind.FATAL:
        raise PipelineAborted(outcome.reason)

    if outcome.quiet:
        if verbose:
            ui.message(outcome.reason)
    else:
        ui.warn(outcome.reason)
    return False


def note(verbose: bool, text: str) -> None:
    """Reports per-file progress when running verbosely."""
    if verbose:
        ui.message(text)


@dataclass
class PipelineReport:
    """Counts reported at the end of a pipeline run.

    Attributes:
        processed (int): Entries actually encrypted or decrypted.
        total (int): Entries considered.
    """

    processed: int = 0
    total: int = 0

    def summary(self, verb: str) -> str:
        return f"Done. {self.processed} of {self.total} files are {verb}."
