"""Reveal pipeline: decrypts ciphertext back into tracked plaintext files."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import pgpy

from . import crypto, ui
from .constants import APP_NAME
from .errors import CryptoError, PermissionPropagationError
from .layout import SecretsLayout
from .pipeline import Outcome, PipelineReport, note, resolve

logger = logging.getLogger(APP_NAME)


@dataclass
class RevealOptions:
    """Per-invocation policy for the reveal pipeline.

    Attributes:
        force_overwrite (bool): Overwrite plaintext files that already exist.
        force_continue (bool): Skip failing entries instead of aborting.
        preserve_permissions (bool): Copy ciphertext mode bits onto the plaintext.
        verbose (bool): Print per-file progress.
    """

    force_overwrite: bool = False
    force_continue: bool = False
    preserve_permissions: bool = False
    verbose: bool = False


def _check_target(
    layout: SecretsLayout, file_path: str, plaintext: Path, options: RevealOptions
) -> Outcome:
    if layout.is_encrypted_name(file_path):
        return Outcome.warn_or_abort(
            options.force_continue,
            f"Cannot decrypt to secret version of file: {plaintext}",
        )
    return Outcome.proceed()


def _check_ciphertext(encrypted: Path, options: RevealOptions) -> Outcome:
    if not encrypted.is_file():
        return Outcome.warn_or_abort(
            options.force_continue, f"Cannot find file to decrypt: {encrypted}"
        )
    return Outcome.proceed()


def _check_overwrite(plaintext: Path, options: RevealOptions) -> Outcome:
    if plaintext.exists() and not options.force_overwrite:
        return Outcome.warn_or_abort(
            options.force_continue,
            f"Unencrypted file {plaintext} already exists. Use -f to overwrite.",
        )
    return Outcome.proceed()


def reveal(
    layout: SecretsLayout,
    targets: Sequence[str],
    private_key: pgpy.PGPKey,
    options: RevealOptions,
    passphrase: str | None = None,
) -> PipelineReport:
    """Decrypts the ciphertext of each target into its plaintext path.

    Args:
        layout (SecretsLayout): Repository layout.
        targets (Sequence[str]): Root-relative plaintext paths, in order.
        private_key (pgpy.PGPKey): Key used to decrypt.
        options (RevealOptions): Per-invocation policy.
        passphrase (str | None): Passphrase for a protected `private_key`.

    Returns:
        PipelineReport: How many of the targets were revealed.

    Raises:
        PipelineAborted: If a per-entry failure occurs without `force_continue`.
    """
    report = PipelineReport(total=len(targets))
    for file_path in targets:
        plaintext = layout.plaintext_path(file_path)
        encrypted = layout.encrypted_path(plaintext)

        if not resolve(_check_target(layout, file_path, plaintext, options)):
            continue
        if not resolve(_check_ciphertext(encrypted, options)):
            continue
        if not resolve(_check_overwrite(plaintext, options)):
            continue

        try:
            data = crypto.decrypt(encrypted.read_bytes(), private_key, passphrase)
        except CryptoError as e:
            resolve(
                Outcome.warn_or_abort(
                    options.force_continue, f"Failed to decrypt {encrypted}: {e}"
                )
            )
            continue

        try:
            plaintext.write_bytes(data)
        except OSError as e:
            resolve(
                Outcome.warn_or_abort(
                    options.force_continue, f"Failed to write {plaintext}: {e}"
                )
            )
            continue
        report.processed += 1
        note(options.verbose, f"Revealed: {plaintext}")

        if options.preserve_permissions:
            try:
                mode = crypto.copy_mode(encrypted, plaintext)
                note(options.verbose, f"Set permissions of {plaintext} to {mode:03o}")
            except PermissionPropagationError as e:
                ui.warn(f"Could not preserve permissions for {plaintext}: {e}")

    return report
