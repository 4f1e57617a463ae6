"""Hide pipeline: encrypts every tracked file for the current recipients."""

import contextlib
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from . import crypto, ui
from .constants import APP_NAME
from .errors import NoRecipientsError, PermissionPropagationError
from .keyring import RecipientKey
from .layout import SecretsLayout
from .mapping import PathMappingEntry, PathMappingStore
from .pipeline import Outcome, PipelineReport, note, resolve

logger = logging.getLogger(APP_NAME)


@dataclass
class HideOptions:
    """Per-invocation policy for the hide pipeline.

    Attributes:
        clean_first (bool): Delete existing ciphertext before encrypting.
        force_continue (bool): Skip missing plaintext instead of aborting.
        preserve_permissions (bool): Copy plaintext mode bits onto the ciphertext.
        delete_unencrypted (bool): Delete plaintext after successful encryption.
        modified_only (bool): Skip files whose content hash is unchanged.
        armor (bool): Write ASCII-armored ciphertext.
        verbose (bool): Print per-file progress.
    """

    clean_first: bool = False
    force_continue: bool = False
    preserve_permissions: bool = False
    delete_unencrypted: bool = False
    modified_only: bool = False
    armor: bool = False
    verbose: bool = False


def write_atomic(path: Path, data: bytes) -> None:
    """Writes `data` to a sibling temporary file and swaps it into place."""
    tmp_file = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp_file, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, path)
    except OSError:
        with contextlib.suppress(OSError):
            tmp_file.unlink()
        raise


def clean_ciphertexts(
    layout: SecretsLayout, entries: Sequence[PathMappingEntry], verbose: bool = False
) -> int:
    """Deletes the ciphertext of every entry.

    Missing files are ignored; any other failure is reported as a warning.

    Returns:
        int: The number of files deleted.
    """
    deleted = 0
    for entry in entries:
        encrypted = layout.encrypted_path(layout.plaintext_path(entry.file_path))
        try:
            encrypted.unlink()
        except FileNotFoundError:
            note(verbose, f"Skipped (not found): {encrypted}")
            continue
        except OSError as e:
            ui.warn(f"Could not clean {encrypted}: {e}")
            continue
        note(verbose, f"Cleaned (deleted): {encrypted}")
        deleted += 1
    return deleted


def _check_plaintext(plaintext: Path, options: HideOptions) -> Outcome:
    if not plaintext.is_file():
        return Outcome.warn_or_abort(
            options.force_continue, f"File not found: {plaintext}"
        )
    return Outcome.proceed()


def _check_modified(
    entry: PathMappingEntry, plaintext: Path, encrypted: Path, options: HideOptions
) -> Outcome:
    if not options.modified_only or entry.fingerprint is None:
        return Outcome.proceed()
    if not encrypted.exists():
        return Outcome.proceed()
    if crypto.sha256sum(plaintext) == entry.fingerprint:
        return Outcome.skip(f"Skipping (unmodified): {entry.file_path}", quiet=True)
    return Outcome.proceed()


def hide(
    layout: SecretsLayout,
    store: PathMappingStore,
    recipients: Sequence[RecipientKey],
    options: HideOptions,
) -> PipelineReport:
    """Encrypts every tracked file for `recipients`.

    Entries are processed in listing order. After each successful encryption
    the entry's fingerprint is set to the SHA-256 of the plaintext that was
    encrypted. A failure that aborts the run leaves already processed entries
    in their new state.

    Args:
        layout (SecretsLayout): Repository layout.
        store (PathMappingStore): Tracked entries.
        recipients (Sequence[RecipientKey]): Keys to encrypt for.
        options (HideOptions): Per-invocation policy.

    Returns:
        PipelineReport: How many of the tracked files were encrypted.

    Raises:
        NoRecipientsError: If `recipients` is empty.
        PipelineAborted: If a missing file is hit without `force_continue`.
    """
    if not recipients:
        raise NoRecipientsError(
            "No configured recipients. Use `git secret tell` to add users."
        )
    public_keys = [r.key for r in recipients]

    entries = store.list_entries()
    if options.clean_first:
        clean_ciphertexts(layout, entries, options.verbose)

    report = PipelineReport(total=len(entries))
    for entry in entries:
        plaintext = layout.plaintext_path(entry.file_path)
        encrypted = layout.encrypted_path(plaintext)

        if not resolve(_check_plaintext(plaintext, options), options.verbose):
            continue
        if not resolve(
            _check_modified(entry, plaintext, encrypted, options), options.verbose
        ):
            continue

        note(options.verbose, f"Encrypting: {entry.file_path} to {encrypted}")
        data = plaintext.read_bytes()
        write_atomic(encrypted, crypto.encrypt(data, public_keys, options.armor))
        report.processed += 1

        if options.preserve_permissions:
            try:
                mode = crypto.copy_mode(plaintext, encrypted)
                note(options.verbose, f"Set permissions of {encrypted} to {mode:03o}")
            except PermissionPropagationError as e:
                ui.warn(str(e))

        store.set_fingerprint(entry.file_path, crypto.sha256_bytes(data))

        if options.delete_unencrypted:
            plaintext.unlink()
            note(options.verbose, f"Deleted unencrypted source: {plaintext}")

    return report
