import difflib
import functools
import logging
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, TypeVar

import pgpy
from rich.text import Text

from . import crypto, ui
from .config import Config
from .constants import (
    APP_NAME,
    ENV_PASSPHRASE,
    ENV_PRIVATE_KEY,
    KEYS_DIR_NAME,
    RANDOM_SEED_FILE,
)
from .errors import (
    AlreadyInitializedError,
    MissingFileError,
    NoPublicKeysError,
    NotARepositoryError,
    NotInitializedError,
    SecretError,
)
from .git_wrapper import GitRepo
from .hide import HideOptions, clean_ciphertexts, hide
from .keyring import Keyring
from .layout import SecretsLayout
from .mapping import PathMappingStore
from .reveal import RevealOptions, reveal

logger = logging.getLogger(APP_NAME)

F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class Workspace:
    """Everything a command needs to act on one repository.

    Attributes:
        repo (GitRepo): The enclosing git repository.
        config (Config): Merged configuration for the repository.
        layout (SecretsLayout): Paths of the secrets directory.
        store (PathMappingStore): Tracked files.
        keyring (Keyring): Recipient keys; changes clear stored fingerprints.
    """

    repo: GitRepo
    config: Config
    layout: SecretsLayout
    store: PathMappingStore
    keyring: Keyring

    @property
    def verbose(self) -> bool:
        return self.config.output.verbose


def open_workspace(
    cwd: Path | None = None, require_init: bool = True, require_keys: bool = True
) -> Workspace:
    """Resolves the repository and checks the structural preconditions.

    Args:
        cwd (Path | None): Directory to start from. Defaults to CWD.
        require_init (bool): Fail if the secrets directory does not exist.
        require_keys (bool): Fail if the keyring holds no public keys.

    Returns:
        Workspace: The opened workspace.

    Raises:
        NotARepositoryError: Outside a git work tree.
        SecretError: If the secrets directory is git-ignored.
        NotInitializedError: If `require_init` and the directory is missing.
        NoPublicKeysError: If `require_keys` and the keyring is empty.
    """
    repo = GitRepo.discover(cwd)
    if repo is None:
        raise NotARepositoryError(
            "Not a git repository. Perhaps use 'git init'/'git clone', "
            "then 'git secret init'."
        )

    config = Config.load(repo.path)
    layout = SecretsLayout.from_config(repo.path, config)
    store = PathMappingStore(layout.mapping_file)
    keyring = Keyring(layout.keys_dir, on_change=store.clear_all_fingerprints)
    workspace = Workspace(repo, config, layout, store, keyring)

    if layout.is_initialized() and repo.is_ignored(layout.secrets_dir):
        raise SecretError(
            f"Directory '{layout.dir_name}' is ignored by .gitignore. "
            "This is usually incorrect. Please check your .gitignore file."
        )
    if require_init and not layout.is_initialized():
        raise NotInitializedError(
            f"Directory '{layout.dir_name}' does not exist. "
            "Use 'git secret init' to initialize git-secret."
        )
    if require_keys and not keyring.list_public_keys():
        raise NoPublicKeysError(
            "No public keys for users found. Run 'git secret tell email@address'."
        )
    return workspace


def aborts_on_error(func: F) -> F:
    """Turns library errors into a single abort line and exit status 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (SecretError, OSError) as e:
            logger.debug(f"{func.__name__} failed: {e!r}")
            ui.abort(str(e))

    return wrapper  # type: ignore[return-value]


def _resolve_private_key(
    private_key: str | None, passphrase: str | None
) -> tuple[pgpy.PGPKey, str | None]:
    """Loads the private key from a path, or armored text in GPG_PRIVATE_KEY.

    Returns:
        tuple[pgpy.PGPKey, str | None]: The key and the passphrase to use.
    """
    source = private_key or os.environ.get(ENV_PRIVATE_KEY)
    if not source:
        raise SecretError(
            "Private key must be provided via --private-key option "
            f"or {ENV_PRIVATE_KEY} env variable."
        )
    passphrase = passphrase or os.environ.get(ENV_PASSPHRASE)

    if "-----BEGIN PGP" in source:
        material: str | bytes = source
    else:
        key_path = Path(source).expanduser()
        if not key_path.is_file():
            raise MissingFileError(f"Private key file not found: {key_path}")
        material = key_path.read_bytes()

    return crypto.load_private_key(material, passphrase), passphrase


@aborts_on_error
def init_repo(cwd: Path | None = None) -> None:
    """Creates the secrets directory and registers the ignore rules it needs."""
    workspace = open_workspace(cwd, require_init=False, require_keys=False)
    layout = workspace.layout

    if layout.is_initialized():
        raise AlreadyInitializedError(f"'{layout.dir_name}' already initialized.")
    if workspace.repo.is_ignored(layout.secrets_dir):
        raise SecretError(
            f"Entry '{layout.dir_name}' seems to be in .gitignore. "
            "Please remove it first."
        )

    layout.create()
    ui.message(f"Init created: '{layout.dir_name}/'")

    workspace.repo.add_to_gitignore(
        f"{layout.dir_name}/{KEYS_DIR_NAME}/{RANDOM_SEED_FILE}"
    )
    workspace.repo.add_to_gitignore(f"!*{layout.extension}")
    ui.message("Updated .gitignore")


@aborts_on_error
def tell(
    identities: list[str],
    use_git_email: bool = False,
    key_file: Path | None = None,
    gpg_homedir: Path | None = None,
    verbose: bool = False,
) -> int:
    """Adds recipients to the keyring.

    Args:
        identities (list[str]): Identities to export from GnuPG and add.
        use_git_email (bool): Also add `git config user.email`.
        key_file (Path | None): Import this key file instead of exporting.
        gpg_homedir (Path | None): GnuPG home directory for exports.
        verbose (bool): Print per-key progress.

    Returns:
        int: The number of recipients added.
    """
    workspace = open_workspace(require_keys=False)
    verbose = verbose or workspace.verbose

    targets = list(identities)
    if use_git_email:
        email = workspace.repo.config_value("user.email")
        if not email:
            raise SecretError(
                "'git config user.email' is not set, but -m option was used."
            )
        targets.append(email)

    if key_file is not None and len(targets) > 1:
        raise SecretError(
            "Option -f (file) can only be used with a single identity "
            "or none (if the identity is in the key)."
        )
    if not targets and key_file is None:
        raise SecretError(
            "You must provide an email address, or use -m or -f <key_file>."
        )

    added = 0
    for identity in targets or [None]:
        recipient = workspace.keyring.add_recipient(
            identity=identity, key_file=key_file, gpg_homedir=gpg_homedir
        )
        if recipient is None:
            continue
        if verbose:
            ui.message(
                f"Added key for {recipient.primary_identity} to {recipient.path}"
            )
        added += 1

    if added:
        ui.message(f"Done. {added} user(s) added.")
        ui.message("Hashes cleared. Re-encrypt files with `git secret hide`.")
    else:
        ui.message("No new users were added.")
    return added


@aborts_on_error
def remove_person(identities: list[str], verbose: bool = False) -> int:
    """Removes recipients from the keyring.

    Args:
        identities (list[str]): Identities whose key files should be deleted.
        verbose (bool): Print per-identity progress.

    Returns:
        int: The number of identities for which at least one key was removed.
    """
    workspace = open_workspace(require_init=False)
    verbose = verbose or workspace.verbose

    removed = 0
    for identity in identities:
        count = workspace.keyring.remove_recipient(identity)
        if not count:
            ui.warn(f"No key found associated with: {identity}")
            continue
        if verbose:
            ui.message(f"Removed {count} key file(s) for {identity}")
        removed += 1

    if removed:
        ui.message(f"Removed keys for {removed} identity(ies).")
        ui.message("Make sure to hide the existing secrets again to apply changes.")
    else:
        ui.message("No keys removed.")
    return removed


def kill_person(identities: list[str], verbose: bool = False) -> int:
    """Deprecated alias of `remove_person`."""
    ui.warn(
        "'killperson' has been renamed to 'removeperson'. "
        "This alias will be removed in future versions."
    )
    return remove_person(identities, verbose)


@aborts_on_error
def who_knows(long: bool = False) -> None:
    """Prints the primary identity of every recipient key."""
    workspace = open_workspace()
    for recipient in workspace.keyring.list_public_keys():
        line = recipient.primary_identity
        if long:
            expires = recipient.expires_at
            expiry = expires.date().isoformat() if expires else "never"
            line += f" (KeyID: {recipient.key_id}, Expires: {expiry})"
        ui.console.print(line, markup=False)


@aborts_on_error
def add_files(pathspecs: list[str], verbose: bool = False) -> int:
    """Starts tracking files.

    Each file must exist and must not be tracked by git. Files that git does not
    ignore yet are appended to .gitignore.

    Returns:
        int: The number of newly tracked files.
    """
    workspace = open_workspace()
    verbose = verbose or workspace.verbose

    added = 0
    for item in pathspecs:
        normalized = workspace.repo.normalize_path(item)
        absolute = workspace.layout.plaintext_path(normalized)

        if workspace.repo.is_tracked(absolute):
            raise SecretError(
                f"File '{item}' is tracked in git. "
                f"Consider using 'git rm --cached {item}'."
            )
        if not absolute.exists():
            raise MissingFileError(f"File not found: {item}")

        if not workspace.repo.is_ignored(absolute):
            ui.message(f"File not in .gitignore, adding: {normalized}")
            workspace.repo.add_to_gitignore(normalized)

        if workspace.store.add(normalized):
            if verbose:
                ui.message(f"Adding file: {normalized}")
            added += 1

    ui.message(f"{added} item(s) added.")
    return added


@aborts_on_error
def remove_files(
    pathspecs: list[str], clean_encrypted: bool = False, verbose: bool = False
) -> int:
    """Stops tracking files, optionally deleting their ciphertext.

    Returns:
        int: The number of files no longer tracked.
    """
    workspace = open_workspace()
    verbose = verbose or workspace.verbose

    removed = 0
    for item in pathspecs:
        normalized = workspace.repo.normalize_path(item)
        if not workspace.store.remove(normalized):
            if verbose:
                ui.message(f"File not found in index: {normalized}")
            continue

        removed += 1
        if verbose:
            ui.message(f"Removed from index: {normalized}")

        if clean_encrypted:
            encrypted = workspace.layout.encrypted_path(
                workspace.layout.plaintext_path(normalized)
            )
            try:
                encrypted.unlink()
                if verbose:
                    ui.message(f"Deleted encrypted file: {encrypted}")
            except FileNotFoundError:
                pass
            except OSError as e:
                ui.warn(f"Failed to delete encrypted file {encrypted}: {e}")

    if removed:
        ui.message(f"Removed {removed} item(s) from index.")
        ui.message(
            f"Ensure that removed files: [{', '.join(pathspecs)}] are now not "
            "ignored in .gitignore if they should be committed unencrypted."
        )
    else:
        ui.message("No items removed from index.")
    return removed


@aborts_on_error
def list_files(verbose: bool = False) -> None:
    """Prints every tracked path."""
    workspace = open_workspace()
    entries = workspace.store.list_entries()
    if not entries and (verbose or workspace.verbose):
        ui.message("No files are currently tracked by git-secret.")
    for entry in entries:
        ui.console.print(entry.file_path, markup=False)


@aborts_on_error
def clean(verbose: bool = False) -> int:
    """Deletes the ciphertext of every tracked file."""
    workspace = open_workspace()
    verbose = verbose or workspace.verbose
    entries = workspace.store.list_entries()
    if not entries and verbose:
        ui.message("No files are currently tracked by git-secret.")

    deleted = clean_ciphertexts(workspace.layout, entries, verbose)
    ui.message("Clean complete.")
    return deleted


@aborts_on_error
def hide_files(options: HideOptions) -> int:
    """Encrypts every tracked file for the current recipients.

    Flags that are off on the command line fall back to the [hide] config.

    Returns:
        int: The number of files encrypted.
    """
    workspace = open_workspace()
    conf = workspace.config
    options = replace(
        options,
        armor=options.armor or conf.hide.armor,
        preserve_permissions=options.preserve_permissions
        or conf.hide.preserve_permissions,
        modified_only=options.modified_only or conf.hide.modified_only,
        verbose=options.verbose or conf.output.verbose,
    )

    recipients = workspace.keyring.list_public_keys()
    report = hide(workspace.layout, workspace.store, recipients, options)
    ui.message(report.summary("hidden"))
    return report.processed


@aborts_on_error
def reveal_files(
    pathspecs: list[str],
    options: RevealOptions,
    private_key: str | None = None,
    passphrase: str | None = None,
) -> int:
    """Decrypts the given files, or every tracked file if none are given.

    Returns:
        int: The number of files revealed.
    """
    workspace = open_workspace()
    conf = workspace.config
    options = replace(
        options,
        preserve_permissions=options.preserve_permissions
        or conf.reveal.preserve_permissions,
        verbose=options.verbose or conf.output.verbose,
    )
    key, passphrase = _resolve_private_key(private_key, passphrase)

    if pathspecs:
        targets = [workspace.repo.normalize_path(p) for p in pathspecs]
    else:
        targets = [e.file_path for e in workspace.store.list_entries()]

    report = reveal(workspace.layout, targets, key, options, passphrase)
    ui.message(report.summary("revealed"))
    return report.processed


@aborts_on_error
def cat_files(
    pathspecs: list[str],
    private_key: str | None = None,
    passphrase: str | None = None,
) -> None:
    """Decrypts files and writes their plaintext to stdout."""
    workspace = open_workspace()
    key, passphrase = _resolve_private_key(private_key, passphrase)

    for item in pathspecs:
        normalized = workspace.repo.normalize_path(item)
        encrypted = workspace.layout.encrypted_path(
            workspace.layout.plaintext_path(normalized)
        )
        if not encrypted.is_file():
            ui.warn(f"Cannot find file to decrypt: {encrypted}")
            continue

        data = crypto.decrypt(encrypted.read_bytes(), key, passphrase)
        sys.stdout.buffer.write(data)
        sys.stdout.flush()


@aborts_on_error
def show_changes(
    pathspecs: list[str],
    private_key: str | None = None,
    passphrase: str | None = None,
) -> int:
    """Shows a diff between each hidden file and its working copy.

    Returns:
        int: The number of files that differ.
    """
    workspace = open_workspace()
    key, passphrase = _resolve_private_key(private_key, passphrase)

    if pathspecs:
        targets = [workspace.repo.normalize_path(p) for p in pathspecs]
    else:
        targets = [e.file_path for e in workspace.store.list_entries()]

    changed = 0
    for file_path in targets:
        plaintext = workspace.layout.plaintext_path(file_path)
        encrypted = workspace.layout.encrypted_path(plaintext)

        if not encrypted.is_file():
            raise MissingFileError(
                f"Cannot find encrypted version of file: {encrypted}"
            )
        if not plaintext.is_file():
            raise MissingFileError(
                f"File not found. Consider using 'git secret reveal': {plaintext}"
            )

        hidden = crypto.decrypt(encrypted.read_bytes(), key, passphrase)
        current = plaintext.read_bytes()
        if hidden == current:
            ui.message(f"No changes in {file_path}")
            continue

        changed += 1
        ui.message(f"Changes in {file_path}:")
        diff = difflib.unified_diff(
            hidden.decode("utf-8", errors="replace").splitlines(keepends=True),
            current.decode("utf-8", errors="replace").splitlines(keepends=True),
            fromfile=f"{file_path} (hidden)",
            tofile=f"{file_path} (working copy)",
        )
        for line in diff:
            style = ""
            if line.startswith("+") and not line.startswith("+++"):
                style = "green"
            elif line.startswith("-") and not line.startswith("---"):
                style = "red"
            elif line.startswith("@@"):
                style = "cyan"
            ui.console.print(Text(line.rstrip("\n"), style=style))
    return changed
