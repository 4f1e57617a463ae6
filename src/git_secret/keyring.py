"""Directory-backed set of recipient public keys.

Each recipient is stored as one armored key file under the keyring directory.
Adding or removing a recipient changes who can decrypt newly produced
ciphertext, so the keyring reports every successful change through its
`on_change` hook; the command layer binds that hook to
`PathMappingStore.clear_all_fingerprints`.
"""

import logging
import re
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import pgpy

from . import crypto
from .constants import APP_NAME, KEY_FILE_SUFFIX
from .errors import KeyExportError, KeyParseError

logger = logging.getLogger(APP_NAME)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_ANGLE_ADDRESS = re.compile(r"<([^>]+)>")


def format_uid(uid: pgpy.PGPUID) -> str:
    """Renders a user ID the way GnuPG prints it: ``Name (comment) <email>``."""
    parts = []
    if uid.name:
        parts.append(uid.name)
    if uid.comment:
        parts.append(f"({uid.comment})")
    if uid.email:
        parts.append(f"<{uid.email}>")
    return " ".join(parts)


def extract_email(identity: str) -> str | None:
    """Returns the address from ``Name <addr>`` or a bare address, else None."""
    if match := _ANGLE_ADDRESS.search(identity):
        return match.group(1).strip()
    if "@" in identity and " " not in identity.strip():
        return identity.strip()
    return None


def sanitize_identity(identity: str) -> str:
    """Reduces an identity to characters that are safe in a file name."""
    if match := _ANGLE_ADDRESS.search(identity):
        identity = match.group(1)
    return _UNSAFE_FILENAME_CHARS.sub("_", identity)


def key_filename(identity: str, key_id: str) -> str:
    """Builds the keyring file name for a recipient.

    Args:
        identity (str): The identity the key was imported for.
        key_id (str): The key identifier in hex.

    Returns:
        str: ``<sanitized identity>.<key id>.asc``
    """
    return f"{sanitize_identity(identity)}.{key_id.lower()}{KEY_FILE_SUFFIX}"


@dataclass
class RecipientKey:
    """A parsed recipient public key.

    Attributes:
        path (Path | None): The keyring file holding the key, if stored.
        key (pgpy.PGPKey): The parsed public key.
        identities (list[str]): Formatted user IDs of the key.
        key_id (str): Lower-case hex key identifier.
    """

    path: Path | None
    key: pgpy.PGPKey = field(repr=False)
    identities: list[str]
    key_id: str

    @classmethod
    def from_key(cls, key: pgpy.PGPKey, path: Path | None = None) -> "RecipientKey":
        identities = [s for s in (format_uid(uid) for uid in key.userids) if s]
        return cls(path, key, identities, key.fingerprint.keyid.lower())

    @property
    def emails(self) -> set[str]:
        return {
            email.lower()
            for email in (extract_email(identity) for identity in self.identities)
            if email
        }

    @property
    def primary_identity(self) -> str:
        """The first identity carrying an email address, or the first one at all."""
        for identity in self.identities:
            if "@" in identity:
                return identity
        return self.identities[0] if self.identities else "Unknown User"

    @property
    def expires_at(self) -> datetime | None:
        return self.key.expires_at

    def matches(self, identity: str) -> bool:
        """Returns True if `identity` names this key.

        A bare address matches any user ID with that address; anything else
        must equal a full user ID. Comparison of addresses ignores case.
        """
        identity = identity.strip()
        if identity in self.identities:
            return True
        email = extract_email(identity)
        return email is not None and email.lower() in self.emails


def export_public_key(identity: str, gpg_homedir: Path | None = None) -> str:
    """Exports an armored public key from the local GnuPG keyring.

    Args:
        identity (str): The user ID or address to export.
        gpg_homedir (Path | None): Alternative GnuPG home directory.

    Returns:
        str: The armored key, or an empty string if GnuPG knows no such key.

    Raises:
        KeyExportError: If gpg is unavailable or exits with an error.
    """
    cmd = ["gpg", "--export", "--armor"]
    if gpg_homedir:
        cmd.extend(["--homedir", str(gpg_homedir)])
    cmd.append(identity)

    try:
        res = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise KeyExportError("gpg executable not found. Is GnuPG installed?") from e
    except subprocess.CalledProcessError as e:
        raise KeyExportError(
            f"Failed to export public key for '{identity}' using GPG: "
            f"{(e.stderr or str(e)).strip()}"
        ) from e
    return res.stdout


class Keyring:
    """The set of public keys allowed to decrypt the repository's secrets.

    Attributes:
        keys_dir (Path): Directory holding one ``*.asc`` file per recipient.
        on_change (Callable[[], None] | None): Invoked after every successful
            add or remove.
    """

    def __init__(self, keys_dir: Path, on_change: Callable[[], None] | None = None):
        self.keys_dir = keys_dir
        self.on_change = on_change

    def _key_files(self) -> list[Path]:
        if not self.keys_dir.is_dir():
            return []
        return sorted(self.keys_dir.glob(f"*{KEY_FILE_SUFFIX}"))

    def _notify_change(self) -> None:
        logger.debug("Recipient set changed; invalidating stored fingerprints.")
        if self.on_change:
            self.on_change()

    def list_public_keys(self) -> list[RecipientKey]:
        """Loads every valid public key in the keyring directory.

        Unparseable files are logged and skipped; private keys are skipped.

        Returns:
            list[RecipientKey]: The recipient keys, ordered by file name.
        """
        keys = []
        for key_file in self._key_files():
            try:
                key = crypto.parse_key(key_file.read_text(encoding="utf-8"))
            except (KeyParseError, OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not parse key file {key_file}: {e}")
                continue
            if not key.is_public:
                logger.debug(f"Ignoring private key material in {key_file.name}")
                continue
            keys.append(RecipientKey.from_key(key, key_file))
        return keys

    def find(self, identity: str) -> list[RecipientKey]:
        """Returns every stored key that `identity` names."""
        return [k for k in self.list_public_keys() if k.matches(identity)]

    def add_recipient(
        self,
        identity: str | None = None,
        key_file: Path | None = None,
        gpg_homedir: Path | None = None,
    ) -> RecipientKey | None:
        """Imports a recipient public key into the keyring.

        The key comes from `key_file` when given, otherwise it is exported from
        GnuPG for `identity`. When no identity is given, the key's primary
        address is used.

        Args:
            identity (str | None): The recipient's identity (usually an email).
            key_file (Path | None): File holding the key to import.
            gpg_homedir (Path | None): GnuPG home directory for exports.

        Returns:
            RecipientKey | None: The stored key, or None if the import was
            rejected (a warning is logged).

        Raises:
            KeyExportError: If GnuPG could not be run.
            ValueError: If neither `identity` nor `key_file` is given.
        """
        if key_file is not None:
            source = str(key_file)
            material: str | bytes = key_file.read_bytes()
        elif identity:
            source = identity
            material = export_public_key(identity, gpg_homedir)
        else:
            raise ValueError("An identity or a key file is required.")

        if not material or (isinstance(material, str) and not material.strip()):
            logger.warning(f"Could not obtain public key for {source}.")
            return None

        try:
            key = crypto.parse_key(material)
        except KeyParseError as e:
            logger.warning(f"Invalid public key for {source}: {e}")
            return None

        if not key.is_public:
            logger.warning(f"The key for {source} is not a public key.")
            return None

        candidate = RecipientKey.from_key(key)
        target = identity or extract_email(candidate.primary_identity)
        if not target:
            logger.warning(
                f"Could not determine an identity from {source}. "
                "Please provide one explicitly."
            )
            return None

        for existing in self.list_public_keys():
            if existing.matches(target) or existing.emails & candidate.emails:
                logger.warning(
                    f"A key for {target} already exists in the keyring. Skipping."
                )
                return None

        self.keys_dir.mkdir(parents=True, exist_ok=True)
        path = self.keys_dir / key_filename(target, candidate.key_id)
        path.write_text(str(key), encoding="utf-8")
        candidate.path = path
        logger.debug(f"Added key for {target} to {path}")

        self._notify_change()
        return candidate

    def remove_recipient(self, identity: str) -> int:
        """Deletes every stored key file whose identities match `identity`.

        Args:
            identity (str): The identity (usually an email) to remove.

        Returns:
            int: The number of key files deleted.
        """
        removed = 0
        for recipient in self.find(identity):
            if recipient.path is None:
                continue
            try:
                recipient.path.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove key file {recipient.path.name}: {e}")
                continue
            logger.debug(f"Removed key file {recipient.path.name} for {identity}")
            removed += 1

        if removed:
            self._notify_change()
        return removed
