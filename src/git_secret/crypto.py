"""OpenPGP encryption capability and file fingerprint helpers.

The OpenPGP primitives themselves come from `pgpy`; this module only adapts
them to whole-file byte strings and maps their failures onto `CryptoError`.
"""

import hashlib
import logging
import stat
from collections.abc import Sequence
from pathlib import Path

import pgpy
from pgpy.constants import SymmetricKeyAlgorithm

from .constants import APP_NAME
from .errors import (
    CryptoError,
    KeyParseError,
    NoRecipientsError,
    PermissionPropagationError,
)

logger = logging.getLogger(APP_NAME)

SESSION_CIPHER = SymmetricKeyAlgorithm.AES256


def sha256_bytes(data: bytes) -> str:
    """Returns the hex SHA-256 digest of `data`."""
    return hashlib.sha256(data).hexdigest()


def sha256sum(path: Path) -> str:
    """Returns the hex SHA-256 digest of the file at `path`."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def copy_mode(source: Path, target: Path) -> int:
    """Copies the permission bits of `source` onto `target`.

    Returns:
        int: The mode bits that were applied.

    Raises:
        PermissionPropagationError: If either file cannot be stat'ed or chmod'ed.
    """
    try:
        mode = stat.S_IMODE(source.stat().st_mode)
        target.chmod(mode)
    except OSError as e:
        raise PermissionPropagationError(
            f"Could not copy permissions from {source} to {target}: {e}"
        ) from e
    return mode


def parse_key(material: str | bytes) -> pgpy.PGPKey:
    """Parses armored or binary key material into its primary key.

    Raises:
        KeyParseError: If the material is not a readable OpenPGP key.
    """
    try:
        key, _ = pgpy.PGPKey.from_blob(material)
    except Exception as e:
        raise KeyParseError(f"Invalid key material: {e}") from e
    return key


def encrypt(
    plaintext: bytes, recipients: Sequence[pgpy.PGPKey], armored: bool = False
) -> bytes:
    """Encrypts `plaintext` so that any one of `recipients` can decrypt it.

    A single session key is generated and wrapped once per recipient.

    Args:
        plaintext (bytes): The data to encrypt.
        recipients (Sequence[pgpy.PGPKey]): Public keys of the recipients.
        armored (bool): Return ASCII-armored text instead of binary packets.

    Returns:
        bytes: The encrypted message.

    Raises:
        NoRecipientsError: If `recipients` is empty.
        CryptoError: If a recipient key cannot be used for encryption.
    """
    if not recipients:
        raise NoRecipientsError("No recipients to encrypt for.")

    logger.debug(
        f"Encrypting {len(plaintext)} bytes for {len(recipients)} recipient(s)."
    )
    message = pgpy.PGPMessage.new(bytes(plaintext), file=False)
    session_key = SESSION_CIPHER.gen_key()
    try:
        for key in recipients:
            message = key.encrypt(
                message, cipher=SESSION_CIPHER, sessionkey=session_key
            )
    except Exception as e:
        raise CryptoError(f"Encryption failed: {e}") from e
    finally:
        del session_key

    if armored:
        return str(message).encode("ascii")
    return bytes(message)


def load_private_key(
    material: str | bytes, passphrase: str | None = None
) -> pgpy.PGPKey:
    """Parses a private key and verifies that it can be unlocked.

    Args:
        material (str | bytes): Armored or binary private key.
        passphrase (str | None): Passphrase for a protected key.

    Returns:
        pgpy.PGPKey: The parsed private key (still locked if protected).

    Raises:
        KeyParseError: If the material is not a private key.
        CryptoError: If the key is protected and the passphrase is missing or wrong.
    """
    key = parse_key(material)
    if key.is_public:
        raise KeyParseError("Expected a private key, got a public key.")

    if key.is_protected:
        if not passphrase:
            raise CryptoError(
                "Private key is encrypted, but no passphrase was provided."
            )
        try:
            with key.unlock(passphrase):
                pass
        except Exception as e:
            raise CryptoError(
                f"Failed to decrypt private key with passphrase: {e}"
            ) from e
    return key


def decrypt(
    ciphertext: bytes, private_key: pgpy.PGPKey, passphrase: str | None = None
) -> bytes:
    """Decrypts an armored or binary message.

    Args:
        ciphertext (bytes): The encrypted message.
        private_key (pgpy.PGPKey): A private key among the message's recipients.
        passphrase (str | None): Passphrase if `private_key` is protected.

    Returns:
        bytes: The original plaintext.

    Raises:
        CryptoError: On malformed input, wrong key, or wrong passphrase.
    """
    try:
        message = pgpy.PGPMessage.from_blob(ciphertext)
        if private_key.is_protected:
            if not passphrase:
                raise CryptoError(
                    "Private key is encrypted, but no passphrase was provided."
                )
            with private_key.unlock(passphrase):
                decrypted = private_key.decrypt(message)
        else:
            decrypted = private_key.decrypt(message)
        data = decrypted.message
    except CryptoError:
        raise
    except Exception as e:
        raise CryptoError(f"Decryption failed: {e}") from e

    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)
