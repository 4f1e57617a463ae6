"""Exception hierarchy for git-secret.

Library modules raise these; only the command layer (`ops`) turns them into
user-facing abort messages.
"""


class SecretError(Exception):
    """Base class for every error raised by git-secret."""


class NotARepositoryError(SecretError):
    """Raised when the working directory is not inside a git work tree."""


class NotInitializedError(SecretError):
    """Raised when the secrets directory has not been created yet."""


class AlreadyInitializedError(SecretError):
    """Raised by `init` when the secrets directory already exists."""


class NoRecipientsError(SecretError):
    """Raised when encryption is requested with an empty recipient set."""


class NoPublicKeysError(SecretError):
    """Raised when an operation needs at least one public key in the keyring."""


class MissingFileError(SecretError):
    """Raised when a plaintext or ciphertext file is absent when expected."""


class KeyParseError(SecretError):
    """Raised when key material cannot be parsed as an OpenPGP key."""


class MappingParseError(SecretError):
    """Raised when a line of the path mapping store cannot be interpreted."""

    def __init__(self, line_no: int, line: str):
        super().__init__(f"Malformed mapping entry on line {line_no}: {line!r}")
        self.line_no = line_no
        self.line = line


class CryptoError(SecretError):
    """Raised when the OpenPGP layer rejects an encrypt or decrypt request."""


class KeyExportError(SecretError):
    """Raised when a public key could not be exported from the local GnuPG."""


class PermissionPropagationError(SecretError):
    """Raised when file mode bits could not be copied between files."""


class PipelineAborted(SecretError):
    """Raised when a per-entry failure escalates to aborting a whole pipeline."""
