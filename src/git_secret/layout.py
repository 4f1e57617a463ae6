"""Filesystem layout of a git-secret enabled repository."""

from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .constants import (
    KEYS_DIR_NAME,
    MAPPING_FILE_NAME,
    PATHS_DIR_NAME,
    SECRETS_DIR_NAME,
    SECRETS_EXTENSION,
)


@dataclass(frozen=True)
class SecretsLayout:
    """Resolves every path git-secret reads or writes for one repository.

    Attributes:
        root (Path): The repository root.
        dir_name (str): Name of the secrets directory under `root`.
        extension (str): Suffix that turns a plaintext path into its ciphertext path.
    """

    root: Path
    dir_name: str = SECRETS_DIR_NAME
    extension: str = SECRETS_EXTENSION

    @classmethod
    def from_config(cls, root: Path, config: Config) -> "SecretsLayout":
        return cls(root, config.core.secrets_dir, config.core.extension)

    @property
    def secrets_dir(self) -> Path:
        return self.root / self.dir_name

    @property
    def keys_dir(self) -> Path:
        return self.secrets_dir / KEYS_DIR_NAME

    @property
    def paths_dir(self) -> Path:
        return self.secrets_dir / PATHS_DIR_NAME

    @property
    def mapping_file(self) -> Path:
        return self.paths_dir / MAPPING_FILE_NAME

    def is_initialized(self) -> bool:
        """Returns True if the secrets directory exists."""
        return self.secrets_dir.is_dir()

    def plaintext_path(self, file_path: str) -> Path:
        """Resolves a root-relative tracked path to an absolute plaintext path."""
        return self.root / file_path

    def encrypted_path(self, path: Path) -> Path:
        """Returns the ciphertext path for `path`.

        A path that already carries the extension maps to itself, so
        `a.txt` and `a.txt.secret` both resolve to `a.txt.secret`.
        """
        name = path.name
        if name.endswith(self.extension):
            name = name[: -len(self.extension)]
        return path.with_name(f"{name}{self.extension}")

    def decrypted_path(self, path: Path) -> Path:
        """Strips the ciphertext extension from `path`, if present."""
        if path.name.endswith(self.extension):
            return path.with_name(path.name[: -len(self.extension)])
        return path

    def is_encrypted_name(self, path: Path | str) -> bool:
        return str(path).endswith(self.extension)

    def create(self) -> None:
        """Creates the secrets directory tree and an empty mapping store."""
        self.keys_dir.mkdir(parents=True, exist_ok=True)
        self.paths_dir.mkdir(parents=True, exist_ok=True)
        self.keys_dir.chmod(0o700)
        self.mapping_file.write_text("")
