import logging
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    ENV_SECRETS_DIR,
    ENV_SECRETS_EXTENSION,
    ENV_SECRETS_VERBOSE,
    LOCAL_CONFIG_NAME,
    PYPROJECT_SECTION,
    SECRETS_DIR_NAME,
    SECRETS_EXTENSION,
)

logger = logging.getLogger(APP_NAME)


def parse_bool(value: bool | int | str) -> bool:
    """Converts config and environment flag values (e.g., '1', 'yes') to booleans."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    normalized = str(value).strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True
    if normalized in ("", "0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean value '{value}'")


def parse_extension(value: str) -> str:
    """Validates a ciphertext suffix, adding the leading dot when omitted."""
    value = str(value).strip()
    if not value or value == "." or "/" in value:
        raise ValueError(f"Invalid extension '{value}'")
    return value if value.startswith(".") else f".{value}"


@dataclass
class CoreConfig:
    """Core layout settings.

    Attributes:
        secrets_dir (str): Name of the secrets directory under the repository root.
        extension (str): Suffix appended to tracked files to name their ciphertext.
    """

    secrets_dir: str = SECRETS_DIR_NAME
    extension: str = SECRETS_EXTENSION


@dataclass
class OutputConfig:
    """Terminal output settings.

    Attributes:
        verbose (bool): Print per-file progress messages.
    """

    verbose: bool = False


@dataclass
class HideConfig:
    """Defaults for the hide command. Command-line flags can only enable these.

    Attributes:
        armor (bool): Write ASCII-armored ciphertext instead of binary.
        preserve_permissions (bool): Copy plaintext mode bits onto ciphertext.
        modified_only (bool): Skip files whose content hash is unchanged.
    """

    armor: bool = False
    preserve_permissions: bool = False
    modified_only: bool = False


@dataclass
class RevealConfig:
    """Defaults for the reveal command.

    Attributes:
        preserve_permissions (bool): Copy ciphertext mode bits onto revealed files.
    """

    preserve_permissions: bool = False


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Layout settings.
        output (OutputConfig): Output settings.
        hide (HideConfig): Hide defaults.
        reveal (RevealConfig): Reveal defaults.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    hide: HideConfig = field(default_factory=HideConfig)
    reveal: RevealConfig = field(default_factory=RevealConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, files, and the environment.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Start with a copy of the cached global config
        instance = replace(cls._global_cache)

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        # 3. Environment overrides everything else
        instance._merge_from_env(os.environ)
        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.git-secret').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "output" in data:
                self.output = self._update_dataclass(
                    "output", self.output, data["output"]
                )
            if "hide" in data:
                self.hide = self._update_dataclass("hide", self.hide, data["hide"])
            if "reveal" in data:
                self.reveal = self._update_dataclass(
                    "reveal", self.reveal, data["reveal"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    def _merge_from_env(self, env: "os._Environ[str] | dict[str, str]") -> None:
        """Applies SECRETS_DIR, SECRETS_EXTENSION and SECRETS_VERBOSE overrides."""
        core_updates: dict[str, Any] = {}
        if secrets_dir := env.get(ENV_SECRETS_DIR):
            core_updates["secrets_dir"] = secrets_dir
        if extension := env.get(ENV_SECRETS_EXTENSION):
            core_updates["extension"] = extension
        if core_updates:
            self.core = self._update_dataclass("core", self.core, core_updates)

        if (verbose := env.get(ENV_SECRETS_VERBOSE)) is not None:
            self.output = self._update_dataclass(
                "output", self.output, {"verbose": verbose}
            )

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and normalizing values."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "extension":
                    filtered_updates[k] = parse_extension(v)
                elif k == "secrets_dir":
                    if not str(v).strip() or "/" in str(v):
                        raise ValueError(f"Invalid directory name '{v}'")
                    filtered_updates[k] = str(v).strip()
                else:
                    filtered_updates[k] = parse_bool(v)
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
