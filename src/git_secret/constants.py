from pathlib import Path

"""Global constants and filesystem layout definitions for git-secret.

This module defines the on-disk layout of the secrets directory, application
identifiers, and the environment variables recognised by the configuration layer.
"""

# --- Identity ---
APP_NAME = "git-secret"
"""str: The human-readable application name (also the logger name)."""

VERSION = "0.1.0"
"""str: The package version reported by `git secret --version`."""

# --- Secrets Layout ---
SECRETS_DIR_NAME = ".gitsecret"
"""str: Default name of the secrets directory under the repository root."""

SECRETS_EXTENSION = ".secret"
"""str: Default suffix appended to a tracked file to form its ciphertext path."""

KEYS_DIR_NAME = "keys"
"""str: Subdirectory holding one armored public key file per recipient."""

PATHS_DIR_NAME = "paths"
"""str: Subdirectory holding the path mapping store."""

MAPPING_FILE_NAME = "mapping.cfg"
"""str: File name of the path mapping store."""

KEY_FILE_SUFFIX = ".asc"
"""str: Suffix of recipient key files in the keyring directory."""

RANDOM_SEED_FILE = "random_seed"
"""str: GnuPG scratch file that must never be committed."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-secret"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "git-secret.toml"
"""str: Per-repository configuration file name (at the repository root)."""

PYPROJECT_SECTION = "tool.git-secret"
"""str: Section of pyproject.toml that may carry per-repository configuration."""

# --- Environment ---
ENV_SECRETS_DIR = "SECRETS_DIR"
ENV_SECRETS_EXTENSION = "SECRETS_EXTENSION"
ENV_SECRETS_VERBOSE = "SECRETS_VERBOSE"
ENV_PRIVATE_KEY = "GPG_PRIVATE_KEY"
ENV_PASSPHRASE = "GPG_PASSPHRASE"
