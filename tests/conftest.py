from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pgpy
import pytest
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from git_secret.config import Config
from git_secret.keyring import key_filename
from git_secret.layout import SecretsLayout
from git_secret.mapping import PathMappingStore

PASSPHRASE = "correct horse battery staple"


def make_key(name: str, email: str) -> pgpy.PGPKey:
    """Generates a throwaway RSA key usable for both signing and encryption."""
    key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    uid = pgpy.PGPUID.new(name, email=email)
    key.add_uid(
        uid,
        usage={
            KeyFlags.Sign,
            KeyFlags.EncryptCommunications,
            KeyFlags.EncryptStorage,
        },
        hashes=[HashAlgorithm.SHA256, HashAlgorithm.SHA512],
        ciphers=[SymmetricKeyAlgorithm.AES256, SymmetricKeyAlgorithm.AES128],
        compression=[CompressionAlgorithm.Uncompressed],
    )
    return key


@pytest.fixture(scope="session")
def alice_key() -> pgpy.PGPKey:
    return make_key("Alice", "alice@example.com")


@pytest.fixture(scope="session")
def bob_key() -> pgpy.PGPKey:
    return make_key("Bob", "bob@example.com")


@pytest.fixture(scope="session")
def carol_key() -> pgpy.PGPKey:
    """A passphrase-protected private key."""
    key = make_key("Carol", "carol@example.com")
    key.protect(PASSPHRASE, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    return key


@pytest.fixture
def passphrase() -> str:
    return PASSPHRASE


@pytest.fixture
def add_public_key() -> Callable[[Path, pgpy.PGPKey, str], Path]:
    """Returns a helper that writes the public half of a key into a keyring."""

    def _add(keys_dir: Path, key: pgpy.PGPKey, email: str) -> Path:
        keys_dir.mkdir(parents=True, exist_ok=True)
        path = keys_dir / key_filename(email, key.fingerprint.keyid)
        path.write_text(str(key.pubkey), encoding="utf-8")
        return path

    return _add


@pytest.fixture(autouse=True)
def isolated_config(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Iterator[Any]:
    """Keeps the user's global config and environment out of every test."""
    Config._global_cache = None
    missing = tmp_path_factory.mktemp("home") / "config.toml"
    monkeypatch.setattr("git_secret.config.CONFIG_FILE", missing)
    for name in (
        "SECRETS_DIR",
        "SECRETS_EXTENSION",
        "SECRETS_VERBOSE",
        "GPG_PRIVATE_KEY",
        "GPG_PASSPHRASE",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    Config._global_cache = None


@pytest.fixture
def layout(tmp_path: Path) -> SecretsLayout:
    """An initialized secrets layout rooted at a temporary directory."""
    secrets = SecretsLayout(tmp_path)
    secrets.create()
    return secrets


@pytest.fixture
def store(layout: SecretsLayout) -> PathMappingStore:
    return PathMappingStore(layout.mapping_file)
