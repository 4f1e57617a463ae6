"""Tests for the command layer, run against a real directory with git mocked out."""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pgpy
import pytest

from git_secret import crypto, ops
from git_secret.git_wrapper import GitRepo
from git_secret.hide import HideOptions
from git_secret.layout import SecretsLayout
from git_secret.mapping import PathMappingStore
from git_secret.reveal import RevealOptions

AddKey = Callable[[Path, pgpy.PGPKey, str], Path]
HASH = "f" * 64


@pytest.fixture
def repo(
    tmp_path: Path, mocker: MagicMock, monkeypatch: pytest.MonkeyPatch
) -> GitRepo:
    """A repository whose git queries are answered without running git."""
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mocker.patch("git_secret.ops.GitRepo.discover", return_value=repo)
    mocker.patch.object(repo, "is_tracked", return_value=False)
    mocker.patch.object(repo, "is_ignored", return_value=False)
    mocker.patch.object(repo, "config_value", return_value=None)
    monkeypatch.chdir(tmp_path)
    return repo


@pytest.fixture
def secrets(repo: GitRepo) -> SecretsLayout:
    ops.init_repo()
    return SecretsLayout(repo.path)


@pytest.fixture
def with_alice(
    secrets: SecretsLayout, alice_key: pgpy.PGPKey, add_public_key: AddKey
) -> SecretsLayout:
    add_public_key(secrets.keys_dir, alice_key, "alice@example.com")
    return secrets


@pytest.fixture
def private_key_file(
    tmp_path_factory: pytest.TempPathFactory, alice_key: pgpy.PGPKey
) -> Path:
    path = tmp_path_factory.mktemp("gnupg") / "alice.key"
    path.write_text(str(alice_key))
    return path


def test_init_creates_layout(
    repo: GitRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that init creates the secrets tree and registers ignore rules."""
    ops.init_repo()

    layout = SecretsLayout(repo.path)
    assert layout.keys_dir.is_dir()
    assert layout.keys_dir.stat().st_mode & 0o777 == 0o700
    assert layout.mapping_file.read_text() == ""
    assert (repo.path / ".gitignore").read_text().splitlines() == [
        ".gitsecret/keys/random_seed",
        "!*.secret",
    ]
    assert "Init created: '.gitsecret/'" in capsys.readouterr().out


def test_init_twice_aborts(
    secrets: SecretsLayout, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that re-initializing aborts with status 1."""
    capsys.readouterr()

    with pytest.raises(SystemExit) as exc_info:
        ops.init_repo()

    assert exc_info.value.code == 1
    err = capsys.readouterr().err
    assert "git-secret: abort: '.gitsecret' already initialized." in err


def test_commands_abort_outside_repository(
    mocker: MagicMock, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that every command requires a git work tree."""
    mocker.patch("git_secret.ops.GitRepo.discover", return_value=None)

    with pytest.raises(SystemExit):
        ops.list_files()

    assert "Not a git repository" in capsys.readouterr().err


def test_ignored_secrets_directory_aborts(
    secrets: SecretsLayout, repo: GitRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that a git-ignored secrets directory blocks every command."""
    repo.is_ignored.return_value = True

    with pytest.raises(SystemExit):
        ops.list_files()

    assert "is ignored by .gitignore" in capsys.readouterr().err


def test_commands_require_public_keys(
    secrets: SecretsLayout, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that file commands refuse to run with an empty keyring."""
    with pytest.raises(SystemExit):
        ops.hide_files(HideOptions())

    assert "No public keys for users found" in capsys.readouterr().err


def test_tell_adds_key_and_clears_fingerprints(
    secrets: SecretsLayout,
    tmp_path_factory: pytest.TempPathFactory,
    alice_key: pgpy.PGPKey,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Verifies that adding a recipient invalidates every stored fingerprint."""
    store = PathMappingStore(secrets.mapping_file)
    store.add("a.txt", HASH)
    key_file = tmp_path_factory.mktemp("keys") / "alice.asc"
    key_file.write_text(str(alice_key.pubkey))

    assert ops.tell([], key_file=key_file) == 1

    out = capsys.readouterr().out
    assert "Done. 1 user(s) added." in out
    assert "Hashes cleared" in out
    assert store.get_fingerprint("a.txt") is None


def test_tell_duplicate_adds_nothing(
    with_alice: SecretsLayout,
    tmp_path_factory: pytest.TempPathFactory,
    alice_key: pgpy.PGPKey,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Verifies that a known recipient is skipped and hashes are kept."""
    store = PathMappingStore(with_alice.mapping_file)
    store.add("a.txt", HASH)
    key_file = tmp_path_factory.mktemp("keys") / "alice.asc"
    key_file.write_text(str(alice_key.pubkey))

    assert ops.tell(["alice@example.com"], key_file=key_file) == 0

    assert "No new users were added." in capsys.readouterr().out
    assert store.get_fingerprint("a.txt") == HASH


def test_tell_argument_validation(
    secrets: SecretsLayout, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that tell needs an identity source and a configured email for -m."""
    with pytest.raises(SystemExit):
        ops.tell([])
    assert "You must provide an email address" in capsys.readouterr().err

    with pytest.raises(SystemExit):
        ops.tell([], use_git_email=True)
    assert "'git config user.email' is not set" in capsys.readouterr().err

    with pytest.raises(SystemExit):
        ops.tell(["a@example.com", "b@example.com"], key_file=Path("k.asc"))
    assert "Option -f (file) can only be used" in capsys.readouterr().err


def test_tell_uses_git_email(
    secrets: SecretsLayout, repo: GitRepo, bob_key: pgpy.PGPKey, mocker: MagicMock
) -> None:
    """Verifies that -m exports the key for git's configured email."""
    repo.config_value.return_value = "bob@example.com"
    mock_export = mocker.patch(
        "git_secret.keyring.export_public_key", return_value=str(bob_key.pubkey)
    )

    assert ops.tell([], use_git_email=True) == 1
    mock_export.assert_called_once_with("bob@example.com", None)


def test_remove_person(
    with_alice: SecretsLayout, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that removing a recipient deletes its key and clears hashes."""
    store = PathMappingStore(with_alice.mapping_file)
    store.add("a.txt", HASH)

    assert ops.remove_person(["nobody@example.com"]) == 0
    assert "No keys removed." in capsys.readouterr().out
    assert store.get_fingerprint("a.txt") == HASH

    assert ops.remove_person(["alice@example.com"]) == 1
    assert "Removed keys for 1 identity(ies)." in capsys.readouterr().out
    assert list(with_alice.keys_dir.iterdir()) == []
    assert store.get_fingerprint("a.txt") is None


def test_kill_person_warns(
    with_alice: SecretsLayout, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that the deprecated alias still removes keys."""
    assert ops.kill_person(["alice@example.com"]) == 1
    assert "'killperson' has been renamed" in capsys.readouterr().err


def test_who_knows(
    with_alice: SecretsLayout,
    alice_key: pgpy.PGPKey,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Verifies the short and long recipient listings."""
    capsys.readouterr()
    ops.who_knows()
    assert capsys.readouterr().out == "Alice <alice@example.com>\n"

    ops.who_knows(long=True)
    out = capsys.readouterr().out
    assert f"KeyID: {alice_key.fingerprint.keyid.lower()}" in out
    assert "Expires: never" in out


def test_add_files(
    with_alice: SecretsLayout, repo: GitRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that add tracks files, ignores them in git and counts new entries."""
    (repo.path / "config").mkdir()
    (repo.path / "config" / "db.yml").write_text("password: x\n")
    (repo.path / ".env").write_text("TOKEN=1\n")

    assert ops.add_files(["config/db.yml", "./.env", "config/db.yml"]) == 2

    store = PathMappingStore(with_alice.mapping_file)
    assert [e.file_path for e in store.list_entries()] == ["config/db.yml", ".env"]
    gitignore = (repo.path / ".gitignore").read_text().splitlines()
    assert "config/db.yml" in gitignore
    assert ".env" in gitignore
    assert "2 item(s) added." in capsys.readouterr().out


def test_add_rejects_tracked_and_missing_files(
    with_alice: SecretsLayout, repo: GitRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that git-tracked or absent files abort the add."""
    with pytest.raises(SystemExit):
        ops.add_files(["missing.txt"])
    assert "File not found: missing.txt" in capsys.readouterr().err

    (repo.path / "a.txt").write_text("a")
    repo.is_tracked.return_value = True
    with pytest.raises(SystemExit):
        ops.add_files(["a.txt"])
    assert "is tracked in git" in capsys.readouterr().err


def test_remove_files_with_clean(
    with_alice: SecretsLayout, repo: GitRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that remove -c also deletes the ciphertext."""
    store = PathMappingStore(with_alice.mapping_file)
    store.add("a.txt")
    store.add("b.txt")
    encrypted = repo.path / "a.txt.secret"
    encrypted.write_bytes(b"ciphertext")

    assert ops.remove_files(["a.txt", "nope.txt"], clean_encrypted=True) == 1

    assert not encrypted.exists()
    assert [e.file_path for e in store.list_entries()] == ["b.txt"]
    assert "Removed 1 item(s) from index." in capsys.readouterr().out


def test_list_and_clean(
    with_alice: SecretsLayout, repo: GitRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that list prints tracked paths and clean deletes ciphertext."""
    capsys.readouterr()
    store = PathMappingStore(with_alice.mapping_file)
    store.add("a.txt")
    store.add("dir/b.txt")
    (repo.path / "a.txt.secret").write_bytes(b"ciphertext")

    ops.list_files()
    assert capsys.readouterr().out == "a.txt\ndir/b.txt\n"

    assert ops.clean() == 1
    assert not (repo.path / "a.txt.secret").exists()
    assert "Clean complete." in capsys.readouterr().out


def test_hide_then_reveal(
    with_alice: SecretsLayout,
    repo: GitRepo,
    private_key_file: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Verifies the full cycle: add, hide with -d, then reveal from a key file."""
    (repo.path / "a.txt").write_bytes(b"alpha\n")
    ops.add_files(["a.txt"])

    assert ops.hide_files(HideOptions(delete_unencrypted=True)) == 1
    assert "Done. 1 of 1 files are hidden." in capsys.readouterr().out
    assert not (repo.path / "a.txt").exists()

    revealed = ops.reveal_files(
        [], RevealOptions(), private_key=str(private_key_file)
    )

    assert revealed == 1
    assert (repo.path / "a.txt").read_bytes() == b"alpha\n"
    assert "Done. 1 of 1 files are revealed." in capsys.readouterr().out


def test_hide_modified_only_skips_unchanged(
    with_alice: SecretsLayout, repo: GitRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that a second -m run encrypts nothing when no file changed."""
    for name in ("a.txt", "b.txt"):
        (repo.path / name).write_text(name)
    ops.add_files(["a.txt", "b.txt"])

    assert ops.hide_files(HideOptions(modified_only=True)) == 2
    assert ops.hide_files(HideOptions(modified_only=True)) == 0
    assert "Done. 0 of 2 files are hidden." in capsys.readouterr().out

    (repo.path / "b.txt").write_text("changed")
    assert ops.hide_files(HideOptions(modified_only=True)) == 1


def test_new_recipient_forces_reencryption(
    with_alice: SecretsLayout,
    repo: GitRepo,
    bob_key: pgpy.PGPKey,
    tmp_path_factory: pytest.TempPathFactory,
) -> None:
    """Verifies that after tell, -m re-encrypts every file for the new key."""
    for name in ("a.txt", "b.txt"):
        (repo.path / name).write_text(name)
    ops.add_files(["a.txt", "b.txt"])
    assert ops.hide_files(HideOptions(modified_only=True)) == 2

    key_file = tmp_path_factory.mktemp("keys") / "bob.asc"
    key_file.write_text(str(bob_key.pubkey))
    assert ops.tell([], key_file=key_file) == 1

    assert ops.hide_files(HideOptions(modified_only=True)) == 2
    for name in ("a.txt", "b.txt"):
        ciphertext = (repo.path / f"{name}.secret").read_bytes()
        assert crypto.decrypt(ciphertext, bob_key) == name.encode()


def test_reveal_key_from_environment(
    with_alice: SecretsLayout,
    repo: GitRepo,
    alice_key: pgpy.PGPKey,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Verifies that GPG_PRIVATE_KEY may hold the armored key itself."""
    PathMappingStore(with_alice.mapping_file).add("a.txt")
    ciphertext = crypto.encrypt(b"alpha", [alice_key.pubkey])
    (repo.path / "a.txt.secret").write_bytes(ciphertext)
    monkeypatch.setenv("GPG_PRIVATE_KEY", str(alice_key))

    assert ops.reveal_files(["a.txt"], RevealOptions()) == 1
    assert (repo.path / "a.txt").read_bytes() == b"alpha"


def test_reveal_requires_private_key(
    with_alice: SecretsLayout, capsys: pytest.CaptureFixture[str]
) -> None:
    """Verifies that reveal aborts before touching files when no key is given."""
    with pytest.raises(SystemExit):
        ops.reveal_files([], RevealOptions())

    assert "Private key must be provided" in capsys.readouterr().err


def test_reveal_wrong_passphrase_is_fatal(
    secrets: SecretsLayout,
    carol_key: pgpy.PGPKey,
    add_public_key: AddKey,
    tmp_path_factory: pytest.TempPathFactory,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Verifies that a key that cannot be unlocked aborts the whole run."""
    add_public_key(secrets.keys_dir, carol_key, "carol@example.com")
    key_file = tmp_path_factory.mktemp("gnupg") / "carol.key"
    key_file.write_text(str(carol_key))

    with pytest.raises(SystemExit):
        ops.reveal_files(
            [], RevealOptions(), private_key=str(key_file), passphrase="wrong"
        )

    assert "Failed to decrypt private key" in capsys.readouterr().err


def test_hide_uses_config_defaults(
    with_alice: SecretsLayout, repo: GitRepo
) -> None:
    """Verifies that [hide] settings apply when the flag is not given."""
    (repo.path / "git-secret.toml").write_text("[hide]\narmor = true\n")
    (repo.path / "a.txt").write_text("alpha")
    PathMappingStore(with_alice.mapping_file).add("a.txt")

    ops.hide_files(HideOptions())

    content = (repo.path / "a.txt.secret").read_bytes()
    assert content.startswith(b"-----BEGIN PGP MESSAGE-----")


def test_cat_files(
    with_alice: SecretsLayout,
    repo: GitRepo,
    alice_key: pgpy.PGPKey,
    private_key_file: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Verifies that cat prints plaintext and warns about missing ciphertext."""
    capsys.readouterr()
    (repo.path / "a.txt.secret").write_bytes(
        crypto.encrypt(b"alpha\n", [alice_key.pubkey])
    )

    ops.cat_files(["a.txt", "b.txt"], private_key=str(private_key_file))

    captured = capsys.readouterr()
    assert captured.out == "alpha\n"
    assert "Cannot find file to decrypt" in captured.err


def test_show_changes(
    with_alice: SecretsLayout,
    repo: GitRepo,
    alice_key: pgpy.PGPKey,
    private_key_file: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Verifies that changes diffs the hidden version against the working copy."""
    store = PathMappingStore(with_alice.mapping_file)
    for name, hidden_text, current in (
        ("a.txt", b"one\ntwo\n", b"one\nthree\n"),
        ("b.txt", b"same\n", b"same\n"),
    ):
        store.add(name)
        (repo.path / name).write_bytes(current)
        (repo.path / f"{name}.secret").write_bytes(
            crypto.encrypt(hidden_text, [alice_key.pubkey])
        )

    assert ops.show_changes([], private_key=str(private_key_file)) == 1

    out = capsys.readouterr().out
    assert "Changes in a.txt:" in out
    assert "-two" in out
    assert "+three" in out
    assert "No changes in b.txt" in out
