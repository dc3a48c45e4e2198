"""Tests for CLI commands."""

from __future__ import annotations

import json
import uuid as uuid_lib
from pathlib import Path

import pytest
from click.testing import CliRunner
from keyring.errors import PasswordDeleteError

from byostorage.client.cli import (
    channels,
    cli,
    credentials,
    get_cache_path,
    get_config_file,
    save_config,
)
from byostorage.client.cli.config import build_dropbox_config
from byostorage.client.memory import MemoryBackend

RECORD_ID = "12345678-1234-5678-1234-567812345678"


class FakeKeyring:
    """In-memory replacement for the keyring module."""

    def __init__(self) -> None:
        self.passwords: dict[tuple[str, str], str] = {}

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def get_password(self, service: str, username: str) -> str | None:
        return self.passwords.get((service, username))

    def delete_password(self, service: str, username: str) -> None:
        if (service, username) not in self.passwords:
            raise PasswordDeleteError("Password not found")
        del self.passwords[(service, username)]


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> FakeKeyring:
    fake = FakeKeyring()
    monkeypatch.setattr(credentials, "keyring", fake)
    monkeypatch.delenv(credentials.TOKEN_ENV, raising=False)
    return fake


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the config directory at a temporary folder."""
    monkeypatch.setenv("BYOSTORAGE_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def backend(monkeypatch: pytest.MonkeyPatch) -> MemoryBackend:
    """Serve every command from one in-memory backend."""
    memory = MemoryBackend()
    monkeypatch.setattr(channels, "make_backend", lambda: memory)
    return memory


@pytest.fixture
def keyed(runner: CliRunner, fake_keyring: FakeKeyring, home: Path, backend: MemoryBackend) -> None:
    """Log in and generate a key pair."""
    assert runner.invoke(cli, ["login", "--token", "token123"]).exit_code == 0
    assert runner.invoke(cli, ["keygen"]).exit_code == 0


class TestAccountCommands:
    """Tests for login, logout and keygen."""

    def test_login_stores_token(self, runner: CliRunner, fake_keyring: FakeKeyring, home: Path) -> None:
        result = runner.invoke(cli, ["login", "--token", " token123 "])

        assert result.exit_code == 0
        assert credentials.load_token() == "token123"

    def test_login_prompts_for_token(self, runner: CliRunner, fake_keyring: FakeKeyring, home: Path) -> None:
        result = runner.invoke(cli, ["login"], input="secret\n")

        assert result.exit_code == 0
        assert "secret" not in result.output
        assert credentials.load_token() == "secret"

    def test_login_root_folder(self, runner: CliRunner, fake_keyring: FakeKeyring, home: Path) -> None:
        result = runner.invoke(cli, ["login", "--token", "t", "--root-folder", "/apps/mine"])

        assert result.exit_code == 0
        assert json.loads(get_config_file().read_text())["root_folder"] == "/apps/mine"

    def test_logout(self, runner: CliRunner, fake_keyring: FakeKeyring, home: Path) -> None:
        """Logout should forget the token and tolerate being run twice."""
        runner.invoke(cli, ["login", "--token", "t"])

        assert runner.invoke(cli, ["logout"]).exit_code == 0
        assert runner.invoke(cli, ["logout"]).exit_code == 0
        with pytest.raises(credentials.CredentialsError):
            credentials.load_token()

    def test_token_from_environment(
        self, fake_keyring: FakeKeyring, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(credentials.TOKEN_ENV, "from-env")
        assert credentials.load_token() == "from-env"

    def test_keygen(self, runner: CliRunner, fake_keyring: FakeKeyring, home: Path) -> None:
        result = runner.invoke(cli, ["keygen"])

        assert result.exit_code == 0
        public_key = json.loads(get_config_file().read_text())["public_key"]
        assert f"Public key: {public_key}" in result.output
        assert len(credentials.load_seed()) == 32

    def test_keygen_refuses_to_replace(self, runner: CliRunner, fake_keyring: FakeKeyring, home: Path) -> None:
        """A second keygen should need --force."""
        runner.invoke(cli, ["keygen"])
        seed = credentials.load_seed()

        result = runner.invoke(cli, ["keygen"])
        assert result.exit_code == 1
        assert credentials.load_seed() == seed

        result = runner.invoke(cli, ["keygen", "--force"])
        assert result.exit_code == 0
        assert credentials.load_seed() != seed


class TestChannelCommands:
    """Tests for directory, record and signature commands."""

    def test_requires_login(self, runner: CliRunner, fake_keyring: FakeKeyring, home: Path) -> None:
        """Commands needing the backend should fail cleanly without a token."""
        result = runner.invoke(cli, ["mkdir", "groceries"])

        assert result.exit_code == 1
        assert "Not logged in" in result.output

    def test_requires_key(
        self, runner: CliRunner, fake_keyring: FakeKeyring, home: Path, backend: MemoryBackend
    ) -> None:
        result = runner.invoke(cli, ["mkdir", "groceries"])

        assert result.exit_code == 1
        assert "keygen" in result.output

    def test_mkdir_is_stable(self, runner: CliRunner, keyed: None) -> None:
        first = runner.invoke(cli, ["mkdir", "groceries"])
        second = runner.invoke(cli, ["mkdir", "groceries"])

        assert first.exit_code == 0
        assert first.output.strip().startswith("memory://")
        assert first.output == second.output

    def test_post_and_subscribe(self, runner: CliRunner, keyed: None) -> None:
        """Posted records should show up in the subscription backlog."""
        result = runner.invoke(cli, ["post", "groceries", "--uuid", RECORD_ID, "--data", "milk"])
        assert result.exit_code == 0
        record_id, shared_link = result.output.split()
        assert record_id == RECORD_ID

        result = runner.invoke(cli, ["subscribe", "groceries", shared_link, "--backlog-only"])

        assert result.exit_code == 0
        assert result.output.splitlines() == [f"update {RECORD_ID} milk", "backlog-complete"]

    def test_post_from_file(self, runner: CliRunner, keyed: None, tmp_path: Path) -> None:
        payload = tmp_path / "payload.txt"
        payload.write_text("eggs")

        result = runner.invoke(cli, ["post", "groceries", "--file", str(payload)])

        assert result.exit_code == 0
        record_id, _ = result.output.split()
        uuid_lib.UUID(record_id)

    def test_post_needs_one_payload(self, runner: CliRunner, keyed: None) -> None:
        result = runner.invoke(cli, ["post", "groceries"])
        assert result.exit_code == 2
        assert "exactly one" in result.output

    def test_post_invalid_uuid(self, runner: CliRunner, keyed: None) -> None:
        result = runner.invoke(cli, ["post", "groceries", "--uuid", "nope", "--data", "x"])
        assert result.exit_code == 2

    def test_delete(self, runner: CliRunner, keyed: None) -> None:
        result = runner.invoke(cli, ["post", "groceries", "--uuid", RECORD_ID, "--data", "milk"])
        _, shared_link = result.output.split()

        result = runner.invoke(cli, ["delete", "groceries", RECORD_ID])
        assert result.exit_code == 0

        result = runner.invoke(cli, ["subscribe", "groceries", shared_link, "--backlog-only"])
        assert result.output.splitlines() == ["backlog-complete"]

    def test_delete_missing_record(self, runner: CliRunner, keyed: None) -> None:
        runner.invoke(cli, ["mkdir", "groceries"])

        result = runner.invoke(cli, ["delete", "groceries", RECORD_ID])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_sign_and_pubkey(self, runner: CliRunner, keyed: None) -> None:
        result = runner.invoke(cli, ["sign", "groceries"])
        assert result.exit_code == 0
        shared_link = result.output.strip()

        result = runner.invoke(cli, ["pubkey", "groceries", shared_link])

        assert result.exit_code == 0
        public_key = json.loads(get_config_file().read_text())["public_key"]
        assert result.output.strip() == public_key

    def test_pubkey_unsigned(self, runner: CliRunner, keyed: None) -> None:
        shared_link = runner.invoke(cli, ["mkdir", "groceries"]).output.strip()

        result = runner.invoke(cli, ["pubkey", "groceries", shared_link])

        assert result.exit_code == 1
        assert "Signature not found" in result.output

    def test_subscribe_wrong_channel(self, runner: CliRunner, keyed: None) -> None:
        result = runner.invoke(cli, ["post", "groceries", "--data", "milk"])
        _, shared_link = result.output.split()

        result = runner.invoke(cli, ["subscribe", "chores", shared_link, "--backlog-only"])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_subscribe_timeout(self, runner: CliRunner, keyed: None) -> None:
        """A timed-out subscription should exit cleanly."""
        shared_link = runner.invoke(cli, ["mkdir", "groceries"]).output.strip()

        result = runner.invoke(cli, ["subscribe", "groceries", shared_link, "--timeout", "0.2"])

        assert result.exit_code == 0
        assert result.output.splitlines() == ["backlog-complete"]

    def test_rmdir(self, runner: CliRunner, keyed: None, backend: MemoryBackend) -> None:
        shared_link = runner.invoke(cli, ["mkdir", "groceries"]).output.strip()

        result = runner.invoke(cli, ["rmdir", "groceries", "--yes"])

        assert result.exit_code == 0
        result = runner.invoke(cli, ["subscribe", "groceries", shared_link, "--backlog-only"])
        assert result.exit_code == 1


class TestConfigFile:
    """Tests for the CLI configuration file."""

    def test_build_dropbox_config_defaults(self, home: Path) -> None:
        config = build_dropbox_config("token123")

        assert config.access_token == "token123"
        assert config.root_folder == "/byo-storage"
        assert config.longpoll_timeout == 90

    def test_build_dropbox_config_from_file(self, home: Path) -> None:
        save_config({"root_folder": "apps/mine", "longpoll_timeout": "120"})

        config = build_dropbox_config("token123")

        assert config.root_folder == "/apps/mine"
        assert config.longpoll_timeout == 120

    def test_cache_path_in_config_dir(self, home: Path) -> None:
        assert get_cache_path() == home / "cache.db"
