"""Tests for the click command line interface."""

import pytest
import yaml
from click.testing import CliRunner

from redis_transfer import cli as cli_module
from redis_transfer.cli import cli
from redis_transfer.exceptions import ConnectionError, StoreError

from conftest import InMemoryStore

ENV_VARS = [
    f"{prefix}_{suffix}"
    for prefix in ("SOURCE", "DESTINATION")
    for suffix in ("HOST", "PORT", "USERNAME", "PASSWORD", "DATABASE")
] + ["LOG_LEVEL", "LOG_FILE"]


class FakeConnectionManager:
    """Stands in for RedisConnectionManager, handing out in-memory stores."""

    def __init__(self, source, destination, connect_error=None):
        self.source = source
        self.destination = destination
        self.connect_error = connect_error
        self.configs = None
        self.closed = False

    def __call__(self):
        return self

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    def connect(self, source_config, destination_config, scan_count=1000):
        self.configs = (source_config, destination_config, scan_count)
        if self.connect_error:
            raise self.connect_error
        return self.source, self.destination

    def get_source_info(self):
        return {'redis_version': '7.2.4', 'role': 'master'}

    def get_target_info(self):
        return {'redis_version': '7.2.4', 'role': 'master'}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also removes values loaded from .env files
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setattr(cli_module, "setup_logging", lambda config: None)


@pytest.fixture
def manager(monkeypatch, source, destination):
    fake = FakeConnectionManager(source, destination)
    monkeypatch.setattr(cli_module, "RedisConnectionManager", fake)
    return fake


@pytest.fixture
def runner():
    return CliRunner()


def test_copy_success(runner, manager, destination, tmp_path):
    snapshot = tmp_path / "dump.txt"

    result = runner.invoke(cli, ["copy", "--no-progress", "--dump-to-file", str(snapshot)])

    assert result.exit_code == 0, result.output
    assert "Copied Keys: 2" in result.output
    assert destination.data == {b"a": (b"1", 0), b"b": (b"2", 5000)}
    assert snapshot.read_bytes() == b"a\n0\nMQ\nb\n5000000\nMg\n"
    assert manager.closed


def test_copy_with_progress_bar(runner, manager, destination):
    result = runner.invoke(cli, ["copy"])

    assert result.exit_code == 0, result.output
    assert len(destination.data) == 2


def test_copy_passes_connection_options(runner, manager):
    result = runner.invoke(cli, [
        "copy", "--no-progress",
        "--source-host", "src", "--source-port", "7001", "--source-password", "pw",
        "--destination-host", "dst", "--destination-database", "4",
        "--scan-count", "50",
    ])

    assert result.exit_code == 0, result.output
    source_config, destination_config, scan_count = manager.configs
    assert (source_config.host, source_config.port, source_config.password) == ("src", 7001, "pw")
    assert (destination_config.host, destination_config.db) == ("dst", 4)
    assert scan_count == 50


def test_env_only_fills_defaults(runner, manager, monkeypatch):
    monkeypatch.setenv("SOURCE_HOST", "env-src")
    monkeypatch.setenv("DESTINATION_HOST", "env-dst")

    result = runner.invoke(cli, ["copy", "--no-progress", "--destination-host", "flag-dst"])

    assert result.exit_code == 0, result.output
    source_config, destination_config, _ = manager.configs
    assert source_config.host == "env-src"
    assert destination_config.host == "flag-dst"


def test_dotenv_file_fills_unset_variables(runner, manager, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("SOURCE_HOST=dotenv-src\nDESTINATION_HOST=dotenv-dst\n")
    monkeypatch.setenv("DESTINATION_HOST", "shell-dst")

    result = runner.invoke(cli, ["copy", "--no-progress"])

    assert result.exit_code == 0, result.output
    source_config, destination_config, _ = manager.configs
    assert source_config.host == "dotenv-src"
    assert destination_config.host == "shell-dst"


def test_custom_env_file(runner, manager, tmp_path):
    env_file = tmp_path / "migration.env"
    env_file.write_text("SOURCE_PORT=6390\n")

    result = runner.invoke(cli, ["--env-file", str(env_file), "copy", "--no-progress"])

    assert result.exit_code == 0, result.output
    assert manager.configs[0].port == 6390


def test_invalid_env_port_exits_with_message(runner, manager, monkeypatch):
    monkeypatch.setenv("SOURCE_PORT", "abc")

    result = runner.invoke(cli, ["copy", "--no-progress"])

    assert result.exit_code == 1
    assert "SOURCE_PORT must be an integer" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert manager.configs is None


def test_config_file(runner, manager, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({'source': {'host': 'file-src'}, 'transfer': {'skip': 1}}))

    result = runner.invoke(cli, ["-c", str(path), "copy", "--no-progress"])

    assert result.exit_code == 0, result.output
    assert manager.configs[0].host == "file-src"
    assert "Skipped Keys: 1" in result.output


def test_skip(runner, manager, source, destination):
    result = runner.invoke(cli, ["copy", "--no-progress", "--skip", "1"])

    assert result.exit_code == 0, result.output
    assert list(destination.data) == [b"b"]
    assert source.calls_for(b"a") == []


def test_restore_failure_exits_nonzero_with_resume_hint(runner, manager, destination, tmp_path):
    destination.restore_errors[b"b"] = StoreError("READONLY You can't write against a read only replica.")
    snapshot = tmp_path / "dump.txt"

    result = runner.invoke(cli, ["copy", "--no-progress", "--dump-to-file", str(snapshot)])

    assert result.exit_code == 1
    assert "Error restoring key b" in result.output
    assert "--skip 1" in result.output
    assert snapshot.read_bytes().count(b"\n") == 6
    assert manager.closed


def test_retry_exhaustion_exits_nonzero(runner, manager, source):
    source.dump_failures[b"a"] = 4

    result = runner.invoke(cli, ["copy", "--no-progress", "--retry-delay", "0"])

    assert result.exit_code == 1
    assert "Error dumping key: a" in result.output


def test_connection_failure(runner, monkeypatch):
    fake = FakeConnectionManager(InMemoryStore(), InMemoryStore(),
                                 connect_error=ConnectionError("source connection error: refused"))
    monkeypatch.setattr(cli_module, "RedisConnectionManager", fake)

    result = runner.invoke(cli, ["copy", "--no-progress"])

    assert result.exit_code == 1
    assert "connection error" in result.output


def test_invalid_option(runner, manager):
    result = runner.invoke(cli, ["copy", "--skip=-3"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
    assert manager.configs is None


def test_check(runner, manager):
    result = runner.invoke(cli, ["check"])

    assert result.exit_code == 0, result.output
    assert "Redis Version: 7.2.4" in result.output


def test_init(runner, tmp_path):
    output = tmp_path / "sample.yaml"

    result = runner.invoke(cli, ["init", "-o", str(output)])

    assert result.exit_code == 0, result.output
    data = yaml.safe_load(output.read_text())
    assert set(data) == {'source', 'destination', 'transfer', 'logging'}
