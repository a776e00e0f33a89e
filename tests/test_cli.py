"""
Tests for the envelope command line.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from envelope import main
from envelope.core.discovery import STORE_PATH_ENV
from envelope.core.errors import StoreIOError
from envelope.core.store import EnvironmentStore
from envelope.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def store_path(tmp_path, monkeypatch):
    monkeypatch.delenv(STORE_PATH_ENV, raising=False)
    return tmp_path / ".envelope"


@pytest.fixture
def initialized(runner, store_path):
    result = runner.invoke(cli, ["--store", str(store_path), "init"])
    assert result.exit_code == 0, result.output
    return store_path


def invoke(runner, store_path, *args, **kwargs):
    return runner.invoke(cli, ["--store", str(store_path), *args], **kwargs)


def write_env(tmp_path: Path, content: str, name: str = "dev.env") -> Path:
    path = tmp_path / name
    path.write_text(content)
    return path


class TestInitCommand:
    """Test `envelope init`."""

    def test_creates_store(self, runner, store_path):
        """init creates the store file."""
        result = invoke(runner, store_path, "init")
        assert result.exit_code == 0
        assert "Created" in result.output
        assert len(EnvironmentStore.load(store_path)) == 0

    def test_existing_store(self, runner, initialized):
        """init twice fails with exit code 1."""
        before = initialized.read_text()
        result = invoke(runner, initialized, "init")
        assert result.exit_code == 1
        assert "already exists" in result.output
        assert initialized.read_text() == before


class TestImportCommand:
    """Test `envelope import`."""

    def test_import_file(self, runner, initialized, tmp_path):
        """Importing a file creates the environment and reports counts."""
        env_file = write_env(tmp_path, "A=1\nB=2\n")

        result = invoke(runner, initialized, "import", "dev", str(env_file))

        assert result.exit_code == 0, result.output
        assert "Created 'dev'" in result.output
        assert "added: 2" in result.output
        assert EnvironmentStore.load(initialized).list_variables("dev") == [("A", "1"), ("B", "2")]

    def test_import_overwrites_by_default(self, runner, initialized, tmp_path):
        """A second import overwrites conflicting keys."""
        invoke(runner, initialized, "import", "dev", str(write_env(tmp_path, "A=0\nC=3\n", "a.env")))

        result = invoke(runner, initialized, "import", "dev", str(write_env(tmp_path, "A=1\nB=2\n", "b.env")))

        assert result.exit_code == 0
        assert "added: 1, overwritten: 1, unchanged: 1" in result.output
        assert dict(EnvironmentStore.load(initialized).list_variables("dev")) == {
            "A": "1", "B": "2", "C": "3",
        }

    def test_keep_existing(self, runner, initialized, tmp_path):
        """--keep-existing keeps stored values."""
        invoke(runner, initialized, "import", "dev", str(write_env(tmp_path, "A=0\n", "a.env")))
        invoke(runner, initialized, "import", "dev", str(write_env(tmp_path, "A=1\nB=2\n", "b.env")),
               "--keep-existing")
        assert dict(EnvironmentStore.load(initialized).list_variables("dev")) == {"A": "0", "B": "2"}

    def test_import_from_stdin(self, runner, initialized):
        """'-' reads the .env content from stdin."""
        result = invoke(runner, initialized, "import", "dev", "-", input="A=1\n")
        assert result.exit_code == 0
        assert EnvironmentStore.load(initialized).list_variables("dev") == [("A", "1")]

    def test_malformed_input_aborts(self, runner, initialized, tmp_path):
        """A malformed line aborts the import and leaves the store alone."""
        env_file = write_env(tmp_path, "A=1\nbroken\n")

        result = invoke(runner, initialized, "import", "dev", str(env_file))

        assert result.exit_code == 1
        assert "line 2" in result.output
        assert "dev" not in EnvironmentStore.load(initialized)

    def test_skip_invalid(self, runner, initialized, tmp_path):
        """--skip-invalid imports the valid lines and warns about the rest."""
        env_file = write_env(tmp_path, "A=1\nbroken\nB=2\n")

        result = invoke(runner, initialized, "import", "dev", str(env_file), "--skip-invalid")

        assert result.exit_code == 0
        assert "Skipped line 2" in result.output
        assert EnvironmentStore.load(initialized).list_variables("dev") == [("A", "1"), ("B", "2")]

    def test_missing_input_file(self, runner, initialized, tmp_path):
        """An unreadable input file is exit code 1."""
        result = invoke(runner, initialized, "import", "dev", str(tmp_path / "nope.env"))
        assert result.exit_code == 1
        assert "cannot read" in result.output

    def test_without_store(self, runner, store_path, tmp_path):
        """Commands need an initialized store."""
        env_file = write_env(tmp_path, "A=1\n")
        result = invoke(runner, store_path, "import", "dev", str(env_file))
        assert result.exit_code == 1
        assert "envelope init" in result.output


class TestListCommand:
    """Test `envelope list`."""

    def test_lists_environments(self, runner, initialized, tmp_path):
        """list shows each environment with its variable count."""
        invoke(runner, initialized, "import", "dev", str(write_env(tmp_path, "A=1\nB=2\n")))

        result = invoke(runner, initialized, "list")

        assert result.exit_code == 0
        assert "dev" in result.output
        assert "2" in result.output

    def test_empty_store(self, runner, initialized):
        """An empty store says so."""
        result = invoke(runner, initialized, "list")
        assert result.exit_code == 0
        assert "No environments yet" in result.output

    def test_lists_variables(self, runner, initialized, tmp_path):
        """list ENV shows keys and values."""
        invoke(runner, initialized, "import", "dev", str(write_env(tmp_path, "API_URL=http://api\n")))

        result = invoke(runner, initialized, "list", "dev")

        assert result.exit_code == 0
        assert "API_URL" in result.output
        assert "http://api" in result.output

    def test_truncate(self, runner, initialized, tmp_path):
        """--truncate shortens displayed values."""
        invoke(runner, initialized, "import", "dev", str(write_env(tmp_path, "TOKEN=abcdefghijkl\n")))

        result = invoke(runner, initialized, "list", "dev", "--truncate", "4")

        assert "abcd…" in result.output
        assert "abcdefghijkl" not in result.output

    def test_unknown_environment(self, runner, initialized):
        """Listing an unknown environment is exit code 1."""
        result = invoke(runner, initialized, "list", "nope")
        assert result.exit_code == 1
        assert "does not exist" in result.output


class TestDuplicateCommand:
    """Test `envelope duplicate`."""

    def test_duplicate(self, runner, initialized):
        """duplicate copies an environment."""
        invoke(runner, initialized, "add", "dev", "A", "1")

        result = invoke(runner, initialized, "duplicate", "dev", "staging")

        assert result.exit_code == 0
        assert EnvironmentStore.load(initialized).list_variables("staging") == [("A", "1")]

    def test_missing_source(self, runner, initialized):
        """Duplicating an unknown environment is exit code 1."""
        result = invoke(runner, initialized, "duplicate", "nope", "x")
        assert result.exit_code == 1

    def test_existing_target(self, runner, initialized):
        """Duplicating onto an existing name is exit code 1."""
        invoke(runner, initialized, "add", "dev", "A", "1")
        invoke(runner, initialized, "add", "prod", "A", "2")
        result = invoke(runner, initialized, "duplicate", "dev", "prod")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_usage_error(self, runner, initialized):
        """Missing arguments are a usage error (exit code 2)."""
        result = invoke(runner, initialized, "duplicate", "dev")
        assert result.exit_code == 2


class TestExportCommand:
    """Test `envelope export`."""

    def test_export_round_trips(self, runner, initialized, tmp_path):
        """Exported text imports back to the same variables."""
        invoke(runner, initialized, "import", "dev",
               str(write_env(tmp_path, 'A=1\nMSG=" hi there "\n')))

        result = invoke(runner, initialized, "export", "dev")

        assert result.exit_code == 0
        assert result.output == 'A=1\nMSG=" hi there "\n'


class TestDeleteCommands:
    """Test `envelope drop` and `envelope delete`."""

    def test_drop(self, runner, initialized):
        """drop removes an environment."""
        invoke(runner, initialized, "add", "dev", "A", "1")
        result = invoke(runner, initialized, "drop", "dev")
        assert result.exit_code == 0
        assert "dev" not in EnvironmentStore.load(initialized)

    def test_drop_missing_is_not_an_error(self, runner, initialized):
        """Dropping an unknown environment still exits 0."""
        result = invoke(runner, initialized, "drop", "nope")
        assert result.exit_code == 0
        assert "does not exist" in result.output

    def test_delete_key_everywhere(self, runner, initialized):
        """delete without --env removes the key from all environments."""
        invoke(runner, initialized, "add", "dev", "A", "1")
        invoke(runner, initialized, "add", "prod", "A", "2")

        result = invoke(runner, initialized, "delete", "A")

        assert result.exit_code == 0
        store = EnvironmentStore.load(initialized)
        assert store.list_variables("dev") == []
        assert store.list_variables("prod") == []

    def test_delete_key_in_one_environment(self, runner, initialized):
        """delete --env only touches that environment."""
        invoke(runner, initialized, "add", "dev", "A", "1")
        invoke(runner, initialized, "add", "prod", "A", "2")

        invoke(runner, initialized, "delete", "A", "--env", "dev")

        store = EnvironmentStore.load(initialized)
        assert store.list_variables("dev") == []
        assert store.list_variables("prod") == [("A", "2")]


class TestCheckCommand:
    """Test `envelope check`."""

    def test_reports_active_environments(self, runner, initialized, monkeypatch):
        """Only environments whose variables all match are listed."""
        store = EnvironmentStore.load(initialized)
        store.import_pairs("dev", [("ENVELOPE_TEST_A", "1"), ("ENVELOPE_TEST_B", "2")])
        store.import_pairs("prod", [("ENVELOPE_TEST_A", "1"), ("ENVELOPE_TEST_B", "9")])
        store.save()
        monkeypatch.setenv("ENVELOPE_TEST_A", "1")
        monkeypatch.setenv("ENVELOPE_TEST_B", "2")

        result = invoke(runner, initialized, "check")

        assert result.exit_code == 0
        assert "dev" in result.output
        assert "prod" not in result.output

    def test_no_active_environments(self, runner, initialized, monkeypatch):
        """A message is shown when nothing is active."""
        monkeypatch.delenv("ENVELOPE_TEST_A", raising=False)
        invoke(runner, initialized, "add", "dev", "ENVELOPE_TEST_A", "1")

        result = invoke(runner, initialized, "check")

        assert result.exit_code == 0
        assert "No active environments" in result.output

    def test_details(self, runner, initialized, monkeypatch):
        """--details shows inactive environments and what differs."""
        monkeypatch.setenv("ENVELOPE_TEST_A", "other")
        invoke(runner, initialized, "add", "dev", "ENVELOPE_TEST_A", "1")

        result = invoke(runner, initialized, "check", "--details")

        assert result.exit_code == 0
        assert "Inactive" in result.output
        assert "ENVELOPE_TEST_A" in result.output

    def test_corrupt_store(self, runner, store_path):
        """A corrupt store is exit code 1."""
        store_path.write_text(json.dumps({"format": "something-else"}))
        result = invoke(runner, store_path, "check")
        assert result.exit_code == 1
        assert "corrupt" in result.output


class TestStdin:
    """Test pretty-printing piped input."""

    def test_pretty_prints_pairs(self, runner, store_path):
        """Piped .env content is shown without a store."""
        result = invoke(runner, store_path, input="GREETING=hello\n")
        assert result.exit_code == 0
        assert "GREETING" in result.output
        assert "hello" in result.output
        assert not store_path.exists()

    def test_malformed_stdin(self, runner, store_path):
        """Malformed piped input is exit code 1."""
        result = invoke(runner, store_path, input="nope\n")
        assert result.exit_code == 1
        assert "line 1" in result.output


class TestMarkupInNames:
    """Test names that look like rich markup."""

    def test_import_into_markup_like_name(self, runner, initialized, tmp_path):
        """A name like '[/bold]' is printed literally."""
        env_file = write_env(tmp_path, "A=1\n")

        result = invoke(runner, initialized, "import", "[/bold]", str(env_file))

        assert result.exit_code == 0, result.output
        assert "[/bold]" in result.output
        assert EnvironmentStore.load(initialized).list_variables("[/bold]") == [("A", "1")]

    def test_commands_echo_markup_like_names(self, runner, initialized):
        """add, list, duplicate, delete and drop all print such names safely."""
        commands = [
            ["add", "[red]", "[/x]", "1"],
            ["list", "[red]"],
            ["duplicate", "[red]", "[/red]"],
            ["delete", "[/x]", "--env", "[red]"],
            ["delete", "[/y]"],
            ["drop", "[/red]"],
            ["drop", "[/red]"],
        ]
        for args in commands:
            result = invoke(runner, initialized, *args)
            assert result.exit_code == 0, (args, result.output)

    def test_check_with_markup_like_name(self, runner, initialized):
        """check lists an active '[/x]' environment without crashing."""
        store = EnvironmentStore.load(initialized)
        store.import_pairs("[/x]", [])
        store.save()

        result = invoke(runner, initialized, "check")
        assert result.exit_code == 0, result.output
        assert "[/x]" in result.output

        result = invoke(runner, initialized, "check", "--details")
        assert result.exit_code == 0, result.output
        assert "[/x]" in result.output

    def test_error_with_markup_like_name(self, runner, initialized):
        """Error messages quote such names literally."""
        result = invoke(runner, initialized, "list", "[/bold]")
        assert result.exit_code == 1
        assert "[/bold]" in result.output


class TestReadInput:
    """Test reading import input."""

    def test_undecodable_stdin_is_an_io_error(self, monkeypatch):
        """Bad bytes on stdin become a StoreIOError, not a traceback."""
        class BadStream:
            def read(self):
                raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        monkeypatch.setattr(main.click, "get_text_stream", lambda name: BadStream())

        with pytest.raises(StoreIOError, match="stdin"):
            main._read_input("-")

    def test_undecodable_stdin_exit_code(self, runner, initialized, monkeypatch):
        """import ENV - with bad stdin exits with status 1."""
        def bad_read(filename):
            raise StoreIOError("cannot read stdin: invalid start byte")

        monkeypatch.setattr(main, "_read_input", bad_read)

        result = invoke(runner, initialized, "import", "dev", "-")
        assert result.exit_code == 1
        assert "cannot read stdin" in result.output
