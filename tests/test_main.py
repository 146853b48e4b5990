"""Tests for the clipq command line."""

import hashlib
import json
from unittest.mock import patch

import pytest

from clipq.__main__ import main, resolve_clip_id
from clipq.errors import InvalidInput
from clipq.models import ClipKind
from clipq.storage import StorageManager


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "clipq.toml"
    path.write_text(f'max_clips = 3\ndatabase_path = "{tmp_path / "data" / "clips.db"}"\n')
    return path


@pytest.fixture
def cli(config_file, clipboard):
    """Run ``clipq`` against a private config, database and clipboard."""

    def _cli(*args: str) -> int:
        with patch("clipq.__main__.get_clipboard", return_value=clipboard):
            return main(["--config", str(config_file), *args])

    return _cli


@pytest.fixture
def db(tmp_path):
    def _open() -> StorageManager:
        return StorageManager(tmp_path / "data" / "clips.db")

    return _open


class TestAddAndList:
    def test_add_writes_clipboard_and_history(self, cli, clipboard, capsys):
        assert cli("add", "hello") == 0
        assert clipboard.text == "hello"
        assert "Added to clipboard: hello" in capsys.readouterr().out

    def test_list_newest_first(self, cli, capsys):
        cli("add", "first")
        cli("add", "second")
        capsys.readouterr()
        assert cli("list") == 0
        assert capsys.readouterr().out == "1: second\n2: first\n"

    def test_add_respects_max_clips(self, cli, db):
        for i in range(5):
            cli("add", f"item {i}")
        with db() as storage:
            assert storage.count() == 3

    def test_list_empty(self, cli, capsys):
        assert cli("list") == 0
        assert capsys.readouterr().out == ""

    def test_config_after_subcommand(self, config_file, clipboard, capsys):
        with patch("clipq.__main__.get_clipboard", return_value=clipboard):
            assert main(["add", "x", "--config", str(config_file)]) == 0
            capsys.readouterr()
            assert main(["list", "-c", str(config_file)]) == 0
        assert capsys.readouterr().out == "1: x\n"


class TestSearch:
    def test_found(self, cli, capsys):
        cli("add", "alpha beta")
        cli("add", "gamma")
        capsys.readouterr()
        assert cli("search", "beta") == 0
        out = capsys.readouterr().out
        assert "Found 1 clips matching 'beta':" in out
        assert "1: alpha beta" in out

    def test_not_found(self, cli, capsys):
        assert cli("search", "nothing") == 0
        assert "No clips found matching 'nothing'" in capsys.readouterr().out


class TestPick:
    def test_empty_history(self, cli, capsys):
        assert cli("pick") == 0
        assert "No clipboard history found" in capsys.readouterr().out

    def test_selection_copied(self, cli, clipboard, db, capsys):
        cli("add", "chosen")
        clipboard.text = None
        with db() as storage:
            clip = storage.recent(1)[0]
        with patch("clipq.picker.show_picker", return_value=clip):
            assert cli("pick") == 0
        assert clipboard.text == "chosen"
        assert "Pasted: chosen" in capsys.readouterr().out

    def test_cancelled(self, cli, clipboard):
        cli("add", "x")
        clipboard.text = None
        with patch("clipq.picker.show_picker", return_value=None):
            assert cli("pick") == 0
        assert clipboard.text is None


class TestTags:
    def test_tag_by_index(self, cli, capsys):
        cli("add", "older")
        cli("add", "newer")
        assert cli("tag", "2", "work") == 0
        capsys.readouterr()
        cli("tags", "work")
        assert capsys.readouterr().out == "1: older [work]\n"

    def test_tags_lists_everything(self, cli, capsys):
        cli("add", "a")
        cli("add", "b")
        cli("tag", "1", "x")
        capsys.readouterr()
        cli("tags")
        assert capsys.readouterr().out == "1: b [x]\n2: a\n"

    def test_untag(self, cli, db):
        cli("add", "a")
        cli("tag", "1", "x")
        assert cli("untag", "1", "x") == 0
        with db() as storage:
            assert storage.tags_for(storage.recent(1)[0].id) == set()
            assert storage.list_tags() == ["x"]

    def test_invalid_index(self, cli, capsys):
        cli("add", "only")
        assert cli("tag", "5", "x") == 1
        assert "Invalid clip index: 5" in capsys.readouterr().err

    def test_unknown_id(self, cli, capsys):
        assert cli("tag", "no-such-id", "x") == 1
        assert capsys.readouterr().err.startswith("Error: ")


class TestClearAndStats:
    def test_clear(self, cli, db, capsys):
        cli("add", "a")
        assert cli("clear") == 0
        assert "Clipboard history cleared" in capsys.readouterr().out
        with db() as storage:
            assert storage.count() == 0

    def test_stats(self, cli, capsys, tmp_path):
        cli("add", "a")
        cli("file", str(tmp_path / "clipq.toml"))
        capsys.readouterr()
        assert cli("stats") == 0
        out = capsys.readouterr().out
        assert "Total clips: 2" in out
        assert "Text clips: 1" in out
        assert "File clips: 1" in out

    def test_stats_empty(self, cli, capsys):
        cli("stats")
        out = capsys.readouterr().out
        assert "Total clips: 0" in out
        assert "Oldest clip: -" in out


class TestFile:
    def test_adds_absolute_path(self, cli, clipboard, db, tmp_path, monkeypatch):
        (tmp_path / "notes.txt").write_text("n")
        monkeypatch.chdir(tmp_path)
        assert cli("file", "notes.txt") == 0
        expected = str((tmp_path / "notes.txt").resolve())
        assert clipboard.text == expected
        with db() as storage:
            clip = storage.recent(1)[0]
        assert clip.kind == ClipKind.FILE
        assert clip.file_path == expected

    def test_missing_file(self, cli, capsys, tmp_path):
        assert cli("file", str(tmp_path / "nope.txt")) == 1
        assert "File not found" in capsys.readouterr().err

    def test_disabled(self, config_file, cli, capsys, tmp_path):
        config_file.write_text(config_file.read_text() + "enable_file_clips = false\n")
        assert cli("file", str(config_file)) == 1
        assert "File clips are disabled" in capsys.readouterr().err


class TestTransfer:
    def test_export_then_import(self, cli, db, tmp_path, capsys):
        cli("add", "one")
        cli("add", "two")
        out = tmp_path / "dump.json"
        assert cli("export", "-o", str(out)) == 0
        assert [d["content"] for d in json.loads(out.read_text())] == ["two", "one"]

        cli("clear")
        capsys.readouterr()
        assert cli("import", str(out)) == 0
        assert "Imported 2 clips" in capsys.readouterr().out
        with db() as storage:
            assert [c.content for c in storage.all()] == ["two", "one"]

    def test_bad_format(self, cli, tmp_path, capsys):
        assert cli("export", "-o", str(tmp_path / "x"), "-f", "yaml") == 1
        assert "Unsupported format" in capsys.readouterr().err

    def test_backup_and_restore(self, cli, db, tmp_path):
        cli("add", "keep me")
        backup = tmp_path / "backup.db"
        assert cli("backup", "-o", str(backup)) == 0
        cli("clear")
        assert cli("restore", str(backup)) == 0
        with db() as storage:
            assert [c.content for c in storage.all()] == ["keep me"]

    def test_restore_missing(self, cli, tmp_path):
        assert cli("restore", str(tmp_path / "absent.db")) == 1

    def test_restore_garbage_keeps_history(self, cli, db, tmp_path, capsys):
        cli("add", "keep me")
        bogus = tmp_path / "notes.txt"
        bogus.write_text("not a database at all\n" * 20)
        assert cli("restore", str(bogus)) == 1
        assert "not a clipq database" in capsys.readouterr().err
        with db() as storage:
            assert [c.content for c in storage.all()] == ["keep me"]


class TestConfigCommand:
    def test_shows_existing(self, cli, capsys, config_file):
        assert cli("config") == 0
        out = capsys.readouterr().out
        assert f"Configuration loaded from: {config_file}" in out
        assert "max_clips = 3" in out

    def test_creates_default(self, tmp_path, capsys):
        path = tmp_path / "new.toml"
        assert main(["config", "--config", str(path)]) == 0
        assert "Creating default configuration" in capsys.readouterr().out
        assert "max_clips = 100" in path.read_text()

    def test_invalid_config_file(self, config_file, cli, capsys):
        config_file.write_text("max_clips = -4\n")
        assert cli("list") == 1
        assert "max_clips" in capsys.readouterr().err


class TestPluginCommands:
    def test_plugins_listing(self, cli, capsys):
        assert cli("plugins") == 0
        out = capsys.readouterr().out
        assert "url_extractor - " in out
        assert "[on_clip_add] (enabled)" in out
        assert "[manual] (enabled)" in out

    def test_run_builtin(self, cli, capsys):
        assert cli("plugin", "url_extractor", "go to https://example.com") == 0
        assert capsys.readouterr().out == "https://example.com\n"

    def test_nonexistent(self, cli, capsys):
        assert cli("plugin", "nonexistent", "x") == 1
        assert "nonexistent" in capsys.readouterr().err

    def test_configured_plugin_disabled(self, config_file, cli, capsys):
        config_file.write_text(
            config_file.read_text() + '\n[[plugins]]\nname = "off"\ncommand = "cat"\nenabled = false\n'
        )
        assert cli("plugin", "off", "x") == 1
        assert capsys.readouterr().err.startswith("Error: ")


class TestUtilityCommands:
    def test_extract_urls(self, cli, capsys):
        assert cli("extract-urls", "a https://a.io b http://b.io") == 0
        assert capsys.readouterr().out == "Found 2 URLs:\n  https://a.io\n  http://b.io\n"

    def test_extract_urls_none(self, cli, capsys):
        cli("extract-urls", "plain")
        assert "No URLs found in text" in capsys.readouterr().out

    def test_extract_emails(self, cli, capsys):
        assert cli("extract-emails", "ping ana@example.org or bo@test.io") == 0
        assert capsys.readouterr().out == "Found 2 email addresses:\n  ana@example.org\n  bo@test.io\n"

    def test_extract_emails_none(self, cli, capsys):
        cli("extract-emails", "nobody here")
        assert "No email addresses found in text" in capsys.readouterr().out

    def test_extract_phones(self, cli, capsys):
        assert cli("extract-phones", "call 555-123-4567 today") == 0
        assert capsys.readouterr().out == "Found 1 phone numbers:\n  555-123-4567\n"

    def test_format_json(self, cli, capsys):
        assert cli("format-json", '{"a":1}') == 0
        assert capsys.readouterr().out == '{\n  "a": 1\n}\n'

    def test_format_json_invalid(self, cli, capsys):
        assert cli("format-json", "{nope") == 1
        assert "not valid JSON" in capsys.readouterr().err

    def test_generate_password(self, cli, capsys):
        assert cli("generate-password", "-l", "24") == 0
        out = capsys.readouterr().out
        assert out.startswith("Generated password: ")
        assert len(out.strip().split(": ", 1)[1]) == 24

    def test_hash(self, cli, capsys):
        assert cli("hash", "abc") == 0
        assert capsys.readouterr().out == f"sha256 hash: {hashlib.sha256(b'abc').hexdigest()}\n"

    def test_hash_unknown_algorithm(self, cli, capsys):
        assert cli("hash", "abc", "-a", "crc") == 1
        assert "Unsupported hash algorithm" in capsys.readouterr().err


class TestDaemonCommand:
    @patch("clipq.__main__.logging.basicConfig")
    @patch("clipq.__main__.ensure_dirs")
    @patch("clipq.daemon.Daemon")
    def test_starts_daemon(self, mock_daemon, _mock_dirs, _mock_logging, cli, tmp_path):
        with patch("clipq.__main__.LOG_PATH", tmp_path / "clipq.log"):
            assert cli("daemon", "-m", "9") == 0
        settings = mock_daemon.call_args.args[0]
        assert settings.max_clips == 3
        assert mock_daemon.call_args.kwargs["max_clips"] == 9
        mock_daemon.return_value.run.assert_called_once()


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2


class TestResolveClipId:
    def test_index(self, add_clips, storage):
        clips = add_clips("old", "new")
        assert resolve_clip_id(storage, "1") == clips[1].id
        assert resolve_clip_id(storage, "2") == clips[0].id

    def test_literal_id(self, storage):
        assert resolve_clip_id(storage, "abc-123") == "abc-123"

    @pytest.mark.parametrize("ref", ["0", "3"])
    def test_out_of_range(self, add_clips, storage, ref):
        add_clips("old", "new")
        with pytest.raises(InvalidInput, match=f"Invalid clip index: {ref}"):
            resolve_clip_id(storage, ref)
