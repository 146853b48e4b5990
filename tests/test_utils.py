import hashlib

import pytest

from clipq.errors import InvalidInput
from clipq.utils import (
    PASSWORD_CHARSET,
    calculate_hash,
    ensure_dirs,
    extract_emails,
    extract_phone_numbers,
    extract_urls,
    format_json,
    generate_password,
    truncate_text,
)


class TestHashing:
    @pytest.mark.parametrize("algorithm", ["sha256", "sha1", "md5"])
    def test_named_algorithms(self, algorithm):
        assert calculate_hash("abc", algorithm) == hashlib.new(algorithm, b"abc").hexdigest()

    def test_default_is_short_and_stable(self):
        digest = calculate_hash("abc", "default")
        assert len(digest) == 16
        assert digest == calculate_hash("abc", "default")
        assert digest != calculate_hash("abd", "default")

    def test_unknown_algorithm(self):
        with pytest.raises(InvalidInput, match="Unsupported hash algorithm"):
            calculate_hash("abc", "crc32")


class TestTruncateText:
    def test_short_text_unchanged(self):
        assert truncate_text("hello", 10) == "hello"

    def test_long_text_truncated(self):
        assert truncate_text("a" * 20, 10) == "aaaaaaa..."

    def test_whitespace_collapsed(self):
        assert truncate_text("a\n\tb   c", 80) == "a b c"


class TestExtractors:
    def test_urls(self):
        text = "docs at https://example.com/a?b=1 and http://x.org, not ftp://y"
        assert extract_urls(text) == ["https://example.com/a?b=1", "http://x.org,"]

    def test_emails(self):
        assert extract_emails("mail jane.doe@example.co.uk or bob@test.io!") == [
            "jane.doe@example.co.uk",
            "bob@test.io",
        ]

    def test_phone_numbers(self):
        assert extract_phone_numbers("call 555-123-4567 or 555.987.6543 or 5551112222") == [
            "555-123-4567",
            "555.987.6543",
            "5551112222",
        ]

    def test_nothing_found(self):
        assert extract_urls("plain") == []
        assert extract_emails("plain") == []
        assert extract_phone_numbers("plain") == []


class TestFormatJson:
    def test_pretty_prints(self):
        assert format_json('{"a":[1,2]}') == '{\n  "a": [\n    1,\n    2\n  ]\n}'

    def test_invalid(self):
        with pytest.raises(InvalidInput):
            format_json("{not json")


class TestGeneratePassword:
    def test_default_length(self):
        assert len(generate_password()) == 16

    def test_charset(self):
        password = generate_password(200)
        assert len(password) == 200
        assert set(password) <= set(PASSWORD_CHARSET)

    @pytest.mark.parametrize("length", [0, -5])
    def test_non_positive_length(self, length):
        with pytest.raises(InvalidInput):
            generate_password(length)


class TestEnsureDirs:
    def test_creates_db_parent(self, tmp_path):
        db = tmp_path / "a" / "b" / "clips.db"
        ensure_dirs(db)
        assert db.parent.is_dir()
        assert not db.exists()

    def test_memory_path_is_noop(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        ensure_dirs(":memory:")
        assert list(tmp_path.iterdir()) == []

    def test_default_creates_data_dir(self, tmp_path, monkeypatch):
        data_dir = tmp_path / "home"
        monkeypatch.setattr("clipq.utils.DATA_DIR", data_dir)
        ensure_dirs()
        assert data_dir.is_dir()
