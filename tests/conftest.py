import pytest

from clipq.clipboard import ClipboardAccessor
from clipq.errors import AccessError
from clipq.storage import StorageManager


class FakeClipboard(ClipboardAccessor):
    """In-memory clipboard. ``fail`` makes every read raise AccessError."""

    def __init__(self, text: str | None = None):
        super().__init__()
        self.text = text
        self.image: bytes | None = None
        self.fail = False

    def _read_text(self) -> str | None:
        if self.fail:
            raise AccessError("clipboard unavailable")
        return self.text

    def _write_text(self, content: str) -> None:
        self.text = content

    def _read_image(self) -> bytes | None:
        return self.image

    def _write_image(self, png_bytes: bytes) -> None:
        self.image = png_bytes


@pytest.fixture
def storage():
    mgr = StorageManager(db_path=":memory:")
    yield mgr
    mgr.close()


@pytest.fixture
def file_storage(tmp_path):
    mgr = StorageManager(db_path=tmp_path / "clipboard.db")
    yield mgr
    mgr.close()


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
def add_clips(storage):
    """Insert text clips with explicit timestamps (1, 2, 3, ... by default)."""

    def _add_clips(*contents: str, start: int = 1):
        return [storage.insert_text(c, created_at=start + i) for i, c in enumerate(contents)]

    return _add_clips
