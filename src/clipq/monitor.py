import logging
import threading
from collections.abc import Callable

from clipq.clipboard import ClipboardAccessor
from clipq.config import DEFAULT_MAX_CLIPS, POLL_INTERVAL
from clipq.errors import AccessError, ClipqError
from clipq.models import Clip
from clipq.storage import StorageManager

logger = logging.getLogger(__name__)


class ClipboardMonitor:
    """Polls the clipboard and records every genuine text change.

    ``last_seen`` belongs to this monitor alone. It starts out empty and is
    only advanced by non-blank content, so a value copied again after some
    whitespace is still treated as unchanged.
    """

    def __init__(
        self,
        storage: StorageManager,
        clipboard: ClipboardAccessor,
        max_clips: int = DEFAULT_MAX_CLIPS,
        on_change: Callable[[Clip], None] | None = None,
    ):
        self._storage = storage
        self._clipboard = clipboard
        self._max_clips = max_clips
        self._on_change = on_change
        self.last_seen: str | None = None

    def check_clipboard(self) -> Clip | None:
        """Run one poll. Returns the stored clip, or None when nothing was stored."""
        try:
            text = self._clipboard.read_text()
        except AccessError:
            logger.exception("Error reading clipboard")
            return None

        if text is None or text == self.last_seen:
            return None
        if not text.strip():
            return None

        self.last_seen = text
        try:
            clip = self._storage.insert_text(text)
        except ClipqError:
            logger.exception("Failed to add clip to database")
            return None

        if self._on_change:
            try:
                self._on_change(clip)
            except Exception:
                logger.exception("Clip-added callback failed")

        try:
            self._storage.trim(self._max_clips)
        except ClipqError:
            logger.exception("Failed to trim history")
        return clip

    def run(self, stop_event: threading.Event, interval: float = POLL_INTERVAL) -> None:
        """Poll until ``stop_event`` is set. A tick in progress always completes."""
        logger.info("Monitoring clipboard every %.2fs (max_clips=%d)", interval, self._max_clips)
        while not stop_event.is_set():
            self.check_clipboard()
            stop_event.wait(interval)
        logger.info("Clipboard monitor stopped")
