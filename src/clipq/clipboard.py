"""Access to the system clipboard.

macOS goes through the native pasteboard (PyObjC); everywhere else text is
handled by pyperclip and images are read with Pillow's ImageGrab. Each
accessor serialises its own calls with a lock so the monitor thread and a
foreground command never interleave on the same clipboard handle.
"""

import io
import logging
import sys
import threading

import pyperclip
from PIL import Image, ImageGrab

from clipq.errors import AccessError

logger = logging.getLogger(__name__)


class ClipboardAccessor:
    """Base class for clipboard backends.

    ``read_text`` returns ``None`` when the clipboard holds no text; only a
    genuine platform failure raises :class:`AccessError`.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.last_written: str | None = None

    def read_text(self) -> str | None:
        with self._lock:
            return self._read_text()

    def write_text(self, content: str) -> None:
        with self._lock:
            self._write_text(content)
            self.last_written = content

    def read_image(self) -> bytes | None:
        """Return the clipboard image as PNG bytes, or ``None``."""
        with self._lock:
            return self._read_image()

    def write_image(self, png_bytes: bytes) -> None:
        with self._lock:
            self._write_image(png_bytes)

    def _read_text(self) -> str | None:
        raise NotImplementedError

    def _write_text(self, content: str) -> None:
        raise NotImplementedError

    def _read_image(self) -> bytes | None:
        raise NotImplementedError

    def _write_image(self, png_bytes: bytes) -> None:
        raise NotImplementedError


class PasteboardClipboard(ClipboardAccessor):
    """macOS general pasteboard."""

    def __init__(self):
        super().__init__()
        try:
            from AppKit import NSPasteboard
        except ImportError as e:
            raise AccessError("PyObjC (AppKit) is required for clipboard access on macOS", e) from e
        self._pasteboard = NSPasteboard.generalPasteboard()

    def _read_text(self) -> str | None:
        from AppKit import NSPasteboardTypeString

        try:
            text = self._pasteboard.stringForType_(NSPasteboardTypeString)
        except Exception as e:
            raise AccessError("Reading the pasteboard failed", e) from e
        return str(text) if text is not None else None

    def _write_text(self, content: str) -> None:
        from AppKit import NSPasteboardTypeString

        try:
            self._pasteboard.clearContents()
            ok = self._pasteboard.setString_forType_(content, NSPasteboardTypeString)
        except Exception as e:
            raise AccessError("Writing the pasteboard failed", e) from e
        if not ok:
            raise AccessError("The pasteboard rejected the text")

    def _read_image(self) -> bytes | None:
        from AppKit import NSPasteboardTypePNG

        try:
            data = self._pasteboard.dataForType_(NSPasteboardTypePNG)
        except Exception as e:
            raise AccessError("Reading the pasteboard failed", e) from e
        return bytes(data) if data is not None else None

    def _write_image(self, png_bytes: bytes) -> None:
        from AppKit import NSPasteboardTypePNG
        from Foundation import NSData

        try:
            data = NSData.dataWithBytes_length_(png_bytes, len(png_bytes))
            self._pasteboard.clearContents()
            ok = self._pasteboard.setData_forType_(data, NSPasteboardTypePNG)
        except Exception as e:
            raise AccessError("Writing the pasteboard failed", e) from e
        if not ok:
            raise AccessError("The pasteboard rejected the image")


class PyperclipClipboard(ClipboardAccessor):
    """Clipboard on Linux, Windows and other platforms."""

    def __init__(self):
        super().__init__()
        try:
            paste = pyperclip.determine_clipboard()[1]
        except pyperclip.PyperclipException as e:
            raise AccessError("No usable clipboard mechanism found", e) from e
        # pyperclip hands back falsy stand-ins when nothing usable is installed
        if not paste:
            raise AccessError(
                "No usable clipboard mechanism found. On Linux install xclip, xsel or wl-clipboard"
            )

    def _read_text(self) -> str | None:
        try:
            text = pyperclip.paste()
        except pyperclip.PyperclipException as e:
            raise AccessError("Reading the clipboard failed", e) from e
        # pyperclip reports an empty clipboard as an empty string
        return text or None

    def _write_text(self, content: str) -> None:
        try:
            pyperclip.copy(content)
        except pyperclip.PyperclipException as e:
            raise AccessError("Writing the clipboard failed", e) from e

    def _read_image(self) -> bytes | None:
        try:
            grabbed = ImageGrab.grabclipboard()
        except (OSError, NotImplementedError) as e:
            raise AccessError("Reading the clipboard image failed", e) from e
        # grabclipboard returns a list of filenames when files were copied
        if not isinstance(grabbed, Image.Image):
            return None
        buf = io.BytesIO()
        grabbed.save(buf, format="PNG")
        return buf.getvalue()

    def _write_image(self, png_bytes: bytes) -> None:
        raise AccessError(f"Writing images to the clipboard is not supported on {sys.platform}")


def get_clipboard() -> ClipboardAccessor:
    """Return the clipboard backend for the running platform."""
    if sys.platform == "darwin":
        logger.debug("Using the macOS pasteboard")
        return PasteboardClipboard()
    logger.debug("Using pyperclip (%s)", sys.platform)
    return PyperclipClipboard()
