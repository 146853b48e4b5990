"""Export and import of clipboard history as json, csv or plain text.

The csv flavour is the one older clipq versions wrote: a fixed header, no
quoting, and commas inside values escaped as ``\\,``. Backslashes and line
breaks are escaped too (``\\\\``, ``\\n``, ``\\r``) so every clip fits on one line.
Plain text keeps one clip per line and drops every bit of metadata.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from clipq.errors import InvalidInput
from clipq.models import Clip, ClipKind
from clipq.storage import StorageManager

logger = logging.getLogger(__name__)

FORMATS = ("json", "csv", "txt")
CSV_HEADER = "id,content,type,created_at,file_path"
_CSV_ESCAPES = str.maketrans({"\\": "\\\\", ",": "\\,", "\n": "\\n", "\r": "\\r"})
_CSV_UNESCAPES = {"\\": "\\", ",": ",", "n": "\n", "r": "\r"}


def _check_format(fmt: str) -> str:
    if fmt not in FORMATS:
        raise InvalidInput(f"Unsupported format: {fmt}. Use json, csv, or txt")
    return fmt


def _clip_to_dict(clip: Clip) -> dict:
    return {
        "id": clip.id,
        "content": clip.content,
        "clip_type": clip.kind.value,
        "created_at": clip.created_at.isoformat(),
        "file_path": clip.file_path,
    }


def _escape(value: str) -> str:
    return value.translate(_CSV_ESCAPES)


def _split_csv_line(line: str) -> list[str]:
    """Split one csv line on unescaped commas, undoing ``_escape`` per field."""
    fields = []
    buf = []
    chars = iter(line)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            # unknown escapes are kept verbatim
            buf.append(_CSV_UNESCAPES.get(nxt, ch + nxt))
        elif ch == ",":
            fields.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
    fields.append("".join(buf))
    return fields


def render(clips: list[Clip], fmt: str) -> str:
    _check_format(fmt)
    if fmt == "json":
        return json.dumps([_clip_to_dict(c) for c in clips], indent=2, ensure_ascii=False)
    if fmt == "csv":
        lines = [CSV_HEADER]
        for clip in clips:
            lines.append(
                ",".join(
                    [
                        clip.id,
                        _escape(clip.content),
                        clip.kind.value,
                        str(int(clip.created_at.timestamp())),
                        _escape(clip.file_path or ""),
                    ]
                )
            )
        return "\n".join(lines) + "\n"
    return "".join(f"{clip.content}\n" for clip in clips)


def export_clips(storage: StorageManager, path: str | Path, fmt: str = "json") -> int:
    clips = storage.all()
    Path(path).write_text(render(clips, fmt), encoding="utf-8")
    logger.info("Exported %d clips to %s", len(clips), path)
    return len(clips)


def _parse_kind(value: str) -> ClipKind:
    try:
        return ClipKind(value)
    except ValueError as e:
        raise InvalidInput(f"Unknown clip type: {value!r}") from e


def _parse_json(text: str) -> list[tuple[str, ClipKind, datetime | int | None]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidInput("Import file is not valid JSON", e) from e
    if not isinstance(data, list):
        raise InvalidInput("JSON import must be an array of clips")

    records = []
    for item in data:
        if not isinstance(item, dict) or not isinstance(item.get("content"), str):
            raise InvalidInput(f"Malformed clip in JSON import: {item!r}")
        created_at = None
        if item.get("created_at"):
            try:
                created_at = datetime.fromisoformat(item["created_at"])
            except (TypeError, ValueError) as e:
                raise InvalidInput(f"Bad created_at in JSON import: {item['created_at']!r}") from e
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
        records.append((item["content"], _parse_kind(item.get("clip_type", "text")), created_at))
    return records


def _parse_csv(text: str) -> list[tuple[str, ClipKind, datetime | int | None]]:
    records = []
    # split on "\n" only: other line separators may appear unescaped in content
    for line_no, line in enumerate(text.split("\n")[1:], start=2):
        parts = _split_csv_line(line)
        if len(parts) < 3:
            continue
        try:
            kind = _parse_kind(parts[2])
        except InvalidInput as e:
            logger.warning("Skipping CSV line %d: %s", line_no, e)
            continue
        created_at = int(parts[3]) if len(parts) > 3 and parts[3].strip().isdigit() else None
        records.append((parts[1], kind, created_at))
    return records


def _parse_txt(text: str) -> list[tuple[str, ClipKind, datetime | int | None]]:
    return [(line.strip(), ClipKind.TEXT, None) for line in text.splitlines() if line.strip()]


def import_clips(storage: StorageManager, path: str | Path, fmt: str = "json") -> int:
    _check_format(fmt)
    text = Path(path).read_text(encoding="utf-8")
    parser = {"json": _parse_json, "csv": _parse_csv, "txt": _parse_txt}[fmt]

    count = 0
    # Exports list newest first; walk backwards so the first record stays newest.
    for content, kind, created_at in reversed(parser(text)):
        if not content:
            continue
        if kind == ClipKind.FILE:
            storage.insert_file(content, created_at=created_at)
        else:
            storage.insert_text(content, created_at=created_at)
        count += 1
    logger.info("Imported %d clips from %s", count, path)
    return count
