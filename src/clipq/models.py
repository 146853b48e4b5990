from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ClipKind(str, Enum):
    TEXT = "text"
    FILE = "file"


@dataclass(frozen=True)
class Clip:
    id: str
    content: str
    kind: ClipKind
    created_at: datetime
    file_path: str | None = None


@dataclass
class Statistics:
    total_clips: int
    text_clips: int
    file_clips: int
    oldest_clip: datetime | None
    newest_clip: datetime | None
    db_size_kb: int
