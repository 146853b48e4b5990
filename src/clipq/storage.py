import logging
import os
import shutil
import sqlite3
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path

from clipq.config import DB_PATH
from clipq.errors import InvalidInput, NotFound, StorageError
from clipq.models import Clip, ClipKind, Statistics

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS clips (
    seq        INTEGER PRIMARY KEY AUTOINCREMENT,
    id         TEXT NOT NULL UNIQUE,
    content    TEXT NOT NULL,
    clip_type  TEXT NOT NULL CHECK(clip_type IN ('text', 'file')),
    created_at INTEGER NOT NULL,
    file_path  TEXT
);

CREATE TABLE IF NOT EXISTS tags (
    id   INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS clip_tags (
    clip_id TEXT NOT NULL,
    tag_id  INTEGER NOT NULL,
    PRIMARY KEY (clip_id, tag_id),
    FOREIGN KEY (clip_id) REFERENCES clips(id) ON DELETE CASCADE,
    FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_created_at ON clips(created_at DESC, seq DESC);
CREATE INDEX IF NOT EXISTS idx_content ON clips(content);
CREATE INDEX IF NOT EXISTS idx_clip_type ON clips(clip_type);
CREATE INDEX IF NOT EXISTS idx_clip_tags_tag ON clip_tags(tag_id);
"""

CLIP_COLUMNS = "c.id, c.content, c.clip_type, c.created_at, c.file_path"
NEWEST_FIRST = "ORDER BY c.created_at DESC, c.seq DESC"


def _locked(method: Callable) -> Callable:
    """Run a StorageManager method under the store lock, mapping sqlite errors."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            try:
                return method(self, *args, **kwargs)
            except sqlite3.Error as e:
                raise StorageError(f"{method.__name__} failed", e) from e

    return wrapper


def _to_timestamp(created_at: datetime | int | None) -> int:
    if created_at is None:
        return int(datetime.now(timezone.utc).timestamp())
    if isinstance(created_at, datetime):
        return int(created_at.timestamp())
    return int(created_at)


class StorageManager:
    """Persistent clipboard history.

    One sqlite connection is shared by the monitor thread and foreground
    callers. Every public operation holds ``_lock`` for its whole duration
    and every write commits as a single transaction, so readers never see a
    half-applied trim or insert.
    """

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = str(db_path) if db_path else str(DB_PATH)
        self._lock = threading.RLock()
        try:
            self._conn = self._connect()
            self.init_db()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open history database {self._db_path}", e) from e

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def in_memory(self) -> bool:
        return self._db_path == ":memory:"

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        if not self.in_memory:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def init_db(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()

    def _insert(self, content: str, kind: ClipKind, created_at, file_path: str | None) -> Clip:
        clip = Clip(
            id=str(uuid.uuid4()),
            content=content,
            kind=kind,
            created_at=datetime.fromtimestamp(_to_timestamp(created_at), tz=timezone.utc),
            file_path=file_path,
        )
        with self._conn:
            self._conn.execute(
                "INSERT INTO clips (id, content, clip_type, created_at, file_path) VALUES (?, ?, ?, ?, ?)",
                (clip.id, clip.content, clip.kind.value, int(clip.created_at.timestamp()), clip.file_path),
            )
        return clip

    @_locked
    def insert_text(self, content: str, created_at: datetime | int | None = None) -> Clip:
        if not content:
            raise StorageError("Cannot store an empty clip")
        return self._insert(content, ClipKind.TEXT, created_at, None)

    @_locked
    def insert_file(self, path: str, created_at: datetime | int | None = None) -> Clip:
        # The path is stored as given; it need not exist any more.
        if not path:
            raise StorageError("Cannot store an empty file path")
        return self._insert(path, ClipKind.FILE, created_at, path)

    @_locked
    def trim(self, max_clips: int) -> int:
        """Delete everything but the ``max_clips`` newest clips. Returns the number deleted."""
        if max_clips < 0:
            raise InvalidInput(f"max_clips must be >= 0, got {max_clips}")
        with self._conn:
            cursor = self._conn.execute(
                f"""DELETE FROM clips WHERE id IN (
                       SELECT c.id FROM clips c {NEWEST_FIRST} LIMIT -1 OFFSET ?
                   )""",
                (max_clips,),
            )
        deleted = cursor.rowcount
        if deleted:
            logger.debug("Trimmed %d clips (keeping %d)", deleted, max_clips)
        return deleted

    @_locked
    def recent(self, limit: int = 20) -> list[Clip]:
        rows = self._conn.execute(
            f"SELECT {CLIP_COLUMNS} FROM clips c {NEWEST_FIRST} LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._row_to_clip(r) for r in rows]

    @_locked
    def get(self, clip_id: str) -> Clip | None:
        row = self._conn.execute(
            f"SELECT {CLIP_COLUMNS} FROM clips c WHERE c.id = ?", (clip_id,)
        ).fetchone()
        return self._row_to_clip(row) if row else None

    @_locked
    def search(self, query: str, limit: int = 20) -> list[Clip]:
        # instr() is case-sensitive and treats % and _ literally, unlike LIKE.
        rows = self._conn.execute(
            f"""SELECT {CLIP_COLUMNS} FROM clips c
                WHERE instr(c.content, ?) > 0
                {NEWEST_FIRST}
                LIMIT ?""",
            (query, limit),
        ).fetchall()
        return [self._row_to_clip(r) for r in rows]

    @_locked
    def all(self) -> list[Clip]:
        rows = self._conn.execute(f"SELECT {CLIP_COLUMNS} FROM clips c {NEWEST_FIRST}").fetchall()
        return [self._row_to_clip(r) for r in rows]

    @_locked
    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM clips").fetchone()
        return row["cnt"]

    @_locked
    def clear(self) -> int:
        with self._conn:
            cursor = self._conn.execute("DELETE FROM clips")
        return cursor.rowcount

    @_locked
    def tag(self, clip_id: str, name: str) -> None:
        if not name:
            raise StorageError("Tag name must not be empty")
        if self._conn.execute("SELECT 1 FROM clips WHERE id = ?", (clip_id,)).fetchone() is None:
            raise NotFound(f"Clip not found: {clip_id}")
        with self._conn:
            self._conn.execute("INSERT OR IGNORE INTO tags (name) VALUES (?)", (name,))
            self._conn.execute(
                """INSERT OR IGNORE INTO clip_tags (clip_id, tag_id)
                   SELECT ?, id FROM tags WHERE name = ?""",
                (clip_id, name),
            )

    @_locked
    def untag(self, clip_id: str, name: str) -> None:
        with self._conn:
            self._conn.execute(
                "DELETE FROM clip_tags WHERE clip_id = ? AND tag_id = (SELECT id FROM tags WHERE name = ?)",
                (clip_id, name),
            )

    @_locked
    def tags_for(self, clip_id: str) -> set[str]:
        rows = self._conn.execute(
            """SELECT t.name FROM tags t
               JOIN clip_tags ct ON t.id = ct.tag_id
               WHERE ct.clip_id = ?""",
            (clip_id,),
        ).fetchall()
        return {r["name"] for r in rows}

    @_locked
    def entries_for_tag(self, name: str) -> list[Clip]:
        rows = self._conn.execute(
            f"""SELECT {CLIP_COLUMNS} FROM clips c
                JOIN clip_tags ct ON c.id = ct.clip_id
                JOIN tags t ON ct.tag_id = t.id
                WHERE t.name = ?
                {NEWEST_FIRST}""",
            (name,),
        ).fetchall()
        return [self._row_to_clip(r) for r in rows]

    @_locked
    def list_tags(self) -> list[str]:
        rows = self._conn.execute("SELECT name FROM tags ORDER BY name").fetchall()
        return [r["name"] for r in rows]

    @_locked
    def statistics(self) -> Statistics:
        row = self._conn.execute(
            """SELECT COUNT(*) AS total,
                      COALESCE(SUM(clip_type = 'text'), 0) AS text_clips,
                      COALESCE(SUM(clip_type = 'file'), 0) AS file_clips,
                      MIN(created_at) AS oldest,
                      MAX(created_at) AS newest
               FROM clips"""
        ).fetchone()
        return Statistics(
            total_clips=row["total"],
            text_clips=row["text_clips"],
            file_clips=row["file_clips"],
            oldest_clip=self._from_timestamp(row["oldest"]),
            newest_clip=self._from_timestamp(row["newest"]),
            db_size_kb=self._db_size_kb(),
        )

    def _db_size_kb(self) -> int:
        if self.in_memory:
            return 0
        # committed pages may still sit in the write-ahead log
        paths = (Path(self._db_path), Path(self._db_path + "-wal"))
        return sum(p.stat().st_size for p in paths if p.exists()) // 1024

    def backup(self, dest: str | Path) -> Path:
        """Copy the database file to ``dest``."""
        with self._lock:
            if self.in_memory:
                raise StorageError("An in-memory history cannot be backed up")
            try:
                self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            except sqlite3.Error as e:
                raise StorageError("Checkpoint before backup failed", e) from e
            return Path(shutil.copyfile(self._db_path, dest))

    @staticmethod
    def _check_backup(src: Path) -> None:
        """Raise StorageError unless ``src`` is a readable clipq database."""
        try:
            conn = sqlite3.connect(f"{src.resolve().as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open backup {src}", e) from e
        try:
            row = conn.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'clips'").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"{src} is not a clipq database", e) from e
        finally:
            conn.close()
        if row is None:
            raise StorageError(f"{src} is not a clipq database (no clips table)")

    def restore(self, src: str | Path) -> None:
        """Replace the database file with ``src`` and reopen it.

        The backup is validated and staged next to the live database first;
        the live file is only swapped out once the staged copy is complete.
        """
        with self._lock:
            if self.in_memory:
                raise StorageError("An in-memory history cannot be restored")
            src_path = Path(src)
            if not src_path.is_file():
                raise FileNotFoundError(f"Backup not found: {src_path}")
            self._check_backup(src_path)

            staged = Path(self._db_path + ".restore")
            try:
                shutil.copyfile(src_path, staged)
            except OSError:
                staged.unlink(missing_ok=True)
                raise

            self._conn.close()
            try:
                os.replace(staged, self._db_path)
                for suffix in ("-wal", "-shm"):
                    Path(self._db_path + suffix).unlink(missing_ok=True)
            finally:
                staged.unlink(missing_ok=True)
                try:
                    self._conn = self._connect()
                    self.init_db()
                except sqlite3.Error as e:
                    raise StorageError(f"Cannot reopen history database {self._db_path}", e) from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @staticmethod
    def _from_timestamp(value: int | None) -> datetime | None:
        if value is None:
            return None
        return datetime.fromtimestamp(value, tz=timezone.utc)

    def _row_to_clip(self, row: sqlite3.Row) -> Clip:
        return Clip(
            id=row["id"],
            content=row["content"],
            kind=ClipKind(row["clip_type"]),
            created_at=datetime.fromtimestamp(row["created_at"], tz=timezone.utc),
            file_path=row["file_path"],
        )
