from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .errors import GatewayError
from .log import get_logger
from .model import Bookmark, Folder, utcnow

log = get_logger(__name__)

SCHEMA_VERSION = 2

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS bookmark_folders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    parent_folder_id INTEGER,
    position INTEGER NOT NULL DEFAULT 0,
    is_favorite INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS bookmarks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL DEFAULT '',
    url TEXT NOT NULL,
    favicon_url TEXT,
    folder_id INTEGER,
    position INTEGER NOT NULL DEFAULT 0,
    is_favorite INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_folders_parent ON bookmark_folders(parent_folder_id);
CREATE INDEX IF NOT EXISTS idx_bookmarks_folder ON bookmarks(folder_id);
CREATE INDEX IF NOT EXISTS idx_bookmarks_url ON bookmarks(url);
"""

_BOOKMARK_COLS = (
    "id, title, url, favicon_url, folder_id, position, is_favorite, "
    "description, tags_json, created_at, updated_at"
)
_FOLDER_COLS = "id, name, parent_folder_id, position, is_favorite, created_at, updated_at"


class SqliteStore:
    """Single-connection SQLite backend exposing both entity gateways.

    Standalone calls autocommit. ``transaction()`` opens ``BEGIN IMMEDIATE``
    so a cascade or a read-modify-write holds the write lock until it commits.
    """

    def __init__(self, db_path: Path | str, *, busy_timeout_ms: int = 5000):
        self.db_path = str(db_path)
        self.busy_timeout_ms = max(0, int(busy_timeout_ms))
        self.conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._tx_depth = 0
        self.bookmarks = SqliteBookmarkGateway(self)
        self.folders = SqliteFolderGateway(self)

    def __enter__(self) -> "SqliteStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        timeout_s = max(0.1, self.busy_timeout_ms / 1000.0)
        try:
            self.conn = sqlite3.connect(
                self.db_path,
                timeout=timeout_s,
                isolation_level=None,
                check_same_thread=False,
            )
            self.conn.row_factory = sqlite3.Row
            self.conn.create_function("py_lower", 1, _py_lower, deterministic=True)
            if self.busy_timeout_ms > 0:
                self.conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            self._migrate()
        except sqlite3.Error as e:
            raise GatewayError(f"cannot open bookmark database {self.db_path}: {e}") from e
        log.debug("Opened bookmark database %s (schema v%d)", self.db_path, SCHEMA_VERSION)

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            conn = self._conn()
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return

            with self._guard("begin"):
                conn.execute("BEGIN IMMEDIATE")
            self._tx_depth = 1
            try:
                yield
            except BaseException:
                self._tx_depth = 0
                with self._guard("rollback"):
                    conn.execute("ROLLBACK")
                raise
            self._tx_depth = 0
            try:
                with self._guard("commit"):
                    conn.execute("COMMIT")
            except GatewayError:
                if conn.in_transaction:
                    try:
                        conn.execute("ROLLBACK")
                    except sqlite3.Error as e:
                        log.error("Rollback after failed commit on %s also failed: %s", self.db_path, e)
                raise

    def schema_version(self) -> int:
        row = self._conn().execute("PRAGMA user_version").fetchone()
        return int(row[0] or 0)

    def _migrate(self) -> None:
        conn = self._conn()
        version = self.schema_version()
        if version >= SCHEMA_VERSION:
            return
        conn.executescript(_SCHEMA_V1)
        if not self._has_column("bookmarks", "description"):
            conn.execute("ALTER TABLE bookmarks ADD COLUMN description TEXT")
        if not self._has_column("bookmarks", "tags_json"):
            conn.execute("ALTER TABLE bookmarks ADD COLUMN tags_json TEXT NOT NULL DEFAULT '[]'")
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        log.info("Migrated bookmark database %s from v%d to v%d", self.db_path, version, SCHEMA_VERSION)

    def _has_column(self, table_name: str, column_name: str) -> bool:
        rows = self._conn().execute(f"PRAGMA table_info({table_name})").fetchall()
        return any(str(r[1]) == column_name for r in rows)

    def _conn(self) -> sqlite3.Connection:
        if self.conn is None:
            raise GatewayError("database is not open")
        return self.conn

    @contextmanager
    def _guard(self, op: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            raise GatewayError(f"{op} failed: {e}") from e

    def _query(self, op: str, sql: str, params: Sequence[object] = ()) -> List[sqlite3.Row]:
        with self._lock, self._guard(op):
            return self._conn().execute(sql, params).fetchall()

    def _execute(self, op: str, sql: str, params: Sequence[object] = ()) -> sqlite3.Cursor:
        with self._lock, self._guard(op):
            return self._conn().execute(sql, params)


class SqliteBookmarkGateway:
    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    def transaction(self):
        return self._store.transaction()

    def _select(self, op: str, where: str = "", params: Sequence[object] = ()) -> List[Bookmark]:
        sql = f"SELECT {_BOOKMARK_COLS} FROM bookmarks {where} ORDER BY position, id"
        return [_row_to_bookmark(r) for r in self._store._query(op, sql, params)]

    def find_all(self) -> List[Bookmark]:
        return self._select("find all bookmarks")

    def find_by_id(self, bookmark_id: int) -> Optional[Bookmark]:
        rows = self._select("find bookmark", "WHERE id = ?", (bookmark_id,))
        return rows[0] if rows else None

    def save(self, bookmark: Bookmark) -> Bookmark:
        cur = self._store._execute(
            "save bookmark",
            """
            INSERT INTO bookmarks (
                title, url, favicon_url, folder_id, position, is_favorite,
                description, tags_json, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                bookmark.title or "",
                bookmark.url,
                bookmark.favicon_url,
                bookmark.folder_id,
                int(bookmark.position),
                int(bool(bookmark.is_favorite)),
                bookmark.description,
                json.dumps(list(bookmark.tags or []), ensure_ascii=False),
                _ts(bookmark.created_at),
                _ts(bookmark.updated_at),
            ),
        )
        bookmark.id = int(cur.lastrowid)
        return bookmark

    def update(self, bookmark: Bookmark) -> None:
        self._store._execute(
            "update bookmark",
            """
            UPDATE bookmarks SET
                title = ?, url = ?, favicon_url = ?, folder_id = ?, position = ?,
                is_favorite = ?, description = ?, tags_json = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                bookmark.title or "",
                bookmark.url,
                bookmark.favicon_url,
                bookmark.folder_id,
                int(bookmark.position),
                int(bool(bookmark.is_favorite)),
                bookmark.description,
                json.dumps(list(bookmark.tags or []), ensure_ascii=False),
                _ts(bookmark.updated_at),
                bookmark.id,
            ),
        )

    def delete(self, bookmark_id: int) -> None:
        self._store._execute("delete bookmark", "DELETE FROM bookmarks WHERE id = ?", (bookmark_id,))

    def count(self) -> int:
        rows = self._store._query("count bookmarks", "SELECT COUNT(*) FROM bookmarks")
        return int(rows[0][0])

    def find_by_folder_id(self, folder_id: int) -> List[Bookmark]:
        return self._select("find bookmarks by folder", "WHERE folder_id = ?", (folder_id,))

    def find_root_bookmarks(self) -> List[Bookmark]:
        return self._select("find root bookmarks", "WHERE folder_id IS NULL")

    def find_favorites(self) -> List[Bookmark]:
        return self._select("find favorite bookmarks", "WHERE is_favorite = 1")

    def find_by_url(self, url: str) -> Optional[Bookmark]:
        rows = self._select("find bookmark by url", "WHERE url = ?", (url,))
        return rows[0] if rows else None

    def exists_by_url(self, url: str) -> bool:
        rows = self._store._query("check bookmark url", "SELECT 1 FROM bookmarks WHERE url = ? LIMIT 1", (url,))
        return bool(rows)

    def search(self, text: str) -> List[Bookmark]:
        # LIKE only folds ASCII; compare Python-lowercased text on both sides.
        pattern = "%" + _escape_like(text.lower()) + "%"
        return self._select(
            "search bookmarks",
            "WHERE py_lower(title) LIKE ? ESCAPE '\\' OR py_lower(url) LIKE ? ESCAPE '\\'",
            (pattern, pattern),
        )

    def update_position(self, bookmark_id: int, position: int) -> None:
        self._store._execute(
            "update bookmark position",
            "UPDATE bookmarks SET position = ?, updated_at = ? WHERE id = ?",
            (int(position), _ts(utcnow()), bookmark_id),
        )

    def update_favorite_status(self, bookmark_id: int, is_favorite: bool) -> None:
        self._store._execute(
            "update bookmark favorite",
            "UPDATE bookmarks SET is_favorite = ?, updated_at = ? WHERE id = ?",
            (int(bool(is_favorite)), _ts(utcnow()), bookmark_id),
        )


class SqliteFolderGateway:
    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    def transaction(self):
        return self._store.transaction()

    def _select(self, op: str, where: str = "", params: Sequence[object] = ()) -> List[Folder]:
        sql = f"SELECT {_FOLDER_COLS} FROM bookmark_folders {where} ORDER BY position, id"
        return [_row_to_folder(r) for r in self._store._query(op, sql, params)]

    def find_all(self) -> List[Folder]:
        return self._select("find all folders")

    def find_by_id(self, folder_id: int) -> Optional[Folder]:
        rows = self._select("find folder", "WHERE id = ?", (folder_id,))
        return rows[0] if rows else None

    def save(self, folder: Folder) -> Folder:
        cur = self._store._execute(
            "save folder",
            """
            INSERT INTO bookmark_folders (name, parent_folder_id, position, is_favorite, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                folder.name,
                folder.parent_folder_id,
                int(folder.position),
                int(bool(folder.is_favorite)),
                _ts(folder.created_at),
                _ts(folder.updated_at),
            ),
        )
        folder.id = int(cur.lastrowid)
        return folder

    def update(self, folder: Folder) -> None:
        self._store._execute(
            "update folder",
            """
            UPDATE bookmark_folders
            SET name = ?, parent_folder_id = ?, position = ?, is_favorite = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                folder.name,
                folder.parent_folder_id,
                int(folder.position),
                int(bool(folder.is_favorite)),
                _ts(folder.updated_at),
                folder.id,
            ),
        )

    def delete(self, folder_id: int) -> None:
        self._store._execute("delete folder", "DELETE FROM bookmark_folders WHERE id = ?", (folder_id,))

    def count(self) -> int:
        rows = self._store._query("count folders", "SELECT COUNT(*) FROM bookmark_folders")
        return int(rows[0][0])

    def find_by_parent_id(self, parent_id: Optional[int]) -> List[Folder]:
        if parent_id is None:
            return self._select("find root folders", "WHERE parent_folder_id IS NULL")
        return self._select("find subfolders", "WHERE parent_folder_id = ?", (parent_id,))

    def find_root_folders(self) -> List[Folder]:
        return self.find_by_parent_id(None)


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _parse_ts(value: Optional[str]) -> datetime:
    if not value:
        return utcnow()
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return utcnow()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _py_lower(value):
    return value.lower() if isinstance(value, str) else value


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _safe_json_array(value: Optional[str]) -> List[str]:
    if not value:
        return []
    try:
        data = json.loads(value)
    except ValueError:
        return []
    if isinstance(data, list):
        return [str(x) for x in data]
    return []


def _row_to_bookmark(r: sqlite3.Row) -> Bookmark:
    return Bookmark(
        id=int(r["id"]),
        title=r["title"] or "",
        url=r["url"] or "",
        favicon_url=r["favicon_url"],
        folder_id=int(r["folder_id"]) if r["folder_id"] is not None else None,
        position=int(r["position"] or 0),
        is_favorite=bool(r["is_favorite"]),
        description=r["description"],
        tags=_safe_json_array(r["tags_json"]),
        created_at=_parse_ts(r["created_at"]),
        updated_at=_parse_ts(r["updated_at"]),
    )


def _row_to_folder(r: sqlite3.Row) -> Folder:
    return Folder(
        id=int(r["id"]),
        name=r["name"] or "",
        parent_folder_id=int(r["parent_folder_id"]) if r["parent_folder_id"] is not None else None,
        position=int(r["position"] or 0),
        is_favorite=bool(r["is_favorite"]),
        created_at=_parse_ts(r["created_at"]),
        updated_at=_parse_ts(r["updated_at"]),
    )
