"""Dict-backed gateways for embedding and tests.

Records are copied on the way in and on the way out so callers never
share state with the store.
"""

from __future__ import annotations

import copy
import dataclasses
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, TypeVar

from .model import Bookmark, Folder

T = TypeVar("T", Bookmark, Folder)


def _ordered(items: List[T]) -> List[T]:
    return sorted(items, key=lambda x: (x.position, x.id))


def _copy_folder(folder: Folder) -> Folder:
    return dataclasses.replace(folder, bookmarks=[], subfolders=[])


class MemoryStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._bookmarks: Dict[int, Bookmark] = {}
        self._folders: Dict[int, Folder] = {}
        self._next_ids = {"bookmark": 1, "folder": 1}
        self._tx_depth = 0
        self.bookmarks = MemoryBookmarkGateway(self)
        self.folders = MemoryFolderGateway(self)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return

            snapshot = (
                copy.deepcopy(self._bookmarks),
                {k: _copy_folder(v) for k, v in self._folders.items()},
                dict(self._next_ids),
            )
            self._tx_depth = 1
            try:
                yield
            except BaseException:
                self._bookmarks, self._folders, self._next_ids = snapshot
                raise
            finally:
                self._tx_depth = 0

    def _next_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] = value + 1
        return value


class MemoryBookmarkGateway:
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def transaction(self):
        return self._store.transaction()

    def _select(self, pred: Callable[[Bookmark], bool]) -> List[Bookmark]:
        with self._store._lock:
            return _ordered([copy.deepcopy(b) for b in self._store._bookmarks.values() if pred(b)])

    def find_all(self) -> List[Bookmark]:
        return self._select(lambda b: True)

    def find_by_id(self, bookmark_id: int) -> Optional[Bookmark]:
        with self._store._lock:
            b = self._store._bookmarks.get(bookmark_id)
            return copy.deepcopy(b) if b is not None else None

    def save(self, bookmark: Bookmark) -> Bookmark:
        with self._store._lock:
            bookmark.id = self._store._next_id("bookmark")
            self._store._bookmarks[bookmark.id] = copy.deepcopy(bookmark)
        return bookmark

    def update(self, bookmark: Bookmark) -> None:
        with self._store._lock:
            if bookmark.id in self._store._bookmarks:
                self._store._bookmarks[bookmark.id] = copy.deepcopy(bookmark)

    def delete(self, bookmark_id: int) -> None:
        with self._store._lock:
            self._store._bookmarks.pop(bookmark_id, None)

    def count(self) -> int:
        with self._store._lock:
            return len(self._store._bookmarks)

    def find_by_folder_id(self, folder_id: int) -> List[Bookmark]:
        return self._select(lambda b: b.folder_id == folder_id)

    def find_root_bookmarks(self) -> List[Bookmark]:
        return self._select(lambda b: b.folder_id is None)

    def find_favorites(self) -> List[Bookmark]:
        return self._select(lambda b: b.is_favorite)

    def find_by_url(self, url: str) -> Optional[Bookmark]:
        found = self._select(lambda b: b.url == url)
        return found[0] if found else None

    def exists_by_url(self, url: str) -> bool:
        return self.find_by_url(url) is not None

    def search(self, text: str) -> List[Bookmark]:
        needle = text.lower()
        return self._select(lambda b: needle in (b.title or "").lower() or needle in (b.url or "").lower())

    def update_position(self, bookmark_id: int, position: int) -> None:
        with self._store._lock:
            b = self._store._bookmarks.get(bookmark_id)
            if b is not None:
                b.position = position

    def update_favorite_status(self, bookmark_id: int, is_favorite: bool) -> None:
        with self._store._lock:
            b = self._store._bookmarks.get(bookmark_id)
            if b is not None:
                b.is_favorite = is_favorite


class MemoryFolderGateway:
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def transaction(self):
        return self._store.transaction()

    def _select(self, pred: Callable[[Folder], bool]) -> List[Folder]:
        with self._store._lock:
            return _ordered([_copy_folder(f) for f in self._store._folders.values() if pred(f)])

    def find_all(self) -> List[Folder]:
        return self._select(lambda f: True)

    def find_by_id(self, folder_id: int) -> Optional[Folder]:
        with self._store._lock:
            f = self._store._folders.get(folder_id)
            return _copy_folder(f) if f is not None else None

    def save(self, folder: Folder) -> Folder:
        with self._store._lock:
            folder.id = self._store._next_id("folder")
            self._store._folders[folder.id] = _copy_folder(folder)
        return folder

    def update(self, folder: Folder) -> None:
        with self._store._lock:
            if folder.id in self._store._folders:
                self._store._folders[folder.id] = _copy_folder(folder)

    def delete(self, folder_id: int) -> None:
        with self._store._lock:
            self._store._folders.pop(folder_id, None)

    def count(self) -> int:
        with self._store._lock:
            return len(self._store._folders)

    def find_by_parent_id(self, parent_id: Optional[int]) -> List[Folder]:
        return self._select(lambda f: f.parent_folder_id == parent_id)

    def find_root_folders(self) -> List[Folder]:
        return self.find_by_parent_id(None)
