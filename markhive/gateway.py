"""Persistence contracts the hierarchy service depends on.

Gateways are plain CRUD: no validation, no cascade policy. Any call may
raise :class:`markhive.errors.GatewayError`; translating that into a domain
error is the service's job. Listing calls return records ordered by
``(position, id)``.
"""

from __future__ import annotations

from typing import ContextManager, List, Optional, Protocol, runtime_checkable

from .model import Bookmark, Folder


@runtime_checkable
class BookmarkGateway(Protocol):
    def find_all(self) -> List[Bookmark]: ...

    def find_by_id(self, bookmark_id: int) -> Optional[Bookmark]: ...

    def save(self, bookmark: Bookmark) -> Bookmark:
        """Insert a new record, assign its id on the passed object and return it."""
        ...

    def update(self, bookmark: Bookmark) -> None:
        """Replace the stored record with ``bookmark`` (whole-record overwrite)."""
        ...

    def delete(self, bookmark_id: int) -> None: ...

    def count(self) -> int: ...

    def find_by_folder_id(self, folder_id: int) -> List[Bookmark]: ...

    def find_root_bookmarks(self) -> List[Bookmark]: ...

    def find_favorites(self) -> List[Bookmark]: ...

    def find_by_url(self, url: str) -> Optional[Bookmark]: ...

    def exists_by_url(self, url: str) -> bool: ...

    def search(self, text: str) -> List[Bookmark]:
        """Case-insensitive substring match over title and URL."""
        ...

    def update_position(self, bookmark_id: int, position: int) -> None: ...

    def update_favorite_status(self, bookmark_id: int, is_favorite: bool) -> None: ...


@runtime_checkable
class FolderGateway(Protocol):
    def find_all(self) -> List[Folder]: ...

    def find_by_id(self, folder_id: int) -> Optional[Folder]: ...

    def save(self, folder: Folder) -> Folder: ...

    def update(self, folder: Folder) -> None: ...

    def delete(self, folder_id: int) -> None: ...

    def count(self) -> int: ...

    def find_by_parent_id(self, parent_id: Optional[int]) -> List[Folder]:
        """Direct children of ``parent_id``; ``None`` selects root folders."""
        ...

    def find_root_folders(self) -> List[Folder]: ...


@runtime_checkable
class Transactional(Protocol):
    def transaction(self) -> ContextManager[None]:
        """Scope spanning writes to both entity types.

        Commits on normal exit and discards every write made inside the
        scope when an exception escapes it. Nested scopes join the outer one.
        """
        ...
