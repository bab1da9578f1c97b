from __future__ import annotations

from contextlib import contextmanager, nullcontext
from typing import ContextManager, Iterator, List, Optional, Tuple, Type, cast

from .errors import (
    BookmarkDeleteError,
    BookmarkNotFound,
    BookmarkSaveError,
    DatabaseError,
    FolderCycleError,
    FolderDeleteError,
    FolderNotFound,
    FolderSaveError,
    GatewayError,
    InvalidInput,
    MarkhiveError,
    UnknownError,
)
from .gateway import BookmarkGateway, FolderGateway, Transactional
from .log import get_logger
from .model import Bookmark, CountResult, Folder

log = get_logger(__name__)

# Cascade step kinds produced by _plan_delete.
_BOOKMARK = "bookmark"
_FOLDER = "folder"


class HierarchyService:
    """Validated operations over the bookmark/folder forest.

    The service keeps no state besides its gateways and can be shared between
    callers. Read-modify-write operations and folder cascades run inside the
    folder gateway's ``transaction()`` when it offers one (and
    ``transactional_cascade`` is on); otherwise each gateway call stands alone
    and a failure part-way through leaves earlier steps applied.
    """

    def __init__(
        self,
        bookmarks: BookmarkGateway,
        folders: FolderGateway,
        *,
        reject_cycles: bool = True,
        transactional_cascade: bool = True,
    ) -> None:
        self._bookmarks = bookmarks
        self._folders = folders
        self.reject_cycles = reject_cycles
        self.transactional_cascade = transactional_cascade

    # ------------------------------------------------------------------
    # Bookmarks

    def get_all_bookmarks(self) -> List[Bookmark]:
        return self._read("list bookmarks", self._bookmarks.find_all)

    def get_bookmark(self, bookmark_id: int) -> Optional[Bookmark]:
        return self._read(f"load bookmark {bookmark_id}", self._bookmarks.find_by_id, bookmark_id)

    def save_bookmark(self, bookmark: Optional[Bookmark]) -> Bookmark:
        if bookmark is None:
            raise InvalidInput("Bookmark cannot be empty")
        url = (bookmark.url or "").strip()
        if not url:
            raise InvalidInput("Bookmark URL cannot be empty")
        if bookmark.position < 0:
            raise InvalidInput(f"Bookmark position must be non-negative, got {bookmark.position}")
        if bookmark.url != url:
            bookmark.url = url
        if bookmark.folder_id is not None:
            self._require_folder(bookmark.folder_id)

        with self._translating(BookmarkSaveError, f"save bookmark {url}"):
            saved = self._bookmarks.save(bookmark)
        log.info("Saved bookmark %d: %s", saved.id, saved.display_title)
        return saved

    def add_bookmark(
        self,
        title: Optional[str],
        url: Optional[str],
        favicon_url: Optional[str] = None,
        folder_id: Optional[int] = None,
        *,
        favorite: bool = False,
    ) -> Bookmark:
        """Build a bookmark from loose fields and save it after its siblings."""
        bookmark = Bookmark(
            title=(title or "").strip(),
            url=url or "",
            favicon_url=favicon_url,
            folder_id=folder_id,
            is_favorite=favorite,
        )
        if bookmark.url.strip():
            bookmark.position = self._next_bookmark_position(folder_id)
        return self.save_bookmark(bookmark)

    def save_to_favorites(self, title: Optional[str], url: Optional[str], favicon_url: Optional[str] = None) -> Bookmark:
        return self.add_bookmark(title, url, favicon_url, None, favorite=True)

    def update_bookmark(self, bookmark: Optional[Bookmark]) -> None:
        if bookmark is None:
            raise InvalidInput("Bookmark cannot be empty")
        if not bookmark.is_persisted:
            raise InvalidInput("Bookmark has not been saved yet")
        if not (bookmark.url or "").strip():
            raise InvalidInput("Bookmark URL cannot be empty")
        if bookmark.folder_id is not None:
            self._require_folder(bookmark.folder_id)

        with self._translating(BookmarkSaveError, f"update bookmark {bookmark.id}"):
            self._bookmarks.update(bookmark)
        log.debug("Updated bookmark %d", bookmark.id)

    def delete_bookmark(self, bookmark_id: int) -> None:
        with self._translating(BookmarkDeleteError, f"delete bookmark {bookmark_id}"):
            self._bookmarks.delete(bookmark_id)
        log.info("Deleted bookmark %d", bookmark_id)

    def get_bookmarks_by_folder_id(self, folder_id: Optional[int]) -> List[Bookmark]:
        if folder_id is None:
            return self.get_root_bookmarks()
        return self._read(f"list bookmarks in folder {folder_id}", self._bookmarks.find_by_folder_id, folder_id)

    def get_root_bookmarks(self) -> List[Bookmark]:
        return self._read("list root bookmarks", self._bookmarks.find_root_bookmarks)

    def get_favorites(self) -> List[Bookmark]:
        return self._read("list favorite bookmarks", self._bookmarks.find_favorites)

    def search_bookmarks(self, query: Optional[str]) -> List[Bookmark]:
        text = (query or "").strip()
        if not text:
            return self.get_all_bookmarks()
        return self._read(f"search bookmarks for {text!r}", self._bookmarks.search, text)

    def is_bookmarked(self, url: Optional[str]) -> bool:
        if not url or not url.strip():
            return False
        try:
            return bool(self._bookmarks.exists_by_url(url.strip()))
        except Exception as e:
            log.warning("Bookmark lookup for %s failed, reporting not bookmarked: %s", url, e)
            return False

    def get_bookmark_by_url(self, url: Optional[str]) -> Optional[Bookmark]:
        if not url or not url.strip():
            return None
        return self._read(f"load bookmark by url {url}", self._bookmarks.find_by_url, url.strip())

    def move_bookmark(self, bookmark_id: int, new_folder_id: Optional[int]) -> None:
        with self._translating(BookmarkSaveError, f"move bookmark {bookmark_id}"), self._atomic():
            bookmark = self._require_bookmark(bookmark_id)
            bookmark.folder_id = new_folder_id
            self.update_bookmark(bookmark)
        log.info("Moved bookmark %d to %s", bookmark_id, _where(new_folder_id))

    def reorder_bookmark(self, bookmark_id: int, new_position: int) -> None:
        # Siblings are not renumbered; gaps and ties are left to the caller.
        if new_position < 0:
            raise InvalidInput(f"Bookmark position must be non-negative, got {new_position}")
        with self._translating(BookmarkSaveError, f"reorder bookmark {bookmark_id}"):
            self._bookmarks.update_position(bookmark_id, new_position)
        log.debug("Bookmark %d now at position %d", bookmark_id, new_position)

    def toggle_favorite(self, bookmark_id: int) -> bool:
        with self._translating(BookmarkSaveError, f"toggle favorite on bookmark {bookmark_id}"), self._atomic():
            bookmark = self._require_bookmark(bookmark_id)
            favorite = not bookmark.is_favorite
            self._bookmarks.update_favorite_status(bookmark_id, favorite)
        log.info("Bookmark %d favorite=%s", bookmark_id, favorite)
        return favorite

    # ------------------------------------------------------------------
    # Folders

    def get_all_folders(self) -> List[Folder]:
        return self._read("list folders", self._folders.find_all)

    def get_folder(self, folder_id: int) -> Optional[Folder]:
        return self._read(f"load folder {folder_id}", self._folders.find_by_id, folder_id)

    def create_folder(self, name: Optional[str], parent_folder_id: Optional[int] = None) -> Folder:
        clean = (name or "").strip()
        if not clean:
            raise InvalidInput("Folder name cannot be empty")
        if parent_folder_id is not None:
            self._require_folder(parent_folder_id)

        folder = Folder(
            name=clean,
            parent_folder_id=parent_folder_id,
            position=self._next_folder_position(parent_folder_id),
        )
        with self._translating(FolderSaveError, f"create folder {clean!r}"):
            saved = self._folders.save(folder)
        log.info("Created folder %d %r under %s", saved.id, saved.name, _where(parent_folder_id))
        return saved

    def update_folder(self, folder: Optional[Folder]) -> None:
        if folder is None:
            raise InvalidInput("Folder cannot be empty")
        if not folder.is_persisted:
            raise InvalidInput("Folder has not been saved yet")
        clean = (folder.name or "").strip()
        if not clean:
            raise InvalidInput("Folder name cannot be empty")
        if folder.name != clean:
            folder.name = clean
        if folder.parent_folder_id is not None:
            self._require_folder(folder.parent_folder_id)

        with self._translating(FolderSaveError, f"update folder {folder.id}"):
            if self.reject_cycles and folder.parent_folder_id is not None:
                self._ensure_not_descendant(folder.id, folder.parent_folder_id)
            self._folders.update(folder)
        log.debug("Updated folder %d", folder.id)

    def delete_folder(self, folder_id: int, delete_contents: bool) -> None:
        """Remove a folder, either destroying or promoting what it contains.

        With ``delete_contents`` every bookmark and subfolder below the folder
        is removed, depth first. Without it, the folder's direct bookmarks move
        to root level and its direct subfolders become root folders carrying
        their own contents with them.
        """
        what = f"delete folder {folder_id}"
        with self._translating(FolderDeleteError, what, passthrough=(FolderNotFound, FolderDeleteError)):
            with self._atomic():
                if self._folders.find_by_id(folder_id) is None:
                    raise FolderNotFound(f"Folder {folder_id} does not exist")
                if delete_contents:
                    steps = self._plan_delete(folder_id)
                    self._apply_delete(steps)
                    removed = len(steps)
                else:
                    removed = 1 + self._promote_children(folder_id)
                    self._folders.delete(folder_id)
        log.info(
            "Deleted folder %d (%s, %d records touched)",
            folder_id,
            "with contents" if delete_contents else "contents promoted",
            removed,
        )

    def get_sub_folders(self, parent_folder_id: Optional[int]) -> List[Folder]:
        return self._read(
            f"list subfolders of {_where(parent_folder_id)}",
            self._folders.find_by_parent_id,
            parent_folder_id,
        )

    def get_root_folders(self) -> List[Folder]:
        return self._read("list root folders", self._folders.find_root_folders)

    def move_folder(self, folder_id: int, new_parent_folder_id: Optional[int]) -> None:
        with self._translating(FolderSaveError, f"move folder {folder_id}"), self._atomic():
            folder = self._require_folder(folder_id)
            folder.parent_folder_id = new_parent_folder_id
            # update_folder rejects a missing parent and one that sits inside this folder.
            self.update_folder(folder)
        log.info("Moved folder %d to %s", folder_id, _where(new_parent_folder_id))

    def get_folder_with_contents(self, folder_id: int) -> Optional[Folder]:
        folder = self.get_folder(folder_id)
        if folder is None:
            return None
        folder.bookmarks = self.get_bookmarks_by_folder_id(folder_id)
        folder.subfolders = self.get_sub_folders(folder_id)
        return folder

    # ------------------------------------------------------------------
    # Counters (display only: failures degrade to zero)

    def bookmarks_count(self) -> CountResult:
        return _soft_count("bookmarks", self._bookmarks.count)

    def folders_count(self) -> CountResult:
        return _soft_count("folders", self._folders.count)

    def get_bookmarks_count(self) -> int:
        return self.bookmarks_count().value

    def get_folders_count(self) -> int:
        return self.folders_count().value

    # ------------------------------------------------------------------
    # Internals

    def _require_bookmark(self, bookmark_id: int) -> Bookmark:
        bookmark = self.get_bookmark(bookmark_id)
        if bookmark is None:
            raise BookmarkNotFound(f"Bookmark {bookmark_id} does not exist")
        return bookmark

    def _require_folder(self, folder_id: int) -> Folder:
        folder = self.get_folder(folder_id)
        if folder is None:
            raise FolderNotFound(f"Folder {folder_id} does not exist")
        return folder

    def _ensure_not_descendant(self, folder_id: int, new_parent_id: int) -> None:
        """Walk up from ``new_parent_id``; reaching ``folder_id`` means a cycle."""
        limit = self._folders.count() + 1
        current: Optional[int] = new_parent_id
        steps = 0
        while current is not None:
            if current == folder_id:
                raise FolderCycleError(f"Folder {folder_id} cannot be placed under {new_parent_id}, which is inside it")
            steps += 1
            if steps > limit:
                raise FolderCycleError(f"Ancestry of folder {new_parent_id} already contains a cycle")
            parent = self._folders.find_by_id(current)
            if parent is None:
                return
            current = parent.parent_folder_id

    def _plan_delete(self, folder_id: int) -> List[Tuple[str, int]]:
        steps: List[Tuple[str, int]] = []
        seen = set()

        def visit(fid: int) -> None:
            if fid in seen:
                return
            seen.add(fid)
            steps.extend((_BOOKMARK, b.id) for b in self._bookmarks.find_by_folder_id(fid))
            for sub in self._folders.find_by_parent_id(fid):
                visit(sub.id)
            steps.append((_FOLDER, fid))

        visit(folder_id)
        return steps

    def _apply_delete(self, steps: List[Tuple[str, int]]) -> None:
        for kind, record_id in steps:
            if kind == _BOOKMARK:
                self.delete_bookmark(record_id)
            else:
                self._folders.delete(record_id)
                log.debug("Cascade removed folder %d", record_id)

    def _promote_children(self, folder_id: int) -> int:
        bookmark_ids = [b.id for b in self._bookmarks.find_by_folder_id(folder_id)]
        subfolder_ids = [f.id for f in self._folders.find_by_parent_id(folder_id)]
        for bid in bookmark_ids:
            self.move_bookmark(bid, None)
        for fid in subfolder_ids:
            self.move_folder(fid, None)
        return len(bookmark_ids) + len(subfolder_ids)

    def _next_bookmark_position(self, folder_id: Optional[int]) -> int:
        siblings = self.get_bookmarks_by_folder_id(folder_id)
        return max((b.position for b in siblings), default=-1) + 1

    def _next_folder_position(self, parent_folder_id: Optional[int]) -> int:
        siblings = self.get_sub_folders(parent_folder_id)
        return max((f.position for f in siblings), default=-1) + 1

    def _atomic(self) -> ContextManager[None]:
        if self.transactional_cascade and callable(getattr(self._folders, "transaction", None)):
            return cast(Transactional, self._folders).transaction()
        return nullcontext()

    def _read(self, what: str, fn, *args):
        with self._translating(DatabaseError, what):
            return fn(*args)

    @contextmanager
    def _translating(
        self,
        error_cls: Type[MarkhiveError],
        what: str,
        *,
        passthrough: Tuple[Type[MarkhiveError], ...] = (MarkhiveError,),
    ) -> Iterator[None]:
        try:
            yield
        except passthrough:
            raise
        except (GatewayError, MarkhiveError) as e:
            reason = e.message if isinstance(e, MarkhiveError) else str(e)
            log.error("Failed to %s: %s", what, reason)
            raise error_cls(f"Failed to {what}: {reason}") from e
        except Exception as e:
            log.exception("Unexpected error while trying to %s", what)
            raise UnknownError(f"Unexpected error while trying to {what}: {e}") from e


def _soft_count(label: str, fn) -> CountResult:
    try:
        return CountResult(int(fn()))
    except Exception as e:
        log.warning("Counting %s failed, showing 0: %s", label, e)
        return CountResult(0, degraded=True)


def _where(folder_id: Optional[int]) -> str:
    return "root" if folder_id is None else f"folder {folder_id}"
