from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional, Set, Tuple, Union

from .errors import FolderNotFound, MarkhiveError
from .log import get_logger
from .model import Bookmark, CountResult, Folder
from .service import HierarchyService

log = get_logger(__name__)


class _AnyFolder:
    def __repr__(self) -> str:
        return "ANY_FOLDER"


ANY_FOLDER = _AnyFolder()


@dataclass(frozen=True)
class HierarchyStats:
    bookmarks: CountResult
    folders: CountResult
    favorites: CountResult
    root_bookmarks: CountResult

    @property
    def degraded(self) -> bool:
        return any(c.degraded for c in (self.bookmarks, self.folders, self.favorites, self.root_bookmarks))


class BookmarkQueries:
    """Read-side helpers layered on :class:`HierarchyService`.

    Nothing here writes. Folder views returned by :meth:`subtree` are
    snapshots and go stale as soon as the tree is mutated.
    """

    def __init__(self, service: HierarchyService) -> None:
        self.service = service

    def search(
        self,
        text: Optional[str],
        *,
        folder_id: Union[int, None, _AnyFolder] = ANY_FOLDER,
        favorites_only: bool = False,
    ) -> List[Bookmark]:
        """Match ``text`` against titles and URLs.

        Blank text returns every bookmark. ``folder_id`` narrows the result to
        one folder's direct bookmarks (``None`` = root level).
        """
        hits = self.service.search_bookmarks(text)
        if folder_id is not ANY_FOLDER:
            hits = [b for b in hits if b.folder_id == folder_id]
        if favorites_only:
            hits = [b for b in hits if b.is_favorite]
        return hits

    def favorites(self) -> List[Bookmark]:
        return self.service.get_favorites()

    def root_bookmarks(self) -> List[Bookmark]:
        return self.service.get_bookmarks_by_folder_id(None)

    def root_folders(self) -> List[Folder]:
        return self.service.get_root_folders()

    def nested_bookmarks(self) -> List[Bookmark]:
        return [b for b in self.service.get_all_bookmarks() if b.folder_id is not None]

    def walk(self, folder_id: Optional[int] = None) -> Iterator[Tuple[int, Folder]]:
        """Yield ``(depth, folder)`` depth-first below ``folder_id``.

        Direct children are depth 0. ``None`` walks the whole forest. A folder
        reachable twice (cyclic stored data) is yielded once.
        """
        seen: Set[int] = set()
        if folder_id is not None:
            seen.add(folder_id)
        stack: List[Tuple[int, Folder]] = [(0, f) for f in reversed(self.service.get_sub_folders(folder_id))]
        while stack:
            depth, folder = stack.pop()
            if folder.id in seen:
                log.warning("Folder %d reached twice while walking; skipping", folder.id)
                continue
            seen.add(folder.id)
            yield depth, folder
            children = self.service.get_sub_folders(folder.id)
            stack.extend((depth + 1, f) for f in reversed(children))

    def folder_path(self, folder_id: int) -> List[Folder]:
        """Ancestors of ``folder_id`` from its root down to the folder itself."""
        path: List[Folder] = []
        seen: Set[int] = set()
        current: Optional[int] = folder_id
        while current is not None and current not in seen:
            seen.add(current)
            folder = self.service.get_folder(current)
            if folder is None:
                if current == folder_id:
                    raise FolderNotFound(f"Folder {folder_id} does not exist")
                break
            path.append(folder)
            current = folder.parent_folder_id
        path.reverse()
        return path

    def subtree(self, folder_id: int) -> Folder:
        root = self.service.get_folder_with_contents(folder_id)
        if root is None:
            raise FolderNotFound(f"Folder {folder_id} does not exist")
        seen = {root.id}
        pending = [root]
        while pending:
            node = pending.pop()
            populated = []
            for child in node.subfolders:
                if child.id in seen:
                    continue
                seen.add(child.id)
                full = self.service.get_folder_with_contents(child.id)
                if full is None:
                    continue
                populated.append(full)
                pending.append(full)
            node.subfolders = populated
        return root

    def stats(self) -> HierarchyStats:
        return HierarchyStats(
            bookmarks=self.service.bookmarks_count(),
            folders=self.service.folders_count(),
            favorites=_soft_len("favorites", self.service.get_favorites),
            root_bookmarks=_soft_len("root bookmarks", self.service.get_root_bookmarks),
        )


def _soft_len(label: str, fn) -> CountResult:
    try:
        return CountResult(len(fn()))
    except MarkhiveError as e:
        log.warning("Counting %s failed, showing 0: %s", label, e.message)
        return CountResult(0, degraded=True)
