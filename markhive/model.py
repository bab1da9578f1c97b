from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar, FrozenSet, List, Optional

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def domain_of(url: str) -> str:
    if not url:
        return ""
    rest = _SCHEME_RE.sub("", url.strip())
    host = re.split(r"[/?#]", rest, maxsplit=1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host


class _Touched:
    """Bumps ``updated_at`` whenever a tracked attribute is reassigned.

    Assignments made by the generated ``__init__`` happen before ``updated_at``
    exists on the instance and are not counted.
    """

    _TRACKED: ClassVar[FrozenSet[str]] = frozenset()

    def __setattr__(self, name: str, value) -> None:
        super().__setattr__(name, value)
        if name in self._TRACKED and "updated_at" in self.__dict__:
            super().__setattr__("updated_at", utcnow())


@dataclass
class Bookmark(_Touched):
    title: str = ""
    url: str = ""
    favicon_url: Optional[str] = None
    folder_id: Optional[int] = None
    position: int = 0
    is_favorite: bool = False
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    id: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    _TRACKED: ClassVar[FrozenSet[str]] = frozenset(
        {"title", "url", "favicon_url", "folder_id", "position", "is_favorite", "description", "tags"}
    )

    @property
    def is_persisted(self) -> bool:
        return self.id > 0

    @property
    def domain(self) -> str:
        return domain_of(self.url)

    @property
    def display_title(self) -> str:
        title = (self.title or "").strip()
        return title or self.domain or self.url

    def same_record(self, other: "Bookmark") -> bool:
        return self.is_persisted and self.id == other.id

    def __str__(self) -> str:
        return self.display_title


@dataclass
class Folder(_Touched):
    name: str = ""
    parent_folder_id: Optional[int] = None
    position: int = 0
    is_favorite: bool = False
    id: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # Snapshot filled by HierarchyService.get_folder_with_contents; stale as
    # soon as it is built and never written back.
    bookmarks: List[Bookmark] = field(default_factory=list, compare=False, repr=False)
    subfolders: List["Folder"] = field(default_factory=list, compare=False, repr=False)

    _TRACKED: ClassVar[FrozenSet[str]] = frozenset({"name", "parent_folder_id", "position", "is_favorite"})

    def __setattr__(self, name: str, value) -> None:
        if name == "created_at" and "created_at" in self.__dict__:
            raise AttributeError("created_at is immutable")
        super().__setattr__(name, value)

    @property
    def is_persisted(self) -> bool:
        return self.id > 0

    @property
    def is_root(self) -> bool:
        return self.parent_folder_id is None

    def add_bookmark(self, bookmark: Bookmark) -> None:
        self.bookmarks.append(bookmark)
        bookmark.folder_id = self.id

    def remove_bookmark(self, bookmark: Bookmark) -> None:
        self.bookmarks = [b for b in self.bookmarks if b is not bookmark]

    def add_subfolder(self, folder: "Folder") -> None:
        self.subfolders.append(folder)
        folder.parent_folder_id = self.id

    def remove_subfolder(self, folder: "Folder") -> None:
        self.subfolders = [f for f in self.subfolders if f is not folder]

    def same_record(self, other: "Folder") -> bool:
        return self.is_persisted and self.id == other.id

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class CountResult:
    """Aggregate count that tells a real zero apart from a failed lookup."""

    value: int
    degraded: bool = False

    def __int__(self) -> int:
        return self.value
