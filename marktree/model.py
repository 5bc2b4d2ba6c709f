from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

FOLDER = "folder"
BOOKMARK = "bookmark"


@dataclass
class Bookmark:
    id: str
    title: str
    href: str
    add_date: int
    icon_data: Optional[str] = None
    icon_uri: Optional[str] = None
    kind: str = field(default=BOOKMARK, init=False)


@dataclass
class Folder:
    id: str
    title: str
    add_date: int
    last_modified: int
    personal_toolbar_folder: bool = False
    children: List["TreeNode"] = field(default_factory=list)
    kind: str = field(default=FOLDER, init=False)


TreeNode = Union[Folder, Bookmark]


@dataclass(frozen=True)
class HistoryEntry:
    roots: List[Folder]
    selected_id: Optional[str]


@dataclass(frozen=True)
class Stats:
    folders: int = 0
    bookmarks: int = 0


@dataclass(frozen=True)
class Crumb:
    id: str
    title: str
