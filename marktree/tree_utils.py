from __future__ import annotations

import copy
import time
from typing import Dict, Iterable, Iterator, List, Optional, TypeVar
from urllib.parse import urlparse

from .model import BOOKMARK, FOLDER, Bookmark, Crumb, Folder, Stats, TreeNode
from .uid import uid

T = TypeVar("T")


def now_sec() -> int:
    return int(time.time())


def make_root(title: str, is_toolbar: bool = False) -> Folder:
    ts = now_sec()
    return Folder(
        id=uid(),
        title=title,
        add_date=ts,
        last_modified=ts,
        personal_toolbar_folder=is_toolbar,
    )


def make_folder(title: str) -> Folder:
    ts = now_sec()
    return Folder(id=uid(), title=title, add_date=ts, last_modified=ts)


def make_bookmark(
    url: str,
    title: str,
    icon_data: Optional[str] = None,
    icon_uri: Optional[str] = None,
) -> Bookmark:
    return Bookmark(
        id=uid(),
        title=title,
        href=url,
        add_date=now_sec(),
        icon_data=icon_data,
        icon_uri=icon_uri,
    )


def iter_nodes(nodes: Iterable[TreeNode]) -> Iterator[TreeNode]:
    """Depth-first walk yielding every node, each folder before its contents."""
    for node in nodes:
        yield node
        if node.kind == FOLDER:
            yield from iter_nodes(node.children)


def find_node_by_id(roots: List[Folder], node_id: str) -> Optional[TreeNode]:
    for node in iter_nodes(roots):
        if node.id == node_id:
            return node
    return None


def find_parent(roots: List[Folder], node_id: str) -> Optional[Folder]:
    """Return the folder directly holding `node_id`; roots have no parent."""
    for node in iter_nodes(roots):
        if node.kind != FOLDER:
            continue
        for child in node.children:
            if child.id == node_id:
                return node
    return None


def get_breadcrumb(roots: List[Folder], node_id: str) -> List[Crumb]:
    for root in roots:
        path = _path_to(root, node_id)
        if path is not None:
            return [Crumb(id=n.id, title=n.title) for n in path]
    return []


def expand_path_to_node(roots: List[Folder], node_id: str) -> List[str]:
    """Folder ids that must be open for `node_id` to be visible (inclusive for folders)."""
    for root in roots:
        path = _path_to(root, node_id)
        if path is not None:
            return [n.id for n in path if n.kind == FOLDER]
    return []


def _path_to(node: TreeNode, target_id: str) -> Optional[List[TreeNode]]:
    if node.id == target_id:
        return [node]
    if node.kind == FOLDER:
        for child in node.children:
            sub = _path_to(child, target_id)
            if sub is not None:
                return [node] + sub
    return None


def count_stats(roots: List[Folder]) -> Stats:
    folders = 0
    bookmarks = 0
    for node in iter_nodes(roots):
        if node.kind == FOLDER:
            folders += 1
        elif node.kind == BOOKMARK:
            bookmarks += 1
    return Stats(folders=folders, bookmarks=bookmarks)


def deep_clone(value: T) -> T:
    return copy.deepcopy(value)


def is_http_url(s: str) -> bool:
    try:
        p = urlparse(s)
        return p.scheme in ("http", "https") and bool(p.hostname)
    except (TypeError, ValueError, AttributeError):
        return False


def host_title(url: str) -> str:
    """Hostname of `url`, or the raw string when it has none."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    return host or url


def get_all_expanded_ids(roots: List[Folder]) -> Dict[str, bool]:
    return {n.id: True for n in iter_nodes(roots) if n.kind == FOLDER}
