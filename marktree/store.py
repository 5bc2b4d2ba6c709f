from __future__ import annotations

import functools
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple, Union
from urllib.parse import urlparse

from .config import Settings
from .favicon import FaviconFetcher, IconFetchPool, IconResult
from .history import HistoryManager
from .log import get_logger
from .model import BOOKMARK, FOLDER, Bookmark, Crumb, Folder, Stats, TreeNode
from .parse_netscape import parse_netscape_html
from .search import SearchResult, search_tree
from .tree_utils import (
    count_stats,
    expand_path_to_node,
    find_node_by_id,
    find_parent,
    get_all_expanded_ids,
    get_breadcrumb,
    host_title,
    is_http_url,
    iter_nodes,
    make_bookmark,
    make_folder,
    make_root,
    now_sec,
)
from .uid import uid
from .writer_netscape import export_netscape_html

log = get_logger(__name__)


class ImportMode(str, Enum):
    REPLACE = "replace"
    MERGE = "merge"
    ALONGSIDE = "alongside"


@dataclass(frozen=True)
class BulkAddResult:
    added: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class Toast:
    id: str
    message: str
    kind: str
    created_at: float


class BookmarkStore:
    """Authoritative bookmark forest plus selection, expansion and history.

    Every structural mutation validates its target (unknown ids are a silent
    no-op), snapshots the current state into history, mutates in place and
    then publishes `roots` as a new list object. Mutations are serialized by
    a re-entrant lock; icon fetch completions arrive on worker threads and go
    through the same lock, looked up again by bookmark id.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        icon_pool: Optional[IconFetchPool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or Settings()
        self._history = HistoryManager(self.settings.history_max_depth)
        self._lock = threading.RLock()
        self._clock = clock

        self._roots: List[Folder] = []
        self._selected_id: Optional[str] = None
        self._expanded: Dict[str, bool] = {}
        self._show_tree_bookmarks = True
        self._search_query = ""
        self._toasts: List[Toast] = []

        self._listeners: List[Callable[[List[Folder]], None]] = []
        self._toast_listeners: List[Callable[[Toast], None]] = []
        self._queue_listeners: List[Callable[[int], None]] = []

        # A pool passed in stays the caller's to shut down.
        self._fetcher: Optional[FaviconFetcher] = None
        self._icon_pool = icon_pool
        self._owns_pool = icon_pool is None
        if icon_pool is not None:
            icon_pool.set_queue_change_listener(self._on_icon_queue_change)

    @property
    def roots(self) -> List[Folder]:
        return self._roots

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def selected_node(self) -> Optional[TreeNode]:
        if not self._selected_id:
            return None
        return find_node_by_id(self._roots, self._selected_id)

    @property
    def breadcrumb(self) -> List[Crumb]:
        if not self._selected_id:
            return []
        return get_breadcrumb(self._roots, self._selected_id)

    @property
    def expanded_ids(self) -> Dict[str, bool]:
        return self._expanded

    @property
    def show_tree_bookmarks(self) -> bool:
        return self._show_tree_bookmarks

    @property
    def stats(self) -> Stats:
        return count_stats(self._roots)

    @property
    def search_query(self) -> str:
        return self._search_query

    @property
    def search_results(self) -> List[SearchResult]:
        if not self._search_query:
            return []
        return search_tree(self._roots, self._search_query)

    @property
    def icon_pending(self) -> int:
        return self._icon_pool.pending if self._icon_pool is not None else 0

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def toasts(self) -> List[Toast]:
        with self._lock:
            self._prune_toasts(self._clock())
            return list(self._toasts)

    def add_listener(self, fn: Callable[[List[Folder]], None]) -> None:
        self._listeners.append(fn)

    def on_toast(self, fn: Callable[[Toast], None]) -> None:
        self._toast_listeners.append(fn)

    def on_icon_queue_change(self, fn: Callable[[int], None]) -> None:
        self._queue_listeners.append(fn)

    def init(self) -> None:
        with self._lock:
            if not self._roots:
                root = make_root(self.settings.default_root_title)
                self._roots = [root]
                self._expanded = {root.id: True}
                self._selected_id = root.id
                self._publish()
            elif not self._selected_id:
                first = self._roots[0]
                self._expanded = {**self._expanded, first.id: True}
                self._selected_id = first.id

    def reset(self) -> None:
        with self._lock:
            self._history.clear()
            root = make_root(self.settings.default_root_title)
            self._roots = [root]
            self._expanded = {root.id: True}
            self._selected_id = root.id
            self._show_tree_bookmarks = True
            self._publish()
        self.add_toast("Reset complete", "success")

    def close(self) -> None:
        if self._icon_pool is not None and self._owns_pool:
            self._icon_pool.shutdown(wait=True)
        if self._fetcher is not None:
            self._fetcher.close()

    def select_node(self, node_id: str) -> None:
        with self._lock:
            path = expand_path_to_node(self._roots, node_id)
            if not path:
                log.debug("select_node: unknown id %s", node_id)
                return
            self._selected_id = node_id
            expanded = dict(self._expanded)
            for pid in path:
                expanded[pid] = True
            self._expanded = expanded

    def toggle_expanded(self, node_id: str) -> None:
        with self._lock:
            self._expanded = {**self._expanded, node_id: not self._expanded.get(node_id, False)}

    def expand_all(self) -> None:
        with self._lock:
            self._expanded = get_all_expanded_ids(self._roots)
            self._show_tree_bookmarks = True

    def collapse_all(self) -> None:
        # Folders stay open; only bookmarks are hidden from the tree.
        with self._lock:
            self._expanded = get_all_expanded_ids(self._roots)
            self._show_tree_bookmarks = False

    def set_search_query(self, query: str) -> None:
        self._search_query = query or ""

    def add_folder(self, parent_id: str, title: str) -> Optional[Folder]:
        with self._lock:
            parent = self._folder(parent_id)
            if parent is None:
                return None
            self._push_history()
            folder = make_folder(title)
            parent.children.append(folder)
            parent.last_modified = now_sec()
            self._expanded = {**self._expanded, parent_id: True}
            self._publish()
        self.add_toast("Folder added", "success")
        return folder

    def add_bookmark(self, parent_id: str, url: str, title: str = "", fetch_icon: bool = False) -> Optional[Bookmark]:
        with self._lock:
            parent = self._folder(parent_id)
            if parent is None:
                return None
            self._push_history()
            bm = make_bookmark(url, title or host_title(url))
            parent.children.append(bm)
            parent.last_modified = now_sec()
            self._expanded = {**self._expanded, parent_id: True}
            self._publish()
            if fetch_icon and is_http_url(url):
                self._queue_icon(bm)
        self.add_toast("Bookmark added", "success")
        return bm

    def bulk_add(self, parent_id: str, text: str, fetch_icons: bool = False) -> BulkAddResult:
        """Add one bookmark per line of `text`, each line being `url[, title]`."""
        with self._lock:
            parent = self._folder(parent_id)
            if parent is None:
                return BulkAddResult()

            entries: List[Tuple[str, str]] = []
            skipped = 0
            for line in (s.strip() for s in (text or "").split("\n")):
                if not line:
                    continue
                url, title = _split_bulk_line(line)
                if not url or not _has_scheme(url):
                    skipped += 1
                    continue
                entries.append((url, title or host_title(url)))

            if not entries:
                return BulkAddResult(added=0, skipped=skipped)

            self._push_history()
            for url, title in entries:
                bm = make_bookmark(url, title)
                parent.children.append(bm)
                if fetch_icons and is_http_url(url):
                    self._queue_icon(bm)
            parent.last_modified = now_sec()
            self._expanded = {**self._expanded, parent_id: True}
            self._publish()

        added = len(entries)
        self.add_toast(f"Added {added} bookmark{'s' if added != 1 else ''}", "success")
        return BulkAddResult(added=added, skipped=skipped)

    def delete_node(self, node_id: str) -> bool:
        with self._lock:
            root_idx = next((i for i, r in enumerate(self._roots) if r.id == node_id), -1)
            if root_idx != -1:
                node: TreeNode = self._roots[root_idx]
                parent = None
            else:
                parent = find_parent(self._roots, node_id)
                if parent is None:
                    log.debug("delete_node: unknown id %s", node_id)
                    return False
                child_idx = _index_of(parent.children, node_id)
                node = parent.children[child_idx]

            removed_ids = {n.id for n in iter_nodes([node])}
            self._push_history()
            if parent is None:
                self._roots = self._roots[:root_idx] + self._roots[root_idx + 1:]
            else:
                del parent.children[child_idx]
                parent.last_modified = now_sec()

            if self._selected_id in removed_ids:
                if parent is not None:
                    self._selected_id = parent.id
                else:
                    self._selected_id = self._roots[0].id if self._roots else None
            self._publish()
        self.add_toast("Deleted", "success")
        return True

    def edit_node(self, node_id: str, title: Optional[str] = None, href: Optional[str] = None) -> bool:
        with self._lock:
            node = find_node_by_id(self._roots, node_id)
            if node is None:
                log.debug("edit_node: unknown id %s", node_id)
                return False
            if title is None and (href is None or node.kind != BOOKMARK):
                return False
            self._push_history()
            if title is not None:
                node.title = title
            if node.kind == BOOKMARK and href is not None:
                node.href = href
            if node.kind == FOLDER:
                node.last_modified = now_sec()
            else:
                parent = find_parent(self._roots, node_id)
                if parent is not None:
                    parent.last_modified = now_sec()
            self._publish()
        return True

    def reorder_children(self, parent_id: str, new_children: Iterable[TreeNode]) -> bool:
        with self._lock:
            parent = self._folder(parent_id)
            if parent is None:
                return False
            children = list(new_children)
            # Anything already held elsewhere, the parent itself included, would end up in two places.
            elsewhere = {n.id for n in iter_nodes(self._roots)} - {n.id for n in iter_nodes(parent.children)}
            if not _unique_ids(children, elsewhere):
                log.debug("reorder_children: new children of %s would repeat or move ids", parent_id)
                return False
            self._push_history()
            parent.children = children
            parent.last_modified = now_sec()
            self._publish()
        return True

    def reorder_roots(self, new_roots: Iterable[Folder]) -> bool:
        with self._lock:
            roots = list(new_roots)
            if any(r.kind != FOLDER for r in roots):
                log.debug("reorder_roots: every root must be a folder")
                return False
            if not _unique_ids(roots, set()):
                log.debug("reorder_roots: new roots would repeat ids")
                return False
            self._push_history()
            self._roots = roots
            self._publish()
        return True

    def move_to_parent(self, node_id: str) -> bool:
        with self._lock:
            parent = find_parent(self._roots, node_id)
            if parent is None:
                return False
            grandparent = find_parent(self._roots, parent.id)
            if grandparent is None:
                return False
            self._push_history()
            node = parent.children.pop(_index_of(parent.children, node_id))
            parent.last_modified = now_sec()
            grandparent.children.insert(_index_of(grandparent.children, parent.id) + 1, node)
            grandparent.last_modified = now_sec()
            self._publish()
        self.add_toast("Moved to parent folder", "success")
        return True

    def add_root(self, title: str, is_toolbar: bool = False) -> Folder:
        with self._lock:
            self._push_history()
            root = make_root(title, is_toolbar)
            self._roots = self._roots + [root]
            self._expanded = {**self._expanded, root.id: True}
            self._selected_id = root.id
            self._publish()
        self.add_toast("Root folder added", "success")
        return root

    def import_roots(self, imported: Iterable[TreeNode], mode: Union[ImportMode, str] = ImportMode.REPLACE) -> Stats:
        """Bring parsed nodes into the forest.

        merge: into the selected folder (alongside when no folder is selected).
        alongside: append as new roots. replace: discard the current forest.
        Top-level bookmarks never become roots; they are wrapped in a
        synthetic root folder.
        """
        mode = ImportMode(mode)
        nodes = list(imported)
        with self._lock:
            self._push_history()
            self._claim_ids(nodes)

            if mode is ImportMode.MERGE:
                dest = self.selected_node
                if dest is not None and dest.kind == FOLDER:
                    dest.children.extend(nodes)
                    dest.last_modified = now_sec()
                else:
                    mode = ImportMode.ALONGSIDE

            if mode is not ImportMode.MERGE:
                new_roots: List[Folder] = [n for n in nodes if n.kind == FOLDER]
                loose = [n for n in nodes if n.kind == BOOKMARK]
                if loose or not new_roots:
                    wrap = make_root(self.settings.import_wrapper_title)
                    wrap.children.extend(loose)
                    new_roots.append(wrap)
                if mode is ImportMode.ALONGSIDE:
                    self._roots = self._roots + new_roots
                else:
                    self._roots = new_roots
                    self._selected_id = None

            self._expanded = get_all_expanded_ids(self._roots)
            self._show_tree_bookmarks = True
            if not self._selected_id and self._roots:
                self._selected_id = self._roots[0].id
            self._publish()

        s = count_stats(nodes)
        log.info("Imported %d folders and %d bookmarks (%s)", s.folders, s.bookmarks, mode.value)
        self.add_toast(f"Imported {s.folders} folders, {s.bookmarks} bookmarks", "success")
        return s

    def import_html(self, html: str, mode: Union[ImportMode, str] = ImportMode.REPLACE) -> Stats:
        return self.import_roots(parse_netscape_html(html), mode)

    def export_html(self) -> str:
        with self._lock:
            return export_netscape_html(self._roots)

    def undo(self) -> bool:
        with self._lock:
            entry = self._history.undo(self._roots, self._selected_id)
            if entry is None:
                return False
            self._roots = entry.roots
            self._selected_id = entry.selected_id
            self._publish()
        self.add_toast("Undone", "info")
        return True

    def redo(self) -> bool:
        with self._lock:
            entry = self._history.redo(self._roots, self._selected_id)
            if entry is None:
                return False
            self._roots = entry.roots
            self._selected_id = entry.selected_id
            self._publish()
        self.add_toast("Redone", "info")
        return True

    def refresh_icons(self, only_missing: bool = True) -> int:
        with self._lock:
            targets = [
                n for n in iter_nodes(self._roots)
                if n.kind == BOOKMARK and is_http_url(n.href) and not (only_missing and n.icon_data)
            ]
            for bm in targets:
                self._queue_icon(bm)
        if targets:
            log.info("Queued icon fetch for %d bookmarks", len(targets))
        return len(targets)

    def wait_for_icons(self, timeout: Optional[float] = None) -> bool:
        if self._icon_pool is None:
            return True
        return self._icon_pool.join(timeout)

    def _queue_icon(self, bm: Bookmark) -> None:
        self._icons().submit(bm.href, functools.partial(self._apply_icon, bm.id))

    def _icons(self) -> IconFetchPool:
        if self._icon_pool is None:
            s = self.settings
            self._fetcher = FaviconFetcher(
                timeout_s=s.icon_fetch_timeout_s,
                user_agent=s.icon_fetch_user_agent,
                discover_page_icon=s.icon_discover_page_link,
            )
            self._icon_pool = IconFetchPool(
                self._fetcher,
                jobs=s.icon_fetch_jobs,
                on_queue_change=self._on_icon_queue_change,
            )
        return self._icon_pool

    def _apply_icon(self, node_id: str, result: IconResult) -> None:
        with self._lock:
            node = find_node_by_id(self._roots, node_id)
            if node is None or node.kind != BOOKMARK:
                log.debug("Dropping icon for %s: bookmark no longer exists", node_id)
                return
            if result.icon_data is None and result.icon_uri is None:
                return
            node.icon_data = result.icon_data
            node.icon_uri = result.icon_uri
            self._publish()

    def _on_icon_queue_change(self, pending: int) -> None:
        for fn in list(self._queue_listeners):
            fn(pending)

    def add_toast(self, message: str, kind: str = "info") -> Toast:
        now = self._clock()
        toast = Toast(id=uid(), message=message, kind=kind, created_at=now)
        with self._lock:
            self._prune_toasts(now)
            self._toasts.append(toast)
        log.info("%s", message)
        for fn in list(self._toast_listeners):
            fn(toast)
        return toast

    def dismiss_toast(self, toast_id: str) -> None:
        with self._lock:
            self._toasts = [t for t in self._toasts if t.id != toast_id]

    def _prune_toasts(self, now: float) -> None:
        ttl = self.settings.toast_ttl_s
        self._toasts = [t for t in self._toasts if now - t.created_at < ttl]

    def _folder(self, node_id: str) -> Optional[Folder]:
        node = find_node_by_id(self._roots, node_id)
        if node is None or node.kind != FOLDER:
            log.debug("No folder with id %s", node_id)
            return None
        return node

    def _push_history(self) -> None:
        self._history.push(self._roots, self._selected_id)

    def _publish(self) -> None:
        self._roots = list(self._roots)
        for fn in list(self._listeners):
            fn(self._roots)

    def _claim_ids(self, nodes: List[TreeNode]) -> None:
        taken = {n.id for n in iter_nodes(self._roots)}
        for n in iter_nodes(nodes):
            if n.id in taken:
                n.id = uid()
            taken.add(n.id)


def _index_of(nodes: List[TreeNode], node_id: str) -> int:
    return next(i for i, n in enumerate(nodes) if n.id == node_id)


def _unique_ids(nodes: List[TreeNode], taken: Set[str]) -> bool:
    seen = set(taken)
    for n in iter_nodes(nodes):
        if n.id in seen:
            return False
        seen.add(n.id)
    return True


def _split_bulk_line(line: str) -> Tuple[str, str]:
    url, sep, title = line.partition(",")
    return url.strip(), title.strip() if sep else ""


def _has_scheme(url: str) -> bool:
    try:
        p = urlparse(url)
    except ValueError:
        return False
    return bool(p.scheme) and bool(p.netloc or p.path)
