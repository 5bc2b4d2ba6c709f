from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .model import BOOKMARK, FOLDER, Folder, TreeNode


@dataclass
class SearchResult:
    node: TreeNode
    path: List[str] = field(default_factory=list)
    parent_id: Optional[str] = None


def search_tree(roots: List[Folder], query: str) -> List[SearchResult]:
    """Case-insensitive substring search over folder titles and bookmark title/href.

    `path` holds the ancestor titles from the root down to the direct parent;
    matched nodes are returned by identity, not copied.
    """
    if not query or not query.strip():
        return []
    q = query.lower()
    results: List[SearchResult] = []

    def walk(folder: Folder, path: List[str]) -> None:
        child_path = path + [folder.title]
        for child in folder.children:
            if child.kind == BOOKMARK:
                if q in child.title.lower() or q in child.href.lower():
                    results.append(SearchResult(node=child, path=child_path, parent_id=folder.id))
            elif child.kind == FOLDER:
                if q in child.title.lower():
                    results.append(SearchResult(node=child, path=child_path, parent_id=folder.id))
                walk(child, child_path)

    for root in roots:
        if q in root.title.lower():
            results.append(SearchResult(node=root, path=[], parent_id=None))
        walk(root, [])
    return results
