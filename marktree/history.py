from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional

from .model import Folder, HistoryEntry
from .tree_utils import deep_clone

MAX_HISTORY = 50


class HistoryManager:
    """Linear undo/redo over deep-copied (roots, selected_id) snapshots.

    Stored entries share nothing with the live tree: every push and every
    restore goes through a deep copy.
    """

    def __init__(self, max_depth: int = MAX_HISTORY):
        self.max_depth = max(1, int(max_depth))
        self._undo: Deque[HistoryEntry] = deque(maxlen=self.max_depth)
        self._redo: List[HistoryEntry] = []

    def push(self, roots: List[Folder], selected_id: Optional[str]) -> None:
        # deque(maxlen) drops the oldest snapshot once full.
        self._undo.append(_snapshot(roots, selected_id))
        self._redo.clear()

    def undo(self, current_roots: List[Folder], current_selected_id: Optional[str]) -> Optional[HistoryEntry]:
        if not self._undo:
            return None
        entry = self._undo.pop()
        self._redo.append(_snapshot(current_roots, current_selected_id))
        return deep_clone(entry)

    def redo(self, current_roots: List[Folder], current_selected_id: Optional[str]) -> Optional[HistoryEntry]:
        if not self._redo:
            return None
        entry = self._redo.pop()
        self._undo.append(_snapshot(current_roots, current_selected_id))
        return deep_clone(entry)

    @property
    def can_undo(self) -> bool:
        return len(self._undo) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._redo) > 0

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()


def _snapshot(roots: List[Folder], selected_id: Optional[str]) -> HistoryEntry:
    return HistoryEntry(roots=deep_clone(list(roots)), selected_id=selected_id)
