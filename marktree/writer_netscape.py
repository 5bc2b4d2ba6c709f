from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from .log import get_logger
from .model import BOOKMARK, FOLDER, Bookmark, Folder

log = get_logger(__name__)

_HEADER = [
    "<!DOCTYPE NETSCAPE-Bookmark-file-1>",
    "<!-- This is an automatically generated file.",
    "     It will be read and overwritten.",
    "     DO NOT EDIT! -->",
    '<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">',
    "<TITLE>Bookmarks</TITLE>",
    "<H1>Bookmarks</H1>",
    "<DL><p>",
]

_ESCAPES = str.maketrans({
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
})


def esc(s: Optional[object]) -> str:
    return "" if s is None else str(s).translate(_ESCAPES)


def export_netscape_html(roots: List[Folder]) -> str:
    """Render root folders as a Netscape Bookmark HTML document.

    Every folder gets a nested DL, even when empty, so importers that rely on
    DL nesting see the same structure that was written.
    """
    lines: List[str] = list(_HEADER)
    for root in roots:
        _write_folder(lines, root, indent="    ")
    lines.append("</DL><p>")
    return "\n".join(lines)


def write_netscape_html(out_path: Path, roots: List[Folder]) -> None:
    out_path.write_text(export_netscape_html(roots) + "\n", encoding="utf-8")
    log.info("Wrote Netscape bookmarks HTML: %s", out_path)


def _write_folder(lines: List[str], folder: Folder, indent: str) -> None:
    attrs = [
        f'ADD_DATE="{folder.add_date}"',
        f'LAST_MODIFIED="{folder.last_modified or folder.add_date}"',
    ]
    if folder.personal_toolbar_folder:
        attrs.append('PERSONAL_TOOLBAR_FOLDER="true"')
    lines.append(f"{indent}<DT><H3 {' '.join(attrs)}>{esc(folder.title)}</H3>")
    lines.append(f"{indent}<DL><p>")
    for child in folder.children:
        if child.kind == FOLDER:
            _write_folder(lines, child, indent + "    ")
        elif child.kind == BOOKMARK:
            lines.append(f"{indent}    {_bookmark_line(child)}")
    lines.append(f"{indent}</DL><p>")


def _bookmark_line(b: Bookmark) -> str:
    attrs = [f'HREF="{esc(b.href)}"', f'ADD_DATE="{b.add_date}"']
    if b.icon_data:
        attrs.append(f'ICON="{esc(b.icon_data)}"')
    if b.icon_uri:
        attrs.append(f'ICON_URI="{esc(b.icon_uri)}"')
    return f"<DT><A {' '.join(attrs)}>{esc(b.title or b.href)}</A>"
