from __future__ import annotations

import html
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .log import get_logger
from .model import FOLDER, TreeNode
from .tree_utils import make_bookmark, make_folder

log = get_logger(__name__)

_COMMENT_RE = re.compile(r"<!--.*?-->", re.S)
_TOKEN_RE = re.compile(
    r"</?DL\b[^>]*>"
    r"|<DT\b[^>]*>"
    r"|<DD\b[^>]*>"
    r"|<H3\b(?P<h3_attrs>[^>]*)>(?P<h3_text>.*?)</H3\s*>"
    r"|<A\b(?P<a_attrs>[^>]*)>(?P<a_text>.*?)</A\s*>",
    re.I | re.S,
)
_TAG_RE = re.compile(r"<(/?)(\w+)")
_LEADING_INT_RE = re.compile(r"\s*\+?(\d+)")
_ATTR_RE = re.compile(r"""([^\s="'/>]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+)))?""")
# Attribute values only decode terminated references; "&copy=2" in a query stays as is.
_ATTR_ENTITY_RE = re.compile(r"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")


@dataclass
class _Frame:
    children: List[TreeNode]
    last: Optional[TreeNode] = None


def read_netscape_html(path: Path) -> List[TreeNode]:
    text = path.read_text(encoding="utf-8", errors="replace")
    nodes = parse_netscape_html(text)
    log.info("Parsed %d top-level nodes from %s", len(nodes), path)
    return nodes


def parse_netscape_html(src: str) -> List[TreeNode]:
    """Parse Netscape bookmark HTML into top-level nodes.

    The document is read as a flat token stream (DL open/close, DT/DD, H3, A).
    Nesting comes only from DL tokens: a DL opened right after a folder header
    holds that folder's children, any other DL keeps filling the enclosing list.
    Missing closing tags and stray markup are tolerated; nothing raises.
    """
    text = _COMMENT_RE.sub("", src or "")
    roots: List[TreeNode] = []
    stack: List[_Frame] = [_Frame(children=roots)]
    dropped = 0

    for m in _TOKEN_RE.finditer(text):
        closing, tag = _TAG_RE.match(m.group(0)).groups()
        tag = tag.upper()
        frame = stack[-1]

        if tag in ("DT", "DD"):
            continue

        if tag == "DL":
            if closing:
                if len(stack) > 1:
                    stack.pop()
                stack[-1].last = None
            else:
                last = frame.last
                target = last.children if last is not None and last.kind == FOLDER else frame.children
                stack.append(_Frame(children=target))
            continue

        if tag == "H3":
            attrs = _parse_attrs(m.group("h3_attrs"))
            folder = make_folder(html.unescape((m.group("h3_text") or "").strip()))
            add = _positive_int(attrs.get("ADD_DATE"))
            if add:
                folder.add_date = add
            lm = _positive_int(attrs.get("LAST_MODIFIED"))
            if lm:
                folder.last_modified = lm
            if "PERSONAL_TOOLBAR_FOLDER" in attrs:
                folder.personal_toolbar_folder = True
            frame.children.append(folder)
            frame.last = folder
            continue

        if tag == "A":
            attrs = _parse_attrs(m.group("a_attrs"))
            href = attrs.get("HREF")
            if not href:
                dropped += 1
                continue
            label = html.unescape((m.group("a_text") or "").strip())
            bm = make_bookmark(
                href,
                label or href,
                attrs.get("ICON") or None,
                attrs.get("ICON_URI") or None,
            )
            add = _positive_int(attrs.get("ADD_DATE"))
            if add:
                bm.add_date = add
            frame.children.append(bm)
            frame.last = bm

    if dropped:
        log.debug("Dropped %d anchors without HREF", dropped)
    return roots


def _parse_attrs(attrs: str) -> Dict[str, str]:
    """Attribute names (upper-cased) to values with terminated references decoded; first occurrence wins."""
    out: Dict[str, str] = {}
    for m in _ATTR_RE.finditer(attrs or ""):
        name = m.group(1).upper()
        if name in out:
            continue
        raw = next((g for g in m.groups()[1:] if g is not None), "")
        out[name] = _ATTR_ENTITY_RE.sub(lambda e: html.unescape(e.group(0)), raw)
    return out


def _positive_int(v: Optional[str]) -> Optional[int]:
    # Reads leading digits only, so "1700000000abc" still yields a date.
    if v is None:
        return None
    m = _LEADING_INT_RE.match(v)
    if not m:
        return None
    n = int(m.group(1))
    return n if n > 0 else None
