from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import List

from . import __version__
from .config import Settings, load_settings
from .log import LogConfig, get_logger, setup_logging
from .model import BOOKMARK
from .parse_netscape import read_netscape_html
from .search import search_tree
from .store import BookmarkStore, ImportMode
from .tree_utils import count_stats
from .writer_netscape import write_netscape_html

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="marktree",
        description="Inspect, merge and normalize Netscape bookmark HTML files.",
    )
    p.add_argument("-V", "--version", action="version", version=f"marktree {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    st = sub.add_parser("stats", help="Print folder and bookmark counts.")
    st.add_argument("file", help="Bookmarks HTML file.")

    se = sub.add_parser("search", help="Find folders and bookmarks by title or URL.")
    se.add_argument("file", help="Bookmarks HTML file.")
    se.add_argument("query", help="Case-insensitive substring.")

    ex = sub.add_parser("export", help="Re-import and write a normalized bookmarks HTML file.")
    ex.add_argument("file", help="Bookmarks HTML file.")
    ex.add_argument("--out", required=True, help="Output HTML path.")
    ex.add_argument("--fetch-icons", action="store_true", help="Fill in missing bookmark icons before writing.")

    mg = sub.add_parser("merge", help="Combine several bookmarks HTML files side by side.")
    mg.add_argument("files", nargs="+", help="Bookmarks HTML files, in output order.")
    mg.add_argument("--out", required=True, help="Output HTML path.")

    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig.from_settings(cfg))

    if args.cmd == "stats":
        return _cmd_stats(args)
    if args.cmd == "search":
        return _cmd_search(args)
    if args.cmd == "export":
        return _cmd_export(args, cfg)
    if args.cmd == "merge":
        return _cmd_merge(args, cfg)
    return 2


def _cmd_stats(args) -> int:
    src = Path(args.file)
    if not src.exists():
        log.error("Input file not found: %s", src)
        return 2
    s = count_stats(read_netscape_html(src))
    print(f"folders: {s.folders}")
    print(f"bookmarks: {s.bookmarks}")
    return 0


def _cmd_search(args) -> int:
    src = Path(args.file)
    if not src.exists():
        log.error("Input file not found: %s", src)
        return 2
    store = BookmarkStore()
    store.import_roots(read_netscape_html(src), ImportMode.REPLACE)
    results = search_tree(store.roots, args.query)
    for r in results:
        trail = " > ".join(r.path + [r.node.title])
        if r.node.kind == BOOKMARK:
            print(f"{trail} <{r.node.href}>")
        else:
            print(f"{trail}/")
    log.info("%d matches for %r", len(results), args.query)
    return 0


def _cmd_export(args, cfg: Settings) -> int:
    t0 = time.time()
    src = Path(args.file)
    if not src.exists():
        log.error("Input file not found: %s", src)
        return 2

    store = BookmarkStore(cfg)
    try:
        store.import_roots(read_netscape_html(src), ImportMode.REPLACE)
        if args.fetch_icons:
            queued = store.refresh_icons(only_missing=True)
            if queued:
                log.info("Fetching icons for %d bookmarks (jobs=%d)...", queued, cfg.icon_fetch_jobs)
                store.wait_for_icons()
        return _write(store, Path(args.out), t0)
    finally:
        store.close()


def _cmd_merge(args, cfg: Settings) -> int:
    t0 = time.time()
    store = BookmarkStore(cfg)
    for name in args.files:
        src = Path(name)
        if not src.exists():
            log.error("Input file not found: %s", src)
            return 2
        store.import_roots(read_netscape_html(src), ImportMode.ALONGSIDE)
    return _write(store, Path(args.out), t0)


def _write(store: BookmarkStore, out_path: Path, t0: float) -> int:
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        write_netscape_html(out_path, store.roots)
    except OSError as e:
        log.error("Failed to write output HTML: %s", e)
        return 2
    s = store.stats
    log.info("Wrote %d folders, %d bookmarks in %d ms.", s.folders, s.bookmarks, int((time.time() - t0) * 1000))
    return 0
