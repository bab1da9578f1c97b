from __future__ import annotations

import argparse
import sys
from typing import Callable, Dict, List, Optional

import yaml
from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from . import __version__
from .config import Settings, load_settings
from .errors import GatewayError, MarkhiveError
from .log import LogConfig, get_logger, setup_logging
from .model import Bookmark, Folder
from .query import BookmarkQueries
from .service import HierarchyService
from .store_sqlite import SqliteStore

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = _build_parser()
    args = p.parse_args(argv)

    try:
        cfg = load_settings(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"markhive: bad config: {e}", file=sys.stderr)
        return 2
    if args.db:
        cfg.db_path = args.db
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color, log_file=cfg.log_file))

    handler = _COMMANDS[args.cmd]
    try:
        with SqliteStore(cfg.db_path, busy_timeout_ms=cfg.busy_timeout_ms) as store:
            return handler(args, build_service(store, cfg))
    except MarkhiveError as e:
        print(f"[{e.code}] {e.message}", file=sys.stderr)
        return 1
    except GatewayError as e:
        log.error("Storage error: %s", e)
        return 1


def build_service(store: SqliteStore, cfg: Settings) -> HierarchyService:
    return HierarchyService(
        store.bookmarks,
        store.folders,
        reject_cycles=cfg.reject_cycles,
        transactional_cascade=cfg.transactional_cascade,
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="markhive",
        description="Manage a tree of bookmark folders stored in SQLite.",
    )
    p.add_argument("-V", "--version", action="version", version=f"markhive {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--db", default=None, help="SQLite database path (overrides env/config).")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    add = sub.add_parser("add", help="Bookmark a URL.")
    add.add_argument("url")
    add.add_argument("--title", default="")
    add.add_argument("--favicon", default=None)
    add.add_argument("--folder", type=int, default=None, help="Folder id (default: root level).")
    add.add_argument("--favorite", action="store_true")

    mkdir = sub.add_parser("mkdir", help="Create a folder.")
    mkdir.add_argument("name")
    mkdir.add_argument("--parent", type=int, default=None)

    ls = sub.add_parser("ls", help="List one folder level.")
    ls.add_argument("--folder", type=int, default=None)

    sub.add_parser("tree", help="Print the whole folder forest.")

    mvb = sub.add_parser("mv-bookmark", help="Move a bookmark to another folder.")
    mvb.add_argument("id", type=int)
    mvb.add_argument("--to", type=int, default=None, help="Target folder id (default: root level).")

    mvf = sub.add_parser("mv-folder", help="Reparent a folder.")
    mvf.add_argument("id", type=int)
    mvf.add_argument("--to", type=int, default=None, help="New parent folder id (default: root level).")

    rm = sub.add_parser("rm", help="Delete a bookmark.")
    rm.add_argument("id", type=int)

    rmdir = sub.add_parser("rmdir", help="Delete a folder and everything in it.")
    rmdir.add_argument("id", type=int)
    rmdir.add_argument(
        "--keep-contents",
        action="store_true",
        help="Move the folder's bookmarks and subfolders to root level instead of deleting them.",
    )

    fav = sub.add_parser("fav", help="Toggle the favorite flag of a bookmark.")
    fav.add_argument("id", type=int)

    reorder = sub.add_parser("reorder", help="Set a bookmark's position among its siblings.")
    reorder.add_argument("id", type=int)
    reorder.add_argument("position", type=int)

    search = sub.add_parser("search", help="Search titles and URLs (no query lists everything).")
    search.add_argument("query", nargs="?", default="")
    search.add_argument("--favorites", action="store_true", help="Only favorites.")

    sub.add_parser("stats", help="Show bookmark and folder counts.")
    return p


def _cmd_add(args, service: HierarchyService) -> int:
    b = service.add_bookmark(args.title, args.url, args.favicon, args.folder, favorite=args.favorite)
    print(_fmt_bookmark(b))
    return 0


def _cmd_mkdir(args, service: HierarchyService) -> int:
    f = service.create_folder(args.name, args.parent)
    print(_fmt_folder(f))
    return 0


def _cmd_ls(args, service: HierarchyService) -> int:
    for f in service.get_sub_folders(args.folder):
        print(_fmt_folder(f))
    for b in service.get_bookmarks_by_folder_id(args.folder):
        print(_fmt_bookmark(b))
    return 0


def _cmd_tree(args, service: HierarchyService) -> int:
    queries = BookmarkQueries(service)
    root = Tree("[bold]Bookmarks[/bold]")
    nodes: Dict[Optional[int], Tree] = {None: root}
    for _depth, folder in queries.walk(None):
        parent = nodes.get(folder.parent_folder_id, root)
        node = parent.add(f"[bold]{escape(folder.name)}[/bold] [dim]#{folder.id}[/dim]")
        nodes[folder.id] = node
    for b in service.get_all_bookmarks():
        nodes.get(b.folder_id, root).add(escape(_fmt_bookmark(b)))
    Console().print(root)
    return 0


def _cmd_mv_bookmark(args, service: HierarchyService) -> int:
    service.move_bookmark(args.id, args.to)
    return 0


def _cmd_mv_folder(args, service: HierarchyService) -> int:
    service.move_folder(args.id, args.to)
    return 0


def _cmd_rm(args, service: HierarchyService) -> int:
    service.delete_bookmark(args.id)
    return 0


def _cmd_rmdir(args, service: HierarchyService) -> int:
    service.delete_folder(args.id, delete_contents=not args.keep_contents)
    return 0


def _cmd_fav(args, service: HierarchyService) -> int:
    now = service.toggle_favorite(args.id)
    print("favorite" if now else "not favorite")
    return 0


def _cmd_reorder(args, service: HierarchyService) -> int:
    service.reorder_bookmark(args.id, args.position)
    return 0


def _cmd_search(args, service: HierarchyService) -> int:
    for b in BookmarkQueries(service).search(args.query, favorites_only=args.favorites):
        print(_fmt_bookmark(b))
    return 0


def _cmd_stats(args, service: HierarchyService) -> int:
    stats = BookmarkQueries(service).stats()
    print(f"bookmarks: {stats.bookmarks.value}")
    print(f"folders:   {stats.folders.value}")
    print(f"favorites: {stats.favorites.value}")
    print(f"at root:   {stats.root_bookmarks.value}")
    if stats.degraded:
        print("(counts unavailable: storage error, see log)")
        return 1
    return 0


def _fmt_bookmark(b: Bookmark) -> str:
    star = "*" if b.is_favorite else " "
    return f"{b.id:>5} {star} {b.display_title}  <{b.url}>"


def _fmt_folder(f: Folder) -> str:
    return f"{f.id:>5} / {f.name}"


_COMMANDS: Dict[str, Callable[..., int]] = {
    "add": _cmd_add,
    "mkdir": _cmd_mkdir,
    "ls": _cmd_ls,
    "tree": _cmd_tree,
    "mv-bookmark": _cmd_mv_bookmark,
    "mv-folder": _cmd_mv_folder,
    "rm": _cmd_rm,
    "rmdir": _cmd_rmdir,
    "fav": _cmd_fav,
    "reorder": _cmd_reorder,
    "search": _cmd_search,
    "stats": _cmd_stats,
}
