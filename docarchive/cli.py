"""
docarchive CLI — inspect and query a document archive from the terminal.

Commands:
- docarchive tree       — Print the folder tree render list
- docarchive documents  — Filtered, sorted document list for a caller
- docarchive check      — Diagnose the category hierarchy (exit 1 on issues)
- docarchive download   — Download one document from the store
- docarchive run        — Start the Reflex explorer app

Data comes from the store (``--store URL``, default from docarchive.yaml) or
from local JSON exports (``--categories FILE --documents FILE``).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from docarchive.documents.models import Category, Document, format_file_size, parse_categories, parse_documents
from docarchive.engine.config import ArchiveConfig, load_config
from docarchive.engine.context import CallerContext
from docarchive.engine.errors import ArchiveError
from docarchive.security.permissions import ExplorerMode, visibility_resolver

logger = logging.getLogger("docarchive.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="docarchive",
        description="docarchive — hierarchical document archive explorer",
    )
    parser.add_argument("--config", help="Path to docarchive.yaml (default: auto-discover)")
    parser.add_argument("--log-dir", help="Write structured event logs to this directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # docarchive tree
    tree_parser = subparsers.add_parser("tree", help="Print the folder tree")
    _add_source_args(tree_parser)
    _add_caller_args(tree_parser)
    tree_parser.add_argument("--expand", type=int, action="append", default=[], help="Expand a folder id (repeatable)")
    tree_parser.add_argument("--expand-all", action="store_true", help="Expand every folder")
    tree_parser.add_argument("--search", default="", help="Only show files matching this text")

    # docarchive documents
    docs_parser = subparsers.add_parser("documents", help="List documents for a caller")
    _add_source_args(docs_parser)
    _add_caller_args(docs_parser)
    docs_parser.add_argument("--category", type=int, help="Folder id (default: All Files)")
    docs_parser.add_argument("--search", default="", help="Search text")
    docs_parser.add_argument("--file-type", default="", help="pdf, doc, image, video, audio, other")
    docs_parser.add_argument("--sort", choices=["name", "date"], help="Sort key (default: from config)")
    docs_parser.add_argument("--asc", action="store_true", help="Ascending order")
    docs_parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    # docarchive check
    check_parser = subparsers.add_parser("check", help="Diagnose the category hierarchy")
    _add_source_args(check_parser)
    check_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    # docarchive download
    dl_parser = subparsers.add_parser("download", help="Download a document")
    dl_parser.add_argument("document_id", type=int)
    dl_parser.add_argument("--store", help="Store base URL (default: from config)")
    dl_parser.add_argument("--token", help="Bearer token")
    dl_parser.add_argument(
        "--mode", choices=[m.value for m in ExplorerMode], default="public", help="Download endpoint (default: public)",
    )
    dl_parser.add_argument("--output", "-o", help="Output file (default: document id)")

    # docarchive run
    run_parser = subparsers.add_parser("run", help="Start the Reflex explorer app")
    run_parser.add_argument("--port", type=int, default=3000, help="Frontend port (default: 3000)")
    run_parser.add_argument("--backend-port", type=int, default=8000, help="Backend port (default: 8000)")
    run_parser.add_argument("--env", choices=["dev", "prod"], default="dev", help="Environment (default: dev)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.log_dir:
        from docarchive.engine.logging import init_logging

        init_logging(args.log_dir)

    try:
        if args.command == "tree":
            return cmd_tree(args)
        elif args.command == "documents":
            return cmd_documents(args)
        elif args.command == "check":
            return cmd_check(args)
        elif args.command == "download":
            return cmd_download(args)
        elif args.command == "run":
            return cmd_run(args)
        else:
            parser.print_help()
            return 0
    except ArchiveError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1


def _add_source_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--store", help="Store base URL (default: from config)")
    parser.add_argument("--token", help="Bearer token for the store")
    parser.add_argument("--categories", help="Local JSON export of categories")
    parser.add_argument("--documents", help="Local JSON export of documents")


def _add_caller_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--role", choices=["anonymous", "member", "admin"], default="anonymous")
    parser.add_argument("--member-type", help="executive, general_assembly, ...")
    parser.add_argument("--mode", choices=[m.value for m in ExplorerMode], help="Explorer mode (default: from role)")
    parser.add_argument("--language", choices=["primary", "secondary"], help="Display language")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _config(args: argparse.Namespace) -> ArchiveConfig:
    config = load_config(args.config)
    store = getattr(args, "store", None)
    token = getattr(args, "token", None)
    if store or token:
        updates: Dict[str, Any] = {}
        if store:
            updates["base_url"] = store
        if token:
            updates["token"] = token
        config = config.model_copy(update={"store": config.store.model_copy(update=updates)})
    return config


def _caller(args: argparse.Namespace) -> CallerContext:
    if args.role == "anonymous":
        return CallerContext.anonymous()
    return CallerContext.from_user_info({
        "is_admin": args.role == "admin",
        "member_type": args.member_type,
    })


def _mode(args: argparse.Namespace, caller: CallerContext) -> ExplorerMode:
    if getattr(args, "mode", None):
        return ExplorerMode(args.mode)
    return visibility_resolver.default_mode(caller)


def _read_records(path: str) -> List[Dict[str, Any]]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("results", [])
    if not isinstance(payload, list):
        raise ArchiveError(f"{path}: expected a list of records", object_ref="cli.source")
    return payload


def _load(
    args: argparse.Namespace,
    config: ArchiveConfig,
    mode: ExplorerMode,
    params: Optional[Dict[str, Any]] = None,
) -> Tuple[List[Category], List[Document]]:
    """Load categories and documents from local exports or from the store."""
    if args.categories or args.documents:
        categories = parse_categories(_read_records(args.categories)) if args.categories else []
        documents = parse_documents(_read_records(args.documents)) if args.documents else []
        return categories, documents

    from docarchive.store.client import ArchiveStoreClient, fetch_archive

    async def _fetch() -> Tuple[List[Category], List[Document]]:
        async with ArchiveStoreClient(config.store) as client:
            categories, page = await fetch_archive(client, mode, params)
            return categories, page.results

    return asyncio.run(_fetch())


def _session(args: argparse.Namespace):
    from docarchive.explorer.session import ExplorerSession

    config = _config(args)
    caller = _caller(args)
    mode = _mode(args, caller)
    explorer_config = config.explorer
    if args.language:
        explorer_config = explorer_config.model_copy(update={"language": args.language})
    session = ExplorerSession(caller, mode, explorer_config)
    categories, documents = _load(args, config, mode, session.store_params())
    session.load(categories, documents)
    return session


# ---------------------------------------------------------------------------
# docarchive tree
# ---------------------------------------------------------------------------

def cmd_tree(args: argparse.Namespace) -> int:
    """Print the folder tree render list."""
    from docarchive.documents.flatten import CategoryRow

    session = _session(args)
    if args.search:
        session.on_search_change(args.search)
    ids = [node.id for node in session.forest.iter_nodes()] if args.expand_all else args.expand
    for category_id in ids:
        if category_id in session.forest and not session.expansion.is_expanded(category_id):
            session.on_toggle_expand(category_id)

    for row in session.render_rows():
        indent = "  " * row.depth
        if isinstance(row, CategoryRow):
            marker = "-" if row.expanded else "+"
            name = row.node.category.display_name(session.language)
            print(f"{indent}[{marker}] {name} (#{row.node.id}, {row.document_count} file(s))")
        else:
            doc = row.doc
            print(f"{indent}    {doc.display_title(session.language)} [{doc.file_type.value}, {format_file_size(doc.file_size)}]")
    return 0


# ---------------------------------------------------------------------------
# docarchive documents
# ---------------------------------------------------------------------------

def cmd_documents(args: argparse.Namespace) -> int:
    """Print the main list: documents of one folder, filtered and sorted."""
    session = _session(args)
    if args.category is not None:
        session.on_select_category(args.category)
    if args.search:
        session.on_search_change(args.search)
    if args.file_type:
        session.on_file_type_change(args.file_type)
    if args.sort:
        session.on_sort_change(args.sort, not args.asc)
    elif args.asc:
        session.on_sort_change(session.sort.by, False)

    documents = session.visible_documents()
    if args.json:
        print(json.dumps([doc.model_dump(mode="json") for doc in documents], indent=2))
        return 0

    breadcrumb = " / ".join(node.name for node in session.breadcrumb()) or "All Files"
    print(f"{session.title()}: {breadcrumb} (scope: {session.scope().describe()})")
    for node in session.current_subfolders():
        print(f"  [dir] {node.category.display_name(session.language)}")
    for doc in documents:
        created = doc.created_at.date().isoformat() if doc.created_at else "-"
        print(
            f"  {doc.id:>6}  {doc.display_title(session.language)}  "
            f"{doc.file_type.value}  {format_file_size(doc.file_size)}  {created}"
        )
    print(f"\n{len(documents)} document(s)")
    return 0


# ---------------------------------------------------------------------------
# docarchive check
# ---------------------------------------------------------------------------

def cmd_check(args: argparse.Namespace) -> int:
    """Diagnose orphans, self references, cycles and duplicate ids."""
    from docarchive.documents.tree import diagnose_hierarchy

    config = _config(args)
    categories, _ = _load(args, config, ExplorerMode.PUBLIC, {"visibility": "public"})
    report = diagnose_hierarchy(categories)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.is_clean else 1

    print(f"Checked {len(categories)} categor{'y' if len(categories) == 1 else 'ies'}")
    for category_id, parent_id in report.orphans:
        print(f"  [WARN] Orphan: category {category_id} references missing parent {parent_id}")
    for category_id in report.self_references:
        print(f"  [WARN] Self reference: category {category_id} is its own parent")
    for cycle in report.cycles:
        print(f"  [WARN] Cycle: {' -> '.join(str(i) for i in cycle + [cycle[0]])}")
    for category_id in report.duplicates:
        print(f"  [WARN] Duplicate id: {category_id}")

    if report.is_clean:
        print("[OK] Hierarchy is clean")
        return 0
    print(f"\n{len(report.demoted)} categor{'y' if len(report.demoted) == 1 else 'ies'} shown as root")
    return 1


# ---------------------------------------------------------------------------
# docarchive download
# ---------------------------------------------------------------------------

def cmd_download(args: argparse.Namespace) -> int:
    """Download one document through the mode's download endpoint."""
    from docarchive.store.client import ArchiveStoreClient

    config = _config(args)
    mode = ExplorerMode(args.mode)

    async def _download() -> bytes:
        async with ArchiveStoreClient(config.store) as client:
            return await client.download(args.document_id, mode)

    content = asyncio.run(_download())
    output = Path(args.output or str(args.document_id))
    output.write_bytes(content)
    print(f"Saved {format_file_size(len(content))} to {output}")
    return 0


# ---------------------------------------------------------------------------
# docarchive run
# ---------------------------------------------------------------------------

def cmd_run(args: argparse.Namespace) -> int:
    """Start the Reflex dev server."""
    import subprocess

    print("Starting docarchive (Reflex) server...")
    try:
        cmd = [
            "reflex", "run",
            "--frontend-port", str(args.port),
            "--backend-port", str(args.backend_port),
            "--env", args.env,
        ]
        result = subprocess.run(cmd, check=True)
        return result.returncode
    except FileNotFoundError:
        print("[ERROR] 'reflex' command not found. Install: pip install reflex")
        return 1
    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
