# =============================================================================
# rules_index/cli/index.py - CLI for Rules Sources (register, index, search)
# =============================================================================
#
# Standalone CLI over the SQLite rules store.  A campaign's rulebooks are
# registered as Sources, indexed into sections / chunks / tables /
# datasets, then searched by keyword.
#
# Supported subcommands:
#
#   register-document - Register an uploaded rulebook PDF
#   register-paste    - Register free text from a file or --text
#   register-import   - Register a structured JSON import
#   index             - Run (or retry) indexing for a Source
#   search            - Keyword search, or best data source for one Source
#   stats             - List Sources with their status and index statistics
#
# Usage examples:
#   python -m rules_index.cli register-document --campaign c1 \
#       --title "Core Rules" --file rules.pdf
#   python -m rules_index.cli index --source-id <id>
#   python -m rules_index.cli search --campaign c1 --query "injury table"
#   python -m rules_index.cli search --source-id <id> --query "weapons"
#   python -m rules_index.cli stats --campaign c1
# =============================================================================

"""Standalone CLI for registering, indexing and searching rules Sources.

Usage::

    python -m rules_index.cli register-paste --campaign c1 \\
        --title "House rules" --file house_rules.txt

    python -m rules_index.cli index --source-id <id>

    python -m rules_index.cli stats
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from rules_index.config.loader import load_config
from rules_index.config.settings import Settings
from rules_index.main import RulesIndexer, build_indexer
from rules_index.models.indexing import ProgressEvent
from rules_index.models.rules import RulesSource, SourceOrigin
from rules_index.providers.store.sqlite_rules_store import SQLiteRulesStore
from rules_index.utils.errors import RulesIndexError
from rules_index.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Registration handlers
# ---------------------------------------------------------------------------


async def _register(indexer: RulesIndexer, source: RulesSource) -> int:
    await indexer.store.save_source(source)
    print(f"Registered {source.origin.value} source: {source.title}")
    print(f"  Source ID: {source.id}")
    return 0


async def _handle_register_document(args: argparse.Namespace, indexer: RulesIndexer) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1
    source = RulesSource(
        campaign_id=args.campaign,
        origin=SourceOrigin.DOCUMENT,
        title=args.title,
        tags=args.tag or [],
        document_ref=str(path.resolve()),
    )
    return await _register(indexer, source)


async def _handle_register_paste(args: argparse.Namespace, indexer: RulesIndexer) -> int:
    if args.text is not None:
        text = args.text
    else:
        path = Path(args.file)
        if not path.is_file():
            print(f"Error: file not found: {path}", file=sys.stderr)
            return 1
        text = path.read_text(encoding="utf-8")
    source = RulesSource(
        campaign_id=args.campaign,
        origin=SourceOrigin.PASTED_TEXT,
        title=args.title,
        tags=args.tag or [],
        pasted_text=text,
    )
    return await _register(indexer, source)


async def _handle_register_import(args: argparse.Namespace, indexer: RulesIndexer) -> int:
    path = Path(args.file)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Error: could not read import file {path}: {exc}", file=sys.stderr)
        return 1
    if not isinstance(payload, dict):
        print("Error: import file must contain a JSON object", file=sys.stderr)
        return 1
    source = RulesSource(
        campaign_id=args.campaign,
        origin=SourceOrigin.STRUCTURED_IMPORT,
        title=args.title or payload.get("name") or path.stem,
        tags=args.tag or [],
        structured_payload=payload,
    )
    return await _register(indexer, source)


# ---------------------------------------------------------------------------
# Indexing / search / stats handlers
# ---------------------------------------------------------------------------


def _print_progress(event: ProgressEvent) -> None:
    print(f"  [{event.percent:5.1f}%] {event.stage.value:<13} {event.message}")


async def _handle_index(args: argparse.Namespace, indexer: RulesIndexer) -> int:
    indexer.progress_tracker.register_listener(args.source_id, _print_progress)
    print(f"Indexing source {args.source_id}")
    if args.retry:
        result = await indexer.orchestrator.retry_indexing(args.source_id)
    else:
        result = await indexer.orchestrator.start_indexing(args.source_id)

    if not result.success:
        print(f"\nIndexing failed at {result.error.stage}: {result.error.message}", file=sys.stderr)
        return 1

    stats = result.stats
    print("\nIndexing complete:")
    print(f"  Pages:     {stats.pages} ({stats.empty_pages} empty)")
    print(f"  Sections:  {stats.sections}")
    print(f"  Chunks:    {stats.chunks}")
    print(f"  Tables:    {stats.tables_high} high / {stats.tables_medium} medium / {stats.tables_low} low")
    print(f"  Datasets:  {stats.datasets} ({stats.dataset_rows} rows)")
    if stats.ocr_fallback_used:
        print("  OCR fallback was used")
    return 0


async def _handle_search(args: argparse.Namespace, indexer: RulesIndexer) -> int:
    if args.source_id:
        match = await indexer.search.find_best_data_source(args.query, args.source_id)
        if match is None:
            print("No matching data source.")
            return 0
        print(f"Best data source: {match.kind} '{match.title}' (score {match.score})")
        for item_id in match.item_ids:
            print(f"  {item_id}")
        return 0

    hits = await indexer.search.search(args.query, campaign_id=args.campaign, limit=args.limit)
    if not hits:
        print("No results.")
        return 0
    for hit in hits:
        page = f" p.{hit.page_number}" if hit.page_number else ""
        print(f"[{hit.score:>3}] {hit.kind:<7} {hit.title}{page}")
        if hit.snippet:
            print(f"        {hit.snippet}")
    return 0


async def _handle_stats(args: argparse.Namespace, indexer: RulesIndexer) -> int:
    sources = await indexer.store.list_sources(args.campaign)
    if not sources:
        print("No rules sources registered.")
        return 0

    print("Rules Sources")
    print("=" * 60)
    for source in sources:
        print(f"  {source.title}  [{source.origin.value}]  {source.index_status.value}")
        print(f"    id: {source.id}")
        if source.index_stats is not None:
            stats = source.index_stats
            print(
                f"    pages {stats.pages}, sections {stats.sections}, chunks {stats.chunks}, "
                f"datasets {stats.datasets}"
            )
        if source.index_error is not None:
            print(f"    error [{source.index_error.stage}]: {source.index_error.message}")
    return 0


_HANDLERS = {
    "register-document": _handle_register_document,
    "register-paste": _handle_register_paste,
    "register-import": _handle_register_import,
    "index": _handle_index,
    "search": _handle_search,
    "stats": _handle_stats,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the rules CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m rules_index.cli",
        description="Register, index and search campaign rules sources.",
    )
    parser.add_argument("--config", default="config/config.yaml", help="YAML config path")
    parser.add_argument("--db", default=None, help="Override the SQLite database path")
    subparsers = parser.add_subparsers(dest="command")

    # -- register-document --
    doc_parser = subparsers.add_parser("register-document", help="Register a rulebook PDF")
    doc_parser.add_argument("--campaign", required=True, help="Owning campaign ID")
    doc_parser.add_argument("--title", required=True, help="Display title")
    doc_parser.add_argument("--file", required=True, help="Path to the PDF")
    doc_parser.add_argument("--tag", action="append", help="Tag (repeatable)")

    # -- register-paste --
    paste_parser = subparsers.add_parser("register-paste", help="Register pasted rules text")
    paste_parser.add_argument("--campaign", required=True, help="Owning campaign ID")
    paste_parser.add_argument("--title", required=True, help="Display title")
    text_group = paste_parser.add_mutually_exclusive_group(required=True)
    text_group.add_argument("--file", help="Text file to read")
    text_group.add_argument("--text", help="Rules text given inline")
    paste_parser.add_argument("--tag", action="append", help="Tag (repeatable)")

    # -- register-import --
    import_parser = subparsers.add_parser("register-import", help="Register a structured JSON import")
    import_parser.add_argument("--campaign", required=True, help="Owning campaign ID")
    import_parser.add_argument("--file", required=True, help="Path to the JSON file")
    import_parser.add_argument("--title", default=None, help="Display title (default: payload name)")
    import_parser.add_argument("--tag", action="append", help="Tag (repeatable)")

    # -- index --
    index_parser = subparsers.add_parser("index", help="Index a registered source")
    index_parser.add_argument("--source-id", required=True, dest="source_id")
    index_parser.add_argument(
        "--retry",
        action="store_true",
        help="Only run if the last attempt failed",
    )

    # -- search --
    search_parser = subparsers.add_parser("search", help="Keyword search over indexed sources")
    search_parser.add_argument("--query", required=True)
    search_parser.add_argument("--campaign", default=None, help="Limit to one campaign")
    search_parser.add_argument(
        "--source-id",
        dest="source_id",
        default=None,
        help="Pick the best dataset/table/chunks of this source instead",
    )
    search_parser.add_argument("--limit", type=int, default=20)

    # -- stats --
    stats_parser = subparsers.add_parser("stats", help="Show sources and index statistics")
    stats_parser.add_argument("--campaign", default=None, help="Limit to one campaign")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace, indexer: RulesIndexer) -> int:
    if isinstance(indexer.store, SQLiteRulesStore):
        await indexer.store.initialize()
    try:
        return await _HANDLERS[args.command](args, indexer)
    except RulesIndexError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments, wire the indexer and dispatch."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )
    config = load_config(args.config, settings=app_settings)
    if args.db:
        config["storage"]["rules_db_path"] = args.db

    indexer = build_indexer(config)
    sys.exit(asyncio.run(_run(args, indexer)))


if __name__ == "__main__":
    main()
