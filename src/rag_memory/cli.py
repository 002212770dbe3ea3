"""Ingest local text files into a namespace and query them.

Records live in process memory, so ingestion and search happen in one run.

Usage:
    python -m rag_memory.cli --namespace notes --query "release checklist" docs/*.md
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from rag_memory.core.exceptions import AppException
from rag_memory.core.logging import get_logger, setup_logging
from rag_memory.core.models import NamedFilter, StorageSource
from rag_memory.dependencies import Services, get_services
from rag_memory.schemas.search import ChunkContext, SearchResponse

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ingest text files and run a hybrid search over them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search two files
  python -m rag_memory.cli --namespace notes --query "release checklist" a.md b.md

  # Vector-only search with one chunk of context around each match
  python -m rag_memory.cli --namespace notes --query "rollback" --no-hybrid --context 1 a.md
        """,
    )
    parser.add_argument("files", nargs="+", help="Text files to ingest; the path is the document key")
    parser.add_argument("--namespace", required=True, help="Namespace to ingest into")
    parser.add_argument("--query", required=True, help="Search query")
    parser.add_argument("--limit", type=int, default=5, help="Maximum results (default: 5)")
    parser.add_argument(
        "--context",
        type=int,
        default=0,
        help="Chunks of context before and after each match (default: 0)",
    )
    parser.add_argument(
        "--no-hybrid",
        action="store_true",
        help="Skip the text index and rank by vector similarity only",
    )
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Tag every file with this filter and restrict the search to it",
    )
    return parser


def parse_filters(raw: Sequence[str]) -> list[NamedFilter]:
    filters: list[NamedFilter] = []
    for item in raw:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise ValueError(f"Filter must look like NAME=VALUE, got {item!r}")
        filters.append(NamedFilter(name=name, value=value))
    return filters


async def run(args: argparse.Namespace, services: Services) -> SearchResponse:
    """Ingest ``args.files`` and run the query."""
    filters = parse_filters(args.filter)
    filter_names = list(dict.fromkeys(f.name for f in filters))

    for path in args.files:
        text = Path(path).read_text(encoding="utf-8")
        result = await services.ingestion.ingest(
            args.namespace,
            path,
            text=text,
            source=StorageSource(storage_id=str(Path(path).resolve())),
            filter_names=filter_names,
            filter_values=filters,
            title=Path(path).name,
        )
        logger.info("Ingested %s as v%d (%s)", path, result.document.version, result.status)

    return await services.ingestion.search_text(
        args.namespace,
        args.query,
        hybrid=not args.no_hybrid,
        filters=filters,
        limit=args.limit,
        chunk_context=ChunkContext(before=args.context, after=args.context),
    )


def print_response(response: SearchResponse) -> None:
    titles = {entry.document_id: entry.title or entry.key for entry in response.entries}
    for rank, result in enumerate(response.results, start=1):
        print(f"[{rank}] {titles.get(result.document_id, result.document_id)} "
              f"#{result.order} (score {result.score:.3f})")
        print(result.text)
        print()


async def _main(args: argparse.Namespace) -> SearchResponse:
    services = get_services()
    try:
        return await run(args, services)
    finally:
        await services.aclose()


def main() -> None:
    args = build_parser().parse_args()

    setup_logging()

    try:
        response = asyncio.run(_main(args))
    except (AppException, OSError, ValueError) as e:
        logger.error("Search failed: %s", e)
        sys.exit(1)

    print_response(response)
    sys.exit(0)


if __name__ == "__main__":
    main()
