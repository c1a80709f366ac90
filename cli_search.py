"""Terminal client that reuses the in-process search logic."""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from time import perf_counter
from typing import Iterable

from catalog_search.cache import SearchCache, build_cache_backend
from catalog_search.config import settings
from catalog_search.es_client import create_client
from catalog_search.importer import IngestionCoordinator
from catalog_search.models import SearchResult, SortMode
from catalog_search.search_service import SearchService
from catalog_search.store import ElasticsearchProductStore

MAX_RESULTS = 100
GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


def build_services() -> tuple[SearchService, IngestionCoordinator]:
    store = ElasticsearchProductStore(create_client(settings), settings.es_index, timeout=settings.store_timeout_seconds)
    cache = SearchCache(build_cache_backend(settings), settings)
    return SearchService(store, cache), IngestionCoordinator(store, cache, settings)


async def perform_query(service: SearchService, query: str, sort: SortMode) -> tuple[SearchResult, float]:
    started = perf_counter()
    result = await service.search(query, 1, MAX_RESULTS, sort)
    return result, (perf_counter() - started) * 1000


def pretty_print_response(query: str, result: SearchResult, eta: float) -> None:
    color = GREEN if eta < 200 else RED
    eta_label = f"{color}{eta:.1f} ms{RESET}"
    print(f"Query: {query} | results: {result.total} | ETA: {eta_label}")
    for idx, item in enumerate(result.products, start=1):
        print(
            f"  {idx:02d}. {item.rating:.1f}* | {item.brand} | "
            f"{item.sku} | {item.title} | {item.price:.2f} {item.currency}"
        )


def interactive_shell(service: SearchService, sort: SortMode) -> None:
    print("Interactive product search. Type 'exit' to quit.")
    while True:
        try:
            query = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not query:
            continue
        if query.lower() in {"exit", "quit"}:
            return
        pretty_print_response(query, *asyncio.run(perform_query(service, query, sort)))


def batch_mode(service: SearchService, file_path: Path, sort: SortMode) -> None:
    with file_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            query = line.strip()
            if not query:
                continue
            pretty_print_response(query, *asyncio.run(perform_query(service, query, sort)))


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for the catalog search service")
    parser.add_argument("query", nargs="?", help="Query string. If omitted, starts REPL mode.")
    parser.add_argument("--batch", type=Path, help="File with queries to execute line by line")
    parser.add_argument("--sort", choices=[mode.value for mode in SortMode], default=SortMode.RELEVANCE.value)
    parser.add_argument("--suggest", metavar="PREFIX", help="Print autocomplete suggestions for PREFIX")
    parser.add_argument("--load", type=Path, metavar="CSV", help="Load products from a CSV/TSV file")
    args = parser.parse_args(list(argv) if argv is not None else None)

    service, ingestion = build_services()
    sort = SortMode(args.sort)

    if args.load:
        report = asyncio.run(ingestion.load_from_file(args.load))
        print(
            f"Loaded {args.load}: inserted={report.inserted} duplicates={report.duplicates} "
            f"errors={report.errors} in {report.duration:.2f}s"
        )
        return 0 if report.success else 1
    if args.suggest:
        for suggestion in asyncio.run(service.suggest(args.suggest, 10)):
            print(f"  {suggestion}")
        return 0
    if args.batch:
        batch_mode(service, args.batch, sort)
        return 0
    if args.query:
        pretty_print_response(args.query, *asyncio.run(perform_query(service, args.query, sort)))
        return 0
    interactive_shell(service, sort)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
