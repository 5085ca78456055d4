#!/usr/bin/env python3
"""Script to search crates from the command line."""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from crate_search.common.config import CrateSearchConfig, get_config
from crate_search.common.logging import configure_logging
from crate_search.hybrid.search_manager import SearchManager
from crate_search.models import Candidate, SortCriteria
from crate_search.store.base import StoreError

logger = structlog.get_logger("search_crates")


async def run_search(
    query: str,
    sort_by: SortCriteria,
    traditional: bool = False,
    config: Optional[CrateSearchConfig] = None
) -> Optional[List[Candidate]]:
    """Run one search; returns ``None`` when the store failed."""
    config = config or get_config()
    async with SearchManager(config) as manager:
        try:
            if traditional:
                return await manager.search_traditional(query, sort_by)
            return await manager.search(query, sort_by)
        except StoreError as e:
            logger.error("Search failed", query=query, error=str(e))
            return None


def print_results(results: List[Candidate], top: int) -> None:
    for rank, candidate in enumerate(results[:top], 1):
        print(
            f"{rank:3d}. {candidate.name:<32} final={candidate.final_score:.4f} "
            f"lexical={candidate.lexical_score:.4f} semantic={candidate.semantic_score:.4f}"
        )
        if candidate.description:
            print(f"     {candidate.description}")


def main():
    """Main function for CLI."""
    parser = argparse.ArgumentParser(description="Search Rust crates")
    parser.add_argument("query", help="Search query, keywords or a natural-language request")
    parser.add_argument(
        "--sort",
        default=SortCriteria.COMPREHENSIVE.value,
        choices=[c.value for c in SortCriteria],
        help="Ranking criteria"
    )
    parser.add_argument("--traditional", action="store_true", help="Use lexical-only traditional search")
    parser.add_argument("--top", type=int, default=20, help="Number of results to print")
    parser.add_argument("--env-file", default=".env", help="Environment file path")

    args = parser.parse_args()

    config = get_config(env_file=args.env_file)
    configure_logging("search_crates", config.cs_log_level, config.cs_log_format)

    results = asyncio.run(run_search(
        query=args.query,
        sort_by=SortCriteria.parse(args.sort),
        traditional=args.traditional,
        config=config
    ))

    if results is None:
        print(f"Search failed for {args.query!r}")
        sys.exit(1)

    print(f"{len(results)} results for {args.query!r}")
    print_results(results, args.top)
    sys.exit(0)


if __name__ == "__main__":
    main()
