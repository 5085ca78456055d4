#!/usr/bin/env python3
"""Script to compare hybrid and traditional search with judged relevance."""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from typing import List, Optional

import structlog

from crate_search.common.config import CrateSearchConfig, get_config
from crate_search.common.logging import configure_logging
from crate_search.evaluation.comparison import compare_search_methods, summarize
from crate_search.evaluation.judge import RelevanceJudge
from crate_search.hybrid.search_manager import SearchManager
from crate_search.models import SortCriteria
from crate_search.store.base import StoreError

logger = structlog.get_logger("compare_search_methods")

DEFAULT_QUERIES = [
    "http client",
    "json serde",
    "async runtime",
    "command line argument parser",
    "I need a library to parse JSON in Rust",
]


async def run_comparison(
    queries: List[str],
    sort_by: SortCriteria,
    output: Optional[str],
    config: CrateSearchConfig
) -> bool:
    async with SearchManager(config) as manager:
        if not manager.llm_client.available:
            logger.error("Comparison requires OPENAI_API_KEY")
            return False

        judge = RelevanceJudge(manager.llm_client, model=config.cs_judge_model)
        try:
            comparisons = await compare_search_methods(manager, judge, queries, sort_by)
        except StoreError as e:
            logger.error("Comparison failed", error=str(e))
            return False

    for comparison in comparisons:
        print(f"\n{comparison.query}")
        for report in comparison.reports.values():
            precision = " ".join(f"P@{k}={v:.2f}" for k, v in report.precision.items())
            print(f"  {report.method:<12} {precision}  ({report.duration_ms:.0f} ms)")

    print("\nMean precision")
    for method, precision in summarize(comparisons).items():
        print(f"  {method:<12} " + " ".join(f"P@{k}={v:.2f}" for k, v in precision.items()))

    if output:
        with open(output, "w", encoding="utf-8") as f:
            json.dump([asdict(c) for c in comparisons], f, ensure_ascii=False, indent=2)
        logger.info("Comparison saved", path=output)
    return True


def main():
    """Main function for CLI."""
    parser = argparse.ArgumentParser(description="Compare hybrid and traditional crate search")
    parser.add_argument("queries", nargs="*", help="Queries to evaluate")
    parser.add_argument(
        "--sort",
        default=SortCriteria.COMPREHENSIVE.value,
        choices=[c.value for c in SortCriteria],
        help="Ranking criteria"
    )
    parser.add_argument("--output", help="Write the comparison as JSON to this path")
    parser.add_argument("--env-file", default=".env", help="Environment file path")

    args = parser.parse_args()

    config = get_config(env_file=args.env_file)
    configure_logging("compare_search_methods", config.cs_log_level, config.cs_log_format)

    success = asyncio.run(run_comparison(
        queries=args.queries or DEFAULT_QUERIES,
        sort_by=SortCriteria.parse(args.sort),
        output=args.output,
        config=config
    ))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
