#!/usr/bin/env python3
"""Script to precompute or reset stored crate embeddings."""

import argparse
import asyncio
import sys
from typing import Optional

import structlog

from crate_search.common.config import CrateSearchConfig, get_config
from crate_search.common.logging import configure_logging
from crate_search.hybrid.search_manager import SearchManager
from crate_search.store.base import StoreError

logger = structlog.get_logger("manage_embeddings")


async def precompute(page_size: int, config: CrateSearchConfig) -> bool:
    """Embed every crate that has no stored vector."""
    async with SearchManager(config) as manager:
        if not manager.llm_client.available:
            logger.error("Precompute requires OPENAI_API_KEY")
            return False
        try:
            before = await manager.store.embedding_stats()
            processed = await manager.embedding_cache.precompute_all(page_size=page_size)
            after = await manager.store.embedding_stats()
        except StoreError as e:
            logger.error("Precompute failed", error=str(e))
            return False

    logger.info(
        "Precompute finished",
        processed=processed,
        total=after["total"],
        with_embedding_before=before["with_embedding"],
        with_embedding_after=after["with_embedding"]
    )
    return True


async def reset(crate_id: Optional[str], config: CrateSearchConfig) -> bool:
    """Clear one stored vector, or all of them."""
    async with SearchManager(config) as manager:
        try:
            changed = await manager.embedding_cache.reset(crate_id)
        except StoreError as e:
            logger.error("Reset failed", crate_id=crate_id, error=str(e))
            return False

    logger.info("Embeddings reset", crate_id=crate_id, changed=changed)
    return True


def main():
    """Main function for CLI."""
    parser = argparse.ArgumentParser(description="Manage stored crate embeddings")
    parser.add_argument("--env-file", default=".env", help="Environment file path")
    subparsers = parser.add_subparsers(dest="command", required=True)

    precompute_parser = subparsers.add_parser("precompute", help="Embed crates missing a vector")
    precompute_parser.add_argument("--page-size", type=int, default=None, help="Crates per page")

    reset_parser = subparsers.add_parser("reset", help="Clear stored vectors")
    reset_parser.add_argument("--id", dest="crate_id", help="Only reset this crate id")

    args = parser.parse_args()

    config = get_config(env_file=args.env_file)
    configure_logging("manage_embeddings", config.cs_log_level, config.cs_log_format)

    if args.command == "precompute":
        page_size = args.page_size or config.cs_precompute_page_size
        success = asyncio.run(precompute(page_size, config))
    else:
        success = asyncio.run(reset(args.crate_id, config))

    if success:
        print(f"{args.command} completed successfully")
        sys.exit(0)
    else:
        print(f"{args.command} failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
