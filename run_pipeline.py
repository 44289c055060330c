#!/usr/bin/env python3
"""
Simple script to run a single source and print what it found.
"""

import asyncio
import logging
import os
import sys

# Add project root to PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv

from core.cancel import CancellationToken
from core.config import load_config
from core.infra.artifacts import FileArtifactStore
from core.infra.cache import CacheService
from core.infra.http import HttpClient
from core.models import SearchContext
from core.pipeline_orchestrator import run_pipeline
from core.plugin_loader import create_adapters, list_available


async def run_single_source(source_name: str, limit: int = 10) -> int:
    """Run one source with a small fetch limit."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )
    logger = logging.getLogger(__name__)

    if source_name not in list_available():
        logger.error(f"Source '{source_name}' not found. Available: {sorted(list_available())}")
        return 1

    settings = load_config()
    settings = settings.model_copy(
        update={"run": settings.run.model_copy(update={"fetch_limit": limit})}
    )
    cache = CacheService(FileArtifactStore(settings.run.raw_dir))

    async with HttpClient(max_retries=settings.http.max_retries) as http:
        adapters = create_adapters(settings, http=http, cache=cache, names=[source_name])
        result = await run_pipeline(
            adapters, cache, settings, SearchContext(), token=CancellationToken()
        )

    for item in result.items:
        record = item.normalized
        price = record.budget_summary.min_known_price
        logger.info(f"{record.name or '?'} | {record.location.city or '-'} | {price if price is not None else '-'} | {record.profile_url}")
    for error in result.errors:
        logger.warning(f"{error.code.value} {error.target or ''}: {error.message}")

    logger.info(f"Status: {result.status.value} ({len(result.items)} records)")
    return 0


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3):
        print("Usage: python run_pipeline.py <source> [limit]")
        print("Example: python run_pipeline.py livetonight 5")
        sys.exit(1)

    source = sys.argv[1]
    fetch_limit = int(sys.argv[2]) if len(sys.argv) == 3 else 10

    sys.exit(asyncio.run(run_single_source(source, fetch_limit)))
