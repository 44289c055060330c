"""
Main entry point for the wedding-DJ discovery run.

Exit codes: 0 for an ``ok`` or ``partial`` run, 2 when no record was found,
130 when the run was cancelled (SIGINT / SIGTERM).
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import aiohttp
from dotenv import load_dotenv

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.cancel import CancellationToken
from core.config import Settings, load_config
from core.errors import OperationCancelled, SchemaVersionError
from core.infra.artifacts import FileArtifactStore
from core.infra.cache import CacheService
from core.infra.geocode import Geocoder
from core.infra.http import HttpClient, HttpStatusError
from core.models import ProgressEvent, SearchContext, SearchLocation, TaskState
from core.pipeline_orchestrator import PipelineResult, RunStatus, run_pipeline
from core.plugin_loader import create_adapters, list_available
from core.sanitize import sanitize_for_error
from core.schema import ResultItem, load_parsed_output
from sinks.json_sink import ErrorLogSink, JsonOutputSink

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NO_DATA = 2
EXIT_CANCELLED = 130


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    argp = argparse.ArgumentParser(description="Discover wedding DJs across provider sites")
    argp.add_argument("--config", help="Path to config.yaml (default: $PRESTA_CONFIG or config.yaml)")
    argp.add_argument("--providers", nargs="+", help="Only run these sources")
    argp.add_argument("--limit", type=int, help="Max profiles per source")
    argp.add_argument("--mode", choices=["tasks", "batch"], help="Profile fetching mode")
    argp.add_argument("--location", help="Search location (city name or 'lat,lng')")
    argp.add_argument("--dry-run", action="store_true", help="List nothing, fetch nothing")
    return argp.parse_args(argv)


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    run = settings.run.model_copy(
        update={
            k: v
            for k, v in {
                "fetch_limit": args.limit,
                "mode": args.mode,
                "dry_run": True if args.dry_run else None,
            }.items()
            if v is not None
        }
    )
    search = settings.search
    if args.location:
        search = search.model_copy(update={"location": args.location})
    return settings.model_copy(update={"run": run, "search": search})


def load_prior_items(paths: List[str]) -> List[ResultItem]:
    items: List[ResultItem] = []
    for path in paths:
        try:
            items.extend(load_parsed_output(path).results)
        except FileNotFoundError:
            logger.warning(f"Prior output not found, skipping: {path}")
        except SchemaVersionError as e:
            logger.warning(f"Prior output {path} skipped: {e}")
        except ValueError as e:
            logger.warning(f"Prior output {path} is unreadable, skipping: {sanitize_for_error(str(e))}")
    return items


def log_progress(event: ProgressEvent) -> None:
    if event.state is TaskState.FETCHING:
        return
    logger.info(
        f"[worker {event.worker_id}] {event.display_name} {event.completed}/{event.total} "
        f"{event.state.value}: {event.target}"
    )


async def build_context(settings: Settings, http: HttpClient, token: CancellationToken) -> SearchContext:
    location: Optional[SearchLocation] = None
    if settings.search.location:
        try:
            location = await Geocoder(http).resolve(settings.search.location, token)
        except (LookupError, ValueError) as e:
            logger.warning(f"Could not geocode {settings.search.location!r}: {e}")
        except (HttpStatusError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                f"Geocoding unavailable, searching without a location: "
                f"{sanitize_for_error(str(e) or type(e).__name__)}"
            )
    return SearchContext(
        service_type=settings.search.service_type,
        location=location,
        date=settings.search.date,
    )


async def write_outputs(settings: Settings, result: PipelineResult) -> None:
    stamp = datetime.now(tz=timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    out_dir = Path(settings.run.output_dir).expanduser()

    async with JsonOutputSink(out_dir / f"profiles-{stamp}.json") as sink:
        for item in result.items:
            await sink.handle(item)

    if result.errors:
        async with ErrorLogSink(out_dir / f"errors-{stamp}.jsonl") as errors:
            for error in result.errors:
                await errors.handle(error)


async def main(argv: Optional[List[str]] = None) -> int:
    """Run every enabled source once and write the merged output."""
    load_dotenv()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )

    args = parse_args(argv)
    settings = apply_args(load_config(args.config), args)
    logger.info(f"Secrets: {settings.secrets!r}")

    logger.info("Discovering sources...")
    available = list_available()
    for name, cls in available.items():
        logger.info(f"  - {name}: {cls.__name__}")

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, token.cancel, f"Received {signal.Signals(sig).name}")

    store = FileArtifactStore(settings.run.raw_dir)
    cache = CacheService(store)

    try:
        async with HttpClient(
            timeout=settings.http.timeout,
            max_retries=settings.http.max_retries,
            base_delay=settings.http.base_delay,
        ) as http:
            adapters = create_adapters(settings, http=http, cache=cache, names=args.providers)
            context = await build_context(settings, http, token)
            result = await run_pipeline(
                adapters,
                cache,
                settings,
                context,
                token=token,
                on_progress=log_progress,
                prior_items=load_prior_items(settings.run.prior_outputs),
            )
    except OperationCancelled as e:
        logger.warning(f"Run cancelled: {e}")
        return EXIT_CANCELLED
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    await write_outputs(settings, result)
    for name, count in result.listing_counts.items():
        logger.info(f"  - {name}: {count} listings")

    if result.status is RunStatus.NO_DATA:
        logger.error("No data: no source produced a usable record")
        return EXIT_NO_DATA
    return EXIT_OK


def run_pipeline_system() -> None:
    """Entry point that can be called from other scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run_pipeline_system()
