"""
Command-line entry point.

Usage:
    feedcrawl run --platform twitter_list --target 1234567890 --max-items 20
    feedcrawl run --platform youtube_channel --target @veritasium
    feedcrawl cleanup-stale --older-than-minutes 30
"""

import argparse
import asyncio
import json
import sys
import traceback
from typing import List, Optional

from pydantic import ValidationError

from feedcrawl.browser.registry import build_default_registry
from feedcrawl.core.config import get_config
from feedcrawl.core.error_logger import get_error_logger
from feedcrawl.core.error_models import ErrorComponent, ErrorStage, ErrorType
from feedcrawl.core.job_models import JobRequest, Platform
from feedcrawl.core.logging import get_logger, init_crawler_logging
from feedcrawl.crawler.drivers import build_drivers
from feedcrawl.db.storage import build_storage
from feedcrawl.jobs.manager import JobLifecycleManager

logger = get_logger(__name__)


async def run_job(request: JobRequest) -> int:
    """Run one job to completion and print its result. Returns the exit code."""
    config = get_config()
    storage = build_storage(config)
    manager = JobLifecycleManager.from_config(
        storage=storage,
        registry=build_default_registry(config),
        drivers=build_drivers(config),
        config=config,
    )
    try:
        job_id = await manager.submit(request)
        print(f"Job {job_id} started ({request.platform.value}:{request.target})")
        result = await manager.wait(job_id)
    finally:
        await manager.shutdown()

    if result is None:
        print(f"[error] Job {job_id} finished without a result", file=sys.stderr)
        return 1

    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0 if result.succeeded else 1


async def cleanup_stale(older_than_minutes: float) -> int:
    storage = build_storage(get_config())
    cleaned = await storage.fail_stale_jobs(older_than_minutes * 60)
    if not cleaned:
        print("No stale jobs found")
        return 0
    print(f"Marked {len(cleaned)} stale job(s) as failed:")
    for job_id in cleaned:
        print(f"  - {job_id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feedcrawl",
        description="Crawl Twitter lists and YouTube channels with pooled headless browsers",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one crawl job and print its result")
    run.add_argument("--platform", required=True, choices=[p.value for p in Platform])
    run.add_argument("--target", required=True, help="List id/URL or channel handle")
    run.add_argument("--max-items", type=int, help="Stop after this many new items")
    run.add_argument("--duplicate-stop", type=int, help="Consecutive stored duplicates that end the job")
    run.add_argument("--verbose", action="store_true", help="Debug logging")

    stale = sub.add_parser("cleanup-stale", help="Fail jobs stuck in 'running'")
    stale.add_argument("--older-than-minutes", type=float, default=30.0)
    stale.add_argument("--verbose", action="store_true", help="Debug logging")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    init_crawler_logging(verbose=args.verbose, log_dir=str(config.log_dir))

    try:
        config.validate()
    except ValueError as e:
        get_error_logger().log_exception(
            e, component=ErrorComponent.CONFIG, stage=ErrorStage.LOAD_CONFIG, platform="all",
            error_type=ErrorType.CONFIG_ERROR,
        )
        print(f"[error] {e}", file=sys.stderr)
        return 2

    try:
        if args.command == "run":
            try:
                request = JobRequest(
                    platform=args.platform,
                    target=args.target,
                    max_items=args.max_items,
                    duplicate_stop_count=args.duplicate_stop,
                )
            except ValidationError as e:
                print(f"[error] Invalid job request:\n{e}", file=sys.stderr)
                return 2
            return asyncio.run(run_job(request))
        return asyncio.run(cleanup_stale(args.older_than_minutes))
    except KeyboardInterrupt:
        print("\n[abort] KeyboardInterrupt, stopping.")
        return 130
    except Exception as e:
        print(f"[fatal] uncaught error: {e}", file=sys.stderr)
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
