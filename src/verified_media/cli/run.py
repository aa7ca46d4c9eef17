import argparse
import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from verified_media.core.entities import Accepted, Event, SelectionOutcome
from verified_media.services.config import load_config
from verified_media.services.logging import setup_logging
from verified_media.workflows.factory import create_engine_from_config
from verified_media.workflows.selection_engine import SelectionEngine


def _outcome_payload(outcome: SelectionOutcome, output: Optional[str]) -> Dict[str, Any]:
    if isinstance(outcome, Accepted):
        return {
            "status": "accepted",
            "selection_id": outcome.selection_id,
            "source": outcome.source,
            "confidence": outcome.confidence,
            "verdict": outcome.verdict.value,
            "style_info": outcome.style_info,
            "from_cache": outcome.from_cache,
            "url": outcome.metadata.url if outcome.metadata else None,
            "bytes": len(outcome.image_bytes),
            "output": output,
        }
    return {
        "status": "rejected",
        "reason": outcome.reason,
        "best_attempt": outcome.best_attempt,
    }


async def _write_image(path: str, image_bytes: bytes) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "wb") as f:
        await f.write(image_bytes)


async def run_select(engine: SelectionEngine, args: argparse.Namespace) -> int:
    event = Event(year=args.year, description=args.description)
    outcome = await engine.select_image(event, args.text or args.description)

    output = None
    if isinstance(outcome, Accepted) and args.output:
        await _write_image(args.output, outcome.image_bytes)
        output = args.output

    print(json.dumps(_outcome_payload(outcome, output), indent=2, default=str))
    return 0 if isinstance(outcome, Accepted) else 1


async def run_engagement(engine: SelectionEngine, args: argparse.Namespace) -> int:
    updated = await engine.record_engagement(args.selection_id, {
        "likes": args.likes,
        "retweets": args.retweets,
        "replies": args.replies,
        "impressions": args.impressions,
    })
    print(json.dumps({"selection_id": args.selection_id, "updated": updated}))
    return 0 if updated else 1


async def run_stats(engine: SelectionEngine, args: argparse.Namespace) -> int:
    await engine.optimizer.log_source_stats()
    print(json.dumps(await engine.stats(), indent=2, default=str))
    return 0


async def run_clear_cache(engine: SelectionEngine, args: argparse.Namespace) -> int:
    await engine.cache.clear()
    print(json.dumps({"cleared": True}))
    return 0


COMMANDS = {
    "select": run_select,
    "engagement": run_engagement,
    "stats": run_stats,
    "clear-cache": run_clear_cache,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="verified-media",
        description="Select and verify historical images for event posts.",
    )
    parser.add_argument("--config", help="Path to config.yml (default: resources/config.yml)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    select = sub.add_parser("select", help="Select an image for an event")
    select.add_argument("--year", type=int, required=True)
    select.add_argument("--description", required=True)
    select.add_argument("--text", help="Generated post text (defaults to the description)")
    select.add_argument("--output", help="Write the accepted image to this path")

    engagement = sub.add_parser("engagement", help="Record engagement metrics for a selection")
    engagement.add_argument("--selection-id", required=True)
    engagement.add_argument("--likes", type=int, default=0)
    engagement.add_argument("--retweets", type=int, default=0)
    engagement.add_argument("--replies", type=int, default=0)
    engagement.add_argument("--impressions", type=int, default=0)

    sub.add_parser("stats", help="Show cache, engagement and source statistics")
    sub.add_parser("clear-cache", help="Remove all cached selections")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    start_time = time.perf_counter()
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    logger = logging.getLogger(__name__)

    config = load_config(args.config)
    engine = create_engine_from_config(config)

    logger.info(f"Running command: {args.command}")
    code = await COMMANDS[args.command](engine, args)

    end_time = time.perf_counter()
    logger.info(f"Total time: {end_time - start_time:.2f}s")
    return code


def cli() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
