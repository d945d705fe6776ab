"""Command-line entry point: run one research session and print the JSON response.

Usage:
    poster-research --image-url https://example.com/poster.jpg --sellers sellers.json
    python -m research --query "Carlu America's Answer Production" --parse-with-ai
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from observability.logging import get_logger, setup_logging
from research.config import ResearchSettings, get_settings
from research.dealers import InMemorySellerRegistry
from research.exceptions import ResearchError
from research.models import ItemContext, MultiStageSearchOptions
from research.service import MultiStageSearchService

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="poster-research", description="Multi-stage poster research search")
    parser.add_argument("--image-url", help="Reference image to run the image search with")
    parser.add_argument("--query", help="Primary text query")
    parser.add_argument("--variation", action="append", default=[], help="Additional query (repeatable)")
    parser.add_argument("--sellers", help="JSON file with the seller registry")
    parser.add_argument("--seller-id", type=int, action="append", dest="seller_ids", help="Restrict to seller id")
    parser.add_argument("--max-visual-results", type=int, default=20)
    parser.add_argument("--max-web-results", type=int, default=20)
    parser.add_argument("--max-web-queries", type=int, default=3)
    parser.add_argument("--no-web", action="store_true", help="Skip the text search stage")
    parser.add_argument("--parse-with-ai", action="store_true", help="Run AI parsing and consensus")
    parser.add_argument("--title", help="Known item title for AI parsing")
    parser.add_argument("--artist", help="Known artist for AI parsing")
    parser.add_argument("--date", help="Known date for AI parsing")
    parser.add_argument("--verify", action="store_true", help="Re-verify thumbnails against the image")
    parser.add_argument("--max-verifications", type=int, default=10)
    parser.add_argument("--threshold", type=float, default=0, help="Minimum visual match to keep (0-100)")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--status", action="store_true", help="Print provider status and exit")
    parser.add_argument("--log-level", default=None)
    return parser


def options_from_args(args: argparse.Namespace) -> MultiStageSearchOptions:
    item_context = None
    if args.title:
        item_context = ItemContext(
            title=args.title, artist=args.artist, date=args.date, image_url=args.image_url
        )
    return MultiStageSearchOptions(
        image_url=args.image_url,
        query=args.query,
        query_variations=args.variation,
        max_visual_results=args.max_visual_results,
        max_web_results=args.max_web_results,
        max_web_queries=args.max_web_queries,
        include_web_search=not args.no_web,
        parse_with_ai=args.parse_with_ai,
        item_context=item_context,
        enable_visual_verification=args.verify,
        max_visual_verifications=args.max_verifications,
        visual_verification_threshold=args.threshold,
        seller_ids=args.seller_ids,
    )


async def _run(args: argparse.Namespace) -> int:
    settings = ResearchSettings.from_env(args.env_file) if args.env_file else get_settings()
    registry = InMemorySellerRegistry.from_json_file(args.sellers) if args.sellers else InMemorySellerRegistry([])
    service = MultiStageSearchService(settings, registry)

    if args.status:
        print(service.status().model_dump_json(indent=2))
        return 0

    response = await service.search(options_from_args(args))
    print(response.model_dump_json(indent=2, exclude_none=True))
    return 0 if response.success else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)
    try:
        return asyncio.run(_run(args))
    except ResearchError as e:
        logger.error(f"Research failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
