#!/usr/bin/env python3
"""
Keyword Research Runner

Runs one research session against SellerSprite and writes the result as JSON:
1. Keyword extraction per product
2. Aggregation and comparison
3. Opportunity mining
4. Gap analysis
5. Keyword enhancement

Usage:
    # Set SELLERSPRITE_API_KEY (or put it in .env) first:
    export SELLERSPRITE_API_KEY=your_key

    # Single product:
    python scripts/run_keyword_research.py B08N5WRWNW

    # Your product first, then competitors:
    python scripts/run_keyword_research.py B08N5WRWNW B07ZPKN6YR B09XYZ1234 \
        --max-keywords 100 \
        --min-volume 200 \
        --output research.json
"""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from src.collector import SellerSpriteClient
from src.research import (
    KeywordResearchError,
    KeywordResearchPipeline,
    ResearchOptions,
    ResearchPhase,
)
from src.utils import get_settings

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_keyword_research(asins, options: ResearchOptions, output: Path) -> int:
    """Run the pipeline, print progress, write JSON. Returns an exit code."""
    settings = get_settings()
    if not settings.SELLERSPRITE_API_KEY:
        print("ERROR: Missing required environment variable SELLERSPRITE_API_KEY")
        print("\nSet it with:")
        print("  export SELLERSPRITE_API_KEY=your_key")
        return 1

    print(f"\n{'='*70}")
    print("ASIN KEYWORD RESEARCH")
    print(f"{'='*70}")
    print(f"Products:      {', '.join(asins)}")
    print(f"Max keywords:  {options.max_keywords_per_asin}")
    print(f"Min volume:    {options.min_search_volume}")
    print(f"Opportunities: {options.include_opportunities}")
    print(f"Gap analysis:  {options.include_gap_analysis}")
    print(f"{'='*70}\n")

    async with SellerSpriteClient.from_settings(settings) as client:
        pipeline = KeywordResearchPipeline.from_settings(client, settings)
        stream, task = pipeline.stream(asins, options)

        async for event in stream:
            marker = "✗" if event.phase == ResearchPhase.ERROR else "✓"
            print(f"{marker} [{event.progress:3d}%] {event.phase.value}: {event.message}")

        try:
            result = await task
        except KeywordResearchError as e:
            print(f"\n✗ Research failed: {e.message}")
            return 1

    output.write_text(json.dumps(result.to_dict(), indent=2, default=str))

    print("\n" + "="*70)
    print("RESEARCH COMPLETE")
    print("="*70)
    print(f"Keywords:      {result.overview.total_keywords}")
    print(f"Unique:        {len(result.aggregated_keywords)}")
    print(f"Opportunities: {len(result.opportunities)}")
    print(f"Gaps:          {len(result.gap_analysis.gaps) if result.gap_analysis else 0}")
    print(f"Duration:      {result.overview.processing_time_ms / 1000:.1f} seconds")
    print(f"Output:        {output}")
    print("="*70 + "\n")
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Research Amazon keywords for one product and its competitors"
    )
    parser.add_argument(
        "asins",
        nargs="+",
        help="1-10 ASINs, your own product first"
    )
    parser.add_argument(
        "--max-keywords",
        type=int,
        default=50,
        help="Keywords fetched per product (default: 50)"
    )
    parser.add_argument(
        "--min-volume",
        type=int,
        default=100,
        help="Minimum monthly search volume (default: 100)"
    )
    parser.add_argument(
        "--no-opportunities",
        action="store_true",
        help="Skip opportunity mining"
    )
    parser.add_argument(
        "--no-gaps",
        action="store_true",
        help="Skip gap analysis"
    )
    parser.add_argument(
        "--output",
        default="keyword_research.json",
        help="Where to write the JSON result (default: keyword_research.json)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Debug logging"
    )

    args = parser.parse_args()

    load_dotenv()
    configure_logging(args.verbose)

    options = ResearchOptions.from_dict({
        "max_keywords_per_asin": args.max_keywords,
        "min_search_volume": args.min_volume,
        "include_opportunities": not args.no_opportunities,
        "include_gap_analysis": not args.no_gaps,
    })

    exit_code = asyncio.run(run_keyword_research(args.asins, options, Path(args.output)))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
