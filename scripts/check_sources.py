"""
Smoke check for the valuation sources.

Demonstrates:
- Fetching each registered source directly
- Fallback through the registry
- The assembled composite
- Health monitoring
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from valuation_engine import IndicatorKey, build_aggregator, load_config


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def print_banner(text: str) -> None:
    """Print a banner."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


async def check_each_source(aggregator) -> None:
    """Fetch every source once, outside the fallback chain."""
    print_banner("SOURCES")

    registry = aggregator.registry
    for indicator in registry.indicators():
        for source in registry.sources_for(indicator):
            result = await source.fetch()
            if result.ok:
                obs = result.observation
                print(f"  {indicator:<13} {source.name:<20} {obs.value:>10} @ {obs.date}")
            else:
                print(f"  {indicator:<13} {source.name:<20} FAILED: {result.error}")


async def check_composite(aggregator) -> None:
    """Resolve every indicator through the cache and fallbacks."""
    print_banner("COMPOSITE")

    snapshot = await aggregator.get_all_indicators()
    print(f"  Score: {snapshot.score}  Live: {snapshot.is_live}")
    if snapshot.error:
        print(f"  Error: {snapshot.error}")

    for key in IndicatorKey.indicators():
        result = snapshot.indicator(key)
        print(
            f"  {key.value:<13} {result.value:>10} | p{result.percentile:<3} | "
            f"{result.date:<10} | {result.source} ({result.origin.value})"
        )


def print_health(aggregator) -> None:
    """Print source health."""
    print_banner("HEALTH")

    for name, health in aggregator.registry.get_all_health().items():
        print(
            f"  {name:<20} {health.status.value:<12} "
            f"failures={health.consecutive_failures} uptime={health.uptime_percentage:.0f}%"
        )
    print(f"\n  Cache: {aggregator.cache_freshness()}")


async def main() -> int:
    load_dotenv()
    config = load_config()

    async with build_aggregator(config) as aggregator:
        await check_each_source(aggregator)
        await check_composite(aggregator)
        print_health(aggregator)

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
