#!/usr/bin/env python3
"""Cache and API usage utility for marketlink.

Usage:
    python scripts/cache_manager.py --list           # List persisted quotes
    python scripts/cache_manager.py --purge          # Drop quotes older than 24h
    python scripts/cache_manager.py --purge 6        # Drop quotes older than 6h
    python scripts/cache_manager.py --fetch AAPL MSFT  # Fetch quotes, then show stats
"""

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from marketlink.config import config
from marketlink.core import Gateway, ResilienceContext
from marketlink.logging_config import setup_logging
from marketlink.market import MarketDataService


def list_quotes(context: ResilienceContext) -> None:
    """List all persisted quotes, newest first."""
    entries = context.persistent.read_all()
    if not entries:
        print("Quote cache is empty")
        return

    print(f"\nQuote cache: {config.quote_db_path}")
    print(f"{'Key':<20} {'Price':>12} {'Cached at':<20} {'Stale':<6}")
    print("-" * 62)
    for entry in entries:
        price = entry.value.get("price") if isinstance(entry.value, dict) else None
        price_str = f"{price:,.2f}" if price is not None else "-"
        cached_at = datetime.fromtimestamp(entry.stored_at).strftime("%Y-%m-%d %H:%M:%S")
        print(f"{entry.key:<20} {price_str:>12} {cached_at:<20} {'yes' if entry.is_stale else 'no':<6}")
    print("-" * 62)
    print(f"Total: {len(entries)} quotes")


def purge_quotes(context: ResilienceContext, hours: float) -> None:
    removed = context.persistent.purge_older_than(hours * 3600)
    print(f"Removed {removed} quotes older than {hours:g}h")


def print_stats(gateway: Gateway) -> None:
    summary = gateway.get_stats_summary()
    status = gateway.get_rate_limit_status()
    print(f"\nSession:        {summary.session_duration}")
    print(f"Total calls:    {summary.total_calls} ({summary.cached_calls} cached, hit rate {summary.cache_hit_rate})")
    print(f"Calls/minute:   {summary.calls_per_minute}")
    print(f"Rate limit:     {status['calls_per_minute']}/{status['limit']} ({status['status']}) - {status['message']}")
    print(f"Warnings:       {summary.rate_limit_warnings}")
    for item in summary.top_endpoints:
        print(f"  {item['endpoint']:<20} {item['count']}")
    for error in summary.recent_errors:
        print(f"  ! {error['message']} ({error['ago']})")


async def fetch_quotes(gateway: Gateway, symbols: list) -> None:
    service = MarketDataService(gateway)
    quotes = await service.get_quotes(symbols, essential=True)
    for symbol in symbols:
        quote = quotes.get(symbol.upper())
        if quote is None:
            print(f"{symbol.upper():<8} unavailable")
        else:
            print(f"{symbol.upper():<8} {quote['price']:>12,.2f}")
    print_stats(gateway)


def main():
    parser = argparse.ArgumentParser(
        description="Quote cache and API usage utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--list", "-l", action="store_true", help="List persisted quotes")
    parser.add_argument(
        "--purge", "-p", nargs="?", type=float, const=config.quote_purge_after_hours,
        help="Purge quotes older than N hours (default 24)",
    )
    parser.add_argument("--fetch", "-f", nargs="+", metavar="SYMBOL", help="Fetch quotes and print stats")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()
    setup_logging(level="DEBUG" if args.verbose else "WARNING")

    context = ResilienceContext.with_quote_store(config)
    gateway = Gateway(context)

    if args.list:
        list_quotes(context)
    elif args.purge is not None:
        purge_quotes(context, args.purge)
    elif args.fetch:
        asyncio.run(fetch_quotes(gateway, args.fetch))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
