#!/usr/bin/env python3
"""
updater.py - Concurrent Blocklist Refresher

Refreshes every blocklist listed in the blocklists file. Each entry runs as
its own task with its own timeout; a failure is reported and never stops
the other entries.

Usage:
    python -m refresher.updater --basedir /var/lib/blocklists
"""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import sys
from typing import NamedTuple

import aiohttp

from refresher.config import (
    DEFAULT_BASEDIR,
    DEFAULT_CONCURRENCY,
    DEFAULT_TIMEOUT,
    DEFAULT_TIMESTAMP_URL,
    BlocklistEntry,
    ConfigError,
    RefreshConfig,
    load_blocklists,
)
from refresher.strategies import TransferTimeout, select_strategy


class RefreshResult(NamedTuple):
    """Result of refreshing a single blocklist."""
    name: str
    success: bool
    changed: bool
    error: str | None = None


def report(name: str, error: str) -> None:
    """Print one failure line; a single print keeps it whole."""
    print(f"Error updating {name}: {error}")


async def run_strategy(
    session: aiohttp.ClientSession, entry: BlocklistEntry, config: RefreshConfig
) -> bool:
    """Run the entry's strategy, aborting it once config.timeout expires."""
    strategy = select_strategy(entry.name)
    try:
        return await asyncio.wait_for(strategy(session, entry, config), timeout=config.timeout)
    except asyncio.TimeoutError:
        raise TransferTimeout(f"timed out after {config.timeout:g}s") from None


async def refresh_entry(
    session: aiohttp.ClientSession,
    entry: BlocklistEntry,
    config: RefreshConfig,
    semaphore: asyncio.Semaphore | None = None,
) -> RefreshResult:
    """
    Refresh one blocklist.

    Every exception is caught here and turned into a failed result, so one
    entry can never take down its siblings.
    """
    try:
        async with semaphore or contextlib.nullcontext():
            changed = await run_strategy(session, entry, config)
        return RefreshResult(entry.name, success=True, changed=changed)
    except Exception as e:
        error = str(e) or type(e).__name__
        report(entry.name, error)
        return RefreshResult(entry.name, success=False, changed=False, error=error)


async def refresh_all(entries: list[BlocklistEntry], config: RefreshConfig) -> list[RefreshResult]:
    """Refresh all entries concurrently and wait for every one to finish."""
    config.basedir.mkdir(parents=True, exist_ok=True)

    # Optional bound on simultaneous transfers
    semaphore = asyncio.Semaphore(config.concurrency) if config.concurrency > 0 else None

    connector = aiohttp.TCPConnector(limit=config.concurrency)
    timeout = aiohttp.ClientTimeout(total=None, sock_connect=config.timeout)
    async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
        tasks = [
            asyncio.create_task(refresh_entry(session, entry, config, semaphore))
            for entry in entries
        ]
        # refresh_entry turns every failure into a result, so gather never raises
        results = await asyncio.gather(*tasks)

    return list(results)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Refresh cached blocklists from their sources")
    parser.add_argument("--basedir", default=str(DEFAULT_BASEDIR), help="Directory holding the cached blocklists (default: current directory)")
    parser.add_argument("--config", help="Blocklists file (default: <basedir>/blocklists)")
    parser.add_argument("--bindir", help="Directory containing rsync (default: probed)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Per-blocklist timeout in seconds")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Max concurrent transfers (0 = unbounded)")
    parser.add_argument("--timestamp-url", default=DEFAULT_TIMESTAMP_URL, help="Epoch timestamp URL for maldom")
    parser.add_argument("--strict", action="store_true", help="Exit with status 1 if any blocklist failed")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = RefreshConfig.from_args(args)

    try:
        entries = load_blocklists(config.config_file)
    except ConfigError as e:
        print(f"❌ ERROR: {e}", file=sys.stderr)
        return 2

    if not entries:
        print("No blocklists configured")
        return 0

    print(f"🔄 Refreshing {len(entries)} blocklists...")

    results = asyncio.run(refresh_all(entries, config))

    updated = sum(1 for r in results if r.success and r.changed)
    skipped = sum(1 for r in results if r.success and not r.changed)
    failed = sum(1 for r in results if not r.success)

    print(f"✅ Updated: {updated}/{len(entries)} (skipped: {skipped})")
    if failed > 0:
        print(f"⚠️  Failed: {failed}")

    if args.strict and failed > 0:
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
