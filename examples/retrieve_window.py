#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime, timezone

from onchain.logs import LogAPI, RetrievalSettings


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Fetch recent event logs over JSON-RPC")
    p.add_argument("address", nargs="?", default=None)
    p.add_argument("window", nargs="?", default="24h")
    p.add_argument("--rpc-url", default=None)
    p.add_argument("--limit", type=int, default=20, help="rows to print")
    p.add_argument("--verbose", action="store_true")
    return p.parse_args()


async def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    overrides = {"rpc_url": args.rpc_url} if args.rpc_url else {}
    settings = RetrievalSettings.from_env(**overrides)

    async with LogAPI.from_settings(settings) as api:
        block_range = await api.estimate_range(3600)
        print(f"Last hour  : blocks {block_range} ({block_range.size} blocks)")
        records = await api.retrieve_window(args.window, address=args.address)

    print("=" * 65)
    print(f"Endpoint   : {settings.rpc_url}")
    print(f"Window     : {args.window}")
    print(f"Records    : {len(records)}")
    print("=" * 65)
    print(f"{'Time (approx.)':25} | {'Block':>10} | {'Idx':>4} | Transaction")
    print("-" * 65)
    for r in records[: args.limit]:
        when = "-"
        if r.timestamp is not None:
            when = datetime.fromtimestamp(r.timestamp, tz=timezone.utc).isoformat()
        print(f"{when:25} | {r.block_number:>10} | {r.sequence_index:>4} | {r.transaction_id}")
    print("=" * 65)


if __name__ == "__main__":
    asyncio.run(main())
