#!/usr/bin/env python3
"""Command-line trigger for the DCA keeper: discover due orders and execute them."""

import argparse
import asyncio
import sys
from typing import List, Optional

from dca_keeper.config import get_settings
from dca_keeper.context import ExecutorContext, build_context
from dca_keeper.core.dca import DiscoveryOptions, EligibleOrder, effective_slippage_bps, execute_batch
from dca_keeper.core.dca.models import BatchExecutionResult
from dca_keeper.core.recovery.errors import KeeperError
from dca_keeper.logging_config import bind_run_context, setup_logging

MIST_PER_SUI = 1_000_000_000


def print_order(order: EligibleOrder) -> None:
    """Pretty print one due order"""
    slippage = effective_slippage_bps(order)
    print(f"  - {order.id[:16]}...")
    print(f"    Pair: {order.input_type.split('::')[-1]} -> {order.output_type.split('::')[-1]}")
    print(f"    Orders: {order.remaining_orders} remaining")
    print(f"    Amount: {order.split_allocation} (smallest unit)")
    print(f"    Slippage: {slippage}bps ({slippage / 100}%), Fee: {order.fee_bps}bps")
    print(f"    Overdue: {order.overdue_ms // 1000}s")


def print_results(result: BatchExecutionResult) -> None:
    print("\n=== Execution Results ===")
    for r in result.results:
        if r.success:
            reward = f"{r.reward / MIST_PER_SUI} SUI" if r.reward is not None else "N/A"
            digest = (r.digest or "")[:16]
            print(f"  ok  {r.order_id[:16]}... -> {digest}... (reward: {reward})")
            if r.error:
                print(f"      {r.error}")
        else:
            print(f"  err {r.order_id[:16]}... -> {r.error}")

    print("\n=== Summary ===")
    print(f"  Total: {result.total}")
    print(f"  Processed: {result.processed}")
    print(f"  Success: {result.succeeded}")
    print(f"  Failed: {result.failed}")
    print(f"  Duration: {result.duration_ms}ms")
    if result.timed_out:
        print("  Batch deadline reached, remaining orders left for the next run")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DCA Keeper CLI")
    parser.add_argument("-d", "--discover", "--discover-only", dest="discover_only", action="store_true",
                        help="Just discover eligible orders, don't execute")
    parser.add_argument("-l", "--limit", type=int, help="Maximum number of orders to process (default: MAX_BATCH_SIZE)")
    parser.add_argument("-o", "--owner", help="Filter by order owner address")
    parser.add_argument("--input-type", help="Filter by input coin type")
    parser.add_argument("--output-type", help="Filter by output coin type")
    parser.add_argument("--env-file", help="Read settings from this .env file")
    return parser


async def run(args: argparse.Namespace, context: ExecutorContext) -> int:
    settings = context.settings
    limit = args.limit or settings.max_batch_size

    print("=== DCA Keeper CLI ===")
    print(f"Network: {settings.sui_network}")
    print(f"Package: {settings.dca_package_id}")
    print(f"Dry Run: {settings.dry_run}")
    print(f"Max Batch: {limit}")

    print("\nDiscovering DCA accounts...")
    discovered = await context.scanner().discover(DiscoveryOptions(
        limit=limit,
        owner=args.owner,
        input_type=args.input_type,
        output_type=args.output_type,
    ))

    print(f"\nDiscovered {discovered.total_discovered} DCAs, {discovered.total_eligible} eligible")
    if discovered.has_more:
        print("(more DCAs available - increase limit or paginate)")

    orders: List[EligibleOrder] = discovered.orders
    print(f"\nFound {len(orders)} DCA(s) to process:")
    for order in orders:
        print_order(order)

    if args.discover_only or not orders:
        print("\nDiscovery complete.")
        return 0

    if context.signer is None:
        print("EXECUTOR_PRIVATE_KEY is required to execute orders", file=sys.stderr)
        return 2

    print(f"\nExecuting {len(orders)} DCA(s) sequentially...")
    result = await execute_batch(
        orders,
        context.handler().execute_with_quote,
        options=context.queue_options(),
        events=context.events,
    )
    print_results(result)
    return 0 if result.failed == 0 else 1


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings(args.env_file)
    setup_logging(settings.log_level, stream=sys.stderr)

    try:
        context = build_context(settings)
    except KeeperError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    bind_run_context(network=settings.sui_network, executor=context.executor_address, trigger="cli")
    try:
        return await run(args, context)
    finally:
        await context.aclose()


def _entrypoint() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    _entrypoint()
