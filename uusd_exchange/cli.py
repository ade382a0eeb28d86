"""Command-line interface for minting and redeeming the dollar."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .config import load_config
from .errors import ExchangeError, format_error_response
from .events import (
    ApprovalCompleted,
    ApprovalNeeded,
    TransactionFailed,
    TransactionPending,
    TransactionSubmitted,
    TransactionSucceeded,
)
from .logging_setup import configure_logging
from .models import PRICE_PRECISION, CollateralAsset, ProtocolState, TransactionResult
from .services import Exchange
from .units import format_amount, parse_amount


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="uusd-exchange",
        description="Mint and redeem UUSD against the Ubiquity pool",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("collaterals", help="List collaterals accepted by the pool")

    for name, help_text in (
        ("quote-mint", "Quote the inputs needed to mint an amount"),
        ("mint", "Mint an amount of UUSD"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("amount", help="UUSD amount, e.g. 100 or 12.5")
        p.add_argument("--collateral", type=int, default=0, help="Collateral index")
        p.add_argument(
            "--collateral-only",
            action="store_true",
            help="Pay entirely in collateral regardless of the ratio",
        )

    for name, help_text in (
        ("quote-redeem", "Quote the outputs of redeeming an amount"),
        ("redeem", "Redeem an amount of UUSD (collects a pending redemption first)"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("amount", help="UUSD amount, e.g. 100 or 12.5")
        p.add_argument("--collateral", type=int, default=0, help="Collateral index")

    collect_parser = sub.add_parser("collect", help="Collect a pending redemption")
    collect_parser.add_argument("--collateral", type=int, default=0, help="Collateral index")

    sub.add_parser("pending", help="Show an uncollected redemption for the wallet")

    watch_parser = sub.add_parser("watch", help="Poll and print protocol prices")
    watch_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Polling interval in seconds (overrides config)",
    )

    storage_parser = sub.add_parser("read-storage", help="Print a raw pool storage word")
    storage_parser.add_argument("slot", help="Slot number, decimal or 0x-prefixed")

    return parser


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _percent(value: int) -> str:
    return f"{value * 100 / PRICE_PRECISION:.4g}%"


def _usd(value: int) -> str:
    return f"${value / PRICE_PRECISION:.6f}"


def _collateral_amount(asset: CollateralAsset, amount: int) -> str:
    return f"{format_amount(amount, 18 - asset.decimal_shortfall)} {asset.symbol}"


def _print_state(state: ProtocolState) -> None:
    if state.is_fully_collateralized:
        mode = "fully collateralized"
    elif state.is_fully_algorithmic:
        mode = "fully algorithmic"
    else:
        mode = "fractional"
    print(
        f"ratio {_percent(state.collateral_ratio)} ({mode}) · "
        f"UBQ {_usd(state.governance_price_usd)} · "
        f"UUSD TWAP {_usd(state.time_weighted_avg_price)} · "
        f"mint >= {_usd(state.mint_price_threshold)} · "
        f"redeem <= {_usd(state.redeem_price_threshold)}"
    )


def _print_result(result: TransactionResult) -> None:
    if not result.confirmed:
        print(f"{result.operation.value} broadcast, still pending: {result.tx_hash}")
        return
    print(
        f"{result.operation.value} confirmed: {result.tx_hash} "
        f"(block {result.receipt.block_number}, gas {result.receipt.gas_used})"
    )


def _attach_progress(exchange: Exchange) -> None:
    bus = exchange.events
    bus.subscribe(ApprovalNeeded, lambda e: print(f"Approving {e.symbol or e.token}..."))
    bus.subscribe(ApprovalCompleted, lambda e: print(f"Approved {e.symbol}: {e.tx_hash}"))
    bus.subscribe(
        TransactionSubmitted, lambda e: print(f"Submitted {e.operation.value}: {e.tx_hash}")
    )
    bus.subscribe(TransactionSucceeded, lambda e: print("Confirmed."))
    bus.subscribe(TransactionPending, lambda e: print("Not mined yet."))
    bus.subscribe(TransactionFailed, lambda e: print(f"Failed: {e.error.message}"))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _watch(exchange: Exchange, interval: float | None) -> None:
    if interval is not None:
        exchange.poller.interval_seconds = interval
    exchange.poller.subscribe(_print_state)
    await exchange.poller.wait()


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    exchange = Exchange(config)
    orchestrator = exchange.orchestrator

    try:
        if args.command == "read-storage":
            value = await exchange.read_storage(int(args.slot, 0))
            print(f"{value} ({hex(value)})")
            return

        if args.command == "watch":
            await _watch(exchange, args.interval)
            return

        assets = await exchange.start()

        if args.command == "collaterals":
            for asset in assets:
                flags = []
                if not asset.is_enabled:
                    flags.append("disabled")
                if asset.is_mint_paused:
                    flags.append("mint paused")
                if asset.is_redeem_paused:
                    flags.append("redeem paused")
                print(
                    f"[{asset.index}] {asset.symbol} {asset.address} "
                    f"mint fee {_percent(asset.mint_fee)} "
                    f"redeem fee {_percent(asset.redeem_fee)}"
                    + (f" ({', '.join(flags)})" if flags else "")
                )
        elif args.command == "quote-mint":
            asset = orchestrator.collateral(args.collateral)
            quote = await orchestrator.quote_mint(
                asset.index, parse_amount(args.amount), args.collateral_only
            )
            print(f"Collateral in: {_collateral_amount(asset, quote.collateral_in)}")
            print(f"UBQ in:        {format_amount(quote.governance_in)} UBQ")
            print(f"UUSD out:      {format_amount(quote.total_out)} UUSD")
            if not quote.minting_allowed:
                print("Minting is currently not allowed (UUSD price below threshold).")
        elif args.command == "quote-redeem":
            asset = orchestrator.collateral(args.collateral)
            quote = await orchestrator.quote_redeem(asset.index, parse_amount(args.amount))
            print(f"Collateral out: {_collateral_amount(asset, quote.collateral_out)}")
            print(f"UBQ out:        {format_amount(quote.governance_out)} UBQ")
            if not quote.redeeming_allowed:
                print("Redeeming is currently not allowed (UUSD price above threshold).")
        elif args.command == "mint":
            _attach_progress(exchange)
            _print_result(
                await orchestrator.execute_mint(
                    args.collateral, parse_amount(args.amount), args.collateral_only
                )
            )
        elif args.command == "redeem":
            _attach_progress(exchange)
            _print_result(
                await orchestrator.execute_redeem(args.collateral, parse_amount(args.amount))
            )
        elif args.command == "collect":
            _attach_progress(exchange)
            _print_result(await orchestrator.execute_collect_redemption(args.collateral))
        elif args.command == "pending":
            pending = await exchange.pending_redemption()
            if pending is None:
                print("No pending redemption.")
            else:
                asset = orchestrator.collateral(pending.collateral_index)
                print(
                    f"Pending redemption: {_collateral_amount(asset, pending.balance)} "
                    f"(collect with --collateral {asset.index})"
                )
        else:
            build_parser().print_help()
            sys.exit(1)
    except ExchangeError as e:
        print(json.dumps(format_error_response(e), indent=2), file=sys.stderr)
        sys.exit(2)
    finally:
        exchange.close()


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))
