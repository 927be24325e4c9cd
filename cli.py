#!/usr/bin/env python3
"""
Batch Airdrop — CLI for randomized batch token distribution.

Usage:
    batch-airdrop transfer --file <path> --batcher <addr> --amount <n> (--token <addr> | --token-native)
                           [--min-batch-size <n>] [--max-batch-size <n>]
                           [--min-interval <min>] [--max-interval <min>] [--dry-run] [--yes]
    batch-airdrop estimate --file <path> --batcher <addr> --amount <n> (--token <addr> | --token-native)
    batch-airdrop validate --file <path>

Connection settings come from the environment (or a .env file):
    RPC_URL       JSON-RPC endpoint (--rpc-url overrides it)
    PRIVATE_KEY   key of the batcher contract's owner

Examples:
    # Send 1.5 tokens to every address, 100-200 per batch, 5-15 minutes apart
    batch-airdrop transfer --file addresses.txt --token 0x... --batcher 0x... \\
        --amount 1.5 --min-batch-size 100 --max-batch-size 200 \\
        --min-interval 5 --max-interval 15

    # Check balance, ownership and batch count without sending anything
    batch-airdrop estimate --file addresses.txt --token 0x... --batcher 0x... --amount 1.5

    # Check an address file offline
    batch-airdrop validate --file addresses.txt
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from batch_airdrop import __version__
from batch_airdrop.batch import (
    DEFAULTS,
    DistributionParams,
    estimate_distribution,
    run_distribution,
    scan_address_file,
)
from batch_airdrop.errors import BatchTransferError, ConfigurationError, SubmissionError
from batch_airdrop.ledger import Web3LedgerClient


BANNER = """
  Batch Airdrop v{version}
  Randomized batch token distribution
""".format(version=__version__)


def _params_from_args(args: argparse.Namespace) -> DistributionParams:
    return DistributionParams(
        addresses_path=args.file,
        token_address=args.token or "",
        batcher_address=args.batcher,
        amount=args.amount,
        token_native=args.token_native,
        min_batch_size=args.min_batch_size,
        max_batch_size=args.max_batch_size,
        min_interval_minutes=args.min_interval,
        max_interval_minutes=args.max_interval,
    )


def _ledger_from_env(args: argparse.Namespace, params: DistributionParams) -> Web3LedgerClient:
    params.validate_addresses()
    rpc_url = args.rpc_url or os.environ.get("RPC_URL")
    private_key = os.environ.get("PRIVATE_KEY")
    if not rpc_url:
        raise ConfigurationError("Set RPC_URL (or pass --rpc-url)")
    if not private_key:
        raise ConfigurationError("Set PRIVATE_KEY in the environment or a .env file")
    return Web3LedgerClient(rpc_url, private_key, batcher_address=args.batcher)


def cmd_transfer(args: argparse.Namespace) -> int:
    """Execute the batched airdrop."""
    print(BANNER)

    try:
        params = _params_from_args(args)
        ledger = _ledger_from_env(args, params)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1

    print(f"File: {args.file}")
    print(f"Asset: {'native currency' if args.token_native else args.token}")
    print(f"Batcher: {args.batcher}")
    print()

    # Dry run
    if args.dry_run:
        print("[DRY RUN] Running checks and drawing batch sizes without sending...")
        try:
            report = asyncio.run(run_distribution(params, ledger, dry_run=True))
        except BatchTransferError as e:
            print(f"Error: {e}")
            return 1
        print()
        print(report.summary())
        return 0

    try:
        estimate = asyncio.run(estimate_distribution(params, ledger))
    except BatchTransferError as e:
        print(f"Error: {e}")
        return 1
    print(estimate.summary())

    # Confirm
    if not args.yes:
        response = input(
            f"\nProceed with airdrop to {estimate.recipient_count} addresses? [y/N]: "
        )
        if response.lower() not in ("y", "yes"):
            print("Aborted.")
            return 0

    print("\nExecuting batch airdrop...")
    try:
        report = asyncio.run(run_distribution(params, ledger))
    except SubmissionError as e:
        print(f"Error: {e}")
        print(f"Batches sent before the failure: {len(e.completed)}")
        for b in e.completed:
            print(f"  {b.index}. [{b.start + 1}-{b.end}] {b.transaction_id}")
        print(
            f"Recipients 1-{e.cursor} were submitted. Re-run with the addresses "
            f"from line {e.cursor + 1} of the valid list onward."
        )
        return 1
    except BatchTransferError as e:
        print(f"Error: {e}")
        return 1

    print()
    print(report.summary())
    return 0


def cmd_estimate(args: argparse.Namespace) -> int:
    """Estimate an airdrop without sending anything."""
    print(BANNER)

    try:
        params = _params_from_args(args)
        ledger = _ledger_from_env(args, params)
        estimate = asyncio.run(estimate_distribution(params, ledger))
    except BatchTransferError as e:
        print(f"Error: {e}")
        return 1

    print()
    print(estimate.summary())
    return 0 if estimate.balance_sufficient and estimate.owner_matches else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate an address file."""
    print(BANNER)

    try:
        scan = scan_address_file(args.file)
    except OSError as e:
        print(f"Error reading file: {e}")
        return 1

    print(f"Loaded {len(scan.recipients)} addresses from {args.file}")
    if scan.zero_addresses:
        print(f"  Zero addresses skipped: {scan.zero_addresses}")
    if scan.blank_lines:
        print(f"  Blank lines skipped: {scan.blank_lines}")

    if scan.warnings:
        print(f"\n✗ Found {len(scan.warnings)} invalid lines:")
        for warning in scan.warnings:
            print(f"  ✗ {warning}")

    if not scan.recipients:
        print("\n✗ No valid addresses")
        return 1

    print("\nPreview (first 5):")
    for address in scan.recipients[:5]:
        print(f"  {address}")
    if len(scan.recipients) > 5:
        print(f"  ... and {len(scan.recipients) - 5} more")

    return 0


def _add_distribution_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--file", "-f", required=True, help="Path to the address file (one address per line)"
    )
    parser.add_argument("--token", "-t", help="ERC-20 token address")
    parser.add_argument(
        "--token-native", action="store_true",
        help="Distribute the chain's native currency instead of a token"
    )
    parser.add_argument("--batcher", "-b", required=True, help="Batcher contract address")
    parser.add_argument(
        "--amount", "-a", required=True, help="Amount sent to each address (e.g. 1.5)"
    )
    parser.add_argument(
        "--min-batch-size", type=int,
        help=f"Minimum batch size. Default: {DEFAULTS.hard_cap_batch_size}"
    )
    parser.add_argument(
        "--max-batch-size", type=int,
        help=f"Maximum batch size (at most {DEFAULTS.hard_cap_batch_size}). "
             f"Default: {DEFAULTS.hard_cap_batch_size}"
    )
    parser.add_argument(
        "--min-interval", type=int,
        help=f"Minimum minutes between batches. Default: {DEFAULTS.default_interval_minutes}"
    )
    parser.add_argument(
        "--max-interval", type=int,
        help=f"Maximum minutes between batches. Default: {DEFAULTS.default_interval_minutes}"
    )
    parser.add_argument("--rpc-url", help="JSON-RPC endpoint (overrides RPC_URL)")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="batch-airdrop",
        description="Batch Airdrop — randomized batch token distribution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"batch-airdrop {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log debug output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Transfer command
    transfer_parser = subparsers.add_parser(
        "transfer", help="Send the airdrop in randomized batches"
    )
    _add_distribution_args(transfer_parser)
    transfer_parser.add_argument(
        "--dry-run", action="store_true",
        help="Run all checks and draw batch sizes without sending"
    )
    transfer_parser.add_argument(
        "--yes", "-y", action="store_true",
        help="Skip confirmation prompt"
    )

    # Estimate command
    estimate_parser = subparsers.add_parser(
        "estimate", help="Check balance and ownership, estimate batches and pacing"
    )
    _add_distribution_args(estimate_parser)

    # Validate command
    validate_parser = subparsers.add_parser(
        "validate", help="Validate an address file"
    )
    validate_parser.add_argument(
        "--file", "-f", required=True, help="Path to the address file"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_dotenv(find_dotenv(usecwd=True))

    if args.command is None:
        parser.print_help()
        return 0

    if args.command in ("transfer", "estimate"):
        if not args.token_native and not args.token:
            parser.error("--token is required unless --token-native is set")

    commands = {
        "transfer": cmd_transfer,
        "estimate": cmd_estimate,
        "validate": cmd_validate,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
