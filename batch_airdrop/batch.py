"""
Core batch airdrop logic.

Splits a recipient list into randomized-size batches and submits each batch
as a single batchTransfer call on the batcher contract, pausing a randomized
interval between submissions. Every recipient receives the same amount.

Supports:
- Line-delimited address files (LF or CRLF), invalid lines skipped
- Exact decimal to base-unit conversion (no floating point)
- Configuration, funding and ownership checks before the first transfer
- ERC-20 or native-currency distributions
- Dry runs and read-only estimates
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import re
import time
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Sequence, Union

from batch_airdrop.errors import (
    AuthorizationError,
    ConfigurationError,
    InsufficientFundsError,
    InvalidAmountError,
    ParseWarning,
    SubmissionError,
)
from batch_airdrop.ledger import LedgerClient


logger = logging.getLogger(__name__)

ADDRESS_ZERO = "0x" + "0" * 40

# Passed in place of a token address when distributing the native currency.
NATIVE_SENTINEL = ADDRESS_ZERO
NATIVE_DECIMALS = 18

ADDRESS_RE = re.compile(r"0x[0-9A-Fa-f]{40}")
_AMOUNT_RE = re.compile(r"([0-9]+)(?:\.([0-9]+))?")

RecipientList = tuple[str, ...]
RandInt = Callable[[int, int], int]
Sleep = Callable[[float], Awaitable[object]]


# ── Configuration ───────────────────────────────────────────────


@dataclass(frozen=True)
class BatchDefaults:
    """Caps and fallbacks used when building a BatchConfig."""

    # Upper bound on recipients per batchTransfer call.
    hard_cap_batch_size: int = 500
    default_interval_minutes: int = 10


DEFAULTS = BatchDefaults()


@dataclass(frozen=True)
class BatchConfig:
    """Batch size and pacing bounds for one run. All ranges are inclusive."""

    min_batch_size: int
    max_batch_size: int
    min_interval_minutes: int
    max_interval_minutes: int
    hard_cap_batch_size: int = DEFAULTS.hard_cap_batch_size

    @classmethod
    def from_params(
        cls,
        min_batch_size: Optional[int] = None,
        max_batch_size: Optional[int] = None,
        min_interval_minutes: Optional[int] = None,
        max_interval_minutes: Optional[int] = None,
        defaults: BatchDefaults = DEFAULTS,
    ) -> BatchConfig:
        """
        Build a config from optional task parameters.

        Missing batch sizes fall back to the hard cap and missing intervals
        to the default interval. The result is not validated yet.
        """
        cap = defaults.hard_cap_batch_size
        interval = defaults.default_interval_minutes
        return cls(
            min_batch_size=cap if min_batch_size is None else min_batch_size,
            max_batch_size=cap if max_batch_size is None else max_batch_size,
            min_interval_minutes=interval if min_interval_minutes is None else min_interval_minutes,
            max_interval_minutes=interval if max_interval_minutes is None else max_interval_minutes,
            hard_cap_batch_size=cap,
        )

    def validate(self) -> None:
        """Raise ConfigurationError on the first inconsistent bound."""
        if self.min_batch_size > self.max_batch_size:
            raise ConfigurationError(
                "min_batch_size must be less than or equal to max_batch_size: "
                f"{self.min_batch_size} > {self.max_batch_size}"
            )
        if self.min_interval_minutes > self.max_interval_minutes:
            raise ConfigurationError(
                "min_interval must be less than or equal to max_interval: "
                f"{self.min_interval_minutes} > {self.max_interval_minutes}"
            )
        if self.max_batch_size > self.hard_cap_batch_size:
            raise ConfigurationError(
                f"max_batch_size must be less than or equal to {self.hard_cap_batch_size}"
            )
        if self.min_batch_size < 1:
            raise ConfigurationError(
                f"min_batch_size must be at least 1, got {self.min_batch_size}"
            )
        if self.min_interval_minutes < 0:
            raise ConfigurationError(
                f"min_interval must not be negative, got {self.min_interval_minutes}"
            )


# ── Address files ───────────────────────────────────────────────


@dataclass
class AddressScan:
    """Outcome of reading an address list."""

    recipients: RecipientList
    warnings: list[ParseWarning] = field(default_factory=list)
    zero_addresses: int = 0
    blank_lines: int = 0

    @property
    def skipped(self) -> int:
        return len(self.warnings) + self.zero_addresses + self.blank_lines


def scan_addresses(lines: Iterable[str]) -> AddressScan:
    """
    Filter address lines, keeping their order.

    Lines that are not exactly `0x` + 40 hex digits are logged and skipped,
    as is the zero address. Duplicates are kept.
    """
    recipients = []
    warnings = []
    zero_addresses = 0
    blank_lines = 0

    for line_number, line in enumerate(lines, start=1):
        line = line.rstrip("\r\n")

        if not line:
            blank_lines += 1
            logger.debug("Line %d: blank, skipped", line_number)
            continue

        if not ADDRESS_RE.fullmatch(line):
            warning = ParseWarning(line_number, line, "invalid address")
            logger.warning("Invalid address: %s", warning)
            warnings.append(warning)
            continue

        if line == ADDRESS_ZERO:
            zero_addresses += 1
            logger.debug("Line %d: zero address, skipped", line_number)
            continue

        recipients.append(line)

    return AddressScan(
        recipients=tuple(recipients),
        warnings=warnings,
        zero_addresses=zero_addresses,
        blank_lines=blank_lines,
    )


def parse_addresses(lines: Iterable[str]) -> RecipientList:
    """Return the valid, non-zero addresses among `lines`."""
    return scan_addresses(lines).recipients


def scan_address_file(filepath: str | Path) -> AddressScan:
    """Read a whole address file and scan it."""
    filepath = Path(filepath)
    # utf-8-sig drops the BOM some spreadsheet exports prepend; undecodable
    # bytes become U+FFFD so the line fails the pattern and is skipped
    text = filepath.read_text(encoding="utf-8-sig", errors="replace")
    scan = scan_addresses(text.splitlines())
    logger.info("Processed file with %d addresses", len(scan.recipients))
    return scan


def read_address_file(filepath: str | Path) -> RecipientList:
    return scan_address_file(filepath).recipients


# ── Amounts ─────────────────────────────────────────────────────


def normalize_amount(amount: Union[str, int, Decimal], decimals: int) -> str:
    """
    Convert a human-entered decimal amount to a base-unit integer string.

    The decimal point is shifted `decimals` places by string manipulation,
    so arbitrarily large amounts stay exact:

        normalize_amount("1", 6)        -> "1000000"
        normalize_amount("1.5", 6)      -> "1500000"
        normalize_amount("0.000001", 6) -> "1"

    Leading zeros are stripped. A fraction with more digits than `decimals`
    is rejected rather than truncated.
    """
    if decimals < 0:
        raise InvalidAmountError(f"decimals must not be negative, got {decimals}")

    text = str(amount).strip()
    match = _AMOUNT_RE.fullmatch(text)
    if not match:
        raise InvalidAmountError(
            f"Invalid amount {text!r}: expected a non-negative decimal number"
        )

    whole, fraction = match.group(1), match.group(2) or ""
    if len(fraction) > decimals:
        raise InvalidAmountError(
            f"Amount {text} has {len(fraction)} fractional digits "
            f"but the token only has {decimals} decimals"
        )

    digits = whole + fraction + "0" * (decimals - len(fraction))
    return digits.lstrip("0") or "0"


# ── Pre-flight checks ───────────────────────────────────────────


def check_funding(
    balance: int,
    recipient_count: int,
    amount_base_units: Union[str, int],
    holder: str = "",
) -> int:
    """Raise InsufficientFundsError unless `balance` covers the run. Returns the cost."""
    required = recipient_count * int(amount_base_units)
    if balance < required:
        raise InsufficientFundsError(balance, required, holder)
    return required


def check_owner(signer: str, owner: str) -> None:
    """Addresses compare case-insensitively so checksummed and lowercase forms match."""
    if signer.lower() != owner.lower():
        raise AuthorizationError(signer, owner)


async def get_funding_balance(
    ledger: LedgerClient, holder: str, token_address: str, token_native: bool
) -> int:
    if token_native:
        return await ledger.get_native_balance(holder)
    return await ledger.get_token_balance(token_address, holder)


async def run_preflight(
    config: BatchConfig,
    ledger: LedgerClient,
    *,
    signer: str,
    recipient_count: int,
    amount_base_units: Union[str, int],
    token_address: str,
    batcher_address: str,
    token_native: bool = False,
) -> int:
    """
    Check everything that must hold before the first transfer.

    The batcher contract is the funding account: it must hold at least
    recipient_count * amount_base_units of the token (or of the native
    currency), and the signer must be its owner. Returns the total cost.
    """
    config.validate()

    balance = await get_funding_balance(ledger, batcher_address, token_address, token_native)
    required = check_funding(balance, recipient_count, amount_base_units, holder=batcher_address)
    logger.info("Funding balance %d covers total cost %d", balance, required)

    owner = await ledger.get_contract_owner(batcher_address)
    check_owner(signer, owner)

    return required


# ── Scheduling ──────────────────────────────────────────────────


@dataclass
class SchedulerState:
    """Cursor into the recipient list and how many recipients are left."""

    cursor: int = 0
    remaining: int = 0

    @property
    def done(self) -> bool:
        return self.remaining == 0

    def advance(self, batch_size: int) -> None:
        self.cursor += batch_size
        self.remaining -= batch_size


@dataclass(frozen=True)
class BatchResult:
    """One submitted batch."""

    index: int  # 1-based
    start: int
    size: int
    transaction_id: str
    interval_minutes: int = 0

    @property
    def end(self) -> int:
        return self.start + self.size


class BatchScheduler:
    """
    Submits recipients in randomized-size batches, strictly one at a time.

    Batch sizes are drawn from [min_batch_size, max_batch_size] and the last
    batch is clipped to whatever is left. After each submission the loop
    sleeps a number of minutes drawn from [min_interval, max_interval].

    Parameters:
        config: Validated on construction.
        randint: Inclusive integer draw, random.randint by default.
        sleep: Awaitable delay in seconds, asyncio.sleep by default.
        pause_after_last: Also pause after the final batch.
    """

    def __init__(
        self,
        config: BatchConfig,
        randint: RandInt = random.randint,
        sleep: Sleep = asyncio.sleep,
        pause_after_last: bool = True,
    ):
        config.validate()
        self.config = config
        self._randint = randint
        self._sleep = sleep
        self.pause_after_last = pause_after_last

    def draw_batch_size(self, remaining: int) -> int:
        size = self._randint(self.config.min_batch_size, self.config.max_batch_size)
        return min(size, remaining)

    def draw_interval(self) -> int:
        return self._randint(self.config.min_interval_minutes, self.config.max_interval_minutes)

    def plan(self, total: int) -> list[int]:
        """Draw batch sizes for `total` recipients without submitting anything."""
        state = SchedulerState(cursor=0, remaining=total)
        sizes = []
        while not state.done:
            batch_size = self.draw_batch_size(state.remaining)
            sizes.append(batch_size)
            state.advance(batch_size)
        return sizes

    async def run(
        self,
        recipients: Sequence[str],
        ledger: LedgerClient,
        asset: str,
        amount_base_units: str,
    ) -> list[BatchResult]:
        """
        Send `amount_base_units` of `asset` to every recipient.

        Returns one BatchResult per batch, in submission order. A failed
        submission raises SubmissionError and nothing after it is sent.
        """
        state = SchedulerState(cursor=0, remaining=len(recipients))
        results: list[BatchResult] = []

        while not state.done:
            batch_size = self.draw_batch_size(state.remaining)
            batch = list(recipients[state.cursor: state.cursor + batch_size])
            index = len(results) + 1
            logger.info("Sending batch %d of %d addresses...", index, batch_size)

            try:
                tx = await ledger.submit_batch_transfer(asset, batch, amount_base_units)
            except Exception as e:
                raise SubmissionError(
                    f"Batch {index} (recipients {state.cursor + 1}-"
                    f"{state.cursor + batch_size}) failed: {e}",
                    cursor=state.cursor,
                    completed=results,
                ) from e

            logger.info("%d. Transaction hash: %s", state.cursor + 1, tx.transaction_id)

            pause = self.pause_after_last or batch_size < state.remaining
            interval = self.draw_interval() if pause else 0

            results.append(BatchResult(
                index=index,
                start=state.cursor,
                size=batch_size,
                transaction_id=tx.transaction_id,
                interval_minutes=interval,
            ))

            if pause:
                logger.info("Waiting for %d minutes...", interval)
                await self._sleep(interval * 60)

            state.advance(batch_size)

        return results


# ── Distribution runs ───────────────────────────────────────────


@dataclass(frozen=True)
class DistributionParams:
    """Parameters of one airdrop, as supplied by the command line."""

    addresses_path: str | Path
    token_address: str
    batcher_address: str
    amount: Union[str, int, Decimal]
    token_native: bool = False
    min_batch_size: Optional[int] = None
    max_batch_size: Optional[int] = None
    min_interval_minutes: Optional[int] = None
    max_interval_minutes: Optional[int] = None

    @property
    def asset(self) -> str:
        return NATIVE_SENTINEL if self.token_native else self.token_address

    def batch_config(self, defaults: BatchDefaults = DEFAULTS) -> BatchConfig:
        return BatchConfig.from_params(
            min_batch_size=self.min_batch_size,
            max_batch_size=self.max_batch_size,
            min_interval_minutes=self.min_interval_minutes,
            max_interval_minutes=self.max_interval_minutes,
            defaults=defaults,
        )

    def validate_addresses(self) -> None:
        if not ADDRESS_RE.fullmatch(self.batcher_address):
            raise ConfigurationError(f"Invalid batcher address: {self.batcher_address!r}")
        if not self.token_native and not ADDRESS_RE.fullmatch(self.token_address or ""):
            raise ConfigurationError(f"Invalid token address: {self.token_address!r}")


@dataclass
class DistributionReport:
    """Result of a distribution run (or of a dry run)."""

    signer: str
    recipient_count: int
    decimals: int
    amount_base_units: str
    total_cost: int
    batches: list[BatchResult] = field(default_factory=list)
    planned_sizes: list[int] = field(default_factory=list)
    dry_run: bool = False
    duration_seconds: float = 0.0

    @property
    def sent_count(self) -> int:
        return sum(b.size for b in self.batches)

    def summary(self) -> str:
        status = "DRY RUN" if self.dry_run else "COMPLETE"
        lines = [
            f"=== Batch Airdrop — {status} ===",
            f"Sender: {self.signer}",
            f"Recipients: {self.recipient_count}",
            f"Amount per recipient: {self.amount_base_units} base units ({self.decimals} decimals)",
            f"Total cost: {self.total_cost} base units",
        ]
        if self.dry_run:
            lines.append(f"Planned batches: {len(self.planned_sizes)}")
            lines.append(f"Batch sizes: {', '.join(str(s) for s in self.planned_sizes)}")
        else:
            lines.append(f"Batches sent: {len(self.batches)}")
            lines.append(f"Recipients sent: {self.sent_count}")
            for b in self.batches:
                lines.append(f"  {b.index}. [{b.start + 1}-{b.end}] {b.transaction_id}")
            lines.append(f"Duration: {self.duration_seconds:.1f}s")
        return "\n".join(lines)


@dataclass
class DistributionEstimate:
    """Read-only view of what a run would do."""

    signer: str
    owner: str
    recipient_count: int
    skipped_lines: int
    decimals: int
    amount_base_units: str
    total_cost: int
    funding_balance: int
    min_batches: int
    max_batches: int
    min_wait_minutes: int
    max_wait_minutes: int

    @property
    def balance_sufficient(self) -> bool:
        return self.funding_balance >= self.total_cost

    @property
    def owner_matches(self) -> bool:
        return self.signer.lower() == self.owner.lower()

    def summary(self) -> str:
        balance_status = "SUFFICIENT" if self.balance_sufficient else "INSUFFICIENT"
        owner_status = "OK" if self.owner_matches else f"NOT OWNER (owner is {self.owner})"
        if self.min_batches == self.max_batches:
            batches = str(self.min_batches)
        else:
            batches = f"{self.min_batches}-{self.max_batches}"
        lines = [
            "=== Batch Airdrop — Estimate ===",
            f"Recipients: {self.recipient_count} ({self.skipped_lines} lines skipped)",
            f"Amount per recipient: {self.amount_base_units} base units ({self.decimals} decimals)",
            f"Total cost: {self.total_cost} base units",
            f"Funding balance: {self.funding_balance} base units",
            f"Balance: {balance_status}",
            f"Batch transactions: {batches}",
            f"Pacing: {self.min_wait_minutes}-{self.max_wait_minutes} minutes in total",
            f"Signer {self.signer}: {owner_status}",
        ]
        return "\n".join(lines)


@dataclass
class _Prepared:
    config: BatchConfig
    signer: str
    scan: AddressScan
    decimals: int
    amount_base_units: str


async def resolve_decimals(ledger: LedgerClient, params: DistributionParams) -> int:
    if params.token_native:
        return NATIVE_DECIMALS
    return await ledger.get_token_decimals(params.token_address)


async def _prepare(
    params: DistributionParams, ledger: LedgerClient, defaults: BatchDefaults
) -> _Prepared:
    config = params.batch_config(defaults)
    config.validate()
    params.validate_addresses()

    signer = await ledger.get_signer_identity()
    logger.info("Sending airdrops from address: %s", signer)
    native_balance = await ledger.get_native_balance(signer)
    logger.info("Native balance: %d", native_balance)

    try:
        scan = scan_address_file(params.addresses_path)
    except OSError as e:
        raise ConfigurationError(f"Cannot read address file {params.addresses_path}: {e}") from e
    if not scan.recipients:
        logger.warning("No valid addresses in %s, nothing to send", params.addresses_path)

    decimals = await resolve_decimals(ledger, params)
    amount_base_units = normalize_amount(params.amount, decimals)
    logger.info("Sending %s base units to each address", amount_base_units)

    return _Prepared(config, signer, scan, decimals, amount_base_units)


async def run_distribution(
    params: DistributionParams,
    ledger: LedgerClient,
    *,
    scheduler: Optional[BatchScheduler] = None,
    dry_run: bool = False,
    defaults: BatchDefaults = DEFAULTS,
) -> DistributionReport:
    """
    Run a full airdrop: read addresses, normalize the amount, run the
    pre-flight checks and submit every batch.

    With `dry_run`, everything up to and including the pre-flight checks
    runs against the ledger, the batch sizes are drawn, and nothing is
    submitted.

    Raises:
        ConfigurationError, InsufficientFundsError, AuthorizationError:
            before any transfer is sent.
        SubmissionError: when a batch fails; earlier batches stay sent.
    """
    start_time = time.time()
    prepared = await _prepare(params, ledger, defaults)
    recipients = prepared.scan.recipients

    total_cost = await run_preflight(
        prepared.config,
        ledger,
        signer=prepared.signer,
        recipient_count=len(recipients),
        amount_base_units=prepared.amount_base_units,
        token_address=params.token_address,
        batcher_address=params.batcher_address,
        token_native=params.token_native,
    )

    if scheduler is None:
        scheduler = BatchScheduler(prepared.config)

    report = DistributionReport(
        signer=prepared.signer,
        recipient_count=len(recipients),
        decimals=prepared.decimals,
        amount_base_units=prepared.amount_base_units,
        total_cost=total_cost,
        dry_run=dry_run,
    )

    if dry_run:
        report.planned_sizes = scheduler.plan(len(recipients))
        logger.info("Dry run: %d batches planned", len(report.planned_sizes))
        return report

    report.batches = await scheduler.run(
        recipients, ledger, params.asset, prepared.amount_base_units
    )
    report.duration_seconds = time.time() - start_time
    return report


async def estimate_distribution(
    params: DistributionParams,
    ledger: LedgerClient,
    defaults: BatchDefaults = DEFAULTS,
) -> DistributionEstimate:
    """
    Estimate a run without sending anything.

    Unlike run_distribution, a short balance or a foreign owner is reported
    in the estimate instead of raised. Configuration problems still raise.
    """
    prepared = await _prepare(params, ledger, defaults)
    config = prepared.config
    count = len(prepared.scan.recipients)

    balance = await get_funding_balance(
        ledger, params.batcher_address, params.token_address, params.token_native
    )
    owner = await ledger.get_contract_owner(params.batcher_address)

    min_batches = math.ceil(count / config.max_batch_size)
    max_batches = math.ceil(count / config.min_batch_size)

    return DistributionEstimate(
        signer=prepared.signer,
        owner=owner,
        recipient_count=count,
        skipped_lines=prepared.scan.skipped,
        decimals=prepared.decimals,
        amount_base_units=prepared.amount_base_units,
        total_cost=count * int(prepared.amount_base_units),
        funding_balance=balance,
        min_batches=min_batches,
        max_batches=max_batches,
        min_wait_minutes=min_batches * config.min_interval_minutes,
        max_wait_minutes=max_batches * config.max_interval_minutes,
    )
