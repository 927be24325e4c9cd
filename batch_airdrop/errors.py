"""
Error types for batch airdrops.

Everything that must stop a run derives from BatchTransferError. Malformed
lines in an address file are not errors: they become ParseWarning records
and the line is dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from batch_airdrop.batch import BatchResult


class BatchTransferError(Exception):
    """Base class for fatal batch airdrop errors."""


class ConfigurationError(BatchTransferError):
    """Batch bounds, intervals or recipient input are inconsistent."""


class InvalidAmountError(ConfigurationError):
    """The per-recipient amount cannot be expressed in base units."""


class InsufficientFundsError(BatchTransferError):
    """The funding account holds less than the total distribution cost."""

    def __init__(self, balance: int, required: int, holder: str = ""):
        self.balance = balance
        self.required = required
        self.holder = holder
        where = f" {holder}" if holder else ""
        super().__init__(
            f"Funding account{where} does not have enough to send: "
            f"{balance} < {required}"
        )


class AuthorizationError(BatchTransferError):
    """The signer is not the owner of the batcher contract."""

    def __init__(self, signer: str, owner: str):
        self.signer = signer
        self.owner = owner
        super().__init__(
            f"Sender {signer} is not the owner of the batcher contract (owner: {owner})"
        )


class SubmissionError(BatchTransferError):
    """
    A batch submission was rejected or failed.

    `cursor` is the index of the first recipient of the failed batch, so
    recipients[:cursor] were already submitted. `completed` holds the
    results of those earlier batches.
    """

    def __init__(self, message: str, cursor: int, completed: list[BatchResult]):
        self.cursor = cursor
        self.completed = completed
        super().__init__(message)


@dataclass(frozen=True)
class ParseWarning:
    """A skipped line of an address file."""

    line_number: int
    content: str
    reason: str

    def __str__(self) -> str:
        return f"Line {self.line_number}: {self.reason}: {self.content!r}"
