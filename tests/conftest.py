"""Shared fixtures: an in-memory ledger client and deterministic draws."""

from __future__ import annotations

from itertools import cycle

import pytest

from batch_airdrop.ledger import SubmittedTransaction


OWNER = "0x" + "ab" * 20
STRANGER = "0x" + "cd" * 20
TOKEN = "0x" + "70" * 20
BATCHER = "0x" + "ba" * 20


def make_address(i: int) -> str:
    return "0x" + format(i, "040x")


class FakeLedger:
    """LedgerClient that keeps everything in memory and records each call."""

    def __init__(
        self,
        signer: str = OWNER,
        owner: str = OWNER,
        native_balance: int = 0,
        token_balance: int = 0,
        decimals: int = 6,
        fail_on_batch: int | None = None,
    ):
        self.signer = signer
        self.owner = owner
        self.native_balance = native_balance
        self.token_balance = token_balance
        self.decimals = decimals
        self.fail_on_batch = fail_on_batch
        self.calls: list[tuple] = []
        self.submissions: list[tuple[str, list[str], str]] = []

    async def get_signer_identity(self) -> str:
        self.calls.append(("get_signer_identity",))
        return self.signer

    async def get_native_balance(self, address: str) -> int:
        self.calls.append(("get_native_balance", address))
        return self.native_balance

    async def get_token_balance(self, token_address: str, address: str) -> int:
        self.calls.append(("get_token_balance", token_address, address))
        return self.token_balance

    async def get_token_decimals(self, token_address: str) -> int:
        self.calls.append(("get_token_decimals", token_address))
        return self.decimals

    async def get_contract_owner(self, contract_address: str) -> str:
        self.calls.append(("get_contract_owner", contract_address))
        return self.owner

    async def submit_batch_transfer(self, asset, recipients, amount_base_units):
        number = len(self.submissions) + 1
        self.calls.append(("submit_batch_transfer", asset, len(recipients)))
        if number == self.fail_on_batch:
            raise RuntimeError("replacement transaction underpriced")
        self.submissions.append((asset, list(recipients), amount_base_units))
        return SubmittedTransaction(transaction_id="0x" + format(number, "064x"))


class ScriptedRandint:
    """
    Stand-in for random.randint.

    Values are scripted per (low, high) range and cycled; a range with no
    script returns its lower bound.
    """

    def __init__(self, scripts: dict[tuple[int, int], list[int]] | None = None):
        self._scripts = {key: cycle(values) for key, values in (scripts or {}).items()}
        self.calls: list[tuple[int, int]] = []

    def __call__(self, low: int, high: int) -> int:
        self.calls.append((low, high))
        if (low, high) in self._scripts:
            return next(self._scripts[(low, high)])
        return low


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_ledger():
    return FakeLedger


@pytest.fixture
def scripted_randint():
    return ScriptedRandint


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def addresses():
    def _make(count: int, start: int = 1) -> list[str]:
        return [make_address(i) for i in range(start, start + count)]
    return _make


@pytest.fixture
def address_file(tmp_path):
    def _write(lines: list[str], newline: str = "\n", name: str = "addresses.txt"):
        path = tmp_path / name
        path.write_bytes(newline.join(lines).encode("utf-8"))
        return path
    return _write
