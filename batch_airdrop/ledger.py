"""
Ledger clients.

LedgerClient is everything the batch scheduler needs from a chain: balances,
token decimals, the batcher contract's owner and a way to submit one
batchTransfer call. Web3LedgerClient implements it over JSON-RPC with
AsyncWeb3 and a local signing key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence, Union

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3


logger = logging.getLogger(__name__)

# Minimal ABIs: only the functions called below.
ERC20_ABI = [
    {"name": "decimals", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "uint8"}]},
    {"name": "balanceOf", "type": "function", "stateMutability": "view",
     "inputs": [{"name": "account", "type": "address"}],
     "outputs": [{"name": "", "type": "uint256"}]},
]

BATCHER_ABI = [
    {"name": "owner", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "address"}]},
    {"name": "batchTransfer", "type": "function", "stateMutability": "nonpayable",
     "inputs": [
         {"name": "token", "type": "address"},
         {"name": "recipients", "type": "address[]"},
         {"name": "amount", "type": "uint256"},
     ],
     "outputs": []},
]


@dataclass(frozen=True)
class SubmittedTransaction:
    """A transaction the node has accepted (not necessarily mined)."""

    transaction_id: str


class LedgerClient(Protocol):
    async def get_signer_identity(self) -> str: ...

    async def get_native_balance(self, address: str) -> int: ...

    async def get_token_balance(self, token_address: str, address: str) -> int: ...

    async def get_token_decimals(self, token_address: str) -> int: ...

    async def get_contract_owner(self, contract_address: str) -> str: ...

    async def submit_batch_transfer(
        self,
        asset: str,
        recipients: Sequence[str],
        amount_base_units: Union[str, int],
    ) -> SubmittedTransaction: ...


class Web3LedgerClient:
    """
    LedgerClient backed by an EVM JSON-RPC endpoint.

    Transactions go to `batcher_address`, are signed locally with
    `private_key` and sent raw. Gas and fees are left to web3's defaults.
    """

    def __init__(self, rpc_url: str, private_key: str, batcher_address: str):
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.account = Account.from_key(private_key)
        self.batcher_address = Web3.to_checksum_address(batcher_address)

    async def is_connected(self) -> bool:
        return await self.w3.is_connected()

    def _erc20(self, token_address: str):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(token_address), abi=ERC20_ABI
        )

    def _batcher(self, contract_address: str):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=BATCHER_ABI
        )

    async def get_signer_identity(self) -> str:
        return self.account.address

    async def get_native_balance(self, address: str) -> int:
        return await self.w3.eth.get_balance(Web3.to_checksum_address(address))

    async def get_token_balance(self, token_address: str, address: str) -> int:
        token = self._erc20(token_address)
        return await token.functions.balanceOf(Web3.to_checksum_address(address)).call()

    async def get_token_decimals(self, token_address: str) -> int:
        return int(await self._erc20(token_address).functions.decimals().call())

    async def get_contract_owner(self, contract_address: str) -> str:
        return await self._batcher(contract_address).functions.owner().call()

    async def submit_batch_transfer(
        self,
        asset: str,
        recipients: Sequence[str],
        amount_base_units: Union[str, int],
    ) -> SubmittedTransaction:
        fn = self._batcher(self.batcher_address).functions.batchTransfer(
            Web3.to_checksum_address(asset),
            [Web3.to_checksum_address(r) for r in recipients],
            int(amount_base_units),
        )

        nonce = await self.w3.eth.get_transaction_count(self.account.address, "pending")
        tx = await fn.build_transaction({"from": self.account.address, "nonce": nonce})
        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)

        transaction_id = Web3.to_hex(tx_hash)
        logger.debug("Submitted batchTransfer to %d recipients: %s", len(recipients), transaction_id)
        return SubmittedTransaction(transaction_id=transaction_id)
