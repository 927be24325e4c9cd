"""
Batch Airdrop — randomized batch token distribution for EVM chains.

Sends the same amount to a list of addresses through a batcher contract,
one batchTransfer call per randomized-size batch, with randomized pauses
between calls.
"""

__version__ = "0.1.0"
