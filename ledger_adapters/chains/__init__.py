"""
Ledger family implementations.

Each module provides a Blockchain (read side) and a Wallet (write side).
"""

from ledger_adapters.chains.bitcoin import BitcoinBlockchain, BitcoinWallet
from ledger_adapters.chains.evm import EvmBlockchain, EvmWallet
from ledger_adapters.chains.tron import TronBlockchain, TronWallet

__all__ = [
    "BitcoinBlockchain",
    "BitcoinWallet",
    "EvmBlockchain",
    "EvmWallet",
    "TronBlockchain",
    "TronWallet",
]
