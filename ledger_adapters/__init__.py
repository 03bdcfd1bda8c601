"""
Ledger Adapters Package - One facade over UTXO, EVM and Tron ledgers.

Reads blocks, transactions and balances as canonical ``Transaction``
records, and builds, signs and broadcasts outgoing transfers.

Quick Start:
    from ledger_adapters import AdapterFactory, Currency, Settings

    async def scan(height: int):
        settings = Settings(
            uri="http://localhost:8545",
            currencies=(
                Currency("eth", 18),
                Currency("usdt", 6, {"contract_address": "0xdAC17F958D2ee523a2206206994597C13D831ec7"}),
            ),
        )
        async with AdapterFactory.create_blockchain("evm", settings) as chain:
            block = await chain.get_block_by_number(height)
            for tx in block.transactions:
                print(tx.currency, tx.from_address, tx.to_address, tx.amount, tx.status)

Canonical records:
- One raw transaction yields zero, one or many records
- All records of a raw transaction share its hash
- Amounts and fees are human units (Decimal)

Adding New Families:
    class NewBlockchain(LedgerBlockchain):
        family = ...
        def _create_client(self, settings): ...
        async def classify(self, raw_tx, in_block=False): ...
        ...

    AdapterFactory.register(family, blockchain_class=NewBlockchain)
"""

from ledger_adapters.base import LedgerBlockchain, LedgerWallet
from ledger_adapters.chains import (
    BitcoinBlockchain,
    BitcoinWallet,
    EvmBlockchain,
    EvmWallet,
    TronBlockchain,
    TronWallet,
)
from ledger_adapters.config import (
    BitcoinFeeOptions,
    Currency,
    EvmFeeOptions,
    Settings,
    TronFeeOptions,
    WalletSettings,
)
from ledger_adapters.exceptions import (
    BroadcastRejectedError,
    ConfigurationError,
    CurrencyNotFoundError,
    DecodeFailureError,
    InvalidTransferError,
    LedgerAdapterError,
    SigningError,
    UnavailableFromAddressError,
    UnresolvablePartyError,
    UpstreamUnavailableError,
)
from ledger_adapters.models import (
    Block,
    GasPriceRate,
    LedgerFamily,
    Transaction,
    TransactionStatus,
)
from ledger_adapters.registry import AdapterFactory, LedgerRegistry
from ledger_adapters.units import convert_from_base_unit, convert_to_base_unit


__version__ = "1.0.0"

__all__ = [
    # Base
    "LedgerBlockchain",
    "LedgerWallet",

    # Families
    "BitcoinBlockchain",
    "BitcoinWallet",
    "EvmBlockchain",
    "EvmWallet",
    "TronBlockchain",
    "TronWallet",

    # Config
    "Currency",
    "Settings",
    "WalletSettings",
    "EvmFeeOptions",
    "TronFeeOptions",
    "BitcoinFeeOptions",

    # Models
    "Block",
    "GasPriceRate",
    "LedgerFamily",
    "Transaction",
    "TransactionStatus",

    # Exceptions
    "LedgerAdapterError",
    "UpstreamUnavailableError",
    "UnresolvablePartyError",
    "UnavailableFromAddressError",
    "CurrencyNotFoundError",
    "DecodeFailureError",
    "BroadcastRejectedError",
    "SigningError",
    "InvalidTransferError",
    "ConfigurationError",

    # Registry
    "AdapterFactory",
    "LedgerRegistry",

    # Units
    "convert_to_base_unit",
    "convert_from_base_unit",
]
