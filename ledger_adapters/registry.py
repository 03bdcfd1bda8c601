"""
Ledger Adapter Factory and Registry.

============================================================
PURPOSE
============================================================
Select a ledger family implementation at configuration time and
keep a named set of configured blockchains.

============================================================
USAGE
============================================================
```python
settings = Settings.from_env("ETH")
blockchain = AdapterFactory.create_blockchain("evm", settings)

async with LedgerRegistry() as registry:
    registry.register("eth-mainnet", blockchain)
    block = await registry.get("eth-mainnet").get_block_by_number(19_000_000)
```

============================================================
"""

import logging
from typing import Any, Mapping, Optional, Type, Union

from ledger_adapters.base import LedgerBlockchain, LedgerWallet
from ledger_adapters.chains import (
    BitcoinBlockchain,
    BitcoinWallet,
    EvmBlockchain,
    EvmWallet,
    TronBlockchain,
    TronWallet,
)
from ledger_adapters.config import Settings, WalletSettings
from ledger_adapters.exceptions import ConfigurationError
from ledger_adapters.models import LedgerFamily
from ledger_adapters.rpc import NodeClient


logger = logging.getLogger(__name__)

FamilyLike = Union[LedgerFamily, str]


def parse_family(family: FamilyLike) -> LedgerFamily:
    """Family enum from its value."""
    if isinstance(family, LedgerFamily):
        return family
    try:
        return LedgerFamily(str(family).strip().lower())
    except ValueError as e:
        raise ConfigurationError(
            f"Unsupported ledger family '{family}'. "
            f"Supported: {[f.value for f in LedgerFamily]}",
            config_key="family",
            original_error=e,
        )


# ============================================================
# ADAPTER FACTORY
# ============================================================

class AdapterFactory:
    """
    Factory for creating ledger adapters.

    Maps each family to its Blockchain and Wallet classes. Further
    implementations can be registered for a family.
    """

    _blockchains: dict[LedgerFamily, Type[LedgerBlockchain]] = {
        LedgerFamily.BITCOIN: BitcoinBlockchain,
        LedgerFamily.EVM: EvmBlockchain,
        LedgerFamily.TRON: TronBlockchain,
    }

    _wallets: dict[LedgerFamily, Type[LedgerWallet]] = {
        LedgerFamily.BITCOIN: BitcoinWallet,
        LedgerFamily.EVM: EvmWallet,
        LedgerFamily.TRON: TronWallet,
    }

    @classmethod
    def register(
        cls,
        family: FamilyLike,
        blockchain_class: Optional[Type[LedgerBlockchain]] = None,
        wallet_class: Optional[Type[LedgerWallet]] = None,
    ) -> None:
        """
        Register implementations for a family.

        Args:
            family: Ledger family
            blockchain_class: Read-side class to register
            wallet_class: Write-side class to register
        """
        family = parse_family(family)
        if blockchain_class:
            cls._blockchains[family] = blockchain_class
        if wallet_class:
            cls._wallets[family] = wallet_class
        logger.info(f"Registered adapters for family '{family.value}'")

    @classmethod
    def create_blockchain(
        cls,
        family: FamilyLike,
        settings: Settings,
        client: Optional[NodeClient] = None,
    ) -> LedgerBlockchain:
        """
        Create a read-side adapter.

        Raises:
            ConfigurationError: If family not supported
        """
        family = parse_family(family)
        blockchain_class = cls._blockchains.get(family)
        if blockchain_class is None:
            raise ConfigurationError(
                f"No blockchain adapter for family '{family.value}'",
                config_key="family",
            )
        return blockchain_class(settings, client=client)

    @classmethod
    def create_wallet(
        cls,
        family: FamilyLike,
        settings: WalletSettings,
        client: Optional[NodeClient] = None,
    ) -> LedgerWallet:
        """
        Create a write-side adapter.

        Raises:
            ConfigurationError: If family not supported
        """
        family = parse_family(family)
        wallet_class = cls._wallets.get(family)
        if wallet_class is None:
            raise ConfigurationError(
                f"No wallet adapter for family '{family.value}'",
                config_key="family",
            )
        return wallet_class(settings, client=client)

    @classmethod
    def supported_families(cls) -> list[str]:
        return [family.value for family in cls._blockchains]


# ============================================================
# REGISTRY
# ============================================================

class LedgerRegistry:
    """
    Named set of configured blockchains.

    Owns the adapters registered with it and closes them on exit.
    """

    def __init__(self) -> None:
        self._blockchains: dict[str, LedgerBlockchain] = {}

    def register(self, name: str, blockchain: LedgerBlockchain) -> None:
        """Register a configured blockchain under ``name``."""
        if name in self._blockchains:
            logger.warning(f"Blockchain '{name}' already registered, replacing")
        self._blockchains[name] = blockchain
        logger.info(f"Registered blockchain '{name}' ({blockchain.name})")

    def unregister(self, name: str) -> Optional[LedgerBlockchain]:
        """Remove and return a blockchain."""
        blockchain = self._blockchains.pop(name, None)
        if blockchain is not None:
            logger.info(f"Unregistered blockchain '{name}'")
        return blockchain

    def get(self, name: str) -> LedgerBlockchain:
        """
        Blockchain registered under ``name``.

        Raises:
            ConfigurationError: If nothing is registered under ``name``
        """
        blockchain = self._blockchains.get(name)
        if blockchain is None:
            raise ConfigurationError(
                f"No blockchain registered as '{name}'",
                config_key=name,
                context={"registered": self.names()},
            )
        return blockchain

    def names(self) -> list[str]:
        return list(self._blockchains)

    def __contains__(self, name: str) -> bool:
        return name in self._blockchains

    def __len__(self) -> int:
        return len(self._blockchains)

    @classmethod
    def from_config(cls, config: Mapping[str, Mapping[str, Any]]) -> "LedgerRegistry":
        """
        Build a registry from ``{name: {"family": ..., "uri": ..., "currencies": [...]}}``.
        """
        registry = cls()
        for name, entry in config.items():
            if "family" not in entry:
                raise ConfigurationError(
                    f"Blockchain '{name}' has no family",
                    config_key="family",
                )
            settings = Settings.from_dict(entry)
            registry.register(name, AdapterFactory.create_blockchain(entry["family"], settings))
        return registry

    async def close_all(self) -> None:
        """Close every registered blockchain."""
        for blockchain in self._blockchains.values():
            await blockchain.close()

    async def __aenter__(self) -> "LedgerRegistry":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close_all()
