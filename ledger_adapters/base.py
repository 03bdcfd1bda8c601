"""
Ledger Adapters - Capability Interfaces.

============================================================
PURPOSE
============================================================
Abstract read side (``LedgerBlockchain``) and write side
(``LedgerWallet``) implemented once per ledger family.

DESIGN PRINCIPLES:
- Ledger-agnostic interface
- Configured once at construction, read-only afterwards
- Node client injected, or created from the configured uri

BLOCK ERROR POLICY:
    While iterating a block, a transaction whose sender or recipient
    cannot be resolved is logged and skipped. Every other error aborts
    the whole block. ``get_transaction`` propagates everything.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Iterable, Optional

from ledger_adapters.config import Currency, Settings, WalletSettings
from ledger_adapters.exceptions import (
    InvalidTransferError,
    UnresolvablePartyError,
)
from ledger_adapters.models import Block, LedgerFamily, Transaction, TransactionStatus
from ledger_adapters.rpc import NodeClient


logger = logging.getLogger(__name__)


# ============================================================
# READ SIDE
# ============================================================

class LedgerBlockchain(ABC):
    """
    Abstract base class for blockchain (read side) adapters.

    Each family must:
    1. Implement classify() - raw transaction to canonical records
    2. Implement the block/transaction facade
    3. Implement get_balance_of_address()
    """

    family: LedgerFamily

    # Decimal places of the family's native coin
    NATIVE_SUBUNITS: int = 18

    def __init__(
        self,
        settings: Settings,
        client: Optional[NodeClient] = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._create_client(settings)
        logger.info(
            f"[{self.name}] Configured with {len(settings.currencies)} currencies "
            f"({', '.join(c.id for c in settings.currencies)})"
        )

    @property
    def name(self) -> str:
        return self.family.value

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def client(self) -> NodeClient:
        return self._client

    @abstractmethod
    def _create_client(self, settings: Settings) -> NodeClient:
        """Build the default node client for ``settings.uri``."""
        pass

    def currency(self, currency_id: str) -> Currency:
        """Configured currency, or ``CurrencyNotFoundError``."""
        return self._settings.currency(currency_id, chain=self.name)

    def native_currency(self) -> Currency:
        """Configured native coin, or ``ConfigurationError``."""
        return self._settings.native_currency(chain=self.name)

    def _native_or_none(self) -> Optional[Currency]:
        for currency in self._settings.currencies:
            if not currency.is_token:
                return currency
        return None

    def _fee_terms(self) -> tuple[str, int]:
        """Fee currency id and subunits; empty id when no native coin is configured."""
        native = self._native_or_none()
        if native is None:
            return "", self.NATIVE_SUBUNITS
        return native.id, native.subunits

    # ─────────────────────────────────────────────────────────────
    # Classification
    # ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def classify(
        self,
        raw_tx: dict[str, Any],
        in_block: bool = False,
    ) -> list[Transaction]:
        """
        Map one raw ledger transaction to canonical records.

        Args:
            raw_tx: Transaction object as returned by the node
            in_block: Whether the transaction was read from a block.
                Only families without a status field on the transaction
                (bitcoin) use it; evm and tron read status from the
                receipt and ignore it.

        Returns:
            Zero, one or many records sharing the same hash. An
            irrelevant transaction yields an empty list.

        Raises:
            DecodeFailureError: Raw data or receipt is unreadable
            UpstreamUnavailableError: A required lookup failed
            UnresolvablePartyError: Sender cannot be determined
        """
        pass

    async def _classify_block(
        self,
        raw_txs: Iterable[dict[str, Any]],
        block_number: int,
    ) -> tuple[Transaction, ...]:
        """Classify every transaction of a block and stamp its height."""
        records: list[Transaction] = []
        for raw_tx in raw_txs:
            try:
                classified = await self.classify(raw_tx, in_block=True)
            except UnresolvablePartyError as e:
                logger.warning(
                    f"[{self.name}] Skipping transaction {e.tx_hash} "
                    f"in block {block_number}: {e.message}"
                )
                continue
            for record in classified:
                record.block_number = block_number
            records.extend(classified)
        return tuple(records)

    # ─────────────────────────────────────────────────────────────
    # Facade
    # ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_latest_block_number(self) -> int:
        """Height of the chain head."""
        pass

    @abstractmethod
    async def get_block_by_number(self, number: int) -> Block:
        """Fetch and classify a block by height."""
        pass

    @abstractmethod
    async def get_block_by_hash(self, block_hash: str) -> Block:
        """Fetch and classify a block by hash."""
        pass

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> list[Transaction]:
        """Fetch and classify one transaction."""
        pass

    @abstractmethod
    async def get_balance_of_address(self, address: str, currency_id: str) -> Decimal:
        """
        Balance of ``address`` in human units of ``currency_id``.

        Raises:
            CurrencyNotFoundError: Currency is not configured
            UpstreamUnavailableError: Node query failed
        """
        pass

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        await self._client.close()

    async def __aenter__(self) -> "LedgerBlockchain":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(uri={self._settings.uri})>"


# ============================================================
# WRITE SIDE
# ============================================================

class LedgerWallet(ABC):
    """
    Abstract base class for wallet (write side) adapters.

    A wallet sends one configured currency from one address. Token
    wallets pay fees in ``fee_currency``.
    """

    family: LedgerFamily

    # Decimal places of the family's native coin
    NATIVE_SUBUNITS: int = 18

    def __init__(
        self,
        settings: WalletSettings,
        client: Optional[NodeClient] = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._create_client(settings)
        self._reader = self._create_reader(self._reader_settings(), self._client)
        logger.info(
            f"[{self.name}] Wallet configured for {settings.currency.id} "
            f"at {settings.address}"
        )

    @property
    def name(self) -> str:
        return self.family.value

    @property
    def settings(self) -> WalletSettings:
        return self._settings

    @property
    def address(self) -> str:
        return self._settings.address

    @property
    def currency(self) -> Currency:
        return self._settings.currency

    @property
    def fee_subunits(self) -> int:
        if self._settings.fee_currency is not None:
            return self._settings.fee_currency.subunits
        if self.currency.is_token:
            return self.NATIVE_SUBUNITS
        return self.currency.subunits

    @property
    def fee_currency_id(self) -> str:
        if self._settings.fee_currency is not None:
            return self._settings.fee_currency.id
        return "" if self.currency.is_token else self.currency.id

    @abstractmethod
    def _create_client(self, settings: WalletSettings) -> NodeClient:
        """Build the default node client for ``settings.uri``."""
        pass

    @abstractmethod
    def _create_reader(self, settings: Settings, client: NodeClient) -> LedgerBlockchain:
        """Read-side adapter sharing this wallet's client."""
        pass

    def _reader_settings(self) -> Settings:
        currencies = [self._settings.currency]
        fee_currency = self._settings.fee_currency
        if fee_currency is not None and fee_currency.id != self._settings.currency.id:
            currencies.append(fee_currency)
        return Settings(
            uri=self._settings.uri,
            currencies=tuple(currencies),
            timeout_seconds=self._settings.timeout_seconds,
        )

    # ─────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def create_transaction(
        self,
        tx: Transaction,
        options: Optional[dict[str, Any]] = None,
    ) -> Transaction:
        """
        Build, sign and broadcast ``tx``.

        On success ``tx`` is mutated in place (status, hash, fee) and
        returned.

        Raises:
            InvalidTransferError: Missing recipient or non-positive amount
            SigningError: Signer failed
            BroadcastRejectedError: Node refused the transaction
            UpstreamUnavailableError: Node query failed
        """
        pass

    @abstractmethod
    async def prepare_deposit_collection(
        self,
        tx: Transaction,
        deposit_spreads: list[Any],
        deposit_currency: Currency,
    ) -> Optional[Transaction]:
        """
        Front native coin for sweeping token deposits.

        Returns ``None`` when ``deposit_currency`` has no contract.
        """
        pass

    @abstractmethod
    async def create_address(self) -> tuple[str, str]:
        """New ``(address, secret)`` pair."""
        pass

    async def load_balance(self) -> Decimal:
        """Balance of the wallet address in the wallet currency."""
        return await self._reader.get_balance_of_address(self.address, self.currency.id)

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    def _validate_transfer(self, tx: Transaction) -> None:
        if not tx.to_address:
            raise InvalidTransferError(
                "Transfer has no recipient",
                chain=self.name,
                context={"currency": tx.currency},
            )
        if tx.amount <= 0:
            raise InvalidTransferError(
                f"Transfer amount must be positive, got {tx.amount}",
                chain=self.name,
                context={"currency": tx.currency, "to": tx.to_address},
            )

    def _mark_broadcast(self, tx: Transaction, tx_hash: str, fee: Decimal) -> Transaction:
        tx.status = TransactionStatus.PENDING
        tx.tx_hash = tx_hash
        tx.fee = fee
        if not tx.from_address:
            tx.from_address = self.address
        if not tx.currency:
            tx.currency = self.currency.id
        if not tx.currency_fee:
            tx.currency_fee = self.fee_currency_id
        logger.info(
            f"[{self.name}] Broadcast {tx.amount} {tx.currency} to {tx.to_address} "
            f"(hash={tx_hash}, fee={fee})"
        )
        return tx

    async def close(self) -> None:
        """Close resources."""
        await self._client.close()

    async def __aenter__(self) -> "LedgerWallet":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(address={self.address}, currency={self.currency.id})>"
