"""
Ledger Data Models - Canonical, ledger-agnostic transfer records.

A single raw ledger transaction may map to zero, one or many
``Transaction`` records; every record produced from the same raw
transaction carries the same ``tx_hash``.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class LedgerFamily(Enum):
    """Supported ledger models."""
    BITCOIN = "bitcoin"
    EVM = "evm"
    TRON = "tron"


class TransactionStatus(Enum):
    """Lifecycle state of a canonical transaction."""
    PENDING = "pending"
    SUCCEED = "succeed"
    FAILED = "failed"


class GasPriceRate(Enum):
    """Named fee tiers applied on top of the node's suggested price."""
    STANDARD = "standard"
    FAST = "fast"

    @property
    def multiplier(self) -> Decimal:
        """Multiplier applied to the suggested price."""
        if self is GasPriceRate.FAST:
            return Decimal("1.1")
        return Decimal("1")


@dataclass
class Transaction:
    """
    Canonical transfer record.

    Produced by classification, or created by a caller and then
    mutated in place by a wallet once broadcast succeeds.
    """
    currency: str = ""
    currency_fee: str = ""
    from_address: str = ""
    to_address: str = ""
    amount: Decimal = Decimal("0")
    fee: Optional[Decimal] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    status: TransactionStatus = TransactionStatus.PENDING

    # Caller overrides, only read when building
    options: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "currency": self.currency,
            "currency_fee": self.currency_fee,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "amount": str(self.amount),
            "fee": str(self.fee) if self.fee is not None else None,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "status": self.status.value,
            "options": dict(self.options),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Transaction":
        """Create from dictionary."""
        return cls(
            currency=data.get("currency", ""),
            currency_fee=data.get("currency_fee", ""),
            from_address=data.get("from_address", ""),
            to_address=data.get("to_address", ""),
            amount=Decimal(str(data.get("amount", "0"))),
            fee=Decimal(str(data["fee"])) if data.get("fee") is not None else None,
            tx_hash=data.get("tx_hash"),
            block_number=data.get("block_number"),
            status=TransactionStatus(data.get("status", TransactionStatus.PENDING.value)),
            options=dict(data.get("options") or {}),
        )


@dataclass(frozen=True)
class Block:
    """Immutable snapshot of a queried block."""
    hash: str
    number: int
    transactions: tuple[Transaction, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "hash": self.hash,
            "number": self.number,
            "transactions": [tx.to_dict() for tx in self.transactions],
        }
