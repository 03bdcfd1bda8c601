"""
Ledger Adapter Exceptions - Custom exception hierarchy.

Every classification and build operation either returns a structured
result or raises one of these. Node errors are surfaced unmodified in
``original_error``; nothing here retries.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class LedgerAdapterError(Exception):
    """Base exception for all ledger adapter errors."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.chain = chain
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "chain": self.chain,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.chain:
            parts.append(f"[chain={self.chain}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class UpstreamUnavailableError(LedgerAdapterError):
    """Node transport or query failure."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        rpc_code: Optional[int] = None,
        response_body: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.method = method
        self.status_code = status_code
        self.rpc_code = rpc_code
        self.response_body = response_body

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "method": self.method,
            "status_code": self.status_code,
            "rpc_code": self.rpc_code,
            "response_body": self.response_body,
        })
        return data


class UnresolvablePartyError(LedgerAdapterError):
    """Sender or recipient cannot be determined from the available data."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        tx_hash: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.tx_hash = tx_hash

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["tx_hash"] = self.tx_hash
        return data


class UnavailableFromAddressError(UnresolvablePartyError):
    """The spending input is a coinbase or its previous output has no address."""


class CurrencyNotFoundError(LedgerAdapterError):
    """Requested currency id is not part of the configured set."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        currency_id: Optional[str] = None,
        configured: Optional[list[str]] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.currency_id = currency_id
        self.configured = configured or []

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "currency_id": self.currency_id,
            "configured": self.configured,
        })
        return data


class DecodeFailureError(LedgerAdapterError):
    """Malformed call data, receipt or JSON payload."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        field_name: Optional[str] = None,
        raw_data: Optional[Any] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.field_name = field_name
        self.raw_data = raw_data

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "field_name": self.field_name,
            "raw_data": str(self.raw_data)[:500] if self.raw_data else None,
        })
        return data


class BroadcastRejectedError(LedgerAdapterError):
    """Node accepted the signed payload but refused to execute it."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        node_message: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.node_message = node_message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["node_message"] = self.node_message
        return data

    def __str__(self) -> str:
        text = super().__str__()
        if self.node_message:
            text = f"{text} [node: {self.node_message}]"
        return text


class SigningError(LedgerAdapterError):
    """The signer could not produce a signature for the payload."""


class InvalidTransferError(LedgerAdapterError):
    """The outgoing transfer request cannot be built as given."""


class ConfigurationError(LedgerAdapterError):
    """Configuration error for an adapter."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data
