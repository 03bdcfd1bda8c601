"""
Ledger Adapters - Configuration.

============================================================
PURPOSE
============================================================
Static configuration for ledger adapters:
- Currency registry (id, subunits, options)
- Node settings for blockchains and wallets
- Typed fee policies per ledger family

FEE POLICY RESOLUTION ORDER (later wins, field by field):
    family defaults -> currency options -> transfer options -> call options

Only the named keys below are recognised; anything else in an
options map is ignored.

============================================================
"""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, TypeVar

from ledger_adapters.exceptions import ConfigurationError, CurrencyNotFoundError
from ledger_adapters.logging_utils import mask_value
from ledger_adapters.models import GasPriceRate
from ledger_adapters.units import MAX_SUBUNITS


logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTRACT_ADDRESS_KEYS = (
    "contract_address",
    "erc20_contract_address",
    "trc20_contract_address",
)

DEFAULT_TIMEOUT_SECONDS = 5.0


# ============================================================
# VALUE COERCION
# ============================================================

def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer amount")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.lower().startswith("0x"):
        return int(value, 16)
    number = _as_decimal(value)
    if number != number.to_integral_value():
        raise ValueError(f"{value!r} is not integral")
    return int(number)


def _as_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{value!r} is not a decimal") from e


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no", ""):
            return False
        raise ValueError(f"{value!r} is not a boolean")
    return bool(value)


def _as_rate(value: Any) -> GasPriceRate:
    if isinstance(value, GasPriceRate):
        return value
    return GasPriceRate(str(value).strip().lower())


def _pick(
    layer: Mapping[str, Any],
    key: str,
    current: T,
    coerce: Callable[[Any], T],
) -> T:
    value = layer.get(key)
    if value is None:
        return current
    try:
        return coerce(value)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(
            message=f"Invalid value for option '{key}': {value!r}",
            config_key=key,
            original_error=e,
        )


def contract_address_of(options: Optional[Mapping[str, Any]]) -> str:
    """Contract address from an options map, honouring legacy per-family keys."""
    if not options:
        return ""
    for key in CONTRACT_ADDRESS_KEYS:
        value = options.get(key)
        if value:
            return str(value)
    return ""


# ============================================================
# CURRENCY REGISTRY
# ============================================================

@dataclass(frozen=True)
class Currency:
    """
    A tradeable asset on a ledger.

    Immutable once loaded and shared by reference.
    """

    id: str
    """Unique id within a configured set."""

    subunits: int
    """Decimal places of the base unit."""

    options: Mapping[str, Any] = field(default_factory=dict, compare=False)
    """Ledger-specific parameters (contract address, fee policy)."""

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigurationError("Currency id must not be empty", config_key="id")
        if self.subunits < 0 or self.subunits > MAX_SUBUNITS:
            raise ConfigurationError(
                f"Currency {self.id} subunits must be between 0 and {MAX_SUBUNITS}",
                config_key="subunits",
            )
        object.__setattr__(self, "options", MappingProxyType(dict(self.options or {})))

    @property
    def contract_address(self) -> str:
        """Token contract address, empty for the native coin."""
        return contract_address_of(self.options)

    @property
    def is_token(self) -> bool:
        """Whether this currency is bound to a contract."""
        return bool(self.contract_address)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Currency":
        """Create from dictionary."""
        try:
            return cls(
                id=str(data["id"]),
                subunits=int(data["subunits"]),
                options=dict(data.get("options") or {}),
            )
        except KeyError as e:
            raise ConfigurationError(
                f"Currency definition missing key {e}",
                config_key=str(e),
            )


# ============================================================
# NODE SETTINGS
# ============================================================

@dataclass(frozen=True)
class Settings:
    """
    Blockchain (read side) settings.

    Configured once before concurrent use; read-only afterwards.
    """

    uri: str
    """Node endpoint."""

    currencies: tuple[Currency, ...] = ()
    """Configured currency set."""

    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    """Fixed connection timeout."""

    def currency(self, currency_id: str, chain: Optional[str] = None) -> Currency:
        """Look up a configured currency."""
        for currency in self.currencies:
            if currency.id == currency_id:
                return currency
        raise CurrencyNotFoundError(
            message=f"Currency '{currency_id}' is not configured",
            chain=chain,
            currency_id=currency_id,
            configured=[c.id for c in self.currencies],
        )

    def native_currency(self, chain: Optional[str] = None) -> Currency:
        """First currency without a contract address."""
        for currency in self.currencies:
            if not currency.is_token:
                return currency
        raise ConfigurationError(
            "No native currency configured",
            chain=chain,
            config_key="currencies",
        )

    def contracts(self) -> tuple[Currency, ...]:
        """Currencies bound to a token contract."""
        return tuple(c for c in self.currencies if c.is_token)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Settings":
        """Create from dictionary."""
        if not data.get("uri"):
            raise ConfigurationError("Settings require a node uri", config_key="uri")
        return cls(
            uri=str(data["uri"]),
            currencies=tuple(Currency.from_dict(c) for c in data.get("currencies") or ()),
            timeout_seconds=float(data.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
        )

    @classmethod
    def from_env(cls, prefix: str) -> "Settings":
        """
        Create settings from environment variables.

        Reads ``{PREFIX}_URI``, ``{PREFIX}_CURRENCIES`` (JSON list)
        and ``{PREFIX}_TIMEOUT``.
        """
        prefix = prefix.upper()
        return cls.from_dict({
            "uri": os.environ.get(f"{prefix}_URI", ""),
            "currencies": _json_env(f"{prefix}_CURRENCIES", []),
            "timeout_seconds": os.environ.get(f"{prefix}_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        })


@dataclass(frozen=True, repr=False)
class WalletSettings:
    """Wallet (write side) settings for one currency."""

    uri: str
    """Node endpoint used for building and broadcasting."""

    address: str
    """Hot wallet address."""

    secret: str
    """Private key material. Never logged."""

    currency: Currency
    """Currency this wallet sends."""

    fee_currency: Optional[Currency] = None
    """Native coin paying gas/energy when ``currency`` is a token."""

    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def __repr__(self) -> str:
        return (
            f"WalletSettings(uri={self.uri!r}, address={self.address!r}, "
            f"secret={mask_value(self.secret)!r}, currency={self.currency.id!r}, "
            f"fee_currency={self.fee_currency.id if self.fee_currency else None!r})"
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WalletSettings":
        """Create from dictionary."""
        for key in ("uri", "address", "currency"):
            if not data.get(key):
                raise ConfigurationError(f"Wallet settings require '{key}'", config_key=key)
        fee_currency = data.get("fee_currency")
        return cls(
            uri=str(data["uri"]),
            address=str(data["address"]),
            secret=str(data.get("secret") or ""),
            currency=Currency.from_dict(data["currency"]),
            fee_currency=Currency.from_dict(fee_currency) if fee_currency else None,
            timeout_seconds=float(data.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
        )

    @classmethod
    def from_env(cls, prefix: str) -> "WalletSettings":
        """
        Create wallet settings from environment variables.

        Reads ``{PREFIX}_URI``, ``{PREFIX}_ADDRESS``, ``{PREFIX}_SECRET``,
        ``{PREFIX}_CURRENCY`` and ``{PREFIX}_FEE_CURRENCY`` (JSON objects).
        """
        prefix = prefix.upper()
        return cls.from_dict({
            "uri": os.environ.get(f"{prefix}_URI", ""),
            "address": os.environ.get(f"{prefix}_ADDRESS", ""),
            "secret": os.environ.get(f"{prefix}_SECRET", ""),
            "currency": _json_env(f"{prefix}_CURRENCY", None),
            "fee_currency": _json_env(f"{prefix}_FEE_CURRENCY", None),
            "timeout_seconds": os.environ.get(f"{prefix}_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        })


def _json_env(name: str, default: Any) -> Any:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Environment variable {name} is not valid JSON",
            config_key=name,
            original_error=e,
        )


# ============================================================
# FEE POLICIES
# ============================================================

@dataclass(frozen=True)
class EvmFeeOptions:
    """Resolved fee policy for an EVM transfer."""

    contract_address: str = ""
    """Token contract; empty for native transfers."""

    gas_price: Optional[int] = None
    """Explicit gas price in wei. ``None`` asks the node."""

    gas_limit: int = 21_000
    """Gas limit."""

    gas_rate: GasPriceRate = GasPriceRate.STANDARD
    """Tier applied to the suggested price."""

    subtract_fee: bool = False
    """Deduct the fee from the sent amount."""

    def merged(self, layer: Mapping[str, Any]) -> "EvmFeeOptions":
        """Apply one override layer."""
        return replace(
            self,
            contract_address=contract_address_of(layer) or self.contract_address,
            gas_price=_pick(layer, "gas_price", self.gas_price, _as_int),
            gas_limit=_pick(layer, "gas_limit", self.gas_limit, _as_int),
            gas_rate=_pick(layer, "gas_rate", self.gas_rate, _as_rate),
            subtract_fee=_pick(layer, "subtract_fee", self.subtract_fee, _as_bool),
        )

    @classmethod
    def resolve(
        cls,
        defaults: "EvmFeeOptions",
        *layers: Optional[Mapping[str, Any]],
    ) -> "EvmFeeOptions":
        """Fold override layers over ``defaults``."""
        options = defaults
        for layer in layers:
            if layer:
                options = options.merged(layer)
        return options


@dataclass(frozen=True)
class TronFeeOptions:
    """Resolved fee policy for a Tron transfer."""

    contract_address: str = ""
    """Token contract (base58); empty for native transfers."""

    fee_limit: int = 1_000_000
    """Fee ceiling in sun."""

    subtract_fee: bool = False
    """Deduct the fee from the sent amount."""

    def merged(self, layer: Mapping[str, Any]) -> "TronFeeOptions":
        """Apply one override layer."""
        return replace(
            self,
            contract_address=contract_address_of(layer) or self.contract_address,
            fee_limit=_pick(layer, "fee_limit", self.fee_limit, _as_int),
            subtract_fee=_pick(layer, "subtract_fee", self.subtract_fee, _as_bool),
        )

    @classmethod
    def resolve(
        cls,
        defaults: "TronFeeOptions",
        *layers: Optional[Mapping[str, Any]],
    ) -> "TronFeeOptions":
        """Fold override layers over ``defaults``."""
        options = defaults
        for layer in layers:
            if layer:
                options = options.merged(layer)
        return options


@dataclass(frozen=True)
class BitcoinFeeOptions:
    """Resolved fee policy for a node-wallet UTXO transfer."""

    fee_rate: Optional[Decimal] = None
    """Explicit fee rate in sat/vB. ``None`` lets the node estimate."""

    rate: GasPriceRate = GasPriceRate.STANDARD
    """Tier mapped to a confirmation target when estimating."""

    subtract_fee: bool = False
    """Deduct the fee from the sent amount."""

    @property
    def conf_target(self) -> int:
        """Confirmation target in blocks for fee estimation."""
        return 2 if self.rate is GasPriceRate.FAST else 6

    def merged(self, layer: Mapping[str, Any]) -> "BitcoinFeeOptions":
        """Apply one override layer."""
        return replace(
            self,
            fee_rate=_pick(layer, "fee_rate", self.fee_rate, _as_decimal),
            rate=_pick(layer, "rate", self.rate, _as_rate),
            subtract_fee=_pick(layer, "subtract_fee", self.subtract_fee, _as_bool),
        )

    @classmethod
    def resolve(
        cls,
        defaults: "BitcoinFeeOptions",
        *layers: Optional[Mapping[str, Any]],
    ) -> "BitcoinFeeOptions":
        """Fold override layers over ``defaults``."""
        options = defaults
        for layer in layers:
            if layer:
                options = options.merged(layer)
        return options
