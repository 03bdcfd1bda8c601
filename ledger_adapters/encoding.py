"""
Address and payload encoding helpers shared by the ledger families.

EVM addresses are 20-byte hex with an EIP-55 checksum. Tron addresses
are the same 20 bytes behind a ``0x41`` prefix, shown in base58check.
"""

import hashlib
from typing import Optional

import base58
from eth_abi import encode as abi_encode
from eth_utils import keccak, remove_0x_prefix, to_checksum_address

from ledger_adapters.exceptions import DecodeFailureError


# ============================================================
# CONSTANTS
# ============================================================

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

# keccak256("transfer(address,uint256)")[:4]
TRANSFER_METHOD_SELECTOR = "a9059cbb"

# keccak256("balanceOf(address)")[:4]
BALANCE_OF_METHOD_SELECTOR = "70a08231"

TRANSFER_FUNCTION = "transfer(address,uint256)"
BALANCE_OF_FUNCTION = "balanceOf(address)"

WORD_HEX_LENGTH = 64
ADDRESS_HEX_LENGTH = 40

# selector + recipient word + amount word
TRANSFER_CALL_HEX_LENGTH = len(TRANSFER_METHOD_SELECTOR) + 2 * WORD_HEX_LENGTH

TRON_ADDRESS_PREFIX = "41"


# ============================================================
# HEX
# ============================================================

def strip_hex(value: str) -> str:
    """Hex string without a ``0x`` prefix, lower-cased."""
    return remove_0x_prefix(value or "").lower()


def hex_to_int(value: Optional[str], field_name: str = "value") -> int:
    """Parse a node quantity such as ``0x1a``; ``0x`` is zero."""
    if value is None:
        raise DecodeFailureError(f"Missing hex quantity '{field_name}'", field_name=field_name)
    if isinstance(value, int):
        return value
    digits = strip_hex(value)
    if not digits:
        return 0
    try:
        return int(digits, 16)
    except ValueError as e:
        raise DecodeFailureError(
            f"Invalid hex quantity '{field_name}'",
            field_name=field_name,
            raw_data=value,
            original_error=e,
        )


# ============================================================
# EVM
# ============================================================

def addresses_equal(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive address comparison."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def checksum_address(address: str) -> str:
    """EIP-55 form of a 20-byte hex address."""
    try:
        return to_checksum_address(address)
    except ValueError as e:
        raise DecodeFailureError(
            f"Invalid address {address!r}",
            field_name="address",
            raw_data=address,
            original_error=e,
        )


def topic_to_address(topic: str) -> str:
    """Indexed address topic (32 bytes) to a checksummed address."""
    digits = strip_hex(topic)
    if len(digits) != WORD_HEX_LENGTH:
        raise DecodeFailureError(
            "Address topic is not 32 bytes",
            field_name="topics",
            raw_data=topic,
        )
    return checksum_address("0x" + digits[-ADDRESS_HEX_LENGTH:])


def encode_transfer_arguments(recipient: str, amount: int) -> str:
    """ABI-encoded ``(address,uint256)`` arguments, without selector."""
    return abi_encode(["address", "uint256"], [checksum_address(recipient), amount]).hex()


def encode_transfer_call(recipient: str, amount: int) -> str:
    """``transfer(address,uint256)`` call data as 0x-prefixed hex."""
    return "0x" + TRANSFER_METHOD_SELECTOR + encode_transfer_arguments(recipient, amount)


def encode_address_argument(address: str) -> str:
    """Single ABI-encoded address word, without selector."""
    return abi_encode(["address"], [checksum_address(address)]).hex()


def encode_balance_of_call(owner: str) -> str:
    """``balanceOf(address)`` call data as 0x-prefixed hex."""
    return "0x" + BALANCE_OF_METHOD_SELECTOR + encode_address_argument(owner)


def decode_transfer_call(data: str) -> Optional[tuple[str, int]]:
    """
    Recipient (20-byte hex, no prefix) and amount from transfer call data.

    Returns ``None`` when the data is not exactly a
    ``transfer(address,uint256)`` call.
    """
    digits = strip_hex(data)
    if len(digits) != TRANSFER_CALL_HEX_LENGTH:
        return None
    if not digits.startswith(TRANSFER_METHOD_SELECTOR):
        return None
    start = len(TRANSFER_METHOD_SELECTOR)
    recipient_word = digits[start:start + WORD_HEX_LENGTH]
    amount_word = digits[start + WORD_HEX_LENGTH:]
    try:
        amount = int(amount_word, 16)
    except ValueError:
        return None
    return recipient_word[-ADDRESS_HEX_LENGTH:], amount


# ============================================================
# TRON
# ============================================================

def tron_to_hex(address: str) -> str:
    """Base58check (or already hex) Tron address to ``41``-prefixed hex."""
    digits = strip_hex(address)
    if len(digits) == ADDRESS_HEX_LENGTH + 2 and digits.startswith(TRON_ADDRESS_PREFIX):
        try:
            bytes.fromhex(digits)
            return digits
        except ValueError:
            pass
    try:
        raw = base58.b58decode_check(address)
    except ValueError as e:
        raise DecodeFailureError(
            f"Invalid Tron address {address!r}",
            field_name="address",
            raw_data=address,
            original_error=e,
        )
    if len(raw) != 21 or raw[0] != 0x41:
        raise DecodeFailureError(
            f"Invalid Tron address {address!r}",
            field_name="address",
            raw_data=address,
        )
    return raw.hex()


def tron_to_base58(address: str) -> str:
    """``41``-prefixed hex (or already base58) Tron address to base58check."""
    if not address:
        return ""
    digits = strip_hex(address)
    if len(digits) == ADDRESS_HEX_LENGTH:
        digits = TRON_ADDRESS_PREFIX + digits
    if len(digits) != ADDRESS_HEX_LENGTH + 2:
        # Not hex; validate as base58 and hand it back unchanged.
        tron_to_hex(address)
        return address
    try:
        raw = bytes.fromhex(digits)
    except ValueError as e:
        raise DecodeFailureError(
            f"Invalid Tron address {address!r}",
            field_name="address",
            raw_data=address,
            original_error=e,
        )
    return base58.b58encode_check(raw).decode()


def tron_to_evm(address: str) -> str:
    """Tron address as the 0x-prefixed 20-byte form used inside ABI words."""
    return "0x" + tron_to_hex(address)[2:]


def tron_address_from_public_key(public_key: bytes) -> str:
    """Base58check address of an uncompressed 64-byte public key."""
    digest = keccak(public_key)
    return base58.b58encode_check(bytes.fromhex(TRON_ADDRESS_PREFIX) + digest[-20:]).decode()


def transaction_id(raw_data_hex: str) -> str:
    """Tron transaction id: sha256 of the serialized raw data."""
    try:
        raw = bytes.fromhex(strip_hex(raw_data_hex))
    except ValueError as e:
        raise DecodeFailureError(
            "raw_data_hex is not hex",
            field_name="raw_data_hex",
            raw_data=raw_data_hex,
            original_error=e,
        )
    return hashlib.sha256(raw).hexdigest()
