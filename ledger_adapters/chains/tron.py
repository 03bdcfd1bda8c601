"""
Tron Ledger Adapter - resource-metered account family.

Talks to the full-node HTTP API (``/wallet/*``). Node JSON carries
addresses as ``41``-prefixed hex; canonical records use base58check.

Each ``raw_data.contract`` entry is examined on its own:

- TransferContract: native TRX transfer
- TriggerSmartContract on a configured token: TRC20 transfer decoded
  from the call data, or a status-only record when the data is not a
  plain ``transfer(address,uint256)`` call

The fee is the declared ``fee_limit`` ceiling, not the energy burned.
"""

import logging
import secrets
from decimal import Decimal
from typing import Any, Optional

from eth_keys import keys

from ledger_adapters.base import LedgerBlockchain, LedgerWallet
from ledger_adapters.config import Currency, Settings, TronFeeOptions, WalletSettings
from ledger_adapters.encoding import (
    BALANCE_OF_FUNCTION,
    TRANSFER_FUNCTION,
    TRON_ADDRESS_PREFIX,
    decode_transfer_call,
    encode_address_argument,
    encode_transfer_arguments,
    strip_hex,
    transaction_id,
    tron_address_from_public_key,
    tron_to_base58,
    tron_to_evm,
    tron_to_hex,
)
from ledger_adapters.exceptions import (
    BroadcastRejectedError,
    CurrencyNotFoundError,
    DecodeFailureError,
    InvalidTransferError,
    SigningError,
    UpstreamUnavailableError,
)
from ledger_adapters.models import Block, LedgerFamily, Transaction, TransactionStatus
from ledger_adapters.rpc import NodeClient, TronHttpClient
from ledger_adapters.units import convert_from_base_unit, to_base_integer


logger = logging.getLogger(__name__)

TRANSFER_CONTRACT = "TransferContract"
TRIGGER_SMART_CONTRACT = "TriggerSmartContract"

DEFAULT_NATIVE_FEE = TronFeeOptions(fee_limit=1_000_000)
DEFAULT_TOKEN_FEE = TronFeeOptions(fee_limit=10_000_000)


def contract_status(raw_tx: dict[str, Any]) -> TransactionStatus:
    """Status of a native transfer from ``ret[0].contractRet``."""
    ret = raw_tx.get("ret") or []
    result = ret[0].get("contractRet") if ret else None
    if not result:
        return TransactionStatus.PENDING
    if result == "SUCCESS":
        return TransactionStatus.SUCCEED
    return TransactionStatus.FAILED


def receipt_status(info: dict[str, Any]) -> TransactionStatus:
    """Status of a contract call from its transaction info."""
    if not info:
        return TransactionStatus.PENDING
    result = (info.get("receipt") or {}).get("result")
    if result == "SUCCESS":
        return TransactionStatus.SUCCEED
    return TransactionStatus.FAILED


def decode_node_message(message: Optional[str]) -> str:
    """Broadcast errors come back hex-encoded."""
    if not message:
        return ""
    try:
        return bytes.fromhex(message).decode("utf-8", errors="replace")
    except ValueError:
        return message


# ============================================================
# BLOCKCHAIN
# ============================================================

class TronBlockchain(LedgerBlockchain):
    """Read side for a Tron full node."""

    family = LedgerFamily.TRON
    NATIVE_SUBUNITS = 6

    def _create_client(self, settings: Settings) -> NodeClient:
        return TronHttpClient(settings.uri, self.family.value, settings.timeout_seconds)

    async def _post(self, path: str, body: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self._client.post(path, body)

    def _contract(self, address: Optional[str]) -> Optional[Currency]:
        """Configured token whose contract is ``address`` (hex or base58)."""
        if not address:
            return None
        target = tron_to_hex(address)
        for currency in self._settings.contracts():
            if tron_to_hex(currency.contract_address).lower() == target.lower():
                return currency
        return None

    async def _transaction_info(self, tx_hash: str) -> dict[str, Any]:
        return await self._post("/wallet/gettransactioninfobyid", {"value": tx_hash})

    # ─────────────────────────────────────────────────────────────
    # Classification
    # ─────────────────────────────────────────────────────────────

    async def classify(
        self,
        raw_tx: dict[str, Any],
        in_block: bool = False,
    ) -> list[Transaction]:
        return await self._classify(raw_tx, None)

    async def _classify(
        self,
        raw_tx: dict[str, Any],
        info: Optional[dict[str, Any]],
    ) -> list[Transaction]:
        raw_data = raw_tx.get("raw_data")
        if not isinstance(raw_data, dict):
            raise DecodeFailureError(
                "Transaction has no raw_data",
                chain=self.name,
                field_name="raw_data",
                raw_data=raw_tx,
            )

        tx_hash = raw_tx.get("txID")
        if not tx_hash:
            if not raw_tx.get("raw_data_hex"):
                raise DecodeFailureError(
                    "Transaction has neither txID nor raw_data_hex",
                    chain=self.name,
                    field_name="txID",
                )
            tx_hash = transaction_id(raw_tx["raw_data_hex"])

        fee_currency_id, fee_subunits = self._fee_terms()
        fee = None
        if raw_data.get("fee_limit") is not None:
            fee = convert_from_base_unit(int(raw_data["fee_limit"]), fee_subunits)

        records = []
        for entry in raw_data.get("contract") or []:
            kind = entry.get("type")
            value = (entry.get("parameter") or {}).get("value") or {}

            if kind == TRANSFER_CONTRACT:
                record = self._native_record(value, tx_hash, fee, contract_status(raw_tx))
                if record is not None:
                    records.append(record)

            elif kind == TRIGGER_SMART_CONTRACT:
                currency = self._contract(value.get("contract_address"))
                if currency is None:
                    continue
                if info is None:
                    info = await self._transaction_info(tx_hash)
                records.append(self._token_record(
                    currency, value, tx_hash, fee, fee_currency_id, receipt_status(info)
                ))

        return records

    def _native_record(
        self,
        value: dict[str, Any],
        tx_hash: str,
        fee: Optional[Decimal],
        status: TransactionStatus,
    ) -> Optional[Transaction]:
        native = self._native_or_none()
        amount = int(value.get("amount") or 0)
        if native is None or amount == 0:
            return None
        return Transaction(
            currency=native.id,
            currency_fee=native.id,
            from_address=tron_to_base58(value.get("owner_address", "")),
            to_address=tron_to_base58(value.get("to_address", "")),
            amount=convert_from_base_unit(amount, native.subunits),
            fee=fee,
            tx_hash=tx_hash,
            status=status,
        )

    def _token_record(
        self,
        currency: Currency,
        value: dict[str, Any],
        tx_hash: str,
        fee: Optional[Decimal],
        fee_currency_id: str,
        status: TransactionStatus,
    ) -> Transaction:
        record = Transaction(
            currency=currency.id,
            currency_fee=fee_currency_id,
            fee=fee,
            tx_hash=tx_hash,
            status=status,
        )
        decoded = decode_transfer_call(value.get("data") or "")
        if decoded is None:
            logger.debug(f"[{self.name}] {tx_hash}: call to {currency.id} is not a transfer")
            return record

        recipient, amount = decoded
        record.from_address = tron_to_base58(value.get("owner_address", ""))
        record.to_address = tron_to_base58(TRON_ADDRESS_PREFIX + recipient)
        record.amount = convert_from_base_unit(amount, currency.subunits)
        return record

    # ─────────────────────────────────────────────────────────────
    # Facade
    # ─────────────────────────────────────────────────────────────

    async def get_latest_block_number(self) -> int:
        block = await self._post("/wallet/getnowblock")
        return self._block_number(block)

    async def get_block_by_number(self, number: int) -> Block:
        raw = await self._post("/wallet/getblockbynum", {"num": number})
        return await self._block(raw, str(number))

    async def get_block_by_hash(self, block_hash: str) -> Block:
        raw = await self._post("/wallet/getblockbyid", {"value": strip_hex(block_hash)})
        return await self._block(raw, block_hash)

    def _block_number(self, raw: dict[str, Any]) -> int:
        header = (raw.get("block_header") or {}).get("raw_data")
        if header is None:
            raise DecodeFailureError(
                "Block has no header",
                chain=self.name,
                field_name="block_header",
                raw_data=raw,
            )
        return int(header.get("number") or 0)

    async def _block(self, raw: dict[str, Any], ref: str) -> Block:
        if not raw:
            raise DecodeFailureError(f"Block {ref} not found", chain=self.name, field_name="block")
        number = self._block_number(raw)
        transactions = await self._classify_block(raw.get("transactions") or [], number)
        logger.debug(f"[{self.name}] Block {number}: {len(transactions)} records")
        return Block(hash=raw.get("blockID", ""), number=number, transactions=transactions)

    async def get_transaction(self, tx_hash: str) -> list[Transaction]:
        raw = await self._post("/wallet/gettransactionbyid", {"value": tx_hash})
        if not raw:
            raise DecodeFailureError(
                f"Transaction {tx_hash} not found",
                chain=self.name,
                field_name="transaction",
            )
        info = await self._transaction_info(tx_hash)
        records = await self._classify(raw, info)
        if info.get("blockNumber") is not None:
            for record in records:
                record.block_number = int(info["blockNumber"])
        return records

    async def get_balance_of_address(self, address: str, currency_id: str) -> Decimal:
        currency = self.currency(currency_id)
        owner = tron_to_hex(address)

        if currency.is_token:
            response = await self._post("/wallet/triggerconstantcontract", {
                "owner_address": owner,
                "contract_address": tron_to_hex(currency.contract_address),
                "function_selector": BALANCE_OF_FUNCTION,
                "parameter": encode_address_argument(tron_to_evm(address)),
            })
            result = response.get("result") or {}
            if not result.get("result"):
                message = decode_node_message(result.get("message"))
                raise UpstreamUnavailableError(
                    f"balanceOf failed for {currency.id}: {message}",
                    chain=self.name,
                    method="/wallet/triggerconstantcontract",
                    response_body=message,
                )
            constant = response.get("constant_result") or []
            if not constant:
                raise DecodeFailureError(
                    "balanceOf returned no result",
                    chain=self.name,
                    field_name="constant_result",
                    raw_data=response,
                )
            raw_balance = int(constant[0] or "0", 16)
        else:
            account = await self._post("/wallet/getaccount", {"address": owner})
            # Accounts never funded are absent on the node
            raw_balance = int(account.get("balance") or 0)

        return convert_from_base_unit(raw_balance, currency.subunits)


# ============================================================
# WALLET
# ============================================================

class TronWallet(LedgerWallet):
    """Write side for a Tron full node. Signs locally."""

    family = LedgerFamily.TRON
    NATIVE_SUBUNITS = 6

    def _create_client(self, settings: WalletSettings) -> NodeClient:
        return TronHttpClient(settings.uri, self.family.value, settings.timeout_seconds)

    def _create_reader(self, settings: Settings, client: NodeClient) -> LedgerBlockchain:
        return TronBlockchain(settings, client=client)

    async def _post(self, path: str, body: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self._client.post(path, body)

    async def create_transaction(
        self,
        tx: Transaction,
        options: Optional[dict[str, Any]] = None,
    ) -> Transaction:
        if tx.currency and tx.currency != self.currency.id:
            raise CurrencyNotFoundError(
                f"Wallet sends {self.currency.id}, not {tx.currency}",
                chain=self.name,
                currency_id=tx.currency,
                configured=[self.currency.id],
            )
        if self.currency.is_token:
            return await self._send_token(tx, options)
        return await self._send_native(tx, options)

    async def prepare_deposit_collection(
        self,
        tx: Transaction,
        deposit_spreads: list[Any],
        deposit_currency: Currency,
    ) -> Optional[Transaction]:
        fee_options = TronFeeOptions.resolve(DEFAULT_TOKEN_FEE, deposit_currency.options)
        if not fee_options.contract_address:
            return None

        fronting = fee_options.fee_limit * len(deposit_spreads)
        tx.amount = convert_from_base_unit(fronting, self.fee_subunits)
        tx.currency = self.fee_currency_id
        logger.info(
            f"[{self.name}] Fronting {tx.amount} for {len(deposit_spreads)} "
            f"{deposit_currency.id} deposits"
        )
        return await self._send_native(tx, None)

    async def create_address(self) -> tuple[str, str]:
        private_key = keys.PrivateKey(secrets.token_bytes(32))
        address = tron_address_from_public_key(private_key.public_key.to_bytes())
        return address, private_key.to_bytes().hex()

    # ─────────────────────────────────────────────────────────────
    # Building
    # ─────────────────────────────────────────────────────────────

    async def _send_native(
        self,
        tx: Transaction,
        options: Optional[dict[str, Any]],
    ) -> Transaction:
        self._validate_transfer(tx)
        fee_options = TronFeeOptions.resolve(
            DEFAULT_NATIVE_FEE, self.currency.options, tx.options, options
        )

        amount = to_base_integer(tx.amount, self.fee_subunits)
        if fee_options.subtract_fee:
            amount -= fee_options.fee_limit
            if amount <= 0:
                raise InvalidTransferError(
                    f"Amount {tx.amount} does not cover the fee",
                    chain=self.name,
                    context={"fee_limit": fee_options.fee_limit},
                )

        unsigned = await self._post("/wallet/createtransaction", {
            "owner_address": tron_to_hex(self.address),
            "to_address": tron_to_hex(tx.to_address),
            "amount": amount,
        })
        tx_hash = await self._sign_and_broadcast(unsigned)
        return self._mark_broadcast(
            tx, tx_hash, convert_from_base_unit(fee_options.fee_limit, self.fee_subunits)
        )

    async def _send_token(
        self,
        tx: Transaction,
        options: Optional[dict[str, Any]],
    ) -> Transaction:
        self._validate_transfer(tx)
        fee_options = TronFeeOptions.resolve(
            DEFAULT_TOKEN_FEE, self.currency.options, tx.options, options
        )

        amount = to_base_integer(tx.amount, self.currency.subunits)
        if amount <= 0:
            raise InvalidTransferError(
                f"Amount {tx.amount} is below one base unit of {self.currency.id}",
                chain=self.name,
            )

        response = await self._post("/wallet/triggersmartcontract", {
            "owner_address": tron_to_hex(self.address),
            "contract_address": tron_to_hex(fee_options.contract_address),
            "function_selector": TRANSFER_FUNCTION,
            "parameter": encode_transfer_arguments(tron_to_evm(tx.to_address), amount),
            "fee_limit": fee_options.fee_limit,
            "call_value": 0,
        })
        result = response.get("result") or {}
        if not result.get("result"):
            raise BroadcastRejectedError(
                f"Node refused to build {self.currency.id} transfer",
                chain=self.name,
                node_message=decode_node_message(result.get("message")),
            )

        tx_hash = await self._sign_and_broadcast(response.get("transaction") or {})
        return self._mark_broadcast(
            tx, tx_hash, convert_from_base_unit(fee_options.fee_limit, self.fee_subunits)
        )

    def _sign(self, unsigned: dict[str, Any]) -> dict[str, Any]:
        tx_id = unsigned.get("txID")
        raw_data_hex = unsigned.get("raw_data_hex")
        if not tx_id or not raw_data_hex:
            raise DecodeFailureError(
                "Node returned an incomplete transaction",
                chain=self.name,
                field_name="txID",
                raw_data=unsigned,
            )
        if transaction_id(raw_data_hex) != tx_id.lower():
            raise DecodeFailureError(
                "Transaction id does not match raw data",
                chain=self.name,
                field_name="txID",
                raw_data=tx_id,
            )

        try:
            private_key = keys.PrivateKey(bytes.fromhex(strip_hex(self._settings.secret)))
            signature = private_key.sign_msg_hash(bytes.fromhex(tx_id))
        except Exception as e:
            raise SigningError(
                f"Cannot sign transaction {tx_id}",
                chain=self.name,
                original_error=e,
            )

        signed = dict(unsigned)
        signed["signature"] = [signature.to_bytes().hex()]
        return signed

    async def _sign_and_broadcast(self, unsigned: dict[str, Any]) -> str:
        signed = self._sign(unsigned)
        response = await self._post("/wallet/broadcasttransaction", signed)
        if not response.get("result"):
            raise BroadcastRejectedError(
                "Node rejected transaction",
                chain=self.name,
                node_message=decode_node_message(response.get("message")) or response.get("code"),
                context={"code": response.get("code")},
            )
        return signed["txID"]
