"""
EVM Ledger Adapter - account + smart-contract family.

============================================================
CLASSIFICATION
============================================================
Status comes from the receipt (1 = succeed, 0 = failed).
Fee = gasUsed x effective gas price, in native units.

    no logs                   -> one native record
    Transfer logs of a
    configured contract       -> one token record per log
    call to a configured
    contract, nothing matched -> one status-only record

============================================================
CONSTRUCTION
============================================================
Legacy EIP-155 transactions signed locally with eth_account.
Token transfers call ``transfer(address,uint256)`` with value 0.

============================================================
"""

import logging
from decimal import ROUND_DOWN, Decimal
from typing import Any, Optional

from eth_account import Account
from eth_utils import to_hex

from ledger_adapters.base import LedgerBlockchain, LedgerWallet
from ledger_adapters.config import Currency, EvmFeeOptions, Settings, WalletSettings
from ledger_adapters.encoding import (
    TRANSFER_EVENT_TOPIC,
    addresses_equal,
    checksum_address,
    encode_balance_of_call,
    encode_transfer_call,
    hex_to_int,
    topic_to_address,
)
from ledger_adapters.exceptions import (
    BroadcastRejectedError,
    CurrencyNotFoundError,
    DecodeFailureError,
    InvalidTransferError,
    SigningError,
    UnresolvablePartyError,
    UpstreamUnavailableError,
)
from ledger_adapters.logging_utils import preview
from ledger_adapters.models import Block, LedgerFamily, Transaction, TransactionStatus
from ledger_adapters.rpc import JsonRpcClient, NodeClient
from ledger_adapters.units import convert_from_base_unit, to_base_integer


logger = logging.getLogger(__name__)

DEFAULT_NATIVE_FEE = EvmFeeOptions(gas_limit=21_000)
DEFAULT_TOKEN_FEE = EvmFeeOptions(gas_limit=90_000)


def receipt_status(receipt: dict[str, Any]) -> TransactionStatus:
    """Map the receipt execution result to a canonical status."""
    raw = receipt.get("status")
    if raw is None:
        return TransactionStatus.PENDING
    value = hex_to_int(raw, "status")
    if value == 1:
        return TransactionStatus.SUCCEED
    if value == 0:
        return TransactionStatus.FAILED
    return TransactionStatus.PENDING


# ============================================================
# BLOCKCHAIN
# ============================================================

class EvmBlockchain(LedgerBlockchain):
    """Read side for Ethereum JSON-RPC nodes."""

    family = LedgerFamily.EVM
    NATIVE_SUBUNITS = 18

    def _create_client(self, settings: Settings) -> NodeClient:
        return JsonRpcClient(settings.uri, self.family.value, settings.timeout_seconds)

    async def _call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        return await self._client.call(method, params or [])

    def _contract(self, address: Optional[str]) -> Optional[Currency]:
        """Configured token whose contract is ``address``."""
        if not address:
            return None
        for currency in self._settings.contracts():
            if addresses_equal(currency.contract_address, address):
                return currency
        return None

    # ─────────────────────────────────────────────────────────────
    # Classification
    # ─────────────────────────────────────────────────────────────

    async def classify(
        self,
        raw_tx: dict[str, Any],
        in_block: bool = False,
    ) -> list[Transaction]:
        tx_hash = raw_tx.get("hash")
        if not tx_hash:
            raise DecodeFailureError(
                "Transaction has no hash",
                chain=self.name,
                field_name="hash",
                raw_data=raw_tx,
            )

        receipt = await self._call("eth_getTransactionReceipt", [tx_hash])
        if not receipt:
            raise DecodeFailureError(
                f"No receipt for transaction {tx_hash}",
                chain=self.name,
                field_name="receipt",
            )

        status = receipt_status(receipt)
        gas_used = hex_to_int(receipt.get("gasUsed"), "gasUsed")
        gas_price = hex_to_int(
            receipt.get("effectiveGasPrice") or raw_tx.get("gasPrice"),
            "gasPrice",
        )
        fee_wei = gas_used * gas_price
        fee_currency_id, fee_subunits = self._fee_terms()
        fee = convert_from_base_unit(fee_wei, fee_subunits)

        block_number = None
        if raw_tx.get("blockNumber"):
            block_number = hex_to_int(raw_tx["blockNumber"], "blockNumber")

        to_address = raw_tx.get("to") or ""
        target_contract = self._contract(to_address)
        logs = receipt.get("logs") or []

        if not logs:
            if target_contract is not None:
                return [self._status_only(target_contract, tx_hash, fee, fee_currency_id, status, block_number)]
            return await self._native_record(raw_tx, fee_wei, status, block_number)

        records = []
        for log in logs:
            if log.get("removed"):
                continue
            topics = log.get("topics") or []
            if len(topics) < 3 or not addresses_equal(topics[0], TRANSFER_EVENT_TOPIC):
                continue
            currency = self._contract(log.get("address"))
            if currency is None:
                continue
            amount = hex_to_int(log.get("data"), "data")
            records.append(Transaction(
                currency=currency.id,
                currency_fee=fee_currency_id,
                from_address=topic_to_address(topics[1]),
                to_address=topic_to_address(topics[2]),
                amount=convert_from_base_unit(amount, currency.subunits),
                fee=fee,
                tx_hash=tx_hash,
                block_number=block_number,
                status=status,
            ))

        if records:
            logger.debug(f"[{self.name}] {tx_hash}: {len(records)} token transfers")
            return records

        if target_contract is not None:
            return [self._status_only(target_contract, tx_hash, fee, fee_currency_id, status, block_number)]

        return []

    def _status_only(
        self,
        currency: Currency,
        tx_hash: str,
        fee: Decimal,
        fee_currency_id: str,
        status: TransactionStatus,
        block_number: Optional[int],
    ) -> Transaction:
        logger.debug(f"[{self.name}] {tx_hash}: no transfer logs for {currency.id}, status {status.value}")
        return Transaction(
            currency=currency.id,
            currency_fee=fee_currency_id,
            fee=fee,
            tx_hash=tx_hash,
            block_number=block_number,
            status=status,
        )

    async def _native_record(
        self,
        raw_tx: dict[str, Any],
        fee_wei: int,
        status: TransactionStatus,
        block_number: Optional[int],
    ) -> list[Transaction]:
        native = self._native_or_none()
        if native is None:
            return []

        value = hex_to_int(raw_tx.get("value", "0x0"), "value")
        cost = value + fee_wei
        to_address = raw_tx.get("to")

        return [Transaction(
            currency=native.id,
            currency_fee=native.id,
            from_address=await self._sender(raw_tx),
            to_address=checksum_address(to_address) if to_address else "",
            amount=convert_from_base_unit(value, native.subunits),
            # fee = cost - value, taken in base units
            fee=convert_from_base_unit(cost - value, native.subunits),
            tx_hash=raw_tx["hash"],
            block_number=block_number,
            status=status,
        )]

    async def _sender(self, raw_tx: dict[str, Any]) -> str:
        """Node-reported sender, else recovered from the signed payload."""
        if raw_tx.get("from"):
            return checksum_address(raw_tx["from"])

        tx_hash = raw_tx["hash"]
        raw = await self._call("eth_getRawTransactionByHash", [tx_hash])
        if not raw:
            raise UnresolvablePartyError(
                f"Sender of {tx_hash} is not reported and raw transaction is unavailable",
                chain=self.name,
                tx_hash=tx_hash,
            )
        try:
            return Account.recover_transaction(raw)
        except Exception as e:
            raise UnresolvablePartyError(
                f"Cannot recover sender of {tx_hash}",
                chain=self.name,
                tx_hash=tx_hash,
                original_error=e,
            )

    # ─────────────────────────────────────────────────────────────
    # Facade
    # ─────────────────────────────────────────────────────────────

    async def get_latest_block_number(self) -> int:
        return hex_to_int(await self._call("eth_blockNumber"), "blockNumber")

    async def get_block_by_number(self, number: int) -> Block:
        raw = await self._call("eth_getBlockByNumber", [hex(number), True])
        return await self._block(raw, str(number))

    async def get_block_by_hash(self, block_hash: str) -> Block:
        raw = await self._call("eth_getBlockByHash", [block_hash, True])
        return await self._block(raw, block_hash)

    async def _block(self, raw: Optional[dict[str, Any]], ref: str) -> Block:
        if not raw:
            raise DecodeFailureError(f"Block {ref} not found", chain=self.name, field_name="block")
        number = hex_to_int(raw.get("number"), "number")
        transactions = await self._classify_block(raw.get("transactions") or [], number)
        logger.debug(f"[{self.name}] Block {number}: {len(transactions)} records")
        return Block(hash=raw.get("hash", ""), number=number, transactions=transactions)

    async def get_transaction(self, tx_hash: str) -> list[Transaction]:
        raw = await self._call("eth_getTransactionByHash", [tx_hash])
        if not raw:
            raise DecodeFailureError(
                f"Transaction {tx_hash} not found",
                chain=self.name,
                field_name="transaction",
            )
        return await self.classify(raw)

    async def get_balance_of_address(self, address: str, currency_id: str) -> Decimal:
        currency = self.currency(currency_id)
        height = hex(await self.get_latest_block_number())

        if currency.is_token:
            call = {
                "to": checksum_address(currency.contract_address),
                "data": encode_balance_of_call(address),
            }
            raw = await self._call("eth_call", [call, height])
        else:
            raw = await self._call("eth_getBalance", [checksum_address(address), height])

        return convert_from_base_unit(hex_to_int(raw, "balance"), currency.subunits)


# ============================================================
# WALLET
# ============================================================

class EvmWallet(LedgerWallet):
    """Write side for Ethereum JSON-RPC nodes."""

    family = LedgerFamily.EVM
    NATIVE_SUBUNITS = 18

    def _create_client(self, settings: WalletSettings) -> NodeClient:
        return JsonRpcClient(settings.uri, self.family.value, settings.timeout_seconds)

    def _create_reader(self, settings: Settings, client: NodeClient) -> LedgerBlockchain:
        return EvmBlockchain(settings, client=client)

    async def _call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        return await self._client.call(method, params or [])

    async def create_transaction(
        self,
        tx: Transaction,
        options: Optional[dict[str, Any]] = None,
    ) -> Transaction:
        self._check_currency(tx)
        if self.currency.is_token:
            return await self._send_token(tx, options)
        return await self._send_native(tx, options)

    async def prepare_deposit_collection(
        self,
        tx: Transaction,
        deposit_spreads: list[Any],
        deposit_currency: Currency,
    ) -> Optional[Transaction]:
        fee_options = EvmFeeOptions.resolve(DEFAULT_TOKEN_FEE, deposit_currency.options)
        if not fee_options.contract_address:
            return None

        gas_price = await self._gas_price(fee_options)
        per_transfer = gas_price * fee_options.gas_limit
        tx.amount = convert_from_base_unit(per_transfer * len(deposit_spreads), self.fee_subunits)
        tx.currency = self.fee_currency_id
        logger.info(
            f"[{self.name}] Fronting {tx.amount} for {len(deposit_spreads)} "
            f"{deposit_currency.id} deposits"
        )
        return await self._send_native(tx, None)

    async def create_address(self) -> tuple[str, str]:
        account = Account.create()
        return account.address, to_hex(account.key)

    # ─────────────────────────────────────────────────────────────
    # Building
    # ─────────────────────────────────────────────────────────────

    def _check_currency(self, tx: Transaction) -> None:
        if tx.currency and tx.currency != self.currency.id:
            raise CurrencyNotFoundError(
                f"Wallet sends {self.currency.id}, not {tx.currency}",
                chain=self.name,
                currency_id=tx.currency,
                configured=[self.currency.id],
            )

    async def _send_native(
        self,
        tx: Transaction,
        options: Optional[dict[str, Any]],
    ) -> Transaction:
        self._validate_transfer(tx)
        fee_options = EvmFeeOptions.resolve(
            DEFAULT_NATIVE_FEE, self.currency.options, tx.options, options
        )

        gas_price = await self._gas_price(fee_options)
        fee_wei = gas_price * fee_options.gas_limit
        value = to_base_integer(tx.amount, self.fee_subunits)
        if fee_options.subtract_fee:
            value -= fee_wei
            if value <= 0:
                raise InvalidTransferError(
                    f"Amount {tx.amount} does not cover the fee",
                    chain=self.name,
                    context={"fee_wei": fee_wei},
                )

        tx_hash = await self._sign_and_send({
            "to": checksum_address(tx.to_address),
            "value": value,
            "data": "0x",
            "gas": fee_options.gas_limit,
            "gasPrice": gas_price,
        })
        return self._mark_broadcast(tx, tx_hash, convert_from_base_unit(fee_wei, self.fee_subunits))

    async def _send_token(
        self,
        tx: Transaction,
        options: Optional[dict[str, Any]],
    ) -> Transaction:
        self._validate_transfer(tx)
        fee_options = EvmFeeOptions.resolve(
            DEFAULT_TOKEN_FEE, self.currency.options, tx.options, options
        )

        gas_price = await self._gas_price(fee_options)
        fee_wei = gas_price * fee_options.gas_limit
        amount = to_base_integer(tx.amount, self.currency.subunits)
        if amount <= 0:
            raise InvalidTransferError(
                f"Amount {tx.amount} is below one base unit of {self.currency.id}",
                chain=self.name,
            )

        tx_hash = await self._sign_and_send({
            "to": checksum_address(fee_options.contract_address),
            "value": 0,
            "data": encode_transfer_call(tx.to_address, amount),
            "gas": fee_options.gas_limit,
            "gasPrice": gas_price,
        })
        return self._mark_broadcast(tx, tx_hash, convert_from_base_unit(fee_wei, self.fee_subunits))

    async def _gas_price(self, fee_options: EvmFeeOptions) -> int:
        """Explicit price, or the node suggestion times the rate tier."""
        # A zero price means "ask the node"
        if fee_options.gas_price:
            return fee_options.gas_price
        suggested = hex_to_int(await self._call("eth_gasPrice"), "gasPrice")
        price = Decimal(suggested) * fee_options.gas_rate.multiplier
        return int(price.to_integral_value(rounding=ROUND_DOWN))

    async def _sign_and_send(self, fields: dict[str, Any]) -> str:
        nonce = hex_to_int(
            await self._call("eth_getTransactionCount", [checksum_address(self.address), "pending"]),
            "nonce",
        )
        chain_id = hex_to_int(await self._call("eth_chainId"), "chainId")
        unsigned = dict(fields, nonce=nonce, chainId=chain_id)

        try:
            signed = Account.sign_transaction(unsigned, self._settings.secret)
        except Exception as e:
            raise SigningError(
                f"Cannot sign transaction to {fields['to']}",
                chain=self.name,
                original_error=e,
            )

        raw = to_hex(signed.raw_transaction)
        logger.debug(f"[{self.name}] Sending {preview(raw)} (nonce={nonce}, chain_id={chain_id})")
        try:
            result = await self._call("eth_sendRawTransaction", [raw])
        except UpstreamUnavailableError as e:
            if e.rpc_code is None:
                raise
            raise BroadcastRejectedError(
                "Node rejected transaction",
                chain=self.name,
                node_message=e.response_body,
                original_error=e,
            )
        return result or to_hex(signed.hash)
