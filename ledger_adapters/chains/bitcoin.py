"""
Bitcoin Ledger Adapter - UTXO family over Bitcoin Core JSON-RPC.

Values reported by the node are already in BTC; they are kept as exact
decimals. The sender of a transaction is the owner of the output spent
by its first input, found by following that input to its previous
transaction. Outgoing transfers are built and signed by the node wallet.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from ledger_adapters.base import LedgerBlockchain, LedgerWallet
from ledger_adapters.config import BitcoinFeeOptions, Currency, Settings, WalletSettings
from ledger_adapters.exceptions import (
    BroadcastRejectedError,
    CurrencyNotFoundError,
    DecodeFailureError,
    SigningError,
    UnavailableFromAddressError,
    UnresolvablePartyError,
    UpstreamUnavailableError,
)
from ledger_adapters.models import Block, LedgerFamily, Transaction, TransactionStatus
from ledger_adapters.rpc import JsonRpcClient, NodeClient
from ledger_adapters.units import convert_from_base_unit, to_base_integer


logger = logging.getLogger(__name__)

DEFAULT_FEE = BitcoinFeeOptions()

# Bitcoin Core RPC_WALLET_UNLOCK_NEEDED
RPC_WALLET_UNLOCK_NEEDED = -13

WALLET_UNLOCK_SECONDS = 10


def output_address(output: dict[str, Any]) -> Optional[str]:
    """Address of an output; modern nodes report one, legacy nodes a list."""
    script = output.get("scriptPubKey") or {}
    if script.get("address"):
        return script["address"]
    addresses = script.get("addresses") or []
    return addresses[0] if addresses else None


def find_output(raw_tx: dict[str, Any], index: int) -> Optional[dict[str, Any]]:
    """Output whose ``n`` equals ``index``."""
    for output in raw_tx.get("vout") or []:
        if output.get("n") == index:
            return output
    return None


# ============================================================
# BLOCKCHAIN
# ============================================================

class BitcoinBlockchain(LedgerBlockchain):
    """Read side for Bitcoin Core (``txindex`` required for lookups)."""

    family = LedgerFamily.BITCOIN
    NATIVE_SUBUNITS = 8

    def _create_client(self, settings: Settings) -> NodeClient:
        return JsonRpcClient(settings.uri, self.family.value, settings.timeout_seconds)

    async def _call(self, method: str, params: Any = None) -> Any:
        return await self._client.call(method, params)

    async def classify(
        self,
        raw_tx: dict[str, Any],
        in_block: bool = False,
    ) -> list[Transaction]:
        tx_hash = raw_tx.get("txid")
        inputs = raw_tx.get("vin") or []
        if not tx_hash or not inputs:
            raise DecodeFailureError(
                "Transaction has no txid or inputs",
                chain=self.name,
                field_name="vin",
                raw_data=raw_tx,
            )

        native = self._native_or_none()
        if native is None:
            return []

        # Previous transactions, fetched once per call
        previous: dict[str, dict[str, Any]] = {}

        async def previous_tx(txid: str) -> dict[str, Any]:
            if txid not in previous:
                prev = await self._call("getrawtransaction", [txid, True])
                if not prev:
                    raise DecodeFailureError(
                        f"Previous transaction {txid} not found",
                        chain=self.name,
                        field_name="vin",
                    )
                previous[txid] = prev
            return previous[txid]

        first = inputs[0]
        if "coinbase" in first or not first.get("txid"):
            raise UnavailableFromAddressError(
                f"Transaction {tx_hash} spends a coinbase input",
                chain=self.name,
                tx_hash=tx_hash,
            )
        spent = find_output(await previous_tx(first["txid"]), first.get("vout"))
        from_address = output_address(spent) if spent else None
        if not from_address:
            raise UnavailableFromAddressError(
                f"Spent output of {tx_hash} has no address",
                chain=self.name,
                tx_hash=tx_hash,
            )

        input_total = Decimal(0)
        for vin in inputs:
            if not vin.get("txid"):
                continue
            output = find_output(await previous_tx(vin["txid"]), vin.get("vout"))
            if output is not None:
                input_total += Decimal(str(output.get("value", 0)))

        outputs = raw_tx.get("vout") or []
        output_total = sum((Decimal(str(o.get("value", 0))) for o in outputs), Decimal(0))
        fee = input_total - output_total

        if in_block or raw_tx.get("blockhash"):
            status = TransactionStatus.SUCCEED
        else:
            status = TransactionStatus.PENDING

        records = []
        for output in outputs:
            value = Decimal(str(output.get("value", 0)))
            address = output_address(output)
            if value <= 0 or not address:
                continue
            records.append(Transaction(
                currency=native.id,
                currency_fee=native.id,
                from_address=from_address,
                to_address=address,
                amount=value,
                fee=fee,
                tx_hash=tx_hash,
                status=status,
            ))
        return records

    # ─────────────────────────────────────────────────────────────
    # Facade
    # ─────────────────────────────────────────────────────────────

    async def get_latest_block_number(self) -> int:
        return int(await self._call("getblockcount"))

    async def get_block_by_number(self, number: int) -> Block:
        block_hash = await self._call("getblockhash", [number])
        return await self.get_block_by_hash(block_hash)

    async def get_block_by_hash(self, block_hash: str) -> Block:
        raw = await self._call("getblock", [block_hash, 2])
        if not raw:
            raise DecodeFailureError(f"Block {block_hash} not found", chain=self.name, field_name="block")
        number = int(raw["height"])
        transactions = await self._classify_block(raw.get("tx") or [], number)
        logger.debug(f"[{self.name}] Block {number}: {len(transactions)} records")
        return Block(hash=raw.get("hash", block_hash), number=number, transactions=transactions)

    async def get_transaction(self, tx_hash: str) -> list[Transaction]:
        raw = await self._call("getrawtransaction", [tx_hash, True])
        if not raw:
            raise DecodeFailureError(
                f"Transaction {tx_hash} not found",
                chain=self.name,
                field_name="transaction",
            )
        records = await self.classify(raw)
        if raw.get("blockhash") and records:
            header = await self._call("getblockheader", [raw["blockhash"]])
            for record in records:
                record.block_number = int(header["height"])
        return records

    async def get_balance_of_address(self, address: str, currency_id: str) -> Decimal:
        self.currency(currency_id)
        groupings = await self._call("listaddressgroupings")
        for group in groupings or []:
            for entry in group:
                if entry and entry[0] == address:
                    return Decimal(str(entry[1]))
        raise UnresolvablePartyError(
            f"Address {address} is not known to the node wallet",
            chain=self.name,
            context={"address": address},
        )


# ============================================================
# WALLET
# ============================================================

class BitcoinWallet(LedgerWallet):
    """
    Write side backed by the Bitcoin Core wallet.

    ``secret`` is the wallet passphrase when the node wallet is
    encrypted, otherwise empty.
    """

    family = LedgerFamily.BITCOIN
    NATIVE_SUBUNITS = 8

    def _create_client(self, settings: WalletSettings) -> NodeClient:
        return JsonRpcClient(settings.uri, self.family.value, settings.timeout_seconds)

    def _create_reader(self, settings: Settings, client: NodeClient) -> LedgerBlockchain:
        return BitcoinBlockchain(settings, client=client)

    async def _call(self, method: str, params: Any = None) -> Any:
        return await self._client.call(method, params)

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
        self._validate_transfer(tx)
        fee_options = BitcoinFeeOptions.resolve(DEFAULT_FEE, self.currency.options, tx.options, options)

        # Node rejects amounts finer than one satoshi
        amount = convert_from_base_unit(
            to_base_integer(tx.amount, self.currency.subunits), self.currency.subunits
        )
        params: dict[str, Any] = {
            "address": tx.to_address,
            "amount": str(amount),
            "subtractfeefromamount": fee_options.subtract_fee,
        }
        if fee_options.fee_rate is not None:
            params["fee_rate"] = str(fee_options.fee_rate)
        else:
            params["conf_target"] = fee_options.conf_target

        if self._settings.secret:
            await self._call("walletpassphrase", {
                "passphrase": self._settings.secret,
                "timeout": WALLET_UNLOCK_SECONDS,
            })

        try:
            tx_hash = await self._call("sendtoaddress", params)
        except UpstreamUnavailableError as e:
            if e.rpc_code is None:
                raise
            if e.rpc_code == RPC_WALLET_UNLOCK_NEEDED:
                raise SigningError(
                    "Node wallet is locked",
                    chain=self.name,
                    original_error=e,
                )
            raise BroadcastRejectedError(
                "Node rejected transaction",
                chain=self.name,
                node_message=e.response_body,
                original_error=e,
            )

        details = await self._call("gettransaction", [tx_hash])
        fee = abs(Decimal(str((details or {}).get("fee", 0))))
        return self._mark_broadcast(tx, tx_hash, fee)

    async def prepare_deposit_collection(
        self,
        tx: Transaction,
        deposit_spreads: list[Any],
        deposit_currency: Currency,
    ) -> Optional[Transaction]:
        # No token contracts on this ledger
        return None

    async def create_address(self) -> tuple[str, str]:
        address = await self._call("getnewaddress")
        return address, ""
