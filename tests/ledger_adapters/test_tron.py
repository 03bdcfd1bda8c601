"""
Tron Adapter Tests.

============================================================
TEST CATEGORIES:
- Classification: TransferContract, TriggerSmartContract
- Facade: blocks and transaction lookups
- Balance resolution
- Wallet: build, sign, broadcast, deposit fronting
============================================================
"""

import hashlib
from decimal import Decimal

import pytest
from eth_keys import keys

from ledger_adapters.chains.tron import TronBlockchain, TronWallet
from ledger_adapters.config import Currency, WalletSettings
from ledger_adapters.encoding import (
    encode_transfer_arguments,
    tron_address_from_public_key,
    tron_to_base58,
    tron_to_evm,
)
from ledger_adapters.exceptions import (
    BroadcastRejectedError,
    CurrencyNotFoundError,
    DecodeFailureError,
    InvalidTransferError,
    SigningError,
    UpstreamUnavailableError,
)
from ledger_adapters.models import Transaction, TransactionStatus


KEY = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

USDT_TRC20 = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
USDT_HEX = "41a614f803b6fd780986a42c78ec9c7f77e6ded13c"
OTHER_CONTRACT_HEX = "41" + "22" * 20

OWNER_HEX = "41" + "90f8bf6a479f320ead074411a4b0e7944ea8c9c1"
RECIPIENT_HEX = "41" + "ffcf8fdee72ac11b5c542428b35eef5769c409f0"
OWNER = tron_to_base58(OWNER_HEX)
RECIPIENT = tron_to_base58(RECIPIENT_HEX)

TRX = Currency("trx", 6)
USDT = Currency("usdt", 6, {"contract_address": USDT_TRC20})

TRANSFER_DATA = "a9059cbb" + "0" * 24 + RECIPIENT_HEX[2:] + "0" * 58 + "0186a0"
APPROVE_DATA = "095ea7b3" + "0" * 24 + RECIPIENT_HEX[2:] + "0" * 58 + "0186a0"


def transfer_tx(amount: int, ret: str = "SUCCESS", tx_id: str = "11" * 32) -> dict:
    return {
        "txID": tx_id,
        "ret": [{"contractRet": ret}] if ret else [],
        "raw_data": {
            "contract": [{
                "type": "TransferContract",
                "parameter": {"value": {
                    "owner_address": OWNER_HEX,
                    "to_address": RECIPIENT_HEX,
                    "amount": amount,
                }},
            }],
        },
        "raw_data_hex": "0a0203e8",
    }


def trigger_entry(data: str, contract: str = USDT_HEX) -> dict:
    return {
        "type": "TriggerSmartContract",
        "parameter": {"value": {
            "owner_address": OWNER_HEX,
            "contract_address": contract,
            "data": data,
        }},
    }


def trigger_tx(*entries: dict, tx_id: str = "22" * 32, fee_limit: int = 10_000_000) -> dict:
    return {
        "txID": tx_id,
        "ret": [{"contractRet": "SUCCESS"}],
        "raw_data": {"contract": list(entries), "fee_limit": fee_limit},
        "raw_data_hex": "0a0207d0",
    }


SUCCESS_INFO = {"receipt": {"result": "SUCCESS"}, "blockNumber": 77}


# ============================================================
# CLASSIFICATION
# ============================================================

class TestTronClassify:
    """Tests for TronBlockchain.classify."""

    @pytest.mark.asyncio
    async def test_native_transfer(self, tron_client, tron_settings):
        chain = TronBlockchain(tron_settings, client=tron_client)

        records = await chain.classify(transfer_tx(1_500_000))

        assert len(records) == 1
        record = records[0]
        assert record.currency == "trx"
        assert record.from_address == OWNER
        assert record.to_address == RECIPIENT
        assert record.amount == Decimal("1.5")
        assert record.fee is None
        assert record.status is TransactionStatus.SUCCEED
        assert tron_client.calls == []

    @pytest.mark.asyncio
    async def test_zero_amount_dropped(self, tron_client, tron_settings):
        chain = TronBlockchain(tron_settings, client=tron_client)

        assert await chain.classify(transfer_tx(0)) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ret,status", [
        ("", TransactionStatus.PENDING),
        ("REVERT", TransactionStatus.FAILED),
        ("OUT_OF_ENERGY", TransactionStatus.FAILED),
    ])
    async def test_native_status(self, tron_client, tron_settings, ret, status):
        chain = TronBlockchain(tron_settings, client=tron_client)

        records = await chain.classify(transfer_tx(1_000_000, ret=ret))

        assert records[0].status is status

    @pytest.mark.asyncio
    async def test_token_transfer_decoded_from_call_data(self, tron_client, tron_settings):
        """68-byte transfer call: recipient and 0x0186a0 = 100000 base units."""
        tron_client.responses["/wallet/gettransactioninfobyid"] = SUCCESS_INFO
        chain = TronBlockchain(tron_settings, client=tron_client)

        records = await chain.classify(trigger_tx(trigger_entry(TRANSFER_DATA)))

        assert len(records) == 1
        record = records[0]
        assert record.currency == "usdt"
        assert record.currency_fee == "trx"
        assert record.from_address == OWNER
        assert record.to_address == RECIPIENT
        assert record.amount == Decimal("0.1")
        assert record.fee == Decimal("10")
        assert record.status is TransactionStatus.SUCCEED
        assert record.tx_hash == "22" * 32

    @pytest.mark.asyncio
    async def test_receipt_fetched_once(self, tron_client, tron_settings):
        tron_client.responses["/wallet/gettransactioninfobyid"] = SUCCESS_INFO
        chain = TronBlockchain(tron_settings, client=tron_client)

        records = await chain.classify(trigger_tx(trigger_entry(TRANSFER_DATA), trigger_entry(TRANSFER_DATA)))

        assert len(records) == 2
        assert tron_client.paths() == ["/wallet/gettransactioninfobyid"]

    @pytest.mark.asyncio
    async def test_unconfigured_contract_is_irrelevant(self, tron_client, tron_settings):
        chain = TronBlockchain(tron_settings, client=tron_client)

        records = await chain.classify(trigger_tx(trigger_entry(TRANSFER_DATA, contract=OTHER_CONTRACT_HEX)))

        assert records == []
        assert tron_client.calls == []

    @pytest.mark.asyncio
    async def test_non_transfer_call_is_status_only(self, tron_client, tron_settings):
        tron_client.responses["/wallet/gettransactioninfobyid"] = {"receipt": {"result": "REVERT"}}
        chain = TronBlockchain(tron_settings, client=tron_client)

        records = await chain.classify(trigger_tx(trigger_entry(APPROVE_DATA)))

        assert len(records) == 1
        record = records[0]
        assert record.currency == "usdt"
        assert record.status is TransactionStatus.FAILED
        assert record.from_address == ""
        assert record.to_address == ""
        assert record.amount == Decimal("0")
        assert record.fee == Decimal("10")

    @pytest.mark.asyncio
    async def test_missing_receipt_is_pending(self, tron_client, tron_settings):
        tron_client.responses["/wallet/gettransactioninfobyid"] = {}
        chain = TronBlockchain(tron_settings, client=tron_client)

        records = await chain.classify(trigger_tx(trigger_entry(TRANSFER_DATA)))

        assert records[0].status is TransactionStatus.PENDING

    @pytest.mark.asyncio
    async def test_hash_from_raw_data_when_id_missing(self, tron_client, tron_settings):
        chain = TronBlockchain(tron_settings, client=tron_client)
        raw = transfer_tx(1_000_000)
        del raw["txID"]

        records = await chain.classify(raw)

        assert records[0].tx_hash == hashlib.sha256(bytes.fromhex("0a0203e8")).hexdigest()

    @pytest.mark.asyncio
    async def test_missing_raw_data(self, tron_client, tron_settings):
        chain = TronBlockchain(tron_settings, client=tron_client)

        with pytest.raises(DecodeFailureError):
            await chain.classify({"txID": "33" * 32})


# ============================================================
# FACADE
# ============================================================

class TestTronFacade:
    """Tests for block and transaction lookups."""

    @pytest.mark.asyncio
    async def test_block_by_number(self, tron_client, tron_settings):
        tron_client.responses["/wallet/getblockbynum"] = {
            "blockID": "00" * 32,
            "block_header": {"raw_data": {"number": 5}},
            "transactions": [transfer_tx(1_000_000), transfer_tx(0)],
        }
        chain = TronBlockchain(tron_settings, client=tron_client)

        block = await chain.get_block_by_number(5)

        assert block.number == 5
        assert len(block.transactions) == 1
        assert block.transactions[0].block_number == 5
        assert tron_client.bodies_of("/wallet/getblockbynum") == [{"num": 5}]

    @pytest.mark.asyncio
    async def test_block_by_hash_not_found(self, tron_client, tron_settings):
        tron_client.responses["/wallet/getblockbyid"] = {}
        chain = TronBlockchain(tron_settings, client=tron_client)

        with pytest.raises(DecodeFailureError):
            await chain.get_block_by_hash("00" * 32)

    @pytest.mark.asyncio
    async def test_latest_block_number(self, tron_client, tron_settings):
        tron_client.responses["/wallet/getnowblock"] = {"block_header": {"raw_data": {"number": 61_000_000}}}
        chain = TronBlockchain(tron_settings, client=tron_client)

        assert await chain.get_latest_block_number() == 61_000_000

    @pytest.mark.asyncio
    async def test_get_transaction_stamps_block(self, tron_client, tron_settings):
        tron_client.responses.update({
            "/wallet/gettransactionbyid": trigger_tx(trigger_entry(TRANSFER_DATA)),
            "/wallet/gettransactioninfobyid": SUCCESS_INFO,
        })
        chain = TronBlockchain(tron_settings, client=tron_client)

        records = await chain.get_transaction("22" * 32)

        assert records[0].block_number == 77
        assert tron_client.paths().count("/wallet/gettransactioninfobyid") == 1

    @pytest.mark.asyncio
    async def test_get_transaction_not_found(self, tron_client, tron_settings):
        tron_client.responses["/wallet/gettransactionbyid"] = {}
        chain = TronBlockchain(tron_settings, client=tron_client)

        with pytest.raises(DecodeFailureError):
            await chain.get_transaction("22" * 32)


# ============================================================
# BALANCE
# ============================================================

class TestTronBalance:
    """Tests for get_balance_of_address."""

    @pytest.mark.asyncio
    async def test_token_balance(self, tron_client, tron_settings):
        tron_client.responses["/wallet/triggerconstantcontract"] = {
            "result": {"result": True},
            "constant_result": [format(1_000_000, "064x")],
        }
        chain = TronBlockchain(tron_settings, client=tron_client)

        balance = await chain.get_balance_of_address(OWNER, "usdt")

        assert balance == Decimal("1")
        body = tron_client.bodies_of("/wallet/triggerconstantcontract")[0]
        assert body["contract_address"] == USDT_HEX
        assert body["owner_address"] == OWNER_HEX
        assert body["function_selector"] == "balanceOf(address)"
        assert body["parameter"] == "0" * 24 + OWNER_HEX[2:]

    @pytest.mark.asyncio
    async def test_token_balance_call_failed(self, tron_client, tron_settings):
        tron_client.responses["/wallet/triggerconstantcontract"] = {
            "result": {"code": "CONTRACT_VALIDATE_ERROR", "message": b"no contract".hex()},
        }
        chain = TronBlockchain(tron_settings, client=tron_client)

        with pytest.raises(UpstreamUnavailableError, match="no contract"):
            await chain.get_balance_of_address(OWNER, "usdt")

    @pytest.mark.asyncio
    async def test_native_balance(self, tron_client, tron_settings):
        tron_client.responses["/wallet/getaccount"] = {"address": OWNER_HEX, "balance": 2_500_000}
        chain = TronBlockchain(tron_settings, client=tron_client)

        assert await chain.get_balance_of_address(OWNER, "trx") == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_unfunded_account_is_zero(self, tron_client, tron_settings):
        tron_client.responses["/wallet/getaccount"] = {}
        chain = TronBlockchain(tron_settings, client=tron_client)

        assert await chain.get_balance_of_address(OWNER, "trx") == Decimal("0")

    @pytest.mark.asyncio
    async def test_unknown_currency(self, tron_client, tron_settings):
        chain = TronBlockchain(tron_settings, client=tron_client)

        with pytest.raises(CurrencyNotFoundError):
            await chain.get_balance_of_address(OWNER, "btt")


# ============================================================
# WALLET
# ============================================================

def wallet_address(secret: str = KEY) -> str:
    return tron_address_from_public_key(keys.PrivateKey(bytes.fromhex(secret)).public_key.to_bytes())


def make_wallet(client, currency=TRX, fee_currency=None, secret=KEY) -> TronWallet:
    settings = WalletSettings(
        uri="http://localhost:8090",
        address=wallet_address(),
        secret=secret,
        currency=currency,
        fee_currency=fee_currency,
    )
    return TronWallet(settings, client=client)


def unsigned_tx(raw_hex: str) -> dict:
    return {
        "txID": hashlib.sha256(bytes.fromhex(raw_hex)).hexdigest(),
        "raw_data_hex": raw_hex,
        "raw_data": {"contract": []},
    }


@pytest.fixture
def node(tron_client):
    tron_client.responses.update({
        "/wallet/createtransaction": unsigned_tx("0a0203e8"),
        "/wallet/triggersmartcontract": {"result": {"result": True}, "transaction": unsigned_tx("0a0207d0")},
        "/wallet/broadcasttransaction": lambda body: {"result": True, "txid": body["txID"]},
    })
    return tron_client


class TestTronWallet:
    """Tests for TronWallet."""

    @pytest.mark.asyncio
    async def test_native_transfer(self, node):
        wallet = make_wallet(node)
        tx = Transaction(to_address=RECIPIENT, amount=Decimal("5"))

        await wallet.create_transaction(tx)

        expected_id = hashlib.sha256(bytes.fromhex("0a0203e8")).hexdigest()
        assert tx.status is TransactionStatus.PENDING
        assert tx.tx_hash == expected_id
        assert tx.fee == Decimal("1")
        assert tx.currency == "trx"

        body = node.bodies_of("/wallet/createtransaction")[0]
        assert body["amount"] == 5_000_000
        assert body["to_address"] == RECIPIENT_HEX

        signed = node.bodies_of("/wallet/broadcasttransaction")[0]
        signature = keys.Signature(bytes.fromhex(signed["signature"][0]))
        public_key = signature.recover_public_key_from_msg_hash(bytes.fromhex(expected_id))
        assert tron_address_from_public_key(public_key.to_bytes()) == wallet.address

    @pytest.mark.asyncio
    async def test_subtract_fee(self, node):
        wallet = make_wallet(node)
        tx = Transaction(to_address=RECIPIENT, amount=Decimal("5"), options={"subtract_fee": True})

        await wallet.create_transaction(tx)

        assert node.bodies_of("/wallet/createtransaction")[0]["amount"] == 4_000_000

    @pytest.mark.asyncio
    async def test_subtract_fee_exceeds_amount(self, node):
        wallet = make_wallet(node)
        tx = Transaction(to_address=RECIPIENT, amount=Decimal("0.5"), options={"subtract_fee": True})

        with pytest.raises(InvalidTransferError):
            await wallet.create_transaction(tx)

        assert node.calls == []

    @pytest.mark.asyncio
    async def test_token_transfer(self, node):
        wallet = make_wallet(node, currency=USDT, fee_currency=TRX)
        tx = Transaction(to_address=RECIPIENT, amount=Decimal("2.5"))

        await wallet.create_transaction(tx)

        body = node.bodies_of("/wallet/triggersmartcontract")[0]
        assert body["contract_address"] == USDT_HEX
        assert body["function_selector"] == "transfer(address,uint256)"
        assert body["parameter"] == encode_transfer_arguments(tron_to_evm(RECIPIENT), 2_500_000)
        assert body["fee_limit"] == 10_000_000
        assert tx.fee == Decimal("10")
        assert tx.currency == "usdt"
        assert tx.currency_fee == "trx"

    @pytest.mark.asyncio
    async def test_token_fee_limit_override(self, node):
        wallet = make_wallet(node, currency=USDT, fee_currency=TRX)
        tx = Transaction(to_address=RECIPIENT, amount=Decimal("1"))

        await wallet.create_transaction(tx, {"fee_limit": 30_000_000})

        assert node.bodies_of("/wallet/triggersmartcontract")[0]["fee_limit"] == 30_000_000
        assert tx.fee == Decimal("30")

    @pytest.mark.asyncio
    async def test_token_build_refused(self, node):
        node.responses["/wallet/triggersmartcontract"] = {
            "result": {"code": "CONTRACT_VALIDATE_ERROR", "message": b"balance is not sufficient".hex()},
        }
        wallet = make_wallet(node, currency=USDT, fee_currency=TRX)

        with pytest.raises(BroadcastRejectedError) as exc_info:
            await wallet.create_transaction(Transaction(to_address=RECIPIENT, amount=Decimal("1")))

        assert exc_info.value.node_message == "balance is not sufficient"

    @pytest.mark.asyncio
    async def test_mismatched_transaction_id(self, node):
        tampered = unsigned_tx("0a0203e8")
        tampered["txID"] = "ff" * 32
        node.responses["/wallet/createtransaction"] = tampered
        wallet = make_wallet(node)

        with pytest.raises(DecodeFailureError):
            await wallet.create_transaction(Transaction(to_address=RECIPIENT, amount=Decimal("1")))

        assert "/wallet/broadcasttransaction" not in node.paths()

    @pytest.mark.asyncio
    async def test_broadcast_rejected(self, node):
        node.responses["/wallet/broadcasttransaction"] = {
            "result": False,
            "code": "BANDWITH_ERROR",
            "message": b"bandwidth error".hex(),
        }
        wallet = make_wallet(node)
        tx = Transaction(to_address=RECIPIENT, amount=Decimal("1"))

        with pytest.raises(BroadcastRejectedError) as exc_info:
            await wallet.create_transaction(tx)

        assert exc_info.value.node_message == "bandwidth error"
        assert tx.tx_hash is None

    @pytest.mark.asyncio
    async def test_bad_secret(self, node):
        wallet = make_wallet(node, secret="zz")

        with pytest.raises(SigningError):
            await wallet.create_transaction(Transaction(to_address=RECIPIENT, amount=Decimal("1")))

    @pytest.mark.asyncio
    async def test_prepare_deposit_collection(self, node):
        """Fronts fee_limit per deposit in TRX."""
        wallet = make_wallet(node)
        tx = Transaction(to_address=RECIPIENT)

        result = await wallet.prepare_deposit_collection(tx, [Transaction(), Transaction()], USDT)

        assert result is tx
        assert tx.amount == Decimal("20")
        assert tx.currency == "trx"
        assert node.bodies_of("/wallet/createtransaction")[0]["amount"] == 20_000_000

    @pytest.mark.asyncio
    async def test_prepare_deposit_collection_without_contract(self, tron_client):
        wallet = make_wallet(tron_client)

        result = await wallet.prepare_deposit_collection(Transaction(to_address=RECIPIENT), [Transaction()], TRX)

        assert result is None
        assert tron_client.calls == []

    @pytest.mark.asyncio
    async def test_create_address(self, tron_client):
        wallet = make_wallet(tron_client)

        address, secret = await wallet.create_address()

        assert address.startswith("T")
        assert len(address) == 34
        assert wallet_address(secret) == address

    @pytest.mark.asyncio
    async def test_load_balance(self, tron_client):
        tron_client.responses["/wallet/getaccount"] = {"balance": 7_000_000}
        wallet = make_wallet(tron_client)

        assert await wallet.load_balance() == Decimal("7")
