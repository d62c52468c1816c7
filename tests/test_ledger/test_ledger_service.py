"""Tests for the ledger JSON-RPC client — uses httpx mock transport."""

from __future__ import annotations

import json

import httpx
import pytest

from txdraft.config.settings import LedgerConfig
from txdraft.engine.models.draft import AssetOutput, Input, TransactionDraft
from txdraft.errors.ledger_errors import LedgerRPCError
from txdraft.ledger.models import Outpoint, SignatureEntry
from txdraft.ledger.service import LedgerRPCService
from txdraft.wallet.address import address_to_base58

OWNER = bytes.fromhex("11" * 20)
TOKEN_A = bytes.fromhex("aa" * 32)
URL = "https://ledger.test.com"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ledger_config(**overrides) -> LedgerConfig:
    defaults = {"url": URL, "token": "test-token", "timeout": 5.0}
    defaults.update(overrides)
    return LedgerConfig(**defaults)


def _rpc_handler(results: dict, seen: list | None = None):
    """Answer each JSON-RPC method with a canned result (or error object)."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if seen is not None:
            seen.append(body)
        reply = results[body["method"]]
        if isinstance(reply, dict) and "error" in reply:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **reply})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": reply})

    return handler


async def _connected(handler) -> LedgerRPCService:
    ledger = LedgerRPCService(_ledger_config())
    await ledger.connect()
    await ledger.close()
    # Replace internal client with mock
    ledger._client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=URL)
    return ledger


def _draft() -> TransactionDraft:
    draft = TransactionDraft(caller=OWNER)
    draft.add_input(Input(Outpoint("aa" * 32, 0), amount=100))
    draft.add_input(Input(Outpoint("bb" * 32, 1), amount=100))
    draft.add_output(AssetOutput(OWNER, 200))
    return draft


def _entry(index: int) -> SignatureEntry:
    return SignatureEntry(
        input_index=index,
        sighash_type="SIGHASH_ALL",
        public_key=b"\x02" + b"\x01" * 32,
        signature=b"\x05" * 64,
    )


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


class TestLedgerLifecycle:
    async def test_not_connected_by_default(self):
        assert LedgerRPCService(_ledger_config()).is_connected is False

    async def test_context_manager(self):
        async with LedgerRPCService(_ledger_config()) as ledger:
            assert ledger.is_connected is True
        assert ledger.is_connected is False

    async def test_close_idempotent(self):
        ledger = LedgerRPCService(_ledger_config())
        await ledger.close()
        assert ledger.is_connected is False

    async def test_not_connected_raises(self):
        ledger = LedgerRPCService(_ledger_config())
        with pytest.raises(LedgerRPCError, match="not connected"):
            await ledger.block_number()

    async def test_bearer_token_header(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x1"})

        ledger = LedgerRPCService(_ledger_config())
        await ledger.connect()
        # Keep the configured headers, swap only the transport
        headers = ledger._client.headers
        await ledger.close()
        ledger._client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url=URL, headers=headers
        )
        await ledger.block_number()
        assert seen[0].headers["Authorization"] == "Bearer test-token"


# ---------------------------------------------------------------------------
# UTXO query
# ---------------------------------------------------------------------------


class TestQueryUtxos:
    async def test_filters_by_token_and_skips_bad_rows(self):
        seen: list[dict] = []
        rows = [
            {"outpoint": f"{'01' * 32}:0", "amount": "1000", "height": "0x10"},
            {"outpoint": f"{'02' * 32}:1", "amount": "50", "tokenID": TOKEN_A.hex()},
            {"outpoint": "garbage", "amount": "5"},
            {"outpoint": f"{'03' * 32}:2", "amount": 700},
        ]
        ledger = await _connected(_rpc_handler({"wes_getUTXO": {"utxos": rows}}, seen))

        native = await ledger.query_utxos(OWNER)
        assert [u.amount for u in native] == [1000, 700]
        assert native[0].block_height == 16
        assert native[0].outpoint == Outpoint("01" * 32, 0)

        tokens = await ledger.query_utxos(OWNER, TOKEN_A)
        assert [u.amount for u in tokens] == [50]

        assert seen[0]["params"] == [address_to_base58(OWNER)]
        assert seen[0]["jsonrpc"] == "2.0"
        assert seen[1]["id"] == seen[0]["id"] + 1

    async def test_empty_result(self):
        ledger = await _connected(_rpc_handler({"wes_getUTXO": None}))
        assert await ledger.query_utxos(OWNER) == []


# ---------------------------------------------------------------------------
# Signing exchange
# ---------------------------------------------------------------------------


class TestSigningExchange:
    async def test_compute_signature_hash(self):
        seen: list[dict] = []
        reply = {"hash": "0x" + "cc" * 32, "unsignedTx": "0xdeadbeef"}
        ledger = await _connected(
            _rpc_handler({"wes_computeSignatureHashFromDraft": reply}, seen)
        )
        response = await ledger.compute_signature_hash(_draft(), 1, "SIGHASH_ALL")
        assert response.hash == bytes.fromhex("cc" * 32)
        assert response.unsigned_tx == "deadbeef"
        params = seen[0]["params"]
        assert params["input_index"] == 1
        assert params["sighash_type"] == "SIGHASH_ALL"
        assert params["draft"]["metadata"]["caller_address"] == OWNER.hex()

    async def test_compute_signature_hash_incomplete(self):
        reply = {"hash": "cc" * 32}
        ledger = await _connected(_rpc_handler({"wes_computeSignatureHashFromDraft": reply}))
        with pytest.raises(LedgerRPCError, match="unsignedTx"):
            await ledger.compute_signature_hash(_draft(), 0, "SIGHASH_ALL")

    async def test_finalize_single_entry_is_flat(self):
        seen: list[dict] = []
        ledger = await _connected(
            _rpc_handler({"wes_finalizeTransactionFromDraft": {"tx": "0xf00d"}}, seen)
        )
        finalized = await ledger.finalize_transaction(_draft(), "deadbeef", [_entry(0)])
        assert finalized.tx_hex == "f00d"
        params = seen[0]["params"]
        assert params["unsignedTx"] == "deadbeef"
        assert params["input_index"] == 0
        assert params["pubkey"] == "0x02" + "01" * 32
        assert params["signature"] == "0x" + "05" * 64
        assert "signatures" not in params

    async def test_finalize_many_entries_uses_array(self):
        seen: list[dict] = []
        ledger = await _connected(
            _rpc_handler({"wes_finalizeTransactionFromDraft": {"tx": "f00d"}}, seen)
        )
        await ledger.finalize_transaction(_draft(), "deadbeef", [_entry(0), _entry(1)])
        params = seen[0]["params"]
        assert [s["input_index"] for s in params["signatures"]] == [0, 1]
        assert "input_index" not in params

    async def test_finalize_without_tx(self):
        ledger = await _connected(_rpc_handler({"wes_finalizeTransactionFromDraft": {}}))
        with pytest.raises(LedgerRPCError, match="no tx"):
            await ledger.finalize_transaction(_draft(), "deadbeef", [_entry(0)])


# ---------------------------------------------------------------------------
# Submit / fetch / height
# ---------------------------------------------------------------------------


class TestSubmitAndFetch:
    async def test_submit_bare_hash(self):
        ledger = await _connected(_rpc_handler({"wes_sendRawTransaction": "0x" + "ab" * 32}))
        result = await ledger.submit_transaction("f00d")
        assert result.accepted is True
        assert result.tx_hash == "ab" * 32

    async def test_submit_rejected_object(self):
        reply = {"accepted": False, "reason": "double spend"}
        ledger = await _connected(_rpc_handler({"wes_sendRawTransaction": reply}))
        result = await ledger.submit_transaction("f00d")
        assert result.accepted is False
        assert result.reason == "double spend"

    async def test_fetch_missing_transaction(self):
        ledger = await _connected(_rpc_handler({"wes_getTransactionByHash": None}))
        assert await ledger.fetch_transaction("0x" + "ab" * 32) is None

    async def test_fetch_transaction(self):
        seen: list[dict] = []
        ledger = await _connected(
            _rpc_handler({"wes_getTransactionByHash": {"outputs": []}}, seen)
        )
        assert await ledger.fetch_transaction("0x" + "ab" * 32) == {"outputs": []}
        assert seen[0]["params"] == ["ab" * 32]

    async def test_block_number_hex(self):
        ledger = await _connected(_rpc_handler({"wes_blockNumber": "0x64"}))
        assert await ledger.block_number() == 100

    async def test_block_number_invalid(self):
        ledger = await _connected(_rpc_handler({"wes_blockNumber": "soon"}))
        with pytest.raises(LedgerRPCError, match="invalid block number"):
            await ledger.block_number()


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------


class TestTransportErrors:
    async def test_rpc_error_object(self):
        reply = {"error": {"code": -32000, "message": "utxo already spent"}}
        ledger = await _connected(_rpc_handler({"wes_sendRawTransaction": reply}))
        with pytest.raises(LedgerRPCError, match="already spent") as exc_info:
            await ledger.submit_transaction("f00d")
        assert exc_info.value.rpc_code == -32000
        assert exc_info.value.method == "wes_sendRawTransaction"

    @pytest.mark.parametrize(
        ("status", "message"),
        [
            (401, "authentication failed"),
            (403, "forbidden"),
            (429, "rate limit"),
            (500, "failed \\(500\\)"),
        ],
    )
    async def test_http_status(self, status, message):
        ledger = await _connected(lambda request: httpx.Response(status, text="nope"))
        with pytest.raises(LedgerRPCError, match=message) as exc_info:
            await ledger.block_number()
        assert exc_info.value.status_code == status

    async def test_non_json_body(self):
        ledger = await _connected(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(LedgerRPCError, match="non-JSON"):
            await ledger.block_number()

    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        ledger = await _connected(handler)
        with pytest.raises(LedgerRPCError, match="refused"):
            await ledger.block_number()
