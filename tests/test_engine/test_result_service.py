"""Tests for result extraction from confirmed transactions."""

from __future__ import annotations

import base64

import pytest

from txdraft.engine.models.draft import OutputType
from txdraft.engine.services.result_service import (
    IdentifierExpectation,
    IdentifierResult,
    ResultExtractor,
    SettlementExpectation,
    SettlementResult,
)
from txdraft.errors import (
    InvalidArgument,
    LedgerRPCError,
    MalformedTransaction,
    TransactionUnavailable,
)
from txdraft.ledger.models import Outpoint

STAKER = bytes.fromhex("11" * 20)
OTHER = bytes.fromhex("22" * 20)
TOKEN_A = bytes.fromhex("aa" * 32)
TX_HASH = "cd" * 32


def _b64(owner: bytes) -> str:
    return base64.b64encode(owner).decode()


def _coin(owner: bytes, amount: int, *locks: str) -> dict:
    return {
        "owner": _b64(owner),
        "asset": {"native_coin": {"amount": str(amount)}},
        "locking_conditions": [{lock: {}} for lock in locks],
    }


def _token(owner: bytes, amount: int, token_id: bytes) -> dict:
    return {
        "owner": _b64(owner),
        "asset": {
            "contract_token": {"fungible_class_id": token_id.hex(), "amount": str(amount)}
        },
    }


def _state(owner: bytes, state_id: bytes) -> dict:
    return {"owner": owner.hex(), "state": {"state_id": state_id.hex()}}


@pytest.fixture
def extractor(ledger) -> ResultExtractor:
    return ResultExtractor(ledger)


class TestIdentifier:
    async def test_stake_output_with_height_lock(self, ledger, extractor) -> None:
        ledger.transactions[TX_HASH] = {
            "hash": TX_HASH,
            "blockHeight": "0x96",
            "outputs": [
                _coin(OTHER, 500, "single_key_lock"),
                _coin(STAKER, 10_000, "height_lock"),
                _coin(STAKER, 39_997, "single_key_lock"),
            ],
        }
        result = await extractor.extract(
            TX_HASH, IdentifierExpectation(STAKER, lock_type="height_lock")
        )
        assert isinstance(result, IdentifierResult)
        assert result.outpoint == Outpoint(TX_HASH, 1)
        assert result.identifier == f"{TX_HASH}:1"
        assert not result.ambiguous

    async def test_first_match_wins_and_is_flagged(self, ledger, extractor, caplog) -> None:
        ledger.transactions[TX_HASH] = {
            "outputs": [_coin(STAKER, 1, "single_key_lock"), _coin(STAKER, 2, "single_key_lock")]
        }
        result = await extractor.extract(TX_HASH, IdentifierExpectation(STAKER))
        assert result.outpoint.output_index == 0
        assert result.candidates == 2
        assert result.ambiguous
        assert "2 asset outputs" in caplog.text

    async def test_state_id_is_the_identifier(self, ledger, extractor) -> None:
        state_id = b"\x42" * 32
        ledger.transactions[TX_HASH] = {
            "outputs": [_state(STAKER, state_id), _coin(STAKER, 900)]
        }
        result = await extractor.extract(
            TX_HASH, IdentifierExpectation(STAKER, output_type=OutputType.STATE)
        )
        assert result.identifier == state_id.hex()
        assert result.state_id == state_id

    async def test_no_matching_output(self, ledger, extractor) -> None:
        ledger.transactions[TX_HASH] = {"outputs": [_coin(OTHER, 5)]}
        with pytest.raises(MalformedTransaction):
            await extractor.extract(TX_HASH, IdentifierExpectation(STAKER))

    async def test_bad_owner(self, ledger, extractor) -> None:
        ledger.transactions[TX_HASH] = {"outputs": []}
        with pytest.raises(InvalidArgument):
            await extractor.extract(TX_HASH, IdentifierExpectation(b"\x01"))


class TestSettlement:
    async def test_total_and_derived_bonus(self, ledger, extractor) -> None:
        ledger.transactions[TX_HASH] = {
            "outputs": [
                _coin(STAKER, 10_000),
                _coin(OTHER, 7),
                _coin(STAKER, 250),
                _token(STAKER, 99, TOKEN_A),
            ]
        }
        result = await extractor.extract(
            TX_HASH, SettlementExpectation(STAKER, expected_amount=10_000)
        )
        assert isinstance(result, SettlementResult)
        assert result.total == 10_250
        assert result.bonus == 250
        assert result.bonus_is_derived
        assert [o.output_index for o in result.outputs] == [0, 2]

    async def test_token_settlement(self, ledger, extractor) -> None:
        ledger.transactions[TX_HASH] = {
            "outputs": [_coin(STAKER, 10), _token(STAKER, 99, TOKEN_A)]
        }
        result = await extractor.extract(TX_HASH, SettlementExpectation(STAKER, TOKEN_A))
        assert result.total == 99
        assert result.bonus == 0

    async def test_nothing_settled(self, ledger, extractor) -> None:
        ledger.transactions[TX_HASH] = {"outputs": [_coin(OTHER, 10)]}
        result = await extractor.extract(TX_HASH, SettlementExpectation(STAKER))
        assert result.total == 0
        assert result.outputs == ()


class TestFetch:
    async def test_unknown_transaction(self, extractor) -> None:
        with pytest.raises(TransactionUnavailable) as exc_info:
            await extractor.fetch("0x" + TX_HASH)
        assert exc_info.value.tx_hash == TX_HASH

    async def test_ledger_failure_is_unavailable(self, ledger, extractor) -> None:
        async def broken(tx_hash):
            raise LedgerRPCError("connection refused", method="wes_getTransactionByHash")

        ledger.fetch_transaction = broken
        with pytest.raises(TransactionUnavailable, match="connection refused"):
            await extractor.fetch(TX_HASH)

    async def test_malformed_result(self, ledger, extractor) -> None:
        ledger.transactions[TX_HASH] = {"outputs": "nope"}
        with pytest.raises(MalformedTransaction):
            await extractor.fetch(TX_HASH)

    async def test_parsed_fields(self, ledger, extractor) -> None:
        ledger.transactions[TX_HASH] = {
            "blockHeight": "0x96",
            "transactionIndex": 2,
            "inputs": [{"previous_output": {"tx_id": "ee" * 32, "output_index": 1}}],
            "outputs": [_coin(STAKER, 10, "height_lock")],
        }
        tx = await extractor.fetch(TX_HASH)
        assert tx.block_height == 150
        assert tx.tx_index == 2
        assert tx.inputs[0].outpoint == Outpoint("ee" * 32, 1)
        assert tx.outputs[0].lock_types == ("height_lock",)
        assert tx.outputs_by_owner(STAKER) == tx.outputs
