"""Tests for draft models and locking conditions."""

from __future__ import annotations

import json

import pytest

from txdraft.engine.models.draft import (
    AssetOutput,
    Input,
    InputMode,
    ResourceOutput,
    StateOutput,
    TransactionDraft,
)
from txdraft.engine.models.locking import (
    ContractLock,
    DelegationLock,
    HeightLock,
    LockingCondition,
    LockType,
    MultiKeyLock,
    SingleKeyLock,
    ThresholdLock,
    TimeLock,
)
from txdraft.errors import DraftFrozen, InvalidArgument
from txdraft.ledger.models import Outpoint

OWNER = bytes.fromhex("11" * 20)
OTHER = bytes.fromhex("22" * 20)


def _draft() -> TransactionDraft:
    draft = TransactionDraft(caller=OWNER)
    draft.add_input(Input(Outpoint("aa" * 32, 0), amount=1000))
    draft.add_input(Input(Outpoint("bb" * 32, 1), amount=0, mode=InputMode.REFERENCE))
    draft.add_input(Input(Outpoint("cc" * 32, 2), amount=500))
    draft.add_output(AssetOutput(OTHER, 1200, locking_condition=SingleKeyLock(OTHER)))
    draft.add_output(AssetOutput(OWNER, 297))
    draft.set_fee(3)
    return draft


# ---------------------------------------------------------------------------
# Locking conditions
# ---------------------------------------------------------------------------


class TestLockingConditions:
    def test_single_key_defaults(self) -> None:
        lock = SingleKeyLock(OWNER)
        lock.validate()
        assert lock.lock_type == LockType.SINGLE_KEY
        assert lock.to_dict() == {
            "type": "single_key_lock",
            "required_address": OWNER.hex(),
            "required_algorithm": "ECDSA_SECP256K1",
        }

    def test_single_key_rejects_short_address(self) -> None:
        with pytest.raises(InvalidArgument):
            SingleKeyLock(b"\x01" * 19).validate()

    def test_multi_key_required_exceeds_keys(self) -> None:
        with pytest.raises(InvalidArgument, match="exceed"):
            MultiKeyLock(3, (b"k1", b"k2")).validate()

    def test_multi_key_valid(self) -> None:
        lock = MultiKeyLock(2, (b"k1", b"k2", b"k3"))
        lock.validate()
        assert lock.to_dict()["required_signatures"] == 2

    def test_contract_lock_defaults(self) -> None:
        lock = ContractLock(OWNER)
        lock.validate()
        assert lock.max_execution_time_ms == 5000
        assert lock.to_dict()["contract_address"] == OWNER.hex()

    def test_delegation_lock_needs_delegates(self) -> None:
        with pytest.raises(InvalidArgument, match="allowed_delegates"):
            DelegationLock(OWNER, ()).validate()

    def test_delegation_lock_serialization(self) -> None:
        data = DelegationLock(OWNER, (OTHER,), max_value_per_operation=10).to_dict()
        assert data["allowed_delegates"] == [OTHER.hex()]
        assert data["authorized_operations"] == ["stake", "consume"]
        assert data["max_value_per_operation"] == "10"
        assert "expiry_duration_blocks" not in data

    def test_threshold_lock(self) -> None:
        lock = ThresholdLock(2, (OWNER, OTHER))
        lock.validate()
        data = lock.to_dict()
        assert data["total_parties"] == 2
        assert data["signature_scheme"] == "BLS_THRESHOLD"

    def test_threshold_exceeds_parties(self) -> None:
        with pytest.raises(InvalidArgument):
            ThresholdLock(3, (OWNER, OTHER)).validate()

    def test_height_lock_validates_base(self) -> None:
        with pytest.raises(InvalidArgument):
            HeightLock(10, base_lock=SingleKeyLock(b"short")).validate()

    def test_height_lock_requires_base(self) -> None:
        with pytest.raises(InvalidArgument, match="base_lock"):
            HeightLock(10).validate()

    def test_height_lock_serialization(self) -> None:
        data = HeightLock(110, base_lock=ContractLock(OTHER)).to_dict()
        assert data["type"] == "height_lock"
        assert data["unlock_height"] == "110"
        assert data["confirmation_blocks"] == 6
        assert data["base_lock"]["type"] == "contract_lock"

    def test_time_lock(self) -> None:
        lock = TimeLock(1_700_000_000, base_lock=SingleKeyLock(OWNER))
        lock.validate()
        assert lock.to_dict()["base_lock"]["type"] == "single_key_lock"

    def test_time_lock_without_base(self) -> None:
        with pytest.raises(InvalidArgument, match="base_lock"):
            TimeLock(1_700_000_000).validate()
        assert TimeLock(1_700_000_000).to_dict()["base_lock"] is None

    def test_base_class_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            LockingCondition()


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class TestOutputs:
    def test_asset_output_rejects_bad_owner(self) -> None:
        with pytest.raises(InvalidArgument, match="owner"):
            AssetOutput(b"\x01" * 21, 10)

    def test_asset_output_rejects_bad_token(self) -> None:
        with pytest.raises(InvalidArgument, match="token_id"):
            AssetOutput(OWNER, 10, token_id=b"\x01" * 31)

    def test_state_output_payload_hash(self) -> None:
        out = StateOutput(OWNER, state_id=b"\x05" * 32, payload=b'{"a":1}')
        data = out.to_dict()
        assert data["metadata"]["state_id"] == "05" * 32
        assert data["metadata"]["state_version"] == 1
        assert data["data"] == '{"a":1}'
        assert out.amount == 0

    def test_resource_output_requires_content_hash(self) -> None:
        with pytest.raises(InvalidArgument, match="content_hash"):
            ResourceOutput(OWNER, content_hash=b"\x01" * 20)


# ---------------------------------------------------------------------------
# TransactionDraft
# ---------------------------------------------------------------------------


class TestTransactionDraft:
    def test_consumed_indices_skip_reference_inputs(self) -> None:
        assert _draft().consumed_indices() == [0, 2]

    def test_totals_and_balance(self) -> None:
        draft = _draft()
        assert draft.total_input() == 1500
        assert draft.total_output() == 1497
        assert draft.is_balanced()

    def test_to_dict_shape(self) -> None:
        data = _draft().to_dict()
        assert data["sign_mode"] == "defer_sign"
        assert data["metadata"] == {"caller_address": OWNER.hex()}
        assert data["inputs"][1] == {
            "tx_hash": "bb" * 32,
            "output_index": 1,
            "is_reference_only": True,
        }
        assert data["outputs"][0]["amount"] == "1200"

    def test_to_json_is_deterministic(self) -> None:
        a, b = _draft(), _draft()
        assert a.to_json() == b.to_json()
        assert a.fingerprint() == b.fingerprint()
        assert json.loads(a.to_json()) == a.to_dict()

    def test_freeze_blocks_mutation(self) -> None:
        draft = _draft()
        draft.freeze()
        assert draft.is_frozen
        with pytest.raises(DraftFrozen):
            draft.add_output(AssetOutput(OWNER, 1))
        with pytest.raises(DraftFrozen):
            draft.add_input(Input(Outpoint("dd" * 32, 0), amount=1))
        with pytest.raises(DraftFrozen):
            draft.set_metadata("memo", "x")

    def test_copy_is_unfrozen_and_equal(self) -> None:
        draft = _draft()
        draft.freeze()
        clone = draft.copy()
        assert not clone.is_frozen
        assert clone.to_json() == draft.to_json()
        clone.set_metadata("memo", "x")
        assert clone.fingerprint() != draft.fingerprint()

    def test_caller_must_be_address(self) -> None:
        with pytest.raises(InvalidArgument):
            TransactionDraft(caller=b"\x01")
