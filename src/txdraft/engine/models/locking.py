"""Locking conditions — the seven predicates that guard an output.

Each variant carries the data a future spender needs to prove the right to
consume the output. Composers select and parametrize these; they never
invent new kinds.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from txdraft.errors.draft_errors import InvalidArgument
from txdraft.utils.hexutil import ADDRESS_LENGTH


class LockType(enum.StrEnum):
    """Wire names of the locking condition variants."""

    SINGLE_KEY = "single_key_lock"
    MULTI_KEY = "multi_key_lock"
    CONTRACT = "contract_lock"
    DELEGATION = "delegation_lock"
    THRESHOLD = "threshold_lock"
    TIME = "time_lock"
    HEIGHT = "height_lock"


_DEFAULT_ALGORITHM = "ECDSA_SECP256K1"
_DEFAULT_CONFIRMATION_BLOCKS = 6
_DEFAULT_MAX_EXECUTION_MS = 5000
_DEFAULT_THRESHOLD_SCHEME = "BLS_THRESHOLD"


def _check_address(value: bytes, name: str) -> None:
    if len(value) != ADDRESS_LENGTH:
        msg = f"{name} must be {ADDRESS_LENGTH} bytes"
        raise InvalidArgument(msg, field=name)


class LockingCondition(ABC):
    """Base class for all locking conditions."""

    lock_type: LockType

    @abstractmethod
    def validate(self) -> None:
        """Raise :class:`InvalidArgument` if the condition is malformed."""

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ledger's DraftJSON ``locking_condition`` shape."""


@dataclass(frozen=True)
class SingleKeyLock(LockingCondition):
    """Spendable by one address."""

    required_address: bytes
    algorithm: str = _DEFAULT_ALGORITHM

    lock_type = LockType.SINGLE_KEY

    def validate(self) -> None:
        _check_address(self.required_address, "required_address")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.lock_type.value,
            "required_address": self.required_address.hex(),
            "required_algorithm": self.algorithm,
        }


@dataclass(frozen=True)
class MultiKeyLock(LockingCondition):
    """M-of-N signatures from a fixed key set."""

    required_signatures: int
    authorized_keys: tuple[bytes, ...]
    require_ordered_signatures: bool = False

    lock_type = LockType.MULTI_KEY

    def validate(self) -> None:
        if self.required_signatures <= 0:
            msg = "required_signatures must be > 0"
            raise InvalidArgument(msg, field="required_signatures")
        if not self.authorized_keys:
            msg = "authorized_keys cannot be empty"
            raise InvalidArgument(msg, field="authorized_keys")
        if self.required_signatures > len(self.authorized_keys):
            msg = "required_signatures cannot exceed authorized_keys count"
            raise InvalidArgument(msg, field="required_signatures")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.lock_type.value,
            "required_signatures": self.required_signatures,
            "authorized_keys": [k.hex() for k in self.authorized_keys],
            "required_algorithm": _DEFAULT_ALGORITHM,
            "require_ordered_signatures": self.require_ordered_signatures,
        }


@dataclass(frozen=True)
class ContractLock(LockingCondition):
    """Unlock is decided by a contract method."""

    contract_address: bytes
    required_method: str = "unlock"
    parameter_schema: str = ""
    state_requirements: tuple[str, ...] = ()
    max_execution_time_ms: int = _DEFAULT_MAX_EXECUTION_MS

    lock_type = LockType.CONTRACT

    def validate(self) -> None:
        _check_address(self.contract_address, "contract_address")
        if not self.required_method:
            msg = "required_method cannot be empty"
            raise InvalidArgument(msg, field="required_method")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.lock_type.value,
            "contract_address": self.contract_address.hex(),
            "required_method": self.required_method,
            "parameter_schema": self.parameter_schema,
            "state_requirements": list(self.state_requirements),
            "max_execution_time_ms": self.max_execution_time_ms,
        }


@dataclass(frozen=True)
class DelegationLock(LockingCondition):
    """Owner keeps the output; listed delegates may operate on it."""

    original_owner: bytes
    allowed_delegates: tuple[bytes, ...]
    authorized_operations: tuple[str, ...] = ("stake", "consume")
    expiry_duration_blocks: int = 0
    max_value_per_operation: int = 0

    lock_type = LockType.DELEGATION

    def validate(self) -> None:
        _check_address(self.original_owner, "original_owner")
        if not self.allowed_delegates:
            msg = "allowed_delegates cannot be empty"
            raise InvalidArgument(msg, field="allowed_delegates")
        for delegate in self.allowed_delegates:
            _check_address(delegate, "allowed_delegates")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.lock_type.value,
            "original_owner": self.original_owner.hex(),
            "allowed_delegates": [d.hex() for d in self.allowed_delegates],
            "authorized_operations": list(self.authorized_operations),
            "max_value_per_operation": str(self.max_value_per_operation),
        }
        if self.expiry_duration_blocks > 0:
            data["expiry_duration_blocks"] = str(self.expiry_duration_blocks)
        return data


@dataclass(frozen=True)
class ThresholdLock(LockingCondition):
    """t-of-n threshold signature over party verification keys."""

    threshold: int
    party_verification_keys: tuple[bytes, ...]
    signature_scheme: str = _DEFAULT_THRESHOLD_SCHEME

    lock_type = LockType.THRESHOLD

    @property
    def total_parties(self) -> int:
        return len(self.party_verification_keys)

    def validate(self) -> None:
        if self.threshold <= 0:
            msg = "threshold must be > 0"
            raise InvalidArgument(msg, field="threshold")
        if self.total_parties == 0:
            msg = "party_verification_keys cannot be empty"
            raise InvalidArgument(msg, field="party_verification_keys")
        if self.threshold > self.total_parties:
            msg = "threshold cannot exceed total_parties"
            raise InvalidArgument(msg, field="threshold")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.lock_type.value,
            "threshold": self.threshold,
            "total_parties": self.total_parties,
            "party_verification_keys": [k.hex() for k in self.party_verification_keys],
            "signature_scheme": self.signature_scheme,
            "security_level": 256,
        }


@dataclass(frozen=True)
class TimeLock(LockingCondition):
    """Base lock plus a block-timestamp floor."""

    unlock_timestamp: int
    base_lock: LockingCondition | None = None

    lock_type = LockType.TIME

    def validate(self) -> None:
        if self.base_lock is None:
            msg = "base_lock is required"
            raise InvalidArgument(msg, field="base_lock")
        if self.unlock_timestamp <= 0:
            msg = "unlock_timestamp must be > 0"
            raise InvalidArgument(msg, field="unlock_timestamp")
        self.base_lock.validate()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.lock_type.value,
            "unlock_timestamp": str(self.unlock_timestamp),
            "time_source": "TIME_SOURCE_BLOCK_TIMESTAMP",
            "base_lock": self.base_lock.to_dict() if self.base_lock is not None else None,
        }


@dataclass(frozen=True)
class HeightLock(LockingCondition):
    """Base lock plus a block-height floor.

    ``relative=True`` means ``unlock_height`` counts blocks from inclusion;
    the ledger converts it to an absolute height when it builds the tx.
    """

    unlock_height: int
    base_lock: LockingCondition | None = None
    confirmation_blocks: int = _DEFAULT_CONFIRMATION_BLOCKS
    relative: bool = False

    lock_type = LockType.HEIGHT

    def validate(self) -> None:
        if self.base_lock is None:
            msg = "base_lock is required"
            raise InvalidArgument(msg, field="base_lock")
        if self.unlock_height <= 0:
            msg = "unlock_height must be > 0"
            raise InvalidArgument(msg, field="unlock_height")
        self.base_lock.validate()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.lock_type.value,
            "unlock_height": str(self.unlock_height),
            "confirmation_blocks": self.confirmation_blocks,
            "base_lock": self.base_lock.to_dict() if self.base_lock is not None else None,
        }
        if self.relative:
            data["relative"] = True
        return data
