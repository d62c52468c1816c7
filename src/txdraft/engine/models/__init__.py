"""Draft data model: inputs, typed outputs and locking conditions."""

from txdraft.engine.models.draft import (
    AssetOutput,
    Input,
    InputMode,
    Output,
    OutputType,
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

__all__ = [
    "AssetOutput",
    "ContractLock",
    "DelegationLock",
    "HeightLock",
    "Input",
    "InputMode",
    "LockType",
    "LockingCondition",
    "MultiKeyLock",
    "Output",
    "OutputType",
    "ResourceOutput",
    "SingleKeyLock",
    "StateOutput",
    "ThresholdLock",
    "TimeLock",
    "TransactionDraft",
]
