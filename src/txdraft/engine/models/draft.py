"""TransactionDraft — inputs, typed outputs and metadata before signing.

A draft is sent to the ledger for sighash computation and, after signing,
for finalization. Its serialized form is its identity: once the first hash
has been requested the draft is frozen and every mutator raises
:class:`DraftFrozen`. Start over with :meth:`TransactionDraft.copy`.
"""

from __future__ import annotations

import copy as _copy
import enum
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from txdraft.errors.draft_errors import DraftFrozen
from txdraft.utils.crypto import sha256
from txdraft.utils.hexutil import require_address, require_identifier

if TYPE_CHECKING:
    from txdraft.engine.models.locking import LockingCondition
    from txdraft.ledger.models import Outpoint

SIGN_MODE_DEFER = "defer_sign"


class InputMode(enum.StrEnum):
    """How an input uses the output it points at."""

    CONSUME = "consume"
    REFERENCE = "reference"


class OutputType(enum.StrEnum):
    ASSET = "asset"
    STATE = "state"
    RESOURCE = "resource"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Input:
    """One draft input. Its position in the draft is its ``input_index``."""

    outpoint: Outpoint
    amount: int = 0
    mode: InputMode = InputMode.CONSUME
    token_id: bytes | None = None

    @property
    def is_reference_only(self) -> bool:
        return self.mode is InputMode.REFERENCE

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.outpoint.tx_hash,
            "output_index": self.outpoint.output_index,
            "is_reference_only": self.is_reference_only,
        }


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetOutput:
    """Value-bearing output."""

    owner: bytes
    amount: int
    token_id: bytes | None = None
    locking_condition: LockingCondition | None = None

    output_type = OutputType.ASSET

    def __post_init__(self) -> None:
        require_address(self.owner, "owner")
        if self.token_id is not None:
            require_identifier(self.token_id, "token_id")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.output_type.value,
            "owner": self.owner.hex(),
            "amount": str(self.amount),
        }
        if self.token_id is not None:
            data["token_id"] = self.token_id.hex()
        if self.locking_condition is not None:
            data["locking_condition"] = self.locking_condition.to_dict()
        return data


@dataclass(frozen=True)
class StateOutput:
    """Opaque state record (proposal, vote...).

    ``payload`` is carried as the record's data; ``payload_hash`` is its
    SHA-256.
    """

    owner: bytes
    state_id: bytes
    payload: bytes = b""
    state_version: int = 1
    locking_condition: LockingCondition | None = None

    output_type = OutputType.STATE

    def __post_init__(self) -> None:
        require_address(self.owner, "owner")
        require_identifier(self.state_id, "state_id")

    @property
    def payload_hash(self) -> bytes:
        return sha256(self.payload)

    @property
    def amount(self) -> int:
        return 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.output_type.value,
            "owner": self.owner.hex(),
            "amount": "0",
            "metadata": {
                "state_id": self.state_id.hex(),
                "state_version": self.state_version,
                "payload_hash": self.payload_hash.hex(),
            },
            "data": self.payload.decode("utf-8", errors="replace"),
        }
        if self.locking_condition is not None:
            data["locking_condition"] = self.locking_condition.to_dict()
        return data


@dataclass(frozen=True)
class ResourceOutput:
    """Reference to a deployed immutable artifact."""

    owner: bytes
    content_hash: bytes
    name: str = ""
    mime_type: str = ""
    locking_condition: LockingCondition | None = None

    output_type = OutputType.RESOURCE

    def __post_init__(self) -> None:
        require_address(self.owner, "owner")
        require_identifier(self.content_hash, "content_hash")

    @property
    def amount(self) -> int:
        return 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.output_type.value,
            "owner": self.owner.hex(),
            "amount": "0",
            "content_hash": self.content_hash.hex(),
        }
        metadata = {k: v for k, v in (("name", self.name), ("mime_type", self.mime_type)) if v}
        if metadata:
            data["metadata"] = metadata
        if self.locking_condition is not None:
            data["locking_condition"] = self.locking_condition.to_dict()
        return data


Output = AssetOutput | StateOutput | ResourceOutput


# ---------------------------------------------------------------------------
# Draft
# ---------------------------------------------------------------------------


@dataclass
class TransactionDraft:
    """Mutable until the first sighash request, frozen after.

    Attributes:
        caller: 20-byte address of the party composing the draft.
        inputs: Inputs in ``input_index`` order.
        outputs: Outputs in output order.
        metadata: Extra draft metadata (``caller_address`` is always set).
        fee: Fee retained by the ledger, recorded for local balance checks.
        sign_mode: Ledger signing mode.
    """

    caller: bytes
    inputs: list[Input] = field(default_factory=list)
    outputs: list[Output] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    fee: int = 0
    sign_mode: str = SIGN_MODE_DEFER
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        require_address(self.caller, "caller")

    # -- Mutators --

    def _check_mutable(self) -> None:
        if self._frozen:
            raise DraftFrozen

    def add_input(self, item: Input) -> int:
        """Append an input and return its ``input_index``."""
        self._check_mutable()
        self.inputs.append(item)
        return len(self.inputs) - 1

    def add_output(self, output: Output) -> int:
        """Append an output and return its index."""
        self._check_mutable()
        self.outputs.append(output)
        return len(self.outputs) - 1

    def set_metadata(self, key: str, value: Any) -> None:
        self._check_mutable()
        self.metadata[key] = value

    def set_fee(self, fee: int) -> None:
        self._check_mutable()
        self.fee = fee

    # -- Freeze --

    def freeze(self) -> None:
        """Freeze the draft; idempotent."""
        self._frozen = True

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def copy(self) -> TransactionDraft:
        """Return an unfrozen draft with the same content."""
        return TransactionDraft(
            caller=self.caller,
            inputs=list(self.inputs),
            outputs=list(self.outputs),
            metadata=_copy.deepcopy(self.metadata),
            fee=self.fee,
            sign_mode=self.sign_mode,
        )

    # -- Queries --

    def consumed_indices(self) -> list[int]:
        """``input_index`` of every consume-mode input, ascending."""
        return [i for i, item in enumerate(self.inputs) if item.mode is InputMode.CONSUME]

    def total_input(self, token_id: bytes | None = None) -> int:
        return sum(
            item.amount
            for item in self.inputs
            if item.mode is InputMode.CONSUME and item.token_id == token_id
        )

    def total_output(self, token_id: bytes | None = None) -> int:
        return sum(
            o.amount for o in self.outputs if isinstance(o, AssetOutput) and o.token_id == token_id
        )

    def is_balanced(self, token_id: bytes | None = None) -> bool:
        """Check ``sum(outputs) + fee == sum(inputs)`` for *token_id*."""
        return self.total_output(token_id) + self.fee == self.total_input(token_id)

    # -- Serialization --

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ledger's DraftJSON shape."""
        metadata = dict(self.metadata)
        metadata["caller_address"] = self.caller.hex()
        return {
            "sign_mode": self.sign_mode,
            "inputs": [item.to_dict() for item in self.inputs],
            "outputs": [o.to_dict() for o in self.outputs],
            "metadata": metadata,
        }

    def to_json(self) -> str:
        """Deterministic JSON: sorted keys, compact separators."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    def fingerprint(self) -> bytes:
        """SHA-256 over :meth:`to_json`."""
        return sha256(self.to_json().encode("utf-8"))
