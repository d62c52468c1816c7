"""Ledger data models — outpoints, UTXOs, signing exchange and parsed transactions.

Data classes representing the remote ledger's request/response objects.
Binary fields are ``bytes`` in memory and hex (or base64, for owners in
fetched transactions) on the wire.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any

from txdraft.errors.draft_errors import InvalidArgument, MalformedTransaction
from txdraft.utils.hexutil import ADDRESS_LENGTH, from_hex, strip_0x, to_hex

logger = logging.getLogger(__name__)


def _parse_int(value: Any) -> int:
    """Parse a ledger integer: JSON number, decimal string or ``0x`` hex string."""
    if isinstance(value, bool):
        msg = f"invalid integer: {value!r}"
        raise ValueError(msg)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if text[:2].lower() == "0x":
        return int(text[2:], 16)
    return int(text, 10)


# ---------------------------------------------------------------------------
# Outpoint / SpendableOutput
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Outpoint:
    """Unique reference to one prior output: ``(tx_hash, output_index)``.

    Attributes:
        tx_hash: Transaction hash (hex, no ``0x``).
        output_index: Position of the output within that transaction.
    """

    tx_hash: str
    output_index: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "tx_hash", strip_0x(self.tx_hash).lower())
        if self.output_index < 0:
            msg = "output_index must be >= 0"
            raise InvalidArgument(msg, field="output_index")

    @classmethod
    def parse(cls, value: str) -> Outpoint:
        """Parse the ``"<hash>:<index>"`` form.

        Raises:
            InvalidArgument: If *value* is not in that form.
        """
        tx_hash, sep, index = value.rpartition(":")
        if not sep or not tx_hash:
            msg = f"invalid outpoint: {value!r}"
            raise InvalidArgument(msg, field="outpoint")
        try:
            output_index = int(index, 10)
        except ValueError as exc:
            msg = f"invalid outpoint index: {value!r}"
            raise InvalidArgument(msg, field="outpoint") from exc
        return cls(tx_hash=tx_hash, output_index=output_index)

    def __str__(self) -> str:
        return f"{self.tx_hash}:{self.output_index}"


@dataclass(frozen=True)
class SpendableOutput:
    """An unspent output owned by an address.

    ``token_id`` of ``None`` denotes the native asset.
    """

    outpoint: Outpoint
    owner: bytes
    amount: int
    token_id: bytes | None = None
    block_height: int = 0

    @property
    def is_native(self) -> bool:
        return self.token_id is None

    @classmethod
    def from_dict(cls, data: dict[str, Any], owner: bytes) -> SpendableOutput:
        """Create from a ``wes_getUTXO`` item.

        Raises:
            ValueError: On a missing or unparseable amount/outpoint.
        """
        raw_amount = data.get("amount")
        if raw_amount in (None, ""):
            msg = "utxo has no amount"
            raise ValueError(msg)
        outpoint_str = data.get("outpoint", "")
        try:
            outpoint = Outpoint.parse(outpoint_str)
        except InvalidArgument as exc:
            raise ValueError(exc.message) from exc
        token_hex = data.get("tokenID", data.get("token_id")) or ""
        height = data.get("height", data.get("block_height", 0)) or 0
        return cls(
            outpoint=outpoint,
            owner=owner,
            amount=_parse_int(raw_amount),
            token_id=from_hex(token_hex) if token_hex else None,
            block_height=_parse_int(height),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "outpoint": str(self.outpoint),
            "amount": str(self.amount),
            "height": hex(self.block_height),
        }
        if self.token_id is not None:
            data["tokenID"] = self.token_id.hex()
        return data


# ---------------------------------------------------------------------------
# Signing exchange
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignatureHashResponse:
    """``wes_computeSignatureHashFromDraft`` result.

    ``unsigned_tx`` is the ledger's canonical unsigned transaction (hex) and
    must be handed back unmodified at finalize.
    """

    hash: bytes
    unsigned_tx: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignatureHashResponse:
        hash_hex = data.get("hash", "")
        unsigned_tx = data.get("unsignedTx", data.get("unsigned_tx", ""))
        if not hash_hex or not unsigned_tx:
            msg = "signature hash response is missing hash or unsignedTx"
            raise ValueError(msg)
        return cls(hash=from_hex(hash_hex), unsigned_tx=strip_0x(unsigned_tx))


@dataclass(frozen=True)
class SignatureEntry:
    """One signature over one consumed input."""

    input_index: int
    sighash_type: str
    public_key: bytes
    signature: bytes

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_index": self.input_index,
            "sighash_type": self.sighash_type,
            "pubkey": to_hex(self.public_key, prefix=True),
            "signature": to_hex(self.signature, prefix=True),
        }


@dataclass(frozen=True)
class FinalizedTransaction:
    """Opaque signed transaction bytes (hex), submittable once."""

    tx_hex: str

    @property
    def raw(self) -> bytes:
        return from_hex(self.tx_hex)


@dataclass(frozen=True)
class SubmitResult:
    """``wes_sendRawTransaction`` outcome."""

    accepted: bool
    tx_hash: str = ""
    reason: str = ""

    @classmethod
    def from_result(cls, result: Any) -> SubmitResult:
        """Accept both the object form and the bare tx-hash string form."""
        if isinstance(result, str):
            return cls(accepted=True, tx_hash=strip_0x(result))
        if not isinstance(result, dict):
            msg = f"unexpected submit result: {result!r}"
            raise ValueError(msg)
        tx_hash = result.get("tx_hash", result.get("txHash", ""))
        return cls(
            accepted=bool(result.get("accepted", bool(tx_hash))),
            tx_hash=strip_0x(tx_hash),
            reason=result.get("reason", ""),
        )


# ---------------------------------------------------------------------------
# Confirmed transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedInput:
    outpoint: Outpoint
    is_reference: bool = False


@dataclass(frozen=True)
class ParsedOutput:
    """One output of a confirmed transaction, classified by type and owner.

    Attributes:
        index: Position in the output list.
        output_type: ``asset``, ``state``, ``resource``, ``contract`` or ``unknown``.
        owner: 20-byte owner, or ``None`` if the ledger gave none.
        amount: Asset amount (0 for non-asset outputs).
        token_id: Fungible class id, ``None`` for native coin.
        state_id: State identifier for state outputs.
        state_data: Execution-result hash for state outputs.
        lock_types: Wire names of the output's locking conditions.
        outpoint: Outpoint that identifies this output.
    """

    index: int
    output_type: str
    outpoint: Outpoint
    owner: bytes | None = None
    amount: int = 0
    token_id: bytes | None = None
    state_id: bytes | None = None
    state_data: bytes | None = None
    lock_types: tuple[str, ...] = ()


@dataclass
class ConfirmedTransaction:
    """Parsed ``wes_getTransactionByHash`` result."""

    tx_hash: str
    status: str = "confirmed"
    block_height: int = 0
    block_hash: str = ""
    tx_index: int = 0
    inputs: list[ParsedInput] = field(default_factory=list)
    outputs: list[ParsedOutput] = field(default_factory=list)

    def outputs_by_owner(self, owner: bytes) -> list[ParsedOutput]:
        return [o for o in self.outputs if o.owner is not None and o.owner == owner]

    def outputs_by_type(self, output_type: str) -> list[ParsedOutput]:
        return [o for o in self.outputs if o.output_type == output_type]


def parse_owner(value: str) -> bytes | None:
    """Decode an output owner given as base64 (ledger native) or hex."""
    if not value:
        return None
    try:
        raw = base64.b64decode(value, validate=True)
        if len(raw) == ADDRESS_LENGTH:
            return raw
    except binascii.Error:
        pass
    try:
        raw = from_hex(value)
    except ValueError:
        return None
    return raw if len(raw) == ADDRESS_LENGTH else None


def _decode_hex_field(value: Any, name: str, tx_hash: str) -> bytes | None:
    if not value:
        return None
    try:
        return from_hex(str(value))
    except ValueError as exc:
        msg = f"output field {name} is not hex"
        raise MalformedTransaction(msg, tx_hash=tx_hash) from exc


def _lock_types(output: dict[str, Any]) -> tuple[str, ...]:
    conditions = output.get("locking_conditions") or []
    names: list[str] = []
    for cond in conditions:
        if not isinstance(cond, dict):
            continue
        if "type" in cond:
            names.append(str(cond["type"]))
        elif len(cond) == 1:
            names.append(next(iter(cond)))
    return tuple(names)


def _parse_output(idx: int, item: Any, tx_hash: str) -> ParsedOutput:
    if not isinstance(item, dict):
        msg = f"output {idx} is not an object"
        raise MalformedTransaction(msg, tx_hash=tx_hash)

    outpoint = Outpoint(tx_hash=tx_hash, output_index=idx)
    owner = parse_owner(item.get("owner", ""))
    lock_types = _lock_types(item)

    if isinstance(item.get("asset"), dict):
        asset = item["asset"]
        amount = 0
        token_id = None
        coin = asset.get("native_coin")
        token = asset.get("contract_token")
        source = coin if isinstance(coin, dict) else token if isinstance(token, dict) else {}
        raw_amount = source.get("amount")
        if raw_amount not in (None, ""):
            try:
                amount = _parse_int(raw_amount)
            except ValueError as exc:
                msg = f"output {idx} has an unparseable amount"
                raise MalformedTransaction(msg, tx_hash=tx_hash) from exc
        if isinstance(token, dict):
            token_id = _decode_hex_field(token.get("fungible_class_id"), "fungible_class_id", tx_hash)
        return ParsedOutput(
            index=idx,
            output_type="asset",
            outpoint=outpoint,
            owner=owner,
            amount=amount,
            token_id=token_id,
            lock_types=lock_types,
        )

    if isinstance(item.get("state"), dict):
        state = item["state"]
        return ParsedOutput(
            index=idx,
            output_type="state",
            outpoint=outpoint,
            owner=owner,
            state_id=_decode_hex_field(state.get("state_id"), "state_id", tx_hash),
            state_data=_decode_hex_field(
                state.get("execution_result_hash"), "execution_result_hash", tx_hash
            ),
            lock_types=lock_types,
        )

    for kind in ("resource", "contract"):
        if isinstance(item.get(kind), dict):
            return ParsedOutput(
                index=idx, output_type=kind, outpoint=outpoint, owner=owner, lock_types=lock_types
            )

    logger.debug("Output %d of %s has no known type", idx, tx_hash)
    return ParsedOutput(
        index=idx, output_type="unknown", outpoint=outpoint, owner=owner, lock_types=lock_types
    )


def parse_transaction(data: Any, tx_hash: str = "") -> ConfirmedTransaction:
    """Parse a ``wes_getTransactionByHash`` result into a :class:`ConfirmedTransaction`.

    Args:
        data: Decoded JSON result.
        tx_hash: Hash the caller asked for; used for outpoints when the
            result carries none.

    Raises:
        MalformedTransaction: If the structure cannot be interpreted.
    """
    if not isinstance(data, dict):
        msg = "transaction result is not an object"
        raise MalformedTransaction(msg, tx_hash=tx_hash)

    clean_hash = strip_0x(tx_hash or data.get("hash", "")).lower()
    raw_outputs = data.get("outputs")
    if not isinstance(raw_outputs, list):
        msg = "transaction has no output list"
        raise MalformedTransaction(msg, tx_hash=clean_hash)

    inputs: list[ParsedInput] = []
    for item in data.get("inputs") or []:
        prev = item.get("previous_output") if isinstance(item, dict) else None
        if not isinstance(prev, dict):
            continue
        try:
            outpoint = Outpoint(
                tx_hash=str(prev.get("tx_id", "")),
                output_index=_parse_int(prev.get("output_index", 0)),
            )
        except (ValueError, InvalidArgument) as exc:
            msg = "transaction input has an invalid previous output"
            raise MalformedTransaction(msg, tx_hash=clean_hash) from exc
        inputs.append(ParsedInput(outpoint=outpoint, is_reference=bool(item.get("is_reference_only"))))

    outputs = [_parse_output(idx, item, clean_hash) for idx, item in enumerate(raw_outputs)]

    def _opt_int(key: str) -> int:
        value = data.get(key)
        if value in (None, ""):
            return 0
        try:
            return _parse_int(value)
        except ValueError as exc:
            msg = f"transaction field {key} is not an integer"
            raise MalformedTransaction(msg, tx_hash=clean_hash) from exc

    return ConfirmedTransaction(
        tx_hash=clean_hash,
        status=data.get("status") or "confirmed",
        block_height=_opt_int("blockHeight"),
        block_hash=data.get("blockHash", ""),
        tx_index=_opt_int("transactionIndex"),
        inputs=inputs,
        outputs=outputs,
    )
