"""Result extractor — business values recovered from confirmed transactions.

Two kinds of expectation are supported:

* :class:`IdentifierExpectation`: the produced identifier is the outpoint
  (or ``state_id``) of the first output of the expected type owned by the
  caller. When several outputs match, the first wins and the result is
  flagged ``ambiguous``.
* :class:`SettlementExpectation`: the settled total is the sum of the
  caller's outputs of one token. ``bonus`` is ``total - expected_amount``
  and is a derived approximation, not a ledger field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from txdraft.engine.models.draft import OutputType
from txdraft.errors.draft_errors import MalformedTransaction, TransactionUnavailable
from txdraft.errors.ledger_errors import LedgerRPCError
from txdraft.ledger.models import parse_transaction
from txdraft.utils.hexutil import require_address, strip_0x

if TYPE_CHECKING:
    from txdraft.ledger.base import LedgerRPC
    from txdraft.ledger.models import ConfirmedTransaction, Outpoint, ParsedOutput

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Expectations / results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IdentifierExpectation:
    owner: bytes
    output_type: OutputType | str = OutputType.ASSET
    lock_type: str = ""


@dataclass(frozen=True)
class SettlementExpectation:
    owner: bytes
    token_id: bytes | None = None
    expected_amount: int | None = None


@dataclass(frozen=True)
class IdentifierResult:
    """Identifier of a produced output.

    Attributes:
        identifier: ``state_id`` hex when the output has one, else the
            outpoint string.
        outpoint: Outpoint of the chosen output.
        state_id: State id of the chosen output, if any.
        candidates: Number of outputs that matched.
        ambiguous: ``True`` if more than one output matched.
    """

    identifier: str
    outpoint: Outpoint
    state_id: bytes | None
    candidates: int
    ambiguous: bool


@dataclass(frozen=True)
class SettlementResult:
    """Amount settled to the caller.

    ``bonus`` is derived by subtraction from ``expected_amount`` and is
    best-effort; ``bonus_is_derived`` is always ``True``.
    """

    total: int
    bonus: int = 0
    outputs: tuple[Outpoint, ...] = ()
    bonus_is_derived: bool = True


Expectation = IdentifierExpectation | SettlementExpectation
BusinessResult = IdentifierResult | SettlementResult


# ---------------------------------------------------------------------------
# Pure extraction
# ---------------------------------------------------------------------------


def extract_identifier(tx: ConfirmedTransaction, expectation: IdentifierExpectation) -> IdentifierResult:
    """Pick the identifier output from an already-parsed transaction.

    Raises:
        MalformedTransaction: If no output matches.
    """
    owner = require_address(expectation.owner, "owner")
    wanted = str(expectation.output_type)
    candidates: list[ParsedOutput] = [
        o
        for o in tx.outputs
        if o.output_type == wanted
        and o.owner == owner
        and (not expectation.lock_type or expectation.lock_type in o.lock_types)
    ]
    if not candidates:
        msg = f"no {wanted} output owned by {owner.hex()}"
        raise MalformedTransaction(msg, tx_hash=tx.tx_hash)

    chosen = candidates[0]
    if len(candidates) > 1:
        logger.warning(
            "%d %s outputs owned by %s in %s, using output %d",
            len(candidates),
            wanted,
            owner.hex(),
            tx.tx_hash,
            chosen.index,
        )
    identifier = chosen.state_id.hex() if chosen.state_id else str(chosen.outpoint)
    return IdentifierResult(
        identifier=identifier,
        outpoint=chosen.outpoint,
        state_id=chosen.state_id,
        candidates=len(candidates),
        ambiguous=len(candidates) > 1,
    )


def extract_settlement(tx: ConfirmedTransaction, expectation: SettlementExpectation) -> SettlementResult:
    """Sum the caller's outputs of one token."""
    owner = require_address(expectation.owner, "owner")
    matched = [
        o
        for o in tx.outputs
        if o.output_type == OutputType.ASSET
        and o.owner == owner
        and o.token_id == expectation.token_id
    ]
    total = sum(o.amount for o in matched)
    bonus = 0
    if expectation.expected_amount is not None and total > expectation.expected_amount:
        bonus = total - expectation.expected_amount
    return SettlementResult(
        total=total,
        bonus=bonus,
        outputs=tuple(o.outpoint for o in matched),
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ResultExtractor:
    """Fetches a confirmed transaction and extracts a business result.

    Usage::

        extractor = ResultExtractor(ledger)
        result = await extractor.extract(tx_hash, IdentifierExpectation(staker))
    """

    def __init__(self, ledger: LedgerRPC) -> None:
        self._ledger = ledger

    async def fetch(self, tx_hash: str) -> ConfirmedTransaction:
        """Fetch and parse *tx_hash*.

        Raises:
            TransactionUnavailable: If the ledger has no such transaction
                or the fetch fails.
            MalformedTransaction: If the result cannot be parsed.
        """
        clean = strip_0x(tx_hash)
        try:
            data = await self._ledger.fetch_transaction(clean)
        except LedgerRPCError as exc:
            raise TransactionUnavailable(clean, reason=exc.message) from exc
        if data is None:
            raise TransactionUnavailable(clean)
        return parse_transaction(data, clean)

    async def extract(self, tx_hash: str, expectation: Expectation) -> BusinessResult:
        tx = await self.fetch(tx_hash)
        if isinstance(expectation, IdentifierExpectation):
            return extract_identifier(tx, expectation)
        return extract_settlement(tx, expectation)
