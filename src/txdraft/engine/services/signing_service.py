"""Signature protocol coordinator — hash, sign, finalize, submit.

Drives one draft through::

    COMPOSED -> HASH_REQUESTED -> HASH_RECEIVED -> SIGNED
             -> FINALIZE_REQUESTED -> FINALIZED -> SUBMITTED

The draft is frozen on the first hash request. The canonical unsigned
transaction the ledger returns must be identical for every input of the
draft and is handed back to finalize untouched. Only ``hash -> signature``
crosses the wallet boundary.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from txdraft.config.settings import SighashType
from txdraft.errors.draft_errors import (
    CanonicalizationMismatch,
    DraftError,
    DraftFrozen,
    DuplicateSignature,
    InvalidArgument,
    MissingSignature,
    TransactionRejected,
)
from txdraft.ledger.models import SignatureEntry

if TYPE_CHECKING:
    from collections.abc import Coroutine, Iterable, Sequence

    from txdraft.engine.models.draft import TransactionDraft
    from txdraft.ledger.base import LedgerRPC
    from txdraft.ledger.models import FinalizedTransaction, SubmitResult
    from txdraft.wallet.keys import Signer

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_all(coros: Iterable[Coroutine[Any, Any, T]]) -> list[T]:
    """Run *coros* concurrently and return their results in order.

    The first failure cancels the others and is re-raised as itself.
    """
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(coro) for coro in coros]
    except ExceptionGroup as exc_group:
        raise exc_group.exceptions[0] from None
    return [task.result() for task in tasks]


class DraftState(enum.StrEnum):
    """Signing lifecycle of one draft."""

    COMPOSED = "composed"
    HASH_REQUESTED = "hash_requested"
    HASH_RECEIVED = "hash_received"
    SIGNED = "signed"
    FINALIZE_REQUESTED = "finalize_requested"
    FINALIZED = "finalized"
    SUBMITTED = "submitted"
    FAILED = "failed"


@dataclass
class SigningSession:
    """State of one draft's hash -> sign -> finalize exchange.

    A session is single-use. After a failure, recompose and start a new one.
    """

    draft: TransactionDraft
    state: DraftState = DraftState.COMPOSED
    fingerprint: bytes = b""
    unsigned_tx: str = ""
    hashes: dict[int, bytes] = field(default_factory=dict)
    entries: dict[int, SignatureEntry] = field(default_factory=dict)
    finalized: FinalizedTransaction | None = None
    result: SubmitResult | None = None

    def require_state(self, *allowed: DraftState) -> None:
        if self.state not in allowed:
            expected = ", ".join(s.value for s in allowed)
            msg = f"session is {self.state.value}, expected one of: {expected}"
            raise InvalidArgument(msg, field="state")


class SignatureCoordinator:
    """Runs the signing protocol for drafts against a :class:`LedgerRPC`.

    Usage::

        coordinator = SignatureCoordinator(ledger)
        session = await coordinator.run(composed.draft, composed.input_indices, wallet)
    """

    def __init__(
        self,
        ledger: LedgerRPC,
        *,
        sighash_type: SighashType | str = SighashType.ALL,
        parallel: bool = False,
    ) -> None:
        """Initialize the coordinator.

        Args:
            ledger: Remote ledger capability.
            sighash_type: Sighash scope requested for every input.
            parallel: Request hashes concurrently for multi-input drafts.
                Finalize always waits for every input.
        """
        self._ledger = ledger
        self._sighash_type = SighashType(sighash_type)
        self._parallel = parallel

    @property
    def sighash_type(self) -> SighashType:
        return self._sighash_type

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def start(self, draft: TransactionDraft) -> SigningSession:
        return SigningSession(draft=draft)

    async def request_hashes(
        self, session: SigningSession, indices: Iterable[int] | None = None
    ) -> dict[int, bytes]:
        """Obtain sighashes for *indices* (all consumed inputs by default).

        Raises:
            InvalidArgument: On an index that is not a consumed input.
            CanonicalizationMismatch: If the ledger returns different
                canonical bytes for two inputs of the same draft.
        """
        session.require_state(DraftState.COMPOSED)
        draft = session.draft
        consumed = set(draft.consumed_indices())
        wanted = sorted(consumed if indices is None else set(indices))
        if not wanted:
            msg = "draft has no consumed inputs to sign"
            raise InvalidArgument(msg, field="input_indices")
        for index in wanted:
            if index not in consumed:
                msg = f"input {index} is not a consumed input of the draft"
                raise InvalidArgument(msg, field="input_indices")

        draft.freeze()
        session.fingerprint = draft.fingerprint()
        session.state = DraftState.HASH_REQUESTED

        try:
            if self._parallel and len(wanted) > 1:
                responses = await _run_all(
                    self._ledger.compute_signature_hash(draft, i, self._sighash_type.value)
                    for i in wanted
                )
            else:
                responses = [
                    await self._ledger.compute_signature_hash(draft, i, self._sighash_type.value)
                    for i in wanted
                ]
        except BaseException:
            session.state = DraftState.FAILED
            raise

        for index, response in zip(wanted, responses, strict=True):
            if not session.unsigned_tx:
                session.unsigned_tx = response.unsigned_tx
            elif response.unsigned_tx != session.unsigned_tx:
                session.state = DraftState.FAILED
                logger.error(
                    "Canonical unsigned tx differs for input %d (fingerprint %s)",
                    index,
                    session.fingerprint.hex(),
                )
                raise CanonicalizationMismatch(index)
            session.hashes[index] = response.hash

        session.state = DraftState.HASH_RECEIVED
        return dict(session.hashes)

    async def sign(self, session: SigningSession, signer: Signer) -> list[SignatureEntry]:
        """Sign every received hash with *signer*."""
        session.require_state(DraftState.HASH_RECEIVED)
        public_key = signer.public_key

        def _sign(index: int) -> SignatureEntry:
            return SignatureEntry(
                input_index=index,
                sighash_type=self._sighash_type.value,
                public_key=public_key,
                signature=signer.sign_hash(session.hashes[index]),
            )

        indices = sorted(session.hashes)
        if self._parallel and len(indices) > 1:
            entries = await _run_all(asyncio.to_thread(_sign, i) for i in indices)
        else:
            entries = [_sign(i) for i in indices]

        for entry in entries:
            session.entries[entry.input_index] = entry
        session.state = DraftState.SIGNED
        return list(entries)

    def check_entries(
        self, draft: TransactionDraft, entries: Sequence[SignatureEntry]
    ) -> list[SignatureEntry]:
        """Require exactly one entry per consumed input.

        Returns:
            The entries ordered by ``input_index``.

        Raises:
            InvalidArgument: On an ``input_index`` that is not consumed.
            MissingSignature: For the lowest consumed index without an entry,
                or as :class:`DuplicateSignature` for an index signed twice.
        """
        consumed = draft.consumed_indices()
        by_index: dict[int, SignatureEntry] = {}
        for entry in entries:
            if entry.input_index in by_index:
                raise DuplicateSignature(entry.input_index)
            if entry.input_index not in consumed:
                msg = f"signature for input {entry.input_index} which is not consumed"
                raise InvalidArgument(msg, field="signatures")
            by_index[entry.input_index] = entry
        for index in consumed:
            if index not in by_index:
                raise MissingSignature(index)
        return [by_index[i] for i in consumed]

    async def finalize(
        self,
        session: SigningSession,
        entries: Sequence[SignatureEntry] | None = None,
    ) -> FinalizedTransaction:
        """Finalize the draft with its signature entries.

        Args:
            session: A session in the ``SIGNED`` state (or ``HASH_RECEIVED``
                when *entries* come from an external signer).
            entries: Explicit entries, in any order. Defaults to the
                session's own.

        Raises:
            MissingSignature: If a consumed input has no entry.
            DraftFrozen: If the draft changed since the hash request.
        """
        session.require_state(DraftState.SIGNED, DraftState.HASH_RECEIVED)
        provided = list(session.entries.values()) if entries is None else list(entries)
        try:
            ordered = self.check_entries(session.draft, provided)
        except DraftError as exc:
            logger.error("Finalize refused: %s", exc.message)
            raise
        if session.draft.fingerprint() != session.fingerprint:
            session.state = DraftState.FAILED
            logger.error("Draft changed after its signature hashes were computed")
            raise DraftFrozen("draft changed after signature hashes were computed")

        session.state = DraftState.FINALIZE_REQUESTED
        try:
            finalized = await self._ledger.finalize_transaction(
                session.draft, session.unsigned_tx, ordered
            )
        except BaseException:
            session.state = DraftState.FAILED
            raise
        session.finalized = finalized
        session.state = DraftState.FINALIZED
        return finalized

    async def submit(self, session: SigningSession) -> SubmitResult:
        """Submit the finalized transaction. Rejection is terminal.

        Raises:
            TransactionRejected: If the ledger does not accept it.
        """
        session.require_state(DraftState.FINALIZED)
        finalized = session.finalized
        if finalized is None:
            msg = "session has no finalized transaction"
            raise InvalidArgument(msg, field="state")
        try:
            result = await self._ledger.submit_transaction(finalized.tx_hex)
        except BaseException:
            session.state = DraftState.FAILED
            raise
        session.result = result
        if not result.accepted:
            session.state = DraftState.FAILED
            raise TransactionRejected(result.reason or "rejected", tx_hash=result.tx_hash)
        session.state = DraftState.SUBMITTED
        logger.info("Submitted transaction %s", result.tx_hash)
        return result

    async def run(
        self,
        draft: TransactionDraft,
        indices: Iterable[int] | None,
        signer: Signer,
        *,
        submit: bool = True,
    ) -> SigningSession:
        """Run every step in order and return the finished session."""
        session = self.start(draft)
        await self.request_hashes(session, indices)
        await self.sign(session, signer)
        await self.finalize(session)
        if submit:
            await self.submit(session)
        return session
