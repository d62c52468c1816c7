"""LedgerRPC — the remote ledger capability the engine depends on.

Anything that satisfies this protocol can back the selector, the signing
coordinator and the result extractor: the JSON-RPC client in
:mod:`txdraft.ledger.service`, or an in-memory fake in tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from txdraft.engine.models.draft import TransactionDraft
    from txdraft.ledger.models import (
        FinalizedTransaction,
        SignatureEntry,
        SignatureHashResponse,
        SpendableOutput,
        SubmitResult,
    )


@runtime_checkable
class LedgerRPC(Protocol):
    """Request/response shapes exchanged with the remote ledger.

    Every method is a suspension point; callers bound them with their own
    deadline.
    """

    async def query_utxos(
        self, owner: bytes, token_id: bytes | None = None
    ) -> list[SpendableOutput]:
        """Return the spendable outputs owned by *owner*, in ledger order."""
        ...

    async def compute_signature_hash(
        self, draft: TransactionDraft, input_index: int, sighash_type: str
    ) -> SignatureHashResponse:
        """Return the sighash for one input plus the canonical unsigned tx."""
        ...

    async def finalize_transaction(
        self,
        draft: TransactionDraft,
        unsigned_tx: str,
        entries: Sequence[SignatureEntry],
    ) -> FinalizedTransaction:
        """Combine draft, canonical bytes and signatures into a signed tx."""
        ...

    async def submit_transaction(self, tx_hex: str) -> SubmitResult:
        """Broadcast a finalized transaction."""
        ...

    async def fetch_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        """Return the raw confirmed transaction, or ``None`` if not found."""
        ...

    async def block_number(self) -> int:
        """Return the current chain height."""
        ...
