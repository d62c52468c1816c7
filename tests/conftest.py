"""Shared test fixtures for the txdraft test suite."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from txdraft.engine.services.utxo_service import FeePolicy
from txdraft.errors.ledger_errors import LedgerRPCError
from txdraft.ledger.models import (
    FinalizedTransaction,
    Outpoint,
    SignatureHashResponse,
    SpendableOutput,
    SubmitResult,
)
from txdraft.utils.crypto import sha256
from txdraft.wallet.keys import Wallet, verify_hash_signature

if TYPE_CHECKING:
    from collections.abc import Sequence

    from txdraft.engine.models.draft import TransactionDraft
    from txdraft.ledger.models import SignatureEntry

SUBMITTED_HASH = "ab" * 32


class FakeLedger:
    """In-memory ledger implementing the LedgerRPC protocol.

    Sighashes are derived from the draft's canonical JSON so they change
    whenever the draft does. Finalize verifies every signature it receives.
    """

    def __init__(self) -> None:
        self.utxos: dict[bytes, list[SpendableOutput]] = {}
        self.transactions: dict[str, dict[str, Any]] = {}
        self.height: int = 100
        self.height_error: Exception | None = None
        self.unsigned_tx_overrides: dict[int, str] = {}
        self.submit_result = SubmitResult(accepted=True, tx_hash=SUBMITTED_HASH)
        self.hash_delay: float = 0.0
        self.calls: list[str] = []
        self.hash_requests: list[int] = []
        self.finalize_requests: list[tuple[str, list[SignatureEntry]]] = []
        self.submitted: list[str] = []
        self._counter = 0

    # -- Setup helpers --

    def add_utxo(
        self,
        owner: bytes,
        amount: int,
        token_id: bytes | None = None,
        *,
        tx_hash: str | None = None,
        index: int = 0,
    ) -> SpendableOutput:
        self._counter += 1
        utxo = SpendableOutput(
            outpoint=Outpoint(tx_hash or f"{self._counter:064x}", index),
            owner=owner,
            amount=amount,
            token_id=token_id,
            block_height=10,
        )
        self.utxos.setdefault(owner, []).append(utxo)
        return utxo

    # -- LedgerRPC --

    async def query_utxos(
        self, owner: bytes, token_id: bytes | None = None
    ) -> list[SpendableOutput]:
        self.calls.append("query_utxos")
        return [u for u in self.utxos.get(owner, []) if u.token_id == token_id]

    async def compute_signature_hash(
        self, draft: TransactionDraft, input_index: int, sighash_type: str
    ) -> SignatureHashResponse:
        self.calls.append("compute_signature_hash")
        self.hash_requests.append(input_index)
        if self.hash_delay:
            await asyncio.sleep(self.hash_delay)
        unsigned = self.unsigned_tx_overrides.get(input_index, sha256(draft.to_json().encode()).hex())
        digest = sha256(f"{unsigned}:{input_index}:{sighash_type}".encode())
        return SignatureHashResponse(hash=digest, unsigned_tx=unsigned)

    async def finalize_transaction(
        self,
        draft: TransactionDraft,
        unsigned_tx: str,
        entries: Sequence[SignatureEntry],
    ) -> FinalizedTransaction:
        self.calls.append("finalize_transaction")
        self.finalize_requests.append((unsigned_tx, list(entries)))
        for entry in entries:
            digest = sha256(f"{unsigned_tx}:{entry.input_index}:{entry.sighash_type}".encode())
            if not verify_hash_signature(entry.public_key, digest, entry.signature):
                raise LedgerRPCError("bad signature", method="wes_finalizeTransactionFromDraft")
        return FinalizedTransaction(tx_hex="f1" + unsigned_tx)

    async def submit_transaction(self, tx_hex: str) -> SubmitResult:
        self.calls.append("submit_transaction")
        self.submitted.append(tx_hex)
        return self.submit_result

    async def fetch_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        self.calls.append("fetch_transaction")
        return self.transactions.get(tx_hash)

    async def block_number(self) -> int:
        self.calls.append("block_number")
        if self.height_error is not None:
            raise self.height_error
        return self.height


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def wallet() -> Wallet:
    """Deterministic wallet (private key = 1)."""
    return Wallet(bytes(31) + b"\x01")


@pytest.fixture
def sender(wallet: Wallet) -> bytes:
    return wallet.address


@pytest.fixture
def zero_fee() -> FeePolicy:
    return FeePolicy(0, 1)
