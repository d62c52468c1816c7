"""Remote ledger boundary: capability protocol, JSON-RPC client and wire models."""

from txdraft.ledger.base import LedgerRPC
from txdraft.ledger.models import (
    ConfirmedTransaction,
    FinalizedTransaction,
    Outpoint,
    ParsedInput,
    ParsedOutput,
    SignatureEntry,
    SignatureHashResponse,
    SpendableOutput,
    SubmitResult,
    parse_transaction,
)
from txdraft.ledger.service import LedgerRPCService

__all__ = [
    "ConfirmedTransaction",
    "FinalizedTransaction",
    "LedgerRPC",
    "LedgerRPCService",
    "Outpoint",
    "ParsedInput",
    "ParsedOutput",
    "SignatureEntry",
    "SignatureHashResponse",
    "SpendableOutput",
    "SubmitResult",
    "parse_transaction",
]
