"""Error hierarchy for draft composition, signing and result extraction."""

from txdraft.errors.draft_errors import (
    Cancelled,
    CanonicalizationMismatch,
    DraftError,
    DraftFrozen,
    DuplicateSignature,
    InconsistentTokenID,
    InsufficientFunds,
    InvalidArgument,
    MalformedTransaction,
    MissingSignature,
    TransactionRejected,
    TransactionUnavailable,
)
from txdraft.errors.ledger_errors import LedgerRPCError

__all__ = [
    "Cancelled",
    "CanonicalizationMismatch",
    "DraftError",
    "DraftFrozen",
    "DuplicateSignature",
    "InconsistentTokenID",
    "InsufficientFunds",
    "InvalidArgument",
    "LedgerRPCError",
    "MalformedTransaction",
    "MissingSignature",
    "TransactionRejected",
    "TransactionUnavailable",
]
