"""DraftError — base exception class and structured errors for txdraft.

Errors fall into five groups:

* input errors (``InvalidArgument``, ``InconsistentTokenID``, ``DraftFrozen``)
  are caller mistakes, detected before any ledger call and never retried;
* resource errors (``InsufficientFunds``) are detected after the UTXO query;
* protocol errors (``CanonicalizationMismatch``, ``MissingSignature`` and
  its ``DuplicateSignature`` variant) signal client/ledger drift and are
  hard failures;
* ledger outcomes (``TransactionRejected``, ``TransactionUnavailable``,
  ``MalformedTransaction``);
* interruption (``Cancelled``).

Transport failures live in :mod:`txdraft.errors.ledger_errors`.
"""

from __future__ import annotations

from typing import Any


class DraftError(Exception):
    """Base error for all draft, signing and extraction operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "draft-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def context(self) -> dict[str, Any]:
        """Structured fields a caller can act on (overridden by subclasses)."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict."""
        return {"code": self.code, "message": self.message, **self.context()}


# -- Input -----------------------------------------------------------------


class InvalidArgument(DraftError):
    """A parameter failed validation (length, zero amount, bad lock...)."""

    def __init__(self, message: str, *, field: str = "") -> None:
        super().__init__(message, status_code=400, code="invalid-argument")
        self.field = field

    def context(self) -> dict[str, Any]:
        return {"field": self.field} if self.field else {}


class InconsistentTokenID(DraftError):
    """A batch operation mixes more than one token class."""

    def __init__(self, first: str, second: str) -> None:
        super().__init__(
            f"all items must use the same token id, found {first} and {second}",
            status_code=400,
            code="inconsistent-token-id",
        )
        self.first = first
        self.second = second

    def context(self) -> dict[str, Any]:
        return {"first": self.first, "second": self.second}


class DraftFrozen(DraftError):
    """A draft was mutated after its first signature-hash request."""

    def __init__(self, message: str = "draft is frozen after hash computation") -> None:
        super().__init__(message, status_code=409, code="draft-frozen")


# -- Resource --------------------------------------------------------------


class InsufficientFunds(DraftError):
    """Owned outputs for the requested token cannot cover amount + fee.

    ``required`` is the requested amount; the fee it would have cost is
    reported separately in ``fee``.
    """

    def __init__(
        self,
        required: int,
        available: int,
        *,
        fee: int = 0,
        token_id: str = "native",
    ) -> None:
        needed = f"{required} plus fee {fee}" if fee else str(required)
        super().__init__(
            f"insufficient funds: required {needed}, available {available}",
            status_code=422,
            code="insufficient-funds",
        )
        self.required = required
        self.available = available
        self.fee = fee
        self.token_id = token_id

    def context(self) -> dict[str, Any]:
        return {
            "required": self.required,
            "available": self.available,
            "fee": self.fee,
            "token_id": self.token_id,
        }


# -- Protocol --------------------------------------------------------------


class CanonicalizationMismatch(DraftError):
    """The ledger returned different canonical unsigned bytes for one draft."""

    def __init__(self, input_index: int) -> None:
        super().__init__(
            f"canonical unsigned transaction differs for input {input_index}",
            status_code=409,
            code="canonicalization-mismatch",
        )
        self.input_index = input_index

    def context(self) -> dict[str, Any]:
        return {"input_index": self.input_index}


class MissingSignature(DraftError):
    """A consumed input has no signature entry at finalize time."""

    def __init__(
        self,
        input_index: int,
        *,
        message: str | None = None,
        code: str = "missing-signature",
    ) -> None:
        super().__init__(
            message or f"missing signature for input {input_index}",
            status_code=409,
            code=code,
        )
        self.input_index = input_index

    def context(self) -> dict[str, Any]:
        return {"input_index": self.input_index}


class DuplicateSignature(MissingSignature):
    """A consumed input has more than one signature entry."""

    def __init__(self, input_index: int) -> None:
        super().__init__(
            input_index,
            message=f"duplicate signature for input {input_index}",
            code="duplicate-signature",
        )


# -- Ledger outcomes -------------------------------------------------------


class TransactionRejected(DraftError):
    """The ledger refused the finalized transaction. Terminal for the draft."""

    def __init__(self, reason: str, *, tx_hash: str = "") -> None:
        super().__init__(
            f"transaction rejected: {reason}", status_code=422, code="transaction-rejected"
        )
        self.reason = reason
        self.tx_hash = tx_hash

    def context(self) -> dict[str, Any]:
        return {"reason": self.reason, "tx_hash": self.tx_hash}


class TransactionUnavailable(DraftError):
    """A confirmed transaction could not be fetched."""

    def __init__(self, tx_hash: str, *, reason: str = "not found") -> None:
        super().__init__(
            f"transaction {tx_hash} unavailable: {reason}",
            status_code=404,
            code="transaction-unavailable",
        )
        self.tx_hash = tx_hash
        self.reason = reason

    def context(self) -> dict[str, Any]:
        return {"tx_hash": self.tx_hash, "reason": self.reason}


class MalformedTransaction(DraftError):
    """A fetched transaction could not be parsed into outputs."""

    def __init__(self, message: str, *, tx_hash: str = "") -> None:
        super().__init__(message, status_code=502, code="malformed-transaction")
        self.tx_hash = tx_hash

    def context(self) -> dict[str, Any]:
        return {"tx_hash": self.tx_hash} if self.tx_hash else {}


# -- Interruption ----------------------------------------------------------


class Cancelled(DraftError):
    """The caller's deadline expired or the task was cancelled mid-pipeline."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"cancelled during {stage}", status_code=499, code="cancelled")
        self.stage = stage

    def context(self) -> dict[str, Any]:
        return {"stage": self.stage}
