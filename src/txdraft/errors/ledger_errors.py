"""Remote ledger transport errors."""

from __future__ import annotations

from typing import Any

from txdraft.errors.draft_errors import DraftError


class LedgerRPCError(DraftError):
    """Error talking to the remote ledger (HTTP failure or JSON-RPC error object)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        rpc_code: int | None = None,
        method: str = "",
    ) -> None:
        super().__init__(message, status_code=status_code, code="ledger-rpc-error")
        self.rpc_code = rpc_code
        self.method = method

    def context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {}
        if self.method:
            ctx["method"] = self.method
        if self.rpc_code is not None:
            ctx["rpc_code"] = self.rpc_code
        return ctx
