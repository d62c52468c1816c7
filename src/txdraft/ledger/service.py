"""Ledger JSON-RPC client — UTXO query, sighash, finalize, submit, fetch.

Provides an async JSON-RPC 2.0 client for the remote ledger:
- ``wes_getUTXO`` — spendable outputs of an address
- ``wes_computeSignatureHashFromDraft`` — sighash + canonical unsigned tx
- ``wes_finalizeTransactionFromDraft`` — attach signatures
- ``wes_sendRawTransaction`` — broadcast
- ``wes_getTransactionByHash`` — confirmed transaction
- ``wes_blockNumber`` — chain height
"""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING, Any

import httpx

from txdraft.errors.ledger_errors import LedgerRPCError
from txdraft.ledger.models import (
    FinalizedTransaction,
    SignatureHashResponse,
    SpendableOutput,
    SubmitResult,
)
from txdraft.utils.hexutil import strip_0x
from txdraft.wallet.address import address_to_base58

if TYPE_CHECKING:
    from collections.abc import Sequence

    from txdraft.config.settings import LedgerConfig
    from txdraft.engine.models.draft import TransactionDraft
    from txdraft.ledger.models import SignatureEntry

logger = logging.getLogger(__name__)


class LedgerRPCService:
    """Async JSON-RPC client for the remote ledger.

    Usage::

        ledger = LedgerRPCService(config)
        await ledger.connect()
        try:
            utxos = await ledger.query_utxos(address)
        finally:
            await ledger.close()
    """

    def __init__(self, config: LedgerConfig, *, debug: bool = False) -> None:
        """Initialize the ledger client.

        Args:
            config: Ledger endpoint configuration (url, token, timeout).
            debug: Log every request and response at DEBUG level.
        """
        self._config = config
        self._debug = debug
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        headers: dict[str, str] = {
            "Content-Type": "application/json",
        }
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"

        self._client = httpx.AsyncClient(
            base_url=self._config.url.rstrip("/"),
            headers=headers,
            timeout=self._config.timeout,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> LedgerRPCService:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def query_utxos(
        self, owner: bytes, token_id: bytes | None = None
    ) -> list[SpendableOutput]:
        """List spendable outputs owned by *owner*.

        The ledger returns every output of the address; *token_id*
        filtering is applied here. Rows that cannot be parsed are skipped.

        Args:
            owner: 20-byte owner address.
            token_id: Restrict to this token (``None`` keeps native only).

        Returns:
            Outputs in ledger order.

        Raises:
            LedgerRPCError: On transport or RPC errors.
        """
        result = await self.call("wes_getUTXO", [address_to_base58(owner)])
        rows = result.get("utxos", []) if isinstance(result, dict) else []

        utxos: list[SpendableOutput] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                utxo = SpendableOutput.from_dict(row, owner)
            except ValueError as exc:
                logger.debug("Skipping malformed UTXO row %r: %s", row, exc)
                continue
            if utxo.token_id == token_id:
                utxos.append(utxo)
        return utxos

    async def compute_signature_hash(
        self, draft: TransactionDraft, input_index: int, sighash_type: str
    ) -> SignatureHashResponse:
        """Ask the ledger for the sighash of one draft input.

        Raises:
            LedgerRPCError: On transport or RPC errors, or a response
                without ``hash``/``unsignedTx``.
        """
        method = "wes_computeSignatureHashFromDraft"
        result = await self.call(
            method,
            {
                "draft": draft.to_dict(),
                "input_index": input_index,
                "sighash_type": sighash_type,
            },
        )
        if not isinstance(result, dict):
            raise LedgerRPCError("invalid signature hash response", method=method)
        try:
            return SignatureHashResponse.from_dict(result)
        except ValueError as exc:
            raise LedgerRPCError(str(exc), method=method) from exc

    async def finalize_transaction(
        self,
        draft: TransactionDraft,
        unsigned_tx: str,
        entries: Sequence[SignatureEntry],
    ) -> FinalizedTransaction:
        """Finalize a draft with its signatures.

        One entry is sent in the flat single-input form; more than one in
        the ``signatures`` array form.

        Raises:
            LedgerRPCError: On transport or RPC errors, or a response
                without ``tx``.
        """
        method = "wes_finalizeTransactionFromDraft"
        params: dict[str, Any] = {"draft": draft.to_dict(), "unsignedTx": unsigned_tx}
        if len(entries) == 1:
            params.update(entries[0].to_dict())
        else:
            params["signatures"] = [entry.to_dict() for entry in entries]

        result = await self.call(method, params)
        tx_hex = result.get("tx", "") if isinstance(result, dict) else ""
        if not tx_hex:
            raise LedgerRPCError("finalize response has no tx", method=method)
        return FinalizedTransaction(tx_hex=strip_0x(tx_hex))

    async def submit_transaction(self, tx_hex: str) -> SubmitResult:
        """Broadcast a finalized transaction."""
        method = "wes_sendRawTransaction"
        result = await self.call(method, [tx_hex])
        try:
            return SubmitResult.from_result(result)
        except ValueError as exc:
            raise LedgerRPCError(str(exc), method=method) from exc

    async def fetch_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        """Fetch a confirmed transaction; ``None`` when the ledger has none."""
        result = await self.call("wes_getTransactionByHash", [strip_0x(tx_hash)])
        if result is None:
            return None
        if not isinstance(result, dict):
            raise LedgerRPCError(
                "invalid transaction response", method="wes_getTransactionByHash"
            )
        return result

    async def block_number(self) -> int:
        """Return the current chain height."""
        method = "wes_blockNumber"
        result = await self.call(method, [])
        try:
            if isinstance(result, int) and not isinstance(result, bool):
                return result
            return int(strip_0x(str(result)), 16)
        except ValueError as exc:
            raise LedgerRPCError(f"invalid block number: {result!r}", method=method) from exc

    # ------------------------------------------------------------------
    # JSON-RPC transport
    # ------------------------------------------------------------------

    async def call(self, method: str, params: Any) -> Any:
        """Send one JSON-RPC request and return its ``result``.

        Raises:
            LedgerRPCError: On HTTP failures, non-2xx responses, non-JSON
                bodies or JSON-RPC error objects.
        """
        client = self._ensure_connected()
        request_id = next(self._ids)
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": request_id}
        if self._debug:
            logger.debug("RPC -> %s id=%d", method, request_id)

        try:
            response = await client.post("", json=payload)
        except httpx.HTTPError as exc:
            raise LedgerRPCError(f"ledger {method} failed: {exc}", method=method) from exc

        if response.status_code != 200:
            self._raise_for_status(response, method)

        try:
            body = response.json()
        except ValueError as exc:
            raise LedgerRPCError(
                f"ledger {method} returned a non-JSON body", method=method
            ) from exc

        if not isinstance(body, dict):
            raise LedgerRPCError(f"ledger {method} returned an invalid envelope", method=method)

        error = body.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            logger.warning("RPC %s failed: %s (code=%s)", method, message, code)
            raise LedgerRPCError(message, rpc_code=code, method=method)

        if self._debug:
            logger.debug("RPC <- %s id=%d", method, request_id)
        return body.get("result")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Ledger client not connected. Call connect() first."
            raise LedgerRPCError(msg, status_code=500)
        return self._client

    def _raise_for_status(self, response: httpx.Response, method: str) -> None:
        """Raise a LedgerRPCError from a non-200 response."""
        status = response.status_code
        error_map = {
            401: "ledger authentication failed",
            403: "ledger access forbidden",
            429: "ledger rate limit exceeded",
        }
        message = error_map.get(status, f"ledger {method} failed ({status}): {response.text}")
        raise LedgerRPCError(message, status_code=status, method=method)
