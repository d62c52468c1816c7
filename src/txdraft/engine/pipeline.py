"""DraftPipeline — one generic compose -> sign -> finalize -> submit flow.

Every business operation runs through the same pipeline; only the composer
differs. The steps of one run are strictly sequential. A caller deadline is
honoured at every ledger call: expiry surfaces :class:`Cancelled` with the
stage that was in flight, and the partial signing session is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import nullcontext
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from txdraft.engine.services.composer import DraftComposer, Operation
from txdraft.engine.services.result_service import ResultExtractor
from txdraft.engine.services.signing_service import SignatureCoordinator
from txdraft.engine.services.utxo_service import FeePolicy, NoReservation
from txdraft.errors.draft_errors import Cancelled, DraftError
from txdraft.metrics.collector import PipelineMetrics

if TYPE_CHECKING:
    from txdraft.config.settings import AppConfig
    from txdraft.engine.services.composer import ComposedDraft
    from txdraft.engine.services.result_service import BusinessResult, Expectation
    from txdraft.engine.services.signing_service import SigningSession
    from txdraft.engine.services.utxo_service import UtxoReservation
    from txdraft.ledger.base import LedgerRPC
    from txdraft.ledger.models import SubmitResult
    from txdraft.wallet.keys import Signer

logger = logging.getLogger(__name__)


class Stage:
    COMPOSE = "compose"
    HASH = "hash"
    SIGN = "sign"
    FINALIZE = "finalize"
    SUBMIT = "submit"


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline run.

    Attributes:
        operation: Operation that was run.
        composed: The composed draft and its input indices.
        session: Completed signing session.
        submit_result: Ledger response, ``None`` when run with ``submit=False``.
    """

    operation: Operation
    composed: ComposedDraft
    session: SigningSession
    submit_result: SubmitResult | None = None

    @property
    def tx_hash(self) -> str:
        return self.submit_result.tx_hash if self.submit_result is not None else ""


class _Progress:
    stage: str = Stage.COMPOSE


class DraftPipeline:
    """Compose, sign, finalize and submit business operations.

    Usage::

        pipeline = DraftPipeline(ledger, wallet)
        result = await pipeline.run(Operation.TRANSFER, params, timeout=10)
    """

    def __init__(
        self,
        ledger: LedgerRPC,
        signer: Signer,
        *,
        fee_policy: FeePolicy | None = None,
        coordinator: SignatureCoordinator | None = None,
        reservation: UtxoReservation | None = None,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self._ledger = ledger
        self._signer = signer
        self._composer = DraftComposer(ledger, fee_policy)
        self._coordinator = coordinator or SignatureCoordinator(ledger)
        self._extractor = ResultExtractor(ledger)
        self._reservation: UtxoReservation = reservation or NoReservation()
        self._metrics = metrics

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        ledger: LedgerRPC,
        signer: Signer,
        *,
        reservation: UtxoReservation | None = None,
    ) -> DraftPipeline:
        """Build a pipeline from application settings."""
        return cls(
            ledger,
            signer,
            fee_policy=FeePolicy.from_config(config.fee),
            coordinator=SignatureCoordinator(
                ledger,
                sighash_type=config.signing.sighash_type,
                parallel=config.signing.parallel,
            ),
            reservation=reservation,
            metrics=PipelineMetrics() if config.metrics.enabled else None,
        )

    @property
    def composer(self) -> DraftComposer:
        return self._composer

    @property
    def coordinator(self) -> SignatureCoordinator:
        return self._coordinator

    @property
    def metrics(self) -> PipelineMetrics | None:
        return self._metrics

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        operation: Operation | str,
        params: Any,
        *,
        timeout: float | None = None,
        submit: bool = True,
    ) -> PipelineResult:
        """Run one operation end to end.

        Args:
            operation: Operation to compose.
            params: The operation's parameter dataclass.
            timeout: Deadline in seconds for the whole run.
            submit: Stop after finalize when ``False``.

        Raises:
            Cancelled: If *timeout* expires; ``stage`` names the step in flight.
            DraftError: Any composition, protocol or ledger error.
        """
        op = self._composer.composer_for(operation).operation
        progress = _Progress()
        try:
            async with asyncio.timeout(timeout):
                return await self._run(op, params, progress, submit)
        except TimeoutError as exc:
            logger.warning("%s cancelled during %s: deadline expired", op, progress.stage)
            self._record_failure(op, "cancelled")
            raise Cancelled(progress.stage) from exc
        except asyncio.CancelledError:
            logger.warning("%s cancelled during %s", op, progress.stage)
            self._record_failure(op, "cancelled")
            raise
        except DraftError as exc:
            self._record_failure(op, exc.code)
            raise

    async def extract(self, tx_hash: str, expectation: Expectation) -> BusinessResult:
        """Fetch a confirmed transaction and extract a business result."""
        if self._metrics is None:
            return await self._extractor.extract(tx_hash, expectation)
        with self._metrics.track_extract():
            return await self._extractor.extract(tx_hash, expectation)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run(
        self, op: Operation, params: Any, progress: _Progress, submit: bool
    ) -> PipelineResult:
        # Validation runs before the reservation and before any ledger call.
        composer = self._composer.prepare(op, params)
        coordinator = self._coordinator
        metrics = self._metrics

        async with self._reservation.reserve(composer.caller(params)):
            progress.stage = Stage.COMPOSE
            with metrics.track_compose(op) if metrics else nullcontext():
                composed = await self._composer.compose(op, params)
            if metrics:
                metrics.record_composed(op)

            session = coordinator.start(composed.draft)
            with metrics.track_sign(op) if metrics else nullcontext():
                progress.stage = Stage.HASH
                await coordinator.request_hashes(session, composed.input_indices)
                progress.stage = Stage.SIGN
                await coordinator.sign(session, self._signer)

            submit_result = None
            with metrics.track_finalize(op) if metrics else nullcontext():
                progress.stage = Stage.FINALIZE
                await coordinator.finalize(session)
                if submit:
                    progress.stage = Stage.SUBMIT
                    submit_result = await coordinator.submit(session)
                    if metrics:
                        metrics.record_submitted(op)

        return PipelineResult(
            operation=op, composed=composed, session=session, submit_result=submit_result
        )

    def _record_failure(self, op: Operation, code: str) -> None:
        if self._metrics is not None:
            self._metrics.record_failure(op, code)
