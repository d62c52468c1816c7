"""UTXO service — selection, fee and change for draft composition."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from txdraft.errors.draft_errors import InsufficientFunds, InvalidArgument
from txdraft.utils.hexutil import require_address, require_amount, token_label

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from txdraft.config.settings import FeeConfig
    from txdraft.ledger.base import LedgerRPC
    from txdraft.ledger.models import Outpoint, SpendableOutput

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Fee policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FeePolicy:
    """Proportional fee: ``amount * rate_numerator // rate_denominator``.

    The fee is paid out of the sender's change. Recipients always receive
    the exact requested amount. Spending one named output
    (:meth:`UtxoSelector.select_output`) takes it from what the owner keeps
    when that covers it, and from the payout otherwise.
    """

    rate_numerator: int = 3
    rate_denominator: int = 10_000

    def __post_init__(self) -> None:
        if self.rate_numerator < 0 or self.rate_denominator <= 0:
            msg = "fee rate must be non-negative with a positive denominator"
            raise InvalidArgument(msg, field="fee_rate")

    @classmethod
    def from_config(cls, config: FeeConfig) -> FeePolicy:
        return cls(config.rate_numerator, config.rate_denominator)

    def fee_for(self, amount: int) -> int:
        return amount * self.rate_numerator // self.rate_denominator


# ---------------------------------------------------------------------------
# Selection result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Selection:
    """Outputs picked to fund one draft.

    Attributes:
        utxos: Selected outputs, in ledger order.
        total: Sum of selected amounts.
        amount: Business amount being moved (excluding fee).
        fee: Fee charged on ``amount``.
        token_id: Token selected for (``None`` for native).
    """

    utxos: tuple[SpendableOutput, ...]
    total: int
    amount: int
    fee: int
    token_id: bytes | None = None

    @property
    def required(self) -> int:
        return self.amount + self.fee

    @property
    def change(self) -> int:
        return self.total - self.amount - self.fee


# ---------------------------------------------------------------------------
# Reservation boundary
# ---------------------------------------------------------------------------


class UtxoReservation(Protocol):
    """Serializes draft composition per owner address.

    Two concurrent drafts from one address may select the same output; one
    of them is then rejected at submission as a double-spend. A reservation
    lets a caller prevent that.
    """

    def reserve(self, owner: bytes) -> contextlib.AbstractAsyncContextManager[None]: ...


class NoReservation:
    """No serialization. Concurrent drafts may select the same outputs."""

    @contextlib.asynccontextmanager
    async def reserve(self, owner: bytes) -> AsyncIterator[None]:
        yield


@dataclass
class LocalUtxoReservation:
    """One ``asyncio.Lock`` per owner, for callers in a single process.

    A lock is dropped once its last holder or waiter leaves.
    """

    _locks: dict[bytes, asyncio.Lock] = field(default_factory=dict)
    _users: dict[bytes, int] = field(default_factory=dict)

    def lock_for(self, owner: bytes) -> asyncio.Lock:
        lock = self._locks.get(owner)
        if lock is None:
            lock = self._locks[owner] = asyncio.Lock()
        return lock

    @property
    def reserved_owners(self) -> frozenset[bytes]:
        return frozenset(self._users)

    @contextlib.asynccontextmanager
    async def reserve(self, owner: bytes) -> AsyncIterator[None]:
        lock = self.lock_for(owner)
        self._users[owner] = self._users.get(owner, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[owner] -= 1
            if not self._users[owner]:
                del self._users[owner]
                self._locks.pop(owner, None)


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------


class UtxoSelector:
    """First-fit selection over the ledger's UTXO set.

    Usage::

        selector = UtxoSelector(ledger, FeePolicy())
        selection = await selector.select(sender, 1000)
    """

    def __init__(self, ledger: LedgerRPC, fee_policy: FeePolicy | None = None) -> None:
        self._ledger = ledger
        self._fee_policy = fee_policy or FeePolicy()

    @property
    def fee_policy(self) -> FeePolicy:
        return self._fee_policy

    async def list_spendable(
        self, owner: bytes, token_id: bytes | None = None
    ) -> list[SpendableOutput]:
        """Owned outputs of exactly *token_id* (native when ``None``), ledger order."""
        require_address(owner, "owner")
        utxos = await self._ledger.query_utxos(owner, token_id)
        matching = [u for u in utxos if u.token_id == token_id and u.amount > 0]
        if len(matching) != len(utxos):
            logger.debug(
                "Dropped %d UTXOs not matching token %s",
                len(utxos) - len(matching),
                token_label(token_id),
            )
        return matching

    async def select(
        self,
        owner: bytes,
        amount: int,
        token_id: bytes | None = None,
    ) -> Selection:
        """Select outputs covering ``amount + fee``.

        Args:
            owner: 20-byte owner address.
            amount: Business amount to move.
            token_id: Token class, ``None`` for the native asset.

        Returns:
            The selection; stops at the first output that covers the total.

        Raises:
            InvalidArgument: On a bad owner or amount.
            InsufficientFunds: If all matching outputs together fall short.
        """
        require_amount(amount)
        fee = self._fee_policy.fee_for(amount)
        utxos = await self.list_spendable(owner, token_id)
        return self._first_fit(utxos, amount, fee, token_id)

    async def select_batch(
        self,
        owner: bytes,
        amounts: Sequence[int],
        token_id: bytes | None = None,
    ) -> Selection:
        """Select once for several sub-transfers of one token.

        The fee is computed once on the aggregate amount.
        """
        if not amounts:
            msg = "batch must contain at least one amount"
            raise InvalidArgument(msg, field="amounts")
        for value in amounts:
            require_amount(value)
        return await self.select(owner, sum(amounts), token_id)

    async def select_fee_input(self, owner: bytes, fee: int = 0) -> Selection:
        """Select the first native output that can pay a flat *fee*.

        Used by state-producing operations that move no value and consume a
        single input.
        """
        if fee < 0:
            msg = "fee must be >= 0"
            raise InvalidArgument(msg, field="fee")
        utxos = await self.list_spendable(owner, None)
        for utxo in utxos:
            if utxo.amount >= fee:
                return Selection(utxos=(utxo,), total=utxo.amount, amount=0, fee=fee)
        available = max((u.amount for u in utxos), default=0)
        raise InsufficientFunds(0, available, fee=max(fee, 1))

    async def select_output(
        self,
        owner: bytes,
        outpoint: Outpoint,
        amount: int | None = None,
        token_id: bytes | None = None,
    ) -> Selection:
        """Spend the named output *outpoint* of *owner*.

        Pays out *amount*, or the whole output when ``None``. The fee is
        taken from what stays with the owner when that covers it, otherwise
        from the payout, so ``Selection.amount`` is the payout.

        Raises:
            InvalidArgument: If the output is not among the owner's outputs of
                *token_id*, or the payout cannot cover the fee.
            InsufficientFunds: If *amount* exceeds the output.
        """
        if amount is not None:
            require_amount(amount)
        utxos = await self.list_spendable(owner, token_id)
        utxo = next((u for u in utxos if u.outpoint == outpoint), None)
        if utxo is None:
            msg = f"output {outpoint} not found"
            raise InvalidArgument(msg, field="outpoint")

        payout = utxo.amount if amount is None else amount
        fee = self._fee_policy.fee_for(payout)
        if payout > utxo.amount:
            raise InsufficientFunds(
                payout, utxo.amount, fee=fee, token_id=token_label(token_id)
            )
        if utxo.amount - payout < fee:
            if payout <= fee:
                msg = "amount does not cover the fee"
                raise InvalidArgument(msg, field="amount")
            payout -= fee
        logger.debug("Spending %s: payout %d, fee %d", outpoint, payout, fee)
        return Selection(
            utxos=(utxo,), total=utxo.amount, amount=payout, fee=fee, token_id=token_id
        )

    @staticmethod
    def _first_fit(
        utxos: Sequence[SpendableOutput],
        amount: int,
        fee: int,
        token_id: bytes | None,
    ) -> Selection:
        required = amount + fee
        selected: list[SpendableOutput] = []
        total = 0
        for utxo in utxos:
            selected.append(utxo)
            total += utxo.amount
            if total >= required:
                logger.debug(
                    "Selected %d UTXOs (%d) for %d + fee %d",
                    len(selected),
                    total,
                    amount,
                    fee,
                )
                return Selection(
                    utxos=tuple(selected),
                    total=total,
                    amount=amount,
                    fee=fee,
                    token_id=token_id,
                )
        raise InsufficientFunds(amount, total, fee=fee, token_id=token_label(token_id))
