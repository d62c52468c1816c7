"""Draft composer — table-driven composition of business operations.

Every operation maps to one small :class:`Composer` that validates its
parameters, funds the draft through the :class:`UtxoSelector` and lays out
outputs and locking conditions. Composers never submit anything.

=================  =======================  ===================================
Operation          Outputs                  Locking condition
=================  =======================  ===================================
transfer           recipient [+ change]     SingleKey(recipient)
batch_transfer     one per recipient        SingleKey per recipient
stake              staker [+ change]        Height(Contract | SingleKey)
delegate           delegator [+ change]     Delegation(validator)
propose / vote     state record [+ change]  Threshold or SingleKey
deploy_resource    resource [+ change]      SingleKey(deployer) by default
create_vesting     beneficiary [+ change]   Time(Contract | SingleKey)
create_escrow      buyer [+ change]         MultiKey(buyer, seller) or
                                            Time(Contract)
unstake            staker [+ remainder]     SingleKey(staker)
undelegate         delegator [+ remainder]  SingleKey(delegator)
claim_reward       claimer                  SingleKey(claimer)
claim_vesting      beneficiary              SingleKey(beneficiary)
release_escrow     seller                   SingleKey(seller)
refund_escrow      buyer                    SingleKey(buyer)
=================  =======================  ===================================

The operations from ``unstake`` down spend one named output of the caller
through :meth:`UtxoSelector.select_output`.
"""

from __future__ import annotations

import enum
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from txdraft.engine.models.draft import (
    AssetOutput,
    Input,
    ResourceOutput,
    StateOutput,
    TransactionDraft,
)
from txdraft.engine.models.locking import (
    ContractLock,
    DelegationLock,
    HeightLock,
    LockingCondition,
    MultiKeyLock,
    SingleKeyLock,
    ThresholdLock,
    TimeLock,
)
from txdraft.engine.services.utxo_service import FeePolicy, Selection, UtxoSelector
from txdraft.errors.draft_errors import InconsistentTokenID, InvalidArgument
from txdraft.errors.ledger_errors import LedgerRPCError
from txdraft.ledger.models import Outpoint
from txdraft.utils.crypto import sha256
from txdraft.utils.hexutil import (
    require_address,
    require_amount,
    require_identifier,
    token_label,
)

if TYPE_CHECKING:
    from txdraft.ledger.base import LedgerRPC

logger = logging.getLogger(__name__)


class Operation(enum.StrEnum):
    """Business operations the composer knows how to build."""

    TRANSFER = "transfer"
    BATCH_TRANSFER = "batch_transfer"
    STAKE = "stake"
    DELEGATE = "delegate"
    PROPOSE = "propose"
    VOTE = "vote"
    DEPLOY_RESOURCE = "deploy_resource"
    CREATE_VESTING = "create_vesting"
    CREATE_ESCROW = "create_escrow"
    UNSTAKE = "unstake"
    UNDELEGATE = "undelegate"
    CLAIM_REWARD = "claim_reward"
    CLAIM_VESTING = "claim_vesting"
    RELEASE_ESCROW = "release_escrow"
    REFUND_ESCROW = "refund_escrow"


class VoteChoice(enum.IntEnum):
    ABSTAIN = -1
    AGAINST = 0
    FOR = 1


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferParams:
    sender: bytes
    recipient: bytes
    amount: int
    token_id: bytes | None = None


@dataclass(frozen=True)
class TransferItem:
    recipient: bytes
    amount: int
    token_id: bytes | None = None


@dataclass(frozen=True)
class BatchTransferParams:
    sender: bytes
    items: tuple[TransferItem, ...]


@dataclass(frozen=True)
class StakeParams:
    """Lock *amount* for *lock_blocks* blocks.

    With *contract* the unlock is delegated to that staking contract,
    otherwise the staker's key unlocks after the height is reached.
    """

    staker: bytes
    validator: bytes
    amount: int
    lock_blocks: int
    contract: bytes | None = None


@dataclass(frozen=True)
class DelegateParams:
    delegator: bytes
    validator: bytes
    amount: int
    expiry_blocks: int = 0
    max_value_per_operation: int = 0


@dataclass(frozen=True)
class ProposeParams:
    """Governance proposal.

    With *threshold* > 0 the state record is guarded by a threshold lock
    over *validators*; otherwise by the proposer's key.
    """

    proposer: bytes
    title: str
    description: str
    voting_period: int
    validators: tuple[bytes, ...] = ()
    threshold: int = 0
    fee: int = 0


@dataclass(frozen=True)
class VoteParams:
    voter: bytes
    proposal_id: bytes
    choice: VoteChoice
    weight: int = 1
    fee: int = 0


@dataclass(frozen=True)
class DeployResourceParams:
    deployer: bytes
    content_hash: bytes
    name: str = ""
    mime_type: str = ""
    locking_condition: LockingCondition | None = None
    fee: int = 0


@dataclass(frozen=True)
class VestingParams:
    """Lock *amount* for *beneficiary* until ``start_time + duration``.

    Times are Unix seconds checked against the block timestamp. With
    *contract* the vesting contract decides the unlock, otherwise the
    beneficiary's key does.
    """

    sender: bytes
    beneficiary: bytes
    amount: int
    start_time: int
    duration: int
    token_id: bytes | None = None
    contract: bytes | None = None


@dataclass(frozen=True)
class EscrowParams:
    """Hold *amount* of *buyer*'s funds for a trade with *seller*.

    Without *contract* the output needs both parties' signatures; with one,
    the escrow contract may unlock it once *expiry_time* has passed.
    """

    buyer: bytes
    seller: bytes
    amount: int
    expiry_time: int
    token_id: bytes | None = None
    contract: bytes | None = None


@dataclass(frozen=True)
class UnstakeParams:
    """Release *amount* from the stake output *stake_id*."""

    staker: bytes
    stake_id: Outpoint
    amount: int


@dataclass(frozen=True)
class UndelegateParams:
    """Withdraw *amount* from the delegation output, all of it when 0."""

    delegator: bytes
    delegate_id: Outpoint
    amount: int = 0


@dataclass(frozen=True)
class ClaimRewardParams:
    claimer: bytes
    reward_id: Outpoint


@dataclass(frozen=True)
class ClaimVestingParams:
    beneficiary: bytes
    vesting_id: Outpoint
    token_id: bytes | None = None


@dataclass(frozen=True)
class ReleaseEscrowParams:
    """Pay the whole escrow output to *seller*."""

    caller: bytes
    seller: bytes
    escrow_id: Outpoint
    token_id: bytes | None = None


@dataclass(frozen=True)
class RefundEscrowParams:
    """Return the whole escrow output to *buyer*."""

    caller: bytes
    buyer: bytes
    escrow_id: Outpoint
    token_id: bytes | None = None


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComposedDraft:
    """A composed draft plus what the signing coordinator needs.

    Attributes:
        operation: Operation that produced the draft.
        draft: The unsigned draft.
        input_indices: Consumed input indices that need a signature.
        selection: The funding selection, if the operation funded from UTXOs.
    """

    operation: Operation
    draft: TransactionDraft
    input_indices: tuple[int, ...]
    selection: Selection | None = None


@dataclass(frozen=True)
class ComposeContext:
    ledger: LedgerRPC
    selector: UtxoSelector


# ---------------------------------------------------------------------------
# Composition helpers
# ---------------------------------------------------------------------------


def _fund(draft: TransactionDraft, selection: Selection) -> None:
    for utxo in selection.utxos:
        draft.add_input(Input(outpoint=utxo.outpoint, amount=utxo.amount, token_id=utxo.token_id))
    draft.set_fee(selection.fee)


def _add_change(draft: TransactionDraft, selection: Selection, owner: bytes) -> None:
    if selection.change > 0:
        draft.add_output(
            AssetOutput(
                owner=owner,
                amount=selection.change,
                token_id=selection.token_id,
                locking_condition=SingleKeyLock(owner),
            )
        )


def _canonical_payload(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _require_text(value: str, field: str) -> None:
    if not value:
        msg = f"{field} cannot be empty"
        raise InvalidArgument(msg, field=field)


def _require_positive(value: int, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        msg = f"{field} must be greater than 0"
        raise InvalidArgument(msg, field=field)


def _finish(operation: Operation, draft: TransactionDraft, selection: Selection) -> ComposedDraft:
    return ComposedDraft(
        operation=operation,
        draft=draft,
        input_indices=tuple(draft.consumed_indices()),
        selection=selection,
    )


# ---------------------------------------------------------------------------
# Composers
# ---------------------------------------------------------------------------


class Composer(ABC):
    """Builds one operation's draft."""

    operation: ClassVar[Operation]
    params_type: ClassVar[type]

    @abstractmethod
    def caller(self, params: Any) -> bytes:
        """Address that funds and signs the draft."""

    @abstractmethod
    def validate(self, params: Any) -> None:
        """Check parameters. Runs before any ledger query."""

    @abstractmethod
    async def build(self, params: Any, ctx: ComposeContext) -> ComposedDraft:
        """Select inputs and lay out the draft."""


class TransferComposer(Composer):
    operation = Operation.TRANSFER
    params_type = TransferParams

    def caller(self, params: TransferParams) -> bytes:
        return params.sender

    def validate(self, params: TransferParams) -> None:
        require_address(params.sender, "sender")
        require_address(params.recipient, "recipient")
        require_amount(params.amount)
        if params.token_id is not None:
            require_identifier(params.token_id, "token_id")

    async def build(self, params: TransferParams, ctx: ComposeContext) -> ComposedDraft:
        selection = await ctx.selector.select(params.sender, params.amount, params.token_id)
        draft = TransactionDraft(caller=params.sender)
        _fund(draft, selection)
        draft.add_output(
            AssetOutput(
                owner=params.recipient,
                amount=params.amount,
                token_id=params.token_id,
                locking_condition=SingleKeyLock(params.recipient),
            )
        )
        _add_change(draft, selection, params.sender)
        return _finish(self.operation, draft, selection)


class BatchTransferComposer(Composer):
    operation = Operation.BATCH_TRANSFER
    params_type = BatchTransferParams

    def caller(self, params: BatchTransferParams) -> bytes:
        return params.sender

    def validate(self, params: BatchTransferParams) -> None:
        require_address(params.sender, "sender")
        if not params.items:
            msg = "batch transfer needs at least one item"
            raise InvalidArgument(msg, field="items")
        first = params.items[0].token_id
        for item in params.items[1:]:
            if item.token_id != first:
                raise InconsistentTokenID(token_label(first), token_label(item.token_id))
        for item in params.items:
            require_address(item.recipient, "recipient")
            require_amount(item.amount)
        if first is not None:
            require_identifier(first, "token_id")

    async def build(self, params: BatchTransferParams, ctx: ComposeContext) -> ComposedDraft:
        token_id = params.items[0].token_id
        selection = await ctx.selector.select_batch(
            params.sender, [item.amount for item in params.items], token_id
        )
        draft = TransactionDraft(caller=params.sender)
        _fund(draft, selection)
        for item in params.items:
            draft.add_output(
                AssetOutput(
                    owner=item.recipient,
                    amount=item.amount,
                    token_id=token_id,
                    locking_condition=SingleKeyLock(item.recipient),
                )
            )
        _add_change(draft, selection, params.sender)
        return _finish(self.operation, draft, selection)


class StakeComposer(Composer):
    operation = Operation.STAKE
    params_type = StakeParams

    def caller(self, params: StakeParams) -> bytes:
        return params.staker

    def validate(self, params: StakeParams) -> None:
        require_address(params.staker, "staker")
        require_address(params.validator, "validator")
        require_amount(params.amount)
        _require_positive(params.lock_blocks, "lock_blocks")
        if params.contract is not None:
            require_address(params.contract, "contract")

    async def _current_height(self, ledger: LedgerRPC) -> int:
        try:
            return await ledger.block_number()
        except LedgerRPCError as exc:
            logger.warning("Block height unavailable, using a relative unlock height: %s", exc)
            return 0

    async def build(self, params: StakeParams, ctx: ComposeContext) -> ComposedDraft:
        selection = await ctx.selector.select(params.staker, params.amount)
        height = await self._current_height(ctx.ledger)

        base: LockingCondition = (
            ContractLock(params.contract)
            if params.contract is not None
            else SingleKeyLock(params.staker)
        )
        lock = HeightLock(
            unlock_height=height + params.lock_blocks if height > 0 else params.lock_blocks,
            base_lock=base,
            relative=height <= 0,
        )
        lock.validate()

        draft = TransactionDraft(caller=params.staker)
        draft.set_metadata("validator_address", params.validator.hex())
        _fund(draft, selection)
        draft.add_output(
            AssetOutput(owner=params.staker, amount=params.amount, locking_condition=lock)
        )
        _add_change(draft, selection, params.staker)
        return _finish(self.operation, draft, selection)


class DelegateComposer(Composer):
    operation = Operation.DELEGATE
    params_type = DelegateParams

    def caller(self, params: DelegateParams) -> bytes:
        return params.delegator

    def validate(self, params: DelegateParams) -> None:
        require_address(params.delegator, "delegator")
        require_address(params.validator, "validator")
        require_amount(params.amount)
        if params.expiry_blocks < 0 or params.max_value_per_operation < 0:
            msg = "expiry_blocks and max_value_per_operation must be >= 0"
            raise InvalidArgument(msg, field="expiry_blocks")

    async def build(self, params: DelegateParams, ctx: ComposeContext) -> ComposedDraft:
        selection = await ctx.selector.select(params.delegator, params.amount)
        lock = DelegationLock(
            original_owner=params.delegator,
            allowed_delegates=(params.validator,),
            expiry_duration_blocks=params.expiry_blocks,
            max_value_per_operation=params.max_value_per_operation or params.amount,
        )
        lock.validate()

        draft = TransactionDraft(caller=params.delegator)
        _fund(draft, selection)
        draft.add_output(
            AssetOutput(owner=params.delegator, amount=params.amount, locking_condition=lock)
        )
        _add_change(draft, selection, params.delegator)
        return _finish(self.operation, draft, selection)


class _StateComposer(Composer):
    """Shared layout for single-input state records."""

    async def _build_state(
        self,
        ctx: ComposeContext,
        owner: bytes,
        payload: dict[str, Any],
        lock: LockingCondition,
        fee: int,
    ) -> ComposedDraft:
        lock.validate()
        selection = await ctx.selector.select_fee_input(owner, fee)
        body = _canonical_payload(payload)

        draft = TransactionDraft(caller=owner)
        _fund(draft, selection)
        draft.add_output(
            StateOutput(owner=owner, state_id=sha256(body), payload=body, locking_condition=lock)
        )
        _add_change(draft, selection, owner)
        return _finish(self.operation, draft, selection)


class ProposeComposer(_StateComposer):
    operation = Operation.PROPOSE
    params_type = ProposeParams

    def caller(self, params: ProposeParams) -> bytes:
        return params.proposer

    def validate(self, params: ProposeParams) -> None:
        require_address(params.proposer, "proposer")
        _require_text(params.title, "title")
        _require_positive(params.voting_period, "voting_period")
        if params.threshold:
            if not params.validators:
                msg = "validators are required with a threshold"
                raise InvalidArgument(msg, field="validators")
            for validator in params.validators:
                require_address(validator, "validators")

    def _lock(self, params: ProposeParams) -> LockingCondition:
        if params.threshold:
            return ThresholdLock(params.threshold, tuple(params.validators))
        return SingleKeyLock(params.proposer)

    async def build(self, params: ProposeParams, ctx: ComposeContext) -> ComposedDraft:
        payload = {
            "type": "proposal",
            "title": params.title,
            "description": params.description,
            "voting_period": params.voting_period,
            "proposer": params.proposer.hex(),
        }
        return await self._build_state(
            ctx, params.proposer, payload, self._lock(params), params.fee
        )


class VoteComposer(_StateComposer):
    operation = Operation.VOTE
    params_type = VoteParams

    def caller(self, params: VoteParams) -> bytes:
        return params.voter

    def validate(self, params: VoteParams) -> None:
        require_address(params.voter, "voter")
        require_identifier(params.proposal_id, "proposal_id")
        try:
            VoteChoice(params.choice)
        except ValueError as exc:
            msg = "choice must be -1 (abstain), 0 (against) or 1 (for)"
            raise InvalidArgument(msg, field="choice") from exc
        _require_positive(params.weight, "weight")

    async def build(self, params: VoteParams, ctx: ComposeContext) -> ComposedDraft:
        payload = {
            "type": "vote",
            "proposal_id": params.proposal_id.hex(),
            "choice": int(params.choice),
            "weight": params.weight,
            "voter": params.voter.hex(),
        }
        return await self._build_state(
            ctx, params.voter, payload, SingleKeyLock(params.voter), params.fee
        )


class DeployResourceComposer(Composer):
    operation = Operation.DEPLOY_RESOURCE
    params_type = DeployResourceParams

    def caller(self, params: DeployResourceParams) -> bytes:
        return params.deployer

    def validate(self, params: DeployResourceParams) -> None:
        require_address(params.deployer, "deployer")
        require_identifier(params.content_hash, "content_hash")
        if params.locking_condition is not None:
            params.locking_condition.validate()

    async def build(self, params: DeployResourceParams, ctx: ComposeContext) -> ComposedDraft:
        selection = await ctx.selector.select_fee_input(params.deployer, params.fee)
        draft = TransactionDraft(caller=params.deployer)
        _fund(draft, selection)
        draft.add_output(
            ResourceOutput(
                owner=params.deployer,
                content_hash=params.content_hash,
                name=params.name,
                mime_type=params.mime_type,
                locking_condition=params.locking_condition or SingleKeyLock(params.deployer),
            )
        )
        _add_change(draft, selection, params.deployer)
        return _finish(self.operation, draft, selection)


class VestingComposer(Composer):
    operation = Operation.CREATE_VESTING
    params_type = VestingParams

    def caller(self, params: VestingParams) -> bytes:
        return params.sender

    def validate(self, params: VestingParams) -> None:
        require_address(params.sender, "sender")
        require_address(params.beneficiary, "beneficiary")
        require_amount(params.amount)
        _require_positive(params.duration, "duration")
        if params.start_time < 0:
            msg = "start_time must be >= 0"
            raise InvalidArgument(msg, field="start_time")
        if params.token_id is not None:
            require_identifier(params.token_id, "token_id")
        if params.contract is not None:
            require_address(params.contract, "contract")

    async def build(self, params: VestingParams, ctx: ComposeContext) -> ComposedDraft:
        base: LockingCondition = (
            ContractLock(params.contract)
            if params.contract is not None
            else SingleKeyLock(params.beneficiary)
        )
        lock = TimeLock(params.start_time + params.duration, base_lock=base)
        lock.validate()
        selection = await ctx.selector.select(params.sender, params.amount, params.token_id)

        draft = TransactionDraft(caller=params.sender)
        _fund(draft, selection)
        draft.add_output(
            AssetOutput(
                owner=params.beneficiary,
                amount=params.amount,
                token_id=params.token_id,
                locking_condition=lock,
            )
        )
        _add_change(draft, selection, params.sender)
        return _finish(self.operation, draft, selection)


class EscrowComposer(Composer):
    operation = Operation.CREATE_ESCROW
    params_type = EscrowParams

    def caller(self, params: EscrowParams) -> bytes:
        return params.buyer

    def validate(self, params: EscrowParams) -> None:
        require_address(params.buyer, "buyer")
        require_address(params.seller, "seller")
        require_amount(params.amount)
        _require_positive(params.expiry_time, "expiry_time")
        if params.buyer == params.seller:
            msg = "buyer and seller must differ"
            raise InvalidArgument(msg, field="seller")
        if params.token_id is not None:
            require_identifier(params.token_id, "token_id")
        if params.contract is not None:
            require_address(params.contract, "contract")

    def _lock(self, params: EscrowParams) -> LockingCondition:
        if params.contract is not None:
            return TimeLock(params.expiry_time, base_lock=ContractLock(params.contract))
        return MultiKeyLock(2, (params.buyer, params.seller))

    async def build(self, params: EscrowParams, ctx: ComposeContext) -> ComposedDraft:
        lock = self._lock(params)
        lock.validate()
        selection = await ctx.selector.select(params.buyer, params.amount, params.token_id)

        draft = TransactionDraft(caller=params.buyer)
        draft.set_metadata("seller_address", params.seller.hex())
        _fund(draft, selection)
        draft.add_output(
            AssetOutput(
                owner=params.buyer,
                amount=params.amount,
                token_id=params.token_id,
                locking_condition=lock,
            )
        )
        _add_change(draft, selection, params.buyer)
        return _finish(self.operation, draft, selection)


class _SpendOutputComposer(Composer):
    """Spends one named output of the caller and pays it to a single payee.

    What the output holds beyond the payout goes back to the caller.
    """

    async def _spend(
        self,
        ctx: ComposeContext,
        caller: bytes,
        outpoint: Outpoint,
        payee: bytes,
        amount: int | None = None,
        token_id: bytes | None = None,
    ) -> ComposedDraft:
        selection = await ctx.selector.select_output(caller, outpoint, amount, token_id)
        draft = TransactionDraft(caller=caller)
        _fund(draft, selection)
        draft.add_output(
            AssetOutput(
                owner=payee,
                amount=selection.amount,
                token_id=token_id,
                locking_condition=SingleKeyLock(payee),
            )
        )
        _add_change(draft, selection, caller)
        return _finish(self.operation, draft, selection)


class UnstakeComposer(_SpendOutputComposer):
    operation = Operation.UNSTAKE
    params_type = UnstakeParams

    def caller(self, params: UnstakeParams) -> bytes:
        return params.staker

    def validate(self, params: UnstakeParams) -> None:
        require_address(params.staker, "staker")
        require_amount(params.amount)

    async def build(self, params: UnstakeParams, ctx: ComposeContext) -> ComposedDraft:
        return await self._spend(
            ctx, params.staker, params.stake_id, params.staker, params.amount
        )


class UndelegateComposer(_SpendOutputComposer):
    operation = Operation.UNDELEGATE
    params_type = UndelegateParams

    def caller(self, params: UndelegateParams) -> bytes:
        return params.delegator

    def validate(self, params: UndelegateParams) -> None:
        require_address(params.delegator, "delegator")
        if params.amount:
            require_amount(params.amount)

    async def build(self, params: UndelegateParams, ctx: ComposeContext) -> ComposedDraft:
        return await self._spend(
            ctx,
            params.delegator,
            params.delegate_id,
            params.delegator,
            params.amount or None,
        )


class ClaimRewardComposer(_SpendOutputComposer):
    operation = Operation.CLAIM_REWARD
    params_type = ClaimRewardParams

    def caller(self, params: ClaimRewardParams) -> bytes:
        return params.claimer

    def validate(self, params: ClaimRewardParams) -> None:
        require_address(params.claimer, "claimer")

    async def build(self, params: ClaimRewardParams, ctx: ComposeContext) -> ComposedDraft:
        return await self._spend(ctx, params.claimer, params.reward_id, params.claimer)


class ClaimVestingComposer(_SpendOutputComposer):
    operation = Operation.CLAIM_VESTING
    params_type = ClaimVestingParams

    def caller(self, params: ClaimVestingParams) -> bytes:
        return params.beneficiary

    def validate(self, params: ClaimVestingParams) -> None:
        require_address(params.beneficiary, "beneficiary")
        if params.token_id is not None:
            require_identifier(params.token_id, "token_id")

    async def build(self, params: ClaimVestingParams, ctx: ComposeContext) -> ComposedDraft:
        return await self._spend(
            ctx,
            params.beneficiary,
            params.vesting_id,
            params.beneficiary,
            token_id=params.token_id,
        )


class ReleaseEscrowComposer(_SpendOutputComposer):
    operation = Operation.RELEASE_ESCROW
    params_type = ReleaseEscrowParams

    def caller(self, params: ReleaseEscrowParams) -> bytes:
        return params.caller

    def validate(self, params: ReleaseEscrowParams) -> None:
        require_address(params.caller, "caller")
        require_address(params.seller, "seller")
        if params.token_id is not None:
            require_identifier(params.token_id, "token_id")

    async def build(self, params: ReleaseEscrowParams, ctx: ComposeContext) -> ComposedDraft:
        return await self._spend(
            ctx, params.caller, params.escrow_id, params.seller, token_id=params.token_id
        )


class RefundEscrowComposer(_SpendOutputComposer):
    operation = Operation.REFUND_ESCROW
    params_type = RefundEscrowParams

    def caller(self, params: RefundEscrowParams) -> bytes:
        return params.caller

    def validate(self, params: RefundEscrowParams) -> None:
        require_address(params.caller, "caller")
        require_address(params.buyer, "buyer")
        if params.token_id is not None:
            require_identifier(params.token_id, "token_id")

    async def build(self, params: RefundEscrowParams, ctx: ComposeContext) -> ComposedDraft:
        return await self._spend(
            ctx, params.caller, params.escrow_id, params.buyer, token_id=params.token_id
        )


COMPOSERS: dict[Operation, Composer] = {
    composer.operation: composer
    for composer in (
        TransferComposer(),
        BatchTransferComposer(),
        StakeComposer(),
        DelegateComposer(),
        ProposeComposer(),
        VoteComposer(),
        DeployResourceComposer(),
        VestingComposer(),
        EscrowComposer(),
        UnstakeComposer(),
        UndelegateComposer(),
        ClaimRewardComposer(),
        ClaimVestingComposer(),
        ReleaseEscrowComposer(),
        RefundEscrowComposer(),
    )
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


class DraftComposer:
    """Dispatches ``compose(operation, params)`` to the registered composer.

    Usage::

        composer = DraftComposer(ledger, FeePolicy())
        composed = await composer.compose(Operation.TRANSFER, params)
    """

    def __init__(
        self,
        ledger: LedgerRPC,
        fee_policy: FeePolicy | None = None,
        *,
        composers: dict[Operation, Composer] | None = None,
    ) -> None:
        self._ctx = ComposeContext(ledger=ledger, selector=UtxoSelector(ledger, fee_policy))
        self._composers = composers if composers is not None else COMPOSERS

    @property
    def selector(self) -> UtxoSelector:
        return self._ctx.selector

    def composer_for(self, operation: Operation | str) -> Composer:
        """Look up the composer for *operation*.

        Raises:
            InvalidArgument: For an unknown operation.
        """
        try:
            return self._composers[Operation(operation)]
        except (KeyError, ValueError) as exc:
            msg = f"unknown operation: {operation}"
            raise InvalidArgument(msg, field="operation") from exc

    def prepare(self, operation: Operation | str, params: Any) -> Composer:
        """Resolve and validate without touching the ledger."""
        composer = self.composer_for(operation)
        if not isinstance(params, composer.params_type):
            msg = (
                f"{composer.operation} expects {composer.params_type.__name__}, "
                f"got {type(params).__name__}"
            )
            raise InvalidArgument(msg, field="params")
        composer.validate(params)
        return composer

    async def compose(self, operation: Operation | str, params: Any) -> ComposedDraft:
        """Validate *params* and build the draft for *operation*.

        Raises:
            InvalidArgument: On bad parameters.
            InconsistentTokenID: For mixed-token batches, before any query.
            InsufficientFunds: When the owner cannot fund the operation.
        """
        composer = self.prepare(operation, params)
        composed = await composer.build(params, self._ctx)
        logger.debug(
            "Composed %s draft: %d inputs, %d outputs, fee %d",
            composer.operation,
            len(composed.draft.inputs),
            len(composed.draft.outputs),
            composed.draft.fee,
        )
        return composed
