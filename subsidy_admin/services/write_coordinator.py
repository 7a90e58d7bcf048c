"""
Write coordinator.

Sequences a ledger mutation (enroll / remove beneficiary) with the dependent
profile write. There is no cross-store transaction, so every operation is a
small state machine with named terminal states:

    IDLE -> MUTATION_SUBMITTED -> MUTATION_CONFIRMED -> PROFILE_PERSISTED
                                                    \\-> PROFILE_PERSIST_FAILED
                                                    \\-> COMPLETED (remove)
    IDLE / MUTATION_SUBMITTED -> MUTATION_REJECTED

The profile is never written before the ledger confirms, and never written
at all once the ledger rejects. A confirmed mutation whose profile write
fails is terminal: the ledger is authoritative, the profile store is stale,
and the operator is told to fix it by hand. No automatic retry.
"""

import asyncio
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from subsidy_admin.core.config import LedgerConfig
from subsidy_admin.core.exceptions import (
    MutationRejectedError,
    PartialFailureError,
    ProfileExistsError,
    SubsidyAdminException,
)
from subsidy_admin.services.ledger_mutation import LedgerAction, MutationHandle
from subsidy_admin.services.notification_service import (
    NotificationLevel,
    NotificationService,
    OperatorNotification,
)
from subsidy_admin.services.profile_store import UNSET, profile_store_scope
from subsidy_admin.services.types import ProfileInput, ProfileRecord
from subsidy_admin.utils.validation import ProfileValidator, normalize_address


logger = structlog.get_logger(__name__)


class OperationState(str, Enum):
    IDLE = "idle"
    MUTATION_SUBMITTED = "mutation_submitted"
    MUTATION_CONFIRMED = "mutation_confirmed"
    PROFILE_PERSISTED = "profile_persisted"
    COMPLETED = "completed"
    MUTATION_REJECTED = "mutation_rejected"
    PROFILE_PERSIST_FAILED = "profile_persist_failed"


class OperationOutcome(str, Enum):
    """The three ways an operation can end."""
    SUCCESS = "success"
    LEDGER_ONLY = "ledger_only"
    REJECTED = "rejected"


TRANSITIONS: Dict[OperationState, Tuple[OperationState, ...]] = {
    OperationState.IDLE: (OperationState.MUTATION_SUBMITTED, OperationState.MUTATION_REJECTED),
    OperationState.MUTATION_SUBMITTED: (OperationState.MUTATION_CONFIRMED, OperationState.MUTATION_REJECTED),
    OperationState.MUTATION_CONFIRMED: (
        OperationState.PROFILE_PERSISTED,
        OperationState.PROFILE_PERSIST_FAILED,
        OperationState.COMPLETED,
    ),
}

OUTCOMES: Dict[OperationState, OperationOutcome] = {
    OperationState.PROFILE_PERSISTED: OperationOutcome.SUCCESS,
    OperationState.COMPLETED: OperationOutcome.SUCCESS,
    OperationState.PROFILE_PERSIST_FAILED: OperationOutcome.LEDGER_ONLY,
    OperationState.MUTATION_REJECTED: OperationOutcome.REJECTED,
}

STATUS_MESSAGES: Dict[OperationState, str] = {
    OperationState.IDLE: "Waiting to submit transaction",
    OperationState.MUTATION_SUBMITTED: "Processing transaction...",
    OperationState.MUTATION_CONFIRMED: "Saving profile...",
    OperationState.PROFILE_PERSISTED: "Beneficiary added to the ledger and the profile store",
    OperationState.COMPLETED: "Operation processed successfully",
    OperationState.PROFILE_PERSIST_FAILED: (
        "Beneficiary added to the ledger but the profile could not be saved. "
        "Update it manually from the management panel"
    ),
    OperationState.MUTATION_REJECTED: (
        "Transaction failed. Check admin permissions and available gas"
    ),
}


class InvalidTransitionError(RuntimeError):
    """Raised on a state change the machine does not allow."""


@dataclass
class PendingWrite:
    """Profile payload to persist once the ledger confirms. Memory only."""
    payload: ProfileInput


@dataclass(frozen=True)
class OperationResult:
    """Snapshot of an operation, terminal or not."""
    operation_id: str
    action: LedgerAction
    address: str
    state: OperationState
    message: str
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    profile: Optional[ProfileRecord] = None
    error: Optional[SubsidyAdminException] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in OUTCOMES

    @property
    def outcome(self) -> Optional[OperationOutcome]:
        return OUTCOMES.get(self.state)

    @property
    def succeeded(self) -> bool:
        return self.outcome == OperationOutcome.SUCCESS

    def raise_for_state(self) -> None:
        """Raise the taxonomy error for a failed terminal state."""
        if self.state in (OperationState.MUTATION_REJECTED, OperationState.PROFILE_PERSIST_FAILED):
            raise self.error


@dataclass
class WriteOperation:
    """One add/remove operation and its state history."""
    action: LedgerAction
    address: str
    session_id: Optional[str] = None
    pending: Optional[PendingWrite] = None
    operation_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: OperationState = OperationState.IDLE
    history: List[Tuple[OperationState, datetime]] = field(default_factory=list)
    tx_hash: Optional[str] = None
    profile: Optional[ProfileRecord] = None
    error: Optional[SubsidyAdminException] = None
    abandoned: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def __post_init__(self):
        self.history.append((self.state, datetime.now(timezone.utc)))

    def transition(self, new_state: OperationState) -> None:
        if new_state not in TRANSITIONS.get(self.state, ()):
            raise InvalidTransitionError(f"{self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append((new_state, datetime.now(timezone.utc)))
        if new_state in OUTCOMES:
            # Discarded on every terminal state, success or not
            self.pending = None
        logger.info(
            "Operation state changed",
            operation_id=self.operation_id,
            action=self.action.value,
            address=self.address,
            state=new_state.value,
            tx_hash=self.tx_hash,
        )

    @property
    def done(self) -> bool:
        return self.state in OUTCOMES

    def snapshot(self) -> OperationResult:
        message = STATUS_MESSAGES[self.state]
        if self.state == OperationState.MUTATION_REJECTED and self.error is not None:
            message = f"{message}: {self.error.message}"
        return OperationResult(
            operation_id=self.operation_id,
            action=self.action,
            address=self.address,
            state=self.state,
            message=message,
            tx_hash=self.tx_hash,
            explorer_url=LedgerConfig.get_explorer_url(self.tx_hash) if self.tx_hash else None,
            profile=self.profile,
            error=self.error,
        )

    async def wait(self) -> OperationResult:
        """
        Await the terminal result.

        Cancelling the waiter does not cancel the operation; a cancelled
        operation resolves to its rejected snapshot.
        """
        try:
            return await asyncio.shield(self.task)
        except asyncio.CancelledError:
            if self.task.cancelled():
                return self.snapshot()
            raise

    def abandon(self) -> None:
        """
        Detach the caller.

        The operation keeps running; its terminal result is delivered
        through the notification service instead.
        """
        if not self.done:
            self.abandoned = True
            logger.info("Operation abandoned by caller", operation_id=self.operation_id, state=self.state.value)

    def cancel(self) -> bool:
        """
        Stop the operation before its transaction is broadcast; the
        pending profile write is dropped. Once a tx hash exists the
        operation can only be abandoned.
        """
        if self.state != OperationState.IDLE or self.task is None or self.task.done():
            return False
        return self.task.cancel()


ProfileScope = Callable[[], object]


class WriteCoordinator:
    """Runs add/remove beneficiary operations."""

    def __init__(
        self,
        mutation_client,
        profile_scope: ProfileScope = profile_store_scope,
        notifier: Optional[NotificationService] = None,
        referral_reporter=None,
        max_finished: int = 500,
        confirm_retry_interval: float = 5.0,
    ):
        self.mutation_client = mutation_client
        self.profile_scope = profile_scope
        self.notifier = notifier
        self.referral_reporter = referral_reporter
        self.max_finished = max_finished
        self.confirm_retry_interval = confirm_retry_interval
        self._operations: "OrderedDict[str, WriteOperation]" = OrderedDict()
        self.logger = logger.bind(service="write_coordinator")

    # Operation lifecycle

    def start_add(
        self,
        address: str,
        name: str,
        phone_number: Optional[str] = None,
        responsable: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> WriteOperation:
        """
        Validate locally, then launch enrollment in the background.

        Raises:
            ValidationError: malformed address or empty name; nothing submitted
        """
        canonical = normalize_address(address)
        payload = ProfileInput(
            address=canonical,
            name=ProfileValidator.validate_name(name),
            phone_number=ProfileValidator.clean_optional(phone_number),
            responsable=ProfileValidator.clean_optional(responsable),
        )
        operation = WriteOperation(
            action=LedgerAction.ADD,
            address=canonical,
            session_id=session_id,
            pending=PendingWrite(payload),
        )
        return self._launch(operation)

    def start_remove(self, address: str, session_id: Optional[str] = None) -> WriteOperation:
        """
        Validate locally, then launch removal. Profiles are kept.

        Raises:
            ValidationError: malformed address; nothing submitted
        """
        operation = WriteOperation(
            action=LedgerAction.REMOVE,
            address=normalize_address(address),
            session_id=session_id,
        )
        return self._launch(operation)

    async def add_beneficiary(self, *args, **kwargs) -> OperationResult:
        return await self.start_add(*args, **kwargs).wait()

    async def remove_beneficiary(self, *args, **kwargs) -> OperationResult:
        return await self.start_remove(*args, **kwargs).wait()

    def get_operation(self, operation_id: str) -> Optional[WriteOperation]:
        return self._operations.get(operation_id)

    def _launch(self, operation: WriteOperation) -> WriteOperation:
        self._operations[operation.operation_id] = operation
        self._prune()
        operation.task = asyncio.get_running_loop().create_task(self._run(operation))
        operation.task.add_done_callback(lambda task: self._on_task_done(operation, task))
        return operation

    def _on_task_done(self, operation: WriteOperation, task: asyncio.Task) -> None:
        # Also covers tasks cancelled before their first step ran
        if task.cancelled() and not operation.done:
            self._reject(operation, MutationRejectedError(
                "Operation cancelled before submission",
                {"address": operation.address, "tx_hash": operation.tx_hash}
            ))

    def _prune(self) -> None:
        finished = [op_id for op_id, op in self._operations.items() if op.done]
        for op_id in finished[:max(0, len(finished) - self.max_finished)]:
            del self._operations[op_id]

    # State machine

    async def _run(self, operation: WriteOperation) -> OperationResult:
        handle = await self._submit(operation)
        if handle is not None:
            await self._confirm(operation, handle)

        if operation.state == OperationState.MUTATION_CONFIRMED:
            await self._persist(operation)
            await self._report_usage(operation)

        result = operation.snapshot()
        if operation.abandoned:
            await self._notify(operation, result)
        return result

    async def _submit(self, operation: WriteOperation) -> Optional[MutationHandle]:
        try:
            handle = await self.mutation_client.submit(operation.action, operation.address)
        except MutationRejectedError as e:
            self._reject(operation, e)
            return None
        except Exception as e:
            self.logger.error("Ledger submission failed", operation_id=operation.operation_id, error=str(e))
            self._reject(operation, MutationRejectedError(str(e), {"address": operation.address}))
            return None

        operation.tx_hash = handle.tx_hash
        operation.transition(OperationState.MUTATION_SUBMITTED)
        return handle

    async def _confirm(self, operation: WriteOperation, handle: MutationHandle) -> None:
        """Wait for the receipt. Only a mined revert rejects a broadcast transaction."""
        while True:
            try:
                await self.mutation_client.wait_for_confirmation(handle)
                break
            except MutationRejectedError as e:
                self._reject(operation, e)
                return
            except Exception as e:
                self.logger.warning(
                    "Confirmation wait failed, still watching transaction",
                    operation_id=operation.operation_id,
                    tx_hash=handle.tx_hash,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                await asyncio.sleep(self.confirm_retry_interval)
        operation.transition(OperationState.MUTATION_CONFIRMED)

    def _reject(self, operation: WriteOperation, error: MutationRejectedError) -> None:
        operation.error = error
        operation.transition(OperationState.MUTATION_REJECTED)

    async def _persist(self, operation: WriteOperation) -> None:
        pending = operation.pending
        if pending is None:
            operation.transition(OperationState.COMPLETED)
            return

        try:
            operation.profile = await self._write_profile(pending.payload)
        except Exception as e:
            self.logger.error(
                "Profile write failed after ledger confirmation",
                operation_id=operation.operation_id,
                address=operation.address,
                tx_hash=operation.tx_hash,
                error=str(e),
            )
            operation.error = PartialFailureError(
                "Ledger mutation confirmed but the profile could not be saved",
                {"address": operation.address, "tx_hash": operation.tx_hash, "error": str(e)}
            )
            operation.transition(OperationState.PROFILE_PERSIST_FAILED)
            return

        operation.transition(OperationState.PROFILE_PERSISTED)

    async def _write_profile(self, payload: ProfileInput) -> ProfileRecord:
        """Update when a profile exists, otherwise create."""
        update_fields = dict(
            name=payload.name,
            phone_number=payload.phone_number if payload.phone_number is not None else UNSET,
            responsable=payload.responsable if payload.responsable is not None else UNSET,
        )
        async with self.profile_scope() as store:
            if await store.get(payload.address) is not None:
                return await store.update(payload.address, **update_fields)
            try:
                return await store.create(payload)
            except ProfileExistsError:
                self.logger.info("Profile created concurrently, updating instead", address=payload.address)

        async with self.profile_scope() as store:
            return await store.update(payload.address, **update_fields)

    async def _report_usage(self, operation: WriteOperation) -> None:
        if self.referral_reporter is None or not operation.tx_hash:
            return
        try:
            await self.referral_reporter.report(operation.tx_hash)
        except Exception as e:
            self.logger.warning("Referral report failed", tx_hash=operation.tx_hash, error=str(e))

    async def _notify(self, operation: WriteOperation, result: OperationResult) -> None:
        if self.notifier is None or operation.session_id is None:
            self.logger.warning(
                "No notification target for abandoned operation",
                operation_id=operation.operation_id,
                state=result.state.value,
            )
            return

        level = {
            OperationOutcome.SUCCESS: NotificationLevel.SUCCESS,
            OperationOutcome.LEDGER_ONLY: NotificationLevel.WARNING,
            OperationOutcome.REJECTED: NotificationLevel.ERROR,
        }[result.outcome]
        await self.notifier.publish(
            operation.session_id,
            OperatorNotification(
                level=level,
                title=f"{operation.action.value} beneficiary: {result.outcome.value}",
                message=result.message,
                operation_id=operation.operation_id,
                address=operation.address,
                tx_hash=result.tx_hash,
                explorer_url=result.explorer_url,
                data={"state": result.state.value},
            ),
        )


# Global coordinator instance
_write_coordinator: Optional[WriteCoordinator] = None


def get_write_coordinator() -> WriteCoordinator:
    """Get or create the global write coordinator."""
    global _write_coordinator
    if _write_coordinator is None:
        from subsidy_admin.services.ledger_mutation import get_ledger_mutation_client
        from subsidy_admin.services.notification_service import get_notification_service
        from subsidy_admin.services.referral_reporter import get_referral_reporter

        _write_coordinator = WriteCoordinator(
            mutation_client=get_ledger_mutation_client(),
            notifier=get_notification_service(),
            referral_reporter=get_referral_reporter(),
        )
    return _write_coordinator


def set_write_coordinator(coordinator: Optional[WriteCoordinator]) -> None:
    """Replace the global coordinator (wiring and tests)."""
    global _write_coordinator
    _write_coordinator = coordinator
