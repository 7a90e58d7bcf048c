"""
Operation routes.

Adding or removing a beneficiary submits a ledger transaction and, for adds,
a dependent profile write. Both run in the background: the POST answers 202
with an operation id the operator polls, abandons or cancels.
"""

from fastapi import APIRouter, Depends, Query, Response, status

import structlog

from subsidy_admin.api.dependencies import get_coordinator, get_dashboard_session, get_notifier
from subsidy_admin.api.schemas.common import create_success_response
from subsidy_admin.api.schemas.operations import (
    AddBeneficiaryRequest,
    NotificationsResponse,
    OperationResponse,
    OperationStatus,
    RemoveBeneficiaryRequest,
)
from subsidy_admin.core.exceptions import ConflictError, NotFoundError
from subsidy_admin.services.dashboard_session import DashboardSession
from subsidy_admin.services.notification_service import NotificationService
from subsidy_admin.services.write_coordinator import WriteCoordinator, WriteOperation
from subsidy_admin.utils.validation import normalize_address


logger = structlog.get_logger(__name__)

router = APIRouter()


def ensure_idle(session: DashboardSession, address: str) -> None:
    """One in-flight operation per address and session."""
    busy = session.busy_with(address)
    if busy is not None:
        raise ConflictError(
            "An operation for this address is already in progress",
            {"address": address, "operation_id": busy.operation_id, "state": busy.state.value}
        )


async def respond(operation: WriteOperation, response: Response, wait: bool) -> OperationResponse:
    if wait:
        result = await operation.wait()
        response.status_code = status.HTTP_200_OK
    else:
        result = operation.snapshot()
        response.status_code = status.HTTP_202_ACCEPTED
    return OperationResponse(data=OperationStatus.from_result(result), message=result.message)


@router.post(
    "/add",
    response_model=OperationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Add Beneficiary",
    description="Enroll an address on the ledger, then save its profile"
)
async def add_beneficiary(
    request: AddBeneficiaryRequest,
    response: Response,
    wait: bool = Query(False, description="Block until the operation is terminal"),
    session: DashboardSession = Depends(get_dashboard_session),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    address = normalize_address(request.address)
    ensure_idle(session, address)

    operation = coordinator.start_add(
        address,
        request.name,
        phone_number=request.phone_number,
        responsable=request.responsable,
        session_id=session.session_id,
    )
    session.track(operation)
    logger.info("Add operation started", operation_id=operation.operation_id, address=address)
    return await respond(operation, response, wait)


@router.post(
    "/remove",
    response_model=OperationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Remove Beneficiary",
    description="Remove an address from the ledger; its profile is kept"
)
async def remove_beneficiary(
    request: RemoveBeneficiaryRequest,
    response: Response,
    wait: bool = Query(False, description="Block until the operation is terminal"),
    session: DashboardSession = Depends(get_dashboard_session),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    address = normalize_address(request.address)
    ensure_idle(session, address)

    operation = coordinator.start_remove(address, session_id=session.session_id)
    session.track(operation)
    logger.info("Remove operation started", operation_id=operation.operation_id, address=address)
    return await respond(operation, response, wait)


@router.get(
    "/notifications",
    response_model=NotificationsResponse,
    summary="Operator Notifications",
    description="Results of abandoned operations; drained on read"
)
async def get_notifications(
    session: DashboardSession = Depends(get_dashboard_session),
    notifier: NotificationService = Depends(get_notifier),
):
    return NotificationsResponse(data=notifier.drain(session.session_id))


async def get_operation_or_404(
    operation_id: str,
    coordinator: WriteCoordinator = Depends(get_coordinator),
) -> WriteOperation:
    operation = coordinator.get_operation(operation_id)
    if operation is None:
        raise NotFoundError(f"Operation not found: {operation_id}", {"operation_id": operation_id})
    return operation


@router.get(
    "/{operation_id}",
    response_model=OperationResponse,
    summary="Operation Status"
)
async def get_operation(operation: WriteOperation = Depends(get_operation_or_404)):
    result = operation.snapshot()
    return OperationResponse(data=OperationStatus.from_result(result), message=result.message)


@router.post(
    "/{operation_id}/abandon",
    response_model=OperationResponse,
    summary="Abandon Operation",
    description="Stop following an operation; its result arrives as a notification"
)
async def abandon_operation(operation: WriteOperation = Depends(get_operation_or_404)):
    operation.abandon()
    result = operation.snapshot()
    return OperationResponse(data=OperationStatus.from_result(result), message=result.message)


@router.post(
    "/{operation_id}/cancel",
    summary="Cancel Operation",
    description="Stop an operation before its transaction is broadcast; afterwards it can only be abandoned"
)
async def cancel_operation(operation: WriteOperation = Depends(get_operation_or_404)):
    if not operation.cancel():
        raise ConflictError(
            "Transaction already broadcast; abandon the operation instead",
            {"operation_id": operation.operation_id, "state": operation.state.value}
        )
    return create_success_response(
        data={"operation_id": operation.operation_id},
        message="Cancellation requested"
    )
