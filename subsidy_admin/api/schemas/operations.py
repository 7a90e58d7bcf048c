"""
Schemas for ledger-mutating operations.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from subsidy_admin.services.notification_service import OperatorNotification
from subsidy_admin.services.write_coordinator import OperationResult

from .beneficiaries import ProfileResponse
from .common import AddressField, NameField, SuccessResponse


class AddBeneficiaryRequest(BaseModel):
    address: str = AddressField
    name: str = NameField
    phone_number: Optional[str] = Field(default=None, max_length=64)
    responsable: Optional[str] = Field(default=None, max_length=255)


class RemoveBeneficiaryRequest(BaseModel):
    address: str = AddressField


class OperationStatus(BaseModel):
    operation_id: str
    action: str
    address: str
    state: str
    outcome: Optional[str] = None
    terminal: bool
    message: str
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    profile: Optional[ProfileResponse] = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def from_result(cls, result: OperationResult) -> "OperationStatus":
        return cls(
            operation_id=result.operation_id,
            action=result.action.value,
            address=result.address,
            state=result.state.value,
            outcome=result.outcome.value if result.outcome else None,
            terminal=result.is_terminal,
            message=result.message,
            tx_hash=result.tx_hash,
            explorer_url=result.explorer_url,
            profile=ProfileResponse.from_record(result.profile) if result.profile else None,
            error=(
                {"code": result.error.code, "message": result.error.message, "details": result.error.details}
                if result.error else None
            ),
        )


class OperationResponse(SuccessResponse):
    data: OperationStatus


class NotificationsResponse(SuccessResponse):
    data: List[OperatorNotification]
