"""
Beneficiary profile schemas for the profile store API.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from subsidy_admin.services.types import ProfileRecord

from .common import AddressField, NameField, SuccessResponse


class ProfileCreateRequest(BaseModel):
    """Profile creation request."""
    address: str = AddressField
    name: str = NameField
    phone_number: Optional[str] = Field(default=None, max_length=64)
    responsable: Optional[str] = Field(default=None, max_length=255)


class ProfileUpdateRequest(BaseModel):
    """
    Partial profile update.

    Omitted fields are left unchanged; an explicit null clears an optional
    field; an empty name keeps the stored one.
    """
    name: Optional[str] = Field(default=None, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=64)
    responsable: Optional[str] = Field(default=None, max_length=255)


class ProfileSaveRequest(BaseModel):
    """Management-panel edit: create or update."""
    name: str = NameField
    phone_number: Optional[str] = Field(default=None, max_length=64)
    responsable: Optional[str] = Field(default=None, max_length=255)


class BatchLookupRequest(BaseModel):
    """Batch lookup request; invalid addresses are skipped."""
    addresses: List[str] = Field(default_factory=list, max_length=1000)


class ProfileResponse(BaseModel):
    """Profile as stored."""
    address: str
    name: str
    phone_number: Optional[str] = None
    responsable: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: ProfileRecord) -> "ProfileResponse":
        return cls(
            address=record.address,
            name=record.name,
            phone_number=record.phone_number,
            responsable=record.responsable,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class ProfileListResponse(SuccessResponse):
    data: List[ProfileResponse]


class ProfileDetailResponse(SuccessResponse):
    data: ProfileResponse
