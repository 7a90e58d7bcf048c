"""
Beneficiary profile routes.
Plain CRUD over the profile store, keyed by canonical address.
"""

from fastapi import APIRouter, Depends, Response, status

import structlog

from subsidy_admin.api.dependencies import get_profile_store, validate_address_param
from subsidy_admin.api.schemas.beneficiaries import (
    BatchLookupRequest,
    ProfileCreateRequest,
    ProfileDetailResponse,
    ProfileListResponse,
    ProfileResponse,
    ProfileSaveRequest,
    ProfileUpdateRequest,
)
from subsidy_admin.core.exceptions import ProfileNotFoundError, ValidationError
from subsidy_admin.services.profile_store import UNSET, ProfileStore, save_profile
from subsidy_admin.services.types import ProfileInput
from subsidy_admin.utils.validation import ProfileValidator, normalize_address


logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/",
    response_model=ProfileListResponse,
    summary="List Beneficiaries",
    description="All beneficiary profiles, newest first"
)
async def list_beneficiaries(store: ProfileStore = Depends(get_profile_store)):
    records = await store.list_all()
    return ProfileListResponse(data=[ProfileResponse.from_record(r) for r in records])


@router.post(
    "/batch",
    response_model=ProfileListResponse,
    summary="Batch Lookup",
    description="Profiles for a list of addresses; invalid addresses are skipped"
)
async def batch_lookup(
    request: BatchLookupRequest,
    store: ProfileStore = Depends(get_profile_store)
):
    addresses = set()
    for candidate in request.addresses:
        try:
            addresses.add(normalize_address(candidate))
        except ValidationError:
            continue
    dropped = len(request.addresses) - len(addresses)
    if dropped:
        logger.debug("Batch lookup dropped invalid or duplicate addresses", dropped=dropped)
    records = await store.get_many(sorted(addresses))
    return ProfileListResponse(data=[ProfileResponse.from_record(r) for r in records])


@router.get(
    "/{address}",
    response_model=ProfileDetailResponse,
    summary="Get Beneficiary",
    description="Profile for one address"
)
async def get_beneficiary(
    address: str = Depends(validate_address_param),
    store: ProfileStore = Depends(get_profile_store)
):
    record = await store.get(address)
    if record is None:
        raise ProfileNotFoundError(address)
    return ProfileDetailResponse(data=ProfileResponse.from_record(record))


@router.post(
    "/",
    response_model=ProfileDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Beneficiary",
    description="Create a profile; 409 if the address already has one"
)
async def create_beneficiary(
    request: ProfileCreateRequest,
    store: ProfileStore = Depends(get_profile_store)
):
    record = await store.create(ProfileInput(
        address=normalize_address(request.address),
        name=ProfileValidator.validate_name(request.name),
        phone_number=ProfileValidator.clean_optional(request.phone_number),
        responsable=ProfileValidator.clean_optional(request.responsable),
    ))
    return ProfileDetailResponse(data=ProfileResponse.from_record(record), message="Beneficiary created")


@router.put(
    "/{address}",
    response_model=ProfileDetailResponse,
    summary="Update Beneficiary",
    description="Partial update; omitted fields are left unchanged"
)
async def update_beneficiary(
    request: ProfileUpdateRequest,
    address: str = Depends(validate_address_param),
    store: ProfileStore = Depends(get_profile_store)
):
    provided = request.model_fields_set
    record = await store.update(
        address,
        name=(request.name or "").strip() or None,
        phone_number=(
            ProfileValidator.clean_optional(request.phone_number)
            if "phone_number" in provided else UNSET
        ),
        responsable=(
            ProfileValidator.clean_optional(request.responsable)
            if "responsable" in provided else UNSET
        ),
    )
    return ProfileDetailResponse(data=ProfileResponse.from_record(record), message="Beneficiary updated")


@router.put(
    "/{address}/profile",
    response_model=ProfileDetailResponse,
    summary="Save Beneficiary Profile",
    description="Management-panel edit: update the profile if it exists, otherwise create it"
)
async def save_beneficiary_profile(
    request: ProfileSaveRequest,
    response: Response,
    address: str = Depends(validate_address_param),
    store: ProfileStore = Depends(get_profile_store)
):
    record, created = await save_profile(
        store,
        address,
        request.name,
        phone_number=request.phone_number,
        responsable=request.responsable,
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return ProfileDetailResponse(
        data=ProfileResponse.from_record(record),
        message="Beneficiary created" if created else "Beneficiary updated"
    )


@router.delete(
    "/{address}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Beneficiary",
    description="Delete a profile; the ledger entry is unaffected"
)
async def delete_beneficiary(
    address: str = Depends(validate_address_param),
    store: ProfileStore = Depends(get_profile_store)
):
    await store.delete(address)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
