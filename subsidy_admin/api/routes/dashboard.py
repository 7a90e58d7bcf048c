"""
Dashboard routes: the reconciled ledger/profile table and its summary.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, Query

import structlog

from subsidy_admin.api.dependencies import (
    get_dashboard_session,
    get_ledger,
    get_profile_store,
    validate_address_param,
)
from subsidy_admin.api.schemas.dashboard import (
    ReconciledRowResponse,
    RowDetailResponse,
    RowsData,
    RowsResponse,
    SortInfo,
    SummaryData,
    SummaryResponse,
)
from subsidy_admin.core.exceptions import NotFoundError
from subsidy_admin.services.aggregates import summarize
from subsidy_admin.services.dashboard_loader import load_view, load_view_with_claims
from subsidy_admin.services.dashboard_session import DashboardSession
from subsidy_admin.services.ledger_client import LedgerQueryClient
from subsidy_admin.services.profile_store import ProfileStore
from subsidy_admin.services.reconciliation import (
    AmountComparison,
    RowFilter,
    SortConfig,
    SortDirection,
    SortField,
    StatusFilter,
    build_rows,
)


logger = structlog.get_logger(__name__)

router = APIRouter()


def resolve_sort(
    session: DashboardSession,
    sort_by: Optional[SortField],
    sort_direction: Optional[SortDirection],
) -> Optional[SortConfig]:
    """
    Sort for this request.

    A column without a direction behaves like a header click (repeated
    selection toggles); an explicit direction pins it; neither keeps the
    session's last choice.
    """
    if sort_by is None:
        return session.sort.current
    if sort_direction is None:
        return session.request_sort(sort_by)
    session.sort.current = SortConfig(sort_by, sort_direction)
    return session.sort.current


@router.get(
    "/rows",
    response_model=RowsResponse,
    summary="Reconciled Rows",
    description="Ledger beneficiaries joined with their profiles, sorted and filtered"
)
async def get_rows(
    sort_by: Optional[SortField] = Query(None, description="Column to sort by"),
    sort_direction: Optional[SortDirection] = Query(None, description="Omit to toggle"),
    address: str = Query("", description="Case-insensitive address substring"),
    status_filter: StatusFilter = Query(StatusFilter.ALL, alias="status"),
    date_from: Optional[datetime] = Query(None, description="Enrolled on or after"),
    date_to: Optional[datetime] = Query(None, description="Enrolled on or before"),
    amount: Optional[Decimal] = Query(None, description="Claimed amount threshold, token units"),
    amount_comparison: AmountComparison = Query(AmountComparison.GREATER_THAN),
    session: DashboardSession = Depends(get_dashboard_session),
    ledger: LedgerQueryClient = Depends(get_ledger),
    store: ProfileStore = Depends(get_profile_store),
):
    sort = resolve_sort(session, sort_by, sort_direction)
    row_filter = RowFilter(
        address_query=address.strip(),
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
        amount_threshold=amount,
        amount_comparison=amount_comparison,
    )

    view = await load_view(ledger, store)
    rows = build_rows(view, sort, row_filter)

    return RowsResponse(data=RowsData(
        rows=[ReconciledRowResponse.from_row(r) for r in rows],
        total=len(view),
        filtered=len(rows),
        sort=SortInfo.from_config(sort),
    ))


@router.get(
    "/rows/{address}",
    response_model=RowDetailResponse,
    summary="Reconciled Row",
    description="One address, including addresses known only to the profile store"
)
async def get_row(
    address: str = Depends(validate_address_param),
    ledger: LedgerQueryClient = Depends(get_ledger),
    store: ProfileStore = Depends(get_profile_store),
):
    view = await load_view(ledger, store)
    row = view.lookup(address)
    if row is None:
        raise NotFoundError(f"Address not known to the ledger or the profile store: {address}", {"address": address})
    return RowDetailResponse(data=ReconciledRowResponse.from_row(row))


@router.get(
    "/summary",
    response_model=SummaryResponse,
    summary="Dashboard Summary",
    description="Counts, average claimed, most common claim interval and top claimers"
)
async def get_summary(
    ledger: LedgerQueryClient = Depends(get_ledger),
    store: ProfileStore = Depends(get_profile_store),
):
    view, daily_claims = await load_view_with_claims(ledger, store)
    summary = summarize(view, daily_claims)
    logger.debug("Summary computed", total=summary.total_count, active=summary.active_count)
    return SummaryResponse(data=SummaryData.from_summary(summary))
