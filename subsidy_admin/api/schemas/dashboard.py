"""
Dashboard schemas: reconciled rows and summary statistics.
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from subsidy_admin.services.aggregates import DashboardSummary, LeaderboardEntry
from subsidy_admin.services.reconciliation import SortConfig
from subsidy_admin.services.types import ReconciledRow

from .common import SuccessResponse


class ReconciledRowResponse(BaseModel):
    """One beneficiary as seen by the operator."""
    address: str
    display_name: str
    name: Optional[str] = None
    phone_number: Optional[str] = None
    responsable: Optional[str] = None
    on_ledger: bool = Field(description="Whether the indexer knows this address")
    has_profile: bool
    is_active: bool
    date_added: Optional[int] = Field(default=None, description="Unix seconds")
    date_removed: Optional[int] = Field(default=None, description="Unix seconds")
    total_claimed: str = Field(description="Claimed amount in base units")
    claimed_amount: Decimal = Field(description="Claimed amount in token units")

    @classmethod
    def from_row(cls, row: ReconciledRow) -> "ReconciledRowResponse":
        return cls(
            address=row.address,
            display_name=row.display_name,
            name=row.name,
            phone_number=row.phone_number,
            responsable=row.responsable,
            on_ledger=row.has_ledger,
            has_profile=row.has_profile,
            is_active=row.is_active,
            date_added=row.date_added,
            date_removed=row.date_removed,
            total_claimed=str(row.total_claimed),
            claimed_amount=row.claimed_amount,
        )


class SortInfo(BaseModel):
    field: str
    direction: str

    @classmethod
    def from_config(cls, config: Optional[SortConfig]) -> Optional["SortInfo"]:
        if config is None:
            return None
        return cls(field=config.field.value, direction=config.direction.value)


class RowsData(BaseModel):
    rows: List[ReconciledRowResponse]
    total: int = Field(description="Rows before filtering")
    filtered: int = Field(description="Rows after filtering")
    sort: Optional[SortInfo] = None


class RowsResponse(SuccessResponse):
    data: RowsData


class RowDetailResponse(SuccessResponse):
    data: ReconciledRowResponse


class LeaderboardEntryResponse(BaseModel):
    rank: int
    address: str
    display_name: str
    total_claimed: str
    claimed_amount: Decimal

    @classmethod
    def from_entry(cls, entry: LeaderboardEntry) -> "LeaderboardEntryResponse":
        return cls(
            rank=entry.rank,
            address=entry.address,
            display_name=entry.display_name,
            total_claimed=str(entry.total_claimed),
            claimed_amount=entry.claimed_amount,
        )


class SummaryData(BaseModel):
    total_count: int
    active_count: int
    average_claimed: Decimal
    most_common_claim_interval: Optional[int] = Field(
        default=None,
        description="Days; null when undetermined. Approximate: per-address gaps are rounded"
    )
    leaderboard: List[LeaderboardEntryResponse]

    @classmethod
    def from_summary(cls, summary: DashboardSummary) -> "SummaryData":
        return cls(
            total_count=summary.total_count,
            active_count=summary.active_count,
            average_claimed=summary.average_claimed,
            most_common_claim_interval=summary.most_common_claim_interval,
            leaderboard=[LeaderboardEntryResponse.from_entry(e) for e in summary.leaderboard],
        )


class SummaryResponse(SuccessResponse):
    data: SummaryData
