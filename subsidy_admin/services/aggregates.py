"""
Aggregate reporter.

Descriptive statistics for the dashboard summary, computed from a
reconciled view and the indexer's daily claim batches.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Dict, Iterable, List, Optional, Sequence

from subsidy_admin.services.reconciliation import ReconciledView
from subsidy_admin.services.types import DailyClaim, ReconciledRow
from subsidy_admin.utils.validation import scale_amount


SECONDS_PER_DAY = 86400
LEADERBOARD_SIZE = 5


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    address: str
    display_name: str
    total_claimed: int
    claimed_amount: Decimal


@dataclass(frozen=True)
class DashboardSummary:
    total_count: int
    active_count: int
    average_claimed: Decimal
    most_common_claim_interval: Optional[int]
    leaderboard: List[LeaderboardEntry] = field(default_factory=list)


def active_count(rows: Iterable[ReconciledRow]) -> int:
    return sum(1 for row in rows if row.is_active)


def average_claimed(rows: Sequence[ReconciledRow]) -> Decimal:
    """Mean decimal-scaled claimed amount; zero for an empty set."""
    if not rows:
        return Decimal(0)
    total = sum(row.total_claimed for row in rows)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(str(total)) + 28)
        return scale_amount(total) / len(rows)


def claim_dates_by_address(daily_claims: Iterable[DailyClaim]) -> Dict[str, List[int]]:
    dates: Dict[str, List[int]] = defaultdict(list)
    for claim in daily_claims:
        for address in claim.beneficiaries:
            dates[address.lower()].append(claim.date)
    return dates


def mean_interval_days(dates: Sequence[int]) -> Optional[int]:
    """
    Mean gap between consecutive claims, rounded half-up to whole days.

    None for fewer than two claims.
    """
    if len(dates) < 2:
        return None
    ordered = sorted(dates)
    mean_seconds = Decimal(ordered[-1] - ordered[0]) / (len(ordered) - 1)
    days = (mean_seconds / SECONDS_PER_DAY).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(days)


def most_common_claim_interval(daily_claims: Iterable[DailyClaim]) -> Optional[int]:
    """
    Most frequent per-address mean claim interval, in days.

    This is an approximate reporting figure: per-address gaps are rounded to
    whole days before bucketing, intervals that round to zero are dropped,
    and a tie between buckets goes to the shorter interval. Returns None
    (undetermined) when no address has two or more claims.
    """
    intervals = []
    for dates in claim_dates_by_address(daily_claims).values():
        interval = mean_interval_days(dates)
        if interval is not None and interval > 0:
            intervals.append(interval)

    if not intervals:
        return None

    counts = Counter(intervals)
    return min(counts, key=lambda interval: (-counts[interval], interval))


def leaderboard(rows: Sequence[ReconciledRow], limit: int = LEADERBOARD_SIZE) -> List[LeaderboardEntry]:
    """Top rows by claimed amount; ties keep reconciled order."""
    ranked = sorted(rows, key=lambda row: row.total_claimed, reverse=True)[:limit]
    return [
        LeaderboardEntry(
            rank=position,
            address=row.address,
            display_name=row.display_name,
            total_claimed=row.total_claimed,
            claimed_amount=row.claimed_amount,
        )
        for position, row in enumerate(ranked, start=1)
    ]


def summarize(view: ReconciledView, daily_claims: Iterable[DailyClaim]) -> DashboardSummary:
    rows = list(view.rows)
    return DashboardSummary(
        total_count=len(rows),
        active_count=active_count(rows),
        average_claimed=average_claimed(rows),
        most_common_claim_interval=most_common_claim_interval(daily_claims),
        leaderboard=leaderboard(rows),
    )
