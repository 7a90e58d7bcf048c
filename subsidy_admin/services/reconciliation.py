"""
Reconciliation view.

Joins indexed ledger records with off-chain profiles on canonical address and
owns the sort and filter semantics of the operator table. Everything here is
pure: identical inputs always give equal outputs, so callers may cache the
result and simply recompute it whenever either source is refetched.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from subsidy_admin.services.types import LedgerRecord, ProfileRecord, ReconciledRow


class SortField(str, Enum):
    """Columns the operator table can be sorted by."""
    ADDRESS = "address"
    DATE_ADDED = "date_added"
    DATE_REMOVED = "date_removed"
    IS_ACTIVE = "is_active"
    TOTAL_CLAIMED = "total_claimed"
    NAME = "name"
    PHONE_NUMBER = "phone_number"
    RESPONSABLE = "responsable"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class StatusFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    INACTIVE = "inactive"


class AmountComparison(str, Enum):
    GREATER_THAN = "gt"
    LESS_THAN = "lt"


STRING_FIELDS = {SortField.ADDRESS, SortField.NAME, SortField.PHONE_NUMBER, SortField.RESPONSABLE}


@dataclass(frozen=True)
class SortConfig:
    field: SortField
    direction: SortDirection = SortDirection.DESC


@dataclass
class SortState:
    """
    Per-session sort selection.

    Selecting a new field sorts descending; selecting the same field again
    flips the direction.
    """
    current: Optional[SortConfig] = None

    def request(self, sort_field: SortField) -> SortConfig:
        direction = SortDirection.DESC
        if (
            self.current is not None
            and self.current.field == sort_field
            and self.current.direction == SortDirection.DESC
        ):
            direction = SortDirection.ASC
        self.current = SortConfig(sort_field, direction)
        return self.current


@dataclass(frozen=True)
class RowFilter:
    """Conjunctive filter over reconciled rows; unset criteria match everything."""
    address_query: str = ""
    status: StatusFilter = StatusFilter.ALL
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    amount_threshold: Optional[Decimal] = None
    amount_comparison: AmountComparison = AmountComparison.GREATER_THAN

    def matches(self, row: ReconciledRow) -> bool:
        if self.address_query and self.address_query.lower() not in row.address.lower():
            return False

        if self.status == StatusFilter.ACTIVE and not row.is_active:
            return False
        if self.status == StatusFilter.INACTIVE and row.is_active:
            return False

        if self.date_from or self.date_to:
            added = datetime.fromtimestamp(row.date_added or 0, tz=timezone.utc)
            if self.date_from and added < _aware(self.date_from):
                return False
            if self.date_to and added > _aware(self.date_to):
                return False

        if self.amount_threshold is not None:
            claimed = row.claimed_amount
            if self.amount_comparison == AmountComparison.GREATER_THAN and not claimed > self.amount_threshold:
                return False
            if self.amount_comparison == AmountComparison.LESS_THAN and not claimed < self.amount_threshold:
                return False

        return True


def _aware(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ReconciledView:
    """
    Result of one merge.

    ``rows`` are ledger-driven, in ledger order. Profiles with no ledger
    entry are kept aside in ``orphan_profiles`` so they stay addressable
    through ``lookup`` without showing up in ledger-derived tables.
    """
    rows: Tuple[ReconciledRow, ...] = ()
    orphan_profiles: Tuple[ProfileRecord, ...] = ()
    _index: Dict[str, ReconciledRow] = field(default_factory=dict, compare=False, repr=False)

    def lookup(self, address: str) -> Optional[ReconciledRow]:
        """Row for any address present in either source."""
        return self._index.get(address.lower())

    def __len__(self) -> int:
        return len(self.rows)


def reconcile(
    ledger_records: Iterable[LedgerRecord],
    profiles: Iterable[ProfileRecord],
) -> ReconciledView:
    """
    Outer-join ledger records and profiles by canonical address in O(n).

    Repeated ledger entries for one address collapse into a single row that
    keeps the first position and the last record.
    """
    profile_by_address: Dict[str, ProfileRecord] = {}
    for profile in profiles:
        profile_by_address[profile.address.lower()] = profile

    merged: Dict[str, ReconciledRow] = {}
    for record in ledger_records:
        address = record.address.lower()
        existing = merged.get(address)
        if existing is not None:
            merged[address] = replace(existing, ledger=record)
        else:
            merged[address] = ReconciledRow(
                address=address,
                ledger=record,
                profile=profile_by_address.get(address),
            )

    index = dict(merged)
    orphans = []
    for address, profile in profile_by_address.items():
        if address not in merged:
            orphans.append(profile)
            index[address] = ReconciledRow(address=address, profile=profile)

    return ReconciledView(
        rows=tuple(merged.values()),
        orphan_profiles=tuple(sorted(orphans, key=lambda p: p.address)),
        _index=index,
    )


def _sort_key(row: ReconciledRow, sort_field: SortField):
    value = getattr(row, sort_field.value)
    if sort_field in STRING_FIELDS:
        return (value or "").lower()
    if sort_field == SortField.TOTAL_CLAIMED:
        return int(value or 0)
    if sort_field == SortField.IS_ACTIVE:
        return bool(value)
    return value or 0


def sort_rows(rows: Iterable[ReconciledRow], config: Optional[SortConfig]) -> List[ReconciledRow]:
    """
    Stable sort by one field.

    Equal keys keep their incoming relative order in both directions, so
    desc and asc on distinct keys are exact mirrors.
    """
    rows = list(rows)
    if config is None:
        return rows
    return sorted(
        rows,
        key=lambda row: _sort_key(row, config.field),
        reverse=config.direction == SortDirection.DESC,
    )


def filter_rows(rows: Iterable[ReconciledRow], row_filter: Optional[RowFilter]) -> List[ReconciledRow]:
    if row_filter is None:
        return list(rows)
    return [row for row in rows if row_filter.matches(row)]


def build_rows(
    view: ReconciledView,
    sort: Optional[SortConfig] = None,
    row_filter: Optional[RowFilter] = None,
) -> List[ReconciledRow]:
    """Sort the full reconciled set, then filter it."""
    return filter_rows(sort_rows(view.rows, sort), row_filter)
