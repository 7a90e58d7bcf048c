"""
Tests for the reconciliation view: merge, sort and filter.
"""

from datetime import datetime, timezone
from decimal import Decimal

from subsidy_admin.services.reconciliation import (
    AmountComparison,
    RowFilter,
    SortConfig,
    SortDirection,
    SortField,
    SortState,
    StatusFilter,
    build_rows,
    reconcile,
    sort_rows,
)
from subsidy_admin.services.types import ProfileRecord

from tests.conftest import ADDR_A, ADDR_B, ADDR_C, DAY, ETHER, ledger_record


def profile(address, name, phone_number=None, responsable=None):
    return ProfileRecord(address=address, name=name, phone_number=phone_number, responsable=responsable)


class TestReconcile:

    def test_one_row_per_ledger_address_regardless_of_profiles(self):
        records = [ledger_record(ADDR_A), ledger_record(ADDR_B), ledger_record(ADDR_C)]

        assert len(reconcile(records, []).rows) == 3
        assert len(reconcile(records, [profile(ADDR_A, "Ana")]).rows) == 3
        assert len(reconcile(records, [profile(a, "x") for a in (ADDR_A, ADDR_B, ADDR_C)]).rows) == 3

    def test_ledger_only_row_gets_placeholder_fields(self):
        view = reconcile([ledger_record(ADDR_A)], [])
        row = view.rows[0]

        assert row.name is None
        assert row.phone_number is None
        assert row.display_name == "0xaaaaa...aaaaa"
        assert row.has_ledger and not row.has_profile

    def test_profile_only_address_is_excluded_but_addressable(self):
        view = reconcile([ledger_record(ADDR_A)], [profile(ADDR_B, "Bruno")])

        assert [r.address for r in view.rows] == [ADDR_A]
        assert [p.address for p in view.orphan_profiles] == [ADDR_B]
        orphan = view.lookup(ADDR_B)
        assert orphan is not None
        assert orphan.name == "Bruno"
        assert not orphan.has_ledger
        assert orphan.total_claimed == 0

    def test_merge_is_idempotent(self):
        records = [ledger_record(ADDR_A, total_claimed=5), ledger_record(ADDR_B)]
        profiles = [profile(ADDR_A, "Ana"), profile(ADDR_C, "Caio")]

        assert reconcile(records, profiles) == reconcile(records, profiles)

    def test_profile_order_does_not_matter(self):
        records = [ledger_record(ADDR_A), ledger_record(ADDR_B)]
        profiles = [profile(ADDR_A, "Ana"), profile(ADDR_B, "Bruno")]

        assert reconcile(records, profiles) == reconcile(records, list(reversed(profiles)))

    def test_duplicate_ledger_entries_collapse(self):
        records = [
            ledger_record(ADDR_A, total_claimed=1),
            ledger_record(ADDR_B),
            ledger_record(ADDR_A, total_claimed=2),
        ]
        view = reconcile(records, [])

        assert [r.address for r in view.rows] == [ADDR_A, ADDR_B]
        assert view.rows[0].total_claimed == 2

    def test_lookup_is_case_insensitive(self):
        view = reconcile([ledger_record(ADDR_A)], [profile(ADDR_A, "Ana")])
        assert view.lookup(ADDR_A.upper().replace("0X", "0x")).name == "Ana"


class TestSort:

    def test_sort_state_toggles(self):
        state = SortState()

        assert state.request(SortField.TOTAL_CLAIMED).direction == SortDirection.DESC
        assert state.request(SortField.TOTAL_CLAIMED).direction == SortDirection.ASC
        assert state.request(SortField.TOTAL_CLAIMED).direction == SortDirection.DESC
        assert state.request(SortField.NAME) == SortConfig(SortField.NAME, SortDirection.DESC)

    def test_total_claimed_desc_then_asc_reverses_distinct_keys(self):
        records = [
            ledger_record(ADDR_A, total_claimed=3 * ETHER),
            ledger_record(ADDR_B, total_claimed=1 * ETHER),
            ledger_record(ADDR_C, total_claimed=2 * ETHER),
        ]
        rows = reconcile(records, []).rows

        desc = sort_rows(rows, SortConfig(SortField.TOTAL_CLAIMED, SortDirection.DESC))
        asc = sort_rows(rows, SortConfig(SortField.TOTAL_CLAIMED, SortDirection.ASC))

        assert [r.address for r in desc] == [ADDR_A, ADDR_C, ADDR_B]
        assert [r.address for r in asc] == [ADDR_B, ADDR_C, ADDR_A]

    def test_ties_keep_incoming_order_in_both_directions(self):
        records = [
            ledger_record(ADDR_A, total_claimed=1),
            ledger_record(ADDR_B, total_claimed=1),
            ledger_record(ADDR_C, total_claimed=2),
        ]
        rows = reconcile(records, []).rows

        desc = sort_rows(rows, SortConfig(SortField.TOTAL_CLAIMED, SortDirection.DESC))
        asc = sort_rows(rows, SortConfig(SortField.TOTAL_CLAIMED, SortDirection.ASC))

        assert [r.address for r in desc] == [ADDR_C, ADDR_A, ADDR_B]
        assert [r.address for r in asc] == [ADDR_A, ADDR_B, ADDR_C]

    def test_amounts_beyond_float_precision_sort_exactly(self):
        big = 2 ** 80
        records = [ledger_record(ADDR_A, total_claimed=big), ledger_record(ADDR_B, total_claimed=big + 1)]
        rows = sort_rows(reconcile(records, []).rows, SortConfig(SortField.TOTAL_CLAIMED))

        assert [r.address for r in rows] == [ADDR_B, ADDR_A]

    def test_names_sort_case_insensitively_with_missing_as_empty(self):
        records = [ledger_record(ADDR_A), ledger_record(ADDR_B), ledger_record(ADDR_C)]
        profiles = [profile(ADDR_A, "bruno"), profile(ADDR_B, "Ana")]
        rows = sort_rows(reconcile(records, profiles).rows, SortConfig(SortField.NAME, SortDirection.ASC))

        assert [r.address for r in rows] == [ADDR_C, ADDR_B, ADDR_A]

    def test_missing_date_removed_sorts_as_zero(self):
        records = [ledger_record(ADDR_A, date_removed=500), ledger_record(ADDR_B)]
        rows = sort_rows(reconcile(records, []).rows, SortConfig(SortField.DATE_REMOVED, SortDirection.ASC))

        assert [r.address for r in rows] == [ADDR_B, ADDR_A]


class TestFilter:

    def setup_method(self):
        self.view = reconcile(
            [
                ledger_record(ADDR_A, date_added=1_700_000_000, is_active=True, total_claimed=60_000 * ETHER),
                ledger_record(ADDR_B, date_added=1_700_000_000 + 10 * DAY, is_active=True, total_claimed=10_000 * ETHER),
                ledger_record(ADDR_C, date_added=1_700_000_000 + 20 * DAY, is_active=False, total_claimed=90_000 * ETHER),
            ],
            [],
        )

    def addresses(self, row_filter, sort=None):
        return [r.address for r in build_rows(self.view, sort, row_filter)]

    def test_active_and_claimed_above_threshold(self):
        row_filter = RowFilter(
            status=StatusFilter.ACTIVE,
            amount_threshold=Decimal(50_000),
            amount_comparison=AmountComparison.GREATER_THAN,
        )
        assert self.addresses(row_filter) == [ADDR_A]

    def test_claimed_below_threshold(self):
        row_filter = RowFilter(amount_threshold=Decimal(50_000), amount_comparison=AmountComparison.LESS_THAN)
        assert self.addresses(row_filter) == [ADDR_B]

    def test_threshold_compares_scaled_values(self):
        assert self.addresses(RowFilter(amount_threshold=Decimal("60000"))) == [ADDR_C]

    def test_inactive(self):
        assert self.addresses(RowFilter(status=StatusFilter.INACTIVE)) == [ADDR_C]

    def test_address_substring_is_case_insensitive(self):
        assert self.addresses(RowFilter(address_query="BBBB")) == [ADDR_B]

    def test_date_range_is_inclusive(self):
        row_filter = RowFilter(
            date_from=datetime.fromtimestamp(1_700_000_000 + 10 * DAY, tz=timezone.utc),
            date_to=datetime.fromtimestamp(1_700_000_000 + 20 * DAY, tz=timezone.utc),
        )
        assert self.addresses(row_filter) == [ADDR_B, ADDR_C]

    def test_naive_dates_are_utc(self):
        naive = datetime.fromtimestamp(1_700_000_000 + 10 * DAY, tz=timezone.utc).replace(tzinfo=None)
        assert self.addresses(RowFilter(date_to=naive)) == [ADDR_A, ADDR_B]

    def test_empty_filter_matches_everything_and_sort_applies_first(self):
        sort = SortConfig(SortField.TOTAL_CLAIMED, SortDirection.DESC)
        assert self.addresses(RowFilter(), sort) == [ADDR_C, ADDR_A, ADDR_B]
