"""
Tests for dashboard aggregates.
"""

from decimal import Decimal

from subsidy_admin.services.aggregates import (
    active_count,
    average_claimed,
    leaderboard,
    mean_interval_days,
    most_common_claim_interval,
    summarize,
)
from subsidy_admin.services.reconciliation import reconcile
from subsidy_admin.services.types import DailyClaim, ProfileRecord

from tests.conftest import ADDR_A, ADDR_B, ADDR_C, DAY, ETHER, ledger_record


def claims(schedule):
    """Build daily claim batches from {address: [day offsets]}."""
    by_day = {}
    for address, days in schedule.items():
        for day in days:
            by_day.setdefault(day, []).append(address)
    return [DailyClaim(date=day * DAY, beneficiaries=tuple(addrs)) for day, addrs in sorted(by_day.items())]


def test_average_claimed_of_nothing_is_zero():
    assert average_claimed([]) == Decimal(0)


def test_average_claimed_is_decimal_scaled():
    rows = reconcile([ledger_record(ADDR_A, total_claimed=3 * ETHER), ledger_record(ADDR_B)], []).rows
    assert average_claimed(rows) == Decimal("1.5")


def test_average_claimed_keeps_large_amounts_exact():
    big = 123456789012345678901234567891
    rows = reconcile([ledger_record(ADDR_A, total_claimed=big), ledger_record(ADDR_B, total_claimed=big)], []).rows
    assert average_claimed(rows) == Decimal("123456789012.345678901234567891")


def test_active_count():
    rows = reconcile([ledger_record(ADDR_A), ledger_record(ADDR_B, is_active=False)], []).rows
    assert active_count(rows) == 1


def test_regular_claimer_interval():
    assert most_common_claim_interval(claims({ADDR_A: [0, 10, 20]})) == 10


def test_single_claims_leave_interval_undetermined():
    assert most_common_claim_interval(claims({ADDR_A: [0], ADDR_B: [5]})) is None
    assert most_common_claim_interval([]) is None


def test_mode_across_addresses():
    schedule = {ADDR_A: [0, 7, 14], ADDR_B: [1, 8], ADDR_C: [0, 30]}
    assert most_common_claim_interval(claims(schedule)) == 7


def test_ties_go_to_the_shorter_interval():
    schedule = {ADDR_A: [0, 30], ADDR_B: [0, 7]}
    assert most_common_claim_interval(claims(schedule)) == 7


def test_mean_interval_rounds_half_up():
    assert mean_interval_days([0, int(1.5 * DAY)]) == 2
    assert mean_interval_days([0, int(1.4 * DAY)]) == 1
    assert mean_interval_days([5]) is None


def test_sub_day_intervals_are_dropped():
    assert most_common_claim_interval([
        DailyClaim(date=0, beneficiaries=(ADDR_A,)),
        DailyClaim(date=3600, beneficiaries=(ADDR_A,)),
    ]) is None


def test_leaderboard_top_five_with_fallback_names():
    addresses = ["0x" + f"{i:040x}" for i in range(1, 8)]
    records = [ledger_record(a, total_claimed=i * ETHER) for i, a in enumerate(addresses, start=1)]
    profiles = [ProfileRecord(address=addresses[6], name="Ana")]

    board = leaderboard(reconcile(records, profiles).rows)

    assert [e.rank for e in board] == [1, 2, 3, 4, 5]
    assert board[0].display_name == "Ana"
    assert board[0].claimed_amount == Decimal(7)
    assert board[1].display_name == "0x00000...00006"


def test_leaderboard_ties_keep_reconciled_order():
    records = [ledger_record(ADDR_A, total_claimed=1), ledger_record(ADDR_B, total_claimed=1)]
    assert [e.address for e in leaderboard(reconcile(records, []).rows)] == [ADDR_A, ADDR_B]


def test_summarize_ignores_profile_only_addresses():
    view = reconcile(
        [ledger_record(ADDR_A, total_claimed=2 * ETHER), ledger_record(ADDR_B, is_active=False)],
        [ProfileRecord(address=ADDR_C, name="Orphan")],
    )
    summary = summarize(view, claims({ADDR_A: [0, 10, 20]}))

    assert summary.total_count == 2
    assert summary.active_count == 1
    assert summary.average_claimed == Decimal(1)
    assert summary.most_common_claim_interval == 10
    assert [e.address for e in summary.leaderboard] == [ADDR_A, ADDR_B]
