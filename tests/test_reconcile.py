"""Tests for merging permanent / active / eligible records."""

from datetime import datetime, timedelta

import pytest

from core.duration import fncFormatDuration
from core.models import AccessLevel, AssignmentStatus, TargetKind
from core.reconcile import fncReconcile

from fakes import NOW, act, elig, perm


class TestPrecedence:
    """One row per tuple; Active > Permanent > Eligible."""

    def test_tuple_in_all_three_sources_is_one_active_row(self):
        rows = fncReconcile(
            [perm("r1", "Global Reader")],
            [act("r1", "Global Reader", NOW - timedelta(hours=1), NOW + timedelta(hours=1))],
            [elig("r1", "Global Reader")],
            NOW,
        )
        assert len(rows) == 1
        assert rows[0].status is AssignmentStatus.ACTIVE

    def test_permanent_and_eligible_is_permanent(self):
        rows = fncReconcile([perm("r1", "Reports Reader")], [], [elig("r1", "Reports Reader")], NOW)
        assert [r.status for r in rows] == [AssignmentStatus.PERMANENT]
        assert rows[0].start_time is None and rows[0].end_time is None
        assert rows[0].time_remaining is None

    def test_eligible_only_is_eligible(self):
        rows = fncReconcile([], [], [elig("r1", "User Administrator")], NOW)
        assert [r.status for r in rows] == [AssignmentStatus.ELIGIBLE]

    def test_different_scopes_are_different_rows(self):
        rows = fncReconcile(
            [],
            [act("r1", "User Administrator", NOW, NOW + timedelta(hours=1), scope="/administrativeUnits/au1")],
            [elig("r1", "User Administrator")],
            NOW,
        )
        assert {(r.scope, r.status) for r in rows} == {
            ("/administrativeUnits/au1", AssignmentStatus.ACTIVE),
            ("/", AssignmentStatus.ELIGIBLE),
        }

    def test_group_access_levels_are_different_rows(self):
        rows = fncReconcile(
            [],
            [act("g1", "Tier0 Admins", NOW, NOW + timedelta(hours=2), access=AccessLevel.MEMBER, kind=TargetKind.GROUP)],
            [
                elig("g1", "Tier0 Admins", access=AccessLevel.MEMBER, kind=TargetKind.GROUP),
                elig("g1", "Tier0 Admins", access=AccessLevel.OWNER, kind=TargetKind.GROUP),
            ],
            NOW,
        )
        assert [(r.access_level, r.status) for r in rows] == [
            (AccessLevel.MEMBER, AssignmentStatus.ACTIVE),
            (AccessLevel.OWNER, AssignmentStatus.ELIGIBLE),
        ]
        assert all(r.kind is TargetKind.GROUP for r in rows)

    def test_duplicate_active_prefers_fully_resolved_window(self):
        start = NOW - timedelta(minutes=10)
        end = NOW + timedelta(minutes=50)
        rows = fncReconcile(
            [],
            [act("r1", "Security Reader"), act("r1", "Security Reader", start, end), act("r1", "Security Reader", start)],
            [],
            NOW,
        )
        assert len(rows) == 1
        assert rows[0].start_time == start
        assert rows[0].end_time == end

    def test_duplicate_active_ties_keep_first(self):
        first = act("r1", "Security Reader", NOW - timedelta(minutes=5), NOW + timedelta(hours=1))
        second = act("r1", "Security Reader", NOW - timedelta(minutes=1), NOW + timedelta(hours=2))
        rows = fncReconcile([], [first, second], [], NOW)
        assert rows[0].end_time == first.end_time


class TestRemainingTime:
    """time_remaining is derived from end_time and now."""

    def test_ninety_minutes_left(self):
        rows = fncReconcile([], [act("r1", "Exchange Administrator", NOW, NOW + timedelta(minutes=90))], [], NOW)
        remaining = rows[0].time_remaining
        assert timedelta(minutes=89) <= remaining <= timedelta(minutes=90)

    def test_already_ended_is_expired(self):
        rows = fncReconcile(
            [], [act("r1", "Exchange Administrator", NOW - timedelta(hours=1), NOW - timedelta(minutes=5))], [], NOW
        )
        assert rows[0].time_remaining <= timedelta(0)
        assert fncFormatDuration(rows[0].time_remaining) == "Expired"

    def test_indefinite_activation_has_no_remaining_time(self):
        rows = fncReconcile([], [act("r1", "Helpdesk Administrator", NOW - timedelta(hours=1), None)], [], NOW)
        assert rows[0].status is AssignmentStatus.ACTIVE
        assert rows[0].time_remaining is None
        assert fncFormatDuration(rows[0].time_remaining) == "N/A"

    def test_naive_timestamps_are_treated_as_utc(self):
        naive_now = NOW.replace(tzinfo=None)
        naive_end = naive_now + timedelta(hours=1)
        rows = fncReconcile([], [act("r1", "Billing Administrator", None, naive_end)], [], naive_now)
        assert rows[0].time_remaining == timedelta(hours=1)
        assert rows[0].end_time.tzinfo is not None


class TestFiltersAndOrder:
    """Name/status filters and display order."""

    def _mixed(self):
        return (
            [perm("p1", "Global Administrator")],
            [act("a1", "Exchange Administrator", NOW, NOW + timedelta(hours=1))],
            [elig("e1", "User Administrator"), elig("e2", "Reports Reader"), elig("e3", "Application Administrator")],
        )

    def test_sorted_by_status_then_name(self):
        rows = fncReconcile(*self._mixed(), NOW)
        assert [(r.status.value, r.name) for r in rows] == [
            ("Active", "Exchange Administrator"),
            ("Eligible", "Application Administrator"),
            ("Eligible", "Reports Reader"),
            ("Eligible", "User Administrator"),
            ("Permanent", "Global Administrator"),
        ]

    def test_name_filter_is_case_insensitive_contains(self):
        rows = fncReconcile(*self._mixed(), NOW, name_filter="admin")
        assert "Reports Reader" not in [r.name for r in rows]
        assert len(rows) == 4

    def test_name_filter_ignores_wildcards(self):
        rows = fncReconcile(*self._mixed(), NOW, name_filter="*Reader*")
        assert [r.name for r in rows] == ["Reports Reader"]

    def test_status_filter_single(self):
        rows = fncReconcile(*self._mixed(), NOW, status_filter=AssignmentStatus.PERMANENT)
        assert [r.name for r in rows] == ["Global Administrator"]

    def test_status_filter_subset(self):
        rows = fncReconcile(
            *self._mixed(), NOW, status_filter={AssignmentStatus.ACTIVE, AssignmentStatus.ELIGIBLE}
        )
        assert AssignmentStatus.PERMANENT not in {r.status for r in rows}
        assert len(rows) == 4

    def test_status_filter_by_name(self):
        rows = fncReconcile(*self._mixed(), NOW, status_filter="Active")
        assert [r.name for r in rows] == ["Exchange Administrator"]

    def test_status_filter_names_in_a_list(self):
        rows = fncReconcile(*self._mixed(), NOW, status_filter=["permanent", AssignmentStatus.ACTIVE])
        assert {r.status for r in rows} == {AssignmentStatus.ACTIVE, AssignmentStatus.PERMANENT}

    def test_unknown_status_name_is_rejected(self):
        with pytest.raises(ValueError):
            fncReconcile(*self._mixed(), NOW, status_filter="Expired")

    def test_filters_compose_as_intersection(self):
        rows = fncReconcile(*self._mixed(), NOW, name_filter="Admin", status_filter=AssignmentStatus.ELIGIBLE)
        assert [r.name for r in rows] == ["Application Administrator", "User Administrator"]

    def test_status_filter_applies_after_precedence(self):
        # an eligible role that is currently active must not resurface as Eligible
        rows = fncReconcile(
            [],
            [act("e1", "User Administrator", NOW, NOW + timedelta(hours=1))],
            [elig("e1", "User Administrator")],
            NOW,
            status_filter=AssignmentStatus.ELIGIBLE,
        )
        assert rows == []

    def test_empty_inputs(self):
        assert fncReconcile([], [], [], datetime.now().astimezone()) == []
