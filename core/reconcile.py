# ================================================================
# File     : reconcile.py
# Purpose  : Merge permanent / active / eligible PIM records into one
#            status row per (id, scope, access level)
# Notes    : Pure function; no I/O, no globals. Precedence when a
#            tuple shows up in several sources: Active > Permanent > Eligible.
# ================================================================

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from core.models import (
    AssignmentKey,
    AssignmentStatus,
    RawActiveSchedule,
    RawEligibilitySchedule,
    RawPermanentAssignment,
    StatusRecord,
)

StatusFilter = Union[AssignmentStatus, str, Iterable[Union[AssignmentStatus, str]], None]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _pick_active(schedules: Iterable[RawActiveSchedule]) -> Dict[AssignmentKey, RawActiveSchedule]:
    """One schedule per key; the one with the most resolved window wins, first on ties."""
    picked: Dict[AssignmentKey, RawActiveSchedule] = {}
    for s in schedules:
        current = picked.get(s.key)
        if current is None or s.completeness > current.completeness:
            picked[s.key] = s
    return picked


def _name_matches(name: str, needle: Optional[str]) -> bool:
    if not needle:
        return True
    # "*Admin*" from habit behaves like "Admin"
    needle = needle.replace("*", "").strip().lower()
    return needle in (name or "").lower()


def _status_set(status_filter: StatusFilter):
    if status_filter is None:
        return None
    # a bare string is one status name, not an iterable of letters
    if isinstance(status_filter, (AssignmentStatus, str)):
        status_filter = [status_filter]
    return {s if isinstance(s, AssignmentStatus) else AssignmentStatus.parse(s) for s in status_filter}


def _sort_key(r: StatusRecord):
    access = r.access_level.value if r.access_level is not None else ""
    return (r.status.sort_order, (r.name or "").lower(), access)


# ================================================================
# Function: fncReconcile
# Purpose : Build the de-duplicated status view for one principal
# Notes   : now must be the same instant for every row; naive
#           datetimes are read as UTC
# ================================================================
def fncReconcile(
    permanent: Iterable[RawPermanentAssignment],
    active: Iterable[RawActiveSchedule],
    eligible: Iterable[RawEligibilitySchedule],
    now: datetime,
    name_filter: Optional[str] = None,
    status_filter: StatusFilter = None,
) -> List[StatusRecord]:
    now = _as_utc(now)
    result: Dict[AssignmentKey, StatusRecord] = {}

    for key, s in _pick_active(active).items():
        start = _as_utc(s.start_time)
        end = _as_utc(s.end_time)
        result[key] = StatusRecord(
            name=s.display_name,
            target_id=s.target_id,
            scope=s.scope,
            access_level=s.access_level,
            status=AssignmentStatus.ACTIVE,
            kind=s.kind,
            start_time=start,
            end_time=end,
            time_remaining=(end - now) if end is not None else None,
        )

    for p in permanent:
        if p.key in result:
            continue
        result[p.key] = StatusRecord(
            name=p.display_name,
            target_id=p.target_id,
            scope=p.scope,
            access_level=p.access_level,
            status=AssignmentStatus.PERMANENT,
            kind=p.kind,
        )

    for e in eligible:
        if e.key in result:
            continue
        result[e.key] = StatusRecord(
            name=e.display_name,
            target_id=e.target_id,
            scope=e.scope,
            access_level=e.access_level,
            status=AssignmentStatus.ELIGIBLE,
            kind=e.kind,
        )

    wanted = _status_set(status_filter)
    rows = [
        r for r in result.values()
        if _name_matches(r.name, name_filter) and (wanted is None or r.status in wanted)
    ]
    rows.sort(key=_sort_key)
    return rows
