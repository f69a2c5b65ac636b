# ================================================================
# File     : models.py
# Purpose  : Typed records for raw Graph data and reconciled status
# Notes    : One dataclass per raw source; enums instead of strings
# ================================================================

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple


class AssignmentStatus(Enum):
    ACTIVE = "Active"
    ELIGIBLE = "Eligible"
    PERMANENT = "Permanent"

    @property
    def sort_order(self) -> int:
        # display order only; de-duplication precedence lives in the reconciler
        return _STATUS_ORDER[self]

    @classmethod
    def parse(cls, value: str) -> "AssignmentStatus":
        for s in cls:
            if s.value.lower() == str(value).strip().lower():
                return s
        raise ValueError(f"Unknown status: {value}")


_STATUS_ORDER = {
    AssignmentStatus.ACTIVE: 0,
    AssignmentStatus.ELIGIBLE: 1,
    AssignmentStatus.PERMANENT: 2,
}


class AccessLevel(Enum):
    MEMBER = "member"
    OWNER = "owner"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AccessLevel"]:
        if value is None or value == "":
            return None
        for a in cls:
            if a.value == str(value).strip().lower():
                return a
        raise ValueError(f"Unknown access level: {value}")


class TargetKind(Enum):
    ROLE = "role"
    GROUP = "group"


# (role-or-group id, scope, access level) - the de-duplication key
AssignmentKey = Tuple[str, str, Optional[AccessLevel]]


@dataclass(frozen=True)
class RawPermanentAssignment:
    principal_id: str
    target_id: str
    display_name: str
    scope: str = "/"
    access_level: Optional[AccessLevel] = None
    kind: TargetKind = TargetKind.ROLE

    @property
    def key(self) -> AssignmentKey:
        return (self.target_id, self.scope, self.access_level)


@dataclass(frozen=True)
class RawActiveSchedule:
    principal_id: str
    target_id: str
    display_name: str
    scope: str = "/"
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    access_level: Optional[AccessLevel] = None
    kind: TargetKind = TargetKind.ROLE

    @property
    def key(self) -> AssignmentKey:
        return (self.target_id, self.scope, self.access_level)

    @property
    def completeness(self) -> int:
        return int(self.start_time is not None) + int(self.end_time is not None)


@dataclass(frozen=True)
class RawEligibilitySchedule:
    principal_id: str
    target_id: str
    display_name: str
    scope: str = "/"
    access_level: Optional[AccessLevel] = None
    kind: TargetKind = TargetKind.ROLE

    @property
    def key(self) -> AssignmentKey:
        return (self.target_id, self.scope, self.access_level)


@dataclass(frozen=True)
class PimTarget:
    """What a request is about: one role (at a scope) or one group access level."""

    kind: TargetKind
    target_id: str
    scope: str = "/"
    access_level: Optional[AccessLevel] = None
    display_name: str = ""

    @property
    def key(self) -> AssignmentKey:
        return (self.target_id, self.scope, self.access_level)

    def label(self) -> str:
        name = self.display_name or self.target_id
        if self.access_level is not None:
            return f"{name} ({self.access_level.value})"
        return name


@dataclass(frozen=True)
class StatusRecord:
    name: str
    target_id: str
    scope: str
    access_level: Optional[AccessLevel]
    status: AssignmentStatus
    kind: TargetKind = TargetKind.ROLE
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    time_remaining: Optional[timedelta] = None

    @property
    def key(self) -> AssignmentKey:
        return (self.target_id, self.scope, self.access_level)

    @property
    def is_active(self) -> bool:
        return self.status is AssignmentStatus.ACTIVE

    def to_target(self) -> PimTarget:
        return PimTarget(
            kind=self.kind,
            target_id=self.target_id,
            scope=self.scope,
            access_level=self.access_level,
            display_name=self.name,
        )


@dataclass(frozen=True)
class TicketInfo:
    ticket_number: str
    ticket_system: str = ""


@dataclass(frozen=True)
class RequestAccepted:
    request_id: str
    status: str = ""
    created: Optional[datetime] = None

    @property
    def pending_approval(self) -> bool:
        return self.status.lower() == "pendingapproval"


@dataclass(frozen=True)
class ActivationPolicy:
    max_duration: Optional[timedelta] = None
    justification_required: bool = False
    ticket_required: bool = False
    mfa_required: bool = False
    enabled_rules: Tuple[str, ...] = field(default_factory=tuple)
