"""In-memory stand-ins for the Graph transport and client."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.models import (
    ActivationPolicy,
    RawActiveSchedule,
    RawEligibilitySchedule,
    RawPermanentAssignment,
    RequestAccepted,
    StatusRecord,
    TargetKind,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
PRINCIPAL = "user-1"


def perm(target_id, name, scope="/", access=None, kind=TargetKind.ROLE):
    return RawPermanentAssignment(PRINCIPAL, target_id, name, scope, access, kind)


def act(target_id, name, start=None, end=None, scope="/", access=None, kind=TargetKind.ROLE):
    return RawActiveSchedule(PRINCIPAL, target_id, name, scope, start, end, access, kind)


def elig(target_id, name, scope="/", access=None, kind=TargetKind.ROLE):
    return RawEligibilitySchedule(PRINCIPAL, target_id, name, scope, access, kind)


def record(target_id, name, status, start=None, end=None, access=None, kind=TargetKind.ROLE):
    return StatusRecord(
        name=name,
        target_id=target_id,
        scope="/",
        access_level=access,
        status=status,
        kind=kind,
        start_time=start,
        end_time=end,
        time_remaining=(end - NOW) if end else None,
    )


class FakePimTransport:
    """Scriptable PimTransport; flips the target's state after a number of fetches."""

    def __init__(self, permanent=None, active=None, eligible=None, policy=None, request_status="Provisioned"):
        self.permanent: List[RawPermanentAssignment] = list(permanent or [])
        self.active: List[RawActiveSchedule] = list(active or [])
        self.eligible: List[RawEligibilitySchedule] = list(eligible or [])
        self.policy = policy or ActivationPolicy()
        self.request_status = request_status
        self.fetch_errors: Dict[str, Exception] = {}
        self.submit_error: Optional[Exception] = None
        self.calls: List[Any] = []
        self.active_fetches = 0
        self._flip_after: Optional[int] = None
        self._flip = None

    def flip_after(self, fetches: int, fn) -> None:
        self._flip_after = fetches
        self._flip = fn

    def fetch_permanent_assignments(self, principal_id):
        self.calls.append(("permanent", principal_id))
        if "permanent" in self.fetch_errors:
            raise self.fetch_errors["permanent"]
        return list(self.permanent)

    def fetch_active_schedules(self, principal_id):
        self.calls.append(("active", principal_id))
        if "active" in self.fetch_errors:
            raise self.fetch_errors["active"]
        self.active_fetches += 1
        if self._flip_after is not None and self.active_fetches >= self._flip_after:
            self._flip(self)
            self._flip_after = None
        return list(self.active)

    def fetch_eligibility_schedules(self, principal_id):
        self.calls.append(("eligible", principal_id))
        if "eligible" in self.fetch_errors:
            raise self.fetch_errors["eligible"]
        return list(self.eligible)

    def fetch_activation_policy(self, target):
        self.calls.append(("policy", target))
        if isinstance(self.policy, Exception):
            raise self.policy
        return self.policy

    def submit_activation_request(self, principal_id, target, duration, justification, ticket=None):
        self.calls.append(("activate", principal_id, target, duration, justification, ticket))
        if self.submit_error:
            raise self.submit_error
        return RequestAccepted("req-1", self.request_status, NOW)

    def submit_deactivation_request(self, principal_id, target, justification):
        self.calls.append(("deactivate", principal_id, target, justification))
        if self.submit_error:
            raise self.submit_error
        return RequestAccepted("req-2", "Revoked", NOW)

    def submitted(self, action):
        return [c for c in self.calls if c[0] == action]


class FakeGraphClient:
    """Answers get_all/get/post from canned responses keyed by endpoint prefix."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.gets: List[str] = []
        self.posts: List[Any] = []
        self.post_result: Any = {"id": "req-9", "status": "Provisioned", "createdDateTime": "2026-03-02T12:00:00Z"}

    def _lookup(self, endpoint):
        for prefix, value in self.responses.items():
            if endpoint.startswith(prefix):
                return value
        return []

    def get_all(self, endpoint, params=None):
        self.gets.append(endpoint)
        return self._lookup(endpoint)

    def get(self, endpoint, params=None):
        self.gets.append(endpoint)
        return self._lookup(endpoint)

    def post(self, endpoint, payload):
        self.posts.append((endpoint, payload))
        if isinstance(self.post_result, Exception):
            raise self.post_result
        return self.post_result
