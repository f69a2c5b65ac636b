# ================================================================
# File     : transport.py
# Purpose  : The collaborator the PIM core talks to
# Notes    : handlers/graph/pim_transport.py is the real one;
#            tests use an in-memory fake with the same shape.
# ================================================================

from datetime import timedelta
from typing import List, Optional, Protocol

from core.models import (
    ActivationPolicy,
    PimTarget,
    RawActiveSchedule,
    RawEligibilitySchedule,
    RawPermanentAssignment,
    RequestAccepted,
    TicketInfo,
)


class PimTransport(Protocol):
    def fetch_permanent_assignments(self, principal_id: str) -> List[RawPermanentAssignment]:
        ...

    def fetch_active_schedules(self, principal_id: str) -> List[RawActiveSchedule]:
        ...

    def fetch_eligibility_schedules(self, principal_id: str) -> List[RawEligibilitySchedule]:
        ...

    def fetch_activation_policy(self, target: PimTarget) -> ActivationPolicy:
        ...

    def submit_activation_request(
        self,
        principal_id: str,
        target: PimTarget,
        duration: timedelta,
        justification: str,
        ticket: Optional[TicketInfo] = None,
    ) -> RequestAccepted:
        ...

    def submit_deactivation_request(
        self,
        principal_id: str,
        target: PimTarget,
        justification: str,
    ) -> RequestAccepted:
        ...
