# ================================================================
# File     : pim.py
# Purpose  : PIM session: fetch + reconcile, activate, deactivate
# Notes    : PimSession is the explicit context handed to every
#            call (principal + transports + clock). No globals.
# ================================================================

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from core.duration import fncFormatDuration
from core.errors import (
    AmbiguousTargetError,
    MinimumDurationNotMetError,
    PimError,
    TargetNotFoundError,
    TransportError,
)
from core.models import (
    ActivationPolicy,
    AccessLevel,
    AssignmentStatus,
    PimTarget,
    RequestAccepted,
    StatusRecord,
    TargetKind,
    TicketInfo,
)
from core.poller import CancellationToken, PollOutcome, ProgressObserver, fncStartPoll
from core.reconcile import StatusFilter, fncReconcile
from core.transport import PimTransport
from core.utils import fncPrintMessage

DEFAULT_MINIMUM_ACTIVE = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PimSession:
    principal_id: str
    transports: Dict[TargetKind, PimTransport]
    clock: Callable[[], datetime] = _utcnow
    minimum_active: timedelta = DEFAULT_MINIMUM_ACTIVE

    def transport(self, kind: TargetKind) -> PimTransport:
        try:
            return self.transports[kind]
        except KeyError:
            raise PimError(f"No transport configured for {kind.value}s") from None


@dataclass
class PimActionResult:
    target: PimTarget
    request: Optional[RequestAccepted] = None
    outcome: Optional[PollOutcome] = None
    skipped_reason: Optional[str] = None
    notes: List[str] = field(default_factory=list)


# ================================================================
# Function: fncGetStatus
# Purpose : Fetch all three sources for one kind and reconcile them
# Notes   : Fetches run side by side but are all joined before the
#           merge; any TransportError propagates (no partial views)
# ================================================================
def fncGetStatus(
    session: PimSession,
    kind: TargetKind,
    name_filter: Optional[str] = None,
    status_filter: StatusFilter = None,
) -> List[StatusRecord]:
    transport = session.transport(kind)
    pid = session.principal_id

    with ThreadPoolExecutor(max_workers=3) as executor:
        f_perm = executor.submit(transport.fetch_permanent_assignments, pid)
        f_act = executor.submit(transport.fetch_active_schedules, pid)
        f_eli = executor.submit(transport.fetch_eligibility_schedules, pid)
        permanent = f_perm.result()
        active = f_act.result()
        eligible = f_eli.result()

    fncPrintMessage(
        f"{kind.value}s: {len(permanent)} permanent, {len(active)} active, {len(eligible)} eligible (raw)",
        "debug",
    )
    return fncReconcile(permanent, active, eligible, session.clock(),
                        name_filter=name_filter, status_filter=status_filter)


# ================================================================
# Function: fncSelectSingle
# Purpose : Pick exactly one record by name for activate/deactivate
# Notes   : Exact (case-insensitive) name wins; otherwise a single
#           substring match; else not-found / ambiguous
# ================================================================
def fncSelectSingle(
    records: List[StatusRecord],
    name: str,
    access_level: Optional[AccessLevel] = None,
) -> StatusRecord:
    pool = [r for r in records if access_level is None or r.access_level == access_level]
    needle = (name or "").replace("*", "").strip().lower()

    exact = [r for r in pool if (r.name or "").lower() == needle or r.target_id.lower() == needle]
    matches = exact or [r for r in pool if needle in (r.name or "").lower()]

    if not matches:
        raise TargetNotFoundError(name)
    if len(matches) > 1:
        raise AmbiguousTargetError(name, [_describe(r) for r in matches])
    return matches[0]


def _describe(r: StatusRecord) -> str:
    label = r.to_target().label()
    if r.scope and r.scope != "/":
        label += f" @ {r.scope}"
    return label


def _is_active(session: PimSession, target: PimTarget) -> bool:
    rows = fncGetStatus(session, target.kind, status_filter=AssignmentStatus.ACTIVE)
    return any(r.key == target.key for r in rows)


def _policy_for(session: PimSession, target: PimTarget) -> ActivationPolicy:
    try:
        return session.transport(target.kind).fetch_activation_policy(target)
    except TransportError as ex:
        fncPrintMessage(f"Could not read activation policy for '{target.label()}': {ex}", "warn")
        return ActivationPolicy()


# ================================================================
# Function: fncActivate
# Purpose : Request activation of an eligible role/group and watch it
# Notes   : Duration is clamped to the policy maximum; pending
#           approvals are not polled
# ================================================================
def fncActivate(
    session: PimSession,
    record: StatusRecord,
    duration: timedelta,
    justification: str,
    ticket: Optional[TicketInfo] = None,
    wait: bool = True,
    max_wait_seconds: float = 300,
    tick_interval_ms: int = 5000,
    observer: Optional[ProgressObserver] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> PimActionResult:
    target = record.to_target()
    result = PimActionResult(target=target)

    if record.status is AssignmentStatus.PERMANENT:
        raise PimError(f"'{target.label()}' is permanently assigned; there is nothing to activate.")
    if record.status is AssignmentStatus.ACTIVE:
        left = fncFormatDuration(record.time_remaining)
        result.skipped_reason = f"'{target.label()}' is already active (remaining: {left})."
        return result

    if duration is None or duration.total_seconds() <= 0:
        raise PimError("Activation duration must be greater than zero.")

    policy = _policy_for(session, target)
    if policy.max_duration is not None and duration > policy.max_duration:
        note = (f"Requested {fncFormatDuration(duration)} exceeds the policy maximum; "
                f"using {fncFormatDuration(policy.max_duration)}.")
        fncPrintMessage(note, "warn")
        result.notes.append(note)
        duration = policy.max_duration
    if policy.justification_required and not (justification or "").strip():
        raise PimError(f"A justification is required to activate '{target.label()}'.")
    if policy.ticket_required and not (ticket and ticket.ticket_number):
        raise PimError(f"Ticket information is required to activate '{target.label()}'.")
    if policy.mfa_required:
        result.notes.append("Policy requires MFA; Graph may reject the request if the token lacks it.")

    transport = session.transport(target.kind)
    result.request = transport.submit_activation_request(
        session.principal_id, target, duration, justification, ticket
    )
    fncPrintMessage(f"Activation request {result.request.request_id} accepted ({result.request.status}).", "debug")

    if result.request.pending_approval:
        result.skipped_reason = f"'{target.label()}' is waiting for approval; not polling."
        return result
    if not wait:
        return result

    result.outcome = fncStartPoll(
        target,
        lambda: _is_active(session, target),
        max_wait_seconds=max_wait_seconds,
        tick_interval_ms=tick_interval_ms,
        cancel_token=cancel_token,
        observer=observer,
    )
    return result


# ================================================================
# Function: fncCheckMinimumDuration
# Purpose : Refuse deactivation inside the minimum active window
# Notes   : Proactive; Graph enforces the same rule server-side
# ================================================================
def fncCheckMinimumDuration(session: PimSession, record: StatusRecord) -> None:
    if record.start_time is None:
        return
    active_for = session.clock() - record.start_time
    if active_for < session.minimum_active:
        raise MinimumDurationNotMetError(record.name, remaining=session.minimum_active - active_for)


# ================================================================
# Function: fncDeactivate
# Purpose : Request deactivation of an active role/group and watch it
# ================================================================
def fncDeactivate(
    session: PimSession,
    record: StatusRecord,
    justification: str = "",
    wait: bool = True,
    max_wait_seconds: float = 300,
    tick_interval_ms: int = 5000,
    observer: Optional[ProgressObserver] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> PimActionResult:
    target = record.to_target()
    result = PimActionResult(target=target)

    if record.status is AssignmentStatus.PERMANENT:
        raise PimError(f"'{target.label()}' is permanently assigned and cannot be deactivated here.")
    if record.status is AssignmentStatus.ELIGIBLE:
        result.skipped_reason = f"'{target.label()}' is not active."
        return result

    fncCheckMinimumDuration(session, record)

    transport = session.transport(target.kind)
    result.request = transport.submit_deactivation_request(session.principal_id, target, justification)
    fncPrintMessage(f"Deactivation request {result.request.request_id} accepted ({result.request.status}).", "debug")

    if not wait:
        return result

    result.outcome = fncStartPoll(
        target,
        lambda: not _is_active(session, target),
        max_wait_seconds=max_wait_seconds,
        tick_interval_ms=tick_interval_ms,
        cancel_token=cancel_token,
        observer=observer,
    )
    return result
