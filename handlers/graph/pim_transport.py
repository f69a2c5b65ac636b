# ================================================================
# File     : handlers/graph/pim_transport.py
# Purpose  : Microsoft Graph PIM endpoints -> typed raw records
# Notes    : One instance per kind (directory roles or PIM groups).
#            Only maps fields the reconciler needs; no property bags.
# ================================================================

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from core.duration import fncParseDuration, fncToIsoDuration
from core.errors import FormatError, MinimumDurationNotMetError, PimError, TransportError
from core.models import (
    AccessLevel,
    ActivationPolicy,
    PimTarget,
    RawActiveSchedule,
    RawEligibilitySchedule,
    RawPermanentAssignment,
    RequestAccepted,
    TargetKind,
    TicketInfo,
)
from core.utils import fncPrintMessage, fncParseDateTime

ROLE_BASE = "roleManagement/directory"
GROUP_BASE = "identityGovernance/privilegedAccess/group"
POLICY_BASE = "policies/roleManagementPolicyAssignments"

DIRECTORY_SCOPE = "/"
MIN_DURATION_CODES = {"ActiveDurationTooShort"}


# ================================================================
# Function: fncWhoAmI
# Purpose : Resolve the signed-in principal
# ================================================================
def fncWhoAmI(client) -> Dict[str, str]:
    me = client.get("me?$select=id,userPrincipalName,displayName")
    if not me.get("id"):
        raise TransportError("Graph did not return an id for /me")
    return {
        "id": me["id"],
        "userPrincipalName": me.get("userPrincipalName") or "",
        "displayName": me.get("displayName") or "",
    }


def _is_activated(row: Dict[str, Any]) -> bool:
    return str(row.get("assignmentType") or "").lower() == "activated"


def _access(row: Dict[str, Any]) -> Optional[AccessLevel]:
    try:
        return AccessLevel.parse(row.get("accessId"))
    except ValueError:
        fncPrintMessage(f"Ignoring unknown accessId {row.get('accessId')!r}", "debug")
        return None


class GraphPimTransport:
    """PimTransport over Microsoft Graph for one TargetKind."""

    def __init__(self, client, kind: TargetKind, clock=None):
        self.client = client
        self.kind = kind
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ---------- name / scope helpers ----------

    def _name(self, row: Dict[str, Any]) -> str:
        if self.kind is TargetKind.ROLE:
            return (row.get("roleDefinition") or {}).get("displayName") or row.get("roleDefinitionId") or "(unknown role)"
        return (row.get("group") or {}).get("displayName") or row.get("groupId") or "(unknown group)"

    def _target_id(self, row: Dict[str, Any]) -> str:
        return row.get("roleDefinitionId") if self.kind is TargetKind.ROLE else row.get("groupId")

    def _scope(self, row: Dict[str, Any]) -> str:
        if self.kind is TargetKind.ROLE:
            return row.get("directoryScopeId") or DIRECTORY_SCOPE
        return DIRECTORY_SCOPE

    def _level(self, row: Dict[str, Any]) -> Optional[AccessLevel]:
        return _access(row) if self.kind is TargetKind.GROUP else None

    def _group_assignment_instances(self, principal_id: str) -> List[Dict[str, Any]]:
        return self.client.get_all(
            f"{GROUP_BASE}/assignmentScheduleInstances?$filter=principalId eq '{principal_id}'&$expand=group"
        )

    # ---------- fetch ----------

    def fetch_permanent_assignments(self, principal_id: str) -> List[RawPermanentAssignment]:
        if self.kind is TargetKind.ROLE:
            # the direct-assignment store; activated roles show up here too
            rows = self.client.get_all(
                f"{ROLE_BASE}/roleAssignments?$filter=principalId eq '{principal_id}'&$expand=roleDefinition"
            )
        else:
            rows = [r for r in self._group_assignment_instances(principal_id)
                    if not _is_activated(r) and not r.get("endDateTime")]

        return [
            RawPermanentAssignment(
                principal_id=r.get("principalId") or principal_id,
                target_id=self._target_id(r),
                display_name=self._name(r),
                scope=self._scope(r),
                access_level=self._level(r),
                kind=self.kind,
            )
            for r in rows or [] if self._target_id(r)
        ]

    def fetch_active_schedules(self, principal_id: str) -> List[RawActiveSchedule]:
        if self.kind is TargetKind.ROLE:
            rows = self.client.get_all(
                f"{ROLE_BASE}/roleAssignmentScheduleInstances"
                f"?$filter=principalId eq '{principal_id}'&$expand=roleDefinition"
            )
        else:
            rows = self._group_assignment_instances(principal_id)

        out: List[RawActiveSchedule] = []
        for r in rows or []:
            if not self._target_id(r):
                continue
            # standing assignments with no end are permanent, not active
            if not _is_activated(r) and not r.get("endDateTime"):
                continue
            out.append(RawActiveSchedule(
                principal_id=r.get("principalId") or principal_id,
                target_id=self._target_id(r),
                display_name=self._name(r),
                scope=self._scope(r),
                start_time=fncParseDateTime(r.get("startDateTime")),
                end_time=fncParseDateTime(r.get("endDateTime")),
                access_level=self._level(r),
                kind=self.kind,
            ))
        return out

    def fetch_eligibility_schedules(self, principal_id: str) -> List[RawEligibilitySchedule]:
        if self.kind is TargetKind.ROLE:
            rows = self.client.get_all(
                f"{ROLE_BASE}/roleEligibilityScheduleInstances"
                f"?$filter=principalId eq '{principal_id}'&$expand=roleDefinition"
            )
        else:
            rows = self.client.get_all(
                f"{GROUP_BASE}/eligibilityScheduleInstances?$filter=principalId eq '{principal_id}'&$expand=group"
            )

        return [
            RawEligibilitySchedule(
                principal_id=r.get("principalId") or principal_id,
                target_id=self._target_id(r),
                display_name=self._name(r),
                scope=self._scope(r),
                access_level=self._level(r),
                kind=self.kind,
            )
            for r in rows or [] if self._target_id(r)
        ]

    def fetch_activation_policy(self, target: PimTarget) -> ActivationPolicy:
        if target.kind is TargetKind.ROLE:
            flt = (f"scopeId eq '{DIRECTORY_SCOPE}' and scopeType eq 'DirectoryRole' "
                   f"and roleDefinitionId eq '{target.target_id}'")
        else:
            access = (target.access_level or AccessLevel.MEMBER).value
            flt = (f"scopeId eq '{target.target_id}' and scopeType eq 'Group' "
                   f"and roleDefinitionId eq '{access}'")

        rows = self.client.get_all(f"{POLICY_BASE}?$filter={flt}&$expand=policy($expand=rules)")
        if not rows:
            return ActivationPolicy()

        max_duration = None
        enabled: List[str] = []
        for rule in (rows[0].get("policy") or {}).get("rules") or []:
            rule_id = rule.get("id")
            if rule_id == "Expiration_EndUser_Assignment" and rule.get("maximumDuration"):
                try:
                    max_duration = fncParseDuration(rule["maximumDuration"])
                except FormatError as ex:
                    fncPrintMessage(f"Ignoring policy maximum duration: {ex}", "warn")
            elif rule_id == "Enablement_EndUser_Assignment":
                enabled = list(rule.get("enabledRules") or [])

        return ActivationPolicy(
            max_duration=max_duration,
            justification_required="Justification" in enabled,
            ticket_required="Ticketing" in enabled,
            mfa_required="MultiFactorAuthentication" in enabled,
            enabled_rules=tuple(enabled),
        )

    # ---------- submit ----------

    def _request_endpoint(self) -> str:
        if self.kind is TargetKind.ROLE:
            return f"{ROLE_BASE}/roleAssignmentScheduleRequests"
        return f"{GROUP_BASE}/assignmentScheduleRequests"

    def _base_payload(self, action: str, principal_id: str, target: PimTarget, justification: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "action": action,
            "principalId": principal_id,
            "justification": justification or "",
        }
        if target.kind is TargetKind.ROLE:
            payload["roleDefinitionId"] = target.target_id
            payload["directoryScopeId"] = target.scope or DIRECTORY_SCOPE
        else:
            payload["groupId"] = target.target_id
            payload["accessId"] = (target.access_level or AccessLevel.MEMBER).value
        return payload

    def _submit(self, payload: Dict[str, Any], target: PimTarget) -> RequestAccepted:
        if target.kind is not self.kind:
            raise PimError(f"{self.kind.value} transport cannot submit a {target.kind.value} request")
        try:
            data = self.client.post(self._request_endpoint(), payload)
        except TransportError as ex:
            if ex.code in MIN_DURATION_CODES:
                raise MinimumDurationNotMetError(target.label(), from_service=True) from ex
            raise
        return RequestAccepted(
            request_id=data.get("id") or "",
            status=data.get("status") or "",
            created=fncParseDateTime(data.get("createdDateTime")),
        )

    def submit_activation_request(
        self,
        principal_id: str,
        target: PimTarget,
        duration: timedelta,
        justification: str,
        ticket: Optional[TicketInfo] = None,
    ) -> RequestAccepted:
        payload = self._base_payload("selfActivate", principal_id, target, justification)
        payload["scheduleInfo"] = {
            "startDateTime": self._clock().astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "expiration": {"type": "afterDuration", "duration": fncToIsoDuration(duration)},
        }
        if ticket and ticket.ticket_number:
            payload["ticketInfo"] = {
                "ticketNumber": ticket.ticket_number,
                "ticketSystem": ticket.ticket_system or "",
            }
        fncPrintMessage(f"Submitting activation for '{target.label()}' ({payload['scheduleInfo']['expiration']['duration']})", "debug")
        return self._submit(payload, target)

    def submit_deactivation_request(self, principal_id: str, target: PimTarget, justification: str) -> RequestAccepted:
        payload = self._base_payload("selfDeactivate", principal_id, target, justification)
        fncPrintMessage(f"Submitting deactivation for '{target.label()}'", "debug")
        return self._submit(payload, target)
