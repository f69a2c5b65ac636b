"""Tests for mapping Graph PIM payloads to raw records and requests."""

from datetime import datetime, timedelta, timezone

import pytest

from core.errors import MinimumDurationNotMetError, PimError, TransportError
from core.models import AccessLevel, PimTarget, TargetKind, TicketInfo
from handlers.graph.pim_transport import GraphPimTransport, fncWhoAmI

from fakes import NOW, PRINCIPAL, FakeGraphClient

ROLE_ASSIGNMENTS = "roleManagement/directory/roleAssignments?"
ROLE_INSTANCES = "roleManagement/directory/roleAssignmentScheduleInstances?"
ROLE_ELIGIBLE = "roleManagement/directory/roleEligibilityScheduleInstances?"
GROUP_INSTANCES = "identityGovernance/privilegedAccess/group/assignmentScheduleInstances?"
GROUP_ELIGIBLE = "identityGovernance/privilegedAccess/group/eligibilityScheduleInstances?"
POLICIES = "policies/roleManagementPolicyAssignments?"


def role_row(role_id, name, **extra):
    row = {"principalId": PRINCIPAL, "roleDefinitionId": role_id, "directoryScopeId": "/",
           "roleDefinition": {"displayName": name}}
    row.update(extra)
    return row


def group_row(group_id, name, access, **extra):
    row = {"principalId": PRINCIPAL, "groupId": group_id, "accessId": access, "group": {"displayName": name}}
    row.update(extra)
    return row


class TestRoleFetch:
    """Directory role endpoints."""

    def test_permanent_from_role_assignments(self):
        client = FakeGraphClient({ROLE_ASSIGNMENTS: [role_row("r1", "Global Reader"), {"principalId": PRINCIPAL}]})
        rows = GraphPimTransport(client, TargetKind.ROLE).fetch_permanent_assignments(PRINCIPAL)
        assert [(r.target_id, r.display_name, r.scope) for r in rows] == [("r1", "Global Reader", "/")]
        assert "principalId eq 'user-1'" in client.gets[0]
        assert "$expand=roleDefinition" in client.gets[0]

    def test_active_keeps_activated_and_time_bound(self):
        client = FakeGraphClient({ROLE_INSTANCES: [
            role_row("r1", "User Administrator", assignmentType="Activated",
                     startDateTime="2026-03-02T11:00:00Z", endDateTime="2026-03-02T13:00:00.1234567Z"),
            role_row("r2", "Global Reader", assignmentType="Assigned"),
            role_row("r3", "Reports Reader", assignmentType="Assigned",
                     startDateTime="2026-01-01T00:00:00Z", endDateTime="2026-12-31T00:00:00Z"),
        ]})
        rows = GraphPimTransport(client, TargetKind.ROLE).fetch_active_schedules(PRINCIPAL)
        assert [r.target_id for r in rows] == ["r1", "r3"]
        assert rows[0].start_time == datetime(2026, 3, 2, 11, 0, tzinfo=timezone.utc)
        assert rows[0].end_time == datetime(2026, 3, 2, 13, 0, 0, 123456, tzinfo=timezone.utc)

    def test_activated_without_end_is_indefinite(self):
        client = FakeGraphClient({ROLE_INSTANCES: [
            role_row("r1", "User Administrator", assignmentType="Activated", startDateTime="2026-03-02T11:00:00Z"),
        ]})
        rows = GraphPimTransport(client, TargetKind.ROLE).fetch_active_schedules(PRINCIPAL)
        assert rows[0].end_time is None

    def test_eligible_with_scope(self):
        client = FakeGraphClient({ROLE_ELIGIBLE: [
            role_row("r1", "User Administrator", directoryScopeId="/administrativeUnits/au-1"),
            {"principalId": PRINCIPAL, "roleDefinitionId": "r2"},
        ]})
        rows = GraphPimTransport(client, TargetKind.ROLE).fetch_eligibility_schedules(PRINCIPAL)
        assert rows[0].scope == "/administrativeUnits/au-1"
        assert rows[1].display_name == "r2"
        assert rows[1].scope == "/"


class TestGroupFetch:
    """PIM for Groups endpoints."""

    def setup_method(self):
        self.client = FakeGraphClient({
            GROUP_INSTANCES: [
                group_row("g1", "Tier0 Admins", "member", assignmentType="activated",
                          startDateTime="2026-03-02T11:00:00Z", endDateTime="2026-03-02T15:00:00Z"),
                group_row("g2", "Helpdesk", "owner", assignmentType="assigned"),
            ],
            GROUP_ELIGIBLE: [
                group_row("g1", "Tier0 Admins", "member"),
                group_row("g1", "Tier0 Admins", "owner"),
            ],
        })
        self.transport = GraphPimTransport(self.client, TargetKind.GROUP)

    def test_permanent_is_assigned_without_end(self):
        rows = self.transport.fetch_permanent_assignments(PRINCIPAL)
        assert [(r.target_id, r.access_level, r.kind) for r in rows] == [("g2", AccessLevel.OWNER, TargetKind.GROUP)]

    def test_active_is_activated(self):
        rows = self.transport.fetch_active_schedules(PRINCIPAL)
        assert [(r.target_id, r.access_level) for r in rows] == [("g1", AccessLevel.MEMBER)]
        assert rows[0].display_name == "Tier0 Admins"

    def test_eligible_keeps_access_levels(self):
        rows = self.transport.fetch_eligibility_schedules(PRINCIPAL)
        assert {r.access_level for r in rows} == {AccessLevel.MEMBER, AccessLevel.OWNER}
        assert "$expand=group" in self.client.gets[-1]


class TestPolicy:
    """Role management policy rules."""

    def test_reads_rules(self):
        client = FakeGraphClient({POLICIES: [{"policy": {"rules": [
            {"id": "Expiration_EndUser_Assignment", "maximumDuration": "PT4H"},
            {"id": "Enablement_EndUser_Assignment", "enabledRules": ["Justification", "MultiFactorAuthentication"]},
        ]}}]})
        policy = GraphPimTransport(client, TargetKind.ROLE).fetch_activation_policy(
            PimTarget(TargetKind.ROLE, "r1", "/", None, "User Administrator"))
        assert policy.max_duration == timedelta(hours=4)
        assert policy.justification_required
        assert policy.mfa_required
        assert not policy.ticket_required
        assert "scopeType eq 'DirectoryRole'" in client.gets[0]

    def test_group_policy_filter(self):
        client = FakeGraphClient({POLICIES: []})
        policy = GraphPimTransport(client, TargetKind.GROUP).fetch_activation_policy(
            PimTarget(TargetKind.GROUP, "g1", "/", AccessLevel.OWNER, "Tier0"))
        assert policy.max_duration is None
        assert "scopeId eq 'g1'" in client.gets[0]
        assert "roleDefinitionId eq 'owner'" in client.gets[0]

    def test_bad_maximum_duration_is_ignored(self):
        client = FakeGraphClient({POLICIES: [{"policy": {"rules": [
            {"id": "Expiration_EndUser_Assignment", "maximumDuration": "P1M"},
        ]}}]})
        policy = GraphPimTransport(client, TargetKind.ROLE).fetch_activation_policy(
            PimTarget(TargetKind.ROLE, "r1"))
        assert policy.max_duration is None


class TestSubmit:
    """Schedule request payloads."""

    def test_role_activation_payload(self):
        client = FakeGraphClient()
        transport = GraphPimTransport(client, TargetKind.ROLE, clock=lambda: NOW)
        accepted = transport.submit_activation_request(
            PRINCIPAL, PimTarget(TargetKind.ROLE, "r1", "/", None, "User Administrator"),
            timedelta(hours=4, minutes=30), "INC-42", TicketInfo("INC-42", "ServiceNow"))

        endpoint, payload = client.posts[0]
        assert endpoint == "roleManagement/directory/roleAssignmentScheduleRequests"
        assert payload["action"] == "selfActivate"
        assert payload["roleDefinitionId"] == "r1"
        assert payload["directoryScopeId"] == "/"
        assert payload["scheduleInfo"] == {
            "startDateTime": "2026-03-02T12:00:00Z",
            "expiration": {"type": "afterDuration", "duration": "PT4H30M"},
        }
        assert payload["ticketInfo"] == {"ticketNumber": "INC-42", "ticketSystem": "ServiceNow"}
        assert accepted.request_id == "req-9"
        assert accepted.status == "Provisioned"

    def test_group_deactivation_payload(self):
        client = FakeGraphClient()
        GraphPimTransport(client, TargetKind.GROUP).submit_deactivation_request(
            PRINCIPAL, PimTarget(TargetKind.GROUP, "g1", "/", AccessLevel.OWNER, "Tier0"), "done")
        endpoint, payload = client.posts[0]
        assert endpoint == "identityGovernance/privilegedAccess/group/assignmentScheduleRequests"
        assert payload == {"action": "selfDeactivate", "principalId": PRINCIPAL, "justification": "done",
                           "groupId": "g1", "accessId": "owner"}

    def test_active_duration_too_short_maps_to_domain_error(self):
        client = FakeGraphClient()
        client.post_result = TransportError("400", status_code=400, code="ActiveDurationTooShort")
        with pytest.raises(MinimumDurationNotMetError) as exc:
            GraphPimTransport(client, TargetKind.ROLE).submit_deactivation_request(
                PRINCIPAL, PimTarget(TargetKind.ROLE, "r1", "/", None, "User Administrator"), "")
        assert exc.value.from_service

    def test_other_errors_propagate(self):
        client = FakeGraphClient()
        client.post_result = TransportError("400", status_code=400, code="RoleAssignmentExists")
        with pytest.raises(TransportError):
            GraphPimTransport(client, TargetKind.ROLE).submit_activation_request(
                PRINCIPAL, PimTarget(TargetKind.ROLE, "r1"), timedelta(hours=1), "x")

    def test_kind_mismatch(self):
        with pytest.raises(PimError):
            GraphPimTransport(FakeGraphClient(), TargetKind.ROLE).submit_deactivation_request(
                PRINCIPAL, PimTarget(TargetKind.GROUP, "g1"), "")


class TestWhoAmI:
    def test_resolves_me(self):
        client = FakeGraphClient({"me?": {"id": "user-1", "userPrincipalName": "alice@contoso.com"}})
        assert fncWhoAmI(client)["userPrincipalName"] == "alice@contoso.com"

    def test_missing_id(self):
        with pytest.raises(TransportError):
            fncWhoAmI(FakeGraphClient({"me?": {}}))
