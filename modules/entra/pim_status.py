# ================================================================
# File     : modules/entra/pim_status.py
# Purpose  : Show the signed-in user's PIM roles and groups
# Notes    : One row per role/group (and access level): Active,
#            Eligible or Permanent, never more than one of them
# ================================================================

from datetime import datetime, timezone
from typing import Any, Dict, List

from core.exports import fncExportList, fncExportSingleModule
from core.models import AssignmentStatus, TargetKind
from core.pim import fncGetStatus
from core.utils import fncPrintMessage, fncToTable, fncNewRunId

from modules.entra._pim_common import console_rows, record_row


# ================================================================
# Function: add_args
# Purpose : Add the "status" sub-command
# ================================================================
def add_args(subparsers):
    p = subparsers.add_parser("status", help="List active, eligible and permanent roles/groups")
    which = p.add_mutually_exclusive_group()
    which.add_argument("--roles", action="store_true", help="Directory roles only")
    which.add_argument("--groups", action="store_true", help="PIM groups only")
    p.add_argument("--filter", "-f", dest="name_filter", default=None,
                   help="Only names containing this text (case-insensitive)")
    p.add_argument("--status", "-s", dest="status_filter", default=None,
                   choices=[s.value.lower() for s in AssignmentStatus],
                   help="Only rows with this status")
    p.add_argument("--export", nargs="*", metavar="FMT[,FMT...]", default=None,
                   help="Export formats: csv, json")
    return p


def _kinds(args) -> List[TargetKind]:
    if getattr(args, "roles", False):
        return [TargetKind.ROLE]
    if getattr(args, "groups", False):
        return [TargetKind.GROUP]
    return [TargetKind.ROLE, TargetKind.GROUP]


# ================================================================
# Function: run
# Purpose : Entry point for module execution
# Notes   : session is an initialised PimSession
# ================================================================
def run(session, args) -> Dict[str, Any]:
    run_id = fncNewRunId("status")
    status_filter = AssignmentStatus.parse(args.status_filter) if getattr(args, "status_filter", None) else None
    name_filter = getattr(args, "name_filter", None)

    data: Dict[str, Any] = {
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": {},
    }

    for kind in _kinds(args):
        records = fncGetStatus(session, kind, name_filter=name_filter, status_filter=status_filter)
        title = "Directory Roles" if kind is TargetKind.ROLE else "PIM Groups"

        counts = {s.value: sum(1 for r in records if r.status is s) for s in AssignmentStatus}
        fncPrintMessage(
            f"{title}: {counts['Active']} active, {counts['Eligible']} eligible, {counts['Permanent']} permanent",
            "info",
        )
        print(fncToTable(console_rows(records, show_access=kind is TargetKind.GROUP)))
        print()

        key = "roles" if kind is TargetKind.ROLE else "groups"
        data[key] = [record_row(r) for r in records]
        data["summary"][title] = counts

    formats = fncExportList(getattr(args, "export", None))
    if formats:
        fncExportSingleModule("status", data, formats, getattr(args, "reports_root", None))

    return data
