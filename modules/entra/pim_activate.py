# ================================================================
# File     : modules/entra/pim_activate.py
# Purpose  : Activate an eligible PIM role or group and wait for it
# ================================================================

from typing import Any, Dict

from core.duration import fncFormatDuration, fncParseDuration
from core.models import TicketInfo
from core.pim import fncActivate, fncGetStatus, fncSelectSingle
from core.utils import fncPrintMessage

from modules.entra._pim_common import (
    access_level,
    add_target_args,
    justification,
    outcome_dict,
    progress_printer,
    report_outcome,
    target_kind,
)


def add_args(subparsers):
    p = subparsers.add_parser("activate", help="Activate an eligible role or group")
    add_target_args(p)
    p.add_argument("--duration", "-d", default=None,
                   help="ISO-8601 duration, e.g. PT1H, PT4H30M (default from config: PT8H)")
    p.add_argument("--ticket-number", default=None, help="Change/incident ticket number")
    p.add_argument("--ticket-system", default=None, help="Ticketing system name")
    return p


def run(session, args) -> Dict[str, Any]:
    pim = getattr(args, "pim", {}) or {}
    duration = fncParseDuration(args.duration or pim.get("default_duration", "PT8H"))

    records = fncGetStatus(session, target_kind(args))
    record = fncSelectSingle(records, args.name, access_level(args))

    ticket = None
    if args.ticket_number:
        ticket = TicketInfo(args.ticket_number, args.ticket_system or pim.get("ticket_system", ""))

    fncPrintMessage(f"Activating '{record.to_target().label()}' for {fncFormatDuration(duration)}…", "info")
    result = fncActivate(
        session,
        record,
        duration,
        justification(args),
        ticket=ticket,
        wait=not args.no_wait,
        max_wait_seconds=args.timeout or pim.get("max_wait_seconds", 300),
        tick_interval_ms=args.interval or pim.get("tick_interval_ms", 5000),
        observer=progress_printer("activation"),
    )

    if result.skipped_reason:
        fncPrintMessage(result.skipped_reason, "warn" if result.request else "info")
    elif result.outcome is not None:
        report_outcome(result.outcome)
    elif result.request is not None:
        fncPrintMessage(f"Activation requested ({result.request.status}); not waiting.", "success")

    return {
        "target": result.target.label(),
        "request": result.request.request_id if result.request else None,
        "requestStatus": result.request.status if result.request else None,
        "outcome": outcome_dict(result.outcome),
        "skipped": result.skipped_reason,
        "notes": result.notes,
    }
