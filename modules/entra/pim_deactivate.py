# ================================================================
# File     : modules/entra/pim_deactivate.py
# Purpose  : Deactivate an active PIM role or group early
# Notes    : Entra refuses deactivation in the first 5 minutes;
#            we check that before asking Graph
# ================================================================

from typing import Any, Dict

from core.errors import TargetNotFoundError
from core.pim import fncDeactivate, fncGetStatus, fncSelectSingle
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
    p = subparsers.add_parser("deactivate", help="Deactivate an active role or group")
    add_target_args(p)
    return p


def run(session, args) -> Dict[str, Any]:
    pim = getattr(args, "pim", {}) or {}

    records = fncGetStatus(session, target_kind(args))
    # prefer an active match; otherwise let fncDeactivate explain why not
    try:
        record = fncSelectSingle([r for r in records if r.is_active], args.name, access_level(args))
    except TargetNotFoundError:
        record = fncSelectSingle(records, args.name, access_level(args))

    fncPrintMessage(f"Deactivating '{record.to_target().label()}'…", "info")
    result = fncDeactivate(
        session,
        record,
        justification(args, required=False),
        wait=not args.no_wait,
        max_wait_seconds=args.timeout or pim.get("max_wait_seconds", 300),
        tick_interval_ms=args.interval or pim.get("tick_interval_ms", 5000),
        observer=progress_printer("deactivation"),
    )

    if result.skipped_reason:
        fncPrintMessage(result.skipped_reason, "info")
    elif result.outcome is not None:
        report_outcome(result.outcome)
    elif result.request is not None:
        fncPrintMessage(f"Deactivation requested ({result.request.status}); not waiting.", "success")

    return {
        "target": result.target.label(),
        "request": result.request.request_id if result.request else None,
        "requestStatus": result.request.status if result.request else None,
        "outcome": outcome_dict(result.outcome),
        "skipped": result.skipped_reason,
    }
