# ================================================================
# File     : modules/entra/_pim_common.py
# Purpose  : Shared rendering + argument helpers for PIM commands
# Notes    : Leading underscore keeps it out of module discovery
# ================================================================

import sys
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from colorama import Fore, Style

from core.duration import fncFormatDuration
from core.models import AccessLevel, StatusRecord, TargetKind
from core.poller import PollOutcome, PollProgress, PollState
from core.utils import fncPrintMessage, fncPromptText

STATUS_COLOURS = {
    "Active": Fore.GREEN,
    "Eligible": Fore.CYAN,
    "Permanent": Fore.YELLOW,
}


def add_target_args(p) -> None:
    p.add_argument("name", help="Role or group display name (case-insensitive; partial match allowed)")
    p.add_argument("--group", action="store_true", help="Target a PIM group instead of a directory role")
    p.add_argument("--access", choices=[a.value for a in AccessLevel], default=None,
                   help="Group access level (member/owner) when a group has both")
    p.add_argument("--justification", "-j", default=None, help="Reason recorded with the request")
    p.add_argument("--no-wait", action="store_true", help="Submit and return without polling")
    p.add_argument("--timeout", type=int, default=None,
                   help="Seconds to wait for the change to take effect (default from config: 300)")
    p.add_argument("--interval", type=int, default=None,
                   help="Milliseconds between status checks (default from config: 5000)")


def target_kind(args) -> TargetKind:
    return TargetKind.GROUP if getattr(args, "group", False) else TargetKind.ROLE


def access_level(args) -> Optional[AccessLevel]:
    return AccessLevel.parse(getattr(args, "access", None))


def justification(args, required: bool = True) -> str:
    text = (getattr(args, "justification", None) or "").strip()
    if not text and required and sys.stdin.isatty():
        text = fncPromptText("Justification").strip()
    return text


def _fmt_time(dt: Optional[datetime]) -> str:
    if dt is None:
        return "-"
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def colour_remaining(remaining: Optional[timedelta]) -> str:
    """Short remaining time, red under 30 minutes, yellow under 2 hours."""
    text = fncFormatDuration(remaining, short=True)
    if remaining is None:
        return text
    secs = remaining.total_seconds()
    if secs <= 0:
        return f"{Fore.LIGHTBLACK_EX}{text}{Style.RESET_ALL}"
    if secs < 1800:
        return f"{Fore.RED}{text}{Style.RESET_ALL}"
    if secs < 7200:
        return f"{Fore.YELLOW}{text}{Style.RESET_ALL}"
    return text


def record_row(r: StatusRecord) -> Dict[str, Any]:
    """Export-friendly row (no colour codes)."""
    return {
        "name": r.name,
        "type": r.kind.value,
        "status": r.status.value,
        "access": r.access_level.value if r.access_level else "",
        "scope": r.scope,
        "start": r.start_time.isoformat() if r.start_time else "",
        "end": r.end_time.isoformat() if r.end_time else "",
        "remaining": fncFormatDuration(r.time_remaining) if r.is_active else "",
        "id": r.target_id,
    }


def console_rows(records: List[StatusRecord], show_access: bool) -> List[Dict[str, Any]]:
    out = []
    for r in records:
        row = {
            "Name": r.name,
            "Status": f"{STATUS_COLOURS.get(r.status.value, '')}{r.status.value}{Style.RESET_ALL}",
        }
        if show_access:
            row["Access"] = r.access_level.value if r.access_level else "-"
        row["Scope"] = r.scope
        row["Start"] = _fmt_time(r.start_time)
        row["End"] = _fmt_time(r.end_time) if r.is_active else "-"
        row["Remaining"] = colour_remaining(r.time_remaining) if r.is_active else "-"
        out.append(row)
    return out


def progress_printer(verb: str):
    def _observer(p: PollProgress) -> None:
        if p.state is PollState.REQUESTED:
            fncPrintMessage(f"Waiting for {verb} to take effect (Ctrl+C stops watching)…", "info")
            return
        note = f" (last check failed: {p.last_error})" if p.last_error else ""
        fncPrintMessage(f"Check {p.attempt}: not yet ({p.elapsed_seconds:.0f}s elapsed){note}", "info")
    return _observer


def report_outcome(outcome: PollOutcome) -> None:
    if outcome.state is PollState.CONFIRMED:
        fncPrintMessage(outcome.message, "success")
    elif outcome.state is PollState.FAILED:
        fncPrintMessage(outcome.message, "error")
    else:
        fncPrintMessage(outcome.message, "warn")


def outcome_dict(outcome: Optional[PollOutcome]) -> Optional[Dict[str, Any]]:
    if outcome is None:
        return None
    return {
        "state": outcome.state.value,
        "attempts": outcome.attempts,
        "elapsedSeconds": round(outcome.elapsed_seconds, 1),
        "mayStillBeInProgress": outcome.may_still_be_in_progress,
        "lastError": str(outcome.last_error) if outcome.last_error else None,
    }
