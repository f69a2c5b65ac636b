# ================================================================
# File     : errors.py
# Purpose  : Exception hierarchy for PimPal
# Notes    : Everything derives from PimError so the CLI can catch
#            one type and print a friendly line instead of a trace.
# ================================================================

from datetime import timedelta
from typing import Any, Dict, List, Optional


class PimError(Exception):
    """Base exception for PimPal."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class FormatError(PimError):
    """Raised when a duration string does not match the supported grammar."""

    def __init__(self, text: Any, reason: str):
        super().__init__(
            f"Invalid duration {text!r}: {reason}",
            context={"text": text, "reason": reason},
        )
        self.text = text
        self.reason = reason


class AuthenticationError(PimError):
    """Raised when MSAL cannot produce an access token."""


class TransportError(PimError):
    """Opaque failure from Microsoft Graph."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context=context)
        self.status_code = status_code
        self.code = code


class ThrottledError(TransportError):
    """Graph answered 429 and kept answering 429."""


class ServerError(TransportError):
    """Graph answered with a 5xx status."""


class NetworkError(TransportError):
    """The request never got an HTTP answer (connection reset, timeout)."""


class MinimumDurationNotMetError(PimError):
    """A deactivation was attempted before the minimum active window elapsed."""

    def __init__(self, target_name: str, remaining: Optional[timedelta] = None, from_service: bool = False):
        if remaining is not None and remaining.total_seconds() > 0:
            wait = f"wait another {int(remaining.total_seconds() // 60) + 1} minute(s)"
        else:
            wait = "try again shortly"
        source = "Graph rejected the request" if from_service else "Activation is too recent"
        super().__init__(
            f"{source}: '{target_name}' has not been active for the minimum duration; {wait}.",
            context={"target": target_name, "from_service": from_service},
        )
        self.target_name = target_name
        self.remaining = remaining
        self.from_service = from_service


class TargetNotFoundError(PimError):
    """No role or group matched the operator's selection."""

    def __init__(self, name: str):
        super().__init__(f"No role or group matches '{name}'.", context={"name": name})
        self.name = name


class AmbiguousTargetError(PimError):
    """More than one role or group matched the operator's selection."""

    def __init__(self, name: str, candidates: List[str]):
        listed = ", ".join(candidates)
        super().__init__(
            f"'{name}' matches {len(candidates)} entries ({listed}); be more specific.",
            context={"name": name, "candidates": candidates},
        )
        self.name = name
        self.candidates = candidates
