#!/usr/bin/env python3
# ================================================================
# Tool     : PimPal
# Purpose  : Entra PIM helper: status, activate, deactivate
# Notes    : "Just enough privilege, just in time."
# ================================================================

import argparse
import pathlib
import sys
from datetime import timedelta

from core.config import fncInitConfig, fncApplyCliOverrides, fncIsDebug, fncGetPimConfig, fncDefaultHome
from core.errors import PimError
from core.models import TargetKind
from core.module_loader import fncRegisterModules, fncRunModule
from core.pim import PimSession
from core.utils import fncPrintMessage, fncSetDebug, fncDisplayBanner

PROVIDER = "entra"
VERSION = "v1.0"


# ================================================================
# Function: fncParseArguments
# Purpose  : Define and parse command-line arguments for PimPal
# Notes    : Sub-commands come from modules/entra/*.py add_args()
# ================================================================
def fncParseArguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="pimpal",
        description="PimPal: Entra Privileged Identity Management helper"
    )

    parser.add_argument("--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--config", default=None, help="Config file (default: ~/.pimpal/config.json)")
    parser.add_argument("--tenant-id", default=None, help="Tenant id or domain (overrides config/env)")
    parser.add_argument("--client-id", default=None, help="Public client app id (overrides config/env)")
    parser.add_argument("--interactive", action="store_true",
                        help="Sign in through the browser instead of a device code")
    parser.add_argument("--no-banner", action="store_true", help="Skip the banner")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True
    fncRegisterModules(PROVIDER, subparsers)

    return parser.parse_args(argv)


# ================================================================
# Function: fncInitSession
# Purpose : Sign in, resolve the current user, build a PimSession
# ================================================================
def fncInitSession(cfg: dict, args) -> PimSession:
    from handlers.graph.client import GraphClient
    from handlers.graph.pim_transport import GraphPimTransport, fncWhoAmI

    entra_cfg = cfg.get("entra", {})
    client = GraphClient(
        tenant_id=entra_cfg.get("tenant_id"),
        client_id=entra_cfg.get("client_id"),
        authority_host=entra_cfg.get("authority") or "https://login.microsoftonline.com",
        interactive=bool(getattr(args, "interactive", False)),
    )

    me = fncWhoAmI(client)
    fncPrintMessage(f"Signed in as {me['userPrincipalName'] or me['id']}", "info")

    pim = fncGetPimConfig(cfg)
    return PimSession(
        principal_id=me["id"],
        transports={
            TargetKind.ROLE: GraphPimTransport(client, TargetKind.ROLE),
            TargetKind.GROUP: GraphPimTransport(client, TargetKind.GROUP),
        },
        minimum_active=timedelta(minutes=pim["minimum_active_minutes"]),
    )


# ================================================================
# Function: main
# Purpose  : Main entry point for PimPal execution
# Notes    : Returns a process exit code
# ================================================================
def main(argv=None) -> int:
    args = fncParseArguments(argv)

    # Load or create configuration, set debug
    cfg = fncInitConfig(args.config)
    cfg = fncApplyCliOverrides(cfg, args)
    fncSetDebug(fncIsDebug(cfg))
    args.pim = fncGetPimConfig(cfg)
    args.reports_root = pathlib.Path(cfg.get("pimpal_home") or fncDefaultHome()).expanduser() / "reports"

    if not args.no_banner:
        fncDisplayBanner(VERSION)
    fncPrintMessage("Debug output enabled.", "debug")

    try:
        session = fncInitSession(cfg, args)
    except PimError as ex:
        fncPrintMessage(f"Unable to continue: {ex}", "error")
        return 2

    result = fncRunModule(PROVIDER, args.module, session, args)
    if isinstance(result, dict) and result.get("error"):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
