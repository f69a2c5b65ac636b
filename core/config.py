# ================================================================
# File     : config.py
# Purpose  : Configuration management for PimPal
# Notes    : Handles initial creation, loading and overrides
# ================================================================

import copy
import pathlib
from core.utils import fncPrintMessage, fncEnsureFolder, fncReadJSON, fncWriteJSON, fncLoadEnv

# Microsoft Graph Command Line Tools (public client, delegated)
DEFAULT_CLIENT_ID = "14d82eec-204b-4c2f-b7e8-296a70dab67e"


def fncDefaultHome() -> pathlib.Path:
    return pathlib.Path.home() / ".pimpal"


# ================================================================
# Function: fncDefaultConfig
# Purpose : Return a default configuration dictionary
# Notes   : Called when config file does not exist
# ================================================================
def fncDefaultConfig() -> dict:
    return {
        "version": "1.0",
        "pimpal_home": str(fncDefaultHome()),
        "debug": False,
        "entra": {
            "tenant_id": "organizations",
            "client_id": DEFAULT_CLIENT_ID,
            "authority": "https://login.microsoftonline.com"
        },
        "pim": {
            "default_duration": "PT8H",
            "max_wait_seconds": 300,
            "tick_interval_ms": 5000,
            "minimum_active_minutes": 5,
            "ticket_system": ""
        }
    }


# ================================================================
# Function: fncInitConfig
# Purpose : Create or load configuration file
# Notes   : Ensures base folder exists; returns full config dict
# ================================================================
def fncInitConfig(config_path: str = None) -> dict:
    path = pathlib.Path(config_path or (fncDefaultHome() / "config.json"))

    fncEnsureFolder(path.parent)

    if not path.exists():
        fncPrintMessage(f"No config found at {path}. Creating default...", "warn")
        cfg = fncDefaultConfig()
        fncWriteJSON(str(path), cfg)
        return fncApplyEnvOverrides(cfg)
    else:
        return fncLoadConfig(str(path))


# ================================================================
# Function: fncMergeDefaults
# Purpose : Fill keys missing from an older/partial config file
# ================================================================
def fncMergeDefaults(cfg: dict, defaults: dict = None) -> dict:
    merged = copy.deepcopy(defaults if defaults is not None else fncDefaultConfig())
    for key, value in (cfg or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = fncMergeDefaults(value, merged[key])
        else:
            merged[key] = value
    return merged


# ================================================================
# Function: fncApplyEnvOverrides
# Purpose : Apply PIMPAL_* environment variables over the config
# Notes   : Useful in CI/CD or a shared jump box profile
# ================================================================
def fncApplyEnvOverrides(cfg: dict) -> dict:
    cfg["entra"]["tenant_id"] = fncLoadEnv("PIMPAL_TENANT_ID", cfg["entra"].get("tenant_id"))
    cfg["entra"]["client_id"] = fncLoadEnv("PIMPAL_CLIENT_ID", cfg["entra"].get("client_id"))
    cfg["pim"]["ticket_system"] = fncLoadEnv("PIMPAL_TICKET_SYSTEM", cfg["pim"].get("ticket_system"))
    return cfg


# ================================================================
# Function: fncLoadConfig
# Purpose : Load configuration file and apply environment overrides
# ================================================================
def fncLoadConfig(config_path: str) -> dict:
    cfg = fncMergeDefaults(fncReadJSON(config_path))
    cfg = fncApplyEnvOverrides(cfg)
    fncPrintMessage(f"Loaded configuration from {config_path}", "debug")
    return cfg


# ================================================================
# Function: fncApplyCliOverrides
# Purpose : Apply command-line flags to the loaded config
# Notes   : CLI beats env beats file
# ================================================================
def fncApplyCliOverrides(cfg: dict, args) -> dict:
    if getattr(args, "debug", None):
        cfg["debug"] = True
    if getattr(args, "tenant_id", None):
        cfg["entra"]["tenant_id"] = args.tenant_id
    if getattr(args, "client_id", None):
        cfg["entra"]["client_id"] = args.client_id
    return cfg


# ================================================================
# Function: fncIsDebug
# Purpose : Return whether debug mode is enabled in config
# ================================================================
def fncIsDebug(cfg: dict) -> bool:
    return bool(cfg.get("debug", False))


# ================================================================
# Function: fncGetPimConfig
# Purpose : Return the pim block with numeric fields coerced
# ================================================================
def fncGetPimConfig(cfg: dict) -> dict:
    pim = dict(cfg.get("pim", {}))
    defaults = fncDefaultConfig()["pim"]
    for key in ("max_wait_seconds", "tick_interval_ms", "minimum_active_minutes"):
        try:
            pim[key] = int(pim.get(key, defaults[key]))
        except (TypeError, ValueError):
            fncPrintMessage(f"Config value pim.{key} is not a number; using {defaults[key]}", "warn")
            pim[key] = defaults[key]
    pim.setdefault("default_duration", defaults["default_duration"])
    pim.setdefault("ticket_system", "")
    return pim
