# ================================================================
# File     : exports.py
# Purpose  : Handle export logic for PimPal (CSV, JSON)
# Notes    : Called by command modules after the console output
# ================================================================

import pathlib
from datetime import datetime, timezone

from core.utils import fncPrintMessage, fncEnsureFolder, fncExportCSV, fncWriteJSON

SUPPORTED_FORMATS = {"json", "csv"}


# ================================================================
# Function: fncExportList
# Purpose  : Flatten --export list-of-lists from argparse
# Notes    : Accepts "json,csv" or "json csv"; unknown formats warn
# ================================================================
def fncExportList(args_export) -> set:
    if not args_export:
        return set()
    chunks = [args_export] if isinstance(args_export, str) else args_export
    out = set()
    for chunk in chunks:
        items = chunk if isinstance(chunk, (list, tuple)) else [chunk]
        for item in items:
            if not isinstance(item, str):
                continue
            for part in item.replace(",", " ").split():
                fmt = part.strip().lower()
                if fmt in SUPPORTED_FORMATS:
                    out.add(fmt)
                else:
                    fncPrintMessage(f"Unsupported export format ignored: {fmt}", "warn")
    return out


# ================================================================
# Function: fncGetExportPath
# Purpose  : Build structured output path under ~/.pimpal/reports/
# ================================================================
def fncGetExportPath(module_name: str, root: pathlib.Path = None):
    if root is None:
        root = pathlib.Path.home() / ".pimpal" / "reports"
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    mod_slug = module_name.replace("/", "_").replace("\\", "_")
    out_dir = root / ts / mod_slug
    fncEnsureFolder(out_dir)
    return out_dir


# ================================================================
# Function: fncExportSingleModule
# Purpose  : Handle all export formats for one command's result
# Notes    : Every list-of-dicts value becomes its own CSV
# ================================================================
def fncExportSingleModule(module_name: str, data: dict, formats: set, root: pathlib.Path = None) -> pathlib.Path:
    out_dir = fncGetExportPath(module_name, root)

    if "json" in formats:
        fncWriteJSON(str(out_dir / f"{module_name}.json"), data)

    if "csv" in formats:
        for key, val in data.items():
            if key == "summary":
                continue
            if isinstance(val, list) and val and isinstance(val[0], dict):
                fncExportCSV(str(out_dir / f"{module_name}_{key}.csv"), val)

    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir
