# ================================================================
# File     : module_loader.py
# Purpose  : Discover command modules, build their sub-commands
#            and execute them
# Notes    : Each command module under modules/<provider>/ defines
#            add_args(subparsers) and run(session, args).
# ================================================================

import importlib
import pathlib
import traceback
from typing import Any, List

from core.errors import PimError
from core.utils import fncPrintMessage

MODULES_ROOT = pathlib.Path(__file__).resolve().parent.parent / "modules"


# ================================================================
# Function: fncLoadModule
# Purpose : Dynamically import a module based on provider and name
# Notes   : Returns the imported module or None if not found
# ================================================================
def fncLoadModule(provider: str, module_name: str):
    mod_path = f"modules.{provider}.{module_name}"
    try:
        mod = importlib.import_module(mod_path)
        fncPrintMessage(f"Loaded module: {mod_path}", "debug")
        return mod
    except ModuleNotFoundError:
        fncPrintMessage(f"Module not found: {provider}/{module_name}", "error")
        return None


# ================================================================
# Function: fncDiscoverModules
# Purpose : Discover available command modules for a provider
# Notes   : Ignores __init__.py and files starting with '_' by convention
# ================================================================
def fncDiscoverModules(provider: str) -> List[str]:
    base = MODULES_ROOT / provider
    if not base.is_dir():
        fncPrintMessage(f"No modules directory for provider '{provider}' (expected: {base})", "warn")
        return []

    mods = []
    for p in sorted(base.iterdir()):
        if p.is_file() and p.suffix == ".py" and not p.name.startswith("_"):
            mods.append(p.stem)
    fncPrintMessage(f"Discovered modules for {provider}: {mods}", "debug")
    return mods


# ================================================================
# Function: fncRegisterModules
# Purpose : Let every command module add its sub-command
# Notes   : Sets args.module so main knows what to run
# ================================================================
def fncRegisterModules(provider: str, subparsers) -> List[str]:
    registered = []
    for name in fncDiscoverModules(provider):
        mod = fncLoadModule(provider, name)
        if mod is None or not hasattr(mod, "add_args"):
            fncPrintMessage(f"Module {name} has no add_args; not exposed on the CLI.", "debug")
            continue
        parser = mod.add_args(subparsers)
        parser.set_defaults(module=name)
        registered.append(name)
    return registered


# ================================================================
# Function: fncRunModule
# Purpose : Execute a command module's 'run' function
# Notes   : PimError is expected (bad input, Graph refusal) and is
#           printed plainly; anything else also gets a debug trace
# ================================================================
def fncRunModule(provider: str, module_name: str, session, args) -> Any:
    mod = fncLoadModule(provider, module_name)
    if not mod or not hasattr(mod, "run"):
        fncPrintMessage(f"Module {module_name} missing 'run' function.", "warn")
        return None

    try:
        fncPrintMessage(f"Starting module: {provider}/{module_name}", "debug")
        result = mod.run(session, args)
        fncPrintMessage(f"Module complete: {provider}/{module_name}", "debug")
        return result
    except PimError as ex:
        fncPrintMessage(str(ex), "error")
        return {"error": str(ex)}
    except Exception as ex:
        fncPrintMessage(f"Module {module_name} raised an exception: {ex}", "error")
        fncPrintMessage(traceback.format_exc(), "debug")
        return {"error": str(ex)}
