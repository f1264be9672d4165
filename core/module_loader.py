# ================================================================
# File     : module_loader.py
# Purpose  : Dynamically load and execute tool modules
# Notes    : Works across providers (intune, entra, azure). Provides
#            discovery and run-all support. Modules run one at a time.
# ================================================================

import importlib
import pathlib
import traceback
from typing import Callable, Dict, List, Any, Optional
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
    except ModuleNotFoundError:
        fncPrintMessage(f"Module not found: {provider}/{module_name}", "error")
        return None
    fncPrintMessage(f"Loaded module: {mod_path}", "debug")
    return mod


# ================================================================
# Function: fncRunModule
# Purpose : Execute a loaded module's 'run(client, args, cfg)'
# Notes   : client_factory is only called for NEEDS_GRAPH modules
# ================================================================
def fncRunModule(provider: str, module_name: str, client_factory: Optional[Callable[[], Any]], args, cfg: dict) -> Any:
    mod = fncLoadModule(provider, module_name)
    if not mod or not hasattr(mod, "run"):
        if mod:
            fncPrintMessage(f"Module {module_name} missing 'run' function.", "warn")
        return None

    try:
        client = client_factory() if (getattr(mod, "NEEDS_GRAPH", False) and client_factory) else None
        fncPrintMessage(f"Starting module: {provider}/{module_name}", "info")
        result = mod.run(client, args, cfg)
        fncPrintMessage(f"Module complete: {provider}/{module_name}", "success")
        return result
    except Exception as ex:
        fncPrintMessage(f"Module {module_name} raised an exception: {ex}", "error")
        fncPrintMessage(traceback.format_exc(), "debug")
        return {"error": str(ex)}


# ================================================================
# Function: fncDiscoverModules
# Purpose : Discover available modules for a provider
# Notes   : Ignores __init__.py and files starting with '_'
# ================================================================
def fncDiscoverModules(provider: str, root: pathlib.Path = MODULES_ROOT) -> List[str]:
    base = pathlib.Path(root) / provider
    if not base.is_dir():
        fncPrintMessage(f"No modules directory for provider '{provider}' (expected: {base})", "warn")
        return []

    mods = [
        p.stem for p in sorted(base.iterdir())
        if p.is_file() and p.suffix == ".py" and not p.name.startswith("_")
    ]
    fncPrintMessage(f"Discovered modules for {provider}: {mods}", "debug")
    return mods


# ================================================================
# Function: fncRunAllModules
# Purpose : Run every discovered module for a provider in sequence
# Notes   : Returns { module_name: result_or_error }; honours skip_list
# ================================================================
def fncRunAllModules(provider: str, client_factory, args, cfg: dict, skip_list: List[str] = None) -> Dict[str, Any]:
    skip_list = skip_list or []
    results: Dict[str, Any] = {}
    modules = fncDiscoverModules(provider)

    if not modules:
        fncPrintMessage(f"No modules to run for provider '{provider}'", "warn")
        return results

    fncPrintMessage(f"Running all modules for {provider} (count={len(modules)})", "info")

    for mod_name in modules:
        if mod_name in skip_list:
            fncPrintMessage(f"Skipping module (skip-list): {mod_name}", "debug")
            results[mod_name] = {"skipped": True}
            continue
        results[mod_name] = fncRunModule(provider, mod_name, client_factory, args, cfg)

    fncPrintMessage("Completed running all modules.", "success")
    return results
