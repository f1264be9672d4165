# ================================================================
# File     : exports.py
# Purpose  : Handle all export logic for FleetHound (HTML, CSV, JSON)
# Notes    : Called by FleetHound.py after a module finishes
# ================================================================

import pathlib
from datetime import datetime, timezone

from core.utils import fncPrintMessage, fncEnsureFolder, fncExportCSV, fncWriteJSON
from core.reporting import fncWriteHTMLReport, fncWriteHTMLDocument


# ================================================================
# Function: fncExportList
# Purpose  : Flatten --export list-of-strings from argparse
# Notes    : Accepts "html,csv json" style input
# ================================================================
def fncExportList(args_export) -> set:
    if not args_export:
        return set()
    out = set()
    for chunk in args_export:
        if isinstance(chunk, str):
            for part in chunk.replace(",", " ").split():
                out.add(part.strip().lower())
    return out


# ================================================================
# Function: fncGetExportPath
# Purpose  : Build structured output path under <root>/<ts>/<module>/
# ================================================================
def fncGetExportPath(module_name: str, root: pathlib.Path):
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    mod_slug = module_name.replace("/", "_").replace("\\", "_")
    out_dir = pathlib.Path(root) / ts / mod_slug
    fncEnsureFolder(out_dir)
    return out_dir


def _public(data: dict) -> dict:
    """Drop report metadata (underscore keys) before JSON export."""
    return {k: v for k, v in data.items() if not k.startswith("_")}


# ================================================================
# Function: fncExportSingleModule
# Purpose  : Handle all export formats for one module result
# Notes    : data["_html"] (pre-rendered document) wins over the
#            generic report renderer
# ================================================================
def fncExportSingleModule(module_name: str, data: dict, formats: set, root: pathlib.Path) -> pathlib.Path:
    out_dir = fncGetExportPath(module_name, root)

    if "json" in formats:
        fncWriteJSON(str(out_dir / f"{module_name}.json"), _public(data))

    if "csv" in formats:
        for key, val in data.items():
            if key == "summary" or key.startswith("_"):
                continue
            if isinstance(val, list) and val and isinstance(val[0], dict):
                fncExportCSV(str(out_dir / f"{module_name}_{key}.csv"), val)

    if "html" in formats:
        target = str(out_dir / f"{module_name}.html")
        if isinstance(data.get("_html"), str):
            fncWriteHTMLDocument(target, data["_html"])
        else:
            fncWriteHTMLReport(target, module_name, data)

    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir
