# ================================================================
# File     : modules/azure/nsg_deploy.py
# Purpose  : Deploy ARM templates against a selection of NSGs using
#            the signed-in Azure CLI session
# Output   : data["deployments"] (one row per NSG/template pair)
# Notes    : Pairs are deployed one at a time. A failed deployment is
#            recorded and the loop moves on.
# ================================================================

import re
import json
import shutil
import pathlib
import subprocess
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.utils import fncPrintMessage, fncPrompt, fncPromptYesNo, fncParseSelection, fncToTable, fncNewRunId
from core.config import fncGetSection

NEEDS_GRAPH = False


class AzCliError(Exception):
    """The az executable is missing or returned unusable output."""


# ================================================================
# Function: fncRunAz
# Purpose : Run one az command and return the CompletedProcess
# Notes   : Non-zero exit is returned, not raised; callers decide
# ================================================================
def fncRunAz(args: List[str], az_path: Optional[str] = None) -> subprocess.CompletedProcess:
    az = az_path or shutil.which("az")
    if not az:
        raise AzCliError("Azure CLI ('az') not found on PATH; install it and run 'az login'")
    cmd = [az] + list(args)
    fncPrintMessage(f"az {' '.join(args)}", "debug")
    try:
        return subprocess.run(cmd, capture_output=True, text=True, check=False)
    except FileNotFoundError as ex:
        raise AzCliError(f"Azure CLI ('az') could not be started: {ex}") from ex


def fncRunAzJson(args: List[str], az_path: Optional[str] = None) -> Any:
    result = fncRunAz(list(args) + ["--output", "json"], az_path)
    if result.returncode != 0:
        raise AzCliError(f"az {' '.join(args)} failed: {result.stderr.strip()}")
    try:
        return json.loads(result.stdout or "null")
    except ValueError as ex:
        raise AzCliError(f"Could not parse output of az {' '.join(args)}") from ex


# ================================================================
# Function: fncListNsgs
# Purpose : NSGs visible to the CLI session, optionally per RG
# ================================================================
def fncListNsgs(resource_group: Optional[str] = None, az_path: Optional[str] = None) -> List[Dict[str, str]]:
    args = ["network", "nsg", "list"]
    if resource_group:
        args += ["--resource-group", resource_group]
    nsgs = fncRunAzJson(args, az_path) or []
    return sorted(
        ({"name": n.get("name", ""), "resourceGroup": n.get("resourceGroup", ""),
          "location": n.get("location", "")} for n in nsgs),
        key=lambda n: (n["resourceGroup"].lower(), n["name"].lower()),
    )


def fncListTemplates(templates_dir: str) -> List[pathlib.Path]:
    folder = pathlib.Path(templates_dir).expanduser()
    if not folder.is_dir():
        fncPrintMessage(f"Templates folder not found: {folder}", "warn")
        return []
    return sorted(p for p in folder.glob("*.json") if p.is_file())


def fncDeploymentName(nsg: str, template: pathlib.Path) -> str:
    """ARM deployment names: 64 chars max, alnum plus -._()"""
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    raw = f"{template.stem}-{nsg}-{ts}"
    name = re.sub(r"[^A-Za-z0-9_.()-]+", "-", raw)
    return name[-64:].lstrip("-.") or f"fleethound-{ts}"


# ================================================================
# Function: fncDeployTemplate
# Purpose : One deployment (or what-if) of template against nsg
# ================================================================
def fncDeployTemplate(nsg: Dict[str, str], template: pathlib.Path, what_if: bool = False,
                      az_path: Optional[str] = None) -> Dict[str, Any]:
    verb = "what-if" if what_if else "create"
    deployment = fncDeploymentName(nsg["name"], template)
    args = [
        "deployment", "group", verb,
        "--resource-group", nsg["resourceGroup"],
        "--template-file", str(template),
        "--parameters", f"networkSecurityGroupName={nsg['name']}",
        "--name", deployment,
    ]
    result = fncRunAz(args, az_path)

    if result.returncode == 0:
        status = "What-If" if what_if else "Succeeded"
        detail = ""
        fncPrintMessage(f"{status}: {template.name} → {nsg['name']}", "success")
    else:
        status = "Failed"
        detail = (result.stderr or "").strip()
        fncPrintMessage(f"Failed: {template.name} → {nsg['name']}: {detail.splitlines()[-1] if detail else ''}", "error")

    return {
        "nsg": nsg["name"],
        "resourceGroup": nsg["resourceGroup"],
        "template": template.name,
        "deployment": deployment,
        "status": status,
        "detail": detail,
        "output": (result.stdout or "").strip() if what_if else "",
    }


# ================================================================
# Function: fncDeployAll
# Purpose : Every template against every NSG, sequentially
# ================================================================
def fncDeployAll(nsgs: List[Dict[str, str]], templates: List[pathlib.Path], what_if: bool = False,
                 az_path: Optional[str] = None) -> List[Dict[str, Any]]:
    results = []
    total = len(nsgs) * len(templates)
    n = 0
    for nsg in nsgs:
        for template in templates:
            n += 1
            fncPrintMessage(f"[{n}/{total}] {template.name} → {nsg['resourceGroup']}/{nsg['name']}", "info")
            results.append(fncDeployTemplate(nsg, template, what_if, az_path))
    return results


def _choose(items: List[Any], preset: Optional[str], label: str, describe) -> List[Any]:
    if not items:
        return []
    if preset is None:
        for i, item in enumerate(items, 1):
            print(f"  {i:>3}. {describe(item)}")
        preset = fncPrompt(f"Select {label} (e.g. 1,3-5 or all)", "all")
    return [items[i] for i in fncParseSelection(preset, len(items))]


# ================================================================
# Function: run
# Purpose : Entry point for module execution
# ================================================================
def run(client, args, cfg: dict) -> Dict[str, Any]:
    run_id = fncNewRunId("nsgdeploy")
    azure_cfg = fncGetSection(cfg, "azure")
    resource_group = getattr(args, "resource_group", None) or azure_cfg.get("resource_group") or None
    templates_dir = getattr(args, "templates", None) or azure_cfg.get("templates_dir") or "."
    what_if = bool(getattr(args, "what_if", False))

    fncPrintMessage(f"Running NSG template deployment (run={run_id}, what-if={what_if})", "info")

    nsgs = fncListNsgs(resource_group)
    if not nsgs:
        raise AzCliError(f"No network security groups found{' in ' + resource_group if resource_group else ''}")
    templates = fncListTemplates(templates_dir)
    if not templates:
        raise AzCliError(f"No *.json templates found in {templates_dir}")

    chosen_nsgs = _choose(nsgs, getattr(args, "nsgs", None), "NSGs",
                          lambda n: f"{n['resourceGroup']}/{n['name']} ({n['location']})")
    chosen_templates = _choose(templates, getattr(args, "pick", None), "templates", lambda t: t.name)
    if not chosen_nsgs or not chosen_templates:
        fncPrintMessage("Nothing selected; no deployments run.", "warn")
    elif not what_if and (getattr(args, "nsgs", None) is None or getattr(args, "pick", None) is None):
        total = len(chosen_nsgs) * len(chosen_templates)
        if not fncPromptYesNo(f"Deploy {total} template run(s) now?"):
            fncPrintMessage("Cancelled; no deployments run.", "warn")
            chosen_nsgs, chosen_templates = [], []

    rows = fncDeployAll(chosen_nsgs, chosen_templates, what_if)

    summary = {
        "NSGs selected": len(chosen_nsgs),
        "Templates selected": len(chosen_templates),
        "Succeeded": sum(1 for r in rows if r["status"] == "Succeeded"),
        "What-If": sum(1 for r in rows if r["status"] == "What-If"),
        "Failed": sum(1 for r in rows if r["status"] == "Failed"),
    }
    print(fncToTable(rows, headers=["nsg", "resourceGroup", "template", "status"]))
    if summary["Failed"]:
        fncPrintMessage(f"{summary['Failed']} deployment(s) failed; see the detail column in exports.", "warn")

    return {
        "provider": "azure",
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": summary,
        "deployments": rows,
        "_pill_columns": ["status"],
    }
