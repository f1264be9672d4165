# ================================================================
# File     : modules/intune/device_inventory.py
# Purpose  : Cross-reference Autopilot, Intune and Entra devices and
#            write the interactive inventory report.
# Output   : HTML (+ sibling .csv) at reports.device_inventory_path
#            or --html; data["devices"] for CSV/JSON exports
# Notes    : Any failed page fetch aborts before anything is written.
#            Primary-user lookups degrade per row.
# ================================================================

import pathlib
from datetime import datetime, timezone
from typing import Any, Dict, List

from core.utils import fncPrintMessage, fncNewRunId, fncToTable
from core.models import DeviceRecord, ManagedDeviceRecord, DirectoryDeviceRecord, STATUS_NOT_ENROLLED
from core.reconcile import fncReconcileDevices, fncMakeUserLookup
from core.projector import fncRowCells
from core.table_state import TableState
from core.device_report import fncWriteDeviceReport, fncInventorySummary

NEEDS_GRAPH = True

REQUIRED_PERMS = [
    "DeviceManagementServiceConfig.Read.All",
    "DeviceManagementManagedDevices.Read.All",
    "Device.Read.All",
    "User.Read.All",
]

AUTOPILOT_ENDPOINT = "deviceManagement/windowsAutopilotDeviceIdentities"
MANAGED_DEVICES_ENDPOINT = "deviceManagement/managedDevices?$select=id,deviceName,azureADDeviceId"
DIRECTORY_DEVICES_ENDPOINT = "devices?$select=id,deviceId,displayName"


# ================================================================
# Function: fncFetchSources
# Purpose : Pull the three device lists, one request at a time
# ================================================================
def fncFetchSources(client):
    fncPrintMessage("Fetching Autopilot device identities…", "info")
    autopilot = [DeviceRecord.from_graph(i) for i in client.get_all(AUTOPILOT_ENDPOINT)]

    fncPrintMessage("Fetching Intune managed devices…", "info")
    managed = []
    for item in client.get_all(MANAGED_DEVICES_ENDPOINT):
        # no id means nothing in Autopilot can point at it
        if not item.get("id"):
            fncPrintMessage(f"Skipping managed device without an id: {item.get('deviceName')}", "debug")
            continue
        managed.append(ManagedDeviceRecord.from_graph(item))

    fncPrintMessage("Fetching Entra device registrations…", "info")
    directory = [DirectoryDeviceRecord.from_graph(i) for i in client.get_all(DIRECTORY_DEVICES_ENDPOINT)]

    fncPrintMessage(
        f"Autopilot={len(autopilot)} Intune={len(managed)} Entra={len(directory)}", "debug"
    )
    return autopilot, managed, directory


def _report_path(args, cfg: dict) -> str:
    path = getattr(args, "html", None) or (cfg.get("reports") or {}).get("device_inventory_path")
    if not path:
        path = str(pathlib.Path.home() / ".fleethound" / "reports" / "DeviceInventory.html")
    return path if path.endswith(".html") else path + ".html"


# ================================================================
# Function: run
# Purpose : Entry point for module execution
# ================================================================
def run(client, args, cfg: dict) -> Dict[str, Any]:
    run_id = fncNewRunId("inventory")
    fncPrintMessage(f"Running Device Inventory (run={run_id})", "info")

    autopilot, managed, directory = fncFetchSources(client)

    fncPrintMessage("Resolving primary users for enrolled devices…", "info")
    rows = fncReconcileDevices(autopilot, managed, directory, fncMakeUserLookup(client))

    summary = fncInventorySummary(rows)
    print(fncToTable(
        [{"Field": k, "Value": v} for k, v in summary.items()],
        headers=["Field", "Value"]
    ))
    if summary["User Lookups Failed"]:
        fncPrintMessage(
            f"{summary['User Lookups Failed']} primary user lookup(s) failed; those rows show no user.",
            "warn",
        )

    cells: List[Dict[str, str]] = [fncRowCells(r) for r in rows]
    preview = TableState.initial(cells).with_filters(status=STATUS_NOT_ENROLLED)
    if preview.visible_count:
        fncPrintMessage("Autopilot devices not enrolled in Intune (top 25)", "info")
        print(fncToTable(
            preview.visible_rows(),
            headers=["serial", "groupTag", "model", "manufacturer", "entraName"],
            max_rows=25
        ))

    report_path = _report_path(args, cfg)
    html_doc = fncWriteDeviceReport(report_path, rows)

    # Same CSV the report's Export button gives with no filters applied
    csv_path = pathlib.Path(report_path).with_suffix(".csv")
    csv_path.write_text(TableState.initial(cells).export_csv(), encoding="utf-8")
    fncPrintMessage(f"Saved CSV → {csv_path}", "success")

    fncPrintMessage("Device Inventory module complete.", "success")
    return {
        "provider": "intune",
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": summary,
        "devices": cells,
        "_html": html_doc,
    }
