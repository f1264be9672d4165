#!/usr/bin/env python3
# ================================================================
# Tool     : FleetHound
# Purpose  : Intune / Autopilot / Entra device fleet reporting and
#            small admin helpers (remediations, NSG templates)
# Notes    : "Every device accounted for."
# ================================================================

import argparse
import pathlib

from core.config import fncInitConfig, fncApplyCliOverrides, fncIsDebug
from core.utils import fncPrintMessage, fncSetDebug, fncDisplayBanner, fncBlurb
from core.module_loader import fncRunModule, fncRunAllModules
from core.exports import fncExportList, fncExportSingleModule

PROVIDERS = ["intune", "entra", "azure"]


# ================================================================
# Function: fncParseArguments
# Purpose  : Define and parse command-line arguments for FleetHound
# Notes    : Module options are shared; each module reads what it needs
# ================================================================
def fncParseArguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="FleetHound",
        description="FleetHound - Autopilot, Intune and Entra fleet reporting"
    )

    parser.add_argument(
        "provider",
        choices=PROVIDERS,
        help="Which module family to use"
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--scan",
        help="Name of module to execute (e.g., device_inventory, auth_methods)"
    )
    group.add_argument(
        "--run-all",
        action="store_true",
        help="Run all available modules for the selected provider"
    )

    parser.add_argument("--skip", default="", help="Comma-separated module names to skip with --run-all")
    parser.add_argument(
        "--export",
        nargs="*",
        metavar="FMT[,FMT...]",
        help="Export formats: html, csv, json. Example: --export html,csv json",
        default=None
    )
    parser.add_argument("--debug", action="store_true", default=None, help="Enable verbose debug output")
    parser.add_argument("--auth", choices=["azcli", "msal"], help="Graph token source (default from config)")
    parser.add_argument("--config", help="Path to an alternative config.json")

    reports = parser.add_argument_group("report options")
    reports.add_argument("--html", help="Where to write the module's HTML report")
    reports.add_argument("--group", help="Entra group id or display name (auth_methods)")
    reports.add_argument("--stale-days", type=int, help="Days since last method use before a user is stale")

    registry = parser.add_argument_group("registry remediation options")
    registry.add_argument("--hive", help="HKLM or HKCU")
    registry.add_argument("--key", help="Key path under the hive")
    registry.add_argument("--value-name", help="Value name ('' for the default value)")
    registry.add_argument("--value-type", help="String, ExpandString, DWord, QWord, MultiString or Binary")
    registry.add_argument("--value-data", help="Value data (MultiString: a;b, Binary: 01,ff)")
    registry.add_argument("--name", help="Script pair name (Detect-<name>.ps1 / Remediate-<name>.ps1)")
    registry.add_argument("--out", help="Folder for the generated scripts")

    azure = parser.add_argument_group("NSG deployment options")
    azure.add_argument("--resource-group", help="Limit NSG listing to one resource group")
    azure.add_argument("--templates", help="Folder of ARM *.json templates")
    azure.add_argument("--nsgs", help="NSG selection, e.g. 1,3-5 or all")
    azure.add_argument("--pick", help="Template selection, e.g. 2 or all")
    azure.add_argument("--what-if", action="store_true", help="Preview with 'az deployment group what-if'")

    return parser.parse_args(argv)


# ================================================================
# Function: fncClientFactory
# Purpose  : Lazily build one GraphClient for the whole run
# Notes    : Modules with NEEDS_GRAPH = False never trigger it
# ================================================================
def fncClientFactory(cfg: dict):
    cache = {}

    def factory():
        if "client" not in cache:
            from handlers.graph.client import fncBuildGraphClient
            cache["client"] = fncBuildGraphClient(cfg.get("graph") or {})
        return cache["client"]

    return factory


# ================================================================
# Function: main
# Purpose  : Main entry point for FleetHound execution
# ================================================================
def main(argv=None):
    args = fncParseArguments(argv)

    cfg = fncInitConfig(args.config)
    cfg = fncApplyCliOverrides(cfg, args)
    fncSetDebug(fncIsDebug(cfg))

    fncDisplayBanner("v1.0")
    fncBlurb(args.provider)
    fncPrintMessage("Debug output enabled.", "debug")

    client_factory = fncClientFactory(cfg)
    export_formats = fncExportList(args.export)
    reports_root = pathlib.Path((cfg.get("reports") or {}).get("root") or pathlib.Path.home() / ".fleethound" / "reports")

    if args.run_all:
        skip_list = [m.strip() for m in args.skip.split(",") if m.strip()]
        results = fncRunAllModules(args.provider, client_factory, args, cfg, skip_list=skip_list)
        if export_formats:
            for name, result in results.items():
                if isinstance(result, dict) and "error" not in result and not result.get("skipped"):
                    fncExportSingleModule(name, result, export_formats, reports_root)
        failed = [n for n, r in results.items() if isinstance(r, dict) and "error" in r]
    else:
        fncPrintMessage(f"Running module: {args.scan}", "info")
        result = fncRunModule(args.provider, args.scan, client_factory, args, cfg)
        if export_formats and isinstance(result, dict) and "error" not in result:
            fncExportSingleModule(args.scan, result, export_formats, reports_root)
        failed = [args.scan] if not isinstance(result, dict) or "error" in result else []

    if failed:
        fncPrintMessage(f"Finished with failures: {', '.join(failed)}", "error")
        return 1
    fncPrintMessage("Run complete. Every device accounted for.", "success")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
