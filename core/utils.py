# ================================================================
# File     : utils.py
# Purpose  : Common helpers for FleetHound (console, files, data)
# Notes    : British English; every tool prints through fncPrintMessage
# ================================================================

import os
import json
import csv
import uuid
import random
import pathlib
from typing import Any, Dict, Iterable, List, Optional

from colorama import Fore, Style, init as _colorama_init
from tabulate import tabulate

_colorama_init(autoreset=True)

DEBUG_ENABLED = False


# ================================================================
# Function: fncSetDebug
# Purpose : Globally enable/disable debug output
# Notes   : Called from main after parsing --debug
# ================================================================
def fncSetDebug(enabled: bool) -> None:
    global DEBUG_ENABLED
    DEBUG_ENABLED = bool(enabled)


# ================================================================
# Function: fncPrintMessage
# Purpose : Standardised console output with levels and colours
# Notes   : Levels: info, warn, error, success, debug
# ================================================================
def fncPrintMessage(message: str, level: str = "info") -> None:
    if level == "debug" and not DEBUG_ENABLED:
        return
    colours = {
        "info": Fore.CYAN,
        "warn": Fore.YELLOW,
        "error": Fore.RED,
        "success": Fore.GREEN,
        "debug": Fore.MAGENTA
    }
    prefix = {
        "info": "[•]",
        "warn": "[!]",
        "error": "[✗]",
        "success": "[✓]",
        "debug": "[∆]"
    }
    colour = colours.get(level, "")
    mark = prefix.get(level, "[ ]")
    print(f"{colour}{mark} {message}{Style.RESET_ALL}")


# ================================================================
# Function: fncDisplayBanner
# Purpose : Display the FleetHound ASCII banner
# ================================================================
def fncDisplayBanner(version: str = "v1.0"):
    banner_lines = [
        " ___ _         _   _  _                 _ ",
        "| __| |___ ___| |_| || |___ _  _ _ _  __| |",
        "| _|| / -_) -_)  _| __ / _ \\ || | ' \\/ _` |",
        "|_| |_\\___\\___|\\__|_||_\\___/\\_,_|_||_\\__,_|",
    ]

    print()
    for i, line in enumerate(banner_lines):
        # top half cyan, bottom half green
        colour = Fore.CYAN if i < len(banner_lines) // 2 else Fore.GREEN
        print(f"{Style.BRIGHT}{colour}{line}{Style.RESET_ALL}")

    print(f"{Fore.CYAN}\nFleetHound {version} — 'Every device accounted for.'{Style.RESET_ALL}\n")


# ================================================================
# Function: fncBlurb
# Purpose : Display a short blurb describing the current action
# ================================================================
def fncBlurb(action: str, flavour: str = None):
    blurbs = {
        "intune": [
            "Rounding up Autopilot hashes and Intune check-ins…",
            "Counting the fleet, one serial at a time…",
        ],
        "entra": [
            "Sniffing out who still signs in with an SMS code…",
            "Walking the directory for registered methods…",
        ],
        "azure": [
            "Lining up templates against Network Security Groups…",
            "Warming up the Azure CLI…",
        ],
        "generic": [
            "Preparing the kennel…",
        ]
    }

    flavour_text = flavour or random.choice(blurbs.get(action, blurbs["generic"]))
    fncPrintMessage(flavour_text, "info")


# ================================================================
# Function: fncEnsureFolder
# Purpose : Create a folder if it does not exist
# Notes   : Returns pathlib.Path object
# ================================================================
def fncEnsureFolder(path: str) -> pathlib.Path:
    p = pathlib.Path(path).expanduser().resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


# ================================================================
# Function: fncLoadEnv
# Purpose : Read environment variable with default
# Notes   : Strips quotes; returns default if unset
# ================================================================
def fncLoadEnv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name, default)
    if isinstance(val, str):
        return val.strip().strip('"').strip("'")
    return val


# ================================================================
# Function: fncReadJSON
# Purpose : Load JSON from file safely
# Notes   : Returns {} on failure when safe=True
# ================================================================
def fncReadJSON(path: str, safe: bool = True) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as ex:
        if safe:
            fncPrintMessage(f"Could not read JSON '{path}': {ex}", "warn")
            return {}
        raise


# ================================================================
# Function: fncWriteJSON
# Purpose : Write data to JSON with nice formatting
# Notes   : Ensures parent folder exists; UTF-8; 2-space indent
# ================================================================
def fncWriteJSON(path: str, data: Dict[str, Any]) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    fncPrintMessage(f"Saved JSON → {p}", "success")


# ================================================================
# Function: fncExportCSV
# Purpose : Save list[dict] or list[list] to CSV
# Notes   : Dict rows keep first-seen key order for headers
# ================================================================
def fncExportCSV(path: str, rows: Iterable[Any]) -> None:
    rows = list(rows)
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if not rows:
        with open(p, "w", newline="", encoding="utf-8"):
            pass
        fncPrintMessage(f"Created empty CSV → {p}", "warn")
        return

    if isinstance(rows[0], dict):
        headers: List[str] = []
        for r in rows:
            for k in r.keys():
                if k not in headers:
                    headers.append(k)
        with open(p, "w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=headers)
            w.writeheader()
            for r in rows:
                w.writerow({k: r.get(k, "") for k in headers})
    else:
        with open(p, "w", newline="", encoding="utf-8") as f:
            w = csv.writer(f)
            for r in rows:
                w.writerow(list(r))

    fncPrintMessage(f"Saved CSV → {p}", "success")


# ================================================================
# Function: fncToTable
# Purpose : Render rows as a table string
# Notes   : Supports list[dict] (keys become headers) or list[list]
# ================================================================
def fncToTable(rows: Iterable[Any], headers: Optional[List[str]] = None, max_rows: Optional[int] = None) -> str:
    rows = list(rows)
    if not rows:
        return "(no data)"

    truncated = 0
    if max_rows and len(rows) > max_rows:
        truncated = len(rows) - max_rows
        rows = rows[:max_rows]

    if isinstance(rows[0], dict):
        hdrs = headers or list(rows[0].keys())
        table_rows = [[r.get(h, "") for h in hdrs] for r in rows]
        out = tabulate(table_rows, headers=hdrs, tablefmt="github")
    else:
        out = tabulate(rows, headers=(headers or "firstrow"), tablefmt="github")

    if truncated:
        out += f"\n… {truncated} more row(s)"
    return out


# ================================================================
# Function: fncNewRunId
# Purpose : Generate a short unique run identifier
# Notes   : Useful for correlating console output and exports
# ================================================================
def fncNewRunId(prefix: str = "run") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


# ================================================================
# Function: fncPrompt
# Purpose : Ask for a value, falling back to a default on empty input
# ================================================================
def fncPrompt(question: str, default: Optional[str] = None) -> str:
    suffix = f" [{default}]" if default else ""
    ans = input(f"{question}{suffix}: ").strip()
    return ans or (default or "")


# ================================================================
# Function: fncPromptYesNo
# Purpose : Simple Y/N prompt for interactive flows
# Notes   : Defaults to 'n' if empty input
# ================================================================
def fncPromptYesNo(question: str, default_no: bool = True) -> bool:
    suffix = "[y/N]" if default_no else "[Y/n]"
    ans = input(f"{question} {suffix} ").strip().lower()
    if not ans:
        return not default_no
    return ans in ("y", "yes")


# ================================================================
# Function: fncParseSelection
# Purpose : Turn "1,3-5" / "all" into zero-based indices
# Notes   : 1-based input; out-of-range or malformed parts raise ValueError
# ================================================================
def fncParseSelection(text: str, count: int) -> List[int]:
    text = (text or "").strip().lower()
    if text in ("all", "*"):
        return list(range(count))

    picked: List[int] = []
    for part in text.replace(" ", "").split(","):
        if not part:
            continue
        if "-" in part:
            lo, hi = part.split("-", 1)
            start, end = int(lo), int(hi)
            if start > end:
                start, end = end, start
            numbers = range(start, end + 1)
        else:
            numbers = [int(part)]
        for n in numbers:
            if n < 1 or n > count:
                raise ValueError(f"Selection {n} is out of range 1-{count}")
            if n - 1 not in picked:
                picked.append(n - 1)
    return picked
