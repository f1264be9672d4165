# ================================================================
# File     : modules/intune/registry_remediation.py
# Purpose  : Generate an Intune Remediations script pair
#            (Detect-<name>.ps1 / Remediate-<name>.ps1) that enforces
#            one registry value.
# Notes    : Values come from CLI flags, or prompts for anything not
#            given. Scripts are written UTF-8 with BOM.
#            Detection exit 1 = not compliant, which triggers remediation.
# ================================================================

import re
import pathlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple, Union

from core.utils import fncPrintMessage, fncPrompt, fncEnsureFolder, fncToTable

NEEDS_GRAPH = False

HIVES = {"HKLM": "HKLM:", "HKCU": "HKCU:"}
_HIVE_PREFIX_RE = re.compile(r"^(HKEY_LOCAL_MACHINE|HKEY_CURRENT_USER|HKLM|HKCU):?(\\|$)", re.IGNORECASE)
VALUE_TYPES = ("String", "ExpandString", "DWord", "QWord", "MultiString", "Binary")


class RegistryInputError(ValueError):
    pass


@dataclass(frozen=True)
class RegistrySetting:
    hive: str
    key_path: str
    value_name: str
    value_type: str
    value: Union[str, int, Tuple[str, ...], bytes]

    @property
    def ps_path(self) -> str:
        return f"{HIVES[self.hive]}\\{self.key_path}"


# ---------- input parsing ----------

def _normalise_key(key_path: str) -> str:
    key = (key_path or "").strip().replace("/", "\\")
    key = _HIVE_PREFIX_RE.sub("", key, count=1)
    key = key.strip("\\")
    if not key:
        raise RegistryInputError("Registry key path is empty")
    return key


def _parse_int(raw: str, bits: int, label: str) -> int:
    text = str(raw).strip().lower()
    try:
        value = int(text, 16) if text.startswith("0x") else int(text)
    except ValueError:
        raise RegistryInputError(f"{label} data must be an integer, got '{raw}'")
    if not 0 <= value < 2 ** bits:
        raise RegistryInputError(f"{label} data must be between 0 and {2 ** bits - 1}")
    return value


def _parse_binary(raw: str) -> bytes:
    parts = [p for p in re.split(r"[\s,]+", str(raw).strip()) if p]
    if not parts:
        raise RegistryInputError("Binary data is empty")
    try:
        return bytes(int(p[2:] if p.lower().startswith("0x") else p, 16) for p in parts)
    except ValueError:
        raise RegistryInputError(f"Binary data must be hex bytes, got '{raw}'")


# ================================================================
# Function: fncParseRegistryInput
# Purpose : Validate raw user input into a RegistrySetting
# ================================================================
def fncParseRegistryInput(hive: str, key_path: str, value_name: str, value_type: str, value_data: str) -> RegistrySetting:
    hive_key = (hive or "").strip().upper().rstrip(":")
    hive_key = {"HKEY_LOCAL_MACHINE": "HKLM", "HKEY_CURRENT_USER": "HKCU"}.get(hive_key, hive_key)
    if hive_key not in HIVES:
        raise RegistryInputError(f"Hive must be one of {', '.join(HIVES)}, got '{hive}'")

    matches = [t for t in VALUE_TYPES if t.lower() == (value_type or "").strip().lower()]
    if not matches:
        raise RegistryInputError(f"Value type must be one of {', '.join(VALUE_TYPES)}, got '{value_type}'")
    vtype = matches[0]

    name = (value_name or "").strip()
    if not name and vtype != "String":
        raise RegistryInputError("The default (unnamed) value can only be a String")

    if vtype == "DWord":
        value: Any = _parse_int(value_data, 32, "DWord")
    elif vtype == "QWord":
        value = _parse_int(value_data, 64, "QWord")
    elif vtype == "MultiString":
        value = tuple(s for s in str(value_data or "").split(";") if s != "")
    elif vtype == "Binary":
        value = _parse_binary(value_data)
    else:
        value = "" if value_data is None else str(value_data)

    return RegistrySetting(hive_key, _normalise_key(key_path), name, vtype, value)


# ---------- PowerShell rendering ----------

def _ps_quote(text: str) -> str:
    return "'" + str(text).replace("'", "''") + "'"


def _ps_literal(setting: RegistrySetting) -> str:
    """Expected value as a PowerShell expression."""
    v = setting.value
    if setting.value_type == "DWord":
        return f"0x{v:08X}"
    if setting.value_type == "QWord":
        return f"0x{v:016X}"
    if setting.value_type == "MultiString":
        return "@(" + ", ".join(_ps_quote(s) for s in v) + ")"
    if setting.value_type == "Binary":
        return "[byte[]](" + ",".join(f"0x{b:02X}" for b in v) + ")"
    return _ps_quote(v)


def _ps_compare(setting: RegistrySetting) -> str:
    if setting.value_type in ("MultiString", "Binary"):
        return "((@($current) -join '|') -ceq (@($Expected) -join '|'))"
    return "($current -ceq $Expected)"


def _ps_name(setting: RegistrySetting) -> str:
    return _ps_quote(setting.value_name or "(default)")


def _banner(kind: str, setting: RegistrySetting, name: str) -> str:
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    context = "user" if setting.hive == "HKCU" else "system"
    return (
        f"# {kind}-{name}.ps1\n"
        f"# Generated by FleetHound on {ts}\n"
        f"# Target : {setting.ps_path} -> {setting.value_name or '(default)'} [{setting.value_type}]\n"
        f"# Run as : {context} context\n"
    )


# ================================================================
# Function: fncBuildDetectionScript
# Purpose : Exit 0 when the value exists and matches, else exit 1
# ================================================================
def fncBuildDetectionScript(setting: RegistrySetting, name: str) -> str:
    return f"""{_banner("Detect", setting, name)}
$Path     = {_ps_quote(setting.ps_path)}
$Name     = {_ps_name(setting)}
$Expected = {_ps_literal(setting)}

try {{
    $current = Get-ItemPropertyValue -Path $Path -Name $Name -ErrorAction Stop
}} catch {{
    Write-Output "Not compliant: $($Name) not found under $($Path)"
    exit 1
}}

if {_ps_compare(setting)} {{
    Write-Output "Compliant"
    exit 0
}}

Write-Output "Not compliant: $($Name) = $($current)"
exit 1
"""


# ================================================================
# Function: fncBuildRemediationScript
# Purpose : Create the key if needed and set the value
# ================================================================
def fncBuildRemediationScript(setting: RegistrySetting, name: str) -> str:
    if setting.value_name:
        setter = "New-ItemProperty -Path $Path -Name $Name -PropertyType $Type -Value $Value -Force -ErrorAction Stop | Out-Null"
    else:
        setter = "Set-Item -Path $Path -Value $Value -Force -ErrorAction Stop"
    return f"""{_banner("Remediate", setting, name)}
$Path  = {_ps_quote(setting.ps_path)}
$Name  = {_ps_name(setting)}
$Type  = {_ps_quote(setting.value_type)}
$Value = {_ps_literal(setting)}

try {{
    if (-not (Test-Path -Path $Path)) {{
        New-Item -Path $Path -Force -ErrorAction Stop | Out-Null
    }}
    {setter}
    Write-Output "Set $($Name) under $($Path)"
    exit 0
}} catch {{
    Write-Error "Failed to set $($Name) under $($Path): $_"
    exit 1
}}
"""


def _safe_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_-]+", "-", (name or "").strip()).strip("-")
    if not cleaned:
        raise RegistryInputError("Script name is empty after removing unsafe characters")
    return cleaned


# ================================================================
# Function: fncWriteScriptPair
# Purpose : Write Detect-/Remediate- scripts into out_dir
# ================================================================
def fncWriteScriptPair(setting: RegistrySetting, name: str, out_dir: str) -> Tuple[pathlib.Path, pathlib.Path]:
    name = _safe_name(name)
    folder = fncEnsureFolder(out_dir)

    detect = folder / f"Detect-{name}.ps1"
    remediate = folder / f"Remediate-{name}.ps1"
    detect.write_text(fncBuildDetectionScript(setting, name), encoding="utf-8-sig")
    remediate.write_text(fncBuildRemediationScript(setting, name), encoding="utf-8-sig")

    fncPrintMessage(f"Saved detection script → {detect}", "success")
    fncPrintMessage(f"Saved remediation script → {remediate}", "success")
    return detect, remediate


def _arg_or_prompt(args, attr: str, question: str, default: str = None) -> str:
    val = getattr(args, attr, None)
    if val is not None:
        return val
    return fncPrompt(question, default)


# ================================================================
# Function: run
# Purpose : Entry point for module execution
# ================================================================
def run(client, args, cfg: dict) -> Dict[str, Any]:
    fncPrintMessage("Registry remediation script generator", "info")

    hive = _arg_or_prompt(args, "hive", "Hive (HKLM/HKCU)", "HKLM")
    key_path = _arg_or_prompt(args, "key", "Key path (e.g. SOFTWARE\\Policies\\Contoso)")
    value_name = _arg_or_prompt(args, "value_name", "Value name (blank for default value)", "")
    value_type = _arg_or_prompt(args, "value_type", f"Value type ({'/'.join(VALUE_TYPES)})", "DWord")
    value_data = _arg_or_prompt(args, "value_data", "Value data (MultiString: a;b, Binary: 01,ff)")

    setting = fncParseRegistryInput(hive, key_path, value_name, value_type, value_data)

    name = _arg_or_prompt(args, "name", "Script name", value_name or "RegistryValue")
    reports_root = (cfg.get("reports") or {}).get("root") or str(pathlib.Path.home() / ".fleethound" / "reports")
    out_dir = _arg_or_prompt(args, "out", "Output folder", str(pathlib.Path(reports_root) / "remediations"))

    detect, remediate = fncWriteScriptPair(setting, name, out_dir)

    rows: List[Dict[str, Any]] = [{
        "Path": setting.ps_path,
        "Value": setting.value_name or "(default)",
        "Type": setting.value_type,
        "Data": _ps_literal(setting),
    }]
    print(fncToTable(rows))

    return {
        "provider": "intune",
        "summary": {"Detection script": str(detect), "Remediation script": str(remediate)},
        "settings": rows,
    }
