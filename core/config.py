# ================================================================
# File     : config.py
# Purpose  : Configuration management for FleetHound
# Notes    : Handles initial creation, loading, and saving of config
# ================================================================

import pathlib
from core.utils import fncPrintMessage, fncEnsureFolder, fncReadJSON, fncWriteJSON, fncLoadEnv

FLEETHOUND_HOME = pathlib.Path.home() / ".fleethound"


# ================================================================
# Function: fncDefaultConfig
# Purpose : Return a default configuration dictionary
# Notes   : Called when config file does not exist
# ================================================================
def fncDefaultConfig() -> dict:
    return {
        "version": "1.0",
        "fleethound_home": str(FLEETHOUND_HOME),
        "debug": False,
        "graph": {
            "auth": "azcli",
            "tenant_id": "",
            "client_id": "",
            "client_secret": "",
            "authority": "https://login.microsoftonline.com"
        },
        "reports": {
            "root": str(FLEETHOUND_HOME / "reports"),
            "device_inventory_path": str(FLEETHOUND_HOME / "reports" / "DeviceInventory.html"),
            "stale_days": 90
        },
        "azure": {
            "templates_dir": str(FLEETHOUND_HOME / "templates"),
            "resource_group": ""
        }
    }


# ================================================================
# Function: fncInitConfig
# Purpose : Create or load configuration file
# Notes   : Ensures base folder exists; returns full config dict
# ================================================================
def fncInitConfig(config_path: str = None) -> dict:
    path = pathlib.Path(config_path or (FLEETHOUND_HOME / "config.json"))

    fncEnsureFolder(path.parent)

    if not path.exists():
        fncPrintMessage(f"No config found at {path}. Creating default...", "warn")
        cfg = fncDefaultConfig()
        fncWriteJSON(str(path), cfg)
        return fncApplyEnvOverrides(cfg)
    return fncLoadConfig(str(path))


# ================================================================
# Function: fncLoadConfig
# Purpose : Load configuration file and apply environment overrides
# Notes   : Missing sections are filled from the defaults
# ================================================================
def fncLoadConfig(config_path: str) -> dict:
    cfg = fncDefaultConfig()
    stored = fncReadJSON(config_path)

    for key, value in stored.items():
        if isinstance(value, dict) and isinstance(cfg.get(key), dict):
            cfg[key].update(value)
        else:
            cfg[key] = value

    fncPrintMessage(f"Loaded configuration from {config_path}", "debug")
    return fncApplyEnvOverrides(cfg)


# ================================================================
# Function: fncApplyEnvOverrides
# Purpose : Let FLEETHOUND_* environment variables win over the file
# Notes   : Useful in CI/CD or a container
# ================================================================
def fncApplyEnvOverrides(cfg: dict) -> dict:
    graph = cfg.setdefault("graph", {})
    graph.update({
        "auth": fncLoadEnv("FLEETHOUND_AUTH", graph.get("auth")),
        "tenant_id": fncLoadEnv("FLEETHOUND_TENANT_ID", graph.get("tenant_id")),
        "client_id": fncLoadEnv("FLEETHOUND_CLIENT_ID", graph.get("client_id")),
        "client_secret": fncLoadEnv("FLEETHOUND_CLIENT_SECRET", graph.get("client_secret")),
    })
    return cfg


# ================================================================
# Function: fncGetSection
# Purpose : Return one config block (graph, reports, azure)
# ================================================================
def fncGetSection(cfg: dict, section: str) -> dict:
    block = cfg.get(section)
    if not isinstance(block, dict):
        fncPrintMessage(f"Config section not found: {section}", "warn")
        return {}
    return block


# ================================================================
# Function: fncApplyCliOverrides
# Purpose : Apply command-line flags to the loaded config
# ================================================================
def fncApplyCliOverrides(cfg: dict, args) -> dict:
    if getattr(args, "debug", None) is not None:
        cfg["debug"] = bool(args.debug)
    if getattr(args, "auth", None):
        cfg.setdefault("graph", {})["auth"] = args.auth
    return cfg


# ================================================================
# Function: fncIsDebug
# Purpose : Return whether debug mode is enabled in config
# ================================================================
def fncIsDebug(cfg: dict) -> bool:
    return bool(cfg.get("debug", False))
