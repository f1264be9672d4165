# ================================================================
# File     : core/models.py
# Purpose  : Fixed-field records for the device inventory
#            (Autopilot, Intune, Entra) and the reconciled row.
# Notes    : from_graph() is the only place raw Graph dicts are read;
#            everything downstream works on these dataclasses.
# ================================================================

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

EMPTY_GUID = "00000000-0000-0000-0000-000000000000"

# Fixed 13-column schema: (stable key, header label)
COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("enrolled", "Intune Enrolled"),
    ("intuneName", "Intune Device Name"),
    ("entraName", "Entra Device Name"),
    ("entraDeviceId", "Entra Device ID"),
    ("entraObjectId", "Entra Object ID"),
    ("serial", "Serial Number"),
    ("upn", "Primary User UPN"),
    ("userDisplayName", "Primary User Name"),
    ("groupTag", "Group Tag"),
    ("model", "Model"),
    ("manufacturer", "Manufacturer"),
    ("autopilotId", "Autopilot ID"),
    ("intuneId", "Intune Device ID"),
)
COLUMN_KEYS: Tuple[str, ...] = tuple(k for k, _ in COLUMNS)

STATUS_ENROLLED = "Enrolled"
STATUS_NOT_ENROLLED = "Not Enrolled"


def _opt_id(value: Any) -> Optional[str]:
    """Blank and all-zero GUIDs mean 'not linked'."""
    if value is None:
        return None
    s = str(value).strip()
    if not s or s == EMPTY_GUID:
        return None
    return s


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class DeviceRecord:
    """Autopilot device identity (windowsAutopilotDeviceIdentities). id may be blank."""
    id: str
    serial_number: Optional[str] = None
    group_tag: Optional[str] = None
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    managed_device_id: Optional[str] = None
    azure_ad_device_id: Optional[str] = None

    @classmethod
    def from_graph(cls, item: Dict[str, Any]) -> "DeviceRecord":
        return cls(
            id=str(item.get("id") or ""),
            serial_number=_opt_str(item.get("serialNumber")),
            group_tag=_opt_str(item.get("groupTag")),
            model=_opt_str(item.get("model")),
            manufacturer=_opt_str(item.get("manufacturer")),
            managed_device_id=_opt_id(item.get("managedDeviceId")),
            azure_ad_device_id=_opt_id(item.get("azureActiveDirectoryDeviceId")),
        )


@dataclass(frozen=True)
class ManagedDeviceRecord:
    """Intune managed device."""
    id: str
    device_name: Optional[str] = None
    azure_ad_device_id: Optional[str] = None

    @classmethod
    def from_graph(cls, item: Dict[str, Any]) -> "ManagedDeviceRecord":
        if not item.get("id"):
            raise ValueError("Managed device without an id")
        return cls(
            id=str(item["id"]),
            device_name=_opt_str(item.get("deviceName")),
            azure_ad_device_id=_opt_id(item.get("azureADDeviceId")),
        )


@dataclass(frozen=True)
class PrimaryUser:
    user_principal_name: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def from_graph(cls, item: Dict[str, Any]) -> "PrimaryUser":
        return cls(
            user_principal_name=_opt_str(item.get("userPrincipalName")),
            display_name=_opt_str(item.get("displayName")),
        )


@dataclass(frozen=True)
class DirectoryDeviceRecord:
    """Entra device registration. device_id is the join key, id the object id."""
    device_id: Optional[str]
    display_name: Optional[str] = None
    object_id: Optional[str] = None

    @classmethod
    def from_graph(cls, item: Dict[str, Any]) -> "DirectoryDeviceRecord":
        return cls(
            device_id=_opt_id(item.get("deviceId")),
            display_name=_opt_str(item.get("displayName")),
            object_id=_opt_id(item.get("id")),
        )


@dataclass(frozen=True)
class ReconciledRow:
    enrolled: bool
    intune_name: str
    entra_name: str
    entra_device_id: str
    entra_object_id: str
    serial_number: str
    upn: str
    user_display_name: str
    group_tag: str
    model: str
    manufacturer: str
    autopilot_id: str
    intune_id: str
    user_lookup_failed: bool = False

    @property
    def status(self) -> str:
        return STATUS_ENROLLED if self.enrolled else STATUS_NOT_ENROLLED
