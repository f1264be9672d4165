# ================================================================
# File     : core/reconcile.py
# Purpose  : Join Autopilot, Intune and Entra device records into
#            one ReconciledRow per Autopilot device.
# Notes    : Left outer join anchored on Autopilot. Intune's Entra
#            device id wins over the Autopilot copy, which can be
#            stale after a re-enrolment.
# ================================================================

from typing import Callable, Dict, Iterable, List, Optional

from core.models import (
    DeviceRecord,
    ManagedDeviceRecord,
    DirectoryDeviceRecord,
    PrimaryUser,
    ReconciledRow,
)
from core.utils import fncPrintMessage

UserLookup = Callable[[str], List[PrimaryUser]]


# ================================================================
# Function: fncIndexManagedDevices
# Purpose : Index Intune devices by their Intune id
# ================================================================
def fncIndexManagedDevices(managed: Iterable[ManagedDeviceRecord]) -> Dict[str, ManagedDeviceRecord]:
    return {m.id: m for m in managed}


# ================================================================
# Function: fncIndexDirectoryDevices
# Purpose : Index Entra devices by lower-cased deviceId
# Notes   : Records without a deviceId cannot be joined and are skipped
# ================================================================
def fncIndexDirectoryDevices(directory: Iterable[DirectoryDeviceRecord]) -> Dict[str, DirectoryDeviceRecord]:
    index: Dict[str, DirectoryDeviceRecord] = {}
    for d in directory:
        if d.device_id:
            index[d.device_id.lower()] = d
    return index


# ================================================================
# Function: fncResolveJoinKey
# Purpose : Pick the Entra device id used for the directory lookup
# Notes   : Intune's value takes precedence; Autopilot's is the fallback
# ================================================================
def fncResolveJoinKey(device: DeviceRecord, match: Optional[ManagedDeviceRecord]) -> str:
    if match is not None and match.azure_ad_device_id:
        return match.azure_ad_device_id.lower()
    return (device.azure_ad_device_id or "").lower()


def _display_device_id(device: DeviceRecord, match: Optional[ManagedDeviceRecord],
                       entra: Optional[DirectoryDeviceRecord]) -> str:
    """Same precedence as the join key, but keeps the source casing."""
    if entra is not None and entra.device_id:
        return entra.device_id
    if match is not None and match.azure_ad_device_id:
        return match.azure_ad_device_id
    return device.azure_ad_device_id or ""


def _first_user(lookup: UserLookup, intune_id: str):
    """Returns (user, failed). A failed lookup only degrades its own row."""
    try:
        users = lookup(intune_id)
    except Exception as ex:
        fncPrintMessage(f"Primary user lookup failed for {intune_id}: {ex}", "warn")
        return None, True
    return (users[0] if users else None), False


# ================================================================
# Function: fncReconcileDevices
# Purpose : Produce exactly one ReconciledRow per Autopilot device
# Notes   : user_lookup is called once per Intune match, sequentially
# ================================================================
def fncReconcileDevices(
    devices: Iterable[DeviceRecord],
    managed: Iterable[ManagedDeviceRecord],
    directory: Iterable[DirectoryDeviceRecord],
    user_lookup: Optional[UserLookup] = None,
) -> List[ReconciledRow]:
    managed_index = fncIndexManagedDevices(managed)
    directory_index = fncIndexDirectoryDevices(directory)

    rows: List[ReconciledRow] = []
    for device in devices:
        match = managed_index.get(device.managed_device_id) if device.managed_device_id else None

        join_key = fncResolveJoinKey(device, match)
        entra = directory_index.get(join_key) if join_key else None

        user, failed = None, False
        if match is not None and user_lookup is not None:
            user, failed = _first_user(user_lookup, match.id)

        rows.append(ReconciledRow(
            enrolled=match is not None,
            intune_name=(match.device_name or "") if match else "",
            entra_name=(entra.display_name or "") if entra else "",
            entra_device_id=_display_device_id(device, match, entra),
            entra_object_id=(entra.object_id or "") if entra else "",
            serial_number=device.serial_number or "",
            upn=(user.user_principal_name or "") if user else "",
            user_display_name=(user.display_name or "") if user else "",
            group_tag=device.group_tag or "",
            model=device.model or "",
            manufacturer=device.manufacturer or "",
            autopilot_id=device.id,
            intune_id=match.id if match else "",
            user_lookup_failed=failed,
        ))

    fncPrintMessage(f"Reconciled {len(rows)} Autopilot device(s)", "debug")
    return rows


# ================================================================
# Function: fncMakeUserLookup
# Purpose : Primary-user lookup bound to a GraphClient
# ================================================================
def fncMakeUserLookup(client) -> UserLookup:
    def lookup(intune_id: str) -> List[PrimaryUser]:
        items = client.get_all(f"deviceManagement/managedDevices/{intune_id}/users")
        return [PrimaryUser.from_graph(i) for i in items]
    return lookup
