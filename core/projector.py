# ================================================================
# File     : core/projector.py
# Purpose  : Map ReconciledRow -> display row (escaped HTML text,
#            admin-centre deep links) and -> plain cell text.
# Notes    : Escaping happens here, before the renderer splices values
#            into element bodies, attributes and tooltips.
# ================================================================

import html
from dataclasses import dataclass
from typing import Any, Dict

from core.models import ReconciledRow

INTUNE_DEVICE_URL = (
    "https://intune.microsoft.com/#view/Microsoft_Intune_Devices/"
    "DeviceSettingsMenuBlade/~/overview/mdmDeviceId/{intune_id}"
)
ENTRA_DEVICE_URL = (
    "https://entra.microsoft.com/#view/Microsoft_AAD_Devices/"
    "DeviceDetailsMenuBlade/~/Properties/objectId/{object_id}/deviceId/{device_id}"
)


@dataclass(frozen=True)
class ProjectedRow:
    status: str
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
    intune_url: str
    entra_url: str
    user_lookup_failed: bool


def _esc(v: Any) -> str:
    return "" if v is None else html.escape(str(v), quote=True)


# ================================================================
# Function: fncProjectRow
# Purpose : Escaped, display-ready view of one reconciled row
# Notes   : Links are empty when the underlying id is absent
# ================================================================
def fncProjectRow(row: ReconciledRow) -> ProjectedRow:
    intune_id = _esc(row.intune_id)
    object_id = _esc(row.entra_object_id)
    device_id = _esc(row.entra_device_id)

    intune_url = INTUNE_DEVICE_URL.format(intune_id=intune_id) if intune_id else ""
    entra_url = ENTRA_DEVICE_URL.format(object_id=object_id, device_id=device_id) if object_id else ""

    return ProjectedRow(
        status=_esc(row.status),
        intune_name=_esc(row.intune_name),
        entra_name=_esc(row.entra_name),
        entra_device_id=device_id,
        entra_object_id=object_id,
        serial_number=_esc(row.serial_number),
        upn=_esc(row.upn),
        user_display_name=_esc(row.user_display_name),
        group_tag=_esc(row.group_tag),
        model=_esc(row.model),
        manufacturer=_esc(row.manufacturer),
        autopilot_id=_esc(row.autopilot_id),
        intune_id=intune_id,
        intune_url=intune_url,
        entra_url=entra_url,
        user_lookup_failed=row.user_lookup_failed,
    )


# ================================================================
# Function: fncRowCells
# Purpose : Plain (unescaped) text per column key
# Notes   : Feeds the table model, CSV export and console preview
# ================================================================
def fncRowCells(row: ReconciledRow) -> Dict[str, str]:
    return {
        "enrolled": row.status,
        "intuneName": row.intune_name or "",
        "entraName": row.entra_name or "",
        "entraDeviceId": row.entra_device_id or "",
        "entraObjectId": row.entra_object_id or "",
        "serial": row.serial_number or "",
        "upn": row.upn or "",
        "userDisplayName": row.user_display_name or "",
        "groupTag": row.group_tag or "",
        "model": row.model or "",
        "manufacturer": row.manufacturer or "",
        "autopilotId": row.autopilot_id or "",
        "intuneId": row.intune_id or "",
    }
