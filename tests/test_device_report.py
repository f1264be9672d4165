"""
Tests for the row projector and the inventory HTML document.
"""

import re
from types import SimpleNamespace

import pytest

from core.models import ReconciledRow, COLUMN_KEYS
from core.projector import fncProjectRow, fncRowCells
from core.table_state import ORDER_STORAGE_KEY, VISIBILITY_STORAGE_KEY
from core.device_report import (
    DEVICE_TABLE_JS,
    fncRenderDeviceReport,
    fncInventorySummary,
    fncWriteDeviceReport,
)
from modules.intune import device_inventory as inv


def _row(**overrides):
    base = dict(
        enrolled=True, intune_name="INT-A", entra_name="Laptop-A", entra_device_id="D-1",
        entra_object_id="OBJ-1", serial_number="SER1", upn="a@contoso.com", user_display_name="Alice",
        group_tag="Sales", model="Latitude", manufacturer="Dell", autopilot_id="AP-1", intune_id="M1",
    )
    base.update(overrides)
    return ReconciledRow(**base)


class TestProjector:
    def test_escapes_markup(self):
        p = fncProjectRow(_row(intune_name='<script>alert("x")</script>', group_tag="A&B"))
        assert p.intune_name == "&lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt;"
        assert p.group_tag == "A&amp;B"

    def test_links_built_from_ids(self):
        p = fncProjectRow(_row())
        assert p.intune_url.endswith("/mdmDeviceId/M1")
        assert "/objectId/OBJ-1/deviceId/D-1" in p.entra_url

    def test_links_omitted_when_ids_absent(self):
        p = fncProjectRow(_row(enrolled=False, intune_id="", entra_object_id=""))
        assert p.intune_url == ""
        assert p.entra_url == ""
        assert p.status == "Not Enrolled"

    def test_row_cells_unescaped_and_complete(self):
        cells = fncRowCells(_row(model="A&B"))
        assert set(cells) == set(COLUMN_KEYS)
        assert cells["model"] == "A&B"
        assert cells["enrolled"] == "Enrolled"


class TestDeviceReport:
    def test_zero_rows_is_still_a_document(self):
        doc = fncRenderDeviceReport([])
        assert doc.startswith("<!DOCTYPE html>")
        assert doc.rstrip().endswith("</html>")
        assert '<table id="deviceTable">' in doc
        assert doc.count('<th data-col="') == 13
        assert "<tr><td" not in doc

    def test_rows_render_with_links(self):
        doc = fncRenderDeviceReport([_row()])
        assert 'href="https://intune.microsoft.com/' in doc
        assert 'href="https://entra.microsoft.com/' in doc
        assert doc.count('<td data-col="') == 13

    def test_unlinked_names_are_plain_text(self):
        doc = fncRenderDeviceReport([_row(enrolled=False, intune_id="", intune_name="", entra_object_id="")])
        assert 'href="https://intune.microsoft.com/' not in doc
        assert 'href="https://entra.microsoft.com/' not in doc

    def test_hostile_values_escaped_in_document(self):
        doc = fncRenderDeviceReport([_row(serial_number="<img src=x onerror=alert(1)>")])
        assert "<img src=x" not in doc
        assert "&lt;img src=x onerror=alert(1)&gt;" in doc

    def test_degraded_user_cells_flagged(self):
        doc = fncRenderDeviceReport([_row(upn="", user_display_name="", user_lookup_failed=True)])
        assert 'class="degraded"' in doc

    def test_summary_counts(self):
        rows = [_row(), _row(enrolled=False, intune_id="", entra_object_id="", user_lookup_failed=True)]
        assert fncInventorySummary(rows) == {
            "Autopilot Devices": 2,
            "Intune Enrolled": 1,
            "Not Enrolled": 1,
            "In Entra": 1,
            "User Lookups Failed": 1,
        }

    def test_script_shares_storage_keys_and_control_ids(self):
        doc = fncRenderDeviceReport([_row()])
        assert f"const ORDER_KEY = \"{ORDER_STORAGE_KEY}\";" in doc
        assert f"const VIS_KEY = \"{VISIBILITY_STORAGE_KEY}\";" in doc
        assert "__ORDER_KEY__" not in doc
        looked_up = set(re.findall(r"\$\('([A-Za-z]+)'\)", DEVICE_TABLE_JS))
        assert {"globalSearch", "statusFilter", "groupTagFilter", "rowCount", "colMenu"} <= looked_up
        for control_id in looked_up:
            assert f'id="{control_id}"' in doc

    def test_write_creates_file(self, tmp_path):
        target = tmp_path / "out" / "DeviceInventory.html"
        doc = fncWriteDeviceReport(str(target), [_row()])
        assert target.read_text(encoding="utf-8") == doc


class TestInventoryRun:
    """device_inventory.run against an in-memory Graph."""

    class Client:
        def __init__(self, pages, fail_on=None):
            self.pages = pages
            self.fail_on = fail_on

        def get_all(self, endpoint):
            if endpoint == self.fail_on:
                raise RuntimeError("500 from Graph")
            return self.pages.get(endpoint, [])

    def _pages(self):
        return {
            inv.AUTOPILOT_ENDPOINT: [
                {"id": "S1", "serialNumber": "SER1", "managedDeviceId": "M1", "groupTag": "Sales"},
                {"id": "S2", "serialNumber": "SER2", "managedDeviceId": "00000000-0000-0000-0000-000000000000"},
            ],
            inv.MANAGED_DEVICES_ENDPOINT: [{"id": "M1", "deviceName": "INT-A", "azureADDeviceId": "D-1"}],
            inv.DIRECTORY_DEVICES_ENDPOINT: [{"id": "OBJ-1", "deviceId": "d-1", "displayName": "Laptop-A"}],
            "deviceManagement/managedDevices/M1/users": [{"userPrincipalName": "a@contoso.com", "displayName": "Alice"}],
        }

    def test_writes_report_and_csv(self, tmp_path):

        target = tmp_path / "DeviceInventory.html"
        data = inv.run(self.Client(self._pages()), SimpleNamespace(html=str(target)), {})

        assert target.exists()
        csv_lines = target.with_suffix(".csv").read_text(encoding="utf-8").split("\n")
        assert len(csv_lines) == 3
        assert csv_lines[0].startswith('"Intune Enrolled","Intune Device Name"')
        assert data["summary"]["Intune Enrolled"] == 1
        assert data["devices"][0]["upn"] == "a@contoso.com"
        assert data["devices"][1]["enrolled"] == "Not Enrolled"

    def test_records_without_ids_do_not_abort(self, tmp_path):
        pages = self._pages()
        pages[inv.MANAGED_DEVICES_ENDPOINT].append({"deviceName": "NO-ID"})
        pages[inv.AUTOPILOT_ENDPOINT].append({"serialNumber": "SER3"})
        target = tmp_path / "DeviceInventory.html"

        data = inv.run(self.Client(pages), SimpleNamespace(html=str(target)), {})

        assert target.exists()
        assert len(data["devices"]) == 3
        assert data["summary"]["Intune Enrolled"] == 1
        assert data["devices"][2]["serial"] == "SER3"
        assert data["devices"][2]["autopilotId"] == ""
        assert data["devices"][2]["enrolled"] == "Not Enrolled"

    def test_fatal_fetch_writes_nothing(self, tmp_path):

        target = tmp_path / "DeviceInventory.html"
        client = self.Client(self._pages(), fail_on=inv.DIRECTORY_DEVICES_ENDPOINT)

        with pytest.raises(RuntimeError):
            inv.run(client, SimpleNamespace(html=str(target)), {})
        assert not target.exists()
