"""
Tests for the Autopilot / Intune / Entra join.
"""

from core.models import (
    EMPTY_GUID,
    DeviceRecord,
    ManagedDeviceRecord,
    DirectoryDeviceRecord,
    PrimaryUser,
    STATUS_ENROLLED,
    STATUS_NOT_ENROLLED,
)
from core.reconcile import fncReconcileDevices, fncResolveJoinKey, fncMakeUserLookup


class TestModels:
    def test_autopilot_from_graph_treats_empty_guid_as_absent(self):
        rec = DeviceRecord.from_graph({
            "id": "ap-1",
            "serialNumber": "SER1",
            "managedDeviceId": EMPTY_GUID,
            "azureActiveDirectoryDeviceId": "",
        })
        assert rec.managed_device_id is None
        assert rec.azure_ad_device_id is None
        assert rec.serial_number == "SER1"

    def test_autopilot_without_id_still_maps(self):
        rec = DeviceRecord.from_graph({"serialNumber": "SER1"})
        assert rec.id == ""
        assert rec.serial_number == "SER1"

    def test_directory_record_maps_ids(self):
        rec = DirectoryDeviceRecord.from_graph({"id": "obj", "deviceId": "dev", "displayName": "PC"})
        assert (rec.object_id, rec.device_id, rec.display_name) == ("obj", "dev", "PC")


class TestReconcile:
    def test_example_scenario(self, sample_sources):
        """S1 joins through Intune to Laptop-A; S2 stays unenrolled."""
        rows = fncReconcileDevices(*sample_sources)

        s1, s2 = rows
        assert s1.status == STATUS_ENROLLED
        assert s1.entra_name == "Laptop-A"
        assert s1.intune_name == "INT-A"
        assert s2.status == STATUS_NOT_ENROLLED
        assert s2.entra_name == ""
        assert s2.intune_id == ""

    def test_one_row_per_autopilot_device(self):
        autopilot = [DeviceRecord(id=f"A{i}", managed_device_id="M1" if i % 2 else None) for i in range(7)]
        managed = [
            ManagedDeviceRecord(id="M1"),
            ManagedDeviceRecord(id="M-orphan"),
        ]
        directory = [DirectoryDeviceRecord(device_id="x")]

        rows = fncReconcileDevices(autopilot, managed, directory)

        assert len(rows) == 7
        assert [r.autopilot_id for r in rows] == [f"A{i}" for i in range(7)]

    def test_intune_directory_id_wins(self):
        device = DeviceRecord(id="A1", managed_device_id="M1", azure_ad_device_id="old-id")
        managed = [ManagedDeviceRecord(id="M1", azure_ad_device_id="new-id")]
        directory = [
            DirectoryDeviceRecord(device_id="old-id", display_name="Old", object_id="O1"),
            DirectoryDeviceRecord(device_id="new-id", display_name="New", object_id="O2"),
        ]

        row = fncReconcileDevices([device], managed, directory)[0]

        assert row.entra_name == "New"
        assert row.entra_object_id == "O2"

    def test_falls_back_to_autopilot_directory_id(self):
        device = DeviceRecord(id="A1", azure_ad_device_id="ABC-DEF")
        directory = [DirectoryDeviceRecord(device_id="abc-def", display_name="PC-1", object_id="O1")]

        row = fncReconcileDevices([device], [], directory)[0]

        assert row.enrolled is False
        assert row.entra_name == "PC-1"
        assert fncResolveJoinKey(device, None) == "abc-def"

    def test_join_is_case_insensitive(self):
        device = DeviceRecord(id="A1", managed_device_id="M1")
        managed = [ManagedDeviceRecord(id="M1", azure_ad_device_id="AbCd-1234")]
        directory = [DirectoryDeviceRecord(device_id="ABCD-1234", display_name="PC", object_id="O1")]

        row = fncReconcileDevices([device], managed, directory)[0]

        assert row.entra_name == "PC"
        assert row.entra_device_id == "ABCD-1234"

    def test_first_primary_user_used(self):
        users = {"M1": [PrimaryUser("a@contoso.com", "Alice"), PrimaryUser("b@contoso.com", "Bob")]}
        device = DeviceRecord(id="A1", managed_device_id="M1")

        row = fncReconcileDevices([device], [ManagedDeviceRecord(id="M1")], [], users.get)[0]

        assert row.upn == "a@contoso.com"
        assert row.user_display_name == "Alice"
        assert row.user_lookup_failed is False

    def test_user_lookup_failure_degrades_only_that_row(self):
        def lookup(intune_id):
            if intune_id == "M1":
                raise RuntimeError("403")
            return [PrimaryUser("c@contoso.com", "Carol")]

        devices = [DeviceRecord(id="A1", managed_device_id="M1"), DeviceRecord(id="A2", managed_device_id="M2")]
        managed = [ManagedDeviceRecord(id="M1"), ManagedDeviceRecord(id="M2")]

        first, second = fncReconcileDevices(devices, managed, [], lookup)

        assert first.user_lookup_failed is True
        assert first.upn == ""
        assert first.enrolled is True
        assert second.user_lookup_failed is False
        assert second.upn == "c@contoso.com"

    def test_lookup_not_called_for_unenrolled(self):
        calls = []
        fncReconcileDevices([DeviceRecord(id="A1")], [], [], lambda i: calls.append(i) or [])
        assert calls == []


class TestUserLookup:
    def test_queries_device_users(self):
        class Client:
            def get_all(self, endpoint):
                self.endpoint = endpoint
                return [{"userPrincipalName": "a@contoso.com", "displayName": "Alice"}]

        client = Client()
        users = fncMakeUserLookup(client)("M1")

        assert client.endpoint == "deviceManagement/managedDevices/M1/users"
        assert users == [PrimaryUser("a@contoso.com", "Alice")]
