"""
Shared fixtures for FleetHound tests.
"""

from unittest.mock import MagicMock

import pytest

from core.models import DeviceRecord, ManagedDeviceRecord, DirectoryDeviceRecord


def _make_response(status=200, payload=None, headers=None, text=""):
    """Stand-in for requests.Response with the attributes GraphClient reads."""
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = payload if payload is not None else {}
    resp.content = b"{}" if payload is not None else b""
    resp.text = text
    return resp


@pytest.fixture
def make_response():
    return _make_response


@pytest.fixture
def token_provider():
    provider = MagicMock()
    provider.acquire.return_value = {"access_token": "tok", "expires_on": 9999999999}
    return provider


@pytest.fixture
def sample_sources():
    """The two-device scenario: S1 enrolled via M1 -> D-1, S2 not enrolled."""
    autopilot = [
        DeviceRecord(id="S1", serial_number="SER1", managed_device_id="M1"),
        DeviceRecord(id="S2", serial_number="SER2"),
    ]
    managed = [ManagedDeviceRecord(id="M1", device_name="INT-A", azure_ad_device_id="D-1")]
    directory = [DirectoryDeviceRecord(device_id="d-1", display_name="Laptop-A", object_id="OBJ-1")]
    return autopilot, managed, directory
