"""
Tests for the NSG ARM deployment loop (az CLI mocked).
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from modules.azure import nsg_deploy
from modules.azure.nsg_deploy import AzCliError, fncDeployAll, fncRunAz, fncListNsgs, fncDeploymentName


def _done(returncode=0, stdout="", stderr=""):
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def templates(tmp_path):
    paths = []
    for name in ("deny-rdp.json", "allow-web.json"):
        p = tmp_path / name
        p.write_text("{}", encoding="utf-8")
        paths.append(p)
    return sorted(paths)


NSGS = [
    {"name": "nsg-a", "resourceGroup": "rg1", "location": "uksouth"},
    {"name": "nsg-b", "resourceGroup": "rg1", "location": "uksouth"},
]


class TestAz:
    def test_missing_az_raises(self):
        with patch("modules.azure.nsg_deploy.shutil.which", return_value=None):
            with pytest.raises(AzCliError):
                fncRunAz(["network", "nsg", "list"])

    def test_list_nsgs_scoped_to_resource_group(self):
        out = json.dumps([{"name": "b", "resourceGroup": "rg1"}, {"name": "a", "resourceGroup": "rg1"}])
        with patch("modules.azure.nsg_deploy.subprocess.run", return_value=_done(stdout=out)) as run:
            nsgs = fncListNsgs("rg1", az_path="az")
        cmd = run.call_args.args[0]
        assert cmd[:4] == ["az", "network", "nsg", "list"]
        assert "--resource-group" in cmd and "rg1" in cmd
        assert [n["name"] for n in nsgs] == ["a", "b"]

    def test_deployment_name_is_valid(self, templates):
        name = fncDeploymentName("nsg with spaces/" + "x" * 80, templates[0])
        assert len(name) <= 64
        assert " " not in name and "/" not in name


class TestDeployLoop:
    def test_continues_after_failure(self, templates):
        results = [_done(returncode=1, stderr="ERROR: InvalidTemplate"), _done(), _done(), _done()]
        with patch("modules.azure.nsg_deploy.subprocess.run", side_effect=results) as run:
            rows = fncDeployAll(NSGS, templates, az_path="az")

        assert run.call_count == 4
        assert [r["status"] for r in rows] == ["Failed", "Succeeded", "Succeeded", "Succeeded"]
        assert rows[0]["detail"] == "ERROR: InvalidTemplate"

    def test_create_command_shape(self, templates):
        with patch("modules.azure.nsg_deploy.subprocess.run", return_value=_done()) as run:
            fncDeployAll(NSGS[:1], templates[:1], az_path="az")
        cmd = run.call_args.args[0]
        assert cmd[:4] == ["az", "deployment", "group", "create"]
        assert cmd[cmd.index("--resource-group") + 1] == "rg1"
        assert cmd[cmd.index("--template-file") + 1] == str(templates[0])
        assert cmd[cmd.index("--parameters") + 1] == "networkSecurityGroupName=nsg-a"
        assert "--name" in cmd

    def test_what_if(self, templates):
        with patch("modules.azure.nsg_deploy.subprocess.run", return_value=_done(stdout="+ rule")) as run:
            rows = fncDeployAll(NSGS[:1], templates[:1], what_if=True, az_path="az")
        assert run.call_args.args[0][3] == "what-if"
        assert rows[0]["status"] == "What-If"
        assert rows[0]["output"] == "+ rule"


class TestRun:
    def test_run_with_preset_selection(self, templates, monkeypatch):
        monkeypatch.setattr("builtins.input", lambda *_: pytest.fail("prompted"))
        monkeypatch.setattr(nsg_deploy, "fncListNsgs", lambda rg: NSGS)
        calls = []

        def fake_deploy(nsg, template, what_if=False, az_path=None):
            calls.append((nsg["name"], template.name))
            return {"nsg": nsg["name"], "resourceGroup": "rg1", "template": template.name,
                    "deployment": "d", "status": "Succeeded", "detail": "", "output": ""}

        monkeypatch.setattr(nsg_deploy, "fncDeployTemplate", fake_deploy)
        args = SimpleNamespace(resource_group=None, templates=str(templates[0].parent),
                               nsgs="2", pick="all", what_if=False)

        data = nsg_deploy.run(None, args, {})

        assert calls == [("nsg-b", "allow-web.json"), ("nsg-b", "deny-rdp.json")]
        assert data["summary"]["Succeeded"] == 2
        assert data["summary"]["Failed"] == 0

    def test_run_without_templates_raises(self, tmp_path, monkeypatch):
        monkeypatch.setattr(nsg_deploy, "fncListNsgs", lambda rg: NSGS)
        args = SimpleNamespace(resource_group=None, templates=str(tmp_path), nsgs="all", pick="all", what_if=False)
        with pytest.raises(AzCliError):
            nsg_deploy.run(None, args, {})
