"""Tests for the vmrobot REST API."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from vmrobot.actions.pipeline import ActionPipeline
from vmrobot.config.settings import ServerConfig, Settings
from vmrobot.hypervisor.base import ProcessResult
from vmrobot.hypervisor.memory import InMemoryHypervisor, MemoryMachine
from vmrobot.keyboard.translator import ScancodeTranslator
from vmrobot.server.app import create_app
from vmrobot.session.manager import SessionManager


@pytest.fixture
def pipeline(translator: ScancodeTranslator) -> ActionPipeline:
    return ActionPipeline(translator)


@pytest.fixture
def client(manager: SessionManager, pipeline: ActionPipeline) -> TestClient:
    app = create_app(settings=Settings(), manager=manager, pipeline=pipeline)
    return TestClient(app)


def _connect(client: TestClient, machine: str = "win10") -> dict:
    resp = client.post("/", json={"connect": machine})
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "sessions": 0}

    def test_health_counts_sessions(self, client: TestClient) -> None:
        _connect(client)
        assert client.get("/health").json()["sessions"] == 1


class TestCreateVM:
    def test_connect_returns_session_urls(self, client: TestClient) -> None:
        data = _connect(client)
        vm_id = data["id"]
        assert data["execute"] == f"http://testserver/vm/{vm_id}/api/execute"
        assert data["run"] == f"http://testserver/vm/{vm_id}/run"
        assert data["close"] == f"http://testserver/vm/{vm_id}/close"

    def test_clone(self, client: TestClient, hypervisor: InMemoryHypervisor) -> None:
        resp = client.post("/", json={"clone": "win10", "snapshot": "clean"})
        assert resp.status_code == 200
        vm_id = resp.json()["id"]
        assert any(m.name == vm_id for m in hypervisor.registered_machines)

    def test_stopped_machine_is_412(self, client: TestClient) -> None:
        resp = client.post("/", json={"connect": "stopped"})
        assert resp.status_code == 412
        assert "not running" in resp.json()["detail"]

    def test_unknown_machine_is_404(self, client: TestClient) -> None:
        assert client.post("/", json={"connect": "missing"}).status_code == 404

    def test_clone_failure_is_500(self, client: TestClient, hypervisor: InMemoryHypervisor) -> None:
        from vmrobot.hypervisor.memory import MemoryProgress

        hypervisor.progress_overrides["clone"] = MemoryProgress(error="disk full")
        resp = client.post("/", json={"clone": "win10"})
        assert resp.status_code == 500
        assert "disk full" in resp.json()["detail"]

    def test_missing_target_is_400(self, client: TestClient) -> None:
        assert client.post("/", json={}).status_code == 400


class TestExecute:
    def test_strict_batch(self, client: TestClient, running_machine: MemoryMachine) -> None:
        vm = _connect(client)
        resp = client.post(vm["execute"], json={"actions": [["mouseMove", 10, 20], ["type", "hi"]]})
        assert resp.json() == {"success": True, "result": None}
        assert running_machine.mouse.events == [("absolute", 10, 20, 0, 0, 0)]
        assert running_machine.keyboard.scancodes == [0x23, 0xA3, 0x17, 0x97]

    def test_object_form(self, client: TestClient, running_machine: MemoryMachine) -> None:
        vm = _connect(client)
        resp = client.post(vm["execute"], json={"actions": [{"action": "keyPress", "key_code": 13}]})
        assert resp.json()["success"] is True
        assert running_machine.keyboard.scancodes == [0x1C]

    def test_failure_is_reported_in_band(self, client: TestClient) -> None:
        vm = _connect(client)
        resp = client.post(vm["execute"], json={"actions": [["keyPress", 9999]]})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is False
        assert "Unknown key code: 9999" in data["result"]
        assert f"/vm/{vm['id']}/api/execute" in data["result"]

    def test_isolated_batch(self, client: TestClient, running_machine: MemoryMachine) -> None:
        vm = _connect(client)
        resp = client.post(
            vm["execute"],
            json={"actions": [["keyPress", 65], ["keyPress", 9999]], "isolated": True},
        )
        data = resp.json()
        assert data["success"] is True
        assert [r["success"] for r in data["result"]] == [True, False]
        assert running_machine.keyboard.scancodes == [0x1E]

    def test_unknown_session_is_404(self, client: TestClient) -> None:
        resp = client.post("/vm/nope/api/execute", json={"actions": []})
        assert resp.status_code == 404


class TestRunAndClose:
    def test_run_process(self, client: TestClient, running_machine: MemoryMachine) -> None:
        running_machine.process_handler = lambda req: ProcessResult(exit_code=0, stdout="\n".join(req.command_line))
        vm = _connect(client)
        resp = client.post(vm["run"], json={"commandLine": ["cmd", "/c", "dir"]})
        assert resp.status_code == 200
        assert resp.json()["exitCode"] == 0
        assert resp.json()["stdout"] == "cmd\n/c\ndir"

    def test_run_needs_command(self, client: TestClient) -> None:
        vm = _connect(client)
        assert client.post(vm["run"], json={"commandLine": []}).status_code == 422

    def test_close(self, client: TestClient, running_machine: MemoryMachine) -> None:
        vm = _connect(client)
        resp = client.post(vm["close"])
        assert resp.json() == {"status": "ok", "id": vm["id"]}
        assert running_machine.sessions == []
        assert client.post(vm["close"]).status_code == 404
        assert client.post(vm["execute"], json={"actions": []}).status_code == 404


class TestAuth:
    @pytest.fixture
    def secured(self, manager: SessionManager, pipeline: ActionPipeline) -> TestClient:
        settings = Settings(server=ServerConfig(username="ci", password="s3cret"))
        return TestClient(create_app(settings=settings, manager=manager, pipeline=pipeline))

    def test_create_requires_credentials(self, secured: TestClient) -> None:
        resp = secured.post("/", json={"connect": "win10"})
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"].startswith("Basic")

    def test_wrong_password(self, secured: TestClient) -> None:
        resp = secured.post("/", json={"connect": "win10"}, auth=("ci", "wrong"))
        assert resp.status_code == 401

    def test_valid_credentials(self, secured: TestClient) -> None:
        resp = secured.post("/", json={"connect": "win10"}, auth=("ci", "s3cret"))
        assert resp.status_code == 200

    def test_session_urls_need_no_credentials(self, secured: TestClient) -> None:
        vm = secured.post("/", json={"connect": "win10"}, auth=("ci", "s3cret")).json()
        assert secured.post(vm["execute"], json={"actions": []}).json()["success"] is True

    def test_health_is_public(self, secured: TestClient) -> None:
        assert secured.get("/health").status_code == 200

    def test_non_ascii_configured_password(self, manager: SessionManager, pipeline: ActionPipeline) -> None:
        settings = Settings(server=ServerConfig(username="ci", password="pässwort"))
        client = TestClient(create_app(settings=settings, manager=manager, pipeline=pipeline))
        resp = client.post("/", json={"connect": "win10"}, auth=("ci", "passwort"))
        assert resp.status_code == 401
