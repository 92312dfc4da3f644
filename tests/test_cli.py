from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from service_checks import main as cli
from service_checks.notify import LogOnlySink
from service_checks.status import RunState
from service_checks.store import FileFailureRecordStore

from tests.fakes import FakeBackend


class _ListSink:
    def __init__(self) -> None:
        self.sent: list[str] = []

    def send(self, text: str) -> bool:
        self.sent.append(text)
        return True


@pytest.fixture()
def config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in ("SERVICE_CHECKS_CONFIG", "SERVICE_CHECKS_TEST_MODE", "SERVICE_CHECKS_STATE_DIR", "SERVICE_CHECKS_HOSTNAME"):
        monkeypatch.delenv(name, raising=False)
    data = {
        "hostname": "web-1",
        "state_dir": str(tmp_path / "state"),
        "services": {"monitored": ["nginx", "redis-server"], "restart": ["nginx"]},
        "restart": {"max_attempts": 3, "reset_window_minutes": 60, "wait_seconds": 0},
        "disk": {"paths": [str(tmp_path)], "min_free_percent": 0},
        "notifications": {"kind": "log"},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.fixture()
def sink(monkeypatch: pytest.MonkeyPatch) -> _ListSink:
    s = _ListSink()
    monkeypatch.setattr(cli, "build_sink", lambda _config: s)
    return s


def test_services_command_restarts_and_records(
    config_path: Path, tmp_path: Path, sink: _ListSink, monkeypatch: pytest.MonkeyPatch
) -> None:
    backend = FakeBackend({"nginx": RunState.STOPPED, "redis-server": RunState.RUNNING})
    monkeypatch.setattr(cli, "build_backend", lambda _config: backend)

    assert cli.main(["--config", str(config_path), "services"]) == 0

    assert backend.restarts == ["nginx"]
    record = FileFailureRecordStore(tmp_path / "state").get("nginx")
    assert record is not None and record.attempt_count == 1
    assert all(text.startswith(("ℹ️", "⚠️", "🚨", "✅")) for text in sink.sent)
    assert any("[web-1]" in text for text in sink.sent)


def test_default_command_is_services(config_path: Path, sink: _ListSink, monkeypatch: pytest.MonkeyPatch) -> None:
    backend = FakeBackend({"nginx": RunState.RUNNING, "redis-server": RunState.RUNNING})
    monkeypatch.setattr(cli, "build_backend", lambda _config: backend)

    assert cli.main(["--config", str(config_path)]) == 0
    assert backend.queries == ["nginx", "redis-server"]
    assert sink.sent == []


def test_test_mode_flag_sends_success(config_path: Path, sink: _ListSink, monkeypatch: pytest.MonkeyPatch) -> None:
    backend = FakeBackend({"nginx": RunState.RUNNING, "redis-server": RunState.RUNNING})
    monkeypatch.setattr(cli, "build_backend", lambda _config: backend)

    assert cli.main(["--config", str(config_path), "--test-mode", "all"]) == 0
    assert len(sink.sent) == 2
    assert all(text.startswith("✅") for text in sink.sent)


def test_records_and_reset(config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store = FileFailureRecordStore(tmp_path / "state")
    store.put("nginx", 3)

    assert cli.main(["--config", str(config_path), "records"]) == 0
    out = capsys.readouterr().out
    assert "nginx" in out
    assert "attempts=3/3" in out
    assert "abandoned" in out

    assert cli.main(["--config", str(config_path), "reset", "nginx"]) == 0
    assert store.get("nginx") is None

    assert cli.main(["--config", str(config_path), "records"]) == 0
    assert "No failure records" in capsys.readouterr().out


def test_invalid_config_exits_2(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("restart:\n  max_attempts: -1\n", encoding="utf-8")
    assert cli.main(["--config", str(path), "services"]) == 2


def test_build_sink_without_endpoint_is_log_only(config_path: Path) -> None:
    config = cli.load_config(config_path)
    assert isinstance(cli.build_sink(config.notifications), LogOnlySink)
