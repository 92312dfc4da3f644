from __future__ import annotations

from pathlib import Path

import pytest

from service_checks.config import DiskConfig
from service_checks.disk import DiskUsage, is_low, read_disk_usage, run_disk_checks
from service_checks.errors import DeviceNotFound

from tests.fakes import AlertRecorder

GIB = 1024**3


def _usage(table: dict[str, tuple[int, int]]):
    def usage(path: str):
        total, free = table[path]
        return total, total - free, free

    return usage


def test_disk_usage_percent_and_gb() -> None:
    u = DiskUsage(path="/", total_bytes=100 * GIB, free_bytes=25 * GIB)
    assert u.free_percent == 25.0
    assert u.free_gb == 25.0
    assert u.total_gb == 100.0


def test_is_low_thresholds() -> None:
    u = DiskUsage(path="/", total_bytes=100 * GIB, free_bytes=8 * GIB)
    assert is_low(u, min_free_percent=10, min_free_gb=None)
    assert not is_low(u, min_free_percent=5, min_free_gb=None)
    assert is_low(u, min_free_percent=None, min_free_gb=10)
    assert not is_low(u, min_free_percent=None, min_free_gb=None)


def test_read_disk_usage_missing_path(tmp_path: Path) -> None:
    with pytest.raises(DeviceNotFound):
        read_disk_usage(str(tmp_path / "nope"))


def test_read_disk_usage_real_path(tmp_path: Path) -> None:
    u = read_disk_usage(str(tmp_path))
    assert u.total_bytes > 0
    assert 0.0 <= u.free_percent <= 100.0


def test_low_disk_sends_one_warning(tmp_path: Path, alerts: AlertRecorder) -> None:
    a, b = tmp_path / "a", tmp_path / "b"
    a.mkdir()
    b.mkdir()
    usage = _usage({str(a): (100 * GIB, 5 * GIB), str(b): (100 * GIB, 50 * GIB)})
    config = DiskConfig(paths=[str(a), str(b)], min_free_percent=10)

    assert run_disk_checks(config, notify=alerts, usage=usage) == 0
    assert alerts.severities() == ["warning"]
    assert str(a) in alerts.events[0].text
    assert str(b) not in alerts.events[0].text


def test_healthy_disk_is_silent_outside_test_mode(tmp_path: Path, alerts: AlertRecorder) -> None:
    usage = _usage({str(tmp_path): (100 * GIB, 50 * GIB)})
    assert run_disk_checks(DiskConfig(paths=[str(tmp_path)]), notify=alerts, usage=usage) == 0
    assert alerts.events == []


def test_test_mode_success_only_when_nothing_low(tmp_path: Path, alerts: AlertRecorder) -> None:
    usage = _usage({str(tmp_path): (100 * GIB, 50 * GIB)})
    config = DiskConfig(paths=[str(tmp_path)])
    assert run_disk_checks(config, notify=alerts, test_mode=True, usage=usage) == 0
    assert alerts.severities() == ["success"]

    alerts.events.clear()
    low = _usage({str(tmp_path): (100 * GIB, 1 * GIB)})
    assert run_disk_checks(config, notify=alerts, test_mode=True, usage=low) == 0
    assert alerts.events == []


def test_missing_path_reported_and_others_checked(tmp_path: Path, alerts: AlertRecorder) -> None:
    missing = str(tmp_path / "gone")
    usage = _usage({str(tmp_path): (100 * GIB, 50 * GIB)})
    config = DiskConfig(paths=[missing, str(tmp_path)])

    assert run_disk_checks(config, notify=alerts, usage=usage) == 0
    assert alerts.severities() == ["critical"]
    assert missing in alerts.events[0].text


def test_no_usable_path_exits_non_zero(tmp_path: Path, alerts: AlertRecorder) -> None:
    config = DiskConfig(paths=[str(tmp_path / "x"), str(tmp_path / "y")])
    assert run_disk_checks(config, notify=alerts) == 1
    assert alerts.severities() == ["critical"]
