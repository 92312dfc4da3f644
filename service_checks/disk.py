from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from service_checks.alerts import (
    AlertEvent,
    build_device_not_found_alert,
    build_disk_alert,
    build_disk_ok_alert,
)
from service_checks.config import DiskConfig
from service_checks.errors import DeviceNotFound


LOGGER = logging.getLogger("service-monitoring.disk")

GIB = 1024.0**3


@dataclass(frozen=True)
class DiskUsage:
    path: str
    total_bytes: int
    free_bytes: int

    @property
    def free_percent(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return round((self.free_bytes / float(self.total_bytes)) * 100.0, 3)

    @property
    def free_gb(self) -> float:
        return self.free_bytes / GIB

    @property
    def total_gb(self) -> float:
        return self.total_bytes / GIB


def read_disk_usage(path: str, *, usage: Callable = shutil.disk_usage) -> DiskUsage:
    p = str(path or "").strip()
    if not p or not Path(p).exists():
        raise DeviceNotFound(p or "<empty>", "path does not exist")
    try:
        total, _used, free = usage(p)
    except OSError as exc:
        raise DeviceNotFound(p, f"{type(exc).__name__}: {exc}") from exc
    if int(total) <= 0:
        raise DeviceNotFound(p, "reported size is zero")
    return DiskUsage(path=p, total_bytes=int(total), free_bytes=int(free))


def is_low(u: DiskUsage, *, min_free_percent: float | None, min_free_gb: float | None) -> bool:
    if min_free_percent is not None and u.free_percent < float(min_free_percent):
        return True
    if min_free_gb is not None and u.free_gb < float(min_free_gb):
        return True
    return False


def run_disk_checks(
    config: DiskConfig,
    *,
    notify: Callable[[AlertEvent], object],
    test_mode: bool = False,
    usage: Callable = shutil.disk_usage,
) -> int:
    """
    Check free space on every configured path. Returns the process exit code.

    Unreachable paths are reported and skipped; exit is non-zero only when no
    path could be evaluated.
    """
    usages: list[DiskUsage] = []
    missing: list[str] = []
    for path in config.paths:
        try:
            u = read_disk_usage(path, usage=usage)
        except DeviceNotFound as exc:
            LOGGER.error("Disk path not reachable path=%s detail=%s", exc.path, exc.detail)
            missing.append(exc.path)
            continue
        LOGGER.info(
            "Disk usage path=%s free_percent=%.1f free_gb=%.1f total_gb=%.1f",
            u.path,
            u.free_percent,
            u.free_gb,
            u.total_gb,
        )
        usages.append(u)

    if missing:
        notify(build_device_not_found_alert(missing))

    if not usages:
        LOGGER.error("No disk path could be evaluated paths=%s", list(config.paths))
        return 1

    low = [u for u in usages if is_low(u, min_free_percent=config.min_free_percent, min_free_gb=config.min_free_gb)]

    if test_mode:
        if not low:
            notify(build_disk_ok_alert(len(usages)))
        return 0

    if low:
        notify(
            build_disk_alert(
                [(u.path, u.free_percent, u.free_gb, u.total_gb) for u in low],
                min_free_percent=config.min_free_percent,
                min_free_gb=config.min_free_gb,
            )
        )
    return 0
