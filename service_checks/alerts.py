from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    SUCCESS = "success"


SEVERITY_MARKERS: dict[Severity, str] = {
    Severity.INFO: "ℹ️",
    Severity.WARNING: "⚠️",
    Severity.CRITICAL: "🚨",
    Severity.SUCCESS: "✅",
}


@dataclass(frozen=True)
class AlertEvent:
    severity: Severity
    text: str

    def render(self, hostname: str | None = None) -> str:
        marker = SEVERITY_MARKERS.get(self.severity, "")
        prefix = f"[{hostname}] " if hostname else ""
        return f"{marker} {prefix}{self.text}".strip()


def build_status_alert(
    *,
    not_running: list[tuple[str, str]],
    total: int,
    test_mode: bool,
) -> AlertEvent | None:
    """
    Aggregate status alert for one pass.

    not_running: (name, state_label) for every monitored service that is not RUNNING.
    Normal mode alerts iff something is down; test mode alerts iff nothing is down.
    """
    if test_mode:
        if not_running:
            return None
        return AlertEvent(
            Severity.SUCCESS,
            f"Test mode: all {int(total)} monitored service(s) are running. Notification path OK.",
        )

    if not not_running:
        return None
    lines = [f"{len(not_running)} of {int(total)} monitored service(s) not running:"]
    for name, state in not_running:
        lines.append(f"- {name}: {state}")
    return AlertEvent(Severity.CRITICAL, "\n".join(lines))


def build_not_found_alert(names: list[str]) -> AlertEvent:
    joined = ", ".join(names)
    return AlertEvent(
        Severity.CRITICAL,
        f"Configuration error: service(s) not found on this host: {joined}",
    )


def build_attempt_alert(name: str, attempt: int, max_attempts: int) -> AlertEvent:
    return AlertEvent(
        Severity.INFO,
        f"Restarting {name} (attempt {int(attempt)}/{int(max_attempts)})",
    )


def build_recovered_alert(name: str, attempt: int) -> AlertEvent:
    text = f"{name} restarted successfully and is running"
    if int(attempt) > 1:
        text += f" (after attempt {int(attempt)})"
    return AlertEvent(Severity.SUCCESS, text)


def build_still_down_alert(name: str, attempt: int, max_attempts: int, wait_seconds: float) -> AlertEvent:
    text = (
        f"{name} is still not running {wait_seconds:g}s after restart "
        f"(attempt {int(attempt)}/{int(max_attempts)})"
    )
    if int(attempt) >= int(max_attempts):
        text += ". No attempts left; next run will give up."
    return AlertEvent(Severity.WARNING, text)


def build_abandoned_alert(name: str, attempt_count: int, max_attempts: int, retry_after_seconds: float) -> AlertEvent:
    minutes = max(0.0, float(retry_after_seconds)) / 60.0
    return AlertEvent(
        Severity.CRITICAL,
        (
            f"{name} is down after {int(attempt_count)}/{int(max_attempts)} restart attempts. "
            f"Manual intervention required. Auto-restart resumes in {minutes:.0f} min "
            f"or after `service-checks reset {name}`."
        ),
    )


def build_permission_denied_alert(name: str, message: str) -> AlertEvent:
    return AlertEvent(
        Severity.CRITICAL,
        f"Permission denied restarting {name}: {str(message)[:300]}",
    )


def build_command_failed_alert(name: str, message: str) -> AlertEvent:
    return AlertEvent(
        Severity.CRITICAL,
        f"Restart command failed for {name}: {str(message)[:300]}",
    )


def build_disk_alert(low: list[tuple[str, float, float, float]], *, min_free_percent: float | None, min_free_gb: float | None) -> AlertEvent:
    """low: (path, free_percent, free_gb, total_gb)"""
    thresholds: list[str] = []
    if min_free_percent is not None:
        thresholds.append(f"{float(min_free_percent):.1f}%")
    if min_free_gb is not None:
        thresholds.append(f"{float(min_free_gb):.1f} GB")
    lines = [f"Low disk space (threshold {' / '.join(thresholds) or 'n/a'}):"]
    for path, free_pct, free_gb, total_gb in low:
        lines.append(f"- {path}: {free_pct:.1f}% free ({free_gb:.1f} GB of {total_gb:.1f} GB)")
    return AlertEvent(Severity.WARNING, "\n".join(lines))


def build_disk_ok_alert(count: int) -> AlertEvent:
    return AlertEvent(
        Severity.SUCCESS,
        f"Test mode: all {int(count)} disk path(s) above free-space threshold. Notification path OK.",
    )


def build_device_not_found_alert(paths: list[str]) -> AlertEvent:
    return AlertEvent(
        Severity.CRITICAL,
        f"Configuration error: storage path(s) not reachable: {', '.join(paths)}",
    )
