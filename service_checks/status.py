from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Protocol

from service_checks.docker_unix import DockerUnixResponse, container_path, docker_unix_request
from service_checks.errors import (
    PermissionDenied,
    ServiceNotFound,
    TransientQueryError,
    classify_restart_error,
)


LOGGER = logging.getLogger("service-monitoring.status")


class RunState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ServiceObservation:
    name: str
    state: RunState
    detail: str = ""
    not_found: bool = False

    @property
    def running(self) -> bool:
        return self.state is RunState.RUNNING

    @property
    def label(self) -> str:
        if self.not_found:
            return "not found"
        if self.detail and self.detail != self.state.value:
            return f"{self.state.value} ({self.detail})"
        return self.state.value


class ServiceBackend(Protocol):
    def query(self, name: str) -> tuple[RunState, str]: ...

    def restart(self, name: str) -> None: ...


# systemctl is-active output -> RunState. "activating" is not running yet.
_SYSTEMD_ACTIVE_STATES = {
    "active": RunState.RUNNING,
    "reloading": RunState.RUNNING,
    "inactive": RunState.STOPPED,
    "failed": RunState.STOPPED,
    "deactivating": RunState.STOPPED,
    "activating": RunState.STOPPED,
}


class SystemdBackend:
    """Queries and restarts systemd units through systemctl."""

    def __init__(self, *, systemctl: str = "systemctl", run: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> None:
        self.systemctl = systemctl
        self._run = run

    def _systemctl(self, *args: str) -> subprocess.CompletedProcess:
        return self._run(
            [self.systemctl, *args],
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )

    def query(self, name: str) -> tuple[RunState, str]:
        try:
            show = self._systemctl("show", name, "--property=LoadState", "--value")
        except OSError as exc:
            raise TransientQueryError(f"systemctl unavailable: {exc}") from exc
        if show.returncode != 0:
            raise TransientQueryError((show.stderr or "").strip() or f"systemctl show exit {show.returncode}")
        load_state = (show.stdout or "").strip()
        if load_state.startswith("LoadState="):
            load_state = load_state.split("=", 1)[1]
        if load_state == "not-found":
            raise ServiceNotFound(name, "LoadState=not-found")

        try:
            proc = self._systemctl("is-active", name)
        except OSError as exc:
            raise TransientQueryError(f"systemctl unavailable: {exc}") from exc
        active = (proc.stdout or "").strip().splitlines()
        active_state = active[0].strip() if active else ""
        if not active_state:
            raise TransientQueryError((proc.stderr or "").strip() or f"systemctl is-active exit {proc.returncode}")
        return _SYSTEMD_ACTIVE_STATES.get(active_state, RunState.UNKNOWN), active_state

    def restart(self, name: str) -> None:
        try:
            proc = self._systemctl("restart", name)
        except PermissionError as exc:
            raise PermissionDenied(name, str(exc)) from exc
        except OSError as exc:
            raise classify_restart_error(name, f"{type(exc).__name__}: {exc}") from exc
        if proc.returncode != 0:
            message = (proc.stderr or "").strip() or (proc.stdout or "").strip() or f"exit status {proc.returncode}"
            raise classify_restart_error(name, message)


class DockerBackend:
    """Treats container names as services, via the Docker Engine API socket."""

    def __init__(
        self,
        *,
        socket_path: str = "/var/run/docker.sock",
        request: Callable[..., DockerUnixResponse] = docker_unix_request,
    ) -> None:
        self.socket_path = socket_path
        self._request = request

    def query(self, name: str) -> tuple[RunState, str]:
        resp = self._request(socket_path=self.socket_path, method="GET", path=container_path(name, "/json"))
        if resp.status == 404:
            raise ServiceNotFound(name, resp.message)
        if not resp.ok or not isinstance(resp.data, dict):
            raise TransientQueryError(f"docker inspect failed: {resp.message}")

        state = resp.data.get("State") if isinstance(resp.data.get("State"), dict) else {}
        status = str(state.get("Status") or "").strip()
        running = state.get("Running")
        if running is True and not state.get("Restarting"):
            return RunState.RUNNING, status or "running"
        if running is False or state.get("Restarting"):
            return RunState.STOPPED, status or "stopped"
        return RunState.UNKNOWN, status

    def restart(self, name: str) -> None:
        resp = self._request(socket_path=self.socket_path, method="POST", path=container_path(name, "/restart"))
        if resp.ok:
            return
        if resp.status in (401, 403):
            raise PermissionDenied(name, resp.message)
        raise classify_restart_error(name, resp.message)


class ServiceStatusEvaluator:
    """
    One observation per service name. Never retries.

    Unresolvable names and failed queries both come back as UNKNOWN,
    which callers treat exactly like STOPPED.
    """

    def __init__(self, backend: ServiceBackend) -> None:
        self.backend = backend

    def observe(self, name: str) -> ServiceObservation:
        try:
            state, detail = self.backend.query(name)
        except ServiceNotFound as exc:
            LOGGER.warning("Service not found name=%s detail=%s", name, exc.detail)
            return ServiceObservation(name=name, state=RunState.UNKNOWN, detail=exc.detail or "", not_found=True)
        except TransientQueryError as exc:
            LOGGER.warning("Status query failed name=%s error=%s", name, exc)
            return ServiceObservation(name=name, state=RunState.UNKNOWN, detail=str(exc))
        LOGGER.debug("Observed name=%s state=%s detail=%s", name, state.value, detail)
        return ServiceObservation(name=name, state=state, detail=detail)

    def evaluate(self, names: Iterable[str]) -> list[ServiceObservation]:
        return [self.observe(name) for name in names]
