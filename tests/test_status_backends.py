from __future__ import annotations

import subprocess

import pytest

from service_checks.docker_unix import DockerUnixResponse, container_path
from service_checks.errors import (
    CommandFailed,
    PermissionDenied,
    ServiceNotFound,
    TransientQueryError,
    classify_restart_error,
)
from service_checks.status import DockerBackend, RunState, ServiceStatusEvaluator, SystemdBackend

from tests.fakes import FakeBackend


class _FakeSystemctl:
    """Scripted systemctl: maps the subcommand to (returncode, stdout, stderr)."""

    def __init__(self, responses: dict[str, tuple[int, str, str]]) -> None:
        self.responses = responses
        self.calls: list[list[str]] = []

    def __call__(self, argv, **kwargs) -> subprocess.CompletedProcess:
        self.calls.append(list(argv))
        rc, out, err = self.responses[argv[1]]
        return subprocess.CompletedProcess(argv, rc, stdout=out, stderr=err)


@pytest.mark.parametrize(
    ("active", "expected"),
    [
        ("active\n", RunState.RUNNING),
        ("reloading\n", RunState.RUNNING),
        ("inactive\n", RunState.STOPPED),
        ("failed\n", RunState.STOPPED),
        ("activating\n", RunState.STOPPED),
        ("maintenance\n", RunState.UNKNOWN),
    ],
)
def test_systemd_query_maps_is_active(active: str, expected: RunState) -> None:
    run = _FakeSystemctl({"show": (0, "loaded\n", ""), "is-active": (0 if expected is RunState.RUNNING else 3, active, "")})
    state, detail = SystemdBackend(run=run).query("nginx")
    assert state is expected
    assert detail == active.strip()
    assert run.calls[0] == ["systemctl", "show", "nginx", "--property=LoadState", "--value"]


def test_systemd_query_not_found() -> None:
    run = _FakeSystemctl({"show": (0, "not-found\n", "")})
    with pytest.raises(ServiceNotFound):
        SystemdBackend(run=run).query("nope")


def test_systemd_query_failure_is_transient() -> None:
    run = _FakeSystemctl({"show": (1, "", "Failed to connect to bus")})
    with pytest.raises(TransientQueryError, match="Failed to connect to bus"):
        SystemdBackend(run=run).query("nginx")


def test_systemd_missing_binary_is_transient() -> None:
    def run(argv, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", argv[0])

    with pytest.raises(TransientQueryError):
        SystemdBackend(run=run).query("nginx")


def test_systemd_restart_success() -> None:
    run = _FakeSystemctl({"restart": (0, "", "")})
    SystemdBackend(run=run).restart("nginx")
    assert run.calls == [["systemctl", "restart", "nginx"]]


@pytest.mark.parametrize(
    ("stderr", "error_type"),
    [
        ("Failed to restart nginx.service: Access denied", PermissionDenied),
        ("Failed to restart nginx.service: Interactive authentication required.", PermissionDenied),
        ("Job for nginx.service failed because the control process exited with error code.", CommandFailed),
    ],
)
def test_systemd_restart_failure_is_classified(stderr: str, error_type: type) -> None:
    run = _FakeSystemctl({"restart": (1, "", stderr)})
    with pytest.raises(error_type) as excinfo:
        SystemdBackend(run=run).restart("nginx")
    assert excinfo.value.name == "nginx"
    assert stderr in excinfo.value.message


class _FakeDocker:
    def __init__(self, responses: dict[tuple[str, str], DockerUnixResponse]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, str]] = []

    def __call__(self, *, socket_path: str, method: str, path: str, timeout_seconds=None) -> DockerUnixResponse:
        self.calls.append((method, path))
        return self.responses[(method, path)]


def _ok(data) -> DockerUnixResponse:
    return DockerUnixResponse(status=200, ok=True, data=data, error=None)


def test_docker_query_running_and_exited() -> None:
    fake = _FakeDocker(
        {
            ("GET", container_path("web", "/json")): _ok({"State": {"Status": "running", "Running": True}}),
            ("GET", container_path("db", "/json")): _ok({"State": {"Status": "exited", "Running": False}}),
            ("GET", container_path("flaky", "/json")): _ok(
                {"State": {"Status": "restarting", "Running": True, "Restarting": True}}
            ),
        }
    )
    backend = DockerBackend(socket_path="/tmp/docker.sock", request=fake)
    assert backend.query("web") == (RunState.RUNNING, "running")
    assert backend.query("db") == (RunState.STOPPED, "exited")
    assert backend.query("flaky")[0] is RunState.STOPPED


def test_docker_query_missing_container_and_socket() -> None:
    fake = _FakeDocker(
        {
            ("GET", container_path("gone", "/json")): DockerUnixResponse(
                status=404, ok=False, data={"message": "No such container: gone"}, error="http_404"
            ),
            ("GET", container_path("web", "/json")): DockerUnixResponse(
                status=0, ok=False, data=None, error="socket_not_found"
            ),
        }
    )
    backend = DockerBackend(request=fake)
    with pytest.raises(ServiceNotFound):
        backend.query("gone")
    with pytest.raises(TransientQueryError, match="socket_not_found"):
        backend.query("web")


def test_docker_restart_errors() -> None:
    fake = _FakeDocker(
        {
            ("POST", container_path("web", "/restart")): _ok(None),
            ("POST", container_path("locked", "/restart")): DockerUnixResponse(
                status=0, ok=False, data=None, error="permission denied: [Errno 13]"
            ),
            ("POST", container_path("broken", "/restart")): DockerUnixResponse(
                status=500, ok=False, data={"message": "cannot start container"}, error="http_500"
            ),
        }
    )
    backend = DockerBackend(request=fake)
    backend.restart("web")
    with pytest.raises(PermissionDenied):
        backend.restart("locked")
    with pytest.raises(CommandFailed, match="cannot start container"):
        backend.restart("broken")


def test_container_path_quotes_names() -> None:
    assert container_path("a/b", "/json") == "/containers/a%2Fb/json"


def test_classify_restart_error_defaults_to_command_failed() -> None:
    assert isinstance(classify_restart_error("x", "Operation not permitted"), PermissionDenied)
    err = classify_restart_error("x", "")
    assert isinstance(err, CommandFailed)
    assert err.message == "unknown error"


def test_evaluator_folds_query_failures_into_unknown() -> None:
    backend = FakeBackend(
        {"ok": RunState.RUNNING, "flaky": TransientQueryError("timeout")},
        missing=("gone",),
    )
    obs = {o.name: o for o in ServiceStatusEvaluator(backend).evaluate(["ok", "flaky", "gone"])}

    assert obs["ok"].running
    assert obs["flaky"].state is RunState.UNKNOWN and not obs["flaky"].not_found
    assert obs["gone"].state is RunState.UNKNOWN and obs["gone"].not_found
    assert obs["gone"].label == "not found"
