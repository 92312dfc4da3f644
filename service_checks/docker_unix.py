from __future__ import annotations

import http.client
import json
import socket
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, *, socket_path: str, timeout: float | None) -> None:
        super().__init__("localhost", timeout=timeout)
        self._socket_path = socket_path

    def connect(self) -> None:  # type: ignore[override]
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        if self.timeout is not None:
            sock.settimeout(self.timeout)
        sock.connect(self._socket_path)
        self.sock = sock


@dataclass(frozen=True)
class DockerUnixResponse:
    status: int
    ok: bool
    data: Any
    error: str | None

    @property
    def message(self) -> str:
        """Engine API error text (`{"message": ...}`) or the transport error."""
        if isinstance(self.data, dict) and isinstance(self.data.get("message"), str):
            return self.data["message"]
        if isinstance(self.data, str) and self.data.strip():
            return self.data.strip()
        return self.error or f"http_{self.status}"


def container_path(name: str, suffix: str = "") -> str:
    return f"/containers/{quote(str(name), safe='')}{suffix}"


def docker_unix_request(
    *,
    socket_path: str,
    method: str,
    path: str,
    timeout_seconds: float | None = None,
) -> DockerUnixResponse:
    """
    Minimal Docker Engine API client over /var/run/docker.sock.

    timeout_seconds=None keeps the socket blocking (platform default).
    """
    sp = str(socket_path or "").strip()
    if not sp:
        return DockerUnixResponse(status=0, ok=False, data=None, error="missing_socket_path")
    p = str(path or "").strip()
    if not p.startswith("/"):
        p = "/" + p

    conn: _UnixHTTPConnection | None = None
    try:
        conn = _UnixHTTPConnection(socket_path=sp, timeout=timeout_seconds)
        conn.request(method.upper(), p, headers={"Host": "docker"})
        resp = conn.getresponse()
        raw = resp.read()
        status = int(resp.status)
        try:
            data = json.loads(raw.decode("utf-8")) if raw else None
        except ValueError:
            data = raw.decode("utf-8", errors="replace")
        ok = 200 <= status < 300
        return DockerUnixResponse(status=status, ok=ok, data=data, error=None if ok else f"http_{status}")
    except FileNotFoundError:
        return DockerUnixResponse(status=0, ok=False, data=None, error="socket_not_found")
    except PermissionError as exc:
        return DockerUnixResponse(status=0, ok=False, data=None, error=f"permission denied: {exc}")
    except (OSError, http.client.HTTPException) as exc:
        return DockerUnixResponse(status=0, ok=False, data=None, error=f"{type(exc).__name__}: {exc}")
    finally:
        if conn is not None:
            try:
                conn.close()
            except OSError:
                pass
