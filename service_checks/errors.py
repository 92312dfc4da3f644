"""Exception classes raised by the service watchdog."""

from __future__ import annotations


class ServiceChecksError(Exception):
    """Base class for all watchdog errors."""


class ConfigurationError(ServiceChecksError):
    """Raised when the configuration file is missing or invalid."""


class ServiceNotFound(ConfigurationError):
    """A configured service name does not resolve on this host."""

    def __init__(self, name: str, detail: str | None = None) -> None:
        self.name = name
        self.detail = detail
        msg = f"Service not found: {name}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class DeviceNotFound(ConfigurationError):
    """A configured disk path is not reachable."""

    def __init__(self, path: str, detail: str | None = None) -> None:
        self.path = path
        self.detail = detail
        msg = f"Storage path not reachable: {path}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class TransientQueryError(ServiceChecksError):
    """The status query itself failed; the service state is unknown."""


class RestartCommandError(ServiceChecksError):
    """
    Raised when issuing a restart fails synchronously.

    Use `classify_restart_error` to pick the subclass from the command output.
    """

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        self.message = message
        super().__init__(f"Restart of {name} failed: {message}")


class PermissionDenied(RestartCommandError):
    pass


class CommandFailed(RestartCommandError):
    pass


class StoreError(ServiceChecksError):
    pass


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class NotificationDeliveryError(ServiceChecksError):
    pass


_PERMISSION_MARKERS = (
    "permission denied",
    "access denied",
    "access is denied",
    "not permitted",
    "interactive authentication required",
    "authentication is required",
    "must be root",
    "unauthorized",
    "forbidden",
)


def classify_restart_error(name: str, message: str) -> RestartCommandError:
    """Map a restart failure message to PermissionDenied or CommandFailed."""
    text = str(message or "").strip()
    lowered = text.lower()
    for marker in _PERMISSION_MARKERS:
        if marker in lowered:
            return PermissionDenied(name, text)
    return CommandFailed(name, text or "unknown error")
