from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from service_checks.config import DEFAULT_CONFIG_PATH, MonitorConfig, load_config
from service_checks.disk import run_disk_checks
from service_checks.errors import ConfigurationError, StoreReadError, StoreWriteError
from service_checks.hosts import is_host_excluded, resolve_hostname
from service_checks.notify import HostNotifier, build_sink
from service_checks.orchestrator import run_service_checks
from service_checks.status import DockerBackend, ServiceBackend, SystemdBackend
from service_checks.store import FileFailureRecordStore


LOGGER = logging.getLogger("service-monitoring")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str, log_file: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("Could not open log file path=%s error=%s", log_file, exc)
        else:
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logging.getLogger().addHandler(handler)

    # Avoid leaking secrets (webhook URLs and the Telegram token are part of request URLs).
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_backend(config: MonitorConfig) -> ServiceBackend:
    if config.backend == "docker":
        return DockerBackend(socket_path=config.docker_socket_path)
    return SystemdBackend()


def _run_services(config: MonitorConfig, notifier: HostNotifier, hostname: str) -> int:
    report = run_service_checks(
        config,
        hostname=hostname,
        backend=build_backend(config),
        store=FileFailureRecordStore(config.state_dir),
        notify=notifier.notify,
    )
    return report.exit_code


def _run_disk(config: MonitorConfig, notifier: HostNotifier, hostname: str) -> int:
    if is_host_excluded(hostname, config.hosts.exclude_patterns):
        LOGGER.info("Host excluded; skipping disk check hostname=%s", hostname)
        return 0
    return run_disk_checks(config.disk, notify=notifier.notify, test_mode=config.test_mode)


def _show_records(config: MonitorConfig) -> int:
    store = FileFailureRecordStore(config.state_dir)
    try:
        records = store.list_records()
    except StoreReadError as exc:
        LOGGER.error("Could not list failure records error=%s", exc)
        return 1
    if not records:
        print(f"No failure records in {config.state_dir}")
        return 0
    now = time.time()
    max_attempts = int(config.restart.max_attempts)
    for r in records:
        age_min = r.age_seconds(now) / 60.0
        expired = r.age_seconds(now) >= config.restart.reset_window_seconds
        status = "expired" if expired else ("abandoned" if r.attempt_count >= max_attempts else "retrying")
        print(f"{r.name}\tattempts={r.attempt_count}/{max_attempts}\tage={age_min:.1f}min\t{status}")
    return 0


def _reset_records(config: MonitorConfig, names: list[str]) -> int:
    store = FileFailureRecordStore(config.state_dir)
    rc = 0
    for name in names:
        try:
            store.delete(name)
        except StoreWriteError as exc:
            LOGGER.error("Could not reset failure record name=%s error=%s", name, exc)
            rc = 1
            continue
        LOGGER.info("Failure record reset name=%s", name)
    return rc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Host service watchdog with bounded auto-restart")
    parser.add_argument(
        "--config",
        default=os.getenv("SERVICE_CHECKS_CONFIG") or str(DEFAULT_CONFIG_PATH),
        help="Path to YAML config",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (INFO, WARNING, ...)",
    )
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Alert when everything is healthy (checks the notification path); no restarts",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("services", help="Check services and auto-restart eligible ones (default)")
    sub.add_parser("disk", help="Check disk free space")
    sub.add_parser("all", help="Run the service check, then the disk check")
    sub.add_parser("records", help="List failure records")
    reset = sub.add_parser("reset", help="Delete failure records after manual intervention")
    reset.add_argument("names", nargs="+", help="Service name(s)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "services"

    configure_logging(args.log_level)
    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        LOGGER.error("%s", exc)
        return 2
    if args.test_mode:
        config = config.model_copy(update={"test_mode": True})
    if config.log_file:
        configure_logging(args.log_level, config.log_file)

    if command == "records":
        return _show_records(config)
    if command == "reset":
        return _reset_records(config, list(args.names))

    hostname = resolve_hostname(config.hostname)
    notifier = HostNotifier(build_sink(config.notifications), hostname=hostname)
    LOGGER.info("Starting service watchdog command=%s hostname=%s test_mode=%s", command, hostname, config.test_mode)

    if command == "disk":
        return _run_disk(config, notifier, hostname)
    if command == "all":
        rc_services = _run_services(config, notifier, hostname)
        rc_disk = _run_disk(config, notifier, hostname)
        return max(rc_services, rc_disk)
    return _run_services(config, notifier, hostname)


if __name__ == "__main__":
    sys.exit(main())
