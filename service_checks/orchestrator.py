from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from service_checks.alerts import AlertEvent, build_not_found_alert, build_status_alert
from service_checks.config import MonitorConfig
from service_checks.escalation import EscalationPolicy, EscalationResult, RestartEscalationEngine
from service_checks.hosts import matching_pattern
from service_checks.status import ServiceBackend, ServiceObservation, ServiceStatusEvaluator
from service_checks.store import FailureRecordStore


LOGGER = logging.getLogger("service-monitoring")


@dataclass(frozen=True)
class ServiceSpec:
    name: str
    auto_restart_eligible: bool
    monitored: bool = True


@dataclass(frozen=True)
class RunReport:
    exit_code: int
    excluded: bool = False
    observations: tuple[ServiceObservation, ...] = ()
    escalations: tuple[EscalationResult, ...] = ()


def build_service_specs(monitored: list[str], restart: list[str]) -> list[ServiceSpec]:
    """
    Build the per-run service list. Duplicates and blanks are dropped.

    Names in the restart list that are not monitored are a configuration
    inconsistency: logged and ignored.
    """
    seen: set[str] = set()
    names: list[str] = []
    for raw in monitored:
        name = str(raw or "").strip()
        if not name or name in seen:
            continue
        seen.add(name)
        names.append(name)

    restart_set = {str(r or "").strip() for r in restart if str(r or "").strip()}
    for orphan in sorted(restart_set - seen):
        LOGGER.warning("Service in restart list but not monitored; skipping name=%s", orphan)

    return [ServiceSpec(name=n, auto_restart_eligible=n in restart_set) for n in names]


def escalation_policy(config: MonitorConfig) -> EscalationPolicy:
    return EscalationPolicy(
        max_attempts=int(config.restart.max_attempts),
        reset_window_seconds=float(config.restart.reset_window_seconds),
        restart_wait_seconds=float(config.restart.wait_seconds),
    )


def run_service_checks(
    config: MonitorConfig,
    *,
    hostname: str,
    backend: ServiceBackend,
    store: FailureRecordStore,
    notify: Callable[[AlertEvent], object],
    clock: Callable[[], float] = time.time,
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    """
    One watchdog pass: exclude -> evaluate -> report -> escalate.

    Test mode only exercises the notification path: no restarts are issued.
    Records of services seen running are still cleared.
    """
    pattern = matching_pattern(hostname, config.hosts.exclude_patterns)
    if pattern is not None:
        LOGGER.info("Host excluded; nothing to do hostname=%s pattern=%s", hostname, pattern)
        return RunReport(exit_code=0, excluded=True)

    specs = build_service_specs(config.services.monitored, config.services.restart)
    if not specs:
        LOGGER.error("No monitored services configured")
        return RunReport(exit_code=1)

    evaluator = ServiceStatusEvaluator(backend)
    observations = evaluator.evaluate([s.name for s in specs])
    by_name = {o.name: o for o in observations}

    not_found = [o.name for o in observations if o.not_found]
    if not_found:
        notify(build_not_found_alert(not_found))
    if len(not_found) == len(observations):
        LOGGER.error("None of the monitored services exist on this host names=%s", not_found)
        return RunReport(exit_code=1, observations=tuple(observations))

    not_running = [(o.name, o.label) for o in observations if not o.running]
    LOGGER.info(
        "Service status hostname=%s total=%s not_running=%s test_mode=%s",
        hostname,
        len(observations),
        [n for n, _ in not_running],
        config.test_mode,
    )
    status_alert = build_status_alert(not_running=not_running, total=len(observations), test_mode=config.test_mode)
    if status_alert is not None:
        notify(status_alert)

    engine = RestartEscalationEngine(
        store=store,
        backend=backend,
        evaluator=evaluator,
        policy=escalation_policy(config),
        notify=notify,
        clock=clock,
        sleep=sleep,
    )

    # Every service seen running leaves the run without a failure record,
    # whether or not it is still restart-eligible, and in test mode too.
    for spec in specs:
        if not by_name[spec.name].running:
            continue
        try:
            engine.clear_if_healthy(spec.name)
        except Exception:
            LOGGER.exception("Clearing failure record failed; continuing name=%s", spec.name)

    if config.test_mode:
        return RunReport(exit_code=0, observations=tuple(observations))

    results: list[EscalationResult] = []
    for spec in specs:
        if not spec.auto_restart_eligible or by_name[spec.name].running:
            continue
        try:
            results.append(engine.escalate(spec.name))
        except Exception:
            LOGGER.exception("Escalation failed; continuing with next service name=%s", spec.name)

    return RunReport(exit_code=0, observations=tuple(observations), escalations=tuple(results))
