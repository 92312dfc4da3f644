"""
Restart escalation state machine.

Each scheduled invocation is short-lived, so restart history lives in the
failure record store between runs:

    no record / expired record   -> attempt 1
    record below max_attempts    -> attempt n + 1
    record at max_attempts       -> give up until it ages past reset_window

The record for an attempt is written before the restart command is issued
and is only deleted once the service is confirmed running. It can overcount
(crash after a successful restart) but never undercount.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from service_checks.alerts import (
    AlertEvent,
    build_abandoned_alert,
    build_attempt_alert,
    build_command_failed_alert,
    build_permission_denied_alert,
    build_recovered_alert,
    build_still_down_alert,
)
from service_checks.errors import (
    PermissionDenied,
    RestartCommandError,
    StoreReadError,
    StoreWriteError,
)
from service_checks.status import ServiceBackend, ServiceStatusEvaluator
from service_checks.store import FailureRecord, FailureRecordStore


LOGGER = logging.getLogger("service-monitoring.escalation")


class EscalationState(str, Enum):
    HEALTHY = "healthy"
    ELIGIBLE_FRESH = "eligible_fresh"
    ELIGIBLE_RETRY = "eligible_retry"
    ABANDONED = "abandoned"


class EscalationOutcome(str, Enum):
    HEALTHY = "healthy"
    RECOVERED = "recovered"
    STILL_DOWN = "still_down"
    ABANDONED = "abandoned"
    PERMISSION_DENIED = "permission_denied"
    COMMAND_FAILED = "command_failed"


@dataclass(frozen=True)
class EscalationPolicy:
    max_attempts: int
    reset_window_seconds: float
    restart_wait_seconds: float


@dataclass(frozen=True)
class EscalationResult:
    name: str
    state: EscalationState
    attempt: int | None
    outcome: EscalationOutcome


def classify_record(
    record: FailureRecord | None,
    *,
    now: float,
    policy: EscalationPolicy,
) -> tuple[EscalationState, int]:
    """
    Decide the escalation state for a stopped service from its record.

    Returns (state, attempt). For ABANDONED, attempt is the stored count.
    """
    if record is None:
        return EscalationState.ELIGIBLE_FRESH, 1
    if record.age_seconds(now) >= float(policy.reset_window_seconds):
        return EscalationState.ELIGIBLE_FRESH, 1
    if int(record.attempt_count) >= int(policy.max_attempts):
        return EscalationState.ABANDONED, int(record.attempt_count)
    return EscalationState.ELIGIBLE_RETRY, int(record.attempt_count) + 1


class RestartEscalationEngine:
    def __init__(
        self,
        *,
        store: FailureRecordStore,
        backend: ServiceBackend,
        evaluator: ServiceStatusEvaluator,
        policy: EscalationPolicy,
        notify: Callable[[AlertEvent], object],
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.backend = backend
        self.evaluator = evaluator
        self.policy = policy
        self.notify = notify
        self._clock = clock
        self._sleep = sleep

    def _load_record(self, name: str) -> FailureRecord | None:
        try:
            return self.store.get(name)
        except StoreReadError as exc:
            LOGGER.warning("Failure record unreadable; treating as fresh name=%s error=%s", name, exc)
            self._delete_record(name)
            return None

    def _delete_record(self, name: str) -> None:
        try:
            self.store.delete(name)
        except StoreWriteError as exc:
            LOGGER.error("Could not delete failure record name=%s error=%s", name, exc)

    def clear_if_healthy(self, name: str) -> EscalationResult:
        """Running service: drop any lingering record. Writes nothing if there is none."""
        record = self._load_record(name)
        if record is not None:
            LOGGER.info(
                "Service running again; clearing failure record name=%s attempt_count=%s",
                name,
                record.attempt_count,
            )
            self._delete_record(name)
        return EscalationResult(name=name, state=EscalationState.HEALTHY, attempt=None, outcome=EscalationOutcome.HEALTHY)

    def escalate(self, name: str) -> EscalationResult:
        """Run one escalation step for a stopped (or unknown), restart-eligible service."""
        now = float(self._clock())
        record = self._load_record(name)
        state, attempt = classify_record(record, now=now, policy=self.policy)

        if record is not None and state is EscalationState.ELIGIBLE_FRESH:
            LOGGER.info(
                "Failure record expired; starting over name=%s attempt_count=%s age_seconds=%.0f",
                name,
                record.attempt_count,
                record.age_seconds(now),
            )
            self._delete_record(name)

        if record is not None and state is EscalationState.ABANDONED:
            retry_after = float(self.policy.reset_window_seconds) - record.age_seconds(now)
            LOGGER.warning(
                "Giving up on service name=%s attempt_count=%s max_attempts=%s retry_after_seconds=%.0f",
                name,
                record.attempt_count,
                self.policy.max_attempts,
                retry_after,
            )
            self.notify(build_abandoned_alert(name, record.attempt_count, self.policy.max_attempts, retry_after))
            return EscalationResult(name=name, state=state, attempt=attempt, outcome=EscalationOutcome.ABANDONED)

        # Attempt count must be durable before the restart is issued.
        try:
            self.store.put(name, attempt)
        except StoreWriteError as exc:
            LOGGER.error("Could not persist restart attempt; continuing name=%s attempt=%s error=%s", name, attempt, exc)

        LOGGER.info("Restarting service name=%s attempt=%s max_attempts=%s", name, attempt, self.policy.max_attempts)
        self.notify(build_attempt_alert(name, attempt, self.policy.max_attempts))

        try:
            self.backend.restart(name)
        except RestartCommandError as exc:
            if isinstance(exc, PermissionDenied):
                LOGGER.error("Restart permission denied name=%s error=%s", name, exc.message)
                self.notify(build_permission_denied_alert(name, exc.message))
                outcome = EscalationOutcome.PERMISSION_DENIED
            else:
                LOGGER.error("Restart command failed name=%s error=%s", name, exc.message)
                self.notify(build_command_failed_alert(name, exc.message))
                outcome = EscalationOutcome.COMMAND_FAILED
            return EscalationResult(name=name, state=state, attempt=attempt, outcome=outcome)

        wait_seconds = float(self.policy.restart_wait_seconds)
        if wait_seconds > 0:
            LOGGER.info("Waiting for service to start name=%s wait_seconds=%s", name, wait_seconds)
            self._sleep(wait_seconds)

        observation = self.evaluator.observe(name)
        if observation.running:
            self._delete_record(name)
            LOGGER.info("Service recovered name=%s attempt=%s", name, attempt)
            self.notify(build_recovered_alert(name, attempt))
            return EscalationResult(name=name, state=state, attempt=attempt, outcome=EscalationOutcome.RECOVERED)

        LOGGER.warning(
            "Service still down after restart name=%s state=%s attempt=%s max_attempts=%s",
            name,
            observation.label,
            attempt,
            self.policy.max_attempts,
        )
        self.notify(build_still_down_alert(name, attempt, self.policy.max_attempts, wait_seconds))
        return EscalationResult(name=name, state=state, attempt=attempt, outcome=EscalationOutcome.STILL_DOWN)
