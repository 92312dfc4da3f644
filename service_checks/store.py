"""
Durable per-service failure records.

One record per service name, independently readable, writable and deletable,
so the escalation logic only ever needs get/put/delete. No locking: the
scheduler guarantees invocations on a host never overlap.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol
from urllib.parse import quote, unquote

from service_checks.errors import StoreReadError, StoreWriteError


LOGGER = logging.getLogger("service-monitoring.store")

RECORD_SUFFIX = ".restart"


@dataclass(frozen=True)
class FailureRecord:
    name: str
    attempt_count: int
    last_attempt_time: float

    def age_seconds(self, now: float) -> float:
        return float(now) - float(self.last_attempt_time)


class FailureRecordStore(Protocol):
    def get(self, name: str) -> FailureRecord | None: ...

    def put(self, name: str, attempt_count: int) -> FailureRecord: ...

    def delete(self, name: str) -> None: ...

    def list_records(self) -> list[FailureRecord]: ...


def encode_record(record: FailureRecord) -> str:
    # repr() keeps the float timestamp exact on the way back in.
    return f"{int(record.attempt_count)}|{float(record.last_attempt_time)!r}\n"


def decode_record(name: str, raw: str) -> FailureRecord:
    line = (raw or "").strip()
    parts = line.split("|")
    if len(parts) != 2:
        raise StoreReadError(f"Corrupt failure record for {name}: {line[:80]!r}")
    try:
        attempt_count = int(parts[0])
        last_attempt_time = float(parts[1])
    except ValueError as exc:
        raise StoreReadError(f"Corrupt failure record for {name}: {line[:80]!r}") from exc
    if attempt_count < 1:
        raise StoreReadError(f"Corrupt failure record for {name}: attempt_count={attempt_count}")
    return FailureRecord(name=name, attempt_count=attempt_count, last_attempt_time=last_attempt_time)


class FileFailureRecordStore:
    """One `<state_dir>/<encoded name>.restart` file per service."""

    def __init__(self, state_dir: str | Path, *, clock: Callable[[], float] = time.time) -> None:
        self.state_dir = Path(state_dir)
        self._clock = clock

    def path_for(self, name: str) -> Path:
        return self.state_dir / f"{quote(str(name), safe='')}{RECORD_SUFFIX}"

    def get(self, name: str) -> FailureRecord | None:
        path = self.path_for(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise StoreReadError(f"Could not read failure record path={path}: {exc}") from exc
        return decode_record(name, raw)

    def put(self, name: str, attempt_count: int) -> FailureRecord:
        record = FailureRecord(name=name, attempt_count=int(attempt_count), last_attempt_time=float(self._clock()))
        path = self.path_for(name)
        tmp = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(encode_record(record), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise StoreWriteError(f"Could not write failure record path={path}: {exc}") from exc
        LOGGER.debug("Wrote failure record name=%s attempt_count=%s", name, record.attempt_count)
        return record

    def delete(self, name: str) -> None:
        path = self.path_for(name)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StoreWriteError(f"Could not delete failure record path={path}: {exc}") from exc
        LOGGER.debug("Deleted failure record name=%s", name)

    def list_records(self) -> list[FailureRecord]:
        try:
            paths = sorted(self.state_dir.glob(f"*{RECORD_SUFFIX}"))
        except OSError as exc:
            raise StoreReadError(f"Could not list failure records dir={self.state_dir}: {exc}") from exc
        records: list[FailureRecord] = []
        for path in paths:
            name = unquote(path.name[: -len(RECORD_SUFFIX)])
            try:
                record = self.get(name)
            except StoreReadError as exc:
                LOGGER.warning("Skipping unreadable failure record name=%s error=%s", name, exc)
                continue
            if record is not None:
                records.append(record)
        return records


class MemoryFailureRecordStore:
    """Dict-backed store with the same contract, for embedding and tests."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._records: dict[str, FailureRecord] = {}

    def get(self, name: str) -> FailureRecord | None:
        return self._records.get(name)

    def put(self, name: str, attempt_count: int) -> FailureRecord:
        record = FailureRecord(name=name, attempt_count=int(attempt_count), last_attempt_time=float(self._clock()))
        self._records[name] = record
        return record

    def delete(self, name: str) -> None:
        self._records.pop(name, None)

    def list_records(self) -> list[FailureRecord]:
        return [self._records[k] for k in sorted(self._records)]
