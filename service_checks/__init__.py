"""Service Checks

Host-local service watchdog: observes configured services, restarts the
eligible ones with bounded escalation persisted between runs, and reports
to a chat webhook. A companion check alerts on low disk free space.
"""

from .escalation import EscalationOutcome, EscalationResult, RestartEscalationEngine
from .store import FailureRecord, FileFailureRecordStore, MemoryFailureRecordStore

__all__ = [
    "EscalationOutcome",
    "EscalationResult",
    "FailureRecord",
    "FileFailureRecordStore",
    "MemoryFailureRecordStore",
    "RestartEscalationEngine",
]

__version__ = "0.1.0"
