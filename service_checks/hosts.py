from __future__ import annotations

import re
import socket
from typing import Any


def _compile_patterns(items: Any) -> list[re.Pattern[str]]:
    if not isinstance(items, (list, tuple)):
        return []
    out: list[re.Pattern[str]] = []
    for x in items:
        s = str(x or "").strip()
        if not s:
            continue
        try:
            out.append(re.compile(s, re.IGNORECASE))
        except re.error:
            # Treat invalid regex as a literal substring match.
            out.append(re.compile(re.escape(s), re.IGNORECASE))
    return out


def matching_pattern(hostname: str, patterns: list[str] | tuple[str, ...] | None) -> str | None:
    """Return the first exclusion pattern that matches hostname, if any."""
    name = str(hostname or "").strip()
    if not name:
        return None
    for p in _compile_patterns(list(patterns or [])):
        if p.search(name):
            return p.pattern
    return None


def is_host_excluded(hostname: str, patterns: list[str] | tuple[str, ...] | None) -> bool:
    return matching_pattern(hostname, patterns) is not None


def resolve_hostname(override: str | None = None) -> str:
    if override and str(override).strip():
        return str(override).strip()
    return socket.gethostname()
