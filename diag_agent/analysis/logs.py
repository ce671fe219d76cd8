"""Log analysis: groups error and warning logs per entity and ranks recurring messages."""

from __future__ import annotations

import re
from collections import Counter

from diag_agent.evidence.models import LogRecord

NO_LOGS = "No logs were retrieved for analysis."
NO_ERRORS = "No critical errors found within the provided logs."
NO_WARNINGS = "No significant warnings found within the provided logs."
UNATTRIBUTED = "unattributed"

_ERROR_STATUSES = {"error", "critical", "emergency", "alert", "crit", "fatal", "emerg"}
_WARNING_STATUSES = {"warn", "warning"}

# Substrings of errors that are known noise and never indicate an entity problem.
BENIGN_ERROR_SUBSTRINGS = (
    "health check",
    "healthcheck",
    "client disconnected",
    "broken pipe",
    "connection reset by peer",
    "request aborted",
)


def is_error(record: LogRecord) -> bool:
    status = record.status.lower()
    if status in _ERROR_STATUSES:
        return True
    if status in _WARNING_STATUSES:
        return False
    return "error" in record.message.lower()


def is_warning(record: LogRecord) -> bool:
    status = record.status.lower()
    if status in _WARNING_STATUSES:
        return True
    if status in _ERROR_STATUSES:
        return False
    return "warn" in record.message.lower()


def is_benign(record: LogRecord) -> bool:
    text = f"{record.message}\n{record.exception}".lower()
    return any(s in text for s in BENIGN_ERROR_SUBSTRINGS)


def _first_line(text: str, limit: int) -> str:
    return text.strip().split("\n", 1)[0].strip()[:limit]


def signature(record: LogRecord) -> str:
    """Composite dedup key of the exception and message headlines."""
    exception = _first_line(record.exception, 150) or "NoException"
    return f"[EXC]{exception}::[MSG]{_first_line(record.message, 200)}"


def owning_entity(record: LogRecord, entity_ids: list[str]) -> str:
    """Attribute a record to the entity id it is about.

    Structured attributes are trusted first, then a word-boundary search of
    the message and exception text.
    """
    values = {str(v) for v in record.attributes.values() if isinstance(v, (str, int))}
    for entity_id in entity_ids:
        if entity_id in values:
            return entity_id

    text = f"{record.message}\n{record.exception}"
    for entity_id in entity_ids:
        if re.search(rf"(?<![\w-]){re.escape(entity_id)}(?![\w-])", text):
            return entity_id
    return UNATTRIBUTED


def _ranked(counter: Counter, first_seen: dict[str, int]) -> list[tuple[str, int]]:
    return sorted(counter.items(), key=lambda kv: (-kv[1], first_seen[kv[0]], kv[0]))


def _summarize_group(records: list[LogRecord], noun: str, top_n: int) -> list[str]:
    signatures: Counter = Counter()
    services: Counter = Counter()
    first_seen: dict[str, int] = {}
    service_seen: dict[str, int] = {}

    for i, record in enumerate(records):
        key = signature(record)
        signatures[key] += 1
        first_seen.setdefault(key, i)
        service = record.service or "unknown"
        services[service] += 1
        service_seen.setdefault(service, i)

    lines = [f"Top unique {noun} messages (by count):"]
    for key, count in _ranked(signatures, first_seen)[:top_n]:
        lines.append(f'- {count}: "{key}"')
    lines.append(f"{noun.capitalize()}s by service:")
    for service, count in _ranked(services, service_seen):
        lines.append(f"- {service}: {count}")
    return lines


def _analyze(
    logs: list[LogRecord],
    entity_ids: list[str],
    keep,
    noun: str,
    empty: str,
    top_n: int,
) -> str:
    if not logs:
        return NO_LOGS

    selected = [r for r in logs if keep(r)]
    if not selected:
        return empty

    groups: dict[str, list[LogRecord]] = {}
    for record in selected:
        groups.setdefault(owning_entity(record, entity_ids), []).append(record)

    order = [eid for eid in entity_ids if eid in groups]
    if UNATTRIBUTED in groups:
        order.append(UNATTRIBUTED)

    lines = [f"Found {len(selected)} {noun} logs."]
    for entity_id in order:
        records = groups[entity_id]
        header = "Not attributed to a requested entity" if entity_id == UNATTRIBUTED else f"Entity `{entity_id}`"
        lines.append("")
        lines.append(f"{header}: {len(records)} {noun} logs.")
        lines.extend(_summarize_group(records, noun, top_n))
    return "\n".join(lines)


def analyze_errors(logs: list[LogRecord], entity_ids: list[str], top_n: int = 5) -> str:
    """Error/critical logs minus known-benign noise, grouped per owning entity."""
    return _analyze(
        logs, entity_ids, lambda r: is_error(r) and not is_benign(r), "error", NO_ERRORS, top_n,
    )


def analyze_warnings(logs: list[LogRecord], entity_ids: list[str], top_n: int = 5) -> str:
    return _analyze(logs, entity_ids, is_warning, "warning", NO_WARNINGS, top_n)
