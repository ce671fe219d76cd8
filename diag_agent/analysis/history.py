"""Entity history analysis: highlights version changes that could explain an issue."""

from __future__ import annotations

from datetime import datetime, timezone

from diag_agent.evidence.models import FieldChange, VersionDiff

NO_CRITICAL_CHANGES = "No potentially critical changes identified in the provided entity history records."
HEADER = "Potentially critical changes identified in entity history:"

EXCLUDED_PREFIXES = ("legacy", "internal_")
EXCLUDED_FIELDS = {"metadata -> lastModifiedDate"}

_CLEARED_VALUES = (None, "", "Set()")
_INACTIVE_VALUES = {"false", "archived", "inactive", "disabled", "expired"}
_ACTIVE_VALUES = {"true", "published", "active", "live", "enabled"}
_STRUCTURAL_FIELDS = ("products", "pricing", "eligibility")


def is_excluded(field_name: str) -> bool:
    return field_name in EXCLUDED_FIELDS or field_name.lower().startswith(EXCLUDED_PREFIXES)


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _change_notes(change: FieldChange, now: datetime) -> list[str]:
    name = change.field_name
    lowered = name.lower()
    notes = []

    if change.new_value in _CLEARED_VALUES:
        notes.append(f"Field **{name}** was cleared/deleted: old value was `{change.old_value}`.")
    else:
        notes.append(
            f"Field **{name}** changed: from `{change.old_value or 'N/A'}` to `{change.new_value or 'N/A'}`."
        )

    if lowered.endswith(("startdate", "start_date")):
        start = _parse_date(change.new_value)
        if start and start > now:
            notes.append(f"  - New start date {change.new_value} is in the future; the entity is not live yet.")
        elif start:
            notes.append(f"  - New start date {change.new_value} is in the past or present.")
    elif lowered.endswith(("enddate", "end_date")):
        end = _parse_date(change.new_value)
        if end and end <= now:
            notes.append(f"  - New end date {change.new_value} is in the past; the entity has expired.")
        elif end:
            notes.append(f"  - New end date {change.new_value} is in the future.")

    if "status" in lowered or "active" in lowered:
        value = (change.new_value or "").strip().lower()
        if value in _INACTIVE_VALUES:
            notes.append(
                f"  - The entity moved to an inactive state (`{change.new_value}`). "
                "**This is highly critical and could explain an issue.**"
            )
        elif value in _ACTIVE_VALUES:
            notes.append(f"  - The entity moved to an active state (`{change.new_value}`).")

    if any(f in lowered for f in _STRUCTURAL_FIELDS):
        notes.append("  - The entity's products, pricing or eligibility structure changed.")

    return notes


def analyze_history(history: list[VersionDiff], now: datetime | None = None) -> str:
    """Render notable field changes, one block per version."""
    now = now or datetime.now(timezone.utc)
    blocks = []

    for version in history:
        lines = []
        for change in version.differences:
            if is_excluded(change.field_name):
                continue
            lines.extend(_change_notes(change, now))
        if not lines:
            continue

        subject = f" to `{version.entity_id}`" if version.entity_id else ""
        blocks.append("\n".join([
            f"--- Change made{subject} (by {version.author} at {version.datetime}) ---",
            *lines,
        ]))

    if not blocks:
        return NO_CRITICAL_CHANGES
    return HEADER + "\n" + "\n\n".join(blocks)
