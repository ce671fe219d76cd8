"""Datadog log search tool: runs a log query against the Logs v2 search API."""

from __future__ import annotations

import logging
import re
from datetime import datetime

import httpx

from diag_agent.config import settings
from diag_agent.conversation.models import Environment, backend_tier
from diag_agent.conversation.state import default_time_range
from diag_agent.evidence.models import LogRecord

logger = logging.getLogger("diag_agent.evidence.tools")

_RELATIVE_RANGE = re.compile(r"^\s*(\d+)\s*([mhdw])\s*$", re.IGNORECASE)
_ABSOLUTE_RANGE = re.compile(r"^\s*(\S+)\s+to\s+(\S+)\s*$", re.IGNORECASE)


def search_window(time_range: str | None, now: datetime | None = None) -> tuple[str, str]:
    """Translate a lookback like ``6h`` (or ``A to B``) into Datadog from/to bounds.

    Anything else falls back to the weekday-aware default lookback.
    """
    if time_range:
        match = _RELATIVE_RANGE.match(time_range)
        if match:
            return f"now-{match.group(1)}{match.group(2).lower()}", "now"
        match = _ABSOLUTE_RANGE.match(time_range)
        if match:
            return match.group(1), match.group(2)
        logger.warning("Unrecognised time range %r; using the default lookback", time_range)
    return f"now-{default_time_range(now)}", "now"


def environment_filter(environment: Environment | str) -> str:
    return f"env:{backend_tier(environment)}"


def build_query(entity_ids: list[str], extra: str = "") -> str:
    ids = " OR ".join(entity_ids)
    return f"({ids}) {extra}".strip()


def _exception_text(attrs: dict) -> str:
    nested = attrs.get("attributes") or {}
    if attrs.get("exception"):
        return str(attrs["exception"])
    error = nested.get("error")
    if isinstance(error, dict):
        return str(error.get("stack") or error.get("message") or error.get("kind") or "")
    return str(nested.get("exception") or "")


class DatadogLogsClient:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._http = httpx.AsyncClient(
            base_url=f"https://api.{settings.datadog_site}",
            timeout=settings.backend_http_timeout_seconds,
            headers={
                "DD-API-KEY": settings.datadog_api_key,
                "DD-APPLICATION-KEY": settings.datadog_app_key,
            },
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def search(
        self,
        entity_ids: list[str],
        time_range: str | None,
        query: str = "",
        limit: int | None = None,
    ) -> list[LogRecord]:
        """Search logs mentioning any of the ids within the lookback window."""
        start, end = search_window(time_range)
        resp = await self._http.post("/api/v2/logs/events/search", json={
            "filter": {"query": build_query(entity_ids, query), "from": start, "to": end},
            "page": {"limit": limit or settings.log_search_limit},
            "sort": "-timestamp",
        })
        resp.raise_for_status()
        body = resp.json()

        records = []
        for event in body.get("data", []):
            attrs = event.get("attributes", {})
            records.append(LogRecord(
                id=event.get("id", ""),
                status=str(attrs.get("status") or ""),
                service=str(attrs.get("service") or ""),
                message=str(attrs.get("message") or ""),
                exception=_exception_text(attrs),
                timestamp=str(attrs.get("timestamp") or ""),
                host=str(attrs.get("host") or ""),
                tags=attrs.get("tags") or [],
                attributes=attrs.get("attributes") or {},
            ))

        logger.info("Log search returned %d records for %d ids", len(records), len(entity_ids))
        return records
