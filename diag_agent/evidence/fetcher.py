"""Parallel evidence fetcher: fans out to every relevant backend with per-operation isolation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from langchain_core.messages import BaseMessage, HumanMessage
from pydantic import BaseModel, ConfigDict

from diag_agent.config import settings
from diag_agent.conversation.messages import dedupe_messages, status_message
from diag_agent.conversation.models import EntityType, Environment, QueryCategory, backend_tier
from diag_agent.conversation.state import ConversationState
from diag_agent.evidence.tools.logs import environment_filter
from diag_agent.telemetry.metrics import evidence_fetches_total

logger = logging.getLogger("diag_agent.evidence")

# How each patch field is folded into the combined patch.
_OVERWRITE = {"logs", "entity_history"}
_CONCAT = {"catalog_offers", "service_offers", "offer_prices"}
_SHALLOW_MERGE = {"analysis_results", "fetch_status"}


class FetchRequest(BaseModel):
    """Read-only snapshot of the state fields the operations need."""

    model_config = ConfigDict(frozen=True)

    entity_ids: tuple[str, ...] = ()
    entity_type: EntityType = EntityType.UNKNOWN
    environment: Environment | None = None
    time_range: str | None = None
    query_category: QueryCategory | None = None
    turn: int = 0

    @classmethod
    def from_state(cls, state: ConversationState) -> "FetchRequest":
        turn = sum(1 for m in state.get("messages", []) if isinstance(m, HumanMessage))
        return cls(
            entity_ids=tuple(state.get("entity_ids") or ()),
            entity_type=state.get("entity_type") or EntityType.UNKNOWN,
            environment=state.get("environment"),
            time_range=state.get("time_range"),
            query_category=state.get("query_category"),
            turn=turn,
        )


@dataclass
class FetchOperation:
    name: str
    label: str
    status_key: str
    call_id: str
    run: Callable[[], Awaitable[dict]]


def merge_patches(existing: list[BaseMessage], patches: list[dict]) -> dict:
    """Combine operation patches into one state update.

    Human messages are dropped and assistant messages are deduplicated
    against the running transcript and against each other.
    """
    merged: dict = {"fetch_status": {}, "analysis_results": {}}
    incoming: list[BaseMessage] = []

    for patch in patches:
        for key, value in patch.items():
            if key == "messages":
                incoming.extend(m for m in value if not isinstance(m, HumanMessage))
            elif key in _OVERWRITE:
                merged[key] = value
            elif key in _CONCAT:
                merged.setdefault(key, []).extend(value)
            elif key in _SHALLOW_MERGE:
                merged[key].update(value)
            else:
                raise ValueError(f"Unexpected field in fetch patch: {key}")

    merged["messages"] = dedupe_messages(existing, incoming)
    return merged


class EvidenceFetcher:
    """Selects the fetch operations for a turn and runs them concurrently."""

    def __init__(self, logs, history, catalog, offer_service, pricing, timeout: float | None = None) -> None:
        self._logs = logs
        self._history = history
        self._catalog = catalog
        self._offer_service = offer_service
        self._pricing = pricing
        self._timeout = timeout or settings.fetch_timeout_seconds

    # ── Operation selection ────────────────────────────────────────

    def plan(self, request: FetchRequest) -> list[FetchOperation]:
        if not request.entity_ids:
            return []

        def op(name: str, label: str, key: str, run) -> FetchOperation:
            return FetchOperation(name, label, key, f"{name}:{request.turn}:{key}", run)

        ops = [
            op("entity_history", "entity history", "entity_history", lambda: self._fetch_history(request)),
            op("log_search", "logs", "logs", lambda: self._fetch_logs(request)),
        ]

        if request.entity_type == EntityType.OFFER:
            for offer_id in request.entity_ids:
                ops.append(op(
                    "catalog_offer", f"catalog details for offer `{offer_id}`", f"catalog_offer:{offer_id}",
                    lambda oid=offer_id: self._fetch_catalog_offer(oid, request),
                ))
            ops.append(op(
                "offer_service", "offer service details", "offer_service",
                lambda: self._fetch_service_offers(request),
            ))
            if request.query_category == QueryCategory.OFFER_PRICE:
                for offer_id in request.entity_ids:
                    ops.append(op(
                        "offer_price", f"price details for offer `{offer_id}`", f"offer_price:{offer_id}",
                        lambda oid=offer_id: self._fetch_offer_price(oid, request),
                    ))
        return ops

    # ── Entry point ────────────────────────────────────────────────

    async def fetch(self, state: ConversationState) -> dict:
        request = FetchRequest.from_state(state)
        existing = state.get("messages", [])

        if not request.entity_ids:
            note = status_message(
                "No entity ids were identified, so no evidence was fetched.",
                f"no_evidence:{request.turn}",
            )
            return {"messages": dedupe_messages(existing, [note])}

        # An unroutable environment here means the gate was bypassed.
        backend_tier(request.environment)

        operations = self.plan(request)
        logger.info("Fetching evidence: %s", ", ".join(o.status_key for o in operations))

        patches = await asyncio.gather(*(self._run_isolated(o) for o in operations))
        merged = merge_patches(existing, list(patches))
        merged["tools_used"] = list(dict.fromkeys(o.name for o in operations))
        return merged

    async def _run_isolated(self, operation: FetchOperation) -> dict:
        try:
            patch = await asyncio.wait_for(operation.run(), timeout=self._timeout)
        except asyncio.TimeoutError:
            reason = f"timed out after {self._timeout:g}s"
        except Exception as exc:
            logger.exception("Fetch operation failed: %s", operation.status_key)
            reason = str(exc) or type(exc).__name__
        else:
            evidence_fetches_total.labels(operation=operation.name, status="ok").inc()
            return patch

        evidence_fetches_total.labels(operation=operation.name, status="failed").inc()
        note = f"Could not retrieve {operation.label} due to an unexpected error. Error: {reason}"
        logger.warning(note)
        return {
            "fetch_status": {operation.status_key: note},
            "messages": [status_message(note, operation.call_id)],
        }

    # ── Operations ─────────────────────────────────────────────────

    async def _fetch_history(self, request: FetchRequest) -> dict:
        results = await asyncio.gather(
            *(
                self._history.fetch_history(request.entity_type, eid, request.environment)
                for eid in request.entity_ids
            ),
            return_exceptions=True,
        )

        diffs = []
        failures = []
        for entity_id, result in zip(request.entity_ids, results):
            if isinstance(result, Exception):
                failures.append((entity_id, result))
            elif isinstance(result, BaseException):
                raise result
            else:
                diffs.extend(result)

        if failures and len(failures) == len(results):
            raise failures[0][1]

        status = f"Retrieved {len(diffs)} entity history records."
        for entity_id, exc in failures:
            status += f" Could not retrieve entity history for `{entity_id}`: {exc}"

        return {
            "entity_history": diffs,
            "fetch_status": {"entity_history": status},
            "messages": [status_message(
                "Fetched entity history. Proceeding to parallel analysis.",
                f"entity_history:{request.turn}:entity_history",
            )],
        }

    async def _fetch_logs(self, request: FetchRequest) -> dict:
        records = await self._logs.search(
            list(request.entity_ids), request.time_range, environment_filter(request.environment),
        )
        return {
            "logs": records,
            "fetch_status": {"logs": f"Retrieved {len(records)} log records."},
            "messages": [status_message(
                f"Fetched {len(records)} log records for the requested entities.",
                f"log_search:{request.turn}:logs",
            )],
        }

    async def _fetch_catalog_offer(self, offer_id: str, request: FetchRequest) -> dict:
        key = f"catalog_offer:{offer_id}"
        offer = await self._catalog.fetch_offer(offer_id, request.environment)
        call_id = f"catalog_offer:{request.turn}:{key}"
        if offer is None:
            note = f"Offer `{offer_id}` was not found in the catalog."
            return {"fetch_status": {key: note}, "messages": [status_message(note, call_id)]}
        return {
            "catalog_offers": [offer],
            "fetch_status": {key: f"Retrieved catalog details for offer `{offer_id}`."},
            "messages": [status_message(f"Successfully fetched details for offer `{offer_id}`.", call_id)],
        }

    async def _fetch_service_offers(self, request: FetchRequest) -> dict:
        offers = await self._offer_service.fetch_offers(list(request.entity_ids), request.environment)
        found = {o.id for o in offers}
        missing = [oid for oid in request.entity_ids if oid not in found]

        lines = [f"- `{o.id}`: {o.name or 'unnamed'} ({len(o.product_ids)} products)" for o in offers]
        summary = (
            f"Offer service lookup completed for {len(request.entity_ids)} offers. "
            f"Successfully retrieved {len(offers)}."
        )
        if missing:
            summary += f" No record for: {', '.join(missing)}."
        if lines:
            summary += "\n" + "\n".join(lines)

        return {
            "service_offers": offers,
            "fetch_status": {"offer_service": f"Retrieved {len(offers)} of {len(request.entity_ids)} offers."},
            "analysis_results": {"offer_service": summary},
            "messages": [status_message(summary.split("\n", 1)[0], f"offer_service:{request.turn}:offer_service")],
        }

    async def _fetch_offer_price(self, offer_id: str, request: FetchRequest) -> dict:
        key = f"offer_price:{offer_id}"
        price = await self._pricing.fetch_offer_price(offer_id, request.environment)
        return {
            "offer_prices": [price],
            "fetch_status": {key: f"Retrieved price details for offer `{offer_id}`."},
            "messages": [status_message(
                f"Fetched price details for offer `{offer_id}`.",
                f"offer_price:{request.turn}:{key}",
            )],
        }
