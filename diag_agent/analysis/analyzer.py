"""Evidence analyzer: runs the fixed analyzers over the evidence fetched this turn."""

from __future__ import annotations

import logging
from datetime import datetime

from diag_agent.analysis.history import analyze_history
from diag_agent.analysis.logs import analyze_errors, analyze_warnings
from diag_agent.analysis.offers import analyze_offer_prices, compare_offers
from diag_agent.config import settings
from diag_agent.conversation.messages import status_message
from diag_agent.conversation.models import EntityType, QueryCategory
from diag_agent.conversation.state import ConversationState

logger = logging.getLogger("diag_agent.analysis")

NO_HISTORY = "No entity history records were available for analysis."


def analyze_evidence(state: ConversationState, now: datetime | None = None) -> dict:
    entity_ids = list(state.get("entity_ids") or [])
    logs = state.get("logs") or []
    results: dict[str, str] = {}
    tools: list[str] = []

    if entity_ids:
        results["log_errors"] = analyze_errors(logs, entity_ids, top_n=settings.log_top_n)
        results["log_warnings"] = analyze_warnings(logs, entity_ids, top_n=settings.log_top_n)
        tools.append("log_analysis")

        history = state.get("entity_history") or []
        results["entity_history"] = analyze_history(history, now=now) if history else NO_HISTORY
        tools.append("history_analysis")

    if state.get("entity_type") == EntityType.OFFER and entity_ids:
        catalog = {o.id: o for o in state.get("catalog_offers") or []}
        service = {o.id: o for o in state.get("service_offers") or []}
        for offer_id in entity_ids:
            results[f"offer_comparison:{offer_id}"] = compare_offers(
                offer_id, service.get(offer_id), catalog.get(offer_id),
            )
        tools.append("offer_comparison")

        if state.get("query_category") == QueryCategory.OFFER_PRICE:
            results["offer_prices"] = analyze_offer_prices(state.get("offer_prices") or [])
            tools.append("price_analysis")

    logger.info("Analysis complete: %s", ", ".join(sorted(results)) or "nothing to analyze")
    return {
        "analysis_results": results,
        "tools_used": tools,
        "messages": [status_message("Analysis of the fetched evidence is complete.")],
    }
