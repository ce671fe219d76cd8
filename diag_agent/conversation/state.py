"""Conversation state: the typed record that flows through the diagnostic graph."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, TypedDict

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from diag_agent.conversation.models import EntityType, Environment, MessageFeedback, QueryCategory
from diag_agent.evidence.models import CatalogOffer, LogRecord, OfferPrice, ServiceOffer, VersionDiff
from diag_agent.memory.models import DiagnosticCase, DiagnosticPattern


def _append(left: list, right: list) -> list:
    return (left or []) + (right or [])


def _merge_dicts(left: dict, right: dict) -> dict:
    return {**(left or {}), **(right or {})}


class ConversationState(TypedDict, total=False):
    # Transcript
    messages: Annotated[list[BaseMessage], _append]
    user_query: str

    # Sticky intent
    entity_ids: list[str]
    entity_type: EntityType
    environment: Environment | None  # None until the first extraction
    time_range: str | None
    query_category: QueryCategory | None

    # Evidence (reset every turn)
    logs: list[LogRecord]
    entity_history: list[VersionDiff]
    catalog_offers: list[CatalogOffer]
    service_offers: list[ServiceOffer]
    offer_prices: list[OfferPrice]
    fetch_status: Annotated[dict[str, str], _merge_dicts]
    tools_used: Annotated[list[str], _append]

    # Analysis and output
    analysis_results: Annotated[dict[str, str], _merge_dicts]
    final_summary: str | None
    response: str | None
    case_id: str | None

    # Case memory context
    similar_cases: list[DiagnosticCase]
    relevant_pattern: DiagnosticPattern | None

    # Feedback
    message_feedbacks: dict[str, MessageFeedback]
    overall_rl_reward: float | None


# Fields that survive from one turn to the next.
CARRIED_FIELDS = (
    "messages",
    "entity_ids",
    "entity_type",
    "environment",
    "time_range",
    "message_feedbacks",
    "overall_rl_reward",
)


def default_time_range(now: datetime | None = None) -> str:
    """Look back far enough on weekends to cover the last working day."""
    weekday = (now or datetime.now()).weekday()
    if weekday == 5:
        return "48h"
    if weekday == 6:
        return "72h"
    return "24h"


def merge_turn(previous: ConversationState, extracted) -> dict:
    """Fold a fresh extraction into the sticky fields of the previous state.

    New concrete values win; empty or ``unknown`` extractions keep what the
    conversation already established.
    """
    entity_ids = list(extracted.entity_ids) if extracted.entity_ids else list(previous.get("entity_ids") or [])

    if extracted.entity_type != EntityType.UNKNOWN:
        entity_type = extracted.entity_type
    else:
        entity_type = previous.get("entity_type") or EntityType.UNKNOWN

    if extracted.environment != Environment.UNKNOWN:
        environment = extracted.environment
    else:
        environment = previous.get("environment") or Environment.UNKNOWN

    time_range = extracted.time_range or previous.get("time_range") or default_time_range()

    return {
        "query_category": extracted.category,
        "entity_ids": entity_ids,
        "entity_type": entity_type,
        "environment": environment,
        "time_range": time_range,
    }


def begin_turn(previous: ConversationState | None, user_text: str, system_prompt: str) -> ConversationState:
    """Build the graph input for a new turn, clearing per-turn fields."""
    if previous:
        messages = [*previous.get("messages", []), HumanMessage(content=user_text)]
    else:
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_text)]
    previous = previous or {}

    return {
        "messages": messages,
        "user_query": user_text,
        "entity_ids": list(previous.get("entity_ids") or []),
        "entity_type": previous.get("entity_type") or EntityType.UNKNOWN,
        "environment": previous.get("environment"),
        "time_range": previous.get("time_range"),
        "query_category": None,
        "logs": [],
        "entity_history": [],
        "catalog_offers": [],
        "service_offers": [],
        "offer_prices": [],
        "fetch_status": {},
        "tools_used": [],
        "analysis_results": {},
        "final_summary": None,
        "response": None,
        "case_id": None,
        "similar_cases": [],
        "relevant_pattern": None,
        "message_feedbacks": dict(previous.get("message_feedbacks") or {}),
        "overall_rl_reward": previous.get("overall_rl_reward"),
    }


def carry_over(state: ConversationState) -> ConversationState:
    return {k: state[k] for k in CARRIED_FIELDS if k in state}
