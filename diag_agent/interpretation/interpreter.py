"""Query interpreter: turns the latest user utterance into structured intent."""

from __future__ import annotations

import logging
import re

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from diag_agent.conversation.messages import content_text, render_transcript
from diag_agent.conversation.models import EntityType, Environment, QueryCategory
from diag_agent.conversation.state import ConversationState, merge_turn
from diag_agent.interpretation.models import ExtractionResult
from diag_agent.telemetry.metrics import llm_fallbacks_total

logger = logging.getLogger("diag_agent.interpretation")

DOMAIN_BRIEF = """\
You are a diagnostic assistant for a streaming platform's commerce catalog. You help \
employees troubleshoot offers, campaigns, products and SKUs whose problems usually come \
from configuration, publishing or data synchronisation in the internal entity tooling.

Problem categories:
- ENTITY_STATUS: unexpected status or availability (expired, live when it should not be, \
codes that cannot be redeemed, entitlement changes).
- UI_ISSUE: the offer management UI fails to load, save or publish, or shows errors.
- DATA_INCONSISTENCY: the same entity differs between environments or systems.
- DATA_MAPPING: broken links between entities or id systems (for example unified vs legacy \
ids, duplicate legacy values).
- ENTITY_CONFIGURATION: an entity carries a value or association the user did not expect.
- OFFER_PRICE: wrong, missing or stale prices and promotions. Third-party (3PP) and in-app \
(IAP) offers are priced outside our systems, so missing internal prices are normal for them.
- SYSTEM_BEHAVIOR: questions about how the system or its data model works.
- GENERAL_QUESTION: broad informational questions that are not about a specific fault.
- UNKNOWN_CATEGORY: anything that fits none of the above.

Environments are production, staging (also called QA) and development. Always refer to \
entities by their full, unshortened ids.
"""

_EXTRACTION_INSTRUCTIONS = """
Classify the current user query and extract its details, taking the whole conversation \
into account. Respond ONLY with valid JSON matching this schema:
{
  "category": "one of the problem categories above",
  "entity_ids": ["full entity ids mentioned by the user"],
  "entity_type": "campaign | offer | product | sku | general | unknown",
  "environment": "production | staging | development | unknown",
  "time_range": "lookback such as 30m, 6h or 2d, or null if the user gave none",
  "initial_response": "one or two sentences acknowledging the request and your plan"
}

Rules:
- A mention of QA means staging.
- Use "unknown" for the environment unless the user (now or earlier) clearly named one.
- Price questions are about offers: set entity_type to "offer".
"""

ENVIRONMENT_QUESTION = " Which environment (production, staging, or development) is this in?"
ENTITY_TYPE_QUESTION = " What type of entity is this (offer, campaign, product, or sku)?"

# Whole words only: "product" and "device" must not count as naming an environment.
_ENVIRONMENT_WORDS = re.compile(r"\b(environments?|production|prod|staging|qa|development|dev)\b", re.IGNORECASE)
_ENTITY_TYPE_WORDS = re.compile(r"\b(entity type|type of entity|kind of entity|what type)\b", re.IGNORECASE)
_NO_FOLLOW_UP = (QueryCategory.UNKNOWN_CATEGORY, QueryCategory.GENERAL_QUESTION)


async def extract_intent(llm: BaseChatModel, history: str, query: str) -> ExtractionResult:
    """Single structured LLM call; raises on model or schema failure."""
    response = await llm.ainvoke([
        SystemMessage(content=DOMAIN_BRIEF + _EXTRACTION_INSTRUCTIONS),
        HumanMessage(content=f"Conversation history:\n{history or '(none)'}\n\nCurrent user query: {query}"),
    ])

    raw = content_text(response.content).strip()
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[1].rsplit("```", 1)[0]

    return ExtractionResult.model_validate_json(raw)


def clarifying_response(initial_response: str, merged: dict) -> str:
    """Append entity-type and environment questions the model did not already ask."""
    text = initial_response
    if merged["query_category"] in _NO_FOLLOW_UP:
        return text

    if (
        merged["entity_ids"]
        and merged["entity_type"] == EntityType.UNKNOWN
        and not _ENTITY_TYPE_WORDS.search(text)
    ):
        text += ENTITY_TYPE_QUESTION
    if merged["environment"] == Environment.UNKNOWN and not _ENVIRONMENT_WORDS.search(text):
        text += ENVIRONMENT_QUESTION
    return text


async def interpret_query(llm: BaseChatModel, state: ConversationState) -> dict:
    """Extract intent for the latest human message and merge it into the conversation."""
    messages = state.get("messages", [])
    if not messages or not isinstance(messages[-1], HumanMessage):
        logger.warning("Last message is not from the user; nothing to interpret")
        return {}

    query = content_text(messages[-1].content)
    try:
        extraction = await extract_intent(llm, render_transcript(messages[:-1]), query)
    except Exception:
        logger.exception("Intent extraction failed; falling back to UNKNOWN_CATEGORY")
        llm_fallbacks_total.labels(stage="interpretation").inc()
        extraction = ExtractionResult.not_understood()

    merged = merge_turn(state, extraction)
    reply = clarifying_response(extraction.initial_response, merged)

    logger.info(
        "Query interpreted: category=%s type=%s env=%s ids=%s",
        merged["query_category"].value,
        merged["entity_type"].value,
        merged["environment"].value,
        merged["entity_ids"],
    )
    return {**merged, "messages": [AIMessage(content=reply)], "response": reply}
