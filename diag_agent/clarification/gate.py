"""Clarification gate: decides whether enough is known to start fetching evidence."""

from __future__ import annotations

from enum import Enum

from diag_agent.conversation.models import EntityType, Environment
from diag_agent.conversation.state import ConversationState


class GateDecision(str, Enum):
    PROCEED = "proceed"
    ASK_ENTITY_TYPE = "ask_entity_type"
    ASK_ENVIRONMENT = "ask_environment"


def needs_entity_type(state: ConversationState) -> bool:
    return bool(state.get("entity_ids")) and state.get("entity_type", EntityType.UNKNOWN) == EntityType.UNKNOWN


def needs_environment(state: ConversationState) -> bool:
    return state.get("environment") in (None, Environment.UNKNOWN)


def evaluate(state: ConversationState) -> GateDecision:
    """Entity type is asked for first; environment second."""
    if needs_entity_type(state):
        return GateDecision.ASK_ENTITY_TYPE
    if needs_environment(state):
        return GateDecision.ASK_ENVIRONMENT
    return GateDecision.PROCEED
