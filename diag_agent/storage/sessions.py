"""Session stores: conversation state carried between turns."""

from __future__ import annotations

import copy
import json
from typing import Protocol

import redis.asyncio as aioredis
from langchain_core.messages import messages_from_dict, messages_to_dict

from diag_agent.config import settings
from diag_agent.conversation.models import EntityType, Environment, MessageFeedback
from diag_agent.conversation.state import ConversationState, carry_over
from diag_agent.storage.redis_client import redis_key


class SessionStore(Protocol):
    async def get(self, session_id: str) -> ConversationState | None: ...

    async def put(self, session_id: str, state: ConversationState) -> None: ...


class InMemorySessionStore:
    def __init__(self) -> None:
        self._sessions: dict[str, ConversationState] = {}

    async def get(self, session_id: str) -> ConversationState | None:
        state = self._sessions.get(session_id)
        return copy.deepcopy(state) if state is not None else None

    async def put(self, session_id: str, state: ConversationState) -> None:
        self._sessions[session_id] = copy.deepcopy(carry_over(state))


def dump_session(state: ConversationState) -> str:
    state = carry_over(state)
    environment = state.get("environment")
    entity_type = state.get("entity_type")
    return json.dumps({
        "messages": messages_to_dict(state.get("messages", [])),
        "entity_ids": state.get("entity_ids", []),
        "entity_type": entity_type.value if entity_type else None,
        "environment": environment.value if environment else None,
        "time_range": state.get("time_range"),
        "message_feedbacks": {
            k: v.model_dump(mode="json", by_alias=True) for k, v in (state.get("message_feedbacks") or {}).items()
        },
        "overall_rl_reward": state.get("overall_rl_reward"),
    })


def load_session(raw: str) -> ConversationState:
    data = json.loads(raw)
    return {
        "messages": messages_from_dict(data.get("messages", [])),
        "entity_ids": data.get("entity_ids") or [],
        "entity_type": EntityType(data["entity_type"]) if data.get("entity_type") else EntityType.UNKNOWN,
        "environment": Environment(data["environment"]) if data.get("environment") else None,
        "time_range": data.get("time_range"),
        "message_feedbacks": {
            k: MessageFeedback.model_validate(v) for k, v in (data.get("message_feedbacks") or {}).items()
        },
        "overall_rl_reward": data.get("overall_rl_reward"),
    }


class RedisSessionStore:
    """One JSON document per session, expiring after ``session_ttl_seconds`` idle."""

    def __init__(self, redis: aioredis.Redis, ttl_seconds: int | None = None) -> None:
        self._redis = redis
        self._ttl = ttl_seconds or settings.session_ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return redis_key("session", session_id)

    async def get(self, session_id: str) -> ConversationState | None:
        raw = await self._redis.get(self._key(session_id))
        return load_session(raw) if raw else None

    async def put(self, session_id: str, state: ConversationState) -> None:
        await self._redis.set(self._key(session_id), dump_session(state), ex=self._ttl)
