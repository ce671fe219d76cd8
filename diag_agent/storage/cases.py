"""Case stores: persistence of diagnostic cases and patterns."""

from __future__ import annotations

from typing import Protocol

import redis.asyncio as aioredis

from diag_agent.conversation.models import EntityType, Environment, MessageFeedback, QueryCategory
from diag_agent.memory.models import DiagnosticCase, DiagnosticPattern, pattern_id_for
from diag_agent.storage.redis_client import redis_key


class CaseStore(Protocol):
    async def ping(self) -> None: ...

    async def store_case(self, case: DiagnosticCase) -> None: ...

    async def get_case(self, case_id: str) -> DiagnosticCase | None: ...

    async def get_cases(self, case_ids: list[str]) -> list[DiagnosticCase]: ...

    async def find_similar_cases(
        self, category: QueryCategory, entity_type: EntityType, environment: Environment, limit: int,
    ) -> list[DiagnosticCase]: ...

    async def update_case_with_feedback(
        self, case_id: str, feedbacks: dict[str, MessageFeedback], reward: float | None = None,
    ) -> bool: ...

    async def get_pattern(
        self, category: QueryCategory, entity_type: EntityType, environment: Environment,
    ) -> DiagnosticPattern | None: ...

    async def store_pattern(self, pattern: DiagnosticPattern) -> None: ...


def apply_feedback(case: DiagnosticCase, feedbacks: dict[str, MessageFeedback], reward: float | None) -> DiagnosticCase:
    """Merge feedback per event id; the reward is replaced only when given."""
    update: dict = {"message_feedbacks": {**case.message_feedbacks, **feedbacks}}
    if reward is not None:
        update["overall_rl_reward"] = reward
    return case.model_copy(update=update)


class InMemoryCaseStore:
    def __init__(self) -> None:
        self.cases: dict[str, DiagnosticCase] = {}
        self.patterns: dict[str, DiagnosticPattern] = {}

    async def ping(self) -> None:
        return None

    async def store_case(self, case: DiagnosticCase) -> None:
        self.cases[case.case_id] = case

    async def get_case(self, case_id: str) -> DiagnosticCase | None:
        return self.cases.get(case_id)

    async def get_cases(self, case_ids: list[str]) -> list[DiagnosticCase]:
        return [self.cases[cid] for cid in case_ids if cid in self.cases]

    async def find_similar_cases(self, category, entity_type, environment, limit: int = 5) -> list[DiagnosticCase]:
        matches = [
            c for c in self.cases.values()
            if c.category == category and c.entity_type == entity_type and c.environment == environment
        ]
        matches.sort(key=lambda c: c.timestamp, reverse=True)
        return matches[:limit]

    async def update_case_with_feedback(self, case_id, feedbacks, reward=None) -> bool:
        case = self.cases.get(case_id)
        if case is None:
            return False
        self.cases[case_id] = apply_feedback(case, feedbacks, reward)
        return True

    async def get_pattern(self, category, entity_type, environment) -> DiagnosticPattern | None:
        return self.patterns.get(pattern_id_for(category, entity_type, environment))

    async def store_pattern(self, pattern: DiagnosticPattern) -> None:
        self.patterns[pattern.pattern_id] = pattern


class RedisCaseStore:
    """Cases as JSON documents plus a recency index per (category, type, environment)."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    @staticmethod
    def _case_key(case_id: str) -> str:
        return redis_key("case", case_id)

    @staticmethod
    def _index_key(category, entity_type, environment) -> str:
        return redis_key("cases", pattern_id_for(category, entity_type, environment))

    @staticmethod
    def _pattern_key(pattern_id: str) -> str:
        return redis_key("pattern", pattern_id)

    async def ping(self) -> None:
        await self._redis.ping()

    async def store_case(self, case: DiagnosticCase) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._case_key(case.case_id), case.model_dump_json(by_alias=True))
            pipe.zadd(
                self._index_key(case.category, case.entity_type, case.environment),
                {case.case_id: case.timestamp.timestamp()},
            )
            await pipe.execute()

    async def get_case(self, case_id: str) -> DiagnosticCase | None:
        raw = await self._redis.get(self._case_key(case_id))
        return DiagnosticCase.model_validate_json(raw) if raw else None

    async def get_cases(self, case_ids: list[str]) -> list[DiagnosticCase]:
        if not case_ids:
            return []
        raws = await self._redis.mget([self._case_key(cid) for cid in case_ids])
        return [DiagnosticCase.model_validate_json(r) for r in raws if r]

    async def find_similar_cases(self, category, entity_type, environment, limit: int = 5) -> list[DiagnosticCase]:
        ids = await self._redis.zrevrange(self._index_key(category, entity_type, environment), 0, limit - 1)
        return await self.get_cases(list(ids))

    async def update_case_with_feedback(self, case_id, feedbacks, reward=None) -> bool:
        case = await self.get_case(case_id)
        if case is None:
            return False
        updated = apply_feedback(case, feedbacks, reward)
        await self._redis.set(self._case_key(case_id), updated.model_dump_json(by_alias=True))
        return True

    async def get_pattern(self, category, entity_type, environment) -> DiagnosticPattern | None:
        raw = await self._redis.get(self._pattern_key(pattern_id_for(category, entity_type, environment)))
        return DiagnosticPattern.model_validate_json(raw) if raw else None

    async def store_pattern(self, pattern: DiagnosticPattern) -> None:
        await self._redis.set(self._pattern_key(pattern.pattern_id), pattern.model_dump_json(by_alias=True))
