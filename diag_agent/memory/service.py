"""Case memory: retrieval of similar past cases and recording of finished episodes."""

from __future__ import annotations

import logging
import time
from uuid import uuid4

from diag_agent.config import settings
from diag_agent.conversation.models import EntityType, Environment, MessageFeedback, QueryCategory
from diag_agent.conversation.state import ConversationState
from diag_agent.memory.knowledge import CaseIndex
from diag_agent.memory.models import DiagnosticCase, DiagnosticPattern, record_outcome
from diag_agent.storage.cases import CaseStore
from diag_agent.telemetry.metrics import persistence_failures_total

logger = logging.getLogger("diag_agent.memory")


def new_case_id() -> str:
    return f"case_{int(time.time() * 1000)}_{uuid4().hex[:8]}"


class CaseMemory:
    def __init__(self, store: CaseStore, index: CaseIndex | None = None) -> None:
        self._store = store
        self._index = index

    async def retrieve_similar_cases(
        self,
        category: QueryCategory,
        entity_type: EntityType,
        environment: Environment,
        limit: int | None = None,
        query: str | None = None,
    ) -> list[DiagnosticCase]:
        """Most relevant past cases with the same category, entity type and environment.

        With a semantic index and a query text, nearest neighbours come
        first; otherwise (or when the index has nothing) the most recent
        exact matches are returned.
        """
        limit = limit or settings.similar_case_limit
        if self._index is not None and query:
            try:
                ids = self._index.search(query, category, entity_type, environment, n_results=limit)
                cases = await self._store.get_cases(ids)
                if cases:
                    return cases
            except Exception:
                logger.exception("Case index search failed; using exact matching")
        return await self._store.find_similar_cases(category, entity_type, environment, limit)

    async def get_pattern(
        self, category: QueryCategory, entity_type: EntityType, environment: Environment,
    ) -> DiagnosticPattern | None:
        return await self._store.get_pattern(category, entity_type, environment)

    async def store_case_from_state(self, state: ConversationState) -> str | None:
        """Persist the finished turn as a case and fold it into its pattern.

        Returns the new case id, or None when the turn lacks a query or a
        category. A pattern failure is logged and does not undo the case.
        """
        category = state.get("query_category")
        user_query = state.get("user_query")
        if not user_query or category is None:
            logger.info("Skipping case storage: turn has no query or category")
            return None

        case = DiagnosticCase(
            case_id=new_case_id(),
            category=category,
            entity_type=state.get("entity_type") or EntityType.UNKNOWN,
            entity_ids=list(state.get("entity_ids") or []),
            environment=state.get("environment") or Environment.UNKNOWN,
            user_query=user_query,
            tools_used=list(dict.fromkeys(state.get("tools_used") or [])),
            final_summary=state.get("final_summary") or "",
            overall_rl_reward=state.get("overall_rl_reward") or 0.0,
            message_feedbacks=dict(state.get("message_feedbacks") or {}),
        )
        await self._store.store_case(case)
        logger.info("Stored case %s (%s)", case.case_id, case.category.value)

        if self._index is not None:
            try:
                self._index.add_case(case)
            except Exception:
                logger.exception("Failed to index case %s", case.case_id)
                persistence_failures_total.labels(kind="case_index").inc()

        try:
            await self.update_pattern(case)
        except Exception:
            logger.exception("Failed to update pattern for case %s", case.case_id)
            persistence_failures_total.labels(kind="pattern").inc()

        return case.case_id

    async def update_pattern(self, case: DiagnosticCase) -> DiagnosticPattern:
        existing = await self._store.get_pattern(case.category, case.entity_type, case.environment)
        pattern = record_outcome(existing, case, is_success=case.overall_rl_reward > 0)
        await self._store.store_pattern(pattern)
        return pattern

    async def update_case_with_feedback(
        self,
        case_id: str,
        feedbacks: dict[str, MessageFeedback],
        reward: float | None = None,
    ) -> bool:
        """Merge feedback into a stored case; False when it cannot be applied."""
        try:
            updated = await self._store.update_case_with_feedback(case_id, feedbacks, reward)
        except Exception:
            logger.exception("Failed to record feedback for case %s", case_id)
            persistence_failures_total.labels(kind="feedback").inc()
            return False

        if not updated:
            logger.warning("Feedback for unknown case %s ignored", case_id)
        return updated
