"""Diagnostic agent: the process_turn / submit_feedback entry points."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from diag_agent.conversation.models import MessageFeedback
from diag_agent.conversation.state import begin_turn
from diag_agent.errors import InvalidTurnError
from diag_agent.interpretation.interpreter import DOMAIN_BRIEF
from diag_agent.memory.service import CaseMemory
from diag_agent.storage.sessions import SessionStore
from diag_agent.telemetry.metrics import persistence_failures_total, turn_duration, turns_total
from diag_agent.workflow.graph import RESPONSE_FALLBACK

logger = logging.getLogger("diag_agent.workflow")


@dataclass
class TurnResult:
    response_text: str
    case_id: str | None = None


class DiagnosticAgent:
    """Runs one graph invocation per user turn on top of a session store.

    Turns for the same session must be submitted one at a time.
    """

    def __init__(self, compiled_graph, sessions: SessionStore, memory: CaseMemory) -> None:
        self._graph = compiled_graph
        self._sessions = sessions
        self._memory = memory

    async def process_turn(self, session_id: str, user_text: str) -> TurnResult:
        if not user_text or not user_text.strip():
            raise InvalidTurnError("A turn needs non-empty query text")

        started = time.monotonic()
        try:
            previous = await self._sessions.get(session_id)
        except Exception:
            logger.exception("Session load failed for %s; starting a fresh conversation", session_id)
            persistence_failures_total.labels(kind="session").inc()
            previous = None
        state = begin_turn(previous, user_text.strip(), DOMAIN_BRIEF)

        result = await self._graph.ainvoke(state)
        try:
            await self._sessions.put(session_id, result)
        except Exception:
            logger.exception("Session save failed for %s", session_id)
            persistence_failures_total.labels(kind="session").inc()

        case_id = result.get("case_id")
        turns_total.labels(outcome="completed" if case_id else "clarification").inc()
        turn_duration.observe(time.monotonic() - started)
        logger.info("Turn complete: session=%s case=%s", session_id, case_id or "-")

        return TurnResult(response_text=result.get("response") or RESPONSE_FALLBACK, case_id=case_id)

    async def submit_feedback(
        self,
        case_id: str,
        feedbacks: dict[str, MessageFeedback | dict],
        reward: float | None = None,
    ) -> bool:
        """Attach feedback to a stored case; acknowledges with True when applied."""
        parsed = {k: MessageFeedback.model_validate(v) for k, v in feedbacks.items()}
        return await self._memory.update_case_with_feedback(case_id, parsed, reward)
