"""Findings summarizer: one LLM call that turns analyzed evidence into a diagnosis."""

from __future__ import annotations

import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from diag_agent.conversation.messages import content_text, without_system
from diag_agent.conversation.state import ConversationState
from diag_agent.memory.models import DiagnosticCase, DiagnosticPattern
from diag_agent.telemetry.metrics import llm_fallbacks_total

logger = logging.getLogger("diag_agent.reporting")

SUMMARY_FAILED = "Failed to generate a summary due to an internal error."
SUMMARY_FAILED_MESSAGE = "I encountered an error while summarizing the findings. Please check the logs."

_SYSTEM_PROMPT = """\
You summarize diagnostic findings about streaming-platform commerce entities. Review the \
conversation, the retrieval status of each evidence source and the analysis results, then \
write a concise, actionable diagnosis in Markdown: a heading, the identified problem, the \
supporting evidence, and recommended next steps.

Always use full, unshortened entity ids. If an evidence source could not be retrieved, say \
so instead of guessing what it would have shown.

Offers of type 3PP (third-party partner) or IAP (in-app purchase) are priced outside our \
systems. Missing internal prices for them are expected: do not flag them as issues and do \
not recommend fixing them.
"""

_MAX_HISTORICAL_CASES = 3


def _historical_context(cases: list[DiagnosticCase], pattern: DiagnosticPattern | None) -> str:
    lines = []
    if cases:
        lines.append("Similar past cases:")
        for i, case in enumerate(cases[:_MAX_HISTORICAL_CASES], 1):
            if case.overall_rl_reward > 0:
                outcome = "resolved (positive feedback)"
            elif case.overall_rl_reward < 0:
                outcome = "unresolved (negative feedback)"
            else:
                outcome = "no feedback yet"
            lines.append(f"{i}. Query: {case.user_query}")
            lines.append(f"   Diagnosis: {case.final_summary[:500]}")
            lines.append(f"   Tools used: {', '.join(case.tools_used) or 'none'}")
            lines.append(f"   Outcome: {outcome}")
    if pattern:
        lines.append(
            f"Pattern for this kind of issue: common tools {', '.join(pattern.common_tools) or 'none'}; "
            f"success rate {pattern.success_rate:.0%} over {pattern.usage_count} cases."
        )
    return "\n".join(lines)


def build_summary_prompt(state: ConversationState) -> str:
    sections = [f"User query: {state.get('user_query', '')}"]

    status = state.get("fetch_status") or {}
    if status:
        sections.append("Evidence retrieval:\n" + "\n".join(f"- {k}: {v}" for k, v in status.items()))

    results = state.get("analysis_results") or {}
    if results:
        sections.append("Analysis results:\n" + "\n\n".join(f"### {k}\n{v}" for k, v in results.items()))
    else:
        sections.append("Analysis results: none were produced for this turn.")

    history = _historical_context(state.get("similar_cases") or [], state.get("relevant_pattern"))
    if history:
        sections.append("Historical context:\n" + history)

    sections.append("Provide the final diagnostic summary for the user.")
    return "\n\n".join(sections)


async def summarize_findings(llm: BaseChatModel, state: ConversationState) -> dict:
    """Generate the turn's diagnosis; never raises."""
    try:
        response = await llm.ainvoke([
            SystemMessage(content=_SYSTEM_PROMPT),
            *without_system(state.get("messages", [])),
            HumanMessage(content=build_summary_prompt(state)),
        ])
        summary = content_text(response.content)
    except Exception:
        logger.exception("Summarization failed")
        llm_fallbacks_total.labels(stage="summarization").inc()
        return {
            "final_summary": SUMMARY_FAILED,
            "messages": [AIMessage(content=SUMMARY_FAILED_MESSAGE)],
        }

    logger.info("Summary generated (%d chars)", len(summary))
    return {"final_summary": summary}
