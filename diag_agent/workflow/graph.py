"""LangGraph diagnostic workflow: the orchestration graph for one conversation turn."""

from __future__ import annotations

import logging
from typing import Literal

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage
from langgraph.graph import END, StateGraph

from diag_agent.analysis.analyzer import analyze_evidence
from diag_agent.clarification.gate import needs_entity_type, needs_environment
from diag_agent.conversation.messages import status_message
from diag_agent.conversation.state import ConversationState
from diag_agent.evidence.fetcher import EvidenceFetcher
from diag_agent.interpretation.interpreter import interpret_query
from diag_agent.memory.service import CaseMemory
from diag_agent.reporting.summarizer import summarize_findings
from diag_agent.telemetry.metrics import persistence_failures_total

logger = logging.getLogger("diag_agent.workflow")

RESPONSE_FALLBACK = (
    "I'm sorry, I couldn't fully analyze the situation. "
    "Please try rephrasing your request or provide more details."
)


def build_diagnostic_graph(
    extraction_llm: BaseChatModel,
    summary_llm: BaseChatModel,
    fetcher: EvidenceFetcher,
    memory: CaseMemory,
) -> StateGraph:
    """Construct the LangGraph state machine for one diagnostic turn."""

    # ── Node functions ──────────────────────────────────────────────

    async def parse_query(state: ConversationState) -> dict:
        return await interpret_query(extraction_llm, state)

    async def memory_retrieval(state: ConversationState) -> dict:
        if needs_environment(state):
            return {}

        category = state["query_category"]
        entity_type = state["entity_type"]
        environment = state["environment"]
        try:
            cases = await memory.retrieve_similar_cases(
                category, entity_type, environment, query=state.get("user_query"),
            )
            pattern = await memory.get_pattern(category, entity_type, environment)
        except Exception:
            logger.exception("Memory retrieval failed")
            persistence_failures_total.labels(kind="retrieval").inc()
            return {"messages": [status_message(
                "Memory retrieval encountered an error, proceeding without historical context.",
            )]}

        return {
            "similar_cases": cases,
            "relevant_pattern": pattern,
            "messages": [status_message(f"Retrieved {len(cases)} similar cases from memory for context.")],
        }

    async def ask_clarification(state: ConversationState) -> dict:
        logger.info("Halting for clarification: environment is not known")
        return {}

    async def fetch_evidence(state: ConversationState) -> dict:
        return await fetcher.fetch(state)

    async def analyze(state: ConversationState) -> dict:
        return analyze_evidence(state)

    async def summarize(state: ConversationState) -> dict:
        return await summarize_findings(summary_llm, state)

    async def respond_to_user(state: ConversationState) -> dict:
        text = state.get("final_summary") or RESPONSE_FALLBACK
        return {"response": text, "messages": [AIMessage(content=text)]}

    async def store_case(state: ConversationState) -> dict:
        try:
            case_id = await memory.store_case_from_state(state)
        except Exception:
            logger.exception("Case storage failed")
            persistence_failures_total.labels(kind="case").inc()
            return {}
        return {"case_id": case_id} if case_id else {}

    # ── Routing logic ───────────────────────────────────────────────

    def after_parse(state: ConversationState) -> Literal["end", "memory_retrieval"]:
        if needs_entity_type(state):
            return "end"
        return "memory_retrieval"

    def after_memory(state: ConversationState) -> Literal["ask_clarification", "fetch_evidence"]:
        if needs_environment(state):
            return "ask_clarification"
        return "fetch_evidence"

    # ── Build the graph ─────────────────────────────────────────────

    graph = StateGraph(ConversationState)

    graph.add_node("parse_query", parse_query)
    graph.add_node("memory_retrieval", memory_retrieval)
    graph.add_node("ask_clarification", ask_clarification)
    graph.add_node("fetch_evidence", fetch_evidence)
    graph.add_node("analyze_evidence", analyze)
    graph.add_node("summarize_findings", summarize)
    graph.add_node("respond_to_user", respond_to_user)
    graph.add_node("store_case", store_case)

    graph.set_entry_point("parse_query")

    graph.add_conditional_edges("parse_query", after_parse, {
        "end": END,
        "memory_retrieval": "memory_retrieval",
    })
    graph.add_conditional_edges("memory_retrieval", after_memory, {
        "ask_clarification": "ask_clarification",
        "fetch_evidence": "fetch_evidence",
    })

    graph.add_edge("fetch_evidence", "analyze_evidence")
    graph.add_edge("analyze_evidence", "summarize_findings")
    graph.add_edge("summarize_findings", "respond_to_user")
    graph.add_edge("respond_to_user", "store_case")
    graph.add_edge("store_case", END)
    graph.add_edge("ask_clarification", END)

    return graph


def compile_diagnostic_graph(
    extraction_llm: BaseChatModel,
    summary_llm: BaseChatModel,
    fetcher: EvidenceFetcher,
    memory: CaseMemory,
):
    """Build and compile the diagnostic graph, ready to invoke."""
    graph = build_diagnostic_graph(extraction_llm, summary_llm, fetcher, memory)
    return graph.compile()
