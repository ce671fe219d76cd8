"""Entity diagnostic agent: FastAPI service entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field

from diag_agent.config import settings
from diag_agent.errors import InvalidTurnError, StartupError
from diag_agent.evidence.fetcher import EvidenceFetcher
from diag_agent.evidence.tools.catalog import OfferCatalogClient, OfferServiceClient
from diag_agent.evidence.tools.history import EntityHistoryClient
from diag_agent.evidence.tools.logs import DatadogLogsClient
from diag_agent.evidence.tools.pricing import PricingClient
from diag_agent.memory.knowledge import CaseIndex
from diag_agent.memory.service import CaseMemory
from diag_agent.storage.cases import InMemoryCaseStore, RedisCaseStore
from diag_agent.storage.redis_client import close_redis, ensure_redis
from diag_agent.storage.sessions import InMemorySessionStore, RedisSessionStore
from diag_agent.telemetry.metrics import get_metrics
from diag_agent.workflow.graph import compile_diagnostic_graph
from diag_agent.workflow.runner import DiagnosticAgent

logging.basicConfig(
    level=logging.INFO,
    format='{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
    stream=sys.stdout,
)
logger = logging.getLogger("diag_agent")

# ── Singletons initialised at startup ─────────────────────────────

_agent: DiagnosticAgent | None = None
_case_index: CaseIndex | None = None
_clients: list = []


def _build_llm(temperature: float):
    if settings.llm_provider == "anthropic":
        from langchain_anthropic import ChatAnthropic
        return ChatAnthropic(
            model=settings.llm_model,
            api_key=settings.anthropic_api_key,
            temperature=temperature,
            max_tokens=4096,
        )
    elif settings.llm_provider == "openai":
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=settings.llm_model,
            api_key=settings.openai_api_key,
            temperature=temperature,
        )
    else:
        raise StartupError(f"Unsupported LLM provider: {settings.llm_provider}")


def _check_credentials() -> None:
    missing = []
    if not settings.datadog_api_key or not settings.datadog_app_key:
        missing.append("DIAG_DATADOG_API_KEY/DIAG_DATADOG_APP_KEY")
    if settings.llm_provider == "anthropic" and not settings.anthropic_api_key:
        missing.append("DIAG_ANTHROPIC_API_KEY")
    if settings.llm_provider == "openai" and not settings.openai_api_key:
        missing.append("DIAG_OPENAI_API_KEY")
    if missing:
        raise StartupError(f"Missing required credentials: {', '.join(missing)}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _agent, _case_index, _clients

    logger.info("Initializing diagnostic agent...")
    _check_credentials()

    # Storage; an unreachable Redis is fatal when it backs sessions or cases
    redis = None
    if "redis" in (settings.session_backend, settings.case_store_backend):
        redis = await ensure_redis()

    case_store = RedisCaseStore(redis) if settings.case_store_backend == "redis" else InMemoryCaseStore()
    sessions = RedisSessionStore(redis) if settings.session_backend == "redis" else InMemorySessionStore()

    # Semantic case index (non-fatal; retrieval falls back to exact matching)
    if settings.case_index_enabled:
        try:
            _case_index = CaseIndex()
        except Exception:
            logger.exception("Case index initialization failed; continuing with exact matching only")
            _case_index = None

    memory = CaseMemory(case_store, _case_index)

    # Evidence backends
    logs, history = DatadogLogsClient(), EntityHistoryClient()
    catalog, offer_service, pricing = OfferCatalogClient(), OfferServiceClient(), PricingClient()
    _clients = [logs, history, catalog, offer_service, pricing]
    fetcher = EvidenceFetcher(logs, history, catalog, offer_service, pricing)

    # LLMs + graph
    graph = compile_diagnostic_graph(
        _build_llm(settings.extraction_temperature),
        _build_llm(settings.summary_temperature),
        fetcher,
        memory,
    )
    _agent = DiagnosticAgent(graph, sessions, memory)

    logger.info("Diagnostic agent ready, listening on %s:%d", settings.host, settings.port)

    yield

    # Cleanup
    for client in _clients:
        await client.close()
    await close_redis()
    logger.info("Diagnostic agent shut down")


# ── Request / response bodies ─────────────────────────────────────


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(alias="sessionId", default=None)
    user_query: str | None = Field(alias="userQuery", default=None)


class FeedbackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    case_id: str = Field(alias="caseId")
    message_feedbacks: dict[str, dict] = Field(alias="messageFeedbacks", default={})
    overall_rl_reward: float | None = Field(alias="overallRlReward", default=None)


# FastAPI app

app = FastAPI(
    title="Entity Diagnostic Agent",
    description="Diagnoses offer, campaign and product issues from logs, history and catalog data",
    version="1.0.0",
    lifespan=lifespan,
)


def _require_agent() -> DiagnosticAgent:
    if _agent is None:
        raise HTTPException(status_code=503, detail="Agent is not initialised")
    return _agent


@app.post("/chat")
async def chat(body: ChatRequest):
    agent = _require_agent()
    if not body.user_query or not body.user_query.strip():
        raise HTTPException(status_code=400, detail="userQuery is required")

    session_id = body.session_id or uuid4().hex
    try:
        result = await agent.process_turn(session_id, body.user_query)
    except InvalidTurnError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Turn failed for session=%s", session_id)
        raise HTTPException(
            status_code=500,
            detail="Something went wrong while processing your request. Please try again.",
        ) from exc

    payload = {"sessionId": session_id, "response": result.response_text}
    if result.case_id:
        payload["caseId"] = result.case_id
    return payload


@app.post("/feedback")
async def feedback(body: FeedbackRequest):
    agent = _require_agent()
    try:
        acknowledged = await agent.submit_feedback(body.case_id, body.message_feedbacks, body.overall_rl_reward)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"acknowledged": acknowledged}


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "agent_ready": _agent is not None,
        "case_index_loaded": _case_index is not None,
    }


@app.get("/metrics")
async def metrics():
    body, content_type = get_metrics()
    return Response(content=body, media_type=content_type)
