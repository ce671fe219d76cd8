"""Persisted diagnostic episodes and their aggregate statistics."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from diag_agent.conversation.models import EntityType, Environment, MessageFeedback, QueryCategory


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DiagnosticCase(BaseModel):
    """One completed, non-clarification diagnostic turn.

    Stored by its wire field names (``caseId``, ``entityType``...). Only
    ``message_feedbacks`` and ``overall_rl_reward`` change after the write.
    """

    model_config = ConfigDict(populate_by_name=True)

    case_id: str = Field(alias="caseId")
    timestamp: datetime = Field(default_factory=_now)
    category: QueryCategory
    entity_type: EntityType = Field(alias="entityType")
    entity_ids: list[str] = Field(alias="entityIds", default=[])
    environment: Environment
    user_query: str = Field(alias="userQuery")
    tools_used: list[str] = Field(alias="toolsUsed", default=[])
    final_summary: str = Field(alias="finalSummary", default="")
    overall_rl_reward: float = Field(alias="overallRlReward", default=0.0)
    message_feedbacks: dict[str, MessageFeedback] = Field(alias="messageFeedbacks", default={})


class DiagnosticPattern(BaseModel):
    """Running statistics for one (category, entity type, environment) triple."""

    model_config = ConfigDict(populate_by_name=True)

    pattern_id: str = Field(alias="patternId")
    category: QueryCategory
    entity_type: EntityType = Field(alias="entityType")
    environment: Environment
    common_tools: list[str] = Field(alias="commonTools", default=[])
    success_rate: float = Field(alias="successRate", default=0.0)
    usage_count: int = Field(alias="usageCount", default=0)
    last_updated: datetime = Field(alias="lastUpdated", default_factory=_now)


def pattern_id_for(category: QueryCategory, entity_type: EntityType, environment: Environment) -> str:
    return f"{category.value}_{entity_type.value}_{environment.value}"


def record_outcome(
    pattern: DiagnosticPattern | None,
    case: DiagnosticCase,
    is_success: bool,
) -> DiagnosticPattern:
    """Fold one more case into a pattern's running mean and tool union."""
    if pattern is None:
        return DiagnosticPattern(
            pattern_id=pattern_id_for(case.category, case.entity_type, case.environment),
            category=case.category,
            entity_type=case.entity_type,
            environment=case.environment,
            common_tools=list(dict.fromkeys(case.tools_used)),
            success_rate=1.0 if is_success else 0.0,
            usage_count=1,
        )

    count = pattern.usage_count
    rate = (pattern.success_rate * count + (1 if is_success else 0)) / (count + 1)
    return pattern.model_copy(update={
        "common_tools": list(dict.fromkeys([*pattern.common_tools, *case.tools_used])),
        "success_rate": rate,
        "usage_count": count + 1,
        "last_updated": _now(),
    })
