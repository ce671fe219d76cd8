"""Structured intent extracted from a user turn."""

from __future__ import annotations

from pydantic import BaseModel, field_validator

from diag_agent.conversation.models import EntityType, Environment, QueryCategory

_ENVIRONMENT_ALIASES = {
    "prod": "production",
    "qa": "staging",
    "stage": "staging",
    "dev": "development",
}


class ExtractionResult(BaseModel):
    """What the interpreter understood from the latest turn."""

    category: QueryCategory = QueryCategory.UNKNOWN_CATEGORY
    entity_ids: list[str] = []
    entity_type: EntityType = EntityType.UNKNOWN
    environment: Environment = Environment.UNKNOWN
    time_range: str | None = None
    initial_response: str = ""

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_environment(cls, value):
        if value is None:
            return Environment.UNKNOWN
        if isinstance(value, str):
            value = value.strip().lower()
            return _ENVIRONMENT_ALIASES.get(value, value)
        return value

    @field_validator("entity_type", mode="before")
    @classmethod
    def _normalize_entity_type(cls, value):
        if value is None:
            return EntityType.UNKNOWN
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("entity_ids", mode="before")
    @classmethod
    def _strip_ids(cls, value):
        if value is None:
            return []
        return [str(v).strip() for v in value if str(v).strip()]

    @classmethod
    def not_understood(cls) -> "ExtractionResult":
        return cls(
            initial_response=(
                "I apologize, I had trouble understanding your request. "
                "Could you please rephrase it or provide more details?"
            ),
        )
