"""Semantic case index: past diagnoses searchable by query similarity, backed by ChromaDB."""

from __future__ import annotations

import logging

import chromadb
from chromadb.config import Settings as ChromaSettings

from diag_agent.config import settings
from diag_agent.conversation.models import EntityType, Environment, QueryCategory
from diag_agent.memory.models import DiagnosticCase

logger = logging.getLogger("diag_agent.memory")

_COLLECTION_NAME = "diagnostic_cases"


class CaseIndex:
    """Vector index over stored cases; the case store stays the source of truth."""

    def __init__(self, client=None) -> None:
        self._client = client or chromadb.PersistentClient(
            path=settings.chroma_persist_dir,
            settings=ChromaSettings(anonymized_telemetry=False),
        )
        self._collection = self._client.get_or_create_collection(
            name=_COLLECTION_NAME,
            metadata={"hnsw:space": "cosine"},
        )

    def add_case(self, case: DiagnosticCase) -> None:
        self._collection.upsert(
            ids=[case.case_id],
            documents=[f"{case.user_query}\n\n{case.final_summary}"],
            metadatas=[{
                "category": case.category.value,
                "entity_type": case.entity_type.value,
                "environment": case.environment.value,
            }],
        )

    def search(
        self,
        query: str,
        category: QueryCategory,
        entity_type: EntityType,
        environment: Environment,
        n_results: int = 5,
        max_distance: float | None = None,
    ) -> list[str]:
        """Ids of the closest cases sharing the triple, nearest first."""
        max_distance = settings.case_index_max_distance if max_distance is None else max_distance
        results = self._collection.query(
            query_texts=[query],
            n_results=n_results,
            where={"$and": [
                {"category": category.value},
                {"entity_type": entity_type.value},
                {"environment": environment.value},
            ]},
        )

        ids = results["ids"][0] if results["ids"] else []
        distances = results["distances"][0] if results.get("distances") else [0.0] * len(ids)
        hits = [cid for cid, dist in zip(ids, distances) if dist <= max_distance]
        logger.info("Case index returned %d hits within distance %.2f", len(hits), max_distance)
        return hits
