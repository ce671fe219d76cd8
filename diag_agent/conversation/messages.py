"""Transcript helpers: message identity, deduplication and content narrowing."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Iterable, Union

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

logger = logging.getLogger("diag_agent.conversation")

NO_TEXT_PLACEHOLDER = "The model returned no text content."


def message_identity(message: BaseMessage) -> str:
    """Composite identity used to deduplicate transcript entries.

    Precedence: tool-call ids on an assistant message, then the tool-call id
    a result answers, then role plus a hash of the content.
    """
    tool_calls = getattr(message, "tool_calls", None) or []
    call_ids = [c.get("id") for c in tool_calls if c.get("id")]
    if call_ids:
        return "call:" + ",".join(call_ids)

    result_id = getattr(message, "tool_call_id", None) or message.additional_kwargs.get("tool_call_id")
    if result_id:
        return f"result:{result_id}"

    body = json.dumps(message.content, sort_keys=True, default=str)
    digest = hashlib.sha1(body.encode()).hexdigest()
    return f"{message.type}:{digest}"


def dedupe_messages(existing: Iterable[BaseMessage], incoming: Iterable[BaseMessage]) -> list[BaseMessage]:
    """Return the incoming messages not already present, in arrival order."""
    seen = {message_identity(m) for m in existing}
    fresh: list[BaseMessage] = []
    for msg in incoming:
        key = message_identity(msg)
        if key in seen:
            continue
        seen.add(key)
        fresh.append(msg)
    return fresh


def status_message(content: str, call_id: str | None = None) -> AIMessage:
    """Assistant status note, optionally tied to the operation that produced it."""
    if call_id:
        return AIMessage(content=content, additional_kwargs={"tool_call_id": call_id})
    return AIMessage(content=content)


def render_transcript(messages: Iterable[BaseMessage]) -> str:
    lines = []
    for msg in messages:
        if isinstance(msg, SystemMessage):
            continue
        speaker = "Human" if isinstance(msg, HumanMessage) else "AI"
        lines.append(f"{speaker}: {content_text(msg.content)}")
    return "\n".join(lines)


def without_system(messages: Iterable[BaseMessage]) -> list[BaseMessage]:
    return [m for m in messages if not isinstance(m, SystemMessage)]


# ── Model content ──────────────────────────────────────────────────


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class PartsContent:
    parts: tuple


Content = Union[TextContent, PartsContent]


def as_content(raw) -> Content:
    if isinstance(raw, str):
        return TextContent(raw)
    return PartsContent(tuple(raw or ()))


def content_text(raw) -> str:
    """Narrow model output to plain text.

    String content passes through. For part lists, text parts are joined
    in order and ``tool_use`` parts are logged and skipped; when nothing
    textual remains a fixed placeholder is returned.
    """
    content = as_content(raw)
    if isinstance(content, TextContent):
        return content.text

    texts = []
    for part in content.parts:
        if isinstance(part, str):
            texts.append(part)
        elif not isinstance(part, dict):
            logger.info("Ignoring unrecognised content part: %s", type(part).__name__)
        elif part.get("type") == "text":
            texts.append(part.get("text", ""))
        elif part.get("type") == "tool_use":
            logger.info("Ignoring tool_use part in model output: %s", part.get("name"))
    if not texts:
        return NO_TEXT_PLACEHOLDER
    return "".join(texts)
