from __future__ import annotations

from typing import List, Optional, Sequence

from .errors import NoContextError, NoMessagesError
from .models import ChatMessage


def _text(content) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "\n".join(part.get("text", "") for part in content if part.get("type") == "text")


def system_message(content: str, name: Optional[str] = None) -> ChatMessage:
    return ChatMessage(role="system", content=content, name=name)


def merge_rag_context(messages: Sequence[ChatMessage], context: Sequence[str]) -> List[ChatMessage]:
    """
    Append the retrieved context to the system message at index 0.

    Only the first context string is used. A conversation that does not start
    with a system message is returned unchanged; the caller puts one there.
    The input list is not modified.
    """
    if not messages:
        raise NoMessagesError()
    if not context:
        raise NoContextError()

    merged = list(messages)
    first = merged[0]
    if first.role == "system":
        content = f"{_text(first.content).strip()}\n{context[0].rstrip()}"
        merged[0] = first.model_copy(update={"content": content})
    return merged
