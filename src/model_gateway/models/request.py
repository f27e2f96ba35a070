"""
Canonical request models for the model gateway.

Every vendor adapter translates from these types; no vendor-specific
shape is allowed past an adapter boundary.
"""

from typing import Optional, List, Dict, Any, Union, Literal
from pydantic import BaseModel, Field


class ContentPart(BaseModel):
    """
    Typed part of a multimodal message.

    Non-text parts carry a MIME type and either inline base64 ``data``
    or a reference ``url``.
    """
    type: Literal["text", "image", "audio", "video", "document"]
    text: Optional[str] = None
    mime_type: Optional[str] = None
    data: Optional[str] = None
    url: Optional[str] = None


class FunctionCall(BaseModel):
    """Function name and string-encoded JSON arguments."""
    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    """Tool call emitted by an assistant turn."""
    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class FunctionDefinition(BaseModel):
    """Function definition for tool use."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class ToolDefinition(BaseModel):
    """Tool definition."""
    type: Literal["function"] = "function"
    function: FunctionDefinition


class ForcedFunction(BaseModel):
    """Tool choice forcing one named function."""
    type: Literal["function"] = "function"
    function: Dict[str, str]  # {"name": str}

    @property
    def name(self) -> str:
        return self.function.get("name", "")


ToolChoice = Union[Literal["auto", "none"], ForcedFunction]


class ChatMessage(BaseModel):
    """
    Unified message format.

    Supports:
    - System messages
    - User messages (text or multimodal)
    - Assistant messages (with optional tool calls)
    - Tool messages (results, referencing a tool call id)
    """
    role: Literal["system", "user", "assistant", "tool"]
    content: Union[str, List[ContentPart]] = ""
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None

    def text(self) -> str:
        """Text content, with text parts joined by newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            part.text for part in self.content
            if part.type == "text" and part.text
        )

    def has_multimodal_content(self) -> bool:
        if isinstance(self.content, str):
            return False
        return any(part.type != "text" for part in self.content)

    def media_parts(self) -> List[ContentPart]:
        if isinstance(self.content, str):
            return []
        return [part for part in self.content if part.type != "text"]


class GenerationParameters(BaseModel):
    """Sampling and output controls."""
    max_tokens: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=1)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    top_k: Optional[int] = Field(default=None, ge=1)
    stop_sequences: Optional[List[str]] = None
    frequency_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    presence_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    system_prompt: Optional[str] = None
    stream: bool = False


class GenerationRequest(BaseModel):
    """
    Unified generation request.

    Message order is conversation order and is preserved by every adapter.
    """
    messages: List[ChatMessage] = Field(..., description="Conversation messages")
    parameters: GenerationParameters = Field(default_factory=GenerationParameters)
    tools: Optional[List[ToolDefinition]] = None
    tool_choice: Optional[ToolChoice] = None

    def system_text(self) -> Optional[str]:
        """
        Newline-joined system instructions.

        Combines ``parameters.system_prompt`` with every system-role
        message, in that order. Returns None when there are none.
        """
        parts = []
        if self.parameters.system_prompt:
            parts.append(self.parameters.system_prompt)
        parts.extend(m.text() for m in self.messages if m.role == "system")
        return "\n".join(parts) if parts else None

    def conversation(self) -> List[ChatMessage]:
        """Messages without the system role."""
        return [m for m in self.messages if m.role != "system"]

    def validate_tool_results(self) -> Optional[str]:
        """
        Check that each tool result references an earlier tool call.

        Returns:
            A description of the first violation, or None
        """
        seen = set()
        for position, message in enumerate(self.messages):
            for call in message.tool_calls or []:
                seen.add(call.id)
            if message.role == "tool":
                if not message.tool_call_id:
                    return f"Tool message at position {position} has no tool_call_id"
                if message.tool_call_id not in seen:
                    return (
                        f"Tool message at position {position} references "
                        f"unknown tool call: {message.tool_call_id}"
                    )
        return None


class TokenCountRequest(BaseModel):
    """Token counting request."""
    messages: List[ChatMessage]
    tools: Optional[List[ToolDefinition]] = None

    def text(self) -> str:
        return "\n".join(m.text() for m in self.messages)


class EmbeddingRequest(BaseModel):
    """Embedding request."""
    input: Union[str, List[str]]
    model: Optional[str] = None
    dimensions: Optional[int] = Field(default=None, ge=1)
