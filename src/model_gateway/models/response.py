"""
Canonical response models for the model gateway.
"""

import time
import uuid
from typing import Optional, List, Dict, Any, Literal
from enum import Enum
from pydantic import BaseModel, Field

from .request import ChatMessage


class FinishReason(str, Enum):
    """Reasons for a generation turn finishing."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"


TERMINAL_FINISH_REASONS = {FinishReason.STOP, FinishReason.TOOL_CALLS}


def generate_request_id() -> str:
    """Locally generated id for responses whose vendor omits one."""
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def generate_tool_call_id() -> str:
    """Locally generated tool call id, unique within a process."""
    return f"call_{uuid.uuid4().hex[:24]}"


def current_timestamp() -> int:
    return int(time.time())


class Usage(BaseModel):
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Choice(BaseModel):
    """A single completion choice."""
    index: int = 0
    message: ChatMessage
    finish_reason: Optional[FinishReason] = None


class FunctionDelta(BaseModel):
    """Partial function call: either field may be absent in a fragment."""
    name: Optional[str] = None
    arguments: Optional[str] = None


class ToolCallDelta(BaseModel):
    """Fragment of a tool call delivered in one streaming chunk."""
    index: Optional[int] = None
    id: Optional[str] = None
    type: Literal["function"] = "function"
    function: FunctionDelta = Field(default_factory=FunctionDelta)


class StreamDelta(BaseModel):
    """Delta content for streaming."""
    role: Optional[str] = None
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCallDelta]] = None


class StreamChoice(BaseModel):
    """
    A streaming choice.

    ``message`` is set by vendors that deliver complete tool calls in
    one piece rather than as incremental fragments.
    """
    index: int = 0
    delta: StreamDelta = Field(default_factory=StreamDelta)
    message: Optional[ChatMessage] = None
    finish_reason: Optional[FinishReason] = None


class GenerationResponse(BaseModel):
    """Unified generation response."""
    id: str = Field(default_factory=generate_request_id)
    model: str = ""
    created: int = Field(default_factory=current_timestamp)
    choices: List[Choice] = Field(default_factory=list)
    usage: Optional[Usage] = None
    metadata: Optional[Dict[str, Any]] = None

    def get_content(self) -> Optional[str]:
        """Get the text content from the first choice."""
        if self.choices:
            return self.choices[0].message.text()
        return None

    def get_tool_calls(self):
        """Get tool calls from the first choice."""
        if self.choices and self.choices[0].message.tool_calls:
            return self.choices[0].message.tool_calls
        return []


class StreamingChunk(BaseModel):
    """
    One element of a streaming generation.

    A chunk with ``error`` set is a degraded element: the vendor sent a
    line that could not be parsed, and the stream continues after it.
    """
    id: str = Field(default_factory=generate_request_id)
    model: str = ""
    created: int = Field(default_factory=current_timestamp)
    choices: List[StreamChoice] = Field(default_factory=list)
    usage: Optional[Usage] = None
    error: Optional[str] = None

    @classmethod
    def degraded(cls, error: str, model: str = "") -> "StreamingChunk":
        return cls(model=model, error=error)

    @property
    def finish_reason(self) -> Optional[FinishReason]:
        if self.choices:
            return self.choices[0].finish_reason
        return None


class TokenCountResponse(BaseModel):
    """
    Token count.

    ``metadata["estimated"]`` is True when the count is a character-length
    estimate rather than a vendor-native count.
    """
    total_tokens: int
    prompt_tokens: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def estimated(self) -> bool:
        return bool(self.metadata.get("estimated"))


class Embedding(BaseModel):
    object: Literal["embedding"] = "embedding"
    embedding: List[float]
    index: int


class EmbeddingResponse(BaseModel):
    """Embedding response."""
    data: List[Embedding] = Field(default_factory=list)
    model: str = ""
    usage: Optional[Usage] = None
