"""
Streaming tool-call accumulator.

Folds tool-call fragments spread over many streaming chunks into complete
calls. A fragment either names a call id (opening it, or extending it), or
carries no id and continues a call already open. Vendors that do not
stream tool calls incrementally deliver whole calls in the non-delta
``message`` field instead.

One accumulator serves one stream; nothing is reused across requests.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, AsyncIterator

from ..models.request import ChatMessage, FunctionCall, ToolCall
from ..models.response import (
    Choice,
    FinishReason,
    GenerationResponse,
    StreamingChunk,
    ToolCallDelta,
    Usage,
    TERMINAL_FINISH_REASONS,
    generate_tool_call_id,
)

logger = logging.getLogger(__name__)


@dataclass
class CompletedToolCall:
    """
    A tool call whose arguments have been parsed.

    When the accumulated text is not a JSON object, ``arguments`` is None,
    ``error`` describes the failure and ``raw_arguments`` keeps the partial
    payload for inspection.
    """
    id: str
    name: str
    raw_arguments: str
    arguments: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_tool_call(self) -> ToolCall:
        return ToolCall(
            id=self.id,
            function=FunctionCall(name=self.name, arguments=self.raw_arguments or "{}"),
        )


@dataclass
class _Record:
    id: str
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Ordered map from call id to an in-progress call."""

    def __init__(self):
        self._records: Dict[str, _Record] = {}
        self._index_ids: Dict[int, str] = {}
        self._last_id: Optional[str] = None
        self.finished = False

    def __len__(self) -> int:
        return len(self._records)

    def _open(self, call_id: str) -> _Record:
        record = self._records.get(call_id)
        if record is None:
            record = _Record(id=call_id)
            self._records[call_id] = record
            self._last_id = call_id
        return record

    def add_delta(self, delta: ToolCallDelta) -> None:
        """
        Apply one fragment.

        A fragment with an id opens or extends that call; the name is
        replaced when given and argument text is appended. A fragment
        without an id extends the call its ``index`` was first seen with,
        or else the most recently opened call.
        """
        if delta.id:
            record = self._open(delta.id)
            if delta.index is not None:
                self._index_ids[delta.index] = delta.id
        else:
            call_id = None
            if delta.index is not None:
                call_id = self._index_ids.get(delta.index)
            call_id = call_id or self._last_id
            if call_id is None:
                # Continuation with nothing open; keep it rather than drop it
                call_id = generate_tool_call_id()
                logger.warning(f"Tool call fragment without an open call, assigned {call_id}")
                if delta.index is not None:
                    self._index_ids[delta.index] = call_id
            record = self._open(call_id)

        if delta.function.name:
            record.name = delta.function.name
        if delta.function.arguments:
            record.arguments += delta.function.arguments

    def add_tool_call(self, call: ToolCall) -> None:
        """Insert or overwrite a complete call."""
        if call.id not in self._records:
            self._last_id = call.id
        self._records[call.id] = _Record(
            id=call.id,
            name=call.function.name,
            arguments=call.function.arguments,
        )

    def feed(self, chunk: StreamingChunk) -> bool:
        """
        Apply every tool-call fragment in a chunk.

        Returns:
            True once a terminal finish reason (stop or tool_calls) is seen
        """
        if chunk.error:
            return self.finished

        for choice in chunk.choices:
            for delta in choice.delta.tool_calls or []:
                self.add_delta(delta)
            if choice.message is not None:
                for call in choice.message.tool_calls or []:
                    self.add_tool_call(call)
            if choice.finish_reason in TERMINAL_FINISH_REASONS:
                self.finished = True
        return self.finished

    def complete(self) -> List[CompletedToolCall]:
        """Parse every call's arguments, in the order calls were opened, and reset."""
        completed = [_parse(record) for record in self._records.values()]
        self._records = {}
        self._index_ids = {}
        self._last_id = None
        return completed


def _parse(record: _Record) -> CompletedToolCall:
    raw = record.arguments
    call = CompletedToolCall(id=record.id, name=record.name, raw_arguments=raw)
    if not raw.strip():
        call.arguments = {}
        return call

    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError as e:
        call.error = f"Invalid JSON arguments for {record.name or record.id}: {e}"
        logger.warning(call.error)
        return call

    if not isinstance(arguments, dict):
        call.error = f"Arguments for {record.name or record.id} are not a JSON object"
        logger.warning(call.error)
        return call

    call.arguments = arguments
    return call


@dataclass
class StreamResult:
    """Everything a consumed stream produced."""
    id: str = ""
    model: str = ""
    text: str = ""
    tool_calls: List[CompletedToolCall] = field(default_factory=list)
    finish_reason: Optional[FinishReason] = None
    usage: Optional[Usage] = None
    errors: List[str] = field(default_factory=list)

    @property
    def interrupted(self) -> bool:
        """True when the stream ended without any finish reason, e.g. on cancellation."""
        return self.finish_reason is None

    def to_response(self) -> GenerationResponse:
        tool_calls = [call.to_tool_call() for call in self.tool_calls]
        kwargs: Dict[str, Any] = {"id": self.id} if self.id else {}
        return GenerationResponse(
            model=self.model,
            choices=[Choice(
                index=0,
                message=ChatMessage(
                    role="assistant",
                    content=self.text,
                    tool_calls=tool_calls or None,
                ),
                finish_reason=self.finish_reason,
            )],
            usage=self.usage,
            **kwargs,
        )


def _merge_usage(current: Optional[Usage], update: Usage) -> Usage:
    if current is None:
        return update
    prompt = update.prompt_tokens or current.prompt_tokens
    completion = update.completion_tokens or current.completion_tokens
    return Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=max(update.total_tokens, current.total_tokens, prompt + completion),
    )


async def accumulate_stream(chunks: AsyncIterator[StreamingChunk]) -> StreamResult:
    """
    Consume a chunk sequence into text, completed tool calls and usage.

    Degraded chunks are recorded in ``errors`` and otherwise skipped.
    """
    result = StreamResult()
    accumulator = ToolCallAccumulator()

    async for chunk in chunks:
        if chunk.error:
            result.errors.append(chunk.error)
            continue

        if not result.id:
            result.id = chunk.id
        if chunk.model and not result.model:
            result.model = chunk.model
        for choice in chunk.choices:
            if choice.delta.content:
                result.text += choice.delta.content
            if choice.finish_reason is not None:
                result.finish_reason = choice.finish_reason
        if chunk.usage is not None:
            result.usage = _merge_usage(result.usage, chunk.usage)

        accumulator.feed(chunk)

    result.tool_calls = accumulator.complete()
    return result
