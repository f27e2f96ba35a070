"""
Tests for the Anthropic adapter.
"""

import pytest

from model_gateway.adapters.anthropic_adapter import AnthropicAdapter, map_finish_reason
from model_gateway.core.accumulator import accumulate_stream
from model_gateway.core.errors import ProviderAuthenticationError, ProviderError
from model_gateway.models.request import (
    ChatMessage,
    ContentPart,
    FunctionCall,
    FunctionDefinition,
    GenerationParameters,
    GenerationRequest,
    TokenCountRequest,
    ToolCall,
    ToolDefinition,
)
from model_gateway.models.response import FinishReason

MODEL = "claude-3-5-sonnet-20241022"

CLAUDE_REPLY = {
    "id": "msg_01",
    "model": MODEL,
    "content": [{"type": "text", "text": "Hello!"}],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 10, "output_tokens": 3},
}


def make_adapter(catalog, auth, vendor):
    return AnthropicAdapter(catalog[MODEL], auth, transport=vendor.transport())


def weather_call():
    return ToolCall(id="toolu_1", function=FunctionCall(name="weather", arguments='{"city": "Oslo"}'))


class TestFinishReason:
    """Test the Anthropic stop reason table."""

    @pytest.mark.parametrize("code,expected", [
        ("end_turn", FinishReason.STOP),
        ("stop_sequence", FinishReason.STOP),
        ("max_tokens", FinishReason.LENGTH),
        ("tool_use", FinishReason.TOOL_CALLS),
        ("pause_turn", None),
        (None, None),
    ])
    def test_mapping(self, code, expected):
        assert map_finish_reason(code) == expected


class TestRequestBuilding:
    """Test translation of canonical requests."""

    def test_system_messages_joined(self, catalog, anthropic_auth, json_vendor):
        adapter = make_adapter(catalog, anthropic_auth, json_vendor(CLAUDE_REPLY))
        body = adapter.build_request_body(GenerationRequest(messages=[
            ChatMessage(role="system", content="Rule one."),
            ChatMessage(role="user", content="Hi"),
            ChatMessage(role="system", content="Rule two."),
            ChatMessage(role="assistant", content="Hello"),
        ]))

        assert body["system"] == "Rule one.\nRule two."
        assert [m["role"] for m in body["messages"]] == ["user", "assistant"]
        assert body["max_tokens"] == 1000
        assert body["model"] == MODEL

    def test_parameters(self, catalog, anthropic_auth, json_vendor):
        adapter = make_adapter(catalog, anthropic_auth, json_vendor(CLAUDE_REPLY))
        body = adapter.build_request_body(GenerationRequest(
            messages=[ChatMessage(role="user", content="Hi")],
            parameters=GenerationParameters(
                max_tokens=200, temperature=0.5, top_p=0.9, stop_sequences=["END"],
            ),
        ), stream=True)

        assert body["max_tokens"] == 200
        assert body["temperature"] == 0.5
        assert body["top_p"] == 0.9
        assert body["stop_sequences"] == ["END"]
        assert body["stream"] is True

    def test_tool_use_and_tool_result(self, catalog, anthropic_auth, json_vendor):
        adapter = make_adapter(catalog, anthropic_auth, json_vendor(CLAUDE_REPLY))
        body = adapter.build_request_body(GenerationRequest(
            messages=[
                ChatMessage(role="user", content="Weather?"),
                ChatMessage(role="assistant", content="Checking.", tool_calls=[weather_call()]),
                ChatMessage(role="tool", content="rainy", tool_call_id="toolu_1"),
            ],
            tools=[ToolDefinition(function=FunctionDefinition(name="weather"))],
            tool_choice="auto",
        ))

        assistant = body["messages"][1]
        assert assistant["content"][0] == {"type": "text", "text": "Checking."}
        assert assistant["content"][1] == {
            "type": "tool_use", "id": "toolu_1", "name": "weather", "input": {"city": "Oslo"},
        }
        assert body["messages"][2] == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "rainy"}],
        }
        assert body["tools"][0]["input_schema"] == {"type": "object", "properties": {}}
        assert body["tool_choice"] == {"type": "auto"}

    def test_tool_choice_none_omits_tools(self, catalog, anthropic_auth, json_vendor):
        adapter = make_adapter(catalog, anthropic_auth, json_vendor(CLAUDE_REPLY))
        body = adapter.build_request_body(GenerationRequest(
            messages=[ChatMessage(role="user", content="Hi")],
            tools=[ToolDefinition(function=FunctionDefinition(name="weather"))],
            tool_choice="none",
        ))
        assert "tools" not in body
        assert "tool_choice" not in body

    def test_image_block(self, catalog, anthropic_auth, json_vendor):
        adapter = make_adapter(catalog, anthropic_auth, json_vendor(CLAUDE_REPLY))
        body = adapter.build_request_body(GenerationRequest(messages=[
            ChatMessage(role="user", content=[
                ContentPart(type="image", mime_type="image/png", data="iVBOR"),
                ContentPart(type="text", text="Describe"),
            ]),
        ]))

        assert body["messages"][0]["content"][0] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "iVBOR"},
        }

    def test_headers(self, catalog, anthropic_auth, json_vendor):
        adapter = make_adapter(catalog, anthropic_auth, json_vendor(CLAUDE_REPLY))
        assert adapter.build_headers() == {
            "x-api-key": "test-anthropic-key",
            "anthropic-version": "2023-06-01",
        }


class TestGenerate:
    """Test complete generation."""

    @pytest.mark.asyncio
    async def test_generate(self, catalog, anthropic_auth, json_vendor):
        vendor = json_vendor(CLAUDE_REPLY)
        response = await make_adapter(catalog, anthropic_auth, vendor).generate(
            GenerationRequest(messages=[ChatMessage(role="user", content="Hi")])
        )

        assert str(vendor.last.url) == "https://api.anthropic.com/v1/messages"
        assert vendor.last.headers["x-api-key"] == "test-anthropic-key"
        assert response.id == "msg_01"
        assert response.get_content() == "Hello!"
        assert response.choices[0].finish_reason == FinishReason.STOP
        assert response.usage.total_tokens == 13

    @pytest.mark.asyncio
    async def test_tool_use_response(self, catalog, anthropic_auth, json_vendor):
        vendor = json_vendor({
            "id": "msg_02",
            "content": [
                {"type": "text", "text": "Let me check."},
                {"type": "tool_use", "id": "toolu_9", "name": "weather", "input": {"city": "Oslo"}},
            ],
            "stop_reason": "tool_use",
        })
        response = await make_adapter(catalog, anthropic_auth, vendor).generate(
            GenerationRequest(messages=[ChatMessage(role="user", content="Weather?")])
        )

        call = response.get_tool_calls()[0]
        assert call.id == "toolu_9"
        assert call.function.arguments == '{"city": "Oslo"}'
        assert response.choices[0].finish_reason == FinishReason.TOOL_CALLS

    @pytest.mark.asyncio
    async def test_auth_failure_is_vendor_qualified(self, catalog, anthropic_auth, json_vendor):
        vendor = json_vendor(
            {"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}},
            status_code=401,
        )
        with pytest.raises(ProviderAuthenticationError, match="^Anthropic API failed: invalid x-api-key$"):
            await make_adapter(catalog, anthropic_auth, vendor).generate(
                GenerationRequest(messages=[ChatMessage(role="user", content="Hi")])
            )

    @pytest.mark.asyncio
    async def test_server_error(self, catalog, anthropic_auth, json_vendor):
        vendor = json_vendor({"error": {"message": "Overloaded"}}, status_code=529)
        with pytest.raises(ProviderError) as excinfo:
            await make_adapter(catalog, anthropic_auth, vendor).generate(
                GenerationRequest(messages=[ChatMessage(role="user", content="Hi")])
            )
        assert not isinstance(excinfo.value, ProviderAuthenticationError)
        assert excinfo.value.status_code == 529

    @pytest.mark.asyncio
    async def test_count_tokens_is_estimate(self, catalog, anthropic_auth, json_vendor):
        vendor = json_vendor(CLAUDE_REPLY)
        result = await make_adapter(catalog, anthropic_auth, vendor).count_tokens(
            TokenCountRequest(messages=[ChatMessage(role="user", content="12345678")])
        )
        assert result.total_tokens == 2
        assert result.estimated
        assert vendor.requests == []


class TestStream:
    """Test named-event streaming."""

    @pytest.mark.asyncio
    async def test_text_stream(self, catalog, anthropic_auth, stream_vendor):
        vendor = stream_vendor(
            {"type": "message_start", "message": {"id": "msg_s", "model": MODEL}},
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
            {"type": "ping"},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hi"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": " there"}},
            {"type": "content_block_stop", "index": 0},
            {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 2}},
            {"type": "message_stop"},
            done=False,
        )
        chunks = [c async for c in make_adapter(catalog, anthropic_auth, vendor).stream(
            GenerationRequest(messages=[ChatMessage(role="user", content="Hi")])
        )]

        assert len(chunks) == 4
        assert chunks[0].id == "msg_s"
        assert chunks[0].choices[0].delta.content is None
        assert [c.choices[0].delta.content for c in chunks[1:3]] == ["Hi", " there"]
        assert chunks[3].finish_reason == FinishReason.STOP
        assert chunks[3].usage.completion_tokens == 2
        assert vendor.last_json()["stream"] is True

    @pytest.mark.asyncio
    async def test_tool_use_stream_accumulates(self, catalog, anthropic_auth, stream_vendor):
        vendor = stream_vendor(
            {"type": "message_start", "message": {"id": "msg_t", "model": MODEL}},
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Checking"}},
            {"type": "content_block_start", "index": 1,
             "content_block": {"type": "tool_use", "id": "toolu_5", "name": "weather", "input": {}}},
            {"type": "content_block_delta", "index": 1,
             "delta": {"type": "input_json_delta", "partial_json": '{"city": '}},
            {"type": "content_block_delta", "index": 1,
             "delta": {"type": "input_json_delta", "partial_json": '"Oslo"}'}},
            {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 9}},
            done=False,
        )
        result = await accumulate_stream(make_adapter(catalog, anthropic_auth, vendor).stream(
            GenerationRequest(messages=[ChatMessage(role="user", content="Weather?")])
        ))

        assert result.text == "Checking"
        assert result.finish_reason == FinishReason.TOOL_CALLS
        assert len(result.tool_calls) == 1
        assert result.tool_calls[0].id == "toolu_5"
        assert result.tool_calls[0].name == "weather"
        assert result.tool_calls[0].arguments == {"city": "Oslo"}

    @pytest.mark.asyncio
    async def test_malformed_line_is_degraded_chunk(self, catalog, anthropic_auth, stream_vendor):
        vendor = stream_vendor(
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "a"}},
            "{oops",
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "b"}},
        )
        chunks = [c async for c in make_adapter(catalog, anthropic_auth, vendor).stream(
            GenerationRequest(messages=[ChatMessage(role="user", content="Hi")])
        )]

        assert len(chunks) == 3
        assert chunks[1].error is not None
        assert chunks[2].choices[0].delta.content == "b"

    @pytest.mark.asyncio
    async def test_failed_connection_raises(self, catalog, anthropic_auth, json_vendor):
        vendor = json_vendor({"error": {"message": "invalid x-api-key"}}, status_code=401)
        with pytest.raises(ProviderAuthenticationError, match="Anthropic API failed"):
            async for _ in make_adapter(catalog, anthropic_auth, vendor).stream(
                GenerationRequest(messages=[ChatMessage(role="user", content="Hi")])
            ):
                pass
