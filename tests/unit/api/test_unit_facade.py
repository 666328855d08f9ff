# tests/unit/api/test_unit_facade.py — v3
"""Tests for api/facade.py — AIManager orchestration."""

from __future__ import annotations

import asyncio
import base64
import json
import logging

import pytest
from pydantic import BaseModel

from polyllm.api.facade import AIManager
from polyllm.llm.client_factory import ProviderRegistry
from polyllm.llm.errors import CapabilityMismatchError, UnknownModelError
from polyllm.llm.model_registry import AIModel
from polyllm.llm.models import ContentPart, Message
from polyllm.schema.definitions import SchemaDefinition, SchemaParameter
from polyllm.schema.generator import ParameterType


class Weather(BaseModel):
    city: str
    temperature: float
    note: str | None = None


def _tool_reply(openai_body, name: str, arguments: dict) -> dict:
    return openai_body(None, tool_calls=[{
        "id": "call_1",
        "type": "function",
        "function": {"name": name, "arguments": json.dumps(arguments)},
    }])


@pytest.fixture
def keyless_manager(keyless_settings, fake_transport) -> AIManager:
    return AIManager(
        keyless_settings,
        provider_registry=ProviderRegistry.from_settings(keyless_settings, fake_transport),
    )


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_openai_text(self, manager, fake_transport, openai_body):
        fake_transport.reply_json(openai_body("hello"))
        reply = await manager.send_message([Message.user("Say hello")], AIModel.GPT4O)
        assert reply == "hello"
        assert fake_transport.last_request["body"]["model"] == "gpt-4o"

    @pytest.mark.asyncio
    async def test_model_by_string(self, manager, fake_transport, gemini_body):
        fake_transport.reply_json(gemini_body({"text": "hi"}))
        assert await manager.send_message([Message.user("x")], "gemini-2.5-flash") == "hi"
        assert "gemini-2.5-flash:generateContent" in fake_transport.last_request["url"]

    @pytest.mark.asyncio
    async def test_extra_body_forwarded(self, manager, fake_transport, openai_body):
        fake_transport.reply_json(openai_body("ok"))
        await manager.send_message([Message.user("x")], AIModel.GROK2, {"temperature": 0.3})
        body = fake_transport.last_request["body"]
        assert body["temperature"] == 0.3
        assert body["model"] == "grok-2-latest"

    @pytest.mark.asyncio
    async def test_timeout_and_cancel_forwarded(self, manager, fake_transport, openai_body):
        fake_transport.reply_json(openai_body("ok"))
        event = asyncio.Event()
        await manager.send_message(
            [Message.user("x")], AIModel.GPT5, timeout=3, cancel_event=event,
        )
        assert fake_transport.last_request["timeout"] == 3
        assert fake_transport.last_request["cancel_event"] is event

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, keyless_manager, fake_transport, caplog):
        with caplog.at_level(logging.ERROR):
            reply = await keyless_manager.send_message([Message.user("x")], AIModel.GPT4O)
        assert reply is None
        assert fake_transport.requests == []
        assert "OPENAI_API_KEY" in caplog.text

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self, manager, fake_transport):
        fake_transport.reply_error(500)
        assert await manager.send_message([Message.user("x")], AIModel.GPT4O) is None

    @pytest.mark.asyncio
    async def test_network_failure_returns_none(self, manager, fake_transport):
        fake_transport.reply_network_failure()
        assert await manager.send_message([Message.user("x")], AIModel.GROK3) is None

    @pytest.mark.asyncio
    async def test_no_text_returns_none(self, manager, fake_transport):
        fake_transport.reply_json({"choices": []})
        assert await manager.send_message([Message.user("x")], AIModel.GPT4O) is None

    @pytest.mark.asyncio
    async def test_unknown_model_raises(self, manager):
        with pytest.raises(UnknownModelError):
            await manager.send_message([Message.user("x")], "gpt-99")


class TestCapabilities:
    @pytest.mark.asyncio
    async def test_chat_on_embedding_model(self, manager, fake_transport):
        with pytest.raises(CapabilityMismatchError, match="TEXT_CHAT"):
            await manager.send_message([Message.user("x")], AIModel.OPENAI_EMBEDDING_SMALL)
        assert fake_transport.requests == []

    @pytest.mark.asyncio
    async def test_image_on_grok_needs_vision(self, manager, fake_transport):
        message = Message(role="user", parts=[
            ContentPart.from_text("what is this"),
            ContentPart.from_image_url("https://example.com/a.png"),
        ])
        with pytest.raises(CapabilityMismatchError, match="VISION"):
            await manager.send_message([message], AIModel.GROK3)
        assert fake_transport.requests == []

    @pytest.mark.asyncio
    async def test_embedding_on_chat_model(self, manager, fake_transport):
        with pytest.raises(CapabilityMismatchError):
            await manager.create_embeddings(["x"], AIModel.GPT4O)
        assert fake_transport.requests == []

    @pytest.mark.asyncio
    async def test_image_generation_on_chat_model(self, manager):
        with pytest.raises(CapabilityMismatchError, match="IMAGE_GENERATION"):
            await manager.generate_images([Message.user("draw")], AIModel.GEMINI25)

    @pytest.mark.asyncio
    async def test_vision_model_accepts_images(self, manager, fake_transport, openai_body):
        fake_transport.reply_json(openai_body("a cat"))
        message = Message(role="user", parts=[ContentPart.from_image_data(b"ABC")])
        assert await manager.send_message([message], AIModel.GPT4O) == "a cat"


class TestStreaming:
    @pytest.mark.asyncio
    async def test_stream(self, manager, fake_transport):
        fake_transport.stream_chunks = [
            'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n',
            'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n',
            "data: [DONE]\n\n",
        ]
        deltas: list[str] = []
        reply = await manager.send_message_stream(
            [Message.user("x")], AIModel.GPT4O, deltas.append,
        )
        assert reply == "Hello"
        assert deltas == ["Hel", "lo"]

    @pytest.mark.asyncio
    async def test_failed_stream(self, manager, fake_transport):
        fake_transport.stream_status = 500
        reply = await manager.send_message_stream(
            [Message.user("x")], AIModel.GEMINI25, lambda delta: None,
        )
        assert reply is None


class TestStructured:
    @pytest.mark.asyncio
    async def test_typed(self, manager, fake_transport, openai_body):
        fake_transport.reply_json(openai_body('{"city": "Paris", "temperature": 21.5}'))
        result = await manager.send_structured_message(
            [Message.user("weather?")], Weather, AIModel.GPT4O,
        )
        assert result == Weather(city="Paris", temperature=21.5)
        response_format = fake_transport.last_request["body"]["response_format"]
        assert response_format["json_schema"]["name"] == "Weather"
        schema = response_format["json_schema"]["schema"]
        assert schema["required"] == ["city", "temperature", "note"]

    @pytest.mark.asyncio
    async def test_schema_name_override(self, manager, fake_transport, openai_body):
        fake_transport.reply_json(openai_body('{"city": "Oslo", "temperature": 1}'))
        await manager.send_structured_message(
            [Message.user("x")], Weather, AIModel.GPT4O, schema_name="weather_report",
        )
        body = fake_transport.last_request["body"]
        assert body["response_format"]["json_schema"]["name"] == "weather_report"

    @pytest.mark.asyncio
    async def test_validation_failure(self, manager, fake_transport, openai_body):
        fake_transport.reply_json(openai_body('{"city": "Paris"}'))
        result = await manager.send_structured_message(
            [Message.user("x")], Weather, AIModel.GPT4O,
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_invalid_json(self, manager, fake_transport, gemini_body):
        fake_transport.reply_json(gemini_body({"text": "not json"}))
        result = await manager.send_structured_message(
            [Message.user("x")], Weather, AIModel.GEMINI25,
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_into(self, manager, fake_transport, openai_body):
        fake_transport.reply_json(openai_body('{"city": "Rome", "temperature": 30}'))
        target = Weather(city="?", temperature=0, note="keep me")
        result = await manager.send_structured_message_into(
            target, [Message.user("x")], AIModel.GPT4O,
        )
        assert result is target
        assert target.city == "Rome"
        assert target.temperature == 30
        assert target.note == "keep me"

    @pytest.mark.asyncio
    async def test_into_failure_leaves_target(self, manager, fake_transport):
        fake_transport.reply_error(400)
        target = Weather(city="?", temperature=0)
        assert await manager.send_structured_message_into(
            target, [Message.user("x")], AIModel.GPT4O,
        ) is None
        assert target.city == "?"

    @pytest.mark.asyncio
    async def test_with_bare_schema(self, manager, fake_transport, gemini_body):
        fake_transport.reply_json(gemini_body({"text": '{"n": 3}'}))
        schema = {"type": "object", "properties": {"n": {"type": "number"}}}
        result = await manager.send_structured_message_with_schema(
            [Message.user("x")], schema, AIModel.GEMINI25_FLASH,
        )
        assert result == {"n": 3}
        config = fake_transport.last_request["body"]["generationConfig"]
        assert config["responseSchema"] == schema

    @pytest.mark.asyncio
    async def test_with_named_schema(self, manager, fake_transport, openai_body):
        fake_transport.reply_json(openai_body('{"n": 3}'))
        named = {"name": "count", "schema": {"type": "object"}}
        await manager.send_structured_message_with_schema(
            [Message.user("x")], named, AIModel.GPT4O,
        )
        body = fake_transport.last_request["body"]
        assert body["response_format"]["json_schema"] == named

    @pytest.mark.asyncio
    async def test_with_definition(self, manager, fake_transport, openai_body):
        definition = SchemaDefinition(name="reading", parameters=[
            SchemaParameter(name="value", parameter_type=ParameterType.NUMBER),
            SchemaParameter(name="ok", parameter_type=ParameterType.BOOLEAN),
        ])
        fake_transport.reply_json(openai_body('{"value": 4.0, "ok": true}'))
        result = await manager.send_structured_message_with_definition(
            [Message.user("x")], definition, AIModel.GPT4O,
        )
        assert result.get_parameter("value").value == "4"
        assert result.get_parameter("ok").get_value() is True
        assert definition.get_parameter("value").value is None
        body = fake_transport.last_request["body"]
        assert body["response_format"]["json_schema"]["name"] == "reading"


class TestFunctionCalling:
    @pytest.mark.asyncio
    async def test_openai_add_numbers(self, manager, fake_transport, openai_body, add_numbers):
        fake_transport.reply_json(_tool_reply(openai_body, "addNumbers", {"a": 1, "b": 2}))
        result = await manager.send_function_call_message(
            [Message.user("What is 1 + 2?")], [add_numbers], AIModel.GPT4O,
        )
        assert result.name == "addNumbers"
        assert result.get_parameter("a").value == "1"
        assert result.get_parameter("b").value == "2"
        assert add_numbers.get_parameter("a").value is None

    @pytest.mark.asyncio
    async def test_gemini(self, manager, fake_transport, gemini_body, add_numbers):
        fake_transport.reply_json(gemini_body(
            {"functionCall": {"name": "addNumbers", "args": {"a": 5, "b": 6}}},
        ))
        result = await manager.send_function_call_message(
            [Message.user("5+6")], [add_numbers], AIModel.GEMINI25,
        )
        assert result.get_parameter("b").get_value() == 6.0

    @pytest.mark.asyncio
    async def test_unknown_function(self, manager, fake_transport, openai_body, add_numbers):
        fake_transport.reply_json(_tool_reply(openai_body, "subtractNumbers", {"a": 1}))
        assert await manager.send_function_call_message(
            [Message.user("x")], [add_numbers], AIModel.GROK3,
        ) is None

    @pytest.mark.asyncio
    async def test_requires_functions(self, manager):
        with pytest.raises(ValueError):
            await manager.send_function_call_message([Message.user("x")], [], AIModel.GPT4O)


class TestImages:
    @pytest.mark.asyncio
    async def test_generate(self, manager, fake_transport, gemini_body):
        data = base64.b64encode(b"IMG").decode("ascii")
        fake_transport.reply_json(gemini_body(
            {"text": "here you go"},
            {"inlineData": {"mimeType": "image/png", "data": data}},
        ))
        response = await manager.generate_images(
            [Message.user("a red cube")], AIModel.GEMINI25_FLASH_IMAGE_PREVIEW,
        )
        assert [i.data for i in response.images] == [b"IMG"]
        assert json.loads(response.raw_json)["candidates"]

    @pytest.mark.asyncio
    async def test_generate_single(self, manager, fake_transport, gemini_body):
        data = base64.b64encode(b"IMG").decode("ascii")
        fake_transport.reply_json(gemini_body({"inlineData": {"data": data}}))
        image = await manager.generate_image(
            [Message.user("x")], AIModel.GEMINI3_PRO_IMAGE_PREVIEW,
        )
        assert image.data == b"IMG"

    @pytest.mark.asyncio
    async def test_no_images(self, manager, fake_transport, caplog):
        fake_transport.reply_json({"promptFeedback": {"blockReason": "SAFETY"}})
        with caplog.at_level(logging.WARNING):
            response = await manager.generate_images(
                [Message.user("x")], AIModel.GEMINI25_FLASH_IMAGE_PREVIEW,
            )
        assert response.images == []
        assert response.prompt_feedback == "SAFETY"
        assert "SAFETY" in caplog.text
        fake_transport.reply_json({})
        assert await manager.generate_image(
            [Message.user("x")], AIModel.GEMINI25_FLASH_IMAGE_PREVIEW,
        ) is None


class TestEmbeddings:
    @pytest.mark.asyncio
    async def test_gemini_partial_failure_keeps_order(self, manager, fake_transport):
        fake_transport.reply_json({"embedding": {"values": [1.0, 0.0]}})
        fake_transport.reply_error(503)
        fake_transport.reply_json({"embedding": {"values": [0.0, 1.0]}})
        embeddings = await manager.create_embeddings(
            ["first", "second", "third"], AIModel.GEMINI_EMBEDDING,
        )
        assert [e.to_floats() for e in embeddings] == [[1.0, 0.0], [0.0, 1.0]]

    @pytest.mark.asyncio
    async def test_openai_filters_blank_inputs(self, manager, fake_transport):
        fake_transport.reply_json({"data": [{"index": 0, "embedding": [0.25]}]})
        embeddings = await manager.create_embeddings(["", "text"], AIModel.OPENAI_EMBEDDING_LARGE)
        assert fake_transport.last_request["body"]["input"] == ["text"]
        assert len(embeddings) == 1

    @pytest.mark.asyncio
    async def test_all_blank_returns_empty(self, manager, fake_transport):
        assert await manager.create_embeddings(["", "  "], AIModel.OPENAI_EMBEDDING_SMALL) == []
        assert fake_transport.requests == []

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self, manager, fake_transport):
        fake_transport.reply_error(500)
        assert await manager.create_embeddings(["x"], AIModel.OPENAI_EMBEDDING_SMALL) == []

    @pytest.mark.asyncio
    async def test_openai_non_numeric_vector_returns_empty(self, manager, fake_transport):
        fake_transport.reply_json({"data": [{"index": 0, "embedding": ["x", "y"]}]})
        assert await manager.create_embeddings(["hello"], AIModel.OPENAI_EMBEDDING_SMALL) == []

    @pytest.mark.asyncio
    async def test_gemini_nested_vector_returns_empty(self, manager, fake_transport):
        fake_transport.reply_json({"embedding": {"values": [[0.1, 0.2]]}})
        assert await manager.create_embeddings(["hello"], AIModel.GEMINI_EMBEDDING) == []

    @pytest.mark.asyncio
    async def test_single(self, manager, fake_transport):
        fake_transport.reply_json({"data": [{"index": 0, "embedding": [0.5, 0.5]}]})
        embedding = await manager.create_embedding("x", "openai-embedding-small")
        assert embedding.dimension == 2
        fake_transport.reply_error(500)
        assert await manager.create_embedding("x", "openai-embedding-small") is None
