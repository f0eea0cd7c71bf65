"""Pin the LLM extractor's degradation rules.

The LLM is advisory: bad fields are dropped one by one, any transport
or parsing failure yields an empty state, and a slow call never delays
the pattern result. HTTP is mocked with httpx.MockTransport.
"""

import asyncio
import json

import httpx

from llm_extractor import LLMIntentExtractor, parse_llm_fields, resolve_intent
from models import Application, ConversationState, WaterSource

HISTORY = [{"role": "user", "content": "need 25 m3/h for a 6 floor building"}]


def make_extractor(handler, **kwargs):
    return LLMIntentExtractor(
        api_url="https://llm.test/v1/chat/completions",
        api_key="test-key",
        model="test-model",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def completion(payload: dict) -> httpx.Response:
    return httpx.Response(200, json={
        "choices": [{"message": {"content": json.dumps(payload)}}],
    })


class TestParseFields:
    def test_valid_fields_kept(self):
        state = parse_llm_fields({"application": "Heating", "waterSource": "well"})
        assert state.application == Application.HEATING
        assert state.water_source == WaterSource.WELL

    def test_invalid_field_dropped_alone(self):
        state = parse_llm_fields({"floors": "lots", "flowM3h": 12, "head_m": -3})
        assert state.floors is None
        assert state.head_m is None
        assert state.flow_m3h == 12

    def test_non_dict(self):
        assert parse_llm_fields(["heating"]).is_empty()


class TestExtract:
    def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return completion({"flow_m3h": 30, "floors": 6})

        state = asyncio.run(make_extractor(handler).extract(HISTORY))
        assert state.flow_m3h == 30
        assert state.floors == 6
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["response_format"] == {"type": "json_object"}
        assert seen["body"]["messages"][0]["role"] == "system"

    def test_server_error_gives_empty_state(self):
        extractor = make_extractor(lambda request: httpx.Response(500))
        assert asyncio.run(extractor.extract(HISTORY)).is_empty()

    def test_garbage_content_gives_empty_state(self):
        def handler(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": "nope"}}]})

        assert asyncio.run(make_extractor(handler).extract(HISTORY)).is_empty()

    def test_history_window(self):
        extractor = make_extractor(lambda r: completion({}), history_window=2)
        history = [{"role": "user", "content": f"message {i}"} for i in range(5)]
        messages = extractor.build_messages(history)
        assert len(messages) == 3
        assert messages[-1]["content"] == "message 4"


class SlowExtractor:
    timeout = 0.05

    async def extract(self, history):
        await asyncio.sleep(5)
        return ConversationState(flow_m3h=99)


class TestResolveIntent:
    def test_pattern_wins_on_conflict(self):
        extractor = make_extractor(lambda r: completion({"flow_m3h": 30, "head_m": 40}))
        state = asyncio.run(resolve_intent(HISTORY, extractor))
        assert state.flow_m3h == 25
        assert state.head_m == 40

    def test_timeout_falls_back_to_patterns(self):
        state = asyncio.run(resolve_intent(HISTORY, SlowExtractor()))
        assert state.flow_m3h == 25
        assert state.floors == 6

    def test_no_extractor(self):
        state = asyncio.run(resolve_intent(HISTORY))
        assert state.flow_m3h == 25

    def test_malformed_url_falls_back_to_patterns(self):
        extractor = LLMIntentExtractor(
            api_url="https://[not-an-address]/v1/chat/completions",
            api_key=None,
            model="test-model",
            transport=httpx.MockTransport(lambda r: completion({"head_m": 40})),
        )
        assert asyncio.run(extractor.extract(HISTORY)).is_empty()
        state = asyncio.run(resolve_intent(HISTORY, extractor))
        assert state.flow_m3h == 25
        assert state.head_m is None
