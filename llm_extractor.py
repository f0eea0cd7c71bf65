"""
Pump Advisor: LLM Intent Extractor

Second opinion on the user's requirements from an OpenAI-compatible chat
completions endpoint. Advisory only: its fields fill gaps the pattern
extractor left, and any failure degrades to an empty state.
"""
from __future__ import annotations
import asyncio
import json
import logging
from typing import Any, Iterable, Optional

import httpx
from pydantic import ValidationError

from config import Settings
from intent_extractor import MessageLike, as_message, extract_intent, merge_states
from models import ConversationState

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You extract pump-sizing requirements from a conversation.
Return ONLY a JSON object. Omit any field the user has not clearly stated.

Fields:
  application: one of heating, cooling, domestic_water, water_supply, wastewater, dosing
  building_size: one of small (1-3 floors), medium (4-8 floors), large (9+ floors)
  floors: integer number of floors
  bathrooms: integer number of bathrooms
  water_source: one of mains, well, tank
  problem: one of low_pressure, no_water, replacement, new_install, energy_saving
  flow_m3h: required flow in m³/h (convert gpm, L/min, L/s)
  head_m: required head in metres (convert feet)
  motor_kw: motor power in kW (convert hp)
  existing_pump_brand: brand of the pump being replaced
  existing_pump_model: model of the pump being replaced
  existing_pump_power: rated power of the existing pump in kW

Users may write in Filipino or Taglish:
  "CR" or "comfort room" = bathroom, "palapag" = floor, "bahay" = house,
  "poso" = well, "mahina ang tubig" = low pressure, "palitan" = replace,
  "isa" = 1, "dalawa" = 2, "tatlo" = 3, "apat" = 4, "lima" = 5.
Numbers must be positive. Never guess."""

# Accept camelCase keys some models prefer
FIELD_ALIASES = {
    'buildingSize': 'building_size',
    'waterSource': 'water_source',
    'flowM3h': 'flow_m3h',
    'headM': 'head_m',
    'motorKw': 'motor_kw',
    'existingPumpBrand': 'existing_pump_brand',
    'existingPumpModel': 'existing_pump_model',
    'existingPumpPower': 'existing_pump_power',
}

ENUM_FIELDS = {'application', 'building_size', 'water_source', 'problem'}

# Fields the LLM is trusted to report
LLM_FIELDS = [
    'application', 'building_size', 'floors', 'bathrooms', 'water_source',
    'problem', 'flow_m3h', 'head_m', 'motor_kw', 'existing_pump_brand',
    'existing_pump_model', 'existing_pump_power',
]


def parse_llm_fields(data: Any) -> ConversationState:
    """Validate each field on its own and keep only those that pass."""
    if not isinstance(data, dict):
        return ConversationState()

    normalized = {FIELD_ALIASES.get(k, k): v for k, v in data.items()}
    accepted: dict[str, Any] = {}
    for name in LLM_FIELDS:
        value = normalized.get(name)
        if value is None or value == '':
            continue
        if name in ENUM_FIELDS and isinstance(value, str):
            value = value.strip().lower().replace(' ', '_').replace('-', '_')
        try:
            ConversationState.model_validate({name: value})
        except ValidationError:
            logger.debug(f"LLM field rejected: {name}={value!r}")
            continue
        accepted[name] = value
    return ConversationState(**accepted)


class LLMIntentExtractor:
    """Calls a chat-completions endpoint in JSON mode."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        model: str,
        max_tokens: int = 200,
        temperature: float = 0.0,
        history_window: int = 6,
        timeout: float = 4.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.history_window = history_window
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMIntentExtractor":
        return cls(
            api_url=settings.llm_api_url,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            history_window=settings.llm_history_window,
            timeout=settings.llm_timeout_seconds,
        )

    def build_messages(self, history: Iterable[MessageLike]) -> list[dict[str, str]]:
        turns = [
            {'role': m.role, 'content': m.content}
            for m in (as_message(h) for h in history)
            if m.role in ('user', 'assistant') and m.content
        ]
        return [
            {'role': 'system', 'content': SYSTEM_PROMPT},
            *turns[-self.history_window:],
        ]

    async def extract(self, history: Iterable[MessageLike]) -> ConversationState:
        payload = {
            'model': self.model,
            'messages': self.build_messages(history),
            'temperature': self.temperature,
            'max_tokens': self.max_tokens,
            'response_format': {'type': 'json_object'},
        }
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport,
            ) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
                response.raise_for_status()
                content = response.json()['choices'][0]['message']['content']
            data = json.loads(content)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError, KeyError, IndexError,
                TypeError) as e:
            logger.warning(f"LLM intent extraction failed: {e}")
            return ConversationState()

        state = parse_llm_fields(data)
        logger.debug(f"LLM extracted: {state.known_fields()}")
        return state


async def resolve_intent(
    history: Iterable[MessageLike],
    extractor: Optional[LLMIntentExtractor] = None,
    timeout: Optional[float] = None,
) -> ConversationState:
    """
    Pattern and LLM extraction side by side, merged with pattern priority.
    A slow or failing LLM never holds up the pattern result.
    """
    history = list(history)
    if extractor is None:
        return extract_intent(history)

    llm_task = asyncio.create_task(extractor.extract(history))
    pattern_state = extract_intent(history)

    llm_state: Optional[ConversationState] = None
    try:
        llm_state = await asyncio.wait_for(
            llm_task, timeout=timeout if timeout is not None else extractor.timeout)
    except asyncio.TimeoutError:
        logger.warning("LLM intent extraction timed out; using pattern state only")

    return merge_states(pattern_state, llm_state)
