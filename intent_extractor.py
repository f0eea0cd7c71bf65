"""
Pump Advisor: Intent Extractor

Responsibilities:
  1. Pattern-based extraction of ConversationState from chat history
  2. Correction handling: the latest message overrides earlier mentions
  3. Side inferences (floors -> building size, "my house" -> domestic)
  4. Field-by-field merge with the LLM extractor's partial state
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from models import (
    Application, BuildingSize, ChatMessage, ConversationState,
)
import unit_patterns as up

logger = logging.getLogger(__name__)

MessageLike = Union[ChatMessage, dict]


# ============================================================
# History Helpers
# ============================================================

def as_message(m: MessageLike) -> ChatMessage:
    if isinstance(m, ChatMessage):
        return m
    return ChatMessage(role=m.get('role', 'user'), content=m.get('content') or '')


def user_messages(history: Iterable[MessageLike]) -> list[str]:
    return [
        msg.content for msg in (as_message(m) for m in history)
        if msg.role == 'user' and msg.content
    ]


def latest_user_message(history: Iterable[MessageLike]) -> Optional[str]:
    texts = user_messages(history)
    return texts[-1] if texts else None


# ============================================================
# Side Inference
# ============================================================

def size_from_floors(floors: int) -> BuildingSize:
    if floors <= 3:
        return BuildingSize.SMALL
    if floors <= 8:
        return BuildingSize.MEDIUM
    return BuildingSize.LARGE


def apply_floor_inference(state: ConversationState) -> ConversationState:
    if state.floors is not None and state.building_size is None:
        return state.model_copy(
            update={'building_size': size_from_floors(state.floors)})
    return state


# ============================================================
# Pattern Extraction
# ============================================================

# (field, detector) in the order fields are resolved
FIELD_DETECTORS: list[tuple[str, Callable[[str], Any]]] = [
    ('application', up.detect_application),
    ('building_size', up.detect_building_size),
    ('floors', up.extract_floors),
    ('bathrooms', up.extract_bathrooms),
    ('water_source', up.detect_water_source),
    ('problem', up.detect_problem),
    ('flow_m3h', up.extract_flow_m3h),
    ('head_m', up.extract_head_m),
    ('motor_kw', up.extract_motor_kw),
    ('existing_pump_brand', up.detect_competitor_brand),
    ('existing_pump_model', up.detect_pump_model),
    ('existing_pump_power', up.extract_existing_power_kw),
    ('eval_domain', up.detect_eval_domain),
]


def extract_intent(history: Iterable[MessageLike]) -> ConversationState:
    """
    Build ConversationState from the user turns of a conversation.

    Pure and idempotent: the same history always yields the same state.
    On a correction turn ("actually it's for cooling") each field is
    re-detected from the latest message first and only falls back to
    the whole history when that message says nothing about it.
    """
    texts = user_messages(history)
    if not texts:
        return ConversationState()

    all_text = ' '.join(texts)
    latest = texts[-1]
    correcting = len(texts) > 1 and up.is_correction(latest)

    values: dict[str, Any] = {}
    for name, detect in FIELD_DETECTORS:
        value = detect(latest) if correcting else None
        if value is None:
            value = detect(all_text)
        if value is not None:
            values[name] = value

    if correcting:
        logger.debug(f"Correction turn; re-detected from latest: {latest!r}")

    state = _build_state(values)
    state = apply_floor_inference(state)

    if state.application is None and up.mentions_own_home(all_text):
        update: dict[str, Any] = {'application': Application.DOMESTIC_WATER}
        if state.building_size is None:
            update['building_size'] = BuildingSize.SMALL
        state = state.model_copy(update=update)

    return state


def _build_state(values: dict[str, Any]) -> ConversationState:
    """Validate extracted values, dropping any field that fails."""
    try:
        return ConversationState(**values)
    except ValidationError as e:
        bad = {err['loc'][0] for err in e.errors() if err.get('loc')}
        logger.debug(f"Dropping invalid extracted fields: {sorted(bad)}")
        return ConversationState(
            **{k: v for k, v in values.items() if k not in bad})


# ============================================================
# Merge
# ============================================================

def merge_states(pattern: ConversationState,
                 llm: Optional[ConversationState]) -> ConversationState:
    """
    Field-by-field merge: the pattern value wins whenever present; the
    LLM value only fills gaps. Not a deep merge.
    """
    if llm is None:
        return pattern
    merged: dict[str, Any] = {}
    for name in ConversationState.model_fields:
        value = getattr(pattern, name)
        if value is None:
            value = getattr(llm, name)
        if value is not None:
            merged[name] = value
    return apply_floor_inference(ConversationState(**merged))
