"""
Pump Advisor: Nameplate Text Parser

Turns OCR text read off a pump nameplate into a structured reading the
conversation can start from. OCR itself happens upstream; this module
only parses text.
"""
from __future__ import annotations
import logging
import re
from typing import Optional

from pydantic import BaseModel

from config import get_settings
from models import ConversationState
import unit_patterns as up

logger = logging.getLogger(__name__)

# Upper-case nameplate spelling -> canonical brand
NAMEPLATE_BRANDS = [
    ('GRUNDFOS', 'Grundfos'),
    ('WILO', 'Wilo'),
    ('KSB', 'KSB'),
    ('XYLEM', 'Xylem'),
    ('LOWARA', 'Lowara'),
    ('DAB', 'DAB'),
    ('PENTAIR', 'Pentair'),
    ('FLYGT', 'Flygt'),
    ('ITT', 'ITT'),
    ('EBARA', 'Ebara'),
]

# Ordered: an explicit MODEL/TYPE label beats family-shaped guesses
MODEL_PATTERNS = [
    re.compile(r'\b(?:MODEL|TYPE|MOD)\b[ \t]*[:.]?[ \t]*([A-Z0-9][A-Z0-9 \t\-/.]*)', re.IGNORECASE),
    re.compile(r'\b(MAGNA3?[ \t]*\d[\d\-/ \t]*)', re.IGNORECASE),
    re.compile(r'\b(CR[EN]?[ \t]*\d[\d\-/ \t]*)', re.IGNORECASE),
    re.compile(r'\b(SP[ \t]*\d[\dA-Z\-/ \t]*)', re.IGNORECASE),
    re.compile(r'\b(ALPHA\d?[ \t]*\d[\d\-/ \t]*)', re.IGNORECASE),
    re.compile(r'\b(SCALA\d?[ \t]*[\d\-/ \t]*)', re.IGNORECASE),
    re.compile(r'\b(STRATOS[ \t]*[\d\-/ \t]*)', re.IGNORECASE),
    re.compile(r'\b(HELIX[ \t]*[A-Z]*[ \t]*[\d\-/ \t]*)', re.IGNORECASE),
    re.compile(r'\b([A-Z]{2,}[ \t]*\d{1,3}[\-/]\d{1,3}[\-/]?\d{0,3})'),
]

POWER_PATTERNS: list[tuple[re.Pattern, float]] = [
    (re.compile(r'(\d+(?:\.\d+)?)\s*kW\b', re.IGNORECASE), 1.0),
    (re.compile(r'(\d+(?:\.\d+)?)\s*W\b'), 0.001),
    (re.compile(r'(\d+(?:\.\d+)?)\s*HP\b', re.IGNORECASE), up.HP_TO_KW),
]

VOLTAGE_RE = re.compile(
    r'(\d{1,3}\s*[xX×]\s*\d{2,3}(?:\s*-\s*\d{2,3})?\s*V|\d{2,3}(?:\s*-\s*\d{2,3})?\s*V)\b')

LABELLED_HEAD_RE = re.compile(
    r'\b(?:H(?:max)?|HEAD|TDH)\b\s*[:=]?\s*(\d+(?:\.\d+)?)\s*(m|ft)\b', re.IGNORECASE)

_DECIMAL_COMMA_RE = re.compile(r'(\d),(\d)')


class NameplateReading(BaseModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    power_kw: Optional[float] = None
    voltage: Optional[str] = None
    flow_m3h: Optional[float] = None
    head_m: Optional[float] = None

    def to_state(self, own_brand: Optional[str] = None) -> ConversationState:
        """Existing-pump fields only; our own brand is not a competitor."""
        own = (own_brand or get_settings().own_brand).lower()
        competitor = self.brand is not None and self.brand.lower() != own
        return ConversationState(
            existing_pump_brand=self.brand if competitor else None,
            existing_pump_model=self.model if competitor else None,
            existing_pump_power=self.power_kw if self.power_kw else None,
        )


def detect_brand(text: str) -> Optional[str]:
    upper = text.upper()
    for token, name in NAMEPLATE_BRANDS:
        if re.search(rf'\b{token}\b', upper):
            return name
    return None


def detect_model(text: str) -> Optional[str]:
    for pattern in MODEL_PATTERNS:
        m = pattern.search(text)
        if m:
            model = m.group(1).strip(' \t-/.')
            if model:
                return model
    return None


def detect_power_kw(text: str) -> Optional[float]:
    for pattern, factor in POWER_PATTERNS:
        m = pattern.search(text)
        if m and float(m.group(1)) > 0:
            return up.convert(float(m.group(1)), factor)
    return None


def detect_voltage(text: str) -> Optional[str]:
    m = VOLTAGE_RE.search(text)
    return m.group(1) if m else None


def detect_head_m(text: str) -> Optional[float]:
    m = LABELLED_HEAD_RE.search(text)
    if m and float(m.group(1)) > 0:
        factor = up.FT_TO_M if m.group(2).lower() == 'ft' else 1.0
        return up.convert(float(m.group(1)), factor)
    return up.extract_head_m(text)


def parse_nameplate_text(text: str) -> NameplateReading:
    if not text or not text.strip():
        return NameplateReading()

    text = _DECIMAL_COMMA_RE.sub(r'\1.\2', text)
    reading = NameplateReading(
        brand=detect_brand(text),
        model=detect_model(text),
        power_kw=detect_power_kw(text),
        voltage=detect_voltage(text),
        flow_m3h=up.extract_flow_m3h(text),
        head_m=detect_head_m(text),
    )
    logger.debug(f"Nameplate parsed: {reading.model_dump(exclude_none=True)}")
    return reading
