"""
Pump Advisor: Core Pydantic Models

Conversation state, catalog entries, duty points, ROI figures and the
engine's decision envelope. Boundary number parsing lives here too.
"""
from __future__ import annotations
import math
import re
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# ============================================================
# Enums
# ============================================================

class Application(str, Enum):
    HEATING = "heating"
    COOLING = "cooling"
    DOMESTIC_WATER = "domestic_water"
    WATER_SUPPLY = "water_supply"
    WASTEWATER = "wastewater"
    DOSING = "dosing"

class BuildingSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

class WaterSource(str, Enum):
    MAINS = "mains"
    WELL = "well"
    TANK = "tank"

class Problem(str, Enum):
    LOW_PRESSURE = "low_pressure"
    NO_WATER = "no_water"
    REPLACEMENT = "replacement"
    NEW_INSTALL = "new_install"
    ENERGY_SAVING = "energy_saving"

class Action(str, Enum):
    GREET = "greet"
    ASK = "ask"
    RECOMMEND = "recommend"

class DutyConfidence(str, Enum):
    ESTIMATED = "estimated"
    CALCULATED = "calculated"

class MatchLabel(str, Enum):
    EXCELLENT = "Excellent Match"
    GOOD = "Good Match"
    FAIR = "Fair Match"
    PARTIAL = "Partial Match"

# ============================================================
# Conversation
# ============================================================

class ChatMessage(BaseModel):
    role: str = "user"
    content: str = ""


class ConversationState(BaseModel):
    """Structured requirements accumulated from the conversation."""
    application: Optional[Application] = None
    building_size: Optional[BuildingSize] = None
    floors: Optional[int] = Field(None, gt=0)
    bathrooms: Optional[int] = Field(None, gt=0)
    water_source: Optional[WaterSource] = None
    problem: Optional[Problem] = None
    flow_m3h: Optional[float] = Field(None, gt=0)
    head_m: Optional[float] = Field(None, gt=0)
    motor_kw: Optional[float] = Field(None, gt=0)
    existing_pump_brand: Optional[str] = None
    existing_pump_model: Optional[str] = None
    existing_pump_power: Optional[float] = Field(None, gt=0)
    eval_domain: Optional[str] = None

    @field_validator("existing_pump_brand", "existing_pump_model", "eval_domain")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def is_empty(self) -> bool:
        return all(
            getattr(self, name) is None for name in type(self).model_fields)

    def has_exact_specs(self) -> bool:
        return self.flow_m3h is not None and self.head_m is not None

    def known_fields(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

# ============================================================
# Catalog
# ============================================================

class CatalogPump(BaseModel):
    """Immutable catalog entry. Spec values may be numbers or unit strings."""
    model_config = ConfigDict(frozen=True)

    id: str
    model: str
    family: str
    category: str
    type: str = ""
    image_url: Optional[str] = None
    applications: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    specs: dict[str, Any] = Field(default_factory=dict)
    estimated_annual_kwh: Optional[float] = None
    price_range_usd: Optional[str] = None
    competitor_equivalents: dict[str, str] = Field(default_factory=dict)

    def spec(self, name: str) -> Optional[float]:
        return parse_number(self.specs.get(name))

    @property
    def max_flow_m3h(self) -> Optional[float]:
        return self.spec("max_flow_m3h")

    @property
    def max_head_m(self) -> Optional[float]:
        return self.spec("max_head_m")

    @property
    def power_kw(self) -> Optional[float]:
        return self.spec("power_kw")

    @property
    def price_usd(self) -> float:
        return parse_price_range(self.price_range_usd)

# ============================================================
# Engine Outputs
# ============================================================

class DutyPoint(BaseModel):
    estimated_flow_m3h: float
    estimated_head_m: float
    confidence: DutyConfidence = DutyConfidence.ESTIMATED
    assumptions: list[str] = Field(default_factory=list)


class ROISummary(BaseModel):
    old_annual_cost: float
    new_annual_cost: float
    annual_savings: float
    payback_months: float  # math.inf when savings <= 0
    co2_reduction_tonnes: float
    ten_year_savings: float
    lifecycle_cost: float
    efficiency_improvement_pct: float
    currency: str = "PHP"

    @property
    def pays_back(self) -> bool:
        return math.isfinite(self.payback_months)

    @field_serializer("payback_months")
    def serialize_payback(self, v: float) -> Optional[float]:
        return v if math.isfinite(v) else None


class RankedPump(CatalogPump):
    match_confidence: int = Field(..., ge=0, le=100)
    match_label: MatchLabel
    roi: ROISummary
    price_range_local: Optional[str] = None
    compared_to: Optional[str] = None
    oversizing_note: Optional[str] = None


class RequirementItem(BaseModel):
    label: str
    value: str


class DecisionTrace(BaseModel):
    step: str
    detail: str
    candidates_remaining: int = 0


class EngineResult(BaseModel):
    """Decision envelope returned to the phrasing layer."""
    action: Action
    question_context: Optional[str] = None
    suggestions: list[str] = Field(default_factory=list)
    duty_point: Optional[DutyPoint] = None
    pumps: list[RankedPump] = Field(default_factory=list)
    requirements: list[RequirementItem] = Field(default_factory=list)
    state: ConversationState = Field(default_factory=ConversationState)
    is_competitor_replacement: bool = False
    no_match: bool = False
    trace: list[DecisionTrace] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    components: dict[str, dict]
    version: str
    uptime_seconds: int

# ============================================================
# Utility: Boundary Number Parsing
# ============================================================

_NUMBER_RE = re.compile(r'-?\d+(?:[.,]\d+)?')

DEFAULT_PRICE_USD = 500.0


def parse_number(value: Any) -> Optional[float]:
    """Parse catalog values like 3.5, '3.5', '18 m³/h' or '0,55 kW' into float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    t = str(value).strip()
    if not t:
        return None

    try:
        result = float(t)
        return result if math.isfinite(result) else None
    except ValueError:
        pass

    m = _NUMBER_RE.search(t)
    if not m:
        return None
    return float(m.group(0).replace(',', '.'))


def parse_price_range(text: Optional[str]) -> float:
    """Midpoint of '650-900'; a single number is returned as is."""
    if not text:
        return DEFAULT_PRICE_USD
    parts = [p.strip() for p in str(text).replace(',', '').split('-')]
    values = [parse_number(p) for p in parts if p]
    values = [v for v in values if v is not None]
    if not values:
        return DEFAULT_PRICE_USD
    if len(values) >= 2:
        return (values[0] + values[1]) / 2
    return values[0]
