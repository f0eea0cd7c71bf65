"""
Pump Advisor: Duty-Point Estimator

Derives the target (flow, head) operating point from whatever the user
has told us. Each application has its own sizing model; every branch
records the assumptions it made so the chat layer can show them.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass

from models import (
    Application, BuildingSize, ConversationState, DutyConfidence, DutyPoint,
)

logger = logging.getLogger(__name__)

PRECISION = 3

SIZE_TO_FLOORS = {
    BuildingSize.SMALL: 2,
    BuildingSize.MEDIUM: 5,
    BuildingSize.LARGE: 12,
}

SIZE_TO_UNITS = {
    BuildingSize.SMALL: 4,
    BuildingSize.MEDIUM: 30,
    BuildingSize.LARGE: 100,
}

FLOOR_HEIGHT_M = 3.0

# ============================================================
# Domestic Water
# ============================================================

DOMESTIC_FLOW_BY_SIZE = {
    BuildingSize.SMALL: 1.2,
    BuildingSize.MEDIUM: 3.5,
    BuildingSize.LARGE: 8.0,
}
FIXTURE_FLOW_LPS = 0.15
DIVERSITY_FACTOR = 0.7
DOMESTIC_FRICTION = 0.15
DOMESTIC_MARGIN_M = 5.0

# ============================================================
# Heating / Cooling
# ============================================================

@dataclass(frozen=True)
class ThermalRule:
    watts_per_m2: float
    delta_t_k: float
    friction_m_per_m: float = 0.02
    fittings_allowance: float = 0.3


THERMAL_RULES = {
    Application.HEATING: ThermalRule(watts_per_m2=20, delta_t_k=10),
    Application.COOLING: ThermalRule(watts_per_m2=80, delta_t_k=5),
}
M2_PER_UNIT = 60
UNITS_AS_AREA_THRESHOLD = 500
WATER_CP_KJ_KG_K = 4.18
WATER_DENSITY_KG_M3 = 1000

# ============================================================
# Water Supply
# ============================================================

LITRES_PER_PERSON_DAY = 200
PERSONS_PER_UNIT = 3
PEAK_FACTOR = 2.5
SUPPLY_FRICTION = 0.3
MIN_SYSTEM_PRESSURE_BAR = 1.5
BAR_TO_M = 10

# ============================================================
# Wastewater / Dosing
# ============================================================

WASTEWATER_FLOW_BY_SIZE = {
    BuildingSize.SMALL: 2.0,
    BuildingSize.MEDIUM: 8.0,
    BuildingSize.LARGE: 30.0,
}
WASTEWATER_HEAD_BY_SIZE = {
    BuildingSize.SMALL: 8.0,
    BuildingSize.MEDIUM: 15.0,
    BuildingSize.LARGE: 25.0,
}
DOSING_FLOW_M3H = 0.01
DOSING_HEAD_M = 10.0


def derive_duty_point(state: ConversationState) -> DutyPoint:
    """Estimate the duty point for a conversation state. Deterministic."""
    if state.has_exact_specs():
        return DutyPoint(
            estimated_flow_m3h=state.flow_m3h,
            estimated_head_m=state.head_m,
            confidence=DutyConfidence.CALCULATED,
            assumptions=['Using the flow and head you provided'],
        )

    app = state.application or Application.WATER_SUPPLY

    if app == Application.DOMESTIC_WATER:
        dp = _domestic(state)
    elif app in THERMAL_RULES:
        dp = _thermal(state, app)
    elif app == Application.WASTEWATER:
        dp = _wastewater(state)
    elif app == Application.DOSING:
        dp = _dosing()
    else:
        dp = _water_supply(state)

    logger.debug(
        f"Duty point for {app.value}: {dp.estimated_flow_m3h} m³/h "
        f"@ {dp.estimated_head_m} m")
    return dp


def _floors(state: ConversationState, size: BuildingSize) -> tuple[int, bool]:
    if state.floors is not None:
        return state.floors, True
    return SIZE_TO_FLOORS[size], False


def _domestic(state: ConversationState) -> DutyPoint:
    size = state.building_size or BuildingSize.SMALL
    floors, explicit = _floors(state, size)
    assumptions = []

    if state.bathrooms is not None:
        fixtures = state.bathrooms * 2 + 2
        peak_lps = fixtures * FIXTURE_FLOW_LPS * DIVERSITY_FACTOR
        flow = peak_lps * 3.6
        assumptions.append(
            f"{state.bathrooms} bathroom(s) → {fixtures} fixtures at "
            f"{FIXTURE_FLOW_LPS} L/s with {DIVERSITY_FACTOR:.0%} diversity")
    else:
        flow = DOMESTIC_FLOW_BY_SIZE[size]
        assumptions.append(f"Typical peak demand for a {size.value} home")

    static = floors * FLOOR_HEIGHT_M
    head = static + static * DOMESTIC_FRICTION + DOMESTIC_MARGIN_M
    if explicit:
        assumptions.append(f"{floors} floor(s) at {FLOOR_HEIGHT_M:g} m each")
    else:
        assumptions.append(f"Assumed {floors} floor(s) for a {size.value} building")
    assumptions.append(
        f"{DOMESTIC_FRICTION:.0%} pipe friction plus {DOMESTIC_MARGIN_M:g} m "
        f"pressure margin at the top outlet")

    return DutyPoint(
        estimated_flow_m3h=round(flow, PRECISION),
        estimated_head_m=round(head, PRECISION),
        assumptions=assumptions,
    )


def _thermal(state: ConversationState, app: Application) -> DutyPoint:
    rule = THERMAL_RULES[app]
    size = state.building_size or BuildingSize.MEDIUM
    floors, explicit = _floors(state, size)
    units = SIZE_TO_UNITS[size]

    # Large unit counts are read as floor area directly
    area_m2 = units if units > UNITS_AS_AREA_THRESHOLD else units * M2_PER_UNIT
    load_kw = area_m2 * rule.watts_per_m2 / 1000
    flow = load_kw * 3600 / (rule.delta_t_k * WATER_CP_KJ_KG_K * WATER_DENSITY_KG_M3)

    pipe_length = floors * FLOOR_HEIGHT_M * 2  # supply + return
    head = pipe_length * rule.friction_m_per_m * (1 + rule.fittings_allowance) * 2

    label = 'Heating' if app == Application.HEATING else 'Cooling'
    assumptions = [
        f"{label} load of {rule.watts_per_m2:g} W/m² over ~{area_m2:,} m²",
        f"Design temperature difference ΔT = {rule.delta_t_k:g} K",
        f"{'Given' if explicit else 'Assumed'} {floors} floor(s); "
        f"{pipe_length:g} m of pipe run (supply + return)",
        f"Pipe friction {rule.friction_m_per_m} m/m with "
        f"{rule.fittings_allowance:.0%} fittings allowance",
    ]
    return DutyPoint(
        estimated_flow_m3h=round(flow, PRECISION),
        estimated_head_m=round(head, PRECISION),
        assumptions=assumptions,
    )


def _water_supply(state: ConversationState) -> DutyPoint:
    size = state.building_size or BuildingSize.MEDIUM
    floors, explicit = _floors(state, size)
    units = SIZE_TO_UNITS[size]

    persons = units * PERSONS_PER_UNIT
    peak_lps = persons * LITRES_PER_PERSON_DAY * PEAK_FACTOR / 86400
    flow = peak_lps * 3600 / 1000

    static = floors * FLOOR_HEIGHT_M
    head = static + static * SUPPLY_FRICTION + MIN_SYSTEM_PRESSURE_BAR * BAR_TO_M

    return DutyPoint(
        estimated_flow_m3h=round(flow, PRECISION),
        estimated_head_m=round(head, PRECISION),
        assumptions=[
            f"{units} units × {PERSONS_PER_UNIT} persons at "
            f"{LITRES_PER_PERSON_DAY} L/person/day",
            f"Peak factor {PEAK_FACTOR}",
            f"{'Given' if explicit else 'Assumed'} {floors} floor(s) of static lift "
            f"plus {SUPPLY_FRICTION:.0%} friction",
            f"Minimum {MIN_SYSTEM_PRESSURE_BAR} bar at the highest outlet",
        ],
    )


def _wastewater(state: ConversationState) -> DutyPoint:
    size = state.building_size or BuildingSize.MEDIUM
    return DutyPoint(
        estimated_flow_m3h=WASTEWATER_FLOW_BY_SIZE[size],
        estimated_head_m=WASTEWATER_HEAD_BY_SIZE[size],
        assumptions=[
            f"Typical wastewater inflow for a {size.value} building",
            'Lift to the sewer connection including friction',
        ],
    )


def _dosing() -> DutyPoint:
    return DutyPoint(
        estimated_flow_m3h=DOSING_FLOW_M3H,
        estimated_head_m=DOSING_HEAD_M,
        assumptions=[
            'Nominal dosing point; final sizing depends on chemical dose rate',
        ],
    )
