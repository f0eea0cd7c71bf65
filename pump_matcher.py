"""
Pump Advisor: Catalog Matcher & Scorer

Responsibilities:
  1. Category and installation-constraint exclusion
  2. Capability filter against the duty point
  3. Ideal-point scoring (rated point if it covers the duty, else max)
  4. Family preference bonuses by application and benchmark domain
  5. Display confidence and match labels
  6. Motor-power-only matching
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from models import (
    Application, CatalogPump, DecisionTrace, DutyPoint, MatchLabel, WaterSource,
)

logger = logging.getLogger(__name__)

TOP_N = 3

# ============================================================
# Exclusion Tables
# ============================================================

# Category keyword -> the only application allowed to use it
CATEGORY_EXCLUSIONS: dict[str, Application] = {
    'dosing': Application.DOSING,
    'wastewater': Application.WASTEWATER,
}

# Three-phase, borehole-only or circulator families unfit for a home booster
DOMESTIC_EXCLUDED_FAMILIES = [
    'CR', 'CRE', 'NB', 'NK', 'HYDRO', 'SP', 'SQ', 'MAGNA3', 'ALPHA3',
]

MIN_FLOW_RATIO = 0.7
MIN_HEAD_RATIO = 0.85
RATED_COVERAGE = 0.95
IDEAL_RATED = 1.0
IDEAL_MAX = 1.2
APP_MISMATCH_PENALTY = 8
DEFAULT_EEI = 0.5

APP_KEYWORDS: dict[Application, list[str]] = {
    Application.HEATING: ['heating', 'circulator', 'hvac'],
    Application.COOLING: ['cooling', 'circulator', 'hvac', 'air conditioning'],
    Application.WATER_SUPPLY: [
        'water supply', 'pressure boosting', 'multistage', 'booster', 'irrigation'],
    Application.DOMESTIC_WATER: ['domestic', 'booster', 'residential', 'self-priming'],
    Application.WASTEWATER: ['wastewater', 'sewage', 'drainage'],
    Application.DOSING: ['dosing', 'chemical', 'treatment'],
}

# ============================================================
# Preference Tables
# ============================================================

FAMILY_PREFERENCE: dict[Application, dict[str, float]] = {
    Application.DOMESTIC_WATER: {'SCALA': 15, 'ALPHA': 10},
    Application.HEATING: {'MAGNA3': 15, 'ALPHA': 12, 'NB': 5, 'NK': 5, 'CR': 3},
    Application.COOLING: {'MAGNA3': 15, 'ALPHA': 12, 'NB': 5, 'NK': 5, 'CR': 3},
    Application.WATER_SUPPLY: {
        'CR': 15, 'CRE': 15, 'SP': 12, 'SCALA': 8, 'HYDRO': 10, 'NB': 10, 'NK': 10},
    Application.WASTEWATER: {'SEG': 15, 'SE': 15},
    Application.DOSING: {'DDA': 15},
}

# Benchmark domains override the generic table for the families they name
EVAL_DOMAIN_PREFERENCE: dict[str, dict[str, float]] = {
    'hot_water': {'ALPHA': 20, 'MAGNA3': 8},
    'hvac': {'MAGNA3': 20, 'ALPHA': 10, 'NB': 6},
    'coolant': {'MTR': 20, 'CR': 8},
    'borehole': {'SP': 20, 'SQ': 15},
    'irrigation': {'SP': 12, 'CR': 10, 'NB': 10},
    'booster': {'HYDRO': 20, 'CRE': 14, 'CR': 10},
    'process': {'CR': 18, 'CRE': 16, 'NB': 8, 'NK': 8},
    'motor_drive': {'CR': 10, 'NB': 10, 'NK': 10},
    'domestic': {'SCALA': 18, 'CM': 10, 'JP': 8},
}

WELL_SOURCE_BONUS: dict[str, float] = {'SP': 8, 'SQ': 8}

VSD_RE = re.compile(
    r'variable[\s-]?speed|autoadapt|auto[\s-]?adapt|integrated[\s-]?(?:inverter|frequency)|'
    r'constant[\s-]?pressure',
    re.IGNORECASE)

# ============================================================
# Confidence Constants
# ============================================================

BASE_CONFIDENCE = 95
VSD_OVERSIZE_CAP = 1.8
MIN_CONFIDENCE = 40
MAX_CONFIDENCE = 99
MOTOR_POWER_TOLERANCE = 0.35


@dataclass
class ScoredPump:
    pump: CatalogPump
    score: float
    confidence: int
    label: MatchLabel
    flow_ratio: float
    head_ratio: float
    preference_bonus: float = 0.0
    app_match: bool = True
    used_rated_point: bool = False
    notes: list[str] = field(default_factory=list)


# ============================================================
# Helpers
# ============================================================

def family_key(family: str) -> str:
    """'SCALA2' -> 'SCALA', 'HYDRO MULTI-E' -> 'HYDRO'."""
    head = family.upper().split()[0] if family.strip() else ''
    head = head.split('-')[0]
    return re.sub(r'\d+$', '', head)


def is_category_excluded(category: str, application: Application) -> bool:
    cat = category.lower()
    for keyword, allowed in CATEGORY_EXCLUSIONS.items():
        if keyword in cat and application != allowed:
            return True
    return False


def is_domestic_excluded(family: str, application: Application,
                         water_source: Optional[WaterSource]) -> bool:
    if application != Application.DOMESTIC_WATER or water_source == WaterSource.WELL:
        return False
    raw = family.upper().strip()
    key = family_key(family)
    return any(raw.startswith(f) or key.startswith(f) for f in DOMESTIC_EXCLUDED_FAMILIES)


def app_matches(pump: CatalogPump, application: Application) -> bool:
    text = ' '.join([*pump.applications, pump.type, pump.category]).lower()
    return any(kw in text for kw in APP_KEYWORDS.get(application, []))


def is_vsd(pump: CatalogPump) -> bool:
    return bool(VSD_RE.search(' '.join(pump.features)))


def preference_table(application: Application,
                     eval_domain: Optional[str] = None) -> dict[str, float]:
    table = dict(FAMILY_PREFERENCE.get(application, {}))
    if eval_domain:
        table.update(EVAL_DOMAIN_PREFERENCE.get(eval_domain, {}))
    return table


def preference_bonus(pump: CatalogPump, application: Application,
                     water_source: Optional[WaterSource] = None,
                     eval_domain: Optional[str] = None) -> float:
    table = preference_table(application, eval_domain)
    raw = pump.family.upper().strip()
    key = family_key(pump.family)
    bonus = table.get(raw, table.get(key, 0))
    if water_source == WaterSource.WELL:
        bonus += WELL_SOURCE_BONUS.get(key, 0)
    return bonus


def confidence_label(confidence: int) -> MatchLabel:
    if confidence >= 90:
        return MatchLabel.EXCELLENT
    if confidence >= 75:
        return MatchLabel.GOOD
    if confidence >= 60:
        return MatchLabel.FAIR
    return MatchLabel.PARTIAL


def clamp_confidence(value: float) -> int:
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, round(value)))


def match_confidence(flow_ratio: float, head_ratio: float, vsd: bool,
                     app_match: bool, eei: Optional[float], bonus: float) -> int:
    """
    Display confidence. Flow headroom on a self-regulating pump is
    forgiven (factor capped) only while it can still reach the head.
    """
    factor = max(flow_ratio, head_ratio)
    if vsd and head_ratio >= 1.0:
        factor = min(factor, VSD_OVERSIZE_CAP)

    conf = float(BASE_CONFIDENCE)
    if factor > 1.5:
        conf -= 10 * (factor - 1.5)
    if factor > 3:
        conf -= 15 * (factor - 3)
    if factor < 0.9:
        conf -= 40 * (0.9 - factor)
    if head_ratio < 0.95:
        conf -= 80 * (0.95 - head_ratio)
    if not app_match:
        conf -= 10
    if eei is not None and eei < 0.23:
        conf += 3
    conf += 0.3 * bonus
    return clamp_confidence(conf)


# ============================================================
# Duty-Point Matching
# ============================================================

def match_pumps(
    duty_point: DutyPoint,
    application: Application,
    catalog: Iterable[CatalogPump],
    water_source: Optional[WaterSource] = None,
    eval_domain: Optional[str] = None,
    trace: Optional[list[DecisionTrace]] = None,
) -> list[ScoredPump]:
    """Rank catalog pumps against a duty point; best first, at most 3."""
    flow = duty_point.estimated_flow_m3h
    head = duty_point.estimated_head_m
    pumps = list(catalog)

    # ----------------------------------------------------------
    # Phase 1: category + installation exclusions
    # ----------------------------------------------------------
    candidates = [
        p for p in pumps
        if not is_category_excluded(p.category, application)
        and not is_domestic_excluded(p.family, application, water_source)
    ]
    _trace(trace, 'exclusion',
           f"Removed {len(pumps) - len(candidates)} pumps unfit for "
           f"{application.value}", len(candidates))

    # ----------------------------------------------------------
    # Phase 2: capability filter
    # ----------------------------------------------------------
    capable = []
    for p in candidates:
        max_flow, max_head = p.max_flow_m3h, p.max_head_m
        if max_flow is None or max_head is None:
            continue
        if max_flow >= MIN_FLOW_RATIO * flow and max_head >= MIN_HEAD_RATIO * head:
            capable.append(p)
    _trace(trace, 'capability_filter',
           f"Max flow >= {MIN_FLOW_RATIO:.0%} of {flow} m³/h and max head >= "
           f"{MIN_HEAD_RATIO:.0%} of {head} m", len(capable))

    # ----------------------------------------------------------
    # Phase 3: scoring
    # ----------------------------------------------------------
    scored = [
        _score_pump(p, flow, head, application, water_source, eval_domain)
        for p in capable
    ]
    scored.sort(key=lambda s: s.score)
    top = scored[:TOP_N]

    if top:
        _trace(trace, 'ranking',
               'Top: ' + ', '.join(f"{s.pump.model} ({s.score:.2f})" for s in top),
               len(top))
    else:
        logger.info(
            f"No catalog match for {application.value} at {flow} m³/h @ {head} m")
    return top


def _score_pump(pump: CatalogPump, flow: float, head: float,
                application: Application, water_source: Optional[WaterSource],
                eval_domain: Optional[str]) -> ScoredPump:
    rated_flow = pump.spec('rated_flow_m3h')
    rated_head = pump.spec('rated_head_m')
    use_rated = (
        rated_flow is not None and rated_head is not None
        and rated_flow >= RATED_COVERAGE * flow
        and rated_head >= RATED_COVERAGE * head
    )
    if use_rated:
        fr, hr, ideal = rated_flow / flow, rated_head / head, IDEAL_RATED
    else:
        fr, hr, ideal = pump.max_flow_m3h / flow, pump.max_head_m / head, IDEAL_MAX

    matched = app_matches(pump, application)
    eei = pump.spec('eei')
    bonus = preference_bonus(pump, application, water_source, eval_domain)

    score = abs(fr - ideal) + abs(hr - ideal)
    if not matched:
        score += APP_MISMATCH_PENALTY
    score += (eei if eei is not None else DEFAULT_EEI) * 2
    score -= 0.5 * bonus

    confidence = match_confidence(fr, hr, is_vsd(pump), matched, eei, bonus)
    return ScoredPump(
        pump=pump,
        score=score,
        confidence=confidence,
        label=confidence_label(confidence),
        flow_ratio=fr,
        head_ratio=hr,
        preference_bonus=bonus,
        app_match=matched,
        used_rated_point=use_rated,
    )


# ============================================================
# Motor-Power Matching
# ============================================================

def motor_power_label(rel_diff: float) -> MatchLabel:
    if rel_diff < 0.10:
        return MatchLabel.EXCELLENT
    if rel_diff < 0.20:
        return MatchLabel.GOOD
    return MatchLabel.FAIR


def match_by_motor_power(
    motor_kw: float,
    application: Application,
    catalog: Iterable[CatalogPump],
    eval_domain: Optional[str] = None,
    trace: Optional[list[DecisionTrace]] = None,
) -> list[ScoredPump]:
    """Pumps whose rated power is within ±35% of the stated motor power."""
    results = []
    for p in catalog:
        if is_category_excluded(p.category, application):
            continue
        power = p.power_kw
        if power is None or power <= 0:
            continue
        diff = abs(power - motor_kw)
        rel = diff / motor_kw
        if rel > MOTOR_POWER_TOLERANCE:
            continue
        bonus = preference_bonus(p, application, eval_domain=eval_domain)
        confidence = clamp_confidence(95 - 30 * rel)
        results.append(ScoredPump(
            pump=p,
            score=diff,
            confidence=confidence,
            label=motor_power_label(rel),
            flow_ratio=1.0,
            head_ratio=1.0,
            preference_bonus=bonus,
            app_match=app_matches(p, application),
        ))

    results.sort(key=lambda s: (s.score, -s.preference_bonus))
    top = results[:TOP_N]
    _trace(trace, 'motor_power_match',
           f"{len(results)} pumps within ±{MOTOR_POWER_TOLERANCE:.0%} of {motor_kw} kW",
           len(top))
    return top


def _trace(trace: Optional[list[DecisionTrace]], step: str, detail: str,
           remaining: int) -> None:
    if trace is not None:
        trace.append(DecisionTrace(step=step, detail=detail,
                                   candidates_remaining=remaining))
