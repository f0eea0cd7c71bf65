"""
Pump Advisor: Conversation Policy

Decides, for every turn, whether to greet, ask one more question or
recommend pumps. On recommend it drives the duty-point estimator, the
matcher and the ROI calculator and packages the result for the phrasing
layer. The policy never writes final prose: each ask/greet carries a
question_context instruction plus literal quick-reply suggestions.

Rules, in priority order:
  1. Post-recommendation feedback (no new signal after a recommend)
  2. Bare greeting on an empty state
  3. Competitor brand known (cross-reference or ask for the model)
  4. Information quality >= 8, through the per-application gates
  5. Otherwise ask the most valuable missing field
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from config import get_settings
from duty_point import derive_duty_point
from models import (
    Action, Application, BuildingSize, CatalogPump, ConversationState,
    DecisionTrace, DutyPoint, EngineResult, MatchLabel, Problem,
    RankedPump, RequirementItem, ROISummary, WaterSource,
)
from pump_catalog import PumpCatalog, get_catalog
from pump_matcher import (
    ScoredPump, match_by_motor_power, match_pumps,
)
import roi_calculator as roi
import unit_patterns as up

logger = logging.getLogger(__name__)

QUALITY_THRESHOLD = 8

QUALITY_WEIGHTS = {
    'application': 3,
    'building_size': 2,
    'floors': 3,
    'bathrooms': 2,
    'water_source': 1,
    'problem': 1,
}
EXACT_SPECS_QUALITY = 10

COMPETITOR_MATCH_CONFIDENCE = 95
COMPETITOR_POWER_FACTOR = 1.3
COMPETITOR_EXTRA_PUMPS = 2


# ============================================================
# Questions
# ============================================================

@dataclass(frozen=True)
class Question:
    topic: str
    context: str
    suggestions: list[str] = field(default_factory=list)


GREETING = Question(
    'greeting',
    'The user greeted you. Greet them back and ask how you can help: finding '
    'the right pump, replacing an existing one, or cutting pumping costs.',
    ['Find the right pump', 'Replace my old pump', 'Save energy on pumping'],
)

FEEDBACK = Question(
    'feedback',
    'The user is reacting to the pumps you just recommended. Ask what they '
    'think of the options and whether anything should change; do not repeat '
    'the recommendation.',
    ['Show me other options', 'Explain the savings', 'Adjust my specs',
     'Talk to an engineer'],
)

PURPOSE_SUGGESTIONS = [
    'Heating circulator', 'Water pressure booster', 'Borehole/well pump',
    'I know the model number',
]

NO_MATCH_SUGGESTIONS = ['Adjust my specs', 'Talk to an engineer']

FLOOR_SUGGESTIONS = ['1-3 floors', '4-6 floors', '7-10 floors', '10+ floors']


def _competitor_question(brand: str) -> Question:
    return Question(
        'competitor_model',
        f"They mentioned a {brand} pump but no model we can cross-reference. "
        f"Ask for the model on the nameplate, or what the pump is used for, "
        f"so we can find the equivalent.",
        PURPOSE_SUGGESTIONS,
    )


def _application_question(state: ConversationState) -> Question:
    if state.flow_m3h is not None:
        context = ('They gave hydraulic specs but not what the system is for. '
                   'Ask which application: heating, cooling, water supply and so on.')
    else:
        context = 'Ask what kind of system or water problem they are dealing with.'
    return Question('application', context,
                    ['Heating system', 'Cooling/AC', 'Water pressure', 'Replace a pump'])


def _problem_question(state: ConversationState) -> Question:
    where = 'home' if state.application == Application.DOMESTIC_WATER else 'building'
    return Question(
        'problem',
        f"They need a pump for their {where} but have not said why. Ask what is "
        f"going on: low pressure, no water, replacing an old pump, or a new install.",
        ['Low water pressure', 'Replacing old pump', 'New installation',
         'High water bills'],
    )


def _purpose_question() -> Question:
    return Question(
        'purpose',
        'They are replacing a pump. Ask what the existing pump does, or its '
        'brand and model from the nameplate, before sizing a replacement.',
        PURPOSE_SUGGESTIONS,
    )


def _floors_question(state: ConversationState) -> Question:
    if state.application == Application.DOMESTIC_WATER:
        problem = state.problem.value.replace('_', ' ') if state.problem else 'a water need'
        return Question(
            'floors',
            f"They have {problem} at home. Ask how many floors and bathrooms the "
            f"house has; both are needed to size the pump.",
            ['1-2 floors', '3-4 floors', '1-2 bathrooms', '3-4 bathrooms'],
        )
    return Question(
        'floors',
        'Ask how many floors the building has; it sets the pump head.',
        FLOOR_SUGGESTIONS,
    )


def _water_source_question() -> Question:
    return Question(
        'water_source',
        'Ask where their water comes from: city mains, a storage tank, or a '
        'deep well. It decides which pump types can physically work.',
        ['City mains / tap water', 'Water tank', 'Deep well / borehole'],
    )


def _building_size_question(state: ConversationState) -> Question:
    if state.application == Application.WASTEWATER:
        return Question(
            'building_size',
            'Ask about the scale of the wastewater system: a home basement sump '
            'or a commercial building.',
            ['Home/basement', 'Small building', 'Commercial/industrial'],
        )
    if state.application == Application.DOSING:
        return Question(
            'building_size',
            'Ask what they are dosing and at roughly what scale.',
            ['Chlorination', 'pH adjustment', 'Water treatment', 'I know the flow rate'],
        )
    return Question(
        'building_size',
        'Ask about the size of the facility and how much water it uses.',
        ['Small building/shop', 'Medium (office/hotel)', 'Large (factory/campus)',
         'I know the flow rate'],
    )


# ============================================================
# Information Quality
# ============================================================

def info_quality(state: ConversationState) -> int:
    """10 for exact flow+head or motor power alone, else the weighted sum."""
    if state.has_exact_specs():
        return EXACT_SPECS_QUALITY
    if state.motor_kw is not None and state.flow_m3h is None:
        return EXACT_SPECS_QUALITY
    return sum(w for name, w in QUALITY_WEIGHTS.items()
               if getattr(state, name) is not None)


def _mentions_replacement(message: Optional[str]) -> bool:
    return up.detect_problem(message or '') == Problem.REPLACEMENT


def _recommend_gate(state: ConversationState) -> Optional[Question]:
    app = state.application
    has_flow = state.flow_m3h is not None
    if app == Application.DOMESTIC_WATER:
        if state.floors is None and state.bathrooms is None:
            if state.problem == Problem.REPLACEMENT and not state.existing_pump_brand:
                return _purpose_question()
            return _floors_question(state)
        if state.water_source is None and not has_flow:
            return _water_source_question()
    elif app == Application.WATER_SUPPLY:
        if state.floors is None and not has_flow and state.motor_kw is None:
            return _floors_question(state)
    elif app in (Application.HEATING, Application.COOLING):
        if state.floors is None and not has_flow:
            return _floors_question(state)
    return None


def _missing_field_question(state: ConversationState,
                            latest_message: Optional[str]) -> Optional[Question]:
    app = state.application
    if app is None:
        return _application_question(state)

    has_flow = state.flow_m3h is not None
    supply = app in (Application.DOMESTIC_WATER, Application.WATER_SUPPLY)

    if supply and state.problem is None:
        return _problem_question(state)
    if (state.problem == Problem.REPLACEMENT and not state.existing_pump_brand
            and _mentions_replacement(latest_message)):
        return _purpose_question()
    if (app in (Application.DOMESTIC_WATER, Application.WATER_SUPPLY,
                Application.HEATING, Application.COOLING)
            and state.floors is None and state.bathrooms is None and not has_flow):
        return _floors_question(state)
    if supply and state.water_source is None and not has_flow:
        return _water_source_question()
    if (app in (Application.WATER_SUPPLY, Application.WASTEWATER, Application.DOSING)
            and state.building_size is None and not has_flow):
        return _building_size_question(state)
    return None


# ============================================================
# Next Action
# ============================================================

def get_next_action(
    state: ConversationState,
    latest_message: Optional[str] = None,
    last_action: Optional[Union[Action, str]] = None,
    catalog: Optional[PumpCatalog] = None,
    region: Optional[str] = None,
) -> EngineResult:
    """Main decision function. Total: always returns greet, ask or recommend."""
    previous = _coerce_action(last_action)
    trace: list[DecisionTrace] = []

    # Rule 1: post-recommendation feedback
    if previous == Action.RECOMMEND and not up.has_new_signal(latest_message):
        trace.append(DecisionTrace(step='feedback',
                                   detail='No new requirement data after a recommendation'))
        return _ask(state, FEEDBACK, trace)

    # Rule 2: greeting
    if latest_message and up.is_greeting(latest_message) and state.is_empty():
        return EngineResult(
            action=Action.GREET,
            question_context=GREETING.context,
            suggestions=list(GREETING.suggestions),
            state=state,
        )

    settings = get_settings()
    catalog = catalog if catalog is not None else get_catalog()
    region = region or settings.region
    years = settings.lifecycle_years

    # Rule 3: competitor replacement
    if state.existing_pump_brand:
        match = None
        if state.existing_pump_model:
            match = catalog.find_competitor_match(
                state.existing_pump_brand, state.existing_pump_model)
        if match is not None:
            trace.append(DecisionTrace(
                step='competitor_cross_reference',
                detail=f"{state.existing_pump_brand} {state.existing_pump_model} "
                       f"-> {match.model}",
                candidates_remaining=1))
            return build_competitor_recommendation(
                state, match, catalog, region, years, trace)
        trace.append(DecisionTrace(
            step='competitor_cross_reference',
            detail=f"No equivalent found for {state.existing_pump_brand}"))
        return _ask(state, _competitor_question(state.existing_pump_brand), trace)

    # Rule 4: enough information, subject to gates
    quality = info_quality(state)
    trace.append(DecisionTrace(step='info_quality',
                               detail=f"quality={quality} threshold={QUALITY_THRESHOLD}"))
    if quality >= QUALITY_THRESHOLD:
        gate = _recommend_gate(state)
        if gate is not None:
            trace.append(DecisionTrace(step='gate', detail=f"ask {gate.topic}"))
            return _ask(state, gate, trace)
        return build_recommendation(state, catalog, region, years, trace)

    # Rule 5: ask the most valuable missing field
    question = _missing_field_question(state, latest_message)
    if question is not None:
        trace.append(DecisionTrace(step='missing_field', detail=f"ask {question.topic}"))
        return _ask(state, question, trace)
    return build_recommendation(state, catalog, region, years, trace)


def _coerce_action(value: Optional[Union[Action, str]]) -> Optional[Action]:
    if value is None or isinstance(value, Action):
        return value
    try:
        return Action(str(value).lower())
    except ValueError:
        logger.debug(f"Ignoring unknown last_action {value!r}")
        return None


def _ask(state: ConversationState, question: Question,
         trace: list[DecisionTrace]) -> EngineResult:
    return EngineResult(
        action=Action.ASK,
        question_context=question.context,
        suggestions=list(question.suggestions),
        state=state,
        trace=trace,
    )


# ============================================================
# Recommendation Builders
# ============================================================

def _default_size(state: ConversationState, app: Application) -> BuildingSize:
    if state.building_size is not None:
        return state.building_size
    return BuildingSize.SMALL if app == Application.DOMESTIC_WATER else BuildingSize.MEDIUM


def build_recommendation(
    state: ConversationState,
    catalog: PumpCatalog,
    region: str,
    years: int = roi.DEFAULT_LIFECYCLE_YEARS,
    trace: Optional[list[DecisionTrace]] = None,
) -> EngineResult:
    trace = trace if trace is not None else []
    app = state.application or Application.WATER_SUPPLY
    hours = roi.operating_hours(app, _default_size(state, app))
    currency = roi.energy_rate(region).currency

    if state.motor_kw is not None and state.flow_m3h is None:
        scored = match_by_motor_power(
            state.motor_kw, app, catalog, eval_domain=state.eval_domain, trace=trace)
        duty = None
        pumps = [
            _rank_by_motor(s, state.motor_kw, hours, region, years, currency)
            for s in scored
        ]
    else:
        duty = derive_duty_point(state)
        trace.append(DecisionTrace(
            step='duty_point',
            detail=f"{duty.estimated_flow_m3h} m³/h @ {duty.estimated_head_m} m "
                   f"({duty.confidence.value})"))
        scored = match_pumps(duty, app, catalog, state.water_source,
                             state.eval_domain, trace)
        factor = roi.oversizing_factor(app, _default_size(state, app))
        pumps = [
            _rank_by_duty(s, duty, factor, hours, region, years, currency)
            for s in scored
        ]

    requirements = build_requirements_summary(state, duty)
    if not pumps:
        return EngineResult(
            action=Action.ASK,
            question_context=(
                'No catalog pump matches these requirements. Explain that briefly, '
                'offer to adjust the specs, or suggest talking to an engineer.'),
            suggestions=list(NO_MATCH_SUGGESTIONS),
            duty_point=duty,
            requirements=requirements,
            state=state,
            no_match=True,
            trace=trace,
        )

    return EngineResult(
        action=Action.RECOMMEND,
        duty_point=duty,
        pumps=pumps,
        requirements=requirements,
        state=state,
        trace=trace,
    )


def build_competitor_recommendation(
    state: ConversationState,
    match: CatalogPump,
    catalog: PumpCatalog,
    region: str,
    years: int = roi.DEFAULT_LIFECYCLE_YEARS,
    trace: Optional[list[DecisionTrace]] = None,
) -> EngineResult:
    trace = trace if trace is not None else []
    app = state.application or Application.WATER_SUPPLY
    hours = roi.operating_hours(app, _default_size(state, app))
    tariff = roi.energy_rate(region)
    compared_to = f"{state.existing_pump_brand} {state.existing_pump_model}".strip()

    new_power = match.power_kw or 0.0
    old_power = state.existing_pump_power or new_power * COMPETITOR_POWER_FACTOR
    price = roi.usd_to_local(match.price_usd, tariff.currency)
    summary = roi.roi_summary(old_power, new_power, price, hours, region, years)

    pumps = [_ranked(
        match, COMPETITOR_MATCH_CONFIDENCE, MatchLabel.EXCELLENT, summary,
        tariff.currency, compared_to=compared_to,
        note=f"Direct replacement for the {compared_to}.",
    )]

    duty = None
    if state.has_exact_specs():
        duty = derive_duty_point(state)
        extra = match_pumps(duty, app, catalog, state.water_source,
                            state.eval_domain, trace)
        factor = roi.oversizing_factor(app, _default_size(state, app))
        for s in [s for s in extra if s.pump.id != match.id][:COMPETITOR_EXTRA_PUMPS]:
            pumps.append(_rank_by_duty(
                s, duty, factor, hours, region, years, tariff.currency))

    return EngineResult(
        action=Action.RECOMMEND,
        duty_point=duty,
        pumps=pumps,
        requirements=build_requirements_summary(state, duty),
        state=state,
        is_competitor_replacement=True,
        trace=trace,
    )


def _rank_by_duty(s: ScoredPump, duty: DutyPoint, app_factor: float, hours: float,
                  region: str, years: int, currency: str) -> RankedPump:
    pump = s.pump
    power = pump.power_kw or 0.0
    flow, head = duty.estimated_flow_m3h, duty.estimated_head_m
    ratio = roi.pump_oversize_ratio(pump.max_flow_m3h, pump.max_head_m, flow, head)
    old, new = roi.duty_point_powers(power, ratio, app_factor)
    price = roi.usd_to_local(pump.price_usd, currency)
    summary = roi.roi_summary(old, new, price, hours, region, years)

    max_fr = (pump.max_flow_m3h or 0) / flow if flow else 0
    max_hr = (pump.max_head_m or 0) / head if head else 0
    note = roi.oversizing_note(max_fr, max_hr, summary.efficiency_improvement_pct)
    return _ranked(pump, s.confidence, s.label, summary, currency, note=note)


def _rank_by_motor(s: ScoredPump, motor_kw: float, hours: float, region: str,
                   years: int, currency: str) -> RankedPump:
    pump = s.pump
    price = roi.usd_to_local(pump.price_usd, currency)
    summary = roi.roi_summary(motor_kw, pump.power_kw or 0.0, price, hours, region, years)
    return _ranked(pump, s.confidence, s.label, summary, currency,
                   note=f"Matched on motor power ({pump.power_kw:g} kW vs {motor_kw:g} kW).")


def _ranked(pump: CatalogPump, confidence: int, label: MatchLabel,
            summary: ROISummary, currency: str,
            compared_to: Optional[str] = None,
            note: Optional[str] = None) -> RankedPump:
    return RankedPump(
        **pump.model_dump(),
        match_confidence=confidence,
        match_label=label,
        roi=summary,
        price_range_local=roi.format_local_price(pump.price_range_usd, currency),
        compared_to=compared_to,
        oversizing_note=note,
    )


# ============================================================
# Requirements Summary
# ============================================================

SIZE_LABELS = {
    BuildingSize.SMALL: 'Small (1-3 floors)',
    BuildingSize.MEDIUM: 'Medium (4-8 floors)',
    BuildingSize.LARGE: 'Large (9+ floors)',
}

WATER_SOURCE_LABELS = {
    WaterSource.MAINS: 'City mains',
    WaterSource.TANK: 'Storage tank',
    WaterSource.WELL: 'Well / borehole',
}


def build_requirements_summary(state: ConversationState,
                               duty: Optional[DutyPoint] = None) -> list[RequirementItem]:
    items: list[RequirementItem] = []

    def add(label: str, value) -> None:
        if value is not None:
            items.append(RequirementItem(label=label, value=str(value)))

    if state.application is not None:
        add('Application', state.application.value.replace('_', ' ').title())
    if state.building_size is not None:
        add('Building size', SIZE_LABELS[state.building_size])
    add('Floors', state.floors)
    add('Bathrooms', state.bathrooms)
    if state.water_source is not None:
        add('Water source', WATER_SOURCE_LABELS[state.water_source])
    if state.problem is not None:
        add('Problem', state.problem.value.replace('_', ' ').capitalize())
    if state.existing_pump_brand:
        add('Existing pump',
            f"{state.existing_pump_brand} {state.existing_pump_model or ''}".strip())
    if state.motor_kw is not None and state.flow_m3h is None:
        add('Motor power', f"{state.motor_kw:g} kW")
    if duty is not None:
        add('Flow', f"{duty.estimated_flow_m3h:g} m³/h")
        add('Head', f"{duty.estimated_head_m:g} m")
        add('Specs', 'Provided by you' if state.has_exact_specs()
            else 'Estimated from building details')
    return items
