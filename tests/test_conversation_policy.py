"""Pin the conversation policy: rule priority, recommend gates, the
information-quality contract and the recommendation envelope."""

import pytest

from conversation_policy import (
    EXACT_SPECS_QUALITY, NO_MATCH_SUGGESTIONS, QUALITY_THRESHOLD,
    build_requirements_summary, get_next_action, info_quality,
)
from intent_extractor import extract_intent, latest_user_message
from models import (
    Action, Application, BuildingSize, ConversationState, MatchLabel, Problem,
    WaterSource,
)
from pump_matcher import family_key
import roi_calculator as roi


def decide(state, catalog, message=None, last_action=None):
    return get_next_action(state, latest_message=message, last_action=last_action,
                           catalog=catalog, region="PH")


class TestInfoQuality:
    def test_weights(self):
        state = ConversationState(
            application=Application.WATER_SUPPLY,
            building_size=BuildingSize.MEDIUM,
            bathrooms=2,
        )
        assert info_quality(state) == 7
        assert info_quality(state.model_copy(update={"floors": 5})) == 10

    def test_exact_specs(self):
        assert info_quality(ConversationState(flow_m3h=5, head_m=30)) == EXACT_SPECS_QUALITY

    def test_motor_power_alone(self):
        assert info_quality(ConversationState(motor_kw=4)) == EXACT_SPECS_QUALITY

    def test_threshold(self):
        assert QUALITY_THRESHOLD == 8


class TestEndToEnd:
    def test_house_asks_for_water_source(self, catalog, house_history):
        state = extract_intent(house_history)
        result = decide(state, catalog, latest_user_message(house_history))
        assert result.action == Action.ASK
        assert "Deep well / borehole" in result.suggestions
        assert "water" in result.question_context.lower()

    def test_house_on_mains_recommends(self, catalog, house_mains_history):
        state = extract_intent(house_mains_history)
        result = decide(state, catalog, latest_user_message(house_mains_history))
        assert result.action == Action.RECOMMEND
        assert result.duty_point.estimated_flow_m3h == pytest.approx(2.268)
        assert result.duty_point.estimated_head_m == pytest.approx(15.35)
        assert result.pumps[0].model == "SCALA2 3-45"
        for pump in result.pumps:
            assert family_key(pump.family) not in {"CR", "SP", "SQ"}


class TestGates:
    def test_domestic_low_pressure_asks_floors(self, catalog):
        state = ConversationState(
            application=Application.DOMESTIC_WATER, problem=Problem.LOW_PRESSURE)
        result = decide(state, catalog)
        assert result.action == Action.ASK
        assert "1-2 floors" in result.suggestions

    def test_domestic_exact_specs_still_needs_floors(self, catalog):
        state = ConversationState(
            application=Application.DOMESTIC_WATER, flow_m3h=2, head_m=20)
        result = decide(state, catalog)
        assert result.action == Action.ASK
        assert "1-2 bathrooms" in result.suggestions

    def test_domestic_replacement_asks_purpose(self, catalog):
        state = ConversationState(
            application=Application.DOMESTIC_WATER, problem=Problem.REPLACEMENT,
            building_size=BuildingSize.SMALL, water_source=WaterSource.MAINS,
            flow_m3h=2, head_m=20)
        result = decide(state, catalog)
        assert result.action == Action.ASK
        assert "I know the model number" in result.suggestions

    def test_quality_gate(self, catalog):
        state = ConversationState(
            application=Application.WATER_SUPPLY,
            building_size=BuildingSize.MEDIUM,
            bathrooms=2,
        )
        assert decide(state, catalog).action == Action.ASK
        result = decide(state.model_copy(update={"floors": 5}), catalog)
        assert result.action == Action.RECOMMEND
        assert 0 < len(result.pumps) <= 3

    def test_heating_without_floors_asks(self, catalog):
        state = ConversationState(
            application=Application.HEATING, building_size=BuildingSize.MEDIUM)
        result = decide(state, catalog)
        assert result.action == Action.ASK
        assert "10+ floors" in result.suggestions

    def test_unknown_application_asked_first(self, catalog):
        result = decide(ConversationState(floors=2), catalog)
        assert result.action == Action.ASK
        assert "Heating system" in result.suggestions


class TestRulePriority:
    def test_bare_greeting(self, catalog, empty_state):
        result = decide(empty_state, catalog, "hello")
        assert result.action == Action.GREET
        assert result.suggestions

    def test_greeting_with_state_is_not_a_greeting(self, catalog, house_state):
        assert decide(house_state, catalog, "hi").action != Action.GREET

    def test_feedback_after_recommendation(self, catalog, house_on_mains):
        result = decide(house_on_mains, catalog, "thanks, looks good", Action.RECOMMEND)
        assert result.action == Action.ASK
        assert "Show me other options" in result.suggestions
        assert not result.pumps

    def test_new_signal_after_recommendation(self, catalog, house_on_mains):
        result = decide(house_on_mains, catalog, "what about 3 floors", "recommend")
        assert result.action == Action.RECOMMEND

    def test_unknown_last_action_ignored(self, catalog, house_on_mains):
        assert decide(house_on_mains, catalog, "ok", "shrug").action == Action.RECOMMEND


class TestCompetitor:
    def test_cross_reference(self, catalog):
        history = [{"role": "user", "content": "Replacing my old Wilo Stratos 25/1-8"}]
        state = extract_intent(history)
        result = decide(state, catalog, history[0]["content"])
        assert result.action == Action.RECOMMEND
        assert result.is_competitor_replacement
        top = result.pumps[0]
        assert top.model == "MAGNA3 25-80"
        assert top.match_confidence == 95
        assert top.match_label == MatchLabel.EXCELLENT
        assert top.compared_to == "Wilo Stratos 25/1-8"
        # Old power defaults to 1.3x the replacement
        assert top.roi.efficiency_improvement_pct == pytest.approx(100 * 0.3 / 1.3)

    def test_brand_without_model_asks(self, catalog):
        state = ConversationState(existing_pump_brand="Wilo", problem=Problem.REPLACEMENT)
        result = decide(state, catalog, "I have a Wilo pump that needs replacing")
        assert result.action == Action.ASK
        assert "I know the model number" in result.suggestions

    def test_unknown_model_asks_even_with_full_context(self, catalog):
        state = ConversationState(
            existing_pump_brand="Wilo", existing_pump_model="Foo 99",
            application=Application.HEATING, floors=4, building_size=BuildingSize.MEDIUM)
        result = decide(state, catalog)
        assert result.action == Action.ASK
        assert result.pumps == []
        assert not result.is_competitor_replacement
        assert "I know the model number" in result.suggestions

    def test_extra_pumps_with_exact_specs(self, catalog):
        state = ConversationState(
            existing_pump_brand="Wilo", existing_pump_model="Stratos 25/1-8",
            application=Application.HEATING, flow_m3h=4, head_m=6)
        result = decide(state, catalog)
        models = [p.model for p in result.pumps]
        assert models[0] == "MAGNA3 25-80"
        assert len(models) == len(set(models))
        assert 1 < len(models) <= 3


class TestRecommendation:
    def test_motor_power_path(self, catalog):
        result = decide(ConversationState(motor_kw=7.457), catalog, "a 10 hp pump")
        assert result.action == Action.RECOMMEND
        assert result.duty_point is None
        assert result.pumps[0].model == "SP 17-8"
        assert any(item.label == "Motor power" for item in result.requirements)

    def test_unsized_hours_match_oversizing_size(self, catalog):
        # No building size: hours come from the same medium default as the oversizing factor
        result = decide(ConversationState(motor_kw=7.457), catalog, "a 10 hp pump")
        rate = roi.energy_rate("PH").rate
        expected = 7.457 * roi.operating_hours(Application.WATER_SUPPLY, BuildingSize.MEDIUM) * rate
        assert result.pumps[0].roi.old_annual_cost == pytest.approx(expected)

    def test_competitor_hours_use_default_size(self, catalog):
        state = ConversationState(existing_pump_brand="Wilo", existing_pump_model="Stratos 25/1-8")
        top = decide(state, catalog).pumps[0]
        hours = roi.operating_hours(Application.WATER_SUPPLY, BuildingSize.MEDIUM)
        rate = roi.energy_rate("PH").rate
        assert hours == 4000
        assert top.roi.new_annual_cost == pytest.approx(top.power_kw * hours * rate)

    def test_no_match(self, catalog):
        state = ConversationState(
            application=Application.WATER_SUPPLY, flow_m3h=500, head_m=300)
        result = decide(state, catalog)
        assert result.action == Action.ASK
        assert result.no_match
        assert result.suggestions == NO_MATCH_SUGGESTIONS
        assert result.duty_point is not None

    def test_roi_attached(self, catalog, house_on_mains):
        result = decide(house_on_mains, catalog)
        for pump in result.pumps:
            assert pump.roi.currency == "PHP"
            assert pump.price_range_local.startswith("₱")
            assert pump.oversizing_note

    def test_trace(self, catalog, house_on_mains):
        steps = [t.step for t in decide(house_on_mains, catalog).trace]
        assert "duty_point" in steps
        assert "ranking" in steps


class TestRequirementsSummary:
    def test_labels(self, house_on_mains):
        items = {i.label: i.value for i in build_requirements_summary(house_on_mains)}
        assert items["Application"] == "Domestic Water"
        assert items["Floors"] == "3"
        assert items["Water source"] == "City mains"
        assert "Flow" not in items
