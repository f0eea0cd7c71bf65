"""Pin nameplate OCR text parsing and its hand-off into the conversation."""

import pytest

from conversation_policy import get_next_action
from models import Action
from nameplate_parser import parse_nameplate_text

GRUNDFOS_PLATE = """GRUNDFOS
Type: MAGNA3 25-80
P1 0.3 kW 1x230V 50Hz
Q 8.5 m3/h  H 8 m
"""

WILO_PLATE = """WILO
Model: Stratos 25/1-8
230 V   P 130 W
"""


class TestParse:
    def test_grundfos_plate(self):
        reading = parse_nameplate_text(GRUNDFOS_PLATE)
        assert reading.brand == "Grundfos"
        assert reading.model == "MAGNA3 25-80"
        assert reading.power_kw == pytest.approx(0.3)
        assert reading.voltage == "1x230V"
        assert reading.flow_m3h == pytest.approx(8.5)
        assert reading.head_m == pytest.approx(8)

    def test_watts_converted(self):
        reading = parse_nameplate_text(WILO_PLATE)
        assert reading.brand == "Wilo"
        assert reading.model == "Stratos 25/1-8"
        assert reading.power_kw == pytest.approx(0.13)
        assert reading.voltage == "230 V"

    def test_decimal_comma_and_feet(self):
        reading = parse_nameplate_text("EBARA\nP2 0,55 kW\nTDH 33 ft")
        assert reading.power_kw == pytest.approx(0.55)
        assert reading.head_m == pytest.approx(10.058)

    def test_horsepower(self):
        assert parse_nameplate_text("2 HP 220V").power_kw == pytest.approx(1.491)

    def test_empty(self):
        reading = parse_nameplate_text("   ")
        assert reading.model_dump(exclude_none=True) == {}


class TestToState:
    def test_own_brand_is_not_competitor(self):
        state = parse_nameplate_text(GRUNDFOS_PLATE).to_state(own_brand="Grundfos")
        assert state.existing_pump_brand is None
        assert state.existing_pump_model is None
        assert state.existing_pump_power == pytest.approx(0.3)

    def test_competitor_plate_drives_replacement(self, catalog):
        state = parse_nameplate_text(WILO_PLATE).to_state(own_brand="Grundfos")
        assert state.existing_pump_brand == "Wilo"
        result = get_next_action(state, catalog=catalog, region="PH")
        assert result.action == Action.RECOMMEND
        assert result.is_competitor_replacement
        assert result.pumps[0].model == "MAGNA3 25-80"
        assert result.pumps[0].compared_to == "Wilo Stratos 25/1-8"
