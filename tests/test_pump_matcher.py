"""Pin catalog matching: exclusions, capability filter, scoring and the
motor-power path, against the bundled catalog."""

import pytest

from models import Application, CatalogPump, DutyPoint, MatchLabel, WaterSource
from pump_catalog import CatalogError, PumpCatalog, load_catalog, normalize_model
from pump_matcher import (
    FAMILY_PREFERENCE, _score_pump, confidence_label, family_key, is_category_excluded,
    is_domestic_excluded, match_by_motor_power, match_confidence, match_pumps,
    preference_bonus, preference_table,
)

HOUSE_DUTY = DutyPoint(estimated_flow_m3h=2.268, estimated_head_m=15.35)


class TestExclusions:
    def test_domestic_on_mains_excludes_industrial_families(self, catalog):
        results = match_pumps(HOUSE_DUTY, Application.DOMESTIC_WATER, catalog,
                              water_source=WaterSource.MAINS)
        assert results
        for s in results:
            assert family_key(s.pump.family) not in {"CR", "CRE", "SP", "SQ", "NB", "NK"}

    def test_well_lifts_domestic_exclusion(self):
        assert is_domestic_excluded("SQ", Application.DOMESTIC_WATER, WaterSource.MAINS)
        assert not is_domestic_excluded("SQ", Application.DOMESTIC_WATER, WaterSource.WELL)

    def test_domestic_exclusion_catches_variants(self):
        assert is_domestic_excluded("SQE", Application.DOMESTIC_WATER, None)
        assert is_domestic_excluded("HYDRO MULTI-E", Application.DOMESTIC_WATER, None)
        assert not is_domestic_excluded("SCALA2", Application.DOMESTIC_WATER, None)

    def test_dosing_category_reserved(self):
        assert is_category_excluded("Dosing", Application.WATER_SUPPLY)
        assert not is_category_excluded("Dosing", Application.DOSING)

    def test_dosing_pumps_never_offered_elsewhere(self, catalog):
        tiny = DutyPoint(estimated_flow_m3h=0.01, estimated_head_m=10)
        results = match_pumps(tiny, Application.WATER_SUPPLY, catalog)
        assert all("Dosing" not in s.pump.category for s in results)


class TestRanking:
    def test_house_on_mains_top_pick(self, catalog):
        results = match_pumps(HOUSE_DUTY, Application.DOMESTIC_WATER, catalog,
                              water_source=WaterSource.MAINS)
        assert results[0].pump.model == "SCALA2 3-45"
        assert results[0].label == MatchLabel.EXCELLENT

    def test_at_most_three_sorted(self, catalog):
        duty = DutyPoint(estimated_flow_m3h=5, estimated_head_m=40)
        results = match_pumps(duty, Application.WATER_SUPPLY, catalog)
        assert 0 < len(results) <= 3
        scores = [s.score for s in results]
        assert scores == sorted(scores)

    def test_impossible_duty_is_empty(self, catalog):
        duty = DutyPoint(estimated_flow_m3h=500, estimated_head_m=300)
        assert match_pumps(duty, Application.WATER_SUPPLY, catalog) == []

    def test_dosing_application(self, catalog):
        duty = DutyPoint(estimated_flow_m3h=0.01, estimated_head_m=10)
        results = match_pumps(duty, Application.DOSING, catalog)
        assert results
        assert results[0].pump.family == "DDA"

    def test_trace_records_phases(self, catalog):
        trace = []
        match_pumps(HOUSE_DUTY, Application.DOMESTIC_WATER, catalog,
                    water_source=WaterSource.MAINS, trace=trace)
        steps = [t.step for t in trace]
        assert steps[:2] == ["exclusion", "capability_filter"]


def make_pump(**specs):
    return CatalogPump(
        id="x1", model="XY 4-5", family="XY", category="Circulator",
        applications=["heating"], specs={"eei": 0.2, **specs},
    )


class TestIdealPoint:
    def test_rated_point_covers_duty(self):
        pump = make_pump(max_flow_m3h=8, max_head_m=6,
                         rated_flow_m3h=4.5, rated_head_m=5)
        s = _score_pump(pump, 4, 5, Application.HEATING, None, None)
        assert s.used_rated_point
        assert s.flow_ratio == pytest.approx(1.125)
        assert s.head_ratio == pytest.approx(1.0)
        # |1.125 - 1.0| + |1.0 - 1.0| + 2 * eei
        assert s.score == pytest.approx(0.525)

    def test_rated_point_short_falls_back_to_max(self):
        pump = make_pump(max_flow_m3h=8, max_head_m=6,
                         rated_flow_m3h=3.0, rated_head_m=5)
        s = _score_pump(pump, 4, 5, Application.HEATING, None, None)
        assert not s.used_rated_point
        assert s.flow_ratio == pytest.approx(2.0)
        assert s.head_ratio == pytest.approx(1.2)
        # |2.0 - 1.2| + |1.2 - 1.2| + 2 * eei
        assert s.score == pytest.approx(1.2)


class TestPreference:
    def test_eval_domain_overrides_family_bonus(self):
        assert FAMILY_PREFERENCE[Application.HEATING]["MAGNA3"] == 15
        table = preference_table(Application.HEATING, "hvac")
        assert table["MAGNA3"] == 20
        assert table["NB"] == 6

    def test_domain_bonus_on_catalog_pump(self, catalog):
        magna = catalog.get_by_model("MAGNA3 25-80")
        assert preference_bonus(magna, Application.HEATING) == 15
        assert preference_bonus(magna, Application.HEATING, eval_domain="hvac") == 20

    def test_well_adds_source_bonus(self):
        pump = make_pump()
        sp = pump.model_copy(update={"family": "SP"})
        assert preference_bonus(sp, Application.WATER_SUPPLY, WaterSource.WELL) == 12 + 8


class TestConfidence:
    def test_vsd_caps_flow_oversize(self):
        assert match_confidence(3.0, 1.0, vsd=True, app_match=True, eei=None, bonus=0) == 92
        assert match_confidence(3.0, 1.0, vsd=False, app_match=True, eei=None, bonus=0) == 80

    def test_no_cap_when_head_short(self):
        assert match_confidence(3.0, 0.9, vsd=True, app_match=True, eei=None, bonus=0) == 76

    def test_clamped(self):
        assert match_confidence(1.0, 0.2, vsd=False, app_match=False, eei=None, bonus=0) == 40
        assert match_confidence(1.0, 1.0, vsd=False, app_match=True, eei=0.1, bonus=20) == 99

    def test_labels(self):
        assert confidence_label(90) == MatchLabel.EXCELLENT
        assert confidence_label(75) == MatchLabel.GOOD
        assert confidence_label(60) == MatchLabel.FAIR
        assert confidence_label(59) == MatchLabel.PARTIAL


class TestMotorPower:
    def test_ten_hp(self, catalog):
        results = match_by_motor_power(7.457, Application.WATER_SUPPLY, catalog)
        assert [s.pump.model for s in results] == ["SP 17-8"]
        assert results[0].label == MatchLabel.FAIR

    def test_string_power_is_parsed(self, catalog):
        results = match_by_motor_power(3.0, Application.WATER_SUPPLY, catalog)
        assert "CR 10-6" in [s.pump.model for s in results]


class TestFamilyKey:
    @pytest.mark.parametrize("family,key", [
        ("SCALA2", "SCALA"),
        ("MAGNA3", "MAGNA"),
        ("HYDRO MULTI-E", "HYDRO"),
        ("CR", "CR"),
    ])
    def test_family_key(self, family, key):
        assert family_key(family) == key


class TestCatalog:
    def test_lookup_ignores_punctuation(self, catalog):
        assert catalog.get_by_model("scala2 3 45").model == "SCALA2 3-45"
        assert normalize_model("SEG.40.12.2.50B") == "SEG4012250B"

    def test_competitor_cross_reference(self, catalog):
        assert catalog.find_competitor_match("wilo", "Stratos 25/1-8").model == "MAGNA3 25-80"
        assert catalog.find_competitor_match("DAB", "E.sybox 30/50").model == "SCALA2 3-45"

    def test_unknown_competitor_model(self, catalog):
        assert catalog.find_competitor_match("Wilo", "Zzz 99") is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(CatalogError):
            load_catalog(tmp_path / "nope.json")

    def test_bad_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(CatalogError):
            load_catalog(path)

    def test_catalog_is_iterable(self, catalog):
        assert isinstance(catalog, PumpCatalog)
        assert len(list(catalog)) == len(catalog) == 33
