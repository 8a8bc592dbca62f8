"""
Nutrient balance: demand, soil and straw supply, efficiency, stage allocation, products.
Run from project root: python -m pytest tests/test_nutrient_balance.py -v
"""

import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fertiplan.crop_params import Crop, wheat_yield_tier
from fertiplan.feature_index import NearestFeatureIndex, PointFeature
from fertiplan.geodata_loader import GeospatialContext
from fertiplan.nutrient_balance import (
    compound_reference,
    compute_plan,
    nutrient_demand,
    resolve_efficiency,
    resolve_sowing,
    soil_supply,
    straw_supply,
)
from fertiplan.soil_resolver import NutrientSource, resolve_soil_nutrients
from fertiplan.validation import CalculationInput

TODAY = date(2025, 9, 1)


def _rice_input(**overrides) -> CalculationInput:
    fields = dict(
        crop=Crop.RICE, target_yield=500.0, sowing_date=date(2025, 6, 17),
        organic_matter=20.0, soil_ph=6.5, straw_return_amount=0.0, temperature_forecast=22.5,
    )
    fields.update(overrides)
    return CalculationInput(**fields)


def _wheat_input(**overrides) -> CalculationInput:
    fields = dict(
        crop=Crop.WHEAT, target_yield=450.0, sowing_date=date(2025, 11, 1),
        organic_matter=20.0, soil_ph=6.5, straw_return_amount=0.0, temperature_forecast=12.0,
    )
    fields.update(overrides)
    return CalculationInput(**fields)


# ---------------------------------------------------------------------------
# Balance components
# ---------------------------------------------------------------------------

def test_nutrient_demand():
    assert nutrient_demand(Crop.RICE, 500) == pytest.approx({"N": 11.0, "P": 6.0, "K": 12.5})
    assert nutrient_demand(Crop.WHEAT, 400) == pytest.approx({"N": 12.0, "P": 6.0, "K": 11.2})


def test_rice_soil_supply_default_soil():
    soil = resolve_soil_nutrients(Crop.RICE)
    supply = soil_supply(Crop.RICE, soil, organic_matter=20.0, soil_ph=6.5)
    assert supply == pytest.approx({"N": 7.63024, "P": 3.979124, "K": 10.912394}, rel=1e-5)


def test_alkaline_soil_cuts_phosphorus_supply():
    soil = resolve_soil_nutrients(Crop.RICE)
    neutral = soil_supply(Crop.RICE, soil, 20.0, 6.5)
    alkaline = soil_supply(Crop.RICE, soil, 20.0, 8.18)
    assert alkaline["P"] == pytest.approx(neutral["P"] * 0.7)
    assert alkaline["N"] == pytest.approx(neutral["N"])


def test_rice_receives_wheat_straw():
    released, additional_n = straw_supply(Crop.RICE, 600)
    assert released == pytest.approx({"N": 0.8925, "P": 0.3825, "K": 5.508})
    assert additional_n == pytest.approx(2.55)


def test_wheat_receives_rice_straw_with_n_immobilisation():
    released, additional_n = straw_supply(Crop.WHEAT, 700)
    assert released == pytest.approx({"N": -1.512, "P": 0.273, "K": 6.048})
    assert additional_n == pytest.approx(2.1)


def test_no_straw():
    assert straw_supply(Crop.RICE, 0) == ({"N": 0.0, "P": 0.0, "K": 0.0}, 0.0)


# ---------------------------------------------------------------------------
# Efficiency and sowing lookups
# ---------------------------------------------------------------------------

def test_efficiency_defaults_without_context():
    eff, sources = resolve_efficiency(Crop.RICE, 114.0, 30.0)
    assert eff == {"N": 0.30, "P": 0.25, "K": 0.45}
    assert set(sources.values()) == {NutrientSource.DEFAULT}


def test_efficiency_from_nearest_point():
    index = NearestFeatureIndex([
        PointFeature((114.3, 30.6), Crop.RICE, values={"N": 0.33, "K": 0.0}),
        PointFeature((118.8, 32.0), Crop.RICE, values={"N": 0.38, "P": 0.2, "K": 0.5}),
    ])
    ctx = GeospatialContext(efficiency_index=index)
    eff, sources = resolve_efficiency(Crop.RICE, 114.0, 30.0, ctx)
    assert eff == {"N": 0.33, "P": 0.25, "K": 0.45}
    assert sources == {"N": NutrientSource.GEOFEATURE, "P": NutrientSource.DEFAULT, "K": NutrientSource.DEFAULT}


def test_sowing_defaults_to_crop_norm():
    sowing, window = resolve_sowing(Crop.WHEAT, None, None, None, today=TODAY)
    assert sowing == date(2025, 11, 1)
    assert window == (sowing, sowing)


def test_requested_sowing_without_window():
    sowing, window = resolve_sowing(Crop.RICE, date(2025, 6, 1), 114.0, 30.0, GeospatialContext(), today=TODAY)
    assert sowing == date(2025, 6, 1)
    assert window is None


def test_regional_window_start_used():
    window = (date(2025, 10, 25), date(2025, 11, 5))
    ctx = GeospatialContext(sowing_index=NearestFeatureIndex([PointFeature((114.3, 30.6), Crop.WHEAT, sowing_range=window)]))
    assert resolve_sowing(Crop.WHEAT, None, 114.0, 30.0, ctx, today=TODAY) == (window[0], window)
    assert resolve_sowing(Crop.WHEAT, date(2025, 11, 20), 114.0, 30.0, ctx, today=TODAY) == (date(2025, 11, 20), window)


# ---------------------------------------------------------------------------
# Wheat yield tiers
# ---------------------------------------------------------------------------

def test_yield_tier_boundaries_go_to_lower_tier():
    assert wheat_yield_tier(300).max_yield == 300
    assert wheat_yield_tier(300.5).min_yield == 300
    assert wheat_yield_tier(800).min_yield == 500


@pytest.mark.parametrize("target,formula,urea", [(450, 45.0, 11.0), (300, 27.5, 7.0), (800, 52.5, 13.0)])
def test_compound_reference(target, formula, urea):
    ref = compound_reference(target)
    assert ref["formula_kg"] == formula
    assert ref["jointing_urea_kg"] == urea


def test_compound_reference_nutrients():
    ref = compound_reference(450)
    assert ref["nutrients"] == pytest.approx({"N": 9.0, "P": 6.75, "K": 4.5})
    assert ref["jointing_urea_n"] == pytest.approx(5.06)


# ---------------------------------------------------------------------------
# Full plan
# ---------------------------------------------------------------------------

def test_rice_plan_reference_values():
    """Rice, 500 kg/mu, crop-default soil, neutral pH, no straw, normal sowing."""
    plan = compute_plan(_rice_input(), resolve_soil_nutrients(Crop.RICE), today=TODAY)
    assert plan.fertilizer_nutrients == pytest.approx({"N": 11.23253, "P": 8.0835, "K": 3.52801}, rel=1e-4)

    out = plan.as_dict()
    assert out["fertilizer_usage"] == {
        "base":      {"urea": 12.2, "superphosphate": 67.4, "potassium_chloride": 3.5},
        "tillering": {"urea": 6.1},
        "panicle":   {"urea": 6.1, "potassium_chloride": 2.4},
    }
    assert out["product_totals"] == {"urea": 24.4, "superphosphate": 67.4, "potassium_chloride": 5.9}
    assert out["split_ratios_pct"] == {"base": 50.0, "tillering": 25.0, "panicle": 25.0}
    cp = out["calc_params"]
    assert cp["nutrient_demand"] == {"N": 11.0, "P": 6.0, "K": 12.5}
    assert cp["soil_supply"] == {"N": 7.6, "P": 4.0, "K": 10.9}
    assert cp["fertilizer_nutrients"] == {"N": 11.2, "P": 8.1, "K": 3.5}
    assert cp["fertilizer_efficiency_pct"] == {"N": 30.0, "P": 25.0, "K": 45.0}
    assert cp["is_default_data"] is True
    assert cp["recommended_sowing_date"] == "2025-06-17"
    assert cp["recommended_sowing_date_start"] is None
    assert "compound_reference" not in out


def test_rice_potassium_split_60_40():
    plan = compute_plan(_rice_input(), resolve_soil_nutrients(Crop.RICE), today=TODAY)
    k = plan.fertilizer_nutrients["K"]
    assert plan.stage_nutrients["base"]["K"] == pytest.approx(0.6 * k)
    assert plan.stage_nutrients["panicle"]["K"] == pytest.approx(0.4 * k)


def test_straw_additional_n_goes_to_base_only():
    soil = resolve_soil_nutrients(Crop.RICE)
    with_straw = compute_plan(_rice_input(straw_return_amount=600.0), soil, today=TODAY)
    required_n = with_straw.fertilizer_nutrients["N"]
    assert with_straw.stage_nutrients["base"]["N"] == pytest.approx(required_n * 0.5 + 2.55)
    assert with_straw.stage_nutrients["tillering"]["N"] == pytest.approx(required_n * 0.25)


def test_alkaline_soil_lowers_phosphorus_efficiency():
    plan = compute_plan(_rice_input(soil_ph=8.18), resolve_soil_nutrients(Crop.RICE), today=TODAY)
    assert plan.efficiency["P"] == pytest.approx(0.25 * 0.7)
    assert plan.as_dict()["calc_params"]["ph_factor_p"] == 0.7


def test_wheat_plan_all_p_and_k_at_base():
    plan = compute_plan(_wheat_input(), resolve_soil_nutrients(Crop.WHEAT), today=TODAY)
    out = plan.as_dict()
    assert list(out["fertilizer_usage"]) == ["base", "jointing", "booting"]
    assert set(out["fertilizer_usage"]["jointing"]) == {"urea"}
    assert set(out["fertilizer_usage"]["booting"]) == {"urea"}
    assert plan.stage_nutrients["base"]["K"] == pytest.approx(plan.fertilizer_nutrients["K"])
    assert out["compound_reference"]["formula_ratio"] == "20-15-10"
    assert out["compound_reference"]["formula_kg"] == 45.0


def test_rice_straw_raises_wheat_nitrogen_need():
    soil = resolve_soil_nutrients(Crop.WHEAT)
    bare = compute_plan(_wheat_input(), soil, today=TODAY)
    straw = compute_plan(_wheat_input(straw_return_amount=700.0), soil, today=TODAY)
    assert straw.fertilizer_nutrients["N"] > bare.fertilizer_nutrients["N"]
    assert straw.fertilizer_nutrients["K"] < bare.fertilizer_nutrients["K"]


def test_surplus_soil_gives_zero_requirement():
    soil = resolve_soil_nutrients(Crop.WHEAT, custom_soil={"N": 300.0})
    plan = compute_plan(_wheat_input(target_yield=100.0), soil, today=TODAY)
    assert plan.fertilizer_nutrients["N"] == 0.0
    assert all(products["urea"] == 0.0 for products in plan.stage_products.values())


def test_products_never_negative():
    for crop, make in ((Crop.RICE, _rice_input), (Crop.WHEAT, _wheat_input)):
        for target in (1.0, 150.0, 600.0, 1000.0):
            for n_value in (0.0, 40.0, 150.0, 300.0):
                soil = resolve_soil_nutrients(crop, custom_soil={"N": n_value, "P": 100.0, "K": 500.0})
                plan = compute_plan(make(target_yield=target, straw_return_amount=5000.0), soil, today=TODAY)
                for products in plan.stage_products.values():
                    assert all(kg >= 0.0 for kg in products.values())


def test_guidance_lines():
    rice = compute_plan(_rice_input(), resolve_soil_nutrients(Crop.RICE), today=TODAY)
    assert rice.guidance[0].startswith("Base dressing carries about 50% of nitrogen")
    assert rice.guidance[-1].startswith("Note: default or simulated soil data")

    low = resolve_soil_nutrients(Crop.WHEAT, custom_soil={"N": 30.0, "P": 3.0, "K": 40.0})
    wheat = compute_plan(_wheat_input(), low, today=TODAY)
    text = " ".join(wheat.guidance)
    assert "alkali-hydrolysable N is low" in text
    assert "available P is severely deficient" in text
    assert "available K is low" in text
    assert wheat.guidance[-1] == "Note: manually entered soil nutrient values are in use."


def test_unset_straw_and_temperature_use_crop_defaults():
    """A directly built input without straw or forecast behaves like the validated defaults."""
    inp = CalculationInput(crop=Crop.RICE, target_yield=500.0, sowing_date=date(2025, 6, 17))
    plan = compute_plan(inp, resolve_soil_nutrients(Crop.RICE), today=TODAY)
    assert plan.split_ratios == pytest.approx({"base": 0.50, "tillering": 0.25, "panicle": 0.25})
    assert plan.straw_return_amount == 600.0
    assert plan.straw_additional_n == pytest.approx(2.55)


def test_unreadable_sowing_date_reports_default_window():
    inp = _wheat_input(sowing_date="early November")
    plan = compute_plan(inp, resolve_soil_nutrients(Crop.WHEAT), today=TODAY)
    assert plan.split_ratios == pytest.approx({"base": 0.65, "jointing": 0.25, "booting": 0.10})
    assert plan.sowing_date == date(2025, 11, 1)
    assert plan.sowing_window == (date(2025, 11, 1), date(2025, 11, 1))


def test_as_dict_is_repeatable():
    plan = compute_plan(_wheat_input(), resolve_soil_nutrients(Crop.WHEAT), today=TODAY)
    assert plan.as_dict() == plan.as_dict()


if __name__ == "__main__":
    import subprocess
    sys.exit(subprocess.call([sys.executable, "-m", "pytest", __file__, "-v", "-s"]))
