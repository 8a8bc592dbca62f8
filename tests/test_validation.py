"""
Calculation request validation and default filling.
Run from project root: python -m pytest tests/test_validation.py -v
"""

import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fertiplan.config import DEFAULT_ORGANIC_MATTER, DEFAULT_SOIL_PH
from fertiplan.crop_params import Crop
from fertiplan.validation import CalculationInput, ValidationError, validate_calculation_request


def _reject(payload: dict) -> ValidationError:
    with pytest.raises(ValidationError) as exc_info:
        validate_calculation_request(payload)
    return exc_info.value


def test_minimal_rice_request_gets_defaults():
    inp = validate_calculation_request({"crop_type": "rice", "target_yield": 500})
    assert inp.crop is Crop.RICE
    assert inp.target_yield == 500.0
    assert not inp.has_coords
    assert inp.sowing_date is None
    assert inp.custom_soil == {}
    assert inp.organic_matter == DEFAULT_ORGANIC_MATTER
    assert inp.soil_ph == DEFAULT_SOIL_PH
    assert inp.straw_return_amount == 600.0
    assert inp.temperature_forecast == 22.5


def test_wheat_defaults_and_chinese_label():
    inp = validate_calculation_request({"crop_type": "小麦", "target_yield": "450"})
    assert inp.crop is Crop.WHEAT
    assert inp.straw_return_amount == 700.0
    assert inp.temperature_forecast == 12.0


def test_full_request():
    inp = validate_calculation_request({
        "crop_type": "wheat",
        "target_yield": 450,
        "lon": 118.8, "lat": 32.0,
        "sowing_date": "2025-10-22",
        "custom_soil": {"N": 120, "K": ""},
        "organic_matter": 25,
        "soil_ph": 6.5,
        "straw_return_amount": 0,
        "temperature_forecast": 5,
    })
    assert inp.has_coords
    assert inp.sowing_date == date(2025, 10, 22)
    assert inp.custom_soil == {"N": 120.0}
    assert inp.straw_return_amount == 0.0
    assert inp.temperature_forecast == 5.0


def test_unknown_crop():
    err = _reject({"crop_type": "maize", "target_yield": 500})
    assert err.field == "crop_type"


@pytest.mark.parametrize("value", [0, -10, 1000.5, "abc", None, True, float("nan")])
def test_bad_target_yield(value):
    assert _reject({"crop_type": "rice", "target_yield": value}).field == "target_yield"


def test_yield_bounds_are_inclusive():
    assert validate_calculation_request({"crop_type": "rice", "target_yield": 1}).target_yield == 1.0
    assert validate_calculation_request({"crop_type": "rice", "target_yield": 1000}).target_yield == 1000.0


def test_coordinates_outside_window():
    assert _reject({"crop_type": "rice", "target_yield": 500, "lon": 105.0, "lat": 30.0}).field == "lon"
    assert _reject({"crop_type": "rice", "target_yield": 500, "lon": 114.0, "lat": 35.0}).field == "lat"


def test_single_coordinate_rejected():
    err = _reject({"crop_type": "rice", "target_yield": 500, "lon": 114.0})
    assert err.field == "lat"
    assert "together" in err.reason


def test_unreadable_sowing_date_is_kept_not_rejected():
    """A sowing date that does not parse is passed through; the split falls back later."""
    inp = validate_calculation_request({"crop_type": "rice", "target_yield": 500, "sowing_date": "June 1"})
    assert inp.sowing_date == "June 1"


def test_direct_input_leaves_crop_defaults_open():
    inp = CalculationInput(crop=Crop.RICE, target_yield=500)
    assert inp.straw_return_amount is None
    assert inp.temperature_forecast is None


def test_custom_soil_ranges():
    err = _reject({"crop_type": "rice", "target_yield": 500, "custom_soil": {"P": 150}})
    assert err.field == "custom_soil.P"
    assert err.reason == "150 outside [0, 100]"
    assert _reject({"crop_type": "rice", "target_yield": 500, "custom_soil": {"K": -1}}).field == "custom_soil.K"
    assert _reject({"crop_type": "rice", "target_yield": 500, "custom_soil": [1, 2]}).field == "custom_soil"
    assert _reject({"crop_type": "rice", "target_yield": 500, "custom_soil": {"N": "lots"}}).field == "custom_soil.N"


@pytest.mark.parametrize("key,value", [
    ("organic_matter", 250),
    ("soil_ph", 2.5),
    ("straw_return_amount", -5),
    ("temperature_forecast", 60),
])
def test_optional_field_ranges(key, value):
    assert _reject({"crop_type": "rice", "target_yield": 500, key: value}).field == key


def test_error_dict_shape():
    err = _reject({"crop_type": "rice"})
    assert err.as_dict() == {"error": "validation", "field": "target_yield", "reason": "is required"}
    assert isinstance(err, ValueError)


def test_non_mapping_request():
    assert _reject(["rice", 500]).field == "request"


if __name__ == "__main__":
    import subprocess
    sys.exit(subprocess.call([sys.executable, "-m", "pytest", __file__, "-v", "-s"]))
