"""
Advisory entry points: fertilizer plan and application timing.

recommend_fertilizer():
    validate request → resolve soil (manual / raster / simulated / default)
    → nutrient balance + split ratios → response dict
recommend_timing():
    growth stage + weather risk → can-fertilize decision and staged advice

The two branches share only the crop / date / location inputs; advise()
runs both and merges them for callers that want a single response.

Usage (from project root):
    python -m fertiplan.advisor --crop rice --yield 500 --lon 114.305 --lat 30.592
    python -m fertiplan.advisor --crop wheat --yield 450 --soil-n 120 --weather
"""

import argparse
import json
import logging
from datetime import date

from fertiplan.geodata_loader import GeospatialContext, get_geospatial_context
from fertiplan.nutrient_balance import compute_plan
from fertiplan.soil_resolver import resolve_soil_nutrients
from fertiplan.timing_advisor import recommend_timing as _recommend_timing
from fertiplan.validation import ValidationError, validate_calculation_request
from fertiplan.weather_risk import WeatherSnapshot

log = logging.getLogger(__name__)


def recommend_fertilizer(
    payload: dict,
    context: GeospatialContext | None = None,
    rng=None,
    today: date | None = None,
) -> dict:
    """
    Full fertilizer recommendation for one request.

    Parameters
    ----------
    payload : dict
        Raw request (see validation.validate_calculation_request).
    context : GeospatialContext or None
        Defaults to the process-wide context loaded from data/.
    rng : random source or None
        Passed to the simulated soil fallback; inject a seeded generator for
        reproducible output.
    today : date or None
        Anchors the default sowing year.

    Returns
    -------
    dict
        The rounded CalculationResult (see CalculationResult.as_dict)

    Raises
    ------
    ValidationError
        Before any computation, when the request is rejected.
    """
    inp = validate_calculation_request(payload)
    ctx = context if context is not None else get_geospatial_context()
    soil = resolve_soil_nutrients(
        inp.crop, inp.lon, inp.lat,
        custom_soil=inp.custom_soil,
        context=ctx,
        rng=rng,
    )
    result = compute_plan(inp, soil, context=ctx, today=today)
    log.info("Plan for %s @ %s kg/mu: soil sources %s", inp.crop.value, inp.target_yield,
             {n: s.value for n, s in soil.sources.items()})
    return result.as_dict()


def recommend_timing(crop, sowing_date=None, weather: WeatherSnapshot | dict | None = None,
                     today: date | None = None) -> dict:
    """Timing response from a weather snapshot (WeatherSnapshot or its dict form)."""
    if not isinstance(weather, WeatherSnapshot):
        weather = WeatherSnapshot.from_dict(weather)
    out = _recommend_timing(crop, sowing_date, weather.current, weather.daily, today=today)
    out["location"] = weather.location
    return out


def advise(payload: dict, weather: WeatherSnapshot | dict | None = None,
           context: GeospatialContext | None = None, rng=None, today: date | None = None) -> dict:
    """Fertilizer plan plus timing advice; a rejected request returns the rejection only."""
    try:
        plan = recommend_fertilizer(payload, context=context, rng=rng, today=today)
    except ValidationError as exc:
        return {"success": False, **exc.as_dict()}
    timing = recommend_timing(plan["crop"], payload.get("sowing_date"), weather, today=today)
    return {"success": True, "plan": plan, "timing": timing}


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    parser = argparse.ArgumentParser(description="Rice/wheat fertilizer recommendation.")
    parser.add_argument("--crop", required=True, help="rice | wheat")
    parser.add_argument("--yield", dest="target_yield", type=float, required=True, help="Target yield (kg/mu)")
    parser.add_argument("--lon", type=float, default=None)
    parser.add_argument("--lat", type=float, default=None)
    parser.add_argument("--sowing-date", default=None, help="YYYY-MM-DD")
    parser.add_argument("--soil-n", type=float, default=None, help="Custom soil N (mg/kg)")
    parser.add_argument("--soil-p", type=float, default=None, help="Custom soil P (mg/kg)")
    parser.add_argument("--soil-k", type=float, default=None, help="Custom soil K (mg/kg)")
    parser.add_argument("--weather", action="store_true", help="Fetch live weather for timing advice")
    args = parser.parse_args()

    request = {
        "crop_type": args.crop,
        "target_yield": args.target_yield,
        "lon": args.lon,
        "lat": args.lat,
        "sowing_date": args.sowing_date,
        "custom_soil": {"N": args.soil_n, "P": args.soil_p, "K": args.soil_k},
    }
    snapshot = None
    if args.weather and args.lon is not None and args.lat is not None:
        from fertiplan.weather_fetcher import get_weather_snapshot
        snapshot = get_weather_snapshot(args.lon, args.lat)

    print(json.dumps(advise(request, weather=snapshot), ensure_ascii=False, indent=2, default=str))
