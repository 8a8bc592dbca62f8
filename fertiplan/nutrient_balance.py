"""
Nutrient balance model: target yield → per-stage fertilizer products.

Per nutrient X in {N, P, K}:

  demand_X   = target_yield / 100 * uptake_per_100kg_X
  soil_X     = soil_test_X * 0.15 * correction_X(soil_test_X)
               * organic_matter_factor_X * (pH factor if X == P)
  straw_X    = dry_straw * straw_pct_X / 100 * release_rate_X
               (straw of the preceding crop in the rotation; N release may be negative)
  required_X = max(0, demand_X - soil_X - straw_X) / efficiency_X
               (P efficiency also multiplied by the pH factor)

Efficiency comes from the nearest regional efficiency point when
coordinates and data are available, else the crop default.

Nitrogen is split across three stages by split_ratios(); 0.5 % of the dry
straw mass is added to base-dressing N only. Phosphorus goes entirely to
the base dressing; potassium is split base / last stage by the crop's
potassium share (rice 60/40, wheat all base).

Masses are converted to urea, superphosphate and potassium chloride by
nutrient content. Nothing is rounded until CalculationResult.as_dict().
"""

from dataclasses import dataclass
from datetime import date

from fertiplan.config import SOIL_CONVERSION_FACTOR, STRAW_ADDITIONAL_N_RATE
from fertiplan.crop_params import (
    Crop,
    NUTRIENTS,
    PRODUCT_CONTENT,
    PRODUCT_FOR_NUTRIENT,
    get_crop_params,
    organic_matter_factor,
    ph_factor_p,
    soil_correction,
    straw_donor,
    wheat_yield_tier,
)
from fertiplan.numeric import round_half_up
from fertiplan.soil_resolver import NutrientLevel, NutrientSource, SoilNutrientRecord
from fertiplan.split_ratio import parse_date, split_ratios

# When / how each stage dressing goes on
STAGE_TIMING: dict[Crop, dict[str, str]] = {
    Crop.RICE: {
        "base":      "Deep-incorporate during land preparation",
        "tillering": "7-10 days after transplanting",
        "panicle":   "At the onset of panicle initiation",
    },
    Crop.WHEAT: {
        "base":      "Deep-apply during land preparation before sowing",
        "jointing":  "Top-dress with irrigation at the erecting/jointing stage",
        "booting":   "At booting, to support grain set",
    },
}


# ---------------------------------------------------------------------------
# Balance components
# ---------------------------------------------------------------------------

def nutrient_demand(crop, target_yield: float) -> dict[str, float]:
    per_100kg = get_crop_params(crop).per_100kg
    return {n: target_yield / 100 * per_100kg[n] for n in NUTRIENTS}


def soil_factors(organic_matter: float, soil_ph: float) -> dict:
    return {
        "organic_matter": {n: organic_matter_factor(n, organic_matter) for n in NUTRIENTS},
        "ph_p": ph_factor_p(soil_ph),
    }


def soil_supply(crop, soil: SoilNutrientRecord, organic_matter: float, soil_ph: float) -> dict[str, float]:
    factors = soil_factors(organic_matter, soil_ph)
    supply = {}
    for n in NUTRIENTS:
        value = soil.values[n]
        s = value * SOIL_CONVERSION_FACTOR * soil_correction(crop, n, value) * factors["organic_matter"][n]
        if n == "P":
            s *= factors["ph_p"]
        supply[n] = s
    return supply


def straw_supply(crop, straw_amount: float) -> tuple[dict[str, float], float]:
    """
    Nutrients released by returned straw of the preceding crop.
    Returns ({N, P, K: kg/mu}, additional base-dressing N).
    """
    if straw_amount <= 0:
        return {n: 0.0 for n in NUTRIENTS}, 0.0
    straw = get_crop_params(straw_donor(crop)).straw
    dry_mass = straw_amount * (1 - straw.moisture_pct / 100)
    released = {
        n: dry_mass * straw.nutrient_pct[n] / 100 * straw.release_rate[n]
        for n in NUTRIENTS
    }
    return released, dry_mass * STRAW_ADDITIONAL_N_RATE


def resolve_efficiency(crop, lon, lat, context=None) -> tuple[dict[str, float], dict[str, NutrientSource]]:
    """Regional efficiency from the nearest point carrying an N value, else crop defaults."""
    defaults = get_crop_params(crop).efficiency
    feature = None
    if context is not None and lon is not None and lat is not None:
        feature = context.efficiency_index.nearest(crop, lon, lat, require=("N",))
    efficiency, sources = {}, {}
    for n in NUTRIENTS:
        value = feature.values.get(n) if feature is not None else None
        if value is not None and value > 0:
            efficiency[n], sources[n] = value, NutrientSource.GEOFEATURE
        else:
            efficiency[n], sources[n] = defaults[n], NutrientSource.DEFAULT
    return efficiency, sources


def _requested_sowing(value) -> date | None:
    if value in (None, ""):
        return None
    try:
        return parse_date(value)
    except (ValueError, TypeError):
        return None


def resolve_sowing(crop, inp_sowing, lon, lat, context=None, today: date | None = None):
    """
    Sowing date used for the split plus the recommended window.
    Priority: requested date > nearest regional window start > crop norm in the current year.
    A requested value that is not a date counts as no request.
    """
    today = today or date.today()
    inp_sowing = _requested_sowing(inp_sowing)
    window = None
    if context is not None and lon is not None and lat is not None:
        feature = context.sowing_index.nearest(crop, lon, lat, require=("sowing",))
        if feature is not None:
            window = feature.sowing_range
    sowing = inp_sowing or (window[0] if window else None)
    if sowing is None:
        month, day = get_crop_params(crop).normal_sowing_month_day
        sowing = date(today.year, month, day)
        window = (sowing, sowing)
    return sowing, window


def compound_reference(target_yield: float) -> dict:
    """Wheat yield-tier compound fertilizer (N-P-K 20-15-10) and jointing urea reference doses."""
    params = get_crop_params(Crop.WHEAT)
    tier = wheat_yield_tier(target_yield)
    formula_kg = tier.formula_mid
    ratio = params.formula_ratio
    nutrients = {n: formula_kg * pct / 100 for n, pct in zip(NUTRIENTS, ratio)}
    return {
        "yield_tier":       (tier.min_yield, tier.max_yield),
        "formula_ratio":    ratio,
        "formula_kg":       formula_kg,
        "jointing_urea_kg": tier.urea_mid,
        "nutrients":        nutrients,
        "jointing_urea_n":  tier.urea_mid * PRODUCT_CONTENT["urea"],
    }


# ---------------------------------------------------------------------------
# Guidance text
# ---------------------------------------------------------------------------
_LOW = (NutrientLevel.LOW,)
_HIGH = (NutrientLevel.HIGH, NutrientLevel.VERY_HIGH)


def build_guidance(crop, ratios: dict[str, float], soil: SoilNutrientRecord) -> list[str]:
    crop = Crop.parse(crop)
    levels = soil.levels
    base_pct = round_half_up(ratios["base"] * 100, 0)
    guidance = []
    if crop is Crop.RICE:
        guidance.append(f"Base dressing carries about {base_pct:.0f}% of nitrogen; "
                        "all phosphorus and 60% of potassium go on as base.")
        guidance.append("Apply tillering urea 7-10 days after transplanting to promote tillers.")
        guidance.append("Apply panicle fertilizer at early panicle initiation for larger panicles.")
        if levels["N"] in _LOW:
            guidance.append("Soil alkali-hydrolysable N is low: consider raising nitrogen by 10-15%.")
        elif levels["N"] in _HIGH:
            guidance.append("Soil alkali-hydrolysable N is high: nitrogen can be reduced by about 10%.")
        if levels["P"] in _LOW:
            guidance.append("Soil available P is low: consider raising phosphorus by 15-20%.")
        if levels["K"] in _LOW:
            guidance.append("Soil available K is low: consider raising potassium by 10-15%.")
        guidance.append("Apply into shallow standing water to improve fertilizer use efficiency.")
    else:
        guidance.append(f"Base dressing carries about {base_pct:.0f}% of nitrogen; "
                        "all phosphorus and potassium go on as base.")
        guidance.append("Apply jointing fertilizer at the erecting/jointing stage for sturdy stems.")
        guidance.append("Apply booting fertilizer at booting to support grain development.")
        if levels["N"] in _LOW:
            guidance.append("Soil alkali-hydrolysable N is low: raise the tillering top-dressing by about 20%.")
        elif levels["N"] in _HIGH:
            guidance.append("Soil alkali-hydrolysable N is high: base-dressing nitrogen can be reduced.")
        if levels["P"] in _LOW:
            guidance.append("Soil available P is severely deficient: apply all phosphorus as base and place it deep.")
        if levels["K"] in _LOW:
            guidance.append("Soil available K is low: split potassium between base and jointing.")
        guidance.append("Incorporate and cover fertilizer with soil to reduce losses.")

    if soil.uses_manual:
        guidance.append("Note: manually entered soil nutrient values are in use.")
    elif soil.is_default:
        guidance.append("Note: default or simulated soil data is in use; "
                        "a measured soil layer would give more precise values.")
    return guidance


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

def _r(value: float) -> float:
    return round_half_up(value, 1)


def _rounded(mapping: dict) -> dict:
    return {k: _r(v) for k, v in mapping.items()}


@dataclass(frozen=True)
class CalculationResult:
    crop: Crop
    target_yield: float
    demand: dict[str, float]
    soil_supply: dict[str, float]
    straw_supply: dict[str, float]
    straw_additional_n: float
    efficiency: dict[str, float]                   # P already pH-adjusted
    efficiency_sources: dict[str, NutrientSource]
    fertilizer_nutrients: dict[str, float]         # required nutrient mass, kg/mu
    split_ratios: dict[str, float]
    stage_nutrients: dict[str, dict[str, float]]   # stage -> nutrient -> kg/mu
    stage_products: dict[str, dict[str, float]]    # stage -> product -> kg/mu
    soil: SoilNutrientRecord
    soil_factors: dict
    organic_matter: float
    soil_ph: float
    straw_return_amount: float
    sowing_date: date
    sowing_window: tuple[date | None, date | None] | None
    guidance: tuple[str, ...]
    compound_reference: dict | None = None

    @property
    def product_totals(self) -> dict[str, float]:
        totals = {p: 0.0 for p in PRODUCT_CONTENT}
        for products in self.stage_products.values():
            for product, kg in products.items():
                totals[product] += kg
        return totals

    def as_dict(self) -> dict:
        """Output form: masses rounded half-up to 0.1 kg/mu, percentages to 0.1 %."""
        window = self.sowing_window or (None, None)
        out = {
            "crop": self.crop.value,
            "target_yield": self.target_yield,
            "fertilizer_usage": {stage: _rounded(p) for stage, p in self.stage_products.items()},
            "nutrient_usage": {stage: _rounded(n) for stage, n in self.stage_nutrients.items()},
            "product_totals": _rounded(self.product_totals),
            "stage_timing": dict(STAGE_TIMING[self.crop]),
            "split_ratios_pct": {s: round_half_up(r * 100, 1) for s, r in self.split_ratios.items()},
            "calc_params": {
                "nutrient_demand":        _rounded(self.demand),
                "soil_supply":            _rounded(self.soil_supply),
                "straw_supply":           _rounded(self.straw_supply),
                "straw_additional_n":     _r(self.straw_additional_n),
                "fertilizer_nutrients":   _rounded(self.fertilizer_nutrients),
                "fertilizer_efficiency_pct": {n: round_half_up(e * 100, 1) for n, e in self.efficiency.items()},
                "efficiency_sources":     {n: s.value for n, s in self.efficiency_sources.items()},
                "soil_nutrients":         _rounded(self.soil.values),
                "nutrient_levels":        {n: lvl.value for n, lvl in self.soil.levels.items()},
                "data_source":            {n: src.value for n, src in self.soil.sources.items()},
                "is_default_data":        self.soil.is_default,
                "use_custom_soil":        self.soil.uses_manual,
                "organic_matter":         self.organic_matter,
                "soil_ph":                self.soil_ph,
                "organic_matter_factor":  dict(self.soil_factors["organic_matter"]),
                "ph_factor_p":            self.soil_factors["ph_p"],
                "straw_return_amount":    self.straw_return_amount,
                "recommended_sowing_date":       self.sowing_date.isoformat(),
                "recommended_sowing_date_start": window[0].isoformat() if window[0] else None,
                "recommended_sowing_date_end":   window[1].isoformat() if window[1] else None,
            },
            "guidance": list(self.guidance),
        }
        if self.compound_reference is not None:
            ref = self.compound_reference
            out["compound_reference"] = {
                "formula_ratio":    "-".join(f"{v:g}" for v in ref["formula_ratio"]),
                "formula_kg":       _r(ref["formula_kg"]),
                "jointing_urea_kg": _r(ref["jointing_urea_kg"]),
                "nutrients":        _rounded(ref["nutrients"]),
                "jointing_urea_n":  _r(ref["jointing_urea_n"]),
            }
        return out


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

def _stage_allocation(crop, required: dict[str, float], ratios: dict[str, float], additional_n: float):
    params = get_crop_params(crop)
    base, mid, late = params.split.stages
    k_base = params.potassium_base_share
    stages = {
        base: {"N": required["N"] * ratios[base] + additional_n,
               "P": required["P"],
               "K": required["K"] * k_base},
        mid:  {"N": required["N"] * ratios[mid]},
        late: {"N": required["N"] * ratios[late]},
    }
    if k_base < 1.0:
        stages[late]["K"] = required["K"] * (1 - k_base)
    return stages


def _to_products(stage_nutrients: dict[str, dict[str, float]]) -> dict[str, dict[str, float]]:
    products = {}
    for stage, nutrients in stage_nutrients.items():
        products[stage] = {}
        for n, kg in nutrients.items():
            product = PRODUCT_FOR_NUTRIENT[n]
            products[stage][product] = max(0.0, kg) / PRODUCT_CONTENT[product]
    return products


def compute_plan(inp, soil: SoilNutrientRecord, context=None, today: date | None = None) -> CalculationResult:
    """
    Run the nutrient balance for a validated request.

    Parameters
    ----------
    inp : CalculationInput
    soil : SoilNutrientRecord
        Resolved soil values (already floored above zero).
    context : GeospatialContext or None
        Supplies regional efficiency and sowing-window points; None uses crop defaults.
    today : date or None
        Anchors the default sowing year; defaults to date.today().

    Returns
    -------
    CalculationResult with unrounded values; use as_dict() for output.
    """
    crop = Crop.parse(inp.crop)

    demand = nutrient_demand(crop, inp.target_yield)
    supply = soil_supply(crop, soil, inp.organic_matter, inp.soil_ph)
    factors = soil_factors(inp.organic_matter, inp.soil_ph)
    params = get_crop_params(crop)
    straw_amount = params.default_straw_return if inp.straw_return_amount is None else inp.straw_return_amount
    temperature = params.default_temperature if inp.temperature_forecast is None else inp.temperature_forecast
    straw, additional_n = straw_supply(crop, straw_amount)

    efficiency, eff_sources = resolve_efficiency(crop, inp.lon, inp.lat, context)
    efficiency["P"] *= factors["ph_p"]

    required = {
        n: max(0.0, demand[n] - supply[n] - straw[n]) / efficiency[n]
        for n in NUTRIENTS
    }

    sowing, window = resolve_sowing(crop, inp.sowing_date, inp.lon, inp.lat, context, today)
    if inp.sowing_date not in (None, "") and _requested_sowing(inp.sowing_date) is None:
        # unreadable request: split_ratios logs it and uses the normal regime
        ratios = split_ratios(inp.sowing_date, crop, temperature)
    else:
        ratios = split_ratios(sowing, crop, temperature)

    stage_nutrients = _stage_allocation(crop, required, ratios, additional_n)

    return CalculationResult(
        crop=crop,
        target_yield=inp.target_yield,
        demand=demand,
        soil_supply=supply,
        straw_supply=straw,
        straw_additional_n=additional_n,
        efficiency=efficiency,
        efficiency_sources=eff_sources,
        fertilizer_nutrients=required,
        split_ratios=ratios,
        stage_nutrients=stage_nutrients,
        stage_products=_to_products(stage_nutrients),
        soil=soil,
        soil_factors=factors,
        organic_matter=inp.organic_matter,
        soil_ph=inp.soil_ph,
        straw_return_amount=straw_amount,
        sowing_date=sowing,
        sowing_window=window,
        guidance=tuple(build_guidance(crop, ratios, soil)),
        compound_reference=compound_reference(inp.target_yield) if crop is Crop.WHEAT else None,
    )
