"""
Nitrogen split between growth-stage applications.

  rice  : base / tillering / panicle
  wheat : base / jointing  / booting

The regime is chosen by the sowing date's offset from the crop's normal
sowing date (anchored in the sowing year): early (< -7 days), normal
([-7, 7]) or late (> 7 days). A cold forecast (below the crop threshold)
moves 0.05 from the last stage into the base dressing. Fractions are
clamped to [0, 1].

A sowing date that cannot be parsed is not an error: the crop's normal
fractions are returned unchanged and a warning is logged.
"""

import logging
from datetime import date, datetime

from fertiplan.crop_params import get_crop_params
from fertiplan.numeric import clamp

log = logging.getLogger(__name__)

EARLY = "early"
NORMAL = "normal"
LATE = "late"


def parse_date(value) -> date:
    """date / datetime / ISO string → date. Raises ValueError or TypeError."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise TypeError(f"Unsupported date value: {value!r}")


def sowing_offset_days(sowing_date, crop) -> int:
    """Calendar days between the sowing date and the crop norm in the same year."""
    sown = parse_date(sowing_date)
    month, day = get_crop_params(crop).normal_sowing_month_day
    return (sown - date(sown.year, month, day)).days


def sowing_regime(days_diff: int, window_days: int = 7) -> str:
    if days_diff < -window_days:
        return EARLY
    if days_diff > window_days:
        return LATE
    return NORMAL


def split_ratios(sowing_date, crop, temperature_forecast: float | None = None) -> dict[str, float]:
    """
    Return {stage: fraction} for the crop's three N applications, summing to 1.0.

    Parameters
    ----------
    sowing_date : date, datetime, ISO string or None
    crop : Crop or str
    temperature_forecast : float or None
        °C; None uses the crop's default forecast.
    """
    params = get_crop_params(crop)
    split = params.split
    try:
        days_diff = sowing_offset_days(sowing_date, crop)
    except (ValueError, TypeError) as exc:
        log.warning("Could not parse sowing date %r (%s); using normal split for %s.",
                    sowing_date, exc, params.crop.value)
        return dict(zip(split.stages, split.normal))

    base, mid, late = {EARLY: split.early, NORMAL: split.normal, LATE: split.late}[
        sowing_regime(days_diff, split.window_days)
    ]
    temp = params.default_temperature if temperature_forecast is None else temperature_forecast
    if temp < split.cold_threshold:
        base += split.cold_shift
        late -= split.cold_shift
    return dict(zip(split.stages, (clamp(base, 0.0, 1.0), clamp(mid, 0.0, 1.0), clamp(late, 0.0, 1.0))))
