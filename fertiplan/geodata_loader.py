"""
Geospatial data loader for soil rasters and point-feature collections.

Sources (place files in data/raster/ and data/geojson/):
  AN / AP / AK GeoTIFFs             → RasterLayer per nutrient (rasterio)
  fertilizer_efficiency.geojson     → regional fertilizer-use efficiency points
  farming_schedule.geojson          → regional sowing-window points

Every source is optional. A missing or unreadable file is logged and modelled
as an absent layer / empty index; the engine then falls back to simulated
soil values and crop-default efficiencies.

The assembled GeospatialContext is immutable and loaded once per process.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from functools import lru_cache
from pathlib import Path

import numpy as np
import pandas as pd
import rasterio

from fertiplan.config import (
    RASTER_DIR,
    FEATURE_DIR,
    RASTER_FNAMES,
    EFFICIENCY_FNAME,
    FARMING_SCHEDULE_FNAME,
)
from fertiplan.crop_params import Crop, NUTRIENTS
from fertiplan.feature_index import NearestFeatureIndex, PointFeature
from fertiplan.raster_sampler import RasterLayer

log = logging.getLogger(__name__)

# GeoJSON property names per nutrient in the efficiency collection
EFFICIENCY_PROPERTIES: dict[str, str] = {
    "N": "nitrogen_efficiency",
    "P": "phosphorus_efficiency",
    "K": "potassium_efficiency",
}

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_MONTH_DAY_RE = re.compile(r"(\d{1,2})月(\d{1,2})日")


# ---------------------------------------------------------------------------
# Property parsers
# ---------------------------------------------------------------------------

def parse_percent_range(text) -> float | None:
    """
    "30-35%" → 0.325, "40%" → 0.40.
    Mean of every number in the string, as a fraction. None when nothing parses.
    """
    if text is None or text == "":
        return None
    numbers = [float(n) for n in _NUMBER_RE.findall(str(text))]
    if not numbers:
        return None
    return sum(numbers) / len(numbers) / 100.0


def parse_planting_time_range(text, year: int) -> tuple[date | None, date | None]:
    """
    "5月20日-6月10日" → (date(year, 5, 20), date(year, 6, 10)).
    A single date gives (d, d); no parsable date gives (None, None).
    """
    if not text:
        return None, None
    matches = _MONTH_DAY_RE.findall(str(text))
    if not matches:
        return None, None
    try:
        dates = [date(year, int(m), int(d)) for m, d in matches[:2]]
    except ValueError:
        log.debug("Invalid planting_time %r, ignoring.", text)
        return None, None
    if len(dates) == 1:
        return dates[0], dates[0]
    return dates[0], dates[1]


def _parse_crop_label(label) -> Crop | None:
    try:
        return Crop.parse(label)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# File readers
# ---------------------------------------------------------------------------

def load_raster_layer(path: Path, name: str = "") -> RasterLayer:
    """
    Read band 1 of a GeoTIFF into a RasterLayer.
    The file's own nodata marker (if any) is mapped to NaN so the sampler
    treats it as NODATA alongside the fixed sentinels.
    """
    with rasterio.open(path) as ds:
        grid = ds.read(1).astype(float)
        if ds.nodata is not None:
            grid[grid == ds.nodata] = np.nan
        bounds = ds.bounds
        return RasterLayer.from_grid(
            grid,
            (bounds.left, bounds.bottom, bounds.right, bounds.top),
            name=name or Path(path).stem,
        )


def _read_raster_safe(path: Path, label: str) -> RasterLayer | None:
    """Read a raster layer; log and return None on any error."""
    if not path.exists():
        log.debug("%s raster not found at %s, using fallback data.", label, path)
        return None
    try:
        layer = load_raster_layer(path, name=label)
        log.info("Loaded %s raster from %s (%dx%d).", label, path, layer.width, layer.height)
        return layer
    except Exception as exc:
        log.warning("Could not read %s raster (%s): %s", label, path, exc)
        return None


def load_feature_collection(path: Path) -> pd.DataFrame:
    """
    Flatten the Point features of a GeoJSON file into a table with
    lon, lat, crop and one column per property.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    points = [
        feat for feat in data.get("features") or []
        if (feat.get("geometry") or {}).get("type") == "Point"
        and (feat.get("geometry") or {}).get("coordinates")
    ]
    if not points:
        return pd.DataFrame(columns=["lon", "lat", "crop"])
    props = pd.json_normalize([p.get("properties") or {} for p in points])
    coords = np.array([p["geometry"]["coordinates"][:2] for p in points], dtype=float)
    # the geometry is authoritative over any lon/lat properties
    props = props.drop(columns=["lon", "lat"], errors="ignore")
    props.insert(0, "lon", coords[:, 0])
    props.insert(1, "lat", coords[:, 1])
    if "crop" not in props.columns:
        props["crop"] = ""
    props["crop"] = props["crop"].fillna("").astype(str).str.strip()
    return props


def _read_features_safe(path: Path, label: str) -> pd.DataFrame | None:
    if not path.exists():
        log.debug("%s collection not found at %s, using crop defaults.", label, path)
        return None
    try:
        df = load_feature_collection(path)
        log.info("Loaded %s from %s (%d points).", label, path, len(df))
        return df
    except Exception as exc:
        log.warning("Could not read %s (%s): %s", label, path, exc)
        return None


# ---------------------------------------------------------------------------
# Table → index builders
# ---------------------------------------------------------------------------

def _row_properties(row: pd.Series) -> dict:
    return {k: v for k, v in row.items() if k not in ("lon", "lat")}


def build_efficiency_index(df: pd.DataFrame | None) -> NearestFeatureIndex:
    """Fertilizer efficiency points; percent-range strings parsed to fractions."""
    features: list[PointFeature] = []
    if df is not None:
        for _, row in df.iterrows():
            values = {
                nutrient: parse_percent_range(row.get(prop))
                for nutrient, prop in EFFICIENCY_PROPERTIES.items()
            }
            features.append(PointFeature(
                coords=(float(row["lon"]), float(row["lat"])),
                crop=_parse_crop_label(row["crop"]),
                values={k: v for k, v in values.items() if v is not None},
                crop_label=row["crop"],
                properties=_row_properties(row),
            ))
    return NearestFeatureIndex(features, label="fertilizer efficiency")


def build_sowing_index(df: pd.DataFrame | None, year: int | None = None) -> NearestFeatureIndex:
    """Sowing-window points; planting_time strings anchored to `year` (default: this year)."""
    year = year or date.today().year
    features: list[PointFeature] = []
    if df is not None:
        for _, row in df.iterrows():
            planting_time = row.get("planting_time")
            if not isinstance(planting_time, str):
                planting_time = None
            features.append(PointFeature(
                coords=(float(row["lon"]), float(row["lat"])),
                crop=_parse_crop_label(row["crop"]),
                sowing_range=parse_planting_time_range(planting_time, year),
                crop_label=row["crop"],
                properties=_row_properties(row),
            ))
    return NearestFeatureIndex(features, label="sowing window")


# ---------------------------------------------------------------------------
# Context assembly
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeospatialContext:
    """Read-only geospatial inputs shared by every calculation."""
    layers: dict[str, RasterLayer | None] = field(default_factory=lambda: {n: None for n in NUTRIENTS})
    efficiency_index: NearestFeatureIndex = field(default_factory=NearestFeatureIndex)
    sowing_index: NearestFeatureIndex = field(default_factory=NearestFeatureIndex)

    def layer(self, nutrient: str) -> RasterLayer | None:
        return self.layers.get(nutrient)

    def status(self) -> dict:
        """Which sources are available (for UI / health display)."""
        return {
            "rasters": {n: self.layers.get(n) is not None for n in NUTRIENTS},
            "efficiency_points": len(self.efficiency_index),
            "sowing_points": len(self.sowing_index),
        }


def load_geospatial_context(
    raster_dir: Path | None = None,
    feature_dir: Path | None = None,
    year: int | None = None,
) -> GeospatialContext:
    """
    Load every raster layer and feature collection that is present.
    Never raises for missing or corrupt data files.
    """
    rdir = raster_dir or RASTER_DIR
    fdir = feature_dir or FEATURE_DIR
    layers = {
        nutrient: _read_raster_safe(rdir / fname, nutrient)
        for nutrient, fname in RASTER_FNAMES.items()
    }
    efficiency_df = _read_features_safe(fdir / EFFICIENCY_FNAME, "fertilizer efficiency")
    sowing_df = _read_features_safe(fdir / FARMING_SCHEDULE_FNAME, "farming schedule")
    return GeospatialContext(
        layers=layers,
        efficiency_index=build_efficiency_index(efficiency_df),
        sowing_index=build_sowing_index(sowing_df, year=year),
    )


@lru_cache(maxsize=1)
def get_geospatial_context() -> GeospatialContext:
    """Default-path context, loaded once per process."""
    return load_geospatial_context()
