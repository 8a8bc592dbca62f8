"""
Nearest-neighbour lookup over sparse point-feature collections
(regional fertilizer efficiency points, sowing-date points).

Selection rule:
  1. keep features carrying the required fields (e.g. an N efficiency)
  2. keep features whose crop matches; if none do, use the step-1 set
  3. pick the smallest squared distance in (lon, lat) degrees

There is no geodesic correction. Ties go to the feature that comes first
in collection order, so the order of the source file is part of the result.
"""

from dataclasses import dataclass, field
from datetime import date

import numpy as np
import pandas as pd

from fertiplan.crop_params import Crop

# Fields a query may require; "sowing" = a parsed sowing start date
REQUIRABLE_FIELDS = ("N", "P", "K", "sowing")


@dataclass(frozen=True)
class PointFeature:
    coords: tuple[float, float]                          # (lon, lat)
    crop: Crop | None                                    # None = label not rice/wheat
    values: dict[str, float] = field(default_factory=dict)
    sowing_range: tuple[date | None, date | None] | None = None
    crop_label: str = ""
    properties: dict = field(default_factory=dict, compare=False)

    @property
    def lon(self) -> float:
        return self.coords[0]

    @property
    def lat(self) -> float:
        return self.coords[1]

    def has(self, name: str) -> bool:
        if name == "sowing":
            return self.sowing_range is not None and self.sowing_range[0] is not None
        return self.values.get(name) is not None


class NearestFeatureIndex:
    """Immutable index over a feature collection, built once and queried per request."""

    def __init__(self, features=(), label: str = "features"):
        self.features: tuple[PointFeature, ...] = tuple(features)
        self.label = label
        self._table = pd.DataFrame(
            {
                "lon":  [f.lon for f in self.features],
                "lat":  [f.lat for f in self.features],
                "crop": [f.crop.value if f.crop is not None else None for f in self.features],
                **{f"has_{name}": [f.has(name) for f in self.features] for name in REQUIRABLE_FIELDS},
            }
        )

    def __len__(self) -> int:
        return len(self.features)

    @property
    def empty(self) -> bool:
        return not self.features

    def nearest(self, crop, lon: float, lat: float, require: tuple[str, ...] = ()) -> PointFeature | None:
        """
        Closest feature to (lon, lat) for `crop`, or None if no feature qualifies.

        Parameters
        ----------
        crop : Crop or str
            Query crop; features of other crops are used only when none match.
        require : tuple of str
            Names from REQUIRABLE_FIELDS that a candidate must carry.
        """
        if self.empty:
            return None
        crop_key = Crop.parse(crop).value
        table = self._table
        mask = np.ones(len(table), dtype=bool)
        for name in require:
            if name not in REQUIRABLE_FIELDS:
                raise ValueError(f"Cannot require {name!r}; expected one of {REQUIRABLE_FIELDS}")
            mask &= table[f"has_{name}"].to_numpy(dtype=bool)

        candidates = table[mask]
        matched = candidates[candidates["crop"] == crop_key]
        if matched.empty:
            matched = candidates
        if matched.empty:
            return None

        d2 = (matched["lon"].to_numpy() - lon) ** 2 + (matched["lat"].to_numpy() - lat) ** 2
        pos = int(np.argmin(d2))          # first minimum wins
        return self.features[int(matched.index[pos])]


def nearest(features, crop, lon: float, lat: float) -> PointFeature | None:
    """One-off query over a plain feature list (see NearestFeatureIndex.nearest)."""
    return NearestFeatureIndex(features).nearest(crop, lon, lat)
