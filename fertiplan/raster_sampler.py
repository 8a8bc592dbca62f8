"""
Point lookup into soil-nutrient raster layers.

A layer is a row-major grid covering a geographic bounding box:
    col = floor((lon - minX) / cellWidth)
    row = floor((maxY - lat) / cellHeight)      # row 0 = northernmost
    value = samples[row * width + col]

Lookups are nearest-cell (no interpolation). Stored values are the true
concentration multiplied by a per-layer scale factor; decode_sample()
recovers mg/kg before level classification.
"""

import math
from dataclasses import dataclass

import numpy as np

from fertiplan.config import NODATA_SENTINELS, NODATA_MIN, NODATA_MAX
from fertiplan.numeric import round_half_up


@dataclass(frozen=True, eq=False)
class RasterLayer:
    width: int
    height: int
    bbox: tuple[float, float, float, float]    # (minX, minY, maxX, maxY), degrees
    samples: np.ndarray                        # flat, length width * height
    name: str = ""

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=float).ravel()
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Raster {self.name!r} must have positive size, got {self.width}x{self.height}")
        if samples.size != self.width * self.height:
            raise ValueError(
                f"Raster {self.name!r} has {samples.size} samples, expected {self.width * self.height}"
            )
        if self.cell_width <= 0 or self.cell_height <= 0:
            raise ValueError(f"Raster {self.name!r} has a degenerate bounding box: {self.bbox}")

    @property
    def cell_width(self) -> float:
        min_x, _, max_x, _ = self.bbox
        return (max_x - min_x) / self.width

    @property
    def cell_height(self) -> float:
        _, min_y, _, max_y = self.bbox
        return (max_y - min_y) / self.height

    @classmethod
    def from_grid(cls, grid, bbox, name: str = "") -> "RasterLayer":
        """Build a layer from a 2-D (rows x cols) array, row 0 northernmost."""
        arr = np.asarray(grid, dtype=float)
        if arr.ndim != 2:
            raise ValueError(f"Expected a 2-D grid, got shape {arr.shape}")
        height, width = arr.shape
        return cls(width=width, height=height, bbox=tuple(float(v) for v in bbox), samples=arr.ravel(), name=name)


def is_nodata(value) -> bool:
    """True for null/NaN, out-of-range values and the -9999 / -32768 sentinels."""
    if value is None:
        return True
    v = float(value)
    if math.isnan(v):
        return True
    return v < NODATA_MIN or v > NODATA_MAX or v in NODATA_SENTINELS


def pixel_index(layer: RasterLayer, lon: float, lat: float) -> tuple[int, int] | None:
    """Return (col, row) of the cell containing (lon, lat), or None outside the grid."""
    min_x, min_y, max_x, max_y = layer.bbox
    if lon < min_x or lon > max_x or lat < min_y or lat > max_y:
        return None
    col = math.floor((lon - min_x) / layer.cell_width)
    row = math.floor((max_y - lat) / layer.cell_height)
    # lon == maxX / lat == minY floor to width / height
    if not (0 <= col < layer.width and 0 <= row < layer.height):
        return None
    return col, row


def sample(layer: RasterLayer, lon: float, lat: float) -> float | None:
    """
    Raw stored value at (lon, lat).

    Returns None (NODATA) when the point is outside the layer's bounding box,
    maps to an out-of-range pixel, or the stored value is a NODATA marker.
    """
    idx = pixel_index(layer, lon, lat)
    if idx is None:
        return None
    col, row = idx
    value = layer.samples[row * layer.width + col]
    if is_nodata(value):
        return None
    return float(value)


def pixel_to_coord(layer: RasterLayer, col: int, row: int) -> tuple[float, float]:
    """Geographic (lon, lat) of the centre of pixel (col, row)."""
    if not (0 <= col < layer.width and 0 <= row < layer.height):
        raise ValueError(f"Pixel ({col}, {row}) outside {layer.width}x{layer.height} grid")
    min_x, _, _, max_y = layer.bbox
    lon = min_x + (col + 0.5) * layer.cell_width
    lat = max_y - (row + 0.5) * layer.cell_height
    return lon, lat


def decode_sample(raw: float, scale: float) -> float:
    """Stored integer-coded value -> concentration (mg/kg)."""
    return round_half_up(raw, 0) / scale


def sample_decoded(layer: RasterLayer, lon: float, lat: float, scale: float) -> float | None:
    raw = sample(layer, lon, lat)
    if raw is None:
        return None
    return decode_sample(raw, scale)
