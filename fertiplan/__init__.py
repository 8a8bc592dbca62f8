"""
Rice/Wheat Fertilizer Advisor: soil-crop nutrient balance and timing engine.
"""

from fertiplan.config import (
    PROJECT_ROOT,
    DATA_DIR,
    RASTER_DIR,
    FEATURE_DIR,
    RANDOM_STATE,
    ensure_dirs,
)
from fertiplan.crop_params import Crop

__all__ = [
    "PROJECT_ROOT",
    "DATA_DIR",
    "RASTER_DIR",
    "FEATURE_DIR",
    "RANDOM_STATE",
    "Crop",
    "ensure_dirs",
]
