"""
Configuration and constants for the Rice/Wheat Fertilizer Advisor.
Centralizes paths, data file names, decode constants, request ranges,
agronomic defaults and the weather-lookup city table.
"""

from pathlib import Path

# ---------------------------------------------------------------------------
# Base paths (project root = parent of 'fertiplan')
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR     = PROJECT_ROOT / "data"
RASTER_DIR   = DATA_DIR / "raster"
FEATURE_DIR  = DATA_DIR / "geojson"

# ---------------------------------------------------------------------------
# Data file names (place files in data/raster/ and data/geojson/)
# If files are absent the engine falls back to simulated soil values and
# crop-default fertilizer efficiencies.
#
# Expected contents:
#   AN/AP/AK GeoTIFFs     : single band, 1 km grid, values stored as
#                           concentration (mg/kg) x per-layer scale factor
#   fertilizer efficiency : Point features with crop, nitrogen_efficiency,
#                           phosphorus_efficiency, potassium_efficiency ("30-35%")
#   farming schedule      : Point features with crop, planting_time ("5月20日-6月10日")
# ---------------------------------------------------------------------------
RASTER_FNAMES: dict[str, str] = {
    "N": "AN_5-15cm_1km_clip.tif",   # alkali-hydrolysable nitrogen
    "P": "AP_5-15cm_1km_clip.tif",   # available phosphorus
    "K": "AK_5-15cm_1km_clip.tif",   # available potassium
}
EFFICIENCY_FNAME       = "fertilizer_efficiency.geojson"
FARMING_SCHEDULE_FNAME = "farming_schedule.geojson"

# ---------------------------------------------------------------------------
# Raster decode constants
# ---------------------------------------------------------------------------
RASTER_SCALE_FACTORS: dict[str, float] = {"N": 10.0, "P": 100.0, "K": 10.0}
NODATA_SENTINELS = (-9999.0, -32768.0)
NODATA_MIN = -9999.0     # anything below is NODATA
NODATA_MAX = 100000.0    # anything above is NODATA

# ---------------------------------------------------------------------------
# Request validity window and input ranges
# The window reflects the deployment region (middle/lower Yangtze), not a raster bound.
# ---------------------------------------------------------------------------
LON_RANGE          = (110.0, 122.0)
LAT_RANGE          = (28.0, 33.0)
TARGET_YIELD_RANGE = (1.0, 1000.0)                                  # kg/mu
CUSTOM_SOIL_RANGES: dict[str, tuple[float, float]] = {
    "N": (0.0, 300.0),
    "P": (0.0, 100.0),
    "K": (0.0, 500.0),
}
ORGANIC_MATTER_RANGE = (0.0, 200.0)     # g/kg
SOIL_PH_RANGE        = (3.0, 10.0)
STRAW_RETURN_RANGE   = (0.0, 5000.0)    # kg/mu
TEMPERATURE_RANGE    = (-40.0, 50.0)    # °C

# ---------------------------------------------------------------------------
# Agronomic defaults
# ---------------------------------------------------------------------------
DEFAULT_ORGANIC_MATTER = 20.7    # g/kg
DEFAULT_SOIL_PH        = 8.18
DEFAULT_LON            = 114.305
DEFAULT_LAT            = 30.592
SOIL_CONVERSION_FACTOR = 0.15    # mg/kg soil test -> kg/mu plough layer supply
SOIL_VALUE_FLOOR       = 0.1     # soil values reaching the balance are >= this
STRAW_ADDITIONAL_N_RATE = 0.005  # residual N per kg dry straw, base dressing only

RANDOM_STATE = 42

# ---------------------------------------------------------------------------
# Weather lookup: city table used to name the nearest forecast location
# ---------------------------------------------------------------------------
CITY_COORDS: dict[str, tuple[float, float]] = {
    "南京": (118.763, 32.057),
    "武汉": (114.305, 30.592),
    "长沙": (112.938, 28.228),
    "南昌": (115.858, 28.676),
    "杭州": (120.153, 30.267),
    "上海": (121.473, 31.230),
    "合肥": (117.283, 31.861),
}
FORECAST_DAYS = 7


# ---------------------------------------------------------------------------
# Ensure data directories exist (called when the app starts)
# ---------------------------------------------------------------------------
def ensure_dirs():
    RASTER_DIR.mkdir(parents=True, exist_ok=True)
    FEATURE_DIR.mkdir(parents=True, exist_ok=True)
