"""
Streamlit UI for the Rice/Wheat Fertilizer Advisor.
Home: crop, target yield, location, optional sowing date and soil test → "Calculate plan".
Results: per-stage fertilizer products, nutrient balance, soil provenance, guidance, and
(optionally) live-weather timing advice. Light agricultural theme.
Run with: streamlit run app.py
"""

import sys
from datetime import date
from pathlib import Path

import pandas as pd
import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))

from fertiplan.config import CITY_COORDS, DEFAULT_LON, DEFAULT_LAT, LON_RANGE, LAT_RANGE, ensure_dirs
from fertiplan.advisor import recommend_fertilizer, recommend_timing
from fertiplan.geodata_loader import get_geospatial_context
from fertiplan.validation import ValidationError
from fertiplan.weather_fetcher import get_weather_snapshot

CROP_OPTIONS = {"Rice (水稻)": "rice", "Wheat (小麦)": "wheat"}
PRODUCT_LABELS = {
    "urea": "Urea (46% N)",
    "superphosphate": "Superphosphate (12% P)",
    "potassium_chloride": "Potassium chloride (60% K)",
}
SOURCE_TEXT = {
    "raster": "Soil survey raster",
    "simulated": "Regional estimate (simulated)",
    "manual": "Entered manually",
    "default": "Crop default",
    "geofeature": "Regional survey point",
}


# ---------------------------------------------------------------------------
# Table builders
# ---------------------------------------------------------------------------

def build_stage_df(plan: dict) -> pd.DataFrame:
    """One row per stage, one column per product (kg/mu)."""
    rows = []
    for stage, products in plan["fertilizer_usage"].items():
        row = {"Stage": stage.capitalize(), "When": plan["stage_timing"].get(stage, "")}
        for product, label in PRODUCT_LABELS.items():
            row[label] = products.get(product, 0.0)
        rows.append(row)
    return pd.DataFrame(rows)


def build_balance_df(plan: dict) -> pd.DataFrame:
    cp = plan["calc_params"]
    return pd.DataFrame({
        "Crop demand":          cp["nutrient_demand"],
        "Soil supply":          cp["soil_supply"],
        "Straw supply":         cp["straw_supply"],
        "Efficiency (%)":       cp["fertilizer_efficiency_pct"],
        "Fertilizer nutrient":  cp["fertilizer_nutrients"],
    }).rename_axis("Nutrient")


def build_soil_df(plan: dict) -> pd.DataFrame:
    cp = plan["calc_params"]
    return pd.DataFrame({
        "mg/kg":  cp["soil_nutrients"],
        "Level":  cp["nutrient_levels"],
        "Source": {n: SOURCE_TEXT.get(s, s) for n, s in cp["data_source"].items()},
    }).rename_axis("Nutrient")


def apply_theme():
    st.markdown("""
    <style>
    .stApp { background: linear-gradient(180deg, #f6faf3 0%, #eef5e9 100%); }
    h1, h2, h3 { color: #2d5a2d !important; }
    .stButton > button { background: #2d5a2d !important; color: white !important; border-radius: 8px; }
    .stButton > button:hover { background: #3d7a3d !important; }
    </style>
    """, unsafe_allow_html=True)


# ---------------------------------------------------------------------------
# Main app
# ---------------------------------------------------------------------------

def main():
    st.set_page_config(page_title="Rice/Wheat Fertilizer Advisor", page_icon="🌾", layout="wide")
    apply_theme()
    ensure_dirs()

    st.title("🌾 Rice/Wheat Fertilizer Advisor")
    st.caption("Nutrient-balance fertilizer plan • kg per mu • Middle/lower Yangtze rice-wheat rotation")

    st.header("Field and target")
    col1, col2, col3 = st.columns(3)
    with col1:
        crop_label = st.selectbox("Crop", list(CROP_OPTIONS))
        target_yield = st.number_input("Target yield (kg/mu)", min_value=1.0, max_value=1000.0, value=500.0, step=10.0)
    with col2:
        city = st.selectbox("Nearest city", ["Custom"] + list(CITY_COORDS))
        lon0, lat0 = CITY_COORDS.get(city, (DEFAULT_LON, DEFAULT_LAT))
        lon = st.number_input("Longitude", min_value=LON_RANGE[0], max_value=LON_RANGE[1], value=lon0, format="%.3f")
        lat = st.number_input("Latitude", min_value=LAT_RANGE[0], max_value=LAT_RANGE[1], value=lat0, format="%.3f")
    with col3:
        use_sowing = st.checkbox("I know the sowing date")
        sowing = st.date_input("Sowing date", value=date.today(), disabled=not use_sowing)
        fetch_weather = st.checkbox("Fetch live weather for timing advice", value=True)

    with st.expander("Soil test (optional)"):
        s1, s2, s3 = st.columns(3)
        soil_n = s1.number_input("Alkali-hydrolysable N (mg/kg)", min_value=0.0, max_value=300.0, value=None)
        soil_p = s2.number_input("Available P (mg/kg)", min_value=0.0, max_value=100.0, value=None)
        soil_k = s3.number_input("Available K (mg/kg)", min_value=0.0, max_value=500.0, value=None)

    payload = {
        "crop_type": CROP_OPTIONS[crop_label],
        "target_yield": target_yield,
        "lon": lon,
        "lat": lat,
        "sowing_date": sowing.isoformat() if use_sowing else None,
        "custom_soil": {"N": soil_n, "P": soil_p, "K": soil_k},
    }

    st.divider()
    if st.button("Calculate plan", type="primary", use_container_width=True):
        with st.spinner("Computing fertilizer plan..."):
            try:
                st.session_state["plan"] = recommend_fertilizer(payload)
            except ValidationError as exc:
                st.error(f"Invalid input, {exc.field}: {exc.reason}")
                st.stop()
            weather = get_weather_snapshot(lon, lat) if fetch_weather else None
            if fetch_weather and weather is None:
                st.warning("Weather service unavailable; timing advice ignores weather.")
            st.session_state["timing"] = recommend_timing(payload["crop_type"], payload["sowing_date"], weather)

    plan = st.session_state.get("plan")
    if plan is None:
        st.info("Enter the field details, then click **Calculate plan**.")
        _render_sidebar()
        return

    st.subheader("Fertilizer plan (kg/mu)")
    st.dataframe(build_stage_df(plan), use_container_width=True, hide_index=True)
    totals = plan["product_totals"]
    m1, m2, m3 = st.columns(3)
    m1.metric("Urea total", f"{totals['urea']} kg")
    m2.metric("Superphosphate total", f"{totals['superphosphate']} kg")
    m3.metric("Potassium chloride total", f"{totals['potassium_chloride']} kg")

    if "compound_reference" in plan:
        ref = plan["compound_reference"]
        st.caption(
            f"Yield-tier reference: {ref['formula_kg']} kg compound fertilizer ({ref['formula_ratio']}) "
            f"as base + {ref['jointing_urea_kg']} kg urea at jointing."
        )

    c1, c2 = st.columns(2)
    with c1:
        st.markdown("**Nutrient balance (kg/mu)**")
        st.dataframe(build_balance_df(plan), use_container_width=True)
        st.markdown("**Nitrogen split (%)**")
        st.bar_chart(pd.Series(plan["split_ratios_pct"], name="%"))
    with c2:
        st.markdown("**Soil nutrients**")
        st.dataframe(build_soil_df(plan), use_container_width=True)
        cp = plan["calc_params"]
        st.caption(
            f"Sowing date used: {cp['recommended_sowing_date']} "
            f"(regional window {cp['recommended_sowing_date_start']} – {cp['recommended_sowing_date_end']})"
        )

    st.subheader("Guidance")
    for line in plan["guidance"]:
        st.markdown(f"- {line}")

    timing = st.session_state.get("timing")
    if timing:
        st.divider()
        st.subheader("Application timing")
        stage = timing["growth_stage"]
        advice = timing["advice"]
        t1, t2, t3 = st.columns(3)
        t1.metric("Growth stage", stage["name"])
        t2.metric("Weather risk", timing["weather"]["level"].capitalize())
        t3.metric("Fertilize now?", "Yes" if advice["can_fertilize"] else "No")
        st.caption(stage["description"])
        for line in advice["best_timing"] + advice["general_advice"]:
            st.info(line)
        for alert in timing["weather"]["alerts"]:
            icon = {"high": "🔴", "medium": "🟡", "low": "🟢"}.get(alert["level"], "⚪")
            st.markdown(f"{icon} **{alert['title']}**: {alert['message']}")
            for d in alert["details"]:
                st.caption(d)

    if st.button("Start new calculation"):
        st.session_state.pop("plan", None)
        st.session_state.pop("timing", None)
        st.rerun()

    _render_sidebar()


def _render_sidebar():
    sb = st.sidebar
    sb.markdown("**Data available to the engine**")
    status = get_geospatial_context().status()
    for nutrient, present in status["rasters"].items():
        sb.caption(f"{nutrient} raster: {'loaded' if present else 'missing (regional estimate used)'}")
    sb.caption(f"Efficiency points: {status['efficiency_points']}")
    sb.caption(f"Sowing-window points: {status['sowing_points']}")
    sb.divider()
    sb.caption("Rice/Wheat Fertilizer Advisor")


if __name__ == "__main__":
    main()
