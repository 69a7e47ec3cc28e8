"""Block group subindex dashboard (Streamlit + Plotly).

Run with:
    streamlit run app.py
"""

from __future__ import annotations

import logging
from pathlib import Path
import sys

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

# Ensure local modules are importable even if Streamlit changes cwd.
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config import (
    ACTIVE_CITIES,
    CITIES,
    CITY_COORDINATES,
    COMPARE_TITLE,
    DEFAULT_CITY,
    DEFAULT_COORDINATES,
    DEFAULT_WEIGHTS,
    DEFAULT_YEAR_AFTER,
    DEFAULT_YEAR_BEFORE,
    DEFAULT_ZOOM,
    MAIN_TITLE,
    MAP_HEIGHT,
    METRICS,
    NO_DATA_MESSAGE,
    WEIGHT_MAX,
    WEIGHT_MIN,
    WEIGHT_STEP,
    YEARS,
)
from data_loader import download_links, load_comparison, load_snapshot
from metrics import (
    COMPOSITE_SCORE,
    GEOID,
    PERCENT_DIFF,
    bucket_color_map,
    composite_bucket,
    diff_bucket,
    feature_style,
    features_to_frame,
    format_pct,
    format_score,
    highlight_style,
    summarize_collection,
)
from view_state import CompareView, MapView, accept_result, is_stale, update_view

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")

st.set_page_config(
    page_title=MAIN_TITLE,
    layout="wide",
    page_icon="🗺️",
)


# --- Shared widgets ------------------------------------------------------------


def weight_sliders(prefix: str) -> dict[str, float]:
    """Four subindex weight sliders in a 2x2 grid."""
    st.markdown("**Subindex weights**")
    weights = {}
    slider_cols = st.columns(2)
    for i, metric in enumerate(METRICS):
        with slider_cols[i % 2]:
            weights[metric] = st.slider(
                f"Weight: {metric}",
                min_value=WEIGHT_MIN,
                max_value=WEIGHT_MAX,
                value=DEFAULT_WEIGHTS[metric],
                step=WEIGHT_STEP,
                key=f"{prefix}_w_{metric}",
            )
    if sum(weights.values()) == 0:
        st.warning("All weights are zero; raise at least one to compute a composite score.")
    return weights


def load_for_view(view, state_key: str, loader):
    """Reload only when the view generation moved; keep the result in session state."""
    result = st.session_state.get(f"{state_key}_result")
    if is_stale(view, result):
        with st.spinner("Loading map data..."):
            result = loader(view)
        st.session_state[f"{state_key}_result"] = result
    st.session_state[f"{state_key}_view"] = view
    return accept_result(view, result)


def build_choropleth(
    collection: dict,
    frame: pd.DataFrame,
    kind: str,
    city: str,
    hover_data: dict,
    highlight_geoid: str | None = None,
    value_col: str = COMPOSITE_SCORE,
):
    """Choropleth of block groups colored by bucket, optionally outlining one feature."""
    bucket_fn = diff_bucket if kind == "diff" else composite_bucket
    color_map = bucket_color_map(kind)
    frame = frame.copy()
    frame["Bucket"] = [bucket_fn(v)[0] for v in frame[value_col]]
    lat, lon = CITY_COORDINATES.get(city, DEFAULT_COORDINATES)
    base_style = feature_style(0, kind)

    fig = px.choropleth_map(
        frame,
        geojson=collection,
        locations=GEOID,
        featureidkey=f"properties.{GEOID}",
        color="Bucket",
        color_discrete_map=color_map,
        category_orders={"Bucket": list(color_map)},
        hover_data=hover_data,
        center={"lat": lat, "lon": lon},
        zoom=DEFAULT_ZOOM,
        map_style="open-street-map",
        opacity=base_style["fillOpacity"],
        height=MAP_HEIGHT,
    )
    fig.update_traces(
        marker_line_color=base_style["color"],
        marker_line_width=base_style["weight"],
    )

    if highlight_geoid is not None:
        picked = frame[frame[GEOID].astype(str) == highlight_geoid]
        if not picked.empty:
            style = highlight_style(picked.iloc[0][value_col], kind)
            fig.add_trace(
                go.Choroplethmap(
                    geojson=collection,
                    locations=picked[GEOID].tolist(),
                    featureidkey=f"properties.{GEOID}",
                    z=[0] * len(picked),
                    colorscale=[[0, style["fillColor"]], [1, style["fillColor"]]],
                    showscale=False,
                    marker_opacity=style["fillOpacity"],
                    marker_line_color=style["color"],
                    marker_line_width=style["weight"],
                    hoverinfo="skip",
                    name="Highlighted",
                )
            )

    fig.update_layout(
        margin=dict(l=0, r=0, t=0, b=0),
        legend_title="",
    )
    return fig


def highlight_picker(frame: pd.DataFrame, key: str) -> str | None:
    options = ["(none)"] + sorted(frame[GEOID].dropna().astype(str).unique())
    choice = st.selectbox("Highlight block group", options=options, key=key)
    return None if choice == "(none)" else choice


# --- Pages ---------------------------------------------------------------------


def render_main() -> None:
    st.title(MAIN_TITLE)
    st.caption(
        "Weighted composite of the IDI, LDI, PDI and CDI subindices for each census block group. "
        "Adjust the weights to re-blend the map."
    )

    controls_col, map_col = st.columns([1, 3])
    with controls_col:
        city = st.selectbox(
            "City",
            options=list(ACTIVE_CITIES),
            format_func=lambda c: CITIES.get(c, c),
            key="main_city",
        )
        reserved = [CITIES[c] for c in CITIES if c not in ACTIVE_CITIES]
        if reserved:
            st.caption(f"Coming soon: {', '.join(reserved)}")
        year = st.selectbox("Year", options=list(YEARS), key="main_year")
        weights = weight_sliders("main")

    view = update_view(
        st.session_state.get("main_view", MapView()),
        city=city,
        year=year,
        weights=weights,
    )
    data = load_for_view(view, "main", load_snapshot)

    with map_col:
        if data is None:
            st.info(NO_DATA_MESSAGE)
        else:
            frame = features_to_frame(data, [COMPOSITE_SCORE, *METRICS])
            summary = summarize_collection(data, COMPOSITE_SCORE)
            kpi_cols = st.columns(3)
            kpi_cols[0].metric("# Block groups", f"{summary['count']:,}")
            kpi_cols[1].metric("Median composite score", format_score(summary["median"]))
            kpi_cols[2].metric("Highest scoring block group", summary["top_geoid"] or "N/A")

            highlight = highlight_picker(frame, "main_highlight")
            display = frame.rename(columns={COMPOSITE_SCORE: "Composite Score"})
            hover_data = {GEOID: True, "Composite Score": ":.2f", "Bucket": False}
            hover_data.update({metric: ":.2f" for metric in METRICS})
            fig_map = build_choropleth(
                data,
                display,
                kind="composite",
                city=view.city,
                hover_data=hover_data,
                highlight_geoid=highlight,
                value_col="Composite Score",
            )
            st.plotly_chart(fig_map, width="stretch")

    st.markdown("### Download data")
    dl_cols = st.columns([2, 1, 1])
    statistic = dl_cols[0].selectbox("Statistic", options=list(METRICS), key="download_metric")
    links = download_links(view.city, statistic, view.year)
    dl_cols[1].link_button("Download CSV", links["csv"])
    dl_cols[2].link_button("Download GeoJSON", links["geojson"])


def render_compare() -> None:
    st.title(COMPARE_TITLE)
    city = DEFAULT_CITY

    controls_col, map_col = st.columns([1, 3])
    with controls_col:
        st.markdown("**Compare**")
        st.markdown(f"#### {CITIES[city]}")
        st.caption("(more cities to come)")
        year_before = st.selectbox(
            "Before Year",
            options=list(YEARS),
            index=list(YEARS).index(DEFAULT_YEAR_BEFORE),
            key="compare_year_before",
        )
        year_after = st.selectbox(
            "After Year",
            options=list(YEARS),
            index=list(YEARS).index(DEFAULT_YEAR_AFTER),
            key="compare_year_after",
        )
        weights = weight_sliders("compare")

    view = update_view(
        st.session_state.get("compare_view", CompareView()),
        city=city,
        year_before=year_before,
        year_after=year_after,
        weights=weights,
    )
    data = load_for_view(view, "compare", load_comparison)

    with map_col:
        if data is None:
            st.info(NO_DATA_MESSAGE)
            return

        frame = features_to_frame(data, [PERCENT_DIFF])
        summary = summarize_collection(data, PERCENT_DIFF)
        kpi_cols = st.columns(5)
        kpi_cols[0].metric("# Block groups", f"{summary['count']:,}")
        kpi_cols[1].metric("Median % change", format_pct(summary["median"]))
        kpi_cols[2].metric("Improved", f"{summary['increased']:,}")
        kpi_cols[3].metric("Declined", f"{summary['decreased']:,}")
        kpi_cols[4].metric("Unchanged", f"{summary['unchanged']:,}")

        highlight = highlight_picker(frame, "compare_highlight")
        display = frame.rename(columns={PERCENT_DIFF: "% Change"})
        fig_map = build_choropleth(
            data,
            display,
            kind="diff",
            city=view.city,
            hover_data={GEOID: True, "% Change": ":.2f", "Bucket": False},
            highlight_geoid=highlight,
            value_col="% Change",
        )
        st.plotly_chart(fig_map, width="stretch")
        st.caption(
            f"Percent change in composite score, {view.year_before} to {view.year_after}. "
            "Block groups with a zero baseline are reported as no change."
        )


# --- Navigation ----------------------------------------------------------------
st.sidebar.title("Navigation")
page = st.sidebar.radio("View", options=["Main", "City Compare"], label_visibility="collapsed")

if page == "City Compare":
    render_compare()
else:
    render_main()

st.caption("Data: block group subindex layers (IDI, LDI, PDI, CDI), public S3 bucket.")
