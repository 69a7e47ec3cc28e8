"""Computation helpers for the block group subindex dashboard."""

from __future__ import annotations

import math
from typing import Any, Mapping, Sequence

import numpy as np
import pandas as pd

from config import (
    BASE_STYLE,
    COMPOSITE_COLOR_STEPS,
    COMPOSITE_FLOOR_COLOR,
    DIFF_FLOOR_COLOR,
    DIFF_GAIN_STEPS,
    DIFF_LOSS_STEPS,
    HIGHLIGHT_STYLE,
    NO_CHANGE_COLOR,
)

GEOID = "GEOID"
COMPOSITE_SCORE = "compositeScore"
PERCENT_DIFF = "percentDiff"


def _geoid(properties: Mapping[str, Any]) -> str | None:
    """Return the feature's GEOID as a string, or None when it is missing/blank."""
    value = properties.get(GEOID)
    if value is None or value == "":
        return None
    return str(value)


def _parse_float(value: Any) -> float | None:
    """Parse a property value as a float; None for missing or non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(parsed) else parsed


def total_weight(weights: Mapping[str, float]) -> float:
    """Sum of all weights, used to normalize the composite score."""
    values = [float(w) for w in weights.values()]
    negative = [name for name, w in zip(weights, values) if w < 0]
    if negative:
        raise ValueError(f"Weights must be non-negative, got negative weights for {negative}")
    return float(sum(values))


def metric_lookup(collection: Mapping[str, Any], metric: str) -> pd.Series:
    """Map GEOID -> parsed metric value for one layer.

    Features without a GEOID are skipped; missing or non-numeric values become 0.
    If a GEOID repeats, the last feature wins.
    """
    records = []
    for feature in collection.get("features", []):
        properties = feature.get("properties") or {}
        geoid = _geoid(properties)
        if geoid is None:
            continue
        value = _parse_float(properties.get(metric))
        records.append((geoid, 0.0 if value is None else value))

    lookup = pd.Series(
        [value for _, value in records],
        index=pd.Index([geoid for geoid, _ in records], dtype=object),
        dtype=float,
    )
    return lookup[~lookup.index.duplicated(keep="last")]


def compute_composite_scores(
    collections: Sequence[Mapping[str, Any]],
    metrics: Sequence[str],
    weights: Mapping[str, float],
    keep_metric_values: bool = False,
) -> dict | None:
    """Blend per-metric layers into one collection carrying ``compositeScore``.

    The first collection is authoritative: its features, order and geometry are
    kept, and GEOIDs that only appear in other layers are ignored. A GEOID missing
    from a layer contributes 0 for that metric. Returns None when there is nothing
    to score or when the weights sum to zero.
    """
    if not collections:
        return None
    if len(collections) != len(metrics):
        raise ValueError(
            f"Expected one collection per metric, got {len(collections)} collections "
            f"for {len(metrics)} metrics"
        )

    weight_sum = total_weight(weights)
    if weight_sum == 0:
        return None

    base = collections[0]
    base_features = base.get("features", [])
    keys = [_geoid(feature.get("properties") or {}) for feature in base_features]

    # One column per metric, aligned to the base feature order.
    values = np.column_stack(
        [
            metric_lookup(collection, metric).reindex(keys).fillna(0.0).to_numpy(dtype=float)
            for collection, metric in zip(collections, metrics)
        ]
    ).reshape(len(base_features), len(metrics))
    metric_weights = np.array([float(weights.get(metric, 0)) for metric in metrics])
    scores = values @ metric_weights / weight_sum

    scored_features = []
    for row, feature in enumerate(base_features):
        properties = dict(feature.get("properties") or {})
        properties[COMPOSITE_SCORE] = float(scores[row])
        if keep_metric_values:
            # Individual values are shown next to the composite in tooltips.
            for col, metric in enumerate(metrics):
                properties[metric] = float(values[row, col])
        scored_features.append({**feature, "properties": properties})

    return {**base, "features": scored_features}


def percent_change(before: Any, after: Any) -> float:
    """Percent change between two composite scores, rounded to 2 decimals.

    Unparseable values and a zero baseline both report 0.0, including an
    increase from zero.
    """
    before_val = _parse_float(before)
    after_val = _parse_float(after)
    if before_val is None or after_val is None:
        return 0.0
    if before_val == 0:
        return 0.0
    return round((after_val - before_val) / before_val * 100, 2)


def compute_percent_diff(
    before: Mapping[str, Any] | None,
    after: Mapping[str, Any] | None,
) -> dict | None:
    """Attach ``percentDiff`` to each feature of ``after`` relative to ``before``.

    Features are matched by GEOID; ordering and geometry come from ``after``.
    A feature with no counterpart in ``before`` gets 0.
    """
    if before is None or after is None:
        return None

    before_scores: dict[str, Any] = {}
    for feature in before.get("features", []):
        properties = feature.get("properties") or {}
        geoid = _geoid(properties)
        if geoid is not None:
            before_scores[geoid] = properties.get(COMPOSITE_SCORE)

    diff_features = []
    for feature in after.get("features", []):
        properties = dict(feature.get("properties") or {})
        geoid = _geoid(properties)
        if geoid is None or geoid not in before_scores:
            properties[PERCENT_DIFF] = 0.0
        else:
            properties[PERCENT_DIFF] = percent_change(
                before_scores[geoid], properties.get(COMPOSITE_SCORE)
            )
        diff_features.append({**feature, "properties": properties})

    return {**after, "features": diff_features}


# --- Color buckets & styles ----------------------------------------------------


def _step_label(bound: float, suffix: str) -> str:
    return f"> {bound:g}{suffix}"


COMPOSITE_BUCKETS = [(_step_label(bound, ""), color) for bound, color in COMPOSITE_COLOR_STEPS] + [
    (f"<= {COMPOSITE_COLOR_STEPS[-1][0]:g}", COMPOSITE_FLOOR_COLOR)
]
DIFF_BUCKETS = (
    [(_step_label(bound, "%"), color) for bound, color in DIFF_GAIN_STEPS]
    + [("No change", NO_CHANGE_COLOR)]
    + [(_step_label(bound, "%"), color) for bound, color in DIFF_LOSS_STEPS]
    + [(f"<= {DIFF_LOSS_STEPS[-1][0]:g}%", DIFF_FLOOR_COLOR)]
)


def composite_bucket(value: Any) -> tuple[str, str]:
    """Return (legend label, fill color) for a composite score; missing counts as 0."""
    score = _parse_float(value) or 0.0
    for (bound, _), bucket in zip(COMPOSITE_COLOR_STEPS, COMPOSITE_BUCKETS):
        if score > bound:
            return bucket
    return COMPOSITE_BUCKETS[-1]


def diff_bucket(value: Any) -> tuple[str, str]:
    """Return (legend label, fill color) for a percent change; missing counts as 0."""
    pct = _parse_float(value) or 0.0
    gains = len(DIFF_GAIN_STEPS)
    for (bound, _), bucket in zip(DIFF_GAIN_STEPS, DIFF_BUCKETS[:gains]):
        if pct > bound:
            return bucket
    if pct == 0:
        return DIFF_BUCKETS[gains]
    for (bound, _), bucket in zip(DIFF_LOSS_STEPS, DIFF_BUCKETS[gains + 1 :]):
        if pct > bound:
            return bucket
    return DIFF_BUCKETS[-1]


def bucket_color_map(kind: str) -> dict[str, str]:
    """Legend label -> color for ``"composite"`` or ``"diff"``, in legend order."""
    buckets = DIFF_BUCKETS if kind == "diff" else COMPOSITE_BUCKETS
    return dict(buckets)


def feature_style(value: Any, kind: str = "composite") -> dict:
    """Resting style for a block group polygon."""
    bucket = diff_bucket(value) if kind == "diff" else composite_bucket(value)
    return {**BASE_STYLE, "fillColor": bucket[1]}


def highlight_style(value: Any, kind: str = "composite") -> dict:
    """Style for the block group under the pointer (or picked by the user)."""
    return {**feature_style(value, kind), **HIGHLIGHT_STYLE}


# --- Display helpers -------------------------------------------------------------


def features_to_frame(collection: Mapping[str, Any], columns: Sequence[str]) -> pd.DataFrame:
    """Flatten feature properties into a dataframe for plotting/tooltips.

    The GEOID column keeps the raw property value so it still matches the
    geometry's ``properties.GEOID`` on the map.
    """
    rows = []
    for feature in collection.get("features", []):
        properties = feature.get("properties") or {}
        row = {GEOID: properties.get(GEOID)}
        for col in columns:
            row[col] = properties.get(col)
        rows.append(row)
    df = pd.DataFrame(rows, columns=[GEOID, *columns])
    for col in columns:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def _safe_median(series: pd.Series) -> float | None:
    """Return median or None if the series is empty/NaN."""
    if series.empty:
        return None
    val = pd.to_numeric(series, errors="coerce").median()
    return None if pd.isna(val) else float(val)


def summarize_collection(collection: Mapping[str, Any] | None, column: str) -> dict:
    """Collect headline numbers for one scored collection."""
    summary: dict[str, float | int | str | None] = {
        "count": 0,
        "median": None,
        "min": None,
        "max": None,
        "top_geoid": None,
        "increased": 0,
        "decreased": 0,
        "unchanged": 0,
    }
    if not collection:
        return summary

    df = features_to_frame(collection, [column])
    summary["count"] = int(len(df))
    values = df[column].dropna()
    if values.empty:
        return summary

    summary["median"] = _safe_median(values)
    summary["min"] = float(values.min())
    summary["max"] = float(values.max())
    summary["top_geoid"] = str(df.loc[values.idxmax(), GEOID])
    summary["increased"] = int((values > 0).sum())
    summary["decreased"] = int((values < 0).sum())
    summary["unchanged"] = int((values == 0).sum())
    return summary


def format_score(value: float | None, digits: int = 2) -> str:
    """Human-friendly score formatting."""
    if value is None or pd.isna(value):
        return "N/A"
    return f"{value:.{digits}f}"


def format_pct(value: float | None, digits: int = 2) -> str:
    """Human-friendly percentage formatting."""
    if value is None or pd.isna(value):
        return "N/A"
    return f"{value:.{digits}f}%"
