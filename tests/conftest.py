from __future__ import annotations

from pathlib import Path
import sys

import pytest

# The app modules live at the project root (flat layout).
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def make_feature(geoid, geometry=None, **properties):
    props = {"GEOID": geoid, **properties}
    return {
        "type": "Feature",
        "geometry": geometry or {"type": "Point", "coordinates": [-84.388, 33.749]},
        "properties": props,
    }


def make_collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


def metric_layer(metric, values):
    """One layer with ``values`` as {geoid: value}."""
    return make_collection(*(make_feature(geoid, **{metric: value}) for geoid, value in values.items()))


@pytest.fixture
def four_layers():
    return [
        metric_layer("IDI", {"X": 80, "Y": 10}),
        metric_layer("LDI", {"X": 60, "Y": 20}),
        metric_layer("PDI", {"X": 40, "Y": 30}),
        metric_layer("CDI", {"X": 20, "Y": 40}),
    ]
