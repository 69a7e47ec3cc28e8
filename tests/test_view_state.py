from __future__ import annotations

import dataclasses

import pytest

from view_state import (
    CompareView,
    LoadResult,
    MapView,
    accept_result,
    freeze_weights,
    is_stale,
    update_view,
)


def test_defaults():
    view = CompareView()
    assert (view.city, view.year_before, view.year_after) == ("atlanta", "2013", "2022")
    assert view.weight_map == {"CDI": 25.0, "IDI": 25.0, "LDI": 25.0, "PDI": 25.0}
    assert view.generation == 0


def test_views_are_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        MapView().year = "2013"


def test_update_bumps_generation_on_change():
    view = MapView()
    newer = update_view(view, year="2013")
    assert newer.year == "2013"
    assert newer.generation == view.generation + 1
    assert view.year == "2022"


def test_update_without_change_returns_same_view():
    view = MapView()
    same = update_view(view, city="atlanta", weights={"IDI": 25, "LDI": 25, "PDI": 25, "CDI": 25})
    assert same is view


def test_weight_order_does_not_matter():
    assert freeze_weights({"IDI": 1, "CDI": 2}) == freeze_weights({"CDI": 2, "IDI": 1})


def test_weight_change_bumps_generation():
    view = CompareView()
    newer = update_view(view, weights={"IDI": 50, "LDI": 25, "PDI": 25, "CDI": 0})
    assert newer.generation == 1
    assert newer.weight_map["CDI"] == 0.0


def test_generation_cannot_be_set_directly():
    with pytest.raises(TypeError):
        update_view(MapView(), generation=5)


def test_stale_results_are_dropped():
    view = MapView()
    old_result = LoadResult(generation=view.generation, data={"features": []})
    view = update_view(view, year="2013")
    assert is_stale(view, old_result)
    assert accept_result(view, old_result) is None


def test_current_result_is_accepted():
    view = update_view(MapView(), year="2013")
    result = LoadResult(generation=view.generation, data={"features": []})
    assert not is_stale(view, result)
    assert accept_result(view, result) == {"features": []}


def test_missing_result_is_stale():
    assert is_stale(MapView(), None)
    assert accept_result(MapView(), None) is None
