from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from conftest import metric_layer
from data_loader import (
    LayerFormatError,
    csv_url,
    download_links,
    fetch_comparison,
    fetch_layer,
    fetch_snapshot,
    geojson_url,
    load_comparison,
    load_snapshot,
)
from view_state import CompareView, MapView

BASE = "https://vip-censusdata.s3.us-east-2.amazonaws.com"
EQUAL = {"IDI": 25, "LDI": 25, "PDI": 25, "CDI": 25}

LAYERS = {
    "2022": {"IDI": 80, "LDI": 60, "PDI": 40, "CDI": 20},
    "2013": {"IDI": 40, "LDI": 30, "PDI": 20, "CDI": 10},
}


class FakeBucket:
    """Serves ``{city}_blockgroup_{metric}_{year}.geojson`` from LAYERS; records requests."""

    def __init__(self, fail=None, body=None):
        self.fail = fail or set()
        self.body = body or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        name = request.url.path.rsplit("/", 1)[-1]
        stem = name.removesuffix(".geojson")
        _city, rest = stem.split("_blockgroup_")
        metric, year = rest.split("_")
        if (metric, year) in self.fail:
            return httpx.Response(404, text="NoSuchKey")
        if (metric, year) in self.body:
            return httpx.Response(200, content=self.body[(metric, year)])
        value = LAYERS[year][metric]
        return httpx.Response(200, json=metric_layer(metric, {"X": value}))

    @property
    def transport(self):
        return httpx.MockTransport(self)


def run_with_client(bucket, coro_fn):
    async def _run():
        async with httpx.AsyncClient(transport=bucket.transport) as client:
            return await coro_fn(client)

    return asyncio.run(_run())


def test_urls():
    assert geojson_url("atlanta", "IDI", "2022") == f"{BASE}/atlanta_blockgroup_IDI_2022.geojson"
    assert csv_url("atlanta", "CDI", "2013") == f"{BASE}/atlanta_blockgroup_CDI_2013.csv"
    assert download_links("atlanta", "PDI", "2022", base_url="http://bucket") == {
        "csv": "http://bucket/atlanta_blockgroup_PDI_2022.csv",
        "geojson": "http://bucket/atlanta_blockgroup_PDI_2022.geojson",
    }


def test_fetch_layer_adds_cache_buster():
    bucket = FakeBucket()
    layer = run_with_client(bucket, lambda c: fetch_layer(c, "atlanta", "IDI", "2022"))
    assert layer["features"][0]["properties"] == {"GEOID": "X", "IDI": 80}
    (request,) = bucket.requests
    assert request.url.path == "/atlanta_blockgroup_IDI_2022.geojson"
    assert request.url.params["t"].isdigit()


def test_fetch_layer_rejects_non_feature_collection():
    bucket = FakeBucket(body={("IDI", "2022"): b'{"type": "Feature"}'})
    with pytest.raises(LayerFormatError):
        run_with_client(bucket, lambda c: fetch_layer(c, "atlanta", "IDI", "2022"))


def test_fetch_snapshot_scores_all_metrics():
    bucket = FakeBucket()
    result = run_with_client(bucket, lambda c: fetch_snapshot("atlanta", "2022", EQUAL, client=c))
    assert result["features"][0]["properties"]["compositeScore"] == pytest.approx(50.0)
    assert sorted(r.url.path for r in bucket.requests) == sorted(
        f"/atlanta_blockgroup_{m}_2022.geojson" for m in EQUAL
    )


def test_fetch_snapshot_one_failure_means_no_snapshot(caplog):
    bucket = FakeBucket(fail={("PDI", "2022")})
    with caplog.at_level(logging.WARNING, logger="data_loader"):
        result = run_with_client(bucket, lambda c: fetch_snapshot("atlanta", "2022", EQUAL, client=c))
    assert result is None
    assert "No snapshot for atlanta 2022" in caplog.text


def test_fetch_snapshot_malformed_body_means_no_snapshot():
    bucket = FakeBucket(body={("LDI", "2022"): b"<Error>AccessDenied</Error>"})
    result = run_with_client(bucket, lambda c: fetch_snapshot("atlanta", "2022", EQUAL, client=c))
    assert result is None


@pytest.mark.parametrize(
    "body",
    [
        b'{"type": "FeatureCollection", "features": [null]}',
        b'{"type": "FeatureCollection", "features": [{"properties": "oops"}]}',
        b'{"type": "FeatureCollection", "features": ["X"]}',
    ],
)
def test_fetch_snapshot_bad_feature_means_no_snapshot(body):
    bucket = FakeBucket(body={("IDI", "2022"): body})
    result = run_with_client(bucket, lambda c: fetch_snapshot("atlanta", "2022", EQUAL, client=c))
    assert result is None


def test_fetch_comparison_bad_feature_is_none():
    body = b'{"type": "FeatureCollection", "features": [null]}'
    bucket = FakeBucket(body={("CDI", "2022"): body})
    result = run_with_client(
        bucket, lambda c: fetch_comparison("atlanta", "2013", "2022", EQUAL, client=c)
    )
    assert result is None


def test_fetch_layer_accepts_feature_without_properties():
    bucket = FakeBucket(body={("IDI", "2022"): b'{"type": "FeatureCollection", "features": [{"type": "Feature"}]}'})
    layer = run_with_client(bucket, lambda c: fetch_layer(c, "atlanta", "IDI", "2022"))
    assert layer["features"] == [{"type": "Feature"}]


def test_fetch_snapshot_transport_error_means_no_snapshot():
    def handler(request):
        raise httpx.ConnectError("bucket unreachable", request=request)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_snapshot("atlanta", "2022", EQUAL, client=client)

    assert asyncio.run(_run()) is None


def test_fetch_snapshot_zero_weights_is_none():
    bucket = FakeBucket()
    zero = dict.fromkeys(EQUAL, 0)
    assert run_with_client(bucket, lambda c: fetch_snapshot("atlanta", "2022", zero, client=c)) is None


def test_fetch_comparison_diffs_two_years():
    bucket = FakeBucket()
    result = run_with_client(
        bucket, lambda c: fetch_comparison("atlanta", "2013", "2022", EQUAL, client=c)
    )
    # 2013 composite 25, 2022 composite 50
    assert result["features"][0]["properties"]["percentDiff"] == 100.0
    assert len(bucket.requests) == 8


def test_fetch_comparison_with_failed_year_is_none():
    bucket = FakeBucket(fail={("CDI", "2013")})
    result = run_with_client(
        bucket, lambda c: fetch_comparison("atlanta", "2013", "2022", EQUAL, client=c)
    )
    assert result is None


def test_load_snapshot_tags_generation_and_keeps_metric_values():
    view = MapView(city="atlanta", year="2022", generation=7)
    result = load_snapshot(view, transport=FakeBucket().transport)
    assert result.generation == 7
    props = result.data["features"][0]["properties"]
    assert props["compositeScore"] == pytest.approx(50.0)
    assert (props["IDI"], props["LDI"], props["PDI"], props["CDI"]) == (80.0, 60.0, 40.0, 20.0)


def test_load_comparison_tags_generation():
    view = CompareView(year_before="2022", year_after="2013", generation=3)
    result = load_comparison(view, transport=FakeBucket().transport)
    assert result.generation == 3
    assert result.data["features"][0]["properties"]["percentDiff"] == -50.0


def test_load_snapshot_failure_has_no_data():
    view = MapView(generation=2)
    result = load_snapshot(view, transport=FakeBucket(fail={("IDI", "2022")}).transport)
    assert result.generation == 2
    assert result.data is None
