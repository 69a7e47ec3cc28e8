"""Data loading utilities for the subindex layers.

This module keeps all network I/O in one place so the Streamlit app can stay lean.
Layers are fetched fresh on every selection change: each GeoJSON request carries a
``t=<epoch millis>`` query parameter so intermediary caches in front of the bucket
never serve an old copy. Nothing is cached between runs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Mapping, Sequence

import httpx

from config import BASE_URL, METRICS, REQUEST_TIMEOUT
from metrics import compute_composite_scores, compute_percent_diff
from view_state import CompareView, LoadResult, MapView

log = logging.getLogger(__name__)


class LayerFormatError(ValueError):
    """A layer response was not a GeoJSON FeatureCollection."""


def layer_name(city: str, metric: str, year: str) -> str:
    return f"{city}_blockgroup_{metric}_{year}"


def geojson_url(city: str, metric: str, year: str, base_url: str = BASE_URL) -> str:
    return f"{base_url}/{layer_name(city, metric, year)}.geojson"


def csv_url(city: str, metric: str, year: str, base_url: str = BASE_URL) -> str:
    return f"{base_url}/{layer_name(city, metric, year)}.csv"


def download_links(city: str, metric: str, year: str, base_url: str = BASE_URL) -> dict[str, str]:
    """Direct links to the raw files in the bucket (no cache-busting)."""
    return {
        "csv": csv_url(city, metric, year, base_url),
        "geojson": geojson_url(city, metric, year, base_url),
    }


def _cache_buster() -> dict[str, int]:
    return {"t": int(time.time() * 1000)}


def make_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create an async HTTP client for bucket requests."""
    return httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=transport)


async def fetch_layer(
    client: httpx.AsyncClient,
    city: str,
    metric: str,
    year: str,
    base_url: str = BASE_URL,
) -> dict:
    """Fetch one metric layer; raises on transport errors, non-2xx, or a bad body."""
    url = geojson_url(city, metric, year, base_url)
    log.info("Fetching %s %s %s", city, metric, year)
    response = await client.get(url, params=_cache_buster())
    response.raise_for_status()
    payload = response.json()
    if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
        raise LayerFormatError(f"{url} is not a GeoJSON FeatureCollection")
    for feature in payload["features"]:
        if not isinstance(feature, dict) or not isinstance(feature.get("properties") or {}, dict):
            raise LayerFormatError(f"{url} has a feature that is not a GeoJSON object")
    return payload


async def fetch_snapshot(
    city: str,
    year: str,
    weights: Mapping[str, float],
    client: httpx.AsyncClient | None = None,
    metrics: Sequence[str] = METRICS,
    base_url: str = BASE_URL,
    keep_metric_values: bool = False,
) -> dict | None:
    """Fetch every metric layer for ``city``/``year`` concurrently and score them.

    Any failed layer makes the whole snapshot unavailable (None): the other
    requests are cancelled and no partial composite is computed.
    """
    if client is None:
        async with make_client() as owned_client:
            return await fetch_snapshot(
                city,
                year,
                weights,
                client=owned_client,
                metrics=metrics,
                base_url=base_url,
                keep_metric_values=keep_metric_values,
            )

    tasks = [
        asyncio.create_task(fetch_layer(client, city, metric, year, base_url))
        for metric in metrics
    ]
    try:
        layers = await asyncio.gather(*tasks)
    except (httpx.HTTPError, ValueError) as exc:
        for task in tasks:
            task.cancel()
        # Collect the remaining outcomes so no task is left unretrieved.
        await asyncio.gather(*tasks, return_exceptions=True)
        log.warning("No snapshot for %s %s: %s", city, year, exc)
        return None

    return compute_composite_scores(
        list(layers), list(metrics), weights, keep_metric_values=keep_metric_values
    )


async def fetch_comparison(
    city: str,
    year_before: str,
    year_after: str,
    weights: Mapping[str, float],
    client: httpx.AsyncClient | None = None,
    metrics: Sequence[str] = METRICS,
    base_url: str = BASE_URL,
) -> dict | None:
    """Fetch the before/after snapshots concurrently and diff them once both resolve."""
    if client is None:
        async with make_client() as owned_client:
            return await fetch_comparison(
                city,
                year_before,
                year_after,
                weights,
                client=owned_client,
                metrics=metrics,
                base_url=base_url,
            )

    before, after = await asyncio.gather(
        fetch_snapshot(city, year_before, weights, client=client, metrics=metrics, base_url=base_url),
        fetch_snapshot(city, year_after, weights, client=client, metrics=metrics, base_url=base_url),
    )
    return compute_percent_diff(before, after)


def load_snapshot(view: MapView, transport: httpx.AsyncBaseTransport | None = None) -> LoadResult:
    """Blocking entry point for the app: composite map for ``view``."""

    async def _run() -> dict | None:
        async with make_client(transport) as client:
            return await fetch_snapshot(
                view.city, view.year, view.weight_map, client=client, keep_metric_values=True
            )

    return LoadResult(generation=view.generation, data=asyncio.run(_run()))


def load_comparison(view: CompareView, transport: httpx.AsyncBaseTransport | None = None) -> LoadResult:
    """Blocking entry point for the app: percent-change map for ``view``."""

    async def _run() -> dict | None:
        async with make_client(transport) as client:
            return await fetch_comparison(
                view.city, view.year_before, view.year_after, view.weight_map, client=client
            )

    return LoadResult(generation=view.generation, data=asyncio.run(_run()))
