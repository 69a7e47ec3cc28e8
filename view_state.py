"""Immutable view state for the dashboard pages.

Each page keeps one frozen view object in ``st.session_state``. Inputs change
through :func:`update_view`, which bumps ``generation`` whenever something
actually changed. Loaded data is tagged with the generation that requested it,
so a response for an older selection can be recognised and dropped instead of
overwriting the current map.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Mapping, Union

from config import (
    DEFAULT_CITY,
    DEFAULT_WEIGHTS,
    DEFAULT_YEAR,
    DEFAULT_YEAR_AFTER,
    DEFAULT_YEAR_BEFORE,
)

log = logging.getLogger(__name__)

Weights = tuple[tuple[str, float], ...]


def freeze_weights(weights: Mapping[str, float]) -> Weights:
    """Turn a weight mapping into a hashable, order-independent tuple."""
    return tuple(sorted((str(metric), float(weight)) for metric, weight in weights.items()))


@dataclass(frozen=True)
class MapView:
    """Single city/year composite map."""

    city: str = DEFAULT_CITY
    year: str = DEFAULT_YEAR
    weights: Weights = field(default_factory=lambda: freeze_weights(DEFAULT_WEIGHTS))
    generation: int = 0

    @property
    def weight_map(self) -> dict[str, float]:
        return dict(self.weights)


@dataclass(frozen=True)
class CompareView:
    """Before/after percent-change map for one city."""

    city: str = DEFAULT_CITY
    year_before: str = DEFAULT_YEAR_BEFORE
    year_after: str = DEFAULT_YEAR_AFTER
    weights: Weights = field(default_factory=lambda: freeze_weights(DEFAULT_WEIGHTS))
    generation: int = 0

    @property
    def weight_map(self) -> dict[str, float]:
        return dict(self.weights)


View = Union[MapView, CompareView]


@dataclass(frozen=True)
class LoadResult:
    """Data produced for a given view generation (None means no data)."""

    generation: int
    data: dict | None = None


def update_view(view: View, **changes) -> View:
    """Return ``view`` with ``changes`` applied.

    The same object comes back when nothing differs, so callers can compare
    generations to decide whether a reload is needed.
    """
    if "generation" in changes:
        raise TypeError("generation is managed by update_view and cannot be set directly")
    if isinstance(changes.get("weights"), Mapping):
        changes["weights"] = freeze_weights(changes["weights"])

    changed = {
        name: value for name, value in changes.items() if getattr(view, name) != value
    }
    if not changed:
        return view
    return dataclasses.replace(view, generation=view.generation + 1, **changed)


def is_stale(view: View, result: LoadResult | None) -> bool:
    """True when ``result`` was not produced for the view's current generation."""
    return result is None or result.generation != view.generation


def accept_result(view: View, result: LoadResult | None) -> dict | None:
    """Return the result's data if it belongs to ``view``; stale data is dropped."""
    if is_stale(view, result):
        if result is not None:
            log.debug(
                "Dropping result for generation %s (current %s)",
                result.generation,
                view.generation,
            )
        return None
    return result.data
