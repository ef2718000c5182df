# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: tinct_density.py — ISO 5-3 weighted optical density and density
channel auto-selection.

Density
-------
    D = -log10( sum(R(λ)·w(λ)) / sum(w(λ)) )      λ = 340..770 nm, 10 nm

Reflectance at grid points outside the measured range is tailed from the
nearest measured endpoint; gaps inside the range are interpolated.  A grid
with no usable weight falls back to the unweighted 400-700 nm mean.

Channel selection
-----------------
Tiers are evaluated in order; the first one that produces a channel wins:

    1. maximum |D_solid - D_substrate| over the weighting table channels
    2. ink-type hint (cyan -> red, magenta -> green, yellow -> blue,
       black -> visual)
    3. largest band absorption of a single curve
    4. visual
"""

from __future__ import annotations

import logging
import math
import re
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import numpy as np
from numba import njit

from tinct_spectral import (
    DENSITY_CHANNELS,
    DENSITY_GRID,
    DensityWeightingTable,
    RawSpectral,
    SpectralCurve,
    normalize_spectral_curve,
)
from tinct_standards import DensitySettings, MissingDataWarning

logger = logging.getLogger(__name__)

__all__ = [
    "CHANNEL_BANDS",
    "ChannelRange",
    "ChannelSelection",
    "calculate_basic_density",
    "calculate_weighted_density",
    "compute_density",
    "density_ranges",
    "auto_select_density_channel",
    "auto_select_channel",
]

WeightingTableLike = Union[DensityWeightingTable, Mapping[str, Mapping[Any, Any]], None]

# Characteristic absorption band of each density filter (nm, inclusive)
CHANNEL_BANDS: Dict[str, Tuple[float, float]] = {
    "red":    (600.0, 700.0),
    "green":  (500.0, 600.0),
    "blue":   (400.0, 500.0),
    "visual": (400.0, 700.0),
}

_INK_CHANNELS: Dict[str, str] = {
    "cyan":    "red",
    "magenta": "green",
    "yellow":  "blue",
    "black":   "visual",
    "key":     "visual",
}
# single-letter process codes only count when they are the whole label
_INK_LETTERS: Dict[str, str] = {"c": "red", "m": "green", "y": "blue", "k": "visual"}
_TOKEN_RE = re.compile(r"[a-z]+")


# =============================================================================
# 1. KERNEL
# =============================================================================

@njit(cache=True, fastmath=True)
def _weighted_sum_kernel(reflectance: np.ndarray, weights: np.ndarray) -> Tuple[float, float]:
    """Sum of R·w and of w over the grid points where w != 0."""
    acc = 0.0
    wsum = 0.0
    for i in range(weights.shape[0]):
        w = weights[i]
        if w != 0.0:
            acc += reflectance[i] * w
            wsum += w
    return acc, wsum


def _reflectance_to_density(reflectance: float) -> float:
    return -math.log10(reflectance) if reflectance > 0.0 else 0.0


def _as_table(table: WeightingTableLike) -> Optional[DensityWeightingTable]:
    if table is None or isinstance(table, DensityWeightingTable):
        return table
    return DensityWeightingTable.from_mapping(table)


def _check_channel(channel: str) -> str:
    name = str(channel).lower()
    if name not in DENSITY_CHANNELS:
        raise ValueError(f"Unknown density channel '{channel}'. Choose from: {list(DENSITY_CHANNELS)}")
    return name


# =============================================================================
# 2. DENSITY
# =============================================================================

def calculate_basic_density(spectral: RawSpectral) -> float:
    """Unweighted density from the mean reflectance over 400-700 nm."""
    curve = normalize_spectral_curve(spectral)
    mean = curve.band_mean(400.0, 700.0)
    if mean is None:
        return 0.0
    return _reflectance_to_density(mean)


def calculate_weighted_density(
    spectral: RawSpectral,
    channel: str,
    table: WeightingTableLike,
    method: str = "linear",
) -> float:
    """
    ISO 5-3 weighted density of one channel.

    Args:
        spectral: Normalised curve or a raw wavelength -> reflectance mapping.
        channel: 'red', 'green', 'blue' or 'visual'.
        table: Density weighting table (or its mapping form).
        method: In-range interpolation used when a grid point was not
            measured.  Out-of-range grid points are always tailed.

    Returns:
        Density >= 0.  Missing data yields 0.
    """
    channel = _check_channel(channel)
    curve = normalize_spectral_curve(spectral)
    if not curve:
        return 0.0

    weights = None
    wt = _as_table(table)
    if wt is not None:
        weights = wt.channel(channel)
    if weights is None:
        warnings.warn(
            f"No ISO 5-3 weighting function for channel '{channel}'",
            MissingDataWarning,
            stacklevel=2,
        )
        return 0.0

    reflectance = curve.sample(DENSITY_GRID, method=method)
    acc, wsum = _weighted_sum_kernel(reflectance, np.ascontiguousarray(weights))

    if wsum == 0.0:
        logger.debug("Zero weight sum for %s channel, using 400-700 nm mean", channel)
        return calculate_basic_density(curve)

    return _reflectance_to_density(acc / wsum)


def compute_density(
    spectral: RawSpectral,
    channel: Optional[str] = None,
    table: WeightingTableLike = None,
    settings: Optional[DensitySettings] = None,
    ink_type: Optional[str] = None,
) -> float:
    """
    Density of a raw or normalised curve in one channel.

    Uses ISO 5-3 weighting when a table is supplied, otherwise the
    unweighted 400-700 nm mean.  Without a *channel* one is picked by
    ``auto_select_density_channel`` from *ink_type* and the curve itself.
    """
    settings = settings or DensitySettings()
    if channel is None:
        curve = normalize_spectral_curve(spectral)
        channel = auto_select_density_channel(
            ink_type=ink_type, spectral=curve, table=table, method=settings.interpolation,
        ).channel
        spectral = curve
    channel = _check_channel(channel)
    if table is None:
        return calculate_basic_density(spectral)
    return calculate_weighted_density(spectral, channel, table, method=settings.interpolation)


# =============================================================================
# 3. CHANNEL SELECTION
# =============================================================================

@dataclass(slots=True, frozen=True)
class ChannelRange:
    substrate_density: float
    solid_density:     float

    @property
    def range(self) -> float:
        return abs(self.solid_density - self.substrate_density)

    @property
    def is_valid(self) -> bool:
        return self.range > 0.0


@dataclass(slots=True, frozen=True)
class ChannelSelection:
    """Which channel was chosen, by which tier, and the tier's score."""
    channel: str
    method:  str
    score:   Optional[float] = None


def density_ranges(
    substrate: RawSpectral,
    solid: RawSpectral,
    table: WeightingTableLike,
    method: str = "linear",
) -> Optional[Dict[str, ChannelRange]]:
    """
    Substrate and solid density for every channel present in *table*.

    Returns ``None`` when either curve is unusable or there is no table.
    """
    wt = _as_table(table)
    sub = normalize_spectral_curve(substrate)
    sol = normalize_spectral_curve(solid)
    if wt is None or not sub or not sol:
        return None

    results: Dict[str, ChannelRange] = {}
    for channel in DENSITY_CHANNELS:
        if wt.channel(channel) is None:
            continue
        results[channel] = ChannelRange(
            substrate_density=calculate_weighted_density(sub, channel, wt, method),
            solid_density=calculate_weighted_density(sol, channel, wt, method),
        )
    return results


@dataclass(slots=True, frozen=True)
class _SelectionInputs:
    ink_type:  Optional[str]
    spectral:  SpectralCurve
    substrate: SpectralCurve
    solid:     SpectralCurve
    table:     Optional[DensityWeightingTable]
    method:    str


def _select_by_density_range(inputs: _SelectionInputs) -> Optional[ChannelSelection]:
    ranges = density_ranges(inputs.substrate, inputs.solid, inputs.table, inputs.method)
    if not ranges:
        return None
    best: Optional[str] = None
    best_range = 0.0
    for channel in DENSITY_CHANNELS:
        r = ranges.get(channel)
        if r is not None and r.is_valid and r.range > best_range:
            best, best_range = channel, r.range
    if best is None:
        return None
    return ChannelSelection(best, "density-range", best_range)


def _select_by_ink_type(inputs: _SelectionInputs) -> Optional[ChannelSelection]:
    if not inputs.ink_type:
        return None
    label = inputs.ink_type.strip().lower()
    if label in _INK_LETTERS:
        return ChannelSelection(_INK_LETTERS[label], "ink-type")
    for token in _TOKEN_RE.findall(label):
        if token in _INK_CHANNELS:
            return ChannelSelection(_INK_CHANNELS[token], "ink-type")
    return None


def _select_by_absorption(inputs: _SelectionInputs) -> Optional[ChannelSelection]:
    curve = inputs.spectral
    if not curve:
        return None
    best = "visual"
    best_absorption = 0.0
    seen = False
    for channel in DENSITY_CHANNELS:
        lo, hi = CHANNEL_BANDS[channel]
        mean = curve.band_mean(lo, hi)
        if mean is None:
            continue
        seen = True
        absorption = 100.0 - 100.0 * mean
        if absorption > best_absorption:
            best, best_absorption = channel, absorption
    if not seen:
        return None
    return ChannelSelection(best, "spectral-absorption", best_absorption)


def _select_default(inputs: _SelectionInputs) -> Optional[ChannelSelection]:
    return ChannelSelection("visual", "default")


_CHANNEL_STRATEGIES: Tuple[Callable[[_SelectionInputs], Optional[ChannelSelection]], ...] = (
    _select_by_density_range,
    _select_by_ink_type,
    _select_by_absorption,
    _select_default,
)


def auto_select_density_channel(
    ink_type: Optional[str] = None,
    spectral: RawSpectral = None,
    substrate: RawSpectral = None,
    solid: RawSpectral = None,
    table: WeightingTableLike = None,
    method: str = "linear",
) -> ChannelSelection:
    """
    Pick the density channel that best discriminates tone for one ink.

    Run once per tone reproduction curve; every tint of that curve is then
    measured in the returned channel.
    """
    inputs = _SelectionInputs(
        ink_type=ink_type,
        spectral=normalize_spectral_curve(spectral),
        substrate=normalize_spectral_curve(substrate),
        solid=normalize_spectral_curve(solid),
        table=_as_table(table),
        method=method,
    )
    for strategy in _CHANNEL_STRATEGIES:
        selection = strategy(inputs)
        if selection is not None:
            logger.debug("Density channel %s selected by %s (score=%s)",
                         selection.channel, selection.method, selection.score)
            return selection
    raise AssertionError("default channel strategy returned None")


def auto_select_channel(
    ink_type: Optional[str] = None,
    spectral: RawSpectral = None,
    substrate: RawSpectral = None,
    solid: RawSpectral = None,
    table: WeightingTableLike = None,
) -> str:
    """Channel name only; see ``auto_select_density_channel``."""
    return auto_select_density_channel(ink_type, spectral, substrate, solid, table).channel
