# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: tinct_spectral.py — Reflectance curves and density weighting tables.

SpectralCurve
    Immutable (wavelength, reflectance) pair on a strictly increasing grid.
    Built through ``normalize_spectral_curve`` which accepts the loose
    wavelength -> value mappings instruments and databases hand out
    ("400nm": 41.2, 410: "0.43", ...) and never raises.  An empty curve
    means "no usable spectral data"; it is never a zero curve.

DensityWeightingTable
    ISO 5-3 channel weights on the 340-770 nm / 10 nm grid.  Read-only.
"""

from __future__ import annotations

import itertools
import logging
import math
import re
from typing import (
    Any, Callable, Dict, Iterable, Iterator, Mapping, Optional, Tuple, TypeAlias, Union,
)

import numpy as np
import numpy.typing as npt
from scipy.interpolate import Akima1DInterpolator, CubicSpline, PchipInterpolator

logger = logging.getLogger(__name__)

__all__ = [
    "WL_MIN",
    "WL_MAX",
    "DENSITY_GRID",
    "DENSITY_CHANNELS",
    "SpectralCurve",
    "DensityWeightingTable",
    "normalize_spectral_curve",
    "parse_wavelength",
]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
WL_MIN: float = 360.0
WL_MAX: float = 830.0

# ISO 5-3 summation grid
DENSITY_GRID: np.ndarray = np.arange(340.0, 771.0, 10.0)
DENSITY_GRID.setflags(write=False)

DENSITY_CHANNELS: Tuple[str, ...] = ("red", "green", "blue", "visual")

ArrayFloat: TypeAlias = npt.NDArray[np.floating]
RawSpectral: TypeAlias = Union["SpectralCurve", Mapping[Any, Any], None]

_WL_KEY_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:nm)?\s*$", re.IGNORECASE)


def parse_wavelength(key: Any) -> Optional[float]:
    """'400', '400nm', '400 nm', 400, 400.0 -> 400.0.  Anything else -> None."""
    if isinstance(key, bool):
        return None
    if isinstance(key, (int, float, np.integer, np.floating)):
        f = float(key)
        return f if math.isfinite(f) else None
    m = _WL_KEY_RE.match(str(key))
    return float(m.group(1)) if m else None


def _parse_value(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f) or f < 0.0:
        return None
    return f


# ---------------------------------------------------------------------------
# Interpolation registry
# ---------------------------------------------------------------------------
_Interpolator: TypeAlias = Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]

_INTERPOLATORS: Dict[str, _Interpolator] = {
    "linear": lambda w, v, q: np.interp(q, w, v),
    "cubicspline": lambda w, v, q: CubicSpline(w, v, extrapolate=False)(q),
    "pchip": lambda w, v, q: PchipInterpolator(w, v, extrapolate=False)(q),
    "akima": lambda w, v, q: Akima1DInterpolator(w, v, method="akima")(q),
    "makima": lambda w, v, q: Akima1DInterpolator(w, v, method="makima")(q),
}


# =============================================================================
# 1.  SpectralCurve
# =============================================================================
class SpectralCurve:
    """
    Normalised reflectance curve.

    Identity
    --------
    Every curve gets a process-unique, monotonically increasing ``uid``,
    usable as a cache key component instead of ``id(curve)``.
    """

    __slots__ = ("uid", "_wavelengths", "_values")

    _uid_gen: itertools.count = itertools.count()

    def __init__(self, wavelengths: Iterable[float] = (), values: Iterable[float] = ()) -> None:
        wl = np.asarray(list(wavelengths) if not isinstance(wavelengths, np.ndarray) else wavelengths,
                        dtype=np.float64)
        vals = np.asarray(list(values) if not isinstance(values, np.ndarray) else values,
                          dtype=np.float64)
        if wl.shape != vals.shape or wl.ndim != 1:
            raise ValueError(
                f"SpectralCurve: shape mismatch {wl.shape} vs {vals.shape}"
            )
        if wl.size > 1 and not np.all(np.diff(wl) > 0):
            raise ValueError(
                "SpectralCurve: wavelength array must be strictly "
                "monotonically increasing."
            )
        wl = wl.copy()
        vals = vals.copy()
        wl.setflags(write=False)
        vals.setflags(write=False)
        self.uid: int = next(SpectralCurve._uid_gen)
        self._wavelengths = wl
        self._values = vals

    @classmethod
    def empty(cls) -> "SpectralCurve":
        return cls()

    # -- read interface ----------------------------------------------------
    @property
    def wavelengths(self) -> ArrayFloat:
        return self._wavelengths

    @property
    def values(self) -> ArrayFloat:
        return self._values

    @property
    def wl_bounds(self) -> Tuple[float, float]:
        if self._wavelengths.size == 0:
            return (math.nan, math.nan)
        return float(self._wavelengths[0]), float(self._wavelengths[-1])

    def __len__(self) -> int:
        return int(self._wavelengths.size)

    def __bool__(self) -> bool:
        return self._wavelengths.size > 0

    def __iter__(self) -> Iterator[Tuple[float, float]]:
        return zip(self._wavelengths.tolist(), self._values.tolist())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SpectralCurve):
            return NotImplemented
        return (np.array_equal(self._wavelengths, other._wavelengths)
                and np.array_equal(self._values, other._values))

    __hash__ = None  # type: ignore[assignment]

    def as_dict(self) -> Dict[int, float]:
        """Integer-nm mapping, the shape external transforms expect."""
        return {int(round(w)): float(v) for w, v in self}

    # -- sampling ----------------------------------------------------------
    def sample(self, query: Union[float, Iterable[float]], method: str = "linear") -> ArrayFloat:
        """
        Reflectance at arbitrary wavelengths.

        Exact samples are returned verbatim, gaps inside the measured range
        are interpolated with *method*, and queries outside the range take
        the nearest endpoint value (tailing).
        """
        if method not in _INTERPOLATORS:
            raise ValueError(
                f"Unknown interpolation type '{method}'. "
                f"Choose from: {list(_INTERPOLATORS.keys())}"
            )
        q = np.atleast_1d(np.asarray(query, dtype=np.float64))
        wl, vals = self._wavelengths, self._values

        if wl.size == 0:
            return np.full(q.shape, np.nan)
        if wl.size == 1:
            return np.full(q.shape, vals[0])

        # clipping the query tails every method, not just np.interp
        q_in = np.clip(q, wl[0], wl[-1])
        if wl.size < 3:
            method = "linear"
        out = np.asarray(_INTERPOLATORS[method](wl, vals, q_in), dtype=np.float64)
        # higher-order interpolants may overshoot between samples
        out = np.clip(out, 0.0, 1.0)

        # exact grid hits bypass the interpolant
        idx = np.searchsorted(wl, q_in)
        idx = np.clip(idx, 0, wl.size - 1)
        exact = np.abs(wl[idx] - q_in) < 1e-9
        out[exact] = vals[idx[exact]]
        return out

    def band_mean(self, lo: float, hi: float) -> Optional[float]:
        """Mean of the measured samples inside ``[lo, hi]``; ``None`` if none."""
        mask = (self._wavelengths >= lo) & (self._wavelengths <= hi)
        if not np.any(mask):
            return None
        return float(np.mean(self._values[mask]))

    # -- display -----------------------------------------------------------
    def __repr__(self) -> str:
        if not self:
            return f"SpectralCurve(uid={self.uid}, empty)"
        lo, hi = self.wl_bounds
        return (
            f"SpectralCurve(uid={self.uid}, points={len(self)}, "
            f"range=[{lo:.0f}, {hi:.0f}])"
        )


def normalize_spectral_curve(raw: RawSpectral) -> SpectralCurve:
    """
    Turn a loose wavelength -> reflectance mapping into a ``SpectralCurve``.

    * keys may carry an ``nm`` suffix; unparsable keys are dropped
    * only wavelengths in [360, 830] nm are kept
    * negative, NaN and non-numeric values are dropped
    * percentage-scaled curves (max > 1.1 and mean > 1.0) are divided by 100
    * values are clamped to [0, 1]

    Never raises.  Absent or fully invalid input yields an empty curve.
    Already-normalised curves pass through unchanged.
    """
    if isinstance(raw, SpectralCurve):
        return raw
    if not isinstance(raw, Mapping) or not raw:
        return SpectralCurve.empty()

    parsed: Dict[float, float] = {}
    numeric: list[float] = []
    for key, value in raw.items():
        v = _parse_value(value)
        if v is None:
            continue
        numeric.append(v)
        wl = parse_wavelength(key)
        if wl is None or wl < WL_MIN or wl > WL_MAX:
            continue
        parsed[wl] = v

    if not parsed:
        return SpectralCurve.empty()

    # One outlier above 1.1 is not enough to call a curve percentage-scaled.
    is_percentage = max(numeric) > 1.1 and (sum(numeric) / len(numeric)) > 1.0
    if is_percentage:
        logger.debug("Percentage-scaled curve (max=%.2f), dividing by 100", max(numeric))

    wls = sorted(parsed)
    vals = []
    for wl in wls:
        v = parsed[wl]
        if is_percentage:
            v /= 100.0
        vals.append(min(1.0, max(0.0, v)))

    return SpectralCurve(wls, vals)


# =============================================================================
# 2.  DensityWeightingTable
# =============================================================================
class DensityWeightingTable:
    """
    Per-channel ISO 5-3 weights sampled on ``DENSITY_GRID``.

    Channels that were not supplied are absent (``channel()`` returns
    ``None``), which is a valid state: channel auto-selection then falls
    back to its later tiers.
    """

    __slots__ = ("_weights",)

    def __init__(self, weights: Optional[Mapping[str, Iterable[float]]] = None) -> None:
        self._weights: Dict[str, ArrayFloat] = {}
        for name, arr in (weights or {}).items():
            w = np.asarray(list(arr) if not isinstance(arr, np.ndarray) else arr, dtype=np.float64)
            if w.shape != DENSITY_GRID.shape:
                raise ValueError(
                    f"DensityWeightingTable: channel '{name}' has {w.shape[0] if w.ndim else 0} "
                    f"weights, expected {DENSITY_GRID.shape[0]}"
                )
            w = np.where(np.isfinite(w) & (w > 0.0), w, 0.0)
            w.setflags(write=False)
            self._weights[str(name).lower()] = w

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Mapping[Any, Any]]) -> "DensityWeightingTable":
        """
        Build from ``{channel: {wavelength: weight}}``.  Grid points missing
        from a channel carry weight 0.
        """
        if not isinstance(mapping, Mapping):
            raise TypeError(f"Expected a mapping of channels, got {type(mapping).__name__}")

        grid_index = {int(w): i for i, w in enumerate(DENSITY_GRID)}
        weights: Dict[str, ArrayFloat] = {}
        for name, per_wl in mapping.items():
            if per_wl is None:
                continue
            arr = np.zeros(DENSITY_GRID.shape, dtype=np.float64)
            for key, value in per_wl.items():
                wl = parse_wavelength(key)
                v = _parse_value(value)
                if wl is None or v is None:
                    continue
                i = grid_index.get(int(round(wl)))
                if i is not None:
                    arr[i] = v
            weights[name] = arr
        return cls(weights)

    def channel(self, name: str) -> Optional[ArrayFloat]:
        return self._weights.get(str(name).lower())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._weights

    @property
    def channels(self) -> Tuple[str, ...]:
        return tuple(self._weights)

    def __repr__(self) -> str:
        return f"DensityWeightingTable(channels={list(self._weights)})"
