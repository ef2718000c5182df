# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: tinct_colordiff.py — Colour difference formulas.

The ranking engine treats ΔE as an injected pure function
``(reference_lab, candidate_lab, formula) -> float >= 0``.  This module is
the default implementation: JIT-compiled single-pair kernels plus batch
loops for one-reference-vs-N comparisons.

Formula names follow the application's settings vocabulary:

    dE76       CIE 1976 (Euclidean distance in Lab)
    dE94       CIE 1994, graphic arts weights
    dE00       CIEDE2000 (alias: dE2000)
    dECMC2:1   CMC l:c 2:1 (acceptability)
    dECMC1:1   CMC l:c 1:1 (perceptibility)

CIE 1994 and CMC are asymmetric: the first argument is the reference
(standard), the second the sample (batch).

References:
    - CIE 15:2004 "Colorimetry"
    - Sharma, G., Wu, W., & Dalal, E. N. (2005). "The CIEDE2000 color-difference formula".
    - Clarke, McDonald, Rigg (1984). "CMC l:c colour difference formula".
    - CIE Publication 116-1995 (CIE 1994 colour difference).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Final, NamedTuple

import numpy as np
import numpy.typing as npt
from numba import float64, njit

from tinct_standards import Lab, parse_lab

__all__ = [
    "FORMULAS",
    "DEFAULT_FORMULA",
    "LabComponents",
    "color_difference",
    "batch_color_difference",
    "lab_difference_components",
    "delta_e_76",
    "delta_e_94",
    "delta_e_2000",
    "delta_e_cmc",
]

ArrayFloat = npt.NDArray[np.floating]

C25_7: Final[float]   = 25.0**7
DEG2RAD: Final[float] = np.pi / 180.0

DEFAULT_FORMULA: Final[str] = "dE00"


# =============================================================================
# 1. SINGLE-PAIR KERNELS
# =============================================================================

@njit(float64(float64, float64, float64, float64, float64, float64), cache=True, fastmath=True)
def _delta_e_76_single(L1: float, a1: float, b1: float, L2: float, a2: float, b2: float) -> float:
    dL = L1 - L2
    da = a1 - a2
    db = b1 - b2
    return np.sqrt(dL*dL + da*da + db*db)


@njit(float64(float64, float64, float64, float64, float64, float64, float64, float64, float64), cache=True, fastmath=True)
def _delta_e_94_single(L1: float, a1: float, b1: float, L2: float, a2: float, b2: float,
                       k_L: float, K1: float, K2: float) -> float:
    """CIE 1994; weighting functions use the reference chroma (lab1)."""
    dL = L1 - L2
    C1 = np.sqrt(a1*a1 + b1*b1)
    C2 = np.sqrt(a2*a2 + b2*b2)
    dC = C1 - C2
    da = a1 - a2
    db = b1 - b2
    # dH² = da² + db² - dC²  (can be negative due to FP noise → clamp)
    dH_sq = da*da + db*db - dC*dC
    if dH_sq < 0.0:
        dH_sq = 0.0
    SC = 1.0 + K1 * C1
    SH = 1.0 + K2 * C1
    term_L = dL / k_L
    term_C = dC / SC
    return np.sqrt(term_L*term_L + term_C*term_C + dH_sq / (SH * SH))


@njit(float64(float64, float64, float64, float64, float64, float64, float64, float64, float64), cache=True, fastmath=True)
def _delta_e_2000_single(L1: float, a1: float, b1: float, L2: float, a2: float, b2: float,
                         k_L: float, k_C: float, k_H: float) -> float:
    """CIEDE2000 with parametric factors."""
    C1 = np.hypot(a1, b1)
    C2 = np.hypot(a2, b2)
    C_bar = (C1 + C2) * 0.5
    C_bar_7 = C_bar**7
    G = 0.5 * (1.0 - np.sqrt(C_bar_7 / (C_bar_7 + C25_7)))
    scale = 1.0 + G
    a1_p = scale * a1
    a2_p = scale * a2
    C1_p = np.hypot(a1_p, b1)
    C2_p = np.hypot(a2_p, b2)
    h1_p = np.degrees(np.arctan2(b1, a1_p)) % 360.0
    h2_p = np.degrees(np.arctan2(b2, a2_p)) % 360.0
    dL_p = L2 - L1
    dC_p = C2_p - C1_p
    dh_p = 0.0
    if C1_p * C2_p > 1e-12:
        diff = h2_p - h1_p
        if abs(diff) <= 180: dh_p = diff
        elif diff > 180: dh_p = diff - 360.0
        else: dh_p = diff + 360.0
    dH_p = 2.0 * np.sqrt(C1_p * C2_p) * np.sin((dh_p * DEG2RAD) * 0.5)
    L_bar_p = (L1 + L2) * 0.5
    C_bar_p = (C1_p + C2_p) * 0.5
    h_bar_p = h1_p + h2_p
    if C1_p * C2_p > 1e-12:
        if abs(h1_p - h2_p) <= 180: h_bar_p *= 0.5
        elif h_bar_p < 360: h_bar_p = (h_bar_p + 360.0) * 0.5
        else: h_bar_p = (h_bar_p - 360.0) * 0.5
    T = 1.0 - 0.17 * np.cos((h_bar_p - 30.0) * DEG2RAD) + \
        0.24 * np.cos((2.0 * h_bar_p) * DEG2RAD) + \
        0.32 * np.cos((3.0 * h_bar_p + 6.0) * DEG2RAD) - \
        0.20 * np.cos((4.0 * h_bar_p - 63.0) * DEG2RAD)
    d_theta = 30.0 * np.exp(-((h_bar_p - 275.0) / 25.0)**2)
    C_bar_p_7 = C_bar_p**7
    RC = 2.0 * np.sqrt(C_bar_p_7 / (C_bar_p_7 + C25_7))
    RT = -np.sin((2.0 * d_theta) * DEG2RAD) * RC
    L_term = (L_bar_p - 50.0)**2
    SL = 1.0 + (0.015 * L_term) / np.sqrt(20.0 + L_term)
    SC = 1.0 + 0.045 * C_bar_p
    SH = 1.0 + 0.015 * C_bar_p * T
    return np.sqrt((dL_p / (k_L * SL))**2 + (dC_p / (k_C * SC))**2 + (dH_p / (k_H * SH))**2
                   + RT * (dC_p / (k_C * SC)) * (dH_p / (k_H * SH)))


@njit(float64(float64, float64, float64, float64, float64, float64, float64, float64), cache=True, fastmath=True)
def _delta_e_cmc_single(L1: float, a1: float, b1: float, L2: float, a2: float, b2: float,
                        pl: float, pc: float) -> float:
    """CMC l:c (1984); weighting functions use the reference (lab1)."""
    dL = L1 - L2
    C1 = np.sqrt(a1*a1 + b1*b1)
    C2 = np.sqrt(a2*a2 + b2*b2)
    dC = C1 - C2
    da = a1 - a2
    db = b1 - b2
    dH_sq = da*da + db*db - dC*dC
    if dH_sq < 0.0:
        dH_sq = 0.0

    h1 = np.degrees(np.arctan2(b1, a1)) % 360.0

    if L1 < 16.0:
        SL = 0.511
    else:
        SL = (0.040975 * L1) / (1.0 + 0.01765 * L1)
    SC = (0.0638 * C1) / (1.0 + 0.0131 * C1) + 0.638

    if 164.0 <= h1 <= 345.0:
        T = 0.56 + abs(0.2 * np.cos((h1 + 168.0) * DEG2RAD))
    else:
        T = 0.36 + abs(0.4 * np.cos((h1 + 35.0) * DEG2RAD))

    C1_4 = C1**4
    F = np.sqrt(C1_4 / (C1_4 + 1900.0))
    SH = SC * (F * T + 1.0 - F)

    term_L = dL / (pl * SL)
    term_C = dC / (pc * SC)
    return np.sqrt(term_L*term_L + term_C*term_C + dH_sq / (SH * SH))


# =============================================================================
# 2. BATCH KERNELS (one reference vs N samples)
# =============================================================================
# Sequential loops: callers own any parallelism.

@njit(cache=True, fastmath=True)
def _batch_76(ref: ArrayFloat, labs: ArrayFloat) -> ArrayFloat:
    n = labs.shape[0]
    res = np.empty(n, dtype=np.float64)
    for i in range(n):
        res[i] = _delta_e_76_single(ref[0], ref[1], ref[2], labs[i, 0], labs[i, 1], labs[i, 2])
    return res


@njit(cache=True, fastmath=True)
def _batch_94(ref: ArrayFloat, labs: ArrayFloat, k_L: float, K1: float, K2: float) -> ArrayFloat:
    n = labs.shape[0]
    res = np.empty(n, dtype=np.float64)
    for i in range(n):
        res[i] = _delta_e_94_single(ref[0], ref[1], ref[2], labs[i, 0], labs[i, 1], labs[i, 2], k_L, K1, K2)
    return res


@njit(cache=True, fastmath=True)
def _batch_2000(ref: ArrayFloat, labs: ArrayFloat, k_L: float, k_C: float, k_H: float) -> ArrayFloat:
    n = labs.shape[0]
    res = np.empty(n, dtype=np.float64)
    for i in range(n):
        res[i] = _delta_e_2000_single(ref[0], ref[1], ref[2], labs[i, 0], labs[i, 1], labs[i, 2], k_L, k_C, k_H)
    return res


@njit(cache=True, fastmath=True)
def _batch_cmc(ref: ArrayFloat, labs: ArrayFloat, pl: float, pc: float) -> ArrayFloat:
    n = labs.shape[0]
    res = np.empty(n, dtype=np.float64)
    for i in range(n):
        res[i] = _delta_e_cmc_single(ref[0], ref[1], ref[2], labs[i, 0], labs[i, 1], labs[i, 2], pl, pc)
    return res


# =============================================================================
# 3. PUBLIC API
# =============================================================================

def delta_e_76(lab1: Lab, lab2: Lab) -> float:
    return float(_delta_e_76_single(*lab1, *lab2))


def delta_e_94(lab1: Lab, lab2: Lab, k_L: float = 1.0, K1: float = 0.045, K2: float = 0.015) -> float:
    """CIE 1994, graphic arts parameters by default.  *lab1* is the reference."""
    return float(_delta_e_94_single(*lab1, *lab2, k_L, K1, K2))


def delta_e_2000(lab1: Lab, lab2: Lab, k_L: float = 1.0, k_C: float = 1.0, k_H: float = 1.0) -> float:
    return float(_delta_e_2000_single(*lab1, *lab2, k_L, k_C, k_H))


def delta_e_cmc(lab1: Lab, lab2: Lab, pl: float = 2.0, pc: float = 1.0) -> float:
    """CMC l:c.  *lab1* is the reference (standard)."""
    return float(_delta_e_cmc_single(*lab1, *lab2, pl, pc))


@dataclass(slots=True, frozen=True)
class _Formula:
    single: Callable[[Lab, Lab], float]
    batch:  Callable[[ArrayFloat, ArrayFloat], ArrayFloat]


FORMULAS: Dict[str, _Formula] = {
    "dE76":     _Formula(delta_e_76, _batch_76),
    "dE94":     _Formula(delta_e_94, lambda r, x: _batch_94(r, x, 1.0, 0.045, 0.015)),
    "dE00":     _Formula(delta_e_2000, lambda r, x: _batch_2000(r, x, 1.0, 1.0, 1.0)),
    "dECMC2:1": _Formula(lambda r, x: delta_e_cmc(r, x, 2.0, 1.0), lambda r, x: _batch_cmc(r, x, 2.0, 1.0)),
    "dECMC1:1": _Formula(lambda r, x: delta_e_cmc(r, x, 1.0, 1.0), lambda r, x: _batch_cmc(r, x, 1.0, 1.0)),
}
FORMULAS["dE2000"] = FORMULAS["dE00"]


def _formula(name: str) -> _Formula:
    try:
        return FORMULAS[name]
    except KeyError:
        raise ValueError(
            f"Unknown colour difference formula '{name}'. Choose from: {list(FORMULAS.keys())}"
        ) from None


def _require_lab(value: Any, label: str) -> Lab:
    lab = parse_lab(value)
    if lab is None:
        raise TypeError(f"{label} is not a finite Lab value: {value!r}")
    return lab


def color_difference(reference_lab: Any, candidate_lab: Any, formula: str = DEFAULT_FORMULA) -> float:
    """
    ΔE between a reference and a candidate under *formula*.

    Raises:
        ValueError: unknown formula name.
        TypeError: either argument is not a finite Lab.
    """
    f = _formula(formula)
    return f.single(_require_lab(reference_lab, "reference_lab"), _require_lab(candidate_lab, "candidate_lab"))


def batch_color_difference(reference_lab: Any, candidate_labs: Any, formula: str = DEFAULT_FORMULA) -> ArrayFloat:
    """ΔE of one reference against an (N, 3) array of candidates."""
    f = _formula(formula)
    ref = np.ascontiguousarray(_require_lab(reference_lab, "reference_lab"), dtype=np.float64)
    labs = np.ascontiguousarray(np.atleast_2d(np.asarray(candidate_labs, dtype=np.float64)))
    if labs.size == 0:
        return np.empty(0, dtype=np.float64)
    if labs.shape[-1] != 3:
        raise ValueError(f"Expected last dimension size 3, got {labs.shape[-1]}")
    return f.batch(ref, labs)


class LabComponents(NamedTuple):
    dL: float
    da: float
    db: float
    dC: float
    dH: float


def lab_difference_components(reference_lab: Any, sample_lab: Any) -> LabComponents:
    """
    Signed sample - reference differences.  ``dH`` is the hue angle
    difference in degrees, wrapped to (-180, 180].
    """
    ref = _require_lab(reference_lab, "reference_lab")
    smp = _require_lab(sample_lab, "sample_lab")
    dC = math.hypot(smp.a, smp.b) - math.hypot(ref.a, ref.b)
    dH = math.degrees(math.atan2(smp.b, smp.a)) - math.degrees(math.atan2(ref.b, ref.a))
    if dH > 180.0:
        dH -= 360.0
    elif dH <= -180.0:
        dH += 360.0
    return LabComponents(smp.L - ref.L, smp.a - ref.a, smp.b - ref.b, dC, dH)
