# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Shared fixtures: a box-filter density weighting table, a cyan tint ladder
and a stub spectral -> Lab transform.
"""

from __future__ import annotations

import pytest

from tinct_spectral import DensityWeightingTable
from tinct_standards import AstmTable, Lab, StandardsLibrary

WAVELENGTHS = list(range(400, 701, 10))


def _box(lo: int, hi: int) -> dict:
    return {wl: 1.0 for wl in range(lo, hi + 1, 10)}


def flat_curve(value: float) -> dict:
    return {f"{wl}nm": value for wl in WAVELENGTHS}


def banded_curve(base: float, lo: int, hi: int, value: float) -> dict:
    return {wl: (value if lo <= wl <= hi else base) for wl in WAVELENGTHS}


@pytest.fixture
def weighting_table() -> DensityWeightingTable:
    return DensityWeightingTable.from_mapping({
        "red":    _box(600, 700),
        "green":  _box(500, 590),
        "blue":   _box(400, 490),
        "visual": _box(400, 700),
    })


@pytest.fixture
def make_flat():
    return flat_curve


@pytest.fixture
def make_banded():
    return banded_curve


@pytest.fixture
def cyan_ladder():
    """Paper, 50 % and solid cyan: absorption only in the red band."""
    return [
        {"tintPercentage": 0,   "spectralData": flat_curve(0.9)},
        {"tintPercentage": 50,  "spectralData": banded_curve(0.9, 600, 700, 0.2)},
        {"tintPercentage": 100, "spectralData": banded_curve(0.9, 600, 700, 0.05)},
    ]


def mean_lab_transform(spectral, weighting_tables):
    """Lab whose lightness tracks the mean reflectance."""
    values = list(spectral.values())
    mean = sum(values) / len(values)
    return {"L": 100.0 * mean, "a": 0.0, "b": -10.0 * mean}


def failing_transform(spectral, weighting_tables):
    raise KeyError("white point missing")


@pytest.fixture
def lab_transform():
    return mean_lab_transform


@pytest.fixture
def broken_transform():
    return failing_transform


@pytest.fixture
def standards() -> StandardsLibrary:
    return StandardsLibrary(astm_tables=(AstmTable("D50", "2", 5), AstmTable("D65", "10", 6)))


@pytest.fixture
def paper_lab() -> Lab:
    return Lab(95.0, 0.5, -2.0)


@pytest.fixture
def solid_lab() -> Lab:
    return Lab(55.0, -37.0, -50.0)
