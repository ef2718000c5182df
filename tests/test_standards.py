# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later
"""

import math

import pytest

from __about__ import __title__, metadata_summary
from tinct_spectral import SpectralCurve
from tinct_standards import (
    AstmTable,
    CollaboratorFailureWarning,
    DensitySettings,
    Lab,
    MeasurementContext,
    StandardsLibrary,
    StandardsStatus,
    TinctWarning,
    parse_lab,
    spectral_to_lab,
)


@pytest.mark.parametrize("value", [
    Lab(50, 10, -5),
    {"L": 50, "a": 10, "b": -5},
    {"l": "50", "A": 10, "B": -5},
    (50, 10, -5),
    "L: 50, a: 10, b: -5",
])
def test_parse_lab_accepts_common_forms(value):
    assert parse_lab(value) == Lab(50.0, 10.0, -5.0)


@pytest.mark.parametrize("value", [None, {"L": 50}, (50, 10), "50 10", (50, math.nan, 0), Lab(math.inf, 0, 0), 42])
def test_parse_lab_rejects_malformed(value):
    assert parse_lab(value) is None


def test_measurement_context_from_dict():
    ctx = MeasurementContext.from_dict({"mode": "m2", "illuminant": "D65"}, observer=10)
    assert ctx == MeasurementContext("m2", "D65", "10", "5")
    assert ctx.signature == ("M2", "D65", "10", "5")


def test_density_settings_validation():
    assert DensitySettings.from_dict(interpolation="akima").interpolation == "akima"
    with pytest.raises(ValueError, match="Unknown interpolation type"):
        DensitySettings("nearest")


def test_weighting_tables_for_context():
    d50, d65 = AstmTable("D50", "2", 5), AstmTable("D65", "10", 6)
    library = StandardsLibrary(astm_tables=(d50, d65))
    assert library.weighting_tables_for(MeasurementContext()) == (d50,)
    assert library.weighting_tables_for(MeasurementContext(illuminant="A")) == ()

    with_fallback = StandardsLibrary(astm_tables=(d65,), selected_table=d50)
    assert with_fallback.weighting_tables_for(MeasurementContext(illuminant="F2")) == (d50,)


def test_weighting_tables_unavailable_until_ready():
    library = StandardsLibrary(astm_tables=(AstmTable("D50", "2", 5),), status=StandardsStatus.FAILED)
    assert not library.is_ready
    assert library.weighting_tables_for(MeasurementContext()) == ()


def test_spectral_to_lab(standards, lab_transform):
    curve = SpectralCurve([400, 500], [0.5, 0.5])
    lab = spectral_to_lab(curve, standards, MeasurementContext(), lab_transform)
    assert lab == pytest.approx((50.0, 0.0, -5.0))


def test_spectral_to_lab_without_inputs(standards, lab_transform):
    ctx = MeasurementContext()
    assert spectral_to_lab(SpectralCurve.empty(), standards, ctx, lab_transform) is None
    assert spectral_to_lab({400: 0.5}, standards, ctx, None) is None
    assert spectral_to_lab({400: 0.5}, None, ctx, lab_transform) is None
    assert spectral_to_lab({400: 0.5}, standards, MeasurementContext(table="7"), lab_transform) is None


def test_spectral_to_lab_swallows_transform_errors(standards, broken_transform):
    with pytest.warns(CollaboratorFailureWarning, match="white point missing"):
        assert spectral_to_lab({400: 0.5}, standards, MeasurementContext(), broken_transform) is None
    assert issubclass(CollaboratorFailureWarning, TinctWarning)


def test_spectral_to_lab_rejects_non_finite_result(standards):
    assert spectral_to_lab({400: 0.5}, standards, MeasurementContext(),
                           lambda s, t: {"L": math.nan, "a": 0, "b": 0}) is None


def test_metadata_summary():
    summary = metadata_summary()
    assert summary["title"] == __title__ == "Tinct"
    assert set(summary) == {"title", "version", "license", "description", "copyright"}
