# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later
"""

import pytest

from tinct_standards import (
    CollaboratorFailureWarning,
    DegenerateInputWarning,
    Lab,
    MeasurementContext,
    MissingDataWarning,
    StandardsLibrary,
    StandardsStatus,
)
from tinct_tone import (
    ToneCalculationMode,
    ToneContext,
    WedgeSample,
    build_tone_reproduction_curve,
    calculate_colorimetric_tone_value,
    calculate_dot_area_from_density,
    find_reference,
    resolve_references,
    tone_value_increase_summary,
)


def _density_wedge(tint, density, **kwargs):
    reflectance = 10.0 ** -density
    return WedgeSample(tint, {wl: reflectance for wl in range(400, 701, 10)}, **kwargs)


# ---------------------------------------------------------------------------
# Formulas
# ---------------------------------------------------------------------------
def test_murray_davies_boundaries():
    assert calculate_dot_area_from_density(0.05, 0.05, 1.60) == pytest.approx(0.0)
    assert calculate_dot_area_from_density(1.60, 0.05, 1.60) == pytest.approx(100.0)


def test_murray_davies_reference_values():
    expected = 100 * (10 ** -0.05 - 10 ** -0.80) / (10 ** -0.05 - 10 ** -1.60)
    assert calculate_dot_area_from_density(0.80, 0.05, 1.60) == pytest.approx(expected)
    assert expected == pytest.approx(84.60, abs=0.01)


def test_murray_davies_is_not_clamped():
    assert calculate_dot_area_from_density(2.0, 0.05, 1.60) > 100.0
    assert calculate_dot_area_from_density(0.0, 0.05, 1.60) < 0.0


def test_murray_davies_degenerate_denominator():
    with pytest.warns(DegenerateInputWarning):
        assert calculate_dot_area_from_density(0.5, 0.3, 0.3) == 0.0


def test_murray_davies_missing_input():
    assert calculate_dot_area_from_density(None, 0.05, 1.6) is None


def test_sctv_boundaries(paper_lab, solid_lab):
    assert calculate_colorimetric_tone_value(paper_lab, paper_lab, solid_lab) == pytest.approx(0.0)
    assert calculate_colorimetric_tone_value(solid_lab, paper_lab, solid_lab) == pytest.approx(100.0)


def test_sctv_may_exceed_100(paper_lab):
    solid = Lab(60.0, -30.0, -40.0)
    beyond = Lab(40.0, -45.0, -60.0)
    assert calculate_colorimetric_tone_value(beyond, paper_lab, solid) > 100.0


def test_sctv_degenerate_denominator(paper_lab):
    with pytest.warns(DegenerateInputWarning):
        assert calculate_colorimetric_tone_value(Lab(50, 0, 0), paper_lab, paper_lab) == 0.0


def test_sctv_accepts_loose_lab_and_rejects_missing(paper_lab, solid_lab):
    assert calculate_colorimetric_tone_value("L 95 a 0.5 b -2", [95, 0.5, -2], solid_lab) == pytest.approx(0.0)
    assert calculate_colorimetric_tone_value(None, paper_lab, solid_lab) is None


# ---------------------------------------------------------------------------
# Reference resolution
# ---------------------------------------------------------------------------
def test_reference_by_exact_percentage():
    ladder = [_density_wedge(t, 0.05 + t / 100) for t in (0, 50, 100)]
    refs = resolve_references(ladder)
    assert refs.substrate is ladder[0] and refs.substrate_strategy == "exact-percentage"
    assert refs.solid is ladder[2] and refs.solid_strategy == "exact-percentage"


def test_reference_by_substrate_flag_and_highest_solid():
    ladder = [
        _density_wedge(5, 0.06, is_substrate=True),
        _density_wedge(50, 0.8),
        _density_wedge(92, 1.4),
        _density_wedge(95, 1.5),
    ]
    substrate, how = find_reference(ladder, 0)
    assert substrate is ladder[0] and how == "substrate-flag"
    solid, how = find_reference(ladder, 100)
    assert solid is ladder[3] and how == "highest-solid"


def test_reference_by_density():
    ladder = [_density_wedge(10, 0.1), _density_wedge(40, 0.5), _density_wedge(80, 1.2)]
    substrate, how = find_reference(ladder, 0)
    solid, _ = find_reference(ladder, 100)
    assert how == "density"
    assert substrate is ladder[0]
    assert solid is ladder[2]


def test_reference_not_found():
    ladder = [WedgeSample(25, lab=(80, 0, 0)), WedgeSample(50, lab=(70, 0, 0))]
    assert find_reference(ladder, 0) == (None, None)


# ---------------------------------------------------------------------------
# Curve assembly
# ---------------------------------------------------------------------------
def test_end_to_end_density_curve():
    ladder = [_density_wedge(100, 1.60), _density_wedge(0, 0.05), _density_wedge(50, 0.80)]
    points = build_tone_reproduction_curve(ladder, "density")
    assert [p.input for p in points] == [0.0, 50.0, 100.0]
    assert [p.index for p in points] == [0, 1, 2]
    assert points[1].output == pytest.approx(84.60, abs=0.01)
    assert points[1].tvi == pytest.approx(34.60, abs=0.01)


def test_weighted_density_curve_uses_selected_channel(weighting_table, cyan_ladder):
    points = build_tone_reproduction_curve(cyan_ladder, ToneCalculationMode.DENSITY,
                                           ToneContext(weighting_table=weighting_table))
    # red channel: (0.9 - 0.2) / (0.9 - 0.05)
    assert points[1].output == pytest.approx(100 * 0.7 / 0.85)
    assert points[1].tvi == pytest.approx(100 * 0.7 / 0.85 - 50)


def test_density_table_from_standards(weighting_table, cyan_ladder):
    context = ToneContext(standards=StandardsLibrary(density_table=weighting_table))
    points = build_tone_reproduction_curve(cyan_ladder, "density", context)
    assert points[1].output == pytest.approx(100 * 0.7 / 0.85)


def test_endpoints_are_identity_in_every_mode(cyan_ladder, paper_lab, solid_lab):
    density_points = build_tone_reproduction_curve(cyan_ladder, "density")
    lab_ladder = [
        {"tint": 0, "lab": paper_lab},
        {"tint": 40, "lab": {"L": 80, "a": -15, "b": -20}},
        {"tint": 100, "lab": solid_lab},
    ]
    lab_points = build_tone_reproduction_curve(lab_ladder, "colorimetric")
    for points in (density_points, lab_points):
        assert (points[0].output, points[0].tvi) == (0.0, 0.0)
        assert (points[-1].output, points[-1].tvi) == (100.0, 0.0)


def test_colorimetric_curve(paper_lab, solid_lab):
    ladder = [
        WedgeSample(0, lab=paper_lab),
        WedgeSample(30, lab=paper_lab),
        WedgeSample(70, lab=solid_lab),
        WedgeSample(100, lab=solid_lab),
    ]
    points = build_tone_reproduction_curve(ladder, ToneCalculationMode.COLORIMETRIC)
    assert points[1].output == pytest.approx(0.0)
    assert points[1].tvi == pytest.approx(-30.0)
    assert points[2].output == pytest.approx(100.0)
    assert points[2].tvi == pytest.approx(30.0)


def test_colorimetric_curve_resolves_lab_from_spectral(standards, lab_transform):
    ladder = [
        {"tint": 0, "spectral": {wl: 0.9 for wl in range(400, 701, 10)}},
        {"tint": 50, "spectral": {wl: 0.5 for wl in range(400, 701, 10)}},
        {"tint": 100, "spectral": {wl: 0.1 for wl in range(400, 701, 10)}},
    ]
    context = ToneContext(standards=standards, lab_transform=lab_transform,
                          measurement=MeasurementContext(illuminant="D50", observer="2", table="5"))
    points = build_tone_reproduction_curve(ladder, "colorimetric", context)
    assert points[1].output == pytest.approx(50.0)
    assert points[1].tvi == pytest.approx(0.0, abs=1e-9)


def test_colorimetric_curve_with_failing_transform_is_identity(standards, broken_transform):
    ladder = [
        {"tint": 0, "spectral": {wl: 0.9 for wl in range(400, 701, 10)}},
        {"tint": 50, "spectral": {wl: 0.5 for wl in range(400, 701, 10)}},
        {"tint": 100, "spectral": {wl: 0.1 for wl in range(400, 701, 10)}},
    ]
    context = ToneContext(standards=standards, lab_transform=broken_transform)
    with pytest.warns(CollaboratorFailureWarning):
        points = build_tone_reproduction_curve(ladder, "colorimetric", context)
    assert all(p.is_identity for p in points)


def test_colorimetric_curve_while_standards_loading(lab_transform):
    ladder = [
        {"tint": 0, "spectral": {wl: 0.9 for wl in range(400, 701, 10)}},
        {"tint": 50, "spectral": {wl: 0.5 for wl in range(400, 701, 10)}},
        {"tint": 100, "spectral": {wl: 0.1 for wl in range(400, 701, 10)}},
    ]
    context = ToneContext(standards=StandardsLibrary(status=StandardsStatus.LOADING),
                          lab_transform=lab_transform)
    points = build_tone_reproduction_curve(ladder, "colorimetric", context)
    assert all(p.is_identity for p in points)


def test_missing_reference_gives_identity_curve():
    ladder = [WedgeSample(25, lab=(80, 0, 0)), WedgeSample(50, lab=(70, 0, 0))]
    with pytest.warns(MissingDataWarning):
        points = build_tone_reproduction_curve(ladder, "density")
    assert [(p.input, p.output, p.tvi) for p in points] == [(25.0, 25.0, 0.0), (50.0, 50.0, 0.0)]


@pytest.mark.parametrize("mode", ["density", "colorimetric"])
def test_single_measured_wedge_is_not_both_references(mode):
    ladder = [WedgeSample(20), _density_wedge(50, 0.5, lab=(60, 0, 0)), WedgeSample(70)]
    refs = resolve_references(ladder)
    assert refs.substrate is refs.solid is ladder[1]
    assert not refs.is_complete
    with pytest.warns(MissingDataWarning):
        points = build_tone_reproduction_curve(ladder, mode)
    assert all(p.is_identity for p in points)
    assert [p.output for p in points] == [20.0, 50.0, 70.0]


def test_wedge_without_data_reports_nominal():
    ladder = [_density_wedge(0, 0.05), WedgeSample(50), _density_wedge(75, 1.0), _density_wedge(100, 1.6)]
    points = build_tone_reproduction_curve(ladder, "density")
    assert points[1].is_identity
    assert not points[2].is_identity


def test_reference_wedge_not_at_endpoint_reports_identity():
    ladder = [_density_wedge(0, 0.05), _density_wedge(50, 0.8), _density_wedge(95, 1.5)]
    points = build_tone_reproduction_curve(ladder, "density")
    assert points[2].is_identity
    assert points[1].output == pytest.approx(
        100 * (10 ** -0.05 - 10 ** -0.8) / (10 ** -0.05 - 10 ** -1.5)
    )


def test_unknown_mode():
    with pytest.raises(ValueError):
        build_tone_reproduction_curve([], "spectral")


def test_empty_ladder():
    assert build_tone_reproduction_curve([]) == []


def test_tvi_summary():
    ladder = [_density_wedge(0, 0.05), _density_wedge(25, 0.3), _density_wedge(50, 0.8), _density_wedge(100, 1.6)]
    summary = tone_value_increase_summary(build_tone_reproduction_curve(ladder))
    assert summary.max_point.input == 50.0
    assert summary.mean_tvi > 0.0
    assert tone_value_increase_summary([]) is None
