# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later
"""

import math

import numpy as np
import pytest

from tinct_colordiff import (
    FORMULAS,
    batch_color_difference,
    color_difference,
    delta_e_cmc,
    lab_difference_components,
)
from tinct_standards import Lab

# Sharma, Wu & Dalal (2005), pairs 1, 2 and 7
SHARMA_PAIRS = [
    ((50.0000, 2.6772, -79.7751), (50.0000, 0.0000, -82.7485), 2.0425),
    ((50.0000, 3.1571, -77.2803), (50.0000, 0.0000, -82.7485), 2.8615),
    ((50.0000, 0.0000, 0.0000), (50.0000, -1.0000, 2.0000), 2.3669),
]


def test_delta_e_76_is_euclidean():
    assert color_difference(Lab(50, 0, 0), Lab(50, 3, 4), "dE76") == pytest.approx(5.0)


@pytest.mark.parametrize("lab1, lab2, expected", SHARMA_PAIRS)
def test_delta_e_2000_reference_pairs(lab1, lab2, expected):
    assert color_difference(lab1, lab2, "dE00") == pytest.approx(expected, abs=1e-4)
    assert color_difference(lab2, lab1, "dE2000") == pytest.approx(expected, abs=1e-4)


@pytest.mark.parametrize("formula", sorted(FORMULAS))
def test_identical_colours_have_zero_difference(formula):
    lab = Lab(62.0, 18.5, -30.2)
    assert color_difference(lab, lab, formula) == pytest.approx(0.0, abs=1e-9)


def test_delta_e_94_uses_reference_chroma():
    ref, smp = Lab(50, 40, 10), Lab(50, 20, 5)
    assert color_difference(ref, smp, "dE94") != pytest.approx(color_difference(smp, ref, "dE94"))


def test_cmc_lightness_weight():
    ref, smp = Lab(50, 20, 20), Lab(54, 20, 20)
    assert color_difference(ref, smp, "dECMC2:1") == pytest.approx(0.5 * color_difference(ref, smp, "dECMC1:1"))
    assert delta_e_cmc(ref, smp) == pytest.approx(color_difference(ref, smp, "dECMC2:1"))


def test_unknown_formula():
    with pytest.raises(ValueError, match="Unknown colour difference formula"):
        color_difference(Lab(50, 0, 0), Lab(50, 1, 1), "dE99")


def test_malformed_lab():
    with pytest.raises(TypeError):
        color_difference({"L": 50}, Lab(50, 1, 1))


def test_loose_lab_inputs():
    assert color_difference({"L": 50, "a": 0, "b": 0}, "50, 3, 4", "dE76") == pytest.approx(5.0)


@pytest.mark.parametrize("formula", ["dE76", "dE94", "dE00", "dECMC2:1"])
def test_batch_matches_single(formula):
    ref = Lab(55.0, -10.0, 25.0)
    labs = np.array([[50.0, -12.0, 20.0], [70.0, 5.0, 0.0], [55.0, -10.0, 25.0]])
    batch = batch_color_difference(ref, labs, formula)
    singles = [color_difference(ref, tuple(row), formula) for row in labs]
    assert batch == pytest.approx(singles)


def test_batch_empty():
    assert batch_color_difference(Lab(50, 0, 0), np.empty((0, 3))).shape == (0,)


def test_lab_difference_components_wrap_hue():
    ref = Lab(50, 10 * math.cos(math.radians(170)), 10 * math.sin(math.radians(170)))
    smp = Lab(52, 10 * math.cos(math.radians(190)), 10 * math.sin(math.radians(190)))
    comps = lab_difference_components(ref, smp)
    assert comps.dL == pytest.approx(2.0)
    assert comps.dC == pytest.approx(0.0, abs=1e-9)
    assert comps.dH == pytest.approx(20.0)
