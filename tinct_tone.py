# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: tinct_tone.py — Tone reproduction curves from a tint ladder.

A ladder of wedges (0 % substrate ... 100 % solid) is reduced to one
``ToneValuePoint`` per wedge:

    output  measured tone value (Murray-Davies dot area or ISO 20654 SCTV)
    tvi     output - nominal tint

The 0 % and 100 % wedges, and the wedges used as substrate / solid
references, report ``output = input, tvi = 0`` by definition.  A wedge
without usable data does the same; a missing reference turns the whole
curve into the identity.  Nothing in this module raises for bad data.

References:
    - ISO 5-3 "Photography and graphic technology - Density measurements"
    - ISO 20654 "Graphic technology - Measurement and calculation of spot
      colour tone value"
    - Murray, A. (1936). "Monochrome reproduction in photoengraving".
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union,
)

from tinct_density import (
    WeightingTableLike,
    auto_select_density_channel,
    calculate_basic_density,
    calculate_weighted_density,
)
from tinct_spectral import RawSpectral, SpectralCurve, normalize_spectral_curve
from tinct_standards import (
    DegenerateInputWarning,
    DensitySettings,
    Lab,
    LabTransform,
    MeasurementContext,
    MissingDataWarning,
    StandardsLibrary,
    parse_lab,
    spectral_to_lab,
)

logger = logging.getLogger(__name__)

__all__ = [
    "WedgeSample",
    "ToneCalculationMode",
    "ToneValuePoint",
    "ToneContext",
    "ReferencePair",
    "ToneSummary",
    "find_reference",
    "resolve_references",
    "calculate_dot_area_from_density",
    "calculate_colorimetric_tone_value",
    "to_lxlylz",
    "build_tone_reproduction_curve",
    "tone_value_increase_summary",
]

_PERCENT_TOLERANCE = 0.1
_SOLID_FLOOR = 90.0
_MURRAY_DAVIES_EPS = 1e-5
_SCTV_EPS = 1e-6


# ---------------------------------------------------------------------------
# 1.  Data classes
# ---------------------------------------------------------------------------
def _first(record: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if record.get(k) is not None:
            return record[k]
    return None


@dataclass(slots=True, frozen=True)
class WedgeSample:
    """One measured patch of a tint ladder."""
    tint_percentage: float
    spectral:        SpectralCurve = field(default_factory=SpectralCurve.empty)
    lab:             Optional[Lab] = None
    is_substrate:    bool = False
    sample_id:       Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "tint_percentage", float(self.tint_percentage))
        object.__setattr__(self, "spectral", normalize_spectral_curve(self.spectral))
        object.__setattr__(self, "lab", parse_lab(self.lab))

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> "WedgeSample":
        """Accepts camelCase and snake_case field names."""
        tint = _first(record, "tintPercentage", "tint_percentage", "tint")
        return cls(
            tint_percentage=float(tint) if tint is not None else 0.0,
            spectral=_first(record, "spectralData", "spectral_data", "spectral"),
            lab=record.get("lab"),
            is_substrate=bool(_first(record, "isSubstrate", "is_substrate")),
            sample_id=record.get("id"),
        )

    @property
    def has_spectral(self) -> bool:
        return bool(self.spectral)


class ToneCalculationMode(str, Enum):
    DENSITY      = "density"
    COLORIMETRIC = "colorimetric"


@dataclass(slots=True, frozen=True)
class ToneValuePoint:
    input:  float
    output: float
    tvi:    float
    index:  int

    @property
    def is_identity(self) -> bool:
        return self.tvi == 0.0 and self.output == self.input


@dataclass(slots=True, frozen=True)
class ToneContext:
    """
    Everything a curve calculation needs besides the wedges.

    ``weighting_table`` falls back to ``standards.density_table``.
    ``lab_transform`` and ``standards`` are only consulted in colorimetric
    mode, for wedges that carry spectral data but no stored Lab.
    """
    weighting_table: WeightingTableLike = None
    standards:       Optional[StandardsLibrary] = None
    measurement:     MeasurementContext = field(default_factory=MeasurementContext)
    lab_transform:   Optional[LabTransform] = None
    density:         DensitySettings = field(default_factory=DensitySettings)
    ink_type:        Optional[str] = None

    @property
    def density_table(self) -> WeightingTableLike:
        if self.weighting_table is not None:
            return self.weighting_table
        if self.standards is not None:
            return self.standards.density_table
        return None


@dataclass(slots=True, frozen=True)
class ReferencePair:
    substrate:          Optional[WedgeSample]
    solid:              Optional[WedgeSample]
    substrate_strategy: Optional[str] = None
    solid_strategy:     Optional[str] = None

    @property
    def is_complete(self) -> bool:
        """Both references found, and not the same wedge."""
        return self.substrate is not None and self.solid is not None and self.substrate is not self.solid


@dataclass(slots=True, frozen=True)
class ToneSummary:
    max_point: ToneValuePoint
    mean_tvi:  float


# ---------------------------------------------------------------------------
# 2.  Reference wedge resolution
# ---------------------------------------------------------------------------
DensityFn = Callable[[RawSpectral], float]
_ReferenceStrategy = Callable[[Sequence[WedgeSample], float, DensityFn], Optional[WedgeSample]]


def _by_exact_percentage(samples: Sequence[WedgeSample], target: float, density_fn: DensityFn) -> Optional[WedgeSample]:
    return next((s for s in samples if abs(s.tint_percentage - target) < _PERCENT_TOLERANCE), None)


def _by_substrate_flag(samples: Sequence[WedgeSample], target: float, density_fn: DensityFn) -> Optional[WedgeSample]:
    if target != 0.0:
        return None
    return next((s for s in samples if s.is_substrate), None)


def _by_highest_solid(samples: Sequence[WedgeSample], target: float, density_fn: DensityFn) -> Optional[WedgeSample]:
    if target != 100.0:
        return None
    high = [s for s in samples if s.tint_percentage >= _SOLID_FLOOR]
    if not high:
        return None
    return max(high, key=lambda s: s.tint_percentage)


def _by_density(samples: Sequence[WedgeSample], target: float, density_fn: DensityFn) -> Optional[WedgeSample]:
    measured = [(density_fn(s.spectral), s) for s in samples if s.has_spectral]
    if not measured:
        return None
    if target == 0.0:
        return min(measured, key=lambda t: t[0])[1]
    if target == 100.0:
        return max(measured, key=lambda t: t[0])[1]
    return None


_REFERENCE_STRATEGIES: Tuple[Tuple[str, _ReferenceStrategy], ...] = (
    ("exact-percentage", _by_exact_percentage),
    ("substrate-flag",   _by_substrate_flag),
    ("highest-solid",    _by_highest_solid),
    ("density",          _by_density),
)


def find_reference(
    samples: Sequence[WedgeSample],
    target: float,
    density_fn: DensityFn = calculate_basic_density,
) -> Tuple[Optional[WedgeSample], Optional[str]]:
    """
    Locate the substrate (``target=0``) or solid (``target=100``) wedge.

    Returns ``(wedge, strategy_name)``, or ``(None, None)`` when no strategy
    succeeds.  *samples* are expected in ascending tint order.
    """
    for name, strategy in _REFERENCE_STRATEGIES:
        found = strategy(samples, float(target), density_fn)
        if found is not None:
            return found, name
    return None, None


def resolve_references(
    samples: Sequence[WedgeSample],
    density_fn: DensityFn = calculate_basic_density,
) -> ReferencePair:
    substrate, sub_how = find_reference(samples, 0.0, density_fn)
    solid, sol_how = find_reference(samples, 100.0, density_fn)
    return ReferencePair(substrate, solid, sub_how, sol_how)


# ---------------------------------------------------------------------------
# 3.  Tone value formulas
# ---------------------------------------------------------------------------
def calculate_dot_area_from_density(
    tone_density: Optional[float],
    paper_density: Optional[float],
    solid_density: Optional[float],
) -> Optional[float]:
    """
    Murray-Davies apparent dot area in percent.

        A = 100 · (10^-Dp - 10^-Dt) / (10^-Dp - 10^-Ds)

    Not clamped: values outside [0, 100] flag over- or under-inking.
    """
    if tone_density is None or paper_density is None or solid_density is None:
        return None

    r_tone = 10.0 ** -tone_density
    r_paper = 10.0 ** -paper_density
    r_solid = 10.0 ** -solid_density

    denominator = r_paper - r_solid
    if abs(denominator) < _MURRAY_DAVIES_EPS:
        warnings.warn(
            f"Murray-Davies: paper and solid reflectance indistinguishable "
            f"(Dp={paper_density:.4f}, Ds={solid_density:.4f})",
            DegenerateInputWarning,
            stacklevel=2,
        )
        return 0.0

    return 100.0 * (r_paper - r_tone) / denominator


def to_lxlylz(lab: Lab) -> Tuple[float, float, float]:
    """ISO 20654 auxiliary coordinates (Lx, Ly, Lz)."""
    return (lab.L + 116.0 * lab.a / 500.0, lab.L, lab.L - 116.0 * lab.b / 200.0)


def calculate_colorimetric_tone_value(
    tint_lab: Any,
    substrate_lab: Any,
    solid_lab: Any,
) -> Optional[float]:
    """
    ISO 20654 spot colour tone value (SCTV) in percent.

        SCTV = 100 · sqrt( |P_substrate - P_tint|² / |P_substrate - P_solid|² )

    with P = (Lx, Ly, Lz).  Not clamped; SCTV may exceed 100 %.
    """
    tint, substrate, solid = parse_lab(tint_lab), parse_lab(substrate_lab), parse_lab(solid_lab)
    if tint is None or substrate is None or solid is None:
        return None

    p_sub = to_lxlylz(substrate)
    p_tint = to_lxlylz(tint)
    p_solid = to_lxlylz(solid)

    numerator = sum((s - t) ** 2 for s, t in zip(p_sub, p_tint))
    denominator = sum((s - d) ** 2 for s, d in zip(p_sub, p_solid))

    if denominator < _SCTV_EPS:
        warnings.warn(
            f"SCTV: substrate and solid are colorimetrically indistinguishable "
            f"(|ΔP|²={denominator:.2e})",
            DegenerateInputWarning,
            stacklevel=2,
        )
        return 0.0

    return math.sqrt(numerator / denominator) * 100.0


# ---------------------------------------------------------------------------
# 4.  Curve assembly
# ---------------------------------------------------------------------------
def _coerce_samples(samples: Iterable[Union[WedgeSample, Mapping[str, Any]]]) -> List[WedgeSample]:
    out: List[WedgeSample] = []
    for s in samples or ():
        if isinstance(s, WedgeSample):
            out.append(s)
        elif isinstance(s, Mapping):
            out.append(WedgeSample.from_dict(s))
        else:
            raise TypeError(f"Unsupported wedge sample type: {type(s)}")
    return out


def _identity(samples: Sequence[WedgeSample]) -> List[ToneValuePoint]:
    return [
        ToneValuePoint(s.tint_percentage, s.tint_percentage, 0.0, i)
        for i, s in enumerate(samples)
    ]


def _wedge_lab(sample: WedgeSample, context: ToneContext) -> Optional[Lab]:
    if sample.lab is not None:
        return sample.lab
    return spectral_to_lab(sample.spectral, context.standards, context.measurement, context.lab_transform)


def build_tone_reproduction_curve(
    samples: Iterable[Union[WedgeSample, Mapping[str, Any]]],
    mode: Union[ToneCalculationMode, str] = ToneCalculationMode.DENSITY,
    context: Optional[ToneContext] = None,
) -> List[ToneValuePoint]:
    """
    Measured tone value and TVI for every wedge of a tint ladder.

    Args:
        samples: Wedges in any order (``WedgeSample`` or record dicts).
        mode: 'density' (Murray-Davies on ISO 5-3 density) or
            'colorimetric' (ISO 20654 SCTV).
        context: Weighting tables, standards and measurement conditions.

    Returns:
        One point per wedge, ascending by tint, ``index`` being the position
        in that order.
    """
    mode = ToneCalculationMode(mode)
    context = context or ToneContext()
    ladder = sorted(_coerce_samples(samples), key=lambda s: s.tint_percentage)
    if not ladder:
        return []

    refs = resolve_references(ladder)
    if not refs.is_complete:
        warnings.warn(
            "Missing substrate or solid reference for tone value calculation "
            f"(substrate={refs.substrate is not None}, solid={refs.solid is not None}, "
            f"same_sample={refs.substrate is not None and refs.substrate is refs.solid}, "
            f"tints={[s.tint_percentage for s in ladder]})",
            MissingDataWarning,
            stacklevel=2,
        )
        return _identity(ladder)

    substrate, solid = refs.substrate, refs.solid
    logger.debug("References: substrate=%s%% (%s), solid=%s%% (%s)",
                 substrate.tint_percentage, refs.substrate_strategy,
                 solid.tint_percentage, refs.solid_strategy)

    if mode is ToneCalculationMode.DENSITY:
        table = context.density_table
        method = context.density.interpolation
        channel = "visual"
        if table is not None and substrate.has_spectral and solid.has_spectral:
            channel = auto_select_density_channel(
                ink_type=context.ink_type,
                substrate=substrate.spectral,
                solid=solid.spectral,
                table=table,
                method=method,
            ).channel

        def density(sample: WedgeSample) -> Optional[float]:
            if not sample.has_spectral:
                return None
            if table is not None:
                return calculate_weighted_density(sample.spectral, channel, table, method)
            return calculate_basic_density(sample.spectral)

        paper_density = density(substrate)
        solid_density = density(solid)

        def measure(sample: WedgeSample) -> Optional[float]:
            return calculate_dot_area_from_density(density(sample), paper_density, solid_density)

    else:
        substrate_lab = _wedge_lab(substrate, context)
        solid_lab = _wedge_lab(solid, context)

        def measure(sample: WedgeSample) -> Optional[float]:
            return calculate_colorimetric_tone_value(_wedge_lab(sample, context), substrate_lab, solid_lab)

    points: List[ToneValuePoint] = []
    for index, sample in enumerate(ladder):
        nominal = sample.tint_percentage
        if nominal in (0.0, 100.0) or sample is substrate or sample is solid:
            points.append(ToneValuePoint(nominal, nominal, 0.0, index))
            continue

        measured = measure(sample)
        if measured is None:
            logger.debug("No usable data for %s%% wedge; reporting nominal", nominal)
            points.append(ToneValuePoint(nominal, nominal, 0.0, index))
            continue

        points.append(ToneValuePoint(nominal, measured, measured - nominal, index))

    return points


def tone_value_increase_summary(points: Sequence[ToneValuePoint]) -> Optional[ToneSummary]:
    """Largest |TVI| and mean TVI over the interior (0 < tint < 100) points."""
    interior = [p for p in points if 0.0 < p.input < 100.0]
    if not interior:
        return None
    max_point = max(interior, key=lambda p: abs(p.tvi))
    return ToneSummary(max_point, sum(p.tvi for p in interior) / len(interior))
