# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: tinct_standards.py — Lab values, measurement context and the
externally loaded standards (weighting tables) consumed by the engine.

Standards are never held in module state.  A ``StandardsLibrary`` is built
by the caller once the tables are loaded (or while they are still loading)
and passed explicitly into every entry point.
"""

from __future__ import annotations

import logging
import math
import re
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any, Dict, Mapping, NamedTuple, Optional, Protocol, Sequence, Tuple, Union,
)

from tinct_spectral import SpectralCurve

logger = logging.getLogger(__name__)

__all__ = [
    "TinctWarning",
    "MissingDataWarning",
    "DegenerateInputWarning",
    "CollaboratorFailureWarning",
    "Lab",
    "parse_lab",
    "MeasurementContext",
    "DensitySettings",
    "AstmTable",
    "StandardsStatus",
    "StandardsLibrary",
    "LabTransform",
    "spectral_to_lab",
]


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------
class TinctWarning(UserWarning):
    """Base class for data-quality diagnostics.  Never changes a result."""


class MissingDataWarning(TinctWarning):
    """Spectral or Lab input absent, or a reference wedge could not be found."""


class DegenerateInputWarning(TinctWarning):
    """A ratio formula hit a near-zero denominator and short-circuited to 0."""


class CollaboratorFailureWarning(TinctWarning):
    """An injected collaborator (spectral -> Lab transform) raised."""


# ---------------------------------------------------------------------------
# Lab
# ---------------------------------------------------------------------------
class Lab(NamedTuple):
    L: float
    a: float
    b: float

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.L) and math.isfinite(self.a) and math.isfinite(self.b)


_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def parse_lab(value: Any) -> Optional[Lab]:
    """
    Coerce the usual Lab representations into a ``Lab``.

    Accepts a ``Lab``, a mapping keyed ``L``/``l``, ``a``/``A``, ``b``/``B``,
    a 3-sequence, or text containing three numbers ("L: 50, a: 10, b: -5").
    Returns ``None`` for anything malformed or non-finite.
    """
    if value is None:
        return None

    if isinstance(value, Lab):
        return value if value.is_finite else None

    if isinstance(value, Mapping):
        comps = (
            value.get("L", value.get("l")),
            value.get("a", value.get("A")),
            value.get("b", value.get("B")),
        )
    elif isinstance(value, str):
        nums = _NUMBER_RE.findall(value)
        if len(nums) < 3:
            return None
        comps = tuple(nums[:3])
    elif isinstance(value, Sequence) and len(value) >= 3:
        comps = (value[0], value[1], value[2])
    else:
        return None

    floats = [_as_float(c) for c in comps]
    if any(f is None for f in floats):
        return None
    return Lab(*floats)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class MeasurementContext:
    """Measurement mode and the colorimetric conditions Lab is evaluated under."""
    mode:       str = "M0"
    illuminant: str = "D50"
    observer:   str = "2"
    table:      str = "5"

    @classmethod
    def from_dict(cls, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "MeasurementContext":
        p: Dict[str, Any] = dict(params) if params else {}
        p.update(kwargs)
        return cls(**{k: str(p[k]) for k in ("mode", "illuminant", "observer", "table") if p.get(k) is not None})

    @property
    def signature(self) -> Tuple[str, str, str, str]:
        return (self.mode.upper(), self.illuminant, self.observer, self.table)


_INTERPOLATION_METHODS = ("linear", "pchip", "cubicspline", "akima", "makima")


@dataclass(slots=True, frozen=True)
class DensitySettings:
    """How spectral curves are resampled onto the density weighting grid."""
    interpolation: str = "linear"

    def __post_init__(self) -> None:
        if self.interpolation not in _INTERPOLATION_METHODS:
            raise ValueError(
                f"Unknown interpolation type '{self.interpolation}'. "
                f"Choose from: {list(_INTERPOLATION_METHODS)}"
            )

    @classmethod
    def from_dict(cls, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "DensitySettings":
        p: Dict[str, Any] = dict(params) if params else {}
        p.update(kwargs)
        return cls(**{k: v for k, v in p.items() if k == "interpolation"})


# ---------------------------------------------------------------------------
# Standards
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class AstmTable:
    """
    Descriptor of one tristimulus weighting table.

    ``weights`` is opaque to this package; it is handed unchanged to the
    injected ``LabTransform``.
    """
    illuminant:   str
    observer:     str
    table_number: int
    weights:      Any = None

    def matches(self, context: MeasurementContext) -> bool:
        try:
            table_number = int(str(context.table))
        except ValueError:
            return False
        return (
            self.illuminant == context.illuminant
            and str(self.observer) == str(context.observer)
            and self.table_number == table_number
        )


class StandardsStatus(str, Enum):
    READY   = "ready"
    LOADING = "loading"
    FAILED  = "failed"


@dataclass(slots=True, frozen=True)
class StandardsLibrary:
    """
    Snapshot of the externally loaded standards.

    The loader may hand out a library in ``LOADING`` or ``FAILED`` state; the
    engine then treats spectral -> Lab as unavailable and keeps going with
    stored Lab only.
    """
    astm_tables:    Tuple[AstmTable, ...] = ()
    density_table:  Any = None
    status:         StandardsStatus = StandardsStatus.READY
    selected_table: Optional[AstmTable] = None

    @property
    def is_ready(self) -> bool:
        return self.status is StandardsStatus.READY

    def weighting_tables_for(self, context: MeasurementContext) -> Tuple[AstmTable, ...]:
        """Tables matching illuminant/observer/table; falls back to the selected table."""
        if not self.is_ready:
            return ()
        pool = list(self.astm_tables)
        if self.selected_table is not None:
            pool.append(self.selected_table)
        matched = tuple(t for t in pool if t.matches(context))
        if not matched and self.selected_table is not None:
            return (self.selected_table,)
        return matched


class LabTransform(Protocol):
    """``weightedSpectralToLab`` contract.  May raise on incomplete tables."""

    def __call__(self, spectral: Mapping[Any, float], weighting_tables: Sequence["AstmTable"]) -> Any: ...


def spectral_to_lab(
    spectral: Union[SpectralCurve, Mapping[Any, float], None],
    standards: Optional[StandardsLibrary],
    context: MeasurementContext,
    transform: Optional[LabTransform],
) -> Optional[Lab]:
    """
    Guarded call into the external spectral -> Lab transform.

    Returns ``None`` whenever no Lab can be produced: no spectral data, no
    transform, standards not loaded, no matching weighting table, the
    transform raised, or it returned something that is not a finite Lab.
    """
    if not spectral or transform is None or standards is None:
        return None

    tables = standards.weighting_tables_for(context)
    if not tables:
        logger.debug("No weighting table for %s (status=%s)", context, standards.status.value)
        return None

    try:
        payload = spectral.as_dict() if isinstance(spectral, SpectralCurve) else spectral
        raw = transform(payload, tables)
    except Exception as exc:
        warnings.warn(
            f"spectral -> Lab transform failed under {context.illuminant}/"
            f"{context.observer}/table {context.table}: {exc!r}",
            CollaboratorFailureWarning,
            stacklevel=2,
        )
        return None

    return parse_lab(raw)
