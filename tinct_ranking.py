# -*- coding: utf-8 -*-
"""
Tinct: Spectral density and match ranking for print colour
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: tinct_ranking.py — Match ranking engine.

Ranks a population of candidate colours by ΔE from one reference colour.

Pipeline
--------
    resolve_lab        ordered resolvers, first success wins
    score_candidates   eligibility -> process cap -> ΔE -> early exit -> sort
    filter_ranked      threshold (read time) -> truncate -> best-N fallback

Scored populations are cached by ``RankingKey``; the threshold is not part
of the key, so moving the threshold slider only re-filters.  A pass that
stopped early at the result quota is only reused at its own threshold.

``MatchRanker`` wraps the pipeline for an interactive session: it owns the
cache, a pass counter that lets newer passes supersede older ones, and the
currently displayed result tuple.
"""

from __future__ import annotations

import itertools
import logging
import math
import threading
from dataclasses import dataclass, field
from typing import (
    Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple,
)

import numpy as np

from tinct_colordiff import DEFAULT_FORMULA, batch_color_difference, color_difference
from tinct_spectral import RawSpectral, SpectralCurve, normalize_spectral_curve
from tinct_standards import (
    Lab,
    LabTransform,
    MeasurementContext,
    StandardsLibrary,
    parse_lab,
    spectral_to_lab,
)

logger = logging.getLogger(__name__)

__all__ = [
    "Measurement",
    "MatchCandidate",
    "RankedResult",
    "RankingSettings",
    "RankingKey",
    "ranking_cache_key",
    "ScoredPopulation",
    "RankingCache",
    "StatisticRow",
    "RankingOutcome",
    "resolve_lab",
    "score_candidates",
    "filter_ranked",
    "rank_candidates",
    "compute_statistics",
    "select_population",
    "MatchRanker",
]

DifferenceFn = Callable[[Lab, Lab, str], float]


# =============================================================================
# 1. INPUT TYPES
# =============================================================================

def _first(record: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if record.get(k) is not None:
            return record[k]
    return None


@dataclass(slots=True, frozen=True)
class Measurement:
    """One measurement of a colour under a given measurement mode (M0..M3)."""
    mode:           str
    lab:            Optional[Lab] = None
    spectral:       SpectralCurve = field(default_factory=SpectralCurve.empty)
    illuminant:     Optional[str] = None
    observer:       Optional[str] = None
    measurement_id: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", str(self.mode or "").upper())
        object.__setattr__(self, "lab", parse_lab(self.lab))
        object.__setattr__(self, "spectral", normalize_spectral_curve(self.spectral))

    @classmethod
    def from_dict(cls, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "Measurement":
        p: Dict[str, Any] = dict(params) if params else {}
        p.update(kwargs)
        spectral: RawSpectral = _first(p, "spectral", "spectral_data", "spectralData")
        return cls(
            mode=_first(p, "mode", "assigned_mode", "assignedMode") or "",
            lab=p.get("lab"),
            spectral=spectral,
            illuminant=p.get("illuminant"),
            observer=p.get("observer"),
            measurement_id=p.get("id", p.get("measurement_id")),
        )

    def matches_mode(self, mode: str) -> bool:
        return self.mode == str(mode).upper()


@dataclass(slots=True, frozen=True)
class MatchCandidate:
    """A colour that can take part in a ranking, as reference or candidate."""
    candidate_id: Any
    measurements: Tuple[Measurement, ...] = ()
    lab:          Optional[Lab] = None
    name:         Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "measurements", tuple(self.measurements))
        object.__setattr__(self, "lab", parse_lab(self.lab))

    @classmethod
    def from_dict(cls, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "MatchCandidate":
        """
        Build from a database-style record::

            {"id": ..., "name": ..., "lab_l": 50, "lab_a": 10, "lab_b": -5,
             "measurements": [{"mode": "M0", "lab": {...}, "spectral_data": {...}}]}
        """
        p: Dict[str, Any] = dict(params) if params else {}
        p.update(kwargs)
        lab = p.get("lab")
        if lab is None and all(p.get(k) is not None for k in ("lab_l", "lab_a", "lab_b")):
            lab = (p["lab_l"], p["lab_a"], p["lab_b"])
        measurements = tuple(
            m if isinstance(m, Measurement) else Measurement.from_dict(m)
            for m in (p.get("measurements") or ())
        )
        return cls(
            candidate_id=p.get("id", p.get("candidate_id")),
            measurements=measurements,
            lab=lab,
            name=p.get("name"),
        )

    @property
    def has_stored_lab(self) -> bool:
        return self.lab is not None or any(m.lab is not None for m in self.measurements)


@dataclass(slots=True, frozen=True)
class RankedResult:
    """
    One comparable candidate.  ``delta_e`` is ``inf`` when the difference
    function produced a non-finite value, so such results sort last.
    """
    candidate: MatchCandidate
    delta_e:   float
    lab:       Lab
    source:    str

    @property
    def candidate_id(self) -> Any:
        return self.candidate.candidate_id


@dataclass(slots=True, frozen=True)
class RankingSettings:
    """
    Attributes:
        max_results: Display limit.
        process_limit: Eligible candidates scored per pass at most.
        quota_factor: Scanning stops once ``quota_factor * max_results``
            candidates fall within the threshold.
        min_threshold: Lower clamp applied to the user threshold.
    """
    max_results:   int = 50
    process_limit: int = 500
    quota_factor:  int = 2
    min_threshold: float = 0.1

    def __post_init__(self) -> None:
        if self.max_results < 1 or self.process_limit < 1 or self.quota_factor < 1:
            raise ValueError(
                "RankingSettings: max_results, process_limit and quota_factor must be >= 1"
            )

    @classmethod
    def from_dict(cls, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "RankingSettings":
        p: Dict[str, Any] = dict(params) if params else {}
        p.update(kwargs)
        known = ("max_results", "process_limit", "quota_factor", "min_threshold")
        return cls(**{k: p[k] for k in known if k in p})

    @property
    def quota(self) -> int:
        return self.quota_factor * self.max_results

    def effective_threshold(self, threshold: Any) -> float:
        try:
            t = float(threshold)
        except (TypeError, ValueError):
            return self.min_threshold
        if not math.isfinite(t) and t != math.inf:
            return self.min_threshold
        return max(self.min_threshold, t)


# =============================================================================
# 2. CACHE
# =============================================================================

class RankingKey(NamedTuple):
    reference_id:    Any
    formula:         str
    mode:            str
    illuminant:      str
    observer:        str
    table:           str
    population_size: int


def ranking_cache_key(
    reference_id: Any,
    formula: str,
    context: MeasurementContext,
    population_size: int,
) -> RankingKey:
    """Signature of one scored population.  The threshold is deliberately absent."""
    mode, illuminant, observer, table = context.signature
    return RankingKey(reference_id, formula, mode, illuminant, observer, table, int(population_size))


@dataclass(slots=True, frozen=True)
class ScoredPopulation:
    """
    One scored candidate population, sorted ascending by ΔE.

    ``complete`` is ``False`` when scanning stopped at the result quota; the
    unscanned tail may then hold closer matches, so the entry only answers
    queries at the ``scan_threshold`` it was built with.
    """
    results:        Tuple[RankedResult, ...]
    scan_threshold: float
    complete:       bool = True

    def covers(self, threshold: float) -> bool:
        return self.complete or threshold == self.scan_threshold


class RankingCache:
    """
    Append-only ``RankingKey -> ScoredPopulation`` store.

    Entries are immutable and are never edited in place; a second ``put``
    under the same key replaces the entry.
    """

    __slots__ = ("_entries", "_lock")

    def __init__(self) -> None:
        self._entries: Dict[RankingKey, ScoredPopulation] = {}
        self._lock = threading.RLock()

    def get(self, key: RankingKey) -> Optional[ScoredPopulation]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: RankingKey, entry: ScoredPopulation) -> ScoredPopulation:
        with self._lock:
            self._entries[key] = entry
        return entry

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __repr__(self) -> str:
        return f"RankingCache(entries={len(self)})"


# =============================================================================
# 3. LAB RESOLUTION
# =============================================================================

@dataclass(slots=True, frozen=True)
class _LabQuery:
    context:   MeasurementContext
    standards: Optional[StandardsLibrary]
    transform: Optional[LabTransform]


def _mode_stored_lab(color: MatchCandidate, q: _LabQuery) -> Optional[Lab]:
    for m in color.measurements:
        if m.matches_mode(q.context.mode) and m.lab is not None:
            return m.lab
    return None


def _mode_spectral_lab(color: MatchCandidate, q: _LabQuery) -> Optional[Lab]:
    for m in color.measurements:
        if m.matches_mode(q.context.mode) and m.spectral:
            lab = spectral_to_lab(m.spectral, q.standards, q.context, q.transform)
            if lab is not None:
                return lab
    return None


def _other_measurement_lab(color: MatchCandidate, q: _LabQuery) -> Optional[Lab]:
    for m in color.measurements:
        if m.lab is not None:
            return m.lab
    return None


def _color_lab(color: MatchCandidate, q: _LabQuery) -> Optional[Lab]:
    return color.lab


_LAB_RESOLVERS: Tuple[Tuple[str, Callable[[MatchCandidate, _LabQuery], Optional[Lab]]], ...] = (
    ("stored",            _mode_stored_lab),
    ("spectral",          _mode_spectral_lab),
    ("other-measurement", _other_measurement_lab),
    ("color",             _color_lab),
)


def resolve_lab(
    color: MatchCandidate,
    context: MeasurementContext,
    standards: Optional[StandardsLibrary] = None,
    transform: Optional[LabTransform] = None,
) -> Tuple[Optional[Lab], Optional[str]]:
    """
    Comparable Lab of *color* under *context*, with the resolver that found it.

    Returns ``(None, None)`` when nothing resolves; the colour is then skipped.
    """
    q = _LabQuery(context, standards, transform)
    for source, resolver in _LAB_RESOLVERS:
        lab = resolver(color, q)
        if lab is not None:
            return lab, source
    return None, None


# =============================================================================
# 4. SCORING AND FILTERING
# =============================================================================

def _delta_e(difference: DifferenceFn, reference_lab: Lab, lab: Lab, formula: str) -> float:
    value = float(difference(reference_lab, lab, formula))
    return value if math.isfinite(value) else math.inf


def _scan_candidates(
    reference_lab: Lab,
    candidates: Iterable[MatchCandidate],
    formula: str,
    limit: float,
    context: MeasurementContext,
    reference_id: Any,
    standards: Optional[StandardsLibrary],
    transform: Optional[LabTransform],
    difference: DifferenceFn,
    settings: RankingSettings,
) -> ScoredPopulation:
    eligible = (
        c for c in candidates
        if reference_id is None or c.candidate_id != reference_id
    )

    results: List[RankedResult] = []
    within = 0
    complete = True
    for scanned, candidate in enumerate(itertools.islice(eligible, settings.process_limit), start=1):
        lab, source = resolve_lab(candidate, context, standards, transform)
        if lab is None:
            continue
        de = _delta_e(difference, reference_lab, lab, formula)
        results.append(RankedResult(candidate, de, lab, source))  # type: ignore[arg-type]
        if de <= limit:
            within += 1
            if within >= settings.quota:
                logger.debug("Early exit: %d results within %.2f after %d candidates",
                             within, limit, scanned)
                complete = False
                break

    results.sort(key=lambda r: r.delta_e)
    return ScoredPopulation(tuple(results), limit, complete)


def score_candidates(
    reference_lab: Lab,
    candidates: Iterable[MatchCandidate],
    formula: str,
    threshold: float,
    context: MeasurementContext,
    *,
    reference_id: Any = None,
    standards: Optional[StandardsLibrary] = None,
    transform: Optional[LabTransform] = None,
    difference: DifferenceFn = color_difference,
    settings: Optional[RankingSettings] = None,
) -> List[RankedResult]:
    """
    Score up to ``settings.process_limit`` eligible candidates and return
    every comparable one, sorted ascending by ΔE (stable on ties).

    Scanning stops early once ``settings.quota`` results lie within the
    threshold.  Nothing is truncated here.
    """
    settings = settings or RankingSettings()
    scored = _scan_candidates(
        reference_lab, candidates, formula, settings.effective_threshold(threshold), context,
        reference_id, standards, transform, difference, settings,
    )
    return list(scored.results)


def filter_ranked(
    results: Sequence[RankedResult],
    threshold: float,
    settings: Optional[RankingSettings] = None,
) -> List[RankedResult]:
    """
    Apply the current threshold to a sorted population.

    When nothing passes but the population is non-empty, the best
    ``max_results`` are returned regardless of threshold.
    """
    settings = settings or RankingSettings()
    limit = settings.effective_threshold(threshold)
    passed = [r for r in results if r.delta_e <= limit][: settings.max_results]
    if not passed and results:
        return list(results[: settings.max_results])
    return passed


def rank_candidates(
    reference: MatchCandidate,
    candidates: Iterable[MatchCandidate],
    formula: str = DEFAULT_FORMULA,
    threshold: float = 10.0,
    context: Optional[MeasurementContext] = None,
    *,
    standards: Optional[StandardsLibrary] = None,
    transform: Optional[LabTransform] = None,
    difference: DifferenceFn = color_difference,
    settings: Optional[RankingSettings] = None,
    cache: Optional[RankingCache] = None,
) -> List[RankedResult]:
    """
    Rank *candidates* by ΔE from *reference*.

    Args:
        reference: The colour everything is compared against.  It is never
            ranked against itself (matched by ``candidate_id``).
        candidates: Candidate population.
        formula: Name handed to *difference* (see ``tinct_colordiff.FORMULAS``).
        threshold: Maximum ΔE shown; clamped to ``settings.min_threshold``.
        context: Measurement mode and colorimetric conditions.
        standards: Loaded standards for spectral -> Lab; may be loading.
        transform: External spectral -> Lab transform.
        difference: ``(reference_lab, candidate_lab, formula) -> float``.
        settings: Limits; defaults to ``RankingSettings()``.
        cache: Scored populations keyed by ``ranking_cache_key``.

    Returns:
        At most ``settings.max_results`` results sorted ascending by ΔE.
        Empty only when the reference or every candidate is incomparable.
    """
    context = context or MeasurementContext()
    settings = settings or RankingSettings()
    population = tuple(candidates)
    limit = settings.effective_threshold(threshold)

    reference_lab, _ = resolve_lab(reference, context, standards, transform)
    if reference_lab is None:
        logger.debug("Reference %r has no comparable Lab under %s", reference.candidate_id, context)
        return []

    key = ranking_cache_key(reference.candidate_id, formula, context, len(population))
    entry = cache.get(key) if cache is not None else None
    if entry is not None and entry.covers(limit):
        logger.debug("Ranking cache hit for %s", key)
    else:
        if entry is not None:
            logger.debug("Cached pass for %s stopped early at %.2f; rescoring at %.2f",
                         key, entry.scan_threshold, limit)
        entry = _scan_candidates(
            reference_lab, population, formula, limit, context,
            reference.candidate_id, standards, transform, difference, settings,
        )
        if cache is not None and entry.results:
            cache.put(key, entry)
            logger.debug("Ranking cache store for %s (%d results, complete=%s)",
                         key, len(entry.results), entry.complete)

    return filter_ranked(entry.results, threshold, settings)


# =============================================================================
# 5. POPULATION STATISTICS
# =============================================================================

@dataclass(slots=True, frozen=True)
class StatisticRow:
    key:          str
    lab:          Lab
    delta_e:      float
    candidate_id: Any = None


def _population_delta_e(
    members: Sequence[RankedResult],
    ref: Lab,
    formula: str,
    difference: Optional[DifferenceFn],
) -> List[float]:
    if difference is not None:
        return [_delta_e(difference, ref, r.lab, formula) for r in members]
    labs = np.array([tuple(r.lab) for r in members], dtype=np.float64).reshape(-1, 3)
    values = batch_color_difference(ref, labs, formula)
    return [float(v) if math.isfinite(v) else math.inf for v in values]


def compute_statistics(
    population: Iterable[RankedResult],
    reference_lab: Any,
    formula: str = DEFAULT_FORMULA,
    difference: Optional[DifferenceFn] = None,
) -> List[StatisticRow]:
    """
    ``[min, avg, max]`` rows over the finite-ΔE members of *population*.

    ΔE is recomputed from each member's Lab so the rows depend on the
    population alone.  Without a *difference* callable the whole population
    goes through the vectorised kernel of *formula*.  The ``avg`` row is the
    Lab centroid of the members and carries no candidate id.  An empty
    population gives ``[]``.
    """
    ref = parse_lab(reference_lab)
    if ref is None:
        return []

    members = list(population)
    scored = [
        (r, de) for r, de in zip(members, _population_delta_e(members, ref, formula, difference))
        if math.isfinite(de)
    ]
    if not scored:
        return []
    scored.sort(key=lambda item: item[1])

    n = len(scored)
    centroid = Lab(
        sum(r.lab.L for r, _ in scored) / n,
        sum(r.lab.a for r, _ in scored) / n,
        sum(r.lab.b for r, _ in scored) / n,
    )
    (lo, lo_de), (hi, hi_de) = scored[0], scored[-1]
    avg_de = _delta_e(difference or color_difference, ref, centroid, formula)
    return [
        StatisticRow("min", lo.lab, lo_de, lo.candidate_id),
        StatisticRow("avg", centroid, avg_de, None),
        StatisticRow("max", hi.lab, hi_de, hi.candidate_id),
    ]


_POPULATIONS = ("all", "best", "worst")


def select_population(
    results: Iterable[RankedResult],
    population: str = "all",
    percent: float = 25.0,
) -> List[RankedResult]:
    """
    Best or worst *percent* of a result set (at least one member), or all
    of it.  The slice is taken from the ΔE-sorted results.
    """
    if population not in _POPULATIONS:
        raise ValueError(f"Unknown population '{population}'. Choose from: {list(_POPULATIONS)}")
    ordered = sorted(results, key=lambda r: r.delta_e)
    if not ordered or population == "all":
        return ordered
    count = max(1, math.floor(len(ordered) * percent / 100.0 + 0.5))
    return ordered[-count:] if population == "worst" else ordered[:count]


# =============================================================================
# 6. SESSION
# =============================================================================

def _display_rows(results: Sequence[RankedResult]) -> List[Tuple[Any, float, Lab]]:
    return [(r.candidate_id, r.delta_e, r.lab) for r in results]


@dataclass(slots=True, frozen=True)
class RankingOutcome:
    """
    Result of one ``MatchRanker.run``.

    ``status`` is ``"ok"``, ``"pending"`` (standards still loading and no
    stored Lab to fall back on), ``"no-reference"`` or ``"empty"``.
    """
    pass_id:    int
    results:    Tuple[RankedResult, ...]
    status:     str = "ok"
    from_cache: bool = False


class MatchRanker:
    """
    Stateful ranking session.

    Every ``run`` starts a new pass.  A pass may only replace the displayed
    results if no newer pass has started in the meantime; a re-ranking that
    yields the same candidates in the same order, with the same ΔE and Lab,
    keeps the existing tuple object so identity-based observers see no
    change.
    """

    __slots__ = ("uid", "settings", "difference", "standards", "transform",
                 "cache", "_lock", "_pass_counter", "_current_pass", "_displayed")

    _uid_gen: itertools.count = itertools.count()

    def __init__(
        self,
        settings: Optional[RankingSettings] = None,
        difference: Optional[DifferenceFn] = None,
        standards: Optional[StandardsLibrary] = None,
        transform: Optional[LabTransform] = None,
        cache: Optional[RankingCache] = None,
    ) -> None:
        self.uid: int = next(MatchRanker._uid_gen)
        self.settings = settings or RankingSettings()
        self.difference = difference
        self.standards = standards
        self.transform = transform
        self.cache = cache if cache is not None else RankingCache()
        self._lock = threading.RLock()
        self._pass_counter = itertools.count(1)
        self._current_pass = 0
        self._displayed: Tuple[RankedResult, ...] = ()

    @property
    def displayed(self) -> Tuple[RankedResult, ...]:
        with self._lock:
            return self._displayed

    @property
    def current_pass(self) -> int:
        with self._lock:
            return self._current_pass

    def begin_pass(self) -> int:
        """Start a pass; every pass started earlier becomes stale."""
        with self._lock:
            self._current_pass = next(self._pass_counter)
            return self._current_pass

    def commit(self, pass_id: int, results: Iterable[RankedResult]) -> bool:
        """
        Publish the results of *pass_id*.

        Returns ``False`` when the pass is stale (discarded) or when the
        results match the displayed ones in candidate order, ΔE and
        resolved Lab (displayed tuple kept).
        """
        new = tuple(results)
        with self._lock:
            if pass_id != self._current_pass:
                logger.debug("Discarding stale ranking pass %d (current %d)", pass_id, self._current_pass)
                return False
            if _display_rows(self._displayed) == _display_rows(new):
                return False
            self._displayed = new
            return True

    def run(
        self,
        reference: MatchCandidate,
        candidates: Iterable[MatchCandidate],
        formula: str = DEFAULT_FORMULA,
        threshold: float = 10.0,
        context: Optional[MeasurementContext] = None,
    ) -> RankingOutcome:
        context = context or MeasurementContext()
        pass_id = self.begin_pass()
        population = tuple(candidates)

        if not population:
            self.commit(pass_id, ())
            return RankingOutcome(pass_id, self.displayed, "empty")

        loading = self.standards is not None and not self.standards.is_ready
        if loading and not any(c.has_stored_lab for c in population):
            logger.debug("Standards %s, no stored Lab yet: pass %d pending",
                         self.standards.status.value, pass_id)  # type: ignore[union-attr]
            return RankingOutcome(pass_id, self.displayed, "pending")

        reference_lab, _ = resolve_lab(reference, context, self.standards, self.transform)
        if reference_lab is None:
            self.commit(pass_id, ())
            return RankingOutcome(pass_id, self.displayed, "no-reference")

        key = ranking_cache_key(reference.candidate_id, formula, context, len(population))
        entry = self.cache.get(key)
        from_cache = entry is not None and entry.covers(self.settings.effective_threshold(threshold))
        results = rank_candidates(
            reference, population, formula, threshold, context,
            standards=self.standards,
            transform=self.transform,
            difference=self.difference or color_difference,
            settings=self.settings,
            cache=self.cache,
        )
        self.commit(pass_id, results)
        return RankingOutcome(pass_id, self.displayed, "ok", from_cache)

    def statistics(
        self,
        reference_lab: Any,
        formula: str = DEFAULT_FORMULA,
        population: Optional[Iterable[RankedResult]] = None,
    ) -> List[StatisticRow]:
        """Statistics over *population*, defaulting to the displayed results."""
        members = self.displayed if population is None else population
        return compute_statistics(members, reference_lab, formula, self.difference)

    def __repr__(self) -> str:
        return f"MatchRanker(uid={self.uid}, pass={self.current_pass}, displayed={len(self.displayed)})"
