"""Sensitivity surface / fragility map.

Sweeps one scenario lever across a range, re-running the Monte Carlo engine at
every step with only that lever changed, then reads the resulting
win-probability curve for cliffs, flat stretches, a safe zone, and fragility
points. The analysis depends on nothing but the ``(lever_value, win_prob)``
sequence, so it can be re-derived from the returned points alone.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import (
    DEFAULT_TARGET_WIN_PROB,
    LEVERS,
    SURFACE_DEFAULT_RUNS,
    SURFACE_DEFAULT_STEPS,
    SURFACE_MIN_RUNS,
    SURFACE_MIN_STEPS,
)
from .errors import StructuralError
from .monte_carlo import run_monte_carlo_sim
from .scenario import Scenario, SimulationConfig
from .utils import clamp, safe_num

logger = logging.getLogger(__name__)

FLAT_DELTA = 0.002


@dataclass(frozen=True)
class LeverSpec:
    key: str
    field_name: str
    unit: str
    clamp_lo: float
    clamp_hi: float


@dataclass(frozen=True)
class SweepRequest:
    lever: str
    min_value: float
    max_value: float
    steps: int = SURFACE_DEFAULT_STEPS

    def __post_init__(self):
        if self.lever not in LEVERS:
            raise StructuralError(f"Unknown lever {self.lever!r}; expected one of {tuple(LEVERS)}.")
        if safe_num(self.min_value) is None or safe_num(self.max_value) is None:
            raise StructuralError("Sweep bounds must be finite numbers.")


@dataclass(frozen=True)
class SurfacePoint:
    lever_value: float
    win_prob: float
    p10: float
    p50: float
    p90: float


@dataclass(frozen=True)
class Transition:
    at: float
    delta: float


@dataclass(frozen=True)
class ValueRange:
    min: float
    max: float


@dataclass(frozen=True)
class SurfaceAnalysis:
    cliff_points: List[Transition] = field(default_factory=list)
    diminishing_zones: List[ValueRange] = field(default_factory=list)
    safe_zone: Optional[ValueRange] = None
    fragility_points: List[Transition] = field(default_factory=list)
    median_abs_delta: float = 0.0
    max_abs_delta: float = 0.0
    target_win_prob: float = DEFAULT_TARGET_WIN_PROB


@dataclass(frozen=True)
class SurfaceResult:
    points: List[SurfacePoint]
    analysis: SurfaceAnalysis
    lever: LeverSpec
    runs: int

    def to_dict(self):
        return asdict(self)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(p) for p in self.points], columns=["lever_value", "win_prob", "p10", "p50", "p90"])


def lever_spec(key: str) -> LeverSpec:
    if key not in LEVERS:
        raise StructuralError(f"Unknown lever {key!r}; expected one of {tuple(LEVERS)}.")
    field_name, unit, lo, hi = LEVERS[key]
    return LeverSpec(key=key, field_name=field_name, unit=unit, clamp_lo=lo, clamp_hi=hi)


def generate_sweep_points(min_value: float, max_value: float, steps: int) -> List[float]:
    n = max(2, int(steps))
    if max_value == min_value:
        return [float(min_value)] * n
    return [float(v) for v in np.linspace(min_value, max_value, n)]


# -----------------------------
# Curve analysis
# -----------------------------
def _contiguous_ranges(xs: Sequence[float], mask: Sequence[bool]) -> List[ValueRange]:
    out = []
    i = 0
    while i < len(xs):
        while i < len(xs) and not mask[i]:
            i += 1
        if i >= len(xs):
            break
        j = i
        while j < len(xs) and mask[j]:
            j += 1
        out.append(ValueRange(min=xs[i], max=xs[j - 1]))
        i = j
    return out


def _largest_range(ranges: Sequence[ValueRange]) -> Optional[ValueRange]:
    best = None
    for r in ranges:
        if best is None or (r.max - r.min) > (best.max - best.min):
            best = r
    return best


def analyze_surface(
    lever_values: Sequence[float],
    win_probs: Sequence[float],
    target_win_prob: float = DEFAULT_TARGET_WIN_PROB,
) -> SurfaceAnalysis:
    xs = list(lever_values)
    ys = list(win_probs)
    deltas = [b - a for a, b in zip(ys, ys[1:])]
    abs_d = [abs(d) for d in deltas]
    med_abs = float(np.median(abs_d)) if abs_d else 0.0
    max_abs = max(abs_d) if abs_d else 0.0

    cliff_thresh = max(3 * med_abs, 0.02)
    cliffs = [
        Transition(at=xs[i + 1], delta=d)
        for i, d in enumerate(deltas)
        if abs(d) >= cliff_thresh and abs(d) >= 0.5 * max_abs
    ]

    # flat steps mark both endpoints so a zone reads as an interval
    dim_thresh = max(FLAT_DELTA, 0.25 * max_abs)
    dim_mask = [False] * len(xs)
    for i, d in enumerate(deltas):
        if abs(d) <= dim_thresh:
            dim_mask[i] = dim_mask[i + 1] = True
    diminishing = [r for r in _contiguous_ranges(xs, dim_mask) if r.max - r.min > 0]

    target = clamp(target_win_prob, 0.0, 1.0) if safe_num(target_win_prob) is not None else DEFAULT_TARGET_WIN_PROB
    safe_zone = _largest_range(_contiguous_ranges(xs, [y >= target for y in ys]))

    frag_thresh = -max(0.03, 2 * med_abs)
    fragility = [Transition(at=xs[i + 1], delta=d) for i, d in enumerate(deltas) if d <= frag_thresh]

    return SurfaceAnalysis(
        cliff_points=cliffs,
        diminishing_zones=diminishing,
        safe_zone=safe_zone,
        fragility_points=fragility,
        median_abs_delta=med_abs,
        max_abs_delta=max_abs,
        target_win_prob=target,
    )


# -----------------------------
# Sweep
# -----------------------------
def compute_sensitivity_surface(
    scenario: Scenario,
    config: SimulationConfig,
    sweep: SweepRequest,
    target_win_prob: float = DEFAULT_TARGET_WIN_PROB,
) -> SurfaceResult:
    """Evaluate the engine once per sweep step with one lever patched.

    ``config.runs`` is raised to at least 200 so each step's win probability
    is stable enough to compare; the seed is reused at every step.
    """
    spec = lever_spec(sweep.lever)
    lo = clamp(float(sweep.min_value), spec.clamp_lo, spec.clamp_hi)
    hi = clamp(float(sweep.max_value), spec.clamp_lo, spec.clamp_hi)
    if (lo, hi) != (float(sweep.min_value), float(sweep.max_value)):
        logger.warning("Sweep bounds for %s clamped to [%s, %s].", spec.key, lo, hi)

    steps = max(SURFACE_MIN_STEPS, int(sweep.steps or SURFACE_DEFAULT_STEPS))
    runs = max(SURFACE_MIN_RUNS, config.runs or SURFACE_DEFAULT_RUNS)
    step_config = replace(config, runs=runs, include_margins=False)

    points = []
    for value in generate_sweep_points(lo, hi, steps):
        value = clamp(value, spec.clamp_lo, spec.clamp_hi)
        patched = replace(scenario, **{spec.field_name: value})
        summary = run_monte_carlo_sim(patched, step_config)
        pct = summary.confidence_envelope.percentiles
        points.append(SurfacePoint(lever_value=value, win_prob=summary.win_prob, p10=pct.p10, p50=pct.p50, p90=pct.p90))

    analysis = analyze_surface([p.lever_value for p in points], [p.win_prob for p in points], target_win_prob)
    return SurfaceResult(points=points, analysis=analysis, lever=spec, runs=runs)
