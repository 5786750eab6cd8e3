"""Triangular rate specifications for the Monte Carlo engine.

Turns a scenario's base rates into six ``RateSpec`` triangles, either by a
single volatility tier (basic mode) or from explicit per-rate overrides
(advanced mode). Every spec is clamped into its domain and reordered so
``min <= mode <= max`` still holds afterwards.
"""

import math
from dataclasses import asdict, dataclass
from typing import Iterator, Tuple

from .config import (
    ADVANCED_HIGH_FACTOR,
    ADVANCED_LOW_FACTOR,
    DEFAULT_CALLS_PER_HOUR,
    DEFAULT_CONTACT_RATE,
    DEFAULT_DOORS_PER_HOUR,
    DEFAULT_SUPPORT_RATE,
    DEFAULT_TURNOUT_RELIABILITY,
    DEFAULT_VOLUNTEER_MULT,
    THROUGHPUT_FLOOR,
    VOLATILITY_WIDTHS,
)
from .errors import StructuralError
from .scenario import Scenario, TriangleInput
from .universe import UniverseAdjustment, compute_universe_adjusted_rates
from .utils import clamp, pct_to_unit, safe_num, triangular_mean

RATE_KEYS = (
    "contact_rate",
    "persuasion_rate",
    "turnout_reliability",
    "doors_per_hour",
    "calls_per_hour",
    "volunteer_mult",
)


@dataclass(frozen=True)
class RateSpec:
    min: float
    mode: float
    max: float

    def __post_init__(self):
        if not (self.min <= self.mode <= self.max):
            raise StructuralError(f"RateSpec requires min <= mode <= max, got ({self.min}, {self.mode}, {self.max}).")

    @property
    def mean(self) -> float:
        return triangular_mean(self.min, self.mode, self.max)


@dataclass(frozen=True)
class RateSpecs:
    contact_rate: RateSpec
    persuasion_rate: RateSpec
    turnout_reliability: RateSpec
    doors_per_hour: RateSpec
    calls_per_hour: RateSpec
    volunteer_mult: RateSpec

    def items(self) -> Iterator[Tuple[str, RateSpec]]:
        for key in RATE_KEYS:
            yield key, getattr(self, key)

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class BaseRates:
    contact_rate: float
    persuasion_rate: float
    turnout_reliability: float
    doors_per_hour: float
    calls_per_hour: float
    volunteer_mult: float


# -----------------------------
# Triangle construction
# -----------------------------
def normalize_tri(lo, mode, hi) -> RateSpec:
    """Reorder any three values into a valid triangle, non-finite -> 0."""
    a, b, c = (v if v is not None and math.isfinite(v) else 0.0 for v in (lo, mode, hi))
    low = min(a, b, c)
    high = max(a, b, c)
    return RateSpec(min=low, mode=clamp(b, low, high), max=high)


def spread(base: float, width: float, min_clamp: float, max_clamp: float) -> RateSpec:
    lo = clamp(base * (1 - width), min_clamp, max_clamp)
    hi = clamp(base * (1 + width), min_clamp, max_clamp)
    return normalize_tri(lo, base, hi)


def tri_from_pct_inputs(tri: TriangleInput, base_unit: float) -> RateSpec:
    mode_v, min_v, max_v = safe_num(tri.mode), safe_num(tri.min), safe_num(tri.max)
    mode = clamp(mode_v, 0.0, 100.0) / 100.0 if mode_v is not None else base_unit
    lo = clamp(min_v, 0.0, 100.0) / 100.0 if min_v is not None else clamp(mode * ADVANCED_LOW_FACTOR, 0.0, 1.0)
    hi = clamp(max_v, 0.0, 100.0) / 100.0 if max_v is not None else clamp(mode * ADVANCED_HIGH_FACTOR, 0.0, 1.0)
    return normalize_tri(lo, mode, hi)


def tri_from_num_inputs(tri: TriangleInput, base: float, floor: float = THROUGHPUT_FLOOR) -> RateSpec:
    mode_v, min_v, max_v = safe_num(tri.mode), safe_num(tri.min), safe_num(tri.max)
    mode = mode_v if mode_v is not None and mode_v > 0 else base
    lo = min_v if min_v is not None and min_v > 0 else max(floor, mode * ADVANCED_LOW_FACTOR)
    hi = max_v if max_v is not None and max_v > 0 else max(lo + floor, mode * ADVANCED_HIGH_FACTOR)
    return normalize_tri(lo, mode, hi)


def widen(spec: RateSpec, boost: float) -> RateSpec:
    """Stretch a unit-rate triangle outward by ``boost`` times its span."""
    b = max(0.0, safe_num(boost) or 0.0)
    if b <= 0:
        return spec
    extra = (spec.max - spec.min) * b
    return normalize_tri(max(0.0, spec.min - extra), clamp(spec.mode, 0.0, 1.0), min(1.0, spec.max + extra))


# -----------------------------
# Builders
# -----------------------------
def resolve_base_rates(scenario: Scenario) -> Tuple[BaseRates, UniverseAdjustment]:
    """Scenario percentages -> unit rates, with the universe layer applied."""
    raw_pr = pct_to_unit(scenario.support_rate_pct, DEFAULT_SUPPORT_RATE)
    raw_rr = pct_to_unit(scenario.turnout_reliability_pct, DEFAULT_TURNOUT_RELIABILITY)
    adj = compute_universe_adjusted_rates(scenario.universe, raw_pr, raw_rr)

    dph = safe_num(scenario.doors_per_hour)
    cph = safe_num(scenario.calls_per_hour)
    vol = safe_num(scenario.volunteer_mult_base)
    base = BaseRates(
        contact_rate=pct_to_unit(scenario.contact_rate_pct, DEFAULT_CONTACT_RATE),
        persuasion_rate=adj.sr_adj if adj.sr_adj is not None else raw_pr,
        turnout_reliability=adj.tr_adj if adj.tr_adj is not None else raw_rr,
        doors_per_hour=dph if dph is not None else DEFAULT_DOORS_PER_HOUR,
        calls_per_hour=cph if cph is not None else DEFAULT_CALLS_PER_HOUR,
        volunteer_mult=vol if vol is not None else DEFAULT_VOLUNTEER_MULT,
    )
    return base, adj


def build_basic_specs(base: BaseRates, volatility: str, vol_boost: float = 0.0) -> RateSpecs:
    w = VOLATILITY_WIDTHS[volatility]
    inf = float("inf")
    return RateSpecs(
        contact_rate=spread(base.contact_rate, w, 0.0, 1.0),
        persuasion_rate=spread(base.persuasion_rate, w + vol_boost, 0.0, 1.0),
        turnout_reliability=spread(base.turnout_reliability, w + vol_boost, 0.0, 1.0),
        doors_per_hour=spread(base.doors_per_hour, w, THROUGHPUT_FLOOR, inf),
        calls_per_hour=spread(base.calls_per_hour, w, THROUGHPUT_FLOOR, inf),
        volunteer_mult=spread(base.volunteer_mult, w, THROUGHPUT_FLOOR, inf),
    )


def build_advanced_specs(base: BaseRates, ranges, vol_boost: float = 0.0) -> RateSpecs:
    return RateSpecs(
        contact_rate=tri_from_pct_inputs(ranges.contact, base.contact_rate),
        persuasion_rate=widen(tri_from_pct_inputs(ranges.persuasion, base.persuasion_rate), vol_boost),
        turnout_reliability=widen(tri_from_pct_inputs(ranges.reliability, base.turnout_reliability), vol_boost),
        doors_per_hour=tri_from_num_inputs(ranges.doors_per_hour, base.doors_per_hour),
        calls_per_hour=tri_from_num_inputs(ranges.calls_per_hour, base.calls_per_hour),
        volunteer_mult=tri_from_num_inputs(ranges.volunteer_mult, base.volunteer_mult),
    )


def build_rate_specs(scenario: Scenario) -> RateSpecs:
    base, adj = resolve_base_rates(scenario)
    vol_boost = adj.volatility_boost if scenario.universe.enabled else 0.0
    if scenario.mc_mode == "advanced":
        return build_advanced_specs(base, scenario.ranges, vol_boost)
    return build_basic_specs(base, scenario.mc_volatility, vol_boost)

