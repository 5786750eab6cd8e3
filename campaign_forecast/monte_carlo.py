"""Monte Carlo engine.

Each trial samples the six campaign rates from their triangles, turns organizer
capacity into attempts -> conversations -> supporters -> votes, optionally adds
a GOTV turnout-lift term, and records the margin against the votes needed.
Results are a pure function of (scenario, config); a non-empty seed makes them
reproducible.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

import numpy as np

from .capacity import compute_capacity_contacts
from .confidence import ConfidenceEnvelope, compute_confidence_envelope
from .config import (
    DEFAULT_DOOR_SHARE,
    DEFAULT_ORG_COUNT,
    DEFAULT_ORG_HOURS_PER_WEEK,
    GOTV_LIFT_LABEL,
    HISTOGRAM_BINS,
    HISTOGRAM_MAX_BINS,
    HISTOGRAM_MIN_BINS,
    RISK_LABEL_FLOOR,
    RISK_LABELS,
    SENSITIVITY_LABELS,
)
from .rate_specs import RATE_KEYS, RateSpecs, build_rate_specs
from .rng import make_rng, tri_sample
from .scenario import Scenario, SimulationConfig
from .turnout import compute_avg_lift_pp
from .utils import pct_to_unit, pearson, quantile_sorted, safe_num

logger = logging.getLogger(__name__)

CapacityFn = Callable[..., Optional[float]]
LiftFn = Callable[..., float]


@dataclass(frozen=True)
class SampleSet:
    """Per-trial draws, one array per sampled rate, all of length ``runs``."""

    contact_rate: np.ndarray
    persuasion_rate: np.ndarray
    turnout_reliability: np.ndarray
    doors_per_hour: np.ndarray
    calls_per_hour: np.ndarray
    volunteer_mult: np.ndarray
    gotv_lift: Optional[np.ndarray] = None

    @classmethod
    def allocate(cls, runs: int, with_gotv: bool = False) -> "SampleSet":
        arrays = {key: np.zeros(runs) for key in RATE_KEYS}
        return cls(gotv_lift=np.zeros(runs) if with_gotv else None, **arrays)


@dataclass(frozen=True)
class Histogram:
    min: float
    max: float
    counts: List[int]


@dataclass(frozen=True)
class SensitivityEntry:
    label: str
    impact: Optional[float]


@dataclass(frozen=True)
class TurnoutAdjustedSummary:
    mean: float
    p10: float
    p50: float
    p90: float


@dataclass(frozen=True)
class SimulationSummary:
    runs: int
    win_prob: float
    win_prob_turnout_adjusted: float
    median: float
    p5: float
    p95: float
    confidence_envelope: ConfidenceEnvelope
    histogram: Optional[Histogram]
    sensitivity: List[SensitivityEntry]
    risk_label: str
    need_votes: float
    turnout_adjusted: Optional[TurnoutAdjustedSummary]
    degenerate: bool
    margins: Optional[List[float]] = None
    sorted_margins: Optional[List[float]] = None

    def to_dict(self):
        return asdict(self)


# -----------------------------
# Post-processing helpers
# -----------------------------
def risk_label_from_win_prob(p: float) -> str:
    for threshold, label in RISK_LABELS:
        if p >= threshold:
            return label
    return RISK_LABEL_FLOOR


def build_histogram(sorted_values: np.ndarray, bins: int = HISTOGRAM_BINS) -> Optional[Histogram]:
    """Counts over the 1st-99th percentile range. Display only."""
    if len(sorted_values) == 0:
        return None
    lo = quantile_sorted(sorted_values, 0.01)
    hi = quantile_sorted(sorted_values, 0.99)
    b = max(HISTOGRAM_MIN_BINS, min(HISTOGRAM_MAX_BINS, int(bins)))
    if hi == lo:
        counts = [0] * b
        counts[0] = int(np.count_nonzero(sorted_values == lo))
        return Histogram(min=lo, max=hi, counts=counts)
    counts, _ = np.histogram(sorted_values, bins=b, range=(lo, hi))
    return Histogram(min=lo, max=hi, counts=[int(c) for c in counts])


def compute_sensitivity(samples: SampleSet, margins: np.ndarray) -> List[SensitivityEntry]:
    """|Pearson r| of each sampled rate against margin, strongest first."""
    variables = [(label, getattr(samples, key)) for key, label in SENSITIVITY_LABELS]
    if samples.gotv_lift is not None:
        variables.append((GOTV_LIFT_LABEL, samples.gotv_lift))

    out = []
    for label, xs in variables:
        r = pearson(xs, margins)
        out.append(SensitivityEntry(label=label, impact=None if r is None else abs(r)))

    out.sort(key=lambda e: (e.impact is None, -(e.impact or 0.0), e.label))
    return out


def _summarize_votes(votes: np.ndarray) -> TurnoutAdjustedSummary:
    ordered = np.sort(votes)
    return TurnoutAdjustedSummary(
        mean=float(np.mean(votes)),
        p10=quantile_sorted(ordered, 0.10),
        p50=quantile_sorted(ordered, 0.50),
        p90=quantile_sorted(ordered, 0.90),
    )


# -----------------------------
# Engine
# -----------------------------
def run_monte_carlo_sim(
    scenario: Scenario,
    config: SimulationConfig,
    capacity_fn: CapacityFn = compute_capacity_contacts,
    lift_fn: LiftFn = compute_avg_lift_pp,
    specs: Optional[RateSpecs] = None,
) -> SimulationSummary:
    runs = config.runs
    need_votes = float(config.need_votes)
    turnout = config.turnout
    advanced = scenario.mc_mode == "advanced"
    sample_lift = bool(turnout.enabled and advanced and turnout.lift_range is not None)

    specs = specs or build_rate_specs(scenario)
    rng = make_rng(config.seed)
    logger.debug("Monte Carlo start: runs=%d seeded=%s mode=%s", runs, bool(config.seed), scenario.mc_mode)

    org_count = safe_num(scenario.org_count)
    org_hours = safe_num(scenario.org_hours_per_week)
    org_count = DEFAULT_ORG_COUNT if org_count is None else org_count
    org_hours = DEFAULT_ORG_HOURS_PER_WEEK if org_hours is None else org_hours
    door_share = pct_to_unit(scenario.channel_door_pct, DEFAULT_DOOR_SHARE)

    base_turnout_pct = turnout.base_turnout_pct
    target_universe = turnout.target_universe_size
    fixed_lift = max(0.0, safe_num(turnout.lift_per_contact_pp) or 0.0)
    if sample_lift:
        lift_min, lift_mode, lift_max = (max(0.0, safe_num(v) or 0.0) for v in turnout.lift_range)

    margins = np.zeros(runs)
    wins = np.zeros(runs)
    votes_ta = np.zeros(runs)
    wins_ta = np.zeros(runs)
    samples = SampleSet.allocate(runs, with_gotv=sample_lift)
    capacity_missing = 0

    cr_s, pr_s, rr_s = specs.contact_rate, specs.persuasion_rate, specs.turnout_reliability
    dph_s, cph_s, vm_s = specs.doors_per_hour, specs.calls_per_hour, specs.volunteer_mult

    for i in range(runs):
        cr = tri_sample(cr_s.min, cr_s.mode, cr_s.max, rng)
        pr = tri_sample(pr_s.min, pr_s.mode, pr_s.max, rng)
        rr = tri_sample(rr_s.min, rr_s.mode, rr_s.max, rng)
        dph = tri_sample(dph_s.min, dph_s.mode, dph_s.max, rng)
        cph = tri_sample(cph_s.min, cph_s.mode, cph_s.max, rng)
        vm = tri_sample(vm_s.min, vm_s.mode, vm_s.max, rng)

        gotv_lift_pp = 0.0
        if turnout.enabled:
            gotv_lift_pp = tri_sample(lift_min, lift_mode, lift_max, rng) if sample_lift else fixed_lift

        cap_contacts = capacity_fn(config.weeks, org_count, org_hours, vm, door_share, dph, cph)

        votes = 0.0
        convos = 0.0
        if cap_contacts is None:
            capacity_missing += 1
        elif cap_contacts > 0:
            convos = cap_contacts * cr
            votes = convos * pr * rr

        votes_adjusted = votes
        if turnout.enabled and target_universe and target_universe > 0 and gotv_lift_pp > 0:
            avg_lift_pp = lift_fn(
                base_turnout_pct,
                gotv_lift_pp,
                turnout.max_lift_pp,
                convos,
                target_universe,
                turnout.use_diminishing,
            )
            votes_adjusted = votes + target_universe * (avg_lift_pp / 100.0)

        margin = votes - need_votes
        margins[i] = margin
        wins[i] = 1.0 if margin >= 0 else 0.0
        votes_ta[i] = votes_adjusted
        wins_ta[i] = 1.0 if votes_adjusted - need_votes >= 0 else 0.0

        samples.contact_rate[i] = cr
        samples.persuasion_rate[i] = pr
        samples.turnout_reliability[i] = rr
        samples.doors_per_hour[i] = dph
        samples.calls_per_hour[i] = cph
        samples.volunteer_mult[i] = vm
        if sample_lift:
            samples.gotv_lift[i] = gotv_lift_pp

    win_prob = float(np.mean(wins))
    win_prob_ta = float(np.mean(wins_ta)) if turnout.enabled else win_prob

    ordered = np.sort(margins)
    summary = SimulationSummary(
        runs=runs,
        win_prob=win_prob,
        win_prob_turnout_adjusted=win_prob_ta,
        median=quantile_sorted(ordered, 0.50),
        p5=quantile_sorted(ordered, 0.05),
        p95=quantile_sorted(ordered, 0.95),
        confidence_envelope=compute_confidence_envelope(margins, ordered, win_prob, "gte0"),
        histogram=build_histogram(ordered),
        sensitivity=compute_sensitivity(samples, margins),
        risk_label=risk_label_from_win_prob(win_prob),
        need_votes=need_votes,
        turnout_adjusted=_summarize_votes(votes_ta) if turnout.enabled else None,
        degenerate=bool(np.ptp(margins) == 0),
        margins=[float(m) for m in margins] if config.include_margins else None,
        sorted_margins=[float(m) for m in ordered] if config.include_margins else None,
    )
    if capacity_missing:
        logger.debug("Capacity unavailable for %d of %d trials; votes set to 0.", capacity_missing, runs)
    logger.debug("Monte Carlo done: win_prob=%.4f median=%.1f", win_prob, summary.median)
    return summary

