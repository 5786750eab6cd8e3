"""Confidence envelope: risk framing over a Monte Carlo margin distribution.

Pure post-processing. The margin array is never mutated or re-sorted in
place; a sorted copy is taken (or reused when the caller already has one).
Calling ``compute_confidence_envelope`` twice on the same inputs returns
equal records.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .config import (
    ENVELOPE_VERSION,
    LOW_N_RUNS,
    SHOCK_SIZES,
    SHORTFALL_TAIL,
    TARGET_WIN_PROBS,
    WIN_RULES,
)
from .errors import StructuralError
from .utils import is_finite_number, quantile_sorted, round_half_up, stdev_pop

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Percentiles:
    p10: float = 0.0
    p50: float = 0.0
    p90: float = 0.0


@dataclass(frozen=True)
class Band:
    lo: float = 0.0
    hi: float = 0.0


@dataclass(frozen=True)
class Bands:
    downside: Band = field(default_factory=Band)
    central: Band = field(default_factory=Band)
    upside: Band = field(default_factory=Band)


@dataclass(frozen=True)
class Advisor:
    grade: str = ""
    narrative: str = ""


@dataclass(frozen=True)
class TargetShifts:
    """Margin lift needed for the win probability to reach 60/70/80%."""

    shift_win60: float = 0.0
    shift_win70: float = 0.0
    shift_win80: float = 0.0


@dataclass(frozen=True)
class ShockLosses:
    """Win-probability lost when every outcome drops by 10/25/50 votes."""

    loss_prob10: float = 0.0
    loss_prob25: float = 0.0
    loss_prob50: float = 0.0


@dataclass(frozen=True)
class BreakEven:
    target_margin: float = 0.0
    p_win_at_target: float = 0.0
    required_shift_p50: float = 0.0
    required_shift_p10: float = 0.0


@dataclass(frozen=True)
class Fragility:
    slope_at_breakeven: float = 0.0
    fragility_index: float = 0.0
    cliff_risk: float = 0.0


@dataclass(frozen=True)
class RiskBlock:
    margin_of_safety: float = 0.0
    downside_risk_mass: float = 0.0
    expected_shortfall10: float = 0.0
    advisor: Advisor = field(default_factory=Advisor)
    targets: TargetShifts = field(default_factory=TargetShifts)
    shocks: ShockLosses = field(default_factory=ShockLosses)
    break_even: BreakEven = field(default_factory=BreakEven)
    fragility: Fragility = field(default_factory=Fragility)


@dataclass(frozen=True)
class MonotonicChecks:
    ok: bool = True
    notes: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Diagnostics:
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    stdev: float = 0.0
    skew_hint: str = ""
    monotonic_checks: MonotonicChecks = field(default_factory=MonotonicChecks)


@dataclass(frozen=True)
class ConfidenceEnvelope:
    version: str = ENVELOPE_VERSION
    runs: int = 0
    win_prob: Optional[float] = None
    percentiles: Percentiles = field(default_factory=Percentiles)
    bands: Bands = field(default_factory=Bands)
    risk: RiskBlock = field(default_factory=RiskBlock)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    def to_dict(self):
        return asdict(self)


# -----------------------------
# Building blocks
# -----------------------------
def _wins(margins: np.ndarray, threshold: float, rule: str) -> np.ndarray:
    return margins > threshold if rule == "gt0" else margins >= threshold


def win_prob_after_shock(margins: np.ndarray, shock: float, rule: str = "gte0") -> float:
    """Win rate once every outcome is shifted down by ``shock``."""
    if len(margins) == 0:
        return 0.0
    return float(np.mean(_wins(margins, shock, rule)))


def required_shift_for_win_prob(sorted_margins: np.ndarray, target_prob: float) -> float:
    """Smallest uniform lift so that P(margin + lift >= 0) reaches ``target_prob``."""
    return max(0.0, -quantile_sorted(sorted_margins, 1.0 - target_prob))


def expected_shortfall(sorted_margins: np.ndarray, tail: float = SHORTFALL_TAIL) -> float:
    n = len(sorted_margins)
    if n == 0:
        return 0.0
    k = max(1, int(np.ceil(tail * n)))
    return float(np.mean(sorted_margins[:k]))


def advisor_grade(p10: float, p50: float, sd: float) -> Advisor:
    tol = max(10, round_half_up(0.10 * sd))
    if p10 >= 0:
        return Advisor("Safe", f"Safe: even the 10th percentile outcome is +{round_half_up(p10)}.")
    if p50 >= 0:
        return Advisor(
            "Favored, tail risk",
            f"Favored, but tail risk: median is +{round_half_up(p50)}, while P10 is {round_half_up(p10)}.",
        )
    if abs(p50) <= tol:
        return Advisor("Toss-up", f"Knife-edge: median is within ±{tol} of break-even ({round_half_up(p50)}).")
    return Advisor(
        "Unfavored",
        f"Unfavored: median outcome is {round_half_up(p50)}. Required lift (P50→0): {round_half_up(max(0.0, -p50))}.",
    )


def _fragility(margins: np.ndarray, p_win: float, sd: float, rule: str) -> Fragility:
    eps = max(1, round_half_up(0.01 * sd))
    p_minus = win_prob_after_shock(margins, eps, rule)
    slope = (p_win - p_minus) / eps

    band = max(1, round_half_up(min(25.0, 0.5 * sd)))
    cliff_risk = float(np.mean(np.abs(margins) <= band))
    return Fragility(slope_at_breakeven=slope, fragility_index=slope * 100, cliff_risk=cliff_risk)


# -----------------------------
# Envelope
# -----------------------------
def compute_confidence_envelope(
    margins: Sequence[float],
    sorted_margins: Optional[Sequence[float]] = None,
    win_prob: Optional[float] = None,
    win_rule: str = "gte0",
) -> ConfidenceEnvelope:
    if win_rule not in WIN_RULES:
        raise StructuralError(f"Unknown win rule {win_rule!r}; expected one of {WIN_RULES}.")

    values = list(margins) if margins is not None else []
    n = len(values)
    given_win_prob = float(win_prob) if is_finite_number(win_prob) else None

    if n == 0:
        return ConfidenceEnvelope(runs=0, win_prob=given_win_prob)

    if not all(is_finite_number(m) for m in values):
        logger.warning("Confidence envelope skipped: non-finite margin detected.")
        return ConfidenceEnvelope(
            runs=n,
            win_prob=given_win_prob,
            diagnostics=Diagnostics(monotonic_checks=MonotonicChecks(ok=False, notes=["non-finite margin detected"])),
        )

    arr = np.asarray(values, dtype=float)
    if sorted_margins is not None and len(sorted_margins) == n:
        ordered = np.array(sorted_margins, dtype=float)
    else:
        ordered = np.sort(arr)

    p10 = quantile_sorted(ordered, 0.10)
    p50 = quantile_sorted(ordered, 0.50)
    p90 = quantile_sorted(ordered, 0.90)

    p_win_at_target = win_prob_after_shock(arr, 0.0, win_rule)
    mean = float(np.mean(arr))
    sd = stdev_pop(arr)
    es10 = expected_shortfall(ordered)

    shocks = ShockLosses(
        *(max(0.0, p_win_at_target - win_prob_after_shock(arr, s, win_rule)) for s in SHOCK_SIZES)
    )
    targets = TargetShifts(*(required_shift_for_win_prob(ordered, p) for p in TARGET_WIN_PROBS))

    notes = []
    if not (p10 <= p50 <= p90):
        notes.append("percentiles not monotonic")
    if not es10 <= p10:
        notes.append("expected shortfall > p10")
    if notes:
        logger.warning("Confidence envelope checks failed: %s", "; ".join(notes))

    risk = RiskBlock(
        margin_of_safety=p10,
        downside_risk_mass=float(np.mean(~_wins(arr, 0.0, win_rule))),
        expected_shortfall10=es10,
        advisor=advisor_grade(p10, p50, sd),
        targets=targets,
        shocks=shocks,
        break_even=BreakEven(
            target_margin=0.0,
            p_win_at_target=p_win_at_target,
            required_shift_p50=max(0.0, -p50),
            required_shift_p10=max(0.0, -p10),
        ),
        fragility=_fragility(arr, p_win_at_target, sd, win_rule),
    )

    return ConfidenceEnvelope(
        runs=n,
        win_prob=given_win_prob if given_win_prob is not None else p_win_at_target,
        percentiles=Percentiles(p10, p50, p90),
        bands=Bands(downside=Band(p10, p50), central=Band(p10, p90), upside=Band(p50, p90)),
        risk=risk,
        diagnostics=Diagnostics(
            min=float(ordered[0]),
            max=float(ordered[-1]),
            mean=mean,
            stdev=sd,
            skew_hint="low_n" if n < LOW_N_RUNS else "",
            monotonic_checks=MonotonicChecks(ok=not notes, notes=notes),
        ),
    )
