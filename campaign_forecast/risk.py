"""Risk helpers over raw margin arrays, and risk-aware plan ranking.

The helpers fail closed: any non-finite margin makes the array count as
empty, so callers get zeros rather than NaN.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .errors import StructuralError
from .monte_carlo import SimulationSummary, run_monte_carlo_sim
from .scenario import Scenario, SimulationConfig
from .utils import is_finite_number, quantile_sorted, stdev_pop

logger = logging.getLogger(__name__)

DEFAULT_LAMBDA_CVAR = 0.50
DEFAULT_CVAR_Q = 0.10
OBJECTIVES = ("max_prob_win", "max_p25_margin", "max_expected_margin", "max_expected_minus_lambda_cvar")


@dataclass(frozen=True)
class RiskSummary:
    runs: int = 0
    mean: float = 0.0
    median: float = 0.0
    p10: float = 0.0
    p25: float = 0.0
    p75: float = 0.0
    p90: float = 0.0
    min: float = 0.0
    max: float = 0.0
    stdev: float = 0.0
    prob_win: float = 0.0
    prob_lose: float = 0.0
    cvar10: Optional[float] = None

    def to_dict(self):
        return asdict(self)


def _sanitize(margins: Optional[Sequence[float]]) -> np.ndarray:
    values = list(margins) if margins is not None else []
    if not all(is_finite_number(m) for m in values):
        return np.zeros(0)
    return np.asarray(values, dtype=float)


def summary_from_margins(margins: Sequence[float]) -> RiskSummary:
    arr = _sanitize(margins)
    n = len(arr)
    if not n:
        return RiskSummary()
    ordered = np.sort(arr)
    prob_win = float(np.mean(arr >= 0))
    return RiskSummary(
        runs=n,
        mean=float(np.mean(arr)),
        median=quantile_sorted(ordered, 0.50),
        p10=quantile_sorted(ordered, 0.10),
        p25=quantile_sorted(ordered, 0.25),
        p75=quantile_sorted(ordered, 0.75),
        p90=quantile_sorted(ordered, 0.90),
        min=float(ordered[0]),
        max=float(ordered[-1]),
        stdev=stdev_pop(arr),
        prob_win=prob_win,
        prob_lose=1.0 - prob_win,
    )


def shortfall_probability(margins: Sequence[float], threshold: float) -> float:
    """Share of outcomes strictly below ``threshold``."""
    arr = _sanitize(margins)
    if not len(arr) or not is_finite_number(threshold):
        return 0.0
    return float(np.mean(arr < threshold))


def value_at_risk(margins: Sequence[float], q: float) -> float:
    arr = _sanitize(margins)
    if not len(arr) or not is_finite_number(q):
        return 0.0
    return quantile_sorted(np.sort(arr), q)


def conditional_value_at_risk(margins: Sequence[float], q: float) -> float:
    """Mean of the outcomes at or below the ``q`` quantile."""
    arr = _sanitize(margins)
    if not len(arr) or not is_finite_number(q):
        return 0.0
    cutoff = quantile_sorted(np.sort(arr), q)
    tail = arr[arr <= cutoff]
    return float(np.mean(tail)) if len(tail) else cutoff


# -----------------------------
# Robust plan selection
# -----------------------------
@dataclass
class PlanEvaluation:
    summary: Optional[SimulationSummary]
    margins: Optional[List[float]]
    risk_summary: Optional[RiskSummary]


@dataclass
class RankedPlan:
    plan: Any
    score: float
    evaluation: Optional[PlanEvaluation]
    risk_summary: Optional[RiskSummary] = None


@dataclass
class PlanSelection:
    best: Optional[RankedPlan]
    ranked: List[RankedPlan] = field(default_factory=list)
    objective: str = "max_prob_win"
    seed: str = ""


def score_from_risk_summary(rs: Optional[RiskSummary], objective: str) -> float:
    if rs is None:
        return float("-inf")
    if objective == "max_p25_margin":
        return rs.p25
    if objective == "max_expected_margin":
        return rs.mean
    if objective == "max_expected_minus_lambda_cvar":
        cvar = rs.cvar10 if rs.cvar10 is not None else float("-inf")
        return rs.mean - DEFAULT_LAMBDA_CVAR * cvar
    return rs.prob_win


def evaluate_plan(plan: Dict[str, Any], scenario: Scenario, config: SimulationConfig, seed: Optional[str] = None) -> PlanEvaluation:
    """Run the engine on ``scenario`` patched with the plan's scenario fields."""
    patched = replace(scenario, **(plan.get("patch_scenario") or {}))
    run_config = replace(config, include_margins=True, seed=config.seed if seed is None else seed)
    summary = run_monte_carlo_sim(patched, run_config)
    margins = summary.margins
    rs = replace(summary_from_margins(margins), cvar10=conditional_value_at_risk(margins, DEFAULT_CVAR_Q))
    return PlanEvaluation(summary=summary, margins=margins, risk_summary=rs)


def select_plan(
    candidates: Sequence[Any],
    evaluate_fn: Callable[[Any, str], PlanEvaluation],
    objective: str = "max_prob_win",
    seed: str = "",
) -> PlanSelection:
    """Rank candidate plans by a risk objective; ties keep input order."""
    if objective not in OBJECTIVES:
        raise StructuralError(f"Unknown plan objective {objective!r}; expected one of {OBJECTIVES}.")

    ranked = []
    for plan in candidates or []:
        ev = evaluate_fn(plan, seed)
        rs = ev.risk_summary if ev is not None else None
        if rs is None and ev is not None and ev.margins is not None:
            rs = summary_from_margins(ev.margins)
        if rs is not None and ev.margins is not None and rs.cvar10 is None:
            rs = replace(rs, cvar10=conditional_value_at_risk(ev.margins, DEFAULT_CVAR_Q))
        ranked.append(RankedPlan(plan=plan, score=score_from_risk_summary(rs, objective), evaluation=ev, risk_summary=rs))

    ranked.sort(key=lambda r: -r.score)
    logger.debug("Ranked %d plans by %s", len(ranked), objective)
    return PlanSelection(best=ranked[0] if ranked else None, ranked=ranked, objective=objective, seed=seed)
