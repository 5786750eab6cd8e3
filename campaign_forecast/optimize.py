"""Greedy tactic-mix allocation.

Attempts are handed out in fixed-size steps to whichever tactic offers the
best marginal score for the next step: votes per dollar under a budget, raw
votes under an attempt capacity. Decay tiers only scale the scored yield;
they never loosen a cap.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .config import DEFAULT_DECAY_MULTS, DEFAULT_STEP, OPTIMIZER_OBJECTIVES, TACTIC_KINDS
from .errors import StructuralError
from .turnout import pick_tactic_value_per_attempt
from .utils import safe_num

logger = logging.getLogger(__name__)

LIMIT_EPS = 1e-9


@dataclass(frozen=True)
class DecayTier:
    """Yield multiplier applied while a tactic's allocation is below ``upto``."""

    upto: float
    mult: float

    def __post_init__(self):
        upto = math.inf if self.upto == math.inf else safe_num(self.upto)
        if upto is None or upto <= 0:
            raise StructuralError(f"DecayTier.upto must be > 0, got {self.upto!r}.")
        mult = safe_num(self.mult)
        if mult is None or mult < 0:
            raise StructuralError(f"DecayTier.mult must be a finite number >= 0, got {self.mult!r}.")


@dataclass(frozen=True)
class Tactic:
    id: str
    cost_per_attempt: float
    net_votes_per_attempt: float
    turnout_adjusted_net_votes_per_attempt: Optional[float] = None
    max_attempts: Optional[float] = None
    decay_tiers: Tuple[DecayTier, ...] = ()
    label: str = ""
    kind: str = "persuasion"

    def __post_init__(self):
        tid = str(self.id if self.id is not None else "").strip()
        if not tid:
            raise StructuralError("Tactic is missing an id.")
        object.__setattr__(self, "id", tid)
        object.__setattr__(self, "label", str(self.label or tid))

        cost = safe_num(self.cost_per_attempt)
        if cost is None or cost < 0:
            raise StructuralError(f"Invalid cost_per_attempt for {tid}: {self.cost_per_attempt!r}.")
        object.__setattr__(self, "cost_per_attempt", cost)
        if safe_num(self.net_votes_per_attempt) is None:
            raise StructuralError(f"Invalid net_votes_per_attempt for {tid}: {self.net_votes_per_attempt!r}.")
        object.__setattr__(self, "net_votes_per_attempt", safe_num(self.net_votes_per_attempt))
        object.__setattr__(self, "turnout_adjusted_net_votes_per_attempt", safe_num(self.turnout_adjusted_net_votes_per_attempt))
        if self.max_attempts is not None:
            cap = safe_num(self.max_attempts)
            if cap is None or cap < 0:
                raise StructuralError(f"Invalid max_attempts for {tid}: {self.max_attempts!r}.")
            object.__setattr__(self, "max_attempts", cap)
        if self.kind not in TACTIC_KINDS:
            raise StructuralError(f"Unknown tactic kind {self.kind!r} for {tid}; expected one of {TACTIC_KINDS}.")

        tiers = tuple(t if isinstance(t, DecayTier) else DecayTier(**t) for t in (self.decay_tiers or ()))
        object.__setattr__(self, "decay_tiers", tiers)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Tactic":
        return cls(
            id=d.get("id"),
            cost_per_attempt=d.get("cost_per_attempt"),
            net_votes_per_attempt=d.get("net_votes_per_attempt"),
            turnout_adjusted_net_votes_per_attempt=d.get("turnout_adjusted_net_votes_per_attempt"),
            max_attempts=d.get("max_attempts"),
            decay_tiers=tuple(d.get("decay_tiers") or ()),
            label=d.get("label") or "",
            kind=d.get("kind") or "persuasion",
        )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Totals:
    attempts: float = 0.0
    cost: float = 0.0
    net_votes: float = 0.0


@dataclass(frozen=True)
class TracePick:
    pick: str
    add: int
    m_net_votes: float
    m_cost: float
    score: Optional[float]


@dataclass(frozen=True)
class AllocationPlan:
    mode: str
    step: int
    constraint: float
    binding: str
    allocation: Dict[str, int]
    totals: Totals = field(default_factory=Totals)
    trace: List[TracePick] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)

    def trace_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(p) for p in self.trace], columns=["pick", "add", "m_net_votes", "m_cost", "score"])


# -----------------------------
# Validation
# -----------------------------
def validate_tactics(tactics: Optional[Iterable[Any]]) -> List[Tactic]:
    """Coerce dicts to ``Tactic`` and reject duplicates before any allocation."""
    out = []
    seen = set()
    for t in tactics or []:
        tactic = t if isinstance(t, Tactic) else Tactic.from_dict(t)
        if tactic.id in seen:
            raise StructuralError(f"Duplicate tactic id {tactic.id!r}.")
        seen.add(tactic.id)
        out.append(tactic)
    return out


def _check_objective(objective: str):
    if objective not in OPTIMIZER_OBJECTIVES:
        raise StructuralError(f"Unknown objective {objective!r}; expected one of {OPTIMIZER_OBJECTIVES}.")


def _clean_step(step) -> int:
    s = safe_num(step)
    return max(1, int(math.floor(s if s is not None else DEFAULT_STEP)))


def _clean_limit(v) -> float:
    return max(0.0, safe_num(v) or 0.0)


def tier_multiplier(tactic: Tactic, current_attempts: float) -> float:
    tiers = tactic.decay_tiers
    if not tiers:
        return 1.0
    for tier in tiers:
        if current_attempts < tier.upto:
            return float(tier.mult)
    return float(tiers[-1].mult)


def make_decay_tiers(first, second=None, third=None, mults: Sequence[float] = DEFAULT_DECAY_MULTS) -> Tuple[DecayTier, ...]:
    """Decay schedule from up to three thresholds.

    Only tiers with a finite, positive threshold are kept, so the open-ended
    fourth multiplier never applies: past the last threshold the last kept
    tier's multiplier carries on, and no thresholds means no decay.
    """
    m = list(mults) if mults is not None else list(DEFAULT_DECAY_MULTS)
    m = [safe_num(v) if safe_num(v) is not None else 1.0 for v in (m + [1.0] * 4)[:4]]
    first = safe_num(first)
    second = safe_num(second)
    third = safe_num(third)
    bounds = [
        first if first is not None else 0.0,
        second if second is not None else math.inf,
        third if third is not None else math.inf,
        math.inf,
    ]
    return tuple(DecayTier(upto=upto, mult=mult) for upto, mult in zip(bounds, m) if math.isfinite(upto) and upto > 0)


# -----------------------------
# Greedy core
# -----------------------------
def _assert_bounded(tactics: Sequence[Tactic], budget_limit, capacity_limit, value_fn):
    if capacity_limit is not None:
        return
    for t in tactics:
        if t.max_attempts is None and t.cost_per_attempt == 0 and value_fn(t) > 0:
            raise StructuralError(
                f"Tactic {t.id!r} has zero cost, positive value and no cap; the allocation would never stop."
            )


def greedy_allocate(
    tactics: Sequence[Tactic],
    step: int,
    budget_limit: Optional[float],
    capacity_limit: Optional[float],
    use_decay: bool,
    score_fn: Callable[[float, float], float],
    value_fn: Callable[[Tactic], float],
):
    """Returns ``(allocation, totals, trace, binding)``.

    Picks use a strict ``>`` so the earliest tactic wins a tie.
    """
    _assert_bounded(tactics, budget_limit, capacity_limit, value_fn)

    allocation = {t.id: 0 for t in tactics}
    trace = []
    used_budget = 0.0
    used_capacity = 0.0
    accumulated_votes = 0.0

    def can_add_step(t: Tactic) -> bool:
        cur = allocation[t.id]
        if t.max_attempts is not None and cur + step > t.max_attempts:
            return False
        if capacity_limit is not None and used_capacity + step > capacity_limit:
            return False
        if budget_limit is not None and used_budget + step * t.cost_per_attempt > budget_limit:
            return False
        return True

    while True:
        best = None
        best_score = -math.inf
        for t in tactics:
            if not can_add_step(t):
                continue
            mult = tier_multiplier(t, allocation[t.id]) if use_decay else 1.0
            m_votes = step * value_fn(t) * mult
            m_cost = step * t.cost_per_attempt
            score = score_fn(m_votes, m_cost)
            if score > best_score:
                best_score = score
                best = (t, m_votes, m_cost)

        if best is None:
            break

        t, m_votes, m_cost = best
        allocation[t.id] += step
        used_capacity += step
        used_budget += m_cost
        accumulated_votes += m_votes
        trace.append(
            TracePick(
                pick=t.id,
                add=step,
                m_net_votes=m_votes,
                m_cost=m_cost,
                score=best_score if math.isfinite(best_score) else None,
            )
        )

    attempts = float(sum(allocation.values()))
    cost = sum(allocation[t.id] * t.cost_per_attempt for t in tactics)
    votes = accumulated_votes if use_decay else sum(allocation[t.id] * value_fn(t) for t in tactics)
    totals = Totals(attempts=attempts, cost=float(cost), net_votes=float(votes))

    binding = "caps"
    if budget_limit is not None and budget_limit - used_budget < LIMIT_EPS:
        binding = "budget"
    if capacity_limit is not None and capacity_limit - used_capacity < LIMIT_EPS:
        binding = "capacity"

    logger.debug("Greedy allocation: %d picks, binding=%s", len(trace), binding)
    return allocation, totals, trace, binding


def _budget_score(m_votes: float, m_cost: float) -> float:
    if m_cost <= 0:
        return math.inf if m_votes > 0 else -math.inf
    return m_votes / m_cost


def _capacity_score(m_votes: float, m_cost: float) -> float:
    return m_votes


# -----------------------------
# Entry points
# -----------------------------
def optimize_mix_budget(
    budget,
    tactics,
    step=DEFAULT_STEP,
    capacity_ceiling=None,
    use_decay: bool = False,
    objective: str = "net",
) -> AllocationPlan:
    """Maximize votes subject to total cost <= ``budget``.

    ``capacity_ceiling``, when given, also bounds total attempts.
    """
    _check_objective(objective)
    b = _clean_limit(budget)
    s = _clean_step(step)
    clean = validate_tactics(tactics)
    cap = None if capacity_ceiling is None else _clean_limit(capacity_ceiling)

    allocation, totals, trace, binding = greedy_allocate(
        clean,
        s,
        budget_limit=b,
        capacity_limit=cap,
        use_decay=use_decay,
        score_fn=_budget_score,
        value_fn=lambda t: pick_tactic_value_per_attempt(t, objective),
    )
    return AllocationPlan(mode="budget", step=s, constraint=b, binding=binding, allocation=allocation, totals=totals, trace=trace)


def optimize_mix_capacity(
    capacity,
    tactics,
    step=DEFAULT_STEP,
    use_decay: bool = False,
    objective: str = "net",
) -> AllocationPlan:
    """Maximize votes subject to total attempts <= ``capacity``."""
    _check_objective(objective)
    c = _clean_limit(capacity)
    s = _clean_step(step)
    clean = validate_tactics(tactics)

    allocation, totals, trace, binding = greedy_allocate(
        clean,
        s,
        budget_limit=None,
        capacity_limit=c,
        use_decay=use_decay,
        score_fn=_capacity_score,
        value_fn=lambda t: pick_tactic_value_per_attempt(t, objective),
    )
    return AllocationPlan(mode="capacity", step=s, constraint=c, binding=binding, allocation=allocation, totals=totals, trace=trace)
