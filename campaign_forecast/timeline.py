"""Timeline-constrained optimization.

Staff and volunteer hours, per-tactic throughput and the weeks left turn into
a per-tactic attempt ceiling. The greedy optimizer then runs under those
ceilings, either to maximize net votes or, via a bisection over whole-dollar
budgets, to find the cheapest plan that still reaches a vote goal.
"""

import logging
import math
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Sequence

from .config import (
    BINDING_REL_TOLERANCE,
    DEFAULT_STEP,
    GOTV_KINDS,
    MIN_COST_SEARCH_ITERATIONS,
    NEAR_BINDING_SATURATION,
    RAMP_FACTORS,
    TACTIC_KINDS,
    TIMELINE_OBJECTIVES,
)
from .errors import StructuralError
from .optimize import AllocationPlan, Tactic, optimize_mix_budget, optimize_mix_capacity, validate_tactics
from .utils import safe_num

logger = logging.getLogger(__name__)

GOAL_EPS = 1e-9
BINDING_EPS = 1e-6


def _non_negative(name: str, v) -> float:
    n = safe_num(v)
    if n is None or n < 0:
        raise StructuralError(f"{name} must be a finite number >= 0, got {v!r}.")
    return n


@dataclass(frozen=True)
class Staffing:
    staff: float = 0.0
    staff_hours: float = 0.0
    volunteers: float = 0.0
    volunteer_hours: float = 0.0

    def __post_init__(self):
        for name in ("staff", "staff_hours", "volunteers", "volunteer_hours"):
            object.__setattr__(self, name, _non_negative(f"Staffing.{name}", getattr(self, name)))

    @property
    def hours_per_week(self) -> float:
        return self.staff * self.staff_hours + self.volunteers * self.volunteer_hours


@dataclass(frozen=True)
class Ramp:
    """Average throughput discount while a program ramps up."""

    enabled: bool = False
    mode: str = "linear"

    def __post_init__(self):
        if self.mode not in RAMP_FACTORS:
            raise StructuralError(f"Unknown ramp mode {self.mode!r}; expected one of {tuple(RAMP_FACTORS)}.")

    @property
    def factor(self) -> float:
        return RAMP_FACTORS[self.mode] if self.enabled else 1.0


@dataclass(frozen=True)
class TimelineInputs:
    enabled: bool = True
    weeks_remaining: float = 0.0
    active_weeks_override: Optional[float] = None
    gotv_window_weeks: Optional[float] = None
    staffing: Staffing = field(default_factory=Staffing)
    throughput: Mapping[str, float] = field(default_factory=dict)
    tactic_kinds: Mapping[str, str] = field(default_factory=dict)
    ramp: Ramp = field(default_factory=Ramp)

    def __post_init__(self):
        _non_negative("TimelineInputs.weeks_remaining", self.weeks_remaining)
        if self.active_weeks_override is not None:
            _non_negative("TimelineInputs.active_weeks_override", self.active_weeks_override)
        if self.gotv_window_weeks is not None:
            _non_negative("TimelineInputs.gotv_window_weeks", self.gotv_window_weeks)
        for tid, aph in self.throughput.items():
            _non_negative(f"throughput[{tid!r}]", aph)
        for tid, kind in self.tactic_kinds.items():
            if kind not in TACTIC_KINDS:
                raise StructuralError(f"Unknown tactic kind {kind!r} for {tid}; expected one of {TACTIC_KINDS}.")


@dataclass(frozen=True)
class TimelineCaps:
    enabled: bool
    active_weeks: int
    max_attempts_by_tactic: Dict[str, float]
    total_hours: float = 0.0
    ramp_factor: float = 1.0

    def to_dict(self):
        return asdict(self)


def _whole_weeks(v, weeks: int) -> int:
    return max(0, min(weeks, int(math.floor(v))))


def compute_max_attempts_by_tactic(inputs: TimelineInputs) -> TimelineCaps:
    """Attempt ceilings from hours x throughput x weeks x ramp.

    GOTV-kind tactics only work inside the GOTV window when one is set.
    Recomputed on every call.
    """
    if not inputs.enabled:
        return TimelineCaps(enabled=False, active_weeks=0, max_attempts_by_tactic={})

    weeks = int(math.floor(inputs.weeks_remaining))
    override = safe_num(inputs.active_weeks_override)
    active_weeks = _whole_weeks(weeks if override is None else override, weeks)
    gotv_window = safe_num(inputs.gotv_window_weeks)
    gotv_weeks = None if gotv_window is None else _whole_weeks(gotv_window, weeks)

    hours_per_week = inputs.staffing.hours_per_week
    ramp = inputs.ramp.factor

    caps = {}
    keys = list(inputs.throughput) + [k for k in inputs.tactic_kinds if k not in inputs.throughput]
    for tid in keys:
        aph = inputs.throughput.get(tid, 0.0)
        kind = inputs.tactic_kinds.get(tid, "persuasion")
        use_weeks = min(active_weeks, gotv_weeks) if kind in GOTV_KINDS and gotv_weeks is not None else active_weeks
        cap = hours_per_week * aph * use_weeks * ramp
        caps[tid] = cap if math.isfinite(cap) and cap > 0 else 0.0

    return TimelineCaps(
        enabled=True,
        active_weeks=active_weeks,
        max_attempts_by_tactic=caps,
        total_hours=hours_per_week * active_weeks,
        ramp_factor=ramp,
    )


# -----------------------------
# Binding constraints
# -----------------------------
@dataclass(frozen=True)
class BindingConstraints:
    timeline: List[str] = field(default_factory=list)
    budget: bool = False
    capacity: bool = False


def _within(limit: float, used: float) -> bool:
    return limit - used <= max(1.0, limit * BINDING_REL_TOLERANCE) + BINDING_EPS


def pick_binding_constraints(
    plan: AllocationPlan,
    max_attempts_by_tactic: Optional[Mapping[str, float]],
    budget_limit=None,
    capacity_limit=None,
) -> BindingConstraints:
    timeline = []
    for tid, cap_raw in (max_attempts_by_tactic or {}).items():
        cap = safe_num(cap_raw)
        if cap is None or cap <= 0:
            continue
        used = plan.allocation.get(tid, 0)
        if abs(used - cap) <= max(1.0, cap * BINDING_REL_TOLERANCE) + BINDING_EPS:
            timeline.append(tid)

    b = safe_num(budget_limit)
    c = safe_num(capacity_limit)
    return BindingConstraints(
        timeline=timeline,
        budget=b is not None and b > 0 and _within(b, plan.totals.cost),
        capacity=c is not None and c > 0 and _within(c, plan.totals.attempts),
    )


def binding_to_text(binding: BindingConstraints) -> str:
    parts = []
    if binding.timeline:
        parts.append("timeline: " + ", ".join(binding.timeline))
    if binding.budget:
        parts.append("budget")
    if binding.capacity:
        parts.append("capacity")
    return "; ".join(parts) if parts else "none"


# -----------------------------
# Optimization
# -----------------------------
@dataclass(frozen=True)
class TimelineMeta:
    goal_feasible: bool
    max_achievable_net_votes: float
    remaining_gap_net_votes: float
    binding_constraints: str
    binding_obj: BindingConstraints
    goal_net_votes: float = 0.0
    search_iterations: int = 0


@dataclass(frozen=True)
class TimelineResult:
    plan: AllocationPlan
    meta: TimelineMeta

    def to_dict(self):
        return asdict(self)


def _min_limit(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def apply_caps_to_tactics(tactics: Sequence[Tactic], max_attempts_by_tactic: Optional[Mapping[str, float]]) -> List[Tactic]:
    caps = max_attempts_by_tactic or {}
    out = []
    for t in tactics:
        cap = caps.get(t.id)
        cap = None if cap is None else max(0.0, safe_num(cap) or 0.0)
        out.append(replace(t, max_attempts=_min_limit(t.max_attempts, cap)))
    return out


def saturation_cost(tactics: Sequence[Tactic], attempt_limit: Optional[float] = None) -> float:
    """Cost of running every tactic to its cap, each also bounded by ``attempt_limit``.

    Uncapped tactics count ``attempt_limit`` attempts, or none without one.
    """
    total = 0.0
    for t in tactics:
        attempts = t.max_attempts if t.max_attempts is not None else (attempt_limit or 0.0)
        if attempt_limit is not None:
            attempts = min(attempts, attempt_limit)
        total += attempts * t.cost_per_attempt
    return total


def optimize_timeline_constrained(
    tactics,
    max_attempts_by_tactic: Optional[Mapping[str, float]] = None,
    mode: str = "budget",
    budget_limit=None,
    capacity_limit=None,
    capacity_ceiling=None,
    step=DEFAULT_STEP,
    use_decay: bool = False,
    objective: str = "net",
    tl_objective: str = "max_net",
    goal_net_votes=None,
) -> TimelineResult:
    if mode not in ("budget", "capacity"):
        raise StructuralError(f"Unknown optimization mode {mode!r}; expected 'budget' or 'capacity'.")
    if tl_objective not in TIMELINE_OBJECTIVES:
        raise StructuralError(f"Unknown timeline objective {tl_objective!r}; expected one of {TIMELINE_OBJECTIVES}.")

    capped = apply_caps_to_tactics(validate_tactics(tactics), max_attempts_by_tactic)
    goal = max(0.0, safe_num(goal_net_votes) or 0.0)
    budget = max(0.0, safe_num(budget_limit) or 0.0)
    capacity = max(0.0, safe_num(capacity_limit) or 0.0)
    ceiling = None if capacity_ceiling is None else max(0.0, safe_num(capacity_ceiling) or 0.0)

    if mode == "capacity":
        max_plan = optimize_mix_capacity(capacity, capped, step=step, use_decay=use_decay, objective=objective)
    else:
        max_plan = optimize_mix_budget(budget, capped, step=step, capacity_ceiling=ceiling, use_decay=use_decay, objective=objective)

    max_votes = max(0.0, max_plan.totals.net_votes)
    goal_feasible = max_votes + GOAL_EPS >= goal
    gap = 0.0 if goal_feasible else max(0.0, goal - max_votes)

    plan = max_plan
    iterations = 0
    if tl_objective == "min_cost_goal":
        target = goal if goal_feasible else max_votes
        cap_ceiling = capacity if mode == "capacity" else ceiling

        def run(b):
            return optimize_mix_budget(b, capped, step=step, capacity_ceiling=cap_ceiling, use_decay=use_decay, objective=objective)

        def meets(p: AllocationPlan) -> bool:
            return max(0.0, p.totals.net_votes) + GOAL_EPS >= target

        if mode == "capacity":
            upper = saturation_cost(capped, attempt_limit=capacity)
        elif all(t.max_attempts is not None for t in capped):
            upper = min(budget, saturation_cost(capped))
        else:
            upper = budget

        if target <= 0:
            plan = run(0)
        else:
            plan = run(upper)
            if meets(plan):
                lo, hi = 0, int(math.ceil(upper))
                while iterations < MIN_COST_SEARCH_ITERATIONS and lo < hi:
                    mid = (lo + hi) // 2
                    probe = run(mid)
                    iterations += 1
                    logger.debug("Min-cost probe %d: budget=%d net_votes=%.3f", iterations, mid, probe.totals.net_votes)
                    if meets(probe):
                        hi = mid
                        plan = probe
                    else:
                        lo = mid + 1
        logger.info(
            "Min-cost search: target=%.1f cost=%.2f iterations=%d feasible=%s",
            target,
            plan.totals.cost,
            iterations,
            goal_feasible,
        )

        if mode == "capacity":
            plan = replace(plan, mode="capacity", constraint=capacity)

    binding = pick_binding_constraints(
        plan,
        max_attempts_by_tactic,
        budget_limit=budget if mode == "budget" else None,
        capacity_limit=capacity if mode == "capacity" else ceiling,
    )
    meta = TimelineMeta(
        goal_feasible=goal_feasible,
        max_achievable_net_votes=max_votes,
        remaining_gap_net_votes=gap,
        binding_constraints=binding_to_text(binding),
        binding_obj=binding,
        goal_net_votes=goal,
        search_iterations=iterations,
    )
    return TimelineResult(plan=plan, meta=meta)


# -----------------------------
# Feasibility and bottlenecks
# -----------------------------
@dataclass(frozen=True)
class TimelineFeasibility:
    enabled: bool
    required_attempts_total: float
    executable_attempts_total: float
    percent_plan_executable: float
    shortfall_attempts: float
    constraint_type: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def compute_timeline_feasibility(inputs: TimelineInputs, required: Mapping[str, float]) -> TimelineFeasibility:
    """How much of a required per-tactic plan fits under the timeline caps."""
    required_total = sum(max(0.0, safe_num(v) or 0.0) for v in required.values())
    if not inputs.enabled:
        return TimelineFeasibility(False, required_total, required_total, 1.0, 0.0)

    caps = compute_max_attempts_by_tactic(inputs).max_attempts_by_tactic
    executable = sum(min(max(0.0, safe_num(v) or 0.0), caps.get(k, 0.0)) for k, v in required.items())
    percent = 1.0 if required_total <= 0 else max(0.0, min(1.0, executable / required_total))
    shortfall = max(0.0, required_total - executable)
    return TimelineFeasibility(
        enabled=True,
        required_attempts_total=required_total,
        executable_attempts_total=executable,
        percent_plan_executable=percent,
        shortfall_attempts=shortfall,
        constraint_type="Timeline-limited" if shortfall > 0 else None,
    )


@dataclass(frozen=True)
class Bottleneck:
    primary: str
    secondary_notes: Optional[str] = None
    saturation: Dict[str, float] = field(default_factory=dict)


def detect_primary_bottleneck(result: TimelineResult, max_attempts_by_tactic: Mapping[str, float]) -> Bottleneck:
    binding = result.meta.binding_obj
    saturation = {}
    for tid in binding.timeline:
        cap = max(0.0, safe_num(max_attempts_by_tactic.get(tid)) or 0.0)
        saturation[tid] = result.plan.allocation.get(tid, 0) / cap if cap > 0 else 0.0

    if saturation:
        best = max(saturation, key=saturation.get)
        near = [k for k, v in saturation.items() if k != best and abs(v - saturation[best]) <= NEAR_BINDING_SATURATION]
        notes = "near-binding: " + ", ".join(near) if near else None
        return Bottleneck(primary=f"timeline: {best}", secondary_notes=notes, saturation=saturation)
    if binding.budget:
        return Bottleneck(primary="budget")
    if binding.capacity:
        return Bottleneck(primary="capacity")
    return Bottleneck(primary="none/unknown")
