"""Turnout / GOTV helpers (pure, deterministic).

Turnout lift affects realized votes in a target universe; persuasion affects
preference among voters. With turnout modelling disabled nothing here changes
an outcome.
"""

import math
from dataclasses import asdict, dataclass
from typing import Optional

from .errors import StructuralError
from .utils import clamp, safe_num


@dataclass(frozen=True)
class TurnoutModel:
    """GOTV inputs for the turnout-adjusted outcome.

    ``lift_range`` is an optional (min, mode, max) triple in percentage points;
    it is sampled per trial only when the scenario runs in advanced mode.
    """

    enabled: bool = False
    baseline_turnout_pct: Optional[float] = None
    target_override_pct: Optional[float] = None
    lift_per_contact_pp: float = 0.0
    max_lift_pp: float = 0.0
    use_diminishing: bool = False
    lift_range: Optional[tuple] = None
    universe_size: Optional[float] = None
    target_universe_pct: Optional[float] = None

    def __post_init__(self):
        if self.lift_range is None:
            return
        if len(self.lift_range) != 3:
            raise StructuralError("TurnoutModel.lift_range must be a (min, mode, max) triple.")
        lo, mode, hi = (safe_num(v) for v in self.lift_range)
        if lo is None or mode is None or hi is None or not lo <= mode <= hi:
            raise StructuralError(f"TurnoutModel.lift_range must satisfy min <= mode <= max, got {self.lift_range!r}.")

    @property
    def base_turnout_pct(self) -> Optional[float]:
        override = safe_num(self.target_override_pct)
        return override if override is not None else safe_num(self.baseline_turnout_pct)

    @property
    def target_universe_size(self) -> Optional[int]:
        size = safe_num(self.universe_size)
        pct = safe_num(self.target_universe_pct)
        if size is None or pct is None:
            return None
        return int(math.floor(size * (clamp(pct, 0.0, 100.0) / 100.0) + 0.5))

    def to_dict(self):
        return asdict(self)


def compute_avg_lift_pp(
    baseline_turnout_pct,
    lift_per_contact_pp,
    max_lift_pp,
    contacts,
    universe_size,
    use_diminishing: bool = False,
) -> float:
    """Average turnout lift (percentage points) across a target universe.

    Linear to the ceiling by default; with ``use_diminishing`` a smooth
    saturating curve ``ceiling * (1 - exp(-k * per_voter))`` whose slope at
    zero equals the per-contact lift. The ceiling can never push turnout past
    100%.
    """
    base_pct = clamp(safe_num(baseline_turnout_pct) or 0.0, 0.0, 100.0)
    lift_pp = max(0.0, safe_num(lift_per_contact_pp) or 0.0)
    ceiling_raw = max(0.0, safe_num(max_lift_pp) or 0.0)
    if lift_pp <= 0 or ceiling_raw <= 0:
        return 0.0

    ceiling = max(0.0, min(ceiling_raw, 100.0 - base_pct))
    if ceiling <= 0:
        return 0.0

    universe = max(0.0, safe_num(universe_size) or 0.0)
    c = max(0.0, safe_num(contacts) or 0.0)
    if universe <= 0 or c <= 0:
        return 0.0

    per_voter = c / universe
    if not use_diminishing:
        return min(ceiling, per_voter * lift_pp)

    k = lift_pp / ceiling
    return clamp(ceiling * (1 - math.exp(-k * per_voter)), 0.0, ceiling)


@dataclass(frozen=True)
class TurnoutAdjustedVotes:
    turnout_adjusted_net_votes: float
    persuasion_net_votes: float
    gotv_added_votes: float
    effective_rr_unit: Optional[float]


def compute_turnout_adjusted_net_votes(
    turnout_enabled: bool,
    base_net_votes,
    rr_unit=None,
    gotv_avg_lift_pp=0.0,
    hybrid_applies_to_persuasion: bool = False,
    gotv_added_votes=0.0,
) -> TurnoutAdjustedVotes:
    base = safe_num(base_net_votes) or 0.0
    if not turnout_enabled:
        return TurnoutAdjustedVotes(base, base, 0.0, rr_unit)

    persuasion_votes = base
    effective_rr = rr_unit
    rr = safe_num(rr_unit)
    if hybrid_applies_to_persuasion and rr is not None:
        effective_rr = clamp(rr + max(0.0, safe_num(gotv_avg_lift_pp) or 0.0) / 100.0, 0.0, 1.0)
        # base was computed with rr_unit; rescale to the lifted realization
        if rr > 0:
            persuasion_votes = base * (effective_rr / rr)

    added = max(0.0, safe_num(gotv_added_votes) or 0.0)
    return TurnoutAdjustedVotes(persuasion_votes + added, persuasion_votes, added, effective_rr)


def pick_tactic_value_per_attempt(tactic, objective: str = "net") -> float:
    """Per-attempt value under ``objective`` ("net" or "turnout")."""
    if tactic is None:
        return 0.0
    if objective == "turnout":
        v = safe_num(getattr(tactic, "turnout_adjusted_net_votes_per_attempt", None))
    else:
        v = safe_num(getattr(tactic, "net_votes_per_attempt", None))
    return v if v is not None else 0.0
