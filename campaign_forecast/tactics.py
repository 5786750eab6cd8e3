"""Per-channel tactic yields and the ROI cost lens.

Doors, phones and texts share the same Attempts -> Conversations -> Support
IDs -> Net votes chain; each channel may override contact and support rate.
Nothing here feeds back into the Monte Carlo engine.
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Mapping, Optional

import pandas as pd

from .errors import StructuralError
from .optimize import Tactic
from .rate_specs import BaseRates
from .turnout import TurnoutModel
from .utils import clamp, pct_to_unit, safe_num

CHANNELS = (("doors", "Doors"), ("phones", "Phones"), ("texts", "Texts"))
CHANNEL_KINDS = ("persuasion", "gotv", "hybrid")


@dataclass(frozen=True)
class YieldRates:
    """Unit-fraction rates a channel falls back to when it has no override."""

    contact_rate: Optional[float] = None
    support_rate: Optional[float] = None
    turnout_reliability: Optional[float] = None

    @classmethod
    def from_base(cls, base: BaseRates) -> "YieldRates":
        return cls(base.contact_rate, base.persuasion_rate, base.turnout_reliability)


@dataclass(frozen=True)
class TacticInput:
    enabled: bool = True
    cpa: float = 0.0
    cr_pct: Optional[float] = None
    sr_pct: Optional[float] = None
    kind: str = "persuasion"

    def __post_init__(self):
        if self.kind not in CHANNEL_KINDS:
            raise StructuralError(f"Unknown channel kind {self.kind!r}; expected one of {CHANNEL_KINDS}.")


@dataclass(frozen=True)
class _GotvTerms:
    enabled: bool
    lift_pp: float
    max_additional_pp: float
    target_universe: Optional[int]


def _gotv_terms(turnout: Optional[TurnoutModel]) -> _GotvTerms:
    if turnout is None or not turnout.enabled:
        return _GotvTerms(False, 0.0, 0.0, None)
    lift = max(0.0, safe_num(turnout.lift_per_contact_pp) or 0.0)
    ceiling = max(0.0, safe_num(turnout.max_lift_pp) or 0.0)
    base_pct = clamp(turnout.base_turnout_pct or 0.0, 0.0, 100.0)
    return _GotvTerms(True, lift, max(0.0, min(ceiling, 100.0 - base_pct)), turnout.target_universe_size)


def _positive(*values) -> bool:
    return all(v is not None and v > 0 for v in values)


def _channel_rates(t: TacticInput, base: YieldRates):
    return pct_to_unit(t.cr_pct, base.contact_rate), pct_to_unit(t.sr_pct, base.support_rate), base.turnout_reliability


def _turnout_adjusted_yield(kind: str, cr, sr, tr, gotv: _GotvTerms, net_yield: float) -> float:
    if not gotv.enabled:
        return net_yield
    if kind == "gotv":
        return cr * (gotv.lift_pp / 100.0) if _positive(cr) else 0.0
    if kind == "hybrid":
        eff_tr = min(1.0, tr + min(gotv.max_additional_pp, gotv.lift_pp) / 100.0) if tr is not None else None
        return cr * sr * eff_tr if _positive(cr, sr, eff_tr) else 0.0
    return net_yield


def build_optimization_tactics(
    base_rates: YieldRates,
    tactic_inputs: Mapping[str, TacticInput],
    turnout_model: Optional[TurnoutModel] = None,
) -> List[Tactic]:
    """Enabled channels as optimizer ``Tactic``s, in doors/phones/texts order.

    With turnout modelling on, a GOTV channel is capped at the attempts that
    saturate the lift ceiling across the target universe.
    """
    gotv = _gotv_terms(turnout_model)
    out = []
    for key, label in CHANNELS:
        t = tactic_inputs.get(key)
        if t is None or not t.enabled:
            continue
        cr, sr, tr = _channel_rates(t, base_rates)
        net_yield = cr * sr * tr if _positive(cr, sr, tr) else 0.0

        max_attempts = None
        if gotv.enabled and t.kind == "gotv":
            if gotv.target_universe and _positive(cr) and gotv.lift_pp > 0 and gotv.max_additional_pp > 0:
                cap_contacts = gotv.target_universe * (gotv.max_additional_pp / gotv.lift_pp)
                cap_attempts = cap_contacts / cr
                if math.isfinite(cap_attempts) and cap_attempts > 0:
                    max_attempts = math.ceil(cap_attempts)

        out.append(
            Tactic(
                id=key,
                label=label,
                kind=t.kind,
                cost_per_attempt=max(0.0, safe_num(t.cpa) or 0.0),
                net_votes_per_attempt=net_yield,
                turnout_adjusted_net_votes_per_attempt=_turnout_adjusted_yield(t.kind, cr, sr, tr, gotv, net_yield),
                max_attempts=max_attempts,
            )
        )
    return out


# -----------------------------
# ROI
# -----------------------------
@dataclass(frozen=True)
class RoiRow:
    key: str
    label: str
    cpa: Optional[float]
    cost_per_net_vote: Optional[float]
    total_cost: Optional[float]
    turnout_adjusted_net_votes_per_attempt: Optional[float]
    cost_per_turnout_adjusted_net_vote: Optional[float]
    feasibility_text: str
    used_cr: Optional[float] = None
    used_sr: Optional[float] = None
    used_tr: Optional[float] = None


@dataclass(frozen=True)
class RoiBanner:
    kind: str
    text: str


@dataclass(frozen=True)
class RoiTable:
    rows: List[RoiRow] = field(default_factory=list)
    banner: Optional[RoiBanner] = None

    def to_dict(self):
        return asdict(self)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(r) for r in self.rows])


def _roi_banner(need, rates_ok_base, overhead_amount, include_overhead, mc_median, mc_need_votes) -> RoiBanner:
    if need is None:
        return RoiBanner("warn", "ROI: Enter a valid universe and support inputs so the persuasion need can be computed.")
    if need == 0:
        return RoiBanner("ok", "ROI: Under current assumptions, no net persuasion votes are required (gap = 0).")
    if not rates_ok_base:
        return RoiBanner("warn", "ROI: Enter contact rate, support rate and turnout reliability to compute ROI.")
    if include_overhead and overhead_amount > 0:
        return RoiBanner("ok", "ROI: Overhead is spread deterministically across each tactic's gap-closure plan.")
    if mc_median is not None and mc_need_votes is not None and mc_need_votes + mc_median > 0:
        return RoiBanner("warn", "ROI: Monte Carlo results exist; read ROI alongside the median and downside outcomes.")
    return RoiBanner("ok", "ROI: Deterministic cost lens using Attempts -> Conversations -> Support IDs -> Net Votes.")


def compute_roi_rows(
    goal_net_votes,
    base_rates: YieldRates,
    tactic_inputs: Mapping[str, TacticInput],
    overhead_amount: float = 0.0,
    include_overhead: bool = False,
    caps: Optional[Mapping[str, float]] = None,
    mc_summary=None,
    turnout_model: Optional[TurnoutModel] = None,
) -> RoiTable:
    """Cost per net vote for each enabled channel, cheapest first.

    ``caps`` maps a channel (or ``"total"``) to its attempt ceiling for the
    feasibility column. Rows without a cost per net vote sort last.
    """
    goal = safe_num(goal_net_votes)
    need = max(0.0, goal) if goal is not None else None
    overhead = max(0.0, safe_num(overhead_amount) or 0.0)
    gotv = _gotv_terms(turnout_model)
    rates_ok_base = need is not None and need > 0 and _positive(
        base_rates.contact_rate, base_rates.support_rate, base_rates.turnout_reliability
    )

    rows = []
    for key, label in CHANNELS:
        t = tactic_inputs.get(key)
        if t is None or not t.enabled:
            continue
        cr, sr, tr = _channel_rates(t, base_rates)
        rates_ok = need is not None and need > 0 and _positive(cr, sr, tr)
        net_yield = cr * sr * tr if _positive(cr, sr, tr) else 0.0
        ta_yield = _turnout_adjusted_yield(t.kind, cr, sr, tr, gotv, net_yield)

        required = need / net_yield if rates_ok else None
        required_ta = need / ta_yield if need and ta_yield > 0 else None

        overhead_per_attempt = overhead / required if include_overhead and overhead > 0 and required else 0.0
        cpa = max(0.0, safe_num(t.cpa) or 0.0) + overhead_per_attempt

        cost_per_net_vote = cpa / net_yield if rates_ok and cpa > 0 else None
        total_cost = required * cpa if rates_ok and cpa > 0 else None
        cost_per_ta = cpa / ta_yield if gotv.enabled and cpa > 0 and required_ta is not None else None

        cap = None
        if caps is not None:
            cap = caps.get(key, caps.get("total"))
        if required is None:
            feasibility = "No gap" if need == 0 else "Missing rates"
        elif cap is None:
            feasibility = "Ceiling unknown"
        else:
            feasibility = "Feasible (base)" if required <= cap else "Capacity shortfall"

        rows.append(
            RoiRow(
                key=key,
                label=label,
                cpa=cpa if cpa > 0 else None,
                cost_per_net_vote=cost_per_net_vote,
                total_cost=total_cost,
                turnout_adjusted_net_votes_per_attempt=ta_yield,
                cost_per_turnout_adjusted_net_vote=cost_per_ta,
                feasibility_text=feasibility,
                used_cr=cr,
                used_sr=sr,
                used_tr=tr,
            )
        )

    rows.sort(key=lambda r: math.inf if r.cost_per_net_vote is None else r.cost_per_net_vote)

    mc_median = getattr(mc_summary, "median", None)
    mc_need = getattr(mc_summary, "need_votes", None)
    banner = _roi_banner(need, rates_ok_base, overhead, include_overhead, mc_median, mc_need)
    return RoiTable(rows=rows, banner=banner)


def tactic_inputs_from_dict(d: Mapping[str, Mapping]) -> Dict[str, TacticInput]:
    return {key: TacticInput(**d[key]) for key, _ in CHANNELS if key in d}
