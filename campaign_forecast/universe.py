"""Universe composition and retention layer.

Scales support and turnout rates by a party-composition weighted multiplier
and widens the Monte Carlo triangles slightly when retention is weak. With the
layer disabled, or retention at 1.0, rates pass through untouched.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, Optional

from .config import (
    DEFAULT_RETENTION,
    RETENTION_MAX,
    RETENTION_MIN,
    TURNOUT_BOOST_CAP,
    UNIVERSE_MULTIPLIERS,
    VOLATILITY_BOOST_CAP,
)
from .utils import clamp, normalize_fracs, safe_num

logger = logging.getLogger(__name__)

_GROUPS = ("dem", "rep", "npa", "other")


@dataclass(frozen=True)
class UniverseLayer:
    enabled: bool = False
    dem_pct: float = 100.0
    rep_pct: float = 0.0
    npa_pct: float = 0.0
    other_pct: float = 0.0
    retention_factor: Optional[float] = DEFAULT_RETENTION

    @property
    def percents(self) -> Dict[str, float]:
        return {"dem": self.dem_pct, "rep": self.rep_pct, "npa": self.npa_pct, "other": self.other_pct}


@dataclass(frozen=True)
class NormalizedUniverse:
    percents: Dict[str, float]
    shares: Dict[str, float]
    total: float
    normalized: bool
    warning: str = ""


@dataclass(frozen=True)
class UniverseAdjustment:
    sr_adj: Optional[float]
    tr_adj: Optional[float]
    volatility_boost: float
    meta: Dict[str, object] = field(default_factory=dict)

    def to_dict(self):
        return asdict(self)


def _clamp_or(v, lo, hi, fallback):
    n = safe_num(v)
    if n is None:
        return fallback
    return clamp(n, lo, hi)


def _clamp01(v) -> Optional[float]:
    n = safe_num(v)
    if n is None:
        return None
    return clamp(n, 0.0, 1.0)


def normalize_universe_percents(percents: Optional[Dict[str, float]] = None) -> NormalizedUniverse:
    """Rescale a dem/rep/npa/other composition to sum to 100%."""
    percents = percents or {}
    raw = [_clamp_or(percents.get(g), 0.0, 100.0, 0.0) for g in _GROUPS]
    total = sum(raw)

    if total <= 0:
        return NormalizedUniverse(
            percents={"dem": 100.0, "rep": 0.0, "npa": 0.0, "other": 0.0},
            shares={"dem": 1.0, "rep": 0.0, "npa": 0.0, "other": 0.0},
            total=100.0,
            normalized=True,
            warning="Universe composition defaulted to 100% Dem (no valid inputs).",
        )

    shares = dict(zip(_GROUPS, normalize_fracs(raw)))
    off = abs(total - 100.0) > 0.05
    return NormalizedUniverse(
        percents={g: 100.0 * s for g, s in shares.items()},
        shares=shares,
        total=total,
        normalized=off,
        warning=f"Universe composition normalized from {total:.1f}% to 100%." if off else "",
    )


def _weighted_multiplier(shares: Dict[str, float], multipliers: Dict[str, float]) -> float:
    return sum(shares.get(g, 0.0) * multipliers.get(g, 1.0) for g in _GROUPS)


def compute_universe_adjusted_rates(layer: UniverseLayer, support_rate, turnout_reliability) -> UniverseAdjustment:
    sr = _clamp01(support_rate)
    tr = _clamp01(turnout_reliability)
    rf = _clamp_or(layer.retention_factor, RETENTION_MIN, RETENTION_MAX, RETENTION_MIN)

    identity_meta = {
        "enabled": bool(layer.enabled),
        "retention_factor": rf,
        "persuasion_multiplier": 1.0,
        "turnout_multiplier": 1.0,
        "turnout_boost_applied": 0.0,
    }
    if not layer.enabled:
        return UniverseAdjustment(sr, tr, 0.0, identity_meta)

    # retention 1.0 must reproduce the unadjusted baseline exactly
    if rf >= 0.999999:
        identity_meta["retention_factor"] = 1.0
        return UniverseAdjustment(sr, tr, 0.0, identity_meta)

    norm = normalize_universe_percents(layer.percents)
    if norm.warning:
        logger.warning(norm.warning)

    p_mult = _weighted_multiplier(norm.shares, UNIVERSE_MULTIPLIERS["persuasion"])
    t_mult = _weighted_multiplier(norm.shares, UNIVERSE_MULTIPLIERS["turnout"])

    sr_adj = None if sr is None else _clamp01(sr * p_mult * rf)
    boost_applied = TURNOUT_BOOST_CAP * rf
    tr_adj = None if tr is None else _clamp01(tr * t_mult * (1 + boost_applied))

    volatility_boost = min(VOLATILITY_BOOST_CAP, max(0.0, (1 - rf) * 0.10))

    return UniverseAdjustment(
        sr_adj,
        tr_adj,
        volatility_boost,
        {
            "enabled": True,
            "retention_factor": rf,
            "persuasion_multiplier": p_mult,
            "turnout_multiplier": t_mult,
            "turnout_boost_applied": boost_applied,
            "normalized_warning": norm.warning,
            "normalized_percents": norm.percents,
        },
    )
