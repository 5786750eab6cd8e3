"""Validated input records for a forecasting run."""

from dataclasses import asdict, dataclass, field
from typing import Optional

from .config import (
    DEFAULT_CALLS_PER_HOUR,
    DEFAULT_DOORS_PER_HOUR,
    DEFAULT_ORG_COUNT,
    DEFAULT_ORG_HOURS_PER_WEEK,
    DEFAULT_RUNS,
    DEFAULT_VOLATILITY,
    DEFAULT_VOLUNTEER_MULT,
    MC_MODES,
    VOLATILITY_WIDTHS,
)
from .errors import StructuralError
from .turnout import TurnoutModel
from .universe import UniverseLayer
from .utils import safe_num


@dataclass(frozen=True)
class TriangleInput:
    """Raw min/mode/max override; any member may be left blank."""

    min: Optional[float] = None
    mode: Optional[float] = None
    max: Optional[float] = None


@dataclass(frozen=True)
class RateRanges:
    """Advanced-mode overrides. Rates in percent, throughput and multiplier raw."""

    contact: TriangleInput = field(default_factory=TriangleInput)
    persuasion: TriangleInput = field(default_factory=TriangleInput)
    reliability: TriangleInput = field(default_factory=TriangleInput)
    doors_per_hour: TriangleInput = field(default_factory=TriangleInput)
    calls_per_hour: TriangleInput = field(default_factory=TriangleInput)
    volunteer_mult: TriangleInput = field(default_factory=TriangleInput)


@dataclass(frozen=True)
class Scenario:
    # Base rates, percent 0-100 (None -> engine default)
    contact_rate_pct: Optional[float] = None
    support_rate_pct: Optional[float] = None
    turnout_reliability_pct: Optional[float] = None

    # Capacity bases
    org_count: float = DEFAULT_ORG_COUNT
    org_hours_per_week: float = DEFAULT_ORG_HOURS_PER_WEEK
    channel_door_pct: Optional[float] = None
    doors_per_hour: float = DEFAULT_DOORS_PER_HOUR
    calls_per_hour: float = DEFAULT_CALLS_PER_HOUR
    volunteer_mult_base: float = DEFAULT_VOLUNTEER_MULT

    mc_mode: str = "basic"
    mc_volatility: str = DEFAULT_VOLATILITY
    ranges: RateRanges = field(default_factory=RateRanges)
    universe: UniverseLayer = field(default_factory=UniverseLayer)

    def __post_init__(self):
        if self.mc_mode not in MC_MODES:
            raise StructuralError(f"Unknown Monte Carlo mode {self.mc_mode!r}; expected one of {MC_MODES}.")
        if self.mc_volatility not in VOLATILITY_WIDTHS:
            raise StructuralError(
                f"Unknown volatility {self.mc_volatility!r}; expected one of {tuple(VOLATILITY_WIDTHS)}."
            )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class SimulationConfig:
    runs: int = DEFAULT_RUNS
    seed: str = ""
    need_votes: float = 0.0
    weeks: float = 0.0
    include_margins: bool = False
    turnout: TurnoutModel = field(default_factory=TurnoutModel)

    def __post_init__(self):
        if isinstance(self.runs, bool) or not isinstance(self.runs, int) or self.runs < 1:
            raise StructuralError(f"runs must be an integer >= 1, got {self.runs!r}.")
        if safe_num(self.need_votes) is None:
            raise StructuralError(f"need_votes must be a finite number, got {self.need_votes!r}.")
        if self.seed is None:
            object.__setattr__(self, "seed", "")
