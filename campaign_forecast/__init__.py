"""Campaign win-probability forecasting and resource allocation."""

from .capacity import CapacityBreakdown, compute_capacity_breakdown, compute_capacity_contacts
from .confidence import ConfidenceEnvelope, compute_confidence_envelope, required_shift_for_win_prob
from .errors import StructuralError
from .monte_carlo import SimulationSummary, run_monte_carlo_sim
from .optimize import (
    AllocationPlan,
    DecayTier,
    Tactic,
    make_decay_tiers,
    optimize_mix_budget,
    optimize_mix_capacity,
    validate_tactics,
)
from .rate_specs import RateSpec, RateSpecs, build_rate_specs
from .risk import (
    conditional_value_at_risk,
    evaluate_plan,
    select_plan,
    shortfall_probability,
    summary_from_margins,
    value_at_risk,
)
from .rng import make_rng, tri_sample
from .scenario import RateRanges, Scenario, SimulationConfig, TriangleInput
from .sensitivity_surface import SurfaceResult, SweepRequest, analyze_surface, compute_sensitivity_surface
from .tactics import TacticInput, YieldRates, build_optimization_tactics, compute_roi_rows
from .timeline import (
    Ramp,
    Staffing,
    TimelineInputs,
    TimelineResult,
    compute_max_attempts_by_tactic,
    compute_timeline_feasibility,
    detect_primary_bottleneck,
    optimize_timeline_constrained,
)
from .turnout import TurnoutModel, compute_avg_lift_pp, compute_turnout_adjusted_net_votes
from .universe import UniverseLayer, compute_universe_adjusted_rates, normalize_universe_percents

__version__ = "3.0.0"
