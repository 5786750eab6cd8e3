"""Named defaults and constants for the forecasting engine.

Rates are stored as unit fractions (0..1) unless the name ends in ``_PCT``.
"""

# -----------------------------
# Scenario defaults
# -----------------------------
DEFAULT_CONTACT_RATE = 0.22
DEFAULT_SUPPORT_RATE = 0.55
DEFAULT_TURNOUT_RELIABILITY = 0.80

DEFAULT_ORG_COUNT = 2.0
DEFAULT_ORG_HOURS_PER_WEEK = 40.0
DEFAULT_DOOR_SHARE = 0.70
DEFAULT_DOORS_PER_HOUR = 30.0
DEFAULT_CALLS_PER_HOUR = 20.0
DEFAULT_VOLUNTEER_MULT = 1.0

# Door share assumed by the capacity model when none is given
CAPACITY_DEFAULT_DOOR_SHARE = 0.5

# -----------------------------
# Monte Carlo
# -----------------------------
DEFAULT_RUNS = 10000
MC_MODES = ("basic", "advanced")

# Triangle half-width as a fraction of the base value
VOLATILITY_WIDTHS = {"low": 0.10, "med": 0.20, "high": 0.30}
DEFAULT_VOLATILITY = "med"

# Advanced-mode fallbacks when only some of min/mode/max are given
ADVANCED_LOW_FACTOR = 0.8
ADVANCED_HIGH_FACTOR = 1.2
THROUGHPUT_FLOOR = 0.01

HISTOGRAM_BINS = 44
HISTOGRAM_MIN_BINS = 12
HISTOGRAM_MAX_BINS = 80

# (threshold, label), checked top-down against win probability
RISK_LABELS = (
    (0.85, "Strong structural position"),
    (0.65, "Favored but fragile"),
    (0.50, "Toss-up"),
)
RISK_LABEL_FLOOR = "Structural underdog"

SENSITIVITY_LABELS = (
    ("turnout_reliability", "Turnout reliability"),
    ("persuasion_rate", "Persuasion rate"),
    ("doors_per_hour", "Organizer productivity (doors/hr)"),
    ("calls_per_hour", "Organizer productivity (calls/hr)"),
    ("contact_rate", "Contact rate"),
    ("volunteer_mult", "Volunteer multiplier"),
)
GOTV_LIFT_LABEL = "GOTV lift per contact (pp)"

# -----------------------------
# Confidence envelope
# -----------------------------
ENVELOPE_VERSION = "14.1"
WIN_RULES = ("gte0", "gt0")
SHOCK_SIZES = (10, 25, 50)
TARGET_WIN_PROBS = (0.60, 0.70, 0.80)
SHORTFALL_TAIL = 0.10
LOW_N_RUNS = 200

# -----------------------------
# Universe composition layer
# -----------------------------
UNIVERSE_MULTIPLIERS = {
    "persuasion": {"dem": 1.00, "rep": 0.60, "npa": 1.10, "other": 0.80},
    "turnout": {"dem": 1.00, "rep": 1.05, "npa": 0.90, "other": 0.85},
}
TURNOUT_BOOST_CAP = 0.05
VOLATILITY_BOOST_CAP = 0.05
RETENTION_MIN = 0.60
RETENTION_MAX = 1.00
DEFAULT_RETENTION = 0.80

# -----------------------------
# Sensitivity surface
# -----------------------------
# lever -> (scenario field, unit, clamp low, clamp high)
LEVERS = {
    "volunteer_multiplier": ("volunteer_mult_base", "raw", 0.1, 6.0),
    "support_rate": ("support_rate_pct", "pct", 0.0, 100.0),
    "contact_rate": ("contact_rate_pct", "pct", 0.0, 100.0),
    "turnout_reliability": ("turnout_reliability_pct", "pct", 0.0, 100.0),
}
SURFACE_MIN_STEPS = 5
SURFACE_DEFAULT_STEPS = 21
SURFACE_MIN_RUNS = 200
SURFACE_DEFAULT_RUNS = 2000
DEFAULT_TARGET_WIN_PROB = 0.70

# -----------------------------
# Optimizer / timeline
# -----------------------------
DEFAULT_STEP = 25
DEFAULT_DECAY_MULTS = (1.0, 0.85, 0.7, 0.55)
RAMP_FACTORS = {"linear": 0.5, "s": 0.65}
MIN_COST_SEARCH_ITERATIONS = 30
BINDING_REL_TOLERANCE = 0.001
OPTIMIZER_OBJECTIVES = ("net", "turnout")
TACTIC_KINDS = ("persuasion", "gotv", "hybrid", "turnout")
GOTV_KINDS = ("gotv", "turnout")
TIMELINE_OBJECTIVES = ("max_net", "min_cost_goal")
NEAR_BINDING_SATURATION = 0.02
