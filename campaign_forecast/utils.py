import math
from typing import Optional, Sequence

import numpy as np


# -----------------------------
# Helpers
# -----------------------------
def clamp(x, a=0.0, b=1.0):
    return max(a, min(b, x))


def safe_num(v) -> Optional[float]:
    """Coerce to a finite float, or None for blanks and non-numeric input."""
    if v is None or v == "":
        return None
    try:
        n = float(v)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def is_finite_number(x) -> bool:
    return isinstance(x, (int, float, np.floating, np.integer)) and not isinstance(x, bool) and math.isfinite(x)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def normalize_fracs(fracs):
    s = sum(fracs)
    if s <= 0:
        return [0.0 for _ in fracs]
    return [f / s for f in fracs]


def triangular_mean(a, c, b):
    # a=min, c=mode, b=max
    return (a + c + b) / 3.0


def pct_to_unit(v, fallback: float) -> float:
    n = safe_num(v)
    if n is None:
        return fallback
    return clamp(n, 0.0, 100.0) / 100.0


# -----------------------------
# Statistics over margin arrays
# -----------------------------
def quantile_sorted(sorted_values: np.ndarray, q: float) -> float:
    """Linear-interpolated order statistic; 0.0 for an empty array."""
    if len(sorted_values) == 0:
        return 0.0
    return float(np.quantile(sorted_values, clamp(q, 0.0, 1.0)))


def stdev_pop(values: np.ndarray) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.std(values))


def pearson(xs: Sequence[float], ys: Sequence[float]) -> Optional[float]:
    """Pearson r, or None when there is no signal (n < 2 or zero variance)."""
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    n = len(x)
    if n < 2 or len(y) != n:
        return None
    if np.ptp(x) == 0 or np.ptp(y) == 0:
        return None
    dx = x - x.mean()
    dy = y - y.mean()
    den = math.sqrt(float(np.dot(dx, dx)) * float(np.dot(dy, dy)))
    if not math.isfinite(den) or den == 0:
        return None
    return float(np.dot(dx, dy)) / den
