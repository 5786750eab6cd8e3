"""Organizer capacity model: hours across remaining weeks turned into attempts."""

from dataclasses import asdict, dataclass
from typing import Optional

from .config import CAPACITY_DEFAULT_DOOR_SHARE
from .utils import safe_num


@dataclass(frozen=True)
class CapacityBreakdown:
    weeks: float
    org_count: float
    org_hours_per_week: float
    volunteer_mult: float
    door_share: float
    total_hours: float
    doors_hours: float
    calls_hours: float
    doors: float
    calls: float
    total: float

    def to_dict(self):
        return asdict(self)


def _validated(weeks, org_count, org_hours_per_week, volunteer_mult, door_share, doors_per_hour, calls_per_hour):
    values = [safe_num(v) for v in (weeks, org_count, org_hours_per_week, volunteer_mult, doors_per_hour, calls_per_hour)]
    if any(v is None or v < 0 for v in values):
        return None
    share = CAPACITY_DEFAULT_DOOR_SHARE if door_share is None else safe_num(door_share)
    if share is None or share < 0 or share > 1:
        return None
    return values, share


def compute_capacity_breakdown(
    weeks,
    org_count,
    org_hours_per_week,
    volunteer_mult,
    door_share,
    doors_per_hour,
    calls_per_hour,
) -> Optional[CapacityBreakdown]:
    checked = _validated(weeks, org_count, org_hours_per_week, volunteer_mult, door_share, doors_per_hour, calls_per_hour)
    if checked is None:
        return None
    (wk, orgs, hrs, vm, dph, cph), share = checked

    total_hours = wk * orgs * hrs * vm
    doors_hours = total_hours * share
    calls_hours = total_hours * (1 - share)
    doors = doors_hours * dph
    calls = calls_hours * cph

    return CapacityBreakdown(
        weeks=wk,
        org_count=orgs,
        org_hours_per_week=hrs,
        volunteer_mult=vm,
        door_share=share,
        total_hours=total_hours,
        doors_hours=doors_hours,
        calls_hours=calls_hours,
        doors=doors,
        calls=calls,
        total=doors + calls,
    )


def compute_capacity_contacts(
    weeks,
    org_count,
    org_hours_per_week,
    volunteer_mult,
    door_share,
    doors_per_hour,
    calls_per_hour,
) -> Optional[float]:
    """Total attempts deliverable, or None when any input is missing or negative."""
    breakdown = compute_capacity_breakdown(
        weeks, org_count, org_hours_per_week, volunteer_mult, door_share, doors_per_hour, calls_per_hour
    )
    if breakdown is None:
        return None
    return breakdown.total
