"""
Tests for the greedy tactic-mix optimizer.

Three tactics are used throughout:
    A: $1.00/attempt, 0.05 net votes  -> 0.050 votes per dollar
    B: $2.50/attempt, 0.12 net votes  -> 0.048 votes per dollar
    C: $0.50/attempt, 0.01 net votes  -> 0.020 votes per dollar
"""

import json
import math

import pytest

from campaign_forecast.errors import StructuralError
from campaign_forecast.optimize import (
    DecayTier,
    Tactic,
    make_decay_tiers,
    optimize_mix_budget,
    optimize_mix_capacity,
    tier_multiplier,
    validate_tactics,
)


def three_tactics(**overrides):
    tactics = {
        "A": Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.05),
        "B": Tactic(id="B", cost_per_attempt=2.5, net_votes_per_attempt=0.12),
        "C": Tactic(id="C", cost_per_attempt=0.5, net_votes_per_attempt=0.01),
    }
    for tid, t in overrides.items():
        tactics[tid] = t
    return list(tactics.values())


class TestBudgetMode:
    """Test votes-per-dollar allocation under a budget"""

    def setup_method(self):
        self.tactics = three_tactics()

    def test_best_ratio_takes_the_budget(self):
        """Every step goes to A, the best votes-per-dollar tactic"""
        plan = optimize_mix_budget(250, self.tactics, step=25)
        assert plan.allocation == {"A": 250, "B": 0, "C": 0}
        assert plan.totals.cost == 250.0
        assert math.isclose(plan.totals.net_votes, 12.5)
        assert plan.binding == "budget"
        assert plan.trace[0].pick == "A"
        assert len(plan.trace) == 10

    def test_budget_containment(self):
        """Total cost never exceeds the budget"""
        for budget in (0, 10, 99, 250, 1234.5, 10000):
            plan = optimize_mix_budget(budget, self.tactics, step=25)
            assert plan.totals.cost <= budget + 1e-9

    def test_zero_budget(self):
        """No budget, no attempts"""
        plan = optimize_mix_budget(0, self.tactics)
        assert plan.totals.attempts == 0
        assert plan.totals.cost == 0
        assert plan.trace == []

    def test_caps_respected(self):
        """Capped tactics hand the remaining budget to the next best"""
        tactics = three_tactics(A=Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.05, max_attempts=60))
        plan = optimize_mix_budget(1000, tactics, step=25)
        assert plan.allocation["A"] == 50
        assert plan.allocation["B"] > 0
        assert plan.totals.cost <= 1000

    def test_capacity_ceiling(self):
        """An attempt ceiling binds before the budget does"""
        plan = optimize_mix_budget(10000, self.tactics, step=25, capacity_ceiling=100)
        assert plan.totals.attempts == 100
        assert plan.binding == "capacity"

    def test_caps_binding(self):
        """With every tactic capped out the binding reason is caps"""
        tactics = [Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.05, max_attempts=50)]
        plan = optimize_mix_budget(1000, tactics, step=25)
        assert plan.allocation == {"A": 50}
        assert plan.binding == "caps"

    def test_tie_keeps_input_order(self):
        """Identical tactics: the first listed wins every tie"""
        tactics = [
            Tactic(id="X", cost_per_attempt=1.0, net_votes_per_attempt=0.1),
            Tactic(id="Y", cost_per_attempt=1.0, net_votes_per_attempt=0.1),
        ]
        plan = optimize_mix_budget(100, tactics, step=25)
        assert plan.allocation == {"X": 100, "Y": 0}

    def test_free_capped_tactic(self):
        """A free tactic scores infinitely and is reported without a score"""
        tactics = [
            Tactic(id="free", cost_per_attempt=0.0, net_votes_per_attempt=0.01, max_attempts=50),
            Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.05),
        ]
        plan = optimize_mix_budget(50, tactics, step=25)
        assert [p.pick for p in plan.trace[:2]] == ["free", "free"]
        assert plan.trace[0].score is None
        assert plan.allocation == {"free": 50, "A": 50}

    def test_turnout_objective(self):
        """The turnout objective scores the turnout-adjusted yield"""
        tactics = [
            Tactic(id="doors", cost_per_attempt=1.0, net_votes_per_attempt=0.05, turnout_adjusted_net_votes_per_attempt=0.05),
            Tactic(
                id="gotv",
                kind="gotv",
                cost_per_attempt=1.0,
                net_votes_per_attempt=0.0,
                turnout_adjusted_net_votes_per_attempt=0.2,
            ),
        ]
        assert optimize_mix_budget(100, tactics, objective="net").allocation["doors"] == 100
        assert optimize_mix_budget(100, tactics, objective="turnout").allocation["gotv"] == 100

    def test_unknown_objective(self):
        with pytest.raises(StructuralError):
            optimize_mix_budget(100, self.tactics, objective="persuasion")


class TestCapacityMode:
    """Test raw-vote allocation under an attempt capacity"""

    def setup_method(self):
        self.tactics = three_tactics()

    def test_highest_yield_wins(self):
        """B has the highest votes per attempt"""
        plan = optimize_mix_capacity(100, self.tactics, step=25)
        assert plan.allocation == {"A": 0, "B": 100, "C": 0}
        assert math.isclose(plan.totals.net_votes, 12.0)
        assert plan.binding == "capacity"
        assert plan.mode == "capacity"

    def test_capacity_containment(self):
        """Total attempts never exceed capacity"""
        for capacity in (0, 24, 25, 101, 999):
            plan = optimize_mix_capacity(capacity, self.tactics, step=25)
            assert plan.totals.attempts <= capacity + 1e-9

    def test_zero_capacity(self):
        plan = optimize_mix_capacity(0, self.tactics)
        assert plan.totals.attempts == 0
        assert plan.totals.cost == 0

    def test_cap_not_a_step_multiple(self):
        """A cap of 60 admits two 25-attempt steps, never three"""
        tactics = three_tactics(B=Tactic(id="B", cost_per_attempt=2.5, net_votes_per_attempt=0.12, max_attempts=60))
        plan = optimize_mix_capacity(100, tactics, step=25)
        assert plan.allocation["B"] == 50
        assert plan.allocation["A"] == 50
        assert math.isclose(plan.totals.net_votes, 8.5)

    def test_free_uncapped_allowed_with_capacity(self):
        """Capacity alone bounds a free tactic"""
        free = Tactic(id="free", cost_per_attempt=0.0, net_votes_per_attempt=0.01)
        plan = optimize_mix_capacity(100, [free], step=25)
        assert plan.allocation == {"free": 100}


class TestDecay:
    """Test diminishing-return tiers"""

    def test_make_decay_tiers(self):
        """Three thresholds give three finite tiers; the open-ended fourth is dropped"""
        tiers = make_decay_tiers(100, 200, 300)
        assert [t.upto for t in tiers] == [100, 200, 300]
        assert [t.mult for t in tiers] == [1.0, 0.85, 0.7]

    def test_make_decay_tiers_partial(self):
        """Missing and non-positive thresholds are dropped"""
        tiers = make_decay_tiers(0, 200)
        assert [(t.upto, t.mult) for t in tiers] == [(200, 0.85)]

    def test_no_thresholds_means_no_decay(self):
        """Without any threshold the schedule is empty and yield is undecayed"""
        assert make_decay_tiers(None) == ()
        t = Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.1, decay_tiers=make_decay_tiers(None))
        assert tier_multiplier(t, 0) == 1.0
        assert tier_multiplier(t, 5000) == 1.0

    def test_tier_multiplier(self):
        """Past the last threshold the last tier's multiplier carries on"""
        t = Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.1, decay_tiers=make_decay_tiers(50, 100))
        assert tier_multiplier(t, 0) == 1.0
        assert tier_multiplier(t, 50) == 0.85
        assert tier_multiplier(t, 5000) == 0.85
        full = Tactic(id="F", cost_per_attempt=1.0, net_votes_per_attempt=0.1, decay_tiers=make_decay_tiers(100, 200, 300))
        assert tier_multiplier(full, 400) == 0.7
        assert tier_multiplier(Tactic(id="B", cost_per_attempt=1.0, net_votes_per_attempt=0.1), 5000) == 1.0

    def test_decayed_totals(self):
        """Decayed totals sum the scored marginal votes"""
        t = Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.1, decay_tiers=make_decay_tiers(50, 100, 125))
        plan = optimize_mix_capacity(150, [t], step=25, use_decay=True)
        assert [p.m_net_votes for p in plan.trace] == pytest.approx([2.5, 2.5, 2.125, 2.125, 1.75, 1.75])
        assert math.isclose(plan.totals.net_votes, 12.75)
        assert plan.allocation == {"A": 150}

    def test_decay_shifts_the_mix(self):
        """Once A decays below B, B takes the remaining steps"""
        a = Tactic(
            id="A",
            cost_per_attempt=1.0,
            net_votes_per_attempt=0.1,
            decay_tiers=(DecayTier(upto=50, mult=1.0), DecayTier(upto=math.inf, mult=0.3)),
        )
        b = Tactic(id="B", cost_per_attempt=1.0, net_votes_per_attempt=0.05)
        decayed = optimize_mix_capacity(100, [a, b], step=25, use_decay=True)
        assert decayed.allocation == {"A": 50, "B": 50}
        assert math.isclose(decayed.totals.net_votes, 7.5)

        plain = optimize_mix_capacity(100, [a, b], step=25)
        assert plain.allocation == {"A": 100, "B": 0}

    def test_decay_never_loosens_caps(self):
        a = Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.1, max_attempts=75, decay_tiers=make_decay_tiers(25))
        plan = optimize_mix_capacity(1000, [a], step=25, use_decay=True)
        assert plan.allocation["A"] == 75

    def test_tier_dicts_coerced(self):
        t = Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.1, decay_tiers=[{"upto": 10, "mult": 0.5}])
        assert t.decay_tiers == (DecayTier(upto=10, mult=0.5),)


class TestValidation:
    """Test that malformed tactics abort the call"""

    def test_missing_id(self):
        with pytest.raises(StructuralError):
            Tactic(id="  ", cost_per_attempt=1.0, net_votes_per_attempt=0.1)

    def test_negative_cost(self):
        with pytest.raises(StructuralError):
            Tactic(id="A", cost_per_attempt=-1.0, net_votes_per_attempt=0.1)

    def test_invalid_cap(self):
        with pytest.raises(StructuralError):
            Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.1, max_attempts=-5)

    def test_non_finite_yield(self):
        with pytest.raises(StructuralError):
            Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=float("nan"))

    def test_unknown_kind(self):
        with pytest.raises(StructuralError):
            Tactic(id="A", cost_per_attempt=1.0, net_votes_per_attempt=0.1, kind="mail")

    def test_bad_decay_tier(self):
        with pytest.raises(StructuralError):
            DecayTier(upto=0, mult=1.0)
        with pytest.raises(StructuralError):
            DecayTier(upto=10, mult=-0.5)

    def test_duplicate_ids(self):
        tactics = three_tactics() + [Tactic(id="A", cost_per_attempt=2.0, net_votes_per_attempt=0.1)]
        with pytest.raises(StructuralError):
            optimize_mix_budget(100, tactics)

    def test_dicts_are_coerced(self):
        """Plain dicts are accepted and normalized"""
        tactics = validate_tactics([{"id": " doors ", "cost_per_attempt": "1.5", "net_votes_per_attempt": 0.1}])
        assert tactics[0].id == "doors"
        assert tactics[0].label == "doors"
        assert tactics[0].cost_per_attempt == 1.5

    def test_unbounded_free_tactic(self):
        """A free, uncapped, valuable tactic has no stopping point under a budget"""
        free = Tactic(id="free", cost_per_attempt=0.0, net_votes_per_attempt=0.01)
        with pytest.raises(StructuralError):
            optimize_mix_budget(100, [free])
        plan = optimize_mix_budget(100, [free], capacity_ceiling=50)
        assert plan.allocation == {"free": 50}

    def test_step_cleaning(self):
        """Steps are floored to whole attempts, at least one"""
        assert optimize_mix_budget(10, three_tactics(), step=0).step == 1
        assert optimize_mix_budget(10, three_tactics(), step=10.7).step == 10
        assert optimize_mix_budget(10, three_tactics(), step=None).step == 25


class TestPlanOutput:
    """Test the plan's tabular and JSON views"""

    def test_trace_frame(self):
        plan = optimize_mix_budget(250, three_tactics(), step=25)
        df = plan.trace_frame()
        assert list(df.columns) == ["pick", "add", "m_net_votes", "m_cost", "score"]
        assert len(df) == len(plan.trace)
        assert (df["pick"] == "A").all()

    def test_json(self):
        plan = optimize_mix_budget(250, three_tactics(), step=25)
        d = json.loads(json.dumps(plan.to_dict(), allow_nan=False))
        assert d["allocation"]["A"] == 250
        assert d["totals"]["cost"] == 250.0

    def test_repeatable(self):
        """Identical inputs give identical plans"""
        a = optimize_mix_budget(777, three_tactics(), step=25)
        b = optimize_mix_budget(777, three_tactics(), step=25)
        assert a == b
