"""
Tests for scenario validation, the universe layer and the rate-spec builder.
"""

import math

import pytest

from campaign_forecast.errors import StructuralError
from campaign_forecast.rate_specs import (
    RATE_KEYS,
    RateSpec,
    build_rate_specs,
    normalize_tri,
    resolve_base_rates,
    spread,
    widen,
)
from campaign_forecast.scenario import RateRanges, Scenario, SimulationConfig, TriangleInput
from campaign_forecast.universe import UniverseLayer, compute_universe_adjusted_rates, normalize_universe_percents


class TestScenarioValidation:
    """Test constructor-time validation of input records"""

    def test_unknown_mode_rejected(self):
        """Only basic and advanced modes exist"""
        with pytest.raises(StructuralError):
            Scenario(mc_mode="expert")

    def test_unknown_volatility_rejected(self):
        """Volatility must be low, med or high"""
        with pytest.raises(StructuralError):
            Scenario(mc_volatility="extreme")

    def test_runs_must_be_positive_int(self):
        """runs < 1, floats and bools are all rejected"""
        for bad in (0, -5, 2.5, True):
            with pytest.raises(StructuralError):
                SimulationConfig(runs=bad)

    def test_need_votes_must_be_finite(self):
        """need_votes cannot be NaN"""
        with pytest.raises(StructuralError):
            SimulationConfig(need_votes=float("nan"))

    def test_none_seed_becomes_empty(self):
        """A missing seed is stored as the empty string"""
        assert SimulationConfig(seed=None).seed == ""


class TestRateSpec:
    """Test triangle construction and normalization"""

    def test_rate_spec_rejects_bad_ordering(self):
        """min <= mode <= max is enforced"""
        with pytest.raises(StructuralError):
            RateSpec(3.0, 2.0, 1.0)

    def test_mean(self):
        """Analytic triangular mean of min, mode and max"""
        assert RateSpec(10.0, 20.0, 60.0).mean == 30.0
        spec = build_rate_specs(Scenario()).contact_rate
        assert math.isclose(spec.mean, 0.22)

    def test_normalize_tri_reorders(self):
        """Out-of-order inputs are rearranged into a valid triangle"""
        spec = normalize_tri(0.3, 0.1, 0.2)
        assert (spec.min, spec.mode, spec.max) == (0.1, 0.1, 0.3)

    def test_normalize_tri_non_finite(self):
        """Non-finite members are treated as zero"""
        spec = normalize_tri(float("nan"), 0.5, 1.0)
        assert spec.min == 0.0

    def test_spread_symmetric(self):
        """A 20% width around 0.5 gives 0.4 .. 0.6"""
        spec = spread(0.5, 0.20, 0.0, 1.0)
        assert math.isclose(spec.min, 0.4)
        assert spec.mode == 0.5
        assert math.isclose(spec.max, 0.6)

    def test_spread_clamped(self):
        """Rates near 1 are clamped at the domain edge"""
        spec = spread(0.95, 0.20, 0.0, 1.0)
        assert spec.max == 1.0
        assert spec.min <= spec.mode <= spec.max

    def test_widen(self):
        """Widening stretches both tails and keeps the mode"""
        spec = RateSpec(0.4, 0.5, 0.6)
        wide = widen(spec, 0.5)
        assert wide.mode == 0.5
        assert wide.min < spec.min
        assert wide.max > spec.max
        assert widen(spec, 0.0) is spec


class TestBuildRateSpecs:
    """Test the basic and advanced builders"""

    def test_basic_defaults(self):
        """Default scenario uses the med tier around the engine defaults"""
        specs = build_rate_specs(Scenario())
        assert math.isclose(specs.contact_rate.min, 0.22 * 0.8)
        assert specs.contact_rate.mode == 0.22
        assert math.isclose(specs.contact_rate.max, 0.22 * 1.2)
        for _, spec in specs.items():
            assert spec.min <= spec.mode <= spec.max

    def test_volatility_tiers_widen(self):
        """Higher volatility tiers give wider triangles"""
        spans = []
        for tier in ("low", "med", "high"):
            spec = build_rate_specs(Scenario(mc_volatility=tier)).persuasion_rate
            spans.append(spec.max - spec.min)
        assert spans[0] < spans[1] < spans[2]

    def test_throughput_spread(self):
        """Throughput triangles spread around the scenario base"""
        specs = build_rate_specs(Scenario(doors_per_hour=30.0))
        assert math.isclose(specs.doors_per_hour.min, 24.0)
        assert specs.doors_per_hour.mode == 30.0
        assert math.isclose(specs.doors_per_hour.max, 36.0)

    def test_advanced_overrides(self):
        """Explicit min/mode/max overrides are used and reordered"""
        ranges = RateRanges(contact=TriangleInput(min=30, mode=20, max=10))
        specs = build_rate_specs(Scenario(mc_mode="advanced", ranges=ranges))
        assert math.isclose(specs.contact_rate.min, 0.1)
        assert math.isclose(specs.contact_rate.mode, 0.2)
        assert math.isclose(specs.contact_rate.max, 0.3)

    def test_advanced_fallback_factors(self):
        """Missing advanced bounds fall back to 0.8x / 1.2x of the mode"""
        specs = build_rate_specs(Scenario(mc_mode="advanced", doors_per_hour=25.0))
        assert math.isclose(specs.doors_per_hour.min, 20.0)
        assert math.isclose(specs.doors_per_hour.max, 30.0)

    def test_universe_layer_widens_rates(self):
        """Weak retention widens persuasion and reliability spreads"""
        plain = build_rate_specs(Scenario(support_rate_pct=50))
        layered = build_rate_specs(
            Scenario(support_rate_pct=50, universe=UniverseLayer(enabled=True, retention_factor=0.6))
        )
        plain_width = (plain.persuasion_rate.max - plain.persuasion_rate.min) / plain.persuasion_rate.mode
        layered_width = (layered.persuasion_rate.max - layered.persuasion_rate.min) / layered.persuasion_rate.mode
        assert math.isclose(plain_width, 0.40)
        assert math.isclose(layered_width, 0.48)

    def test_specs_serialize(self):
        """Specs round into a plain dict keyed by rate"""
        d = build_rate_specs(Scenario()).to_dict()
        assert set(d) == set(RATE_KEYS)


class TestUniverseLayer:
    """Test the composition/retention adjustment"""

    def test_identity_at_full_retention(self):
        """Retention 1.0 leaves rates exactly unchanged"""
        layer = UniverseLayer(enabled=True, dem_pct=40, rep_pct=40, npa_pct=20, retention_factor=1.0)
        adj = compute_universe_adjusted_rates(layer, 0.55, 0.80)
        assert adj.sr_adj == 0.55
        assert adj.tr_adj == 0.80
        assert adj.volatility_boost == 0.0

    def test_identity_at_full_retention_through_builder(self):
        """Base rates resolved with retention 1.0 match the raw inputs"""
        scenario = Scenario(
            support_rate_pct=55,
            turnout_reliability_pct=80,
            universe=UniverseLayer(enabled=True, rep_pct=50, dem_pct=50, retention_factor=1.0),
        )
        base, _ = resolve_base_rates(scenario)
        assert base.persuasion_rate == 0.55
        assert base.turnout_reliability == 0.80

    def test_disabled_layer_is_identity(self):
        """A disabled layer passes rates through"""
        adj = compute_universe_adjusted_rates(UniverseLayer(enabled=False, retention_factor=0.6), 0.5, 0.7)
        assert (adj.sr_adj, adj.tr_adj) == (0.5, 0.7)

    def test_retention_scales_rates(self):
        """An all-Dem universe at 0.8 retention scales persuasion and lifts turnout"""
        adj = compute_universe_adjusted_rates(UniverseLayer(enabled=True, retention_factor=0.8), 0.5, 0.7)
        assert math.isclose(adj.sr_adj, 0.5 * 0.8)
        assert math.isclose(adj.tr_adj, 0.7 * (1 + 0.05 * 0.8))
        assert math.isclose(adj.volatility_boost, 0.02)

    def test_retention_clamped(self):
        """Retention below 0.6 is clamped to 0.6"""
        adj = compute_universe_adjusted_rates(UniverseLayer(enabled=True, retention_factor=0.1), 0.5, 0.7)
        assert adj.meta["retention_factor"] == 0.6
        assert adj.volatility_boost <= 0.05

    def test_blank_retention_uses_floor(self):
        """A blank retention factor clamps to the 0.6 floor"""
        adj = compute_universe_adjusted_rates(UniverseLayer(enabled=True, retention_factor=None), 0.5, 0.7)
        assert adj.meta["retention_factor"] == 0.6
        assert math.isclose(adj.sr_adj, 0.5 * 0.6)

    def test_normalize_empty_composition(self):
        """No valid composition falls back to 100% Dem with a warning"""
        norm = normalize_universe_percents({})
        assert norm.percents["dem"] == 100.0
        assert "100% Dem" in norm.warning

    def test_normalize_rescales(self):
        """Compositions that do not sum to 100 are rescaled"""
        norm = normalize_universe_percents({"dem": 30, "rep": 30})
        assert norm.normalized
        assert math.isclose(norm.percents["dem"], 50.0)
        assert math.isclose(sum(norm.shares.values()), 1.0)
