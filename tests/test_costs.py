"""Tests for the monthly cost model."""

import pytest
from dataclasses import replace
from hypothesis import given, settings, strategies as st

from wraps_cli.email.config import EmailConfig, retention_days
from wraps_cli.email.costs import (
    DEFAULT_PRICING,
    FreeTier,
    cost_summary,
    estimate_costs,
    estimate_storage_size,
    format_cost,
)
from wraps_cli.email.presets import get_preset


class TestEstimateCosts:
    """Per-feature breakdown of an estimate."""

    def test_production_at_100k(self):
        costs = estimate_costs(get_preset('production'), 100_000)

        assert costs.event_tracking is not None
        assert costs.event_tracking.monthly > 0
        assert costs.dynamodb_history is not None
        assert costs.dynamodb_history.monthly > 0
        assert costs.reputation_metrics is not None
        assert costs.reputation_metrics.monthly == 0
        assert costs.dedicated_ip is None

    def test_disabled_feature_is_absent_not_zero(self):
        config = get_preset('production')
        config.event_tracking.enabled = False

        costs = estimate_costs(config, 100_000)

        assert costs.event_tracking is None
        assert costs.dynamodb_history is None
        assert 'event_tracking' not in costs.active_features()

    def test_enterprise_includes_dedicated_ip(self):
        costs = estimate_costs(get_preset('enterprise'), 1_000_000)
        assert costs.dedicated_ip.monthly == DEFAULT_PRICING.dedicated_ip_per_month

    def test_total_is_sending_plus_features(self):
        costs = estimate_costs(get_preset('production'), 50_000)

        features = sum(cost.monthly for cost in costs.active_features().values())
        sending = 50_000 * DEFAULT_PRICING.ses_per_email

        assert costs.total.monthly == pytest.approx(sending + features)
        assert costs.total.per_email == DEFAULT_PRICING.ses_per_email

    def test_custom_tracking_domain_costs_a_hosted_zone(self):
        config = EmailConfig.model_validate({
            "tracking": {"enabled": True, "customRedirectDomain": "track.example.com"},
        })
        costs = estimate_costs(config, 1_000)
        assert costs.tracking.monthly == DEFAULT_PRICING.route53_hosted_zone_per_month

    def test_empty_config_only_costs_sending(self):
        costs = estimate_costs(EmailConfig(), 10_000)
        assert costs.active_features() == {}
        assert costs.total.monthly == pytest.approx(1.0)

    def test_negative_volume_rejected(self):
        with pytest.raises(ValueError):
            estimate_costs(EmailConfig(), -1)

    def test_pricing_table_is_injectable(self):
        generous = replace(DEFAULT_PRICING, free_tier=FreeTier(eventbridge_events=10_000_000,
                                                               sqs_requests=10_000_000,
                                                               lambda_requests=10_000_000))
        costs = estimate_costs(get_preset('production'), 10_000, pricing=generous)
        assert costs.event_tracking.monthly == 0


class TestCostMonotonicity:
    """More mail never costs less."""

    @settings(max_examples=50, deadline=None)
    @given(
        preset=st.sampled_from(['starter', 'production', 'enterprise']),
        v1=st.integers(min_value=0, max_value=5_000_000),
        v2=st.integers(min_value=0, max_value=5_000_000),
    )
    def test_total_is_monotonic_in_volume(self, preset, v1, v2):
        low, high = sorted((v1, v2))
        config = get_preset(preset)

        assert estimate_costs(config, low).total.monthly <= estimate_costs(config, high).total.monthly


class TestRetention:
    def test_retention_ordering(self):
        assert retention_days("7days") < retention_days("30days") < retention_days("90days") < retention_days("1year")

    def test_indefinite_has_no_day_count(self):
        assert retention_days("indefinite") is None

    def test_unknown_retention_rejected(self):
        with pytest.raises(ValueError):
            retention_days("forever")

    def test_storage_grows_with_retention(self):
        assert estimate_storage_size(100_000, "1year") > estimate_storage_size(100_000, "90days")


class TestFormatting:
    @pytest.mark.parametrize("amount,expected", [
        (0, "Free"),
        (0.004, "< $0.01"),
        (1.5, "$1.50"),
        (24.95, "$24.95"),
    ])
    def test_format_cost(self, amount, expected):
        assert format_cost(amount) == expected

    def test_cost_summary_lists_features(self):
        summary = cost_summary(get_preset('production'), 10_000)
        assert summary.startswith("Estimated cost for 10,000 emails/month")
        assert "Email history storage" in summary
