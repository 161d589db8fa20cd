"""Tests for settings and region resolution."""

from pathlib import Path

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError

from wraps_cli.core.config import (
    DEFAULT_REGION,
    WrapsSettings,
    ensure_pulumi_work_dir,
    resolve_region,
    validate_region,
)
from wraps_cli.core.exceptions import ConfigurationError


class TestWrapsSettings:
    def test_defaults(self):
        settings = WrapsSettings()

        assert settings.home_dir == Path.home() / ".wraps"
        assert settings.default_region == DEFAULT_REGION
        assert settings.dns_servers == ["8.8.8.8", "1.1.1.1"]

    def test_derived_paths(self, tmp_path):
        settings = WrapsSettings(home_dir=tmp_path)

        assert settings.connections_dir == tmp_path / "connections"
        assert settings.pulumi_dir == tmp_path / "pulumi"
        assert settings.lock_dir == tmp_path / "pulumi" / ".pulumi" / "locks"
        assert settings.backend_url == f"file://{tmp_path / 'pulumi'}"

    def test_stack_name(self):
        assert WrapsSettings().stack_name("123456789012", "eu-west-1") == "wraps-123456789012-eu-west-1"

    def test_invalid_default_region(self):
        with pytest.raises(ValidationError):
            WrapsSettings(default_region="nowhere")

    def test_empty_dns_servers_rejected(self):
        with pytest.raises(ValidationError):
            WrapsSettings(dns_servers=["", "  "])

    def test_from_env(self, tmp_path):
        settings = WrapsSettings.from_env({
            "WRAPS_HOME": str(tmp_path / "home"),
            "WRAPS_DNS_SERVERS": "9.9.9.9, 1.0.0.1",
        })

        assert settings.home_dir == tmp_path / "home"
        assert settings.dns_servers == ["9.9.9.9", "1.0.0.1"]

    def test_ensure_pulumi_work_dir(self, tmp_path):
        settings = WrapsSettings(home_dir=tmp_path)

        url = ensure_pulumi_work_dir(settings)

        assert settings.pulumi_dir.is_dir()
        assert url == settings.backend_url


class TestRegionResolution:
    def test_explicit_wins(self):
        assert resolve_region("eu-west-1", {"AWS_REGION": "us-west-2"}) == "eu-west-1"

    def test_aws_region_before_default_region(self):
        env = {"AWS_REGION": "us-west-2", "AWS_DEFAULT_REGION": "ap-southeast-1"}
        assert resolve_region(None, env) == "us-west-2"

    def test_aws_default_region(self):
        assert resolve_region(None, {"AWS_DEFAULT_REGION": "ap-southeast-1"}) == "ap-southeast-1"

    def test_fallback(self):
        assert resolve_region(None, {}) == DEFAULT_REGION

    def test_invalid_region_raises_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_region("moon-base", {})
        assert "us-east-1" in exc_info.value.suggestion

    @given(
        prefix=st.sampled_from(["us", "eu", "ap", "sa", "ca", "me", "af"]),
        direction=st.sampled_from(["east", "west", "north", "south", "central", "southeast", "northeast"]),
        number=st.integers(min_value=1, max_value=9),
    )
    def test_well_formed_regions_validate(self, prefix, direction, number):
        region = f"{prefix}-{direction}-{number}"
        assert validate_region(region) == region
