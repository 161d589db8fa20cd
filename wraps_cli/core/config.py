"""Configuration management for the Wraps CLI."""

import os
import re
from pathlib import Path
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from wraps_cli.core.exceptions import ConfigurationError

DEFAULT_REGION = "us-east-1"
DEFAULT_DNS_SERVERS = ["8.8.8.8", "1.1.1.1"]
REGION_PATTERN = r'^[a-z]{2,3}-[a-z]+-\d+$'


def validate_region(region: str) -> str:
    """Validate AWS region format.

    Raises:
        ConfigurationError: If the region does not look like an AWS region.
    """
    if not re.match(REGION_PATTERN, region or ""):
        raise ConfigurationError(
            f"Invalid AWS region: {region}",
            suggestion="Use a valid AWS region like: us-east-1, eu-west-1, ap-southeast-1",
        )
    return region


class WrapsSettings(BaseModel):
    """Local settings for the Wraps CLI."""

    home_dir: Path = Field(default_factory=lambda: Path.home() / ".wraps", description="Base directory for local state")
    default_region: str = Field(default=DEFAULT_REGION, description="Fallback AWS region")
    dns_servers: List[str] = Field(default_factory=lambda: list(DEFAULT_DNS_SERVERS), description="Public resolvers for DNS checks")
    resource_prefix: str = Field(default="wraps-", description="Name prefix of managed resources")
    project_name: str = Field(default="wraps-email", description="Pulumi project name")

    @field_validator('default_region')
    @classmethod
    def validate_default_region(cls, v: str) -> str:
        if not re.match(REGION_PATTERN, v):
            raise ValueError(
                f"Invalid AWS region format: {v}. "
                "Expected format: us-east-1, eu-west-1, ap-southeast-3, etc."
            )
        return v

    @field_validator('dns_servers')
    @classmethod
    def validate_dns_servers(cls, v: List[str]) -> List[str]:
        servers = [s.strip() for s in v if s and s.strip()]
        if not servers:
            raise ValueError("At least one DNS server is required")
        return servers

    @property
    def connections_dir(self) -> Path:
        return self.home_dir / "connections"

    @property
    def pulumi_dir(self) -> Path:
        return self.home_dir / "pulumi"

    @property
    def lock_dir(self) -> Path:
        return self.pulumi_dir / ".pulumi" / "locks"

    @property
    def backend_url(self) -> str:
        return f"file://{self.pulumi_dir}"

    def stack_name(self, account_id: str, region: str) -> str:
        """Stack name for an account and region."""
        return f"{self.resource_prefix}{account_id}-{region}"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WrapsSettings":
        """Build settings from WRAPS_* environment variables."""
        environ = os.environ if environ is None else environ
        values = {}
        if environ.get("WRAPS_HOME"):
            values["home_dir"] = Path(environ["WRAPS_HOME"]).expanduser()
        if environ.get("WRAPS_DNS_SERVERS"):
            values["dns_servers"] = environ["WRAPS_DNS_SERVERS"].split(",")
        return cls(**values)


def resolve_region(explicit: Optional[str] = None, environ: Optional[Mapping[str, str]] = None,
                   default: str = DEFAULT_REGION) -> str:
    """Resolve the target region: explicit flag, then environment, then default."""
    environ = os.environ if environ is None else environ
    region = explicit or environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION") or default
    return validate_region(region)


def ensure_pulumi_work_dir(settings: WrapsSettings) -> str:
    """Create the Pulumi working directory and return its local backend URL."""
    settings.pulumi_dir.mkdir(parents=True, exist_ok=True)
    return settings.backend_url
