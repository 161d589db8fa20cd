"""
Pytest configuration and shared fixtures for Wraps tests.
"""

from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest
from moto import mock_aws

from wraps_cli.auth.aws_auth import CallerIdentity
from wraps_cli.core.config import WrapsSettings
from wraps_cli.email.presets import get_preset
from wraps_cli.infrastructure.engine import InfrastructureEngine, StackHandle
from wraps_cli.state.metadata import MetadataStore

ACCOUNT_ID = "123456789012"
REGION = "us-east-1"


class FakeStack(StackHandle):
    """In-memory stack that records the calls made on it."""

    def __init__(self, name: str, outputs: Optional[Dict[str, Any]] = None, up_error: Optional[Exception] = None,
                 destroy_error: Optional[Exception] = None):
        super().__init__(name)
        self._outputs = outputs or {}
        self.up_error = up_error
        self.destroy_error = destroy_error
        self.config: Dict[str, str] = {}
        self.calls: List[str] = []

    def set_config(self, key: str, value: str) -> None:
        self.config[key] = value

    def up(self) -> Dict[str, Any]:
        self.calls.append('up')
        if self.up_error:
            raise self.up_error
        return dict(self._outputs)

    def destroy(self) -> None:
        self.calls.append('destroy')
        if self.destroy_error:
            raise self.destroy_error

    def remove(self) -> None:
        self.calls.append('remove')

    def outputs(self) -> Dict[str, Any]:
        return dict(self._outputs)


class FakeEngine(InfrastructureEngine):
    """Engine holding FakeStacks by name."""

    def __init__(self, outputs: Optional[Dict[str, Any]] = None):
        self.default_outputs = outputs or {}
        self.stacks: Dict[str, FakeStack] = {}
        self.programs: List[Any] = []

    def add_stack(self, name: str, **kwargs) -> FakeStack:
        stack = FakeStack(name, **kwargs)
        self.stacks[name] = stack
        return stack

    def create_or_select_stack(self, name, program, region):
        self.programs.append(program)
        if name not in self.stacks:
            self.add_stack(name, outputs=self.default_outputs)
        return self.stacks[name]

    def select_stack(self, name, region):
        return self.stacks.get(name)


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)


@pytest.fixture
def mock_aws_services(aws_credentials):
    """Mock all AWS services used by the application."""
    with mock_aws():
        yield


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary Wraps home."""
    return WrapsSettings(home_dir=tmp_path / ".wraps")


@pytest.fixture
def store(settings):
    return MetadataStore(settings)


@pytest.fixture
def production_config():
    return get_preset('production')


@pytest.fixture
def fake_engine():
    return FakeEngine(outputs={
        "roleArn": f"arn:aws:iam::{ACCOUNT_ID}:role/wraps-email-role",
        "configSetName": "wraps-email-tracking",
        "tableName": "wraps-email-history",
        "region": REGION,
        "lambdaFunctions": [f"arn:aws:lambda:{REGION}:{ACCOUNT_ID}:function:wraps-email-event-processor"],
        "domain": "example.com",
        "dkimTokens": ["tok1", "tok2", "tok3"],
        "mailFromDomain": "mail.example.com",
        "archivingEnabled": False,
    })


@pytest.fixture
def fake_authenticator():
    """Authenticator that always resolves to the test account."""
    authenticator = Mock()
    authenticator.validate_credentials.return_value = CallerIdentity(
        account_id=ACCOUNT_ID,
        principal_id="AIDATEST",
        principal_arn=f"arn:aws:iam::{ACCOUNT_ID}:user/tester",
    )
    authenticator.get_session.return_value = Mock()
    return authenticator


@pytest.fixture
def legacy_record():
    """Connection record in the single-service format."""
    return {
        "accountId": ACCOUNT_ID,
        "region": REGION,
        "provider": "vercel",
        "timestamp": "2024-01-05T14:30:22.000Z",
        "preset": "production",
        "emailConfig": {
            "domain": "example.com",
            "tracking": {"enabled": True, "opens": True, "clicks": True},
            "eventTracking": {"enabled": True, "dynamoDBHistory": True, "archiveRetention": "90days"},
        },
        "vercel": {"teamSlug": "acme", "projectName": "web"},
        "pulumiStackName": f"wraps-{ACCOUNT_ID}-{REGION}",
    }


@pytest.fixture(autouse=True)
def isolated_region(monkeypatch):
    """Keep ambient AWS_REGION from leaking into region resolution."""
    monkeypatch.delenv("AWS_REGION", raising=False)
    monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)
