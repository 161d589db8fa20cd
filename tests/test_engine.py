"""Tests for the IaC engine adapter."""

from unittest.mock import Mock, patch

from pulumi import automation as auto

from wraps_cli.core.config import WrapsSettings
from wraps_cli.infrastructure.engine import EmailStackOutputs, PulumiEngine, is_lock_error


class TestLockDetection:
    def test_lock_message(self):
        assert is_lock_error(RuntimeError("error: the stack is currently locked by 1 lock(s). Either wait"))

    def test_other_errors(self):
        assert not is_lock_error(RuntimeError("AccessDenied"))


class TestEmailStackOutputs:
    def test_from_outputs(self):
        outputs = EmailStackOutputs.from_outputs({
            "roleArn": "arn:aws:iam::1:role/wraps-email-role",
            "configSetName": "wraps-email-tracking",
            "dkimTokens": ["a", "b", "c"],
            "archivingEnabled": True,
            "archiveRetention": "90days",
        })

        assert outputs.role_arn.endswith("wraps-email-role")
        assert outputs.dkim_tokens == ["a", "b", "c"]
        assert outputs.lambda_functions == []
        assert outputs.archiving_enabled
        assert outputs.table_name is None

    def test_empty_outputs(self):
        outputs = EmailStackOutputs.from_outputs({})
        assert outputs.domain is None
        assert not outputs.archiving_enabled


class TestPulumiEngine:
    def test_workspace_uses_local_backend(self, tmp_path):
        settings = WrapsSettings(home_dir=tmp_path)
        engine = PulumiEngine(settings)

        with patch.object(auto, 'create_or_select_stack') as create:
            create.return_value = Mock(name="stack")
            create.return_value.name = "wraps-1-us-east-1"
            handle = engine.create_or_select_stack("wraps-1-us-east-1", lambda: None, "us-east-1")

        kwargs = create.call_args.kwargs
        opts = kwargs["opts"]
        assert kwargs["project_name"] == "wraps-email"
        assert opts.env_vars["PULUMI_CONFIG_PASSPHRASE"] == ""
        assert opts.env_vars["PULUMI_BACKEND_URL"] == settings.backend_url
        assert opts.env_vars["AWS_REGION"] == "us-east-1"
        assert opts.secrets_provider == "passphrase"
        assert settings.pulumi_dir.is_dir()
        assert handle.name == "wraps-1-us-east-1"

    def test_select_missing_stack_returns_none(self, tmp_path):
        engine = PulumiEngine(WrapsSettings(home_dir=tmp_path))

        with patch.object(auto, 'select_stack', side_effect=auto.StackNotFoundError(
            auto.CommandResult(stdout="", stderr="no stack named 'x' found", code=255)
        )):
            assert engine.select_stack("x", "us-east-1") is None
