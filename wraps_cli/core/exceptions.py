"""
Core exception classes for Wraps.
"""
from typing import Optional


class WrapsError(Exception):
    """Base exception for all Wraps CLI errors."""

    def __init__(
        self,
        message: str,
        code: str = "WRAPS_ERROR",
        suggestion: Optional[str] = None,
        docs_url: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.suggestion = suggestion
        self.docs_url = docs_url


class AuthenticationError(WrapsError):
    """Raised when AWS credentials are missing or invalid."""

    def __init__(self, message: str = "AWS credentials not found", suggestion: Optional[str] = None):
        super().__init__(
            message,
            code="NO_AWS_CREDENTIALS",
            suggestion=suggestion or "Run: aws configure\nOr set the AWS_PROFILE environment variable",
            docs_url="https://wraps.dev/docs/setup/aws-credentials",
        )


class ConfigurationError(WrapsError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message, code="INVALID_CONFIGURATION", suggestion=suggestion)


class MetadataError(WrapsError):
    """Raised when a connection record matches no known format."""

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_METADATA")


class StateError(WrapsError):
    """Raised when local state cannot be written."""

    def __init__(self, message: str):
        super().__init__(message, code="STATE_WRITE_FAILED")


class NoDeploymentError(WrapsError):
    """Raised when a command needs an existing deployment and none is recorded."""

    def __init__(self, account_id: str, region: str):
        super().__init__(
            f"No Wraps connection found for account {account_id} in region {region}",
            code="NO_STACK",
            suggestion="Run: wraps init\nOr: wraps connect\nTo deploy or link infrastructure first",
            docs_url="https://wraps.dev/docs/cli/init",
        )
        self.account_id = account_id
        self.region = region


class NothingToConnectError(WrapsError):
    """Raised when connect finds no SES identities to link."""

    def __init__(self, region: str):
        super().__init__(
            f"No SES identities found in {region}. Nothing to connect.",
            code="NOTHING_TO_CONNECT",
            suggestion="Run: wraps init\nTo create new email infrastructure instead",
        )
        self.region = region


class DeploymentError(WrapsError):
    """Raised when an infrastructure apply or destroy fails."""

    def __init__(self, message: str, code: str = "PULUMI_ERROR", suggestion: Optional[str] = None):
        super().__init__(
            message,
            code=code,
            suggestion=suggestion or "Check your AWS permissions and try again",
            docs_url="https://wraps.dev/docs/troubleshooting",
        )


class StackLockedError(DeploymentError):
    """Raised when the stack is locked by a concurrent or crashed run."""

    def __init__(self, stack_name: str, lock_dir: str, command: str):
        super().__init__(
            f"The Pulumi stack {stack_name} is locked from a previous run",
            code="STACK_LOCKED",
            suggestion=f"Run: rm -rf {lock_dir}\nThen try running wraps {command} again",
        )
        self.stack_name = stack_name
        self.lock_dir = lock_dir


class ServiceError(WrapsError):
    """Raised when AWS read operations fail."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message, code="AWS_SERVICE_ERROR")
        self.details = details


class UserCancelled(WrapsError):
    """Raised when the operator declines a confirmation or presses Ctrl+C."""

    def __init__(self, message: str = "Operation cancelled by user"):
        super().__init__(message, code="CANCELLED")
