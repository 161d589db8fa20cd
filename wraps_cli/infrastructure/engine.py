"""
Infrastructure-as-code engine used to apply and tear down stacks.

The orchestrator only sees `InfrastructureEngine` and `StackHandle`;
`PulumiEngine` drives the Pulumi automation API against a local file
backend with an empty passphrase.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pulumi import automation as auto

from ..core.config import WrapsSettings, ensure_pulumi_work_dir

logger = logging.getLogger(__name__)

LOCK_MESSAGE = "stack is currently locked"

StackProgram = Callable[[], None]


def is_lock_error(error: BaseException) -> bool:
    """Whether an engine failure was caused by a held stack lock."""
    if isinstance(error, auto.ConcurrentUpdateError):
        return True
    return LOCK_MESSAGE in str(error)


class StackHandle(ABC):
    """A selected stack."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def set_config(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def up(self) -> Dict[str, Any]:
        """Apply the stack's program and return its outputs."""
        pass

    @abstractmethod
    def destroy(self) -> None:
        """Delete every resource the stack manages."""
        pass

    @abstractmethod
    def remove(self) -> None:
        """Drop the stack from the engine's registry."""
        pass

    @abstractmethod
    def outputs(self) -> Dict[str, Any]:
        pass


class InfrastructureEngine(ABC):
    """Creates and looks up stacks."""

    @abstractmethod
    def create_or_select_stack(self, name: str, program: StackProgram, region: str) -> StackHandle:
        pass

    @abstractmethod
    def select_stack(self, name: str, region: str) -> Optional[StackHandle]:
        """Select an existing stack, or None if the engine has no such stack."""
        pass


class PulumiStackHandle(StackHandle):
    """StackHandle over a Pulumi automation `Stack`."""

    def __init__(self, stack: auto.Stack):
        super().__init__(stack.name)
        self._stack = stack

    @staticmethod
    def _on_output(line: str) -> None:
        logger.debug(line.rstrip())

    def set_config(self, key: str, value: str) -> None:
        self._stack.set_config(key, auto.ConfigValue(value=value))

    def up(self) -> Dict[str, Any]:
        result = self._stack.up(on_output=self._on_output)
        logger.info(f"Stack {self.name} updated: {result.summary.result}")
        return {key: output.value for key, output in result.outputs.items()}

    def destroy(self) -> None:
        self._stack.destroy(on_output=self._on_output)
        logger.info(f"Stack {self.name} destroyed")

    def remove(self) -> None:
        self._stack.workspace.remove_stack(self.name)
        logger.info(f"Stack {self.name} removed")

    def outputs(self) -> Dict[str, Any]:
        return {key: output.value for key, output in self._stack.outputs().items()}


def _empty_program() -> None:
    pass


class PulumiEngine(InfrastructureEngine):
    """Pulumi automation API with a local, non-networked state backend."""

    def __init__(self, settings: Optional[WrapsSettings] = None):
        self.settings = settings or WrapsSettings.from_env()

    def _workspace_options(self, region: str) -> auto.LocalWorkspaceOptions:
        backend_url = ensure_pulumi_work_dir(self.settings)
        return auto.LocalWorkspaceOptions(
            work_dir=str(self.settings.pulumi_dir),
            env_vars={
                "PULUMI_CONFIG_PASSPHRASE": "",
                "PULUMI_BACKEND_URL": backend_url,
                "AWS_REGION": region,
            },
            secrets_provider="passphrase",
            project_settings=auto.ProjectSettings(
                name=self.settings.project_name,
                runtime="python",
                backend=auto.ProjectBackend(url=backend_url),
            ),
        )

    def create_or_select_stack(self, name: str, program: StackProgram, region: str) -> StackHandle:
        stack = auto.create_or_select_stack(
            stack_name=name,
            project_name=self.settings.project_name,
            program=program,
            opts=self._workspace_options(region),
        )
        return PulumiStackHandle(stack)

    def select_stack(self, name: str, region: str) -> Optional[StackHandle]:
        try:
            stack = auto.select_stack(
                stack_name=name,
                project_name=self.settings.project_name,
                program=_empty_program,
                opts=self._workspace_options(region),
            )
        except auto.StackNotFoundError:
            return None
        return PulumiStackHandle(stack)


@dataclass
class EmailStackOutputs:
    """Typed view of the outputs exported by the email stack program."""
    role_arn: Optional[str] = None
    config_set_name: Optional[str] = None
    table_name: Optional[str] = None
    region: Optional[str] = None
    lambda_functions: List[str] = field(default_factory=list)
    domain: Optional[str] = None
    dkim_tokens: List[str] = field(default_factory=list)
    custom_tracking_domain: Optional[str] = None
    mail_from_domain: Optional[str] = None
    archive_arn: Optional[str] = None
    archiving_enabled: bool = False
    archive_retention: Optional[str] = None

    @classmethod
    def from_outputs(cls, outputs: Dict[str, Any]) -> "EmailStackOutputs":
        return cls(
            role_arn=outputs.get("roleArn"),
            config_set_name=outputs.get("configSetName"),
            table_name=outputs.get("tableName"),
            region=outputs.get("region"),
            lambda_functions=list(outputs.get("lambdaFunctions") or []),
            domain=outputs.get("domain"),
            dkim_tokens=list(outputs.get("dkimTokens") or []),
            custom_tracking_domain=outputs.get("customTrackingDomain"),
            mail_from_domain=outputs.get("mailFromDomain"),
            archive_arn=outputs.get("archiveArn"),
            archiving_enabled=bool(outputs.get("archivingEnabled", False)),
            archive_retention=outputs.get("archiveRetention"),
        )
