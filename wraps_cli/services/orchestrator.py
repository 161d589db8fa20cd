"""
Deployment orchestrator for the email infrastructure lifecycle.

Every command validates the caller identity and resolves the region before
touching anything, asks for confirmation before the first mutating call, and
leaves the IaC engine's own state as the record of what was applied.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .domain_verifier import DNSRecord, DNSVerifier, DomainVerification, required_records
from .route53 import auto_create_dns_records
from .scanner import ResourceScanner
from .ses import get_email_identity
from ..auth.aws_auth import AWSAuthenticator, CallerIdentity
from ..core.config import WrapsSettings, resolve_region
from ..core.exceptions import (
    ConfigurationError,
    DeploymentError,
    MetadataError,
    NoDeploymentError,
    NothingToConnectError,
    StackLockedError,
    UserCancelled,
    WrapsError,
)
from ..email.config import EmailConfig
from ..email.costs import FeatureCostBreakdown, estimate_costs
from ..email.presets import get_preset, validate_config
from ..infrastructure.email_stack import EmailStackConfig, VercelConfig, build_program
from ..infrastructure.engine import EmailStackOutputs, InfrastructureEngine, PulumiEngine, is_lock_error
from ..state.metadata import (
    ConnectionMetadata,
    MetadataStore,
    add_service,
    configured_services,
    create_connection_metadata,
    get_service,
    remove_service,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ('aws', 'vercel')
DEFAULT_PRESET = 'production'
DEFAULT_VOLUME = 10_000

ConfirmCallback = Callable[[str], bool]


@dataclass
class DeployResult:
    """Outcome of init, connect and update."""
    status: str                # 'deployed', 'connected', 'updated' or 'already_connected'
    account_id: str
    region: str
    metadata: Optional[ConnectionMetadata] = None
    stack_name: Optional[str] = None
    outputs: Optional[EmailStackOutputs] = None
    costs: Optional[FeatureCostBreakdown] = None
    warnings: List[str] = field(default_factory=list)
    dns_records: List[DNSRecord] = field(default_factory=list)
    dns_auto_created: bool = False


@dataclass
class TeardownResult:
    """Outcome of restore and destroy."""
    account_id: str
    region: str
    destroyed_stacks: List[str] = field(default_factory=list)
    skipped_stacks: List[str] = field(default_factory=list)
    removed_services: List[str] = field(default_factory=list)
    metadata_deleted: bool = False


@dataclass
class StatusReport:
    account_id: str
    region: str
    metadata: ConnectionMetadata
    outputs: Optional[EmailStackOutputs] = None
    stack_found: bool = False
    stack_error: Optional[str] = None
    costs: Optional[FeatureCostBreakdown] = None


class DeploymentOrchestrator:
    """Runs the init, connect, update, restore, destroy, status and verify flows."""

    def __init__(
        self,
        authenticator: Optional[AWSAuthenticator] = None,
        store: Optional[MetadataStore] = None,
        engine: Optional[InfrastructureEngine] = None,
        settings: Optional[WrapsSettings] = None,
        program_factory: Callable[[EmailStackConfig], Callable[[], None]] = build_program,
        scanner_factory: Callable[[boto3.Session, str], ResourceScanner] = ResourceScanner,
        dns_creator: Callable[..., bool] = auto_create_dns_records,
        verifier: Optional[DNSVerifier] = None,
    ):
        """Initialize the orchestrator.

        Args:
            authenticator: Credential validator and session source
            store: Connection metadata store
            engine: IaC engine used to apply and destroy stacks
            settings: Local settings. Defaults to settings read from the environment.
            program_factory: Builds the stack program for a stack configuration
            scanner_factory: Builds a resource scanner for a session and region
            dns_creator: Publishes DNS records, returning whether it did
            verifier: DNS verifier used by ``verify``
        """
        self.settings = settings or WrapsSettings.from_env()
        self.authenticator = authenticator or AWSAuthenticator()
        self.store = store or MetadataStore(self.settings)
        self.engine = engine or PulumiEngine(self.settings)
        self.program_factory = program_factory
        self.scanner_factory = scanner_factory
        self.dns_creator = dns_creator
        self._verifier = verifier

    @property
    def verifier(self) -> DNSVerifier:
        if self._verifier is None:
            self._verifier = DNSVerifier(nameservers=self.settings.dns_servers)
        return self._verifier

    def _begin(self, region: Optional[str]) -> Tuple[CallerIdentity, str]:
        region = resolve_region(region, default=self.settings.default_region)
        identity = self.authenticator.validate_credentials(region)
        return identity, region

    @staticmethod
    def _confirm(confirm: Optional[ConfirmCallback], message: str) -> None:
        if confirm is not None and not confirm(message):
            raise UserCancelled()

    def _require_metadata(self, account_id: str, region: str) -> ConnectionMetadata:
        result = self.store.load_result(account_id, region)
        if result.status == 'corrupt':
            raise MetadataError(
                f"Connection metadata for {account_id} in {region} is unreadable: {result.error}"
            )
        if result.metadata is None:
            raise NoDeploymentError(account_id, region)
        return result.metadata

    def _engine_error(self, error: Exception, stack_name: str, command: str, prefix: str) -> DeploymentError:
        if is_lock_error(error):
            return StackLockedError(stack_name, str(self.settings.lock_dir), command)
        return DeploymentError(f"{prefix}: {error}")

    def _resolve_config(self, preset: Optional[str], config: Optional[EmailConfig]) -> Tuple[EmailConfig, Optional[str]]:
        if config is not None:
            return config.model_copy(deep=True), (preset if preset and preset != 'custom' else None)

        preset = preset or DEFAULT_PRESET
        preset_config = get_preset(preset)
        if preset_config is None:
            raise ConfigurationError(
                "The custom preset needs a configuration",
                suggestion="Pass a configuration file with --config",
            )
        return preset_config, preset

    @staticmethod
    def _check_provider(provider: str, provider_config: Optional[Dict]) -> Optional[VercelConfig]:
        if provider not in SUPPORTED_PROVIDERS:
            raise ConfigurationError(
                f"Provider {provider} is not supported yet",
                suggestion=f"Use one of: {', '.join(SUPPORTED_PROVIDERS)}",
            )
        if provider != 'vercel':
            return None

        vercel = VercelConfig.from_provider_config(provider_config)
        if vercel is None:
            raise ConfigurationError(
                "Vercel deployments need a team slug",
                suggestion="Pass --vercel-team and --vercel-project",
            )
        return vercel

    def _apply(self, stack_name: str, stack_config: EmailStackConfig, command: str) -> EmailStackOutputs:
        """Create or select the stack and bring it up to date."""
        try:
            stack = self.engine.create_or_select_stack(
                stack_name, self.program_factory(stack_config), stack_config.region
            )
            stack.set_config("aws:region", stack_config.region)
            raw_outputs = stack.up()
        except WrapsError:
            raise
        except Exception as e:
            logger.error(f"Stack {stack_name} failed to apply: {e}")
            raise self._engine_error(e, stack_name, command, "Pulumi deployment failed")

        return EmailStackOutputs.from_outputs(raw_outputs)

    def _teardown_stack(self, stack_name: str, region: str, command: str) -> bool:
        """Destroy a stack and drop it from the engine.

        Returns:
            False if the engine no longer knows the stack
        """
        try:
            stack = self.engine.select_stack(stack_name, region)
            if stack is None:
                logger.warning(f"Stack {stack_name} not found, skipping destroy")
                return False
            stack.destroy()
            stack.remove()
        except WrapsError:
            raise
        except Exception as e:
            logger.error(f"Stack {stack_name} failed to destroy: {e}")
            raise self._engine_error(e, stack_name, command, "Failed to destroy Pulumi stack")

        return True

    def _publish_dns(self, session: boto3.Session, outputs: EmailStackOutputs, region: str,
                     warnings: List[str]) -> Tuple[bool, List[DNSRecord]]:
        """Create DNS records in Route53 when possible, else return the records to add by hand."""
        if not outputs.domain or not outputs.dkim_tokens:
            return False, []

        try:
            created = self.dns_creator(
                session,
                outputs.domain,
                outputs.dkim_tokens,
                region,
                tracking_domain=outputs.custom_tracking_domain,
                mail_from_domain=outputs.mail_from_domain,
            )
        except (WrapsError, ClientError, BotoCoreError) as e:
            logger.warning(f"Could not auto-create DNS records for {outputs.domain}: {e}")
            warnings.append(f"Could not auto-create DNS records: {e}")
            created = False

        if created:
            return True, []

        return False, required_records(
            outputs.domain,
            outputs.dkim_tokens,
            region,
            mail_from_domain=outputs.mail_from_domain,
            tracking_domain=outputs.custom_tracking_domain,
        )

    def _deploy_new(self, status: str, command: str, identity: CallerIdentity, region: str,
                    email_config: EmailConfig, preset: Optional[str], provider: str,
                    provider_config: Optional[Dict], vercel: Optional[VercelConfig],
                    emails_per_month: int, warnings: List[str],
                    confirm: Optional[ConfirmCallback]) -> DeployResult:
        costs = estimate_costs(email_config, emails_per_month)
        warnings.extend(validate_config(email_config))

        stack_name = self.settings.stack_name(identity.account_id, region)
        self._confirm(confirm, f"Deploy email infrastructure to {region} (stack {stack_name})?")

        outputs = self._apply(
            stack_name,
            EmailStackConfig(provider=provider, region=region, email_config=email_config, vercel=vercel),
            command,
        )

        metadata = create_connection_metadata(identity.account_id, region, provider, provider_config)
        add_service(metadata, 'email', email_config, preset=preset, pulumi_stack_name=stack_name)
        self.store.save(metadata)
        logger.info(f"Saved connection metadata for {identity.account_id} in {region}")

        session = self.authenticator.get_session(region)
        dns_auto_created, dns_records = self._publish_dns(session, outputs, region, warnings)

        return DeployResult(
            status=status,
            account_id=identity.account_id,
            region=region,
            metadata=metadata,
            stack_name=stack_name,
            outputs=outputs,
            costs=costs,
            warnings=warnings,
            dns_records=dns_records,
            dns_auto_created=dns_auto_created,
        )

    def _existing_connection(self, identity: CallerIdentity, region: str,
                             warnings: List[str]) -> Optional[DeployResult]:
        result = self.store.load_result(identity.account_id, region)
        if result.status == 'found':
            return DeployResult(
                status='already_connected',
                account_id=identity.account_id,
                region=region,
                metadata=result.metadata,
                stack_name=result.metadata.services.email.pulumi_stack_name
                if result.metadata.services.email else None,
            )
        if result.status == 'corrupt':
            warnings.append("Existing connection metadata is unreadable and will be replaced")
        return None

    def init(self, region: Optional[str] = None, preset: Optional[str] = None,
             config: Optional[EmailConfig] = None, domain: Optional[str] = None,
             provider: str = 'aws', provider_config: Optional[Dict] = None,
             emails_per_month: int = DEFAULT_VOLUME,
             confirm: Optional[ConfirmCallback] = None) -> DeployResult:
        """Deploy new email infrastructure for the caller's account and region."""
        identity, region = self._begin(region)
        vercel = self._check_provider(provider, provider_config)

        warnings: List[str] = []
        existing = self._existing_connection(identity, region, warnings)
        if existing is not None:
            logger.info(f"Connection already exists for {identity.account_id} in {region}")
            return existing

        email_config, preset = self._resolve_config(preset, config)
        if domain:
            email_config.domain = domain

        return self._deploy_new('deployed', 'init', identity, region, email_config, preset, provider,
                                provider_config, vercel, emails_per_month, warnings, confirm)

    def connect(self, region: Optional[str] = None, preset: Optional[str] = DEFAULT_PRESET,
                config: Optional[EmailConfig] = None, identities: Optional[Sequence[str]] = None,
                provider: str = 'aws', provider_config: Optional[Dict] = None,
                emails_per_month: int = DEFAULT_VOLUME,
                confirm: Optional[ConfirmCallback] = None) -> DeployResult:
        """Deploy the managed stack alongside identities that already exist in SES.

        Raises:
            NothingToConnectError: If the region has no SES identities
        """
        identity, region = self._begin(region)
        vercel = self._check_provider(provider, provider_config)

        warnings: List[str] = []
        existing = self._existing_connection(identity, region, warnings)
        if existing is not None:
            logger.info(f"Connection already exists for {identity.account_id} in {region}")
            return existing

        scan = self.scanner_factory(self.authenticator.get_session(region), region).scan_all()
        if not scan.identities:
            raise NothingToConnectError(region)

        selected = [i for i in scan.identities if identities is None or i.name in identities]
        if not selected:
            raise NothingToConnectError(region)

        unverified = [i.name for i in selected if not i.verified]
        if unverified:
            warnings.append(f"Unverified identities: {', '.join(unverified)}")

        email_config, preset = self._resolve_config(preset, config)
        domains = [i.name for i in selected if i.is_domain]
        if domains:
            email_config.domain = domains[0]

        return self._deploy_new('connected', 'connect', identity, region, email_config, preset, provider,
                                provider_config, vercel, emails_per_month, warnings, confirm)

    def update(self, region: Optional[str] = None, emails_per_month: int = DEFAULT_VOLUME,
               confirm: Optional[ConfirmCallback] = None) -> DeployResult:
        """Re-apply the stack with the recorded configuration."""
        identity, region = self._begin(region)
        metadata = self._require_metadata(identity.account_id, region)

        email = metadata.services.email
        if email is None:
            raise NoDeploymentError(identity.account_id, region)

        stack_name = email.pulumi_stack_name or self.settings.stack_name(identity.account_id, region)
        self._confirm(confirm, f"Update email infrastructure in {region} (stack {stack_name})?")

        stack_config = EmailStackConfig(
            provider=metadata.provider,
            region=region,
            email_config=email.config,
            vercel=VercelConfig.from_provider_config(metadata.provider_config),
        )
        outputs = self._apply(stack_name, stack_config, 'update')

        metadata.timestamp = utc_now_iso()
        self.store.save(metadata)

        return DeployResult(
            status='updated',
            account_id=identity.account_id,
            region=region,
            metadata=metadata,
            stack_name=stack_name,
            outputs=outputs,
            costs=estimate_costs(email.config, emails_per_month),
            warnings=validate_config(email.config),
        )

    def restore(self, region: Optional[str] = None, service: str = 'email',
                confirm: Optional[ConfirmCallback] = None) -> TeardownResult:
        """Remove one service's infrastructure and its metadata entry.

        The record is deleted once no services remain.
        """
        identity, region = self._begin(region)
        metadata = self._require_metadata(identity.account_id, region)

        entry = get_service(metadata, service)
        if entry is None:
            raise NoDeploymentError(identity.account_id, region)

        self._confirm(confirm, f"Remove {service} infrastructure from {region}?")

        result = TeardownResult(account_id=identity.account_id, region=region)
        if entry.pulumi_stack_name:
            if self._teardown_stack(entry.pulumi_stack_name, region, 'restore'):
                result.destroyed_stacks.append(entry.pulumi_stack_name)
            else:
                result.skipped_stacks.append(entry.pulumi_stack_name)

        remove_service(metadata, service)
        result.removed_services.append(service)

        if configured_services(metadata):
            self.store.save(metadata)
        else:
            self.store.delete(identity.account_id, region)
            result.metadata_deleted = True

        return result

    def destroy(self, region: Optional[str] = None, confirm: Optional[ConfirmCallback] = None) -> TeardownResult:
        """Remove every service's infrastructure and the connection record."""
        identity, region = self._begin(region)
        metadata = self._require_metadata(identity.account_id, region)
        services = configured_services(metadata)

        self._confirm(confirm, f"Destroy all Wraps infrastructure in {region}?")

        result = TeardownResult(account_id=identity.account_id, region=region)
        for service in services:
            stack_name = get_service(metadata, service).pulumi_stack_name
            if stack_name and stack_name not in result.destroyed_stacks + result.skipped_stacks:
                if self._teardown_stack(stack_name, region, 'destroy'):
                    result.destroyed_stacks.append(stack_name)
                else:
                    result.skipped_stacks.append(stack_name)
            result.removed_services.append(service)

        self.store.delete(identity.account_id, region)
        result.metadata_deleted = True
        return result

    def status(self, region: Optional[str] = None, emails_per_month: int = DEFAULT_VOLUME) -> StatusReport:
        """Recorded configuration plus the live stack outputs."""
        identity, region = self._begin(region)
        metadata = self._require_metadata(identity.account_id, region)

        report = StatusReport(account_id=identity.account_id, region=region, metadata=metadata)
        email = metadata.services.email
        if email is None:
            return report

        report.costs = estimate_costs(email.config, emails_per_month)
        if not email.pulumi_stack_name:
            return report

        try:
            stack = self.engine.select_stack(email.pulumi_stack_name, region)
            if stack is not None:
                report.stack_found = True
                report.outputs = EmailStackOutputs.from_outputs(stack.outputs())
        except Exception as e:
            logger.warning(f"Could not read outputs of stack {email.pulumi_stack_name}: {e}")
            report.stack_error = str(e)

        return report

    def verify(self, domain: str, region: Optional[str] = None) -> DomainVerification:
        """Check SES and DNS verification state of a domain."""
        identity, region = self._begin(region)
        session = self.authenticator.get_session(region)

        details = get_email_identity(session, region, domain)
        if details is None:
            raise ConfigurationError(
                f"Domain {domain} not found in SES",
                suggestion=f"Run: wraps init --domain {domain}",
            )

        tracking_domain = None
        metadata = self.store.load(identity.account_id, region)
        if metadata and metadata.services.email:
            config = metadata.services.email.config
            if config.domain == domain:
                tracking_domain = config.tracking_domain

        return self.verifier.verify_domain(
            domain,
            details.dkim_tokens,
            region,
            mail_from_domain=details.mail_from_domain,
            tracking_domain=tracking_domain,
            ses_verified=details.verified_for_sending,
        )
