"""
Connection metadata persistence.

One JSON record per (AWS account, region) describes which services Wraps has
deployed there and with what configuration. Records written before the
multi-service format (a single flat ``emailConfig``) are upgraded the first
time they are read.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generic, List, Literal, Mapping, Optional, Tuple, TypeVar

from pydantic import AliasChoices, Field, ValidationError

from ..core.config import WrapsSettings
from ..core.exceptions import MetadataError, StateError
from ..email.config import CamelModel, EmailConfig

logger = logging.getLogger(__name__)

METADATA_VERSION = "1.0.0"
KNOWN_SERVICES = ('email', 'sms')

ConfigT = TypeVar('ConfigT')


def utc_now_iso() -> str:
    """Current instant as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class ServiceConfig(CamelModel, Generic[ConfigT]):
    """A deployed service within a connection."""

    preset: Optional[str] = None
    config: ConfigT
    pulumi_stack_name: Optional[str] = None
    deployed_at: str

    @property
    def is_deployed(self) -> bool:
        return bool(self.pulumi_stack_name)


class Services(CamelModel):
    email: Optional[ServiceConfig[EmailConfig]] = None
    sms: Optional[ServiceConfig[Dict[str, Any]]] = None


class ConnectionMetadata(CamelModel):
    """Everything Wraps knows about one account/region deployment."""

    version: str = METADATA_VERSION
    account_id: str
    region: str
    provider: str
    timestamp: str
    provider_config: Optional[Dict[str, Any]] = Field(
        default=None,
        validation_alias=AliasChoices('providerConfig', 'provider_config', 'vercel'),
        serialization_alias='providerConfig',
    )
    services: Services

    @property
    def key(self) -> Tuple[str, str]:
        return self.account_id, self.region


class LegacyConnectionMetadata(CamelModel):
    """Single-service record format used before ``services`` existed."""

    account_id: str
    region: str
    provider: str
    timestamp: str
    preset: Optional[str] = None
    email_config: EmailConfig
    vercel: Optional[Dict[str, Any]] = None
    pulumi_stack_name: Optional[str] = None


@dataclass
class MetadataLoadResult:
    """Outcome of reading a record: found, absent, or corrupt."""
    status: Literal['found', 'absent', 'corrupt']
    metadata: Optional[ConnectionMetadata] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status == 'found'


def is_legacy_metadata(data: Mapping[str, Any]) -> bool:
    """Legacy records carry a flat email config and no services map."""
    return (
        'emailConfig' in data
        and 'services' not in data
        and isinstance(data['emailConfig'], dict)
    )


# Keys the migrated record sets itself; a legacy record cannot override them.
_CURRENT_FIELD_NAMES = frozenset(
    name
    for field_name, info in ConnectionMetadata.model_fields.items()
    for name in (field_name, info.alias, info.serialization_alias)
    if name
) | {"vercel", "deployedAt"}


def migrate_legacy_metadata(legacy: LegacyConnectionMetadata) -> ConnectionMetadata:
    """Lift a legacy record into the current format, nesting its config under email."""
    extras = {
        key: value for key, value in (legacy.model_extra or {}).items()
        if key not in _CURRENT_FIELD_NAMES
    }
    return ConnectionMetadata(
        version=METADATA_VERSION,
        account_id=legacy.account_id,
        region=legacy.region,
        provider=legacy.provider,
        timestamp=legacy.timestamp,
        provider_config=legacy.vercel,
        services=Services(
            email=ServiceConfig[EmailConfig](
                preset=legacy.preset,
                config=legacy.email_config,
                pulumi_stack_name=legacy.pulumi_stack_name,
                deployed_at=legacy.timestamp,
            )
        ),
        **extras,
    )


def parse_metadata(data: Any) -> Tuple[ConnectionMetadata, bool]:
    """Parse a raw record as the current format, falling back to legacy.

    Returns:
        Tuple of (metadata, needs_save) where needs_save is True when the
        record was migrated or stamped with a version

    Raises:
        MetadataError: If the record matches neither format
    """
    if not isinstance(data, dict):
        raise MetadataError("Connection metadata must be a JSON object")

    try:
        metadata = ConnectionMetadata.model_validate(data)
        return metadata, 'version' not in data
    except ValidationError as current_error:
        if not is_legacy_metadata(data):
            raise MetadataError(f"Unrecognised connection metadata: {current_error}") from current_error

    try:
        legacy = LegacyConnectionMetadata.model_validate(data)
    except ValidationError as legacy_error:
        raise MetadataError(f"Invalid legacy connection metadata: {legacy_error}") from legacy_error

    try:
        return migrate_legacy_metadata(legacy), True
    except (ValidationError, TypeError) as e:
        raise MetadataError(f"Could not migrate legacy connection metadata: {e}") from e


class MetadataStore:
    """Reads and writes connection records under ``<wraps home>/connections``."""

    def __init__(self, settings: Optional[WrapsSettings] = None, connections_dir: Optional[Path] = None):
        """Initialize the metadata store.

        Args:
            settings: Wraps settings. Defaults to settings read from the environment.
            connections_dir: Explicit records directory, overrides settings.
        """
        settings = settings or WrapsSettings.from_env()
        self.connections_dir = connections_dir or settings.connections_dir

    def path_for(self, account_id: str, region: str) -> Path:
        return self.connections_dir / f"{account_id}-{region}.json"

    def load_result(self, account_id: str, region: str) -> MetadataLoadResult:
        """Load a record, distinguishing a missing record from a corrupt one."""
        filepath = self.path_for(account_id, region)

        if not filepath.exists():
            return MetadataLoadResult(status='absent')

        try:
            with open(filepath, 'r') as f:
                data = json.load(f)
            metadata, needs_save = parse_metadata(data)
        except (OSError, ValueError, MetadataError) as e:
            logger.error(f"Error loading connection metadata {filepath}: {e}")
            return MetadataLoadResult(status='corrupt', error=str(e))

        if needs_save:
            logger.info(f"Upgrading connection metadata {filepath} to version {METADATA_VERSION}")
            metadata.version = METADATA_VERSION
            self.save(metadata)

        return MetadataLoadResult(status='found', metadata=metadata)

    def load(self, account_id: str, region: str) -> Optional[ConnectionMetadata]:
        """Load a record, migrating and re-saving legacy documents.

        Returns:
            The metadata, or None when the record is missing or unreadable
        """
        return self.load_result(account_id, region).metadata

    def save(self, metadata: ConnectionMetadata) -> Path:
        """Write a record atomically.

        Raises:
            StateError: If writing fails
        """
        filepath = self.path_for(metadata.account_id, metadata.region)
        temp_file = filepath.with_suffix('.tmp')

        try:
            self.connections_dir.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w') as f:
                f.write(serialize_metadata(metadata))
            temp_file.replace(filepath)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise StateError(f"Failed to save connection metadata: {e}")

        logger.debug(f"Saved connection metadata to {filepath}")
        return filepath

    def delete(self, account_id: str, region: str) -> bool:
        """Delete a record. Returns False when there was nothing to delete."""
        filepath = self.path_for(account_id, region)

        if filepath.exists():
            filepath.unlink()
            logger.info(f"Deleted connection metadata for {account_id} in {region}")
            return True

        return False

    def exists(self, account_id: str, region: str) -> bool:
        return self.path_for(account_id, region).exists()

    def list(self) -> List[ConnectionMetadata]:
        """All readable records. Unparseable files are logged and skipped."""
        if not self.connections_dir.exists():
            return []

        connections = []
        for filepath in sorted(self.connections_dir.glob("*.json")):
            try:
                with open(filepath, 'r') as f:
                    metadata, _ = parse_metadata(json.load(f))
                connections.append(metadata)
            except (OSError, ValueError, MetadataError) as e:
                logger.warning(f"Failed to read connection metadata {filepath}: {e}")
                continue

        return connections


def serialize_metadata(metadata: ConnectionMetadata) -> str:
    return json.dumps(metadata.to_json_dict(), indent=2) + "\n"


def create_connection_metadata(account_id: str, region: str, provider: str,
                               provider_config: Optional[Dict[str, Any]] = None) -> ConnectionMetadata:
    """New record with no services yet."""
    return ConnectionMetadata(
        account_id=account_id,
        region=region,
        provider=provider,
        timestamp=utc_now_iso(),
        provider_config=provider_config,
        services=Services(),
    )


def _check_service(service: str) -> None:
    if service not in KNOWN_SERVICES:
        raise ValueError(f"Unknown service: {service}")


def add_service(metadata: ConnectionMetadata, service: str, config: Any,
                preset: Optional[str] = None, pulumi_stack_name: Optional[str] = None) -> ConnectionMetadata:
    """Add or replace a service entry."""
    _check_service(service)
    timestamp = utc_now_iso()

    if service == 'email':
        entry = ServiceConfig[EmailConfig](
            preset=preset, config=config, pulumi_stack_name=pulumi_stack_name, deployed_at=timestamp
        )
    else:
        entry = ServiceConfig[Dict[str, Any]](
            preset=preset, config=dict(config), pulumi_stack_name=pulumi_stack_name, deployed_at=timestamp
        )

    setattr(metadata.services, service, entry)
    metadata.timestamp = timestamp
    return metadata


def get_service(metadata: ConnectionMetadata, service: str) -> Optional[ServiceConfig]:
    _check_service(service)
    return getattr(metadata.services, service)


def update_service_config(metadata: ConnectionMetadata, service: str, updates: Mapping[str, Any]) -> None:
    """Shallow-merge field updates into a service's config.

    Raises:
        ValueError: If the service is not configured
    """
    entry = get_service(metadata, service)
    if entry is None:
        raise ValueError(f"{service} service not configured in metadata")

    if isinstance(entry.config, EmailConfig):
        merged = {**entry.config.model_dump(by_alias=True, exclude_none=True), **updates}
        entry.config = EmailConfig.model_validate(merged)
    else:
        entry.config = {**entry.config, **updates}

    metadata.timestamp = utc_now_iso()


def remove_service(metadata: ConnectionMetadata, service: str) -> None:
    _check_service(service)
    setattr(metadata.services, service, None)
    metadata.timestamp = utc_now_iso()


def has_service(metadata: ConnectionMetadata, service: str) -> bool:
    return get_service(metadata, service) is not None


def configured_services(metadata: ConnectionMetadata) -> List[str]:
    return [service for service in KNOWN_SERVICES if getattr(metadata.services, service) is not None]
