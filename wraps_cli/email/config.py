"""Feature configuration for Wraps email infrastructure."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SESEventType = Literal[
    "SEND",
    "DELIVERY",
    "OPEN",
    "CLICK",
    "BOUNCE",
    "COMPLAINT",
    "REJECT",
    "RENDERING_FAILURE",
    "DELIVERY_DELAY",
    "SUBSCRIPTION",
]

ALL_EVENT_TYPES: List[str] = [
    "SEND",
    "DELIVERY",
    "OPEN",
    "CLICK",
    "BOUNCE",
    "COMPLAINT",
    "REJECT",
    "RENDERING_FAILURE",
    "DELIVERY_DELAY",
    "SUBSCRIPTION",
]

SuppressionReason = Literal["BOUNCE", "COMPLAINT"]

ArchiveRetention = Literal[
    "7days",
    "30days",
    "90days",
    "6months",
    "1year",
    "18months",
    "2years",
    "indefinite",
]

Provider = Literal["aws", "vercel", "railway", "other"]

ConfigPreset = Literal["starter", "production", "enterprise", "custom"]

_RETENTION_DAYS = {
    "7days": 7,
    "30days": 30,
    "90days": 90,
    "6months": 180,
    "1year": 365,
    "18months": 545,
    "2years": 730,
    "indefinite": None,
}


def retention_days(retention: str) -> Optional[int]:
    """Number of days a retention setting keeps data, None when indefinite."""
    if retention not in _RETENTION_DAYS:
        raise ValueError(f"Unknown retention period: {retention}")
    return _RETENTION_DAYS[retention]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TrackingConfig(CamelModel):
    enabled: bool = False
    opens: Optional[bool] = None
    clicks: Optional[bool] = None
    custom_redirect_domain: Optional[str] = None
    https_enabled: Optional[bool] = None


class SuppressionListConfig(CamelModel):
    enabled: bool = False
    reasons: List[SuppressionReason] = Field(default_factory=list)


class EventTrackingConfig(CamelModel):
    enabled: bool = False
    event_bridge: Optional[bool] = None
    events: Optional[List[SESEventType]] = None
    dynamodb_history: Optional[bool] = Field(default=None, alias="dynamoDBHistory")
    archive_retention: Optional[ArchiveRetention] = None


class EmailArchivingConfig(CamelModel):
    enabled: bool = False
    retention: ArchiveRetention = "90days"


class EmailConfig(CamelModel):
    """Full feature configuration of the email service."""

    domain: Optional[str] = None
    mail_from_domain: Optional[str] = None
    tracking: Optional[TrackingConfig] = None
    tls_required: Optional[bool] = None
    reputation_metrics: Optional[bool] = None
    suppression_list: Optional[SuppressionListConfig] = None
    event_tracking: Optional[EventTrackingConfig] = None
    email_archiving: Optional[EmailArchivingConfig] = None
    ip_pool: Optional[str] = None
    dedicated_ip: Optional[bool] = None
    sending_enabled: Optional[bool] = None

    @property
    def tracking_enabled(self) -> bool:
        return bool(self.tracking and self.tracking.enabled)

    @property
    def event_tracking_enabled(self) -> bool:
        return bool(self.event_tracking and self.event_tracking.enabled)

    @property
    def history_enabled(self) -> bool:
        return bool(self.event_tracking and self.event_tracking.dynamodb_history)

    @property
    def archiving_enabled(self) -> bool:
        return bool(self.email_archiving and self.email_archiving.enabled)

    @property
    def tracking_domain(self) -> Optional[str]:
        if self.tracking_enabled:
            return self.tracking.custom_redirect_domain
        return None
