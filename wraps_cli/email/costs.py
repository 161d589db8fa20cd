"""
Monthly cost estimation for Wraps email infrastructure.

Prices model a specific AWS pricing schedule. Each `PricingTable` carries the
date it took effect so an estimate can be reproduced against the rates that
were current when it was made; switching schedules means passing a different
table, the calculators stay the same.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional

from .config import EmailConfig

AVG_RECORD_SIZE_KB = 2
DEFAULT_EVENT_TYPE_COUNT = 10
QUEUE_REQUESTS_PER_EVENT = 3  # enqueue, receive, delete
LAMBDA_MEMORY_GB = 0.5
LAMBDA_DURATION_SECONDS = 0.1

_RETENTION_MONTHS = {
    "7days": 0.25,
    "30days": 1,
    "90days": 3,
    "6months": 6,
    "1year": 12,
    "18months": 18,
    "2years": 24,
    "indefinite": 24,  # planning horizon for open-ended retention
}


@dataclass(frozen=True)
class FreeTier:
    """Monthly usage allowances subtracted before billing."""
    # Most senders are past the SES onboarding allowance.
    ses_emails: int = 0
    lambda_requests: int = 1_000_000
    lambda_compute_gb_seconds: int = 400_000
    # On-demand capacity has no perpetual write allowance.
    dynamodb_writes: int = 0
    dynamodb_storage_gb: float = 25
    sqs_requests: int = 1_000_000
    eventbridge_events: int = 0


@dataclass(frozen=True)
class PricingTable:
    """Per-unit AWS prices in USD."""
    effective_date: str
    ses_per_email: float
    ses_attachment_per_gb: float
    dynamodb_write_per_million: float
    dynamodb_read_per_million: float
    dynamodb_storage_per_gb: float
    lambda_requests_per_million: float
    lambda_compute_per_gb_second: float
    sqs_requests_per_million: float
    eventbridge_events_per_million: float
    dedicated_ip_per_month: float
    route53_hosted_zone_per_month: float
    free_tier: FreeTier = field(default_factory=FreeTier)


AWS_PRICING_2025 = PricingTable(
    effective_date="2025-01-01",
    ses_per_email=0.0001,
    ses_attachment_per_gb=0.12,
    dynamodb_write_per_million=1.25,
    dynamodb_read_per_million=0.25,
    dynamodb_storage_per_gb=0.25,
    lambda_requests_per_million=0.2,
    lambda_compute_per_gb_second=0.0000166667,
    sqs_requests_per_million=0.4,
    eventbridge_events_per_million=1.0,
    dedicated_ip_per_month=24.95,
    route53_hosted_zone_per_month=0.5,
)

DEFAULT_PRICING = AWS_PRICING_2025


@dataclass
class FeatureCost:
    """Monthly cost of a single feature."""
    monthly: float
    description: str
    per_email: Optional[float] = None


@dataclass
class FeatureCostBreakdown:
    """Cost of every active feature plus the total."""
    total: FeatureCost
    tracking: Optional[FeatureCost] = None
    reputation_metrics: Optional[FeatureCost] = None
    event_tracking: Optional[FeatureCost] = None
    dynamodb_history: Optional[FeatureCost] = None
    dedicated_ip: Optional[FeatureCost] = None

    def active_features(self) -> Dict[str, FeatureCost]:
        """Active features in display order."""
        entries = {
            'tracking': self.tracking,
            'reputation_metrics': self.reputation_metrics,
            'event_tracking': self.event_tracking,
            'dynamodb_history': self.dynamodb_history,
            'dedicated_ip': self.dedicated_ip,
        }
        return {name: cost for name, cost in entries.items() if cost is not None}


def retention_months(retention: str) -> float:
    """Months of data held for a retention setting."""
    if retention not in _RETENTION_MONTHS:
        raise ValueError(f"Unknown retention period: {retention}")
    return _RETENTION_MONTHS[retention]


def event_type_count(config: EmailConfig) -> int:
    """How many lifecycle events each send fans out into."""
    if config.event_tracking and config.event_tracking.events:
        return len(config.event_tracking.events)
    return DEFAULT_EVENT_TYPE_COUNT


def estimate_storage_size(emails_per_month: int, retention: str,
                          num_event_types: int = DEFAULT_EVENT_TYPE_COUNT) -> float:
    """Estimated history table size in GB."""
    total_kb = emails_per_month * num_event_types * retention_months(retention) * AVG_RECORD_SIZE_KB
    return total_kb / 1024 / 1024


def _billable(usage: float, allowance: float) -> float:
    return max(0.0, usage - allowance)


def calculate_tracking_cost(config: EmailConfig, pricing: PricingTable = DEFAULT_PRICING) -> Optional[FeatureCost]:
    if not config.tracking_enabled:
        return None

    if config.tracking.custom_redirect_domain:
        return FeatureCost(
            monthly=pricing.route53_hosted_zone_per_month,
            description="Open/click tracking with custom domain (Route53 hosted zone)",
        )
    return FeatureCost(monthly=0.0, description="Open/click tracking (no additional cost)")


def calculate_reputation_metrics_cost(config: EmailConfig) -> Optional[FeatureCost]:
    if not config.reputation_metrics:
        return None
    return FeatureCost(monthly=0.0, description="Reputation metrics in CloudWatch (no additional cost)")


def calculate_event_tracking_cost(config: EmailConfig, emails_per_month: int,
                                  pricing: PricingTable = DEFAULT_PRICING) -> Optional[FeatureCost]:
    if not config.event_tracking_enabled:
        return None

    free = pricing.free_tier
    events = emails_per_month * event_type_count(config)
    monthly = 0.0
    components = []

    if config.event_tracking.event_bridge:
        monthly += _billable(events, free.eventbridge_events) * pricing.eventbridge_events_per_million / 1_000_000
        components.append("EventBridge")

    queue_requests = events * QUEUE_REQUESTS_PER_EVENT
    monthly += _billable(queue_requests, free.sqs_requests) * pricing.sqs_requests_per_million / 1_000_000
    components.append("SQS")

    monthly += _billable(events, free.lambda_requests) * pricing.lambda_requests_per_million / 1_000_000
    gb_seconds = events * LAMBDA_MEMORY_GB * LAMBDA_DURATION_SECONDS
    monthly += _billable(gb_seconds, free.lambda_compute_gb_seconds) * pricing.lambda_compute_per_gb_second
    components.append("Lambda")

    return FeatureCost(
        monthly=monthly,
        description=f"Event processing pipeline ({' + '.join(components)})",
    )


def calculate_dynamodb_cost(config: EmailConfig, emails_per_month: int,
                            pricing: PricingTable = DEFAULT_PRICING) -> Optional[FeatureCost]:
    if not config.history_enabled:
        return None

    free = pricing.free_tier
    retention = config.event_tracking.archive_retention or "90days"
    num_events = event_type_count(config)

    writes = emails_per_month * num_events
    write_cost = _billable(writes, free.dynamodb_writes) * pricing.dynamodb_write_per_million / 1_000_000

    storage_gb = estimate_storage_size(emails_per_month, retention, num_events)
    storage_cost = _billable(storage_gb, free.dynamodb_storage_gb) * pricing.dynamodb_storage_per_gb

    return FeatureCost(
        monthly=write_cost + storage_cost,
        description=f"Email history storage ({retention}, ~{storage_gb:.1f} GB)",
    )


def calculate_dedicated_ip_cost(config: EmailConfig, pricing: PricingTable = DEFAULT_PRICING) -> Optional[FeatureCost]:
    if not config.dedicated_ip:
        return None
    return FeatureCost(
        monthly=pricing.dedicated_ip_per_month,
        description="Dedicated IP address (requires 100k+ emails/day for warmup)",
    )


def estimate_costs(config: EmailConfig, emails_per_month: int = 10_000,
                   pricing: PricingTable = DEFAULT_PRICING) -> FeatureCostBreakdown:
    """Estimate the monthly cost of a configuration at a given send volume.

    Args:
        config: Email feature configuration
        emails_per_month: Expected monthly send volume
        pricing: Price schedule to evaluate against

    Returns:
        Breakdown containing only the features that are switched on
    """
    if emails_per_month < 0:
        raise ValueError("emails_per_month must be non-negative")

    breakdown = FeatureCostBreakdown(
        total=FeatureCost(monthly=0.0, description=""),
        tracking=calculate_tracking_cost(config, pricing),
        reputation_metrics=calculate_reputation_metrics_cost(config),
        event_tracking=calculate_event_tracking_cost(config, emails_per_month, pricing),
        dynamodb_history=calculate_dynamodb_cost(config, emails_per_month, pricing),
        dedicated_ip=calculate_dedicated_ip_cost(config, pricing),
    )

    send_cost = _billable(emails_per_month, pricing.free_tier.ses_emails) * pricing.ses_per_email
    features = sum(cost.monthly for cost in breakdown.active_features().values())

    breakdown.total = FeatureCost(
        monthly=send_cost + features,
        per_email=pricing.ses_per_email,
        description=f"Total estimated cost for {emails_per_month:,} emails/month",
    )
    return breakdown


def format_cost(cost: float) -> str:
    """Format a monthly amount for display."""
    if cost == 0:
        return "Free"
    if cost < 0.01:
        return "< $0.01"
    return f"${cost:.2f}"


def cost_summary(config: EmailConfig, emails_per_month: int = 10_000,
                 pricing: PricingTable = DEFAULT_PRICING) -> str:
    """Multi-line cost summary for terminal output."""
    costs = estimate_costs(config, emails_per_month, pricing)
    lines = [
        f"Estimated cost for {emails_per_month:,} emails/month: {format_cost(costs.total.monthly)}/mo"
    ]
    for cost in costs.active_features().values():
        lines.append(f"  - {cost.description}: {format_cost(cost.monthly)}")
    return "\n".join(lines)
