"""
Preset configurations with recommended settings for different use cases.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.exceptions import ConfigurationError
from .config import EmailConfig
from .costs import estimate_costs, format_cost, retention_months

_PRODUCTION_EVENTS = [
    "SEND",
    "DELIVERY",
    "OPEN",
    "CLICK",
    "BOUNCE",
    "COMPLAINT",
    "REJECT",
    "RENDERING_FAILURE",
]

_PRESETS: Dict[str, dict] = {
    # Side projects, MVPs, staging. Up to 10k emails/month.
    'starter': {
        'tracking': {'enabled': True, 'opens': True, 'clicks': True},
        'tlsRequired': True,
        'reputationMetrics': False,
        'suppressionList': {'enabled': True, 'reasons': ['BOUNCE', 'COMPLAINT']},
        'eventTracking': {'enabled': False},
        'sendingEnabled': True,
    },
    # SaaS apps, B2B products. 10k-500k emails/month.
    'production': {
        'tracking': {'enabled': True, 'opens': True, 'clicks': True},
        'tlsRequired': True,
        'reputationMetrics': True,
        'suppressionList': {'enabled': True, 'reasons': ['BOUNCE', 'COMPLAINT']},
        'eventTracking': {
            'enabled': True,
            'eventBridge': True,
            'events': _PRODUCTION_EVENTS,
            'dynamoDBHistory': True,
            'archiveRetention': '90days',
        },
        'sendingEnabled': True,
    },
    # High-volume transactional email. 500k+ emails/month.
    'enterprise': {
        'tracking': {'enabled': True, 'opens': True, 'clicks': True},
        'tlsRequired': True,
        'reputationMetrics': True,
        'suppressionList': {'enabled': True, 'reasons': ['BOUNCE', 'COMPLAINT']},
        'eventTracking': {
            'enabled': True,
            'eventBridge': True,
            'events': _PRODUCTION_EVENTS + ["DELIVERY_DELAY", "SUBSCRIPTION"],
            'dynamoDBHistory': True,
            'archiveRetention': '1year',
        },
        'dedicatedIp': True,
        'sendingEnabled': True,
    },
}

PRESET_NAMES = ['starter', 'production', 'enterprise', 'custom']

PRESET_REFERENCE_VOLUME = {
    'starter': 10_000,
    'production': 100_000,
    'enterprise': 1_000_000,
}


@dataclass
class PresetInfo:
    """Preset summary for display."""
    name: str
    description: str
    volume: str
    estimated_cost: str
    features: List[str] = field(default_factory=list)


_PRESET_INFO = {
    'starter': (
        "Starter",
        "Minimal features for low-volume senders",
        "Up to 10k emails/month",
        ["Open & click tracking", "TLS encryption required", "Automatic bounce/complaint suppression"],
    ),
    'production': (
        "Production",
        "Recommended for most production applications",
        "10k-500k emails/month",
        ["Everything in Starter", "Reputation metrics dashboard", "Real-time event tracking (EventBridge)",
         "90-day email history storage"],
    ),
    'enterprise': (
        "Enterprise",
        "Full features for high-volume senders",
        "500k+ emails/month",
        ["Everything in Production", "Dedicated IP address", "1-year email history", "All event types tracked"],
    ),
}


def get_preset(name: str) -> Optional[EmailConfig]:
    """Get a fresh copy of a preset configuration.

    Returns:
        The preset's EmailConfig, or None for "custom"

    Raises:
        ConfigurationError: If the preset name is unknown
    """
    if name == 'custom':
        return None
    if name not in _PRESETS:
        raise ConfigurationError(
            f"Unknown preset: {name}",
            suggestion=f"Choose one of: {', '.join(PRESET_NAMES)}",
        )
    return EmailConfig.model_validate(_PRESETS[name])


def preset_info(name: str) -> PresetInfo:
    """Summary of a preset including its cost at the reference volume."""
    config = get_preset(name)
    if config is None:
        return PresetInfo(
            name="Custom",
            description="Configure each feature individually",
            volume="Any volume",
            estimated_cost="Varies",
            features=["Full control over all features"],
        )

    title, description, volume, features = _PRESET_INFO[name]
    costs = estimate_costs(config, PRESET_REFERENCE_VOLUME[name])
    return PresetInfo(
        name=title,
        description=description,
        volume=volume,
        estimated_cost=format_cost(costs.total.monthly),
        features=list(features),
    )


def get_upgrade_path(current: EmailConfig, target: EmailConfig) -> List[str]:
    """Describe the features a move from `current` to `target` switches on."""
    changes = []

    if not current.tracking_enabled and target.tracking_enabled:
        changes.append("Enable email tracking (opens & clicks)")
    if not current.reputation_metrics and target.reputation_metrics:
        changes.append("Enable reputation metrics")
    if not current.event_tracking_enabled and target.event_tracking_enabled:
        changes.append("Enable real-time event tracking")
    if not current.history_enabled and target.history_enabled:
        changes.append("Enable email history storage")

    current_retention = current.event_tracking.archive_retention if current.event_tracking else None
    target_retention = target.event_tracking.archive_retention if target.event_tracking else None
    if target_retention and current_retention != target_retention:
        longer = current_retention is None or retention_months(target_retention) > retention_months(current_retention)
        verb = "Upgrade" if longer else "Change"
        changes.append(f"{verb} retention: {current_retention or 'none'} -> {target_retention}")

    if not current.dedicated_ip and target.dedicated_ip:
        changes.append("Add dedicated IP address")

    return changes


def validate_config(config: EmailConfig) -> List[str]:
    """Advisory warnings for a configuration. Never blocks a deployment."""
    warnings = []

    if config.dedicated_ip:
        warnings.append(
            "Dedicated IPs require 100k+ emails/day for proper warmup. Consider starting with shared IPs."
        )

    if config.event_tracking_enabled and not config.history_enabled:
        warnings.append(
            "Event tracking is enabled but history storage is disabled. Events will only be available in real-time."
        )

    if config.event_tracking and config.event_tracking.archive_retention == "indefinite":
        warnings.append(
            "Indefinite retention can become expensive. Consider 90-day or 1-year retention."
        )

    return warnings
