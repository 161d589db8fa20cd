"""
Data models for discovered AWS resources.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SESIdentity:
    """A sending identity: a domain or a single email address."""
    name: str
    identity_type: str         # 'Domain' or 'EmailAddress'
    verified: bool

    @property
    def is_domain(self) -> bool:
        return self.identity_type == 'Domain'


@dataclass
class EventDestination:
    name: str
    enabled: bool
    matching_event_types: List[str] = field(default_factory=list)
    sns_topic_arn: Optional[str] = None
    event_bus_arn: Optional[str] = None


@dataclass
class SESConfigurationSet:
    name: str
    event_destinations: List[EventDestination] = field(default_factory=list)


@dataclass
class SNSTopic:
    arn: str
    name: str
    subscriptions: int = 0


@dataclass
class DynamoTable:
    name: str
    status: str
    item_count: Optional[int] = None
    size_bytes: Optional[int] = None


@dataclass
class LambdaFunction:
    name: str
    arn: str
    runtime: Optional[str] = None
    handler: Optional[str] = None


@dataclass
class IAMRole:
    name: str
    arn: str
    assume_role_policy_document: Any = None


@dataclass
class AWSResourceScan:
    """Point-in-time view of the email-related resources in a region."""
    identities: List[SESIdentity] = field(default_factory=list)
    configuration_sets: List[SESConfigurationSet] = field(default_factory=list)
    sns_topics: List[SNSTopic] = field(default_factory=list)
    dynamo_tables: List[DynamoTable] = field(default_factory=list)
    lambda_functions: List[LambdaFunction] = field(default_factory=list)
    iam_roles: List[IAMRole] = field(default_factory=list)

    @property
    def domain_identities(self) -> List[SESIdentity]:
        return [identity for identity in self.identities if identity.is_domain]

    def counts(self) -> Dict[str, int]:
        return {
            'identities': len(self.identities),
            'configuration_sets': len(self.configuration_sets),
            'sns_topics': len(self.sns_topics),
            'dynamo_tables': len(self.dynamo_tables),
            'lambda_functions': len(self.lambda_functions),
            'iam_roles': len(self.iam_roles),
        }


@dataclass
class ManagedResourceSummary:
    """Which managed resource families already exist."""
    has_config_set: bool = False
    has_sns_topics: bool = False
    has_dynamo_table: bool = False
    has_lambda_functions: bool = False
    has_iam_role: bool = False

    @property
    def any(self) -> bool:
        return (
            self.has_config_set
            or self.has_sns_topics
            or self.has_dynamo_table
            or self.has_lambda_functions
            or self.has_iam_role
        )


@dataclass
class EmailIdentityDetails:
    """DKIM and MAIL FROM settings of a single SES identity."""
    name: str
    verified_for_sending: bool
    dkim_status: Optional[str] = None
    dkim_tokens: List[str] = field(default_factory=list)
    mail_from_domain: Optional[str] = None
    mail_from_status: Optional[str] = None
