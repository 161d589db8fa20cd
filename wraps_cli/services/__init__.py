"""AWS discovery, DNS and deployment services."""

from .base import BaseResourceScanner
from .models import AWSResourceScan, SESIdentity, ManagedResourceSummary
from .scanner import ResourceScanner, check_managed_exist, filter_managed
from .domain_verifier import DNSVerifier, DomainVerification, required_records
from .orchestrator import DeploymentOrchestrator, DeployResult, TeardownResult, StatusReport

__all__ = [
    'BaseResourceScanner',
    'AWSResourceScan',
    'SESIdentity',
    'ManagedResourceSummary',
    'ResourceScanner',
    'check_managed_exist',
    'filter_managed',
    'DNSVerifier',
    'DomainVerification',
    'required_records',
    'DeploymentOrchestrator',
    'DeployResult',
    'TeardownResult',
    'StatusReport',
]
