"""
Concurrent discovery of existing email-related resources in a region.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Dict, List, Optional, Type

import boto3

from .base import BaseResourceScanner
from .dynamodb import DynamoTableScanner
from .iam import IAMRoleScanner
from .lambda_functions import LambdaFunctionScanner
from .models import (
    AWSResourceScan,
    DynamoTable,
    IAMRole,
    LambdaFunction,
    ManagedResourceSummary,
    SESConfigurationSet,
    SESIdentity,
    SNSTopic,
)
from .ses import SESConfigurationSetScanner, SESIdentityScanner
from .sns import SNSTopicScanner

logger = logging.getLogger(__name__)

DEFAULT_MANAGED_PREFIX = "wraps-"


class ResourceScanner:
    """Runs every resource-family scanner for one region."""

    def __init__(self, session: boto3.Session, region: str, max_workers: int = 6):
        """Initialize the scanner.

        Args:
            session: Authenticated boto3 session
            region: AWS region to scan
            max_workers: Maximum number of concurrent family scans
        """
        self.session = session
        self.region = region
        self.max_workers = max_workers

        self.scanner_classes: Dict[str, Type[BaseResourceScanner]] = {
            'identities': SESIdentityScanner,
            'configuration_sets': SESConfigurationSetScanner,
            'sns_topics': SNSTopicScanner,
            'dynamo_tables': DynamoTableScanner,
            'lambda_functions': LambdaFunctionScanner,
            'iam_roles': IAMRoleScanner,
        }
        self._scanner_cache: Dict[str, BaseResourceScanner] = {}

    def get_scanner(self, family: str) -> BaseResourceScanner:
        if family not in self._scanner_cache:
            self._scanner_cache[family] = self.scanner_classes[family](self.session, self.region)
        return self._scanner_cache[family]

    def scan_identities(self) -> List[SESIdentity]:
        return self.get_scanner('identities').scan_safe()

    def scan_configuration_sets(self) -> List[SESConfigurationSet]:
        return self.get_scanner('configuration_sets').scan_safe()

    def scan_sns_topics(self) -> List[SNSTopic]:
        return self.get_scanner('sns_topics').scan_safe()

    def scan_dynamo_tables(self) -> List[DynamoTable]:
        return self.get_scanner('dynamo_tables').scan_safe()

    def scan_lambda_functions(self) -> List[LambdaFunction]:
        return self.get_scanner('lambda_functions').scan_safe()

    def scan_iam_roles(self) -> List[IAMRole]:
        return self.get_scanner('iam_roles').scan_safe()

    def scan_all(self) -> AWSResourceScan:
        """Scan all families concurrently. A failing family yields an empty list."""
        results: Dict[str, list] = {family: [] for family in self.scanner_classes}

        # boto3 sessions are not thread-safe; build clients before fanning out
        scanners = {family: self.get_scanner(family) for family in self.scanner_classes}
        for scanner in scanners.values():
            scanner.client

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_family = {
                executor.submit(scanner.scan_safe): family
                for family, scanner in scanners.items()
            }

            for future in as_completed(future_to_family):
                family = future_to_family[future]
                try:
                    results[family] = future.result()
                    logger.debug(f"Found {len(results[family])} {family} in {self.region}")
                except Exception as e:
                    logger.error(f"Scan failed for {family} in {self.region}: {e}")

        scan = AWSResourceScan(**results)
        logger.info(f"Scan of {self.region} complete: {scan.counts()}")
        return scan


def filter_managed(scan: AWSResourceScan, prefix: str = DEFAULT_MANAGED_PREFIX) -> AWSResourceScan:
    """Narrow a scan to managed resources. Identities are always kept in full."""
    return replace(
        scan,
        configuration_sets=[cs for cs in scan.configuration_sets if cs.name.startswith(prefix)],
        sns_topics=[t for t in scan.sns_topics if t.name.startswith(prefix)],
        dynamo_tables=[t for t in scan.dynamo_tables if t.name.startswith(prefix)],
        lambda_functions=[f for f in scan.lambda_functions if f.name.startswith(prefix)],
        iam_roles=[r for r in scan.iam_roles if r.name.startswith(prefix)],
    )


def check_managed_exist(scan: AWSResourceScan, prefix: Optional[str] = None) -> ManagedResourceSummary:
    """Summarise which managed resource families are already present."""
    managed = filter_managed(scan, prefix or DEFAULT_MANAGED_PREFIX)
    return ManagedResourceSummary(
        has_config_set=bool(managed.configuration_sets),
        has_sns_topics=bool(managed.sns_topics),
        has_dynamo_table=bool(managed.dynamo_tables),
        has_lambda_functions=bool(managed.lambda_functions),
        has_iam_role=bool(managed.iam_roles),
    )
