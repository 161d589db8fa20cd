"""
Base scanner interface for AWS resource families.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import ServiceError

logger = logging.getLogger(__name__)

AWS_ERRORS = (ClientError, BotoCoreError)


class BaseResourceScanner(ABC):
    """Abstract base class for read-only discovery of one resource family."""

    family: str = ''

    def __init__(self, session: boto3.Session, region: str):
        """Initialize the scanner with AWS session and region.

        Args:
            session: Authenticated boto3 session
            region: AWS region to scan
        """
        self.session = session
        self.region = region
        self._client = None

    @property
    def client(self):
        """Lazy-loaded AWS service client."""
        if self._client is None:
            self._client = self.session.client(self.service_name, region_name=self.region)
        return self._client

    @property
    @abstractmethod
    def service_name(self) -> str:
        """AWS service name (e.g., 'ses', 'sns', 'dynamodb')."""
        pass

    @abstractmethod
    def scan(self) -> List[Any]:
        """List every resource of this family in the region.

        Raises:
            ServiceError: If a listing call fails
        """
        pass

    def scan_safe(self) -> List[Any]:
        """Scan, logging and absorbing failures as an empty result."""
        try:
            return self.scan()
        except ServiceError as e:
            logger.warning(f"Error scanning {self.family or self.service_name} in {self.region}: {e.message}")
            return []
        except Exception as e:
            logger.error(f"Unexpected error scanning {self.family or self.service_name} in {self.region}: {e}")
            return []

    def _handle_aws_error(self, error: Exception, operation: str, resource_id: Optional[str] = None) -> None:
        """Handle AWS API errors and convert to ServiceError.

        Raises:
            ServiceError: Wrapped error with context
        """
        resource_context = f" for {resource_id}" if resource_id else ""
        error_message = f"AWS {self.service_name} {operation} failed{resource_context}: {error}"
        raise ServiceError(error_message, details=str(error)) from error
