"""AWS credential validation via STS."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from wraps_cli.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


@dataclass
class CallerIdentity:
    """The principal behind the active credentials."""
    account_id: str
    principal_id: str
    principal_arn: str


class AWSAuthenticator:
    """Builds boto3 sessions from the ambient credential chain and validates them."""

    def __init__(self, session_factory: Optional[Callable[..., boto3.Session]] = None):
        """Initialize the authenticator.

        Args:
            session_factory: Callable returning a boto3 Session for a region.
                             Defaults to boto3.Session.
        """
        self.session_factory = session_factory or boto3.Session
        self._identity: Optional[CallerIdentity] = None

    def get_session(self, region: Optional[str] = None) -> boto3.Session:
        """Session for the given region using the default credential chain."""
        if region:
            return self.session_factory(region_name=region)
        return self.session_factory()

    def validate_credentials(self, region: Optional[str] = None) -> CallerIdentity:
        """Resolve the caller identity, failing fast when credentials are unusable.

        Returns:
            The account and principal of the active credentials

        Raises:
            AuthenticationError: If credentials are missing, expired or rejected
        """
        if self._identity is not None:
            return self._identity

        try:
            sts_client = self.get_session(region).client('sts')
            response = sts_client.get_caller_identity()
        except NoCredentialsError as e:
            raise AuthenticationError("AWS credentials not found") from e
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            logger.debug(f"get_caller_identity failed: {error_code} - {e}")
            raise AuthenticationError(f"AWS credentials are invalid or expired ({error_code})") from e
        except BotoCoreError as e:
            raise AuthenticationError(f"Unable to validate AWS credentials: {e}") from e

        self._identity = CallerIdentity(
            account_id=response['Account'],
            principal_id=response.get('UserId', ''),
            principal_arn=response.get('Arn', ''),
        )
        logger.info(f"Authenticated as {self._identity.principal_arn} in account {self._identity.account_id}")
        return self._identity
