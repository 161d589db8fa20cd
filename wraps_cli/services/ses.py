"""
SES scanners for sending identities and configuration sets.
"""
import logging
from typing import List, Optional

import boto3

from .base import AWS_ERRORS, BaseResourceScanner
from .models import EmailIdentityDetails, EventDestination, SESConfigurationSet, SESIdentity
from ..core.exceptions import ServiceError

logger = logging.getLogger(__name__)

# GetIdentityVerificationAttributes accepts at most 100 identities per call
VERIFICATION_BATCH_SIZE = 100


class SESIdentityScanner(BaseResourceScanner):
    """Lists SES identities joined with their verification status."""

    family = 'identities'

    @property
    def service_name(self) -> str:
        return 'ses'

    def scan(self) -> List[SESIdentity]:
        try:
            names = []
            paginator = self.client.get_paginator('list_identities')
            for page in paginator.paginate():
                names.extend(page.get('Identities', []))

            if not names:
                return []

            attributes = {}
            for start in range(0, len(names), VERIFICATION_BATCH_SIZE):
                batch = names[start:start + VERIFICATION_BATCH_SIZE]
                response = self.client.get_identity_verification_attributes(Identities=batch)
                attributes.update(response.get('VerificationAttributes', {}))
        except AWS_ERRORS as e:
            self._handle_aws_error(e, 'identity discovery')

        # An identity missing from the attributes map counts as unverified
        return [
            SESIdentity(
                name=name,
                identity_type='EmailAddress' if '@' in name else 'Domain',
                verified=attributes.get(name, {}).get('VerificationStatus') == 'Success',
            )
            for name in names
        ]


class SESConfigurationSetScanner(BaseResourceScanner):
    """Lists SES configuration sets with their event destinations."""

    family = 'configuration_sets'

    @property
    def service_name(self) -> str:
        return 'sesv2'

    def scan(self) -> List[SESConfigurationSet]:
        names = []
        try:
            kwargs = {}
            while True:
                response = self.client.list_configuration_sets(**kwargs)
                names.extend(response.get('ConfigurationSets', []))
                if not response.get('NextToken'):
                    break
                kwargs['NextToken'] = response['NextToken']
        except AWS_ERRORS as e:
            self._handle_aws_error(e, 'configuration set discovery')

        config_sets = []
        for name in names:
            try:
                response = self.client.get_configuration_set_event_destinations(ConfigurationSetName=name)
            except AWS_ERRORS as e:
                logger.warning(f"Error describing configuration set {name}: {e}")
                continue

            destinations = [
                EventDestination(
                    name=destination['Name'],
                    enabled=destination.get('Enabled', False),
                    matching_event_types=destination.get('MatchingEventTypes', []),
                    sns_topic_arn=destination.get('SnsDestination', {}).get('TopicArn'),
                    event_bus_arn=destination.get('EventBridgeDestination', {}).get('EventBusArn'),
                )
                for destination in response.get('EventDestinations', [])
            ]
            config_sets.append(SESConfigurationSet(name=name, event_destinations=destinations))

        return config_sets


def get_email_identity(session: boto3.Session, region: str, identity: str) -> Optional[EmailIdentityDetails]:
    """Fetch DKIM tokens and MAIL FROM settings for an identity.

    Returns:
        The identity details, or None if SES has no such identity

    Raises:
        ServiceError: If the lookup fails for any other reason
    """
    client = session.client('sesv2', region_name=region)
    try:
        response = client.get_email_identity(EmailIdentity=identity)
    except client.exceptions.NotFoundException:
        return None
    except AWS_ERRORS as e:
        raise ServiceError(f"Failed to read SES identity {identity}: {e}", details=str(e)) from e

    dkim = response.get('DkimAttributes', {})
    mail_from = response.get('MailFromAttributes', {})
    return EmailIdentityDetails(
        name=identity,
        verified_for_sending=bool(response.get('VerifiedForSendingStatus', False)),
        dkim_status=dkim.get('Status'),
        dkim_tokens=list(dkim.get('Tokens', [])),
        mail_from_domain=mail_from.get('MailFromDomain'),
        mail_from_status=mail_from.get('MailFromDomainStatus'),
    )
