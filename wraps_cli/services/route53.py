"""
Route53 helpers for publishing the DNS records of a sending domain.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import boto3

from .base import AWS_ERRORS
from .domain_verifier import DNSRecord, required_records
from ..core.exceptions import ServiceError

logger = logging.getLogger(__name__)

RECORD_TTL = 1800


@dataclass
class HostedZone:
    id: str
    name: str


def find_hosted_zone(session: boto3.Session, domain: str) -> Optional[HostedZone]:
    """Find the hosted zone serving a domain.

    Tries the exact name first, then each parent domain, so
    ``track.example.com`` falls back to ``example.com``.
    """
    client = session.client('route53')
    candidate = domain.rstrip('.')

    while True:
        try:
            response = client.list_hosted_zones_by_name(DNSName=candidate, MaxItems='1')
            zones = response.get('HostedZones', [])
            if zones and zones[0]['Name'] == f"{candidate}.":
                zone = zones[0]
                return HostedZone(id=zone['Id'].replace('/hostedzone/', ''), name=zone['Name'])
        except AWS_ERRORS as e:
            logger.debug(f"Hosted zone lookup for {candidate} failed: {e}")

        parts = candidate.split('.')
        if len(parts) <= 2:
            return None
        candidate = '.'.join(parts[1:])


def _quote_txt(value: str) -> str:
    return value if value.startswith('"') else f'"{value}"'


def build_change_batch(records: Sequence[DNSRecord]) -> List[dict]:
    """UPSERT changes for a list of required records."""
    changes = []
    for record in records:
        value = _quote_txt(record.value) if record.record_type == 'TXT' else record.value
        changes.append({
            'Action': 'UPSERT',
            'ResourceRecordSet': {
                'Name': record.name,
                'Type': record.record_type,
                'TTL': RECORD_TTL,
                'ResourceRecords': [{'Value': value}],
            },
        })
    return changes


def create_dns_records(session: boto3.Session, zone_id: str, domain: str, dkim_tokens: Sequence[str],
                       region: str, tracking_domain: Optional[str] = None,
                       mail_from_domain: Optional[str] = None,
                       tracking_cname_target: Optional[str] = None) -> List[DNSRecord]:
    """Publish the DKIM, SPF, DMARC, tracking and MAIL FROM records in a hosted zone.

    Returns:
        The records that were written

    Raises:
        ServiceError: If Route53 rejects the change batch
    """
    records = required_records(
        domain,
        dkim_tokens,
        region,
        mail_from_domain=mail_from_domain,
        tracking_domain=tracking_domain,
        tracking_cname_target=tracking_cname_target,
    )

    client = session.client('route53')
    try:
        client.change_resource_record_sets(
            HostedZoneId=zone_id,
            ChangeBatch={'Changes': build_change_batch(records)},
        )
    except AWS_ERRORS as e:
        raise ServiceError(f"Failed to create DNS records in hosted zone {zone_id}: {e}", details=str(e)) from e

    logger.info(f"Created {len(records)} DNS records for {domain} in hosted zone {zone_id}")
    return records


def auto_create_dns_records(session: boto3.Session, domain: str, dkim_tokens: Sequence[str], region: str,
                            tracking_domain: Optional[str] = None,
                            mail_from_domain: Optional[str] = None) -> bool:
    """Publish records if the domain is served by a Route53 zone in this account.

    Returns:
        True if records were written, False if no hosted zone was found

    Raises:
        ServiceError: If the zone exists but the records could not be written
    """
    zone = find_hosted_zone(session, domain)
    if zone is None:
        logger.info(f"No Route53 hosted zone found for {domain}")
        return False

    create_dns_records(session, zone.id, domain, dkim_tokens, region,
                       tracking_domain=tracking_domain, mail_from_domain=mail_from_domain)
    return True
