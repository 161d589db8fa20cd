"""
DNS verification of the records an SES sending domain needs.

Every lookup goes to explicit public resolvers rather than the system
resolver, so results reflect what receiving mail servers will see.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import dns.exception
import dns.resolver

from ..core.config import DEFAULT_DNS_SERVERS

logger = logging.getLogger(__name__)

DKIM_SIGNING_HOST = "dkim.amazonses.com"
SPF_INCLUDE = "include:amazonses.com"
SPF_RECORD = "v=spf1 include:amazonses.com ~all"
DMARC_PREFIX = "v=DMARC1"
MAIL_FROM_MX_PRIORITY = 10

VERIFIED = "verified"
INCORRECT = "incorrect"
MISSING = "missing"

# No-data and no-such-name are ordinary "record not there" answers
_ABSENT = (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer)
# Resolver unreachable or too slow; reported as missing but logged
_UNRESOLVED = (dns.exception.Timeout, dns.resolver.NoNameservers)


def dkim_record_name(token: str, domain: str) -> str:
    return f"{token}._domainkey.{domain}"


def dkim_target(token: str) -> str:
    return f"{token}.{DKIM_SIGNING_HOST}"


def dmarc_record_name(domain: str) -> str:
    return f"_dmarc.{domain}"


def dmarc_record(domain: str) -> str:
    return f"v=DMARC1; p=quarantine; rua=mailto:postmaster@{domain}"


def mail_from_mx_target(region: str) -> str:
    return f"feedback-smtp.{region}.amazonses.com"


def tracking_target(region: str) -> str:
    return f"r.{region}.awstrack.me"


def _normalize(name: str) -> str:
    return name.rstrip('.').lower()


@dataclass
class DNSRecord:
    """A record the domain owner has to publish."""
    name: str
    record_type: str
    value: str
    purpose: str = ""


@dataclass
class DNSRecordCheck:
    """Result of checking one required record."""
    name: str
    record_type: str
    status: str
    expected: Optional[str] = None
    records: List[str] = field(default_factory=list)


@dataclass
class DomainVerification:
    """DNS and SES verification state of a domain."""
    domain: str
    ses_status: str = "unknown"    # 'verified', 'pending' or 'unknown'
    records: List[DNSRecordCheck] = field(default_factory=list)

    @property
    def all_verified(self) -> bool:
        return (
            bool(self.records)
            and all(record.status == VERIFIED for record in self.records)
            and self.ses_status != "pending"
        )

    @property
    def overall_status(self) -> str:
        if self.all_verified:
            return VERIFIED
        if any(record.status == INCORRECT for record in self.records):
            return INCORRECT
        return "pending"

    def by_status(self, status: str) -> List[DNSRecordCheck]:
        return [record for record in self.records if record.status == status]


def required_records(domain: str, dkim_tokens: Sequence[str], region: str,
                     mail_from_domain: Optional[str] = None,
                     tracking_domain: Optional[str] = None,
                     tracking_cname_target: Optional[str] = None) -> List[DNSRecord]:
    """Records to publish for a domain identity, in display order."""
    records = [
        DNSRecord(dkim_record_name(token, domain), "CNAME", dkim_target(token), "DKIM")
        for token in dkim_tokens
    ]
    records.append(DNSRecord(domain, "TXT", SPF_RECORD, "SPF"))
    records.append(DNSRecord(dmarc_record_name(domain), "TXT", dmarc_record(domain), "DMARC"))

    if tracking_domain:
        records.append(DNSRecord(
            tracking_domain, "CNAME", tracking_cname_target or tracking_target(region), "Tracking"
        ))

    if mail_from_domain:
        records.append(DNSRecord(
            mail_from_domain, "MX", f"{MAIL_FROM_MX_PRIORITY} {mail_from_mx_target(region)}", "MAIL FROM"
        ))
        records.append(DNSRecord(mail_from_domain, "TXT", SPF_RECORD, "MAIL FROM SPF"))

    return records


def build_resolver(nameservers: Sequence[str] = DEFAULT_DNS_SERVERS, lifetime: float = 5.0) -> dns.resolver.Resolver:
    """A resolver pinned to the given nameservers, ignoring /etc/resolv.conf."""
    resolver = dns.resolver.Resolver(configure=False)
    resolver.nameservers = list(nameservers)
    resolver.lifetime = lifetime
    return resolver


class DNSVerifier:
    """Checks the DKIM, SPF, DMARC, MAIL FROM and tracking records of a domain."""

    def __init__(self, resolver=None, nameservers: Sequence[str] = DEFAULT_DNS_SERVERS, max_workers: int = 8):
        """Initialize the verifier.

        Args:
            resolver: Object with a dnspython-style ``resolve(name, rdtype)``.
                      Defaults to a resolver using ``nameservers``.
            nameservers: Public resolvers to query when no resolver is given
            max_workers: Maximum number of concurrent lookups
        """
        self.resolver = resolver or build_resolver(nameservers)
        self.max_workers = max_workers

    def _lookup(self, name: str, rdtype: str) -> Optional[list]:
        """Resolve a name, returning None when no record exists."""
        try:
            return list(self.resolver.resolve(name, rdtype))
        except _ABSENT:
            return None
        except _UNRESOLVED as e:
            logger.warning(f"DNS lookup for {name} ({rdtype}) did not complete: {e}")
            return None

    def _resolve_cname(self, name: str) -> List[str]:
        answer = self._lookup(name, "CNAME")
        return [_normalize(rdata.target.to_text()) for rdata in answer or []]

    def _resolve_txt(self, name: str) -> List[str]:
        answer = self._lookup(name, "TXT")
        return [b"".join(rdata.strings).decode("utf-8", errors="replace") for rdata in answer or []]

    def _resolve_mx(self, name: str) -> List[str]:
        answer = self._lookup(name, "MX")
        return [f"{rdata.preference} {_normalize(rdata.exchange.to_text())}" for rdata in answer or []]

    def check_cname(self, name: str, expected: str) -> DNSRecordCheck:
        records = self._resolve_cname(name)
        if not records:
            status = MISSING
        elif _normalize(expected) in records:
            status = VERIFIED
        else:
            status = INCORRECT
        return DNSRecordCheck(name=name, record_type="CNAME", status=status, expected=expected, records=records)

    def check_spf(self, name: str) -> DNSRecordCheck:
        spf = next((r for r in self._resolve_txt(name) if r.startswith("v=spf1")), None)
        if spf is None:
            status = MISSING
        elif SPF_INCLUDE in spf:
            status = VERIFIED
        else:
            status = INCORRECT
        return DNSRecordCheck(
            name=name, record_type="TXT (SPF)", status=status, expected=SPF_INCLUDE,
            records=[spf] if spf else [],
        )

    def check_dmarc(self, domain: str) -> DNSRecordCheck:
        name = dmarc_record_name(domain)
        dmarc = next((r for r in self._resolve_txt(name) if r.startswith(DMARC_PREFIX)), None)
        return DNSRecordCheck(
            name=name, record_type="TXT (DMARC)", status=VERIFIED if dmarc else MISSING,
            expected=DMARC_PREFIX, records=[dmarc] if dmarc else [],
        )

    def check_mail_from_mx(self, mail_from_domain: str, region: str) -> DNSRecordCheck:
        expected = mail_from_mx_target(region)
        records = self._resolve_mx(mail_from_domain)
        if not records:
            status = MISSING
        elif any(record.split(" ", 1)[-1] == expected for record in records):
            status = VERIFIED
        else:
            status = INCORRECT
        return DNSRecordCheck(name=mail_from_domain, record_type="MX", status=status, expected=expected, records=records)

    def verify_domain(self, domain: str, dkim_tokens: Sequence[str], region: str,
                      mail_from_domain: Optional[str] = None,
                      tracking_domain: Optional[str] = None,
                      tracking_cname_target: Optional[str] = None,
                      ses_verified: Optional[bool] = None) -> DomainVerification:
        """Check every record the domain needs.

        Args:
            domain: Sending domain
            dkim_tokens: DKIM tokens issued by SES for the domain
            region: Deployment region, used for the MAIL FROM and tracking targets
            mail_from_domain: Custom MAIL FROM subdomain, if configured
            tracking_domain: Custom open/click tracking domain, if configured
            tracking_cname_target: Override for the tracking CNAME target
            ses_verified: SES's own verification flag, if known

        Returns:
            Per-record results in the order of ``required_records``
        """
        checks: List[Callable[[], DNSRecordCheck]] = [
            (lambda token=token: self.check_cname(dkim_record_name(token, domain), dkim_target(token)))
            for token in dkim_tokens
        ]
        checks.append(lambda: self.check_spf(domain))
        checks.append(lambda: self.check_dmarc(domain))

        if tracking_domain:
            target = tracking_cname_target or tracking_target(region)
            checks.append(lambda: self.check_cname(tracking_domain, target))

        if mail_from_domain:
            checks.append(lambda: self.check_mail_from_mx(mail_from_domain, region))
            checks.append(lambda: self.check_spf(mail_from_domain))

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(check) for check in checks]
            records = [future.result() for future in futures]

        if ses_verified is None:
            ses_status = "unknown"
        else:
            ses_status = VERIFIED if ses_verified else "pending"

        verification = DomainVerification(domain=domain, ses_status=ses_status, records=records)
        logger.info(f"DNS verification for {domain}: {verification.overall_status}")
        return verification
