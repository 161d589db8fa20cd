"""Tests for DNS verification of sending domains."""

import dns.exception
import dns.rdata
import dns.rdataclass
import dns.rdatatype
import dns.resolver
from hypothesis import given, settings, strategies as st

from wraps_cli.services.domain_verifier import (
    INCORRECT,
    MISSING,
    SPF_RECORD,
    VERIFIED,
    DNSVerifier,
    DomainVerification,
    DNSRecordCheck,
    build_resolver,
    dkim_record_name,
    dkim_target,
    dmarc_record,
    mail_from_mx_target,
    required_records,
)

DOMAIN = "example.com"
REGION = "us-east-1"
TOKENS = ["tok1", "tok2", "tok3"]


def rdata(rdtype: str, text: str):
    return dns.rdata.from_text(dns.rdataclass.IN, dns.rdatatype.from_text(rdtype), text)


class FakeResolver:
    """Answers from a fixed table; anything else is NXDOMAIN."""

    def __init__(self, answers=None):
        self.answers = answers or {}
        self.queries = []

    def add(self, name, rdtype, *texts):
        self.answers[(name, rdtype)] = [rdata(rdtype, text) for text in texts]

    def fail(self, name, rdtype, error):
        self.answers[(name, rdtype)] = error

    def resolve(self, name, rdtype):
        self.queries.append((name, rdtype))
        answer = self.answers.get((name, rdtype))
        if answer is None:
            raise dns.resolver.NXDOMAIN()
        if isinstance(answer, Exception):
            raise answer
        return answer


def _dkim_ok(resolver: FakeResolver):
    for token in TOKENS:
        resolver.add(dkim_record_name(token, DOMAIN), "CNAME", f"{dkim_target(token)}.")


def _fully_configured() -> FakeResolver:
    resolver = FakeResolver()
    _dkim_ok(resolver)
    resolver.add(DOMAIN, "TXT", f'"{SPF_RECORD}"', '"google-site-verification=abc"')
    resolver.add(f"_dmarc.{DOMAIN}", "TXT", f'"{dmarc_record(DOMAIN)}"')
    resolver.add(f"mail.{DOMAIN}", "MX", f"10 {mail_from_mx_target(REGION)}.")
    resolver.add(f"mail.{DOMAIN}", "TXT", f'"{SPF_RECORD}"')
    return resolver


class TestCheckCname:
    def test_matching_target_is_verified(self):
        resolver = FakeResolver()
        resolver.add("tok1._domainkey.example.com", "CNAME", "tok1.dkim.amazonses.com.")

        check = DNSVerifier(resolver=resolver).check_cname("tok1._domainkey.example.com", "tok1.dkim.amazonses.com")

        assert check.status == VERIFIED
        assert check.records == ["tok1.dkim.amazonses.com"]

    def test_comparison_ignores_case(self):
        resolver = FakeResolver()
        resolver.add("tok1._domainkey.example.com", "CNAME", "TOK1.DKIM.AmazonSES.com.")

        check = DNSVerifier(resolver=resolver).check_cname("tok1._domainkey.example.com", "tok1.dkim.amazonses.com")

        assert check.status == VERIFIED

    def test_other_target_is_incorrect(self):
        resolver = FakeResolver()
        resolver.add("tok1._domainkey.example.com", "CNAME", "somewhere.else.")

        check = DNSVerifier(resolver=resolver).check_cname("tok1._domainkey.example.com", "tok1.dkim.amazonses.com")

        assert check.status == INCORRECT

    def test_no_record_is_missing(self):
        check = DNSVerifier(resolver=FakeResolver()).check_cname("tok1._domainkey.example.com", "x")
        assert check.status == MISSING
        assert check.records == []

    def test_timeout_is_missing(self):
        resolver = FakeResolver()
        resolver.fail("tok1._domainkey.example.com", "CNAME", dns.exception.Timeout())

        check = DNSVerifier(resolver=resolver).check_cname("tok1._domainkey.example.com", "x")

        assert check.status == MISSING


class TestCheckTxt:
    def test_spf_with_ses_include(self):
        resolver = FakeResolver()
        resolver.add(DOMAIN, "TXT", '"v=spf1 include:_spf.google.com include:amazonses.com ~all"')
        assert DNSVerifier(resolver=resolver).check_spf(DOMAIN).status == VERIFIED

    def test_spf_without_ses_include(self):
        resolver = FakeResolver()
        resolver.add(DOMAIN, "TXT", '"v=spf1 include:_spf.google.com ~all"')
        assert DNSVerifier(resolver=resolver).check_spf(DOMAIN).status == INCORRECT

    def test_unrelated_txt_only_is_missing_spf(self):
        resolver = FakeResolver()
        resolver.add(DOMAIN, "TXT", '"google-site-verification=abc"')
        assert DNSVerifier(resolver=resolver).check_spf(DOMAIN).status == MISSING

    def test_split_txt_strings_are_joined(self):
        resolver = FakeResolver()
        resolver.add(DOMAIN, "TXT", '"v=spf1 include:amazon" "ses.com ~all"')
        assert DNSVerifier(resolver=resolver).check_spf(DOMAIN).status == VERIFIED

    def test_dmarc_present(self):
        resolver = FakeResolver()
        resolver.add("_dmarc.example.com", "TXT", '"v=DMARC1; p=none"')
        assert DNSVerifier(resolver=resolver).check_dmarc(DOMAIN).status == VERIFIED

    def test_dmarc_without_prefix_is_missing(self):
        resolver = FakeResolver()
        resolver.add("_dmarc.example.com", "TXT", '"p=none"')
        assert DNSVerifier(resolver=resolver).check_dmarc(DOMAIN).status == MISSING


class TestCheckMx:
    def test_ses_feedback_host(self):
        resolver = FakeResolver()
        resolver.add("mail.example.com", "MX", f"10 {mail_from_mx_target(REGION)}.")

        check = DNSVerifier(resolver=resolver).check_mail_from_mx("mail.example.com", REGION)

        assert check.status == VERIFIED
        assert check.records == [f"10 {mail_from_mx_target(REGION)}"]

    def test_wrong_region_is_incorrect(self):
        resolver = FakeResolver()
        resolver.add("mail.example.com", "MX", f"10 {mail_from_mx_target('eu-west-1')}.")

        check = DNSVerifier(resolver=resolver).check_mail_from_mx("mail.example.com", REGION)

        assert check.status == INCORRECT


class TestVerifyDomain:
    def test_fully_configured_domain(self):
        verifier = DNSVerifier(resolver=_fully_configured())

        result = verifier.verify_domain(DOMAIN, TOKENS, REGION, mail_from_domain=f"mail.{DOMAIN}", ses_verified=True)

        assert result.all_verified
        assert result.overall_status == VERIFIED
        assert result.ses_status == VERIFIED
        assert len(result.records) == 7

    def test_dkim_without_spf_is_not_verified(self):
        resolver = FakeResolver()
        _dkim_ok(resolver)
        resolver.add(f"_dmarc.{DOMAIN}", "TXT", '"v=DMARC1; p=none"')

        result = DNSVerifier(resolver=resolver).verify_domain(DOMAIN, TOKENS, REGION, ses_verified=True)

        assert not result.all_verified
        assert result.overall_status != VERIFIED
        assert [check.record_type for check in result.by_status(MISSING)] == ["TXT (SPF)"]
        assert len(result.by_status(VERIFIED)) == 4

    def test_records_keep_required_order(self):
        result = DNSVerifier(resolver=FakeResolver()).verify_domain(
            DOMAIN, TOKENS, REGION, mail_from_domain=f"mail.{DOMAIN}", tracking_domain=f"track.{DOMAIN}",
        )

        expected = required_records(
            DOMAIN, TOKENS, REGION, mail_from_domain=f"mail.{DOMAIN}", tracking_domain=f"track.{DOMAIN}",
        )
        assert [check.name for check in result.records] == [record.name for record in expected]
        assert all(check.status == MISSING for check in result.records)

    def test_pending_ses_blocks_full_verification(self):
        result = DNSVerifier(resolver=_fully_configured()).verify_domain(
            DOMAIN, TOKENS, REGION, mail_from_domain=f"mail.{DOMAIN}", ses_verified=False,
        )

        assert result.ses_status == "pending"
        assert not result.all_verified

    def test_incorrect_record_dominates_status(self):
        resolver = _fully_configured()
        resolver.add(dkim_record_name("tok2", DOMAIN), "CNAME", "wrong.example.net.")

        result = DNSVerifier(resolver=resolver).verify_domain(DOMAIN, TOKENS, REGION)

        assert result.overall_status == INCORRECT

    def test_empty_verification_is_not_verified(self):
        assert not DomainVerification(domain=DOMAIN).all_verified


OUTCOMES = ["match", "mismatch", "nxdomain", "noanswer", "timeout", "no_nameservers"]


class TestClassificationProperty:
    """Every resolver outcome maps to exactly one status."""

    @settings(max_examples=60, deadline=None)
    @given(outcomes=st.lists(st.sampled_from(OUTCOMES), min_size=5, max_size=5))
    def test_each_outcome_classifies_without_raising(self, outcomes):
        resolver = FakeResolver()
        names = [(dkim_record_name(t, DOMAIN), "CNAME") for t in TOKENS] + [(DOMAIN, "TXT"), (f"_dmarc.{DOMAIN}", "TXT")]

        for (name, rdtype), outcome in zip(names, outcomes):
            if outcome == "match":
                text = f"{name.split('.')[0]}.dkim.amazonses.com." if rdtype == "CNAME" else (
                    f'"{SPF_RECORD}"' if name == DOMAIN else '"v=DMARC1; p=none"')
                resolver.add(name, rdtype, text)
            elif outcome == "mismatch":
                resolver.add(name, rdtype, "other.example.net." if rdtype == "CNAME" else '"v=spf1 -all"')
            elif outcome == "noanswer":
                resolver.fail(name, rdtype, dns.resolver.NoAnswer())
            elif outcome == "timeout":
                resolver.fail(name, rdtype, dns.exception.Timeout())
            elif outcome == "no_nameservers":
                resolver.fail(name, rdtype, dns.resolver.NoNameservers())

        result = DNSVerifier(resolver=resolver).verify_domain(DOMAIN, TOKENS, REGION)

        assert len(result.records) == 5
        for check in result.records:
            assert check.status in (VERIFIED, INCORRECT, MISSING)


class TestRequiredRecords:
    def test_minimal_domain(self):
        records = required_records(DOMAIN, TOKENS, REGION)

        assert [r.purpose for r in records] == ["DKIM", "DKIM", "DKIM", "SPF", "DMARC"]
        assert records[0].name == "tok1._domainkey.example.com"
        assert records[0].value == "tok1.dkim.amazonses.com"

    def test_tracking_and_mail_from(self):
        records = required_records(
            DOMAIN, TOKENS, REGION, mail_from_domain="mail.example.com", tracking_domain="track.example.com",
        )
        by_purpose = {r.purpose: r for r in records}

        assert by_purpose["Tracking"].value == "r.us-east-1.awstrack.me"
        assert by_purpose["MAIL FROM"].value == "10 feedback-smtp.us-east-1.amazonses.com"
        assert by_purpose["MAIL FROM SPF"].value == SPF_RECORD


def test_build_resolver_ignores_system_configuration():
    resolver = build_resolver(["9.9.9.9"], lifetime=2.0)
    assert isinstance(resolver, dns.resolver.Resolver)
    assert len(resolver.nameservers) == 1
    assert resolver.lifetime == 2.0


def test_single_verified_record_is_enough():
    check = DNSRecordCheck(name="a", record_type="TXT", status=VERIFIED)
    assert DomainVerification(domain=DOMAIN, records=[check]).all_verified
