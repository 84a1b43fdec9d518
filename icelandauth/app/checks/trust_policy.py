"""
Trust policy: certificate identity allow-list.

The broker's signing certificate is trusted when three identity fields
match the configured trust anchor:

    issuer  CN            == TRUSTED_ISSUER_NAME
    issuer  SERIALNUMBER  == TRUSTED_ISSUER_ID
    subject SERIALNUMBER  == TRUSTED_SIGNER_ID

This is a narrow identity check. It does not build a path to a root CA
and does not consult revocation information.

A component that is absent from the certificate is a non-match. It can
never satisfy an expected value, because the policy rejects empty
trust anchor values at construction.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from icelandauth.app.config import VerificationPolicy
from icelandauth.app.schemas.findings import (
    Finding,
    FindingSource,
    Severity,
    log_finding,
)
from icelandauth.app.schemas.login_result import TrustCheck

logger = logging.getLogger(__name__)


class DistinguishedNameComponent(NamedTuple):
    name: str
    value: str


# ---------------------------------------------------------------------------
# Distinguished name components
# ---------------------------------------------------------------------------

# cryptography has no short name for serialNumber and renders its OID.
_COMPONENT_NAMES = {
    NameOID.SERIAL_NUMBER: "SERIALNUMBER",
}


def name_components(name: x509.Name) -> List[DistinguishedNameComponent]:
    """
    Flatten a certificate name into (name, value) pairs.

    Order is RFC 4514 string order (most specific RDN first), and
    multi-valued RDNs are flattened. Names are upper-cased.
    """
    components: List[DistinguishedNameComponent] = []

    for rdn in reversed(name.rdns):
        for attribute in rdn:
            label = _COMPONENT_NAMES.get(
                attribute.oid, attribute.rfc4514_attribute_name
            )
            value = attribute.value
            if isinstance(value, bytes):
                value = value.hex()
            components.append(DistinguishedNameComponent(label.upper(), value))

    return components


def first_component(
    components: List[DistinguishedNameComponent], name: str
) -> Optional[str]:
    for component in components:
        if component.name == name:
            return component.value
    return None


# ---------------------------------------------------------------------------
# Public check
# ---------------------------------------------------------------------------


def check_certificate_identity(
    certificate: Optional[x509.Certificate],
    policy: VerificationPolicy,
) -> TrustCheck:
    """
    Compare the certificate's issuer and subject identity fields with
    the trust anchor. Never raises for certificate content.
    """
    if certificate is None:
        finding = Finding(
            finding_id="CRT-002",
            source=FindingSource.TRUST_POLICY,
            severity=Severity.CRITICAL,
            title="No certificate available for trust check",
            description="The embedded certificate could not be parsed.",
        )
        log_finding(logger, finding)
        return TrustCheck(cert_ok=False, findings=[finding])

    try:
        issuer = name_components(certificate.issuer)
        subject = name_components(certificate.subject)
    except ValueError as exc:
        finding = Finding(
            finding_id="CRT-003",
            source=FindingSource.TRUST_POLICY,
            severity=Severity.CRITICAL,
            title="Certificate names could not be read",
            description=str(exc),
        )
        log_finding(logger, finding)
        return TrustCheck(cert_ok=False, findings=[finding])

    issuer_name = first_component(issuer, "CN")
    issuer_id = first_component(issuer, "SERIALNUMBER")
    signer_id = first_component(subject, "SERIALNUMBER")

    if (
        issuer_name is not None
        and issuer_id is not None
        and signer_id is not None
        and issuer_name == policy.TRUSTED_ISSUER_NAME
        and issuer_id == policy.TRUSTED_ISSUER_ID
        and signer_id == policy.TRUSTED_SIGNER_ID
    ):
        logger.debug("Certificate verified")
        return TrustCheck(cert_ok=True)

    finding = Finding(
        finding_id="CRT-001",
        source=FindingSource.TRUST_POLICY,
        severity=Severity.CRITICAL,
        title="Certificate identity does not match trust anchor",
        description="Certificate error, possible forgery attempt.",
        expected=(
            f"issuer CN={policy.TRUSTED_ISSUER_NAME}, "
            f"issuer SERIALNUMBER={policy.TRUSTED_ISSUER_ID}, "
            f"subject SERIALNUMBER={policy.TRUSTED_SIGNER_ID}"
        ),
        received=(
            f"issuer CN={issuer_name}, "
            f"issuer SERIALNUMBER={issuer_id}, "
            f"subject SERIALNUMBER={signer_id}"
        ),
    )
    log_finding(logger, finding)
    return TrustCheck(cert_ok=False, findings=[finding])
