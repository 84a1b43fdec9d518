"""
Assertion attributes: extraction and policy checks.

Extraction returns every attribute of the assertion's attribute
statement in document order. An absent statement yields an empty
sequence, not an error.

Lookups by name take the FIRST attribute with that name. Later
duplicates are ignored, not rejected.

Each policy check has an explicit "absent" rule:

    ip_ok              True if IP verification is disabled or no client
                       IP was observed; otherwise the asserted IP must
                       equal the observed IP exactly.
    auth_method_ok     True if no methods are configured; otherwise the
                       asserted method must be one of them.
    delegation_id_ok   True if no contract identifier is configured or
                       the assertion carries none; otherwise equality.
    destination_id_ok  True if no destination identifier is configured;
                       otherwise equality.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from lxml import etree

from icelandauth.app.checks.conditions import parse_timestamp
from icelandauth.app.checks.token_decoding import NS
from icelandauth.app.config import VerificationPolicy
from icelandauth.app.schemas.findings import (
    Finding,
    FindingSource,
    Severity,
    log_finding,
)
from icelandauth.app.schemas.login_result import (
    Attribute,
    AttributePolicyCheck,
    Delegation,
)

logger = logging.getLogger(__name__)

# Non-ISO forms seen in delegation validity values.
_DELEGATION_DATE_FORMATS = ("%d.%m.%Y %H:%M:%S", "%d.%m.%Y")


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_attributes(document: etree._Element) -> List[Attribute]:
    statement = document.find("saml:Assertion/saml:AttributeStatement", NS)
    if statement is None:
        return []

    attributes: List[Attribute] = []
    for element in statement.findall("saml:Attribute", NS):
        value_el = next(element.iterchildren(tag=etree.Element), None)
        attributes.append(
            Attribute(
                name=element.get("Name"),
                friendly_name=element.get("FriendlyName"),
                format=element.get("NameFormat"),
                value=(
                    "".join(value_el.itertext())
                    if value_el is not None
                    else None
                ),
            )
        )

    return attributes


def first_value(attributes: Sequence[Attribute], name: str) -> Optional[str]:
    """Value of the first attribute called ``name``, or None."""
    for attribute in attributes:
        if attribute.name == name:
            return attribute.value
    return None


def parse_delegation_validity(value: Optional[str]) -> Optional[datetime]:
    """Best-effort timestamp parse; None when the value cannot be read."""
    if not value or not value.strip():
        return None

    try:
        return parse_timestamp(value)
    except ValueError:
        pass

    for fmt in _DELEGATION_DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).replace(
                tzinfo=timezone.utc
            )
        except ValueError:
            continue

    return None


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


def _mismatch(
    finding_id: str,
    title: str,
    expected: Optional[str],
    received: Optional[str],
    severity: Severity = Severity.CRITICAL,
) -> Finding:
    return Finding(
        finding_id=finding_id,
        source=FindingSource.ATTRIBUTE_POLICY,
        severity=severity,
        title=title,
        expected=expected,
        received=received,
    )


def check_attribute_policy(
    attributes: Sequence[Attribute],
    ip_address: Optional[str],
    policy: VerificationPolicy,
) -> AttributePolicyCheck:
    """
    Apply the attribute policy and extract the identity fields.

    Never raises.
    """
    names = policy.ATTRIBUTE_NAMES
    findings: List[Finding] = []

    if not attributes:
        findings.append(
            log_finding(
                logger,
                Finding(
                    finding_id="ATR-001",
                    source=FindingSource.ATTRIBUTE_POLICY,
                    severity=Severity.INFO,
                    title="No attributes found",
                ),
            )
        )

    # --------------------------------------------------------------
    # Client IP
    # --------------------------------------------------------------
    if not policy.VERIFY_IP_ADDRESS or not ip_address:
        ip_ok = True
    else:
        asserted_ip = first_value(attributes, names.IP_ADDRESS)
        ip_ok = asserted_ip is not None and asserted_ip == ip_address
        if not ip_ok:
            findings.append(
                log_finding(
                    logger,
                    _mismatch(
                        "ATR-002", "IP address mismatch", ip_address, asserted_ip
                    ),
                )
            )

    # --------------------------------------------------------------
    # Authentication method
    # --------------------------------------------------------------
    method = first_value(attributes, names.AUTHENTICATION)
    if not policy.ALLOWED_AUTHENTICATION_METHODS:
        auth_method_ok = True
    else:
        auth_method_ok = method is not None and method in policy.ALLOWED_AUTHENTICATION_METHODS
        if not auth_method_ok:
            findings.append(
                log_finding(
                    logger,
                    _mismatch(
                        "ATR-003",
                        "Authentication method not allowed",
                        ", ".join(sorted(policy.ALLOWED_AUTHENTICATION_METHODS)),
                        method,
                        Severity.MAJOR,
                    ),
                    logging.INFO,
                )
            )

    # --------------------------------------------------------------
    # Contract (delegation) identifier
    # --------------------------------------------------------------
    delegation_id = first_value(attributes, names.DELEGATION_ID)
    if policy.EXPECTED_DELEGATION_ID is None or not delegation_id:
        delegation_id_ok = True
    else:
        delegation_id_ok = delegation_id == policy.EXPECTED_DELEGATION_ID
        if not delegation_id_ok:
            findings.append(
                log_finding(
                    logger,
                    _mismatch(
                        "ATR-004",
                        "Contract identifier mismatch",
                        policy.EXPECTED_DELEGATION_ID,
                        delegation_id,
                    ),
                )
            )

    # --------------------------------------------------------------
    # Destination identifier
    # --------------------------------------------------------------
    if policy.EXPECTED_DESTINATION_ID is None:
        destination_id_ok = True
    else:
        destination_id = first_value(attributes, names.DESTINATION_ID)
        destination_id_ok = destination_id == policy.EXPECTED_DESTINATION_ID
        if not destination_id_ok:
            findings.append(
                log_finding(
                    logger,
                    _mismatch(
                        "ATR-005",
                        "Destination identifier mismatch",
                        policy.EXPECTED_DESTINATION_ID,
                        destination_id,
                    ),
                )
            )

    # --------------------------------------------------------------
    # Identity (extracted, not validated)
    # --------------------------------------------------------------
    delegation = Delegation(
        right=first_value(attributes, names.ON_BEHALF_RIGHT),
        name=first_value(attributes, names.ON_BEHALF_NAME),
        subject_id=first_value(attributes, names.ON_BEHALF_SUBJECT_ID),
        value=first_value(attributes, names.ON_BEHALF_VALUE),
        valid_until=parse_delegation_validity(
            first_value(attributes, names.ON_BEHALF_VALID_UNTIL)
        ),
    )

    if attributes:
        logger.debug("Attributes read")

    return AttributePolicyCheck(
        ip_ok=ip_ok,
        auth_method_ok=auth_method_ok,
        delegation_id_ok=delegation_id_ok,
        destination_id_ok=destination_id_ok,
        subject_id=first_value(attributes, names.SUBJECT_ID),
        display_name=first_value(attributes, names.DISPLAY_NAME),
        authentication_method=method,
        delegation=delegation,
        findings=findings,
    )
