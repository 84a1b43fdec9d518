"""
Assertion conditions: validity window, audience and destination.

The validity window is mandatory. An assertion without both NotBefore
and NotOnOrAfter (or with timestamps that cannot be read) is treated as
a malformed token, not as an expired one.

The window is open on both ends: an assertion is valid strictly after
NotBefore and strictly before NotOnOrAfter. All comparisons are in UTC.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import NamedTuple, Optional

from lxml import etree

from icelandauth.app.checks.token_decoding import NS
from icelandauth.app.config import VerificationPolicy
from icelandauth.app.exceptions import MalformedFormatError
from icelandauth.app.schemas.findings import (
    Finding,
    FindingSource,
    Severity,
    log_finding,
)
from icelandauth.app.schemas.login_result import ConditionsCheck

logger = logging.getLogger(__name__)

# The broker emits up to seven fractional digits; fromisoformat wants six.
_FRACTION = re.compile(r"\.(\d+)")


class ValidityWindow(NamedTuple):
    not_before: datetime
    not_on_or_after: datetime


def parse_timestamp(value: str) -> datetime:
    """
    Parse an xs:dateTime value into an aware UTC datetime.

    Values without an offset are taken as UTC. Raises ValueError, also
    for instants that fall outside the datetime range once moved to UTC.
    """
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(
        lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1
    )

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError as exc:
        raise ValueError(f"Timestamp out of range: {value!r}") from exc


def find_conditions(document: etree._Element) -> Optional[etree._Element]:
    return document.find("saml:Assertion/saml:Conditions", NS)


def read_validity_window(document: etree._Element) -> ValidityWindow:
    """
    Read NotBefore / NotOnOrAfter from the assertion conditions.

    Raises:
        MalformedFormatError: conditions missing, either bound missing,
            or a bound that is not a timestamp.
    """
    conditions = find_conditions(document)
    if conditions is None:
        raise MalformedFormatError("Assertion carries no Conditions element")

    not_before = conditions.get("NotBefore")
    not_on_or_after = conditions.get("NotOnOrAfter")
    if not not_before or not not_on_or_after:
        raise MalformedFormatError(
            "Conditions must carry both NotBefore and NotOnOrAfter"
        )

    try:
        return ValidityWindow(
            parse_timestamp(not_before),
            parse_timestamp(not_on_or_after),
        )
    except ValueError as exc:
        raise MalformedFormatError(
            f"Conditions carry an unreadable timestamp: {exc}"
        ) from exc


def _same_text(expected: str, received: Optional[str]) -> bool:
    return received is not None and received.strip().casefold() == expected.casefold()


def check_conditions(
    document: etree._Element,
    window: ValidityWindow,
    policy: VerificationPolicy,
    now: datetime,
) -> ConditionsCheck:
    """Evaluate time window, audience and destination. Never raises."""
    findings = []

    # --------------------------------------------------------------
    # Validity window (strict on both ends)
    # --------------------------------------------------------------
    time_ok = window.not_before < now < window.not_on_or_after

    if not time_ok:
        received = (
            f"{window.not_before.isoformat()} .. "
            f"{window.not_on_or_after.isoformat()}"
        )
        if now <= window.not_before:
            findings.append(
                log_finding(
                    logger,
                    Finding(
                        finding_id="CND-001",
                        source=FindingSource.CONDITIONS,
                        severity=Severity.MAJOR,
                        title="Assertion not yet valid",
                        description="From time has not passed yet.",
                        expected="NotBefore < now < NotOnOrAfter",
                        received=received,
                    ),
                )
            )
        else:
            findings.append(
                log_finding(
                    logger,
                    Finding(
                        finding_id="CND-002",
                        source=FindingSource.CONDITIONS,
                        severity=Severity.MAJOR,
                        title="Assertion expired",
                        description="Too much time has passed.",
                        expected="NotBefore < now < NotOnOrAfter",
                        received=received,
                    ),
                    logging.INFO,
                )
            )
    else:
        logger.debug("Timestamp verified")

    # --------------------------------------------------------------
    # Audience restriction
    # --------------------------------------------------------------
    conditions = find_conditions(document)
    audience_el = (
        conditions.find("saml:AudienceRestriction/saml:Audience", NS)
        if conditions is not None
        else None
    )
    audience = audience_el.text if audience_el is not None else None
    audience_ok = _same_text(policy.EXPECTED_AUDIENCE, audience)

    if not audience_ok:
        findings.append(
            log_finding(
                logger,
                Finding(
                    finding_id="CND-003",
                    source=FindingSource.CONDITIONS,
                    severity=Severity.CRITICAL,
                    title="Audience mismatch",
                    expected=policy.EXPECTED_AUDIENCE,
                    received=audience,
                ),
            )
        )

    # --------------------------------------------------------------
    # Destination (unset in policy disables the check)
    # --------------------------------------------------------------
    if policy.EXPECTED_DESTINATION is None:
        destination_ok = True
    else:
        destination = document.get("Destination")
        destination_ok = _same_text(policy.EXPECTED_DESTINATION, destination)

        if not destination_ok:
            findings.append(
                log_finding(
                    logger,
                    Finding(
                        finding_id="CND-004",
                        source=FindingSource.CONDITIONS,
                        severity=Severity.CRITICAL,
                        title="Destination mismatch",
                        expected=policy.EXPECTED_DESTINATION,
                        received=destination,
                    ),
                )
            )

    return ConditionsCheck(
        time_ok=time_ok,
        audience_ok=audience_ok,
        destination_ok=destination_ok,
        findings=findings,
    )
