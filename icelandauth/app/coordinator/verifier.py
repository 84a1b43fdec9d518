"""
Assertion verification pipeline.

IMPORTANT:
The verifier is a DUMB COORDINATOR. It does not compare anything itself.

Its sole responsibilities are:
- enforcing execution order
- turning decode-tier failures into an all-false result
- running every business check to completion
- handing the stage results to the aggregator

Execution order:
    1. Token decoding                  (decode tier)
    2. Signature + certificate lookup  (decode tier if absent)
    3. Validity window lookup          (decode tier if absent)
    4. Signature verification          (signature_ok)
    5. Certificate trust policy        (cert_ok)
    6. Conditions                      (time_ok, audience_ok, destination_ok)
    7. Attribute extraction
    8. Attribute policy                (ip_ok, auth_method_ok,
                                        delegation_id_ok, destination_id_ok)
    9. Aggregation                     (valid)

verify() is a pure function of (token, ip_address, policy, clock). The
document and certificate are owned by the call and discarded with it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from icelandauth.app.checks.attributes import (
    check_attribute_policy,
    extract_attributes,
)
from icelandauth.app.checks.conditions import (
    check_conditions,
    read_validity_window,
)
from icelandauth.app.checks.signature import (
    SignatureVerifier,
    XmlDsigSignatureVerifier,
)
from icelandauth.app.checks.token_decoding import (
    Base64XmlTokenDecoder,
    TokenDecoder,
)
from icelandauth.app.checks.trust_policy import check_certificate_identity
from icelandauth.app.config import VerificationPolicy
from icelandauth.app.coordinator.aggregation import ResultAggregator
from icelandauth.app.exceptions import DecodeError, EmptyTokenError
from icelandauth.app.schemas.findings import (
    Finding,
    FindingSource,
    Severity,
    log_finding,
)
from icelandauth.app.schemas.login_result import LoginResult

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AssertionVerifier:
    """
    Verifies broker assertions under one immutable policy.

    Decoding and signature verification are pluggable. Any object with a
    matching ``decode`` / ``verify`` method may be supplied.
    """

    def __init__(
        self,
        policy: VerificationPolicy,
        *,
        token_decoder: Optional[TokenDecoder] = None,
        signature_verifier: Optional[SignatureVerifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._policy = policy
        self._token_decoder = token_decoder or Base64XmlTokenDecoder()
        self._signature_verifier = signature_verifier or XmlDsigSignatureVerifier()
        self._clock = clock or utc_now
        self._aggregator = ResultAggregator(policy)

    @property
    def policy(self) -> VerificationPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def verify(
        self,
        token: Optional[str],
        ip_address: Optional[str] = None,
    ) -> LoginResult:
        """
        Verify one token. Never raises for caller-supplied data.
        """
        logger.debug("Verifying assertion")

        # --------------------------------------------------------------
        # Decode tier: any failure here is an all-false result
        # --------------------------------------------------------------
        try:
            document = self._token_decoder.decode(token)
            signature = self._signature_verifier.verify(document)
            window = read_validity_window(document)
        except DecodeError as exc:
            return self._decode_failure(exc)

        logger.debug("Parsed assertion")

        # --------------------------------------------------------------
        # Business tier: every stage runs, none aborts
        # --------------------------------------------------------------
        trust = check_certificate_identity(signature.certificate, self._policy)

        conditions = check_conditions(
            document, window, self._policy, self._now()
        )

        attributes = extract_attributes(document)
        attribute_policy = check_attribute_policy(
            attributes, ip_address, self._policy
        )

        return self._aggregator.aggregate(
            document=document,
            signature=signature,
            trust=trust,
            conditions=conditions,
            attributes=attributes,
            attribute_policy=attribute_policy,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now

    @staticmethod
    def _decode_failure(exc: DecodeError) -> LoginResult:
        title = (
            "Null or empty token string"
            if isinstance(exc, EmptyTokenError)
            else "Invalid SAML response format"
        )
        finding = log_finding(
            logger,
            Finding(
                finding_id=exc.finding_id,
                source=FindingSource.TOKEN_DECODING,
                severity=Severity.CRITICAL,
                title=title,
                description=str(exc),
            ),
        )
        return LoginResult.failed([finding])
