"""
Result aggregation.

The single place where stage results are merged into a LoginResult.
The aggregator does not evaluate anything: it copies flags and fields
from the stage results and concatenates their findings in pipeline
order. ``LoginResult.valid`` is derived from the flags by the schema.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from lxml import etree

from icelandauth.app.config import VerificationPolicy
from icelandauth.app.schemas.findings import Finding
from icelandauth.app.schemas.login_result import (
    Attribute,
    AttributePolicyCheck,
    ConditionsCheck,
    LoginResult,
    SignatureCheck,
    TrustCheck,
)

logger = logging.getLogger(__name__)


class ResultAggregator:
    """
    Builds the final immutable LoginResult.

    Stateless; safe to share between concurrent calls.
    """

    def __init__(self, policy: VerificationPolicy) -> None:
        self._policy = policy

    def aggregate(
        self,
        *,
        document: etree._Element,
        signature: SignatureCheck,
        trust: TrustCheck,
        conditions: ConditionsCheck,
        attributes: Sequence[Attribute],
        attribute_policy: AttributePolicyCheck,
    ) -> LoginResult:
        findings: List[Finding] = [
            *signature.findings,
            *trust.findings,
            *conditions.findings,
            *attribute_policy.findings,
        ]

        if self._policy.LOG_RAW_RESPONSE:
            # Carries personal data; only ever enabled for debugging.
            logger.debug(
                "SAML Response:\n%s",
                etree.tostring(document, encoding="unicode"),
            )

        result = LoginResult(
            signature_ok=signature.signature_ok,
            cert_ok=trust.cert_ok,
            audience_ok=conditions.audience_ok,
            destination_ok=conditions.destination_ok,
            time_ok=conditions.time_ok,
            ip_ok=attribute_policy.ip_ok,
            auth_method_ok=attribute_policy.auth_method_ok,
            delegation_id_ok=attribute_policy.delegation_id_ok,
            destination_id_ok=attribute_policy.destination_id_ok,
            subject_id=attribute_policy.subject_id,
            display_name=attribute_policy.display_name,
            authentication_method=attribute_policy.authentication_method,
            delegation=attribute_policy.delegation,
            attributes=list(attributes),
            findings=findings,
        )

        if result.valid:
            logger.info("Authentication valid")
        else:
            logger.info(
                "Authentication invalid (%d finding(s))", len(findings)
            )

        return result
