"""
LoginResult schema.

Defines the outcome of one verification call and the intermediate
per-stage results it is assembled from.

The LoginResult is the only thing the hosting application needs to
decide whether to grant a session:
- nine independent boolean gates,
- the identity fields extracted from the assertion,
- the raw attribute sequence,
- the findings explaining every failed gate,
- and the derived ``valid`` flag.

Every flag defaults to False. A stage must set a flag explicitly for it
to pass.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from cryptography import x509
from pydantic import BaseModel, ConfigDict, Field, computed_field

from icelandauth.app.schemas.findings import Finding


# Order is the pipeline order and MUST remain stable.
FLAG_NAMES = (
    "signature_ok",
    "cert_ok",
    "audience_ok",
    "destination_ok",
    "time_ok",
    "ip_ok",
    "auth_method_ok",
    "delegation_id_ok",
    "destination_id_ok",
)


# ---------------------------------------------------------------------------
# Extracted data
# ---------------------------------------------------------------------------


class Attribute(BaseModel):
    """
    One assertion attribute, in document order.

    Names are not guaranteed unique; lookups take the first occurrence.
    """

    name: Optional[str] = None
    friendly_name: Optional[str] = None
    format: Optional[str] = None
    value: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Delegation(BaseModel):
    """
    "On behalf" data: the authenticated subject acting for another identity.

    Extracted without validation.
    """

    right: Optional[str] = None
    name: Optional[str] = None
    subject_id: Optional[str] = None
    value: Optional[str] = None
    valid_until: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Stage results (INTERNAL CONTRACTS)
# ---------------------------------------------------------------------------


class SignatureCheck(BaseModel):
    """
    Result of cryptographic signature verification.

    ``certificate`` is the parsed embedded certificate, handed on to the
    trust policy stage. It is None when the certificate could not be
    parsed, and is never serialized or retained beyond the call.
    """

    signature_ok: bool = False
    certificate: Optional[x509.Certificate] = Field(None, exclude=True)
    findings: List[Finding] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class TrustCheck(BaseModel):
    """Result of the certificate identity allow-list check."""

    cert_ok: bool = False
    findings: List[Finding] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class ConditionsCheck(BaseModel):
    """Result of the validity window and addressing checks."""

    time_ok: bool = False
    audience_ok: bool = False
    destination_ok: bool = False
    findings: List[Finding] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class AttributePolicyCheck(BaseModel):
    """Result of the attribute policy checks plus extracted identity."""

    ip_ok: bool = False
    auth_method_ok: bool = False
    delegation_id_ok: bool = False
    destination_id_ok: bool = False

    subject_id: Optional[str] = None
    display_name: Optional[str] = None
    authentication_method: Optional[str] = None
    delegation: Delegation = Field(default_factory=Delegation)

    findings: List[Finding] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Top-level result (PUBLIC CONTRACT)
# ---------------------------------------------------------------------------


class LoginResult(BaseModel):
    """
    Outcome of verifying one assertion.

    ``valid`` is true if and only if every flag is true.
    """

    signature_ok: bool = Field(False, description="Signature and digest verified")
    cert_ok: bool = Field(False, description="Certificate matches the trust anchor")
    audience_ok: bool = Field(False, description="Audience restriction matches")
    destination_ok: bool = Field(False, description="Response destination matches")
    time_ok: bool = Field(False, description="Inside the assertion validity window")
    ip_ok: bool = Field(False, description="Client IP matches the asserted IP")
    auth_method_ok: bool = Field(False, description="Authentication method allowed")
    delegation_id_ok: bool = Field(False, description="Contract identifier matches")
    destination_id_ok: bool = Field(False, description="Destination identifier matches")

    subject_id: Optional[str] = Field(None, description="Authenticated subject identifier")
    display_name: Optional[str] = Field(None, description="Authenticated subject name")
    authentication_method: Optional[str] = Field(
        None, description="Authentication method reported by the broker"
    )
    delegation: Delegation = Field(default_factory=Delegation)

    attributes: List[Attribute] = Field(
        default_factory=list,
        description="All assertion attributes in document order",
    )

    findings: List[Finding] = Field(
        default_factory=list,
        description="One finding per failed check, in pipeline order",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def valid(self) -> bool:
        return all(getattr(self, name) for name in FLAG_NAMES)

    @classmethod
    def failed(cls, findings: Sequence[Finding] = ()) -> "LoginResult":
        """All-false result for tokens that could not be decoded."""
        return cls(findings=list(findings))

    model_config = ConfigDict(frozen=True)
