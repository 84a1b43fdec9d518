"""
Verification policy for the assertion verifier.

This module centralizes everything the pipeline compares an assertion
against: the expected recipient, the allowed authentication methods,
and the trust anchor (expected issuer and signer identity fields of
the embedded certificate).

The policy is loaded once at process start and is read-only for the
lifetime of the service. It is shared by every verification call, so
it must never be mutated after construction.
"""

from __future__ import annotations

import os
from typing import Any, FrozenSet, Optional

from pydantic import BaseModel, Field, field_validator


# Trust anchor of the national eID broker: the issuing CA's common name
# and registry number, and the registry number of the signing authority.
DEFAULT_TRUSTED_ISSUER_NAME = "Traustur bunadur"
DEFAULT_TRUSTED_ISSUER_ID = "5210002790"
DEFAULT_TRUSTED_SIGNER_ID = "6503760649"


class AttributeNames(BaseModel):
    """
    Wire names of the assertion attributes the pipeline reads.

    Defaults are the names the broker emits.
    """

    SUBJECT_ID: str = "UserSSN"
    DISPLAY_NAME: str = "Name"
    AUTHENTICATION: str = "Authentication"
    IP_ADDRESS: str = "IPAddress"
    DESTINATION_ID: str = "DestinationSSN"
    DELEGATION_ID: str = "AuthID"
    ON_BEHALF_RIGHT: str = "BehalfRight"
    ON_BEHALF_NAME: str = "OnBehalfName"
    ON_BEHALF_SUBJECT_ID: str = "OnBehalfUserSSN"
    ON_BEHALF_VALUE: str = "BehalfValue"
    ON_BEHALF_VALID_UNTIL: str = "BehalfValidity"

    model_config = {
        "frozen": True,
    }


class VerificationPolicy(BaseModel):
    """
    Immutable verification policy.

    Optional checks are disabled by leaving the corresponding expected
    value unset; this is the only way a flag may default to true.
    """

    # ------------------------------------------------------------------
    # Recipient
    # ------------------------------------------------------------------

    EXPECTED_AUDIENCE: str = Field(
        ...,
        description=(
            "Audience restriction the assertion must carry. "
            "Most likely the site's host name. Compared case-insensitively."
        ),
    )

    EXPECTED_DESTINATION: Optional[str] = Field(
        None,
        description=(
            "Response destination URL. Compared case-insensitively. "
            "Unset disables the destination check."
        ),
    )

    EXPECTED_DESTINATION_ID: Optional[str] = Field(
        None,
        description=(
            "Identifier of the contracting party the broker addressed. "
            "Unset disables the destination identifier check."
        ),
    )

    EXPECTED_DELEGATION_ID: Optional[str] = Field(
        None,
        description=(
            "Contract identifier. Not always included in the assertion; "
            "the check passes when either side is absent."
        ),
    )

    # ------------------------------------------------------------------
    # Authentication context
    # ------------------------------------------------------------------

    ALLOWED_AUTHENTICATION_METHODS: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Accepted authentication methods. Empty accepts any.",
    )

    VERIFY_IP_ADDRESS: bool = Field(
        True,
        description=(
            "Require the client IP seen at authentication to match the "
            "IP of the verifying request. Breaks behind internal proxies."
        ),
    )

    # ------------------------------------------------------------------
    # Trust anchor
    # ------------------------------------------------------------------

    TRUSTED_ISSUER_NAME: str = Field(
        DEFAULT_TRUSTED_ISSUER_NAME,
        description="Expected CN of the signing certificate's issuer",
    )

    TRUSTED_ISSUER_ID: str = Field(
        DEFAULT_TRUSTED_ISSUER_ID,
        description="Expected SERIALNUMBER of the signing certificate's issuer",
    )

    TRUSTED_SIGNER_ID: str = Field(
        DEFAULT_TRUSTED_SIGNER_ID,
        description="Expected SERIALNUMBER of the signing certificate's subject",
    )

    # ------------------------------------------------------------------
    # Diagnostics and limits
    # ------------------------------------------------------------------

    LOG_RAW_RESPONSE: bool = Field(
        False,
        description=(
            "Log the full parsed response at DEBUG. The response carries "
            "personal data. Never enable in production."
        ),
    )

    MAX_TOKEN_BYTES: int = Field(
        256 * 1024,
        gt=0,
        description="Upper bound on token size accepted by the HTTP surface",
    )

    ATTRIBUTE_NAMES: AttributeNames = Field(
        default_factory=AttributeNames,
        description="Wire names of the attributes read from the assertion",
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("EXPECTED_AUDIENCE")
    @classmethod
    def audience_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("EXPECTED_AUDIENCE must not be empty.")
        return v

    @field_validator(
        "EXPECTED_DESTINATION",
        "EXPECTED_DESTINATION_ID",
        "EXPECTED_DELEGATION_ID",
        mode="before",
    )
    @classmethod
    def blank_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("ALLOWED_AUTHENTICATION_METHODS", mode="before")
    @classmethod
    def normalize_methods(cls, v: Any) -> Any:
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = v.split(",")
        return frozenset(m.strip() for m in v if m and m.strip())

    @field_validator(
        "TRUSTED_ISSUER_NAME",
        "TRUSTED_ISSUER_ID",
        "TRUSTED_SIGNER_ID",
    )
    @classmethod
    def trust_anchor_not_empty(cls, v: str) -> str:
        # An absent certificate component must never compare equal.
        if not v:
            raise ValueError("Trust anchor values must not be empty.")
        return v

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "VerificationPolicy":
        """
        Load the policy from ICELANDAUTH_* environment variables.

        All values are parsed once at startup and must remain immutable.
        """

        def env_bool(name: str, default: bool) -> bool:
            raw = os.getenv(name)
            if raw is None:
                return default
            return raw.strip().lower() in {"1", "true", "yes", "on"}

        return cls(
            EXPECTED_AUDIENCE=os.getenv(
                "ICELANDAUTH_EXPECTED_AUDIENCE", ""
            ),
            EXPECTED_DESTINATION=os.getenv(
                "ICELANDAUTH_EXPECTED_DESTINATION"
            ),
            EXPECTED_DESTINATION_ID=os.getenv(
                "ICELANDAUTH_EXPECTED_DESTINATION_ID"
            ),
            EXPECTED_DELEGATION_ID=os.getenv(
                "ICELANDAUTH_EXPECTED_DELEGATION_ID"
            ),
            ALLOWED_AUTHENTICATION_METHODS=os.getenv(
                "ICELANDAUTH_ALLOWED_AUTHENTICATION_METHODS", ""
            ),
            VERIFY_IP_ADDRESS=env_bool(
                "ICELANDAUTH_VERIFY_IP_ADDRESS", True
            ),
            LOG_RAW_RESPONSE=env_bool(
                "ICELANDAUTH_LOG_RAW_RESPONSE", False
            ),
            TRUSTED_ISSUER_NAME=os.getenv(
                "ICELANDAUTH_TRUSTED_ISSUER_NAME", DEFAULT_TRUSTED_ISSUER_NAME
            ),
            TRUSTED_ISSUER_ID=os.getenv(
                "ICELANDAUTH_TRUSTED_ISSUER_ID", DEFAULT_TRUSTED_ISSUER_ID
            ),
            TRUSTED_SIGNER_ID=os.getenv(
                "ICELANDAUTH_TRUSTED_SIGNER_ID", DEFAULT_TRUSTED_SIGNER_ID
            ),
            MAX_TOKEN_BYTES=int(
                os.getenv("ICELANDAUTH_MAX_TOKEN_BYTES", str(256 * 1024))
            ),
        )

    model_config = {
        "frozen": True,
    }
