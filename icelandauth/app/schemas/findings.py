"""
Standardized finding schema.

Defines the canonical structure used to report why a verification gate
did not pass. Every failed check in the pipeline produces exactly one
finding, which is both logged and carried in the LoginResult so that an
operator can audit a rejected login from the result alone.

Findings are:
- immutable
- stage-traceable (source + stable finding_id)
- self-describing (expected vs. received)

Findings MUST NOT contain the verification time or any other value that
differs between two calls on the same input.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    """
    Severity level of a finding.

    CRITICAL findings indicate a possible forgery or a malformed token.
    MAJOR findings indicate a policy mismatch on an authentic assertion.
    INFO findings never affect a flag on their own.
    """

    CRITICAL = "critical"
    MAJOR = "major"
    INFO = "info"


class FindingSource(str, Enum):
    """
    Pipeline stage that produced the finding.
    """

    TOKEN_DECODING = "token_decoding"
    SIGNATURE = "signature"
    TRUST_POLICY = "trust_policy"
    CONDITIONS = "conditions"
    ATTRIBUTE_POLICY = "attribute_policy"


# ---------------------------------------------------------------------------
# Canonical Finding Object
# ---------------------------------------------------------------------------


class Finding(BaseModel):
    """
    A single immutable observation about a failed or degraded check.
    """

    finding_id: str = Field(
        ...,
        description="Stable identifier for the finding (e.g. 'CND-003')",
    )

    source: FindingSource = Field(
        ...,
        description="Pipeline stage that produced the finding",
    )

    severity: Severity = Field(
        ...,
        description="Severity level of the finding",
    )

    title: str = Field(
        ...,
        description="Short human-readable summary",
    )

    description: str = Field(
        "",
        description="Explanation of what was observed",
    )

    expected: Optional[str] = Field(
        None,
        description="Value required by policy, if the check compares values",
    )

    received: Optional[str] = Field(
        None,
        description="Value read from the assertion or the request",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def log_finding(
    logger: logging.Logger,
    finding: Finding,
    level: int = logging.WARNING,
) -> Finding:
    """
    Emit one structured log event for a finding and return it unchanged.

    The expected and received values are included both in the message
    and as ``extra`` fields so structured sinks can index them.
    """
    logger.log(
        level,
        "%s [%s]: expected %r, received %r",
        finding.title,
        finding.finding_id,
        finding.expected,
        finding.received,
        extra={
            "finding_id": finding.finding_id,
            "finding_source": finding.source.value,
            "expected": finding.expected,
            "received": finding.received,
        },
    )
    return finding
