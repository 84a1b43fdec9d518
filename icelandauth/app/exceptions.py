"""
Decode-tier exceptions.

These are raised only while turning a raw token into a document the
pipeline can work on. The verifier converts every one of them into an
all-false LoginResult; none of them crosses AssertionVerifier.verify().

Business-validation failures (signature mismatch, expired window, ...)
are never raised. They are recorded as flags and findings.
"""


class DecodeError(ValueError):
    """Base class for tokens that cannot be turned into a document."""

    finding_id = "TOK-000"


class EmptyTokenError(DecodeError):
    """Token is missing or blank."""

    finding_id = "TOK-001"


class BadEncodingError(DecodeError):
    """Token is not valid base64."""

    finding_id = "TOK-002"


class BadTextError(DecodeError):
    """Decoded bytes are not valid UTF-8."""

    finding_id = "TOK-003"


class MalformedXmlError(DecodeError):
    """Text is not well-formed XML, or carries a DTD."""

    finding_id = "TOK-004"


class MalformedFormatError(DecodeError):
    """
    Well-formed XML that lacks an element the pipeline requires
    (signature, embedded certificate, or the conditions window).
    """

    finding_id = "TOK-005"
