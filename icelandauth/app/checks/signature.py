"""
Signature verification.

Locates the response signature and the certificate embedded in its
key-info block, then verifies the signed digest with the public key of
that certificate. Canonicalization, reference digests and the signature
value are checked by signxml according to the algorithms the document
declares.

The signature must cover the response itself. A valid signature over
some other element (signature wrapping) leaves signature_ok False.

This stage answers only "was this document signed by the holder of the
embedded certificate". Whether that certificate is one we trust is the
trust policy stage's decision.

Error handling policy:
    Missing signature or certificate elements raise MalformedFormatError
    (decode tier). Everything else is recorded: corrupt certificates,
    digest mismatches and signature mismatches produce a finding and
    signature_ok=False. Only signxml's own exception hierarchy and the
    InvalidSignature / ValueError / UnsupportedAlgorithm raised by
    cryptography are caught here. Logic errors propagate.
"""

from __future__ import annotations

import base64
import logging
from typing import Optional, Protocol

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from lxml import etree
from signxml import SignatureConfiguration, XMLVerifier
from signxml.exceptions import SignXMLException

from icelandauth.app.checks.token_decoding import NS, SAMLP_NS
from icelandauth.app.exceptions import MalformedFormatError
from icelandauth.app.schemas.findings import (
    Finding,
    FindingSource,
    Severity,
    log_finding,
)
from icelandauth.app.schemas.login_result import SignatureCheck

logger = logging.getLogger(__name__)


class SignatureVerifier(Protocol):
    """
    Pluggable signature verification capability.

    Implementations raise MalformedFormatError when the document carries
    no signature or no embedded certificate, and otherwise return a
    SignatureCheck without raising.
    """

    def verify(self, document: etree._Element) -> SignatureCheck:
        ...


# ---------------------------------------------------------------------------
# Document structure
# ---------------------------------------------------------------------------


def locate_signature(document: etree._Element) -> tuple[etree._Element, str]:
    """
    Return the response's signature element and the embedded certificate text.

    Raises:
        MalformedFormatError: root is not a Response, or the signature or
            its X509Certificate is absent.
    """
    if document.tag != f"{{{SAMLP_NS}}}Response":
        raise MalformedFormatError(
            f"Document element is not a SAML Response: {document.tag}"
        )

    signature = document.find("ds:Signature", NS)
    if signature is None:
        raise MalformedFormatError("Response carries no Signature element")

    cert_el = signature.find("ds:KeyInfo/ds:X509Data/ds:X509Certificate", NS)
    if cert_el is None or not (cert_el.text or "").strip():
        raise MalformedFormatError("Signature carries no X509Certificate")

    return signature, cert_el.text


def load_embedded_certificate(certificate_text: str) -> x509.Certificate:
    """
    Parse the embedded certificate (base64 DER, or PEM).

    Raises ValueError on corrupt input.
    """
    text = certificate_text.strip()
    if text.startswith("-----BEGIN"):
        return x509.load_pem_x509_certificate(text.encode("ascii"))

    der = base64.b64decode("".join(text.split()), validate=True)
    return x509.load_der_x509_certificate(der)


def _reference_covers_root(
    document: etree._Element,
    signature: etree._Element,
) -> Optional[str]:
    """
    Return None if every reference covers the response root, otherwise
    the first offending reference URI.
    """
    references = signature.findall("ds:SignedInfo/ds:Reference", NS)
    if not references:
        return "<none>"

    root_id = document.get("ID")
    allowed = {""}
    if root_id:
        allowed.add(f"#{root_id}")

    for reference in references:
        uri = reference.get("URI", "")
        if uri not in allowed:
            return uri

    return None


# ---------------------------------------------------------------------------
# Default implementation
# ---------------------------------------------------------------------------


class XmlDsigSignatureVerifier:
    """
    XML-DSig verification with signxml, keyed by the embedded certificate.

    A new XMLVerifier is created per call; no state is kept between calls.
    """

    def __init__(
        self, expect_config: Optional[SignatureConfiguration] = None
    ) -> None:
        self._expect_config = expect_config

    def verify(self, document: etree._Element) -> SignatureCheck:
        signature, certificate_text = locate_signature(document)

        try:
            certificate = load_embedded_certificate(certificate_text)
        except (ValueError, UnsupportedAlgorithm) as exc:
            finding = Finding(
                finding_id="SIG-002",
                source=FindingSource.SIGNATURE,
                severity=Severity.CRITICAL,
                title="Embedded certificate could not be parsed",
                description=str(exc),
            )
            return self._fail(finding)

        bad_uri = _reference_covers_root(document, signature)
        if bad_uri is not None:
            finding = Finding(
                finding_id="SIG-003",
                source=FindingSource.SIGNATURE,
                severity=Severity.CRITICAL,
                title="Signature does not cover the response",
                description=(
                    "The signature references an element other than the "
                    "response root."
                ),
                expected=f"#{document.get('ID', '')}",
                received=bad_uri,
            )
            return self._fail(finding, certificate)

        cert_pem = certificate.public_bytes(
            serialization.Encoding.PEM
        ).decode("ascii")

        kwargs = {"x509_cert": cert_pem}
        if self._expect_config is not None:
            kwargs["expect_config"] = self._expect_config

        try:
            XMLVerifier().verify(document, **kwargs)
        except (
            SignXMLException,
            InvalidSignature,
            ValueError,
            UnsupportedAlgorithm,
        ) as exc:
            finding = Finding(
                finding_id="SIG-001",
                source=FindingSource.SIGNATURE,
                severity=Severity.CRITICAL,
                title="Signature verification failed",
                description=f"{type(exc).__name__}: {exc}",
            )
            return self._fail(finding, certificate)

        logger.debug("Signature verified")
        return SignatureCheck(signature_ok=True, certificate=certificate)

    @staticmethod
    def _fail(
        finding: Finding,
        certificate: Optional[x509.Certificate] = None,
    ) -> SignatureCheck:
        log_finding(logger, finding)
        logger.warning("Signature error, possible forgery attempt")
        return SignatureCheck(
            signature_ok=False,
            certificate=certificate,
            findings=[finding],
        )
