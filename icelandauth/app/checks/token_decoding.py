"""
Token decoding.

Turns the raw token posted by the broker into an XML element tree:

    base64 -> bytes -> UTF-8 text -> XML (whitespace preserved)

The parser never resolves external entities, never touches the network,
and refuses any document that declares a DTD. Hostile input must not be
able to expand entities or make the verifier fetch anything.

Error handling policy:
    decode_token_strict() raises a DecodeError subclass for each failure
    tier. The verifier turns each into an all-false result. No
    partially parsed document is ever returned.
"""

from __future__ import annotations

import base64
import binascii
from typing import Optional, Protocol

from lxml import etree

from icelandauth.app.exceptions import (
    BadEncodingError,
    BadTextError,
    EmptyTokenError,
    MalformedXmlError,
)


# ---------------------------------------------------------------------------
# Namespaces
# ---------------------------------------------------------------------------

SAMLP_NS = "urn:oasis:names:tc:SAML:2.0:protocol"
SAML_NS = "urn:oasis:names:tc:SAML:2.0:assertion"
DS_NS = "http://www.w3.org/2000/09/xmldsig#"

NS = {
    "samlp": SAMLP_NS,
    "saml": SAML_NS,
    "ds": DS_NS,
}


# ---------------------------------------------------------------------------
# Decoder contract
# ---------------------------------------------------------------------------


class TokenDecoder(Protocol):
    """
    Pluggable decoding capability.

    Implementations return the document root or raise DecodeError.
    """

    def decode(self, token: str) -> etree._Element:
        ...


def _build_parser() -> etree.XMLParser:
    # A fresh parser per call; parsers are not shared across threads.
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        dtd_validation=False,
        remove_blank_text=False,
        remove_comments=False,
        huge_tree=False,
    )


def decode_token_strict(token: Optional[str]) -> etree._Element:
    """
    Decode a token into its document root.

    Raises:
        EmptyTokenError: token is None or blank.
        BadEncodingError: invalid base64 alphabet or padding.
        BadTextError: decoded bytes are not UTF-8.
        MalformedXmlError: not well-formed XML, or a DTD is present.
    """
    if not isinstance(token, str) and token is not None:
        raise BadEncodingError(
            f"Token must be text, got {type(token).__name__}"
        )

    if not token or not token.strip():
        raise EmptyTokenError("Null or empty token string")

    # Form posts may wrap the base64 text; whitespace is not significant.
    compact = "".join(token.split())

    try:
        data = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise BadEncodingError(f"Token is not valid base64: {exc}") from exc

    try:
        data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise BadTextError(f"Token is not UTF-8 text: {exc}") from exc

    try:
        root = etree.fromstring(data, parser=_build_parser())
    except (etree.XMLSyntaxError, ValueError) as exc:
        raise MalformedXmlError(f"Token is not well-formed XML: {exc}") from exc

    if root is None:
        raise MalformedXmlError("Token contains no document element")

    if root.getroottree().docinfo.doctype:
        raise MalformedXmlError("Document type declarations are not accepted")

    return root


class Base64XmlTokenDecoder:
    """Default decoder: base64 / UTF-8 / DTD-free XML."""

    def decode(self, token: str) -> etree._Element:
        return decode_token_strict(token)
