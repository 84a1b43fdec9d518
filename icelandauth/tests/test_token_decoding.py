import base64

import pytest

from icelandauth.app.checks.token_decoding import (
    SAMLP_NS,
    Base64XmlTokenDecoder,
    decode_token_strict,
)
from icelandauth.app.exceptions import (
    BadEncodingError,
    BadTextError,
    DecodeError,
    EmptyTokenError,
    MalformedXmlError,
)

from icelandauth.tests.fixtures.assertion_factory import build_token


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# ---------------------------------------------------------------------------
# Failure tiers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("token", [None, "", "   ", "\n\t"])
def test_empty_tokens_are_rejected(token):
    with pytest.raises(EmptyTokenError) as exc:
        decode_token_strict(token)

    assert exc.value.finding_id == "TOK-001"


@pytest.mark.parametrize("token", ["not base64!", "abc", "@@@@"])
def test_invalid_base64_is_rejected(token):
    with pytest.raises(BadEncodingError) as exc:
        decode_token_strict(token)

    assert exc.value.finding_id == "TOK-002"


def test_non_text_token_is_rejected():
    with pytest.raises(BadEncodingError):
        decode_token_strict(b"PHJvb3QvPg==")


def test_non_utf8_payload_is_rejected():
    with pytest.raises(BadTextError) as exc:
        decode_token_strict(_b64(b"\xff\xfe\x00<x/>"))

    assert exc.value.finding_id == "TOK-003"


def test_non_xml_payload_is_rejected():
    with pytest.raises(MalformedXmlError) as exc:
        decode_token_strict(_b64(b"hello, not xml"))

    assert exc.value.finding_id == "TOK-004"


def test_truncated_xml_is_rejected():
    with pytest.raises(MalformedXmlError):
        decode_token_strict(_b64(b"<samlp:Response xmlns:samlp='x'><a>"))


def test_doctype_is_rejected():
    payload = (
        b'<?xml version="1.0"?>'
        b'<!DOCTYPE r [<!ENTITY e "boom">]>'
        b"<r>&e;</r>"
    )
    with pytest.raises(MalformedXmlError):
        decode_token_strict(_b64(payload))


def test_external_entity_is_never_resolved():
    payload = (
        b'<?xml version="1.0"?>'
        b'<!DOCTYPE r [<!ENTITY x SYSTEM "file:///etc/passwd">]>'
        b"<r>&x;</r>"
    )
    with pytest.raises(MalformedXmlError):
        decode_token_strict(_b64(payload))


def test_all_failures_share_the_decode_error_base():
    for token in (None, "%%%", _b64(b"\xff"), _b64(b"<a>")):
        with pytest.raises(DecodeError):
            decode_token_strict(token)


# ---------------------------------------------------------------------------
# Success
# ---------------------------------------------------------------------------

def test_signed_response_decodes_to_response_root():
    root = decode_token_strict(build_token())

    assert root.tag == f"{{{SAMLP_NS}}}Response"


def test_wrapped_base64_is_accepted():
    token = build_token()
    wrapped = "\n".join(token[i:i + 76] for i in range(0, len(token), 76))

    assert decode_token_strict(wrapped).tag == f"{{{SAMLP_NS}}}Response"


def test_whitespace_inside_document_is_preserved():
    root = decode_token_strict(_b64(b"<r>\n  <a> x </a>\n</r>"))

    assert root.text == "\n  "
    assert root[0].text == " x "


def test_default_decoder_delegates_to_strict_decoding():
    decoder = Base64XmlTokenDecoder()

    assert decoder.decode(_b64(b"<r/>")).tag == "r"
    with pytest.raises(EmptyTokenError):
        decoder.decode("")
