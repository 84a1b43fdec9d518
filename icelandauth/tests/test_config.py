import pytest
from pydantic import ValidationError

from icelandauth.app.config import (
    DEFAULT_TRUSTED_ISSUER_NAME,
    AttributeNames,
    VerificationPolicy,
)


ENV_VARS = (
    "ICELANDAUTH_EXPECTED_AUDIENCE",
    "ICELANDAUTH_EXPECTED_DESTINATION",
    "ICELANDAUTH_EXPECTED_DESTINATION_ID",
    "ICELANDAUTH_EXPECTED_DELEGATION_ID",
    "ICELANDAUTH_ALLOWED_AUTHENTICATION_METHODS",
    "ICELANDAUTH_VERIFY_IP_ADDRESS",
    "ICELANDAUTH_LOG_RAW_RESPONSE",
    "ICELANDAUTH_TRUSTED_ISSUER_NAME",
    "ICELANDAUTH_TRUSTED_ISSUER_ID",
    "ICELANDAUTH_TRUSTED_SIGNER_ID",
    "ICELANDAUTH_MAX_TOKEN_BYTES",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_from_env_defaults(clean_env):
    clean_env.setenv("ICELANDAUTH_EXPECTED_AUDIENCE", "app.example")

    policy = VerificationPolicy.from_env()

    assert policy.EXPECTED_AUDIENCE == "app.example"
    assert policy.EXPECTED_DESTINATION is None
    assert policy.ALLOWED_AUTHENTICATION_METHODS == frozenset()
    assert policy.VERIFY_IP_ADDRESS is True
    assert policy.LOG_RAW_RESPONSE is False
    assert policy.TRUSTED_ISSUER_NAME == DEFAULT_TRUSTED_ISSUER_NAME
    assert policy.MAX_TOKEN_BYTES == 256 * 1024


def test_from_env_reads_every_setting(clean_env):
    clean_env.setenv("ICELANDAUTH_EXPECTED_AUDIENCE", " app.example ")
    clean_env.setenv("ICELANDAUTH_EXPECTED_DESTINATION", "https://app.example/login")
    clean_env.setenv("ICELANDAUTH_EXPECTED_DESTINATION_ID", "5208130550")
    clean_env.setenv("ICELANDAUTH_EXPECTED_DELEGATION_ID", "")
    clean_env.setenv("ICELANDAUTH_ALLOWED_AUTHENTICATION_METHODS", " eID , Farsímaskilríki,")
    clean_env.setenv("ICELANDAUTH_VERIFY_IP_ADDRESS", "false")
    clean_env.setenv("ICELANDAUTH_LOG_RAW_RESPONSE", "yes")
    clean_env.setenv("ICELANDAUTH_TRUSTED_SIGNER_ID", "1234567890")
    clean_env.setenv("ICELANDAUTH_MAX_TOKEN_BYTES", "1024")

    policy = VerificationPolicy.from_env()

    assert policy.EXPECTED_AUDIENCE == "app.example"
    assert policy.EXPECTED_DESTINATION == "https://app.example/login"
    assert policy.EXPECTED_DESTINATION_ID == "5208130550"
    assert policy.EXPECTED_DELEGATION_ID is None
    assert policy.ALLOWED_AUTHENTICATION_METHODS == {"eID", "Farsímaskilríki"}
    assert policy.VERIFY_IP_ADDRESS is False
    assert policy.LOG_RAW_RESPONSE is True
    assert policy.TRUSTED_SIGNER_ID == "1234567890"
    assert policy.MAX_TOKEN_BYTES == 1024


def test_missing_audience_is_rejected(clean_env):
    with pytest.raises(ValidationError):
        VerificationPolicy.from_env()


@pytest.mark.parametrize(
    "field", ["TRUSTED_ISSUER_NAME", "TRUSTED_ISSUER_ID", "TRUSTED_SIGNER_ID"]
)
def test_empty_trust_anchor_is_rejected(field):
    with pytest.raises(ValidationError):
        VerificationPolicy(EXPECTED_AUDIENCE="app.example", **{field: ""})


def test_non_positive_token_limit_is_rejected():
    with pytest.raises(ValidationError):
        VerificationPolicy(EXPECTED_AUDIENCE="app.example", MAX_TOKEN_BYTES=0)


def test_methods_accept_any_iterable():
    policy = VerificationPolicy(
        EXPECTED_AUDIENCE="app.example",
        ALLOWED_AUTHENTICATION_METHODS=["eID", " ", "eID"],
    )

    assert policy.ALLOWED_AUTHENTICATION_METHODS == {"eID"}


def test_policy_is_immutable():
    policy = VerificationPolicy(EXPECTED_AUDIENCE="app.example")

    with pytest.raises(ValidationError):
        policy.EXPECTED_AUDIENCE = "other.example"


def test_attribute_names_default_to_broker_names():
    names = AttributeNames()

    assert names.SUBJECT_ID == "UserSSN"
    assert names.IP_ADDRESS == "IPAddress"
    assert names.DESTINATION_ID == "DestinationSSN"
    assert names.DELEGATION_ID == "AuthID"
