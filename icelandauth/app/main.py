"""
FastAPI entrypoint for the assertion verification service.

This module exposes the verifier over HTTP so it can run beside the
hosting application. It accepts a token and the observed client IP and
returns the LoginResult.

The service issues no sessions, cookies or redirects. Granting a login
from the result is the hosting application's decision.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from icelandauth.app.config import VerificationPolicy
from icelandauth.app.coordinator.verifier import AssertionVerifier
from icelandauth.app.schemas.login_result import LoginResult


class VerifyRequest(BaseModel):
    token: str = Field(..., description="Base64-encoded SAML response")
    ip_address: Optional[str] = Field(
        None,
        description=(
            "Client IP observed by the hosting application. Defaults to "
            "the IP of the calling request."
        ),
    )


# ---------------------------------------------------------------------------
# Application setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="IcelandAuth Verifier",
    description="Verification service for signed eID broker assertions",
    version="0.1.0",
)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

@app.on_event("startup")
def startup_event() -> None:
    """
    Application startup hook.

    The policy is loaded once and is immutable for the lifetime of the
    process. One verifier instance serves every request.
    """
    policy = VerificationPolicy.from_env()

    app.state.policy = policy
    app.state.verifier = AssertionVerifier(policy)


# ---------------------------------------------------------------------------
# API Routes
# ---------------------------------------------------------------------------

@app.post(
    "/verify",
    response_model=LoginResult,
    summary="Verify a signed broker assertion",
)
def verify_assertion(body: VerifyRequest, request: Request) -> LoginResult:
    """
    Verify a token and return every gate's outcome.

    Declared sync so verification runs in the worker thread pool.
    """
    if not body.token.strip():
        raise HTTPException(
            status_code=400,
            detail="Token is empty",
        )

    # ------------------------------------------------------------------
    # Hard resource safety limit (NOT a trust decision)
    # ------------------------------------------------------------------
    policy: VerificationPolicy = app.state.policy

    if len(body.token.encode("utf-8")) > policy.MAX_TOKEN_BYTES:
        raise HTTPException(
            status_code=413,
            detail=(
                f"Token exceeds maximum allowed size of "
                f"{policy.MAX_TOKEN_BYTES} bytes"
            ),
        )

    ip_address = body.ip_address
    if ip_address is None and request.client is not None:
        ip_address = request.client.host

    verifier: AssertionVerifier = app.state.verifier

    return verifier.verify(body.token, ip_address)


# ---------------------------------------------------------------------------
# Health Check
# ---------------------------------------------------------------------------

@app.get(
    "/health",
    summary="Service health check",
)
def health_check() -> JSONResponse:
    """Simple health check endpoint."""
    return JSONResponse(
        content={
            "status": "ok",
            "service": "icelandauth",
        }
    )
