"""
api/routes/v1/auth.py -- Registration and login REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create an account; 201, 400 policy, 409 duplicate
  POST /api/v1/auth/login      -- email + password; returns JWT and opens a session

Security:
  [C1] Login goes through AccountDirectory.login() -> authenticate(), which
       equalizes timing. Never inline store lookups + vault.verify here.
  [M5] Cache-Control: no-store on responses that carry credentials.

Both handlers are plain `def`: bcrypt is CPU-bound, so FastAPI runs them on its
thread pool instead of blocking the event loop.

Domain errors (ValidationError, ConflictError, AuthenticationError) propagate
to the handler registered in api/main.py, which renders the error envelope.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import AccountResponse, LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from auth.dependencies import get_directory
from auth.directory import AccountDirectory

logger = logging.getLogger("authguard.api")

# Auth policy:
# - POST /api/v1/auth/register: public
# - POST /api/v1/auth/login:    public
router = APIRouter()


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(
    request: Request,
    body: RegisterRequest,
    directory: AccountDirectory = Depends(get_directory),
) -> RegisterResponse:
    """Create a user account. The password is hashed before it is stored."""
    account = directory.register(
        body.username,
        body.email,
        body.password,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return RegisterResponse(message="User created successfully", user=AccountResponse.from_account(account))


@router.post("/auth/login", response_model=LoginResponse)
def login(
    request: Request,
    body: LoginRequest,
    directory: AccountDirectory = Depends(get_directory),
) -> JSONResponse:
    """Authenticate with email and password; return a bearer token.

    Wrong password and unknown email produce the same 401 ("bad_credentials").
    """
    result = directory.login(
        body.email,
        body.password,
        device_info=request.headers.get("user-agent"),
        ip_address=_client_ip(request),
        location=body.location,
    )
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=result.expires_in,
            session_id=result.session.id,
            user=AccountResponse.from_account(result.account),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
