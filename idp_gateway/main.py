# idp_gateway/main.py
#
# -----------------------------------------------------------------------------
# Architectural notes (high level)
# -----------------------------------------------------------------------------
# This file is "thin" orchestration glue:
#   - It wires HTTP endpoints to the services implemented elsewhere.
#   - It MUST NOT implement key handling itself (that lives in jose.py).
#   - It holds no per-request state; the only long-lived object is the HTTP
#     client created in the lifespan and shared by every outbound call.
#
# Key modules / responsibilities:
#   - config.py      : environment-driven settings
#   - binding.py     : wallet-binding handshake + binding OTP (envelopes)
#   - backend.py     : backend IdP client + bearer token provider
#   - jose.py        : public key -> JWK, thumbprint/kid enrichment
#   - oauth.py       : authorization-code exchange (raw pass-through)
#   - validation.py  : checks that run before any outbound call
#   - audit.py       : append-only hash-chained audit log
#
# Status codes:
#   - /binding-otp, /wallet-binding : 200 once the request is well formed;
#     failures travel in the envelope's `errors`.
#   - malformed input / unknown OTP channel : 400, no envelope.
#   - /getToken : 200 with the upstream body unwrapped; 502 when the token
#     endpoint cannot be used. This endpoint is deliberately NOT enveloped.
# -----------------------------------------------------------------------------

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Form, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from .audit import AuditLog
from .backend import ApiName, AuthTokenProvider, BackendClient
from .binding import BindingConfig, WalletBindingService
from .config import settings
from .errors import BackendTransportError, InputValidationError
from .models import BindingOtpRequest, WalletBindingRequest
from .oauth import TokenExchangeClient
from .validation import RequestValidator

validator = RequestValidator(settings.otp_channels)


# -----------------------------------------------------------------------------
# Wiring
# -----------------------------------------------------------------------------
def build_binding_service(http: httpx.Client) -> WalletBindingService:
    token_provider = AuthTokenProvider(
        http,
        static_token=settings.BACKEND_AUTH_TOKEN,
        auth_url=settings.AUTH_MANAGER_URL,
        client_id=settings.AUTH_CLIENT_ID,
        secret_key=settings.AUTH_SECRET_KEY,
        app_id=settings.AUTH_APP_ID,
    )
    backend = BackendClient(
        http,
        base_url=settings.IDP_BASE_URL,
        api_paths={
            ApiName.BINDING_OTP: settings.BINDING_OTP_PATH,
            ApiName.WALLET_BINDING: settings.WALLET_BINDING_PATH,
        },
        token_provider=token_provider,
    )
    return WalletBindingService(
        BindingConfig.from_settings(settings),
        backend,
        validator,
        audit=AuditLog(settings.AUDIT_DIR, enabled=settings.AUDIT_ENABLED),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # one client for the process
    http = httpx.Client(timeout=settings.BACKEND_TIMEOUT_SECONDS)
    app.state.binding_service = build_binding_service(http)
    app.state.token_exchange = TokenExchangeClient(http, token_url=settings.OAUTH_TOKEN_URL)
    try:
        yield
    finally:
        http.close()


app = FastAPI(
    title="IdP Wallet Binding Gateway",
    version="0.1.0",
    lifespan=lifespan,
)


def get_binding_service(request: Request) -> WalletBindingService:
    return request.app.state.binding_service


def get_token_exchange(request: Request) -> TokenExchangeClient:
    return request.app.state.token_exchange


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# -----------------------------------------------------------------------------
# Error handlers
# -----------------------------------------------------------------------------
def _input_error_response(exc: InputValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": exc.error, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def structural_error_handler(request: Request, exc: RequestValidationError):
    try:
        validator.validate_structure(exc.errors())
    except InputValidationError as e:
        return _input_error_response(e)
    return await request_validation_exception_handler(request, exc)


@app.exception_handler(InputValidationError)
async def input_error_handler(request: Request, exc: InputValidationError):
    return _input_error_response(exc)


@app.exception_handler(BackendTransportError)
async def transport_error_handler(request: Request, exc: BackendTransportError):
    # Only reachable from /getToken; the enveloped endpoints catch it themselves.
    return JSONResponse(status_code=502, content={"detail": exc.message})


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------
@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok", "service": settings.SERVICE_NAME}


@app.post("/binding-otp")
def binding_otp(
    body: BindingOtpRequest,
    request: Request,
    service: WalletBindingService = Depends(get_binding_service),
):
    envelope = service.request_otp(
        body,
        request_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return JSONResponse(status_code=200, content=envelope.to_wire())


@app.post("/wallet-binding")
def wallet_binding(
    body: WalletBindingRequest,
    request: Request,
    service: WalletBindingService = Depends(get_binding_service),
):
    envelope = service.bind(
        body,
        request_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return JSONResponse(status_code=200, content=envelope.to_wire())


@app.post("/getToken")
def get_token(
    code: Optional[str] = Form(default=None),
    client_id: Optional[str] = Form(default=None),
    grant_type: Optional[str] = Form(default=None),
    redirect_uri: Optional[str] = Form(default=None),
    exchange: TokenExchangeClient = Depends(get_token_exchange),
):
    body = exchange.exchange_code(
        {
            "code": code,
            "client_id": client_id,
            "grant_type": grant_type,
            "redirect_uri": redirect_uri,
        }
    )
    if isinstance(body, str):
        return PlainTextResponse(status_code=200, content=body)
    return JSONResponse(status_code=200, content=body)
