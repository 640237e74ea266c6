"""
idp_gateway/binding.py

Wallet-binding handshake and binding OTP request.

bind():
  1. public key -> JWK                          (KeyConversionError)
  2. external request -> internal request        (publicKey := JWK)
  3. POST WALLET_BINDING to the backend          (BackendTransportError / BindingBackendError)
  4. add thumbprint + kid derived from the JWK   (KeyEnrichmentError)
  5. success envelope

Every failure in steps 1-4, taxonomy or not, becomes an error envelope carrying
the operation's domain error code. The HTTP status stays 200 either way; callers
read the envelope's `errors` to tell success from failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from .audit import build_common
from .backend import ApiName, BackendClient
from .envelope import error_envelope, success_envelope
from .errors import (
    BackendTransportError,
    BindingBackendError,
    GatewayError,
    KeyConversionError,
    KeyEnrichmentError,
    UnsupportedChannelError,
)
from .jose import THUMBPRINT_FIELD, add_thumbprint_and_key_id, public_key_to_jwk
from .models import (
    BindingOtpRequest,
    ResponseEnvelope,
    WalletBindingInternalInnerRequest,
    WalletBindingInternalRequest,
    WalletBindingRequest,
)
from .validation import RequestValidator

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def append_event(self, event: Dict[str, Any]) -> Optional[str]: ...


@dataclass(frozen=True)
class BindingConfig:
    envelope_id: str
    envelope_version: str
    use_bearer_token: bool
    wallet_binding_error_code: str
    otp_binding_error_code: str

    @classmethod
    def from_settings(cls, settings) -> "BindingConfig":
        return cls(
            envelope_id=settings.ENVELOPE_ID,
            envelope_version=settings.ENVELOPE_VERSION,
            use_bearer_token=settings.USE_BEARER_TOKEN,
            wallet_binding_error_code=settings.WALLET_BINDING_ERROR_CODE,
            otp_binding_error_code=settings.OTP_BINDING_ERROR_CODE,
        )


def build_internal_request(request: WalletBindingRequest, jwk: Dict[str, Any]) -> WalletBindingInternalRequest:
    inner = request.request
    return WalletBindingInternalRequest(
        request_time=request.request_time,
        request=WalletBindingInternalInnerRequest(
            individual_id=inner.individual_id,
            challenge_list=inner.challenge_list,
            public_key=jwk,
            auth_factor_type=inner.auth_factor_type,
            format=inner.format,
        ),
    )


def unwrap_backend_response(api_name: ApiName, wrapper: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return the backend wrapper's `response` object or raise BindingBackendError."""
    if wrapper is None:
        raise BindingBackendError(f"{api_name.value} backend returned no response")

    errors = wrapper.get("errors") or []
    if errors and not isinstance(errors, list):
        raise BindingBackendError(f"{api_name.value} backend returned malformed errors")
    if errors:
        first = errors[0] if isinstance(errors[0], dict) else {}
        message = first.get("errorMessage") or first.get("errorCode") or "backend reported an error"
        raise BindingBackendError(str(message))

    payload = wrapper.get("response")
    if not isinstance(payload, dict):
        raise BindingBackendError(f"{api_name.value} backend returned no response object")
    return payload


def failure_reason(exc: Exception) -> str:
    """Audit reason for a failure mapped to an error envelope."""
    match exc:
        case KeyConversionError():
            return "key_conversion_failed"
        case BackendTransportError():
            return "backend_unreachable"
        case BindingBackendError():
            return "backend_no_response"
        case KeyEnrichmentError():
            return "key_enrichment_failed"
        case GatewayError():
            return "gateway_error"
        case _:
            return "unexpected_error"


class WalletBindingService:
    def __init__(
        self,
        config: BindingConfig,
        backend: BackendClient,
        validator: RequestValidator,
        audit: Optional[EventSink] = None,
    ):
        self.config = config
        self.backend = backend
        self.validator = validator
        self.audit = audit

    # -------------------------------------------------------------------------
    # helpers
    # -------------------------------------------------------------------------
    def _record(self, event: Dict[str, Any]) -> None:
        if self.audit is None:
            return
        try:
            self.audit.append_event(event)
        except OSError:
            logger.exception("audit write failed for %s (%s)", event.get("operation"), event.get("result"))

    def _failure(self, exc: Exception, *, common: Dict[str, Any], error_code: str) -> ResponseEnvelope:
        reason = failure_reason(exc)
        if isinstance(exc, GatewayError):
            message = exc.message
            logger.warning(
                "%s failed for individual id %s (%s): %s",
                common.get("operation"),
                common.get("individual_id"),
                reason,
                message,
            )
        else:
            message = str(exc).strip() or type(exc).__name__
            logger.exception(
                "%s failed unexpectedly for individual id %s",
                common.get("operation"),
                common.get("individual_id"),
            )
        self._record({**common, "result": "error", "reason": reason, "detail": message[:200]})
        return error_envelope(self.config.envelope_id, self.config.envelope_version, error_code, message)

    # -------------------------------------------------------------------------
    # operations
    # -------------------------------------------------------------------------
    def bind(
        self,
        request: WalletBindingRequest,
        *,
        request_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ResponseEnvelope:
        inner = request.request
        common = build_common(
            operation="wallet_binding",
            individual_id=inner.individual_id,
            public_key=inner.public_key,
            request_ip=request_ip,
            user_agent=user_agent,
        )
        self._record({**common, "result": "received", "auth_factor_type": inner.auth_factor_type})

        try:
            jwk = public_key_to_jwk(inner.public_key)
            internal = build_internal_request(request, jwk)
            wrapper = self.backend.post_api(
                ApiName.WALLET_BINDING,
                internal.to_wire(),
                use_auth=self.config.use_bearer_token,
            )
            payload = unwrap_backend_response(ApiName.WALLET_BINDING, wrapper)
            enriched = add_thumbprint_and_key_id(payload, jwk)
        except Exception as exc:
            return self._failure(exc, common=common, error_code=self.config.wallet_binding_error_code)

        self._record({**common, "result": "approved", "reason": "key_bound", "jwk_thumbprint": enriched[THUMBPRINT_FIELD]})
        return success_envelope(self.config.envelope_id, self.config.envelope_version, enriched)

    def request_otp(
        self,
        request: BindingOtpRequest,
        *,
        request_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ResponseEnvelope:
        inner = request.request
        common = build_common(
            operation="binding_otp",
            individual_id=inner.individual_id,
            request_ip=request_ip,
            user_agent=user_agent,
        )
        self._record({**common, "result": "received", "otp_channels": list(inner.otp_channels)})

        # Refused before any outbound call; surfaces as HTTP 400, not an envelope.
        try:
            self.validator.validate_notification_channels(inner.otp_channels)
        except UnsupportedChannelError as exc:
            self._record({**common, "result": "denied", "reason": "unsupported_channel", "detail": exc.message[:200]})
            raise

        try:
            wrapper = self.backend.post_api(
                ApiName.BINDING_OTP,
                request.to_wire(),
                use_auth=self.config.use_bearer_token,
            )
            payload = unwrap_backend_response(ApiName.BINDING_OTP, wrapper)
        except Exception as exc:
            return self._failure(exc, common=common, error_code=self.config.otp_binding_error_code)

        self._record({**common, "result": "approved", "reason": "otp_requested"})
        return success_envelope(self.config.envelope_id, self.config.envelope_version, payload)
