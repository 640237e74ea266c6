"""
idp_gateway/errors.py

Error kinds raised by the gateway.

Two families:
  - InputValidationError: the caller sent a request we refuse before any
    outbound call. Surfaces as HTTP 400 (framework level, no envelope).
  - everything else: failures during or after an outbound call. The
    orchestrator maps them to an error envelope (HTTP 200).
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class; `message` is what ends up in an error envelope."""

    default_message = "gateway error"

    def __init__(self, message: str | None = None):
        self.message = (message or "").strip() or self.default_message
        super().__init__(self.message)


class InputValidationError(GatewayError):
    error = "invalid_input"
    default_message = "invalid request"


class StructuralValidationError(InputValidationError):
    default_message = "request is missing required fields"


class UnsupportedChannelError(InputValidationError):
    error = "invalid_otp_channel"
    default_message = "unsupported OTP channel"


class KeyConversionError(GatewayError):
    default_message = "public key cannot be converted to JWK"


class KeyEnrichmentError(GatewayError):
    default_message = "backend response cannot be enriched with key identifiers"


class BindingBackendError(GatewayError):
    default_message = "backend returned no usable response"


class BackendTransportError(GatewayError):
    default_message = "backend is unreachable"
