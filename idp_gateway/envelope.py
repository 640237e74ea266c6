"""
idp_gateway/envelope.py

Uniform response envelope for the wrapped endpoints.

    {"id": ..., "version": ..., "responsetime": ..., "response": ..., "errors": [...]}

Exactly one of `response` / `errors` is non-empty.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .models import ErrorEntry, ResponseEnvelope


def response_time_string(now: Optional[datetime] = None) -> str:
    """UTC timestamp with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def success_envelope(envelope_id: str, version: str, response: Dict[str, Any]) -> ResponseEnvelope:
    if response is None:
        raise ValueError("success envelope requires a response")
    return ResponseEnvelope(
        id=envelope_id,
        version=version,
        response_time=response_time_string(),
        response=response,
        errors=[],
    )


def error_envelope(envelope_id: str, version: str, error_code: str, error_message: str) -> ResponseEnvelope:
    return ResponseEnvelope(
        id=envelope_id,
        version=version,
        response_time=response_time_string(),
        response=None,
        errors=[ErrorEntry(error_code=error_code, error_message=error_message)],
    )
