"""
idp_gateway/oauth.py

Authorization-code exchange against one external OAuth token endpoint.

Unlike /binding-otp and /wallet-binding, nothing here is wrapped in a
response envelope: the upstream body is handed back as-is. Upstream
failures raise BackendTransportError (answered as HTTP 502 by main.py).
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import urlparse

import httpx

from .errors import BackendTransportError

logger = logging.getLogger(__name__)

TOKEN_REQUEST_FIELDS = ("code", "client_id", "grant_type", "redirect_uri")


class TokenExchangeClient:
    def __init__(self, http: httpx.Client, *, token_url: str):
        self.http = http
        self.token_url = token_url

    def exchange_code(self, params: Mapping[str, Any]) -> Any:
        payload = {field: params.get(field) for field in TOKEN_REQUEST_FIELDS}
        host = urlparse(self.token_url).hostname or "token-endpoint"
        logger.info(
            "token exchange started: client_id=%s grant_type=%s redirect_uri=%s",
            payload["client_id"],
            payload["grant_type"],
            payload["redirect_uri"],
        )

        try:
            resp = self.http.post(self.token_url, json=payload, headers={"Accept": "application/json"})
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("token exchange with %s failed: %s", host, exc)
            raise BackendTransportError(f"token endpoint unavailable ({host}): {exc!s}") from exc

        logger.info("token exchange completed with status %s", resp.status_code)
        try:
            return resp.json()
        except ValueError:
            return resp.text
