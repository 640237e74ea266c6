"""
idp_gateway/backend.py

Client for the backend IdP platform.

One named operation (ApiName) maps to one configured path under
IDP_BASE_URL. Every call:
  - is a single synchronous POST (no retries)
  - optionally carries a bearer token from AuthTokenProvider
  - returns the backend's response wrapper as a dict, or None when the
    backend answered with an empty/null body
  - raises BackendTransportError when the backend cannot be reached or
    answers with a non-2xx status
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import httpx

from .envelope import response_time_string
from .errors import BackendTransportError, BindingBackendError

logger = logging.getLogger(__name__)


class ApiName(str, Enum):
    BINDING_OTP = "BINDING_OTP"
    WALLET_BINDING = "WALLET_BINDING"


class AuthTokenProvider:
    """
    Supplies the bearer token for backend calls.

    Order:
      1. a static token (BACKEND_AUTH_TOKEN)
      2. a client-id/secret-key login against the auth manager
      3. nothing (calls go out without Authorization)

    Tokens are fetched per call; nothing is cached between requests.
    """

    def __init__(
        self,
        http: httpx.Client,
        *,
        static_token: str = "",
        auth_url: str = "",
        client_id: str = "",
        secret_key: str = "",
        app_id: str = "",
    ):
        self.http = http
        self.static_token = static_token
        self.auth_url = auth_url
        self.client_id = client_id
        self.secret_key = secret_key
        self.app_id = app_id

    def get_token(self) -> Optional[str]:
        if self.static_token:
            return self.static_token
        if not self.auth_url:
            return None

        payload = {
            "id": "string",
            "version": "v1",
            "requesttime": response_time_string(),
            "metadata": {},
            "request": {
                "clientId": self.client_id,
                "secretKey": self.secret_key,
                "appId": self.app_id,
            },
        }
        try:
            resp = self.http.post(self.auth_url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise BackendTransportError(f"auth manager unavailable ({_host(self.auth_url)}): {exc!s}") from exc

        token = resp.cookies.get("Authorization") or resp.headers.get("Authorization")
        if not token:
            try:
                token = (resp.json().get("response") or {}).get("token")
            except (ValueError, AttributeError):
                token = None
        if not token:
            raise BackendTransportError("auth manager returned no token")
        if not isinstance(token, str):
            raise BackendTransportError("auth manager returned a malformed token")
        return token.removeprefix("Bearer ").strip()


class BackendClient:
    def __init__(
        self,
        http: httpx.Client,
        *,
        base_url: str,
        api_paths: Mapping[ApiName, str],
        token_provider: Optional[AuthTokenProvider] = None,
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.api_paths = dict(api_paths)
        self.token_provider = token_provider

    def url_for(self, api_name: ApiName) -> str:
        try:
            return self.base_url + self.api_paths[api_name]
        except KeyError:
            raise BackendTransportError(f"no backend path configured for {api_name.value}") from None

    def post_api(self, api_name: ApiName, body: Dict[str, Any], *, use_auth: bool = True) -> Optional[Dict[str, Any]]:
        url = self.url_for(api_name)
        headers = {"Content-Type": "application/json"}
        if use_auth and self.token_provider is not None:
            token = self.token_provider.get_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        try:
            resp = self.http.post(url, json=body, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("backend call %s to %s failed: %s", api_name.value, _host(url), exc)
            raise BackendTransportError(f"{api_name.value} backend unavailable ({_host(url)}): {exc!s}") from exc

        if not resp.content.strip():
            return None
        try:
            payload = resp.json()
        except ValueError as exc:
            raise BindingBackendError(f"{api_name.value} backend returned invalid JSON") from exc

        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise BindingBackendError(f"{api_name.value} backend returned a non-object response")
        return payload


def _host(url: str) -> str:
    return urlparse(url).hostname or "backend"
