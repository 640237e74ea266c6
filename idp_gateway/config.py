from urllib.parse import urlparse, urlunparse

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SERVICE_NAME: str = "idp-gateway"

    # response envelope identity
    ENVELOPE_ID: str = "mosip.mimoto.idp"
    ENVELOPE_VERSION: str = "v1"

    # domain error codes carried in error envelopes
    WALLET_BINDING_ERROR_CODE: str = "RESIDENT-APP-034"
    OTP_BINDING_ERROR_CODE: str = "RESIDENT-APP-035"

    # backend IdP platform
    IDP_BASE_URL: str = "http://localhost:8088"
    BINDING_OTP_PATH: str = "/v1/esignet/binding/binding-otp"
    WALLET_BINDING_PATH: str = "/v1/esignet/binding/wallet-binding"
    BACKEND_TIMEOUT_SECONDS: float = 30.0
    USE_BEARER_TOKEN: bool = True

    # bearer token for backend calls: a static token, or an auth manager login
    BACKEND_AUTH_TOKEN: str = ""
    AUTH_MANAGER_URL: str = ""
    AUTH_CLIENT_ID: str = ""
    AUTH_SECRET_KEY: str = ""
    AUTH_APP_ID: str = "resident"

    # external OAuth token endpoint used by /getToken
    OAUTH_TOKEN_URL: str = "https://github.com/login/oauth/access_token"

    # allowed OTP notification channels (comma separated)
    OTP_CHANNELS: str = "EMAIL,PHONE"

    # structured audit log
    AUDIT_ENABLED: bool = True
    AUDIT_DIR: str = "audit"

    class Config:
        env_file = ".env"

    @field_validator("IDP_BASE_URL")
    @classmethod
    def normalize_base_url(cls, v: str) -> str:
        """
        IDP_BASE_URL must be an absolute http(s) URL.

        Normalization:
          - strip whitespace
          - strip trailing slash
          - require http/https
          - require hostname
          - lowercase hostname

        A path prefix is preserved (e.g. behind an ingress); query and
        fragment are dropped.
        """
        v = (v or "").strip().rstrip("/")
        p = urlparse(v)

        if p.scheme not in ("http", "https"):
            raise ValueError("IDP_BASE_URL must start with http:// or https://")

        if not p.hostname:
            raise ValueError("IDP_BASE_URL must include a hostname")

        netloc = p.hostname.lower()
        if p.port:
            netloc = f"{netloc}:{p.port}"

        return urlunparse((p.scheme, netloc, p.path.rstrip("/"), "", "", ""))

    @field_validator("BINDING_OTP_PATH", "WALLET_BINDING_PATH")
    @classmethod
    def normalize_path(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("backend path cannot be empty")
        if "://" in v:
            raise ValueError("backend path must be relative to IDP_BASE_URL")
        return "/" + v.lstrip("/")

    @field_validator("OAUTH_TOKEN_URL", "AUTH_MANAGER_URL")
    @classmethod
    def normalize_url(cls, v: str) -> str:
        # AUTH_MANAGER_URL may stay empty (no auth manager login)
        v = (v or "").strip()
        if not v:
            return v
        if urlparse(v).scheme not in ("http", "https"):
            raise ValueError("URL must start with http:// or https://")
        return v

    @field_validator("USE_BEARER_TOKEN", "AUDIT_ENABLED", mode="before")
    @classmethod
    def normalize_flag(cls, v):
        # accept 0/1, "true"/"false" from env consistently
        if isinstance(v, bool):
            return v
        if isinstance(v, (int,)):
            return bool(v)
        if isinstance(v, str):
            return v.strip().lower() not in ("0", "false", "no", "off", "")
        return True

    @field_validator("OTP_CHANNELS")
    @classmethod
    def normalize_channels(cls, v: str) -> str:
        parts = [p.strip().upper() for p in (v or "").split(",") if p.strip()]
        if not parts:
            raise ValueError("OTP_CHANNELS must list at least one channel")
        return ",".join(parts)

    @property
    def otp_channels(self) -> frozenset[str]:
        return frozenset(self.OTP_CHANNELS.split(","))


settings = Settings()

# -----------------------------------------------------------------------------
# Cross-field validation (auth manager login)
# -----------------------------------------------------------------------------
# An auth manager login needs a complete client credential; a half-configured
# one would only surface as a failed backend call per request.
if settings.AUTH_MANAGER_URL and not settings.BACKEND_AUTH_TOKEN:
    missing = [
        key
        for key, value in (
            ("AUTH_CLIENT_ID", settings.AUTH_CLIENT_ID),
            ("AUTH_SECRET_KEY", settings.AUTH_SECRET_KEY),
        )
        if not value
    ]
    if missing:
        # Fail fast at import time
        raise RuntimeError(f"AUTH_MANAGER_URL is set but missing: {', '.join(missing)}")
