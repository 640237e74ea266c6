"""
Shared fixtures: generated wallet keys, a stub backend, an in-memory audit sink.
"""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from fastapi.testclient import TestClient

from idp_gateway.binding import BindingConfig, WalletBindingService
from idp_gateway.main import app, get_binding_service
from idp_gateway.validation import RequestValidator

WALLET_BINDING_CODE = "RESIDENT-APP-034"
OTP_BINDING_CODE = "RESIDENT-APP-035"


def public_pem(private_key) -> str:
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


class StubBackend:
    """Records every post_api call and answers with a fixed wrapper or error."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post_api(self, api_name, body, *, use_auth=True):
        self.calls.append({"api_name": api_name, "body": body, "use_auth": use_auth})
        if self.error is not None:
            raise self.error
        return self.response


class RecordingAudit:
    def __init__(self):
        self.events = []

    def append_event(self, event):
        self.events.append(dict(event))
        return None


class FailingAudit:
    def append_event(self, event):
        raise OSError("disk full")


# ============================================================================
# Keys
# ============================================================================


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def ed25519_key():
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture(scope="session")
def rsa_pem(rsa_key):
    return public_pem(rsa_key)


# ============================================================================
# Service
# ============================================================================


@pytest.fixture()
def binding_config():
    return BindingConfig(
        envelope_id="mosip.mimoto.idp",
        envelope_version="v1",
        use_bearer_token=True,
        wallet_binding_error_code=WALLET_BINDING_CODE,
        otp_binding_error_code=OTP_BINDING_CODE,
    )


@pytest.fixture()
def audit():
    return RecordingAudit()


@pytest.fixture()
def backend():
    return StubBackend(response={"id": "backend", "response": {"keyId": "kid-1"}, "errors": []})


@pytest.fixture()
def service(binding_config, backend, audit):
    return WalletBindingService(
        binding_config,
        backend,
        RequestValidator({"EMAIL", "PHONE"}),
        audit=audit,
    )


@pytest.fixture()
def binding_body(rsa_pem):
    return {
        "requestTime": "2024-01-01T00:00:00Z",
        "request": {
            "individualId": "abc123",
            "publicKey": rsa_pem,
            "challengeList": [{"challenge": "x", "format": "raw"}],
            "authFactorType": "WEBAUTHN",
            "format": "jwt",
        },
    }


@pytest.fixture()
def client(service):
    app.dependency_overrides[get_binding_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
