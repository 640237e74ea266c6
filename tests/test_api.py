"""
HTTP-level tests: status codes, wire shape of envelopes, input rejection.
"""

import re

import httpx
from fastapi.testclient import TestClient

from idp_gateway.binding import WalletBindingService
from idp_gateway.jose import derive_key_ids, public_key_to_jwk
from idp_gateway.main import app, get_token_exchange
from idp_gateway.oauth import TokenExchangeClient
from tests.conftest import WALLET_BINDING_CODE

RESPONSE_TIME = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


class TestWalletBinding:
    def test_success_envelope(self, client, binding_body, rsa_pem):
        resp = client.post("/wallet-binding", json=binding_body)

        assert resp.status_code == 200
        data = resp.json()
        thumbprint, kid = derive_key_ids(public_key_to_jwk(rsa_pem))
        assert data["response"] == {"keyId": "kid-1", "thumbprint": thumbprint, "kid": kid}
        assert data["errors"] == []
        assert data["id"] == "mosip.mimoto.idp"
        assert RESPONSE_TIME.match(data["responsetime"])

    def test_malformed_key_still_returns_200(self, client, binding_body, backend):
        binding_body["request"]["publicKey"] = "-----BEGIN PUBLIC KEY-----\nnope\n-----END PUBLIC KEY-----"

        resp = client.post("/wallet-binding", json=binding_body)

        assert resp.status_code == 200
        data = resp.json()
        assert data["response"] is None
        assert len(data["errors"]) == 1
        assert data["errors"][0]["errorCode"] == WALLET_BINDING_CODE
        assert data["errors"][0]["errorMessage"]
        assert backend.calls == []

    def test_backend_null_returns_error_envelope(self, client, binding_body, backend):
        backend.response = None

        data = client.post("/wallet-binding", json=binding_body).json()

        assert data["response"] is None
        assert data["errors"][0]["errorCode"] == WALLET_BINDING_CODE

    def test_malformed_backend_errors_still_return_200(self, client, binding_body, backend):
        backend.response = {"response": None, "errors": {"errorCode": "IDA-001", "errorMessage": "x"}}

        resp = client.post("/wallet-binding", json=binding_body)

        assert resp.status_code == 200
        assert resp.json()["response"] is None
        assert resp.json()["errors"][0]["errorCode"] == WALLET_BINDING_CODE

    def test_missing_individual_id_is_rejected_before_backend(self, client, binding_body, backend):
        del binding_body["request"]["individualId"]

        resp = client.post("/wallet-binding", json=binding_body)

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"
        assert "individualId" in resp.json()["message"]
        assert backend.calls == []


class TestBindingOtp:
    def test_success(self, client, backend):
        backend.response = {"response": {"transactionId": "t-1"}, "errors": []}

        resp = client.post(
            "/binding-otp",
            json={"requestTime": "2024-01-01T00:00:00.000Z", "request": {"individualId": "abc123", "otpChannels": ["EMAIL"]}},
        )

        assert resp.status_code == 200
        assert resp.json()["response"] == {"transactionId": "t-1"}
        assert resp.json()["errors"] == []

    def test_unknown_channel_is_400_without_backend_call(self, client, backend):
        resp = client.post(
            "/binding-otp",
            json={"requestTime": "t", "request": {"individualId": "abc123", "otpChannels": ["FAX"]}},
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_otp_channel"
        assert backend.calls == []

    def test_empty_channel_list_is_structural_error(self, client, backend):
        resp = client.post(
            "/binding-otp",
            json={"requestTime": "t", "request": {"individualId": "abc123", "otpChannels": []}},
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"
        assert backend.calls == []


class TestGetToken:
    def test_form_fields_are_forwarded_and_body_returned(self):
        seen = {}

        def handler(request):
            seen["body"] = request.content
            return httpx.Response(200, json={"access_token": "gho_x"})

        exchange = TokenExchangeClient(
            httpx.Client(transport=httpx.MockTransport(handler)),
            token_url="https://github.com/login/oauth/access_token",
        )
        app.dependency_overrides[get_token_exchange] = lambda: exchange
        try:
            resp = TestClient(app).post(
                "/getToken",
                data={"code": "c0de", "client_id": "wallet", "grant_type": "authorization_code", "redirect_uri": "app://cb"},
            )
        finally:
            app.dependency_overrides.clear()

        assert resp.status_code == 200
        assert resp.json() == {"access_token": "gho_x"}
        assert b'"code":"c0de"' in seen["body"].replace(b" ", b"")

    def test_upstream_failure_is_502(self):
        exchange = TokenExchangeClient(
            httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
            token_url="https://github.com/login/oauth/access_token",
        )
        app.dependency_overrides[get_token_exchange] = lambda: exchange
        try:
            resp = TestClient(app).post("/getToken", data={"code": "c0de"})
        finally:
            app.dependency_overrides.clear()

        assert resp.status_code == 502
        assert "token endpoint unavailable" in resp.json()["detail"]


def test_lifespan_wires_services():
    with TestClient(app) as c:
        assert c.get("/healthz").json()["status"] == "ok"
        assert isinstance(app.state.binding_service, WalletBindingService)
        assert isinstance(app.state.token_exchange, TokenExchangeClient)
