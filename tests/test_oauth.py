"""
Tests for the authorization-code exchange client.
"""

import json

import httpx
import pytest

from idp_gateway.errors import BackendTransportError
from idp_gateway.oauth import TokenExchangeClient

TOKEN_URL = "https://github.com/login/oauth/access_token"


def _exchange(handler):
    return TokenExchangeClient(httpx.Client(transport=httpx.MockTransport(handler)), token_url=TOKEN_URL)


def test_forwards_the_four_fields_and_returns_body_unwrapped():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["accept"] = request.headers.get("accept")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"access_token": "gho_x", "token_type": "bearer", "scope": ""})

    body = _exchange(handler).exchange_code(
        {
            "code": "c0de",
            "client_id": "wallet",
            "grant_type": "authorization_code",
            "redirect_uri": "io.mosip.residentapp://oauth",
            "state": "ignored",
        }
    )

    assert body == {"access_token": "gho_x", "token_type": "bearer", "scope": ""}
    assert seen["url"] == TOKEN_URL
    assert seen["accept"] == "application/json"
    assert seen["body"] == {
        "code": "c0de",
        "client_id": "wallet",
        "grant_type": "authorization_code",
        "redirect_uri": "io.mosip.residentapp://oauth",
    }


def test_missing_fields_are_sent_as_null():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"error": "bad_verification_code"})

    body = _exchange(handler).exchange_code({"code": "c0de"})

    assert body == {"error": "bad_verification_code"}
    assert seen["body"]["client_id"] is None


def test_non_json_body_is_returned_as_text():
    body = _exchange(lambda r: httpx.Response(200, text="access_token=gho_x&scope=")).exchange_code({})

    assert body == "access_token=gho_x&scope="


def test_upstream_error_raises_transport_error():
    with pytest.raises(BackendTransportError, match="github.com"):
        _exchange(lambda r: httpx.Response(500)).exchange_code({"code": "c"})
