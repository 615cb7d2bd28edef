# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

import pytest
from pydantic import ValidationError

from coreason_oidc.exceptions import InvalidResponseError
from coreason_oidc.models import Claims, RequestSpec, TransportResponse, parse_json_object


class TestRequestSpec:
    def test_header_lookup_case_insensitive(self) -> None:
        request = RequestSpec(uri="https://idp.example/token", header_items=(("Content-Type", "text/plain"),))
        assert request.header("content-type") == "text/plain"
        assert request.header("Authorization") is None
        assert request.header("Authorization", "none") == "none"
        assert request.headers == {"Content-Type": "text/plain"}

    def test_form_decoding(self) -> None:
        request = RequestSpec(uri="https://idp.example/token", body="a=1&b=x+y&c=")
        assert request.form() == [("a", "1"), ("b", "x y"), ("c", "")]

    def test_frozen(self) -> None:
        request = RequestSpec(uri="https://idp.example/token")
        with pytest.raises(ValidationError):
            request.body = "x"  # type: ignore[misc]


class TestTransportResponse:
    @pytest.mark.parametrize("status, ok", [(200, True), (201, True), (299, True), (302, False), (400, False)])
    def test_is_success(self, status: int, ok: bool) -> None:
        assert TransportResponse(status_code=status).is_success is ok

    def test_json(self) -> None:
        assert TransportResponse(status_code=200, content=b'{"a": 1}').json() == {"a": 1}
        with pytest.raises(InvalidResponseError):
            TransportResponse(status_code=200, content=b"<html>").json()


class TestClaims:
    def test_registered_and_extra_claims(self) -> None:
        claims = Claims.model_validate(
            {
                "iss": "https://idp.example",
                "sub": "u1",
                "aud": ["abc", "def"],
                "exp": 2,
                "iat": 1,
                "https://example.com/roles": ["admin"],
            }
        )
        assert claims.audiences == ("abc", "def")
        assert claims["https://example.com/roles"] == ("admin",)
        assert "https://example.com/roles" in claims
        assert "nonce" not in claims
        assert claims.get("nonce") is None
        assert claims.get("missing", "d") == "d"
        with pytest.raises(KeyError):
            claims["nonce"]
        assert set(claims.keys()) == {"iss", "sub", "aud", "exp", "iat", "https://example.com/roles"}

    def test_as_dict_only_present_claims(self) -> None:
        raw = {"iss": "i", "sub": "s", "aud": "a", "exp": 2, "iat": 1, "acr": "urn:mace:x"}
        assert Claims.model_validate(raw).as_dict() == raw

    def test_single_audience(self) -> None:
        claims = Claims.model_validate({"iss": "i", "sub": "s", "aud": "a", "exp": 2, "iat": 1})
        assert claims.audiences == ("a",)

    def test_from_token_keeps_header_copy(self) -> None:
        header = {"alg": "RS256", "kid": "k1"}
        claims = Claims.from_token({"iss": "i", "sub": "s", "aud": "a", "exp": 2, "iat": 1}, header)
        header["kid"] = "changed"
        assert claims.header == {"alg": "RS256", "kid": "k1"}
        claims.header["alg"] = "none"
        assert claims.header["alg"] == "RS256"
        assert "alg" not in claims

    def test_immutable(self) -> None:
        claims = Claims.model_validate({"iss": "i", "sub": "s", "aud": "a", "exp": 2, "iat": 1})
        with pytest.raises(ValidationError):
            claims.sub = "other"  # type: ignore[misc]

    def test_nested_extra_claims_are_frozen(self) -> None:
        payload = {
            "iss": "i",
            "sub": "s",
            "aud": "a",
            "exp": 2,
            "iat": 1,
            "roles": ["user"],
            "address": {"country": "US", "lines": ["1 Main St"]},
        }
        claims = Claims.from_token(payload, {"alg": "RS256", "jwk": {"kty": "RSA"}})

        with pytest.raises(AttributeError):
            claims["roles"].append("admin")
        with pytest.raises(TypeError):
            claims["address"]["country"] = "XX"
        with pytest.raises(AttributeError):
            claims.get("address")["lines"].append("2 Side St")

        payload["roles"].append("admin")  # type: ignore[attr-defined]
        assert claims["roles"] == ("user",)
        assert claims["address"]["country"] == "US"
        assert claims.header["jwk"] == {"kty": "RSA"}

    def test_as_dict_returns_mutable_copy(self) -> None:
        claims = Claims.model_validate(
            {"iss": "i", "sub": "s", "aud": ["a", "b"], "exp": 2, "iat": 1, "address": {"lines": ["x"]}}
        )
        exported = claims.as_dict()
        assert exported["aud"] == ["a", "b"]
        assert exported["address"] == {"lines": ["x"]}

        exported["address"]["lines"].append("y")
        assert claims["address"]["lines"] == ("x",)


def test_parse_json_object() -> None:
    assert parse_json_object(b'{"a": 1}', "Doc") == {"a": 1}
    with pytest.raises(InvalidResponseError, match="Doc must be a JSON object"):
        parse_json_object(b"[1, 2]", "Doc")
    with pytest.raises(InvalidResponseError, match="not valid JSON"):
        parse_json_object(b"{", "Doc")
