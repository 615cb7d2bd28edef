# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

import threading
from typing import Any
from unittest.mock import Mock

import pytest

from coreason_oidc.client_information import ClientInformation
from coreason_oidc.exceptions import (
    ClaimValidationError,
    ConfigurationError,
    InvalidResponseError,
    MissingIdTokenError,
    SignatureVerificationError,
    TokenEndpointError,
)
from coreason_oidc.jose_backend import AuthlibSignatureVerifier
from coreason_oidc.keys import KeySet, StaticKeyResolver
from coreason_oidc.metadata import ProviderMetadata
from coreason_oidc.tokens import TokenSet
from coreason_oidc.validator import IdTokenVerifier, VerificationState

from helpers import NOW, TokenFactory


class TestTokenSetParsing:
    def test_typed_fields(self, provider_metadata: ProviderMetadata) -> None:
        token_set = TokenSet(
            {
                "access_token": "at",
                "token_type": "Bearer",
                "expires_in": 3600,
                "refresh_token": "rt",
                "scope": "openid profile",
                "session_state": "s1",
            },
            provider_metadata,
            received_at=NOW,
        )
        assert token_set.access_token == "at"
        assert token_set.token_type == "Bearer"
        assert token_set.expires_in == 3600
        assert token_set.expires_at == NOW + 3600
        assert token_set.refresh_token == "rt"
        assert token_set.id_token is None
        assert token_set.scope() == ["openid", "profile"]
        assert token_set.values() == {"token_type": "Bearer", "session_state": "s1"}
        assert token_set.values("session_state") == "s1"
        assert token_set.values("missing", "d") == "d"
        assert token_set.has("refresh_token")
        assert not token_set.has("id_token")
        assert token_set.verification_state is VerificationState.UNVERIFIED

    @pytest.mark.parametrize("body", [{}, {"access_token": ""}, {"access_token": 5}, {"token_type": "Bearer"}])
    def test_access_token_required(self, provider_metadata: ProviderMetadata, body: dict[str, Any]) -> None:
        with pytest.raises(InvalidResponseError, match="access_token"):
            TokenSet(body, provider_metadata)

    @pytest.mark.parametrize(
        "body",
        [
            {"access_token": "at", "id_token": 1},
            {"access_token": "at", "refresh_token": ["r"]},
            {"access_token": "at", "scope": 7},
            {"access_token": "at", "scope": ["openid", 1]},
            {"access_token": "at", "expires_in": "soon"},
            {"access_token": "at", "expires_in": True},
            {"access_token": "at", "expires_in": 1.5},
        ],
    )
    def test_wrong_field_types(self, provider_metadata: ProviderMetadata, body: dict[str, Any]) -> None:
        with pytest.raises(InvalidResponseError):
            TokenSet(body, provider_metadata)

    @pytest.mark.parametrize(
        "scope, expected",
        [
            (None, None),
            ("openid", ["openid"]),
            ("openid  email", ["openid", "email"]),
            ("", []),
            (["openid", "email"], ["openid", "email"]),
        ],
    )
    def test_scope(self, provider_metadata: ProviderMetadata, scope: Any, expected: list[str] | None) -> None:
        body: dict[str, Any] = {"access_token": "at"}
        if scope is not None:
            body["scope"] = scope
        assert TokenSet(body, provider_metadata).scope() == expected

    def test_expires_in_string(self, provider_metadata: ProviderMetadata) -> None:
        assert TokenSet({"access_token": "at", "expires_in": "60"}, provider_metadata).expires_in == 60

    def test_is_expired(self, provider_metadata: ProviderMetadata) -> None:
        token_set = TokenSet({"access_token": "at", "expires_in": 60}, provider_metadata, received_at=NOW)
        assert not token_set.is_expired(now=NOW + 59)
        assert token_set.is_expired(now=NOW + 60)
        assert token_set.is_expired(leeway=10, now=NOW + 50)
        assert not TokenSet({"access_token": "at"}, provider_metadata).is_expired()

    @pytest.mark.parametrize("key", TokenSet.DEFAULT_KEYS)
    def test_values_rejects_default_keys(self, provider_metadata: ProviderMetadata, key: str) -> None:
        with pytest.raises(ValueError):
            TokenSet({"access_token": "at"}, provider_metadata).values(key)

    def test_as_dict_is_copy(self, provider_metadata: ProviderMetadata) -> None:
        token_set = TokenSet({"access_token": "at"}, provider_metadata)
        token_set.as_dict()["access_token"] = "changed"
        assert token_set.access_token == "at"

    def test_from_response(self, provider_metadata: ProviderMetadata) -> None:
        token_set = TokenSet.from_response(b'{"access_token": "at", "token_type": "Bearer"}', provider_metadata)
        assert token_set.access_token == "at"

    def test_from_response_error_object(self, provider_metadata: ProviderMetadata) -> None:
        body = b'{"error": "invalid_grant", "error_description": "Code expired"}'
        with pytest.raises(TokenEndpointError) as exc:
            TokenSet.from_response(body, provider_metadata, status_code=400)
        assert exc.value.error == "invalid_grant"
        assert exc.value.error_description == "Code expired"
        assert exc.value.status_code == 400

    @pytest.mark.parametrize("body", [b"not json", b"[]", b'"at"'])
    def test_from_response_invalid(self, provider_metadata: ProviderMetadata, body: bytes) -> None:
        with pytest.raises(InvalidResponseError):
            TokenSet.from_response(body, provider_metadata)


class TestIdTokenMemoization:
    @pytest.fixture
    def backend(self) -> Mock:
        return Mock(wraps=AuthlibSignatureVerifier())

    @pytest.fixture
    def counting_verifier(
        self,
        provider_metadata: ProviderMetadata,
        client_information: ClientInformation,
        key_set: KeySet,
        backend: Mock,
    ) -> IdTokenVerifier:
        return IdTokenVerifier(
            provider_metadata,
            client_information,
            StaticKeyResolver(key_set),
            signature_verifier=backend,
            clock=lambda: NOW,
        )

    def _token_set(self, metadata: ProviderMetadata, verifier: IdTokenVerifier, id_token: str | None) -> TokenSet:
        body: dict[str, Any] = {"access_token": "at"}
        if id_token is not None:
            body["id_token"] = id_token
        return TokenSet(body, metadata, verifier)

    def test_verification_runs_once(
        self,
        provider_metadata: ProviderMetadata,
        counting_verifier: IdTokenVerifier,
        backend: Mock,
        make_token: TokenFactory,
    ) -> None:
        token_set = self._token_set(provider_metadata, counting_verifier, make_token())

        first = token_set.verify_id_token()
        second = token_set.verify_id_token()

        assert first is second
        assert backend.verify.call_count == 1
        assert token_set.verification_state is VerificationState.CLAIMS_CHECKED

    def test_memoized_path_checks_nonce_and_mandatory_claims(
        self, provider_metadata: ProviderMetadata, counting_verifier: IdTokenVerifier, make_token: TokenFactory
    ) -> None:
        token_set = self._token_set(provider_metadata, counting_verifier, make_token())
        token_set.verify_id_token(nonce="n-0S6_WzA2Mj")

        with pytest.raises(ClaimValidationError) as exc:
            token_set.verify_id_token(nonce="different")
        assert exc.value.claim == "nonce"

        with pytest.raises(ClaimValidationError) as exc:
            token_set.verify_id_token(mandatory_claims=("acr",))
        assert exc.value.claim == "acr"

        assert token_set.verify_id_token(mandatory_claims=("nonce",)).sub == "user-123"

    def test_memoized_claims_cannot_be_altered_by_callers(
        self, provider_metadata: ProviderMetadata, counting_verifier: IdTokenVerifier, make_token: TokenFactory
    ) -> None:
        token = make_token({"roles": ["user"], "address": {"c": "US"}})
        token_set = self._token_set(provider_metadata, counting_verifier, token)
        claims = token_set.verify_id_token()

        with pytest.raises(AttributeError):
            claims["roles"].append("admin")
        with pytest.raises(TypeError):
            claims["address"]["c"] = "XX"
        claims.as_dict()["roles"].append("admin")

        again = token_set.verify_id_token()
        assert again["roles"] == ("user",)
        assert again["address"] == {"c": "US"}

    def test_concurrent_callers_share_one_verification(
        self,
        provider_metadata: ProviderMetadata,
        counting_verifier: IdTokenVerifier,
        backend: Mock,
        make_token: TokenFactory,
    ) -> None:
        token_set = self._token_set(provider_metadata, counting_verifier, make_token())
        results: list[Any] = []
        errors: list[Exception] = []

        def worker() -> None:
            try:
                results.append(token_set.verify_id_token())
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == 8
        assert all(r is results[0] for r in results)
        assert backend.verify.call_count == 1

    def test_failure_not_memoized(
        self,
        provider_metadata: ProviderMetadata,
        counting_verifier: IdTokenVerifier,
        backend: Mock,
        make_token: TokenFactory,
        other_key_pair: Any,
        key_pair: Any,
    ) -> None:
        token = make_token(header={"alg": "RS256", "kid": key_pair.as_dict()["kid"]}, key=other_key_pair)
        token_set = self._token_set(provider_metadata, counting_verifier, token)

        with pytest.raises(SignatureVerificationError):
            token_set.verify_id_token()
        assert token_set.verification_state is VerificationState.FAILED

        with pytest.raises(SignatureVerificationError):
            token_set.verify_id_token()
        assert backend.verify.call_count == 2

    def test_missing_id_token(self, provider_metadata: ProviderMetadata, counting_verifier: IdTokenVerifier) -> None:
        token_set = self._token_set(provider_metadata, counting_verifier, None)
        with pytest.raises(MissingIdTokenError, match="No ID token"):
            token_set.verify_id_token()
        assert token_set.verification_state is VerificationState.FAILED

    def test_no_verifier(self, provider_metadata: ProviderMetadata, make_token: TokenFactory) -> None:
        token_set = TokenSet({"access_token": "at", "id_token": make_token()}, provider_metadata)
        with pytest.raises(ConfigurationError):
            token_set.verify_id_token()
