# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

from typing import Any

import pytest
from authlib.jose import JsonWebKey, jwt

from coreason_oidc.client_information import ClientInformation
from coreason_oidc.keys import KeySet, StaticKeyResolver
from coreason_oidc.metadata import ProviderMetadata
from coreason_oidc.validator import IdTokenVerifier

from helpers import CLIENT_ID, CLIENT_SECRET, ISSUER, NOW, REDIRECT_URI, TokenFactory


@pytest.fixture
def metadata_document() -> dict[str, Any]:
    return {
        "issuer": ISSUER,
        "authorization_endpoint": f"{ISSUER}/authorize",
        "token_endpoint": f"{ISSUER}/token",
        "jwks_uri": f"{ISSUER}/jwks",
        "response_types_supported": ["code"],
        "subject_types_supported": ["public"],
        "id_token_signing_alg_values_supported": ["RS256"],
    }


@pytest.fixture
def provider_metadata(metadata_document: dict[str, Any]) -> ProviderMetadata:
    return ProviderMetadata.from_mapping(metadata_document)


@pytest.fixture
def client_information() -> ClientInformation:
    return ClientInformation(client_id=CLIENT_ID, client_secret=CLIENT_SECRET, redirect_uris=(REDIRECT_URI,))


@pytest.fixture
def public_client() -> ClientInformation:
    return ClientInformation(client_id=CLIENT_ID, redirect_uris=(REDIRECT_URI,))


@pytest.fixture(scope="session")
def key_pair() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)


@pytest.fixture(scope="session")
def other_key_pair() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)


@pytest.fixture
def jwks(key_pair: Any) -> dict[str, Any]:
    return {"keys": [key_pair.as_dict(is_private=False)]}


@pytest.fixture
def key_set(jwks: dict[str, Any]) -> KeySet:
    return KeySet.from_jwks(jwks)


@pytest.fixture
def claims() -> dict[str, Any]:
    return {
        "iss": ISSUER,
        "sub": "user-123",
        "aud": CLIENT_ID,
        "exp": NOW + 3600,
        "iat": NOW - 10,
        "nonce": "n-0S6_WzA2Mj",
    }


@pytest.fixture
def make_token(key_pair: Any, claims: dict[str, Any]) -> TokenFactory:
    """
    Signs ``claims`` (with overrides) as a compact JWS. ``drop`` removes claims.
    """

    def _make(
        overrides: dict[str, Any] | None = None,
        header: dict[str, Any] | None = None,
        key: Any = None,
        drop: tuple[str, ...] = (),
    ) -> str:
        signing_key = key if key is not None else key_pair
        payload = {**claims, **(overrides or {})}
        for name in drop:
            payload.pop(name, None)
        if header is None:
            header = {"alg": "RS256", "kid": signing_key.as_dict()["kid"]}
        return jwt.encode(header, payload, signing_key).decode("ascii")  # type: ignore[no-any-return]

    return _make


@pytest.fixture
def verifier(
    provider_metadata: ProviderMetadata, client_information: ClientInformation, key_set: KeySet
) -> IdTokenVerifier:
    return IdTokenVerifier(
        provider_metadata=provider_metadata,
        client_information=client_information,
        key_resolver=StaticKeyResolver(key_set),
        clock=lambda: NOW,
    )
