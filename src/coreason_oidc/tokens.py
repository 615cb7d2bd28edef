# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

"""
TokenSet component modelling a token endpoint response.
"""

import threading
import time
from collections.abc import Iterable, Mapping
from typing import Any

from coreason_oidc.exceptions import (
    ClaimValidationError,
    ConfigurationError,
    CoreasonOIDCError,
    InvalidResponseError,
    MissingIdTokenError,
    TokenEndpointError,
)
from coreason_oidc.metadata import ProviderMetadata
from coreason_oidc.models import Claims, parse_json_object
from coreason_oidc.validator import IdTokenVerifier, VerificationState


def _coerce_expires_in(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidResponseError("'expires_in' must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    raise InvalidResponseError(f"'expires_in' must be an integer, got {value!r}")


class TokenSet:
    """
    Tokens returned by the token endpoint.

    The five DEFAULT_KEYS are typed fields; every other response field (``token_type`` included) lives in
    the extension map returned by ``values()``.

    ID Token verification is lazy and memoised: the first successful ``verify_id_token`` call stores the
    Claims for the lifetime of the instance. Concurrent callers are serialised so the pipeline runs at most
    once on success. Failures are not memoised; calling again re-runs verification on the same input.
    """

    DEFAULT_KEYS = (
        "access_token",
        "expires_in",
        "id_token",
        "refresh_token",
        "scope",
    )

    def __init__(
        self,
        parameters: Mapping[str, Any],
        provider_metadata: ProviderMetadata,
        verifier: IdTokenVerifier | None = None,
        received_at: float | None = None,
    ) -> None:
        """
        Args:
            parameters: The decoded token endpoint response body.
            provider_metadata: Metadata of the provider that issued the tokens.
            verifier: Verifier used by ``verify_id_token``.
            received_at: When the response was received (epoch seconds). Defaults to now.

        Raises:
            InvalidResponseError: If ``access_token`` is missing or empty, or a typed field has the wrong type.
        """
        access_token = parameters.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise InvalidResponseError('Required "access_token" but not passed')

        for key in ("id_token", "refresh_token"):
            value = parameters.get(key)
            if value is not None and not isinstance(value, str):
                raise InvalidResponseError(f"'{key}' must be a string")

        scope = parameters.get("scope")
        if scope is not None and not (
            isinstance(scope, str) or (isinstance(scope, list) and all(isinstance(s, str) for s in scope))
        ):
            raise InvalidResponseError("'scope' must be a string or an array of strings")

        self._expires_in: int | None = None
        if self._present(parameters, "expires_in"):
            self._expires_in = _coerce_expires_in(parameters["expires_in"])

        self._parameters = dict(parameters)
        self._values = {k: v for k, v in self._parameters.items() if k not in self.DEFAULT_KEYS}
        self.provider_metadata = provider_metadata
        self.received_at = time.time() if received_at is None else received_at

        self._verifier = verifier
        self._lock = threading.Lock()
        self._claims: Claims | None = None
        self._state = VerificationState.UNVERIFIED

    @staticmethod
    def _present(parameters: Mapping[str, Any], key: str) -> bool:
        return parameters.get(key) is not None

    @classmethod
    def from_response(
        cls,
        body: bytes | str,
        provider_metadata: ProviderMetadata,
        verifier: IdTokenVerifier | None = None,
        status_code: int | None = None,
    ) -> "TokenSet":
        """
        Parses a raw token endpoint body.

        Raises:
            TokenEndpointError: If the body is an OAuth 2.0 error object.
            InvalidResponseError: If the body is not a JSON object or lacks ``access_token``.
        """
        data = parse_json_object(body, "Token response")
        if "error" in data and "access_token" not in data:
            description = data.get("error_description")
            raise TokenEndpointError(
                str(data["error"]),
                description if isinstance(description, str) else None,
                status_code,
            )
        return cls(data, provider_metadata, verifier)

    def has(self, key: str) -> bool:
        return self._present(self._parameters, key)

    @property
    def access_token(self) -> str:
        return self._parameters["access_token"]  # type: ignore[no-any-return]

    @property
    def token_type(self) -> str | None:
        return self._values.get("token_type")

    @property
    def expires_in(self) -> int | None:
        return self._expires_in

    @property
    def expires_at(self) -> float | None:
        if self._expires_in is None:
            return None
        return self.received_at + self._expires_in

    def is_expired(self, leeway: int = 0, now: float | None = None) -> bool:
        """False when the response carried no ``expires_in``."""
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return (time.time() if now is None else now) >= expires_at - leeway

    @property
    def id_token(self) -> str | None:
        return self._parameters.get("id_token")

    @property
    def refresh_token(self) -> str | None:
        return self._parameters.get("refresh_token")

    def scope(self) -> list[str] | None:
        """
        The granted scope as a list of tokens, or None when the response had no scope.
        """
        if not self.has("scope"):
            return None
        scope = self._parameters["scope"]
        if isinstance(scope, list):
            return list(scope)
        return scope.split()  # type: ignore[no-any-return]

    def values(self, key: str | None = None, default: Any = None) -> Any:
        """
        Reads extension fields.

        Without ``key`` returns a copy of the whole extension map.

        Raises:
            ValueError: If ``key`` is one of DEFAULT_KEYS; use the typed accessors instead.
        """
        if key is None:
            return dict(self._values)
        if key in self.DEFAULT_KEYS:
            raise ValueError(f"Cannot use values() to read '{key}'; use the typed accessor")
        return self._values.get(key, default)

    def as_dict(self) -> dict[str, Any]:
        return dict(self._parameters)

    @property
    def verification_state(self) -> VerificationState:
        return self._state

    def verify_id_token(self, mandatory_claims: Iterable[str] = (), nonce: str | None = None) -> Claims:
        """
        Verifies the ID Token once and returns the memoised Claims snapshot.

        After the first success, later calls only check ``mandatory_claims`` and ``nonce`` against the snapshot.

        Raises:
            MissingIdTokenError: If the response carried no ID Token.
            ConfigurationError: If no verifier is attached.
            CoreasonOIDCError: Any verification error raised by the IdTokenVerifier.
        """
        mandatory = tuple(mandatory_claims)
        if self._claims is None:
            with self._lock:
                if self._claims is None:
                    self._claims = self._verify(mandatory, nonce)
                    return self._claims
        return self._check_memoized(self._claims, mandatory, nonce)

    def _verify(self, mandatory_claims: tuple[str, ...], nonce: str | None) -> Claims:
        try:
            if self._verifier is None:
                raise ConfigurationError("No IdTokenVerifier attached to this TokenSet")
            token = self.id_token
            if token is None:
                raise MissingIdTokenError("No ID token")
            claims = self._verifier.verify(token, mandatory_claims=mandatory_claims, nonce=nonce)
        except CoreasonOIDCError:
            self._state = VerificationState.FAILED
            raise
        self._state = VerificationState.CLAIMS_CHECKED
        return claims

    @staticmethod
    def _check_memoized(claims: Claims, mandatory_claims: tuple[str, ...], nonce: str | None) -> Claims:
        if nonce is not None and claims.nonce != nonce:
            raise ClaimValidationError("nonce", "does not match the expected nonce")
        missing = [(name, "missing mandatory claim") for name in dict.fromkeys(mandatory_claims) if name not in claims]
        if missing:
            raise ClaimValidationError(missing[0][0], missing[0][1], missing)
        return claims
