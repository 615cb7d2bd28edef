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
RelyingParty component wiring metadata, client, request building, transport and verification.
"""

from collections.abc import Iterable
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_oidc.algorithms import SignatureVerifier
from coreason_oidc.config import CoreasonOIDCConfig
from coreason_oidc.exceptions import InvalidResponseError, TokenEndpointError, UnknownKeyError
from coreason_oidc.grants import Grant
from coreason_oidc.keys import KeyResolver, KeySet
from coreason_oidc.metadata import ProviderMetadata
from coreason_oidc.models import Claims, RequestSpec, TransportResponse
from coreason_oidc.oidc_provider import OIDCProvider
from coreason_oidc.request_builder import Parameters, ParameterValue, TokenRequestBuilder
from coreason_oidc.tokens import TokenSet
from coreason_oidc.transport import HttpTransport, HttpxTransport
from coreason_oidc.utils.logger import logger
from coreason_oidc.validator import IdTokenVerifier

tracer = trace.get_tracer(__name__)


class RelyingParty:
    """
    The relying-party facade.
    Owns an internally created transport and closes it on exit.
    """

    def __init__(
        self,
        config: CoreasonOIDCConfig,
        provider_metadata: ProviderMetadata | None = None,
        transport: HttpTransport | None = None,
        key_resolver: KeyResolver | None = None,
        signature_verifier: SignatureVerifier | None = None,
        decryption_keys: KeySet | None = None,
    ) -> None:
        """
        Initialize the RelyingParty.

        Args:
            config: The configuration object.
            provider_metadata: Known provider metadata. If not provided, it is discovered from ``config.discovery_url``.
            transport: External transport (optional). If not provided, an `HttpxTransport` is created.
            key_resolver: Key set source (optional). Defaults to the JWKS published at ``jwks_uri``.
            signature_verifier: Cryptographic collaborator (optional). Defaults to Authlib.
            decryption_keys: Client private keys for encrypted ID Tokens (optional).

        Raises:
            ConfigurationError: If the configuration or discovered metadata is invalid.
            UnsupportedAlgorithmError: If the provider advertises an algorithm that cannot be implemented.
            HttpTransportError: If discovery fails.
        """
        self.config = config
        self._internal_transport = transport is None
        self.transport: HttpTransport = transport or HttpxTransport(
            timeout=config.http_timeout, max_response_bytes=config.max_response_bytes
        )
        try:
            self._wire(provider_metadata, key_resolver, signature_verifier, decryption_keys)
        except Exception:
            self.close()
            raise

    def _wire(
        self,
        provider_metadata: ProviderMetadata | None,
        key_resolver: KeyResolver | None,
        signature_verifier: SignatureVerifier | None,
        decryption_keys: KeySet | None,
    ) -> None:
        config = self.config
        self.client_information = config.client_information()

        self.oidc_provider = OIDCProvider(
            self.transport,
            discovery_url=config.discovery_url,
            metadata=provider_metadata,
            expected_issuer=config.issuer,
            cache_ttl=config.jwks_cache_ttl,
            refresh_cooldown=config.jwks_refresh_cooldown,
        )
        self.provider_metadata = self.oidc_provider.get_metadata()
        self.key_resolver: KeyResolver = key_resolver or self.oidc_provider

        self.request_builder = TokenRequestBuilder(self.provider_metadata, self.client_information)
        self.verifier = IdTokenVerifier(
            provider_metadata=self.provider_metadata,
            client_information=self.client_information,
            key_resolver=self.key_resolver,
            signature_verifier=signature_verifier,
            leeway=config.clock_skew_leeway,
            max_age=config.max_id_token_age,
            mandatory_claims=config.mandatory_claims,
            pii_salt=config.pii_salt,
            decryption_keys=decryption_keys,
        )

    def __enter__(self) -> "RelyingParty":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._internal_transport and isinstance(self.transport, HttpxTransport):
            self.transport.close()

    def request_token(self, grant: Grant, parameters: Parameters = ()) -> TokenSet:
        """
        Builds, sends and parses a token request.

        Raises:
            RequestBuildError: If the grant parameters are invalid.
            HttpTransportError: Passed through unchanged from the transport.
            TokenEndpointError: If the provider answers with an OAuth 2.0 error.
            InvalidResponseError: If the response is not a usable token response.
        """
        return self._send(self.request_builder.build(grant, parameters))

    def exchange_code(self, code: str, redirect_uri: str, code_verifier: str | None = None) -> TokenSet:
        return self._send(self.request_builder.authorization_code(code, redirect_uri, code_verifier=code_verifier))

    def refresh(self, refresh_token: str, scope: ParameterValue = None) -> TokenSet:
        return self._send(self.request_builder.refresh_token(refresh_token, scope=scope))

    def client_credentials(self, scope: ParameterValue = None) -> TokenSet:
        return self._send(self.request_builder.client_credentials(scope=scope))

    def _send(self, request: RequestSpec) -> TokenSet:
        with tracer.start_as_current_span("token_request") as span:
            response = self.transport.send(request)
            span.set_attribute("http.status_code", response.status_code)
            try:
                token_set = self._token_set(response)
            except InvalidResponseError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            span.set_status(Status(StatusCode.OK))
            return token_set

    def _token_set(self, response: TransportResponse) -> TokenSet:
        if response.is_success:
            return TokenSet.from_response(
                response.content, self.provider_metadata, self.verifier, status_code=response.status_code
            )

        try:
            data = response.json()
        except InvalidResponseError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("error"), str):
            description = data.get("error_description")
            error = TokenEndpointError(
                data["error"], description if isinstance(description, str) else None, response.status_code
            )
            logger.warning(f"Token request rejected: {error}")
            raise error
        raise InvalidResponseError(f"Token endpoint returned HTTP {response.status_code}")

    def verify(
        self,
        token_set: TokenSet,
        mandatory_claims: Iterable[str] = (),
        nonce: str | None = None,
    ) -> Claims:
        """
        Verifies the ID Token of ``token_set``.

        When the token names a key the cached key set does not know, the key set is refreshed once
        and verification is retried.

        Args:
            token_set: The token set to verify.
            mandatory_claims: Extra required claims on top of ``config.mandatory_claims``.
            nonce: The nonce sent in the authentication request, if any.
        """
        mandatory = tuple(mandatory_claims)
        try:
            return token_set.verify_id_token(mandatory, nonce)
        except UnknownKeyError as e:
            logger.info(f"Unknown key '{e.kid}', refreshing key set and retrying once")
            self.key_resolver.get_key_set(force_refresh=True)
            return token_set.verify_id_token(mandatory, nonce)
