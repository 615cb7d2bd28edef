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
TokenRequestBuilder component for building token endpoint requests.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Union
from urllib.parse import urlencode

from coreason_oidc import grants
from coreason_oidc.client_information import ClientInformation
from coreason_oidc.exceptions import RequestBuildError
from coreason_oidc.grants import Grant
from coreason_oidc.metadata import ProviderMetadata
from coreason_oidc.models import FORM_CONTENT_TYPE, RequestSpec
from coreason_oidc.utils.logger import logger

ParameterValue = Union[str, int, Sequence[str], None]
Parameters = Union[Mapping[str, ParameterValue], Iterable[tuple[str, ParameterValue]]]

# Set by the builder itself, never by the caller
RESERVED_PARAMETERS = frozenset({"grant_type", "client_id", "client_secret"})


def _encode_value(name: str, value: ParameterValue) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        raise RequestBuildError(f"Parameter '{name}' must be a string, got bool")
    if isinstance(value, int):
        return str(value)
    if name == "scope" and isinstance(value, Sequence):
        return " ".join(str(token) for token in value)
    raise RequestBuildError(f"Parameter '{name}' must be a string, got {type(value).__name__}")


class TokenRequestBuilder:
    """
    Builds POST requests for the provider's token endpoint.

    Client authentication is a fixed policy: confidential clients send HTTP Basic credentials
    and keep them out of the body; public clients send ``client_id`` in the body.

    Attributes:
        provider_metadata (ProviderMetadata): Supplies the token endpoint.
        client_information (ClientInformation): Supplies the client credentials.
    """

    def __init__(self, provider_metadata: ProviderMetadata, client_information: ClientInformation) -> None:
        self.provider_metadata = provider_metadata
        self.client_information = client_information

    def build(self, grant: Grant, parameters: Parameters = ()) -> RequestSpec:
        """
        Builds the token request for ``grant``.

        Args:
            grant: The grant variant.
            parameters: Grant parameters as a mapping or as (name, value) pairs. ``None`` values are dropped.

        Returns:
            RequestSpec: The request to hand to an HttpTransport.

        Raises:
            RequestBuildError: If a parameter is duplicated, reserved, of an unsupported type,
                or a required parameter is missing.
        """
        pairs = list(parameters.items()) if isinstance(parameters, Mapping) else list(parameters)

        fields: list[tuple[str, str]] = [("grant_type", grant.grant_type)]
        seen: set[str] = set()
        for name, value in pairs:
            if name in RESERVED_PARAMETERS:
                raise RequestBuildError(f"Parameter '{name}' is set by the builder and cannot be supplied")
            if name in seen:
                raise RequestBuildError(f"Parameter '{name}' supplied more than once")
            seen.add(name)
            if value is None:
                continue
            fields.append((name, _encode_value(name, value)))

        present = {name for name, value in fields[1:] if value}
        missing = grant.missing_parameters(present)
        if missing:
            raise RequestBuildError(
                f"Grant '{grant.grant_type}' requires parameters: {', '.join(missing)}"
            )

        headers = [("Content-Type", FORM_CONTENT_TYPE), ("Accept", "application/json")]
        if self.client_information.is_confidential:
            headers.append(("Authorization", self.client_information.basic_authorization()))
        else:
            fields.append(("client_id", self.client_information.client_id))

        logger.debug(f"Built token request for grant '{grant.grant_type}' with parameters {sorted(seen)}")

        return RequestSpec(
            method="POST",
            uri=self.provider_metadata.token_endpoint,
            header_items=tuple(headers),
            body=urlencode(fields),
        )

    def authorization_code(
        self,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,
        scope: ParameterValue = None,
    ) -> RequestSpec:
        """
        Builds an authorization code exchange.

        Raises:
            RequestBuildError: If ``redirect_uri`` is not one of the client's registered redirect URIs.
        """
        if redirect_uri not in self.client_information.redirect_uris:
            raise RequestBuildError(f"redirect_uri '{redirect_uri}' is not registered for this client")
        return self.build(
            grants.authorization_code(),
            [("code", code), ("redirect_uri", redirect_uri), ("code_verifier", code_verifier), ("scope", scope)],
        )

    def refresh_token(self, refresh_token: str, scope: ParameterValue = None) -> RequestSpec:
        return self.build(grants.refresh_token(), [("refresh_token", refresh_token), ("scope", scope)])

    def client_credentials(self, scope: ParameterValue = None) -> RequestSpec:
        return self.build(grants.client_credentials(), [("scope", scope)])

    def password(self, username: str, password: str, scope: ParameterValue = None) -> RequestSpec:
        return self.build(grants.password(), [("username", username), ("password", password), ("scope", scope)])

    def extension(self, grant_type: str, **parameters: ParameterValue) -> RequestSpec:
        return self.build(grants.extension_grant(grant_type), parameters)
