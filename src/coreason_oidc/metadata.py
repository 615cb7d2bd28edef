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
OpenID Provider metadata, as published at .well-known/openid-configuration.

See https://openid.net/specs/openid-connect-discovery-1_0.html#ProviderMetadata
and https://tools.ietf.org/html/rfc8414#section-2.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from coreason_oidc.exceptions import ConfigurationError

REQUIRED_METADATA = (
    "authorization_endpoint",
    "id_token_signing_alg_values_supported",
    "issuer",
    "jwks_uri",
    "response_types_supported",
    "subject_types_supported",
    "token_endpoint",
)

# RFC 8414: omitted grant_types_supported means these two
DEFAULT_GRANT_TYPES = ("authorization_code", "implicit")


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (str, list, tuple, set, frozenset)) and len(value) == 0)


class ProviderMetadata(BaseModel):
    """
    Validated, immutable provider metadata.

    Construction fails with ConfigurationError listing every required key that is missing or empty.
    Unknown discovery fields are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    issuer: str = Field(..., description="The issuer identifier; must match the iss claim of ID Tokens.")
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    response_types_supported: tuple[str, ...]
    subject_types_supported: tuple[str, ...]
    id_token_signing_alg_values_supported: tuple[str, ...]

    id_token_encryption_alg_values_supported: tuple[str, ...] | None = None
    id_token_encryption_enc_values_supported: tuple[str, ...] | None = None
    scopes_supported: tuple[str, ...] | None = None
    claims_supported: tuple[str, ...] | None = None
    code_challenge_methods_supported: tuple[str, ...] | None = Field(
        default=None, description="PKCE methods, see https://oauth.net/2/pkce/."
    )
    token_endpoint_auth_methods_supported: tuple[str, ...] | None = None
    grant_types_supported: tuple[str, ...] | None = None
    userinfo_endpoint: str | None = None
    end_session_endpoint: str | None = None
    revocation_endpoint: str | None = None
    introspection_endpoint: str | None = None
    device_authorization_endpoint: str | None = None

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid provider metadata: {e}") from e

    @model_validator(mode="before")
    @classmethod
    def check_required_metadata(cls, data: Any) -> Any:
        """
        Rejects metadata missing any required key before field validation runs.
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("Provider metadata must be a JSON object")

        missing = sorted(key for key in REQUIRED_METADATA if _is_empty(data.get(key)))
        if missing:
            raise ConfigurationError(
                f"Required provider metadata is missing: {', '.join(missing)}",
                missing_keys=missing,
            )
        return data

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ProviderMetadata":
        """
        Builds metadata from a decoded discovery document.

        Raises:
            ConfigurationError: If the document is not an object, misses required keys or has invalid types.
        """
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Provider metadata must be a JSON object")
        return cls(**{str(k): v for k, v in raw.items()})

    def id_token_alg_values_supported(self) -> tuple[str, ...]:
        """
        Signing algorithms followed by encryption algorithms, without duplicates, first seen first.
        """
        encryption = self.id_token_encryption_alg_values_supported or ()
        return tuple(dict.fromkeys((*self.id_token_signing_alg_values_supported, *encryption)))

    def supports_grant(self, grant_type: str) -> bool:
        return grant_type in (self.grant_types_supported or DEFAULT_GRANT_TYPES)
