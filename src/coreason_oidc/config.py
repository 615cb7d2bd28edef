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
Configuration for the coreason-oidc package.
"""

from pydantic import Field, SecretStr, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_oidc.client_information import ClientInformation


class CoreasonOIDCConfig(BaseSettings):
    """
    Relying-party settings, loaded from ``COREASON_OIDC_*`` environment variables.

    Attributes:
        issuer (str): The provider's issuer identifier (e.g. https://idp.example).
        discovery_url (str | None): Discovery document URL. Defaults to {issuer}/.well-known/openid-configuration.
        client_id (str): The OAuth 2.0 client identifier.
        client_secret (SecretStr | None): The client secret; absent for public clients.
        redirect_uris (list[str]): Registered redirection URIs.
        clock_skew_leeway (int): Acceptable clock skew in seconds for exp/nbf/iat checks.
        max_id_token_age (int | None): Reject ID Tokens whose iat is older than this many seconds.
        mandatory_claims (list[str]): Claims every ID Token must carry, on top of aud/exp/iat/iss/sub.
        http_timeout (float): Timeout in seconds for all provider network operations.
        max_response_bytes (int): Cap on provider response sizes.
        jwks_cache_ttl (int): JWKS cache lifetime in seconds.
        jwks_refresh_cooldown (float): Minimum seconds between forced JWKS refreshes.
        pii_salt (SecretStr): Salt for anonymizing subject identifiers in logs and traces.
        unsafe_local_dev (bool): Allow plain HTTP provider URLs.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_OIDC_",
        case_sensitive=False,
    )

    unsafe_local_dev: bool = False
    issuer: str
    discovery_url: str | None = None
    client_id: str
    client_secret: SecretStr | None = None
    redirect_uris: list[str] = Field(..., min_length=1)
    clock_skew_leeway: int = Field(default=0, ge=0)
    max_id_token_age: int | None = Field(default=None, gt=0)
    mandatory_claims: list[str] = Field(default_factory=list)
    http_timeout: float = Field(default=10.0, gt=0)
    max_response_bytes: int = Field(default=1_000_000, gt=0)
    jwks_cache_ttl: int = Field(default=3600, ge=0)
    jwks_refresh_cooldown: float = Field(default=30.0, ge=0)
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")

    @field_validator("issuer", "discovery_url", mode="after")
    @classmethod
    def validate_https(cls, v: str | None, info: ValidationInfo) -> str | None:
        """
        Ensures provider URLs use HTTPS, unless strictly opted out for local dev.
        """
        if v and v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return v

    @model_validator(mode="after")
    def set_default_discovery_url(self) -> "CoreasonOIDCConfig":
        if self.discovery_url is None:
            self.discovery_url = f"{self.issuer.rstrip('/')}/.well-known/openid-configuration"
        return self

    def client_information(self) -> ClientInformation:
        """
        Raises:
            ConfigurationError: If the client settings are invalid.
        """
        return ClientInformation(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uris=tuple(self.redirect_uris),
        )
