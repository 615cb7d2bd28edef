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
Registered client information used to authenticate at the token endpoint.
"""

import base64
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from coreason_oidc.exceptions import ConfigurationError


class ClientInformation(BaseModel):
    """
    Immutable client registration.

    A non-empty client_secret makes the client confidential; it then authenticates with HTTP Basic.

    Attributes:
        client_id (str): The OAuth 2.0 client identifier.
        client_secret (SecretStr | None): The client secret, if the client is confidential.
        redirect_uris (tuple[str, ...]): Registered redirection URIs, at least one.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr | None = None
    redirect_uris: tuple[str, ...] = Field(..., min_length=1)

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise ConfigurationError(f"Invalid client information ({', '.join(fields)}): {e}", fields) from e

    @field_validator("redirect_uris")
    @classmethod
    def reject_blank_uris(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if any(not uri.strip() for uri in v):
            raise ValueError("redirect_uris must not contain blank entries")
        return v

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ClientInformation":
        return cls(**{str(k): v for k, v in raw.items()})

    @property
    def is_confidential(self) -> bool:
        return self.client_secret is not None and bool(self.client_secret.get_secret_value())

    def basic_authorization(self) -> str:
        """
        Returns the ``Authorization`` header value for client_secret_basic.

        Raises:
            ConfigurationError: If the client is public.
        """
        if not self.is_confidential:
            raise ConfigurationError("Public clients cannot use HTTP Basic authentication")
        secret = self.client_secret.get_secret_value()  # type: ignore[union-attr]
        credentials = base64.b64encode(f"{self.client_id}:{secret}".encode("utf-8")).decode("ascii")
        return f"Basic {credentials}"
