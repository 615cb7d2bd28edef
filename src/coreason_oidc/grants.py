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
OAuth 2.0 grant variants understood by the TokenRequestBuilder.

The set of built-in grants is closed; anything else goes through ``extension_grant`` (RFC 6749, section 4.5).
"""

from enum import StrEnum
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict

from coreason_oidc.exceptions import RequestBuildError


class GrantType(StrEnum):
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"
    PASSWORD = "password"


class Grant(BaseModel):
    """
    A grant variant: its canonical ``grant_type`` and the parameters it cannot do without.

    Attributes:
        grant_type (str): Value sent as ``grant_type``.
        required_parameters (tuple[str, ...]): Parameter names that must be present and non-empty.
        extension (bool): True for extension grants identified by an absolute URI.
    """

    model_config = ConfigDict(frozen=True)

    grant_type: str
    required_parameters: tuple[str, ...] = ()
    extension: bool = False

    def missing_parameters(self, names: set[str]) -> list[str]:
        return [name for name in self.required_parameters if name not in names]


def authorization_code() -> Grant:
    return Grant(grant_type=GrantType.AUTHORIZATION_CODE.value, required_parameters=("code", "redirect_uri"))


def refresh_token() -> Grant:
    return Grant(grant_type=GrantType.REFRESH_TOKEN.value, required_parameters=("refresh_token",))


def client_credentials() -> Grant:
    return Grant(grant_type=GrantType.CLIENT_CREDENTIALS.value)


def password() -> Grant:
    return Grant(grant_type=GrantType.PASSWORD.value, required_parameters=("username", "password"))


def extension_grant(uri: str, required: tuple[str, ...] = ()) -> Grant:
    """
    Builds an extension grant, e.g. ``urn:ietf:params:oauth:grant-type:device_code``.

    Raises:
        RequestBuildError: If ``uri`` is not an absolute URI or collides with a built-in grant type.
    """
    if uri in {g.value for g in GrantType}:
        raise RequestBuildError(f"'{uri}' is a built-in grant type, not an extension grant")
    if not urlparse(uri).scheme:
        raise RequestBuildError(f"Extension grant type must be an absolute URI, got '{uri}'")
    return Grant(grant_type=uri, required_parameters=required, extension=True)
