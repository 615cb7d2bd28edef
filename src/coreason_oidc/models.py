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
Data models for the coreason-oidc package.
"""

import json
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any
from urllib.parse import parse_qsl

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from coreason_oidc.exceptions import InvalidResponseError

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class RequestSpec(BaseModel):
    """
    Outbound HTTP request produced by the TokenRequestBuilder.

    Frozen; consumed once by an HttpTransport.

    Attributes:
        method (str): HTTP method.
        uri (str): Target URI.
        header_items (tuple[tuple[str, str], ...]): Header name/value pairs, in insertion order.
        body (str): The encoded request body.
    """

    model_config = ConfigDict(frozen=True)

    method: str = "POST"
    uri: str
    header_items: tuple[tuple[str, str], ...] = ()
    body: str = ""

    @property
    def headers(self) -> dict[str, str]:
        return dict(self.header_items)

    def header(self, name: str, default: str | None = None) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.header_items:
            if key.lower() == lowered:
                return value
        return default

    def form(self) -> list[tuple[str, str]]:
        """Decodes a form-urlencoded body back to ordered pairs."""
        return parse_qsl(self.body, keep_blank_values=True)


class TransportResponse(BaseModel):
    """
    The part of an HTTP response the core needs.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    content: bytes = b""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        try:
            return json.loads(self.content)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidResponseError(f"Response body is not valid JSON: {e}") from e


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


class Claims(BaseModel):
    """
    Immutable snapshot of verified ID Token claims.

    Registered claims are typed attributes; any other claim is kept as an extra field and is reachable
    through the read-only mapping interface (``claims["https://example.com/roles"]``).
    Nested arrays and objects of extra claims are frozen into tuples and read-only mappings;
    ``as_dict()`` returns a mutable copy.
    ``header`` holds the protected header of the verified JWS.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    iss: str
    sub: str
    aud: str | tuple[str, ...]
    exp: int | float
    iat: int | float
    nbf: int | float | None = None
    nonce: str | None = None
    azp: str | None = None
    auth_time: int | float | None = None
    acr: str | None = None
    amr: tuple[str, ...] | None = None
    at_hash: str | None = None
    c_hash: str | None = None
    sid: str | None = None
    jti: str | None = None

    _header: Mapping[str, Any] = PrivateAttr(default_factory=lambda: MappingProxyType({}))

    @model_validator(mode="before")
    @classmethod
    def _freeze_extra_claims(cls, data: Any) -> Any:
        # Arrays become tuples and objects become read-only mappings
        if isinstance(data, Mapping):
            return {k: v if k in cls.model_fields else _freeze(v) for k, v in data.items()}
        return data

    @classmethod
    def from_token(cls, payload: Mapping[str, Any], header: Mapping[str, Any]) -> "Claims":
        """
        Raises:
            ValidationError: If a registered claim has the wrong type.
        """
        claims = cls.model_validate(payload)
        claims._header = _freeze(header)
        return claims

    @property
    def header(self) -> dict[str, Any]:
        return _thaw(self._header)  # type: ignore[no-any-return]

    @property
    def audiences(self) -> tuple[str, ...]:
        return (self.aud,) if isinstance(self.aud, str) else self.aud

    def keys(self) -> list[str]:
        return [*self.model_fields_set, *(self.__pydantic_extra__ or {})]

    def __contains__(self, name: object) -> bool:
        return name in self.model_fields_set or name in (self.__pydantic_extra__ or {})

    def __getitem__(self, name: str) -> Any:
        if name in self.model_fields_set:
            return getattr(self, name)
        extra = self.__pydantic_extra__ or {}
        if name in extra:
            return extra[name]
        raise KeyError(name)

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def as_dict(self) -> dict[str, Any]:
        """Returns a JSON-compatible copy of the claims exactly as they were present in the token."""
        return {name: _thaw(self[name]) for name in self.keys()}


def parse_json_object(content: bytes | str, what: str) -> Mapping[str, Any]:
    """
    Decodes a JSON document that must be an object.

    Raises:
        InvalidResponseError: If the content is not JSON or not an object.
    """
    try:
        data = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidResponseError(f"{what} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidResponseError(f"{what} must be a JSON object, got {type(data).__name__}")
    return data
