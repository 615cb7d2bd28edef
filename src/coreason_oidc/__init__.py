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
OpenID Connect relying-party core: token requests, token responses and ID Token verification.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .client_information import ClientInformation
from .config import CoreasonOIDCConfig
from .exceptions import (
    ClaimValidationError,
    ConfigurationError,
    CoreasonOIDCError,
    HttpTransportError,
    InvalidResponseError,
    MalformedTokenError,
    MissingIdTokenError,
    OversizedResponseError,
    RequestBuildError,
    SignatureVerificationError,
    TokenEndpointError,
    UnknownKeyError,
    UnsupportedAlgorithmError,
)
from .grants import Grant, GrantType
from .jose_backend import AuthlibSignatureVerifier
from .keys import KeySet, StaticKeyResolver
from .manager import RelyingParty
from .metadata import ProviderMetadata
from .models import Claims, RequestSpec, TransportResponse
from .oidc_provider import OIDCProvider
from .request_builder import TokenRequestBuilder
from .tokens import TokenSet
from .transport import HttpxTransport
from .validator import IdTokenVerifier, VerificationState

__all__ = [
    "AuthlibSignatureVerifier",
    "ClaimValidationError",
    "Claims",
    "ClientInformation",
    "ConfigurationError",
    "CoreasonOIDCConfig",
    "CoreasonOIDCError",
    "Grant",
    "GrantType",
    "HttpTransportError",
    "HttpxTransport",
    "IdTokenVerifier",
    "InvalidResponseError",
    "KeySet",
    "MalformedTokenError",
    "MissingIdTokenError",
    "OIDCProvider",
    "OversizedResponseError",
    "ProviderMetadata",
    "RelyingParty",
    "RequestBuildError",
    "RequestSpec",
    "SignatureVerificationError",
    "StaticKeyResolver",
    "TokenEndpointError",
    "TokenRequestBuilder",
    "TokenSet",
    "TransportResponse",
    "UnknownKeyError",
    "UnsupportedAlgorithmError",
    "VerificationState",
]
