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
Custom exceptions for the coreason-oidc package.
"""

from collections.abc import Sequence


class CoreasonOIDCError(Exception):
    """Base exception for all coreason-oidc errors."""


class ConfigurationError(CoreasonOIDCError):
    """
    Raised when provider metadata or client information is missing or invalid.

    Attributes:
        missing_keys (tuple[str, ...]): Required keys that were absent or empty, if any.
    """

    def __init__(self, message: str, missing_keys: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing_keys = tuple(missing_keys)


class RequestBuildError(CoreasonOIDCError):
    """Raised when grant parameters are invalid, missing or duplicated."""


class HttpTransportError(CoreasonOIDCError):
    """Raised by a transport adapter when the HTTP exchange itself fails."""


class OversizedResponseError(HttpTransportError):
    """Raised when an HTTP response is too large."""


class InvalidResponseError(CoreasonOIDCError):
    """Raised when a token endpoint (or discovery) response is missing required fields."""


class TokenEndpointError(InvalidResponseError):
    """
    Raised when the token endpoint answers with an OAuth 2.0 error object (RFC 6749, section 5.2).

    Attributes:
        error (str): The OAuth 2.0 error code, e.g. ``invalid_grant``.
        error_description (str | None): Human readable description sent by the provider.
        status_code (int | None): HTTP status of the response.
    """

    def __init__(self, error: str, error_description: str | None = None, status_code: int | None = None) -> None:
        message = f"Token endpoint returned error '{error}'"
        if error_description:
            message = f"{message}: {error_description}"
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code


class MissingIdTokenError(InvalidResponseError):
    """Raised when ID Token verification is requested but the response carried no id_token."""


class UnsupportedAlgorithmError(CoreasonOIDCError):
    """
    Raised when an algorithm is not advertised by the provider or cannot be implemented.

    Attributes:
        algorithm (str | None): The offending algorithm name.
    """

    def __init__(self, message: str, algorithm: str | None = None) -> None:
        super().__init__(message)
        self.algorithm = algorithm


class MalformedTokenError(CoreasonOIDCError):
    """Raised when a compact serialization or its payload is structurally invalid."""


class SignatureVerificationError(CoreasonOIDCError):
    """Raised when the token's signature cannot be verified."""


class UnknownKeyError(SignatureVerificationError):
    """
    Raised when the token header names a key identifier that is absent from the key set.

    Attributes:
        kid (str): The key identifier from the token header.
    """

    def __init__(self, kid: str) -> None:
        super().__init__(f"No key with kid '{kid}' in the key set")
        self.kid = kid


class ClaimValidationError(CoreasonOIDCError):
    """
    Raised when a registered or mandatory claim fails validation.

    Attributes:
        claim (str): Name of the first violated claim.
        violations (tuple[tuple[str, str], ...]): Every (claim, reason) pair that failed.
    """

    def __init__(self, claim: str, reason: str, violations: Sequence[tuple[str, str]] = ()) -> None:
        super().__init__(f"Invalid claim '{claim}': {reason}")
        self.claim = claim
        self.reason = reason
        self.violations = tuple(violations) or ((claim, reason),)
