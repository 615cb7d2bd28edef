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
AlgorithmNegotiator component: turns the provider's advertised algorithms into usable capabilities.
"""

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from coreason_oidc.exceptions import MalformedTokenError, UnsupportedAlgorithmError
from coreason_oidc.metadata import ProviderMetadata
from coreason_oidc.utils.logger import logger

# typ values accepted on ID Tokens (case-insensitive)
ACCEPTED_TOKEN_TYPES = frozenset({"jwt", "application/jwt"})


class AlgorithmUse(StrEnum):
    SIGNATURE = "sig"
    ENCRYPTION = "enc"


class TokenFormat(StrEnum):
    JWS = "JWS"
    JWE = "JWE"


class AlgorithmCapability(BaseModel):
    """
    A concrete algorithm implementation supplied by a SignatureVerifier.

    Attributes:
        name (str): The JOSE algorithm name, e.g. ``RS256``.
        use (AlgorithmUse): Whether it verifies signatures or unwraps encrypted tokens.
        key_type (str): JWK ``kty`` the algorithm works with.
        curve (str | None): Required JWK ``crv`` for curve-bound algorithms.
        implementation (Any): Opaque handle owned by the SignatureVerifier.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    use: AlgorithmUse
    key_type: str
    curve: str | None = None
    implementation: Any = Field(default=None, repr=False, exclude=True)


class SignatureVerifier(Protocol):
    """Cryptographic collaborator. The core never implements JOSE primitives itself."""

    def capability(self, name: str) -> AlgorithmCapability | None:
        """Returns the capability implementing ``name``, or None if it cannot be supplied."""
        ...

    def verify(self, signing_input: bytes, signature: bytes, key: Any, capability: AlgorithmCapability) -> bool:
        """Returns True if ``signature`` over ``signing_input`` is valid for ``key``."""
        ...

    def decrypt(self, token: bytes, key: Any, capability: AlgorithmCapability) -> bytes:
        """Decrypts a compact JWE and returns its plaintext."""
        ...


class HeaderPolicy(BaseModel):
    """
    Rules applied to a token's protected header before any key is looked up.

    Attributes:
        allowed_algorithms (tuple[str, ...]): The algorithm allow-list.
        token_formats (frozenset[TokenFormat]): JWS always; JWE only when the provider advertises encryption.
        allowed_encryptions (tuple[str, ...] | None): Advertised ``enc`` values, if any.
    """

    model_config = ConfigDict(frozen=True)

    allowed_algorithms: tuple[str, ...]
    token_formats: frozenset[TokenFormat]
    allowed_encryptions: tuple[str, ...] | None = None

    def check(self, header: Mapping[str, Any], token_format: TokenFormat) -> str:
        """
        Validates the header and returns its algorithm.

        Raises:
            MalformedTokenError: If ``alg`` is missing, ``typ`` is unexpected or ``crit`` is present.
            UnsupportedAlgorithmError: If the algorithm or token format is not allowed.
        """
        alg = header.get("alg")
        if not isinstance(alg, str) or not alg:
            raise MalformedTokenError("Token header has no 'alg'")

        if alg not in self.allowed_algorithms:
            raise UnsupportedAlgorithmError(
                f"Algorithm '{alg}' is not advertised by the provider (allowed: {', '.join(self.allowed_algorithms)})",
                algorithm=alg,
            )

        if token_format not in self.token_formats:
            raise UnsupportedAlgorithmError(
                f"Encrypted ID Tokens are not advertised by the provider (alg '{alg}')", algorithm=alg
            )

        if token_format is TokenFormat.JWE:
            enc = header.get("enc")
            if not isinstance(enc, str) or not enc:
                raise MalformedTokenError("Encrypted token header has no 'enc'")
            if self.allowed_encryptions is not None and enc not in self.allowed_encryptions:
                raise UnsupportedAlgorithmError(f"Content encryption '{enc}' is not advertised", algorithm=enc)

        if "crit" in header:
            raise MalformedTokenError(f"Unsupported critical header parameters: {header['crit']!r}")

        typ = header.get("typ")
        if typ is not None and (not isinstance(typ, str) or typ.lower() not in ACCEPTED_TOKEN_TYPES):
            raise MalformedTokenError(f"Unexpected token type '{typ}'")

        return alg


class NegotiatedAlgorithms(BaseModel):
    """
    Output of negotiation, consumed by the IdTokenVerifier.
    """

    model_config = ConfigDict(frozen=True)

    allowed: tuple[str, ...]
    capabilities: dict[str, AlgorithmCapability]
    header_policy: HeaderPolicy

    def resolve(self, header: Mapping[str, Any], token_format: TokenFormat) -> AlgorithmCapability:
        """
        Applies the header policy and returns the capability for the header's algorithm.

        Raises:
            UnsupportedAlgorithmError: If the algorithm is not allowed or does not fit the token format.
        """
        alg = self.header_policy.check(header, token_format)
        capability = self.capabilities[alg]
        expected = AlgorithmUse.ENCRYPTION if token_format is TokenFormat.JWE else AlgorithmUse.SIGNATURE
        if capability.use is not expected:
            raise UnsupportedAlgorithmError(
                f"Algorithm '{alg}' cannot be used for a {token_format.value} token", algorithm=alg
            )
        return capability


class AlgorithmNegotiator:
    """
    Maps every algorithm in ``ProviderMetadata.id_token_alg_values_supported()`` to a capability.

    ``none`` is never negotiated: it is dropped from the allow-list even if advertised.
    """

    def __init__(self, provider_metadata: ProviderMetadata, signature_verifier: SignatureVerifier) -> None:
        self.provider_metadata = provider_metadata
        self.signature_verifier = signature_verifier

    def negotiate(self) -> NegotiatedAlgorithms:
        """
        Raises:
            UnsupportedAlgorithmError: If an advertised algorithm has no implementation, or no signing
                algorithm remains.
        """
        capabilities: dict[str, AlgorithmCapability] = {}
        for name in self.provider_metadata.id_token_alg_values_supported():
            if name == "none":
                logger.warning("Provider advertises unsigned ID Tokens ('none'); excluded from the allow-list")
                continue
            capability = self.signature_verifier.capability(name)
            if capability is None:
                raise UnsupportedAlgorithmError(f"No implementation available for algorithm '{name}'", algorithm=name)
            capabilities[name] = capability

        if not any(c.use is AlgorithmUse.SIGNATURE for c in capabilities.values()):
            raise UnsupportedAlgorithmError("Provider advertises no usable ID Token signing algorithm")

        formats = {TokenFormat.JWS}
        if self.provider_metadata.id_token_encryption_alg_values_supported:
            formats.add(TokenFormat.JWE)

        allowed = tuple(capabilities)
        logger.debug(f"Negotiated ID Token algorithms: {', '.join(allowed)} ({', '.join(sorted(formats))})")

        return NegotiatedAlgorithms(
            allowed=allowed,
            capabilities=capabilities,
            header_policy=HeaderPolicy(
                allowed_algorithms=allowed,
                token_formats=frozenset(formats),
                allowed_encryptions=self.provider_metadata.id_token_encryption_enc_values_supported,
            ),
        )
