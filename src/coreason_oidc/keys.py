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
Key sets used for ID Token verification, and the resolver seam that supplies them.
"""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any, Protocol

from authlib.jose import JsonWebKey, OctKey
from authlib.jose.errors import JoseError

from coreason_oidc.algorithms import AlgorithmCapability
from coreason_oidc.exceptions import ConfigurationError
from coreason_oidc.utils.logger import logger


def key_id(key: Any) -> str | None:
    kid = key.tokens.get("kid")
    return kid if isinstance(kid, str) else None


def is_compatible(key: Any, capability: AlgorithmCapability) -> bool:
    """
    True if ``key`` may be used with ``capability``: same key type, and when the JWK pins
    ``alg``, ``use`` or ``crv`` they agree with the algorithm.
    """
    if key.kty != capability.key_type:
        return False
    tokens = key.tokens
    alg = tokens.get("alg")
    if alg is not None and alg != capability.name:
        return False
    use = tokens.get("use")
    if use is not None and use != capability.use.value:
        return False
    if capability.curve is not None and tokens.get("crv") != capability.curve:
        return False
    return True


class KeySet:
    """
    Immutable collection of JSON Web Keys.

    Owned by the caller; the verifier only reads it.
    """

    def __init__(self, keys: Iterable[Any] = ()) -> None:
        self._keys = tuple(keys)

    @classmethod
    def from_jwks(cls, jwks: Mapping[str, Any]) -> "KeySet":
        """
        Imports a JWKS document. Keys of unknown type or with invalid material are skipped.

        Raises:
            ConfigurationError: If the document has no ``keys`` array.
        """
        if not isinstance(jwks, Mapping) or not isinstance(jwks.get("keys"), list):
            raise ConfigurationError("JWKS document must be an object with a 'keys' array")

        keys = []
        for raw in jwks["keys"]:
            try:
                keys.append(JsonWebKey.import_key(raw))
            except (JoseError, KeyError, TypeError, ValueError) as e:
                kid = raw.get("kid") if isinstance(raw, Mapping) else None
                logger.warning(f"Skipping unusable JWK (kid={kid}): {e}")
        return cls(keys)

    @classmethod
    def from_secret(cls, secret: str) -> "KeySet":
        """A single symmetric key, as used for HS* ID Tokens signed with the client secret."""
        return cls([OctKey.import_key(secret)])

    def __iter__(self) -> Iterator[Any]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def find(self, kid: str) -> list[Any]:
        return [key for key in self._keys if key_id(key) == kid]

    def compatible_with(self, capability: AlgorithmCapability) -> list[Any]:
        return [key for key in self._keys if is_compatible(key, capability)]


class KeyResolver(Protocol):
    """Supplies the key set; may block (e.g. fetch a JWKS), which is why it sits outside the core."""

    def get_key_set(self, force_refresh: bool = False) -> KeySet: ...


class StaticKeyResolver:
    """A resolver over a key set supplied directly by the caller."""

    def __init__(self, key_set: KeySet) -> None:
        self.key_set = key_set

    def get_key_set(self, force_refresh: bool = False) -> KeySet:
        return self.key_set
