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
SignatureVerifier implementation backed by Authlib's JOSE algorithm registries.
"""

from typing import Any

from authlib.jose import JsonWebEncryption, JsonWebSignature
from authlib.jose.errors import JoseError

from coreason_oidc.algorithms import AlgorithmCapability, AlgorithmUse
from coreason_oidc.exceptions import SignatureVerificationError
from coreason_oidc.utils.logger import logger

_SIGNATURE_KEY_TYPES = (
    ("HS", "oct"),
    ("RS", "RSA"),
    ("PS", "RSA"),
    ("ES", "EC"),
    ("Ed", "OKP"),
)

_SIGNATURE_CURVES = {
    "ES256": "P-256",
    "ES384": "P-384",
    "ES512": "P-521",
    "ES256K": "secp256k1",
}


def _encryption_key_type(name: str) -> str:
    if name.startswith("RSA"):
        return "RSA"
    if name.startswith("ECDH-ES"):
        return "EC"
    return "oct"


class AuthlibSignatureVerifier:
    """
    Supplies JWS and JWE algorithm capabilities from Authlib.

    ``none`` is never supplied.
    """

    def __init__(self) -> None:
        self._jwe = JsonWebEncryption()

    def capability(self, name: str) -> AlgorithmCapability | None:
        if name == "none":
            return None

        algorithm = JsonWebSignature.ALGORITHMS_REGISTRY.get(name)
        if algorithm is not None:
            key_type = next((kty for prefix, kty in _SIGNATURE_KEY_TYPES if name.startswith(prefix)), None)
            if key_type is None:
                return None
            return AlgorithmCapability(
                name=name,
                use=AlgorithmUse.SIGNATURE,
                key_type=key_type,
                curve=_SIGNATURE_CURVES.get(name),
                implementation=algorithm,
            )

        algorithm = JsonWebEncryption.ALG_REGISTRY.get(name)
        if algorithm is not None:
            return AlgorithmCapability(
                name=name,
                use=AlgorithmUse.ENCRYPTION,
                key_type=_encryption_key_type(name),
                implementation=algorithm,
            )
        return None

    def verify(self, signing_input: bytes, signature: bytes, key: Any, capability: AlgorithmCapability) -> bool:
        algorithm = capability.implementation
        try:
            prepared = algorithm.prepare_key(key)
            return bool(algorithm.verify(signing_input, signature, prepared))
        except (JoseError, TypeError, ValueError) as e:
            # Unusable key material counts as a failed match, not a crash
            logger.debug(f"{capability.name} verification raised {type(e).__name__}: {e}")
            return False

    def decrypt(self, token: bytes, key: Any, capability: AlgorithmCapability) -> bytes:
        try:
            data = self._jwe.deserialize_compact(token, key)
        except (JoseError, TypeError, ValueError) as e:
            raise SignatureVerificationError(f"Unable to decrypt token with '{capability.name}': {e}") from e
        return data["payload"]  # type: ignore[no-any-return]
