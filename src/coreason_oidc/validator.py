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
IdTokenVerifier component for verifying ID Token signatures and claims.
"""

import binascii
import hashlib
import hmac
import json
import re
import time
from collections.abc import Callable, Iterable, Mapping
from enum import StrEnum
from typing import Any

from authlib.common.encoding import urlsafe_b64decode
from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode
from pydantic import SecretStr, ValidationError

from coreason_oidc.algorithms import (
    AlgorithmCapability,
    AlgorithmNegotiator,
    NegotiatedAlgorithms,
    SignatureVerifier,
    TokenFormat,
)
from coreason_oidc.client_information import ClientInformation
from coreason_oidc.exceptions import (
    ClaimValidationError,
    CoreasonOIDCError,
    MalformedTokenError,
    SignatureVerificationError,
    UnknownKeyError,
)
from coreason_oidc.jose_backend import AuthlibSignatureVerifier
from coreason_oidc.keys import KeyResolver, KeySet, is_compatible
from coreason_oidc.metadata import ProviderMetadata
from coreason_oidc.models import Claims
from coreason_oidc.utils.logger import logger

tracer = trace.get_tracer(__name__)

# Always validated; caller-supplied mandatory claims are presence checks on top
BASE_CLAIMS = ("aud", "exp", "iat", "iss", "sub")

_SEGMENT = re.compile(r"[A-Za-z0-9_-]*")


class VerificationState(StrEnum):
    UNVERIFIED = "unverified"
    SIGNATURE_CHECKED = "signature_checked"
    CLAIMS_CHECKED = "claims_checked"
    FAILED = "failed"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _decode_segment(segment: str, what: str) -> bytes:
    try:
        return urlsafe_b64decode(segment.encode("ascii"))
    except (binascii.Error, ValueError) as e:
        raise MalformedTokenError(f"Token {what} is not valid base64url: {e}") from e


def _decode_json_object(raw: bytes, what: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedTokenError(f"Token {what} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedTokenError(f"Token {what} must be a JSON object")
    return data


def split_compact(token: str | bytes) -> tuple[TokenFormat, list[str]]:
    """
    Splits a compact serialization into its segments.

    Raises:
        MalformedTokenError: If the token is neither a 3-segment JWS nor a 5-segment JWE.
    """
    if isinstance(token, bytes):
        try:
            token = token.decode("ascii")
        except UnicodeDecodeError as e:
            raise MalformedTokenError("Token is not ASCII") from e

    segments = token.strip().split(".")
    if len(segments) == 3:
        token_format = TokenFormat.JWS
    elif len(segments) == 5:
        token_format = TokenFormat.JWE
    else:
        raise MalformedTokenError(f"Expected 3 (JWS) or 5 (JWE) segments, got {len(segments)}")

    if not segments[0] or any(not _SEGMENT.fullmatch(segment) for segment in segments):
        raise MalformedTokenError("Token segments must be non-empty base64url")
    return token_format, segments


class IdTokenVerifier:
    """
    Verifies ID Tokens: structure, algorithm allow-list, signature, then claims.

    Claim checks all run and every violation is collected; the first violation (in the order
    iss, aud, azp, exp, nbf, iat, sub, nonce, mandatory claims) is the one reported.

    Attributes:
        provider_metadata (ProviderMetadata): Supplies the issuer and advertised algorithms.
        client_information (ClientInformation): Supplies the audience and the HS* secret.
        key_resolver (KeyResolver): Supplies the provider's key set.
        signature_verifier (SignatureVerifier): The cryptographic collaborator.
        negotiated (NegotiatedAlgorithms): Allow-list and header policy, negotiated at construction.
        leeway (int): Acceptable clock skew in seconds.
        max_age (int | None): Maximum accepted age of ``iat`` in seconds.
        mandatory_claims (tuple[str, ...]): Claim names every token must carry, unioned with per-call names.
    """

    def __init__(
        self,
        provider_metadata: ProviderMetadata,
        client_information: ClientInformation,
        key_resolver: KeyResolver,
        signature_verifier: SignatureVerifier | None = None,
        leeway: int = 0,
        max_age: int | None = None,
        mandatory_claims: Iterable[str] = (),
        pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt"),
        decryption_keys: KeySet | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the IdTokenVerifier.

        Raises:
            UnsupportedAlgorithmError: If an advertised algorithm cannot be implemented.
        """
        self.provider_metadata = provider_metadata
        self.client_information = client_information
        self.key_resolver = key_resolver
        self.signature_verifier = signature_verifier or AuthlibSignatureVerifier()
        self.leeway = leeway
        self.max_age = max_age
        self.mandatory_claims = tuple(mandatory_claims)
        self.pii_salt = pii_salt
        self.decryption_keys = decryption_keys
        self.clock = clock
        self.negotiated: NegotiatedAlgorithms = AlgorithmNegotiator(
            provider_metadata, self.signature_verifier
        ).negotiate()

    def _anonymize(self, value: str) -> str:
        return hmac.new(
            self.pii_salt.get_secret_value().encode("utf-8"),
            value.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def verify(
        self,
        token: str | bytes,
        mandatory_claims: Iterable[str] = (),
        nonce: str | None = None,
        key_set: KeySet | None = None,
    ) -> Claims:
        """
        Verifies ``token`` and returns its claims.

        Emits an OpenTelemetry span ``verify_id_token``.

        Args:
            token: The compact-serialized ID Token.
            mandatory_claims: Claim names that must be present, on top of the configured ones.
            nonce: The nonce sent in the authentication request, if any.
            key_set: Overrides the key resolver for this call.

        Returns:
            Claims: The immutable claims snapshot.

        Raises:
            MalformedTokenError: If the serialization, header or payload is malformed.
            UnsupportedAlgorithmError: If the header algorithm is not in the allow-list.
            SignatureVerificationError: If no key verifies the signature.
            ClaimValidationError: If a claim is invalid; carries the claim name.
        """
        with tracer.start_as_current_span("verify_id_token") as span:
            state = VerificationState.UNVERIFIED
            try:
                header, payload = self._verify_signature(token, key_set, span)
                state = VerificationState.SIGNATURE_CHECKED
                claims = self._check_claims(header, payload, mandatory_claims, nonce)
                state = VerificationState.CLAIMS_CHECKED
            except CoreasonOIDCError as e:
                logger.warning(f"ID Token verification failed after state '{state}': {type(e).__name__}: {e}")
                span.set_attribute("oidc.state", VerificationState.FAILED.value)
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            user_hash = self._anonymize(claims.sub)
            logger.info(f"ID Token verified for subject {user_hash}")
            span.set_attribute("oidc.state", state.value)
            span.set_attribute("enduser.id", user_hash)
            span.set_status(Status(StatusCode.OK))
            return claims

    def _verify_signature(
        self, token: str | bytes, key_set: KeySet | None, span: Span
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        token_format, segments = split_compact(token)
        header = _decode_json_object(_decode_segment(segments[0], "header"), "header")

        # Allow-list runs before any key is touched
        capability = self.negotiated.resolve(header, token_format)
        span.set_attribute("oidc.alg", capability.name)

        if token_format is TokenFormat.JWE:
            nested = self._decrypt(".".join(segments).encode("ascii"), header, capability)
            token_format, segments = split_compact(nested)
            if token_format is not TokenFormat.JWS:
                raise MalformedTokenError("Encrypted ID Token must contain a signed JWT")
            header = _decode_json_object(_decode_segment(segments[0], "header"), "header")
            capability = self.negotiated.resolve(header, token_format)
            span.set_attribute("oidc.alg", capability.name)

        kid = header.get("kid")
        if kid is not None:
            span.set_attribute("oidc.kid", str(kid))

        signing_input = f"{segments[0]}.{segments[1]}".encode("ascii")
        signature = _decode_segment(segments[2], "signature")

        for key in self._select_keys(header, capability, key_set):
            if self.signature_verifier.verify(signing_input, signature, key, capability):
                break
        else:
            raise SignatureVerificationError(f"Invalid signature: no key verified the '{capability.name}' signature")

        return header, _decode_json_object(_decode_segment(segments[1], "payload"), "payload")

    def _select_keys(
        self, header: Mapping[str, Any], capability: AlgorithmCapability, key_set: KeySet | None
    ) -> list[Any]:
        if capability.key_type == "oct":
            # OIDC Core 10.1: symmetric signatures use the client secret
            if not self.client_information.is_confidential:
                raise SignatureVerificationError(f"'{capability.name}' requires a client secret")
            secret = self.client_information.client_secret.get_secret_value()  # type: ignore[union-attr]
            return list(KeySet.from_secret(secret))

        keys = key_set if key_set is not None else self.key_resolver.get_key_set()

        kid = header.get("kid")
        if kid is not None:
            if not isinstance(kid, str):
                raise MalformedTokenError("Token header 'kid' must be a string")
            matching = keys.find(kid)
            if not matching:
                raise UnknownKeyError(kid)
            candidates = [key for key in matching if is_compatible(key, capability)]
            if not candidates:
                raise SignatureVerificationError(f"Key '{kid}' cannot be used with '{capability.name}'")
            return candidates

        candidates = keys.compatible_with(capability)
        if not candidates:
            raise SignatureVerificationError(f"No key in the key set is compatible with '{capability.name}'")
        return candidates

    def _decrypt(self, token: bytes, header: Mapping[str, Any], capability: AlgorithmCapability) -> bytes:
        if self.decryption_keys is None:
            raise SignatureVerificationError(
                f"Received an encrypted ID Token ('{capability.name}') but no decryption keys are configured"
            )

        kid = header.get("kid")
        candidates = self.decryption_keys.find(kid) if isinstance(kid, str) else list(self.decryption_keys)
        candidates = [key for key in candidates if is_compatible(key, capability)]
        if not candidates:
            raise SignatureVerificationError(f"No decryption key is compatible with '{capability.name}'")

        last_error: SignatureVerificationError | None = None
        for key in candidates:
            try:
                return self.signature_verifier.decrypt(token, key, capability)
            except SignatureVerificationError as e:
                last_error = e
        raise last_error  # type: ignore[misc]

    def _check_claims(
        self,
        header: Mapping[str, Any],
        payload: Mapping[str, Any],
        mandatory_claims: Iterable[str],
        nonce: str | None,
    ) -> Claims:
        now = self.clock()
        leeway = self.leeway
        client_id = self.client_information.client_id
        issuer = self.provider_metadata.issuer
        violations: list[tuple[str, str]] = []

        iss = payload.get("iss")
        if iss is None:
            violations.append(("iss", "missing"))
        elif iss != issuer:
            violations.append(("iss", f"expected '{issuer}', got '{iss}'"))

        aud = payload.get("aud")
        audiences = [aud] if isinstance(aud, str) else aud
        if aud is None:
            violations.append(("aud", "missing"))
        elif not isinstance(audiences, list) or not all(isinstance(a, str) for a in audiences):
            violations.append(("aud", "must be a string or an array of strings"))
        elif client_id not in audiences:
            violations.append(("aud", f"does not contain client_id '{client_id}'"))

        azp = payload.get("azp")
        if azp is not None and azp != client_id:
            violations.append(("azp", f"authorized party '{azp}' is not client_id '{client_id}'"))

        exp = payload.get("exp")
        if exp is None:
            violations.append(("exp", "missing"))
        elif not _is_number(exp):
            violations.append(("exp", "must be a number"))
        elif exp + leeway <= now:
            violations.append(("exp", "token has expired"))

        nbf = payload.get("nbf")
        if nbf is not None:
            if not _is_number(nbf):
                violations.append(("nbf", "must be a number"))
            elif nbf > now + leeway:
                violations.append(("nbf", "token is not valid yet"))

        iat = payload.get("iat")
        if iat is None:
            violations.append(("iat", "missing"))
        elif not _is_number(iat):
            violations.append(("iat", "must be a number"))
        elif iat > now + leeway:
            violations.append(("iat", "issued in the future"))
        elif _is_number(exp) and iat > exp:
            violations.append(("iat", "issued after expiry"))
        elif self.max_age is not None and iat + self.max_age + leeway < now:
            violations.append(("iat", f"issued more than {self.max_age}s ago"))

        sub = payload.get("sub")
        if sub is None:
            violations.append(("sub", "missing"))
        elif not isinstance(sub, str) or not sub.strip():
            violations.append(("sub", "must be a non-empty string"))

        if nonce is not None:
            token_nonce = payload.get("nonce")
            if token_nonce is None:
                violations.append(("nonce", "missing"))
            elif not isinstance(token_nonce, str) or not hmac.compare_digest(
                token_nonce.encode("utf-8"), nonce.encode("utf-8")
            ):
                violations.append(("nonce", "does not match the expected nonce"))

        for name in dict.fromkeys((*self.mandatory_claims, *mandatory_claims)):
            if name not in BASE_CLAIMS and name not in payload:
                violations.append((name, "missing mandatory claim"))

        if violations:
            claim, reason = violations[0]
            raise ClaimValidationError(claim, reason, violations)

        try:
            return Claims.from_token(payload, header)
        except ValidationError as e:
            error = e.errors()[0]
            claim = str(error["loc"][0]) if error["loc"] else "claims"
            raise ClaimValidationError(claim, f"invalid value: {error['msg']}") from e
