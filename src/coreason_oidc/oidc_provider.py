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
OIDC Provider component for fetching and caching discovery metadata and the JWKS.
"""

import threading
import time
from collections.abc import Callable

from coreason_oidc.exceptions import ConfigurationError
from coreason_oidc.keys import KeySet
from coreason_oidc.metadata import ProviderMetadata
from coreason_oidc.transport import HttpTransport, fetch_json
from coreason_oidc.utils.logger import logger


class OIDCProvider:
    """
    Fetches and caches the provider's discovery metadata and key set. Implements KeyResolver.

    Attributes:
        discovery_url (str | None): The OIDC discovery URL.
        cache_ttl (int): The key set cache time-to-live in seconds.
        refresh_cooldown (float): Minimum seconds between forced key set refreshes.
    """

    def __init__(
        self,
        transport: HttpTransport,
        discovery_url: str | None = None,
        metadata: ProviderMetadata | None = None,
        expected_issuer: str | None = None,
        cache_ttl: int = 3600,
        refresh_cooldown: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the OIDCProvider.

        Args:
            transport: Transport used for discovery and JWKS requests.
            discovery_url: The discovery URL (e.g., https://idp.example/.well-known/openid-configuration).
            metadata: Already known metadata; when given, discovery is skipped.
            expected_issuer: If set, discovered metadata must carry exactly this issuer.
            cache_ttl: Time-to-live for the key set cache in seconds. Defaults to 3600 (1 hour).
            refresh_cooldown: Minimum time in seconds between forced refreshes. Defaults to 30.0.
            clock: Time source, for tests.

        Raises:
            ConfigurationError: If neither ``discovery_url`` nor ``metadata`` is given.
        """
        if discovery_url is None and metadata is None:
            raise ConfigurationError("OIDCProvider needs a discovery_url or provider metadata")
        self.transport = transport
        self.discovery_url = discovery_url
        self.expected_issuer = expected_issuer
        self.cache_ttl = cache_ttl
        self.refresh_cooldown = refresh_cooldown
        self.clock = clock
        self._metadata = metadata
        self._key_set: KeySet | None = None
        self._last_update: float = 0.0
        self._lock = threading.Lock()

    def _fetch_metadata(self) -> ProviderMetadata:
        """
        Raises:
            ConfigurationError: If the document is invalid or its issuer does not match ``expected_issuer``.
            HttpTransportError: If the request fails.
        """
        logger.debug(f"Fetching discovery metadata from {self.discovery_url}")
        data = fetch_json(self.transport, self.discovery_url)  # type: ignore[arg-type]
        metadata = ProviderMetadata.from_mapping(data)
        # Discovery 4.3: the document must belong to the issuer it was fetched for
        if self.expected_issuer is not None and metadata.issuer != self.expected_issuer:
            raise ConfigurationError(
                f"Discovered issuer '{metadata.issuer}' does not match expected issuer '{self.expected_issuer}'"
            )
        return metadata

    def get_metadata(self) -> ProviderMetadata:
        """
        Returns the provider metadata, discovering it on first use.
        """
        if self._metadata is None:
            with self._lock:
                if self._metadata is None:
                    self._metadata = self._fetch_metadata()
        return self._metadata

    def reload_metadata(self) -> ProviderMetadata:
        """
        Re-runs discovery and drops the cached key set.
        """
        if self.discovery_url is None:
            return self.get_metadata()
        metadata = self._fetch_metadata()
        with self._lock:
            self._metadata = metadata
            self._key_set = None
            self._last_update = 0.0
        return metadata

    def _refresh_key_set_critical_section(self, force_refresh: bool) -> KeySet:
        """
        Must be called while holding the lock.
        """
        current_time = self.clock()
        age = current_time - self._last_update

        # Double check inside the lock
        if self._key_set is not None and not force_refresh and age < self.cache_ttl:
            return self._key_set

        if self._key_set is not None and force_refresh and age < self.refresh_cooldown:
            logger.warning("JWKS refresh cooldown active. Returning cached keys despite force_refresh request.")
            return self._key_set

        if self._metadata is None:
            self._metadata = self._fetch_metadata()

        jwks_uri = self._metadata.jwks_uri
        logger.debug(f"Fetching JWKS from {jwks_uri}")
        key_set = KeySet.from_jwks(fetch_json(self.transport, jwks_uri))

        self._key_set = key_set
        self._last_update = current_time
        logger.info(f"Loaded {len(key_set)} keys from {jwks_uri}")
        return key_set

    def get_key_set(self, force_refresh: bool = False) -> KeySet:
        """
        Returns the key set, using the cache if valid.

        Args:
            force_refresh: If True, bypasses the cache (subject to the refresh cooldown).

        Raises:
            HttpTransportError: If fetching fails.
            ConfigurationError: If the JWKS document is invalid.
        """
        # Fast path without the lock
        if not force_refresh:
            key_set = self._key_set
            if key_set is not None and (self.clock() - self._last_update) < self.cache_ttl:
                return key_set

        with self._lock:
            return self._refresh_key_set_critical_section(force_refresh)
