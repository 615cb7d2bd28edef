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
HTTP Transport seam and its httpx implementation.

The core never performs I/O itself; it hands a RequestSpec to an HttpTransport.
"""

from collections.abc import Mapping
from typing import Any, Protocol

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_oidc.exceptions import HttpTransportError, OversizedResponseError
from coreason_oidc.models import RequestSpec, TransportResponse, parse_json_object
from coreason_oidc.utils.logger import logger

DEFAULT_MAX_RESPONSE_BYTES = 1_000_000


class HttpTransport(Protocol):
    """Executes a RequestSpec. Timeouts and retries are the transport's business."""

    def send(self, request: RequestSpec) -> TransportResponse: ...


class HttpxTransport:
    """
    HttpTransport over ``httpx.Client`` with a response size cap.

    Attributes:
        client (httpx.Client): The underlying client; created and instrumented when not supplied.
        max_response_bytes (int): Responses larger than this raise OversizedResponseError.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        self._internal_client = client is None
        self.client = client or httpx.Client(timeout=timeout)
        self.max_response_bytes = max_response_bytes
        if self._internal_client:
            HTTPXClientInstrumentor().instrument_client(self.client)

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._internal_client:
            self.client.close()

    def send(self, request: RequestSpec) -> TransportResponse:
        """
        Raises:
            OversizedResponseError: If the body exceeds ``max_response_bytes``.
            HttpTransportError: If httpx fails (connection, timeout, protocol).
        """
        try:
            with self.client.stream(
                request.method,
                request.uri,
                headers=request.headers,
                content=request.body.encode("utf-8") if request.body else None,
            ) as response:
                content_length = response.headers.get("Content-Length")
                if content_length and content_length.isdigit() and int(content_length) > self.max_response_bytes:
                    raise OversizedResponseError(f"Response from {request.uri} is too large ({content_length} bytes)")

                content = bytearray()
                for chunk in response.iter_bytes():
                    content.extend(chunk)
                    if len(content) > self.max_response_bytes:
                        raise OversizedResponseError(f"Response from {request.uri} is too large")

                return TransportResponse(
                    status_code=response.status_code,
                    headers=dict(response.headers),
                    content=bytes(content),
                )
        except httpx.HTTPError as e:
            logger.error(f"{request.method} {request.uri} failed: {e}")
            raise HttpTransportError(f"{request.method} {request.uri} failed: {e}") from e


def fetch_json(transport: HttpTransport, url: str) -> Mapping[str, Any]:
    """
    GETs ``url`` and decodes a JSON object. Used for discovery documents and JWKS.

    Raises:
        HttpTransportError: If the transport fails or the status is not 2xx.
        InvalidResponseError: If the body is not a JSON object.
    """
    response = transport.send(RequestSpec(method="GET", uri=url, header_items=(("Accept", "application/json"),)))
    if not response.is_success:
        raise HttpTransportError(f"GET {url} returned HTTP {response.status_code}")
    return parse_json_object(response.content, f"Response from {url}")
