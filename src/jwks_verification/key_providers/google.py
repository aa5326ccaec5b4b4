"""
Google Secure Token JWKS key source.

Downloads the key set that signs Firebase ID tokens and derives how long it
stays fresh from the response's ``Cache-Control: max-age``.
"""

from __future__ import annotations

import logging

import httpx

from ..cache_control import parse_max_age
from ..config import DEFAULT_HTTP_TIMEOUT, GOOGLE_JWK_URL
from ..errors import (
    KeyFetchNetworkError,
    KeySetParseError,
    MaxAgeError,
    MissingCacheControl,
)
from ..models import KeySet
from ..protocols import KeySource

logger = logging.getLogger(__name__)


class GoogleJWKSProvider(KeySource):
    """
    Fetches the provider's published JWK set over HTTP.

    Fetch Steps
    -----------
    1) GET the configured endpoint with a bounded timeout.
        - Transport failure or non-2xx status -> ``KeyFetchNetworkError``.

    2) Read ``Cache-Control`` and parse ``max-age``.
        - Header missing -> ``MissingCacheControl``.
        - Directive missing / not numeric -> ``MissingMaxAge`` /
          ``NonNumericMaxAge``, unless ``fallback_max_age`` is set, in which
          case the fallback lifetime is used and a warning logged.

    3) Parse the body as ``{"keys": [...]}``.
        - Anything else, or no keys -> ``KeySetParseError``.

    Parameters
    ----------
    url : str
        Key set endpoint. Fixed at construction, never request-controlled.

    client : httpx.Client | None
        Client to use. When omitted the provider owns one and ``close()``
        releases it.

    timeout : float
        Timeout in seconds for the owned client.

    fallback_max_age : float | None
        Lifetime to use when ``max-age`` is missing or malformed. ``None``
        (the default) makes those conditions errors.

    Example
    -------
    provider = GoogleJWKSProvider()
    key_set = provider.fetch()
    key_set.refresh_after  # e.g. 21600
    """

    def __init__(
        self,
        url: str = GOOGLE_JWK_URL,
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        fallback_max_age: float | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        if fallback_max_age is not None and fallback_max_age < 0:
            raise ValueError(f"fallback_max_age must not be negative, got {fallback_max_age}")

        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._fallback_max_age = fallback_max_age

    @property
    def url(self) -> str:
        return self._url

    def fetch(self) -> KeySet:
        try:
            response = self._client.get(self._url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise KeyFetchNetworkError(f"Failed to fetch key set from {self._url}: {e}") from e

        refresh_after = self._refresh_after(response)

        try:
            payload = response.json()
        except ValueError as e:
            raise KeySetParseError("Key set response is not valid JSON") from e

        key_set = KeySet.from_jwks(payload, refresh_after)
        logger.debug(
            "Fetched %d signing keys from %s (max-age %ss)",
            len(key_set),
            self._url,
            refresh_after,
        )
        return key_set

    def _refresh_after(self, response: httpx.Response) -> float:
        cache_control = response.headers.get("Cache-Control")
        if cache_control is None:
            raise MissingCacheControl(f"No Cache-Control header from {self._url}")

        try:
            return parse_max_age(cache_control)
        except MaxAgeError as e:
            if self._fallback_max_age is None:
                raise
            logger.warning(
                "%s (%s); using fallback lifetime of %ss",
                e.kind,
                e,
                self._fallback_max_age,
            )
            return self._fallback_max_age

    def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            self._client.close()
