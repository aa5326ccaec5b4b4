"""Protocol definitions shared by the engine and its adapters.

Structural interfaces (PEP 544) for:
- Key sources (anything that can produce a fresh ``KeySet``)
- Token verification
- Token extraction from HTTP requests

Any class that implements the required methods satisfies the protocol, which
keeps test doubles free of inheritance.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

if TYPE_CHECKING:
    from .models import KeySet

# ============================================================================
# Type Aliases
# ============================================================================

Claims: TypeAlias = Mapping[str, Any]
"""Decoded token payload."""

ViewFunc: TypeAlias = Callable[..., Any]
"""Type alias for Flask view functions."""


# ============================================================================
# Core Protocols
# ============================================================================


class KeySource(Protocol):
    """Produces the provider's current key set.

    Implementations fetch the published JWK set, derive its lifetime and
    return an immutable ``KeySet``. They never return an empty set.
    """

    def fetch(self) -> KeySet:
        """Fetch the current key set.

        Returns:
            Freshly parsed key set, with ``refresh_after`` taken from the
            response caching metadata.

        Raises:
            KeyFetchError: Network failure, missing/invalid caching metadata,
                or an unparsable body. The concrete subclass names the reason.
        """
        ...


class TokenVerifier(Protocol):
    """Anything that turns a raw token into verified claims."""

    def verify(self, token: str) -> Claims:
        """Verify a token and return its claims.

        Raises:
            InvalidToken: The token was rejected. Subclasses carry the reason.
        """
        ...


class Extractor(Protocol):
    """Pulls the raw token out of the current request."""

    def extract(self) -> str:
        """Return the raw token string.

        Raises:
            MissingToken: No token in the request.
        """
        ...
