"""Errors raised while fetching signing keys and verifying tokens.

Two families live here:

- ``AuthError`` and its subclasses are verify-time failures. Every rejected
  token surfaces as an ``InvalidToken`` (or a subclass of it), so callers can
  treat them identically. The subclasses keep the precise reason for logs.
- ``KeyFetchError`` and its subclasses are raised by key sources while
  downloading the published key set. They are reported by the refresh loop and
  never escalated, except at construction time where they become the fatal
  ``KeySetUnavailable``.

Security Note:
    ``description`` is what adapters show to clients. It is intentionally the
    same for every ``InvalidToken`` subclass so a caller cannot learn which
    check failed. Use ``kind`` for server-side logs.
"""

from __future__ import annotations

from typing import ClassVar


class AuthError(Exception):
    """Base exception for all authentication failures.

    Attributes:
        error_code: HTTP status an adapter should answer with.
        kind: Stable identifier of the failure reason, for logs and metrics.
    """

    error_code: ClassVar[int] = 401
    kind: ClassVar[str] = "AuthError"
    public_message: ClassVar[str] = "Authentication failed"

    @property
    def description(self) -> str:
        """Client-safe message for this failure."""
        return self.public_message


class MissingToken(AuthError):  # noqa: N818
    """Raised by extractors when the request carries no bearer token."""

    kind = "MissingToken"
    public_message = "Missing token"


class InvalidToken(AuthError):  # noqa: N818
    """Raised when a token is present but cannot be verified.

    Raised as-is for structural problems (not three segments, undecodable
    header or payload) and for every claim failure: expired, wrong audience,
    wrong issuer, missing required claim, payload that does not fit the
    requested claims type. Those are not told apart on purpose.
    """

    kind = "InvalidToken"
    public_message = "Invalid token"


class InvalidKeyAlgorithm(InvalidToken):
    """The header declares an algorithm other than RS256."""

    kind = "InvalidKeyAlgorithm"


class NoKidHeader(InvalidToken):
    """The header has no usable ``kid``."""

    kind = "NoKidHeader"


class NotFoundMatchingKey(InvalidToken):
    """No key in the current key set has the token's ``kid``."""

    kind = "NotFoundMatchingKey"


class CannotDecodePublicKey(InvalidToken):
    """The matched key's modulus/exponent do not form a usable RSA key."""

    kind = "CannotDecodePublicKey"


class InvalidSignature(InvalidToken):
    """The signature does not verify under the matched key."""

    kind = "InvalidSignature"


class KeyFetchError(Exception):
    """Base exception for failures while fetching the published key set."""

    kind: ClassVar[str] = "KeyFetchError"


class KeyFetchNetworkError(KeyFetchError):
    """Transport failure, timeout, or non-success HTTP status."""

    kind = "NetworkError"


class MissingCacheControl(KeyFetchError):
    """The key set response has no ``Cache-Control`` header."""

    kind = "MissingCacheControl"


class MaxAgeError(KeyFetchError):
    """``Cache-Control`` is present but yields no usable ``max-age``."""


class MissingMaxAge(MaxAgeError):
    """``Cache-Control`` has no ``max-age`` directive."""

    kind = "MissingMaxAge"


class NonNumericMaxAge(MaxAgeError):
    """The ``max-age`` value is not a non-negative integer."""

    kind = "NonNumericMaxAge"


class KeySetParseError(KeyFetchError):
    """The response body is not a JSON key set with at least one valid key."""

    kind = "KeySetParseError"


class KeySetUnavailable(RuntimeError):
    """No key set could be obtained while constructing the engine.

    This is fatal: the engine refuses to start without keys. It usually means
    the provider is unreachable or misconfigured, not a per-request problem.
    """
