"""Bearer token extraction from Flask requests.

The engine only ever sees the raw token; turning ``Authorization: Bearer
<token>`` into that string is the adapter's job and lives here.
"""

from __future__ import annotations

from flask import request

from .errors import MissingToken

_SCHEME = "bearer"


def parse_bearer(header_value: str | None) -> str:
    """Return the token from an ``Authorization`` header value.

    The scheme is matched case-insensitively and surrounding whitespace is
    ignored.

    Raises:
        MissingToken: Header empty, not the Bearer scheme, or no token.
    """
    value = (header_value or "").strip()
    if not value:
        raise MissingToken("Missing Authorization header")

    scheme, _, token = value.partition(" ")
    if scheme.lower() != _SCHEME:
        raise MissingToken("Invalid authorization scheme (expected 'Bearer')")

    token = token.strip()
    if not token:
        raise MissingToken("Bearer token is empty")
    return token


class BearerExtractor:
    """Reads the token from a Bearer authorization header.

    Attributes:
        _header: Header to read, ``Authorization`` unless a proxy forwards
            credentials under another name.
    """

    def __init__(self, header_name: str = "Authorization") -> None:
        if not header_name or not header_name.strip():
            raise ValueError("header_name cannot be empty")
        self._header = header_name

    def extract(self) -> str:
        return parse_bearer(request.headers.get(self._header))
