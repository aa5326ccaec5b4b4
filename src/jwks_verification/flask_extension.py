"""Flask adapter for the verification engine.

Protects routes with a decorator. The adapter only extracts the token, calls
``verify(token)`` and maps failures to HTTP 401; all verification logic stays
in the engine.

Security Model:
1. Extract the bearer token from the request
2. Verify it (signature + claims) with the configured verifier
3. Store the verified claims in ``flask.g.jwt`` for the view
4. Answer every failure with the same generic 401
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, abort, current_app, g

from .errors import AuthError, InvalidToken
from .extractors import BearerExtractor

if TYPE_CHECKING:
    from .protocols import Claims, Extractor, TokenVerifier, ViewFunc

logger = logging.getLogger(__name__)

_EXT_KEY: Final[str] = "jwks_verification"
"""Flask extensions registry key for AuthExtension."""


class AuthExtension:
    """
    Flask decorator glue for bearer token authentication.

    Responsibilities:
    - Extract token from request (Extractor)
    - Verify token (TokenVerifier, normally a ``FirebaseAuth``)
    - Store verified claims in ``flask.g.jwt`` (and a decoded object in
      ``flask.g.user`` when a claims decoder is given)
    - Convert auth errors to HTTP 401 (abort)

    Pattern:
        auth = AuthExtension()
        auth.init_app(app, verifier=firebase_auth)

    Usage:
        auth = AuthExtension(firebase_auth)

        @app.get("/me")
        @auth.require(claims_type=FirebaseUser.from_claims)
        def me(): ...
    """

    def __init__(
        self,
        verifier: TokenVerifier | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        self._verifier: TokenVerifier | None = verifier
        self._extractor: Extractor = extractor or BearerExtractor()

    def init_app(
        self,
        app: Flask,
        *,
        verifier: TokenVerifier | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        """Register the extension on a Flask app.

        Args:
            app: The Flask application instance.
            verifier: Replaces the verifier given to the constructor.
            extractor: Replaces the extractor given to the constructor.
        """
        if verifier is not None:
            self._verifier = verifier
        if extractor is not None:
            self._extractor = extractor

        app.extensions[_EXT_KEY] = self

    def authenticate(self) -> Claims:
        """Extract and verify the current request's token.

        Raises:
            MissingToken: No bearer token.
            InvalidToken: The token was rejected.
            RuntimeError: No verifier configured.
        """
        if self._verifier is None:
            raise RuntimeError("AuthExtension has no verifier; pass one or call init_app()")
        token = self._extractor.extract()
        return self._verifier.verify(token)

    def require(self, *, claims_type: Callable[[Claims], Any] | None = None):
        """Decorator that rejects requests without a valid token.

        Args:
            claims_type: Optional decoder applied to the verified claims
                (e.g. ``FirebaseUser.from_claims``). The result is stored in
                ``flask.g.user``. Claims that do not fit are a 401 as well.

        Error mapping:
        - ``MissingToken``  -> HTTP 401 ("Missing token")
        - ``InvalidToken`` and all its subclasses -> HTTP 401 ("Invalid token")

        Side Effects:
            - Writes verified claims to ``flask.g.jwt`` before calling the view.
            - May terminate request handling early via ``flask.abort``.
        """

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    claims = self.authenticate()
                    g.jwt = claims
                    if claims_type is not None:
                        g.user = _decode(claims, claims_type)
                except AuthError as e:
                    logger.debug("Rejected request on %s: %s", view.__name__, e.kind)
                    abort(e.error_code, description=e.description)

                return view(*args, **kwargs)

            return wrapper

        return decorator


def current_claims() -> Mapping[str, Any]:
    """Return the verified claims of the current request.

    Raises:
        RuntimeError: Called outside a view protected by ``require()``.
    """
    claims = g.get("jwt")
    if claims is None:
        raise RuntimeError("No verified claims on this request; protect the view with require()")
    return claims


def get_extension(app: Flask | None = None) -> AuthExtension:
    """Return the ``AuthExtension`` registered on ``app`` (default: current app)."""
    app = app or current_app
    try:
        return app.extensions[_EXT_KEY]
    except KeyError:
        raise RuntimeError("AuthExtension is not registered; call init_app()") from None


def _decode(claims: Claims, decoder: Callable[[Claims], Any]) -> Any:
    try:
        return decoder(claims)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidToken("Token claims do not match the expected shape") from e
