"""
Firebase ID token verification with a self-refreshing JWKS cache.

Lifecycle
---------
1. ``FirebaseAuth(config)`` fetches the provider's key set once. Failure is
   fatal (``KeySetUnavailable``): the engine never runs without keys.
2. A background thread re-fetches the key set whenever the response's
   ``Cache-Control: max-age`` runs out, and every 10 seconds after a failed
   attempt. A failed refresh keeps the previous key set.
3. ``FirebaseAuth.verify(token)``:
   - Reads the unverified header; only RS256 is accepted
   - Picks the key whose ``kid`` matches the header
   - Verifies the signature, then ``exp``, ``aud`` and ``iss``
4. ``FirebaseAuth.shutdown()`` stops the background thread.

Security notes
--------------
- Never trust claims until signature verification succeeds.
- Only RS256 is accepted (avoid algorithm confusion).
- ``aud`` and ``iss`` must name *your* project.
- Every rejection is an ``InvalidToken``; tell clients nothing more.
- ``emulator=True`` disables all checks. It is an explicit argument and is
  never read from the environment.

Example usage
-------------

.. code-block:: python

    from flask import Flask, g

    from jwks_verification import AuthExtension, FirebaseAuth, FirebaseUser

    firebase_auth = FirebaseAuth.from_project_id("my-project")
    auth = AuthExtension(verifier=firebase_auth)

    app = Flask(__name__)
    auth.init_app(app)

    @app.get("/me")
    @auth.require(claims_type=FirebaseUser.from_claims)
    def me():
        return {"uid": g.user.user_id, "email": g.user.email}
"""

# Cache control
from .cache_control import DEFAULT_MAX_AGE, parse_max_age

# Key cache
from .cache_stores import KeyCache

# Configuration
from .config import GOOGLE_JWK_URL, AuthSettings, ProviderConfig

# Engine
from .engine import FirebaseAuth

# Errors
from .errors import (
    AuthError,
    CannotDecodePublicKey,
    InvalidKeyAlgorithm,
    InvalidSignature,
    InvalidToken,
    KeyFetchError,
    KeyFetchNetworkError,
    KeySetParseError,
    KeySetUnavailable,
    MaxAgeError,
    MissingCacheControl,
    MissingMaxAge,
    MissingToken,
    NoKidHeader,
    NonNumericMaxAge,
    NotFoundMatchingKey,
)

# Extractors
from .extractors import BearerExtractor, parse_bearer

# Flask extension
from .flask_extension import AuthExtension, current_claims, get_extension

# Key providers
from .key_providers import GoogleJWKSProvider

# Models
from .models import FirebaseProvider, FirebaseUser, KeySet, SigningKey

# Protocols
from .protocols import Claims, Extractor, KeySource, TokenVerifier, ViewFunc

# Refresh scheduler
from .refresh_scheduler import RefreshScheduler, SchedulerState

# Verifier
from .verifier import JWKVerifier, VerifyOptions, decode_unverified

__all__ = [
    # Errors
    "AuthError",
    "CannotDecodePublicKey",
    "InvalidKeyAlgorithm",
    "InvalidSignature",
    "InvalidToken",
    "KeyFetchError",
    "KeyFetchNetworkError",
    "KeySetParseError",
    "KeySetUnavailable",
    "MaxAgeError",
    "MissingCacheControl",
    "MissingMaxAge",
    "MissingToken",
    "NoKidHeader",
    "NonNumericMaxAge",
    "NotFoundMatchingKey",
    # Protocols
    "Claims",
    "Extractor",
    "KeySource",
    "TokenVerifier",
    "ViewFunc",
    # Configuration
    "AuthSettings",
    "GOOGLE_JWK_URL",
    "ProviderConfig",
    # Models
    "FirebaseProvider",
    "FirebaseUser",
    "KeySet",
    "SigningKey",
    # Cache control
    "DEFAULT_MAX_AGE",
    "parse_max_age",
    # Key providers
    "GoogleJWKSProvider",
    # Key cache
    "KeyCache",
    # Refresh scheduler
    "RefreshScheduler",
    "SchedulerState",
    # Verifier
    "JWKVerifier",
    "VerifyOptions",
    "decode_unverified",
    # Engine
    "FirebaseAuth",
    # Extractors
    "BearerExtractor",
    "parse_bearer",
    # Flask extension
    "AuthExtension",
    "current_claims",
    "get_extension",
]
