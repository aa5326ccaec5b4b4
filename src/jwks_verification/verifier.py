"""Token verification against a key set snapshot, using PyJWT.

``JWKVerifier`` is stateless apart from its options: the caller hands it the
key set to use for each call. That keeps verification synchronous and
lock-free, and lets the engine pass whatever snapshot the cache holds at the
moment the request arrives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import jwt

from .errors import (
    InvalidKeyAlgorithm,
    InvalidSignature,
    InvalidToken,
    NoKidHeader,
    NotFoundMatchingKey,
)
from .protocols import Claims

if TYPE_CHECKING:
    from .config import ProviderConfig
    from .models import KeySet

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHM: Final[str] = "RS256"

_REQUIRED_CLAIMS: Final[tuple[str, ...]] = ("exp", "aud", "iss")


@dataclass(frozen=True, slots=True)
class VerifyOptions:
    """Validation rules for tokens.

    Attributes:
        issuer: Expected ``iss`` claim.

        audience: Expected ``aud`` claim.

        leeway: Clock skew tolerance in seconds for ``exp``/``nbf``. Keep
            it small. Default: 0.

        emulator: Skip signature, key and claim checks and trust the
            payload as-is. Only for local emulators and tests. It must be
            set explicitly by code; nothing reads it from the environment.

    Example:
        ```python
        options = VerifyOptions.for_provider(
            ProviderConfig.from_project_id("my-project"),
            leeway=5,
        )
        verifier = JWKVerifier(options)
        ```
    """

    issuer: str
    audience: str
    leeway: int = 0
    emulator: bool = False

    @classmethod
    def for_provider(
        cls, config: ProviderConfig, *, leeway: int = 0, emulator: bool = False
    ) -> VerifyOptions:
        return cls(
            issuer=config.issuer,
            audience=config.audience,
            leeway=leeway,
            emulator=emulator,
        )


class JWKVerifier:
    """Verifies RS256 tokens against a ``KeySet``.

    Checks, in order:
        1. Three dot-separated segments with a decodable header.
        2. ``alg`` is RS256 (before any key lookup).
        3. ``kid`` is present.
        4. A key with that ``kid`` exists in the key set.
        5. The key's modulus/exponent form an RSA public key.
        6. The signature verifies.
        7. ``exp`` is in the future and ``aud``/``iss`` match. ``iat`` is not checked.

    Steps 1 and 7 raise plain ``InvalidToken``; the others raise the matching
    subclass. Callers should treat them all alike.

    Thread Safety:
        Stateless per call; safe to share between threads.
    """

    def __init__(self, options: VerifyOptions) -> None:
        self._opt = options
        if options.emulator:
            logger.warning(
                "Token verification is running in emulator mode: signatures are NOT checked"
            )

    @property
    def options(self) -> VerifyOptions:
        return self._opt

    def verify(self, token: str, key_set: KeySet) -> Claims:
        """Verify a token and return its claims.

        Args:
            token: Raw compact token, without any ``Bearer`` prefix.
            key_set: Key set snapshot to verify against.

        Returns:
            Decoded payload as a dict.

        Raises:
            InvalidToken: Or one of its subclasses, see class docstring.
        """
        _check_structure(token)

        if self._opt.emulator:
            return decode_unverified(token)

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise InvalidToken("Token header cannot be decoded") from e

        if header.get("alg") != SUPPORTED_ALGORITHM:
            raise InvalidKeyAlgorithm(f"Unsupported algorithm {header.get('alg')!r}")

        kid = header.get("kid")
        if not kid or not isinstance(kid, str):
            raise NoKidHeader("Token header has no 'kid'")

        if key_set.get(kid) is None:
            raise NotFoundMatchingKey(f"No signing key with kid {kid!r}")

        public_key = key_set.public_key(kid)

        try:
            claims = jwt.decode(
                token,
                public_key,
                algorithms=[SUPPORTED_ALGORITHM],
                audience=self._opt.audience,
                issuer=self._opt.issuer,
                leeway=self._opt.leeway,
                # iat may lead the local clock
                options={"require": list(_REQUIRED_CLAIMS), "verify_iat": False},
            )
        except jwt.InvalidSignatureError as e:
            raise InvalidSignature("Token signature does not verify") from e
        except jwt.InvalidTokenError as e:
            # Expired, wrong aud/iss, missing claims: not told apart.
            raise InvalidToken("Token claims are not valid") from e

        return claims


def decode_unverified(token: str) -> Claims:
    """Decode a token's payload without verifying anything.

    Raises:
        InvalidToken: Not three segments, or the payload is not a JSON object.
    """
    _check_structure(token)
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise InvalidToken("Token payload cannot be decoded") from e


def _check_structure(token: str) -> None:
    if not isinstance(token, str) or token.count(".") != 2:
        raise InvalidToken("Token must have exactly three segments")
