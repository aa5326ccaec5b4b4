"""Value types: signing keys, key sets and the default claims record.

All of them are immutable. A key set is replaced as a whole when the provider
publishes new keys, never edited in place.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from jwt.algorithms import RSAAlgorithm
from jwt.exceptions import InvalidKeyError

from .errors import CannotDecodePublicKey, KeySetParseError

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

logger = logging.getLogger(__name__)

_JWK_MEMBERS = ("kid", "n", "e", "alg", "kty")


@dataclass(frozen=True, slots=True)
class SigningKey:
    """One public key from the provider's JWK set.

    Attributes:
        kid: Key identifier matched against the token header.
        n: RSA modulus, base64url big-endian.
        e: RSA public exponent, base64url big-endian.
        alg: Algorithm the key is published for (``RS256``).
        kty: Key type (``RSA``).
    """

    kid: str
    n: str
    e: str
    alg: str
    kty: str

    @classmethod
    def from_jwk(cls, jwk: Mapping[str, Any]) -> SigningKey:
        """Parse one entry of a JWK set's ``keys`` array.

        Raises:
            KeySetParseError: A required member is missing or not a string.
        """
        if not isinstance(jwk, Mapping):
            raise KeySetParseError("JWK entry is not an object")
        values = {}
        for name in _JWK_MEMBERS:
            value = jwk.get(name)
            if not isinstance(value, str) or not value:
                raise KeySetParseError(f"JWK entry has no valid {name!r}")
            values[name] = value
        return cls(**values)

    def public_key(self) -> RSAPublicKey:
        """Rebuild the RSA public key from modulus and exponent.

        Raises:
            CannotDecodePublicKey: The components do not form an RSA key.
        """
        try:
            return RSAAlgorithm.from_jwk({"kty": self.kty, "n": self.n, "e": self.e})
        except (InvalidKeyError, ValueError, TypeError) as e:
            raise CannotDecodePublicKey(f"Cannot build public key for kid {self.kid!r}") from e


@dataclass(frozen=True, slots=True)
class KeySet:
    """Immutable snapshot of the provider's signing keys.

    Attributes:
        keys: Keys, unique by ``kid``, never empty.
        refresh_after: Seconds until the set should be fetched again.
    """

    keys: tuple[SigningKey, ...]
    refresh_after: float
    _by_kid: Mapping[str, SigningKey] = field(init=False, repr=False, compare=False)
    _public_keys: dict[str, RSAPublicKey] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.keys:
            raise ValueError("KeySet requires at least one key")
        if self.refresh_after < 0:
            raise ValueError(f"refresh_after must not be negative, got {self.refresh_after}")
        by_kid: dict[str, SigningKey] = {}
        for key in self.keys:
            if key.kid in by_kid:
                raise ValueError(f"Duplicate kid {key.kid!r} in KeySet")
            by_kid[key.kid] = key
        object.__setattr__(self, "_by_kid", MappingProxyType(by_kid))
        object.__setattr__(self, "_public_keys", {})

    @classmethod
    def from_keys(cls, keys: Iterable[SigningKey], refresh_after: float) -> KeySet:
        """Build a key set, keeping the first key for any repeated ``kid``."""
        unique: dict[str, SigningKey] = {}
        for key in keys:
            if key.kid in unique:
                logger.warning("Ignoring duplicate key id %r in key set", key.kid)
                continue
            unique[key.kid] = key
        return cls(keys=tuple(unique.values()), refresh_after=refresh_after)

    @classmethod
    def from_jwks(cls, payload: Any, refresh_after: float) -> KeySet:
        """Parse a ``{"keys": [...]}`` document.

        Raises:
            KeySetParseError: Not an object, no ``keys`` array, an invalid
                entry, or no keys at all.
        """
        if not isinstance(payload, Mapping):
            raise KeySetParseError("Key set document is not a JSON object")
        entries = payload.get("keys")
        if not isinstance(entries, list):
            raise KeySetParseError("Key set document has no 'keys' array")
        if not entries:
            raise KeySetParseError("Key set document contains no keys")
        return cls.from_keys((SigningKey.from_jwk(entry) for entry in entries), refresh_after)

    def get(self, kid: str) -> SigningKey | None:
        return self._by_kid.get(kid)

    def public_key(self, kid: str) -> RSAPublicKey:
        """Return the RSA public key for ``kid``, decoding it on first use.

        Raises:
            KeyError: No key with that kid.
            CannotDecodePublicKey: The key's components do not form an RSA key.
        """
        public_key = self._public_keys.get(kid)
        if public_key is None:
            public_key = self._by_kid[kid].public_key()
            # racing threads may both decode; the results are equivalent
            self._public_keys[kid] = public_key
        return public_key

    @property
    def kids(self) -> frozenset[str]:
        return frozenset(self._by_kid)

    def __len__(self) -> int:
        return len(self.keys)


# ============================================================================
# Default claims shape
# ============================================================================

_STANDARD_CLAIMS = frozenset(
    {
        "iss",
        "aud",
        "sub",
        "user_id",
        "iat",
        "exp",
        "auth_time",
        "firebase",
        "name",
        "picture",
        "email",
        "email_verified",
    }
)


def _required(claims: Mapping[str, Any], name: str, kind: type) -> Any:
    if name not in claims:
        raise KeyError(f"Missing required claim {name!r}")
    value = claims[name]
    # bool is an int subclass; a flag is never a timestamp
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise TypeError(f"Claim {name!r} must be {kind.__name__}")
    return value


def _optional(claims: Mapping[str, Any], name: str, kind: type) -> Any:
    value = claims.get(name)
    if value is not None and not isinstance(value, kind):
        raise TypeError(f"Claim {name!r} must be {kind.__name__}")
    return value


@dataclass(frozen=True, slots=True)
class FirebaseProvider:
    """The ``firebase`` claim: how the user signed in."""

    sign_in_provider: str
    identities: Mapping[str, Any]

    @classmethod
    def from_claim(cls, value: Any) -> FirebaseProvider:
        if not isinstance(value, Mapping):
            raise TypeError("Claim 'firebase' must be an object")
        return cls(
            sign_in_provider=_required(value, "sign_in_provider", str),
            identities=MappingProxyType(dict(_optional(value, "identities", dict) or {})),
        )


@dataclass(frozen=True, slots=True)
class FirebaseUser:
    """Typed view of a verified Firebase ID token.

    Required standard claims are strictly typed; optional profile claims may
    be absent. Everything else (custom claims set by the application) is kept
    in ``extra``.

    Callers with their own claim schema pass any ``Claims -> T`` callable as
    decoder instead, following the ``from_claims`` shape used here.
    """

    iss: str
    aud: str
    sub: str
    user_id: str
    iat: int
    exp: int
    auth_time: int
    firebase: FirebaseProvider
    name: str | None = None
    picture: str | None = None
    email: str | None = None
    email_verified: bool | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> FirebaseUser:
        """Decode verified claims.

        Raises:
            KeyError: A required claim is missing.
            TypeError: A claim has the wrong type.
        """
        return cls(
            iss=_required(claims, "iss", str),
            aud=_required(claims, "aud", str),
            sub=_required(claims, "sub", str),
            user_id=_required(claims, "user_id", str),
            iat=_required(claims, "iat", int),
            exp=_required(claims, "exp", int),
            auth_time=_required(claims, "auth_time", int),
            firebase=FirebaseProvider.from_claim(_required(claims, "firebase", Mapping)),
            name=_optional(claims, "name", str),
            picture=_optional(claims, "picture", str),
            email=_optional(claims, "email", str),
            email_verified=_optional(claims, "email_verified", bool),
            extra=MappingProxyType(
                {k: v for k, v in claims.items() if k not in _STANDARD_CLAIMS}
            ),
        )
