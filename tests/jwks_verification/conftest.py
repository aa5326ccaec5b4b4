import json
import threading
import time
from collections.abc import Callable
from typing import Any

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import Flask
from jwt.utils import base64url_encode, to_base64url_uint

from jwks_verification import KeyFetchError, KeySet, ProviderConfig, SigningKey

PROJECT_ID = "proj"


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture(scope="session")
def rsa_keys() -> dict[str, rsa.RSAPrivateKey]:
    """Private keys by kid. Generated once; RSA generation is slow."""
    return {
        kid: rsa.generate_private_key(public_exponent=65537, key_size=2048)
        for kid in ("A", "B")
    }


def jwk_for(kid: str, private_key: rsa.RSAPrivateKey) -> dict[str, str]:
    numbers = private_key.public_key().public_numbers()
    return {
        "kid": kid,
        "n": to_base64url_uint(numbers.n).decode("ascii"),
        "e": to_base64url_uint(numbers.e).decode("ascii"),
        "alg": "RS256",
        "kty": "RSA",
    }


@pytest.fixture
def make_key_set(rsa_keys: dict[str, rsa.RSAPrivateKey]):
    """
    Factory fixture building a KeySet from the session keys.

    Usage in tests:
        key_set = make_key_set("A", refresh_after=3600)
    """

    def _make(*kids: str, refresh_after: float = 3600) -> KeySet:
        kids = kids or ("A",)
        return KeySet(
            keys=tuple(SigningKey.from_jwk(jwk_for(kid, rsa_keys[kid])) for kid in kids),
            refresh_after=refresh_after,
        )

    return _make


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        jwk_endpoint="https://keys.example.test/jwk",
        audience=PROJECT_ID,
        issuer=f"https://issuer/{PROJECT_ID}",
    )


def standard_claims(**overrides: Any) -> dict[str, Any]:
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": f"https://issuer/{PROJECT_ID}",
        "aud": PROJECT_ID,
        "sub": "uid-1",
        "user_id": "uid-1",
        "iat": now - 10,
        "exp": now + 3600,
        "auth_time": now - 10,
        "email": "user@example.com",
        "email_verified": True,
        "firebase": {"sign_in_provider": "password", "identities": {"email": ["user@example.com"]}},
    }
    claims.update(overrides)
    return claims


@pytest.fixture
def make_token(rsa_keys: dict[str, rsa.RSAPrivateKey]):
    """
    Factory fixture returning signed tokens.

    Usage in tests:
        token = make_token(kid="A", exp=past)
        token = make_token(signing_kid="B", kid="A")  # signed by the wrong key
    """

    def _make(
        *,
        kid: str | None = "A",
        signing_kid: str | None = None,
        algorithm: str = "RS256",
        **claim_overrides: Any,
    ) -> str:
        headers = {"kid": kid} if kid is not None else {}
        key = rsa_keys[signing_kid or kid or "A"]
        return jwt.encode(standard_claims(**claim_overrides), key, algorithm=algorithm, headers=headers)

    return _make


def unsigned_token(payload: dict[str, Any]) -> str:
    header = base64url_encode(json.dumps({"alg": "none", "typ": "JWT"}).encode())
    body = base64url_encode(json.dumps(payload).encode())
    return f"{header.decode()}.{body.decode()}."


class FakeKeySource:
    """Duck-typed KeySource replaying a script of key sets and errors."""

    def __init__(self, *results: KeySet | Exception):
        self._results = list(results)
        self._last: KeySet | Exception | None = None
        self.calls = 0
        self.closed = False
        self.fetched = threading.Event()

    def push(self, result: KeySet | Exception) -> None:
        self._results.append(result)

    def fetch(self) -> KeySet:
        self.calls += 1
        if self._results:
            self._last = self._results.pop(0)
        result = self._last
        self.fetched.set()
        if result is None:
            raise KeyFetchError("nothing scripted")
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def mock_jwks_client():
    """
    Factory fixture returning an httpx.Client served by a handler.

    Usage in tests:
        client, requests = mock_jwks_client(lambda req: httpx.Response(200, ...))
    """

    def _make(handler: Callable[[httpx.Request], httpx.Response]):
        seen: list[httpx.Request] = []

        def _handle(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        return httpx.Client(transport=httpx.MockTransport(_handle)), seen

    return _make
