"""Provider configuration and environment-driven settings."""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

GOOGLE_JWK_URL: Final[str] = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)
"""Endpoint publishing the keys that sign Firebase ID tokens."""

ISSUER_TEMPLATE: Final[str] = "https://securetoken.google.com/{project_id}"

DEFAULT_HTTP_TIMEOUT: Final[float] = 10.0
DEFAULT_RETRY_DELAY: Final[float] = 10.0
DEFAULT_LEEWAY: Final[int] = 0


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Where keys come from and what a valid token must claim.

    Attributes:
        jwk_endpoint: URL of the published key set. Fixed per provider, never
            taken from a request.
        audience: Expected ``aud`` claim (the project id).
        issuer: Expected ``iss`` claim.
    """

    jwk_endpoint: str
    audience: str
    issuer: str

    @classmethod
    def from_project_id(cls, project_id: str) -> ProviderConfig:
        """Derive the configuration for a Firebase project.

        Raises:
            ValueError: If project_id is empty.
        """
        project_id = project_id.strip() if project_id else ""
        if not project_id:
            raise ValueError("project_id cannot be empty")
        return cls(
            jwk_endpoint=GOOGLE_JWK_URL,
            audience=project_id,
            issuer=ISSUER_TEMPLATE.format(project_id=project_id),
        )


@dataclass(frozen=True, slots=True)
class AuthSettings:
    """Deployment settings, usually read from the environment.

    The emulator bypass is not part of these settings. It must be passed to
    the engine explicitly by code.
    """

    project_id: str
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    retry_delay: float = DEFAULT_RETRY_DELAY
    leeway: int = DEFAULT_LEEWAY

    @property
    def provider(self) -> ProviderConfig:
        return ProviderConfig.from_project_id(self.project_id)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        dotenv_path: str | None = None,
    ) -> AuthSettings:
        """Build settings from environment variables.

        A ``.env`` file is loaded first (without overriding variables already
        set) unless an explicit ``environ`` mapping is given.

        Variables:
            FIREBASE_PROJECT_ID: required.
            JWKS_HTTP_TIMEOUT: seconds, default 10.
            JWKS_RETRY_DELAY: seconds, default 10.
            JWT_LEEWAY: seconds of clock skew tolerance, default 0.

        Raises:
            ValueError: Missing project id or a malformed number.
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        project_id = environ.get("FIREBASE_PROJECT_ID", "").strip()
        if not project_id:
            raise ValueError("FIREBASE_PROJECT_ID is not set")

        return cls(
            project_id=project_id,
            http_timeout=_positive_float(environ, "JWKS_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            retry_delay=_positive_float(environ, "JWKS_RETRY_DELAY", DEFAULT_RETRY_DELAY),
            leeway=_non_negative_int(environ, "JWT_LEEWAY", DEFAULT_LEEWAY),
        )


def _positive_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if not (math.isfinite(value) and value > 0):
        raise ValueError(f"{name} must be a positive finite number, got {value}")
    return value


def _non_negative_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value
