"""Self-refreshing token verification engine.

``FirebaseAuth`` wires the pieces together:

    construct:  KeySource.fetch()  (must succeed)
                -> KeyCache(initial)
                -> RefreshScheduler.start()
    verify:     KeyCache.read()  -> JWKVerifier.verify(token, snapshot)
    shutdown:   RefreshScheduler.stop() -> close owned key source

Construction is synchronous and blocks for one HTTP round trip. If no key set
can be fetched the engine refuses to exist (``KeySetUnavailable``): running
without keys would reject every request while looking healthy.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from .cache_stores import KeyCache
from .config import DEFAULT_HTTP_TIMEOUT, DEFAULT_RETRY_DELAY, AuthSettings, ProviderConfig
from .errors import InvalidToken, KeyFetchError, KeySetUnavailable
from .key_providers import GoogleJWKSProvider
from .models import FirebaseUser
from .refresh_scheduler import RefreshScheduler
from .verifier import JWKVerifier, VerifyOptions

if TYPE_CHECKING:
    from .models import KeySet
    from .protocols import Claims, KeySource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FirebaseAuth:
    """Verifies Firebase ID tokens against automatically refreshed keys.

    The published key set is fetched once at construction, then refreshed in
    a background thread according to the response's ``max-age``. Failed
    refreshes are retried every ``retry_delay`` seconds while the last good
    key set keeps serving.

    Example:
        ```python
        auth = FirebaseAuth.from_project_id("my-project")
        try:
            claims = auth.verify(raw_token)
        except InvalidToken:
            ...  # reject the request
        finally:
            auth.shutdown()
        ```

    Thread Safety:
        ``verify*`` may be called from any number of threads concurrently
        with the background refresh.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        key_source: KeySource | None = None,
        emulator: bool = False,
        leeway: int = 0,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        min_refresh_interval: float = 1.0,
    ) -> None:
        """Fetch the initial key set and start refreshing it.

        Args:
            config: Provider endpoint and expected audience/issuer.
            key_source: Source of key sets. Defaults to a
                ``GoogleJWKSProvider`` for ``config.jwk_endpoint``, which this
                engine then owns and closes on shutdown.
            emulator: Accept unsigned tokens and skip all checks. Local
                emulators and tests only.
            leeway: Clock skew tolerance in seconds.
            http_timeout: Timeout for the default key source.
            retry_delay: Seconds between attempts after a failed refresh.
            min_refresh_interval: Floor for the refresh interval.

        Raises:
            KeySetUnavailable: The initial fetch failed.
        """
        self._config = config
        self._owned_source = key_source is None
        self._source: KeySource = key_source or GoogleJWKSProvider(
            config.jwk_endpoint, timeout=http_timeout
        )
        self._verifier = JWKVerifier(
            VerifyOptions.for_provider(config, leeway=leeway, emulator=emulator)
        )

        try:
            initial = self._source.fetch()
        except KeyFetchError as e:
            logger.critical(
                "Unable to get public keys from %s (%s); cannot verify tokens",
                config.jwk_endpoint,
                e.kind,
            )
            self._close_source()
            raise KeySetUnavailable(
                f"Unable to get public keys from {config.jwk_endpoint}"
            ) from e

        self._cache = KeyCache(initial)
        self._scheduler = RefreshScheduler(
            self._source,
            self._cache,
            initial_delay=initial.refresh_after,
            retry_delay=retry_delay,
            min_interval=min_refresh_interval,
        )
        self._shutdown_lock = threading.Lock()
        self._closed = False
        self._scheduler.start()
        logger.info(
            "Loaded %d public keys for %s; next refresh in %ss",
            len(initial),
            config.audience,
            self._scheduler.last_delay,
        )

    @classmethod
    def from_project_id(cls, project_id: str, **kwargs: Any) -> FirebaseAuth:
        """Construct for a Firebase project id. See ``__init__`` for kwargs."""
        return cls(ProviderConfig.from_project_id(project_id), **kwargs)

    @classmethod
    def from_settings(cls, settings: AuthSettings, **kwargs: Any) -> FirebaseAuth:
        """Construct from ``AuthSettings``; kwargs override or add options."""
        options: dict[str, Any] = {
            "leeway": settings.leeway,
            "http_timeout": settings.http_timeout,
            "retry_delay": settings.retry_delay,
        }
        options.update(kwargs)
        return cls(settings.provider, **options)

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def key_set(self) -> KeySet:
        """Current key set snapshot."""
        return self._cache.read()

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    @property
    def is_running(self) -> bool:
        return not self._closed and self._scheduler.is_running

    def verify(self, token: str) -> Claims:
        """Verify a token against the current key set and return its claims.

        Raises:
            InvalidToken: Or a subclass naming the reason.
        """
        try:
            return self._verifier.verify(token, self._cache.read())
        except InvalidToken as e:
            logger.debug("Rejected token: %s", e.kind)
            raise

    def verify_as(self, token: str, decoder: Callable[[Claims], T]) -> T:
        """Verify a token and decode its claims with ``decoder``.

        ``decoder`` is any callable taking the claims mapping, such as a
        ``from_claims`` classmethod. ``KeyError``, ``TypeError`` and
        ``ValueError`` from it mean the claims do not fit and are reported as
        ``InvalidToken``.
        """
        claims = self.verify(token)
        try:
            return decoder(claims)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("Rejected token: claims do not fit %r", decoder)
            raise InvalidToken("Token claims do not match the expected shape") from e

    def verify_user(self, token: str) -> FirebaseUser:
        """Verify a token and decode it as a ``FirebaseUser``."""
        return self.verify_as(token, FirebaseUser.from_claims)

    def shutdown(self) -> None:
        """Stop background refresh and release the key source.

        Idempotent. Verification keeps working against the last key set.
        """
        with self._shutdown_lock:
            if self._closed:
                return
            self._closed = True
        self._scheduler.stop()
        self._close_source()

    def _close_source(self) -> None:
        if self._owned_source:
            close = getattr(self._source, "close", None)
            if close is not None:
                close()

    def __enter__(self) -> FirebaseAuth:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
