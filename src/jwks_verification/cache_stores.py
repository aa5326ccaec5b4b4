"""In-process store for the current signing key set.

``KeyCache`` holds exactly one ``KeySet`` at a time. Verifiers take a snapshot
with ``read()``; the refresh loop swaps in a new set with ``replace()``. Both
critical sections cover a single reference read or assignment, so readers are
never held up by a network fetch and can never observe a half-replaced set.

Security Note:
    A failed refresh never reaches this class. Serving a stale but valid key
    set is preferred over serving none.
"""

from __future__ import annotations

import threading
import time

from .models import KeySet


class KeyCache:
    """Thread-safe holder of the current ``KeySet``.

    Thread Safety:
        Single writer (the refresh scheduler), any number of readers. The
        stored ``KeySet`` is immutable, so handing the same object to many
        readers is safe.

    Attributes:
        _current: The key set served to readers.
        _generation: Number of successful replacements so far.
        _updated_at: ``time.monotonic()`` of the last store.
    """

    def __init__(self, initial: KeySet) -> None:
        """Create the cache with the first successfully fetched key set.

        Raises:
            TypeError: If initial is not a KeySet.
        """
        self._check(initial)
        self._lock = threading.Lock()
        self._current: KeySet = initial
        self._generation: int = 0
        self._updated_at: float = time.monotonic()

    def read(self) -> KeySet:
        """Return the current key set snapshot."""
        with self._lock:
            return self._current

    def replace(self, key_set: KeySet) -> None:
        """Atomically swap in a new key set.

        Raises:
            TypeError: If key_set is not a KeySet. The current set is kept.
        """
        self._check(key_set)
        now = time.monotonic()
        with self._lock:
            self._current = key_set
            self._generation += 1
            self._updated_at = now

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def age(self) -> float:
        """Seconds since the current key set was stored."""
        with self._lock:
            updated_at = self._updated_at
        return time.monotonic() - updated_at

    @staticmethod
    def _check(key_set: KeySet) -> None:
        # KeySet itself refuses to be empty
        if not isinstance(key_set, KeySet):
            raise TypeError(f"Expected KeySet, got {type(key_set).__name__}")
