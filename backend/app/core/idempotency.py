# backend/app/core/idempotency.py
# Cache TTL des réponses de création, indexé par la clé `x-idempotency-key`.

from __future__ import annotations

import time
from typing import Any, Callable


class IdempotencyCache:
    """Cache en mémoire (clé → résultat) avec expiration.

    Description:
        Une requête de création rejouée avec la même clé pendant `ttl_s`
        secondes reçoit le résultat de la première exécution. Les entrées
        expirées sont purgées à chaque accès.

    Args:
        ttl_s (float): Durée de vie d'une entrée en secondes.
        clock (Callable): Horloge en secondes.
    """

    def __init__(self, ttl_s: float = 600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def _purge(self) -> None:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def get(self, key: str | None) -> Any | None:
        if not key:
            return None
        self._purge()
        entry = self._entries.get(key)
        return entry[1] if entry else None

    def set(self, key: str | None, value: Any) -> None:
        if not key:
            return
        self._purge()
        self._entries[key] = (self._clock() + self.ttl_s, value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)
