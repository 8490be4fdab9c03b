# knowbase/services/tree_cache.py
from __future__ import annotations
import threading
import time
from typing import Any, Callable, Dict, List, Optional


class TreeCache:
    """
    Hält den fertigen Kategorien-Wald für `ttl` Sekunden.
    Jede Mutation (Kategorie, Artikel, Import) muss invalidate() aufrufen.
    """

    def __init__(self, ttl: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[List[Dict[str, Any]]] = None
        self._expires_at = 0.0
        self._hits = 0
        self._misses = 0
        self._generation = 0

    def get_or_build(self, build: Callable[[], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        with self._lock:
            if self._value is not None and self._clock() < self._expires_at:
                self._hits += 1
                return self._value
            self._misses += 1
            generation = self._generation
        value = build()
        if self.ttl > 0:
            with self._lock:
                # zwischenzeitlich invalidiert: veralteten Wert nicht ablegen
                if generation != self._generation:
                    return value
                self._value = value
                self._expires_at = self._clock() + self.ttl
        return value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._expires_at = 0.0
            self._generation += 1

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "cached": self._value is not None and self._clock() < self._expires_at,
                "hits": self._hits,
                "misses": self._misses,
                "ttl": self.ttl,
            }
