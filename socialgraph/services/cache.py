"""
Cache com TTL para resultados de feed e explore.

Substitui caches globais mutáveis: cada instância é criada explicitamente,
injetada no serviço que a usa e invalidada de forma explícita.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable


@dataclass
class CacheEntry:
    """Valor em cache com o instante em que foi gravado."""

    value: Any
    stored_at: float


class TTLCache:
    """
    Cache em memória com expiração por entrada e tamanho máximo.

    Usage:
        cache = TTLCache(ttl_seconds=300)
        cache.set(("alice", "explore"), posts)
        cache.get(("alice", "explore"))
        cache.mark_stale_matching(lambda key: key[0] == "alice")
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds deve ser positivo")
        if max_entries <= 0:
            raise ValueError("max_entries deve ser positivo")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, CacheEntry] = OrderedDict()

    def _live(self, key: Hashable) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl:
            del self._entries[key]
            return None
        return entry

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._live(key)
        if entry is None:
            return default
        # Leitura conta como uso recente para o limite de tamanho
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def mark_stale(self, key: Hashable | None = None) -> None:
        """Descarta uma entrada ou, sem argumento, o cache inteiro."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def mark_stale_matching(self, predicate: Callable[[Hashable], bool]) -> int:
        stale = [key for key in self._entries if predicate(key)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __contains__(self, key: Hashable) -> bool:
        return self._live(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
