"""In-memory RateLimitStore for limiter tests that don't need DynamoDB."""

import itertools
import threading
from collections import defaultdict
from dataclasses import dataclass, field

from src.lambdas.shared.errors.auth_errors import StoreUnavailableError


@dataclass
class InMemoryRateLimitStore:
    """Hit log kept in a dict of timestamp lists.

    Set ``fail_mode`` to make every call raise StoreUnavailableError.
    """

    fail_mode: bool = False
    hits: dict[str, list[int]] = field(default_factory=lambda: defaultdict(list))
    _ids: dict[str, int] = field(default_factory=dict)
    _seq: itertools.count = field(default_factory=itertools.count)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def hits_since(self, key: str, since_ms: int, limit: int) -> list[int]:
        if self.fail_mode:
            raise StoreUnavailableError()
        with self._lock:
            return [t for t in sorted(self.hits[key]) if t >= since_ms][:limit]

    def record(self, key: str, at_ms: int, ttl_seconds: int) -> str:
        if self.fail_mode:
            raise StoreUnavailableError()
        with self._lock:
            hit_id = f"{at_ms:015d}#{next(self._seq)}"
            self.hits[key].append(at_ms)
            self._ids[hit_id] = at_ms
        return hit_id

    def discard(self, key: str, hit_id: str) -> None:
        if self.fail_mode:
            raise StoreUnavailableError()
        with self._lock:
            self.hits[key].remove(self._ids.pop(hit_id))

    def count(self, key: str) -> int:
        return len(self.hits[key])
