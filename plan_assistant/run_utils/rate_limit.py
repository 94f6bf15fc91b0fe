"""Fixed-window rate limiting keyed by client identity.

Buckets live in a `BucketStore`; the in-memory store is process-local and
forgets everything on restart. Swap in another store implementing the same
methods to share limits between processes.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Protocol, Tuple

from plan_assistant.run_utils.metrics import now_ms

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class ClientBucket:
    count: int
    reset_at: int


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int
    reset_in_seconds: int


class BucketStore(Protocol):
    def get(self, identifier: str) -> Optional[ClientBucket]: ...

    def put(self, identifier: str, bucket: ClientBucket) -> None: ...

    def delete(self, identifier: str) -> None: ...

    def items(self) -> Iterator[Tuple[str, ClientBucket]]: ...

    def __len__(self) -> int: ...


class InMemoryBucketStore:
    def __init__(self):
        self._buckets: Dict[str, ClientBucket] = {}

    def get(self, identifier: str) -> Optional[ClientBucket]:
        return self._buckets.get(identifier)

    def put(self, identifier: str, bucket: ClientBucket) -> None:
        self._buckets[identifier] = bucket

    def delete(self, identifier: str) -> None:
        self._buckets.pop(identifier, None)

    def items(self) -> Iterator[Tuple[str, ClientBucket]]:
        return iter(list(self._buckets.items()))

    def __len__(self) -> int:
        return len(self._buckets)


class RateLimiter:
    """One limiter per policy; limiters never share a store."""

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        cleanup_interval_ms: int = 60_000,
        store: Optional[BucketStore] = None,
        clock: Callable[[], int] = now_ms,
        name: str = "default",
    ):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.cleanup_interval_ms = cleanup_interval_ms
        self.store: BucketStore = store if store is not None else InMemoryBucketStore()
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def check(self, identifier: str) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            bucket = self.store.get(identifier)

            if bucket is None or bucket.reset_at < now:
                reset_at = now + self.window_ms
                self.store.put(identifier, ClientBucket(count=1, reset_at=reset_at))
                return RateLimitResult(
                    allowed=True,
                    remaining=self.max_requests - 1,
                    reset_at=reset_at,
                    reset_in_seconds=math.ceil(self.window_ms / 1000),
                )

            # A bucket is still live at exactly reset_at; never report 0 seconds.
            reset_in = max(1, math.ceil((bucket.reset_at - now) / 1000))
            if bucket.count >= self.max_requests:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=bucket.reset_at,
                    reset_in_seconds=reset_in,
                )

            bucket.count += 1
            self.store.put(identifier, bucket)
            return RateLimitResult(
                allowed=True,
                remaining=self.max_requests - bucket.count,
                reset_at=bucket.reset_at,
                reset_in_seconds=reset_in,
            )

    def _maybe_sweep(self, now: int) -> None:
        if now - self._last_sweep < self.cleanup_interval_ms:
            return
        self._last_sweep = now
        self._sweep(now)

    def _sweep(self, now: int) -> int:
        expired = [key for key, bucket in self.store.items() if bucket.reset_at < now]
        for key in expired:
            self.store.delete(key)
        if expired:
            logger.info(f"[rate-limit:{self.name}] Cleaned up {len(expired)} expired records")
        return len(expired)

    def sweep(self) -> int:
        """Evict every expired bucket now, regardless of the cleanup interval."""
        with self._lock:
            now = self._clock()
            self._last_sweep = now
            return self._sweep(now)

    def stats(self) -> Dict[str, object]:
        with self._lock:
            now = self._clock()
            records: List[Dict[str, object]] = [
                {
                    "identifier": key[:20] + "...",
                    "count": bucket.count,
                    "resetIn": math.ceil((bucket.reset_at - now) / 1000),
                }
                for key, bucket in self.store.items()
            ]
            return {"totalClients": len(self.store), "records": records}


def get_client_identifier(headers: Mapping[str, str]) -> str:
    """Derive the rate-limit key from proxy headers.

    Behind a proxy that sets none of these headers every client ends up on
    the shared "unknown" bucket.
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    cf_ip = headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    return UNKNOWN_CLIENT
