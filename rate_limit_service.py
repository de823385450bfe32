import time
from collections import defaultdict, deque
from threading import Lock

WRITE_METHODS = frozenset({'POST', 'PUT', 'PATCH', 'DELETE'})
BODY_METHODS = frozenset({'POST', 'PUT', 'PATCH'})


def request_body_limit_bytes_core(
    method: str,
    path: str,
    import_body_limit_bytes: int,
    report_body_limit_bytes: int,
    default_body_limit_bytes: int,
) -> int:
    if method.upper() not in BODY_METHODS:
        return 0
    if path.startswith('/api/') and path.endswith('/import'):
        return import_body_limit_bytes
    if path.startswith('/api/reports'):
        return report_body_limit_bytes
    return default_body_limit_bytes


def rate_limit_bucket_core(
    method: str,
    path: str,
    rate_limit_heavy_per_minute: int,
    rate_limit_default_per_minute: int,
) -> tuple[str, int] | None:
    """Bulk imports and wiping the session log share the heavy bucket; other writes the default one."""
    method_upper = method.upper()
    if method_upper not in WRITE_METHODS:
        return None
    heavy = (
        (method_upper == 'POST' and path.endswith('/import'))
        or (method_upper == 'DELETE' and path.rstrip('/') == '/api/sessions')
    )
    if heavy:
        return ('write_heavy', rate_limit_heavy_per_minute)
    return ('write_default', rate_limit_default_per_minute)


def request_client_id_core(request) -> str:
    forwarded_for = request.headers.get('x-forwarded-for', '')
    first_hop = forwarded_for.split(',', 1)[0].strip()
    if first_hop:
        return first_hop
    client = request.client
    return client.host if client and client.host else 'unknown'


class SlidingWindowLimiter:
    """In-process per-key request timestamps over a fixed window."""

    def __init__(self, window_seconds: int, *, max_tracked_keys: int = 1024) -> None:
        self.window_seconds = window_seconds
        self.max_tracked_keys = max_tracked_keys
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def _expire(self, hits: deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def prune(self, now: float) -> None:
        with self._lock:
            self._prune_locked(now)

    def _prune_locked(self, now: float) -> None:
        for key in list(self._hits):
            self._expire(self._hits[key], now)
            if not self._hits[key]:
                del self._hits[key]

    def hit(self, key: str, limit: int, now: float | None = None) -> int:
        """Record one request for ``key``; return seconds to wait, or 0 when allowed."""
        current = time.monotonic() if now is None else now
        with self._lock:
            if key not in self._hits and len(self._hits) >= self.max_tracked_keys:
                self._prune_locked(current)
            hits = self._hits[key]
            self._expire(hits, current)
            if len(hits) >= limit:
                return max(1, int(self.window_seconds - (current - hits[0])) + 1)
            hits.append(current)
        return 0

    def tracked_keys(self) -> list[str]:
        with self._lock:
            return list(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def check_rate_limit_core(
    request,
    *,
    limiter: SlidingWindowLimiter,
    enabled: bool,
    heavy_per_minute: int,
    default_per_minute: int,
    now: float | None = None,
) -> tuple[bool, int, int]:
    bucket = rate_limit_bucket_core(request.method, request.url.path, heavy_per_minute, default_per_minute)
    if not enabled or bucket is None:
        return (False, 0, 0)
    bucket_name, limit = bucket
    retry_after = limiter.hit(f'{bucket_name}:{request_client_id_core(request)}', limit, now)
    return (retry_after > 0, retry_after, limit)
