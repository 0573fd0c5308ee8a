"""
In-memory sliding-window rate limiter for the auth endpoints.

Route handlers only consume the pass/reject decision. Limits are per process;
a multi-instance deployment needs a shared store behind the same interface.
"""

import time
import logging
from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for one limit type."""
    max_requests: int
    window_seconds: int


DEFAULT_LIMITS: Dict[str, RateLimitConfig] = {
    # OTP send: 5 per 15 minutes per IP, 3 per hour per phone
    "otp_send_ip": RateLimitConfig(max_requests=5, window_seconds=900),
    "otp_send_phone": RateLimitConfig(max_requests=3, window_seconds=3600),
    # OTP verification: 10 per 15 minutes per IP, 5 per 15 minutes per phone
    "otp_verify_ip": RateLimitConfig(max_requests=10, window_seconds=900),
    "otp_verify_phone": RateLimitConfig(max_requests=5, window_seconds=900),
    # PIN login: 10 per 30 minutes per IP
    "login_ip": RateLimitConfig(max_requests=10, window_seconds=1800),
    "refresh_ip": RateLimitConfig(max_requests=10, window_seconds=900),
    "logout_ip": RateLimitConfig(max_requests=20, window_seconds=900),
    "sessions_ip": RateLimitConfig(max_requests=30, window_seconds=900),
}


class RateLimiter:
    """Thread-safe sliding-window limiter keyed by ``<limit_type>:<identifier>``."""

    def __init__(self, configs: Optional[Dict[str, RateLimitConfig]] = None):
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._lock = Lock()
        self.configs = dict(configs if configs is not None else DEFAULT_LIMITS)

    def _prune(self, key: str, window_seconds: int, now: float) -> None:
        cutoff = now - window_seconds
        self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]

    def is_allowed(self, limit_type: str, identifier: str) -> Tuple[bool, int]:
        """
        Record a request and report whether it is within the limit.

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
        """
        config = self.configs.get(limit_type)
        if config is None:
            logger.warning(f"Unknown rate limit type: {limit_type}")
            return True, 0

        key = f"{limit_type}:{identifier}"

        with self._lock:
            now = time.time()
            self._prune(key, config.window_seconds, now)
            timestamps = self._requests[key]

            if len(timestamps) >= config.max_requests:
                retry_after = int(min(timestamps) + config.window_seconds - now) + 1
                return False, max(retry_after, 1)

            timestamps.append(now)
            return True, 0

    def get_remaining(self, limit_type: str, identifier: str) -> int:
        """Remaining requests in the current window."""
        config = self.configs.get(limit_type)
        if config is None:
            return 999

        key = f"{limit_type}:{identifier}"
        with self._lock:
            self._prune(key, config.window_seconds, time.time())
            return max(0, config.max_requests - len(self._requests[key]))

    def reset(self, limit_type: str, identifier: str) -> None:
        """Forget a key, e.g. after a successful verification."""
        with self._lock:
            self._requests.pop(f"{limit_type}:{identifier}", None)

    def cleanup_all(self) -> int:
        """Drop keys whose timestamps have all left their window."""
        now = time.time()
        removed = 0

        with self._lock:
            for key in list(self._requests):
                config = self.configs.get(key.split(":", 1)[0])
                if config is None:
                    continue
                before = len(self._requests[key])
                self._prune(key, config.window_seconds, now)
                removed += before - len(self._requests[key])
                if not self._requests[key]:
                    del self._requests[key]

        return removed


def get_client_ip(request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
