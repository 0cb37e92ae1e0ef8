from typing import Optional, Protocol


class RateLimiter(Protocol):
    """Fixed-window request counter keyed by an arbitrary caller-chosen string."""

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Count one hit for ``key``; False once the window already holds ``max_requests``."""
        ...

    def retry_after(self, key: str, window_seconds: int) -> Optional[int]:
        """Seconds until the current window for ``key`` resets, or None if there is none."""
        ...
