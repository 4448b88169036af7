"""Rate limiting for billable operations - SmartHire"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter keyed by client address."""

    def __init__(self, max_attempts: int = 100, window_minutes: int = 15):
        # In-memory, per process
        self.max_attempts = max_attempts
        self.window_minutes = window_minutes
        self.attempts: Dict[str, List[datetime]] = {}

    async def check_rate_limit(
        self,
        key: str,
        max_attempts: Optional[int] = None,
        window_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[bool, int]:
        """
        Check and record one attempt for key.

        Returns:
            (allowed: bool, retry_after_seconds: int)
        """
        max_attempts = max_attempts or self.max_attempts
        window = timedelta(minutes=window_minutes or self.window_minutes)
        now = now or datetime.now(timezone.utc)

        # Clean old entries
        recent = [ts for ts in self.attempts.pop(key, []) if now - ts < window]

        if len(recent) >= max_attempts:
            self.attempts[key] = recent
            wait_until = min(recent) + window
            wait_seconds = max(1, int((wait_until - now).total_seconds()))
            logger.warning(f"Rate limit exceeded for {key} - retry in {wait_seconds}s")
            return False, wait_seconds

        recent.append(now)
        self.attempts[key] = recent
        self.prune(now, window)
        return True, 0

    def prune(self, now: datetime, window: timedelta) -> None:
        """Forget keys with no attempt inside the window."""
        stale = [k for k, stamps in self.attempts.items() if not stamps or now - max(stamps) >= window]
        for k in stale:
            del self.attempts[k]

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self.attempts.clear()
        else:
            self.attempts.pop(key, None)
