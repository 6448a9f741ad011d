"""
Pickup code attempt limiter.

Counts failed pickup-code submissions per (user, parcel) in Redis with a
fixed window. The mission engine itself has no lockout; the HTTP layer
checks this limiter before calling it and records failures after.
"""

import logging
from parcelhop.app.core.config import settings
from parcelhop.app.core.exceptions import TooManyAttemptsError

logger = logging.getLogger("parcelhop.rate_limit")

ATTEMPT_KEY_PREFIX = "pickup:attempts:"


class PickupCodeAttemptLimiter:

    def __init__(self, redis, max_attempts: int = None, window_seconds: int = None):
        self.redis = redis
        self.max_attempts = max_attempts or settings.pickup_code_max_attempts
        self.window_seconds = window_seconds or settings.pickup_code_attempt_window_seconds

    @staticmethod
    def _key(user_id: int, parcel_id: int) -> str:
        return f"{ATTEMPT_KEY_PREFIX}{parcel_id}:{user_id}"

    async def ensure_allowed(self, user_id: int, parcel_id: int) -> None:
        """Raise TooManyAttemptsError once the failure budget is spent."""
        value = await self.redis.get(self._key(user_id, parcel_id))
        if value is not None and int(value) >= self.max_attempts:
            raise TooManyAttemptsError(retry_after_seconds=self.window_seconds)

    async def record_failure(self, user_id: int, parcel_id: int) -> int:
        key = self._key(user_id, parcel_id)
        attempts = await self.redis.incr(key)
        if attempts == 1:
            await self.redis.expire(key, self.window_seconds)
        logger.warning(
            "Invalid pickup code for parcel %s by user %s (%s/%s)",
            parcel_id, user_id, attempts, self.max_attempts
        )
        return attempts

    async def reset(self, user_id: int, parcel_id: int) -> None:
        await self.redis.delete(self._key(user_id, parcel_id))
