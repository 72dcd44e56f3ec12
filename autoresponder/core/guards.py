"""Cooldown guards: media reply suppression and failure-log suppression."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Hashable

logger = logging.getLogger(__name__)

GIF_RESPONSE_COOLDOWN = 7.0
ERROR_LOG_COOLDOWN = 5 * 60.0
ERROR_LOG_PRUNE_THRESHOLD = 1000


class CooldownGuard:
    """Time-windowed check-and-set keyed by a composite tuple.

    ``allow`` records "now" for the key whenever it returns True, so two calls
    inside one window can never both pass.
    """

    def __init__(
        self,
        window: float = GIF_RESPONSE_COOLDOWN,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = window
        self._timer = timer
        # key: (guild_id, channel_id, rule_id) -> last allowed timestamp
        self._last_seen: dict[Hashable, float] = {}

    def allow(self, key: Hashable) -> bool:
        now = self._timer()
        last = self._last_seen.get(key)
        if last is not None and now - last < self.window:
            return False
        self._last_seen[key] = now
        return True

    def remaining(self, key: Hashable) -> float:
        """Seconds until ``key`` is allowed again (0 when allowed now)."""
        last = self._last_seen.get(key)
        if last is None:
            return 0.0
        return max(0.0, self.window - (self._timer() - last))

    def __len__(self) -> int:
        return len(self._last_seen)


class ErrorLogGuard(CooldownGuard):
    """Suppresses repeated failure logs for the same key.

    Repeats inside the window are counted, not logged. Once more than
    ``prune_threshold`` keys are tracked, keys older than the window are swept.
    """

    def __init__(
        self,
        window: float = ERROR_LOG_COOLDOWN,
        prune_threshold: int = ERROR_LOG_PRUNE_THRESHOLD,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(window=window, timer=timer)
        self.prune_threshold = prune_threshold
        self._suppressed: dict[Hashable, int] = {}

    def should_log(self, key: Hashable) -> bool:
        if self.allow(key):
            self._suppressed.pop(key, None)
            if len(self._last_seen) > self.prune_threshold:
                self.prune()
            return True
        self._suppressed[key] = self._suppressed.get(key, 0) + 1
        return False

    def suppressed(self, key: Hashable) -> int:
        """Number of repeats swallowed since ``key`` was last logged."""
        return self._suppressed.get(key, 0)

    @property
    def total_suppressed(self) -> int:
        return sum(self._suppressed.values())

    def prune(self) -> int:
        """Drop keys whose window has elapsed. Returns the number removed."""
        now = self._timer()
        expired = [k for k, ts in self._last_seen.items() if now - ts >= self.window]
        for key in expired:
            del self._last_seen[key]
            self._suppressed.pop(key, None)
        if expired:
            logger.debug(f"Pruned {len(expired)} expired error-log keys")
        return len(expired)
