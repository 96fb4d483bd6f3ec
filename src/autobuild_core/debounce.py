"""Cooldown-based rate limiting of build triggers.

This is a rate limiter, not a batching queue: changes that arrive inside the
cooldown window are dropped and do not push the next allowed trigger back.
"""

import logging

logger = logging.getLogger(__name__)


def should_trigger(now: float, last_trigger_time: float | None, cooldown: float) -> bool:
    """Return True if a change at `now` may start a build.

    A change arriving exactly at `last_trigger_time + cooldown` is eligible.
    """
    if last_trigger_time is None:
        return True
    return now - last_trigger_time >= cooldown


class DebounceGate:
    """Holds the time of the last accepted trigger."""

    def __init__(self, cooldown: float):
        self.cooldown = cooldown
        self.last_trigger_time: float | None = None

    def should_trigger(self, now: float) -> bool:
        return should_trigger(now, self.last_trigger_time, self.cooldown)

    def record(self, now: float) -> None:
        self.last_trigger_time = now

    def offer(self, now: float) -> bool:
        """Check and record in one step.

        Returns:
            True if the change triggers a build (and is recorded)
        """
        if not self.should_trigger(now):
            remaining = self.cooldown - (now - self.last_trigger_time)
            logger.debug(f"Change swallowed by cooldown ({remaining:.2f}s remaining)")
            return False
        self.record(now)
        return True

    def reset(self) -> None:
        self.last_trigger_time = None
