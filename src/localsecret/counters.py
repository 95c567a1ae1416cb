"""
Access accounting for a share session.

Both counters share one lock owned by the Session so that every increment,
to either count, is totally ordered with respect to the others. Callers only
ever get atomic check-and-increment operations; there is no way to read a
count and then write it back as two steps.
"""

import threading
from enum import Enum


class UseOutcome(Enum):
    """Result of trying to record a delivery."""
    CONTINUE = "continue"
    LIMIT_REACHED = "limit_reached"
    EXHAUSTED = "exhausted"  # no capacity left, nothing was recorded

    @property
    def admitted(self) -> bool:
        return self is not UseOutcome.EXHAUSTED


class AbuseOutcome(Enum):
    """Result of recording a request that missed the secret path."""
    CONTINUE = "continue"
    LIMIT_REACHED = "limit_reached"


class Session:
    """
    The limits and shared lock for a single run of the server.

    Args:
        maximum_uses: How often the resource may be delivered
        maximum_failed_attempts: How many misses end the session

    Raises:
        ValueError: If a limit is not a positive integer
    """

    def __init__(self, maximum_uses: int = 1, maximum_failed_attempts: int = 3):
        for name, value in (
            ("maximum_uses", maximum_uses),
            ("maximum_failed_attempts", maximum_failed_attempts),
        ):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

        self.maximum_uses = maximum_uses
        self.maximum_failed_attempts = maximum_failed_attempts
        self.lock = threading.Lock()
        self.uses = UseCounter(self)
        self.failures = AbuseCounter(self)


class UseCounter:
    """Counts successful deliveries of the resource."""

    def __init__(self, session: Session):
        self._session = session
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def maximum(self) -> int:
        return self._session.maximum_uses

    @property
    def remaining(self) -> int:
        with self._session.lock:
            return self.maximum - self._count

    def record_successful_delivery(self) -> UseOutcome:
        """
        Claim one use before the resource is delivered.

        The capacity check and the increment happen under the session lock
        as a single step, so two racing requests can never both take the
        last slot. The loser gets EXHAUSTED and the count is left alone.

        Returns:
            UseOutcome: LIMIT_REACHED when this claim took the last use
        """
        with self._session.lock:
            if self._count >= self.maximum:
                return UseOutcome.EXHAUSTED
            self._count += 1
            if self._count == self.maximum:
                return UseOutcome.LIMIT_REACHED
            return UseOutcome.CONTINUE


class AbuseCounter:
    """Counts requests that did not match the secret path."""

    def __init__(self, session: Session):
        self._session = session
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def maximum(self) -> int:
        return self._session.maximum_failed_attempts

    def record_unmatched_request(self) -> AbuseOutcome:
        """Record one miss; LIMIT_REACHED once the count meets the maximum."""
        with self._session.lock:
            self._count += 1
            if self._count >= self.maximum:
                return AbuseOutcome.LIMIT_REACHED
            return AbuseOutcome.CONTINUE
