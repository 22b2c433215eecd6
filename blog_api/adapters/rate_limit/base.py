"""Rate limiting strategy interfaces.

The limiter core depends on this abstraction (not a concrete store) so the
counting algorithm and its backing store can be swapped without touching
callers.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


class State(str, enum.Enum):
    """Outcome of a rate limiting evaluation."""

    ALLOW = "Allow"
    DENY = "Deny"


@dataclass(frozen=True)
class RateLimitRequest:
    """Input to a counting strategy.

    Attributes:
        key: Partition key of the throttled client.
        limit: Max events allowed in the window before denying.
        duration: Length of the trailing window.
    """

    key: str
    limit: int
    duration: timedelta


@dataclass(frozen=True)
class Decision:
    """Result of one evaluation; a view over the counter, never persisted.

    Attributes:
        state: Allow or Deny.
        total_requests: Events counted in the window, including this one.
        expires_at: When the current window ends (UTC).
    """

    state: State
    total_requests: int
    expires_at: datetime

    @property
    def allowed(self) -> bool:
        return self.state is State.ALLOW


def decide(total_requests: int, request: RateLimitRequest, now: float) -> Decision:
    """Build the decision for a window count observed at ``now`` (epoch seconds)."""

    state = State.DENY if total_requests > request.limit else State.ALLOW
    expires_at = datetime.fromtimestamp(now, tz=timezone.utc) + request.duration
    return Decision(state=state, total_requests=total_requests, expires_at=expires_at)


class AbstractStrategy(ABC):
    """Interface for counting strategies."""

    @abstractmethod
    async def run(self, request: RateLimitRequest) -> Decision:
        """Record one event for ``request.key`` and decide.

        Args:
            request: Key, limit and window to evaluate.

        Returns:
            Decision describing the window after recording the event.

        Raises:
            RateLimitStoreError: If the backing store cannot be used.
        """
        raise NotImplementedError

    async def ping(self) -> bool:
        """Report whether the backing store is reachable."""
        return True

    async def close(self) -> None:
        """Release store resources held by the strategy."""
