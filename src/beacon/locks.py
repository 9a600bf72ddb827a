"""Lock registry shared by every job.

A subscriber is in the registry exactly while some processing call for them
is in flight. Nothing here awaits, so a check-and-set cannot be interleaved
by another coroutine.
"""


class LockRegistry:
    """Set of subscriber identifiers currently being processed."""

    def __init__(self):
        # dict keeps acquisition order for reporting
        self._held: dict[str, None] = {}

    def try_acquire(self, subscriber_id: str) -> bool:
        """Claim a subscriber. Returns False if someone else already holds it."""
        if subscriber_id in self._held:
            return False
        self._held[subscriber_id] = None
        return True

    def release(self, subscriber_id: str) -> None:
        self._held.pop(subscriber_id, None)

    def snapshot(self) -> list[str]:
        return list(self._held)

    def __contains__(self, subscriber_id: object) -> bool:
        return subscriber_id in self._held

    def __len__(self) -> int:
        return len(self._held)
