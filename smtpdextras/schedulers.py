"""Scheduler backend interface and a stub scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field

from .api import EvpState, SchedFlag, SchedulerInfo


@dataclass
class BatchResult:
    """Outcome of a batch request.

    Either ``envelopes`` holds (evpid, kind) pairs ready to be acted on, or
    it is empty and ``delay`` tells how many seconds to wait before asking
    again (-1 meaning there is nothing pending).
    """

    delay: int = -1
    envelopes: list[tuple[int, SchedFlag]] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        """Whether the batch holds any envelope."""
        return bool(self.envelopes)


class Scheduler:
    """Scheduler backend interface; by default nothing is ever scheduled."""

    def init(self) -> bool:
        """Prepare the scheduler."""
        return True

    def insert(self, info: SchedulerInfo) -> bool:
        """Add an envelope to the pending update of its message."""
        return False

    def commit(self, msgid: int) -> int:
        """Make the pending update of a message live; return its envelope count."""
        return 0

    def rollback(self, msgid: int) -> int:
        """Drop the pending update of a message; return its envelope count."""
        return 0

    def update(self, info: SchedulerInfo) -> int:
        """Reschedule an in-flight envelope after a temporary failure.

        Returns 1 when rescheduled (info.nexttry set), 0 when not, -1 on error.
        """
        return 0

    def delete(self, evpid: int) -> bool:
        """Forget an in-flight envelope."""
        return False

    def hold(self, evpid: int, holdq: int) -> bool:
        """Put an in-flight envelope on a hold queue."""
        return False

    def release(self, type_: int, holdq: int, count: int) -> int:
        """Release envelopes from a hold queue; return how many were released."""
        return 0

    def batch(self, mask: int, count: int) -> BatchResult:
        """Hand out up to count envelopes of the kinds selected by mask."""
        return BatchResult(delay=-1)

    def messages(self, msgid: int, size: int) -> list[int]:
        """List up to size message ids starting at msgid."""
        return []

    def envelopes(self, evpid: int, size: int) -> list[EvpState]:
        """List up to size envelope states starting at evpid."""
        return []

    def schedule(self, evpid: int) -> int:
        """Schedule an envelope, or all envelopes of a message, now."""
        return 0

    def remove(self, evpid: int) -> int:
        """Mark an envelope, or all envelopes of a message, for removal."""
        return 0

    def suspend(self, evpid: int) -> int:
        """Suspend an envelope, or all envelopes of a message."""
        return 0

    def resume(self, evpid: int) -> int:
        """Resume an envelope, or all envelopes of a message."""
        return 0


class StubScheduler(Scheduler):
    """A scheduler that accepts initialisation and nothing else."""