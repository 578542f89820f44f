"""A scheduler that keeps all of its state in memory."""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable

from .api import (
    DeliveryType,
    EnvelopeFlags,
    EvpState,
    SchedFlag,
    SchedulerInfo,
    evpid_to_msgid,
)
from .rqueue import (
    BACKOFF_DELIVERY,
    BACKOFF_OVERFLOW,
    BACKOFF_TRANSFER,
    HoldQueue,
    RqEnvelope,
    RqFlags,
    RqMessage,
    RqQueue,
    RqState,
    backoff,
    next_try,
)
from .schedulers import BatchResult, Scheduler
from .tree import Tree

TRACE_SCHEDULER = 0x0080
HOLDQ_MAXSIZE = 1000

_BATCH_ORDER = (
    SchedFlag.REMOVE,
    SchedFlag.EXPIRE,
    SchedFlag.UPDATE,
    SchedFlag.BOUNCE,
    SchedFlag.MDA,
    SchedFlag.MTA,
)


def _wall_clock() -> int:
    return int(time.time())


def _base_for(type_: DeliveryType) -> int:
    return BACKOFF_TRANSFER if type_ == DeliveryType.MTA else BACKOFF_DELIVERY


class RamScheduler(Scheduler):
    """Scheduler holding messages, envelopes and hold queues in memory.

    ``clock`` returns the current time in whole seconds; it defaults to the
    system clock.  Set ``verbose`` to include TRACE_SCHEDULER to have the
    run queue dumped to the debug log on commit and batch.
    """

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock if clock is not None else _wall_clock
        self.verbose = 0
        self.init()

    def _now(self) -> int:
        return int(self._clock())

    def init(self) -> bool:
        self.holdqs: dict[DeliveryType, Tree] = {t: Tree() for t in DeliveryType}
        self.queue = RqQueue(self.holdqs)
        self._updates = Tree()
        return True

    def _find(self, evpid: int) -> RqEnvelope:
        msg = self.queue.messages.xget(evpid_to_msgid(evpid))
        return msg.envelopes.xget(evpid)

    def _take_inflight(self, evpid: int) -> RqEnvelope:
        evp = self._find(evpid)
        if evp.state != RqState.INFLIGHT:
            raise RuntimeError(f"evp:{evpid:016x} not in-flight")
        self.queue.q_inflight.discard(evp)
        return evp

    def insert(self, info: SchedulerInfo) -> bool:
        msgid = evpid_to_msgid(info.evpid)

        update = self._updates.get(msgid)
        if update is None:
            update = RqQueue(self.holdqs)
            self._updates.xset(msgid, update)

        message = update.messages.get(msgid)
        if message is None:
            message = RqMessage(msgid)
            update.messages.xset(msgid, message)

        type_ = DeliveryType(info.type)
        envelope = RqEnvelope(
            evpid=info.evpid,
            type=type_,
            message=message,
            ctime=info.creation,
            expire=info.creation + info.expire,
            sched=backoff(info.creation, _base_for(type_), info.retry),
        )
        message.envelopes.xset(envelope.evpid, envelope)
        update.evpcount += 1
        envelope.state = RqState.PENDING
        update.sorted_insert(envelope)

        info.nexttry = envelope.sched
        return True

    def commit(self, msgid: int) -> int:
        now = self._now()
        update = self._updates.xpop(msgid)
        count = update.evpcount
        if self.verbose & TRACE_SCHEDULER:
            update.dump("update to commit", now)
        self.queue.merge(update)
        if self.verbose & TRACE_SCHEDULER:
            self.queue.dump("resulting queue", now)
        self.queue.schedule_pending(now)
        return count

    def rollback(self, msgid: int) -> int:
        update = self._updates.pop(msgid)
        if update is None:
            return 0
        count = update.evpcount
        for evp in list(update.q_pending):
            update.q_pending.remove(evp)
            update.delete_envelope(evp)
        return count

    def update(self, info: SchedulerInfo) -> int:
        now = self._now()
        evp = self._take_inflight(info.evpid)

        if evp.flags & RqFlags.REMOVED:
            self.queue.q_removed.append(evp)
            evp.state = RqState.SCHEDULED
            evp.t_scheduled = now
            return 1

        evp.sched = next_try(
            evp.ctime, _base_for(DeliveryType(info.type)), info.retry, now
        )
        evp.state = RqState.PENDING
        if not evp.flags & RqFlags.SUSPEND:
            self.queue.sorted_insert(evp)

        info.nexttry = evp.sched
        return 1

    def delete(self, evpid: int) -> bool:
        evp = self._take_inflight(evpid)
        self.queue.delete_envelope(evp)
        return True

    def hold(self, evpid: int, holdq: int) -> bool:
        evp = self._take_inflight(evpid)

        if evp.flags & RqFlags.SUSPEND:
            evp.state = RqState.PENDING
            return False

        tree = self.holdqs[evp.type]
        hq = tree.get(holdq)
        if hq is None:
            hq = HoldQueue()
            tree.xset(holdq, hq)

        if hq.count >= HOLDQ_MAXSIZE:
            evp.state = RqState.PENDING
            evp.flags |= RqFlags.UPDATE | RqFlags.OVERFLOW
            self.queue.sorted_insert(evp)
            return False

        evp.state = RqState.HELD
        evp.holdq = holdq
        hq.push(evp)
        return True

    def release(self, type_: int, holdq: int, count: int) -> int:
        """Release count envelopes (0 for all, -1 for all marked for update)."""
        tree = self.holdqs[DeliveryType(type_)]
        hq = tree.get(holdq)
        if hq is None:
            return 0

        mark_update = count == -1
        if mark_update:
            count = 0

        released = 0
        while count == 0 or released < count:
            evp = hq.pop()
            if evp is None:
                break
            evp.holdq = 0
            evp.state = RqState.PENDING
            if mark_update:
                evp.flags |= RqFlags.UPDATE
            self.queue.sorted_insert(evp)
            released += 1

        if not hq:
            tree.xpop(holdq)
        return released

    def _hand_out(self, kind: SchedFlag, now: int) -> RqEnvelope | None:
        q = self.queue
        lists = {
            SchedFlag.REMOVE: q.q_removed,
            SchedFlag.EXPIRE: q.q_expired,
            SchedFlag.UPDATE: q.q_update,
            SchedFlag.BOUNCE: q.q_bounce,
            SchedFlag.MDA: q.q_mda,
            SchedFlag.MTA: q.q_mta,
        }
        evp = lists[kind].popleft()
        if evp is None:
            return None

        if kind in (SchedFlag.REMOVE, SchedFlag.EXPIRE):
            q.delete_envelope(evp)
        elif kind == SchedFlag.UPDATE:
            if evp.flags & RqFlags.OVERFLOW:
                base = BACKOFF_OVERFLOW
            else:
                base = _base_for(evp.type)
            evp.sched = next_try(evp.ctime, base, 0, now)
            evp.flags &= ~(RqFlags.UPDATE | RqFlags.OVERFLOW)
            evp.state = RqState.PENDING
            if not evp.flags & RqFlags.SUSPEND:
                q.sorted_insert(evp)
        else:
            q.q_inflight.append(evp)
            evp.state = RqState.INFLIGHT
            evp.t_inflight = now
        return evp

    def batch(self, mask: int, count: int) -> BatchResult:
        now = self._now()
        self.queue.schedule_pending(now)
        if self.verbose & TRACE_SCHEDULER:
            self.queue.dump("scheduler_ram_batch()", now)

        mask = int(mask)
        handed: list[tuple[int, SchedFlag]] = []
        full = False
        while not full:
            seen = len(handed)
            for kind in _BATCH_ORDER:
                if not mask & kind:
                    continue
                evp = self._hand_out(kind, now)
                if evp is None:
                    continue
                handed.append((evp.evpid, kind))
                if len(handed) == count:
                    full = True
                    break
            if len(handed) == seen:
                break

        if handed:
            return BatchResult(delay=0, envelopes=handed)

        if self.queue.q_pending:
            evp = self.queue.q_pending[0]
            due = min(evp.sched, evp.expire)
            delay = 0 if due < now else due - now
        else:
            delay = -1
        return BatchResult(delay=delay)

    def messages(self, msgid: int, size: int) -> list[int]:
        return [
            id_
            for id_, _ in itertools.islice(
                self.queue.messages.items_from(msgid), max(size, 0)
            )
        ]

    def envelopes(self, evpid: int, size: int) -> list[EvpState]:
        msg = self.queue.messages.get(evpid_to_msgid(evpid))
        if msg is None:
            return []

        states: list[EvpState] = []
        for _, evp in msg.envelopes.items_from(evpid):
            if len(states) >= size:
                break
            if evp.flags & (RqFlags.REMOVED | RqFlags.EXPIRED):
                continue
            state = EvpState(evpid=evp.evpid)
            if evp.state == RqState.PENDING:
                state.time = evp.sched
                state.flags = EnvelopeFlags.PENDING
            elif evp.state == RqState.SCHEDULED:
                state.time = evp.t_scheduled
                state.flags = EnvelopeFlags.PENDING
            elif evp.state == RqState.INFLIGHT:
                state.time = evp.t_inflight
                state.flags = EnvelopeFlags.INFLIGHT
            elif evp.state == RqState.HELD:
                state.time = evp.t_scheduled
                state.flags = EnvelopeFlags.PENDING | EnvelopeFlags.HOLD
            if evp.flags & RqFlags.SUSPEND:
                state.flags |= EnvelopeFlags.SUSPEND
            state.flags = int(state.flags)
            states.append(state)
        return states

    def _targets(self, evpid: int) -> list[RqEnvelope]:
        if evpid > 0xFFFFFFFF:
            msg = self.queue.messages.get(evpid_to_msgid(evpid))
            if msg is None:
                return []
            evp = msg.envelopes.get(evpid)
            return [] if evp is None else [evp]
        msg = self.queue.messages.get(evpid)
        if msg is None:
            return []
        return [evp for _, evp in msg.envelopes.items()]

    def schedule(self, evpid: int) -> int:
        now = self._now()
        done = 0
        for evp in self._targets(evpid):
            if evp.state == RqState.INFLIGHT:
                continue
            self.queue.schedule_envelope(evp, now)
            done += 1
        return done

    def remove(self, evpid: int) -> int:
        now = self._now()
        return sum(
            1 for evp in self._targets(evpid) if self.queue.remove_envelope(evp, now)
        )

    def suspend(self, evpid: int) -> int:
        return sum(
            1 for evp in self._targets(evpid) if self.queue.suspend_envelope(evp)
        )

    def resume(self, evpid: int) -> int:
        return sum(
            1 for evp in self._targets(evpid) if self.queue.resume_envelope(evp)
        )