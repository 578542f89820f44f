"""In-memory run queue used by the RAM scheduler."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Iterator

from sortedcontainers import SortedKeyList

from .api import DeliveryType
from .tree import Tree

log = logging.getLogger(__name__)

BACKOFF_TRANSFER = 400
BACKOFF_DELIVERY = 10
BACKOFF_OVERFLOW = 3

SCHEDULEMAX = 1024


class RqState(IntEnum):
    """Where an envelope stands in the run queue."""

    PENDING = 0
    SCHEDULED = 1
    INFLIGHT = 2
    HELD = 3


class RqFlags(IntFlag):
    """Marks carried by a run-queue envelope."""

    EXPIRED = 0x01
    REMOVED = 0x02
    SUSPEND = 0x04
    UPDATE = 0x08
    OVERFLOW = 0x10


@dataclass
class RqMessage:
    """A message and its envelopes, keyed by envelope id."""

    msgid: int
    envelopes: Tree = field(default_factory=Tree)


@dataclass(eq=False)
class RqEnvelope:
    """One envelope tracked by the run queue."""

    evpid: int
    type: DeliveryType
    message: RqMessage = field(repr=False)
    ctime: int = 0
    sched: int = 0
    expire: int = 0
    state: RqState = RqState.PENDING
    flags: RqFlags = RqFlags(0)
    holdq: int = 0
    t_inflight: int = 0
    t_scheduled: int = 0


class _EvpList:
    """An insertion-ordered set of envelopes with cheap removal."""

    def __init__(self) -> None:
        self._entries: dict[RqEnvelope, None] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __iter__(self) -> Iterator[RqEnvelope]:
        return iter(list(self._entries))

    def __contains__(self, evp: object) -> bool:
        return evp in self._entries

    def append(self, evp: RqEnvelope) -> None:
        """Add an envelope at the tail."""
        self._entries.setdefault(evp, None)

    def discard(self, evp: RqEnvelope) -> None:
        """Remove an envelope if present."""
        self._entries.pop(evp, None)

    def first(self) -> RqEnvelope | None:
        """Return the head envelope, or None."""
        return next(iter(self._entries), None)

    def popleft(self) -> RqEnvelope | None:
        """Remove and return the head envelope, or None."""
        evp = self.first()
        if evp is not None:
            del self._entries[evp]
        return evp


class HoldQueue:
    """Envelopes held for one hold-queue id; the newest is released first."""

    def __init__(self) -> None:
        self._entries: dict[RqEnvelope, None] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __iter__(self) -> Iterator[RqEnvelope]:
        return iter(list(reversed(self._entries)))

    def __contains__(self, evp: object) -> bool:
        return evp in self._entries

    @property
    def count(self) -> int:
        """Number of envelopes held."""
        return len(self._entries)

    def push(self, evp: RqEnvelope) -> None:
        """Put an envelope at the head of the queue."""
        self._entries.pop(evp, None)
        self._entries[evp] = None

    def pop(self) -> RqEnvelope | None:
        """Remove and return the head envelope, or None."""
        if not self._entries:
            return None
        evp, _ = self._entries.popitem()
        return evp

    def discard(self, evp: RqEnvelope) -> None:
        """Remove an envelope if present."""
        self._entries.pop(evp, None)


def _priority(evp: RqEnvelope) -> tuple[int, int]:
    return (min(evp.sched, evp.expire), evp.evpid)


def duration_to_text(t: int) -> str:
    """Render a number of seconds as e.g. ``1d2h3m4s``."""
    if t == 0:
        return "0s"
    out = ""
    if t < 0:
        out = "-"
        t = -t
    t, s = divmod(t, 60)
    t, m = divmod(t, 60)
    d, h = divmod(t, 24)
    for value, unit in ((d, "d"), (h, "h"), (m, "m"), (s, "s")):
        if value:
            out += f"{value}{unit}"
    return out


_TYPE_NAMES = {
    DeliveryType.BOUNCE: "bounce",
    DeliveryType.MDA: "mda",
    DeliveryType.MTA: "mta",
}


def envelope_to_text(envelope: RqEnvelope, now: int) -> str:
    """Describe an envelope's type, timers and flags relative to now."""
    e = envelope
    parts = [f"evp:{e.evpid:016x} [", _TYPE_NAMES.get(e.type, "")]
    parts.append(f",expire={duration_to_text(e.expire - now)}")
    if e.state == RqState.PENDING:
        parts.append(f",pending={duration_to_text(e.sched - now)}")
    elif e.state == RqState.SCHEDULED:
        parts.append(f",scheduled={duration_to_text(now - e.t_scheduled)}")
    elif e.state == RqState.INFLIGHT:
        parts.append(f",inflight={duration_to_text(now - e.t_inflight)}")
    elif e.state == RqState.HELD:
        parts.append(f",held={duration_to_text(now - e.t_inflight)}")
    else:
        raise ValueError(f"{e.evpid:016x} bad state {e.state}")
    if e.flags & RqFlags.REMOVED:
        parts.append(",removed")
    if e.flags & RqFlags.EXPIRED:
        parts.append(",expired")
    if e.flags & RqFlags.SUSPEND:
        parts.append(",suspended")
    parts.append("]")
    return "".join(parts)


def backoff(t0: int, base: int, step: int) -> int:
    """Return the retry time after step attempts: t0 + base * step**2."""
    return t0 + base * step * step


def next_try(t0: int, base: int, step: int, now: int) -> int:
    """Return the first backoff time from step onwards that lies after now."""
    while (t := backoff(t0, base, step)) <= now:
        step += 1
    return t


def _new_holdqs() -> dict[DeliveryType, Tree]:
    return {t: Tree() for t in DeliveryType}


class RqQueue:
    """Messages, the time-ordered pending queue and the per-kind ready lists.

    ``holdqs`` maps each delivery type to a Tree of HoldQueue objects keyed
    by hold-queue id; queues that work together share it.
    """

    def __init__(self, holdqs: dict[DeliveryType, Tree] | None = None) -> None:
        self.holdqs = holdqs if holdqs is not None else _new_holdqs()
        self.evpcount = 0
        self.messages = Tree()
        self.q_pending: SortedKeyList = SortedKeyList(key=_priority)
        self.q_inflight = _EvpList()
        self.q_mta = _EvpList()
        self.q_mda = _EvpList()
        self.q_bounce = _EvpList()
        self.q_update = _EvpList()
        self.q_expired = _EvpList()
        self.q_removed = _EvpList()

    def sorted_insert(self, evp: RqEnvelope) -> None:
        """Insert an envelope in the pending queue by its next due time."""
        self.q_pending.add(evp)

    def merge(self, update: RqQueue) -> None:
        """Move every message and pending envelope of update into this queue."""
        while (entry := update.messages.poproot()) is not None:
            msgid, message = entry
            target = self.messages.get(msgid)
            if target is None:
                self.messages.xset(msgid, message)
                continue
            for _, envelope in message.envelopes.items():
                envelope.message = target
            target.envelopes.merge(message.envelopes)

        pending = list(update.q_pending)
        update.q_pending.clear()
        for envelope in pending:
            self.sorted_insert(envelope)

        self.evpcount += update.evpcount

    def schedule_pending(self, now: int) -> None:
        """Move due pending envelopes to their ready lists, expiring old ones.

        At most SCHEDULEMAX envelopes are scheduled in one call.
        """
        n = 0
        while self.q_pending:
            evp = self.q_pending[0]
            if evp.sched > now and evp.expire > now:
                break
            if n == SCHEDULEMAX:
                break
            if evp.state != RqState.PENDING:
                raise RuntimeError(
                    f"evp:{evp.evpid:016x} flags=0x{int(evp.flags):x}"
                )
            if evp.expire <= now:
                self.q_pending.remove(evp)
                self.q_expired.append(evp)
                evp.state = RqState.SCHEDULED
                evp.flags |= RqFlags.EXPIRED
                evp.t_scheduled = now
                continue
            self.schedule_envelope(evp, now)
            n += 1

    def envelope_list(self, evp: RqEnvelope) -> SortedKeyList | _EvpList | None:
        """Return the list an envelope belongs in given its state, or None if held."""
        if evp.state == RqState.PENDING:
            return self.q_pending
        if evp.state == RqState.SCHEDULED:
            if evp.flags & RqFlags.EXPIRED:
                return self.q_expired
            if evp.flags & RqFlags.REMOVED:
                return self.q_removed
            if evp.flags & RqFlags.UPDATE:
                return self.q_update
            if evp.type == DeliveryType.MTA:
                return self.q_mta
            if evp.type == DeliveryType.MDA:
                return self.q_mda
            if evp.type == DeliveryType.BOUNCE:
                return self.q_bounce
            raise ValueError(f"{evp.evpid:016x} bad evp type {evp.type}")
        if evp.state == RqState.INFLIGHT:
            return self.q_inflight
        if evp.state == RqState.HELD:
            return None
        raise ValueError(f"{evp.evpid:016x} bad state {evp.state}")

    def _ready_list(self, evp: RqEnvelope) -> _EvpList:
        if evp.flags & RqFlags.UPDATE:
            return self.q_update
        if evp.type == DeliveryType.MTA:
            return self.q_mta
        if evp.type == DeliveryType.MDA:
            return self.q_mda
        if evp.type == DeliveryType.BOUNCE:
            return self.q_bounce
        raise ValueError(f"{evp.evpid:016x} bad evp type {evp.type}")

    def _unhold(self, evp: RqEnvelope) -> None:
        tree = self.holdqs[evp.type]
        hq = tree.xget(evp.holdq)
        hq.discard(evp)
        if not hq:
            tree.xpop(evp.holdq)
        evp.holdq = 0

    def _unlink(self, evp: RqEnvelope) -> None:
        evl = self.envelope_list(evp)
        if evl is not None:
            evl.discard(evp)

    def schedule_envelope(self, evp: RqEnvelope, now: int) -> None:
        """Make an envelope ready for delivery right away."""
        target = self._ready_list(evp)
        if evp.state == RqState.HELD:
            self._unhold(evp)
        elif not evp.flags & RqFlags.SUSPEND:
            self._unlink(evp)
        target.append(evp)
        evp.state = RqState.SCHEDULED
        evp.t_scheduled = now

    def remove_envelope(self, evp: RqEnvelope, now: int) -> bool:
        """Queue an envelope for removal; False if already removed or expired.

        An in-flight envelope is only marked, to be removed when it returns.
        """
        if evp.flags & (RqFlags.REMOVED | RqFlags.EXPIRED):
            return False
        if evp.state == RqState.INFLIGHT:
            evp.flags |= RqFlags.REMOVED
            return True
        if evp.state == RqState.HELD:
            self._unhold(evp)
        elif not evp.flags & RqFlags.SUSPEND:
            self._unlink(evp)
        self.q_removed.append(evp)
        evp.state = RqState.SCHEDULED
        evp.flags |= RqFlags.REMOVED
        evp.t_scheduled = now
        return True

    def suspend_envelope(self, evp: RqEnvelope) -> bool:
        """Take an envelope out of its list; False if already suspended."""
        if evp.flags & RqFlags.SUSPEND:
            return False
        if evp.state == RqState.HELD:
            self._unhold(evp)
            evp.state = RqState.PENDING
        elif evp.state != RqState.INFLIGHT:
            self._unlink(evp)
        evp.flags |= RqFlags.SUSPEND
        return True

    def resume_envelope(self, evp: RqEnvelope) -> bool:
        """Put a suspended envelope back in its list; False if not suspended."""
        if not evp.flags & RqFlags.SUSPEND:
            return False
        if evp.state != RqState.INFLIGHT:
            evl = self.envelope_list(evp)
            if evl is self.q_pending:
                self.sorted_insert(evp)
            elif evl is not None:
                evl.append(evp)
        evp.flags &= ~RqFlags.SUSPEND
        return True

    def delete_envelope(self, evp: RqEnvelope) -> None:
        """Forget an envelope, and its message once it has no envelope left."""
        message = evp.message
        message.envelopes.xpop(evp.evpid)
        if not len(message.envelopes):
            self.messages.xpop(message.msgid)
        self.evpcount -= 1

    def dump(self, name: str, now: int) -> list[str]:
        """Log every message and envelope at debug level; return the lines."""
        lines = [f"/--- ramqueue: {name}"]
        for _, message in self.messages.items():
            lines.append(f"| msg:{message.msgid:08x}")
            for _, envelope in message.envelopes.items():
                lines.append(f"|   {envelope_to_text(envelope, now)}")
        lines.append("\\---")
        for line in lines:
            log.debug("%s", line)
        return lines