"""A scheduler whose decisions are made by user-supplied callables."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from .api import EvpState, SchedFlag, SchedulerInfo
from .schedulers import BatchResult, Scheduler

_HANDLER_NAMES = (
    "scheduler_init",
    "scheduler_insert",
    "scheduler_commit",
    "scheduler_rollback",
    "scheduler_update",
    "scheduler_delete",
    "scheduler_hold",
    "scheduler_release",
    "scheduler_batch",
    "scheduler_messages",
    "scheduler_envelopes",
    "scheduler_schedule",
    "scheduler_remove",
    "scheduler_suspend",
    "scheduler_resume",
)

_U32 = 0xFFFFFFFF
_U64 = 0xFFFFFFFFFFFFFFFF


class SchedulerHandlerError(RuntimeError):
    """Raised when a handler is missing, fails, or returns an unusable value."""


def _info_args(info: SchedulerInfo) -> tuple[int, ...]:
    return (
        info.evpid,
        int(info.type),
        info.retry,
        info.creation,
        info.expire,
        info.lasttry,
        info.lastbounce,
        info.nexttry,
    )


class PythonScheduler(Scheduler):
    """Scheduler delegating each operation to a ``scheduler_<op>`` handler.

    ``handlers`` is a mapping or an object (such as a module) providing
    every handler by name.
    """

    def __init__(self, handlers: Any) -> None:
        self._handlers: dict[str, Callable[..., Any]] = {}
        for name in _HANDLER_NAMES:
            if isinstance(handlers, Mapping):
                handler = handlers.get(name)
            else:
                handler = getattr(handlers, name, None)
            if handler is None or not callable(handler):
                raise SchedulerHandlerError(f"no such handler: {name}")
            self._handlers[name] = handler

    def _call(self, op: str, *args: Any) -> Any:
        try:
            return self._handlers[f"scheduler_{op}"](*args)
        except Exception as exc:
            raise SchedulerHandlerError(f"error in {op} handler: {exc}") from exc

    @staticmethod
    def _int(value: Any, op: str) -> int:
        if not isinstance(value, int):
            raise SchedulerHandlerError(f"error in {op} handler: int type expected")
        return int(value)

    def _unsigned(self, value: Any, op: str, mask: int) -> int:
        number = self._int(value, op)
        if number < 0:
            raise SchedulerHandlerError(f"error in {op} handler: negative value")
        return number & mask

    def _sequence(self, value: Any, op: str, size: int, allow_empty: bool) -> list:
        try:
            items = list(value)
        except TypeError:
            raise SchedulerHandlerError(
                f"error in {op} handler: sequence expected"
            ) from None
        if len(items) > size or (not allow_empty and not items):
            raise SchedulerHandlerError(f"error in {op} handler: bad length")
        return items

    def _tuple(self, item: Any, op: str, length: int) -> tuple:
        if not isinstance(item, tuple) or len(item) != length:
            raise SchedulerHandlerError(
                f"error in {op} handler: {length}-elements tuple expected"
            )
        return item

    def init(self) -> bool:
        return bool(self._int(self._call("init"), "init"))

    def insert(self, info: SchedulerInfo) -> bool:
        return bool(self._int(self._call("insert", *_info_args(info)), "insert"))

    def commit(self, msgid: int) -> int:
        return self._unsigned(self._call("commit", msgid), "commit", _U64)

    def rollback(self, msgid: int) -> int:
        return self._unsigned(self._call("rollback", msgid), "rollback", _U64)

    def update(self, info: SchedulerInfo) -> int:
        """Ask the handler for the next try time: -1 is an error, 0 no retry."""
        nexttry = self._int(self._call("update", *_info_args(info)), "update")
        if nexttry == -1:
            return -1
        if nexttry == 0:
            return 0
        info.nexttry = nexttry
        return 1

    def delete(self, evpid: int) -> bool:
        return bool(self._int(self._call("delete", evpid), "delete"))

    def hold(self, evpid: int, holdq: int) -> bool:
        return bool(self._int(self._call("hold", evpid, holdq), "hold"))

    def release(self, type_: int, holdq: int, count: int) -> int:
        return self._int(self._call("release", int(type_), holdq, count), "release")

    def batch(self, mask: int, count: int) -> BatchResult:
        """An int from the handler is a delay; a sequence lists (evpid, kind) pairs."""
        ret = self._call("batch", int(mask), count)
        if isinstance(ret, int):
            return BatchResult(delay=int(ret))
        items = self._sequence(ret, "batch", count, allow_empty=False)
        envelopes = []
        for item in items:
            evpid, kind = self._tuple(item, "batch", 2)
            envelopes.append(
                (
                    self._unsigned(evpid, "batch", _U64),
                    SchedFlag(self._int(kind, "batch")),
                )
            )
        return BatchResult(delay=0, envelopes=envelopes)

    def messages(self, msgid: int, size: int) -> list[int]:
        ret = self._call("messages", msgid, size)
        items = self._sequence(ret, "messages", size, allow_empty=True)
        return [self._unsigned(item, "messages", _U32) for item in items]

    def envelopes(self, evpid: int, size: int) -> list[EvpState]:
        ret = self._call("envelopes", evpid, size)
        items = self._sequence(ret, "envelopes", size, allow_empty=True)
        states = []
        for item in items:
            tevpid, flags, retry, timestamp = self._tuple(item, "envelopes", 4)
            states.append(
                EvpState(
                    evpid=self._unsigned(tevpid, "envelopes", _U64),
                    flags=self._unsigned(flags, "envelopes", 0xFFFF),
                    retry=self._unsigned(retry, "envelopes", 0xFFFF),
                    time=self._int(timestamp, "envelopes"),
                )
            )
        return states

    def schedule(self, evpid: int) -> int:
        return self._int(self._call("schedule", evpid), "schedule")

    def remove(self, evpid: int) -> int:
        return self._int(self._call("remove", evpid), "remove")

    def suspend(self, evpid: int) -> int:
        return self._int(self._call("suspend", evpid), "suspend")

    def resume(self, evpid: int) -> int:
        return self._int(self._call("resume", evpid), "resume")