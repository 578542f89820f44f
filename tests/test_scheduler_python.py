import types

import pytest

from smtpdextras.api import DeliveryType, EvpState, SchedFlag, SchedulerInfo
from smtpdextras.scheduler_python import PythonScheduler, SchedulerHandlerError

NAMES = (
    "init",
    "insert",
    "commit",
    "rollback",
    "update",
    "delete",
    "hold",
    "release",
    "batch",
    "messages",
    "envelopes",
    "schedule",
    "remove",
    "suspend",
    "resume",
)


def make(**overrides):
    handlers = {f"scheduler_{name}": (lambda *args: 0) for name in NAMES}
    for name, fn in overrides.items():
        handlers[f"scheduler_{name}"] = fn
    return PythonScheduler(handlers)


def test_missing_handler_rejected():
    handlers = {f"scheduler_{name}": (lambda *args: 0) for name in NAMES}
    del handlers["scheduler_resume"]
    with pytest.raises(SchedulerHandlerError):
        PythonScheduler(handlers)


def test_handlers_from_object():
    ns = types.SimpleNamespace(
        **{f"scheduler_{name}": (lambda *args: 1) for name in NAMES}
    )
    sched = PythonScheduler(ns)
    assert sched.init() is True
    assert sched.schedule(5) == 1


def test_insert_passes_info_fields():
    seen = []

    def insert(*args):
        seen.append(args)
        return 1

    sched = make(insert=insert)
    info = SchedulerInfo(evpid=0x1234, type=DeliveryType.MTA, retry=3, creation=100, expire=200)
    assert sched.insert(info) is True
    assert seen == [(0x1234, int(DeliveryType.MTA), 3, 100, 200, 0, 0, 0)]


def test_commit_and_rollback_return_counts():
    sched = make(commit=lambda msgid: 7, rollback=lambda msgid: 2)
    assert sched.commit(1) == 7
    assert sched.rollback(1) == 2


def test_update_sets_nexttry():
    sched = make(update=lambda *args: 500)
    info = SchedulerInfo(evpid=1, type=DeliveryType.MDA)
    assert sched.update(info) == 1
    assert info.nexttry == 500


@pytest.mark.parametrize("ret", [0, -1])
def test_update_special_values_leave_nexttry(ret):
    sched = make(update=lambda *args: ret)
    info = SchedulerInfo(evpid=1, type=DeliveryType.MDA, nexttry=42)
    assert sched.update(info) == ret
    assert info.nexttry == 42


def test_batch_delay():
    sched = make(batch=lambda mask, count: 30)
    result = sched.batch(SchedFlag.MTA, 10)
    assert result.delay == 30
    assert not result.ready


def test_batch_envelopes():
    calls = []

    def batch(mask, count):
        calls.append((mask, count))
        return [(0x100000001, int(SchedFlag.MDA)), (0x100000002, int(SchedFlag.REMOVE))]

    sched = make(batch=batch)
    result = sched.batch(SchedFlag.MDA | SchedFlag.REMOVE, 5)
    assert calls == [(int(SchedFlag.MDA | SchedFlag.REMOVE), 5)]
    assert result.delay == 0
    assert result.envelopes == [
        (0x100000001, SchedFlag.MDA),
        (0x100000002, SchedFlag.REMOVE),
    ]


@pytest.mark.parametrize("ret", [[], [(1, 1), (2, 1), (3, 1)]])
def test_batch_bad_length(ret):
    sched = make(batch=lambda mask, count: ret)
    with pytest.raises(SchedulerHandlerError):
        sched.batch(SchedFlag.MTA, 2)


def test_messages_list_and_limit():
    sched = make(messages=lambda msgid, size: [msgid, msgid + 1])
    assert sched.messages(10, 5) == [10, 11]
    with pytest.raises(SchedulerHandlerError):
        sched.messages(10, 1)


def test_envelopes_converted():
    sched = make(envelopes=lambda evpid, size: [(evpid, 0x10, 2, 99)])
    assert sched.envelopes(0x500000001, 4) == [
        EvpState(evpid=0x500000001, flags=0x10, retry=2, time=99)
    ]


def test_envelopes_bad_tuple():
    sched = make(envelopes=lambda evpid, size: [(evpid, 1)])
    with pytest.raises(SchedulerHandlerError):
        sched.envelopes(1, 4)


def test_hold_release_and_counts():
    sched = make(
        hold=lambda evpid, holdq: 1,
        release=lambda type_, holdq, count: count,
        remove=lambda evpid: 3,
        suspend=lambda evpid: 2,
        resume=lambda evpid: 4,
        delete=lambda evpid: 0,
    )
    assert sched.hold(1, 2) is True
    assert sched.release(DeliveryType.MTA, 2, 6) == 6
    assert sched.remove(1) == 3
    assert sched.suspend(1) == 2
    assert sched.resume(1) == 4
    assert sched.delete(1) is False


def test_handler_exception_wrapped():
    def boom(evpid):
        raise ValueError("nope")

    sched = make(schedule=boom)
    with pytest.raises(SchedulerHandlerError) as info:
        sched.schedule(1)
    assert isinstance(info.value.__cause__, ValueError)


def test_non_int_result_rejected():
    sched = make(init=lambda: "yes")
    with pytest.raises(SchedulerHandlerError):
        sched.init()