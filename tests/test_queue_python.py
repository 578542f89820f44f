import os

import pytest

from smtpdextras.queue_python import HandlerError, PythonQueue


def _handlers(**overrides):
    base = {
        "message_create": lambda: 7,
        "message_commit": lambda msgid, path: 1,
        "message_delete": lambda msgid: 1,
        "message_fd_r": lambda msgid: -1,
        "message_corrupt": lambda msgid: 0,
        "message_uncorrupt": lambda msgid: 0,
        "envelope_create": lambda msgid, data: (msgid << 32) | 1,
        "envelope_delete": lambda evpid: 1,
        "envelope_update": lambda evpid, data: 1,
        "envelope_load": lambda evpid: b"",
        "envelope_walk": lambda evpid: None,
        "message_walk": lambda evpid: None,
    }
    base.update(overrides)
    return base


def test_missing_handler_is_rejected():
    handlers = _handlers()
    del handlers["envelope_walk"]
    with pytest.raises(HandlerError):
        PythonQueue(handlers, 64)


def test_handlers_may_be_attributes_of_an_object():
    class Module:
        pass

    module = Module()
    for name, fn in _handlers().items():
        setattr(module, name, fn)
    queue = PythonQueue(module, 64)
    assert queue.message_create() == 7


def test_message_create_zero_means_failure():
    queue = PythonQueue(_handlers(message_create=lambda: 0), 64)
    assert queue.message_create() is None


def test_message_create_requires_int():
    queue = PythonQueue(_handlers(message_create=lambda: "x"), 64)
    with pytest.raises(HandlerError):
        queue.message_create()


def test_handler_exception_becomes_handler_error():
    def boom(msgid, path):
        raise KeyError("nope")

    queue = PythonQueue(_handlers(message_commit=boom), 64)
    with pytest.raises(HandlerError) as info:
        queue.message_commit(5, "/tmp/none")
    assert isinstance(info.value.__cause__, KeyError)


def test_arguments_are_passed_through():
    seen = []

    def commit(msgid, path):
        seen.append((msgid, path))
        return 0

    queue = PythonQueue(_handlers(message_commit=commit), 64)
    assert queue.message_commit(9, "/spool/9") is False
    assert seen == [(9, "/spool/9")]


def test_envelope_create_and_update():
    stored = {}

    def create(msgid, data):
        evpid = (msgid << 32) | 3
        stored[evpid] = data
        return evpid

    def update(evpid, data):
        stored[evpid] = data
        return 1

    queue = PythonQueue(_handlers(envelope_create=create, envelope_update=update), 64)
    evpid = queue.envelope_create(2, b"first")
    assert evpid == (2 << 32) | 3
    assert queue.envelope_update(evpid, b"second") is True
    assert stored[evpid] == b"second"


def test_envelope_create_zero_means_failure():
    queue = PythonQueue(_handlers(envelope_create=lambda m, d: 0), 64)
    assert queue.envelope_create(1, b"x") is None


def test_envelope_load_respects_buffer_size():
    payload = b"a" * 8
    queue = PythonQueue(_handlers(envelope_load=lambda e: payload), len(payload) + 1)
    assert queue.envelope_load(1) == payload
    tight = PythonQueue(_handlers(envelope_load=lambda e: payload), len(payload))
    assert tight.envelope_load(1) is None


def test_envelope_load_non_buffer_is_failure():
    queue = PythonQueue(_handlers(envelope_load=lambda e: 12), 64)
    assert queue.envelope_load(1) is None


def test_envelope_walk_follows_cursor():
    store = {10: b"ten", 20: b"twenty", 30: b"thirty"}
    calls = []

    def walk(cursor):
        calls.append(cursor)
        later = [k for k in sorted(store) if k > cursor]
        if not later:
            return None
        return later[0], store[later[0]]

    queue = PythonQueue(_handlers(envelope_walk=walk), 64)
    assert list(queue.envelope_walk()) == sorted(store.items())
    assert calls == [0, 10, 20, 30]


def test_walk_skips_oversized_envelopes():
    store = {1: b"ok", 2: b"x" * 100, 3: b"fine"}

    def walk(cursor):
        later = [k for k in sorted(store) if k > cursor]
        return (later[0], store[later[0]]) if later else None

    queue = PythonQueue(_handlers(envelope_walk=walk), 10)
    assert list(queue.message_walk(0)) == [(1, b"ok"), (3, b"fine")]


def test_walk_rejects_bad_shape():
    queue = PythonQueue(_handlers(envelope_walk=lambda c: [1, b"x"]), 64)
    with pytest.raises(HandlerError):
        list(queue.envelope_walk())


def test_message_fd_r_negative_is_failure():
    queue = PythonQueue(_handlers(), 64)
    assert queue.message_fd_r(1) is None


def test_message_fd_r_opens_descriptor(tmp_path):
    path = tmp_path / "body"
    path.write_bytes(b"message body")
    fd = os.open(path, os.O_RDONLY)
    queue = PythonQueue(_handlers(message_fd_r=lambda m: fd), 64)
    f = queue.message_fd_r(1)
    with f:
        assert f.read() == b"message body"


def test_corrupt_flags_follow_handler():
    queue = PythonQueue(
        _handlers(message_corrupt=lambda m: 1, message_uncorrupt=lambda m: 0), 64
    )
    assert queue.message_corrupt(1) is True
    assert queue.message_uncorrupt(1) is False