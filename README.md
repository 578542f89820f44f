# smtpdextras

Queue and scheduler backends for an SMTP daemon, written as plain Python
objects that are created and called directly.

## Modules

- `smtpdextras.api` – shared vocabulary: the enums `ProcType`,
  `FilterStatus`, `EnvelopeFlags`, `DeliveryType`, `SchedFlag`,
  `TableService`, `EnhancedStatusCode` and `EnhancedStatusClass`; the
  dataclasses `MailAddr`, `SchedulerInfo` and `EvpState`; and
  `evpid_to_msgid` / `msgid_to_evpid`, which move a 32-bit message id in
  and out of the high half of a 64-bit envelope id.
- `smtpdextras.tree` – `Tree`, an ordered mapping keyed by integer ids.
  `get`, `set` and `pop` are lenient (they return `None` for a missing
  id); `xget`, `xset`, `xpop` and `merge` raise `TreeError` on a missing
  or duplicate id. `items()` and `items_from(key)` iterate in ascending
  id order.
- `smtpdextras.util` – `strip` (ASCII whitespace), `lowercase(s, size)`
  (raises `ValueError` when `s` would not fit a buffer of `size`
  characters with its terminator), `base64_encode` and `base64_decode`
  (raises `ValueError` on invalid input).
- `smtpdextras.queues` – `QueueBackend`, whose operations all fail by
  default, and three backends:
  - `StubQueue` refuses every operation;
  - `NullQueue` accepts messages and envelopes, hands out random ids from
    `generate_msgid` / `generate_evpid`, and keeps nothing;
  - `RamQueue` keeps message bodies and envelopes in memory.
    `message_fd_r` returns a temporary file holding the body;
    `message_delete` (and `message_corrupt`, which calls it) drops the
    message and always returns `False`; deleting a message's last
    envelope drops the message too.
- `smtpdextras.queue_python` – `PythonQueue(handlers, buffer_size)`, a
  queue whose operations are carried out by callables taken by name from
  a mapping or an object such as a module: `message_create`,
  `message_commit`, `message_delete`, `message_fd_r`, `message_corrupt`,
  `message_uncorrupt`, `envelope_create`, `envelope_delete`,
  `envelope_update`, `envelope_load`, `envelope_walk` and `message_walk`.
  All twelve must be present. Envelope data of `buffer_size` bytes or
  more is refused. Both `envelope_walk()` and `message_walk(msgid)` are
  driven by the `envelope_walk` handler, called with the last envelope id
  seen until it returns `None`. A failing or ill-typed handler raises
  `HandlerError`.
- `smtpdextras.schedulers` – the `Scheduler` interface, `BatchResult`
  (either a list of `(evpid, SchedFlag)` pairs or a `delay` in seconds,
  `-1` meaning nothing is pending) and `StubScheduler`, which accepts
  `init` and nothing else.
- `smtpdextras.scheduler_python` – `PythonScheduler(handlers)`, driven by
  callables named `scheduler_init`, `scheduler_insert`, … ,
  `scheduler_resume`. A handler's `batch` result may be an int (a delay)
  or a non-empty sequence of `(evpid, kind)` tuples. Errors raise
  `SchedulerHandlerError`.
- `smtpdextras.rqueue` – the run queue behind the RAM scheduler:
  `RqQueue`, `RqEnvelope`, `RqMessage`, `HoldQueue`, `RqState`,
  `RqFlags`, plus `backoff`, `next_try`, `duration_to_text` and
  `envelope_to_text`.
- `smtpdextras.scheduler_ram` – `RamScheduler`, an in-memory scheduler
  with quadratic retry back-off (400 s steps for MTA, 10 s otherwise),
  expiry, hold queues of up to 1000 envelopes, suspension and removal.

## Installing

```
pip install .
pip install ".[test]"   # with the test requirements
```

## Example: an in-memory queue

```python
import tempfile

from smtpdextras.api import evpid_to_msgid
from smtpdextras.queues import RamQueue

queue = RamQueue()
msgid = queue.message_create()

with tempfile.NamedTemporaryFile(delete=False) as body:
    body.write(b"Subject: hello\r\n\r\nhi\r\n")

assert queue.message_commit(msgid, body.name)
evpid = queue.envelope_create(msgid, b"rcpt: someone@example.com")
assert evpid_to_msgid(evpid) == msgid
print(queue.envelope_load(evpid))

with queue.message_fd_r(msgid) as f:
    print(f.read())
```

## Example: the RAM scheduler

```python
from smtpdextras.api import DeliveryType, SchedFlag, SchedulerInfo
from smtpdextras.scheduler_ram import RamScheduler

scheduler = RamScheduler(clock=lambda: 1_000_000)
info = SchedulerInfo(evpid=0x1234567800000001, type=DeliveryType.MTA,
                     creation=1_000_000, expire=3600)
scheduler.insert(info)
scheduler.commit(0x12345678)
result = scheduler.batch(SchedFlag.MTA, 10)
print(result.envelopes)   # [(0x1234567800000001, SchedFlag.MTA)]
```

`clock` returns the current time in whole seconds and defaults to the
system clock, so tests can control "now". Setting
`scheduler.verbose |= smtpdextras.scheduler_ram.TRACE_SCHEDULER` logs a
dump of the run queue at debug level on every commit and batch.

## What this package does not do

The backends are library objects only. The package does not speak the
mail daemon's inter-process message protocol, has no command-line
programs or dispatch loop, and does not run as a separate process. It
provides no table or filter backends: `TableService`, `FilterStatus` and
the other enums in `smtpdextras.api` are vocabulary only. `RamQueue` and
`RamScheduler` keep nothing on disk; their state is lost when the object
goes away.

## Running the tests

```
pytest
```