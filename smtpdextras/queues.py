"""Queue backends: a failing stub, a null queue and an in-memory queue."""

from __future__ import annotations

import logging
import random
import tempfile
from dataclasses import dataclass, field
from typing import IO, Iterator

from .api import evpid_to_msgid, msgid_to_evpid
from .tree import Tree

log = logging.getLogger(__name__)

_rng = random.SystemRandom()


def generate_msgid() -> int:
    """Return a random non-zero 32-bit message id."""
    while True:
        msgid = _rng.getrandbits(32)
        if msgid:
            return msgid


def generate_evpid(msgid: int) -> int:
    """Return a random envelope id belonging to the given message."""
    while True:
        low = _rng.getrandbits(32)
        if low:
            return msgid_to_evpid(msgid) | low


class QueueBackend:
    """Queue backend interface; every operation fails by default.

    Failures are reported as False or None, which the daemon turns
    into a temporary failure.
    """

    def message_create(self) -> int | None:
        """Create a message and return its id, or None on failure."""
        return None

    def message_commit(self, msgid: int, path: str) -> bool:
        """Take the message body from the file at path."""
        return False

    def message_delete(self, msgid: int) -> bool:
        """Remove a message."""
        return False

    def message_fd_r(self, msgid: int) -> IO[bytes] | None:
        """Return a readable file holding the message body, or None."""
        return None

    def message_corrupt(self, msgid: int) -> bool:
        """Mark a message as corrupt."""
        return False

    def message_uncorrupt(self, msgid: int) -> bool:
        """Clear the corrupt mark of a message."""
        return False

    def envelope_create(self, msgid: int, data: bytes) -> int | None:
        """Store an envelope for a message and return its id, or None."""
        return None

    def envelope_delete(self, evpid: int) -> bool:
        """Remove an envelope."""
        return False

    def envelope_update(self, evpid: int, data: bytes) -> bool:
        """Replace the contents of an envelope."""
        return False

    def envelope_load(self, evpid: int) -> bytes | None:
        """Return the contents of an envelope, or None."""
        return None

    def envelope_walk(self) -> Iterator[tuple[int, bytes]]:
        """Yield (evpid, contents) for every stored envelope."""
        return iter(())

    def message_walk(self, msgid: int) -> Iterator[tuple[int, bytes]]:
        """Yield (evpid, contents) for the envelopes of one message."""
        return iter(())


class StubQueue(QueueBackend):
    """A queue that refuses every operation."""


class NullQueue(QueueBackend):
    """A queue that accepts everything and keeps nothing."""

    def message_create(self) -> int:
        return generate_msgid()

    def message_commit(self, msgid: int, path: str) -> bool:
        return True

    def message_delete(self, msgid: int) -> bool:
        return True

    def envelope_create(self, msgid: int, data: bytes) -> int:
        return generate_evpid(msgid)

    def envelope_delete(self, evpid: int) -> bool:
        return True

    def envelope_update(self, evpid: int, data: bytes) -> bool:
        return True


@dataclass
class _RamMessage:
    body: bytes = b""
    envelopes: Tree = field(default_factory=Tree)


class RamQueue(QueueBackend):
    """A queue keeping messages and envelopes in memory."""

    def __init__(self) -> None:
        self._messages = Tree()

    def _message(self, msgid: int) -> _RamMessage | None:
        msg = self._messages.get(msgid)
        if msg is None:
            log.warning("message not found")
        return msg

    def message_create(self) -> int:
        msgid = generate_msgid()
        while msgid in self._messages:
            msgid = generate_msgid()
        self._messages.xset(msgid, _RamMessage())
        return msgid

    def message_commit(self, msgid: int, path: str) -> bool:
        msg = self._messages.get(msgid)
        if msg is None:
            log.warning("msgid not found")
            return False
        try:
            with open(path, "rb") as f:
                msg.body = f.read()
        except OSError as exc:
            log.warning("cannot read %r: %s", path, exc)
            return False
        return True

    def message_delete(self, msgid: int) -> bool:
        """Drop the message and all its envelopes; the result is always False."""
        msg = self._messages.pop(msgid)
        if msg is None:
            log.warning("not found")
            return False
        while msg.envelopes.poproot() is not None:
            pass
        return False

    def message_fd_r(self, msgid: int) -> IO[bytes] | None:
        msg = self._messages.get(msgid)
        if msg is None:
            log.warning("not found")
            return None
        try:
            f = tempfile.TemporaryFile()
        except OSError as exc:
            log.warning("cannot create temporary file: %s", exc)
            return None
        try:
            f.write(msg.body)
            f.flush()
            f.seek(0)
        except OSError as exc:
            log.warning("write: %s", exc)
            f.close()
            return None
        return f

    def message_corrupt(self, msgid: int) -> bool:
        return self.message_delete(msgid)

    def envelope_create(self, msgid: int, data: bytes) -> int | None:
        msg = self._message(msgid)
        if msg is None:
            return None
        evpid = generate_evpid(msgid)
        while evpid in msg.envelopes:
            evpid = generate_evpid(msgid)
        msg.envelopes.xset(evpid, bytes(data))
        return evpid

    def envelope_delete(self, evpid: int) -> bool:
        msgid = evpid_to_msgid(evpid)
        msg = self._message(msgid)
        if msg is None:
            return False
        if msg.envelopes.pop(evpid) is None:
            log.warning("not found")
            return False
        if not len(msg.envelopes):
            self._messages.xpop(msgid)
        return True

    def envelope_update(self, evpid: int, data: bytes) -> bool:
        msg = self._message(evpid_to_msgid(evpid))
        if msg is None:
            return False
        if evpid not in msg.envelopes:
            log.warning("not found")
            return False
        msg.envelopes.set(evpid, bytes(data))
        return True

    def envelope_load(self, evpid: int) -> bytes | None:
        msg = self._message(evpid_to_msgid(evpid))
        if msg is None:
            return None
        data = msg.envelopes.get(evpid)
        if data is None:
            log.warning("not found")
        return data