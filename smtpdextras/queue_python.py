"""A queue backend whose operations are carried out by user-supplied callables."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from typing import IO, Any, Iterator

from .queues import QueueBackend

log = logging.getLogger(__name__)

_HANDLER_NAMES = (
    "message_create",
    "message_commit",
    "message_delete",
    "message_fd_r",
    "message_corrupt",
    "message_uncorrupt",
    "envelope_create",
    "envelope_delete",
    "envelope_update",
    "envelope_load",
    "envelope_walk",
    "message_walk",
)

_U32 = 0xFFFFFFFF
_U64 = 0xFFFFFFFFFFFFFFFF


class HandlerError(RuntimeError):
    """Raised when a handler is missing, fails, or returns the wrong kind of value."""


class PythonQueue(QueueBackend):
    """Queue backend delegating each operation to a named handler.

    ``handlers`` is a mapping or an object (such as a module) that provides
    every handler by name.  Envelope contents returned by handlers must be
    strictly shorter than ``buffer_size`` bytes; longer ones are refused.
    """

    def __init__(self, handlers: Any, buffer_size: int) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self._buffer_size = buffer_size
        self._handlers: dict[str, Callable[..., Any]] = {}
        for name in _HANDLER_NAMES:
            if isinstance(handlers, Mapping):
                handler = handlers.get(name)
            else:
                handler = getattr(handlers, name, None)
            if handler is None or not callable(handler):
                raise HandlerError(f"no such handler: {name}")
            self._handlers[name] = handler

    def _call(self, name: str, *args: Any, label: str | None = None) -> Any:
        try:
            return self._handlers[name](*args)
        except Exception as exc:
            raise HandlerError(f"error in {label or name} handler: {exc}") from exc

    @staticmethod
    def _as_int(value: Any, label: str) -> int:
        if not isinstance(value, int):
            raise HandlerError(f"error in {label} handler: int type expected")
        return int(value)

    def _as_unsigned(self, value: Any, label: str, mask: int) -> int:
        number = self._as_int(value, label)
        if number < 0:
            raise HandlerError(f"error in {label} handler: negative value")
        return number & mask

    def _fit(self, value: Any, label: str) -> bytes | None:
        try:
            data = bytes(memoryview(value))
        except TypeError:
            raise HandlerError(
                f"error in {label} handler: bytes-like object expected"
            ) from None
        if len(data) >= self._buffer_size:
            log.warning("%s: envelope of %d bytes does not fit", label, len(data))
            return None
        return data

    def message_create(self) -> int | None:
        msgid = self._as_unsigned(
            self._call("message_create"), "message_create", _U32
        )
        return msgid or None

    def message_commit(self, msgid: int, path: str) -> bool:
        ret = self._call("message_commit", msgid, path)
        return bool(self._as_int(ret, "message_commit"))

    def message_delete(self, msgid: int) -> bool:
        ret = self._call("message_delete", msgid)
        return bool(self._as_int(ret, "message_delete"))

    def message_fd_r(self, msgid: int) -> IO[bytes] | None:
        """Open the descriptor the handler returns; a negative one means failure."""
        fd = self._as_int(self._call("message_fd_r", msgid), "message_fd_r")
        if fd < 0:
            return None
        try:
            return os.fdopen(fd, "rb")
        except OSError as exc:
            log.warning("message_fd_r: bad descriptor %d: %s", fd, exc)
            return None

    def message_corrupt(self, msgid: int) -> bool:
        ret = self._call("message_corrupt", msgid)
        return bool(self._as_int(ret, "message_corrupt"))

    def message_uncorrupt(self, msgid: int) -> bool:
        ret = self._call("message_uncorrupt", msgid)
        return bool(self._as_int(ret, "message_uncorrupt"))

    def envelope_create(self, msgid: int, data: bytes) -> int | None:
        ret = self._call("envelope_create", msgid, bytes(data))
        evpid = self._as_unsigned(ret, "envelope_create", _U64)
        return evpid or None

    def envelope_delete(self, evpid: int) -> bool:
        ret = self._call("envelope_delete", evpid)
        return bool(self._as_int(ret, "envelope_delete"))

    def envelope_update(self, evpid: int, data: bytes) -> bool:
        ret = self._call("envelope_update", evpid, bytes(data))
        return bool(self._as_int(ret, "envelope_update"))

    def envelope_load(self, evpid: int) -> bytes | None:
        ret = self._call("envelope_load", evpid)
        try:
            data = bytes(memoryview(ret))
        except TypeError:
            return None
        if len(data) >= self._buffer_size:
            return None
        return data

    def _walk(self, label: str) -> Iterator[tuple[int, bytes]]:
        cursor = 0
        while True:
            ret = self._call("envelope_walk", cursor, label=label)
            if ret is None:
                return
            if not isinstance(ret, tuple) or len(ret) != 2:
                raise HandlerError(
                    f"error in {label} handler: 2-elements tuple expected"
                )
            evpid = self._as_unsigned(ret[0], label, _U64)
            cursor = evpid
            data = self._fit(ret[1], label)
            if data is not None:
                yield evpid, data

    def envelope_walk(self) -> Iterator[tuple[int, bytes]]:
        """Call the envelope_walk handler with the last id seen until it returns None."""
        return self._walk("envelope_walk")

    def message_walk(self, msgid: int) -> Iterator[tuple[int, bytes]]:
        """Walk envelopes through the envelope_walk handler; msgid is not used."""
        return self._walk("message_walk")