"""Pooled helpers that observe a request while it passes through middleware."""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from http import HTTPStatus
from typing import Generic, Protocol, Self, TypeVar

from starlette.types import Message, Receive, Send

# Largest request body mirrored into a log line
DEFAULT_SNAPSHOT_LIMIT = 8192

# Largest urlencoded form read for logging, same as Starlette's max_part_size
DEFAULT_FORM_LIMIT = 1024 * 1024

# Idle instances kept per pool, extra ones are left to the garbage collector
DEFAULT_POOL_SIZE = 256

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
FORM_METHODS = frozenset({"POST", "PUT", "PATCH"})


class Poolable(Protocol):
    def reset(self) -> None: ...

    def release(self) -> None: ...


T = TypeVar("T", bound=Poolable)


class ObjectPool(Generic[T]):
    """Thread-safe free list of reusable scratch objects.

    Objects are reset when borrowed and released (stripped of outside
    references) when returned, so nothing from one request reaches the next.
    """

    def __init__(self, factory: Callable[[], T], max_size: int = DEFAULT_POOL_SIZE) -> None:
        self._factory = factory
        self._max_size = max_size
        self._idle: list[T] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._idle)

    def acquire(self) -> T:
        with self._lock:
            item = self._idle.pop() if self._idle else None
        if item is None:
            item = self._factory()
        item.reset()
        return item

    def put(self, item: T) -> None:
        item.release()
        with self._lock:
            if len(self._idle) < self._max_size:
                self._idle.append(item)

    @contextmanager
    def borrow(self) -> Iterator[T]:
        """Borrow an object for the duration of a ``with`` block."""
        item = self.acquire()
        try:
            yield item
        finally:
            self.put(item)


class ResponseObserver:
    """ASGI send wrapper that records the first response status."""

    def __init__(self) -> None:
        self._send: Send | None = None
        self._status: int | None = None

    def bind(self, send: Send) -> Self:
        self._send = send
        return self

    def reset(self) -> None:
        self._status = None

    def release(self) -> None:
        self._send = None
        self._status = None

    @property
    def status_code(self) -> int:
        """Status of the first response start, 200 if none was sent."""
        if self._status is not None:
            return self._status
        return int(HTTPStatus.OK)

    @property
    def started(self) -> bool:
        return self._status is not None

    async def __call__(self, message: Message) -> None:
        if self._send is None:
            raise RuntimeError("ResponseObserver used outside of a request")
        if message["type"] == "http.response.start" and self._status is None:
            self._status = int(message["status"])
        await self._send(message)


class BodySnapshotter:
    """ASGI receive tee that mirrors the request body into a bounded buffer.

    Only bytes the downstream app actually pulls are mirrored, and never more
    than ``limit`` of them. :meth:`prefetch` reads the whole body up front and
    replays it, for bodies that must be logged even if the app ignores them.
    """

    def __init__(self) -> None:
        self._receive: Receive | None = None
        self._buffer = bytearray()
        self._limit = DEFAULT_SNAPSHOT_LIMIT
        self._pending: list[Message] = []
        self._complete = False

    def bind(self, receive: Receive, limit: int = DEFAULT_SNAPSHOT_LIMIT) -> Self:
        self._receive = receive
        self._limit = limit
        return self

    def reset(self) -> None:
        self._buffer.clear()
        self._limit = DEFAULT_SNAPSHOT_LIMIT
        self._pending.clear()
        self._complete = False

    def release(self) -> None:
        self._receive = None
        self._buffer.clear()
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def complete(self) -> bool:
        """Whether the last body message (or a disconnect) has been read."""
        return self._complete

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    async def prefetch(self) -> None:
        """Read the rest of the body now and queue it for the next reader."""
        messages: list[Message] = []
        while not self._complete:
            messages.append(await self())
        self._pending.extend(messages)

    async def __call__(self) -> Message:
        if self._pending:
            return self._pending.pop(0)
        if self._receive is None:
            raise RuntimeError("BodySnapshotter used outside of a request")
        message = await self._receive()
        if message["type"] == "http.request":
            room = self._limit - len(self._buffer)
            if room > 0:
                self._buffer += message.get("body", b"")[:room]
            if not message.get("more_body", False):
                self._complete = True
        elif message["type"] == "http.disconnect":
            self._complete = True
        return message


def is_form_request(method: str, content_type: str) -> bool:
    """Whether a request carries an urlencoded form worth logging."""
    return method in FORM_METHODS and content_type.startswith(FORM_CONTENT_TYPE)


def should_snapshot(
    method: str,
    content_type: str,
    content_length: str | None,
    limit: int,
) -> bool:
    """Whether a request body is small enough and of a type worth logging.

    JSON bodies are always eligible, urlencoded forms only for methods that
    carry one.

    Args:
        method: The request method.
        content_type: The request Content-Type header, or "".
        content_length: The raw Content-Length header, if any.
        limit: Largest body size that may be mirrored.
    """
    if content_type.startswith(FORM_CONTENT_TYPE):
        if not is_form_request(method, content_type):
            return False
    elif not content_type.startswith(JSON_CONTENT_TYPE):
        return False
    try:
        length = int(content_length or 0)
    except ValueError:
        return False
    return 0 < length <= limit


response_pool: ObjectPool[ResponseObserver] = ObjectPool(ResponseObserver)
snapshot_pool: ObjectPool[BodySnapshotter] = ObjectPool(BodySnapshotter)
