"""HTTP faults and the exceptions raised by the fault boundary."""

import io
import json
from http import HTTPStatus
from typing import Any, BinaryIO, Self

from fastapi.encoders import jsonable_encoder
from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import Response
from starlette.types import Send

from faultline.core.caller import CallSite, get_caller

# Bytes copied per http.response.body message when rendering a fault
RENDER_CHUNK_SIZE = 64 * 1024


class FaultlineError(Exception):
    """Base exception for failures inside the fault boundary itself."""


class FaultEncodeError(FaultlineError):
    """Raised when a fault body cannot be JSON encoded."""


class HTTPFault(Exception):
    """An HTTP response carried out of a handler by raising (or returning) it.

    Build one with :func:`new_fault` or :func:`wrap_fault` and adjust it with
    the chained ``with_*`` builders.
    """

    def __init__(
        self,
        status_code: int = 500,
        *,
        cause: BaseException | None = None,
        call_site: CallSite | None = None,
    ) -> None:
        self._status_code = int(status_code)
        self._headers: MutableHeaders | None = None
        self._body: BinaryIO | None = None
        self._cause = cause
        self._call_site = call_site
        super().__init__()
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        code = self.status_code
        try:
            return HTTPStatus(code).phrase
        except ValueError:
            return f"HTTP {code}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code}, cause={self._cause!r})"

    @property
    def status_code(self) -> int:
        """Response status, 500 when unset or non-positive."""
        if self._status_code > 0:
            return self._status_code
        return int(HTTPStatus.INTERNAL_SERVER_ERROR)

    @property
    def headers(self) -> Headers:
        """Snapshot of the response headers."""
        if self._headers is None:
            return Headers()
        return Headers(raw=list(self._headers.raw))

    @property
    def body(self) -> BinaryIO | None:
        return self._body

    @property
    def cause(self) -> BaseException | None:
        return self._cause

    @property
    def call_site(self) -> CallSite | None:
        """Where :func:`wrap_fault` was called, if it was."""
        return self._call_site

    @property
    def has_call_site(self) -> bool:
        return self._call_site is not None

    def with_status(self, code: int) -> Self:
        self._status_code = int(code)
        return self

    def with_header(self, key: str, value: str) -> Self:
        if self._headers is None:
            self._headers = MutableHeaders()
        self._headers[key] = value
        return self

    def with_body(self, stream: BinaryIO) -> Self:
        self._body = stream
        return self

    def with_bytes(self, data: bytes) -> Self:
        self._body = io.BytesIO(data)
        return self

    def with_text(self, text: str) -> Self:
        self.with_header("Content-Type", "text/plain")
        return self.with_bytes(text.encode("utf-8"))

    def with_json(self, value: Any) -> Self:
        """Set a JSON encoded body, rendered like Starlette's JSONResponse.

        NaN and infinity are rejected since they are not valid JSON.

        Raises:
            FaultEncodeError: If the value cannot be serialized.
        """
        try:
            data = json.dumps(
                jsonable_encoder(value),
                ensure_ascii=False,
                allow_nan=False,
                separators=(",", ":"),
            ).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise FaultEncodeError(f"encode error response: {e}") from e
        self.with_header("Content-Type", "application/json")
        return self.with_bytes(data)

    def to_response(self) -> Response:
        """Build a Starlette response so a handler can return the fault."""
        body = self._body.read() if self._body is not None else b""
        response = Response(content=body, status_code=self.status_code)
        if self._headers is not None:
            for key, value in self._headers.items():
                response.headers[key] = value
        return response


class RequestAborted(Exception):
    """Aborts a request carrying an arbitrary value instead of an exception."""

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__(value)


def new_fault(code: int) -> HTTPFault:
    """Create a fault with a status code and nothing else."""
    return HTTPFault(code)


def wrap_fault(
    err: BaseException,
    *,
    stacklevel: int = 1,
    call_site: CallSite | None = None,
) -> HTTPFault:
    """Wrap an exception into a 500 fault attributed to its call site.

    Args:
        err: The underlying exception.
        stacklevel: Frames above wrap_fault to attribute the fault to.
            Helpers wrapping on behalf of their caller pass 2.
        call_site: Explicit location, skips frame inspection entirely.

    Returns:
        A fault with status 500, ``cause`` set to ``err``.
    """
    if call_site is None:
        call_site = get_caller(stacklevel)
    return HTTPFault(500, cause=err, call_site=call_site)


async def render_fault(send: Send, fault: HTTPFault) -> None:
    """Write a fault to an ASGI send channel.

    Headers and status are sent once, before any body bytes. Errors reading
    the body stream propagate to the caller.
    """
    await send(
        {
            "type": "http.response.start",
            "status": fault.status_code,
            "headers": fault.headers.raw,
        }
    )

    body = fault.body
    if body is not None:
        while chunk := body.read(RENDER_CHUNK_SIZE):
            await send(
                {"type": "http.response.body", "body": chunk, "more_body": True}
            )

    await send({"type": "http.response.body", "body": b"", "more_body": False})
