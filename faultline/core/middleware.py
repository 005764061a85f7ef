"""ASGI middleware for the fault boundary, request logging and correlation IDs."""

import base64
import logging
import re
import time
import traceback
from typing import Any
from uuid import uuid4

from starlette.applications import Starlette
from starlette.datastructures import Headers, MutableHeaders, QueryParams
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from faultline.core.context import correlation_id_var
from faultline.core.exceptions import HTTPFault, RequestAborted, render_fault
from faultline.core.logging import get_logger, log_with_context
from faultline.core.recording import (
    DEFAULT_FORM_LIMIT,
    DEFAULT_SNAPSHOT_LIMIT,
    JSON_CONTENT_TYPE,
    is_form_request,
    response_pool,
    should_snapshot,
    snapshot_pool,
)

# Correlation ID validation: alphanumeric, hyphens, underscores only, max 64 chars
_CORRELATION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

# Exceptions that point at a bug rather than a deliberate raise; these get a stack
RUNTIME_ERRORS: tuple[type[Exception], ...] = (
    ArithmeticError,
    AssertionError,
    AttributeError,
    LookupError,
    NameError,
    RecursionError,
    TypeError,
)


class CorrelationIdMiddleware:
    """Middleware that manages correlation IDs for request tracing."""

    def __init__(self, app: ASGIApp, header_name: str = "X-Correlation-ID") -> None:
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # Validate client-provided correlation ID to prevent log injection
        client_correlation_id = Headers(scope=scope).get(self.header_name)
        if client_correlation_id and _CORRELATION_ID_PATTERN.match(
            client_correlation_id
        ):
            correlation_id = client_correlation_id
        else:
            correlation_id = str(uuid4())

        token = correlation_id_var.set(correlation_id)

        async def send_with_correlation_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers[self.header_name] = correlation_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_correlation_id)
        finally:
            correlation_id_var.reset(token)


class RequestLoggingMiddleware:
    """Middleware that logs one structured line per request.

    The response status is read through a pooled observer wrapped around
    ``send``. Small JSON request bodies are mirrored through a pooled
    snapshotter so they can be logged after the handler consumed them.
    Urlencoded forms up to ``form_limit`` bytes are read before the handler
    runs and replayed to it, so the form is logged even when the handler
    never reads it. JSON bodies that are not valid UTF-8 are logged base64
    encoded with ``body_encoding="base64"``.
    """

    def __init__(
        self,
        app: ASGIApp,
        logger: logging.Logger | None = None,
        snapshot_limit: int = DEFAULT_SNAPSHOT_LIMIT,
        log_body: bool = True,
        form_limit: int = DEFAULT_FORM_LIMIT,
    ) -> None:
        self.app = app
        self.logger = logger or get_logger("faultline.requests")
        self.snapshot_limit = snapshot_limit
        self.form_limit = form_limit
        self.log_body = log_body

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        method = scope["method"]
        content_type = headers.get("content-type", "")
        is_form = is_form_request(method, content_type)
        if is_form:
            limit = self.form_limit
        else:
            limit = self.snapshot_limit if self.log_body else 0
        snapshot = None
        failed = False

        with response_pool.borrow() as observer:
            observer.bind(send)
            start_time = time.perf_counter()
            try:
                if should_snapshot(
                    method, content_type, headers.get("content-length"), limit
                ):
                    with snapshot_pool.borrow() as snapshotter:
                        snapshotter.bind(receive, limit)
                        try:
                            if is_form:
                                await snapshotter.prefetch()
                            await self.app(scope, snapshotter, observer)
                        finally:
                            snapshot = snapshotter.getvalue()
                else:
                    await self.app(scope, receive, observer)
            except Exception:
                failed = True
                raise
            finally:
                process_time_ms = (time.perf_counter() - start_time) * 1000
                # Nothing was sent before the exception, the server will answer 500
                status = 500 if failed and not observer.started else observer.status_code
                fields = self.request_fields(scope, snapshot if is_form else None)
                fields["duration"] = round(process_time_ms, 2)
                fields["status"] = status
                if snapshot and content_type.startswith(JSON_CONTENT_TYPE):
                    fields.update(_body_fields(snapshot))

                if status >= 500:
                    level = logging.ERROR
                elif status >= 400:
                    level = logging.WARNING
                else:
                    level = logging.INFO
                log_with_context(self.logger, level, "http request", **fields)

    def request_fields(
        self,
        scope: Scope,
        form_body: bytes | None = None,
    ) -> dict[str, Any]:
        """Build the base log fields describing the request."""
        client = scope.get("client")
        fields: dict[str, Any] = {
            "remote": f"{client[0]}:{client[1]}" if client else "",
            "method": scope["method"],
            "path": scope["path"],
        }

        if query_string := scope.get("query_string", b""):
            if query := _multi_dict(QueryParams(query_string)):
                fields["query"] = query

        if form_body:
            if form := _multi_dict(QueryParams(form_body.decode("utf-8", "replace"))):
                fields["form"] = form

        if correlation_id := correlation_id_var.get():
            fields["correlation_id"] = correlation_id
        return fields


class RecoveryMiddleware:
    """Middleware that turns exceptions escaping a handler into responses.

    :class:`HTTPFault` is rendered as-is. Any other exception, or a
    :class:`RequestAborted` carrying a plain value, is logged and answered
    with a bare 500.
    """

    def __init__(self, app: ASGIApp, logger: logging.Logger | None = None) -> None:
        self.app = app
        self.logger = logger or get_logger("faultline.recovery")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            await self.recover(scope, send, exc, response_started)

    async def recover(
        self,
        scope: Scope,
        send: Send,
        exc: Exception,
        response_started: bool,
    ) -> None:
        """Classify an escaped exception, log it and answer the request."""
        value: Any = exc
        if isinstance(exc, RequestAborted):
            value = exc.value

        request_context = {"method": scope["method"], "uri": scope["path"]}

        if isinstance(value, HTTPFault):
            await self.recover_fault(send, value, request_context, response_started)
            return

        if isinstance(value, Exception):
            fields: dict[str, Any] = {
                "error": str(value),
                "error_type": type(value).__name__,
                **request_context,
            }
            if isinstance(value, RUNTIME_ERRORS):
                fields["stack"] = "".join(traceback.format_exception(value))
        else:
            fields = {"error": value, **request_context}

        if response_started:
            fields["response_started"] = True
        log_with_context(self.logger, logging.ERROR, "recover panic", **fields)

        # The response is already on the wire, a second start is not allowed
        if not response_started:
            await send({"type": "http.response.start", "status": 500, "headers": []})
            await send({"type": "http.response.body", "body": b"", "more_body": False})

    async def recover_fault(
        self,
        send: Send,
        fault: HTTPFault,
        request_context: dict[str, Any],
        response_started: bool,
    ) -> None:
        # Faults without a cause are expected outcomes and stay quiet
        if (cause := fault.cause) is not None:
            fields: dict[str, Any] = {
                "error": str(cause),
                "error_type": type(cause).__name__,
            }
            if (site := fault.call_site) is not None:
                fields["file"] = f"{site.file}:{site.line}"
                fields["func"] = site.function
            else:
                fields.update(request_context)

            level = logging.ERROR if fault.status_code >= 500 else logging.DEBUG
            log_with_context(self.logger, level, "recover http error", **fields)

        if response_started:
            log_with_context(
                self.logger,
                logging.ERROR,
                "send error response",
                error="response already started",
                status=fault.status_code,
                **request_context,
            )
            return

        try:
            await render_fault(send, fault)
        except Exception as e:
            log_with_context(
                self.logger,
                logging.ERROR,
                "send error response",
                error=str(e),
                error_type=type(e).__name__,
            )


def _multi_dict(params: QueryParams) -> dict[str, list[str]]:
    return {key: params.getlist(key) for key in params}


def _body_fields(body: bytes) -> dict[str, str]:
    try:
        return {"body": body.decode("utf-8")}
    except UnicodeDecodeError:
        return {
            "body": base64.b64encode(body).decode("ascii"),
            "body_encoding": "base64",
        }


def install_fault_boundary(
    app: Starlette,
    snapshot_limit: int = DEFAULT_SNAPSHOT_LIMIT,
    log_body: bool = True,
    form_limit: int = DEFAULT_FORM_LIMIT,
) -> None:
    """Add recovery, request logging and correlation ID middleware to an app.

    Middleware added last runs outermost, so the order here gives
    correlation ID -> request logging -> recovery -> app.
    """
    app.add_middleware(RecoveryMiddleware)
    app.add_middleware(
        RequestLoggingMiddleware,
        snapshot_limit=snapshot_limit,
        log_body=log_body,
        form_limit=form_limit,
    )
    app.add_middleware(CorrelationIdMiddleware)
