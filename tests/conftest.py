"""Pytest configuration and fixtures."""

import logging
from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel, Field
from starlette.responses import Response

from faultline.core.exceptions import RequestAborted, new_fault, wrap_fault
from faultline.core.middleware import install_fault_boundary
from faultline.core.request import must_scan_json, must_scan_values
from faultline.main import app as main_app, validation_error_handler


class PageQuery(BaseModel):
    """Query parameters accepted by the scan route."""

    page: int = Field(1, ge=1)
    tags: list[str] = []


class ItemCreate(BaseModel):
    """JSON body accepted by the item routes."""

    name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(1, ge=1)


def create_test_app() -> FastAPI:
    """Build an app whose routes exercise every recovery path."""
    app = FastAPI()
    install_fault_boundary(app)
    app.add_exception_handler(
        RequestValidationError,
        validation_error_handler,  # pyright: ignore[reportArgumentType]
    )

    @app.get("/ok")
    async def ok() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/status/{code}")
    async def status(code: int) -> Response:
        return Response(status_code=code)

    @app.get("/fault/wrapped")
    async def wrapped_fault() -> None:
        raise wrap_fault(ValueError("boom")).with_status(503)

    @app.get("/fault/client")
    async def client_fault() -> None:
        raise wrap_fault(ValueError("bad input")).with_status(400)

    @app.get("/fault/plain")
    async def plain_fault() -> None:
        raise new_fault(404).with_header("X-Reason", "gone").with_text("missing")

    @app.get("/fault/json")
    async def json_fault() -> None:
        raise new_fault(409).with_json({"detail": "conflict"})

    @app.get("/fault/returned")
    async def returned_fault() -> Response:
        return new_fault(418).with_text("teapot").to_response()

    @app.get("/fault/aborted")
    async def aborted_fault() -> None:
        raise RequestAborted(new_fault(402).with_text("pay up"))

    @app.get("/error")
    async def error() -> None:
        raise ValueError("x")

    @app.get("/error/runtime")
    async def runtime_error() -> None:
        data: dict[str, int] = {}
        data["missing"] += 1

    @app.get("/error/sync")
    def sync_error() -> None:
        raise RuntimeError("sync handler failed")

    @app.get("/abort")
    async def abort() -> None:
        raise RequestAborted(42)

    @app.post("/echo")
    async def echo(request: Request) -> Response:
        body = await request.body()
        return Response(content=body, media_type="application/json")

    @app.post("/ignore")
    async def ignore() -> dict[str, str]:
        return {"status": "ignored"}

    @app.post("/form")
    async def form(request: Request) -> dict[str, int]:
        body = await request.body()
        return {"size": len(body)}

    @app.get("/scan")
    async def scan_query(request: Request) -> dict[str, object]:
        query = must_scan_values(PageQuery, request.query_params)
        return query.model_dump()

    @app.post("/scan")
    async def scan_body(request: Request) -> dict[str, object]:
        item = must_scan_json(ItemCreate, await request.body())
        return item.model_dump()

    @app.post("/items", status_code=201)
    async def create_item(item: ItemCreate) -> ItemCreate:
        return item

    return app


@pytest.fixture
def test_app() -> FastAPI:
    """Fresh application wired with the fault boundary."""
    return create_test_app()


@pytest_asyncio.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create test client for the fault boundary test app."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def main_client() -> AsyncGenerator[AsyncClient]:
    """Create test client for the reference application."""
    async with AsyncClient(
        transport=ASGITransport(app=main_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Capture everything the fault boundary logs."""
    caplog.set_level(logging.DEBUG, logger="faultline")
    return caplog


@pytest.fixture
def records(
    logs: pytest.LogCaptureFixture,
) -> Callable[[str], list[logging.LogRecord]]:
    """Return a lookup of captured records by logger name."""

    def by_name(name: str) -> list[logging.LogRecord]:
        return [r for r in logs.records if r.name == name]

    return by_name
