"""Tests for request decoding helpers."""

import logging
from collections.abc import Callable

import pytest
from httpx import AsyncClient
from pydantic import BaseModel, Field
from starlette.datastructures import QueryParams

from faultline.core.exceptions import HTTPFault
from faultline.core.request import (
    DecodeError,
    must_scan_json,
    must_scan_values,
    scan_json,
    scan_values,
)

Records = Callable[[str], list[logging.LogRecord]]


class Filters(BaseModel):
    page: int = Field(1, ge=1)
    tags: list[str] = []
    search: str | None = None


class Widget(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: int = 1


class TestScanValues:
    """Tests for multi-value decoding."""

    def test_scalars_and_lists(self) -> None:
        """Test that list fields get every value and scalars the first."""
        values = QueryParams("page=3&tags=a&tags=b&search=x&search=y&unknown=1")

        filters = scan_values(Filters, values)

        assert filters.page == 3
        assert filters.tags == ["a", "b"]
        assert filters.search == "x"

    def test_plain_mapping(self) -> None:
        """Test that ordinary dicts are accepted too."""
        filters = scan_values(Filters, {"page": "2", "tags": ["a"]})

        assert filters.page == 2
        assert filters.tags == ["a"]

    def test_defaults(self) -> None:
        """Test that missing keys fall back to model defaults."""
        filters = scan_values(Filters, QueryParams(""))

        assert filters == Filters()

    def test_validation_failure(self) -> None:
        """Test that invalid values raise DecodeError."""
        with pytest.raises(DecodeError) as exc_info:
            scan_values(Filters, QueryParams("page=0"))

        assert not exc_info.value.malformed

    def test_must_scan_raises_400_fault(self) -> None:
        """Test that the must variant raises a 400 fault naming its caller."""
        with pytest.raises(HTTPFault) as exc_info:
            must_scan_values(Filters, QueryParams("page=abc"))

        fault = exc_info.value
        assert fault.status_code == 400
        assert isinstance(fault.cause, DecodeError)
        assert fault.headers["Content-Type"] == "text/plain"
        assert fault.call_site is not None
        assert fault.call_site.function.endswith("test_must_scan_raises_400_fault")


class TestScanJSON:
    """Tests for JSON decoding."""

    def test_valid(self) -> None:
        """Test decoding a valid document."""
        widget = scan_json(Widget, b'{"name": "bolt", "quantity": 3}')

        assert widget == Widget(name="bolt", quantity=3)

    def test_malformed(self) -> None:
        """Test that broken JSON is flagged as malformed."""
        with pytest.raises(DecodeError) as exc_info:
            scan_json(Widget, b"{nope")

        assert exc_info.value.malformed

    def test_invalid(self) -> None:
        """Test that well-formed but invalid JSON is not flagged malformed."""
        with pytest.raises(DecodeError) as exc_info:
            scan_json(Widget, '{"name": ""}')

        assert not exc_info.value.malformed

    @pytest.mark.parametrize(
        ("payload", "status"),
        [(b"{nope", 406), (b'{"name": ""}', 400), (b"[]", 400)],
    )
    def test_must_scan_status(self, payload: bytes, status: int) -> None:
        """Test the fault status for each kind of failure."""
        with pytest.raises(HTTPFault) as exc_info:
            must_scan_json(Widget, payload)

        assert exc_info.value.status_code == status


class TestScanThroughMiddleware:
    """Tests for decoding faults reaching the client."""

    @pytest.mark.asyncio
    async def test_query_fault(self, client: AsyncClient, records: Records) -> None:
        """Test that a bad query is answered with 400 and logged at debug."""
        response = await client.get("/scan?page=abc")

        assert response.status_code == 400
        assert "validate values" in response.text

        record = records("faultline.recovery")[0]
        assert record.levelno == logging.DEBUG
        assert record.context["func"].endswith("scan_query")

    @pytest.mark.asyncio
    async def test_query_ok(self, client: AsyncClient) -> None:
        """Test that a valid query decodes."""
        response = await client.get("/scan?page=2&tags=x&tags=y")

        assert response.status_code == 200
        assert response.json() == {"page": 2, "tags": ["x", "y"]}

    @pytest.mark.asyncio
    async def test_malformed_body_fault(self, client: AsyncClient) -> None:
        """Test that malformed JSON bodies are answered with 406."""
        response = await client.post(
            "/scan",
            content=b"{nope",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 406
        assert "json decode" in response.text
