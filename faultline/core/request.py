"""Decoding request values and JSON bodies into validated models."""

import types
import typing
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any, TypeVar

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError

from faultline.core.exceptions import FaultlineError, HTTPFault, new_fault, wrap_fault

ModelT = TypeVar("ModelT", bound=BaseModel)

_SEQUENCE_TYPES = (list, set, frozenset, tuple)


class DecodeError(FaultlineError):
    """Raised when request input cannot be decoded into a model.

    ``malformed`` is True when the payload was not parseable at all, as
    opposed to parseable but failing validation.
    """

    def __init__(self, message: str, *, malformed: bool = False) -> None:
        self.malformed = malformed
        super().__init__(message)


def _is_sequence_field(annotation: Any) -> bool:
    origin = typing.get_origin(annotation)
    if origin in _SEQUENCE_TYPES:
        return True
    # Optional[list[str]] and friends
    if origin is typing.Union or origin is types.UnionType:
        return any(_is_sequence_field(arg) for arg in typing.get_args(annotation))
    return False


def _is_json_invalid(error: ValidationError) -> bool:
    return any(e["type"] == "json_invalid" for e in error.errors())


def scan_values(model: type[ModelT], values: Mapping[str, Any]) -> ModelT:
    """Decode multi-value request data (query params, form data) into a model.

    List-typed fields receive every value given for their key, other fields
    the first one. Unknown keys are ignored.

    Raises:
        DecodeError: If the values fail validation.
    """
    getlist = getattr(values, "getlist", None)
    data: dict[str, Any] = {}
    for name, field in model.model_fields.items():
        key = field.alias or name
        if key not in values:
            continue
        if _is_sequence_field(field.annotation):
            data[key] = getlist(key) if getlist is not None else values[key]
        elif getlist is not None:
            data[key] = getlist(key)[0]
        else:
            data[key] = values[key]

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"validate values, {e}") from e


def must_scan_values(model: type[ModelT], values: Mapping[str, Any]) -> ModelT:
    """Like :func:`scan_values`, raising a 400 fault on failure."""
    try:
        return scan_values(model, values)
    except DecodeError as e:
        raise wrap_fault(e, stacklevel=2).with_status(HTTPStatus.BAD_REQUEST).with_text(
            str(e)
        ) from e


def scan_json(model: type[ModelT], data: bytes | str) -> ModelT:
    """Decode and validate a JSON document into a model.

    Raises:
        DecodeError: If the document is not JSON or fails validation.
    """
    try:
        return model.model_validate_json(data)
    except ValidationError as e:
        if _is_json_invalid(e):
            raise DecodeError(f"json decode, {e}", malformed=True) from e
        raise DecodeError(f"validate values, {e}") from e


def must_scan_json(model: type[ModelT], data: bytes | str) -> ModelT:
    """Like :func:`scan_json`, raising a 406 fault for malformed JSON and 400
    for validation failures."""
    try:
        return scan_json(model, data)
    except DecodeError as e:
        status = HTTPStatus.NOT_ACCEPTABLE if e.malformed else HTTPStatus.BAD_REQUEST
        raise wrap_fault(e, stacklevel=2).with_status(status).with_text(str(e)) from e


def request_validation_fault(exc: RequestValidationError) -> HTTPFault:
    """Map a FastAPI validation error onto the same statuses as the scanners."""
    errors = [
        {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        for error in exc.errors()
    ]
    malformed = any(error["type"] == "json_invalid" for error in errors)
    status = HTTPStatus.NOT_ACCEPTABLE if malformed else HTTPStatus.BAD_REQUEST
    return new_fault(status).with_json({"detail": errors, "error": "ValidationError"})
