"""Payload validation that raises the domain ValidationError."""

from typing import Any, Type, TypeVar

import pydantic
from pydantic import BaseModel

from ..exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate(model: Type[ModelT], payload: Any) -> ModelT:
    """Validate *payload* against *model*.

    Accepts a mapping or an instance of *model* (returned as is). The first
    pydantic error becomes a ``ValidationError`` keyed by the offending field.
    """
    if isinstance(payload, model):
        return payload

    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        first = e.errors(include_url=False)[0]
        key = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(
            f'"{key}": {first["msg"]}' if key else first["msg"],
            key=key,
            error_location_code="MODEL:VALIDATOR:FINAL_SCHEMA",
            details={"type": first["type"], "error_count": e.error_count()},
        ) from e
