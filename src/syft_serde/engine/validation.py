"""Structural validation of what is about to be emitted, or was just accepted."""

from typing import Protocol

import pydantic
from pydantic import BaseModel

from syft_serde.engine.filter import Redacted
from syft_serde.errors import ValidationError


class Validator(Protocol):
    def validate_redacted(self, redacted: Redacted) -> None: ...

    def validate_model(self, value: BaseModel) -> None: ...


class PydanticValidator:
    """Re-runs the model's own pydantic validation.

    On a redacted copy, `missing` errors for redacted or encrypted fields
    are expected and ignored; every other error is reported.
    """

    def validate_redacted(self, redacted: Redacted) -> None:
        data = redacted.to_python(exclude_encrypted=True)
        try:
            redacted.model_type.model_validate(data, by_name=True)
        except pydantic.ValidationError as e:
            errors = [
                err
                for err in e.errors(include_url=False)
                if not (err["type"] == "missing" and redacted.is_omitted(err["loc"]))
            ]
            if errors:
                raise ValidationError(redacted.schema.name, errors) from e

    def validate_model(self, value: BaseModel) -> None:
        model_type = type(value)
        try:
            model_type.model_validate(value.model_dump(round_trip=True), by_name=True)
        except pydantic.ValidationError as e:
            raise ValidationError(model_type.__name__, e.errors(include_url=False)) from e
