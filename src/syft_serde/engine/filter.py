"""Marshal side: build a permission-filtered deep copy of a model."""

import copy
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from syft_serde.engine.schema import (
    FieldListener,
    SchemaCache,
    TypeSchema,
    default_cache,
)
from syft_serde.errors import SchemaError
from syft_serde.spec.scope import permission_set

ENCRYPTION_MARKER = "_encrypted"


@dataclass
class Redacted:
    """The redacted copy of one model instance.

    `values` maps logical field names to copied values, in declaration
    order. Fields the caller may not see are absent, not nulled. Nested
    models are Redacted themselves, also inside lists and dicts.
    """

    schema: TypeSchema
    values: dict[str, Any] = field(default_factory=dict)
    encrypted: list[str] = field(default_factory=list)

    @property
    def model_type(self) -> type[BaseModel]:
        return self.schema.model_type

    def to_python(self, exclude_encrypted: bool = False) -> dict[str, Any]:
        return {
            name: _render(value, lambda r: r.to_python(exclude_encrypted))
            for name, value in self.values.items()
            if not (exclude_encrypted and name in self.encrypted)
        }

    def to_payload(self, fmt: str) -> dict[str, Any]:
        """Dict keyed by the serialized keys of `fmt`, ready for a codec."""
        by_name = self.schema.by_name
        payload = {
            by_name[name].key_for(fmt): _render(value, lambda r: r.to_payload(fmt))
            for name, value in self.values.items()
        }
        if self.encrypted:
            payload[ENCRYPTION_MARKER] = [by_name[n].key_for(fmt) for n in self.encrypted]
        return payload

    def is_omitted(self, loc: tuple) -> bool:
        """True if a validation error location points at redacted or encrypted content."""
        if not loc:
            return False
        head, rest = loc[0], loc[1:]
        if head == self.schema.name and rest:
            # union members are reported under their class name
            head, rest = rest[0], rest[1:]

        descriptor = self.schema.by_name.get(head)
        if descriptor is None:
            descriptor = next((f for f in self.schema.fields if f.alias == head), None)
        if descriptor is None:
            return False
        if descriptor.name not in self.values or descriptor.name in self.encrypted:
            return True
        return _is_omitted_in(self.values[descriptor.name], rest)


def _is_omitted_in(value: Any, loc: tuple) -> bool:
    if not loc:
        return False
    if isinstance(value, Redacted):
        return value.is_omitted(loc)
    if isinstance(value, list):
        index = loc[0]
        if isinstance(index, int) and 0 <= index < len(value):
            return _is_omitted_in(value[index], loc[1:])
        return False
    if isinstance(value, dict) and loc[0] in value:
        return _is_omitted_in(value[loc[0]], loc[1:])
    return False


def _render(value: Any, render_model) -> Any:
    if isinstance(value, Redacted):
        return render_model(value)
    if isinstance(value, list):
        return [_render(v, render_model) for v in value]
    if isinstance(value, dict):
        return {k: _render(v, render_model) for k, v in value.items()}
    return value


class _MarshalFilter:
    def __init__(
        self,
        permissions: frozenset[str],
        cache: SchemaCache,
        on_field: FieldListener | None = None,
    ):
        self.permissions = permissions
        self.cache = cache
        self.on_field = on_field
        self._path: set[int] = set()

    def model(self, value: BaseModel) -> Redacted:
        marker = id(value)
        if marker in self._path:
            raise SchemaError(f"Cyclic reference to a {type(value).__name__} instance")
        self._path.add(marker)
        try:
            schema = self.cache.get(type(value))
            values = {}
            for descriptor in schema.fields:
                if descriptor.excluded:
                    continue
                granted = descriptor.allows(self.permissions)
                if self.on_field is not None:
                    self.on_field(schema, descriptor, granted)
                if granted:
                    values[descriptor.name] = self.copy(getattr(value, descriptor.name))
            return Redacted(schema=schema, values=values)
        finally:
            self._path.discard(marker)

    def copy(self, value: Any) -> Any:
        if isinstance(value, BaseModel):
            return self.model(value)
        if isinstance(value, (list, tuple)):
            return [self.copy(v) for v in value]
        if isinstance(value, dict):
            return {k: self.copy(v) for k, v in value.items()}
        return copy.deepcopy(value)


def filter_for_marshal(
    value: BaseModel,
    permissions: Iterable[str],
    cache: SchemaCache | None = None,
    on_field: FieldListener | None = None,
) -> Redacted:
    """Copy `value` keeping only the fields whose scope `permissions` satisfies.

    Fields declared with `exclude=True` are never copied. The input is never
    mutated and the copy shares no mutable state with it. `on_field` is told
    about every scope check.
    """
    if not isinstance(value, BaseModel):
        raise SchemaError(
            f"Cannot marshal {type(value).__name__}: only pydantic models are scoped"
        )
    return _MarshalFilter(
        permission_set(permissions),
        cache if cache is not None else default_cache(),
        on_field,
    ).model(value)
