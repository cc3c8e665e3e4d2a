"""Unmarshal side: zero every field the caller is not allowed to set."""

import collections.abc
import enum
import typing
from collections.abc import Iterable
from typing import Any, Literal

from pydantic import BaseModel

from syft_serde.engine.schema import (
    FieldDescriptor,
    FieldListener,
    SchemaCache,
    default_cache,
    is_union,
)
from syft_serde.errors import SchemaError
from syft_serde.spec.scope import permission_set

_SCALAR_ZEROS: dict[type, Any] = {
    str: "",
    bytes: b"",
    bool: False,
    int: 0,
    float: 0.0,
}
_CONTAINER_ZEROS: dict[Any, type] = {
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    dict: dict,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
    collections.abc.Mapping: dict,
    collections.abc.MutableMapping: dict,
}


def zero_value(descriptor: FieldDescriptor) -> Any:
    """The declared default of a field, or the zero of its type."""
    info = descriptor.field_info
    if info is None:
        return None
    if not info.is_required():
        return info.get_default(call_default_factory=True, validated_data={})
    return zero_for_type(info.annotation)


def zero_for_type(tp: Any, _seen: frozenset[type] = frozenset()) -> Any:
    if tp is None or tp is type(None) or tp is Any:
        return None
    if is_union(tp):
        args = typing.get_args(tp)
        if type(None) in args:
            return None
        return zero_for_type(args[0], _seen)

    origin = typing.get_origin(tp)
    if origin is Literal:
        return typing.get_args(tp)[0]
    if origin is not None:
        container = _CONTAINER_ZEROS.get(origin)
        return container() if container is not None else None

    if not isinstance(tp, type):
        return None
    if tp in _CONTAINER_ZEROS:
        return _CONTAINER_ZEROS[tp]()
    if issubclass(tp, enum.Enum):
        return next(iter(tp), None)
    if issubclass(tp, BaseModel):
        if tp in _seen:
            # self-referential required field
            return None
        seen = _seen | {tp}
        required = {
            name: zero_for_type(info.annotation, seen)
            for name, info in tp.model_fields.items()
            if info.is_required()
        }
        return tp.model_construct(**required)
    for scalar, zero in _SCALAR_ZEROS.items():
        if issubclass(tp, scalar):
            return zero
    return None


def set_field(model: BaseModel, name: str, value: Any) -> None:
    """Assign without validation; works on frozen models too."""
    model.__dict__[name] = value
    model.__pydantic_fields_set__.discard(name)


class _Sanitizer:
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

    def model(self, value: BaseModel) -> None:
        marker = id(value)
        if marker in self._path:
            raise SchemaError(f"Cyclic reference to a {type(value).__name__} instance")
        self._path.add(marker)
        try:
            schema = self.cache.get(type(value))
            for descriptor in schema.fields:
                granted = descriptor.allows(self.permissions)
                if self.on_field is not None:
                    self.on_field(schema, descriptor, granted)
                if granted:
                    self.descend(getattr(value, descriptor.name))
                else:
                    set_field(value, descriptor.name, zero_value(descriptor))
        finally:
            self._path.discard(marker)

    def descend(self, value: Any) -> None:
        if isinstance(value, BaseModel):
            self.model(value)
        elif isinstance(value, (list, tuple)):
            for item in value:
                self.descend(item)
        elif isinstance(value, dict):
            for item in value.values():
                self.descend(item)


def sanitize(
    value: BaseModel,
    permissions: Iterable[str],
    cache: SchemaCache | None = None,
    on_field: FieldListener | None = None,
) -> None:
    """Reset, in place, every field of `value` the permissions cannot write.

    Runs after a decoder populated `value` from untrusted input, so whatever
    the input carried for a restricted field is discarded.
    """
    if not isinstance(value, BaseModel):
        raise SchemaError(
            f"Cannot sanitize {type(value).__name__}: only pydantic models are scoped"
        )
    _Sanitizer(
        permission_set(permissions),
        cache if cache is not None else default_cache(),
        on_field,
    ).model(value)
