"""Schema introspection: one FieldDescriptor per model field, built once per type."""

import collections.abc
import logging
import threading
import types
import typing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel
from pydantic.errors import PydanticUndefinedAnnotation
from pydantic.fields import FieldInfo

from syft_serde.errors import SchemaError
from syft_serde.spec.fields import ENCRYPTION_MODES, Encrypted, Keys, Scope
from syft_serde.spec.scope import UNRESTRICTED, ScopeExpression

logger = logging.getLogger(__name__)

_SEQUENCE_ORIGINS = (list, tuple, collections.abc.Sequence, collections.abc.MutableSequence)
_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


class FieldKind(str, Enum):
    SCALAR = "scalar"
    NESTED = "nested"
    COLLECTION = "collection"
    MAPPING = "mapping"


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    default_key: str
    scope: ScopeExpression = UNRESTRICTED
    kind: FieldKind = FieldKind.SCALAR
    model_types: tuple[type[BaseModel], ...] = ()
    keys: dict[str, str] = field(default_factory=dict)
    alias: str | None = None
    encrypted: Encrypted | None = None
    excluded: bool = False
    field_info: FieldInfo | None = field(default=None, repr=False, compare=False)

    def key_for(self, fmt: str) -> str:
        return self.keys.get(fmt, self.default_key)

    def allows(self, permissions: collections.abc.Iterable[str]) -> bool:
        return self.scope.evaluate(permissions)

    @property
    def is_composite(self) -> bool:
        return self.kind is not FieldKind.SCALAR

    @property
    def nested_type(self) -> type[BaseModel] | None:
        """The nested model type when it is unambiguous."""
        if len(self.model_types) == 1:
            return self.model_types[0]
        return None


class TypeSchema:
    """Ordered field descriptors for one model type."""

    def __init__(self, model_type: type[BaseModel], fields: tuple[FieldDescriptor, ...]):
        self.model_type = model_type
        self.fields = fields
        self.by_name = {f.name: f for f in fields}
        self._by_key: dict[str, dict[str, FieldDescriptor]] = {}

    @property
    def name(self) -> str:
        return self.model_type.__name__

    @property
    def has_scopes(self) -> bool:
        return any(not f.scope.is_unrestricted for f in self.fields)

    @property
    def encrypted_fields(self) -> list[FieldDescriptor]:
        return [f for f in self.fields if f.encrypted is not None]

    def by_key(self, fmt: str) -> dict[str, FieldDescriptor]:
        keyed = self._by_key.get(fmt)
        if keyed is None:
            keyed = {f.key_for(fmt): f for f in self.fields}
            self._by_key[fmt] = keyed
        return keyed

    def __iter__(self):
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def __repr__(self) -> str:
        return f"TypeSchema({self.name}, fields={[f.name for f in self.fields]})"


# (schema, descriptor, granted), called once per scope check
FieldListener = collections.abc.Callable[[TypeSchema, FieldDescriptor, bool], None]


def build_schema(model_type: type) -> TypeSchema:
    """Introspect a pydantic model type. Pure function of the type."""
    if not (isinstance(model_type, type) and issubclass(model_type, BaseModel)):
        raise SchemaError(f"Cannot build a scope schema for {model_type!r}: not a pydantic model")

    if not model_type.__pydantic_complete__:
        try:
            model_type.model_rebuild(raise_errors=True)
        except PydanticUndefinedAnnotation as e:
            raise SchemaError(f"{model_type.__name__} has unresolved annotations: {e}") from e

    descriptors = []
    for name, info in model_type.model_fields.items():
        try:
            descriptors.append(_describe_field(name, info))
        except SchemaError as e:
            raise SchemaError(f"{model_type.__name__}.{name}: {e}") from e
    return TypeSchema(model_type, tuple(descriptors))


def _describe_field(name: str, info: FieldInfo) -> FieldDescriptor:
    scope = UNRESTRICTED
    encrypted = None
    keys: dict[str, str] = {}
    seen_scope = False

    for meta in info.metadata:
        if isinstance(meta, Scope):
            if seen_scope:
                raise SchemaError("multiple Scope markers")
            seen_scope = True
            scope = meta.parse()
        elif isinstance(meta, Encrypted):
            encrypted = meta
        elif isinstance(meta, Keys):
            keys.update(meta.as_dict())

    kind, model_types = classify_annotation(info.annotation)

    if encrypted is not None:
        if encrypted.mode not in ENCRYPTION_MODES:
            raise SchemaError(f"unsupported encryption mode {encrypted.mode!r}")
        inner = strip_optional(info.annotation)
        if inner not in (str, bytes):
            raise SchemaError("only str and bytes fields can be encrypted")

    alias = info.validation_alias if isinstance(info.validation_alias, str) else info.alias
    default_key = info.serialization_alias or info.alias or name

    return FieldDescriptor(
        name=name,
        default_key=default_key,
        scope=scope,
        kind=kind,
        model_types=model_types,
        keys=keys,
        alias=alias,
        encrypted=encrypted,
        excluded=info.exclude is True,
        field_info=info,
    )


def classify_annotation(annotation: Any) -> tuple[FieldKind, tuple[type[BaseModel], ...]]:
    """Only one level is looked at: nested schemas are resolved lazily."""
    models = _models_in(annotation)
    if models:
        return FieldKind.NESTED, models

    inner = strip_optional(annotation)
    origin = typing.get_origin(inner)
    args = [a for a in typing.get_args(inner) if a is not Ellipsis]

    if origin in _SEQUENCE_ORIGINS and args:
        models = tuple(m for a in args for m in _models_in(a))
        if models:
            return FieldKind.COLLECTION, models
    if origin in _MAPPING_ORIGINS and len(args) == 2:
        models = _models_in(args[1])
        if models:
            return FieldKind.MAPPING, models
    return FieldKind.SCALAR, ()


def is_union(tp: Any) -> bool:
    return typing.get_origin(tp) in (Union, types.UnionType)


def strip_optional(tp: Any) -> Any:
    if is_union(tp):
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def _models_in(tp: Any) -> tuple[type[BaseModel], ...]:
    if isinstance(tp, type) and issubclass(tp, BaseModel):
        return (tp,)
    if is_union(tp):
        return tuple(
            a for a in typing.get_args(tp) if isinstance(a, type) and issubclass(a, BaseModel)
        )
    return ()


class SchemaCache:
    """Process-wide schema store.

    Reads are lock-free. A miss builds outside the lock and publishes with
    setdefault, so concurrent first builders all return the first published
    schema.
    """

    def __init__(self):
        self._schemas: dict[type, TypeSchema] = {}
        self._lock = threading.Lock()

    def get(self, model_type: type) -> TypeSchema:
        schema = self._schemas.get(model_type)
        if schema is not None:
            return schema

        built = build_schema(model_type)
        with self._lock:
            schema = self._schemas.setdefault(model_type, built)
        if schema is built:
            logger.debug(
                "Built scope schema for %s (%d fields)", built.name, len(built)
            )
        return schema

    def clear(self) -> None:
        with self._lock:
            self._schemas.clear()

    def __contains__(self, model_type: type) -> bool:
        return model_type in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)


_default_cache = SchemaCache()


def default_cache() -> SchemaCache:
    return _default_cache


def schema_for(model_type: type) -> TypeSchema:
    return _default_cache.get(model_type)
