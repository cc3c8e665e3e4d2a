"""Helpers for decoded payloads: per-format keys back to field names."""

import typing
from collections.abc import Callable
from typing import Any, Literal

from syft_serde.engine.filter import ENCRYPTION_MARKER
from syft_serde.engine.sanitize import zero_value
from syft_serde.engine.schema import FieldDescriptor, FieldKind, SchemaCache, TypeSchema


def resolve_member(
    descriptor: FieldDescriptor,
    item: dict[str, Any],
    fmt: str,
    cache: SchemaCache,
) -> TypeSchema | None:
    """Pick the schema of the nested model a payload item was marshalled from.

    A field with one model type always resolves to it. For a union of
    models, a string discriminator decides when the field declares one;
    otherwise the member whose keys cover the item most tightly wins, ties
    going to declaration order. Returns None when no member fits.
    """
    schemas = [cache.get(t) for t in descriptor.model_types]
    if len(schemas) == 1:
        return schemas[0]

    discriminator = _discriminator(descriptor)
    if discriminator is not None:
        for schema in schemas:
            field = schema.by_name.get(discriminator)
            if field is None:
                continue
            key = field.key_for(fmt)
            if key in item and item[key] in _literal_values(field):
                return schema
        return None

    keys = set(item) - {ENCRYPTION_MARKER}
    marked = item.get(ENCRYPTION_MARKER)
    marked = {k for k in marked if isinstance(k, str)} if isinstance(marked, list) else set()
    best = None
    for schema in schemas:
        keyed = schema.by_key(fmt)
        if not keys <= keyed.keys():
            continue
        if any(k not in keyed or keyed[k].encrypted is None for k in marked):
            continue
        if best is None or len(keyed) < len(best.by_key(fmt)):
            best = schema
    return best


def _discriminator(descriptor: FieldDescriptor) -> str | None:
    info = descriptor.field_info
    if info is None or descriptor.kind is not FieldKind.NESTED:
        return None
    return info.discriminator if isinstance(info.discriminator, str) else None


def _literal_values(descriptor: FieldDescriptor) -> tuple:
    info = descriptor.field_info
    if info is None or typing.get_origin(info.annotation) is not Literal:
        return ()
    return typing.get_args(info.annotation)


def map_nested_payload(
    descriptor: FieldDescriptor,
    value: Any,
    fmt: str,
    cache: SchemaCache,
    fn: Callable[[TypeSchema | None, dict], dict],
) -> Any:
    """Apply `fn` to every nested model payload held by a composite field.

    Each item is paired with the schema `resolve_member` picks for it;
    `fn` receives None for an item no union member fits.
    """

    def apply(item: Any) -> Any:
        if not isinstance(item, dict):
            return item
        return fn(resolve_member(descriptor, item, fmt, cache), item)

    if descriptor.kind is FieldKind.NESTED:
        return apply(value)
    if descriptor.kind is FieldKind.COLLECTION and isinstance(value, list):
        return [apply(item) for item in value]
    if descriptor.kind is FieldKind.MAPPING and isinstance(value, dict):
        return {k: apply(item) for k, item in value.items()}
    return value


def prepare_payload(
    payload: dict[str, Any],
    schema: TypeSchema,
    fmt: str,
    permissions: frozenset[str],
    cache: SchemaCache,
) -> dict[str, Any]:
    """Re-key a decoded payload by field name so the model can be populated.

    Required restricted fields missing from the payload get their zero
    value, so a payload marshalled under the same permissions always
    populates. Keys that match no field are passed through for the model's
    extra policy.
    """
    keyed = schema.by_key(fmt)
    result: dict[str, Any] = {}

    for key, value in payload.items():
        if key == ENCRYPTION_MARKER:
            continue
        descriptor = keyed.get(key)
        if descriptor is None:
            result[key] = value
            continue
        if descriptor.is_composite:
            value = map_nested_payload(
                descriptor,
                value,
                fmt,
                cache,
                lambda s, p: (
                    p if s is None else prepare_payload(p, s, fmt, permissions, cache)
                ),
            )
        result[descriptor.name] = value

    for descriptor in schema.fields:
        if descriptor.name in result or descriptor.allows(permissions):
            continue
        if descriptor.field_info is not None and descriptor.field_info.is_required():
            result[descriptor.name] = zero_value(descriptor)
    return result
