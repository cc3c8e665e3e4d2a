"""Module-level entry points backed by one immutable serializer per format."""

from collections.abc import Iterable
from typing import TypeVar

from pydantic import BaseModel

from syft_serde.engine.codecs import JSONCodec, TOMLCodec, YAMLCodec
from syft_serde.engine.security import SecurityContext
from syft_serde.engine.service import ScopedSerializer

M = TypeVar("M", bound=BaseModel)

JSON = ScopedSerializer(JSONCodec())
YAML = ScopedSerializer(YAMLCodec())
TOML = ScopedSerializer(TOMLCodec())

_SERIALIZERS = {s.format: s for s in (JSON, YAML, TOML)}


def get_serializer(format: str = "json") -> ScopedSerializer:
    try:
        return _SERIALIZERS[format.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown format {format!r}. Supported formats: {', '.join(_SERIALIZERS)}"
        ) from None


def marshal(
    value: BaseModel, permissions: Iterable[str] = (), format: str = "json"
) -> bytes:
    return get_serializer(format).marshal(value, permissions)


def unmarshal(
    data: bytes | str,
    model_type: type[M],
    permissions: Iterable[str] = (),
    format: str = "json",
) -> M:
    return get_serializer(format).unmarshal(data, model_type, permissions)


def marshal_with_context(
    value: BaseModel, ctx: SecurityContext, format: str = "json"
) -> bytes:
    return get_serializer(format).marshal_with_context(value, ctx)


def unmarshal_with_context(
    data: bytes | str, model_type: type[M], ctx: SecurityContext, format: str = "json"
) -> M:
    return get_serializer(format).unmarshal_with_context(data, model_type, ctx)
