"""Format adapters. The pipeline only ever hands them redacted payloads."""

from typing import Any, Protocol

import pydantic_core
import toml
import yaml

from syft_serde.errors import DecodeError, EncodeError


class Codec(Protocol):
    name: str
    content_type: str

    def encode(self, payload: dict[str, Any]) -> bytes: ...

    def decode(self, data: bytes | str) -> dict[str, Any]: ...


def _as_mapping(name: str, document: Any) -> dict[str, Any]:
    if not isinstance(document, dict):
        raise DecodeError(
            f"{name} document must be a mapping, got {type(document).__name__}"
        )
    return document


class JSONCodec:
    name = "json"
    content_type = "application/json"

    def __init__(self, indent: int | None = None):
        self.indent = indent

    def encode(self, payload: dict[str, Any]) -> bytes:
        try:
            return pydantic_core.to_json(payload, indent=self.indent)
        except pydantic_core.PydanticSerializationError as e:
            raise EncodeError(f"JSON encoding failed: {e}") from e

    def decode(self, data: bytes | str) -> dict[str, Any]:
        try:
            document = pydantic_core.from_json(data)
        except ValueError as e:
            raise DecodeError(f"JSON decoding failed: {e}") from e
        return _as_mapping("JSON", document)


class YAMLCodec:
    name = "yaml"
    content_type = "application/yaml"

    def encode(self, payload: dict[str, Any]) -> bytes:
        try:
            data = pydantic_core.to_jsonable_python(payload)
            return yaml.safe_dump(
                data, default_flow_style=False, sort_keys=False, allow_unicode=True
            ).encode("utf-8")
        except (pydantic_core.PydanticSerializationError, yaml.YAMLError) as e:
            raise EncodeError(f"YAML encoding failed: {e}") from e

    def decode(self, data: bytes | str) -> dict[str, Any]:
        try:
            document = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise DecodeError(f"YAML decoding failed: {e}") from e
        return _as_mapping("YAML", document or {})


class TOMLCodec:
    name = "toml"
    content_type = "application/toml"

    def encode(self, payload: dict[str, Any]) -> bytes:
        try:
            data = _drop_none(pydantic_core.to_jsonable_python(payload))
            return toml.dumps(data).encode("utf-8")
        except (pydantic_core.PydanticSerializationError, TypeError, ValueError) as e:
            raise EncodeError(f"TOML encoding failed: {e}") from e

    def decode(self, data: bytes | str) -> dict[str, Any]:
        if isinstance(data, bytes):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodeError(f"TOML input is not valid UTF-8: {e}") from e
        try:
            document = toml.loads(data)
        except toml.TomlDecodeError as e:
            raise DecodeError(f"TOML decoding failed: {e}") from e
        return _as_mapping("TOML", document)


def _drop_none(value: Any) -> Any:
    """TOML has no null: absent keys stand in for None."""
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_none(v) for v in value]
    return value


CODECS: dict[str, type] = {
    JSONCodec.name: JSONCodec,
    YAMLCodec.name: YAMLCodec,
    TOMLCodec.name: TOMLCodec,
}


def get_codec(name: str, **options: Any) -> Codec:
    try:
        codec_cls = CODECS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown format {name!r}. Supported formats: {', '.join(CODECS)}"
        ) from None
    return codec_cls(**options)
