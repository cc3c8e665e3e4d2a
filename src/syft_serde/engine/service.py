import logging
from collections.abc import Iterable
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel

from syft_serde.config import SerdeSettings
from syft_serde.engine.codecs import Codec, get_codec
from syft_serde.engine.crypto import Cipher, FernetCipher, decrypt_payload, encrypt_fields
from syft_serde.engine.events import EventSink, SerdeEvent
from syft_serde.engine.filter import Redacted, filter_for_marshal
from syft_serde.engine.payload import prepare_payload
from syft_serde.engine.sanitize import sanitize
from syft_serde.engine.schema import (
    FieldDescriptor,
    FieldListener,
    SchemaCache,
    TypeSchema,
    default_cache,
)
from syft_serde.engine.security import Direction, SecurityContext, run_security_actions
from syft_serde.engine.validation import PydanticValidator, Validator
from syft_serde.errors import DecodeError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Passing validator=None disables validation, so "not given" needs its own marker.
_DEFAULT_VALIDATOR: Any = object()


class ScopedSerializer:
    """Scoped marshal/unmarshal for one format.

    Marshal: hooks -> filter -> encrypt -> validate -> encode.
    Unmarshal: hooks -> decode -> decrypt -> populate -> sanitize -> validate.
    Hooks and encryption only run on the *_with_context entry points.
    """

    def __init__(
        self,
        codec: Codec,
        validator: Validator | None = _DEFAULT_VALIDATOR,
        event_sink: EventSink | None = None,
        default_key: bytes | str | None = None,
        cache: SchemaCache | None = None,
    ):
        self.codec = codec
        self.validator = PydanticValidator() if validator is _DEFAULT_VALIDATOR else validator
        self.event_sink = event_sink
        self._default_key = default_key
        self.cache = cache if cache is not None else default_cache()

    @classmethod
    def from_settings(
        cls, settings: SerdeSettings | None = None, **kwargs: Any
    ) -> "ScopedSerializer":
        """Build a serializer from settings; keyword arguments take precedence."""
        settings = settings or SerdeSettings()
        codec_options = {}
        if settings.default_format.lower() == "json":
            codec_options["indent"] = settings.json_indent
        key = settings.org_master_key
        options: dict[str, Any] = {
            "validator": _DEFAULT_VALIDATOR if settings.validate_output else None,
            "default_key": key.get_secret_value() if key is not None else None,
        }
        options.update(kwargs)
        return cls(get_codec(settings.default_format, **codec_options), **options)

    @property
    def format(self) -> str:
        return self.codec.name

    # --- plain entry points: scoping only ---

    def marshal(self, value: BaseModel, permissions: Iterable[str] = ()) -> bytes:
        return self._marshal(value, SecurityContext(permissions=permissions), secure=False)

    def unmarshal(
        self, data: bytes | str, model_type: type[M], permissions: Iterable[str] = ()
    ) -> M:
        return self._unmarshal(
            data, model_type, SecurityContext(permissions=permissions), secure=False
        )

    # --- secure entry points: hooks + encryption + scoping ---

    def marshal_with_context(self, value: BaseModel, ctx: SecurityContext) -> bytes:
        return self._marshal(value, ctx, secure=True)

    def unmarshal_with_context(
        self, data: bytes | str, model_type: type[M], ctx: SecurityContext
    ) -> M:
        return self._unmarshal(data, model_type, ctx, secure=True)

    def _marshal(self, value: BaseModel, ctx: SecurityContext, secure: bool) -> bytes:
        error = None
        try:
            if secure:
                run_security_actions(value, Direction.MARSHAL, ctx)
            redacted = filter_for_marshal(
                value,
                ctx.permissions,
                cache=self.cache,
                on_field=self._field_listener(ctx, secure),
            )
            if secure:
                encrypt_fields(redacted, self._cipher(ctx))
            if self.validator is not None:
                self._validate(redacted.schema.name, ctx, secure, redacted)
            payload = redacted.to_payload(self.format)
            logger.debug(
                "Marshalling %s as %s: %d of %d fields visible",
                redacted.schema.name,
                self.format,
                len(redacted.values),
                len(redacted.schema),
            )
            return self.codec.encode(payload)
        except Exception as e:
            error = e
            raise
        finally:
            self._emit(Direction.MARSHAL, type(value), ctx, secure, error)

    def _unmarshal(
        self,
        data: bytes | str,
        model_type: type[M],
        ctx: SecurityContext,
        secure: bool,
    ) -> M:
        error = None
        try:
            if secure:
                run_security_actions(model_type, Direction.UNMARSHAL, ctx)
            schema = self.cache.get(model_type)
            payload = self.codec.decode(data)
            if secure:
                payload = decrypt_payload(
                    payload, schema, self.format, self._cipher(ctx), self.cache
                )
            raw = prepare_payload(payload, schema, self.format, ctx.permissions, self.cache)
            try:
                value = model_type.model_validate(raw, by_name=True)
            except pydantic.ValidationError as e:
                raise DecodeError(
                    f"{self.format.upper()} payload does not populate {schema.name}: {e}"
                ) from e
            sanitize(
                value,
                ctx.permissions,
                cache=self.cache,
                on_field=self._field_listener(ctx, secure),
            )
            if self.validator is not None:
                self._validate(schema.name, ctx, secure, value)
            return value
        except Exception as e:
            error = e
            raise
        finally:
            self._emit(Direction.UNMARSHAL, model_type, ctx, secure, error)

    def _validate(
        self,
        model_name: str,
        ctx: SecurityContext,
        secure: bool,
        target: Redacted | BaseModel,
    ) -> None:
        error = None
        try:
            if isinstance(target, Redacted):
                self.validator.validate_redacted(target)
            else:
                self.validator.validate_model(target)
        except Exception as e:
            error = e
            raise
        finally:
            if self.event_sink is not None:
                self._send(self._event("validate", model_name, ctx, secure, error))

    def _cipher(self, ctx: SecurityContext) -> Cipher | None:
        key = ctx.org_master_key or self._default_key
        return FernetCipher(key) if key else None

    def _field_listener(self, ctx: SecurityContext, secure: bool) -> FieldListener | None:
        if self.event_sink is None:
            return None

        def listener(schema: TypeSchema, descriptor: FieldDescriptor, granted: bool) -> None:
            self._send(
                self._event(
                    "scope_check",
                    schema.name,
                    ctx,
                    secure,
                    granted=granted,
                    field_name=descriptor.name,
                )
            )

        return listener

    def _event(
        self,
        action: str,
        model_name: str,
        ctx: SecurityContext,
        secure: bool,
        error: Exception | None = None,
        granted: bool | None = None,
        field_name: str | None = None,
    ) -> SerdeEvent:
        return SerdeEvent(
            action=action,
            model_type=model_name,
            format=self.format,
            permissions=tuple(sorted(ctx.permissions)),
            success=granted if granted is not None else error is None,
            error=str(error) if error is not None else None,
            secure=secure,
            field_name=field_name,
        )

    def _emit(
        self,
        direction: Direction,
        model_type: type,
        ctx: SecurityContext,
        secure: bool,
        error: Exception | None,
    ) -> None:
        if self.event_sink is None:
            return
        model_name = getattr(model_type, "__name__", str(model_type))
        self._send(self._event(direction.value, model_name, ctx, secure, error))

    def _send(self, event: SerdeEvent) -> None:
        try:
            self.event_sink.emit(event)
        except Exception as e:
            logger.warning(f"Event sink failed for {event.action} of {event.model_type}: {e}")

    def __repr__(self) -> str:
        return f"ScopedSerializer({self.format})"
