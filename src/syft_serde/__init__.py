from syft_serde.api import (
    JSON,
    TOML,
    YAML,
    get_serializer,
    marshal,
    marshal_with_context,
    unmarshal,
    unmarshal_with_context,
)
from syft_serde.config import SerdeSettings
from syft_serde.engine.codecs import Codec, JSONCodec, TOMLCodec, YAMLCodec, get_codec
from syft_serde.engine.crypto import Cipher, FernetCipher
from syft_serde.engine.events import EventSink, ListEventSink, SerdeEvent
from syft_serde.engine.filter import ENCRYPTION_MARKER, Redacted, filter_for_marshal
from syft_serde.engine.sanitize import sanitize, zero_value
from syft_serde.engine.schema import (
    FieldDescriptor,
    FieldKind,
    SchemaCache,
    TypeSchema,
    schema_for,
)
from syft_serde.engine.security import (
    Abort,
    Continue,
    Direction,
    SecurityActions,
    SecurityContext,
)
from syft_serde.engine.service import ScopedSerializer
from syft_serde.engine.validation import PydanticValidator, Validator
from syft_serde.errors import (
    CryptoError,
    DecodeError,
    EncodeError,
    SchemaError,
    ScopeParseError,
    SecurityActionError,
    SerdeError,
    ValidationError,
)
from syft_serde.spec.fields import Encrypted, Keys, Scope
from syft_serde.spec.scope import ScopeExpression, parse_scope

__all__ = [
    "JSON",
    "YAML",
    "TOML",
    "marshal",
    "unmarshal",
    "marshal_with_context",
    "unmarshal_with_context",
    "get_serializer",
    "ScopedSerializer",
    "SerdeSettings",
    "Codec",
    "JSONCodec",
    "YAMLCodec",
    "TOMLCodec",
    "get_codec",
    "Cipher",
    "FernetCipher",
    "EventSink",
    "ListEventSink",
    "SerdeEvent",
    "ENCRYPTION_MARKER",
    "Redacted",
    "filter_for_marshal",
    "sanitize",
    "zero_value",
    "FieldDescriptor",
    "FieldKind",
    "SchemaCache",
    "TypeSchema",
    "schema_for",
    "Abort",
    "Continue",
    "Direction",
    "SecurityActions",
    "SecurityContext",
    "PydanticValidator",
    "Validator",
    "SerdeError",
    "SchemaError",
    "ScopeParseError",
    "EncodeError",
    "DecodeError",
    "ValidationError",
    "SecurityActionError",
    "CryptoError",
    "Scope",
    "Encrypted",
    "Keys",
    "ScopeExpression",
    "parse_scope",
]
