"""Exceptions raised by the scoped serialization pipeline.

Insufficient permissions are never an error: restricted fields are omitted
on marshal and zeroed on unmarshal. Everything below is a structural failure
that aborts the whole call.
"""

from typing import Any


class SerdeError(Exception):
    """Base class for all syft-serde errors."""


class SchemaError(SerdeError, ValueError):
    """A model cannot be scoped: malformed scope tag or unsupported field shape."""


class ScopeParseError(SchemaError):
    def __init__(self, raw: str, message: str):
        self.raw = raw
        super().__init__(f"Invalid scope expression {raw!r}: {message}")


class EncodeError(SerdeError):
    """The format codec failed to encode a redacted payload."""


class DecodeError(SerdeError):
    """The format codec failed to decode input, or the input could not populate the model."""


class ValidationError(SerdeError):
    def __init__(self, model_name: str, errors: list[dict[str, Any]]):
        self.model_name = model_name
        self.errors = errors
        summary = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}"
            for e in errors
        )
        super().__init__(f"Validation failed for {model_name}: {summary}")


class SecurityActionError(SerdeError):
    def __init__(self, action: str, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"Security action '{action}' aborted the operation: {reason}")


class CryptoError(SerdeError):
    """Field encryption or decryption failed."""
