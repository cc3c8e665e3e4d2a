"""Field-level encryption for the secure marshal/unmarshal path."""

import base64
import hashlib
import logging
from typing import Any, Protocol

from cryptography.fernet import Fernet, InvalidToken

from syft_serde.engine.filter import ENCRYPTION_MARKER, Redacted
from syft_serde.engine.payload import map_nested_payload
from syft_serde.engine.schema import SchemaCache, TypeSchema, strip_optional
from syft_serde.errors import CryptoError

logger = logging.getLogger(__name__)


class Cipher(Protocol):
    def encrypt(self, plaintext: bytes) -> bytes: ...

    def decrypt(self, ciphertext: bytes) -> bytes: ...


class FernetCipher:
    """Owner encryption: anyone holding the organization key can decrypt.

    Arbitrary key material is stretched with SHA-256 into a Fernet key.
    """

    def __init__(self, key: bytes | str):
        if not key:
            raise CryptoError("No organization master key provided")
        if isinstance(key, str):
            key = key.encode("utf-8")
        derived = base64.urlsafe_b64encode(hashlib.sha256(key).digest())
        self._fernet = Fernet(derived)

    def encrypt(self, plaintext: bytes) -> bytes:
        return self._fernet.encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        try:
            return self._fernet.decrypt(ciphertext)
        except InvalidToken as e:
            raise CryptoError("Ciphertext is invalid or was encrypted with another key") from e


def encrypt_fields(redacted: Redacted, cipher: Cipher | None) -> None:
    """Replace visible encryptable values of the copy with ciphertext, recursively."""
    for descriptor in redacted.schema.encrypted_fields:
        value = redacted.values.get(descriptor.name)
        if value is None or value == "" or value == b"":
            continue
        if cipher is None:
            raise CryptoError(
                f"{redacted.schema.name}.{descriptor.name} must be encrypted but no key was provided"
            )
        plaintext = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        redacted.values[descriptor.name] = cipher.encrypt(plaintext).decode("ascii")
        redacted.encrypted.append(descriptor.name)

    for value in redacted.values.values():
        _encrypt_nested(value, cipher)


def _encrypt_nested(value: Any, cipher: Cipher | None) -> None:
    if isinstance(value, Redacted):
        encrypt_fields(value, cipher)
    elif isinstance(value, list):
        for item in value:
            _encrypt_nested(item, cipher)
    elif isinstance(value, dict):
        for item in value.values():
            _encrypt_nested(item, cipher)


def decrypt_payload(
    payload: dict[str, Any],
    schema: TypeSchema,
    fmt: str,
    cipher: Cipher | None,
    cache: SchemaCache,
) -> dict[str, Any]:
    """Decrypt the keys listed in each level's marker; returns a new payload."""
    marked = payload.get(ENCRYPTION_MARKER) or []
    if not isinstance(marked, list):
        raise CryptoError(f"Malformed {ENCRYPTION_MARKER} marker in {schema.name} payload")

    result = {k: v for k, v in payload.items() if k != ENCRYPTION_MARKER}
    keyed = schema.by_key(fmt)
    for key in marked:
        descriptor = keyed.get(key)
        if descriptor is None or descriptor.encrypted is None:
            raise CryptoError(f"{schema.name} payload marks {key!r} as encrypted, but it is not encryptable")
        token = result.get(key)
        if token is None:
            continue
        if not isinstance(token, str):
            raise CryptoError(f"Encrypted value for {schema.name}.{descriptor.name} is not a token")
        if cipher is None:
            raise CryptoError(f"{schema.name} payload is encrypted but no key was provided")
        plaintext = cipher.decrypt(token.encode("utf-8"))
        is_bytes = strip_optional(descriptor.field_info.annotation) is bytes
        result[key] = plaintext if is_bytes else plaintext.decode("utf-8")

    if marked:
        logger.debug("Decrypted %d field(s) of %s", len(marked), schema.name)

    for descriptor in schema.fields:
        key = descriptor.key_for(fmt)
        if descriptor.is_composite and key in result:
            result[key] = map_nested_payload(
                descriptor,
                result[key],
                fmt,
                cache,
                lambda s, p: _decrypt_nested(p, s, fmt, cipher, cache),
            )
    return result


def _decrypt_nested(
    payload: dict[str, Any],
    schema: TypeSchema | None,
    fmt: str,
    cipher: Cipher | None,
    cache: SchemaCache,
) -> dict[str, Any]:
    if schema is not None:
        return decrypt_payload(payload, schema, fmt, cipher, cache)
    if payload.get(ENCRYPTION_MARKER):
        raise CryptoError("Encrypted payload matches no member of its union field")
    return payload
