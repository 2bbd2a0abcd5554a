from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes


# Shared with the collection server out of band. Both are UTF-8 strings whose
# encoded length must be exactly 32 (AES-256 key) and 16 (CBC IV) bytes.
ENVELOPE_KEY = "aBfGhIjKlMnOpQrStUvWxYz012345678"
ENVELOPE_IV = "1234567890123456"
VERSION_TAG = "v:1,"

_BLOCK_BITS = 128


class EnvelopeError(RuntimeError):
    """Base error for envelope sealing/opening."""


class FormatError(EnvelopeError):
    """Envelope does not start with the expected version tag."""


class DecryptError(EnvelopeError):
    """Ciphertext is not valid base64, not block aligned, or badly padded."""


class ParseError(EnvelopeError):
    """Decrypted bytes are not UTF-8 JSON."""


def _as_bytes(value: Union[str, bytes], *, size: int, what: str) -> bytes:
    raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    if len(raw) != size:
        raise ValueError(f"{what} must be exactly {size} bytes, got {len(raw)}")
    return raw


class EnvelopeCodec:
    """
    Versioned AES-256-CBC envelope shared with the collection server.

    Wire format: ``<version tag><base64(AES-256-CBC(PKCS7(utf8(json))))>``.

    Notes
    - Key and IV are fixed. Equal plaintexts therefore produce equal envelopes;
      the server expects exactly this scheme, so it must not be changed here.
    - JSON is compact with keys in insertion order and non-ASCII text kept as
      UTF-8, matching what a browser's ``JSON.stringify`` produces.
    """

    def __init__(
        self,
        key: Union[str, bytes] = ENVELOPE_KEY,
        iv: Union[str, bytes] = ENVELOPE_IV,
        *,
        version_tag: str = VERSION_TAG,
    ) -> None:
        if not version_tag:
            raise ValueError("version_tag is required")
        self._key = _as_bytes(key, size=32, what="key")
        self._iv = _as_bytes(iv, size=16, what="iv")
        self._tag = version_tag

    @property
    def version_tag(self) -> str:
        return self._tag

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(self._iv))

    # --------------- Public API ---------------
    def seal(self, obj: Any) -> str:
        """Serialize `obj` to JSON, encrypt it and prepend the version tag.

        Raises ValueError/TypeError when `obj` is not JSON-serializable
        (NaN and infinities included).
        """
        text = json.dumps(obj, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        padded = padder.update(text.encode("utf-8")) + padder.finalize()

        encryptor = self._cipher().encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return self._tag + base64.b64encode(ciphertext).decode("ascii")

    def open(self, envelope: str) -> Any:
        """
        Verify the version tag, decrypt and parse an envelope.

        Raises
        - FormatError: not a string or the tag is missing/unrecognized.
        - DecryptError: bad base64, length not a multiple of the block size,
          or invalid padding.
        - ParseError: plaintext is not UTF-8 or not JSON.
        """
        if not isinstance(envelope, str) or not envelope.startswith(self._tag):
            raise FormatError("Invalid envelope format: missing version header")

        body = envelope[len(self._tag):]
        try:
            ciphertext = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecryptError("Envelope ciphertext is not valid base64") from exc
        if not ciphertext or len(ciphertext) % (_BLOCK_BITS // 8) != 0:
            raise DecryptError("Envelope ciphertext is not block aligned")

        decryptor = self._cipher().decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            raise DecryptError("Envelope padding is invalid") from exc

        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ParseError("Decrypted envelope is not UTF-8 JSON") from exc


_default_codec = EnvelopeCodec()


def seal(obj: Any) -> str:
    """Seal `obj` with the shared key/IV."""
    return _default_codec.seal(obj)


def open_envelope(envelope: str) -> Any:
    """Open an envelope sealed with the shared key/IV."""
    return _default_codec.open(envelope)


__all__ = [
    "ENVELOPE_IV",
    "ENVELOPE_KEY",
    "VERSION_TAG",
    "DecryptError",
    "EnvelopeCodec",
    "EnvelopeError",
    "FormatError",
    "ParseError",
    "open_envelope",
    "seal",
]
