from __future__ import annotations

import io
import os
from dataclasses import dataclass
from typing import Tuple

import anyio
from PIL import Image, ImageOps, UnidentifiedImageError


JPEG_MIME = "image/jpeg"

MIB = 1024 * 1024
MAX_RAW_BYTES = 10 * MIB  # decoding larger originals is not allowed
MAX_NORMALIZED_BYTES = 5 * MIB  # collection server limit per image

DEFAULT_MAX_WIDTH = 1600
DEFAULT_QUALITY = 0.85


class MediaError(RuntimeError):
    """Base error for media normalization/encoding."""


class ImageDecodeError(MediaError):
    """The upload is corrupt or in a format that cannot be decoded."""


class ImageTooLargeError(MediaError):
    """The upload (before or after conversion) exceeds the byte ceiling."""

    def __init__(self, message: str, *, size: int, limit: int) -> None:
        super().__init__(message)
        self.size = size
        self.limit = limit


@dataclass(frozen=True)
class RawImage:
    """An upload as handed over by the file picker."""

    data: bytes
    mime_type: str
    filename: str = "upload"

    @property
    def byte_length(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class NormalizedImage:
    """JPEG bytes bounded in width; MIME is always image/jpeg."""

    data: bytes
    filename: str
    width: int
    height: int

    @property
    def mime_type(self) -> str:
        return JPEG_MIME

    @property
    def byte_length(self) -> int:
        return len(self.data)


def jpeg_filename(name: str) -> str:
    """Return the basename of `name` with its extension replaced by .jpg."""
    base = os.path.basename(name.replace("\\", "/")) or "upload"
    stem, _ext = os.path.splitext(base)
    return f"{stem or base}.jpg"


def scaled_size(width: int, height: int, max_width: int) -> Tuple[int, int]:
    """Scale to `max_width` keeping aspect; round half up like a canvas would."""
    if width <= max_width:
        return width, height
    scale = max_width / width
    return max(1, int(width * scale + 0.5)), max(1, int(height * scale + 0.5))


def _pil_quality(quality: float) -> int:
    # Browser quality is (0, 1]; Pillow recommends staying at or below 95
    return max(1, min(95, int(round(quality * 100))))


def _flatten(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def encode_jpeg(img: Image.Image, *, quality: float) -> bytes:
    out = io.BytesIO()
    _flatten(img).save(out, format="JPEG", quality=_pil_quality(quality), optimize=True)
    return out.getvalue()


def _normalize_sync(raw: RawImage, max_width: int, quality: float) -> NormalizedImage:
    try:
        with Image.open(io.BytesIO(raw.data)) as img:
            # JPEGs already within bounds pass through untouched; only the
            # header has been read at this point.
            if raw.mime_type == JPEG_MIME and img.format == "JPEG" and img.width <= max_width:
                return NormalizedImage(
                    data=raw.data,
                    filename=jpeg_filename(raw.filename),
                    width=img.width,
                    height=img.height,
                )
            img.load()
            oriented = ImageOps.exif_transpose(img)
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"Could not decode image {raw.filename!r}") from exc

    width, height = scaled_size(oriented.width, oriented.height, max_width)
    if (width, height) != oriented.size:
        oriented = oriented.resize((width, height), Image.Resampling.LANCZOS)
    try:
        data = encode_jpeg(oriented, quality=quality)
    except (OSError, ValueError) as exc:
        raise ImageDecodeError(f"Could not re-encode image {raw.filename!r}") from exc
    return NormalizedImage(data=data, filename=jpeg_filename(raw.filename), width=width, height=height)


def check_raw_size(raw: RawImage, limit: int = MAX_RAW_BYTES) -> None:
    """Reject an upload before any decoding happens."""
    if raw.byte_length > limit:
        raise ImageTooLargeError(
            "Image too large. Please select a smaller image.",
            size=raw.byte_length,
            limit=limit,
        )


def check_normalized_size(image: NormalizedImage, limit: int = MAX_NORMALIZED_BYTES) -> None:
    """Reject a converted image that is still over the server's ceiling."""
    if image.byte_length > limit:
        raise ImageTooLargeError(
            f"Image must be under {limit // MIB} MB.",
            size=image.byte_length,
            limit=limit,
        )


async def normalize(
    raw: RawImage,
    *,
    max_width: int = DEFAULT_MAX_WIDTH,
    quality: float = DEFAULT_QUALITY,
    max_raw_bytes: int = MAX_RAW_BYTES,
) -> NormalizedImage:
    """
    Convert an upload into a JPEG no wider than `max_width`.

    - Inputs over `max_raw_bytes` raise ImageTooLargeError without decoding.
    - A JPEG already within `max_width` is returned unchanged.
    - Anything else is decoded, oriented, downscaled (aspect preserved) and
      re-encoded at `quality` in a worker thread.

    The caller still has to apply `check_normalized_size` to the result.
    """
    if max_width <= 0:
        raise ValueError("max_width must be > 0")
    if not 0.0 < quality <= 1.0:
        raise ValueError("quality must be in (0, 1]")
    check_raw_size(raw, max_raw_bytes)
    return await anyio.to_thread.run_sync(_normalize_sync, raw, max_width, quality)


__all__ = [
    "JPEG_MIME",
    "MAX_NORMALIZED_BYTES",
    "MAX_RAW_BYTES",
    "MIB",
    "ImageDecodeError",
    "ImageTooLargeError",
    "MediaError",
    "NormalizedImage",
    "RawImage",
    "check_normalized_size",
    "check_raw_size",
    "encode_jpeg",
    "jpeg_filename",
    "normalize",
    "scaled_size",
]
