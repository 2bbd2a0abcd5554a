from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Sequence, Tuple, Union

import anyio
from PIL import Image, ImageDraw

from .images import JPEG_MIME, NormalizedImage, encode_jpeg


SIGNATURE_QUALITY = 0.85

Point = Tuple[float, float]
Stroke = Sequence[Point]


@dataclass(frozen=True)
class SignatureBitmap:
    """
    A handwritten signature captured as pointer strokes.

    Each stroke is a polyline of (x, y) canvas coordinates. The capture is
    rasterized black-on-white, which keeps a lossy JPEG small for a
    single-colour line drawing.
    """

    strokes: Tuple[Tuple[Point, ...], ...] = field(default_factory=tuple)
    width: int = 500
    height: int = 200
    pen_width: int = 3

    @classmethod
    def from_strokes(
        cls,
        strokes: Sequence[Stroke],
        *,
        width: int = 500,
        height: int = 200,
        pen_width: int = 3,
    ) -> "SignatureBitmap":
        frozen = tuple(tuple((float(x), float(y)) for x, y in s) for s in strokes)
        return cls(strokes=frozen, width=width, height=height, pen_width=pen_width)

    def is_empty(self) -> bool:
        return not any(len(s) > 0 for s in self.strokes)

    def rasterize(self) -> Image.Image:
        img = Image.new("RGB", (self.width, self.height), (255, 255, 255))
        draw = ImageDraw.Draw(img)
        r = self.pen_width / 2.0
        for stroke in self.strokes:
            if not stroke:
                continue
            if len(stroke) > 1:
                draw.line(list(stroke), fill=(0, 0, 0), width=self.pen_width, joint="curve")
            # Round caps, and a dot for single-point taps
            for x, y in (stroke[0], stroke[-1]):
                draw.ellipse((x - r, y - r, x + r, y + r), fill=(0, 0, 0))
        return img

    def to_jpeg(self, *, quality: float = SIGNATURE_QUALITY) -> bytes:
        return encode_jpeg(self.rasterize(), quality=quality)


def _b64(data: bytes, *, data_uri: bool) -> str:
    text = base64.b64encode(data).decode("ascii")
    return f"data:{JPEG_MIME};base64,{text}" if data_uri else text


def _encode_sync(data: Union[NormalizedImage, SignatureBitmap], data_uri: bool) -> str:
    if isinstance(data, SignatureBitmap):
        return _b64(data.to_jpeg(), data_uri=data_uri)
    return _b64(data.data, data_uri=data_uri)


async def to_base64(data: Union[NormalizedImage, SignatureBitmap], *, data_uri: bool = True) -> str:
    """
    Encode a normalized image or a signature capture for a JSON field.

    Returns a `data:image/jpeg;base64,` URI by default, or bare base64 when
    `data_uri` is False. The base64 part decodes to exactly the JPEG bytes.
    """
    if not isinstance(data, (NormalizedImage, SignatureBitmap)):
        raise TypeError(f"Cannot encode {type(data).__name__} as media")
    return await anyio.to_thread.run_sync(_encode_sync, data, data_uri)


def strip_data_uri(encoded: str) -> str:
    """Return the bare base64 part of an encoded media string."""
    head, sep, tail = encoded.partition(";base64,")
    return tail if sep and head.startswith("data:") else encoded


__all__ = [
    "SIGNATURE_QUALITY",
    "SignatureBitmap",
    "strip_data_uri",
    "to_base64",
]
