from __future__ import annotations

import base64
import io
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps

from pixeldiff.image_diff.errors import DecodeFailure
from pixeldiff.image_diff.types import PixelBuffer

ImageSource = bytes | str | Path | Image.Image

# Integer modes carrying more than 8 bits per sample.
WIDE_INTEGER_MODES = frozenset({"I", "I;16", "I;16L", "I;16B", "I;16N"})


def _wide_to_rgba(img: Image.Image) -> np.ndarray:
    samples = np.clip(np.asarray(img).astype(np.int64), 0, 0xFFFF)
    gray = np.right_shift(samples, 8).astype(np.uint8)
    pixels = np.empty(gray.shape + (4,), dtype=np.uint8)
    pixels[..., :3] = gray[..., np.newaxis]
    pixels[..., 3] = 255
    return pixels


def _buffer_from_image(img: Image.Image) -> PixelBuffer:
    if img.mode in WIDE_INTEGER_MODES:
        return PixelBuffer(pixels=_wide_to_rgba(img))

    rgba = img if img.mode == "RGBA" else img.convert("RGBA")
    try:
        return PixelBuffer(pixels=np.array(rgba, dtype=np.uint8))
    finally:
        if rgba is not img:
            rgba.close()


def _decode_oriented(img: Image.Image) -> PixelBuffer:
    oriented = ImageOps.exif_transpose(img)
    try:
        return _buffer_from_image(oriented)
    finally:
        if oriented is not img:
            oriented.close()


def decode_image(source: ImageSource) -> PixelBuffer:
    if isinstance(source, Image.Image):
        return _decode_oriented(source)

    try:
        img = Image.open(io.BytesIO(source) if isinstance(source, bytes) else source)
        with img:
            img.load()
            return _decode_oriented(img)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeFailure(f"could not decode image: {e}") from e


def to_image(buffer: PixelBuffer) -> Image.Image:
    return Image.fromarray(np.ascontiguousarray(buffer.pixels))


def encode_png(buffer: PixelBuffer) -> bytes:
    buf = io.BytesIO()
    with to_image(buffer) as img:
        img.save(buf, format="PNG")
    return buf.getvalue()


def encode_png_base64(buffer: PixelBuffer) -> str:
    return base64.b64encode(encode_png(buffer)).decode("ascii")
