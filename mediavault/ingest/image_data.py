from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from mediavault.core.errors import InvalidImage
from mediavault.core.logging import get_logger

from .quantize import RGB, Quantizer, median_cut

THUMB_WIDTH = 500
THUMB_QUALITY = 80
PALETTE_SIZE = 10

# One sample per SAMPLE_INTERVAL pixels of the RGBA buffer.
SAMPLE_INTERVAL = 15
MIN_ALPHA = 125
NEAR_WHITE = 250

logger = get_logger(component="image_data")


@dataclass(slots=True)
class ImageDerivedData:
    width: int
    height: int
    dominant_color: Optional[str]
    thumbnail: Optional[bytes]


def derive_image_data(
    buffer: bytes,
    *,
    thumbnail_width: int = THUMB_WIDTH,
    thumbnail_quality: int = THUMB_QUALITY,
    palette_size: int = PALETTE_SIZE,
    quantizer: Quantizer = median_cut,
) -> ImageDerivedData:
    """Decode ``buffer`` and derive dimensions, dominant color and thumbnail.

    Raises ``InvalidImage`` when the buffer cannot be decoded. A failure to
    compute the dominant color yields ``None`` instead.
    """
    image = decode_image(buffer)
    with image:
        width, height = image.size
        color = dominant_color(image, palette_size=palette_size, quantizer=quantizer)
        thumbnail = None
        if needs_thumbnail(image, thumbnail_width):
            thumbnail = render_thumbnail(image, width=thumbnail_width, quality=thumbnail_quality)
    return ImageDerivedData(width=width, height=height, dominant_color=color, thumbnail=thumbnail)


def decode_image(buffer: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(buffer))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise InvalidImage(f"Unable to decode image: {exc}") from exc
    return image


def dominant_color(
    image: Image.Image,
    *,
    palette_size: int = PALETTE_SIZE,
    quantizer: Quantizer = median_cut,
) -> Optional[str]:
    try:
        samples = sample_pixels(image)
        palette = quantizer(samples, palette_size)
        return to_hex(palette[0])
    except Exception as exc:
        logger.warning("dominant_color_failed", error=str(exc), error_type=type(exc).__name__)
        return None


def sample_pixels(image: Image.Image) -> np.ndarray:
    """Return the opaque, non-white RGB samples of the first frame."""
    rgba = np.asarray(image.convert("RGBA"), dtype=np.uint8).reshape(-1, 4)[::SAMPLE_INTERVAL]
    rgb = rgba[:, :3]
    keep = (rgba[:, 3] > MIN_ALPHA) & ~(rgb > NEAR_WHITE).all(axis=1)
    return rgb[keep]


def to_hex(color: RGB) -> str:
    return "#" + "".join(f"{channel:02x}" for channel in color)


def needs_thumbnail(image: Image.Image, thumbnail_width: int = THUMB_WIDTH) -> bool:
    """GIFs, animations and anything wider than the thumbnail get a static preview."""
    if image.format == "GIF" or getattr(image, "is_animated", False):
        return True
    return image.width > thumbnail_width


def render_thumbnail(image: Image.Image, *, width: int = THUMB_WIDTH, quality: int = THUMB_QUALITY) -> bytes:
    target_width = min(width, image.width)
    target_height = max(1, round(image.height * target_width / image.width))

    rgba = image.convert("RGBA")
    frame = Image.new("RGB", rgba.size, (255, 255, 255))
    frame.paste(rgba, mask=rgba.getchannel("A"))
    resized = frame.resize((target_width, target_height), Image.Resampling.LANCZOS)

    out = BytesIO()
    resized.save(out, format="JPEG", quality=quality, progressive=False)
    return out.getvalue()


__all__ = [
    "ImageDerivedData",
    "derive_image_data",
    "decode_image",
    "dominant_color",
    "sample_pixels",
    "to_hex",
    "needs_thumbnail",
    "render_thumbnail",
]
