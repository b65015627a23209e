"""
Pillow-backed codec adapter.

Decodes uploaded bytes into an image, resizes it to fit a maximum width and
encodes it into one of the supported output formats.
"""
import logging
from io import BytesIO
from typing import Dict, Optional, Tuple

from PIL import Image, UnidentifiedImageError, features

from image_optimizer.errors import DecodeFailed, EncodeFailed
from image_optimizer.models import ImageMetadata, OutputFormat

# Set up logging
logger = logging.getLogger(__name__)

# Pillow format names for each encodable output format
PIL_FORMATS = {
    OutputFormat.WEBP: "WEBP",
    OutputFormat.AVIF: "AVIF",
    OutputFormat.JPEG: "JPEG",
    OutputFormat.PNG: "PNG",
}

# Multi-picture JPEGs from phone cameras re-encode as plain JPEG
PASSTHROUGH_FORMATS = {"MPO": "JPEG"}

# Modes each encoder accepts without conversion
JPEG_MODES = ("RGB", "L")
PNG_MODES = ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16")

FLATTEN_BACKGROUND = (255, 255, 255)

DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    ValueError,
    EOFError,
    SyntaxError,
)


def decode_image(data: bytes) -> Tuple[Image.Image, ImageMetadata]:
    """
    Decode raw image bytes.

    Args:
        data: Encoded image bytes

    Returns:
        Tuple of (decoded image, metadata)

    Raises:
        DecodeFailed: if the bytes are not a decodable raster image
    """
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except DECODE_ERRORS as e:
        raise DecodeFailed(f"Could not decode image: {e}") from e

    metadata = ImageMetadata(
        width=image.width,
        height=image.height,
        format=image.format,
        mode=image.mode,
    )
    logger.debug(f"Decoded {metadata.format} image {metadata.width}x{metadata.height} ({metadata.mode})")
    return image, metadata


def resize_to_fit(image: Image.Image, max_width: int) -> Image.Image:
    """
    Scale an image down so its width is at most max_width.

    The aspect ratio is preserved and images that already fit are returned
    unchanged; this never enlarges.
    """
    if image.width <= max_width:
        return image
    height = max(1, round(image.height * max_width / image.width))
    logger.debug(f"Resizing {image.width}x{image.height} -> {max_width}x{height}")
    return image.resize((max_width, height), Image.Resampling.LANCZOS)


def _has_alpha(image: Image.Image) -> bool:
    if image.mode in ("RGBA", "LA", "PA", "RGBa", "La"):
        return True
    return image.mode == "P" and "transparency" in image.info


def _prepare_mode(image: Image.Image, keep_alpha: bool, allowed: Tuple[str, ...] = ("RGB",)) -> Image.Image:
    """Convert an image into a mode the target encoder can write."""
    if _has_alpha(image):
        if keep_alpha:
            return image if image.mode == "RGBA" else image.convert("RGBA")
        rgba = image.convert("RGBA")
        flattened = Image.new("RGB", rgba.size, FLATTEN_BACKGROUND)
        flattened.paste(rgba, mask=rgba.getchannel("A"))
        return flattened
    if image.mode in allowed:
        return image
    return image.convert("RGB")


def avif_available() -> bool:
    return bool(features.check("avif"))


def supported_output_formats() -> Dict[str, bool]:
    """Report which output encoders the installed Pillow build provides."""
    return {
        OutputFormat.WEBP.value: bool(features.check("webp")),
        OutputFormat.AVIF.value: avif_available(),
        OutputFormat.JPEG.value: bool(features.check("jpg")),
        OutputFormat.PNG.value: bool(features.check("zlib")),
    }


def encode_image(
    image: Image.Image,
    output_format: OutputFormat,
    quality: int,
    source_format: Optional[str] = None
) -> Tuple[bytes, str]:
    """
    Encode an image into the requested format.

    Quality applies to webp, avif and jpeg. Pillow's PNG encoder has no quality
    setting, so for png it is accepted and ignored and the encoder runs with
    optimize=True instead. PASSTHROUGH re-encodes in source_format with the
    codec's defaults.

    Args:
        image: Decoded (and possibly resized) image
        output_format: Target format
        quality: Encoder quality (1-100)
        source_format: Pillow format name of the upload, used for PASSTHROUGH

    Returns:
        Tuple of (encoded bytes, lower-case name of the format actually written)

    Raises:
        EncodeFailed: if the encoder is unavailable or fails
    """
    if output_format == OutputFormat.PASSTHROUGH:
        if not source_format:
            raise EncodeFailed("Cannot pass image through: source format is unknown")
        pil_format = PASSTHROUGH_FORMATS.get(source_format.upper(), source_format.upper())
        prepared = image
        options = {}
    elif output_format == OutputFormat.WEBP:
        pil_format = PIL_FORMATS[output_format]
        prepared = _prepare_mode(image, keep_alpha=True)
        options = {"quality": quality, "method": 4}
    elif output_format == OutputFormat.AVIF:
        if not avif_available():
            raise EncodeFailed("AVIF encoding is not supported by the installed Pillow build")
        pil_format = PIL_FORMATS[output_format]
        prepared = _prepare_mode(image, keep_alpha=True)
        options = {"quality": quality}
    elif output_format == OutputFormat.JPEG:
        pil_format = PIL_FORMATS[output_format]
        prepared = _prepare_mode(image, keep_alpha=False, allowed=JPEG_MODES)
        options = {"quality": quality, "optimize": True}
    else:
        pil_format = PIL_FORMATS[output_format]
        prepared = image if image.mode in PNG_MODES else _prepare_mode(image, keep_alpha=True)
        options = {"optimize": True}

    buffer = BytesIO()
    try:
        prepared.save(buffer, format=pil_format, **options)
    except (OSError, ValueError, KeyError) as e:
        raise EncodeFailed(f"Could not encode image as {pil_format}: {e}") from e

    return buffer.getvalue(), pil_format.lower()
