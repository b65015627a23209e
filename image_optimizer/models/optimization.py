"""
Models describing a single optimization: the uploaded image, the validated
transform parameters and the immutable result of the transform.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from image_optimizer.errors import InvalidParameter


class OutputFormat(str, Enum):
    """Target encodings, plus pass-through for unrecognized format names"""
    WEBP = "webp"
    AVIF = "avif"
    JPEG = "jpeg"
    PNG = "png"
    PASSTHROUGH = "passthrough"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OutputFormat":
        """
        Map a requested format name onto an output format.

        ``jpg`` is accepted as an alias of ``jpeg``. Names that are not a known
        encoding fall back to PASSTHROUGH, which re-encodes the image in the
        format it was uploaded in.
        """
        name = (value or "").strip().lower()
        if name == "jpg":
            return cls.JPEG
        if name in (cls.WEBP.value, cls.AVIF.value, cls.JPEG.value, cls.PNG.value):
            return cls(name)
        return cls.PASSTHROUGH


class ResponseMode(str, Enum):
    BINARY = "binary"
    URL = "url"


class InboundImage(BaseModel):
    """Uploaded image bytes together with what the client declared about them"""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., repr=False)
    size: int = Field(..., description="Size of the upload in bytes")
    content_type: str = Field(..., description="MIME type declared for the upload")
    filename: Optional[str] = Field(None, description="Client-side file name")


class TransformRequest(BaseModel):
    """Validated optimization parameters"""
    model_config = ConfigDict(frozen=True)

    quality: int = Field(75, ge=1, le=100, description="Encoder quality (1-100)")
    format: OutputFormat = Field(OutputFormat.WEBP, description="Target format")
    max_width: int = Field(2000, gt=0, description="Maximum output width in pixels")
    response_mode: ResponseMode = Field(ResponseMode.BINARY, description="binary or url")

    @classmethod
    def from_query(
        cls,
        quality: Optional[str] = None,
        format: Optional[str] = None,
        max_width: Optional[str] = None,
        response_mode: Optional[str] = None,
        default_quality: int = 75,
        default_format: str = "webp",
        default_max_width: int = 2000,
    ) -> "TransformRequest":
        """
        Build a request from raw query-string values.

        Missing or empty values take the configured defaults; anything present
        must be valid.

        Raises:
            InvalidParameter: if a value cannot be parsed or is out of range
        """
        mode = (response_mode or "").strip().lower() or ResponseMode.BINARY.value
        if mode not in (ResponseMode.BINARY.value, ResponseMode.URL.value):
            raise InvalidParameter(f"return must be 'binary' or 'url', got '{response_mode}'")

        try:
            return cls(
                quality=_parse_int("quality", quality, default_quality),
                format=OutputFormat.parse(format if format and format.strip() else default_format),
                max_width=_parse_int("maxWidth", max_width, default_max_width),
                response_mode=ResponseMode(mode),
            )
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise InvalidParameter(problems) from e


def _parse_int(name: str, raw: Optional[str], default: int) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise InvalidParameter(f"{name} must be an integer, got '{raw}'")


class ImageMetadata(BaseModel):
    """Properties discovered when decoding the uploaded image"""
    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    format: Optional[str] = Field(None, description="Source format as reported by the decoder")
    mode: str = Field("RGB", description="Pixel mode of the decoded image")


class OptimizationResult(BaseModel):
    """Outcome of one transform; created once and never modified"""
    model_config = ConfigDict(frozen=True)

    original_size: int = Field(..., description="Size of the uploaded image in bytes")
    optimized_size: int = Field(..., description="Size of the encoded output in bytes")
    savings_percent: float = Field(..., description="(original - optimized) / original * 100")
    width: int = Field(..., description="Output width in pixels")
    height: int = Field(..., description="Output height in pixels")
    format: str = Field(..., description="Format the output was actually encoded in")
    resized: bool = False
    processing_time: float = Field(0.0, description="Time spent in the codec, in seconds")
    output_buffer: bytes = Field(..., repr=False)

    @property
    def media_type(self) -> str:
        return f"image/{self.format}"
