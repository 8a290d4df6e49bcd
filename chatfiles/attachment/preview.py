"""Preview generation for image attachments.

Images are decoded with Pillow according to the format implied by their
extension, scaled down to fit the preview bounds and re-encoded. GIFs keep
their format (first frame only), everything else becomes a JPEG.
"""

from __future__ import annotations

import io
import logging
import math
import struct
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO

from PIL import Image, ImageOps

from chatfiles.errors import (
    DecodeError,
    PreviewGenerationError,
    StorageError,
    UnsupportedFormatError,
)
from chatfiles.models import Attachment

if TYPE_CHECKING:
    from chatfiles.store.store import Store

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_MAX_WIDTH = 800
DEFAULT_PREVIEW_MAX_HEIGHT = 400
DEFAULT_JPEG_QUALITY = 85

# Everything Pillow may raise while parsing broken image data
_PILLOW_ERRORS = (
    OSError,
    ValueError,
    SyntaxError,
    EOFError,
    struct.error,
    Image.DecompressionBombError,
)


class ImageFormat(Enum):
    """Codecs an original image can be decoded with."""

    JPEG = "JPEG"
    PNG = "PNG"
    GIF = "GIF"
    BMP = "BMP"
    TIFF = "TIFF"
    WEBP = "WEBP"


class PreviewFormat(Enum):
    """Codecs a preview can be encoded with."""

    JPEG = "JPEG"
    GIF = "GIF"


_EXTENSION_FORMATS: dict[str, ImageFormat] = {
    "jpg": ImageFormat.JPEG,
    "jpeg": ImageFormat.JPEG,
    "png": ImageFormat.PNG,
    "gif": ImageFormat.GIF,
    "bmp": ImageFormat.BMP,
    "tif": ImageFormat.TIFF,
    "tiff": ImageFormat.TIFF,
    "webp": ImageFormat.WEBP,
}


def format_from_extension(extension: str) -> ImageFormat:
    """Map a file extension (without the dot) to an image codec.

    Raises:
        UnsupportedFormatError: If the extension maps to no known codec.
    """
    try:
        return _EXTENSION_FORMATS[extension.lower()]
    except KeyError:
        raise UnsupportedFormatError.for_extension(extension) from None


def preview_format_for(image_format: ImageFormat) -> PreviewFormat:
    if image_format is ImageFormat.GIF:
        return PreviewFormat.GIF
    return PreviewFormat.JPEG


def preview_mimetype(preview_format: PreviewFormat) -> str:
    match preview_format:
        case PreviewFormat.JPEG:
            return "image/jpeg"
        case PreviewFormat.GIF:
            return "image/gif"


def preview_extension(preview_format: PreviewFormat) -> str:
    match preview_format:
        case PreviewFormat.JPEG:
            return "jpg"
        case PreviewFormat.GIF:
            return "gif"


def preview_size(
    width: int,
    height: int,
    max_width: int = DEFAULT_PREVIEW_MAX_WIDTH,
    max_height: int = DEFAULT_PREVIEW_MAX_HEIGHT,
) -> tuple[int, int] | None:
    """Compute preview dimensions for an image of the given size.

    Landscape images wider than ``max_width`` are scaled to that width;
    otherwise images taller than ``max_height`` are scaled to that height.
    Only one of the two rules is applied. Aspect ratio is preserved.

    Returns:
        The new (width, height), or None when the image already fits.
    """
    if width > max_width and width > height:
        return max_width, _scaled(height, max_width, width)
    if height > max_height:
        return _scaled(width, max_height, height), max_height
    return None


def _scaled(side: int, target: int, reference: int) -> int:
    return max(1, math.floor(side * target / reference + 0.5))


# Pillow resizes these modes with NEAREST whatever filter is requested
_UNFILTERED_MODES = ("1", "P", "PA")


def resize_image(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Resize with Lanczos resampling, converting palette images to RGB first."""
    if image.mode in _UNFILTERED_MODES:
        image = image.convert("RGB")
    return image.resize(size, Image.Resampling.LANCZOS)


@dataclass
class DecodedImage:
    image: Image.Image
    animated: bool = False


def _decode_generic(stream: BinaryIO) -> Image.Image:
    try:
        image = Image.open(stream)
        image.load()
    except _PILLOW_ERRORS as err:
        raise DecodeError("Could not decode original image") from err
    return image


def _decode_jpeg(stream: BinaryIO) -> Image.Image:
    try:
        image = Image.open(stream)
        transposed = ImageOps.exif_transpose(image)
        if transposed is None:
            transposed = image
        transposed.load()
        return transposed
    except _PILLOW_ERRORS as err:
        logger.warning("Could not apply EXIF orientation, decoding as is: %s", err)

    try:
        stream.seek(0)
    except (OSError, ValueError) as err:
        raise DecodeError("Could not rewind original") from err
    return _decode_generic(stream)


def _decode_gif(stream: BinaryIO) -> DecodedImage:
    try:
        image = Image.open(stream, formats=["GIF"])
        frame_count = getattr(image, "n_frames", 1)
        loop_count = image.info.get("loop", -1)
        image.seek(0)
        first_frame = image.copy()
    except _PILLOW_ERRORS as err:
        raise DecodeError("Could not decode gif config") from err

    animated = loop_count > 0 or frame_count > 1
    return DecodedImage(first_frame, animated)


def decode_image(stream: BinaryIO, image_format: ImageFormat) -> DecodedImage:
    """Decode an image, dispatching on its format.

    JPEGs are rotated according to their EXIF orientation, falling back to a
    plain decode if that fails. GIFs are scanned for animation and their first
    frame is returned. Anything else is decoded as is.

    Raises:
        DecodeError: If the image data cannot be decoded.
    """
    if image_format is ImageFormat.GIF:
        return _decode_gif(stream)
    if image_format is ImageFormat.JPEG:
        return DecodedImage(_decode_jpeg(stream))
    return DecodedImage(_decode_generic(stream))


def encode_image(image: Image.Image, preview_format: PreviewFormat, jpeg_quality: int) -> bytes:
    buf = io.BytesIO()
    try:
        if preview_format is PreviewFormat.JPEG:
            if image.mode not in ("RGB", "L", "CMYK"):
                image = image.convert("RGB")
            image.save(buf, format="JPEG", quality=jpeg_quality)
        else:
            image.save(buf, format="GIF")
    except _PILLOW_ERRORS as err:
        raise PreviewGenerationError(f"Could not encode {preview_format.value} preview") from err
    return buf.getvalue()


class PreviewStatus(Enum):
    GENERATED = "generated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PreviewOutcome:
    """Result of a preview generation attempt.

    Attributes:
        status: Whether a preview was generated, skipped or failed.
        url: Store path of the preview, set only when generated.
        error: Diagnostic for a failed attempt.
    """

    status: PreviewStatus
    url: str = ""
    error: PreviewGenerationError | None = None

    @property
    def ok(self) -> bool:
        return self.status is not PreviewStatus.FAILED

    @classmethod
    def generated(cls, url: str) -> PreviewOutcome:
        return cls(PreviewStatus.GENERATED, url=url)

    @classmethod
    def skipped(cls) -> PreviewOutcome:
        return cls(PreviewStatus.SKIPPED)

    @classmethod
    def failed(cls, error: PreviewGenerationError) -> PreviewOutcome:
        return cls(PreviewStatus.FAILED, error=error)


class PreviewGenerator:
    """Produces and stores previews for image attachments."""

    def __init__(
        self,
        store: Store,
        max_width: int = DEFAULT_PREVIEW_MAX_WIDTH,
        max_height: int = DEFAULT_PREVIEW_MAX_HEIGHT,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
    ) -> None:
        self.store = store
        self.max_width = max_width
        self.max_height = max_height
        self.jpeg_quality = jpeg_quality

    def generate(self, stream: BinaryIO, attachment: Attachment) -> PreviewOutcome:
        """Generate a preview for the attachment and save it to the store.

        Fills in the original's dimensions and animation flag, the preview
        metadata and ``attachment.preview_url``. Nothing is raised: failures
        are reported through the returned outcome.
        """
        if not attachment.is_image:
            logger.debug(
                "No preview for '%s' (mimetype: %s)",
                attachment.name,
                attachment.meta.original.mimetype,
            )
            return PreviewOutcome.skipped()

        try:
            url = self._generate(stream, attachment)
        except PreviewGenerationError as err:
            attachment.meta.preview = None
            attachment.preview_url = ""
            return PreviewOutcome.failed(err)

        return PreviewOutcome.generated(url)

    def _generate(self, stream: BinaryIO, attachment: Attachment) -> str:
        try:
            stream.seek(0)
        except (OSError, ValueError) as err:
            raise PreviewGenerationError("Could not rewind original") from err

        image_format = format_from_extension(attachment.meta.original.extension)
        preview_fmt = preview_format_for(image_format)

        decoded = decode_image(stream, image_format)
        preview = decoded.image

        width, height = preview.size
        attachment.meta.set_original_image_meta(width, height, decoded.animated)

        new_size = preview_size(width, height, self.max_width, self.max_height)
        if new_size is not None:
            try:
                preview = resize_image(preview, new_size)
            except _PILLOW_ERRORS as err:
                raise PreviewGenerationError("Could not resize preview") from err

        width, height = preview.size
        logger.info("Generated preview %s (%dx%dpx)", preview_fmt.value, width, height)

        content = encode_image(preview, preview_fmt, self.jpeg_quality)

        meta = attachment.meta.set_preview_image_meta(width, height, False)
        meta.size = len(content)
        meta.mimetype = preview_mimetype(preview_fmt)
        meta.extension = preview_extension(preview_fmt)

        url = self.store.preview_path(attachment.id, meta.extension)
        try:
            self.store.save(url, io.BytesIO(content))
        except StorageError as err:
            raise PreviewGenerationError(f"Could not save preview to '{url}'") from err

        attachment.preview_url = url
        return url
