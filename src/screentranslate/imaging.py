"""Image input handling for OCR/VLM providers.

Captures arrive either as PIL images or as numpy frames. Frames with four
channels are BGRA, the native layout of screen-capture buffers.
"""

import base64
import io
import tempfile
from pathlib import Path

import numpy as np
from numpy.typing import NDArray
from PIL import Image

from .errors import VLMProviderError
from .models import ImageSize

ImageInput = Image.Image | NDArray[np.uint8]

JPEG_QUALITY = 85


def bgra_to_rgb(frame: NDArray[np.uint8]) -> NDArray[np.uint8]:
    """Drop alpha and reorder B,G,R to R,G,B."""
    return np.ascontiguousarray(frame[:, :, [2, 1, 0]])


def to_pil(image: ImageInput) -> Image.Image:
    """Convert an image input to an RGB PIL image.

    Raises:
        VLMProviderError: image_encoding_failed for unsupported shapes.
    """
    if isinstance(image, Image.Image):
        return image if image.mode == "RGB" else image.convert("RGB")
    if isinstance(image, np.ndarray):
        if image.ndim == 2:
            return Image.fromarray(image.astype(np.uint8)).convert("RGB")
        if image.ndim == 3 and image.shape[2] == 4:
            return Image.fromarray(bgra_to_rgb(image.astype(np.uint8)))
        if image.ndim == 3 and image.shape[2] == 3:
            return Image.fromarray(image.astype(np.uint8))
    raise VLMProviderError.image_encoding_failed(f"Unsupported image input: {type(image).__name__}")


def image_size(image: ImageInput) -> ImageSize:
    if isinstance(image, np.ndarray):
        return ImageSize(float(image.shape[1]), float(image.shape[0]))
    return ImageSize(float(image.width), float(image.height))


def encode_jpeg(image: ImageInput, quality: int = JPEG_QUALITY) -> bytes:
    """Encode as JPEG.

    Raises:
        VLMProviderError: image_encoding_failed for empty or unencodable images.
    """
    size = image_size(image)
    if size.width == 0 or size.height == 0:
        raise VLMProviderError.image_encoding_failed("Image has zero size")
    pil_image = to_pil(image)
    buffer = io.BytesIO()
    try:
        pil_image.save(buffer, format="JPEG", quality=quality)
    except (OSError, ValueError) as e:
        raise VLMProviderError.image_encoding_failed(str(e)) from e
    return buffer.getvalue()


def encode_base64_jpeg(image: ImageInput, quality: int = JPEG_QUALITY) -> str:
    return base64.b64encode(encode_jpeg(image, quality)).decode("ascii")


def encode_base64_png(image: ImageInput) -> str:
    buffer = io.BytesIO()
    to_pil(image).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def write_temp_png(image: ImageInput) -> Path:
    """Write the image to a new temporary PNG file; the caller deletes it."""
    pil_image = to_pil(image)
    with tempfile.NamedTemporaryFile(prefix="screentranslate-", suffix=".png", delete=False) as f:
        path = Path(f.name)
    try:
        pil_image.save(path, format="PNG")
    except OSError as e:
        path.unlink(missing_ok=True)
        raise VLMProviderError.image_encoding_failed(str(e)) from e
    return path
