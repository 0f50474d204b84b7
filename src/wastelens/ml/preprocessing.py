"""Image preprocessing pipeline.

Handles decoding of uploaded bytes (with EXIF orientation and size limits),
pixel format normalization, bilinear resizing, and conversion to the numpy
tensor a classification model consumes.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, TypeAlias

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from wastelens.ml.errors import ImageDecodeError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    RawImage: TypeAlias = Image.Image | NDArray[np.uint8]

CANONICAL_MODE = "RGBA"


def decode_image(image_bytes: bytes, max_pixels: int) -> Image.Image:
    """Decode raw image bytes into an upright Pillow image.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        max_pixels: Largest accepted width * height.

    Returns:
        The decoded image with EXIF orientation applied.

    Raises:
        ImageDecodeError: If the image cannot be decoded or exceeds ``max_pixels``.
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))
        width, height = image.size
        if width * height > max_pixels:
            raise ImageDecodeError(f"Image has {width * height} pixels, limit is {max_pixels}")
        image.load()
        return ImageOps.exif_transpose(image)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ImageDecodeError(f"Could not decode image: {exc}") from exc


def to_canonical(image: RawImage) -> Image.Image:
    """Return a copy of ``image`` in the canonical 4-channel RGBA format.

    Accepts Pillow images in any mode and uint8 arrays shaped HxW, HxWx3 or
    HxWx4. The caller's image is never modified.
    """
    if isinstance(image, np.ndarray):
        image = _from_array(image)
    # convert() returns a new image even when the mode already matches
    return image.convert(CANONICAL_MODE)


def _from_array(array: NDArray[np.uint8]) -> Image.Image:
    if array.dtype != np.uint8:
        raise ValueError(f"Expected a uint8 image array, got {array.dtype}")
    if array.ndim == 3 and array.shape[2] == 1:
        array = array[:, :, 0]
    if array.ndim == 2 or (array.ndim == 3 and array.shape[2] in (3, 4)):
        return Image.fromarray(np.ascontiguousarray(array))
    raise ValueError(f"Unsupported image array shape {array.shape}")


def resize(image: Image.Image, size: int) -> Image.Image:
    """Stretch ``image`` to ``size`` x ``size`` with bilinear interpolation."""
    return image.resize((size, size), Image.Resampling.BILINEAR)


def to_tensor(image: Image.Image, *, quantized: bool, channels_first: bool = False) -> NDArray[np.float32 | np.uint8]:
    """Convert an RGBA image into a batch-of-one model input.

    Alpha is dropped. Float models get values scaled into [0, 1]; quantized
    models get the raw uint8 values.
    """
    pixels = np.asarray(image)[:, :, :3]
    tensor = pixels.astype(np.uint8) if quantized else pixels.astype(np.float32) / 255.0
    if channels_first:
        tensor = tensor.transpose(2, 0, 1)
    return np.ascontiguousarray(tensor[np.newaxis, ...])


def prepare_tensor(
    image: RawImage,
    input_size: int,
    *,
    quantized: bool,
    channels_first: bool = False,
) -> NDArray[np.float32 | np.uint8]:
    """Run the full pipeline: canonical format, resize, normalize."""
    canonical = to_canonical(image)
    resized = resize(canonical, input_size)
    return to_tensor(resized, quantized=quantized, channels_first=channels_first)
