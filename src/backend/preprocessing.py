"""Image decoding and normalization for model inference."""
import io
import logging
from typing import Tuple

import numpy as np
import torch
from PIL import Image, UnidentifiedImageError

from src.backend.errors import UnsupportedImageFormat

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> Image.Image:
    """Decode raw bytes into an RGB image.

    The format is sniffed from the content, never from a filename. Alpha is
    dropped and grayscale/palette images are expanded to three channels.

    Raises:
        UnsupportedImageFormat: If the bytes are not a decodable image
    """
    if not data:
        raise UnsupportedImageFormat(reason="empty upload")
    try:
        image = Image.open(io.BytesIO(data))
        # Image.open is lazy; force the full decode here
        image.load()
        if image.mode in WIDE_INTEGER_MODES:
            image = to_8bit(image)
        if image.mode != "RGB":
            image = image.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        raise UnsupportedImageFormat(reason=f"cannot decode image: {e}")

    return image


# Single-channel modes holding 16-bit samples (PNG 16-bit grayscale opens as one of these)
WIDE_INTEGER_MODES = ("I;16", "I;16L", "I;16B", "I;16N", "I")


def to_8bit(image: Image.Image) -> Image.Image:
    """Scale 16-bit samples down to 0-255 instead of letting convert() clip them."""
    samples = np.asarray(image).astype(np.int64)
    samples = np.clip(samples, 0, 65535) >> 8
    return Image.fromarray(samples.astype(np.uint8))


def preprocess_image(data: bytes, input_size: Tuple[int, int]) -> torch.Tensor:
    """Preprocess image bytes for model inference.

    Args:
        data: Raw image bytes
        input_size: (height, width) the model expects

    Returns:
        Float tensor of shape (1, height, width, 3) with values in [0, 1]
    """
    image = decode_image(data)

    height, width = input_size
    if image.size != (width, height):
        # PIL sizes are (width, height)
        image = image.resize((width, height), Image.Resampling.BILINEAR)

    # Convert to numpy array and normalize
    img_array = np.asarray(image, dtype=np.float32) / 255.0

    # Add batch dimension
    return torch.from_numpy(img_array).unsqueeze(0)
