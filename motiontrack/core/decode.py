"""
Decoding of compressed image bytes (PNG, JPEG, ...) into PixelBuffers.
"""

import cv2
import numpy as np

from motiontrack.core.errors import InvalidImage, UnreadableImage
from motiontrack.core.image import PixelBuffer, to_grayscale


def decode_pixels(data: bytes) -> np.ndarray:
    """
    Decode image bytes to an array in RGB(A) or gray channel order.

    Raises:
        UnreadableImage: If the bytes are empty or not a supported format
    """
    if not data:
        raise UnreadableImage("Empty image data")

    encoded = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(encoded, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise UnreadableImage(f"Could not decode {len(data)} bytes of image data")

    # 16-bit PNGs and the like are scaled down to 8 bits
    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)
    elif image.dtype != np.uint8:
        image = np.clip(image * 255.0, 0, 255).astype(np.uint8)

    if image.ndim == 3 and image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    elif image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    return image


def decode_image(data: bytes, width: int, height: int) -> PixelBuffer:
    """
    Decode image bytes into a grayscale PixelBuffer.

    Args:
        data: Compressed image bytes
        width: Width the caller declared for the image
        height: Height the caller declared for the image

    Returns:
        Grayscale PixelBuffer of size width x height

    Raises:
        UnreadableImage: If the bytes can't be decoded
        InvalidImage: If the decoded size differs from the declared size
    """
    image = decode_pixels(data)
    actual_h, actual_w = image.shape[:2]
    if (actual_w, actual_h) != (width, height):
        raise InvalidImage(
            f"Decoded image is {actual_w}x{actual_h}, expected {width}x{height}"
        )
    return to_grayscale(image, width, height)
