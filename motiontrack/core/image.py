"""
Single-channel intensity buffers and grayscale conversion.

Everything downstream of the decoder (pyramids, corner detection, optical
flow) works on a PixelBuffer: a read-only 2D float64 array of intensities.
"""

from dataclasses import dataclass

import numpy as np

from motiontrack.core.errors import InvalidImage


# ITU-R BT.601 luma weights, RGB order
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)
LUMA_WEIGHTS.setflags(write=False)


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    Immutable single-channel intensity image.

    Attributes:
        data: 2D float64 array of shape (height, width), write-protected

    Example:
        >>> buf = PixelBuffer.from_array(np.zeros((48, 64)))
        >>> buf.width, buf.height
        (64, 48)
    """
    data: np.ndarray

    def __post_init__(self):
        if self.data.ndim != 2:
            raise InvalidImage(f"Expected a 2D intensity array, got {self.data.ndim}D")
        if self.data.shape[0] == 0 or self.data.shape[1] == 0:
            raise InvalidImage("Image has zero width or height")
        self.data.setflags(write=False)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Create a buffer from any 2D array (the data is copied)."""
        return cls(np.array(array, dtype=np.float64, order="C", copy=True))

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def stride(self) -> int:
        """Row stride in samples. Always >= width."""
        return self.data.strides[0] // self.data.itemsize

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape

    def __len__(self) -> int:
        return self.data.size

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"


def to_grayscale(
    pixels: bytes | bytearray | memoryview | np.ndarray,
    width: int,
    height: int,
    channels: int | None = None,
) -> PixelBuffer:
    """
    Convert a decoded image to a single-channel PixelBuffer.

    Single-channel input is copied as is. RGB and RGBA input is reduced
    with the BT.601 luma weights (alpha ignored). Gray+alpha input keeps
    its gray channel.

    Args:
        pixels: Raw interleaved 8-bit samples, or an array of shape
            (height, width) or (height, width, channels)
        width: Declared image width
        height: Declared image height
        channels: Channel count of raw input (inferred if None)

    Returns:
        PixelBuffer with the same width and height

    Raises:
        InvalidImage: If the dimensions are zero or don't match the data
    """
    if width <= 0 or height <= 0:
        raise InvalidImage(f"Invalid image size {width}x{height}")

    area = width * height
    if isinstance(pixels, (bytes, bytearray, memoryview)):
        flat = np.frombuffer(pixels, dtype=np.uint8)
        if channels is None:
            if flat.size == 0 or flat.size % area:
                raise InvalidImage(
                    f"Buffer of {flat.size} bytes doesn't fit a {width}x{height} image"
                )
            channels = flat.size // area
        if channels <= 0 or flat.size != area * channels:
            raise InvalidImage(
                f"Buffer of {flat.size} bytes doesn't match "
                f"{width}x{height}x{channels}"
            )
        array = flat.reshape(height, width, channels)
    else:
        array = np.asarray(pixels)
        if array.ndim == 2:
            array = array[:, :, np.newaxis]
        if array.ndim != 3 or array.shape[:2] != (height, width):
            raise InvalidImage(
                f"Array of shape {array.shape} doesn't match {width}x{height}"
            )
        if channels is not None and array.shape[2] != channels:
            raise InvalidImage(
                f"Expected {channels} channels, got {array.shape[2]}"
            )

    num_channels = array.shape[2]
    if num_channels in (1, 2):
        gray = array[:, :, 0].astype(np.float64)
    elif num_channels in (3, 4):
        gray = array[:, :, :3].astype(np.float64) @ LUMA_WEIGHTS
    else:
        raise InvalidImage(f"Unsupported channel count: {num_channels}")

    return PixelBuffer(np.ascontiguousarray(gray))
