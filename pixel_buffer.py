"""
Pixel Buffer Module
Flat RGBA buffers and their conversion to and from PIL images
"""

import numpy as np
from PIL import Image

CHANNELS = 4


def to_pixel_array(buffer, width, height, copy=False):
    """
    Normalize a caller buffer into a flat uint8 RGBA array

    Args:
        buffer: bytes, bytearray, memoryview or numpy array of RGBA samples
        width: Image width in pixels
        height: Image height in pixels
        copy: Always return a new array instead of a view where possible

    Returns:
        1-D uint8 numpy array of length width * height * 4
    """
    if width < 0 or height < 0:
        raise ValueError(f"Invalid dimensions: {width}x{height}")

    if isinstance(buffer, np.ndarray):
        data = buffer.astype(np.uint8, copy=False).reshape(-1)
    else:
        data = np.frombuffer(buffer, dtype=np.uint8)

    expected = width * height * CHANNELS
    if data.size != expected:
        raise ValueError(
            f"Buffer has {data.size} samples, expected {expected} for {width}x{height} RGBA"
        )
    return data.copy() if copy else data


def from_image(img):
    """
    Read a PIL image as a flat RGBA buffer

    Returns:
        (buffer, width, height)
    """
    rgba = img.convert('RGBA')
    width, height = rgba.size
    data = np.array(rgba, dtype=np.uint8).reshape(-1)
    return data, width, height


def to_image(buffer, width, height):
    """Wrap a flat RGBA buffer as a PIL image"""
    data = to_pixel_array(buffer, width, height)
    # (h, w, 4) uint8 arrays are read as RGBA
    return Image.fromarray(data.reshape(height, width, CHANNELS))


def load_image(image_path):
    """Open an image file and return (buffer, width, height)"""
    with Image.open(image_path) as img:
        return from_image(img)
