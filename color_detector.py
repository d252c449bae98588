"""
Dominant Color Detector Module
Finds the most common background color outside the selection polygon
"""

import logging
import warnings
from typing import NamedTuple, Optional

import numpy as np

from color_utils import extreme_gray_or_white_mask, hex_to_rgb, rgb_to_hex
from errors import NoRelevantColor
from pixel_buffer import to_pixel_array
from polygon_manager import contains_points, is_complete

SAMPLE_LIMIT = 100000
BUCKET_SIZE = 32
FALLBACK_COLOR = '#FF0000'
TOP_BUCKETS_LOGGED = 5


class DetectionResult(NamedTuple):
    color: str
    warning: Optional[NoRelevantColor] = None
    sampled: int = 0

    @property
    def rgb(self):
        return hex_to_rgb(self.color)


class DominantColorDetector:
    """Bucket sampled pixels by color and pick the most frequent bucket"""

    def __init__(self, sample_limit=SAMPLE_LIMIT, bucket_size=BUCKET_SIZE,
                 fallback_color=FALLBACK_COLOR, debug_mode=False):
        self.sample_limit = sample_limit
        self.bucket_size = bucket_size
        self.fallback_color = fallback_color
        self.debug_mode = debug_mode

    def bucket_colors(self, rgb):
        """Quantize an (N, 3) color array to the centers of their buckets"""
        rgb = np.asarray(rgb, dtype=np.int64)
        return (rgb // self.bucket_size) * self.bucket_size + self.bucket_size // 2

    def sampling_step(self, width, height):
        """Stride that keeps the number of samples near sample_limit"""
        return max(1, (width * height) // self.sample_limit)

    def detect_dominant_color(self, buffer, width, height, polygon=None) -> DetectionResult:
        """
        Detect the dominant color outside the polygon

        Transparent pixels, pixels inside a complete polygon and near-black
        or near-white grays are ignored.

        Args:
            buffer: Flat RGBA buffer
            width: Image width in pixels
            height: Image height in pixels
            polygon: Selection polygon (ignored with fewer than 3 points)

        Returns:
            DetectionResult; falls back to fallback_color with a
            NoRelevantColor warning when no pixel qualifies
        """
        data = to_pixel_array(buffer, width, height)
        step = self.sampling_step(width, height)

        indices = np.arange(0, width * height, step)
        pixels = data.reshape(-1, 4)[indices]

        keep = pixels[:, 3] != 0
        if is_complete(polygon):
            keep &= ~contains_points(polygon, indices % width, indices // width)
        keep &= ~extreme_gray_or_white_mask(pixels[:, :3])

        rgb = pixels[keep, :3].astype(np.int64)
        sampled = len(rgb)
        if sampled == 0:
            warning = NoRelevantColor("No relevant colors found outside the polygon")
            logging.warning(f"{warning} - falling back to {self.fallback_color}")
            return DetectionResult(self.fallback_color, warning, 0)

        buckets = self.bucket_colors(rgb)
        keys = (buckets[:, 0] << 16) | (buckets[:, 1] << 8) | buckets[:, 2]

        unique_keys, first_seen, counts = np.unique(keys, return_index=True, return_counts=True)
        # Highest count first, earliest bucket in raster order wins ties
        order = np.lexsort((first_seen, -counts))

        dominant = self._key_to_hex(unique_keys[order[0]])

        if self.debug_mode:
            logging.info(f"Analyzed a total of {sampled} pixels")
            logging.info(f"Top {TOP_BUCKETS_LOGGED} dominant color ranges "
                        f"(of {len(unique_keys)} detected ranges):")
            for rank, idx in enumerate(order[:TOP_BUCKETS_LOGGED], 1):
                percentage = counts[idx] / sampled * 100
                logging.info(f"{rank}. {self._key_to_hex(unique_keys[idx])} "
                            f"({counts[idx]} pixels, {percentage:.2f}%)")

        return DetectionResult(dominant, None, sampled)

    @staticmethod
    def _key_to_hex(key):
        key = int(key)
        return rgb_to_hex(((key >> 16) & 255, (key >> 8) & 255, key & 255))


def detect_dominant_color(buffer, width, height, polygon=None, warn=False) -> DetectionResult:
    """
    Module level shortcut using the default detector settings

    With warn=True a NoRelevantColor result is also issued through the
    warnings module.
    """
    result = DominantColorDetector().detect_dominant_color(buffer, width, height, polygon)
    if warn and result.warning is not None:
        warnings.warn(result.warning, stacklevel=2)
    return result
