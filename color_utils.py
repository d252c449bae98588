"""
Color Utilities Module
HEX/RGB/HSL conversions and color comparison helpers
"""

import re
import math
import colorsys
from typing import NamedTuple, Sequence, Tuple

import numpy as np

from errors import InvalidFormat

HEX_PATTERN = re.compile(r'#[0-9A-Fa-f]{6}')

GRAY_CHANNEL_SPREAD = 20
NEAR_BLACK_LIMIT = 30
NEAR_WHITE_LIMIT = 240


class RGB(NamedTuple):
    r: int
    g: int
    b: int


class HSL(NamedTuple):
    h: float
    s: float
    l: float


def hex_to_rgb(hex_color: str) -> RGB:
    """Convert '#RRGGBB' to an RGB tuple

    Raises:
        InvalidFormat: if the value is not '#' followed by six hex digits
    """
    if not isinstance(hex_color, str) or not HEX_PATTERN.fullmatch(hex_color):
        raise InvalidFormat(f"Invalid hex color: {hex_color!r}")
    value = int(hex_color[1:], 16)
    return RGB((value >> 16) & 255, (value >> 8) & 255, value & 255)


def rgb_to_hex(rgb: Sequence[int]) -> str:
    """Convert RGB tuple to uppercase HEX"""
    r, g, b = (int(c) for c in rgb[:3])
    return '#{:02X}{:02X}{:02X}'.format(r, g, b)


def rgb_to_hsl(rgb: Sequence[int]) -> HSL:
    """Convert RGB (0-255) to HSL with every component in [0, 1]"""
    r, g, b = rgb[:3]
    # colorsys returns achromatic colors as h = s = 0
    h, l, s = colorsys.rgb_to_hls(r / 255, g / 255, b / 255)
    return HSL(h, s, l)


def rgb_to_hsl_array(rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Convert an (N, 3) RGB array (0-255) to HSL component arrays

    Matches rgb_to_hsl element-wise.

    Returns:
        (h, s, l) float arrays of length N
    """
    rgb = np.asarray(rgb, dtype=np.float64) / 255.0
    r, g, b = rgb[:, 0], rgb[:, 1], rgb[:, 2]

    maxc = rgb.max(axis=1)
    minc = rgb.min(axis=1)
    delta = maxc - minc
    l = (maxc + minc) / 2.0

    chromatic = delta > 0
    safe_delta = np.where(chromatic, delta, 1.0)

    s_denominator = np.where(l <= 0.5, maxc + minc, 2.0 - maxc - minc)
    s = np.where(chromatic, delta / np.where(chromatic, s_denominator, 1.0), 0.0)

    # Red wins ties, then green
    h = np.where(
        maxc == r,
        (g - b) / safe_delta,
        np.where(maxc == g, 2.0 + (b - r) / safe_delta, 4.0 + (r - g) / safe_delta),
    )
    h = np.where(chromatic, (h / 6.0) % 1.0, 0.0)
    return h, s, l


def color_distance(a: Sequence[int], b: Sequence[int]) -> float:
    """Euclidean distance between two colors in RGB space"""
    return math.sqrt(sum((int(x) - int(y)) ** 2 for x, y in zip(a[:3], b[:3])))


def is_extreme_gray_or_white(rgb: Sequence[int]) -> bool:
    """True for near-black and near-white grays that say nothing about the background"""
    r, g, b = (int(c) for c in rgb[:3])
    is_grayscale = (abs(r - g) < GRAY_CHANNEL_SPREAD
                    and abs(g - b) < GRAY_CHANNEL_SPREAD
                    and abs(r - b) < GRAY_CHANNEL_SPREAD)
    if not is_grayscale:
        return False
    near_black = r < NEAR_BLACK_LIMIT and g < NEAR_BLACK_LIMIT and b < NEAR_BLACK_LIMIT
    near_white = r > NEAR_WHITE_LIMIT and g > NEAR_WHITE_LIMIT and b > NEAR_WHITE_LIMIT
    return near_black or near_white


def extreme_gray_or_white_mask(rgb: np.ndarray) -> np.ndarray:
    """Vectorized is_extreme_gray_or_white for an (N, 3) array"""
    rgb = np.asarray(rgb, dtype=np.int16)
    r, g, b = rgb[:, 0], rgb[:, 1], rgb[:, 2]
    is_grayscale = ((np.abs(r - g) < GRAY_CHANNEL_SPREAD)
                    & (np.abs(g - b) < GRAY_CHANNEL_SPREAD)
                    & (np.abs(r - b) < GRAY_CHANNEL_SPREAD))
    near_black = (rgb < NEAR_BLACK_LIMIT).all(axis=1)
    near_white = (rgb > NEAR_WHITE_LIMIT).all(axis=1)
    return is_grayscale & (near_black | near_white)
