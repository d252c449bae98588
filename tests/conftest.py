import math

import numpy as np
import pytest

from color_utils import hex_to_rgb, rgb_to_hsl
from polygon_manager import contains


def make_buffer(width, height, color=(0, 0, 0, 255)):
    """Flat RGBA buffer filled with one color"""
    pixel = list(color) + [255] * (4 - len(color))
    return np.tile(np.array(pixel, dtype=np.uint8), width * height)


def set_pixel(buffer, width, x, y, color):
    i = (y * width + x) * 4
    buffer[i:i + len(color)] = color


def get_pixel(buffer, width, x, y):
    i = (y * width + x) * 4
    return tuple(int(c) for c in buffer[i:i + 4])


def reference_recolor(buffer, width, height, polygon, source_hex, target_hex, tolerance):
    """Pixel by pixel recolor straight from the blend formula"""
    out = np.array(buffer, dtype=np.uint8).copy()
    source = hex_to_rgb(source_hex)
    target = hex_to_rgb(target_hex)
    source_hsl = rgb_to_hsl(source)
    max_diff = tolerance * 1.5

    for k in range(width * height):
        x, y = k % width, k // width
        if contains(polygon, x, y):
            continue
        pixel = [int(c) for c in out[k * 4:k * 4 + 3]]
        diff = math.sqrt(sum((p - s) ** 2 for p, s in zip(pixel, source)))
        if diff > max_diff * 1.2:
            continue
        hsl = rgb_to_hsl(pixel)
        gap = abs(hsl.h - source_hsl.h)
        similar = min(gap, 1 - gap) < 0.08 and abs(hsl.s - source_hsl.s) < 0.3
        if not (diff <= max_diff or similar):
            continue
        if max_diff == 0:
            blend = 1.0
        elif similar:
            blend = (1 - diff / (max_diff * 1.5)) ** 0.8
        else:
            blend = (1 - diff / max_diff) ** 0.7
        for c in range(3):
            value = math.floor(pixel[c] + blend * 1.2 * (target[c] - pixel[c]) + 0.5)
            out[k * 4 + c] = min(255, max(0, value))
    return out


@pytest.fixture
def mixed_buffer():
    """8x6 image: reds near #FF0000, a blue column, grays and a translucent pixel"""
    width, height = 8, 6
    buffer = make_buffer(width, height, (255, 0, 0, 255))
    for y in range(height):
        set_pixel(buffer, width, 7, y, (0, 0, 255, 255))
    set_pixel(buffer, width, 1, 1, (230, 20, 20, 255))
    set_pixel(buffer, width, 2, 1, (200, 40, 40, 255))
    set_pixel(buffer, width, 3, 1, (128, 128, 128, 255))
    set_pixel(buffer, width, 4, 1, (250, 10, 30, 128))
    set_pixel(buffer, width, 5, 2, (180, 90, 60, 255))
    return buffer, width, height
