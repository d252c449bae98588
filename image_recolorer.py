"""
Image Recoloring Module
Replaces a source color outside the selection polygon with a target color,
processing the buffer in chunks so callers stay responsive
"""

import logging
import threading
from typing import NamedTuple

import numpy as np

from color_utils import hex_to_rgb, rgb_to_hsl, rgb_to_hsl_array
from errors import ProcessingInterrupted
from pixel_buffer import CHANNELS, to_pixel_array
from polygon_manager import contains_points, is_complete

CHUNK_SIZE = 100000  # pixels per chunk
UPDATE_FREQUENCY = 5  # chunks between intermediate snapshots

TOLERANCE_SCALE = 1.5
EARLY_REJECT_FACTOR = 1.2
HUE_THRESHOLD = 0.08
SATURATION_THRESHOLD = 0.3
SIMILAR_SHADE_RANGE = 1.5
SIMILAR_SHADE_EXPONENT = 0.8
RGB_MATCH_EXPONENT = 0.7
COLOR_BOOST = 1.2


class RecolorProgress(NamedTuple):
    processed: int  # pixels processed so far
    total: int
    changed: int  # pixels recolored so far
    snapshot: bool  # an intermediate snapshot is due


class RecolorPass:
    """
    One recolor pass over a private copy of the buffer

    The pass is split into chunk steps. iter_chunks() yields after every
    chunk so the caller decides when to continue, or stops by not resuming.
    """

    def __init__(self, buffer, width, height, polygon, source_hex, target_hex, tolerance,
                 chunk_size=CHUNK_SIZE, update_frequency=UPDATE_FREQUENCY):
        # Parse colors first so a bad hex never touches any pixels
        self.source_rgb = np.array(hex_to_rgb(source_hex), dtype=np.float64)
        self.target_rgb = np.array(hex_to_rgb(target_hex), dtype=np.float64)
        source_hsl = rgb_to_hsl(hex_to_rgb(source_hex))
        self.source_h = source_hsl.h
        self.source_s = source_hsl.s

        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        self.data = to_pixel_array(buffer, width, height, copy=True)
        self.width = width
        self.height = height
        self.polygon = list(polygon) if is_complete(polygon) else None
        self.tolerance = tolerance
        self.max_rgb_diff = tolerance * TOLERANCE_SCALE
        self.chunk_size = chunk_size
        self.update_frequency = max(1, update_frequency)

        self.total = width * height
        self.processed = 0
        self.changed = 0
        self.done = False

    def iter_chunks(self):
        """Process chunk by chunk, yielding a RecolorProgress after each one"""
        chunk_index = 0
        while self.processed < self.total:
            start = self.processed
            end = min(start + self.chunk_size, self.total)
            try:
                self.changed += self.process_chunk(start, end)
            except Exception as e:
                logging.error(f"Error during color processing at pixel {start}: {e}")
                raise ProcessingInterrupted(
                    f"Recoloring stopped at pixel {start} of {self.total}: {e}",
                    buffer=self.data,
                    processed=start,
                ) from e
            self.processed = end
            chunk_index += 1

            snapshot = end < self.total and chunk_index % self.update_frequency == 0
            logging.debug(f"Recolored chunk {chunk_index}: {end}/{self.total} pixels")
            yield RecolorProgress(self.processed, self.total, self.changed, snapshot)
        self.done = True

    def process_chunk(self, start, end):
        """
        Recolor pixels [start, end) in place

        All writes for the chunk happen in a single assignment at the end.

        Returns:
            Number of pixels changed
        """
        pixels = self.data[start * CHANNELS:end * CHANNELS].reshape(-1, CHANNELS)
        rgb = pixels[:, :3].astype(np.float64)

        rgb_diff = np.sqrt(((rgb - self.source_rgb) ** 2).sum(axis=1))

        # Cheap RGB rejection before the HSL comparison
        candidates = rgb_diff <= self.max_rgb_diff * EARLY_REJECT_FACTOR
        if self.polygon is not None and candidates.any():
            indices = np.arange(start, end)
            candidates &= ~contains_points(self.polygon, indices % self.width, indices // self.width)

        rows = np.flatnonzero(candidates)
        if rows.size == 0:
            return 0

        diff = rgb_diff[rows]
        h, s, _ = rgb_to_hsl_array(rgb[rows])
        hue_gap = np.abs(h - self.source_h)
        hue_diff = np.minimum(hue_gap, 1.0 - hue_gap)
        is_similar_shade = (hue_diff < HUE_THRESHOLD) & (np.abs(s - self.source_s) < SATURATION_THRESHOLD)

        qualifies = (diff <= self.max_rgb_diff) | is_similar_shade
        rows = rows[qualifies]
        if rows.size == 0:
            return 0
        diff = diff[qualifies]
        is_similar_shade = is_similar_shade[qualifies]

        blend = np.where(
            is_similar_shade,
            (1.0 - self._ratio(diff, self.max_rgb_diff * SIMILAR_SHADE_RANGE)) ** SIMILAR_SHADE_EXPONENT,
            (1.0 - self._ratio(np.minimum(diff, self.max_rgb_diff), self.max_rgb_diff)) ** RGB_MATCH_EXPONENT,
        )

        old = rgb[rows]
        shifted = old + (blend * COLOR_BOOST)[:, None] * (self.target_rgb - old)
        # Round half up, then clamp to the byte range
        new = np.clip(np.floor(shifted + 0.5), 0, 255).astype(np.uint8)

        pixels[rows, :3] = new
        return int(rows.size)

    @staticmethod
    def _ratio(diff, limit):
        # A zero limit only lets exact matches through
        if limit <= 0:
            return np.zeros_like(diff)
        return diff / limit


class RecolorTask:
    """Recolor pass running on a background thread"""

    def __init__(self, recolor_pass, on_chunk=None, on_complete=None):
        self.recolor_pass = recolor_pass
        self.on_chunk = on_chunk
        self.on_complete = on_complete
        self.result = None
        self.error = None
        self._cancel_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name='recolor-pass', daemon=True)

    def start(self):
        self._thread.start()
        return self

    def cancel(self):
        """Stop at the next chunk boundary"""
        self._cancel_event.set()

    @property
    def cancelled(self):
        return self._cancel_event.is_set() and not self.recolor_pass.done

    def is_running(self):
        return self._thread.is_alive()

    def wait(self, timeout=None):
        """
        Wait for the pass to finish

        Returns:
            The recolored buffer, or None if cancelled or still running

        Raises:
            ProcessingInterrupted: if the pass failed
            Exception: anything raised by the callbacks
        """
        self._thread.join(timeout)
        if self.error is not None:
            raise self.error
        return self.result

    def _run(self):
        try:
            self.result = run_pass(self.recolor_pass, self.on_chunk, self.on_complete,
                                   cancel_event=self._cancel_event)
        except Exception as e:
            # Re-raised from wait()
            self.error = e
        if self.cancelled:
            self.result = None


def run_pass(recolor_pass, on_chunk=None, on_complete=None, cancel_event=None):
    """
    Drive a RecolorPass to completion, invoking the progress callbacks

    on_chunk receives a copy of the buffer every update_frequency chunks and
    the partial buffer if the pass fails. on_complete receives the final
    buffer. A set cancel_event stops the pass between chunks; the partial
    buffer is returned and on_complete is not called.
    """
    try:
        for progress in recolor_pass.iter_chunks():
            if progress.snapshot and on_chunk is not None:
                on_chunk(recolor_pass.data.copy())
            if cancel_event is not None and cancel_event.is_set() and progress.processed < progress.total:
                logging.info(f"Recoloring cancelled after {progress.processed}/{progress.total} pixels")
                return recolor_pass.data
    except ProcessingInterrupted:
        # Flush whatever was written so far
        if on_chunk is not None:
            on_chunk(recolor_pass.data.copy())
        raise

    logging.info(f"Recoloring complete: {recolor_pass.changed} of {recolor_pass.total} pixels changed")
    if on_complete is not None:
        on_complete(recolor_pass.data)
    return recolor_pass.data


class ImageRecolorer:
    """Apply a source to target color change outside a polygon selection"""

    def __init__(self, chunk_size=CHUNK_SIZE, update_frequency=UPDATE_FREQUENCY):
        self.chunk_size = chunk_size
        self.update_frequency = update_frequency

    def create_pass(self, buffer, width, height, polygon, source_hex, target_hex, tolerance):
        return RecolorPass(buffer, width, height, polygon, source_hex, target_hex, tolerance,
                           chunk_size=self.chunk_size, update_frequency=self.update_frequency)

    def apply_color_change(self, buffer, width, height, polygon, source_hex, target_hex, tolerance,
                           on_chunk=None, on_complete=None, cancel_event=None):
        """
        Recolor pixels matching source_hex outside the polygon

        The input buffer is never modified; the pass works on a copy, so
        calling again with the same baseline gives the same result.

        Args:
            buffer: Flat RGBA buffer (the pristine baseline)
            width: Image width in pixels
            height: Image height in pixels
            polygon: Selection polygon whose pixels are left untouched
            source_hex: Color to replace, e.g. '#FF0000'
            target_hex: Replacement color
            tolerance: 0-255 sensitivity
            on_chunk: Called with intermediate snapshots
            on_complete: Called with the final buffer
            cancel_event: threading.Event checked between chunks

        Returns:
            Recolored flat uint8 RGBA array

        Raises:
            InvalidFormat: malformed source or target color
            ProcessingInterrupted: a chunk failed; partial buffer attached
        """
        recolor_pass = self.create_pass(buffer, width, height, polygon, source_hex, target_hex, tolerance)
        return run_pass(recolor_pass, on_chunk, on_complete, cancel_event=cancel_event)

    def iter_color_change(self, buffer, width, height, polygon, source_hex, target_hex, tolerance):
        """
        Generator form: yields (RecolorProgress, buffer) after each chunk

        The buffer is the live working array; copy it before keeping it.
        """
        recolor_pass = self.create_pass(buffer, width, height, polygon, source_hex, target_hex, tolerance)
        for progress in recolor_pass.iter_chunks():
            yield progress, recolor_pass.data

    def start_color_change(self, buffer, width, height, polygon, source_hex, target_hex, tolerance,
                           on_chunk=None, on_complete=None) -> RecolorTask:
        """Run apply_color_change on a background thread"""
        recolor_pass = self.create_pass(buffer, width, height, polygon, source_hex, target_hex, tolerance)
        return RecolorTask(recolor_pass, on_chunk, on_complete).start()


def apply_color_change(buffer, width, height, polygon, source_hex, target_hex, tolerance,
                       on_chunk=None, on_complete=None):
    """Module level shortcut with the default chunk settings"""
    return ImageRecolorer().apply_color_change(buffer, width, height, polygon, source_hex,
                                               target_hex, tolerance, on_chunk, on_complete)
