"""
Image Editor Module
Editing session tying an image, its selection polygon and the recoloring
core together
"""

import os
import logging

import numpy as np

from color_detector import DominantColorDetector
from color_utils import hex_to_rgb, rgb_to_hex
from config_manager import ConfigManager
from image_recolorer import ImageRecolorer
from pixel_buffer import from_image, load_image, to_image, to_pixel_array
from polygon_manager import PolygonManager


class ImageEditor:
    """
    Holds the pristine image, the working result and the selection

    Every recolor starts again from the pristine image, so changing colors or
    tolerance never compounds earlier passes.
    """

    def __init__(self, config_manager=None):
        self.config_manager = config_manager or ConfigManager()
        self.polygon_manager = PolygonManager(hit_radius=self.config_manager.get('point_hit_radius', 5))
        self.detector = DominantColorDetector(**self.config_manager.detector_settings())
        self.recolorer = ImageRecolorer(**self.config_manager.recolorer_settings())

        self.image_path = None
        self.original_file_name = ''
        self.original = None
        self.current = None
        self.width = 0
        self.height = 0

        self.source_color = None
        self.target_color = self.config_manager.get('default_target_color', '#00FF00')
        self.tolerance = self.config_manager.get('default_tolerance', 50)

    # Loading

    def load_image(self, image_path):
        """Load an image file as the new pristine baseline"""
        buffer, width, height = load_image(image_path)
        self.image_path = os.path.abspath(image_path)
        self._set_baseline(buffer, width, height, os.path.splitext(os.path.basename(image_path))[0])
        logging.info(f"Loaded image: {os.path.basename(image_path)} ({width}x{height})")

    def load_pil_image(self, img, name='image'):
        buffer, width, height = from_image(img)
        self.image_path = None
        self._set_baseline(buffer, width, height, name)

    def load_buffer(self, buffer, width, height, name='image'):
        """Use a raw RGBA buffer as the pristine baseline"""
        self.image_path = None
        self._set_baseline(to_pixel_array(buffer, width, height, copy=True), width, height, name)

    def _set_baseline(self, buffer, width, height, name):
        self.original = buffer
        self.original.setflags(write=False)
        self.current = buffer.copy()
        self.width = width
        self.height = height
        self.original_file_name = name
        self.source_color = None
        self.polygon_manager.clear()

    def has_image(self):
        return self.original is not None

    def _require_image(self):
        if not self.has_image():
            raise RuntimeError("No image loaded")

    def reset(self):
        """Discard recoloring and return to the pristine image"""
        self._require_image()
        self.current = self.original.copy()

    # Selection and detection

    def apply_selection(self):
        """
        Finish the polygon and detect the background color around it

        Returns:
            DetectionResult, or None if the polygon has fewer than 3 points
        """
        if not self.polygon_manager.is_valid():
            logging.warning("Selection needs at least 3 points")
            return None
        self.polygon_manager.set_complete(True)
        return self.detect_dominant_color()

    def detect_dominant_color(self):
        """Detect the dominant color outside the selection into source_color"""
        self._require_image()
        result = self.detector.detect_dominant_color(
            self.original, self.width, self.height, self.polygon_manager.get_points()
        )
        self.source_color = result.color
        logging.info(f"Dominant color: {result.color}")
        return result

    # Recoloring

    def _prepare_change(self, source_color, target_color, tolerance):
        self._require_image()
        source_color = source_color or self.source_color
        if source_color is None:
            raise ValueError("No source color; detect one or pass it explicitly")
        target_color = target_color or self.target_color
        tolerance = self.tolerance if tolerance is None else tolerance
        if isinstance(tolerance, bool) or not isinstance(tolerance, (int, np.integer)) \
                or not 0 <= tolerance <= 255:
            raise ValueError(f"Tolerance must be an integer between 0 and 255, got {tolerance!r}")

        # Normalize and validate before any pixel work
        self.source_color = rgb_to_hex(hex_to_rgb(source_color))
        self.target_color = rgb_to_hex(hex_to_rgb(target_color))
        self.tolerance = int(tolerance)
        self.reset()

    def apply_color_change(self, source_color=None, target_color=None, tolerance=None, on_chunk=None):
        """
        Recolor the pristine image into current

        Returns:
            The recolored flat RGBA buffer
        """
        self._prepare_change(source_color, target_color, tolerance)
        logging.info(f"Recoloring {self.source_color} -> {self.target_color} (tolerance {self.tolerance})")

        def on_complete(buffer):
            self.current = buffer

        self.recolorer.apply_color_change(
            self.original, self.width, self.height, self.polygon_manager.get_points(),
            self.source_color, self.target_color, self.tolerance,
            on_chunk=on_chunk, on_complete=on_complete,
        )
        return self.current

    def start_color_change(self, source_color=None, target_color=None, tolerance=None,
                           on_chunk=None, on_complete=None):
        """Background version of apply_color_change; returns a RecolorTask"""
        self._prepare_change(source_color, target_color, tolerance)

        def finish(buffer):
            self.current = buffer
            if on_complete is not None:
                on_complete(buffer)

        return self.recolorer.start_color_change(
            self.original, self.width, self.height, self.polygon_manager.get_points(),
            self.source_color, self.target_color, self.tolerance,
            on_chunk=on_chunk, on_complete=finish,
        )

    # Output

    def get_image(self):
        """Current result as a PIL RGBA image"""
        self._require_image()
        return to_image(self.current, self.width, self.height)

    def default_output_name(self):
        target = (self.target_color or '').lstrip('#')
        extension = self.config_manager.get('default_export_format', 'jpg')
        return f"{self.original_file_name}_{target}.{extension}"

    def save_image(self, output_dir='.', filename=None):
        """
        Save the current result

        Args:
            output_dir: Directory to write into
            filename: Defaults to '<original name>_<TARGET>.<format>'

        Returns:
            Path of the written file
        """
        img = self.get_image()
        output_path = os.path.join(output_dir, filename or self.default_output_name())
        if os.path.splitext(output_path)[1].lower() in ('.jpg', '.jpeg'):
            img = img.convert('RGB')
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)
        img.save(output_path)
        logging.info(f"Saved recolored image: {output_path}")
        return output_path

    # Workspace

    def to_workspace(self):
        return {
            'image_path': self.image_path,
            'polygon': self.polygon_manager.to_list(),
            'polygon_complete': self.polygon_manager.is_complete,
            'source_color': self.source_color,
            'target_color': self.target_color,
            'tolerance': self.tolerance,
        }

    def load_workspace(self, workspace_data, restore_image=True):
        """
        Restore image, selection and color settings from a workspace dict

        With restore_image=False the currently loaded image is kept and only
        the selection and color settings are applied to it.
        """
        image_path = workspace_data.get('image_path')
        if restore_image and image_path:
            self.load_image(image_path)
        self.polygon_manager.from_list(workspace_data.get('polygon', []),
                                       workspace_data.get('polygon_complete', False))
        if workspace_data.get('source_color'):
            self.source_color = rgb_to_hex(hex_to_rgb(workspace_data['source_color']))
        if workspace_data.get('target_color'):
            self.target_color = rgb_to_hex(hex_to_rgb(workspace_data['target_color']))
        if workspace_data.get('tolerance') is not None:
            self.tolerance = int(workspace_data['tolerance'])
