import os

import numpy as np
import pytest
from PIL import Image

from config_manager import ConfigManager
from errors import InvalidFormat
from image_editor import ImageEditor
from image_recolorer import ImageRecolorer
from tests.conftest import get_pixel, make_buffer, reference_recolor, set_pixel


@pytest.fixture
def editor(tmp_path):
    return ImageEditor(ConfigManager(str(tmp_path / 'config.json')))


@pytest.fixture
def wall_buffer():
    """10x10 blue-ish wall with the four leftmost columns red"""
    width, height = 10, 10
    buffer = make_buffer(width, height, (40, 60, 200, 255))
    for y in range(height):
        for x in range(4):
            set_pixel(buffer, width, x, y, (220, 30, 30, 255))
    set_pixel(buffer, width, 9, 9, (50, 70, 190, 255))
    return buffer, width, height


def test_requires_an_image(editor):
    assert not editor.has_image()
    with pytest.raises(RuntimeError):
        editor.reset()
    with pytest.raises(RuntimeError):
        editor.detect_dominant_color()


def test_load_buffer_keeps_pristine_copy(editor, wall_buffer):
    buffer, width, height = wall_buffer
    editor.load_buffer(buffer, width, height, name='wall')
    buffer[:] = 0
    assert get_pixel(editor.original, width, 5, 5) == (40, 60, 200, 255)
    assert not editor.original.flags.writeable


def test_apply_selection_needs_three_points(editor, wall_buffer):
    editor.load_buffer(*wall_buffer)
    editor.polygon_manager.add_point(0, 0)
    editor.polygon_manager.add_point(5, 0)
    assert editor.apply_selection() is None
    assert not editor.polygon_manager.is_complete


def test_apply_selection_detects_background(editor, wall_buffer):
    editor.load_buffer(*wall_buffer)
    for x, y in [(4, 0), (10, 0), (10, 10), (4, 10)]:
        editor.polygon_manager.add_point(x, y)

    result = editor.apply_selection()

    # The wall is masked, so only the red columns are sampled
    assert editor.polygon_manager.is_complete
    assert result.color == '#D01010'
    assert editor.source_color == '#D01010'


def test_detect_without_selection(editor, wall_buffer):
    editor.load_buffer(*wall_buffer)
    assert editor.detect_dominant_color().color == '#3030D0'


def test_recolor_always_starts_from_baseline(editor, wall_buffer):
    buffer, width, height = wall_buffer
    editor.load_buffer(buffer, width, height)
    polygon = [(0, 0), (2, 0), (2, 2), (0, 2)]
    for x, y in polygon:
        editor.polygon_manager.add_point(x, y)

    first = editor.apply_color_change('#2840C8', '#E0B020', 40).copy()
    second = editor.apply_color_change('#2840C8', '#E0B020', 40)

    expected = reference_recolor(buffer, width, height, polygon, '#2840C8', '#E0B020', 40)
    assert np.array_equal(first, expected)
    assert np.array_equal(second, expected)
    # Masked corner keeps its red
    assert get_pixel(second, width, 1, 1) == (220, 30, 30, 255)


def test_changing_settings_does_not_compound(editor, wall_buffer):
    buffer, width, height = wall_buffer
    editor.load_buffer(buffer, width, height)
    editor.apply_color_change('#2840C8', '#FFFFFF', 90)
    result = editor.apply_color_change('#2840C8', '#E0B020', 40)
    single = ImageRecolorer().apply_color_change(buffer, width, height, [], '#2840C8', '#E0B020', 40)
    assert np.array_equal(result, single)


def test_reset_restores_original(editor, wall_buffer):
    buffer, width, height = wall_buffer
    editor.load_buffer(buffer, width, height)
    editor.apply_color_change('#DC1E1E', '#00FF00', 50)
    assert not np.array_equal(editor.current, buffer)
    editor.reset()
    assert np.array_equal(editor.current, buffer)


def test_uses_detected_source_and_config_defaults(editor, wall_buffer):
    editor.load_buffer(*wall_buffer)
    editor.detect_dominant_color()
    editor.apply_color_change()
    assert editor.source_color == '#3030D0'
    assert editor.target_color == '#00FF00'
    assert editor.tolerance == 50


def test_missing_source_color(editor, wall_buffer):
    editor.load_buffer(*wall_buffer)
    with pytest.raises(ValueError):
        editor.apply_color_change(target_color='#00FF00', tolerance=10)


@pytest.mark.parametrize('tolerance', [-1, 256, 12.5, '50', True])
def test_tolerance_is_validated(editor, wall_buffer, tolerance):
    editor.load_buffer(*wall_buffer)
    with pytest.raises(ValueError):
        editor.apply_color_change('#FF0000', '#00FF00', tolerance)


def test_invalid_hex_leaves_result_untouched(editor, wall_buffer):
    buffer, width, height = wall_buffer
    editor.load_buffer(buffer, width, height)
    editor.apply_color_change('#DC1E1E', '#00FF00', 50)
    before = editor.current.copy()
    with pytest.raises(InvalidFormat):
        editor.apply_color_change('#DC1E1E', '#GGGGGG', 50)
    assert np.array_equal(editor.current, before)


def test_colors_are_normalized(editor, wall_buffer):
    editor.load_buffer(*wall_buffer)
    editor.apply_color_change('#dc1e1e', '#00ff00', 50)
    assert editor.source_color == '#DC1E1E'
    assert editor.target_color == '#00FF00'


def test_background_recolor(editor, wall_buffer):
    buffer, width, height = wall_buffer
    editor.load_buffer(buffer, width, height)
    done = []
    task = editor.start_color_change('#DC1E1E', '#00FF00', 50, on_complete=done.append)
    result = task.wait(timeout=10)
    assert done and done[0] is result
    assert editor.current is result
    assert get_pixel(result, width, 0, 0)[:3] != (220, 30, 30)


def test_load_and_save_image_files(editor, tmp_path, wall_buffer):
    buffer, width, height = wall_buffer
    source_path = tmp_path / 'kitchen.png'
    Image.fromarray(buffer.reshape(height, width, 4)).save(source_path)

    editor.load_image(str(source_path))
    assert editor.original_file_name == 'kitchen'
    assert (editor.width, editor.height) == (width, height)
    assert np.array_equal(editor.original, buffer)

    editor.apply_color_change('#DC1E1E', '#00FF00', 50)
    output_path = editor.save_image(str(tmp_path / 'out'))

    assert os.path.basename(output_path) == 'kitchen_00FF00.jpg'
    with Image.open(output_path) as saved:
        assert saved.mode == 'RGB'
        assert saved.size == (width, height)


def test_save_png_keeps_exact_pixels(editor, tmp_path, wall_buffer):
    buffer, width, height = wall_buffer
    editor.load_buffer(buffer, width, height, name='wall')
    editor.apply_color_change('#DC1E1E', '#00FF00', 50)
    output_path = editor.save_image(str(tmp_path), filename='wall.png')
    with Image.open(output_path) as saved:
        assert np.array_equal(np.array(saved).reshape(-1), editor.current)


def test_load_pil_image(editor):
    editor.load_pil_image(Image.new('RGB', (3, 2), (10, 200, 10)), name='green')
    assert get_pixel(editor.original, 3, 2, 1) == (10, 200, 10, 255)
    assert editor.get_image().size == (3, 2)


def test_workspace_round_trip(editor, tmp_path, wall_buffer):
    buffer, width, height = wall_buffer
    image_path = tmp_path / 'wall.png'
    Image.fromarray(buffer.reshape(height, width, 4)).save(image_path)

    editor.load_image(str(image_path))
    for x, y in [(4, 0), (10, 0), (10, 10), (4, 10)]:
        editor.polygon_manager.add_point(x, y)
    editor.apply_selection()
    editor.apply_color_change(target_color='#123456', tolerance=70)
    workspace = editor.to_workspace()

    restored = ImageEditor(ConfigManager(str(tmp_path / 'config.json')))
    restored.load_workspace(workspace)
    assert restored.image_path == str(image_path)
    assert restored.polygon_manager.get_points() == editor.polygon_manager.get_points()
    assert restored.polygon_manager.is_complete
    assert (restored.source_color, restored.target_color, restored.tolerance) == ('#D01010', '#123456', 70)

    assert np.array_equal(restored.apply_color_change(), editor.current)


def test_workspace_settings_onto_current_image(editor, wall_buffer):
    buffer, width, height = wall_buffer
    editor.load_buffer(buffer, width, height, name='wall')
    workspace = {
        'image_path': '/missing/elsewhere.png',
        'polygon': [[4, 0], [10, 0], [10, 10]],
        'polygon_complete': True,
        'source_color': '#d01010',
        'target_color': '#123456',
        'tolerance': 30,
    }

    editor.load_workspace(workspace, restore_image=False)
    assert editor.original_file_name == 'wall'
    assert editor.image_path is None
    assert len(editor.polygon_manager.get_points()) == 3
    assert editor.polygon_manager.is_complete
    assert (editor.source_color, editor.target_color, editor.tolerance) == ('#D01010', '#123456', 30)
