#!/usr/bin/env python3
"""
Region Recolor
Recolor everything outside a polygon selection that matches a source color.

Usage:
    python main.py photo.jpg --point 10,10 --point 200,10 --point 200,150 --target '#00FF00'
    python main.py photo.jpg --detect-only
"""

import os
import sys
import logging
import argparse

from config_manager import ConfigManager
from errors import InvalidFormat, ProcessingInterrupted
from file_handler import FileHandler
from image_editor import ImageEditor


def setup_logging(log_dir=None, verbose=False):
    """Log to Temp/app.log and the console"""
    if log_dir is None:
        log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'Temp')
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, 'app.log')
    level = logging.DEBUG if verbose else logging.INFO

    # Clear existing handlers to avoid duplicates
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    root.info("=" * 50)
    root.info("Logging system initialized")
    return log_file


def parse_point(value):
    """argparse type for 'x,y'"""
    try:
        x, y = value.split(',')
        return float(x), float(y)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid point '{value}', expected x,y")


def parse_tolerance(value):
    try:
        tolerance = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid tolerance '{value}'")
    if not 0 <= tolerance <= 255:
        raise argparse.ArgumentTypeError(f"Tolerance must be between 0 and 255, got {tolerance}")
    return tolerance


def build_parser():
    parser = argparse.ArgumentParser(
        description='Recolor pixels matching a source color outside a polygon selection.'
    )
    parser.add_argument('image', nargs='?', help='Image to recolor')
    parser.add_argument(
        '--point', '-p',
        action='append',
        type=parse_point,
        default=[],
        metavar='X,Y',
        help='Selection polygon vertex; repeat in order (at least 3 to mask a region)'
    )
    parser.add_argument('--source', '-s', help='Color to replace (default: dominant color)')
    parser.add_argument('--target', '-t', help='Replacement color')
    parser.add_argument('--tolerance', type=parse_tolerance, help='0-255 matching tolerance')
    parser.add_argument('--output-dir', '-o', default='.', help='Directory for the result')
    parser.add_argument('--config', default='config.json', help='Settings file')
    parser.add_argument('--workspace', '-w', help='Load image, polygon and colors from a workspace file')
    parser.add_argument('--save-workspace', help='Save the session to a workspace file')
    parser.add_argument('--detect-only', action='store_true',
                        help='Only print the dominant color outside the selection')
    parser.add_argument('--log-dir', help='Directory for app.log (default: Temp next to this script)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_dir, args.verbose)

    config_manager = ConfigManager(args.config)
    file_handler = FileHandler()
    editor = ImageEditor(config_manager)

    try:
        # An explicit image replaces the workspace image but keeps its selection
        if args.image:
            editor.load_image(args.image)
        if args.workspace:
            workspace = file_handler.load_workspace(args.workspace)
            if workspace is None:
                raise ValueError(f"Could not load workspace {args.workspace}")
            editor.load_workspace(workspace, restore_image=not args.image)
        if not editor.has_image():
            parser.error('an image or a workspace with an image is required')

        for x, y in args.point:
            editor.polygon_manager.add_point(x, y)
        if editor.polygon_manager.is_valid():
            editor.polygon_manager.set_complete(True)
        elif args.point:
            logging.warning("Fewer than 3 points given; the selection is ignored")

        if args.detect_only or (not args.source and editor.source_color is None):
            if editor.polygon_manager.is_valid():
                result = editor.apply_selection()
            else:
                result = editor.detect_dominant_color()
            if result.warning is not None:
                print(f"Warning: {result.warning}", file=sys.stderr)

        if args.detect_only:
            print(editor.source_color)
            return 0

        editor.apply_color_change(args.source, args.target, args.tolerance)
        output_path = editor.save_image(args.output_dir)
        print(output_path)

        if args.save_workspace:
            if not file_handler.save_workspace(args.save_workspace, editor.to_workspace()):
                return 1
            recent = file_handler.add_recent_file(
                os.path.abspath(args.save_workspace),
                file_handler.load_recent_files(),
                config_manager.get('max_recent_files', 10),
            )
            file_handler.save_recent_files(recent)
        return 0

    except ProcessingInterrupted as e:
        logging.error(f"Recoloring failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (InvalidFormat, ValueError, OSError) as e:
        logging.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
