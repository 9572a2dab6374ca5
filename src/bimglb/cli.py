"""
Command line entry point.

Usage:
    bimglb model.obj -o outputs/model.glb
    bimglb scene.glb -o legacy.glb --format binary_gltf_1
    bimglb model.ply --config export.yaml -v
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import ContainerFormat, ExportConfig
from .errors import PackingError
from .io import load_catalog, save_glb
from .serializer import BinaryGltfSerializer

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Pack triangulated geometry into a binary glTF container"
    )

    parser.add_argument(
        "input",
        type=Path,
        help="Mesh or scene file readable by trimesh"
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output file (default: <output_dir>/<input stem>.glb)"
    )

    parser.add_argument(
        "--format",
        choices=[f.value for f in ContainerFormat],
        default=None,
        help="Container format (default: from config, else glb_2)"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON or YAML export config"
    )

    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar"
    )

    parser.add_argument(
        "--no-metadata",
        action="store_true",
        help="Do not write the .json metadata sidecar"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging"
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ExportConfig:
    config = ExportConfig.from_file(args.config) if args.config else ExportConfig(show_progress=True)
    if args.format:
        config.container_format = ContainerFormat(args.format)
    if args.no_progress:
        config.show_progress = False
    if args.no_metadata:
        config.write_metadata = False
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    config = build_config(args)
    output_path = args.output or config.get_output_path(args.input.stem)

    if not args.input.exists():
        logger.error(f"Input file not found: {args.input}")
        return 1

    try:
        catalog = load_catalog(args.input)
    except Exception as e:
        logger.error(f"Failed to load {args.input}: {e}")
        return 1

    try:
        result = BinaryGltfSerializer(config).serialize(catalog)
    except PackingError as e:
        logger.error(f"Packing failed: {e}")
        return 1

    for warning in result.warnings:
        logger.warning(str(warning))

    save_glb(result, output_path, write_metadata=config.write_metadata)
    return 0


if __name__ == "__main__":
    sys.exit(main())
