"""
Vertex color resolution and default material colors.

Per-vertex colors come from the first source that exists, in this order:

1. the record's quantized per-vertex colors
2. its flat color
3. its most-used color
4. neutral gray (50, 50, 50, 255)

Falling through the chain is normal behavior, not an error.
"""

from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .errors import InputGeometryError
from .geometry import GeometryRecord

FALLBACK_GRAY = (50, 50, 50, 255)

# Default diffuse RGBA per product class, used for objects without vertex colors
DEFAULT_COLORS: Dict[str, Tuple[float, float, float, float]] = {
    "IfcWall": (0.537, 0.337, 0.196, 1.0),
    "IfcWallStandardCase": (0.537, 0.337, 0.196, 1.0),
    "IfcCurtainWall": (0.6, 0.6, 0.6, 0.5),
    "IfcSlab": (0.4, 0.4, 0.4, 1.0),
    "IfcRoof": (0.837, 0.203, 0.086, 1.0),
    "IfcWindow": (0.2, 0.2, 0.8, 0.2),
    "IfcDoor": (0.637, 0.603, 0.403, 1.0),
    "IfcColumn": (0.437, 0.603, 0.370, 1.0),
    "IfcBeam": (0.437, 0.603, 0.370, 1.0),
    "IfcStair": (0.637, 0.603, 0.403, 1.0),
    "IfcStairFlight": (0.637, 0.603, 0.403, 1.0),
    "IfcRailing": (0.137, 0.403, 0.870, 1.0),
    "IfcPlate": (0.8, 0.8, 0.8, 1.0),
    "IfcMember": (0.8, 0.8, 0.8, 1.0),
    "IfcCovering": (0.8, 0.8, 0.8, 1.0),
    "IfcSpace": (0.137, 0.403, 0.870, 0.5),
    "IfcFurnishingElement": (0.437, 0.603, 0.370, 1.0),
    "IfcFlowSegment": (0.6, 0.4, 0.5, 1.0),
    "IfcFlowTerminal": (0.6, 0.4, 0.5, 1.0),
    "IfcBuildingElementProxy": (0.5, 0.5, 0.5, 1.0),
    "IfcSite": (0.137, 0.403, 0.870, 1.0),
}

DEFAULT_COLOR = (0.8, 0.8, 0.8, 1.0)


def default_material_color(class_name: str) -> Tuple[float, float, float, float]:
    """Diffuse color for a product class, with a light gray for unknown classes."""
    return DEFAULT_COLORS.get(class_name, DEFAULT_COLOR)


def quantize_color(color: Sequence[float]) -> Tuple[int, int, int, int]:
    """
    Convert an RGBA float color (0-1) to RGBA bytes.

    Components are truncated, not rounded. A component that lands outside
    0-255 is rejected.
    """
    if len(color) != 4:
        raise InputGeometryError(f"Expected an RGBA color, got {len(color)} components")
    quantized = tuple(int(c * 255) for c in color)
    for value in quantized:
        if value < 0 or value > 255:
            raise InputGeometryError(f"Color component {value} out of unsigned byte range")
    return quantized


def fallback_color(record: GeometryRecord) -> Tuple[int, int, int, int]:
    """Flat color, then most-used color, then gray."""
    for candidate in (record.color, record.most_used_color):
        if candidate is not None:
            return quantize_color(candidate)
    return FALLBACK_GRAY


def resolve_vertex_colors(record: GeometryRecord) -> np.ndarray:
    """
    Per-vertex RGBA bytes for a record.

    Returns:
        Nx4 uint8 array, one row per vertex
    """
    if record.colors_quantized is not None:
        return record.color_array
    rgba = np.array(fallback_color(record), dtype=np.uint8)
    return np.tile(rgba, (record.n_vertices, 1))


def record_has_colors(record: GeometryRecord, synthesize: bool) -> bool:
    """Whether a record contributes to the color segment under a policy."""
    return synthesize or record.has_vertex_colors


def colors_or_none(record: GeometryRecord, synthesize: bool) -> Optional[np.ndarray]:
    if not record_has_colors(record, synthesize):
        return None
    return resolve_vertex_colors(record)
