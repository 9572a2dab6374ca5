"""
File I/O.

Reads mesh and scene files through trimesh into a ProductCatalog, and
writes serialized containers with a JSON metadata sidecar.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import numpy as np
import trimesh

from .geometry import GeometryRecord, Product, ProductCatalog
from .serializer import SerializationResult

logger = logging.getLogger(__name__)

DEFAULT_CLASS_NAME = "IfcBuildingElementProxy"


def record_from_trimesh(
    mesh: "trimesh.Trimesh",
    transform: Optional[np.ndarray] = None
) -> GeometryRecord:
    """
    Build a GeometryRecord from a trimesh mesh.

    Per-vertex colors are kept when the mesh has vertex-kind visuals;
    otherwise the visual's main color becomes the most-used color.

    Args:
        mesh: Trimesh mesh object
        transform: 4x4 object-to-world matrix (identity if omitted)

    Returns:
        GeometryRecord in the mesh's own coordinates
    """
    colors_quantized = None
    most_used_color = None
    visual = getattr(mesh, "visual", None)
    kind = getattr(visual, "kind", None)
    if kind == "vertex":
        colors_quantized = np.asarray(visual.vertex_colors, dtype=np.uint8)
    elif kind == "face":
        most_used_color = tuple(float(c) / 255.0 for c in visual.main_color)

    return GeometryRecord(
        indices=np.asarray(mesh.faces, dtype=np.int64),
        vertices=np.asarray(mesh.vertices, dtype=np.float64),
        normals=np.asarray(mesh.vertex_normals, dtype=np.float64),
        transform=np.eye(4) if transform is None else transform,
        colors_quantized=colors_quantized,
        most_used_color=most_used_color
    )


def load_catalog(path: Path) -> ProductCatalog:
    """
    Load a mesh or scene file into a ProductCatalog.

    Every scene graph node that instances a triangle mesh becomes one
    product. The product class is read from the geometry metadata key
    'ifc_class'; the node name becomes the product's global id.
    """
    path = Path(path)
    scene = trimesh.load(str(path), force="scene")

    catalog = ProductCatalog()
    for oid, node_name in enumerate(scene.graph.nodes_geometry):
        transform, geometry_name = scene.graph.get(frame_to=node_name)
        if geometry_name is None:
            continue
        mesh = scene.geometry[geometry_name]
        if not isinstance(mesh, trimesh.Trimesh):
            logger.debug(f"Skipping non-mesh geometry {geometry_name}")
            continue
        class_name = mesh.metadata.get("ifc_class", DEFAULT_CLASS_NAME)
        catalog.add(Product(
            oid=oid,
            class_name=class_name,
            global_id=str(node_name),
            geometry=record_from_trimesh(mesh, transform)
        ))

    logger.info(f"Loaded {len(catalog)} products from {path}")
    return catalog


def save_glb(
    result: SerializationResult,
    path: Path,
    write_metadata: bool = True
) -> Path:
    """
    Write serialized container bytes, plus an optional metadata sidecar.

    Args:
        result: successful serialization result
        path: Output path (.glb)
        write_metadata: also write <path>.json with statistics and warnings

    Returns:
        Path of the written container
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "wb") as f:
        f.write(result.data)
    logger.info(f"Saved {path} ({len(result.data)} bytes)")

    if write_metadata:
        meta_path = path.with_suffix(".json")
        metadata = result.statistics.to_dict()
        metadata["warnings"] = [w.to_dict() for w in result.warnings]
        with open(meta_path, "w") as f:
            json.dump(metadata, f, indent=2)
        logger.info(f"Saved metadata: {meta_path}")

    return path


def load_metadata(path: Path) -> Optional[dict]:
    """Read the metadata sidecar of a written container, if present."""
    meta_path = Path(path).with_suffix(".json")
    if not meta_path.exists():
        return None
    with open(meta_path) as f:
        return json.load(f)
