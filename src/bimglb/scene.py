"""
Scene graph assembly.

Builds the descriptive JSON tree that accompanies the packed body:
materials, bufferViews, accessors, meshes, nodes and the default scene.
Two layouts are supported, selected by the packing policy:

- keyed: glTF 1.0 style, every collection is an object keyed by id
- indexed: glTF 2.0 style, every collection is an array and references
  are array indices

Node tree:

    scene -> rotationNode (axis correction)
               -> translationNode (recentering)
                    -> one node per packed object
"""

import json
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from pygltflib import (
    ARRAY_BUFFER, ELEMENT_ARRAY_BUFFER, FLOAT, SCALAR, TRIANGLES, UNSIGNED_BYTE, VEC3, VEC4
)

from .colors import default_material_color
from .errors import InputGeometryError, MatrixSingularityWarning
from .geometry import Product
from .policy import PackingPolicy
from .segments import SegmentLayout

logger = logging.getLogger(__name__)

Ref = Union[int, str]

VERTEX_COLOR_MATERIAL = "VertexColorMaterial"
BINARY_BUFFER = "binary_glTF"
BINARY_EXTENSION = "KHR_binary_glTF"

# Z-up to Y-up
AXIS_CORRECTION = (1.0, 0.0, 0.0, -1.0)

VIEW_STRIDES = {"vertices": 12, "normals": 12, "colors": 4}


def normalize_quaternion(quaternion: Sequence[float]) -> List[float]:
    length = math.sqrt(sum(q * q for q in quaternion))
    if length == 0.0 or length == 1.0:
        return [float(q) for q in quaternion]
    return [float(q) / length for q in quaternion]


def is_identity(matrix: np.ndarray) -> bool:
    return bool(np.array_equal(matrix, np.eye(4)))


def is_invertible(matrix: np.ndarray) -> bool:
    if not np.all(np.isfinite(matrix)):
        return False
    return int(np.linalg.matrix_rank(matrix)) == 4


class SceneTree:
    """JSON tree with policy-dependent collection layout."""

    def __init__(self, keyed: bool):
        self.keyed = keyed
        self.root: Dict[str, Any] = {}

    def collection(self, kind: str):
        return self.root.setdefault(kind, {} if self.keyed else [])

    def add(self, kind: str, entry: Dict[str, Any], name: Optional[str] = None) -> Ref:
        """
        Insert an entry and return its reference.

        In keyed mode the name becomes the reference and must be given.
        In indexed mode the name is ignored and the array index is returned.
        """
        items = self.collection(kind)
        if self.keyed:
            if name is None:
                raise ValueError(f"Keyed scene tree needs a name for {kind} entries")
            items[name] = entry
            return name
        items.append(entry)
        return len(items) - 1

    def get(self, kind: str, ref: Ref) -> Dict[str, Any]:
        return self.collection(kind)[ref]

    def count(self, kind: str) -> int:
        return len(self.root.get(kind, ()))

    def to_json_bytes(self) -> bytes:
        return json.dumps(self.root, separators=(",", ":"), allow_nan=False).encode("utf-8")


class SceneAssembler:
    """
    Builds the scene tree for one packing run.

    Owns the material dedup table (class name -> material reference) and
    collects non-fatal diagnostics.
    """

    def __init__(self, policy: PackingPolicy, generator: str = "bimglb"):
        self.policy = policy
        self.tree = SceneTree(policy.keyed_ids)
        self.warnings: List[MatrixSingularityWarning] = []
        self.material_ids: Dict[str, Ref] = {}
        self.buffer_views: Dict[str, Ref] = {}
        self._accessor_counter = 0
        self._buffer_view_counter = 0
        self.translation_children: List[Ref] = []
        self.scene_nodes: List[Ref] = []

        self.tree.root["asset"] = {"version": policy.asset_version, "generator": generator}
        self.vertex_color_material = self._create_vertex_color_material()

    # ---------- materials ----------

    def _create_vertex_color_material(self) -> Ref:
        return self.tree.add("materials", {"name": VERTEX_COLOR_MATERIAL}, name=VERTEX_COLOR_MATERIAL)

    def material_for_class(self, class_name: str) -> Ref:
        """Default material for a product class, created on first request."""
        if class_name in self.material_ids:
            return self.material_ids[class_name]

        name = f"{class_name}Material"
        rgba = [float(c) for c in default_material_color(class_name)]
        if self.policy.keyed_ids:
            material = {
                "name": name,
                "values": {
                    "diffuse": rgba,
                    "specular": [0.2, 0.2, 0.2],
                    "shininess": 256
                }
            }
        else:
            material = {
                "name": name,
                "pbrMetallicRoughness": {
                    "baseColorFactor": rgba,
                    "metallicFactor": 0.1,
                    "roughnessFactor": 0.8
                },
                "alphaMode": "BLEND" if rgba[3] < 1.0 else "OPAQUE",
                "doubleSided": True
            }
        ref = self.tree.add("materials", material, name=name)
        self.material_ids[class_name] = ref
        logger.debug(f"Created material {name}")
        return ref

    def material_for(self, product: Product, has_colors: bool) -> Ref:
        if has_colors:
            return self.vertex_color_material
        return self.material_for_class(product.class_name)

    # ---------- root nodes ----------

    def create_root(self, translation: Sequence[float]) -> None:
        """Create the default scene with its rotation and translation nodes."""
        translation_node = {
            "children": self.translation_children,
            "translation": [float(t) for t in translation]
        }
        translation_ref = self.tree.add("nodes", translation_node, name="translationNode")

        rotation_node = {
            "children": [translation_ref],
            "rotation": normalize_quaternion(AXIS_CORRECTION)
        }
        rotation_ref = self.tree.add("nodes", rotation_node, name="rotationNode")
        self.scene_nodes.append(rotation_ref)

        scene_ref = self.tree.add("scenes", {"nodes": self.scene_nodes}, name="defaultScene")
        self.tree.root["scene"] = scene_ref

    # ---------- buffers ----------

    def create_buffer_views(self, layout: SegmentLayout) -> Dict[str, Ref]:
        """One bufferView per non-empty segment region."""
        for name, offset in layout.offsets.items():
            length = getattr(layout.sizes, name)
            if length == 0:
                continue
            view: Dict[str, Any] = {
                "buffer": BINARY_BUFFER if self.policy.keyed_ids else 0,
                "byteOffset": offset,
                "byteLength": length,
                "target": ELEMENT_ARRAY_BUFFER if name == "indices" else ARRAY_BUFFER
            }
            if name in VIEW_STRIDES and not self.policy.accessor_strides:
                view["byteStride"] = VIEW_STRIDES[name]
            view_name = f"bufferView_{self._buffer_view_counter}"
            self._buffer_view_counter += 1
            self.buffer_views[name] = self.tree.add("bufferViews", view, name=view_name)
        return self.buffer_views

    def add_buffer(self, byte_length: int) -> None:
        if self.policy.keyed_ids:
            self.tree.add(
                "buffers",
                {"byteLength": byte_length, "type": "arraybuffer"},
                name=BINARY_BUFFER
            )
            self.tree.root["extensionsUsed"] = [BINARY_EXTENSION]
        else:
            self.tree.add("buffers", {"byteLength": byte_length})

    # ---------- accessors ----------

    def _add_accessor(self, role: str, segment: str, byte_offset: int, count: int,
                      component_type: int, element_type: str, stride: Optional[int] = None,
                      **extra) -> Ref:
        if count <= 0:
            raise InputGeometryError(f"{role} accessor count {count} <= 0")
        accessor: Dict[str, Any] = {
            "bufferView": self.buffer_views[segment],
            "byteOffset": byte_offset,
            "componentType": component_type,
            "count": count,
            "type": element_type
        }
        if self.policy.accessor_strides and stride is not None:
            accessor["byteStride"] = stride
        accessor.update(extra)
        name = f"accessor_{role}_{self._accessor_counter}"
        self._accessor_counter += 1
        return self.tree.add("accessors", accessor, name=name)

    def add_indices_accessor(self, byte_offset: int, indices: np.ndarray) -> Ref:
        extra = {}
        if self.policy.index_bounds and len(indices) > 0:
            extra = {"min": [int(indices.min())], "max": [int(indices.max())]}
        return self._add_accessor(
            "index", "indices", byte_offset, len(indices),
            self.policy.index_component_type, SCALAR, stride=0, **extra
        )

    def add_vertices_accessor(self, byte_offset: int, positions: np.ndarray) -> Ref:
        """Position accessor with bounds taken from the emitted Nx3 float32 positions."""
        return self._add_accessor(
            "vertex", "vertices", byte_offset, len(positions), FLOAT, VEC3, stride=12,
            min=[float(v) for v in positions.min(axis=0)],
            max=[float(v) for v in positions.max(axis=0)]
        )

    def add_normals_accessor(self, byte_offset: int, count: int) -> Ref:
        extra = {}
        if self.policy.normal_bounds:
            extra = {"min": [-1.0, -1.0, -1.0], "max": [1.0, 1.0, 1.0]}
        return self._add_accessor(
            "normal", "normals", byte_offset, count, FLOAT, VEC3, stride=12, **extra
        )

    def add_colors_accessor(self, byte_offset: int, count: int) -> Ref:
        return self._add_accessor(
            "color", "colors", byte_offset, count, UNSIGNED_BYTE, VEC4, stride=4,
            normalized=True
        )

    # ---------- meshes and nodes ----------

    def primitive(self, indices: Ref, positions: Ref, normals: Ref,
                  colors: Optional[Ref], material: Ref) -> Dict[str, Any]:
        attributes = {"NORMAL": normals, "POSITION": positions}
        if colors is not None:
            attributes[self.policy.color_attribute] = colors
        return {
            "attributes": attributes,
            "indices": indices,
            "mode": TRIANGLES,
            "material": material
        }

    def add_mesh(self, product: Product, primitives: List[Dict[str, Any]],
                 part: Optional[int] = None) -> Ref:
        name = f"mesh_{product.oid}" if part is None else f"mesh_{product.oid}_{part}"
        mesh = {"primitives": primitives}
        if self.policy.keyed_ids:
            mesh["name"] = name
        return self.tree.add("meshes", mesh, name=name)

    def node_matrix(self, product: Product, transform: np.ndarray) -> Optional[List[float]]:
        """
        Column-major node matrix, or None when the transform is the identity
        or cannot be inverted.
        """
        if is_identity(transform):
            return None
        if not is_invertible(transform):
            warning = MatrixSingularityWarning(product.oid, product.global_id)
            logger.warning(str(warning))
            self.warnings.append(warning)
            return None
        return [float(v) for v in transform.flatten(order="F")]

    def add_object_node(self, product: Product, transform: np.ndarray, meshes: List[Ref]) -> Ref:
        """Create the node of one packed object and hang it under the translation node."""
        node: Dict[str, Any] = {}
        if product.global_id is not None:
            node["extras"] = {"ifcID": product.global_id}

        if self.policy.keyed_ids:
            node["name"] = f"node_{product.oid}"
            node["meshes"] = list(meshes)
        elif len(meshes) == 1:
            node["mesh"] = meshes[0]
        else:
            # An indexed node holds a single mesh; partitions become children
            node["children"] = [self.tree.add("nodes", {"mesh": mesh}) for mesh in meshes]

        matrix = self.node_matrix(product, transform)
        if matrix is not None:
            node["matrix"] = matrix

        ref = self.tree.add("nodes", node, name=f"node_{product.oid}")
        self.translation_children.append(ref)
        return ref

    def to_json_bytes(self) -> bytes:
        return self.tree.to_json_bytes()
