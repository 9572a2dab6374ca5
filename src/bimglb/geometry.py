"""
Geometry records and the product catalog they come from.

A GeometryRecord holds one object's triangulated mesh in object space plus
the transform that places it in the world. Arrays are kept flat, exactly as
the upstream geometry store hands them out:

- indices: n_indices unsigned ints, three per triangle
- vertices: 3 * n_vertices doubles
- normals: 3 * n_vertices floats, one unit vector per vertex
- colors_quantized: optional 4 * n_vertices RGBA bytes
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np

from .errors import InputGeometryError

logger = logging.getLogger(__name__)

RGBA = Tuple[float, float, float, float]

# Largest magnitude that survives conversion to the emitted float32 values
FLOAT32_MAX = float(np.finfo(np.float32).max)


def _as_flat(array, dtype) -> Optional[np.ndarray]:
    if array is None:
        return None
    return np.ascontiguousarray(np.asarray(array, dtype=dtype).ravel())


def _check_float32(name: str, values: np.ndarray) -> None:
    if len(values) == 0:
        return
    if not np.all(np.isfinite(values)):
        raise InputGeometryError(f"Non-finite {name} coordinate")
    largest = float(np.abs(values).max())
    if largest > FLOAT32_MAX:
        raise InputGeometryError(f"{name.capitalize()} coordinate {largest} does not fit in float32")


@dataclass
class GeometryRecord:
    """
    Triangulated geometry of a single product.

    The transform acts on column vectors: world = transform @ [x, y, z, 1].
    """
    indices: np.ndarray
    vertices: Optional[np.ndarray]
    normals: Optional[np.ndarray]
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    colors_quantized: Optional[np.ndarray] = None
    color: Optional[RGBA] = None  # Flat RGBA in 0-1 range
    most_used_color: Optional[RGBA] = None

    def __post_init__(self):
        self.indices = _as_flat(self.indices if self.indices is not None else [], np.int64)
        self.vertices = _as_flat(self.vertices, np.float64)
        self.normals = _as_flat(self.normals, np.float64)
        self.colors_quantized = _as_flat(self.colors_quantized, np.uint8)
        self.transform = np.asarray(self.transform, dtype=np.float64).reshape(4, 4)

    @classmethod
    def from_bytes(
        cls,
        indices: bytes,
        vertices: Optional[bytes],
        normals: Optional[bytes],
        transformation: bytes,
        colors_quantized: Optional[bytes] = None,
        color: Optional[RGBA] = None,
        most_used_color: Optional[RGBA] = None
    ) -> "GeometryRecord":
        """
        Decode the byte-packed form used by the geometry store.

        Args:
            indices: little-endian int32 values
            vertices: little-endian float64 values
            normals: little-endian float32 values
            transformation: 16 little-endian float64 values, column-major
            colors_quantized: RGBA bytes, 4 per vertex
            color: flat RGBA color
            most_used_color: most common RGBA color of the object

        Returns:
            GeometryRecord
        """
        matrix = np.frombuffer(transformation, dtype="<f8")
        if matrix.size != 16:
            raise InputGeometryError(f"Transformation must hold 16 doubles, got {matrix.size}")
        return cls(
            indices=np.frombuffer(indices, dtype="<i4"),
            vertices=np.frombuffer(vertices, dtype="<f8") if vertices is not None else None,
            normals=np.frombuffer(normals, dtype="<f4") if normals is not None else None,
            transform=matrix.reshape(4, 4, order="F"),
            colors_quantized=np.frombuffer(colors_quantized, dtype=np.uint8) if colors_quantized is not None else None,
            color=color,
            most_used_color=most_used_color
        )

    @property
    def n_indices(self) -> int:
        return len(self.indices)

    @property
    def n_triangles(self) -> int:
        return self.n_indices // 3

    @property
    def n_vertices(self) -> int:
        if self.vertices is None:
            return 0
        return len(self.vertices) // 3

    @property
    def has_vertex_colors(self) -> bool:
        return self.colors_quantized is not None

    @property
    def vertex_array(self) -> np.ndarray:
        """Return Nx3 array of object-space vertices."""
        return self.vertices.reshape(-1, 3)

    @property
    def normal_array(self) -> np.ndarray:
        """Return Nx3 array of normals."""
        return self.normals.reshape(-1, 3)

    @property
    def color_array(self) -> Optional[np.ndarray]:
        """Return Nx4 array of quantized colors, if any."""
        if self.colors_quantized is None:
            return None
        return self.colors_quantized.reshape(-1, 4)

    def world_vertices(self) -> np.ndarray:
        """Vertices transformed to world space (Nx3)."""
        points = self.vertex_array
        homogeneous = np.hstack([points, np.ones((len(points), 1))])
        return (self.transform @ homogeneous.T).T[:, :3]

    def validate(self) -> None:
        """
        Check the structural invariants of the record.

        Raises:
            InputGeometryError: if any array is missing or inconsistent
        """
        if self.n_indices > 0:
            if self.vertices is None:
                raise InputGeometryError("Indices present but vertices missing")
            if self.normals is None:
                raise InputGeometryError("Indices present but normals missing")
        if self.n_indices % 3 != 0:
            raise InputGeometryError(f"Index count {self.n_indices} is not a multiple of 3")
        if not np.all(np.isfinite(self.transform)):
            raise InputGeometryError("Transform contains non-finite values")
        if self.vertices is None:
            return
        _check_float32("vertex", self.vertices)
        if self.normals is not None:
            _check_float32("normal", self.normals)
        if len(self.vertices) % 3 != 0:
            raise InputGeometryError(f"Vertex array length {len(self.vertices)} is not a multiple of 3")
        if self.normals is not None and len(self.normals) != len(self.vertices):
            raise InputGeometryError(
                f"Normal array length {len(self.normals)} does not match vertex array length {len(self.vertices)}"
            )
        if self.colors_quantized is not None and len(self.colors_quantized) != 4 * self.n_vertices:
            raise InputGeometryError(
                f"Expected {4 * self.n_vertices} color bytes, got {len(self.colors_quantized)}"
            )
        if self.n_indices > 0:
            lowest = int(self.indices.min())
            highest = int(self.indices.max())
            if lowest < 0:
                raise InputGeometryError(f"Negative index {lowest}")
            if highest >= self.n_vertices:
                raise InputGeometryError(
                    f"Index {highest} out of range for {self.n_vertices} vertices"
                )


@dataclass
class Product:
    """A catalog entity that may carry geometry."""
    oid: int
    class_name: str
    global_id: Optional[str] = None
    geometry: Optional[GeometryRecord] = None


class ProductCatalog:
    """
    Iterable collection of products with the eligibility predicate the
    serializer relies on.

    Any object offering the same three methods (iteration,
    has_eligible_geometry, geometry) can stand in for it.
    """

    def __init__(self, products: Iterable[Product] = ()):
        self._products: List[Product] = list(products)

    def __iter__(self) -> Iterator[Product]:
        return iter(self._products)

    def __len__(self) -> int:
        return len(self._products)

    def add(self, product: Product) -> None:
        self._products.append(product)

    def geometry(self, product: Product) -> Optional[GeometryRecord]:
        return product.geometry

    def has_eligible_geometry(self, product: Product, strict: bool) -> bool:
        """
        Decide whether a product takes part in a pass.

        Non-strict accepts anything with a geometry record (enough to place
        it in the world); strict also requires triangle data.
        """
        geometry = self.geometry(product)
        if geometry is None:
            return False
        if not strict:
            return True
        return geometry.n_indices > 0


def eligible_records(source, strict: bool) -> List[Tuple[Product, GeometryRecord]]:
    """
    Snapshot the eligible (product, geometry) pairs of a source.

    The snapshot fixes iteration order, so the sizing and packing passes
    walk identical sequences even if the source itself does not guarantee
    a repeatable order.
    """
    records = []
    for product in source:
        if source.has_eligible_geometry(product, strict):
            records.append((product, source.geometry(product)))
    logger.debug(f"{len(records)} eligible products (strict={strict})")
    return records
