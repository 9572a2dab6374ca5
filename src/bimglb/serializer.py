"""
Top-level scene serialization.

Pipeline, all in memory:
1. Snapshot eligible products (strict for packing, non-strict for extents)
2. Accumulate world extents -> recentering translation
3. Size the four segments
4. Pack geometry, building accessors, meshes and nodes as it goes
5. Serialize the scene tree and frame it with the body

The output bytes only exist once every step succeeded. Any fatal problem
raises a PackingError and nothing is returned or written.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import DEFAULT_CONFIG, ExportConfig
from .errors import InputGeometryError, MatrixSingularityWarning, PackingError
from .extents import Extents, accumulate_extents
from .framing import frame_container
from .geometry import eligible_records
from .packer import MeshPacker
from .scene import SceneAssembler
from .segments import SegmentLayout, SegmentSizes
from .sizer import compute_segment_sizes

logger = logging.getLogger(__name__)


@dataclass
class PackStatistics:
    """Summary of one packing run, written to the metadata sidecar."""
    container_format: str
    n_objects: int
    n_meshes: int
    n_split_objects: int
    n_triangles: int
    n_materials: int
    segment_sizes: Dict[str, int]
    body_length: int
    scene_length: int
    total_length: int
    extents: Dict[str, Any] = field(default_factory=dict)
    translation: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "container_format": self.container_format,
            "n_objects": self.n_objects,
            "n_meshes": self.n_meshes,
            "n_split_objects": self.n_split_objects,
            "n_triangles": self.n_triangles,
            "n_materials": self.n_materials,
            "segment_sizes": self.segment_sizes,
            "body_length": self.body_length,
            "scene_length": self.scene_length,
            "total_length": self.total_length,
            "extents": self.extents,
            "translation": self.translation
        }


@dataclass
class SerializationResult:
    """Container bytes plus the non-fatal diagnostics of the run."""
    data: bytes
    statistics: PackStatistics
    warnings: List[MatrixSingularityWarning] = field(default_factory=list)


class BinaryGltfSerializer:
    """
    Packs a product catalog into a binary glTF container.

    A serializer can be reused; every call to serialize() starts from
    fresh extents, segments and scene state.
    """

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.policy = self.config.policy

    def serialize(self, catalog) -> SerializationResult:
        """
        Serialize every eligible product of a catalog.

        Args:
            catalog: iterable of products offering has_eligible_geometry()
                and geometry(), e.g. a ProductCatalog

        Returns:
            SerializationResult with the framed container bytes

        Raises:
            PackingError: on any fatal input or consistency problem
        """
        logger.info(f"Starting serialization ({self.policy.name})")
        try:
            return self._serialize(catalog)
        except PackingError:
            raise
        except (ValueError, OverflowError) as e:
            raise PackingError(f"Serialization failed: {e}") from e

    def _serialize(self, catalog) -> SerializationResult:
        policy = self.policy
        records = eligible_records(catalog, strict=True)
        if not records:
            raise InputGeometryError("No geometry")
        placed = eligible_records(catalog, strict=False)
        seen_oids = set()
        for product, record in placed:
            if product.oid in seen_oids:
                raise InputGeometryError(f"Duplicate object id {product.oid}")
            seen_oids.add(product.oid)
            try:
                record.validate()
            except InputGeometryError as e:
                raise InputGeometryError(f"Object {product.oid}: {e}") from e

        extents = accumulate_extents(record for _, record in placed)
        translation = extents.translation

        sizes = compute_segment_sizes((record for _, record in records), policy)
        layout = SegmentLayout(sizes)

        assembler = SceneAssembler(policy, generator=self.config.generator)
        assembler.create_root(translation)
        assembler.create_buffer_views(layout)

        packer = MeshPacker(policy, layout, assembler, show_progress=self.config.show_progress)
        segments = packer.pack(records)

        body = layout.assemble(segments)
        assembler.add_buffer(len(body))
        scene = assembler.to_json_bytes()

        data = frame_container(policy, scene, body)
        logger.info(f"Serialized {len(records)} objects: scene {len(scene)} bytes, body {len(body)} bytes")

        statistics = self._statistics(records, packer, assembler, sizes, extents, len(body), len(scene), len(data))
        return SerializationResult(data=data, statistics=statistics, warnings=list(assembler.warnings))

    def _statistics(self, records, packer: MeshPacker, assembler: SceneAssembler,
                    sizes: SegmentSizes, extents: Extents, body_length: int,
                    scene_length: int, total_length: int) -> PackStatistics:
        return PackStatistics(
            container_format=self.policy.name,
            n_objects=len(records),
            n_meshes=packer.n_meshes,
            n_split_objects=packer.n_split_objects,
            n_triangles=sum(record.n_triangles for _, record in records),
            n_materials=assembler.tree.count("materials"),
            segment_sizes=sizes.to_dict(),
            body_length=body_length,
            scene_length=scene_length,
            total_length=total_length,
            extents=extents.to_dict(),
            translation=[float(t) for t in extents.translation]
        )


def serialize_catalog(catalog, config: Optional[ExportConfig] = None) -> SerializationResult:
    """Convenience wrapper around BinaryGltfSerializer."""
    return BinaryGltfSerializer(config).serialize(catalog)
