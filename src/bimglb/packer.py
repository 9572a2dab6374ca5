"""
Mesh packing pass.

Walks the same records, in the same order, as the sizing pass and writes
their indices, vertices, normals and colors into the preallocated segments.
Records that exceed the policy's index limit are split: each partition
renumbers its indices from 0 and gets its own copy of every referenced
vertex, normal and color.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from .colors import colors_or_none
from .errors import InputGeometryError
from .geometry import GeometryRecord, Product
from .policy import PackingPolicy
from .scene import Ref, SceneAssembler
from .segments import PackedSegment, SegmentLayout
from .sizer import partition_ranges

logger = logging.getLogger(__name__)


class MeshPacker:
    """
    Writes packed geometry and registers the matching scene entries.

    Args:
        policy: active packing policy
        layout: segment layout computed from the sizing pass
        assembler: scene assembler receiving accessors, meshes and nodes
        show_progress: show a tqdm progress bar over the records
    """

    def __init__(
        self,
        policy: PackingPolicy,
        layout: SegmentLayout,
        assembler: SceneAssembler,
        show_progress: bool = False
    ):
        self.policy = policy
        self.layout = layout
        self.assembler = assembler
        self.show_progress = show_progress
        self.segments: Dict[str, PackedSegment] = layout.create_segments()
        self.n_meshes = 0
        self.n_split_objects = 0

    def narrow_indices(self, indices: np.ndarray) -> np.ndarray:
        """Convert indices to the policy's index type, rejecting values that do not fit."""
        if len(indices) > 0:
            highest = int(indices.max())
            if highest > self.policy.max_index_value:
                raise InputGeometryError(
                    f"Index too large to store as {self.policy.index_dtype}: {highest} "
                    f"(limit {self.policy.max_index_value})"
                )
        return indices.astype(self.policy.index_dtype)

    def pack(self, records: Sequence[Tuple[Product, GeometryRecord]]) -> Dict[str, PackedSegment]:
        """
        Pack every record, then verify that each segment is exactly full.

        Returns:
            the four filled segments, keyed by name

        Raises:
            InputGeometryError: if an index does not fit the policy's index type
            InternalConsistencyError: if a segment is over- or under-filled
        """
        iterator = tqdm(records, desc="Packing", unit="object", disable=not self.show_progress)
        for product, record in iterator:
            self.pack_record(product, record)

        for segment in self.segments.values():
            segment.check_full()

        logger.info(
            f"Packed {len(records)} objects into {self.n_meshes} meshes "
            f"({self.n_split_objects} split)"
        )
        return self.segments

    def pack_record(self, product: Product, record: GeometryRecord) -> Ref:
        """Pack one record and return the reference of its scene node."""
        ranges = partition_ranges(record.n_indices, self.policy)
        colors = colors_or_none(record, self.policy.synthesize_colors)

        if len(ranges) == 1:
            meshes = [self._pack_whole(product, record, colors)]
        else:
            self.n_split_objects += 1
            logger.debug(f"Splitting object {product.oid}: {record.n_indices} indices into {len(ranges)} parts")
            meshes = [
                self._pack_partition(product, record, colors, start, stop, part)
                for part, (start, stop) in enumerate(ranges)
            ]

        self.n_meshes += len(meshes)
        return self.assembler.add_object_node(product, record.transform, meshes)

    def _pack_whole(self, product: Product, record: GeometryRecord,
                    colors: Optional[np.ndarray]) -> Ref:
        positions = record.vertex_array.astype("<f4")
        normals = record.normal_array.astype("<f4")
        return self._emit(
            product,
            indices=self.narrow_indices(record.indices),
            positions=positions,
            normals=normals,
            colors=colors
        )

    def _pack_partition(self, product: Product, record: GeometryRecord,
                        colors: Optional[np.ndarray], start: int, stop: int, part: int) -> Ref:
        source = record.indices[start:stop]
        # Every index slot gets its own vertex, numbered from 0
        local = np.arange(len(source))
        return self._emit(
            product,
            indices=self.narrow_indices(local),
            positions=record.vertex_array[source].astype("<f4"),
            normals=record.normal_array[source].astype("<f4"),
            colors=colors[source] if colors is not None else None,
            part=part
        )

    def _emit(self, product: Product, indices: np.ndarray, positions: np.ndarray,
              normals: np.ndarray, colors: Optional[np.ndarray],
              part: Optional[int] = None) -> Ref:
        """Write one primitive's data and create its accessors and mesh."""
        assembler = self.assembler

        index_offset = self.segments["indices"].write(indices)
        vertex_offset = self.segments["vertices"].write(positions)
        normal_offset = self.segments["normals"].write(normals)

        indices_ref = assembler.add_indices_accessor(index_offset, indices)
        positions_ref = assembler.add_vertices_accessor(vertex_offset, positions)
        normals_ref = assembler.add_normals_accessor(normal_offset, len(normals))

        colors_ref = None
        if colors is not None:
            color_offset = self.segments["colors"].write(np.ascontiguousarray(colors, dtype=np.uint8))
            colors_ref = assembler.add_colors_accessor(color_offset, len(colors))

        material = assembler.material_for(product, colors_ref is not None)
        primitive = assembler.primitive(indices_ref, positions_ref, normals_ref, colors_ref, material)
        return assembler.add_mesh(product, [primitive], part=part)
