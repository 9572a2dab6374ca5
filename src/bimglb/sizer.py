"""
Segment sizing pass.

Computes the exact number of bytes every eligible record will contribute
to each of the four segments, before anything is written. When a record is
split, every partition re-emits its own vertices, one per index slot, so
the vertex, normal and color contributions follow the index count rather
than the source vertex count.
"""

import logging
from typing import Iterable, List, Tuple

from .colors import record_has_colors
from .geometry import GeometryRecord
from .policy import COLOR_SIZE, FLOAT_VEC3_SIZE, PackingPolicy
from .segments import SegmentSizes

logger = logging.getLogger(__name__)


def partition_ranges(n_indices: int, policy: PackingPolicy) -> List[Tuple[int, int]]:
    """
    Index ranges [start, stop) of the primitives a record is emitted as.

    A record that fits the policy yields a single range covering all of it.
    """
    if not policy.needs_split(n_indices):
        return [(0, n_indices)]
    step = policy.max_indices_per_primitive
    return [
        (start, min(start + step, n_indices))
        for start in range(0, n_indices, step)
    ]


def size_record(record: GeometryRecord, policy: PackingPolicy) -> SegmentSizes:
    """
    Bytes one record adds to each segment.

    Args:
        record: geometry record (already validated)
        policy: active packing policy

    Returns:
        SegmentSizes for this record alone
    """
    n_indices = record.n_indices
    if policy.needs_split(n_indices):
        # One emitted vertex per index slot
        n_emitted = n_indices
    else:
        n_emitted = record.n_vertices

    colors = n_emitted * COLOR_SIZE if record_has_colors(record, policy.synthesize_colors) else 0
    return SegmentSizes(
        indices=n_indices * policy.index_size,
        vertices=n_emitted * FLOAT_VEC3_SIZE,
        normals=n_emitted * FLOAT_VEC3_SIZE,
        colors=colors
    )


def compute_segment_sizes(records: Iterable[GeometryRecord], policy: PackingPolicy) -> SegmentSizes:
    """Sum of size_record over all records, in iteration order."""
    total = SegmentSizes()
    for record in records:
        total = total + size_record(record, policy)
    logger.info(
        f"Segment sizes ({policy.name}): indices={total.indices}, vertices={total.vertices}, "
        f"normals={total.normals}, colors={total.colors}"
    )
    return total
