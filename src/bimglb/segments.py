"""
Fixed-capacity byte segments of the packed body.

The body holds four regions in this order: indices, vertices, normals,
colors. Each region is filled through a PackedSegment whose capacity was
computed by the sizing pass and never changes.
"""

from dataclasses import dataclass
from typing import Dict, Union

import numpy as np

from .errors import InternalConsistencyError

SEGMENT_NAMES = ("indices", "vertices", "normals", "colors")

# Region start offsets in the body are aligned to this many bytes
REGION_ALIGNMENT = 4


def align(value: int, bound: int = REGION_ALIGNMENT) -> int:
    """Round value up to the next multiple of bound."""
    return (value + bound - 1) // bound * bound


class PackedSegment:
    """A byte region with a write cursor that may only move forward."""

    def __init__(self, name: str, capacity: int):
        self.name = name
        self.capacity = capacity
        self.buffer = bytearray(capacity)
        self.cursor = 0

    def __repr__(self):
        return f"PackedSegment({self.name!r}, cursor={self.cursor}, capacity={self.capacity})"

    @property
    def remaining(self) -> int:
        return self.capacity - self.cursor

    def write(self, data: Union[bytes, np.ndarray]) -> int:
        """
        Append bytes at the cursor.

        Returns:
            byte offset at which the data was written
        """
        if isinstance(data, np.ndarray):
            data = data.tobytes()
        size = len(data)
        if size > self.remaining:
            raise InternalConsistencyError(
                f"Segment {self.name!r} overflow: writing {size} bytes at {self.cursor} "
                f"exceeds capacity {self.capacity}"
            )
        offset = self.cursor
        self.buffer[offset:offset + size] = data
        self.cursor += size
        return offset

    def check_full(self) -> None:
        """Raise unless the cursor sits exactly at capacity."""
        if self.cursor != self.capacity:
            raise InternalConsistencyError(
                f"Segment {self.name!r}: not all space used "
                f"(cursor {self.cursor}, capacity {self.capacity})"
            )


@dataclass
class SegmentSizes:
    """Exact byte lengths of the four segments."""
    indices: int = 0
    vertices: int = 0
    normals: int = 0
    colors: int = 0

    def __add__(self, other: "SegmentSizes") -> "SegmentSizes":
        return SegmentSizes(
            indices=self.indices + other.indices,
            vertices=self.vertices + other.vertices,
            normals=self.normals + other.normals,
            colors=self.colors + other.colors
        )

    @property
    def total(self) -> int:
        return self.indices + self.vertices + self.normals + self.colors

    def to_dict(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in SEGMENT_NAMES}


class SegmentLayout:
    """
    Placement of the four segments inside the body.

    Region offsets are aligned to REGION_ALIGNMENT; the gap bytes between
    regions are zero.
    """

    def __init__(self, sizes: SegmentSizes):
        self.sizes = sizes
        self.offsets: Dict[str, int] = {}
        position = 0
        for name in SEGMENT_NAMES:
            position = align(position)
            self.offsets[name] = position
            position += getattr(sizes, name)
        self.body_length = position

    def create_segments(self) -> Dict[str, PackedSegment]:
        return {name: PackedSegment(name, getattr(self.sizes, name)) for name in SEGMENT_NAMES}

    def assemble(self, segments: Dict[str, PackedSegment]) -> bytes:
        """Concatenate full segments into the body."""
        body = bytearray(self.body_length)
        for name in SEGMENT_NAMES:
            segment = segments[name]
            segment.check_full()
            start = self.offsets[name]
            body[start:start + segment.capacity] = segment.buffer
        return bytes(body)

