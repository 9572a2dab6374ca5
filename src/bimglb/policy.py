"""
Index-width and container policies.

One packing pipeline serves both container variants. Everything that
differs between them lives in a PackingPolicy:

- BINARY_GLTF_1: binary glTF 1.0 (KHR_binary_glTF). 16-bit indices, so
  large meshes are split into partitions of at most 16389 indices.
- GLB_2: GLB 2.0. 32-bit indices, no splitting, every vertex carries a
  color.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from pygltflib import UNSIGNED_INT, UNSIGNED_SHORT

# Bytes per emitted element
FLOAT_VEC3_SIZE = 12
COLOR_SIZE = 4


@dataclass(frozen=True)
class PackingPolicy:
    """
    Rules shared by the Segment Sizer, Mesh Packer, Scene Assembler and
    Container Framer for one output variant.
    """
    name: str
    index_component_type: int
    index_dtype: str
    max_indices_per_primitive: Optional[int]
    max_index_value: int
    synthesize_colors: bool
    keyed_ids: bool
    normal_bounds: bool
    accessor_strides: bool
    color_attribute: str
    index_bounds: bool
    asset_version: str
    container_version: int

    @property
    def index_size(self) -> int:
        """Bytes per emitted index."""
        return np.dtype(self.index_dtype).itemsize

    @property
    def splits_meshes(self) -> bool:
        return self.max_indices_per_primitive is not None

    def needs_split(self, n_indices: int) -> bool:
        """Whether a record with this many indices must be partitioned."""
        return self.splits_meshes and n_indices > self.max_indices_per_primitive


BINARY_GLTF_1 = PackingPolicy(
    name="binary_gltf_1",
    index_component_type=UNSIGNED_SHORT,
    index_dtype="<u2",
    # Widest multiple of 3 kept well inside the 16-bit range
    max_indices_per_primitive=16389,
    max_index_value=32767,
    synthesize_colors=False,
    keyed_ids=True,
    normal_bounds=True,
    accessor_strides=True,
    color_attribute="COLOR",
    index_bounds=False,
    asset_version="1.0",
    container_version=1,
)

GLB_2 = PackingPolicy(
    name="glb_2",
    index_component_type=UNSIGNED_INT,
    index_dtype="<u4",
    max_indices_per_primitive=None,
    max_index_value=2 ** 32 - 1,
    synthesize_colors=True,
    keyed_ids=False,
    normal_bounds=False,
    accessor_strides=False,
    color_attribute="COLOR_0",
    index_bounds=True,
    asset_version="2.0",
    container_version=2,
)

POLICIES = {
    BINARY_GLTF_1.name: BINARY_GLTF_1,
    GLB_2.name: GLB_2,
}


def policy_for(name: str) -> PackingPolicy:
    """Look up a policy by its container format name."""
    try:
        return POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown container format: {name!r} (expected one of {sorted(POLICIES)})")
