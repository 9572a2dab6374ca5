"""
Tests for segment sizing and mesh packing.

Tests cover:
- PackedSegment cursor rules
- SegmentLayout region alignment
- Partition ranges and per-record sizing for both policies
- Capacity exactness between the sizing and packing passes
- Split correctness and index range safety
"""

import math
from dataclasses import replace

import numpy as np
import pytest

from bimglb.errors import InputGeometryError, InternalConsistencyError
from bimglb.geometry import GeometryRecord, Product
from bimglb.packer import MeshPacker
from bimglb.policy import BINARY_GLTF_1, GLB_2
from bimglb.scene import SceneAssembler
from bimglb.segments import PackedSegment, SegmentLayout, SegmentSizes, align
from bimglb.sizer import compute_segment_sizes, partition_ranges, size_record

from gltf_helpers import mesh_triangles

MAX_INDICES = BINARY_GLTF_1.max_indices_per_primitive


def pack(records, policy, sizes=None):
    """Run the sizing and packing passes; return (packer, assembler, layout)."""
    pairs = [(Product(oid=i, class_name="IfcWall"), r) for i, r in enumerate(records)]
    if sizes is None:
        sizes = compute_segment_sizes(records, policy)
    layout = SegmentLayout(sizes)
    assembler = SceneAssembler(policy)
    assembler.create_root([0.0, 0.0, 0.0])
    assembler.create_buffer_views(layout)
    packer = MeshPacker(policy, layout, assembler)
    packer.pack(pairs)
    return packer, assembler, layout


# ============== Segment Tests ==============

class TestPackedSegment:
    """Test the fixed-capacity write cursor."""

    def test_write_advances_cursor(self):
        segment = PackedSegment("indices", 8)
        assert segment.write(b"\x01\x02\x03\x04") == 0
        assert segment.write(np.array([7], dtype="<u4")) == 4
        assert segment.cursor == 8
        assert bytes(segment.buffer) == b"\x01\x02\x03\x04\x07\x00\x00\x00"
        segment.check_full()

    def test_overflow_is_fatal(self):
        segment = PackedSegment("vertices", 4)
        with pytest.raises(InternalConsistencyError, match="overflow"):
            segment.write(b"\x00" * 5)

    def test_underfill_is_fatal(self):
        segment = PackedSegment("normals", 4)
        segment.write(b"\x00" * 3)
        with pytest.raises(InternalConsistencyError, match="not all space used"):
            segment.check_full()


class TestSegmentLayout:
    """Test region placement in the body."""

    def test_align(self):
        assert align(0) == 0
        assert align(1) == 4
        assert align(8) == 8
        assert align(10) == 12

    def test_regions_are_aligned(self):
        layout = SegmentLayout(SegmentSizes(indices=6, vertices=36, normals=36, colors=12))
        assert layout.offsets == {"indices": 0, "vertices": 8, "normals": 44, "colors": 80}
        assert layout.body_length == 92

    def test_sizes_add(self):
        total = SegmentSizes(1, 2, 3, 4) + SegmentSizes(10, 20, 30, 40)
        assert total.to_dict() == {"indices": 11, "vertices": 22, "normals": 33, "colors": 44}
        assert total.total == 110


# ============== Sizer Tests ==============

class TestPartitionRanges:
    """Test index partitioning."""

    def test_unconstrained_never_splits(self):
        assert partition_ranges(100000, GLB_2) == [(0, 100000)]

    def test_at_threshold_not_split(self):
        assert partition_ranges(MAX_INDICES, BINARY_GLTF_1) == [(0, MAX_INDICES)]

    def test_over_threshold(self):
        ranges = partition_ranges(MAX_INDICES * 2 + 3, BINARY_GLTF_1)
        assert ranges == [
            (0, MAX_INDICES),
            (MAX_INDICES, 2 * MAX_INDICES),
            (2 * MAX_INDICES, 2 * MAX_INDICES + 3),
        ]

    @pytest.mark.parametrize("n_indices", [16392, 20001 * 3, 50000 * 3])
    def test_partition_count(self, n_indices):
        assert len(partition_ranges(n_indices, BINARY_GLTF_1)) == math.ceil(n_indices / MAX_INDICES)

    def test_partitions_hold_whole_triangles(self):
        for start, stop in partition_ranges(40000 * 3, BINARY_GLTF_1):
            assert start % 3 == 0
            assert (stop - start) % 3 == 0


class TestSizeRecord:
    """Test per-record segment sizes."""

    def test_box_unconstrained(self, box_record):
        sizes = size_record(box_record, GLB_2)
        # 36 indices, 8 vertices, synthesized colors
        assert sizes.to_dict() == {"indices": 144, "vertices": 96, "normals": 96, "colors": 32}

    def test_box_width_limited(self, box_record):
        sizes = size_record(box_record, BINARY_GLTF_1)
        # No vertex colors, nothing synthesized
        assert sizes.to_dict() == {"indices": 72, "vertices": 96, "normals": 96, "colors": 0}

    def test_width_limited_keeps_quantized_colors(self, make_soup):
        record = make_soup(n_triangles=10, n_vertices=12, colors=True)
        assert size_record(record, BINARY_GLTF_1).colors == 12 * 4

    def test_split_sizes_follow_index_count(self, make_soup):
        """Split records duplicate one vertex per index slot."""
        record = make_soup(n_triangles=6000, n_vertices=3000, colors=True)
        sizes = size_record(record, BINARY_GLTF_1)
        assert sizes.indices == 18000 * 2
        assert sizes.vertices == 18000 * 12
        assert sizes.normals == 18000 * 12
        assert sizes.colors == 18000 * 4

    def test_same_record_unsplit_under_unconstrained(self, make_soup):
        record = make_soup(n_triangles=6000, n_vertices=3000)
        sizes = size_record(record, GLB_2)
        assert sizes.vertices == 3000 * 12
        assert sizes.colors == 3000 * 4


# ============== Packer Tests ==============

class TestMeshPacker:
    """Test the packing pass."""

    def test_box_unconstrained(self, box_record):
        packer, assembler, layout = pack([box_record], GLB_2)
        segments = packer.segments

        indices = np.frombuffer(bytes(segments["indices"].buffer), dtype="<u4")
        np.testing.assert_array_equal(indices, box_record.indices)

        vertices = np.frombuffer(bytes(segments["vertices"].buffer), dtype="<f4").reshape(-1, 3)
        np.testing.assert_allclose(vertices, box_record.vertex_array, rtol=1e-6)

        colors = np.frombuffer(bytes(segments["colors"].buffer), dtype=np.uint8).reshape(-1, 4)
        assert (colors == [50, 50, 50, 255]).all()

        assert packer.n_meshes == 1
        assert packer.n_split_objects == 0

    def test_box_width_limited(self, box_record):
        packer, assembler, layout = pack([box_record], BINARY_GLTF_1)
        indices = np.frombuffer(bytes(packer.segments["indices"].buffer), dtype="<u2")
        np.testing.assert_array_equal(indices, box_record.indices)
        assert packer.segments["colors"].capacity == 0

    @pytest.mark.parametrize("policy", [GLB_2, BINARY_GLTF_1])
    @pytest.mark.parametrize("seed", range(6))
    def test_capacity_exactness(self, make_soup, policy, seed):
        """Every segment ends exactly full for random record sets."""
        rng = np.random.default_rng(seed)
        records = []
        for i in range(int(rng.integers(1, 6))):
            n_triangles = int(rng.choice([1, 7, 300, 5463, 5464, 9000]))
            records.append(make_soup(
                n_triangles=n_triangles,
                n_vertices=int(rng.integers(3, 2000)),
                seed=seed * 100 + i,
                colors=bool(rng.integers(0, 2))
            ))

        packer, _, _ = pack(records, policy)
        sizes = compute_segment_sizes(records, policy)
        for name, segment in packer.segments.items():
            assert segment.cursor == segment.capacity == getattr(sizes, name)

    def test_sizing_mismatch_is_fatal(self, make_soup):
        records = [make_soup(n_triangles=10, n_vertices=10, seed=s) for s in range(3)]
        too_small = compute_segment_sizes(records[:2], GLB_2)
        with pytest.raises(InternalConsistencyError):
            pack(records, GLB_2, sizes=too_small)

    def test_oversized_capacity_is_fatal(self, make_soup):
        records = [make_soup(n_triangles=10, n_vertices=10, seed=s) for s in range(3)]
        too_large = compute_segment_sizes(records + records[:1], GLB_2)
        with pytest.raises(InternalConsistencyError, match="not all space used"):
            pack(records, GLB_2, sizes=too_large)

    def test_policy_mismatch_is_fatal(self, make_soup):
        records = [make_soup(n_triangles=10, n_vertices=10)]
        with pytest.raises(InternalConsistencyError):
            pack(records, BINARY_GLTF_1, sizes=compute_segment_sizes(records, GLB_2))

    def test_index_too_large_for_short(self):
        n_vertices = 40000
        record = GeometryRecord(
            indices=[0, 1, 35000],
            vertices=np.zeros(n_vertices * 3),
            normals=np.zeros(n_vertices * 3)
        )
        with pytest.raises(InputGeometryError, match="Index too large"):
            pack([record], BINARY_GLTF_1)

    def test_same_index_fits_unconstrained(self):
        n_vertices = 40000
        record = GeometryRecord(
            indices=[0, 1, 35000],
            vertices=np.zeros(n_vertices * 3),
            normals=np.zeros(n_vertices * 3)
        )
        packer, _, _ = pack([record], GLB_2)
        indices = np.frombuffer(bytes(packer.segments["indices"].buffer), dtype="<u4")
        np.testing.assert_array_equal(indices, [0, 1, 35000])


class TestSplitting:
    """Test partitioning of records over the 16-bit index limit."""

    @pytest.fixture
    def large_record(self, make_soup):
        # 18000 indices over 20000 vertices: too many indices, and values past 16 bits
        return make_soup(n_triangles=6000, n_vertices=20000, seed=7, colors=True)

    def test_partition_meshes(self, large_record):
        packer, assembler, _ = pack([large_record], BINARY_GLTF_1)
        tree = assembler.tree.root

        assert packer.n_split_objects == 1
        assert packer.n_meshes == 2
        node = tree["nodes"]["node_0"]
        assert node["meshes"] == ["mesh_0_0", "mesh_0_1"]

    def test_local_indices_restart_at_zero(self, large_record):
        packer, assembler, _ = pack([large_record], BINARY_GLTF_1)
        indices = np.frombuffer(bytes(packer.segments["indices"].buffer), dtype="<u2")
        np.testing.assert_array_equal(indices[:MAX_INDICES], np.arange(MAX_INDICES))
        np.testing.assert_array_equal(indices[MAX_INDICES:], np.arange(18000 - MAX_INDICES))
        assert indices.max() < 2 ** 16

    def test_triangles_reproduced(self, large_record):
        """Partitions in order resolve to the source triangles."""
        packer, assembler, layout = pack([large_record], BINARY_GLTF_1)
        tree = assembler.tree.root
        body = layout.assemble(packer.segments)

        emitted = np.concatenate([
            mesh_triangles(tree, body, ref) for ref in tree["nodes"]["node_0"]["meshes"]
        ])
        expected = large_record.vertex_array[large_record.indices].reshape(-1, 3, 3).astype(np.float32)
        np.testing.assert_array_equal(emitted, expected)

    def test_colors_duplicated_per_slot(self, large_record):
        packer, _, _ = pack([large_record], BINARY_GLTF_1)
        colors = np.frombuffer(bytes(packer.segments["colors"].buffer), dtype=np.uint8).reshape(-1, 4)
        np.testing.assert_array_equal(colors, large_record.color_array[large_record.indices])

    def test_accessor_offsets_follow_cursor(self, large_record):
        _, assembler, _ = pack([large_record], BINARY_GLTF_1)
        tree = assembler.tree.root
        second = tree["meshes"]["mesh_0_1"]["primitives"][0]
        assert tree["accessors"][second["indices"]]["byteOffset"] == MAX_INDICES * 2
        assert tree["accessors"][second["attributes"]["POSITION"]]["byteOffset"] == MAX_INDICES * 12
        assert tree["accessors"][second["attributes"]["COLOR"]]["byteOffset"] == MAX_INDICES * 4

    def test_indexed_layout_uses_child_nodes(self, large_record):
        """A split under an index-array tree hangs partitions off child nodes."""
        policy = replace(GLB_2, max_indices_per_primitive=MAX_INDICES)
        packer, assembler, _ = pack([large_record], policy)
        nodes = assembler.tree.root["nodes"]
        # translation, rotation, two partition children, object node
        object_node = nodes[-1]
        assert "mesh" not in object_node
        assert [nodes[c]["mesh"] for c in object_node["children"]] == [0, 1]
