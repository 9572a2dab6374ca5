"""
Shared fixtures for the packing tests.
"""

import sys
from pathlib import Path

import numpy as np
import pytest
import trimesh

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bimglb.geometry import GeometryRecord, Product, ProductCatalog
from bimglb.io import record_from_trimesh

from gltf_helpers import translation_matrix


@pytest.fixture
def make_soup():
    """
    Factory for random triangle soups.

    Indices reference a random subset of n_vertices vertices, so the index
    count and vertex count vary independently.
    """
    def _make(n_triangles, n_vertices, seed=0, colors=False, transform=None, **kwargs):
        rng = np.random.default_rng(seed)
        vertices = rng.uniform(-10.0, 10.0, size=(n_vertices, 3))
        normals = rng.normal(size=(n_vertices, 3))
        normals /= np.linalg.norm(normals, axis=1, keepdims=True)
        indices = rng.integers(0, n_vertices, size=n_triangles * 3)
        colors_quantized = None
        if colors:
            colors_quantized = rng.integers(0, 256, size=(n_vertices, 4), dtype=np.uint8)
        return GeometryRecord(
            indices=indices,
            vertices=vertices,
            normals=normals,
            transform=np.eye(4) if transform is None else transform,
            colors_quantized=colors_quantized,
            **kwargs
        )
    return _make


@pytest.fixture
def box_record():
    """Unit cube: 8 vertices, 12 triangles."""
    return record_from_trimesh(trimesh.creation.box())


@pytest.fixture
def simple_catalog():
    """Two walls, a slab and a colored proxy, spread along X."""
    products = []
    for oid, (class_name, x) in enumerate([
        ("IfcWall", 0.0),
        ("IfcWall", 4.0),
        ("IfcSlab", 8.0),
    ]):
        products.append(Product(
            oid=oid,
            class_name=class_name,
            global_id=f"guid-{oid}",
            geometry=record_from_trimesh(trimesh.creation.box(), translation_matrix(x, 0.0, 0.0))
        ))

    colored = trimesh.creation.box()
    colored.visual.vertex_colors = np.tile([200, 10, 10, 255], (len(colored.vertices), 1)).astype(np.uint8)
    products.append(Product(
        oid=3,
        class_name="IfcBuildingElementProxy",
        global_id="guid-3",
        geometry=record_from_trimesh(colored, translation_matrix(12.0, 0.0, 0.0))
    ))
    return ProductCatalog(products)
