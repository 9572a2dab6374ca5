"""
bimglb: pack building-model geometry into binary glTF containers.

Pipeline (whole scene in memory, nothing emitted until the end):
- Extents -> recentering translation
- Segment sizing -> exact byte capacities
- Mesh packing -> indices / vertices / normals / colors segments
- Scene assembly -> descriptive JSON tree
- Container framing -> binary glTF 1.0 or GLB 2.0 bytes
"""

from .config import ContainerFormat, ExportConfig, DEFAULT_CONFIG
from .errors import (
    PackingError, InputGeometryError, InternalConsistencyError, MatrixSingularityWarning
)
from .geometry import GeometryRecord, Product, ProductCatalog
from .policy import PackingPolicy, BINARY_GLTF_1, GLB_2, policy_for
from .serializer import BinaryGltfSerializer, SerializationResult, PackStatistics, serialize_catalog
from .io import load_catalog, save_glb, record_from_trimesh

__version__ = "0.1.0"

__all__ = [
    'ContainerFormat', 'ExportConfig', 'DEFAULT_CONFIG',
    'PackingError', 'InputGeometryError', 'InternalConsistencyError', 'MatrixSingularityWarning',
    'GeometryRecord', 'Product', 'ProductCatalog',
    'PackingPolicy', 'BINARY_GLTF_1', 'GLB_2', 'policy_for',
    'BinaryGltfSerializer', 'SerializationResult', 'PackStatistics', 'serialize_catalog',
    'load_catalog', 'save_glb', 'record_from_trimesh',
]
