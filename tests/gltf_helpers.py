"""
Readers for the two container variants, used to inspect packed output.
"""

import json
import struct

import numpy as np

COMPONENT_DTYPES = {
    5121: np.uint8,
    5123: "<u2",
    5125: "<u4",
    5126: "<f4",
}
TYPE_SIZES = {"SCALAR": 1, "VEC3": 3, "VEC4": 4}


def translation_matrix(x, y, z):
    matrix = np.eye(4)
    matrix[:3, 3] = [x, y, z]
    return matrix


def read_binary_gltf_1(data: bytes):
    """Split a binary glTF 1.0 container into (header, tree, body)."""
    magic, version, total_length, scene_length, scene_format = struct.unpack_from("<4sIIII", data, 0)
    header = {
        "magic": magic,
        "version": version,
        "total_length": total_length,
        "scene_length": scene_length,
        "format": scene_format,
    }
    tree = json.loads(data[20:20 + scene_length].decode("utf-8"))
    body = data[20 + scene_length:]
    return header, tree, body


def read_glb_2(data: bytes):
    """Split a GLB 2.0 container into (header, tree, body)."""
    magic, version, total_length = struct.unpack_from("<III", data, 0)
    json_length, json_type = struct.unpack_from("<II", data, 12)
    tree = json.loads(data[20:20 + json_length].decode("utf-8"))
    bin_start = 20 + json_length
    bin_length, bin_type = struct.unpack_from("<II", data, bin_start)
    body = data[bin_start + 8:bin_start + 8 + bin_length]
    header = {
        "magic": magic,
        "version": version,
        "total_length": total_length,
        "json_length": json_length,
        "json_type": json_type,
        "bin_length": bin_length,
        "bin_type": bin_type,
    }
    return header, tree, body


def read_accessor(tree, body: bytes, ref) -> np.ndarray:
    """Decode an accessor into an array of shape (count, components)."""
    accessor = tree["accessors"][ref]
    view = tree["bufferViews"][accessor["bufferView"]]
    dtype = np.dtype(COMPONENT_DTYPES[accessor["componentType"]])
    components = TYPE_SIZES[accessor["type"]]
    start = view["byteOffset"] + accessor.get("byteOffset", 0)
    count = accessor["count"] * components
    values = np.frombuffer(body, dtype=dtype, count=count, offset=start)
    return values.reshape(accessor["count"], components)


def mesh_triangles(tree, body: bytes, mesh_ref) -> np.ndarray:
    """Resolve every primitive of a mesh into an (n_triangles, 3, 3) position array."""
    triangles = []
    for primitive in tree["meshes"][mesh_ref]["primitives"]:
        indices = read_accessor(tree, body, primitive["indices"]).ravel()
        positions = read_accessor(tree, body, primitive["attributes"]["POSITION"])
        triangles.append(positions[indices].reshape(-1, 3, 3))
    return np.concatenate(triangles)
