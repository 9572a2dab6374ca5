"""
Binary container framing.

Variant A, binary glTF 1.0 (20-byte header, no padding):

    "glTF" | version u32 | total length u32 | scene length u32 | format u32 = 0
    JSON bytes | body bytes

Variant B, GLB 2.0 (12-byte header, two chunks):

    magic u32 | version u32 = 2 | total length u32
    chunk length u32 | "JSON" u32 | JSON bytes padded with spaces
    chunk length u32 | "BIN\\0" u32 | body bytes padded with zeros

All integers are little-endian. Chunk lengths include their padding.
Framing only starts once both payloads are final, since their lengths
go into the header.
"""

import struct

from .policy import PackingPolicy

MAGIC_ASCII = b"glTF"
GLB_MAGIC = 0x46546C67
JSON_CHUNK = 0x4E4F534A
BINARY_CHUNK = 0x004E4942
SCENE_FORMAT_JSON = 0

BINARY_GLTF_1_HEADER_LENGTH = 20
GLB_HEADER_LENGTH = 12
CHUNK_HEADER_LENGTH = 8


def pad_to_alignment(data: bytes, fill: bytes, bound: int = 4) -> bytes:
    """
    Pad data with the fill byte so that len(result) % bound == 0.
    """
    remainder = len(data) % bound
    if remainder == 0:
        return data
    return data + fill * (bound - remainder)


def frame_binary_gltf_1(scene: bytes, body: bytes, version: int = 1) -> bytes:
    """Frame a scene and body as binary glTF 1.0."""
    total_length = BINARY_GLTF_1_HEADER_LENGTH + len(scene) + len(body)
    header = struct.pack(
        "<4sIIII",
        MAGIC_ASCII,
        version,
        total_length,
        len(scene),
        SCENE_FORMAT_JSON
    )
    return b"".join([header, scene, body])


def _chunk(chunk_type: int, data: bytes, fill: bytes) -> bytes:
    padded = pad_to_alignment(data, fill)
    return struct.pack("<II", len(padded), chunk_type) + padded


def frame_glb_2(scene: bytes, body: bytes, version: int = 2) -> bytes:
    """Frame a scene and body as a GLB 2.0 file with JSON and BIN chunks."""
    json_chunk = _chunk(JSON_CHUNK, scene, b" ")
    binary_chunk = _chunk(BINARY_CHUNK, body, b"\x00")
    total_length = GLB_HEADER_LENGTH + len(json_chunk) + len(binary_chunk)
    header = struct.pack("<III", GLB_MAGIC, version, total_length)
    return b"".join([header, json_chunk, binary_chunk])


def frame_container(policy: PackingPolicy, scene: bytes, body: bytes) -> bytes:
    """Frame according to the policy's container variant."""
    if policy.container_version == 1:
        return frame_binary_gltf_1(scene, body, version=policy.container_version)
    return frame_glb_2(scene, body, version=policy.container_version)
