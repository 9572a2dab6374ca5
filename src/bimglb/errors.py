"""
Error types raised while packing a scene.

Every fatal condition surfaces to the caller as a PackingError subclass.
Singular node matrices are not fatal: they are collected as
MatrixSingularityWarning instances and returned with the result.
"""

from typing import Optional


class PackingError(Exception):
    """A scene could not be packed. No output is produced."""


class InputGeometryError(PackingError):
    """
    The geometry handed to the packer cannot be encoded.

    Raised for missing vertex/normal buffers, malformed array lengths,
    index values outside the active index width, and catalogs without
    any eligible geometry.
    """


class InternalConsistencyError(PackingError):
    """
    The sizing pass and the packing pass disagree about segment lengths.

    Never tolerated: a mismatch means the two passes walked different
    records or applied different rules.
    """


class MatrixSingularityWarning(UserWarning):
    """An object transform could not be inverted and was left off its node."""

    def __init__(self, oid: int, global_id: Optional[str] = None):
        self.oid = oid
        self.global_id = global_id
        label = f"{oid}" if global_id is None else f"{oid} ({global_id})"
        super().__init__(f"Could not invert matrix of object {label}, omitting")

    def to_dict(self):
        return {
            "type": "MatrixSingularityWarning",
            "oid": self.oid,
            "global_id": self.global_id,
            "message": str(self),
        }
