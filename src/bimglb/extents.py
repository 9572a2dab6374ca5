"""
World-space extent accumulation and scene recentering.

The scene root is translated so the center of the global axis-aligned
bounding box lands on the origin. The translation is chosen before the
axis-correction rotation is applied above it, so the result is only close
to the origin, not centered on it exactly. Consumers already rely on this
offset convention; keep it.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

import numpy as np

from .geometry import GeometryRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Extents:
    """Running axis-aligned bounds. Folding returns a new value."""
    min: np.ndarray
    max: np.ndarray

    @classmethod
    def empty(cls) -> "Extents":
        return cls(
            min=np.full(3, np.inf),
            max=np.full(3, -np.inf)
        )

    @property
    def is_empty(self) -> bool:
        return bool(np.any(self.min > self.max))

    def include_points(self, points: np.ndarray) -> "Extents":
        """Fold an Nx3 array of world-space points into the bounds."""
        if len(points) == 0:
            return self
        return Extents(
            min=np.minimum(self.min, points.min(axis=0)),
            max=np.maximum(self.max, points.max(axis=0))
        )

    def include(self, record: GeometryRecord) -> "Extents":
        """Fold a record's vertices, transformed to world space."""
        if record.vertices is None or record.n_vertices == 0:
            return self
        return self.include_points(record.world_vertices())

    @property
    def center(self) -> np.ndarray:
        return self.min + (self.max - self.min) / 2.0

    @property
    def translation(self) -> np.ndarray:
        """Translation that moves the bounding box center to the origin."""
        if self.is_empty:
            return np.zeros(3)
        return -self.center

    def to_dict(self) -> Dict[str, Tuple[float, float]]:
        """Return bounds for each axis."""
        return {
            axis: (float(self.min[i]), float(self.max[i]))
            for i, axis in enumerate("xyz")
        }


def accumulate_extents(records: Iterable[GeometryRecord]) -> Extents:
    """
    Compute the world-space bounds of a set of records.

    Args:
        records: geometry records, each carrying its own transform

    Returns:
        Extents covering every transformed vertex
    """
    extents = Extents.empty()
    for record in records:
        extents = extents.include(record)
    if extents.is_empty:
        logger.warning("No vertices found while computing extents")
    else:
        logger.info(f"Scene extents: min={extents.min.tolist()}, max={extents.max.tolist()}")
    return extents
