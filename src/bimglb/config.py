"""
Configuration for scene export.

The container format selects the packing policy:
- binary_gltf_1: binary glTF 1.0, 16-bit indices, large meshes split
- glb_2 (default): GLB 2.0, 32-bit indices, colors on every vertex
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict
import json
from pathlib import Path

import yaml

from .policy import PackingPolicy, policy_for


class ContainerFormat(Enum):
    """
    Output container variants.

    BINARY_GLTF_1: KHR_binary_glTF container, version 1
        - ASCII "glTF" magic, 20-byte header, no padding
        - Meshes over 16389 indices are split into partitions

    GLB_2: GLB container, version 2
        - JSON and BIN chunks, 4-byte aligned
        - Single primitive per object, 32-bit indices
    """
    BINARY_GLTF_1 = "binary_gltf_1"
    GLB_2 = "glb_2"


@dataclass
class ExportConfig:
    """
    Settings for one export run.
    """

    container_format: ContainerFormat = ContainerFormat.GLB_2

    # Written to asset.generator
    generator: str = "bimglb"

    # tqdm progress bar over the packing pass
    show_progress: bool = False

    # Write a .json statistics sidecar next to the output
    write_metadata: bool = True

    output_dir: Path = field(default_factory=lambda: Path("outputs"))

    @property
    def policy(self) -> PackingPolicy:
        return policy_for(self.container_format.value)

    def get_output_path(self, stem: str) -> Path:
        """Output path for a model with the given file stem."""
        return self.output_dir / f"{stem}.glb"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "container_format": self.container_format.value,
            "generator": self.generator,
            "show_progress": self.show_progress,
            "write_metadata": self.write_metadata,
            "output_dir": str(self.output_dir)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportConfig":
        data = dict(data)
        data["container_format"] = ContainerFormat(data.get("container_format", "glb_2"))
        data["output_dir"] = Path(data.get("output_dir", "outputs"))
        return cls(**data)

    @classmethod
    def from_file(cls, path: Path) -> "ExportConfig":
        """Load config from a JSON or YAML file."""
        path = Path(path)
        with open(path) as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
        return cls.from_dict(data)

    def save(self, path: Path) -> None:
        """Save config to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


# Global default config
DEFAULT_CONFIG = ExportConfig()
