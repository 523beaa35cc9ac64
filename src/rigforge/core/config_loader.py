"""JSON rig configuration loading.

A rig config names the mesh, skeleton and weight files plus the IK handles
and solver options.  Relative paths resolve against the config file's
directory::

    {
      "mesh": "bar.obj",
      "joint_hierarchy": "skeleton.hierarchy",
      "rest_transforms": "skeleton.config",
      "skinning_weights": "skinning.weights",
      "ik_joint_ids": [2],
      "ik": {"damping": 0.01, "method": "damped_least_squares", "jacobian": "autodiff"},
      "skinning": {"method": "dual_quaternion"}
    }
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rigforge.constants import (
    DEFAULT_IK_DAMPING,
    IK_METHODS,
    JACOBIAN_MODES,
    RIGS_DIR,
    SKINNING_METHODS,
)
from rigforge.core.errors import ConfigError

_REQUIRED_FILES = ("mesh", "joint_hierarchy", "rest_transforms", "skinning_weights")


@dataclass
class RigConfig:
    """Resolved rig configuration."""
    mesh: Path
    joint_hierarchy: Path
    rest_transforms: Path
    skinning_weights: Path
    ik_joint_ids: list[int]
    ik_damping: float = DEFAULT_IK_DAMPING
    ik_method: str = "damped_least_squares"
    jacobian: str = "autodiff"
    skinning_method: str = "dual_quaternion"

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path = Path(".")) -> "RigConfig":
        missing = [key for key in _REQUIRED_FILES + ("ik_joint_ids",) if key not in data]
        if missing:
            raise ConfigError(f"Rig config is missing {', '.join(missing)}")

        ids = data["ik_joint_ids"]
        if not isinstance(ids, list) or not ids or not all(isinstance(i, int) for i in ids):
            raise ConfigError("ik_joint_ids must be a non-empty list of joint indices")

        ik = data.get("ik", {})
        skinning = data.get("skinning", {})
        if not isinstance(ik, dict) or not isinstance(skinning, dict):
            raise ConfigError("ik and skinning sections must be JSON objects")
        config = cls(
            **{key: base_dir / data[key] for key in _REQUIRED_FILES},
            ik_joint_ids=list(ids),
            ik_damping=float(ik.get("damping", DEFAULT_IK_DAMPING)),
            ik_method=ik.get("method", "damped_least_squares"),
            jacobian=ik.get("jacobian", "autodiff"),
            skinning_method=skinning.get("method", "dual_quaternion"),
        )
        if config.ik_method not in IK_METHODS:
            raise ConfigError(f"Unknown ik.method {config.ik_method!r}")
        if config.jacobian not in JACOBIAN_MODES:
            raise ConfigError(f"Unknown ik.jacobian {config.jacobian!r}")
        if config.skinning_method not in SKINNING_METHODS:
            raise ConfigError(f"Unknown skinning.method {config.skinning_method!r}")
        if config.ik_damping <= 0 and config.ik_method == "damped_least_squares":
            raise ConfigError("ik.damping must be positive")
        return config


def load_json(path: Path) -> Any:
    """Load and return parsed JSON from a file."""
    with open(path) as f:
        return json.load(f)


def load_rig_config(path) -> RigConfig:
    """Load a rig config file; paths inside it are relative to its directory."""
    path = Path(path)
    try:
        data = load_json(path)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Rig config {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Rig config {path} must be a JSON object")
    return RigConfig.from_dict(data, base_dir=path.parent)


def load_builtin_rig(name: str) -> RigConfig:
    """Load a rig shipped under assets/rigs/<name>/rig.json."""
    return load_rig_config(RIGS_DIR / name / "rig.json")
