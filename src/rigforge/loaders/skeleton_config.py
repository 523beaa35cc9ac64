"""Rest-pose skeleton configuration parser.

File layout (whitespace separated, no headers)::

    <N translations, 3 floats each>
    <N rest Euler angles in degrees, 3 floats each>
    <N joint-orientation Euler angles in degrees, 3 floats each>
    [<N rotation-order codes: xyz, yzx, zxy, xzy, yxz, zyx>]

One attribute per line is the usual layout but line breaks carry no
meaning.  Without the optional block every joint uses XYZ.
"""

from dataclasses import dataclass
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from rigforge.core.errors import SkeletonLoadError
from rigforge.core.math_utils import RotationOrder


@dataclass
class RestConfig:
    """Rest translations, Euler angles, joint orients and rotation orders."""
    translations: NDArray[np.float64]       # (N, 3)
    euler_angles: NDArray[np.float64]       # (N, 3) degrees
    joint_orients: NDArray[np.float64]      # (N, 3) degrees, XYZ order
    rotation_orders: list[RotationOrder]

    @property
    def num_joints(self) -> int:
        return len(self.translations)


def parse_rest_config(text: str, num_joints: int) -> RestConfig:
    """Parse rest-configuration text for ``num_joints`` joints."""
    tokens = text.split()
    n_floats = 9 * num_joints
    if len(tokens) < n_floats:
        raise SkeletonLoadError(
            f"Rest config has {len(tokens)} values, expected at least "
            f"{n_floats} for {num_joints} joints"
        )
    try:
        values = np.array([float(t) for t in tokens[:n_floats]], dtype=np.float64)
    except ValueError as e:
        raise SkeletonLoadError(f"Rest config contains a non-numeric value: {e}") from e
    blocks = values.reshape(3, num_joints, 3)

    # Codes are three letters each; tolerate them being run together.
    codes = "".join(tokens[n_floats:])
    if not codes:
        orders = [RotationOrder.XYZ] * num_joints
    else:
        if len(codes) != 3 * num_joints:
            raise SkeletonLoadError(
                f"Rest config has {len(codes) / 3:g} rotation-order codes, "
                f"expected {num_joints}"
            )
        orders = []
        for i in range(num_joints):
            code = codes[3 * i:3 * i + 3]
            try:
                orders.append(RotationOrder.parse(code))
            except ValueError as e:
                raise SkeletonLoadError(
                    f"Unknown rotation order {code!r} for joint {i}"
                ) from e

    return RestConfig(
        translations=blocks[0].copy(),
        euler_angles=blocks[1].copy(),
        joint_orients=blocks[2].copy(),
        rotation_orders=orders,
    )


def load_rest_config(path, num_joints: int) -> RestConfig:
    """Load a rest-configuration file from disk."""
    return parse_rest_config(Path(path).read_text(), num_joints)
