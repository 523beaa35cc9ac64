"""Shared constants and paths for rigforge."""

from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
ASSETS_DIR = PROJECT_ROOT / "assets"
RIGS_DIR = ASSETS_DIR / "rigs"

# IK defaults (tuned for interactive dragging at roughly unit model scale)
DEFAULT_IK_DAMPING = 0.01
IK_METHODS = ("damped_least_squares", "pseudoinverse")
JACOBIAN_MODES = ("autodiff", "central_difference")
FINITE_DIFFERENCE_STEP = 1e-4  # degrees

# Skinning
SKINNING_METHODS = ("dual_quaternion", "linear_blend")
MIN_INFLUENCES_PER_VERTEX = 2
SKINNING_NORM_EPS = 1e-12  # below this the blended rotation is degenerate

# Headless driver defaults
DEFAULT_FRAMES = 20
