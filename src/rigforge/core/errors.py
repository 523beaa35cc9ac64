"""Load-time error types.

All of them subclass ``ValueError`` so callers that only care about
"bad input data" can catch that.
"""


class SkeletonLoadError(ValueError):
    """Joint hierarchy or rest configuration is malformed or inconsistent."""


class SkinningLoadError(ValueError):
    """Skinning weight table is malformed or violates the influence invariants."""


class ConfigError(ValueError):
    """Rig configuration file is missing required keys or has bad values."""
