"""
Camera projection models.

This package provides the pinhole projection with pluggable lens
distortion, the projection status type and versioned persistence.

Classes:
    PinholeProjection: 3D <-> 2D mapping with Jacobians.
    Distortion: Base class of the distortion models.
    RadTanDistortion, EquidistantDistortion, FisheyeDistortion, NoDistortion.
    ProjectionResult, Status: Outcome of a status-returning projection.

Example Usage:
    >>> from camgeom.cameras import PinholeProjection, RadTanDistortion
    >>> camera = PinholeProjection(400, 400, 320, 240, 640, 480,
    ...                            RadTanDistortion.create_test_distortion())
    >>> keypoint, result = camera.project3([0.0, 0.0, 1.0])
    >>> result.is_keypoint_visible()
    True
"""

from .distortion import (
    Distortion,
    NoDistortion,
    RadTanDistortion,
    EquidistantDistortion,
    FisheyeDistortion,
    create_distortion,
    distortion_from_config,
)
from .projection_result import ProjectionResult, Status
from .pinhole import PinholeProjection
from .serialization import (
    SERIALIZATION_VERSION,
    UnsupportedVersionError,
    to_dict,
    from_dict,
    save_projection,
    load_projection,
)

__all__ = [
    "Distortion",
    "NoDistortion",
    "RadTanDistortion",
    "EquidistantDistortion",
    "FisheyeDistortion",
    "create_distortion",
    "distortion_from_config",
    "ProjectionResult",
    "Status",
    "PinholeProjection",
    "SERIALIZATION_VERSION",
    "UnsupportedVersionError",
    "to_dict",
    "from_dict",
    "save_projection",
    "load_projection",
]
