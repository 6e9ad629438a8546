"""
Calibration helpers for pinhole camera models.

This package provides the planar target types, rigid transformations and
the algorithms that bootstrap camera intrinsics from one target observation.

Classes:
    Transformation: Rigid body transformation (rotation, translation).
    GridCalibrationTarget: Planar checkerboard corner grid.
    GridCalibrationTargetObservation: Detected corners of one image.
    PinholeIntrinsicsInitializer: Row-based focal length initialization.

Standalone Functions:
    estimate_transformation: Camera pose from one observation (PnP).
    intersect_circles: Intersection points of two circles.
    fit_circle: Least squares circle fit.

Example Usage:
    >>> from camgeom.calibration import GridCalibrationTarget, PinholeIntrinsicsInitializer
    >>> initializer = PinholeIntrinsicsInitializer(camera)
    >>> success = initializer.initialize(observation)
"""

from .transformation import Transformation
from .targets import GridCalibrationTarget, GridCalibrationTargetObservation
from .pose import estimate_transformation
from .initializer import PinholeIntrinsicsInitializer
from .circle_fit import intersect_circles, fit_circle

__all__ = [
    # Classes
    "Transformation",
    "GridCalibrationTarget",
    "GridCalibrationTargetObservation",
    "PinholeIntrinsicsInitializer",
    # Standalone functions
    "estimate_transformation",
    "intersect_circles",
    "fit_circle",
]
