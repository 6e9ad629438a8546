"""
Camera pose estimation from one target observation.

The observed corners are back-projected through the current intrinsics to a
unit-focal-length pinhole view, so OpenCV's PnP solver can be called with an
identity camera matrix and no distortion regardless of the lens model.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from .targets import GridCalibrationTargetObservation
from .transformation import Transformation
from ..utils.logger import get_logger

MIN_PNP_POINTS = 4


def normalized_correspondences(
    projection,
    obs: GridCalibrationTargetObservation,
    logger: Optional[logging.Logger] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build unit-focal-length 2D-3D correspondences.

    Corners that do not back-project to a valid ray in front of the camera
    are dropped.

    Returns:
        Tuple of normalized image points (M, 2) and target points (M, 3).
    """
    logger = logger or get_logger(__name__)
    image_corners = obs.get_corners_image_frame()
    target_corners = obs.get_corners_target_frame()

    image_points = []
    target_points = []
    for i, (image_point, target_point) in enumerate(zip(image_corners, target_corners)):
        back_projection, valid = projection.keypoint_to_euclidean(image_point)
        if valid and back_projection[2] > 0.0:
            image_points.append(back_projection[:2] / back_projection[2])
            target_points.append(target_point)
        else:
            logger.debug(
                "Skipping point %d, observed at %s: projection success %s, "
                "in front of camera %s, back-projection %s, "
                "camera params (fu, fv, cu, cv): %s, %s, %s, %s",
                i, image_point, valid, back_projection[2] > 0.0, back_projection,
                projection.fu, projection.fv, projection.cu, projection.cv,
            )

    return (
        np.array(image_points, dtype=np.float64).reshape(-1, 2),
        np.array(target_points, dtype=np.float64).reshape(-1, 3),
    )


def estimate_transformation(
    projection,
    obs: GridCalibrationTargetObservation,
    logger: Optional[logging.Logger] = None,
) -> Optional[Transformation]:
    """
    Estimate the pose of the camera with respect to the target.

    Args:
        projection: Camera projection with the candidate intrinsics.
        obs: Target observation.
        logger: Logger for diagnostics.

    Returns:
        T_target_camera (takes camera-frame points to the target frame), or
        None when fewer than MIN_PNP_POINTS correspondences remain or the
        solver fails.
    """
    logger = logger or get_logger(__name__)
    image_points, target_points = normalized_correspondences(projection, obs, logger)

    if len(target_points) < MIN_PNP_POINTS:
        logger.debug(
            "At least %d points are needed for calling PnP. Found %d",
            MIN_PNP_POINTS, len(target_points),
        )
        return None

    logger.debug(
        "Calling solvePnP with %d world points and %d image points",
        len(target_points), len(image_points),
    )
    try:
        success, rvec, tvec = cv2.solvePnP(
            target_points, image_points, np.eye(3), np.zeros(4)
        )
    except cv2.error as e:
        logger.debug("solvePnP failed: %s", e)
        return None

    if not success:
        logger.debug("solvePnP did not converge")
        return None

    T_camera_target = Transformation.from_rotation_vector(rvec, tvec.reshape(3))
    T_target_camera = T_camera_target.inverse()
    logger.debug("solvePnP solution:\n%s", T_target_camera.T())
    return T_target_camera
