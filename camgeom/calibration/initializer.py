"""
Pinhole Intrinsics Initialization.

Bootstraps (fu, fv, cu, cv) from a single observation of a planar grid
target, assuming no distortion.

Algorithm:
==========
The principal point is placed at the image center. Each target row is a
straight line in space; through a real (barrel distorted) lens it images to
an arc, which is fitted as a circle. With centered pixel coordinates (u, v)
every corner of one row satisfies

    [u, v, 0.5, -0.5 (u^2 + v^2)] . C = 0

for the row's null vector C (found by SVD). With

    t  = C0^2 + C1^2 + C2 C3,   d = sqrt(1 / t)
    nx = C0 d,  ny = C1 d,      nz = sqrt(1 - nx^2 - ny^2)

(nx, ny, nz) is the normal of the plane through the camera center and the
line, and the focal length is gamma = |C2 d / nz|. Rows where t <= 0 (no
real solution) or where the normal is nearly in the image plane
(hypot(nx, ny) > 0.95, a radial or perfectly straight line) are skipped.

Every candidate gamma is scored by estimating the target pose with PnP and
computing the mean reprojection error; the lowest error wins, the first row
reaching a given minimum keeping the win.
"""

from typing import Tuple

import numpy as np

from .pose import estimate_transformation
from .targets import GridCalibrationTargetObservation
from .transformation import Transformation
from ..utils.logger import LoggerMixin

# Rows with fewer valid corners are skipped
MIN_ROW_CORNERS = 3

# A pose is scored only when at least this many corners reproject
MIN_REPROJECTED_CORNERS = 4

# Rows whose line normal exceeds this in-plane norm are radial
MAX_RADIAL_NORM = 0.95


class PinholeIntrinsicsInitializer(LoggerMixin):
    """
    Row-based focal length initializer for a pinhole projection.

    The projection is modified in place: principal point, resolution and
    focal lengths are set and the distortion is cleared.

    Example:
        >>> initializer = PinholeIntrinsicsInitializer(camera)
        >>> if initializer.initialize(observation):
        ...     print(camera.fu, camera.fv)
    """

    def __init__(self, projection):
        """
        Args:
            projection: PinholeProjection to initialize.
        """
        self.projection = projection

    def initialize(self, obs: GridCalibrationTargetObservation) -> bool:
        """
        Initialize the intrinsics from one observation.

        Args:
            obs: Observation of a grid calibration target.

        Returns:
            bool: True if at least one row produced a usable focal length.
        """
        target = obs.target()
        if target is None:
            self.logger.error("The calibration target observation has no target object")
            return False

        projection = self.projection
        cu = (obs.image_width() - 1.0) / 2.0
        cv = (obs.image_height() - 1.0) / 2.0
        projection.set_intrinsics(
            cu=cu, cv=cv, ru=obs.image_width(), rv=obs.image_height()
        )
        projection.distortion.clear()

        gamma0 = 0.0
        min_reproj_err = np.inf
        success = False

        for r in range(target.rows()):
            gamma = self._estimate_row_focal_length(obs, r, cu, cv)
            if gamma is None:
                continue

            self.logger.debug("Testing a focal length estimate of %s", gamma)
            projection.set_intrinsics(fu=gamma, fv=gamma)

            T_target_camera = estimate_transformation(projection, obs, self.logger)
            if T_target_camera is None:
                self.logger.debug(
                    "Skipping row %d as the transformation estimation failed.", r
                )
                continue

            reproj_err, num_reprojected = self.compute_reprojection_error(obs, T_target_camera)
            if num_reprojected >= MIN_REPROJECTED_CORNERS:
                avg_reproj_err = reproj_err / num_reprojected
                if avg_reproj_err < min_reproj_err:
                    self.logger.debug(
                        "Row %d produced the new best estimate: %s < %s",
                        r, avg_reproj_err, min_reproj_err,
                    )
                    min_reproj_err = avg_reproj_err
                    gamma0 = gamma
                    success = True

        projection.set_intrinsics(fu=gamma0, fv=gamma0)
        return success

    def _estimate_row_focal_length(
        self,
        obs: GridCalibrationTargetObservation,
        row: int,
        cu: float,
        cv: float,
    ):
        """Candidate focal length from one target row, or None if unusable."""
        target = obs.target()
        P = []
        for c in range(target.cols()):
            image_point, valid = obs.image_grid_point(row, c)
            if valid:
                u = image_point[0] - cu
                v = image_point[1] - cv
                P.append([u, v, 0.5, -0.5 * (u * u + v * v)])

        if len(P) < MIN_ROW_CORNERS:
            self.logger.debug(
                "Skipping row %d because it only had %d corners. Minimum: %d",
                row, len(P), MIN_ROW_CORNERS,
            )
            return None

        _, _, vt = np.linalg.svd(np.array(P))
        C = vt[-1]

        t = C[0] * C[0] + C[1] * C[1] + C[2] * C[3]
        if t <= 0:
            self.logger.debug("Skipping a bad SVD solution on row %d", row)
            return None

        d = np.sqrt(1.0 / t)
        nx = C[0] * d
        ny = C[1] * d
        if np.hypot(nx, ny) > MAX_RADIAL_NORM:
            self.logger.debug("Skipping a radial line on row %d", row)
            return None

        nz = np.sqrt(1.0 - nx * nx - ny * ny)
        return float(abs(C[2] * d / nz))

    def compute_reprojection_error(
        self,
        obs: GridCalibrationTargetObservation,
        T_target_camera: Transformation,
    ) -> Tuple[float, int]:
        """
        Summed pixel reprojection error over the detected corners.

        Args:
            obs: Target observation.
            T_target_camera: Camera pose in the target frame.

        Returns:
            Tuple of (summed error, number of corners used). Corners that
            were not detected or do not project validly are not counted.
        """
        T_camera_target = T_target_camera.inverse()
        target = obs.target()

        err = 0.0
        count = 0
        for i in range(target.size()):
            y, observed = obs.image_point(i)
            if not observed:
                continue
            yhat, valid = self.projection.euclidean_to_keypoint(
                T_camera_target * target.point(i)
            )
            if valid:
                err += float(np.linalg.norm(y - yhat))
                count += 1

        return err, count
