"""
Pinhole Projection Model.

This module implements the pinhole camera projection with a pluggable lens
distortion, including the analytic Jacobians needed by calibration and
bundle-adjustment optimizers.

Mathematical Background:
========================

Forward projection of a camera-frame point p = (X, Y, Z):

    rz     = 1 / Z
    m      = (X rz, Y rz)             normalized image plane
    m_d    = distort(m)
    u      = fu * m_d[0] + cu
    v      = fv * m_d[1] + cv

With Jd = d(m_d)/d(m), the 2x3 Jacobian w.r.t. p is:

    | fu Jd00 rz   fu Jd01 rz   -fu (X Jd00 + Y Jd01) rz^2 |
    | fv Jd10 rz   fv Jd11 rz   -fv (X Jd10 + Y Jd11) rz^2 |

Back-projection inverts the affine part, undistorts and returns the ray at
unit depth (m_u[0], m_u[1], 1). Homogeneous points (x, y, z, w) are
projected through their first three coordinates after flipping the sign when
w < 0, so a point with negative weight represents the same ray.

Validity:
=========
A keypoint is valid when 0 <= u < ru and 0 <= v < rv (upper bounds
exclusive). A projection is valid when the keypoint is valid and Z > 0.

Construction parameters are not validated: a zero or negative focal length,
or a non-positive resolution, is accepted and surfaces later as infinite
reciprocals or an empty image box. Keeping the constructor lightweight lets
optimizers build and perturb instances freely.

Thread safety: projection calls only read state. The mutators ``update``,
``set_parameters``, ``resize_intrinsics`` and ``distortion.clear`` are not
synchronized and must not run concurrently with projections.
"""

from typing import Any, List, Mapping, Optional, Sequence, Tuple, Type, Union

import numpy as np

from .distortion import (
    ArrayLike,
    Distortion,
    NoDistortion,
    RadTanDistortion,
    as_vector,
    distortion_from_config,
)
from .projection_result import ProjectionResult, Status
from ..utils.config_loader import get_float, get_int
from ..utils.logger import LoggerMixin


class PinholeProjection(LoggerMixin):
    """
    Pinhole camera projection with lens distortion.

    Attributes:
        fu: Focal length in u direction (pixels).
        fv: Focal length in v direction (pixels).
        cu: Principal point u coordinate (pixels).
        cv: Principal point v coordinate (pixels).
        ru: Image width in pixels.
        rv: Image height in pixels.
        distortion: Owned distortion model.

    Example:
        >>> camera = PinholeProjection(400, 400, 320, 240, 640, 480,
        ...                            RadTanDistortion([-0.28, 0.07, 0.0, 0.0]))
        >>> keypoint, valid = camera.euclidean_to_keypoint([0.1, -0.2, 2.0])
        >>> point, valid = camera.keypoint_to_euclidean(keypoint)
    """

    KEYPOINT_DIMENSION = 2
    INTRINSICS_DIMENSION = 4

    # Depth magnitude below which project3 reports an invalid projection
    MIN_DEPTH = 1e-12

    def __init__(
        self,
        fu: float = 0.0,
        fv: float = 0.0,
        cu: float = 0.0,
        cv: float = 0.0,
        ru: int = 0,
        rv: int = 0,
        distortion: Optional[Distortion] = None,
    ):
        """
        Initialize the projection.

        Args:
            fu, fv: Focal lengths (pixels).
            cu, cv: Principal point (pixels).
            ru, rv: Image resolution (pixels).
            distortion: Distortion model; copied so the projection owns it.
                        NoDistortion when None.
        """
        self._fu = float(fu)
        self._fv = float(fv)
        self._cu = float(cu)
        self._cv = float(cv)
        self._ru = int(ru)
        self._rv = int(rv)
        self._distortion = distortion.copy() if distortion is not None else NoDistortion()
        self._update_temporaries()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "PinholeProjection":
        """
        Create a projection from a configuration mapping.

        Expected keys: fu, fv, cu, cv (float), ru, rv (int) and an optional
        'distortion' block with 'type' and 'parameters'.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If the distortion block is invalid.
        """
        return cls(
            fu=get_float(config, "fu"),
            fv=get_float(config, "fv"),
            cu=get_float(config, "cu"),
            cv=get_float(config, "cv"),
            ru=get_int(config, "ru"),
            rv=get_int(config, "rv"),
            distortion=distortion_from_config(config.get("distortion")),
        )

    @classmethod
    def create_test_projection(
        cls,
        distortion_type: Type[Distortion] = RadTanDistortion,
    ) -> "PinholeProjection":
        """A 640x480 projection with test distortion parameters."""
        return cls(400.0, 400.0, 320.0, 240.0, 640, 480,
                   distortion_type.create_test_distortion())

    def to_config(self) -> dict:
        """Configuration mapping accepted by ``from_config``."""
        return {
            "fu": self._fu,
            "fv": self._fv,
            "cu": self._cu,
            "cv": self._cv,
            "ru": self._ru,
            "rv": self._rv,
            "distortion": self._distortion.to_config(),
        }

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def fu(self) -> float:
        return self._fu

    @property
    def fv(self) -> float:
        return self._fv

    @property
    def cu(self) -> float:
        return self._cu

    @property
    def cv(self) -> float:
        return self._cv

    @property
    def ru(self) -> int:
        return self._ru

    @property
    def rv(self) -> int:
        return self._rv

    @property
    def recip_fu(self) -> float:
        return self._recip_fu

    @property
    def recip_fv(self) -> float:
        return self._recip_fv

    @property
    def fu_over_fv(self) -> float:
        return self._fu_over_fv

    @property
    def distortion(self) -> Distortion:
        return self._distortion

    def image_width(self) -> int:
        return self._ru

    def image_height(self) -> int:
        return self._rv

    def camera_matrix(self) -> np.ndarray:
        """3x3 intrinsic matrix K (distortion not included)."""
        return np.array([
            [self._fu, 0.0, self._cu],
            [0.0, self._fv, self._cv],
            [0.0, 0.0, 1.0],
        ])

    def _update_temporaries(self) -> None:
        # Division by zero gives inf/nan instead of raising
        with np.errstate(divide="ignore", invalid="ignore"):
            self._recip_fu = float(np.float64(1.0) / np.float64(self._fu))
            self._recip_fv = float(np.float64(1.0) / np.float64(self._fv))
            self._fu_over_fv = float(np.float64(self._fu) / np.float64(self._fv))

    # ------------------------------------------------------------------
    # Forward projection
    # ------------------------------------------------------------------

    def euclidean_to_keypoint(
        self,
        p: ArrayLike,
        compute_jacobian: bool = False,
    ) -> Union[Tuple[np.ndarray, bool], Tuple[np.ndarray, bool, np.ndarray]]:
        """
        Project a Euclidean point to a keypoint.

        The keypoint is returned even when the projection is not valid.

        Args:
            p: Point (3,) in the camera frame.
            compute_jacobian: Also return the 2x3 Jacobian w.r.t. p.

        Returns:
            (keypoint, valid) or (keypoint, valid, jacobian). ``valid`` is
            True iff the keypoint lies in the image and p is in front of
            the camera.
        """
        p = as_vector(p, 3)
        with np.errstate(divide="ignore", invalid="ignore"):
            rz = 1.0 / p[2]
            normalized = np.array([p[0] * rz, p[1] * rz])

            if compute_jacobian:
                distorted, Jd = self._distortion.distort(normalized, compute_jacobian=True)
            else:
                distorted = self._distortion.distort(normalized)

            keypoint = np.array([
                self._fu * distorted[0] + self._cu,
                self._fv * distorted[1] + self._cv,
            ])
            valid = self.is_valid(keypoint) and bool(p[2] > 0)

            if not compute_jacobian:
                return keypoint, valid

            rz2 = rz * rz
            J = np.zeros((self.KEYPOINT_DIMENSION, 3))
            J[0, 0] = self._fu * Jd[0, 0] * rz
            J[0, 1] = self._fu * Jd[0, 1] * rz
            J[0, 2] = -self._fu * (p[0] * Jd[0, 0] + p[1] * Jd[0, 1]) * rz2
            J[1, 0] = self._fv * Jd[1, 0] * rz
            J[1, 1] = self._fv * Jd[1, 1] * rz
            J[1, 2] = -self._fv * (p[0] * Jd[1, 0] + p[1] * Jd[1, 1]) * rz2
        return keypoint, valid, J

    def homogeneous_to_keypoint(
        self,
        ph: ArrayLike,
        compute_jacobian: bool = False,
    ) -> Union[Tuple[np.ndarray, bool], Tuple[np.ndarray, bool, np.ndarray]]:
        """
        Project a homogeneous point to a keypoint.

        For w < 0 the point -(x, y, z) is projected. The 2x4 Jacobian is
        taken w.r.t. ph itself, so its left block is negated in that case;
        the column for w is zero.

        Args:
            ph: Homogeneous point (4,).
            compute_jacobian: Also return the 2x4 Jacobian.

        Returns:
            (keypoint, valid) or (keypoint, valid, jacobian).
        """
        ph = as_vector(ph, 4)
        sign = -1.0 if ph[3] < 0 else 1.0

        if not compute_jacobian:
            return self.euclidean_to_keypoint(sign * ph[:3])

        keypoint, valid, Jp = self.euclidean_to_keypoint(sign * ph[:3], compute_jacobian=True)
        J = np.zeros((self.KEYPOINT_DIMENSION, 4))
        J[:, :3] = sign * Jp
        return keypoint, valid, J

    # ------------------------------------------------------------------
    # Back-projection
    # ------------------------------------------------------------------

    def keypoint_to_euclidean(
        self,
        keypoint: ArrayLike,
        compute_jacobian: bool = False,
    ) -> Union[Tuple[np.ndarray, bool], Tuple[np.ndarray, bool, np.ndarray]]:
        """
        Back-project a keypoint to a ray at unit depth.

        Args:
            keypoint: Pixel coordinates (2,).
            compute_jacobian: Also return the 3x2 Jacobian w.r.t. keypoint.

        Returns:
            (point, valid) or (point, valid, jacobian), where ``valid`` is
            the in-image test of the input keypoint.
        """
        keypoint = as_vector(keypoint, 2, "keypoint")
        normalized = np.array([
            (keypoint[0] - self._cu) / self._fu,
            (keypoint[1] - self._cv) / self._fv,
        ])

        if compute_jacobian:
            undistorted, Jd = self._distortion.undistort(normalized, compute_jacobian=True)
        else:
            undistorted = self._distortion.undistort(normalized)

        point = np.array([undistorted[0], undistorted[1], 1.0])
        valid = self.is_valid(keypoint)

        if not compute_jacobian:
            return point, valid

        J = np.zeros((3, self.KEYPOINT_DIMENSION))
        J[0, 0] = self._recip_fu
        J[1, 1] = self._recip_fv
        J[:2, :] = Jd @ J[:2, :]
        return point, valid, J

    def keypoint_to_homogeneous(
        self,
        keypoint: ArrayLike,
        compute_jacobian: bool = False,
    ) -> Union[Tuple[np.ndarray, bool], Tuple[np.ndarray, bool, np.ndarray]]:
        """
        Back-project a keypoint to a homogeneous direction (w = 0).

        Returns:
            (point, valid) or (point, valid, jacobian) with a 4x2 Jacobian.
        """
        result = self.keypoint_to_euclidean(keypoint, compute_jacobian)
        point = np.zeros(4)
        point[:3] = result[0]

        if not compute_jacobian:
            return point, result[1]

        J = np.zeros((4, self.KEYPOINT_DIMENSION))
        J[:3, :] = result[2]
        return point, result[1], J

    # ------------------------------------------------------------------
    # Parameter Jacobians
    # ------------------------------------------------------------------

    def euclidean_to_keypoint_intrinsics_jacobian(self, p: ArrayLike) -> np.ndarray:
        """
        Jacobian of the keypoint w.r.t. (fu, fv, cu, cv), point held fixed.

        Returns:
            np.ndarray: 2x4 Jacobian.
        """
        p = as_vector(p, 3)
        rz = 1.0 / p[2]
        distorted = self._distortion.distort(np.array([p[0] * rz, p[1] * rz]))

        J = np.zeros((self.KEYPOINT_DIMENSION, self.INTRINSICS_DIMENSION))
        J[0, 0] = distorted[0]
        J[0, 2] = 1.0
        J[1, 1] = distorted[1]
        J[1, 3] = 1.0
        return J

    def euclidean_to_keypoint_distortion_jacobian(self, p: ArrayLike) -> np.ndarray:
        """
        Jacobian of the keypoint w.r.t. the distortion parameters.

        Returns:
            np.ndarray: 2xD Jacobian, D = distortion.minimal_dimensions().
        """
        p = as_vector(p, 3)
        rz = 1.0 / p[2]
        J = self._distortion.distort_parameter_jacobian(np.array([p[0] * rz, p[1] * rz]))
        J[0, :] *= self._fu
        J[1, :] *= self._fv
        return J

    def homogeneous_to_keypoint_intrinsics_jacobian(self, ph: ArrayLike) -> np.ndarray:
        ph = as_vector(ph, 4)
        if ph[3] < 0.0:
            return self.euclidean_to_keypoint_intrinsics_jacobian(-ph[:3])
        return self.euclidean_to_keypoint_intrinsics_jacobian(ph[:3])

    def homogeneous_to_keypoint_distortion_jacobian(self, ph: ArrayLike) -> np.ndarray:
        ph = as_vector(ph, 4)
        if ph[3] < 0.0:
            return self.euclidean_to_keypoint_distortion_jacobian(-ph[:3])
        return self.euclidean_to_keypoint_distortion_jacobian(ph[:3])

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def is_valid(self, keypoint: ArrayLike) -> bool:
        """True iff 0 <= u < ru and 0 <= v < rv."""
        keypoint = as_vector(keypoint, 2, "keypoint")
        return bool(
            keypoint[0] >= 0
            and keypoint[1] >= 0
            and keypoint[0] < self._ru
            and keypoint[1] < self._rv
        )

    def is_euclidean_visible(self, p: ArrayLike) -> bool:
        return self.euclidean_to_keypoint(p)[1]

    def is_homogeneous_visible(self, ph: ArrayLike) -> bool:
        return self.homogeneous_to_keypoint(ph)[1]

    # ------------------------------------------------------------------
    # Status API
    # ------------------------------------------------------------------

    def project3(self, p: ArrayLike) -> Tuple[np.ndarray, ProjectionResult]:
        """
        Project a Euclidean point and classify the outcome.

        Returns:
            (keypoint, result). The keypoint is NaN for an invalid
            projection (|Z| below MIN_DEPTH).
        """
        p = as_vector(p, 3)
        if abs(p[2]) < self.MIN_DEPTH:
            return np.full(2, np.nan), ProjectionResult(Status.PROJECTION_INVALID)

        keypoint, _ = self.euclidean_to_keypoint(p)
        if p[2] < 0:
            return keypoint, ProjectionResult(Status.POINT_BEHIND_CAMERA)
        if not self.is_valid(keypoint):
            return keypoint, ProjectionResult(Status.KEYPOINT_OUT_OF_BOUNDS)
        return keypoint, ProjectionResult(Status.KEYPOINT_VISIBLE)

    def is_projectable3(self, p: ArrayLike) -> bool:
        return self.project3(p)[1].is_keypoint_visible()

    def back_project3(self, keypoint: ArrayLike) -> Tuple[np.ndarray, bool]:
        """Back-project a keypoint; alias of ``keypoint_to_euclidean``."""
        return self.keypoint_to_euclidean(keypoint)

    def project3_vectorized(
        self,
        points: np.ndarray,
    ) -> Tuple[np.ndarray, List[ProjectionResult]]:
        """
        Project a batch of points.

        Args:
            points: Points (N, 3), one per row.

        Returns:
            Tuple of keypoints (N, 2) and a list of N results; row i of
            the output belongs to row i of the input.
        """
        points = _as_batch(points, 3, "points")
        keypoints = np.empty((len(points), self.KEYPOINT_DIMENSION))
        results = []
        for i, point in enumerate(points):
            keypoints[i], result = self.project3(point)
            results.append(result)
        return keypoints, results

    def back_project3_vectorized(
        self,
        keypoints: np.ndarray,
    ) -> Tuple[np.ndarray, List[bool]]:
        """
        Back-project a batch of keypoints.

        Args:
            keypoints: Keypoints (N, 2), one per row.

        Returns:
            Tuple of rays (N, 3) at unit depth and a list of N success flags.
        """
        keypoints = _as_batch(keypoints, 2, "keypoints")
        points = np.empty((len(keypoints), 3))
        success = []
        for i, keypoint in enumerate(keypoints):
            points[i], valid = self.keypoint_to_euclidean(keypoint)
            success.append(valid)
        return points, success

    # ------------------------------------------------------------------
    # Optimizer interface
    # ------------------------------------------------------------------

    def update(self, delta: ArrayLike) -> None:
        """Additive update of (fu, fv, cu, cv)."""
        delta = as_vector(delta, self.INTRINSICS_DIMENSION, "delta")
        self._fu += delta[0]
        self._fv += delta[1]
        self._cu += delta[2]
        self._cv += delta[3]
        self._update_temporaries()

    def minimal_dimensions(self) -> int:
        return self.INTRINSICS_DIMENSION

    def get_parameters(self) -> np.ndarray:
        """Intrinsics as a 4x1 column (fu, fv, cu, cv)."""
        return np.array([[self._fu], [self._fv], [self._cu], [self._cv]])

    def set_parameters(self, P: ArrayLike) -> None:
        P = as_vector(P, self.INTRINSICS_DIMENSION, "parameters")
        self._fu, self._fv, self._cu, self._cv = (float(v) for v in P)
        self._update_temporaries()

    def parameter_size(self) -> Tuple[int, int]:
        return (self.INTRINSICS_DIMENSION, 1)

    def resize_intrinsics(self, scale: float) -> None:
        """Rescale intrinsics and resolution for a resampled image."""
        self._fu *= scale
        self._fv *= scale
        self._cu *= scale
        self._cv *= scale
        self._ru = int(self._ru * scale)
        self._rv = int(self._rv * scale)
        self._update_temporaries()

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    def get_border_rays(self) -> np.ndarray:
        """
        Back-project the image corners and edge midpoints.

        Returns:
            np.ndarray: (8, 4) homogeneous rays, one per row.
        """
        ru, rv = float(self._ru), float(self._rv)
        keypoints = [
            (0.0, 0.0),
            (0.0, rv * 0.5),
            (0.0, rv - 1.0),
            (ru - 1.0, 0.0),
            (ru - 1.0, rv * 0.5),
            (ru - 1.0, rv - 1.0),
            (ru * 0.5, 0.0),
            (ru * 0.5, rv - 1.0),
        ]
        return np.array([self.keypoint_to_homogeneous(k)[0] for k in keypoints])

    def create_random_keypoint(
        self,
        rng: Optional[np.random.Generator] = None,
    ) -> np.ndarray:
        """Uniformly random keypoint inside the image."""
        rng = rng if rng is not None else np.random.default_rng()
        return rng.random(2) * np.array([self._ru, self._rv], dtype=np.float64)

    def create_random_visible_point(
        self,
        depth: float = -1.0,
        rng: Optional[np.random.Generator] = None,
    ) -> np.ndarray:
        """
        Random point whose projection is a visible keypoint.

        Args:
            depth: Distance from the camera center; a negative value draws
                   it uniformly from [0, 100).
            rng: Random generator (a fresh default one when None).

        Returns:
            np.ndarray: Point (3,) at the given distance along the ray.
        """
        rng = rng if rng is not None else np.random.default_rng()
        point, _ = self.keypoint_to_euclidean(self.create_random_keypoint(rng))

        if depth < 0.0:
            depth = rng.random() * 100.0

        return point / np.linalg.norm(point) * depth

    # ------------------------------------------------------------------
    # Intrinsics initialization
    # ------------------------------------------------------------------

    def initialize_intrinsics(self, observations: Sequence[Any]) -> bool:
        """
        Initialize the intrinsics from a calibration target observation.

        Only the first observation is used.

        Raises:
            ValueError: If no observation is given.
        """
        if len(observations) == 0:
            raise ValueError("Need at least one observation")
        if len(observations) > 1:
            self.logger.warning(
                "Pinhole intrinsics initialization uses a single observation "
                "(using the first of %d)", len(observations)
            )

        from ..calibration.initializer import PinholeIntrinsicsInitializer

        return PinholeIntrinsicsInitializer(self).initialize(observations[0])

    def set_intrinsics(
        self,
        fu: Optional[float] = None,
        fv: Optional[float] = None,
        cu: Optional[float] = None,
        cv: Optional[float] = None,
        ru: Optional[int] = None,
        rv: Optional[int] = None,
    ) -> None:
        """Set any subset of intrinsics and resolution."""
        if fu is not None:
            self._fu = float(fu)
        if fv is not None:
            self._fv = float(fv)
        if cu is not None:
            self._cu = float(cu)
        if cv is not None:
            self._cv = float(cv)
        if ru is not None:
            self._ru = int(ru)
        if rv is not None:
            self._rv = int(rv)
        self._update_temporaries()

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def is_binary_equal(self, other: "PinholeProjection") -> bool:
        """Exact equality of every stored field and of the distortion."""
        return (
            self._fu == other._fu
            and self._fv == other._fv
            and self._cu == other._cu
            and self._cv == other._cv
            and self._ru == other._ru
            and self._rv == other._rv
            and _same_float(self._recip_fu, other._recip_fu)
            and _same_float(self._recip_fv, other._recip_fv)
            and _same_float(self._fu_over_fv, other._fu_over_fv)
            and self._distortion.is_binary_equal(other._distortion)
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PinholeProjection):
            return NotImplemented
        return self.is_binary_equal(other)

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"PinholeProjection(fu={self._fu:.2f}, fv={self._fv:.2f}, "
            f"cu={self._cu:.2f}, cv={self._cv:.2f}, "
            f"ru={self._ru}, rv={self._rv}, distortion={self._distortion!r})"
        )


def _same_float(a: float, b: float) -> bool:
    # Cached reciprocals are NaN for a zero focal length
    return a == b or (np.isnan(a) and np.isnan(b))


def _as_batch(values: np.ndarray, columns: int, name: str) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64)
    if values.ndim != 2 or values.shape[1] != columns:
        raise ValueError(f"{name} must have shape (N, {columns}), got {values.shape}")
    return values
