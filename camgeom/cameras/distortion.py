"""
Lens Distortion Models.

A distortion model maps a point on the normalized image plane (the plane at
unit depth in front of the camera) to its distorted counterpart and back.
Every model works on a single 2-vector and can return the analytic 2x2
Jacobian of the mapping as well as the 2xD Jacobian with respect to its D
parameters, which is what optimizers need for calibration refinement.

Models:
=======

Radial-Tangential (Brown-Conrady), parameters (k1, k2, p1, p2):

    r^2  = x^2 + y^2
    x_d  = x (1 + k1 r^2 + k2 r^4) + 2 p1 x y + p2 (r^2 + 2 x^2)
    y_d  = y (1 + k1 r^2 + k2 r^4) + p1 (r^2 + 2 y^2) + 2 p2 x y

Equidistant (Kannala-Brandt), parameters (k1, k2, k3, k4):

    theta   = atan(r)
    theta_d = theta (1 + k1 theta^2 + k2 theta^4 + k3 theta^6 + k4 theta^8)
    p_d     = p * theta_d / r

Fisheye (field-of-view model), parameter (w,):

    r_d = atan(2 r tan(w / 2)) / w
    p_d = p * r_d / r

None: identity, no parameters.
"""

from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Type, Union

import numpy as np

ArrayLike = Union[np.ndarray, Sequence[float]]


def as_vector(value: ArrayLike, size: int, name: str = "point") -> np.ndarray:
    """
    Convert input to a float64 vector of the given length.

    Args:
        value: Input sequence or array.
        size: Required number of elements.
        name: Name used in the error message.

    Returns:
        np.ndarray: Copy of the input with shape (size,).

    Raises:
        ValueError: If the input does not hold exactly ``size`` elements.
    """
    vector = np.array(value, dtype=np.float64).reshape(-1)
    if vector.shape != (size,):
        raise ValueError(f"{name} must have {size} elements, got shape {np.shape(value)}")
    return vector


class Distortion:
    """
    Base class for lens distortion models.

    Subclasses set ``NAME`` and ``NUM_PARAMETERS`` and implement
    ``_distort``, ``_distort_jacobian`` and ``_parameter_jacobian``. The
    default inverse is a Gauss-Newton solve on ``_distort``; models with a
    closed-form inverse override ``_undistort``.
    """

    NAME = "base"
    NUM_PARAMETERS = 0

    # Gauss-Newton settings for the numerical inverse
    MAX_UNDISTORT_ITERATIONS = 30
    UNDISTORT_TOLERANCE = 1e-24

    def __init__(self, parameters: Optional[ArrayLike] = None):
        """
        Initialize the distortion.

        Args:
            parameters: Model parameters; zeros (no distortion) when None.
        """
        if parameters is None:
            self._parameters = np.zeros(self.NUM_PARAMETERS, dtype=np.float64)
        else:
            self._parameters = as_vector(parameters, self.NUM_PARAMETERS, "parameters")

    # ------------------------------------------------------------------
    # Parameter access
    # ------------------------------------------------------------------

    def minimal_dimensions(self) -> int:
        """Number of distortion parameters."""
        return self.NUM_PARAMETERS

    def get_parameters(self) -> np.ndarray:
        """Return a copy of the parameter vector."""
        return self._parameters.copy()

    def set_parameters(self, parameters: ArrayLike) -> None:
        """Replace the parameter vector (shape checked)."""
        self._parameters = as_vector(parameters, self.NUM_PARAMETERS, "parameters")

    def clear(self) -> None:
        """Reset the parameters to zero, the neutral state of the model."""
        self._parameters = np.zeros(self.NUM_PARAMETERS, dtype=np.float64)

    def is_binary_equal(self, other: "Distortion") -> bool:
        """Exact (not tolerance based) equality of model type and parameters."""
        return type(self) is type(other) and np.array_equal(
            self._parameters, other._parameters
        )

    def copy(self) -> "Distortion":
        """Return an independent copy of this distortion."""
        return type(self)(self._parameters.copy())

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def distort(
        self,
        point: ArrayLike,
        compute_jacobian: bool = False,
    ) -> Union[np.ndarray, Tuple[np.ndarray, np.ndarray]]:
        """
        Apply distortion to a normalized image point.

        Args:
            point: Undistorted normalized coordinates (2,).
            compute_jacobian: Also return d(distorted)/d(point).

        Returns:
            Distorted point (2,), or (distorted point, 2x2 Jacobian).
        """
        y = as_vector(point, 2)
        distorted = self._distort(y)
        if not compute_jacobian:
            return distorted
        return distorted, self._distort_jacobian(y)

    def undistort(
        self,
        point: ArrayLike,
        compute_jacobian: bool = False,
    ) -> Union[np.ndarray, Tuple[np.ndarray, np.ndarray]]:
        """
        Remove distortion from a normalized image point.

        The Jacobian is d(undistorted)/d(distorted), i.e. the inverse of the
        distortion Jacobian evaluated at the undistorted point.

        Args:
            point: Distorted normalized coordinates (2,).
            compute_jacobian: Also return the 2x2 Jacobian.

        Returns:
            Undistorted point (2,), or (undistorted point, 2x2 Jacobian).
        """
        y = as_vector(point, 2)
        undistorted = self._undistort(y)
        if not compute_jacobian:
            return undistorted
        return undistorted, np.linalg.inv(self._distort_jacobian(undistorted))

    def distort_parameter_jacobian(self, point: ArrayLike) -> np.ndarray:
        """
        Jacobian of the distorted point w.r.t. the distortion parameters.

        Args:
            point: Undistorted normalized coordinates (2,).

        Returns:
            np.ndarray: 2xD Jacobian.
        """
        return self._parameter_jacobian(as_vector(point, 2))

    def _undistort(self, y: np.ndarray) -> np.ndarray:
        ybar = y.copy()
        for _ in range(self.MAX_UNDISTORT_ITERATIONS):
            y_tmp = self._distort(ybar)
            F = self._distort_jacobian(ybar)
            e = y - y_tmp
            ybar = ybar + np.linalg.solve(F, e)
            if e @ e < self.UNDISTORT_TOLERANCE:
                break
        return ybar

    def _distort(self, y: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _distort_jacobian(self, y: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _parameter_jacobian(self, y: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def create_test_distortion(cls) -> "Distortion":
        """Distortion with representative parameters for testing."""
        return cls()

    def to_config(self) -> Dict[str, Any]:
        """Configuration block describing this distortion."""
        return {"type": self.NAME, "parameters": self._parameters.tolist()}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._parameters.tolist()})"


class NoDistortion(Distortion):
    """Identity distortion without parameters."""

    NAME = "none"
    NUM_PARAMETERS = 0

    def _distort(self, y: np.ndarray) -> np.ndarray:
        return y.copy()

    def _undistort(self, y: np.ndarray) -> np.ndarray:
        return y.copy()

    def _distort_jacobian(self, y: np.ndarray) -> np.ndarray:
        return np.eye(2)

    def _parameter_jacobian(self, y: np.ndarray) -> np.ndarray:
        return np.zeros((2, 0))


class RadTanDistortion(Distortion):
    """
    Radial-tangential distortion with parameters (k1, k2, p1, p2).

    There is no closed-form inverse, so ``undistort`` runs Gauss-Newton on
    the forward model.

    Example:
        >>> distortion = RadTanDistortion([-0.28, 0.07, 1.6e-4, 1.8e-5])
        >>> distorted = distortion.distort([0.3, -0.2])
        >>> np.allclose(distortion.undistort(distorted), [0.3, -0.2])
        True
    """

    NAME = "radtan"
    NUM_PARAMETERS = 4

    def _distort(self, y: np.ndarray) -> np.ndarray:
        k1, k2, p1, p2 = self._parameters
        mx2_u = y[0] * y[0]
        my2_u = y[1] * y[1]
        mxy_u = y[0] * y[1]
        rho2_u = mx2_u + my2_u
        rad_dist_u = k1 * rho2_u + k2 * rho2_u * rho2_u

        return np.array([
            y[0] + y[0] * rad_dist_u + 2.0 * p1 * mxy_u + p2 * (rho2_u + 2.0 * mx2_u),
            y[1] + y[1] * rad_dist_u + 2.0 * p2 * mxy_u + p1 * (rho2_u + 2.0 * my2_u),
        ])

    def _distort_jacobian(self, y: np.ndarray) -> np.ndarray:
        k1, k2, p1, p2 = self._parameters
        mx2_u = y[0] * y[0]
        my2_u = y[1] * y[1]
        mxy_u = y[0] * y[1]
        rho2_u = mx2_u + my2_u
        rad_dist_u = k1 * rho2_u + k2 * rho2_u * rho2_u

        J = np.empty((2, 2))
        J[0, 0] = (1.0 + rad_dist_u + 2.0 * k1 * mx2_u + 4.0 * k2 * rho2_u * mx2_u
                   + 2.0 * p1 * y[1] + 6.0 * p2 * y[0])
        J[1, 0] = (2.0 * k1 * mxy_u + 4.0 * k2 * rho2_u * mxy_u
                   + 2.0 * p1 * y[0] + 2.0 * p2 * y[1])
        J[0, 1] = J[1, 0]
        J[1, 1] = (1.0 + rad_dist_u + 2.0 * k1 * my2_u + 4.0 * k2 * rho2_u * my2_u
                   + 6.0 * p1 * y[1] + 2.0 * p2 * y[0])
        return J

    def _parameter_jacobian(self, y: np.ndarray) -> np.ndarray:
        mx2_u = y[0] * y[0]
        my2_u = y[1] * y[1]
        mxy_u = y[0] * y[1]
        rho2_u = mx2_u + my2_u

        return np.array([
            [y[0] * rho2_u, y[0] * rho2_u * rho2_u, 2.0 * mxy_u, rho2_u + 2.0 * mx2_u],
            [y[1] * rho2_u, y[1] * rho2_u * rho2_u, rho2_u + 2.0 * my2_u, 2.0 * mxy_u],
        ])

    @classmethod
    def create_test_distortion(cls) -> "RadTanDistortion":
        return cls([-0.28, 0.07, 1.6e-4, 1.8e-5])


class EquidistantDistortion(Distortion):
    """
    Equidistant (Kannala-Brandt) distortion with parameters (k1, k2, k3, k4).

    The inverse is a scalar Newton iteration on the incidence angle. With all
    coefficients zero the model is the plain equidistant projection
    p * atan(r) / r, not the identity.
    """

    NAME = "equidistant"
    NUM_PARAMETERS = 4

    MIN_RADIUS = 1e-8
    MAX_NEWTON_ITERATIONS = 20
    NEWTON_TOLERANCE = 1e-14

    def _theta_d(self, theta: float) -> Tuple[float, float]:
        """Return theta_d and d(theta_d)/d(theta)."""
        k1, k2, k3, k4 = self._parameters
        theta2 = theta * theta
        theta4 = theta2 * theta2
        theta6 = theta4 * theta2
        theta8 = theta4 * theta4
        theta_d = theta * (1.0 + k1 * theta2 + k2 * theta4 + k3 * theta6 + k4 * theta8)
        dtheta_d = 1.0 + 3.0 * k1 * theta2 + 5.0 * k2 * theta4 + 7.0 * k3 * theta6 + 9.0 * k4 * theta8
        return theta_d, dtheta_d

    def _distort(self, y: np.ndarray) -> np.ndarray:
        r = float(np.hypot(y[0], y[1]))
        if r < self.MIN_RADIUS:
            return y.copy()
        theta_d, _ = self._theta_d(np.arctan(r))
        return y * (theta_d / r)

    def _distort_jacobian(self, y: np.ndarray) -> np.ndarray:
        r = float(np.hypot(y[0], y[1]))
        if r < self.MIN_RADIUS:
            return np.eye(2)
        theta_d, dtheta_d = self._theta_d(np.arctan(r))
        scaling = theta_d / r
        # d(scaling)/dr, with d(theta)/dr = 1 / (1 + r^2)
        dscaling = (dtheta_d / (1.0 + r * r) * r - theta_d) / (r * r)
        return scaling * np.eye(2) + (dscaling / r) * np.outer(y, y)

    def _undistort(self, y: np.ndarray) -> np.ndarray:
        r_d = float(np.hypot(y[0], y[1]))
        if r_d < self.MIN_RADIUS:
            return y.copy()

        theta = r_d
        for _ in range(self.MAX_NEWTON_ITERATIONS):
            theta_d, dtheta_d = self._theta_d(theta)
            delta = (theta_d - r_d) / dtheta_d if abs(dtheta_d) > 1e-12 else 0.0
            theta -= delta
            if abs(delta) < self.NEWTON_TOLERANCE:
                break

        return y * (np.tan(theta) / r_d)

    def _parameter_jacobian(self, y: np.ndarray) -> np.ndarray:
        r = float(np.hypot(y[0], y[1]))
        if r < self.MIN_RADIUS:
            return np.zeros((2, 4))
        theta = np.arctan(r)
        powers = np.array([theta ** 3, theta ** 5, theta ** 7, theta ** 9])
        return np.outer(y / r, powers)

    @classmethod
    def create_test_distortion(cls) -> "EquidistantDistortion":
        return cls([0.0347, -0.0123, 0.0045, -0.0011])


class FisheyeDistortion(Distortion):
    """
    Field-of-view fisheye distortion with a single parameter w.

    ``w`` close to zero degenerates to the identity; the inverse is closed
    form.
    """

    NAME = "fisheye"
    NUM_PARAMETERS = 1

    # Below these squared magnitudes the series limits are used
    MIN_W_SQUARED = 1e-5
    MIN_RADIUS_SQUARED = 1e-5

    def _scaling(self, r: float) -> float:
        w = self._parameters[0]
        if w * w < self.MIN_W_SQUARED:
            return 1.0
        tan_w_half_2 = 2.0 * np.tan(w / 2.0)
        if r * r < self.MIN_RADIUS_SQUARED:
            return tan_w_half_2 / w
        return np.arctan(r * tan_w_half_2) / (r * w)

    def _distort(self, y: np.ndarray) -> np.ndarray:
        return y * self._scaling(float(np.hypot(y[0], y[1])))

    def _distort_jacobian(self, y: np.ndarray) -> np.ndarray:
        w = self._parameters[0]
        r = float(np.hypot(y[0], y[1]))
        scaling = self._scaling(r)
        if w * w < self.MIN_W_SQUARED or r * r < self.MIN_RADIUS_SQUARED:
            return scaling * np.eye(2)
        t = 2.0 * np.tan(w / 2.0)
        dscaling = (t * r / (1.0 + r * r * t * t) - np.arctan(r * t)) / (w * r * r)
        return scaling * np.eye(2) + (dscaling / r) * np.outer(y, y)

    def _undistort(self, y: np.ndarray) -> np.ndarray:
        w = self._parameters[0]
        r_d = float(np.hypot(y[0], y[1]))
        if w * w < self.MIN_W_SQUARED:
            return y.copy()
        tan_w_half_2 = 2.0 * np.tan(w / 2.0)
        if r_d * r_d < self.MIN_RADIUS_SQUARED:
            return y * (w / tan_w_half_2)
        return y * (np.tan(r_d * w) / (r_d * tan_w_half_2))

    def _parameter_jacobian(self, y: np.ndarray) -> np.ndarray:
        w = self._parameters[0]
        r = float(np.hypot(y[0], y[1]))
        r2 = r * r
        if w * w < self.MIN_W_SQUARED:
            # Series: scaling ~ 1 + w^2 / 12 - r^2 w^2 / 3
            dscaling_dw = w / 6.0 - 2.0 * r2 * w / 3.0
        else:
            t = 2.0 * np.tan(w / 2.0)
            dt_dw = 1.0 + 0.25 * t * t
            if r2 < self.MIN_RADIUS_SQUARED:
                dscaling_dw = (dt_dw * w - t) / (w * w)
            else:
                dscaling_dw = (r * dt_dw / (1.0 + r2 * t * t) * w - np.arctan(r * t)) / (r * w * w)
        return (y * dscaling_dw).reshape(2, 1)

    @classmethod
    def create_test_distortion(cls) -> "FisheyeDistortion":
        return cls([0.5])


DISTORTION_TYPES: Dict[str, Type[Distortion]] = {
    NoDistortion.NAME: NoDistortion,
    RadTanDistortion.NAME: RadTanDistortion,
    EquidistantDistortion.NAME: EquidistantDistortion,
    FisheyeDistortion.NAME: FisheyeDistortion,
}


def create_distortion(
    name: str,
    parameters: Optional[ArrayLike] = None,
) -> Distortion:
    """
    Create a distortion model by name.

    Args:
        name: One of 'none', 'radtan', 'equidistant', 'fisheye'.
        parameters: Model parameters (zeros when None).

    Returns:
        Distortion: New distortion instance.

    Raises:
        ValueError: If the name is unknown or the parameter count is wrong.
    """
    key = name.lower()
    if key not in DISTORTION_TYPES:
        raise ValueError(
            f"Unknown distortion type '{name}', expected one of {sorted(DISTORTION_TYPES)}"
        )
    return DISTORTION_TYPES[key](parameters)


def distortion_from_config(config: Optional[Mapping[str, Any]]) -> Distortion:
    """
    Create a distortion from a configuration block.

    Args:
        config: Mapping with 'type' and optional 'parameters'. None or an
                empty mapping yields NoDistortion.

    Returns:
        Distortion: New distortion instance.
    """
    if not config:
        return NoDistortion()
    return create_distortion(str(config.get("type", NoDistortion.NAME)), config.get("parameters"))
