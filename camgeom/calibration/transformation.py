"""
Rigid Body Transformation Module.

A rigid body transformation consists of a rotation C (3x3 orthonormal
matrix) and translation t (3x1 vector). For a point P in frame B, its
coordinates in frame A are:

    P_A = C_AB * P_B + t_AB

Written as a 4x4 homogeneous matrix:

    T_AB = | C_AB  t_AB |
           |  0     1   |

Inverse Transformation:
-----------------------
    T_AB^(-1) = T_BA = | C^T  -C^T * t |
                       |  0       1    |

Naming convention: ``T_camera_target`` takes points expressed in the target
frame to the camera frame.
"""

from dataclasses import dataclass, field
from typing import Optional

import cv2
import numpy as np


@dataclass
class Transformation:
    """
    Rigid transformation (rotation and translation).

    Attributes:
        C: Rotation matrix (3x3).
        t: Translation vector (3,).

    Example:
        >>> T_camera_target = Transformation.from_matrix(np.eye(4))
        >>> p_camera = T_camera_target * np.array([0.1, 0.2, 0.0])
        >>> T_target_camera = T_camera_target.inverse()
    """

    C: np.ndarray = field(default_factory=lambda: np.eye(3))
    t: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        """Validate inputs after initialization."""
        self.C = np.asarray(self.C, dtype=np.float64)
        self.t = np.asarray(self.t, dtype=np.float64).flatten()

        if self.C.shape != (3, 3):
            raise ValueError(f"C must be 3x3, got {self.C.shape}")
        if self.t.shape != (3,):
            raise ValueError(f"t must be (3,), got {self.t.shape}")

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> "Transformation":
        """
        Create from a 4x4 or 3x4 transformation matrix.

        Raises:
            ValueError: For any other shape.
        """
        T = np.asarray(T, dtype=np.float64)
        if T.shape == (4, 4):
            return cls(C=T[:3, :3], t=T[:3, 3])
        elif T.shape == (3, 4):
            return cls(C=T[:, :3], t=T[:, 3])
        else:
            raise ValueError(f"Expected 4x4 or 3x4 matrix, got {T.shape}")

    def set(self, T: np.ndarray) -> None:
        """Overwrite this transformation from a 4x4 or 3x4 matrix."""
        other = Transformation.from_matrix(T)
        self.C = other.C
        self.t = other.t

    def T(self) -> np.ndarray:
        """4x4 homogeneous transformation matrix."""
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.C
        T[:3, 3] = self.t
        return T

    def inverse(self) -> "Transformation":
        """
        Get the inverse transformation.

        Given: P_A = C @ P_B + t, solving for P_B gives
            P_B = C^T @ P_A - C^T @ t
        """
        C_inv = self.C.T
        return Transformation(C=C_inv, t=-C_inv @ self.t)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """
        Transform 3D points.

        Args:
            points: 3D points (N, 3) or (3,) in the source frame.

        Returns:
            np.ndarray: Transformed points with the input's shape.
        """
        points = np.asarray(points, dtype=np.float64)
        transformed = np.atleast_2d(points) @ self.C.T + self.t
        return transformed.reshape(points.shape)

    def compose(self, other: "Transformation") -> "Transformation":
        """
        Chain transformations: ``self.compose(other)`` is self * other,
        applying ``other`` first.
        """
        return Transformation(C=self.C @ other.C, t=self.C @ other.t + self.t)

    def __mul__(self, other):
        if isinstance(other, Transformation):
            return self.compose(other)
        return self.transform_points(other)

    @classmethod
    def from_rotation_vector(
        cls,
        rvec: np.ndarray,
        tvec: Optional[np.ndarray] = None,
    ) -> "Transformation":
        """Create from an axis-angle vector (Rodrigues) and translation."""
        C, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
        t = np.zeros(3) if tvec is None else np.asarray(tvec, dtype=np.float64)
        return cls(C=C, t=t)
