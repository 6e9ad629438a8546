"""
Planar Calibration Targets and Their Observations.

A grid calibration target (checkerboard) is a planar grid of known 3D
corner positions in the target frame:

    point(row, col) = (col * col_spacing, row * row_spacing, 0)

Corners are addressed either by (row, col) or by the flat index
``row * cols + col``.

An observation stores, for one image, the detected pixel position of every
target corner together with a validity flag (undetected corners are
invalid).
"""

from typing import Optional, Tuple

import numpy as np

from .transformation import Transformation


class GridCalibrationTarget:
    """
    Checkerboard-style planar grid of corners.

    Attributes:
        rows: Number of corner rows.
        cols: Number of corner columns.
        row_spacing: Distance between corner rows (meters).
        col_spacing: Distance between corner columns (meters).

    Example:
        >>> target = GridCalibrationTarget(rows=6, cols=7, row_spacing=0.04)
        >>> target.point(8)
        array([0.04, 0.04, 0.  ])
    """

    def __init__(
        self,
        rows: int,
        cols: int,
        row_spacing: float,
        col_spacing: Optional[float] = None,
    ):
        if rows <= 0 or cols <= 0:
            raise ValueError(f"Target needs positive rows and cols, got {rows}x{cols}")
        self._rows = int(rows)
        self._cols = int(cols)
        self._row_spacing = float(row_spacing)
        self._col_spacing = float(col_spacing if col_spacing is not None else row_spacing)

        grid_rows, grid_cols = np.meshgrid(
            np.arange(self._rows), np.arange(self._cols), indexing="ij"
        )
        self._points = np.stack([
            grid_cols.ravel() * self._col_spacing,
            grid_rows.ravel() * self._row_spacing,
            np.zeros(self._rows * self._cols),
        ], axis=1)

    def rows(self) -> int:
        return self._rows

    def cols(self) -> int:
        return self._cols

    def size(self) -> int:
        return self._rows * self._cols

    def point(self, index: int) -> np.ndarray:
        """3D position (3,) of the corner with the given flat index."""
        self._check_index(index)
        return self._points[index].copy()

    def points(self) -> np.ndarray:
        """All corner positions (N, 3), ordered by flat index."""
        return self._points.copy()

    def grid_coordinates(self, index: int) -> Tuple[int, int]:
        """(row, col) of a flat index."""
        self._check_index(index)
        return divmod(index, self._cols)

    def grid_index(self, row: int, col: int) -> int:
        """Flat index of (row, col)."""
        if not (0 <= row < self._rows and 0 <= col < self._cols):
            raise IndexError(f"Grid position ({row}, {col}) outside {self._rows}x{self._cols} target")
        return row * self._cols + col

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.size():
            raise IndexError(f"Corner index {index} out of range [0, {self.size() - 1}]")

    def __repr__(self) -> str:
        return (
            f"GridCalibrationTarget(rows={self._rows}, cols={self._cols}, "
            f"row_spacing={self._row_spacing}, col_spacing={self._col_spacing})"
        )


class GridCalibrationTargetObservation:
    """
    Corner detections of a grid target in one image.

    Attributes:
        image_points: Pixel coordinates (N, 2), one row per target corner.
        valid: Boolean mask (N,) of detected corners.
    """

    def __init__(
        self,
        target: Optional[GridCalibrationTarget],
        image_width: int,
        image_height: int,
    ):
        self._target = target
        self._image_width = int(image_width)
        self._image_height = int(image_height)

        size = target.size() if target is not None else 0
        self._image_points = np.zeros((size, 2))
        self._valid = np.zeros(size, dtype=bool)

    @classmethod
    def from_projection(
        cls,
        target: GridCalibrationTarget,
        projection,
        T_camera_target: Transformation,
    ) -> "GridCalibrationTargetObservation":
        """
        Synthesize an observation by projecting every target corner.

        Corners whose projection is not valid are marked undetected.

        Args:
            target: Observed target.
            projection: Camera projection providing ``euclidean_to_keypoint``
                        and the image size.
            T_camera_target: Pose of the target in the camera frame.

        Returns:
            GridCalibrationTargetObservation: Synthetic observation.
        """
        obs = cls(target, projection.image_width(), projection.image_height())
        points_camera = T_camera_target.transform_points(target.points())
        for index, point in enumerate(points_camera):
            keypoint, valid = projection.euclidean_to_keypoint(point)
            if valid:
                obs.set_image_point(index, keypoint)
        return obs

    def target(self) -> Optional[GridCalibrationTarget]:
        return self._target

    def image_width(self) -> int:
        return self._image_width

    def image_height(self) -> int:
        return self._image_height

    def set_image_point(self, index: int, point: np.ndarray) -> None:
        """Record a detected corner."""
        self._image_points[index] = np.asarray(point, dtype=np.float64).reshape(2)
        self._valid[index] = True

    def remove_image_point(self, index: int) -> None:
        """Mark a corner as undetected."""
        self._valid[index] = False

    def image_point(self, index: int) -> Tuple[np.ndarray, bool]:
        """Pixel position and validity of the corner with a flat index."""
        return self._image_points[index].copy(), bool(self._valid[index])

    def image_grid_point(self, row: int, col: int) -> Tuple[np.ndarray, bool]:
        """Pixel position and validity of the corner at (row, col)."""
        if self._target is None:
            raise RuntimeError("Observation has no target")
        return self.image_point(self._target.grid_index(row, col))

    def get_corners_image_frame(self) -> np.ndarray:
        """Pixel positions (M, 2) of the detected corners."""
        return self._image_points[self._valid].copy()

    def get_corners_target_frame(self) -> np.ndarray:
        """Target-frame positions (M, 3) matching ``get_corners_image_frame``."""
        if self._target is None:
            return np.zeros((0, 3))
        return self._target.points()[self._valid]

    def get_corners_indices(self) -> np.ndarray:
        """Flat indices of the detected corners."""
        return np.flatnonzero(self._valid)

    def num_valid(self) -> int:
        return int(self._valid.sum())
