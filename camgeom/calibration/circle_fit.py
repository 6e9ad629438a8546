"""
Circle Fitting Helpers.

Small geometric helpers used when studying how target rows image through a
lens: intersecting two circles and fitting a circle to 2D points.

Circle Fit:
===========
D. Umbach and K. Jones, "A Few Methods for Fitting Circles to Data",
IEEE Transactions on Instrumentation and Measurement, 2000. The modified
least squares method gives the center in closed form from the sums

    A = n Sxx - Sx^2
    B = n Sxy - Sx Sy
    C = n Syy - Sy^2
    D = 0.5 (n Sxyy - Sx Syy + n Sxxx - Sx Sxx)
    E = 0.5 (n Sxxy - Sy Sxx + n Syyy - Sy Syy)

    cx = (D C - B E) / (A C - B^2)
    cy = (A E - B D) / (A C - B^2)

The radius is the mean distance of the points to the center.
"""

from typing import List, Tuple

import numpy as np

# Below this half chord length the circles are treated as touching
TANGENT_TOLERANCE = 1e-10

# Determinant of the normal equations, relative to their squared trace, below
# which the points are collinear
COLLINEAR_TOLERANCE = 1e-12


def intersect_circles(
    x1: float, y1: float, r1: float,
    x2: float, y2: float, r2: float,
) -> List[Tuple[float, float]]:
    """
    Intersection points of two circles.

    Args:
        x1, y1, r1: Center and radius of the first circle.
        x2, y2, r2: Center and radius of the second circle.

    Returns:
        List of (x, y) points: empty when the circles are disjoint, one
        contains the other or they are concentric (including coincident),
        one point when they touch, two otherwise.
    """
    d = np.hypot(x1 - x2, y1 - y2)
    if d == 0.0:
        return []
    if d > r1 + r2:
        return []
    if d < abs(r1 - r2):
        return []

    a = (r1 * r1 - r2 * r2 + d * d) / (2.0 * d)
    h = np.sqrt(max(r1 * r1 - a * a, 0.0))

    x3 = x1 + a * (x2 - x1) / d
    y3 = y1 + a * (y2 - y1) / d

    if h < TANGENT_TOLERANCE:
        return [(float(x3), float(y3))]

    return [
        (float(x3 + h * (y2 - y1) / d), float(y3 - h * (x2 - x1) / d)),
        (float(x3 - h * (y2 - y1) / d), float(y3 + h * (x2 - x1) / d)),
    ]


def fit_circle(points) -> Tuple[float, float, float]:
    """
    Fit a circle to 2D points.

    Args:
        points: Point coordinates (N, 2), N >= 3 and not all collinear.

    Returns:
        Tuple of (center_x, center_y, radius).

    Raises:
        ValueError: If points is not an (N, 2) array with N >= 3, or if the
            points are collinear.
    """
    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 2 or len(points) < 3:
        raise ValueError(f"Expected at least 3 points of shape (N, 2), got {points.shape}")

    n = len(points)
    x = points[:, 0]
    y = points[:, 1]

    sum_x, sum_y = x.sum(), y.sum()
    sum_xx, sum_xy, sum_yy = (x * x).sum(), (x * y).sum(), (y * y).sum()
    sum_xxx, sum_xxy = (x * x * x).sum(), (x * x * y).sum()
    sum_xyy, sum_yyy = (x * y * y).sum(), (y * y * y).sum()

    A = n * sum_xx - sum_x ** 2
    B = n * sum_xy - sum_x * sum_y
    C = n * sum_yy - sum_y ** 2
    D = 0.5 * (n * sum_xyy - sum_x * sum_yy + n * sum_xxx - sum_x * sum_xx)
    E = 0.5 * (n * sum_xxy - sum_y * sum_xx + n * sum_yyy - sum_y * sum_yy)

    denominator = A * C - B ** 2
    if abs(denominator) <= COLLINEAR_TOLERANCE * max((A + C) ** 2, np.finfo(np.float64).tiny):
        raise ValueError("Cannot fit a circle to collinear points")
    center_x = (D * C - B * E) / denominator
    center_y = (A * E - B * D) / denominator

    radius = np.mean(np.hypot(x - center_x, y - center_y))
    return float(center_x), float(center_y), float(radius)
