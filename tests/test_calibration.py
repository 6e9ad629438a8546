"""
Comprehensive tests for calibration modules.

Test Coverage:
- Transformation: inverse, composition, point transforms
- Grid targets and observations: indexing, synthetic detections
- Pose estimation: PnP recovers a known pose
- Intrinsics initialization: focal length from curved target rows,
  degenerate and missing inputs
"""

import logging

import numpy as np
import pytest


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def camera():
    """640x480 camera with the radial-tangential test distortion."""
    from camgeom.cameras import PinholeProjection

    return PinholeProjection.create_test_projection()


@pytest.fixture
def target():
    """6x7 checkerboard with 5 cm squares."""
    from camgeom.calibration import GridCalibrationTarget

    return GridCalibrationTarget(rows=6, cols=7, row_spacing=0.05)


@pytest.fixture
def tilted_pose():
    """Target 0.8 m in front of the camera, slightly rotated."""
    from camgeom.calibration import Transformation

    return Transformation.from_rotation_vector(
        np.array([0.1, -0.2, 0.05]), np.array([-0.15, -0.1, 0.8])
    )


@pytest.fixture
def wide_target():
    """Three long rows, used for the row-based focal length estimate."""
    from camgeom.calibration import GridCalibrationTarget

    return GridCalibrationTarget(rows=3, cols=9, row_spacing=0.1, col_spacing=0.15)


@pytest.fixture
def wide_pose():
    """Rows parallel to the image plane, well below the optical axis."""
    from camgeom.calibration import Transformation

    return Transformation(C=np.eye(3), t=np.array([-0.6, 0.5, 1.0]))


def stereographic_observation(target, T_camera_target, gamma, width, height):
    """
    Observation through a stereographic lens of generalized focal length gamma.

    Straight lines image to exact circles under this projection, with the
    principal point at the image center.
    """
    from camgeom.calibration import GridCalibrationTargetObservation

    obs = GridCalibrationTargetObservation(target, width, height)
    center = np.array([(width - 1.0) / 2.0, (height - 1.0) / 2.0])
    for index, point in enumerate(T_camera_target.transform_points(target.points())):
        ray = point / np.linalg.norm(point)
        obs.set_image_point(index, gamma * ray[:2] / (ray[2] + 1.0) + center)
    return obs


# =============================================================================
# Test Transformation
# =============================================================================

class TestTransformation:
    """Tests for the rigid body transformation."""

    def test_identity(self):
        """Default transformation leaves points unchanged."""
        from camgeom.calibration import Transformation

        T = Transformation()
        point = np.array([1.0, 2.0, 3.0])

        assert np.allclose(T * point, point)
        assert np.allclose(T.T(), np.eye(4))

    def test_inverse(self, tilted_pose):
        """T * T^-1 is the identity."""
        identity = tilted_pose * tilted_pose.inverse()

        assert np.allclose(identity.T(), np.eye(4), atol=1e-12)

    def test_transform_points_keeps_shape(self, tilted_pose):
        """Single points and batches keep their shape."""
        assert tilted_pose.transform_points(np.zeros(3)).shape == (3,)
        assert tilted_pose.transform_points(np.zeros((5, 3))).shape == (5, 3)
        assert np.allclose(tilted_pose * np.zeros(3), tilted_pose.t)

    def test_compose_applies_right_first(self):
        """(A * B) * p == A * (B * p)."""
        from camgeom.calibration import Transformation

        A = Transformation.from_rotation_vector([0.0, 0.0, np.pi / 2], [1.0, 0.0, 0.0])
        B = Transformation(t=np.array([0.0, 2.0, 0.0]))
        point = np.array([1.0, 1.0, 1.0])

        assert np.allclose((A * B) * point, A * (B * point))

    def test_rotation_vector(self):
        """A quarter turn about z maps x to y."""
        from camgeom.calibration import Transformation

        T = Transformation.from_rotation_vector([0.0, 0.0, np.pi / 2])

        assert np.allclose(T * np.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0])

    def test_from_matrix_and_set(self, tilted_pose):
        """4x4 and 3x4 matrices build the same transformation."""
        from camgeom.calibration import Transformation

        from_4x4 = Transformation.from_matrix(tilted_pose.T())
        from_3x4 = Transformation.from_matrix(tilted_pose.T()[:3])
        target = Transformation()
        target.set(tilted_pose.T())

        assert np.allclose(from_4x4.T(), tilted_pose.T())
        assert np.allclose(from_3x4.T(), tilted_pose.T())
        assert np.allclose(target.T(), tilted_pose.T())

    def test_invalid_shapes(self):
        """Wrong matrix shapes are rejected."""
        from camgeom.calibration import Transformation

        with pytest.raises(ValueError):
            Transformation.from_matrix(np.eye(3))
        with pytest.raises(ValueError):
            Transformation(C=np.eye(2))
        with pytest.raises(ValueError):
            Transformation(t=np.zeros(4))


# =============================================================================
# Test Targets
# =============================================================================

class TestGridCalibrationTarget:
    """Tests for target geometry and observations."""

    def test_geometry(self, target):
        """Corners are laid out row-major on the z = 0 plane."""
        assert target.rows() == 6
        assert target.cols() == 7
        assert target.size() == 42
        assert np.allclose(target.point(8), [0.05, 0.05, 0.0])
        assert np.allclose(target.points()[:, 2], 0.0)

    def test_indexing(self, target):
        """Flat and grid indices convert both ways."""
        assert target.grid_index(2, 3) == 17
        assert target.grid_coordinates(17) == (2, 3)

        with pytest.raises(IndexError):
            target.grid_index(6, 0)
        with pytest.raises(IndexError):
            target.point(42)

    def test_invalid_size(self):
        """Empty grids are rejected."""
        from camgeom.calibration import GridCalibrationTarget

        with pytest.raises(ValueError):
            GridCalibrationTarget(rows=0, cols=5, row_spacing=0.1)

    def test_observation_points(self, target):
        """Detected corners are stored with a validity flag."""
        from camgeom.calibration import GridCalibrationTargetObservation

        obs = GridCalibrationTargetObservation(target, 640, 480)
        obs.set_image_point(3, [10.0, 20.0])
        obs.set_image_point(target.grid_index(1, 2), [30.0, 40.0])

        point, valid = obs.image_point(3)
        assert valid
        assert np.allclose(point, [10.0, 20.0])
        assert obs.image_grid_point(1, 2)[1]
        assert not obs.image_point(0)[1]

        assert obs.num_valid() == 2
        assert list(obs.get_corners_indices()) == [3, 9]
        assert np.allclose(obs.get_corners_image_frame(), [[10.0, 20.0], [30.0, 40.0]])
        assert np.allclose(obs.get_corners_target_frame(), [target.point(3), target.point(9)])

        obs.remove_image_point(3)
        assert obs.num_valid() == 1

    def test_observation_from_projection(self, camera, target, tilted_pose):
        """Every corner of a target in view is detected."""
        from camgeom.calibration import GridCalibrationTargetObservation

        obs = GridCalibrationTargetObservation.from_projection(target, camera, tilted_pose)

        assert obs.num_valid() == target.size()
        assert obs.image_width() == 640
        expected, _ = camera.euclidean_to_keypoint(tilted_pose * target.point(10))
        assert np.allclose(obs.image_point(10)[0], expected)


# =============================================================================
# Test Pose Estimation
# =============================================================================

class TestPoseEstimation:
    """Tests for PnP pose estimation."""

    def test_recovers_known_pose(self, camera, target, tilted_pose):
        """The estimated camera pose matches the simulated one."""
        from camgeom.calibration import GridCalibrationTargetObservation, estimate_transformation

        obs = GridCalibrationTargetObservation.from_projection(target, camera, tilted_pose)
        T_target_camera = estimate_transformation(camera, obs)

        assert T_target_camera is not None
        assert np.allclose(T_target_camera.T(), tilted_pose.inverse().T(), atol=1e-4)

    def test_too_few_points(self, camera, target):
        """PnP needs at least four correspondences."""
        from camgeom.calibration import GridCalibrationTargetObservation, estimate_transformation

        obs = GridCalibrationTargetObservation(target, 640, 480)
        for index in range(3):
            obs.set_image_point(index, [320.0 + index, 240.0])

        assert estimate_transformation(camera, obs) is None

    def test_reprojection_error_of_true_pose(self, camera, target, tilted_pose):
        """The true pose reprojects every corner exactly."""
        from camgeom.calibration import GridCalibrationTargetObservation, PinholeIntrinsicsInitializer

        obs = GridCalibrationTargetObservation.from_projection(target, camera, tilted_pose)
        err, count = PinholeIntrinsicsInitializer(camera).compute_reprojection_error(
            obs, tilted_pose.inverse()
        )

        assert count == target.size()
        assert err < 1e-8


# =============================================================================
# Test Intrinsics Initialization
# =============================================================================

class TestPinholeIntrinsicsInitializer:
    """Tests for the row-based focal length initializer."""

    def test_recovers_focal_length_from_circular_rows(self, camera, wide_target, wide_pose):
        """Rows imaging to exact circles give the generalized focal length."""
        from camgeom.calibration import PinholeIntrinsicsInitializer

        obs = stereographic_observation(wide_target, wide_pose, 400.0, 640, 480)
        success = PinholeIntrinsicsInitializer(camera).initialize(obs)

        assert success
        assert np.isclose(camera.fu, 400.0, rtol=1e-3)
        assert camera.fv == camera.fu
        assert camera.recip_fu == 1.0 / camera.fu

    def test_sets_principal_point_and_clears_distortion(self, camera, wide_target, wide_pose):
        """The principal point moves to the image center."""
        from camgeom.calibration import PinholeIntrinsicsInitializer

        obs = stereographic_observation(wide_target, wide_pose, 400.0, 800, 600)
        PinholeIntrinsicsInitializer(camera).initialize(obs)

        assert camera.cu == 399.5
        assert camera.cv == 299.5
        assert camera.ru == 800
        assert camera.rv == 600
        assert np.all(camera.distortion.get_parameters() == 0.0)

    def test_straight_rows_fail(self, wide_target, wide_pose):
        """Perfectly straight rows carry no focal length information."""
        from camgeom.calibration import GridCalibrationTargetObservation, PinholeIntrinsicsInitializer
        from camgeom.cameras import PinholeProjection

        ideal = PinholeProjection(200.0, 200.0, 319.5, 239.5, 640, 480)
        obs = GridCalibrationTargetObservation.from_projection(wide_target, ideal, wide_pose)
        camera = PinholeProjection.create_test_projection()

        assert obs.num_valid() == wide_target.size()
        assert not PinholeIntrinsicsInitializer(camera).initialize(obs)
        assert camera.fu == 0.0
        assert camera.fv == 0.0

    def test_rows_with_too_few_corners(self, camera, wide_pose):
        """Rows need at least three corners."""
        from camgeom.calibration import GridCalibrationTarget, PinholeIntrinsicsInitializer

        short_target = GridCalibrationTarget(rows=3, cols=2, row_spacing=0.1, col_spacing=0.15)
        obs = stereographic_observation(short_target, wide_pose, 400.0, 640, 480)

        assert not PinholeIntrinsicsInitializer(camera).initialize(obs)

    def test_missing_target(self, camera, caplog):
        """An observation without target fails with an error log."""
        from camgeom.calibration import GridCalibrationTargetObservation, PinholeIntrinsicsInitializer

        obs = GridCalibrationTargetObservation(None, 640, 480)
        with caplog.at_level(logging.ERROR):
            assert not PinholeIntrinsicsInitializer(camera).initialize(obs)

        assert "no target" in caplog.text

    def test_projection_entry_point(self, camera, wide_target, wide_pose, caplog):
        """initialize_intrinsics uses the first observation only."""
        obs = stereographic_observation(wide_target, wide_pose, 400.0, 640, 480)

        with caplog.at_level(logging.WARNING):
            assert camera.initialize_intrinsics([obs, obs])

        assert "first of 2" in caplog.text
        assert np.isclose(camera.fu, 400.0, rtol=1e-3)
