"""
Tests for the lens distortion models.

Test Coverage:
- Distortion Jacobians against central finite differences
- undistort() as the inverse of distort()
- Parameter Jacobians against finite differences
- clear(), parameter access and exact equality
- Factory and configuration errors
"""

import numpy as np
import pytest

from camgeom.cameras.distortion import (
    Distortion,
    EquidistantDistortion,
    FisheyeDistortion,
    NoDistortion,
    RadTanDistortion,
    create_distortion,
    distortion_from_config,
)

ALL_MODELS = [NoDistortion, RadTanDistortion, EquidistantDistortion, FisheyeDistortion]
PARAMETRIC_MODELS = [RadTanDistortion, EquidistantDistortion, FisheyeDistortion]

TEST_POINTS = [
    np.array([0.3, -0.2]),
    np.array([-0.45, 0.1]),
    np.array([0.05, 0.6]),
]


def numerical_jacobian(f, x, h=1e-6):
    """Central difference Jacobian of f at x."""
    x = np.asarray(x, dtype=np.float64)
    columns = []
    for i in range(len(x)):
        dx = np.zeros_like(x)
        dx[i] = h
        columns.append((np.asarray(f(x + dx)) - np.asarray(f(x - dx))) / (2.0 * h))
    return np.stack(columns, axis=-1)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture(params=ALL_MODELS, ids=lambda cls: cls.NAME)
def distortion(request):
    """Each distortion model with its test parameters."""
    return request.param.create_test_distortion()


@pytest.fixture(params=PARAMETRIC_MODELS, ids=lambda cls: cls.NAME)
def parametric_distortion(request):
    """Distortion models that have parameters."""
    return request.param.create_test_distortion()


# =============================================================================
# Test Mapping
# =============================================================================

class TestDistortMapping:
    """Tests for distort() and undistort()."""

    def test_origin_is_fixed(self, distortion):
        """The optical axis is never distorted."""
        assert np.array_equal(distortion.distort([0.0, 0.0]), [0.0, 0.0])

    @pytest.mark.parametrize("point", TEST_POINTS)
    def test_undistort_inverts_distort(self, distortion, point):
        """undistort(distort(y)) recovers y."""
        distorted = distortion.distort(point)
        recovered = distortion.undistort(distorted)

        assert np.allclose(recovered, point, atol=1e-9)

    def test_radtan_known_value(self):
        """Radial-tangential distortion of a hand-computed point."""
        distortion = RadTanDistortion([0.1, 0.0, 0.0, 0.0])
        # r^2 = 0.25, scale = 1 + 0.1 * 0.25
        distorted = distortion.distort([0.3, 0.4])

        assert np.allclose(distorted, [0.3 * 1.025, 0.4 * 1.025])

    def test_no_distortion_is_identity(self):
        """NoDistortion returns the input point."""
        distortion = NoDistortion()
        point = np.array([0.7, -1.3])

        assert np.array_equal(distortion.distort(point), point)
        assert np.array_equal(distortion.undistort(point), point)

    def test_fisheye_zero_w_is_identity(self):
        """The FOV model with w = 0 does not distort."""
        distortion = FisheyeDistortion([0.0])

        assert np.allclose(distortion.distort([0.3, -0.2]), [0.3, -0.2])
        assert np.allclose(distortion.undistort([0.3, -0.2]), [0.3, -0.2])

    def test_wrong_point_size_raises(self, distortion):
        """Points must have exactly two elements."""
        with pytest.raises(ValueError):
            distortion.distort([0.1, 0.2, 0.3])


# =============================================================================
# Test Jacobians
# =============================================================================

class TestDistortionJacobians:
    """Analytic Jacobians against finite differences."""

    @pytest.mark.parametrize("point", TEST_POINTS)
    def test_distort_jacobian(self, distortion, point):
        """d(distort)/d(point) matches finite differences."""
        _, J = distortion.distort(point, compute_jacobian=True)
        J_numerical = numerical_jacobian(distortion.distort, point)

        assert J.shape == (2, 2)
        assert np.allclose(J, J_numerical, atol=1e-6)

    @pytest.mark.parametrize("point", TEST_POINTS)
    def test_undistort_jacobian(self, distortion, point):
        """d(undistort)/d(point) matches finite differences."""
        distorted = distortion.distort(point)
        _, J = distortion.undistort(distorted, compute_jacobian=True)
        J_numerical = numerical_jacobian(distortion.undistort, distorted)

        assert np.allclose(J, J_numerical, atol=1e-5)

    @pytest.mark.parametrize("point", TEST_POINTS)
    def test_undistort_jacobian_is_inverse(self, distortion, point):
        """The undistort Jacobian inverts the distort Jacobian."""
        distorted, J_distort = distortion.distort(point, compute_jacobian=True)
        _, J_undistort = distortion.undistort(distorted, compute_jacobian=True)

        assert np.allclose(J_undistort @ J_distort, np.eye(2), atol=1e-8)

    @pytest.mark.parametrize("point", TEST_POINTS)
    def test_parameter_jacobian(self, parametric_distortion, point):
        """d(distort)/d(parameters) matches finite differences."""
        distortion = parametric_distortion
        parameters = distortion.get_parameters()

        def distort_with(params):
            perturbed = distortion.copy()
            perturbed.set_parameters(params)
            return perturbed.distort(point)

        J = distortion.distort_parameter_jacobian(point)
        J_numerical = numerical_jacobian(distort_with, parameters)

        assert J.shape == (2, distortion.minimal_dimensions())
        assert np.allclose(J, J_numerical, atol=1e-6)

    def test_no_distortion_parameter_jacobian_is_empty(self):
        """A model without parameters has a 2x0 parameter Jacobian."""
        assert NoDistortion().distort_parameter_jacobian([0.1, 0.2]).shape == (2, 0)


# =============================================================================
# Test Parameters
# =============================================================================

class TestDistortionParameters:
    """Tests for parameter access, clear() and equality."""

    def test_minimal_dimensions(self):
        """Each model reports its parameter count."""
        assert NoDistortion().minimal_dimensions() == 0
        assert RadTanDistortion().minimal_dimensions() == 4
        assert EquidistantDistortion().minimal_dimensions() == 4
        assert FisheyeDistortion().minimal_dimensions() == 1

    def test_clear_zeroes_parameters(self, parametric_distortion):
        """clear() zeroes every parameter."""
        parametric_distortion.clear()

        assert np.all(parametric_distortion.get_parameters() == 0.0)

    @pytest.mark.parametrize("cls", [RadTanDistortion, FisheyeDistortion],
                             ids=lambda cls: cls.NAME)
    def test_clear_gives_identity(self, cls):
        """Cleared radial-tangential and fisheye models do not distort."""
        distortion = cls.create_test_distortion()
        distortion.clear()
        point = np.array([0.3, -0.2])

        assert np.allclose(distortion.distort(point), point)
        assert np.allclose(distortion.undistort(point), point)

    def test_cleared_equidistant_is_equidistant_projection(self):
        """With zero coefficients the equidistant model maps p to p * atan(r) / r."""
        distortion = EquidistantDistortion.create_test_distortion()
        distortion.clear()
        point = np.array([0.3, -0.2])
        r = np.hypot(0.3, -0.2)

        distorted = distortion.distort(point)

        assert np.allclose(distorted, point * np.arctan(r) / r)
        assert np.allclose(distorted, [0.28792845, -0.1919523])
        assert np.allclose(distortion.undistort(distorted), point)

    def test_get_parameters_returns_copy(self, parametric_distortion):
        """Modifying the returned vector does not change the model."""
        parameters = parametric_distortion.get_parameters()
        parameters[0] = 123.0

        assert parametric_distortion.get_parameters()[0] != 123.0

    def test_set_parameters_wrong_size_raises(self):
        """Parameter vectors are shape checked."""
        with pytest.raises(ValueError):
            RadTanDistortion().set_parameters([0.1, 0.2])
        with pytest.raises(ValueError):
            RadTanDistortion([0.1, 0.2, 0.3])

    def test_binary_equality(self):
        """Equality is exact in type and parameters."""
        a = RadTanDistortion([0.5, 0.3, 0.2, 0.01])
        b = RadTanDistortion([0.5, 0.3, 0.2, 0.01])
        c = RadTanDistortion([0.0, 0.3, 0.2, 0.01])

        assert a.is_binary_equal(b)
        assert not a.is_binary_equal(c)
        assert not RadTanDistortion().is_binary_equal(EquidistantDistortion())

    def test_copy_is_independent(self):
        """A copy does not share its parameter storage."""
        original = RadTanDistortion.create_test_distortion()
        duplicate = original.copy()
        duplicate.clear()

        assert not original.is_binary_equal(duplicate)
        assert isinstance(duplicate, RadTanDistortion)


# =============================================================================
# Test Factory
# =============================================================================

class TestDistortionFactory:
    """Tests for creating distortions by name and from configuration."""

    @pytest.mark.parametrize("name, cls", [
        ("none", NoDistortion),
        ("radtan", RadTanDistortion),
        ("RadTan", RadTanDistortion),
        ("equidistant", EquidistantDistortion),
        ("fisheye", FisheyeDistortion),
    ])
    def test_create_by_name(self, name, cls):
        """Names map to the model classes, case insensitively."""
        assert isinstance(create_distortion(name), cls)

    def test_unknown_name_raises(self):
        """Unknown model names are rejected."""
        with pytest.raises(ValueError, match="Unknown distortion type"):
            create_distortion("division")

    def test_from_config(self):
        """A config block sets type and parameters."""
        distortion = distortion_from_config({
            "type": "equidistant",
            "parameters": [0.1, 0.2, 0.3, 0.4],
        })

        assert isinstance(distortion, EquidistantDistortion)
        assert np.array_equal(distortion.get_parameters(), [0.1, 0.2, 0.3, 0.4])

    def test_empty_config_is_no_distortion(self):
        """Missing distortion blocks give the identity model."""
        assert isinstance(distortion_from_config(None), NoDistortion)
        assert isinstance(distortion_from_config({}), NoDistortion)

    def test_to_config_round_trip(self, distortion):
        """to_config() output rebuilds an equal model."""
        rebuilt = distortion_from_config(distortion.to_config())

        assert rebuilt.is_binary_equal(distortion)

    def test_base_class_has_no_mapping(self):
        """The abstract base cannot distort."""
        with pytest.raises(NotImplementedError):
            Distortion().distort([0.1, 0.2])
