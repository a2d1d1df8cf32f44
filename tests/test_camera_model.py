"""Tests for CameraModel."""

import numpy as np
import pytest

from directvo import CameraModel


class TestCameraModel:
    """Test suite for CameraModel."""

    def test_valid_parameters(self):
        """Test that a valid camera is constructed unchanged."""
        cam = CameraModel(fx=435.2, fy=435.2, cx=367.4, cy=252.2, bf=47.9)

        assert cam.fx == 435.2
        assert cam.bf == 47.9
        assert cam.baseline == pytest.approx(47.9 / 435.2)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"fx": 0.0},
            {"fy": -1.0},
            {"bf": -0.1},
            {"cx": float("nan")},
            {"fx": float("inf")},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        """Test that non-positive focal lengths, negative bf and non-finite values fail."""
        params = {"fx": 400.0, "fy": 400.0, "cx": 32.0, "cy": 32.0, "bf": 80.0}
        params.update(kwargs)

        with pytest.raises(ValueError):
            CameraModel(**params)

    def test_zero_baseline_accepted(self):
        """Test that a degenerate rig (bf = 0) can be constructed."""
        cam = CameraModel(fx=400.0, fy=400.0, cx=32.0, cy=32.0, bf=0.0)
        assert cam.bf == 0.0

    def test_immutable(self, camera):
        """Test that the model cannot be modified."""
        with pytest.raises(AttributeError):
            camera.fx = 1.0

    def test_scaled_halves_per_level(self, camera):
        """Test that every level halves fx, fy, cx, cy and bf."""
        level2 = camera.scaled(2)

        assert level2.fx == pytest.approx(camera.fx / 4)
        assert level2.fy == pytest.approx(camera.fy / 4)
        assert level2.cx == pytest.approx(camera.cx / 4)
        assert level2.cy == pytest.approx(camera.cy / 4)
        assert level2.bf == pytest.approx(camera.bf / 4)
        # Baseline is a physical length and doesn't change
        assert level2.baseline == pytest.approx(camera.baseline)

    def test_scaled_level_zero_is_identity(self, camera):
        assert camera.scaled(0) == camera

    def test_scaled_negative_level(self, camera):
        with pytest.raises(ValueError, match="Pyramid level"):
            camera.scaled(-1)

    def test_pyramid(self, camera):
        """Test that pyramid returns one scaled model per level."""
        cams = camera.pyramid(3)

        assert len(cams) == 3
        assert [c.fx for c in cams] == pytest.approx([400.0, 200.0, 100.0])

    def test_to_matrix(self, camera):
        K = camera.to_matrix()

        assert K.shape == (3, 3)
        np.testing.assert_allclose(K, [[400, 0, 32], [0, 400, 32], [0, 0, 1]])

    def test_backproject(self, camera):
        """Test that back-projection inverts the pinhole projection."""
        points = camera.backproject(np.array([32.0, 72.0]), np.array([32.0, 12.0]), np.array([0.5, 0.1]))

        np.testing.assert_allclose(points[0], [0.0, 0.0, 2.0])
        np.testing.assert_allclose(points[1], [1.0, -0.5, 10.0])

    def test_backproject_rejects_zero_idepth(self, camera):
        with pytest.raises(ValueError, match="positive"):
            camera.backproject(np.array([1.0]), np.array([1.0]), np.array([0.0]))
