"""Tests for CoarseTracker end-to-end processing."""

import numpy as np
import pytest
from conftest import BF, NUM_LEVELS, make_edge_pair, make_frame

from directvo import CoarseTracker, PointStatus, TrackerConfig


class TestCoarseTracker:
    """Test suite for CoarseTracker.process_frame."""

    @pytest.fixture
    def tracker(self, config) -> CoarseTracker:
        return CoarseTracker(config)

    def test_flat_frame_gives_empty_result(self, tracker, flat_frame, camera):
        """Test that a frame with nothing to select yields no points and empty maps."""
        result = tracker.process_frame(flat_frame, camera, 0.5)

        assert len(result) == 0
        assert result.num_selected == 0
        assert result.status_counts == {}
        assert result.inverse_depths().shape == (0,)
        assert result.pixels().shape == (0, 2)
        assert len(tracker.idepth_maps) == NUM_LEVELS
        assert all(np.isnan(m).all() for m in tracker.idepth_maps)

    def test_edge_depth(self, tracker, edge_frame, camera):
        """Test that every point on the edge converges near disparity 8."""
        result = tracker.process_frame(edge_frame, camera, 1.0)

        assert len(result) > 0
        assert result.num_good == len(result)
        for point in result:
            assert point.status == PointStatus.GOOD
            assert point.idepth == pytest.approx(8.0 / BF, abs=0.5 / BF)

        on_edge = [p for p in result if p.u == 32]
        assert on_edge
        for point in on_edge:
            assert point.idepth == pytest.approx(8.0 / BF, abs=0.25 / BF)

    def test_result_bookkeeping(self, tracker, edge_frame, camera):
        result = tracker.process_frame(edge_frame, camera, 1.0)

        assert sum(result.status_counts.values()) == result.num_selected
        assert result.status_counts.get(PointStatus.GOOD, 0) == len(result)
        assert result.num_untraced == 0
        assert result.frame_id == edge_frame.frame_id
        assert result.timing.total_ms >= result.timing.selection_ms
        # Points come in row-major pixel order
        pixels = result.pixels()
        order = np.lexsort((pixels[:, 0], pixels[:, 1]))
        np.testing.assert_array_equal(order, np.arange(len(pixels)))

    def test_level0_map_holds_accepted_points(self, tracker, edge_frame, camera):
        result = tracker.process_frame(edge_frame, camera, 1.0)
        level0 = tracker.idepth_maps[0]

        assert np.count_nonzero(np.isfinite(level0)) == len(result)
        for point in result:
            assert level0[point.v, point.u] == pytest.approx(point.idepth)

    def test_coarser_map(self, tracker, edge_frame, camera):
        """Test that level 1 averages the valid level-0 children."""
        tracker.process_frame(edge_frame, camera, 1.0)
        level0, level1 = tracker.idepth_maps[0], tracker.idepth_maps[1]

        assert level1.shape == (32, 32)
        valid = level1[np.isfinite(level1)]
        assert len(valid) > 0
        np.testing.assert_allclose(valid, 8.0 / BF, atol=0.5 / BF)

        children = level0[20:22, 32:34]
        expected = np.nanmean(children)
        assert level1[10, 16] == pytest.approx(expected)

    def test_point_cloud(self, tracker, edge_frame, camera):
        """Test back-projection of the maps at full and half resolution."""
        tracker.process_frame(edge_frame, camera, 1.0)

        for level in (0, 1):
            points = tracker.point_cloud(camera, level=level)
            assert points.shape[1] == 3
            assert len(points) > 0
            np.testing.assert_allclose(points[:, 2], 10.0, rtol=0.07)

    def test_textured_depth(self, tracker, textured_frame, camera):
        """Test that a textured pair with disparity 4 recovers inverse depth 4 / bf."""
        result = tracker.process_frame(textured_frame, camera, 0.15)

        assert len(result) > 0
        assert np.median(result.inverse_depths()) == pytest.approx(4.0 / BF, abs=0.5 / BF)

    def test_right_image_shifted_past_width(self, tracker, camera):
        """Test that every point is out of bound when the right view shows none of the left."""
        left, _ = make_edge_pair()
        frame = make_frame(left, np.zeros_like(left))

        result = tracker.process_frame(frame, camera, 1.0)

        assert result.num_selected > 0
        assert result.status_counts == {PointStatus.OUT_OF_BOUND: result.num_selected}
        assert len(result) == 0

    def test_deterministic(self, tracker, textured_frame, camera):
        first = tracker.process_frame(textured_frame, camera, 0.15)
        second = tracker.process_frame(textured_frame, camera, 0.15)

        np.testing.assert_array_equal(first.pixels(), second.pixels())
        np.testing.assert_array_equal(first.inverse_depths(), second.inverse_depths())

    def test_workers_match_single_thread(self, textured_frame, camera):
        """Test that parallel tracing gives the same result as serial tracing."""
        serial = CoarseTracker(TrackerConfig(pyramid_levels=NUM_LEVELS))
        parallel = CoarseTracker(TrackerConfig(pyramid_levels=NUM_LEVELS, num_workers=3))

        a = serial.process_frame(textured_frame, camera, 0.5)
        b = parallel.process_frame(textured_frame, camera, 0.5)

        np.testing.assert_array_equal(a.pixels(), b.pixels())
        np.testing.assert_array_equal(a.inverse_depths(), b.inverse_depths())
        assert a.status_counts == b.status_counts
        np.testing.assert_array_equal(serial.idepth_maps[2], parallel.idepth_maps[2])

    def test_exhausted_time_budget(self, edge_frame, camera):
        """Test that hypotheses not started within the budget stay untraced."""
        tracker = CoarseTracker(TrackerConfig(pyramid_levels=NUM_LEVELS, time_budget_ms=1e-6))

        result = tracker.process_frame(edge_frame, camera, 1.0)

        assert result.num_selected > 0
        assert result.num_untraced == result.num_selected
        assert len(result) == 0
        assert all(np.isnan(m).all() for m in tracker.idepth_maps)

    def test_maps_overwritten_per_frame(self, tracker, edge_frame, flat_frame, camera):
        tracker.process_frame(edge_frame, camera, 1.0)
        assert tracker.get_idepth(32, 32) is not None

        tracker.process_frame(flat_frame, camera, 1.0)
        assert tracker.get_idepth(32, 32) is None

    def test_get_idepth(self, tracker, edge_frame, camera):
        assert tracker.get_idepth(32, 32) is None

        tracker.process_frame(edge_frame, camera, 1.0)

        assert tracker.get_idepth(32, 32) == pytest.approx(8.0 / BF, abs=0.25 / BF)
        assert tracker.get_idepth(10, 10) is None
        assert tracker.get_idepth(-1, 0) is None
        assert tracker.get_idepth(16, 16, level=1) is not None

    @pytest.mark.parametrize("level", [-1, NUM_LEVELS, 10])
    def test_get_idepth_level_out_of_range(self, tracker, edge_frame, camera, level):
        """Test that a level outside the pyramid has no estimate instead of wrapping."""
        tracker.process_frame(edge_frame, camera, 1.0)
        assert tracker.get_idepth(4, 4, level=NUM_LEVELS - 1) is not None

        assert tracker.get_idepth(4, 4, level=level) is None

    def test_rejects_non_camera(self, tracker, edge_frame):
        with pytest.raises(TypeError, match="CameraModel"):
            tracker.process_frame(edge_frame, {"bf": BF}, 0.5)

    def test_rejects_pyramid_mismatch(self, tracker, camera):
        left, right = make_edge_pair()
        frame = make_frame(left, right, num_levels=NUM_LEVELS - 1)

        with pytest.raises(ValueError, match="pyramid levels"):
            tracker.process_frame(frame, camera, 0.5)

    def test_non_finite_density(self, tracker, edge_frame, camera):
        with pytest.raises(ValueError, match="finite"):
            tracker.process_frame(edge_frame, camera, float("nan"))
