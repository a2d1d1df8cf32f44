"""Tests for tracker configuration."""

from pathlib import Path

import pytest

from directvo import SelectorConfig, TracerConfig, TrackerConfig


class TestConfigDefaults:
    """Test suite for default values and validation."""

    def test_defaults(self):
        config = TrackerConfig()

        assert config.border == 5
        assert config.pyramid_levels == 4
        assert config.density_schedule == (0.03, 0.05, 0.15, 0.5, 1.0)
        assert config.num_workers == 1
        assert config.time_budget_ms is None
        assert config.selector == SelectorConfig()
        assert config.tracer == TracerConfig()

    def test_selector_defaults(self):
        selector = SelectorConfig()

        assert selector.block_size == 32
        assert selector.hist_cut == 0.5
        assert selector.hist_add == 7.0
        assert selector.grad_downweight == 0.75

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"border": 2},
            {"pyramid_levels": 0},
            {"density_schedule": ()},
            {"density_schedule": (0.05, 1.5)},
            {"num_workers": 0},
            {"time_budget_ms": 0.0},
        ],
    )
    def test_invalid_tracker_values(self, kwargs):
        with pytest.raises(ValueError):
            TrackerConfig(**kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"block_size": 2},
            {"block_size": 32.0},
            {"hist_cut": 1.0},
            {"grad_downweight": 0.0},
            {"max_potential": 12.5},
            {"seed": -1},
            {"seed": True},
        ],
    )
    def test_invalid_selector_values(self, kwargs):
        with pytest.raises(ValueError):
            SelectorConfig(**kwargs)

    @pytest.mark.parametrize("kwargs", [{"border": 5.0}, {"pyramid_levels": True}, {"num_workers": 2.0}])
    def test_non_integer_tracker_values(self, kwargs):
        with pytest.raises(ValueError, match="must be an int"):
            TrackerConfig(**kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [{"step": 0.0}, {"min_quality": 0.5}, {"huber_threshold": float("nan")}],
    )
    def test_invalid_tracer_values(self, kwargs):
        with pytest.raises(ValueError):
            TracerConfig(**kwargs)


class TestConfigLoading:
    """Test suite for dictionary and YAML loading."""

    def test_from_dict_nested(self):
        config = TrackerConfig.from_dict(
            {
                "border": 8,
                "density_schedule": [0.1, 0.2],
                "selector": {"max_potential": 6},
                "tracer": {"max_search_pixels": 48},
            }
        )

        assert config.border == 8
        assert config.density_schedule == (0.1, 0.2)
        assert config.selector.max_potential == 6
        assert config.tracer.max_search_pixels == 48
        # Unspecified values keep their defaults
        assert config.tracer.huber_threshold == 9.0

    def test_from_dict_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown TrackerConfig keys"):
            TrackerConfig.from_dict({"bordr": 5})

    def test_from_dict_unknown_section_key(self):
        with pytest.raises(ValueError, match="Unknown TracerConfig keys"):
            TrackerConfig.from_dict({"tracer": {"huber": 9.0}})

    def test_from_dict_fractional_potential(self):
        """Test that a non-integer block spacing is rejected when loading."""
        with pytest.raises(ValueError, match="max_potential must be an int"):
            TrackerConfig.from_dict({"selector": {"max_potential": 12.5}})

    def test_from_dict_section_not_mapping(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            TrackerConfig.from_dict({"selector": [1, 2]})

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "border: 6\n"
            "num_workers: 2\n"
            "time_budget_ms: 25.0\n"
            "selector:\n"
            "  seed: 3\n"
        )

        config = TrackerConfig.from_yaml(path)

        assert config.border == 6
        assert config.num_workers == 2
        assert config.time_budget_ms == 25.0
        assert config.selector.seed == 3

    def test_from_yaml_empty_file(self, tmp_path: Path):
        """Test that an empty file gives the default configuration."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert TrackerConfig.from_yaml(path) == TrackerConfig()

    def test_from_yaml_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            TrackerConfig.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_not_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ValueError, match="must be a mapping"):
            TrackerConfig.from_yaml(path)
