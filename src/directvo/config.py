"""Configuration for pixel selection and stereo depth initialization.

All tunables are passed explicitly into the components so that selection and
tracing stay pure functions of their inputs. Configurations can be loaded
from a YAML file with nested ``selector:`` and ``tracer:`` sections:

    border: 5
    pyramid_levels: 4
    density_schedule: [0.03, 0.05, 0.15, 0.5, 1.0]
    selector:
      max_potential: 12
    tracer:
      max_search_pixels: 64
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

# Pattern radius (2) plus one pixel for the central-difference gradient
MIN_BORDER = 3


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


def _is_int(value: Any) -> bool:
    # bool is an int subclass but never a valid count
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class SelectorConfig:
    """Tunables of the adaptive pixel selector.

    Attributes:
        block_size: Side (pixels) of the blocks used for the gradient histograms
        hist_cut: Quantile of the block gradient histogram used as threshold
        hist_add: Constant added to the quantile (gradient magnitude units)
        grad_downweight: Threshold factor applied per coarser pyramid level
        max_potential: Largest block spacing tried when ranking candidates
        min_gradient_floor: Gradient magnitude a pixel needs to be selectable
            at all (used by the final, densest tier)
        seed: Seed for block directions and subsampling
    """

    block_size: int = 32
    hist_cut: float = 0.5
    hist_add: float = 7.0
    grad_downweight: float = 0.75
    max_potential: int = 12
    min_gradient_floor: float = 7.0
    seed: int = 0

    def __post_init__(self) -> None:
        _require(
            _is_int(self.block_size) and self.block_size >= 4,
            f"block_size must be an int >= 4, got {self.block_size!r}",
        )
        _require(0.0 < self.hist_cut < 1.0, f"hist_cut must be in (0, 1), got {self.hist_cut}")
        _require(self.hist_add >= 0.0, f"hist_add must be >= 0, got {self.hist_add}")
        _require(
            0.0 < self.grad_downweight <= 1.0,
            f"grad_downweight must be in (0, 1], got {self.grad_downweight}",
        )
        _require(
            _is_int(self.max_potential) and self.max_potential >= 1,
            f"max_potential must be an int >= 1, got {self.max_potential!r}",
        )
        _require(
            self.min_gradient_floor >= 0.0,
            f"min_gradient_floor must be >= 0, got {self.min_gradient_floor}",
        )
        _require(
            _is_int(self.seed) and self.seed >= 0,
            f"seed must be an int >= 0, got {self.seed!r}",
        )


@dataclass(frozen=True)
class TracerConfig:
    """Tunables of the stereo epipolar tracer.

    Attributes:
        max_search_pixels: Search length (pixels) when the inverse-depth
            interval has no upper bound
        step: Spacing (pixels) of the sampled candidate disparities
        huber_threshold: Residual (intensity) above which the cost grows linearly
        outlier_threshold: Per-pixel residual (intensity) accepted for a match
        outlier_slack: Extra factor on the outlier energy threshold
        min_gradient: Minimum RMS gradient over the pattern to attempt a trace
        min_quality: Minimum second-best / best energy ratio
        quality_noise: Intensity noise level regularizing the quality ratio
        min_trace_radius: Distance (pixels) from the best match beyond which
            the second-best energy is searched
        min_improvement_factor: A bounded interval is only traced if it is
            this many times longer than the achievable pixel uncertainty
        max_error_in_pixel: Cap of the pixel uncertainty
    """

    max_search_pixels: float = 96.0
    step: float = 1.0
    huber_threshold: float = 9.0
    outlier_threshold: float = 12.0
    outlier_slack: float = 1.2
    min_gradient: float = 2.0
    min_quality: float = 2.0
    quality_noise: float = 2.0
    min_trace_radius: float = 2.0
    min_improvement_factor: float = 2.0
    max_error_in_pixel: float = 10.0

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            _require(
                isinstance(value, (int, float)) and math.isfinite(value),
                f"{f.name} must be a finite number, got {value!r}",
            )
        _require(self.max_search_pixels > 0.0, "max_search_pixels must be > 0")
        _require(self.step > 0.0, "step must be > 0")
        _require(self.huber_threshold > 0.0, "huber_threshold must be > 0")
        _require(self.outlier_threshold > 0.0, "outlier_threshold must be > 0")
        _require(self.outlier_slack >= 1.0, "outlier_slack must be >= 1")
        _require(self.min_gradient >= 0.0, "min_gradient must be >= 0")
        _require(self.min_quality >= 1.0, "min_quality must be >= 1")
        _require(self.quality_noise > 0.0, "quality_noise must be > 0")
        _require(self.min_trace_radius >= 0.0, "min_trace_radius must be >= 0")
        _require(self.min_improvement_factor >= 0.0, "min_improvement_factor must be >= 0")
        _require(self.max_error_in_pixel > 0.0, "max_error_in_pixel must be > 0")


@dataclass(frozen=True)
class TrackerConfig:
    """Configuration shared by selector, tracer and coarse tracker.

    Attributes:
        border: Margin (pixels) on all four sides that is never selected
        pyramid_levels: Number of pyramid levels built per frame
        density_schedule: Densities callers pick from (fast tracking to
            dense initialization)
        num_workers: Threads used for tracing (1 = trace in the calling thread)
        time_budget_ms: Per-frame tracing budget; None disables it
        selector: Pixel selector tunables
        tracer: Stereo tracer tunables
    """

    border: int = 5
    pyramid_levels: int = 4
    density_schedule: tuple[float, ...] = (0.03, 0.05, 0.15, 0.5, 1.0)
    num_workers: int = 1
    time_budget_ms: float | None = None
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    tracer: TracerConfig = field(default_factory=TracerConfig)

    def __post_init__(self) -> None:
        # Allow lists from YAML
        object.__setattr__(self, "density_schedule", tuple(self.density_schedule))

        _require(
            _is_int(self.border) and self.border >= MIN_BORDER,
            f"border must be an int >= {MIN_BORDER}, got {self.border!r}",
        )
        _require(
            _is_int(self.pyramid_levels) and self.pyramid_levels >= 1,
            f"pyramid_levels must be an int >= 1, got {self.pyramid_levels!r}",
        )
        _require(len(self.density_schedule) > 0, "density_schedule must not be empty")
        for density in self.density_schedule:
            _require(
                0.0 < density <= 1.0,
                f"density_schedule values must be in (0, 1], got {density}",
            )
        _require(
            _is_int(self.num_workers) and self.num_workers >= 1,
            f"num_workers must be an int >= 1, got {self.num_workers!r}",
        )
        if self.time_budget_ms is not None:
            _require(self.time_budget_ms > 0.0, "time_budget_ms must be > 0")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackerConfig:
        """Create a configuration from a (possibly nested) dictionary.

        Args:
            data: Top-level keys of TrackerConfig, with optional ``selector``
                and ``tracer`` sub-dictionaries

        Returns:
            Validated TrackerConfig

        Raises:
            ValueError: If a key is unknown or a value is invalid
        """
        if not isinstance(data, dict):
            raise ValueError(f"Configuration must be a mapping, got {type(data).__name__}")

        data = dict(data)
        selector = _build_section(SelectorConfig, data.pop("selector", None) or {})
        tracer = _build_section(TracerConfig, data.pop("tracer", None) or {})
        top = _build_kwargs(cls, data, skip={"selector", "tracer"})
        try:
            return cls(selector=selector, tracer=tracer, **top)
        except TypeError as e:
            raise ValueError(f"Invalid TrackerConfig: {e}") from e

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> TrackerConfig:
        """Load a configuration from a YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file content is invalid
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)

        # An empty file means "all defaults"
        if data is None:
            data = {}
        return cls.from_dict(data)


def _build_kwargs(cls: type, data: dict[str, Any], skip: set[str] = frozenset()) -> dict[str, Any]:
    names = {f.name for f in fields(cls)} - set(skip)
    unknown = set(data) - names
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return dict(data)


def _build_section(cls: type, data: Any) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"{cls.__name__} section must be a mapping, got {type(data).__name__}")
    try:
        return cls(**_build_kwargs(cls, data))
    except TypeError as e:
        raise ValueError(f"Invalid {cls.__name__} section: {e}") from e
