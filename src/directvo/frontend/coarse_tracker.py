"""Per-frame orchestration of pixel selection and stereo depth initialization."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterator

import numpy as np

from ..config import TrackerConfig
from .camera_model import CameraModel
from .depth_hypothesis import DepthHypothesis, PointStatus
from .frame import StereoFrame
from .pixel_selector import PixelSelector, SelectionMap
from .stereo_tracer import StereoTracer

logger = logging.getLogger(__name__)


@dataclass
class TracerTiming:
    """Timing breakdown for a single frame."""

    selection_ms: float = 0.0
    tracing_ms: float = 0.0
    total_ms: float = 0.0


@dataclass
class SparseDepthFrame:
    """Output of the coarse tracker for a single frame.

    Attributes:
        frame_id: Index of the processed frame
        timestamp_ns: Frame timestamp in nanoseconds
        points: Hypotheses that traced GOOD, in row-major pixel order
        selection: Selection map the hypotheses were created from
        status_counts: Number of traced hypotheses per status
        num_untraced: Hypotheses not started within the time budget
        timing: Timing breakdown
    """

    frame_id: int
    timestamp_ns: int
    points: list[DepthHypothesis]
    selection: SelectionMap
    status_counts: dict[PointStatus, int] = field(default_factory=dict)
    num_untraced: int = 0
    timing: TracerTiming = field(default_factory=TracerTiming)

    @property
    def num_selected(self) -> int:
        """Return number of selected pixels."""
        return self.selection.num_selected

    @property
    def num_good(self) -> int:
        return len(self.points)

    def inverse_depths(self) -> np.ndarray:
        """Return N array of accepted inverse depths."""
        return np.array([p.idepth for p in self.points], dtype=np.float64)

    def pixels(self) -> np.ndarray:
        """Return Nx2 array of accepted (u, v) pixels."""
        if not self.points:
            return np.empty((0, 2), dtype=np.int64)
        return np.array([(p.u, p.v) for p in self.points], dtype=np.int64)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[DepthHypothesis]:
        return iter(self.points)


def _chunks(items: list, num_chunks: int) -> list[list]:
    size = -(-len(items) // num_chunks)
    return [items[i : i + size] for i in range(0, len(items), size)]


class CoarseTracker:
    """Selects pixels and initializes their inverse depth from stereo.

    Owns one inverse-depth map per pyramid level (NaN = no estimate). The
    maps are overwritten by every `process_frame` call: level 0 receives the
    inverse depth of every GOOD hypothesis, coarser levels hold the mean of
    their valid 2x2 children.

    Example:
        >>> tracker = CoarseTracker(TrackerConfig())
        >>> frame = StereoFrame.from_images(left, right, num_levels=4)
        >>> result = tracker.process_frame(frame, camera, 0.05)
        >>> print(f"{len(result)} of {result.num_selected} points initialized")
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        pixel_selector: PixelSelector | None = None,
        stereo_tracer: StereoTracer | None = None,
    ) -> None:
        """Initialize tracker with components.

        Args:
            config: Tracker configuration. Uses defaults if None.
            pixel_selector: Pixel selector. Built from config if None.
            stereo_tracer: Stereo tracer. Built from config if None.
        """
        self._config = config or TrackerConfig()
        self._selector = pixel_selector or PixelSelector(
            border=self._config.border, config=self._config.selector
        )
        self._tracer = stereo_tracer or StereoTracer(self._config.tracer)
        self._idepth_maps: list[np.ndarray] = []

    def process_frame(
        self,
        frame: StereoFrame,
        camera: CameraModel,
        target_density: float,
    ) -> SparseDepthFrame:
        """Select pixels of a frame and initialize their depth.

        Pipeline stages:
        1. Select pixels at the target density
        2. Create one hypothesis per selected interior pixel, seeded with
           the interval [0, unbounded)
        3. Trace every hypothesis along the right image row
        4. Write GOOD inverse depths into the level-0 map, derive coarser maps

        Args:
            frame: Rectified stereo frame
            camera: Camera model of the rectified rig
            target_density: Wanted fraction of interior pixels

        Returns:
            SparseDepthFrame with the accepted hypotheses. A frame without
            any selectable pixel gives an empty result.

        Raises:
            TypeError: If camera is not a CameraModel
            ValueError: If the frame pyramid depth doesn't match the config
        """
        if not isinstance(camera, CameraModel):
            raise TypeError(f"camera must be a CameraModel, got {type(camera).__name__}")
        if frame.pyramid.num_levels != self._config.pyramid_levels:
            raise ValueError(
                f"Frame has {frame.pyramid.num_levels} pyramid levels, "
                f"expected {self._config.pyramid_levels}"
            )

        timing = TracerTiming()
        t_start = time.perf_counter()

        # Stage 1: Pixel selection
        selection = self._selector.make_maps(frame, target_density)
        timing.selection_ms = (time.perf_counter() - t_start) * 1000

        # Stage 2: Hypotheses for interior pixels
        hypotheses = self._make_hypotheses(frame, selection)

        # Stage 3: Stereo tracing
        t0 = time.perf_counter()
        statuses = self._trace_all(hypotheses, frame.right, camera, t_start)
        timing.tracing_ms = (time.perf_counter() - t0) * 1000

        # Stage 4: Commit (single writer)
        self._reset_maps(frame)
        level0 = self._idepth_maps[0]
        points = []
        status_counts: dict[PointStatus, int] = {}
        num_untraced = 0
        for hypothesis, status in zip(hypotheses, statuses):
            if status is None:
                num_untraced += 1
                continue
            status_counts[status] = status_counts.get(status, 0) + 1
            if status == PointStatus.GOOD:
                level0[hypothesis.v, hypothesis.u] = hypothesis.idepth
                points.append(hypothesis)
        self._propagate_maps()

        timing.total_ms = (time.perf_counter() - t_start) * 1000
        logger.debug(
            "Frame %d: %d selected, %d good, %d untraced (%.1f ms)",
            frame.frame_id,
            selection.num_selected,
            len(points),
            num_untraced,
            timing.total_ms,
        )

        return SparseDepthFrame(
            frame_id=frame.frame_id,
            timestamp_ns=frame.timestamp_ns,
            points=points,
            selection=selection,
            status_counts=status_counts,
            num_untraced=num_untraced,
            timing=timing,
        )

    def _make_hypotheses(
        self, frame: StereoFrame, selection: SelectionMap
    ) -> list[DepthHypothesis]:
        b = self._config.border
        h, w = selection.shape
        us, vs, levels, buckets = selection.selected_pixels()

        hypotheses = []
        for u, v, level, bucket in zip(us, vs, levels, buckets):
            if u < b or v < b or u >= w - b or v >= h - b:
                continue
            hypotheses.append(
                DepthHypothesis.from_pyramid(
                    frame.pyramid, int(u), int(v), level=int(level), bucket=int(bucket)
                )
            )
        return hypotheses

    def _trace_all(
        self,
        hypotheses: list[DepthHypothesis],
        right: np.ndarray,
        camera: CameraModel,
        t_start: float,
    ) -> list[PointStatus | None]:
        """Trace hypotheses, returning one status per hypothesis.

        Hypotheses not started before the time budget ran out get None.
        """
        budget_ms = self._config.time_budget_ms
        deadline = None if budget_ms is None else t_start + budget_ms / 1000.0

        def trace_chunk(chunk: list[DepthHypothesis]) -> list[PointStatus | None]:
            statuses = []
            for hypothesis in chunk:
                if deadline is not None and time.perf_counter() > deadline:
                    statuses.append(None)
                    continue
                statuses.append(self._tracer.trace_right(hypothesis, right, camera))
            return statuses

        num_workers = self._config.num_workers
        if num_workers == 1 or len(hypotheses) < 2:
            return trace_chunk(hypotheses)

        # Every chunk is owned by exactly one worker
        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            results = executor.map(trace_chunk, _chunks(hypotheses, num_workers))
            return [status for chunk in results for status in chunk]

    def _reset_maps(self, frame: StereoFrame) -> None:
        self._idepth_maps = [
            np.full(frame.pyramid[level].shape, np.nan, dtype=np.float32)
            for level in range(frame.pyramid.num_levels)
        ]

    def _propagate_maps(self) -> None:
        """Fill coarser maps with the mean of their valid 2x2 children."""
        for level in range(1, len(self._idepth_maps)):
            fine = self._idepth_maps[level - 1]
            h, w = self._idepth_maps[level].shape
            blocks = fine[: 2 * h, : 2 * w].reshape(h, 2, w, 2)
            valid = np.isfinite(blocks)
            total = np.where(valid, blocks, 0.0).sum(axis=(1, 3))
            count = valid.sum(axis=(1, 3))
            coarse = np.full((h, w), np.nan, dtype=np.float32)
            np.divide(total, count, out=coarse, where=count > 0)
            self._idepth_maps[level] = coarse

    @property
    def idepth_maps(self) -> list[np.ndarray]:
        """Return per-level inverse-depth maps of the last frame (NaN = empty)."""
        return self._idepth_maps

    @property
    def config(self) -> TrackerConfig:
        return self._config

    def get_idepth(self, u: int, v: int, level: int = 0) -> float | None:
        """Return the inverse depth at pixel (u, v) of `level`, or None."""
        if not 0 <= level < len(self._idepth_maps):
            return None
        idepth_map = self._idepth_maps[level]
        if not (0 <= v < idepth_map.shape[0] and 0 <= u < idepth_map.shape[1]):
            return None
        value = idepth_map[v, u]
        return float(value) if np.isfinite(value) else None

    def point_cloud(self, camera: CameraModel, level: int = 0) -> np.ndarray:
        """Back-project the inverse-depth map of `level` into 3D.

        Pixels without estimate or with zero inverse depth (infinitely far)
        are skipped.

        Args:
            camera: Level-0 camera model; it is scaled to `level`
            level: Pyramid level of the map

        Returns:
            Nx3 array of points in the left camera frame
        """
        if not self._idepth_maps:
            return np.empty((0, 3), dtype=np.float64)

        idepth_map = self._idepth_maps[level]
        vs, us = np.nonzero(np.isfinite(idepth_map) & (idepth_map > 0.0))
        if len(us) == 0:
            return np.empty((0, 3), dtype=np.float64)
        return camera.scaled(level).backproject(us, vs, idepth_map[vs, us])
