"""Epipolar search of depth hypotheses in the rectified right image."""

from __future__ import annotations

import math

import numpy as np

from ..config import TracerConfig
from .camera_model import CameraModel
from .depth_hypothesis import PATTERN, PATTERN_RADIUS, DepthHypothesis, PointStatus

# bf below this cannot convert disparities into inverse depths
BF_EPS = 1e-6


def huber_energy(residuals: np.ndarray, threshold: float) -> np.ndarray:
    """Sum of Huber-weighted squared residuals along the last axis.

    Args:
        residuals: (..., N) intensity residuals
        threshold: Residual magnitude where the cost becomes linear

    Returns:
        (...) energies
    """
    magnitude = np.abs(residuals)
    weight = np.where(magnitude < threshold, 1.0, threshold / np.maximum(magnitude, 1e-12))
    return np.sum(weight * residuals * residuals * (2.0 - weight), axis=-1)


def _sample_rows(image: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    """Linearly interpolate `image` along rows.

    Args:
        image: HxW float32 image (W >= 2)
        xs: (M, N) sub-pixel columns inside [0, W-1]
        ys: (N,) integer rows

    Returns:
        (M, N) sampled intensities
    """
    x0 = np.minimum(np.floor(xs).astype(np.int64), image.shape[1] - 2)
    frac = xs - x0
    rows = np.broadcast_to(ys, xs.shape)
    left = image[rows, x0]
    right = image[rows, x0 + 1]
    return left + frac * (right - left)


class StereoTracer:
    """Searches the horizontal epipolar line of a rectified right image.

    For every hypothesis the inverse-depth interval is turned into a range
    of disparities, sampled every `step` pixels. Each candidate is scored by
    the Huber energy of the 8-pixel residual pattern. The best candidate is
    refined with a parabola through its neighbours, and the interval is
    tightened by the pixel uncertainty of the match.

    Status checks, first match wins:
    1. OUT_OF_BOUND: no candidate keeps the pattern inside the right image
    2. SKIPPED: too little gradient on the pattern
    3. BAD_CONDITION: degenerate bf or epipolar gradient
    4. OUTLIER: best energy too high or ambiguous match. If the energy is
       too high and the image edge cut the interval short, the result is
       OUT_OF_BOUND instead.
    5. GOOD
    """

    def __init__(self, config: TracerConfig | None = None) -> None:
        """Initialize tracer.

        Args:
            config: Tracer tunables. Uses defaults if None.
        """
        self._config = config or TracerConfig()

    def trace_right(
        self,
        hypothesis: DepthHypothesis,
        right_image: np.ndarray,
        camera: CameraModel,
    ) -> PointStatus:
        """Trace one hypothesis and update it in place.

        Args:
            hypothesis: Hypothesis with its current inverse-depth interval
            right_image: Rectified right image (grayscale)
            camera: Camera model providing bf

        Returns:
            Status of the trace (also stored in `hypothesis.status`)

        Raises:
            ValueError: If the right image is empty or not 2D
        """
        right = np.asarray(right_image, dtype=np.float32)
        if right.ndim != 2 or right.shape[0] == 0 or right.shape[1] < 2:
            raise ValueError(f"Right image must be a non-empty 2D image, got shape {right.shape}")

        hypothesis.idepth = None
        hypothesis.u_stereo = None
        hypothesis.energy = None
        hypothesis.quality = None

        status = self._trace(hypothesis, right, camera)
        hypothesis.status = status
        return status

    def _trace(
        self, hyp: DepthHypothesis, right: np.ndarray, camera: CameraModel
    ) -> PointStatus:
        cfg = self._config
        h, w = right.shape
        bf = camera.bf

        # Stage 1: candidate disparities
        d_lo = hyp.idepth_min * bf
        if hyp.idepth_max is not None:
            d_hi = hyp.idepth_max * bf
        else:
            d_hi = d_lo + cfg.max_search_pixels
        search_length = d_hi - d_lo

        # Larger disparities would put the pattern left of column 0
        d_reach = min(d_hi, hyp.u - PATTERN_RADIUS)
        ys = hyp.v + PATTERN[:, 1]
        if d_reach < d_lo or ys.min() < 0 or ys.max() >= h:
            return PointStatus.OUT_OF_BOUND

        num_steps = int(math.floor((d_reach - d_lo) / cfg.step + 1e-9)) + 1
        disparities = d_lo + cfg.step * np.arange(num_steps)
        columns = hyp.u - disparities
        inside = (columns - PATTERN_RADIUS >= 0.0) & (columns + PATTERN_RADIUS <= w - 1)
        if not inside.any():
            return PointStatus.OUT_OF_BOUND

        # Stage 2: texture
        a = hyp.grad_h[0, 0]
        b = hyp.grad_h[1, 1]
        if (a + b) / len(PATTERN) < cfg.min_gradient**2:
            return PointStatus.SKIPPED

        # Stage 3: conditioning
        if bf < BF_EPS or a <= 0.0:
            return PointStatus.BAD_CONDITION
        error_in_pixel = 0.2 + 0.2 * (a + b) / a
        hyp.error_in_pixel = float(error_in_pixel)
        if error_in_pixel > cfg.max_error_in_pixel:
            return PointStatus.BAD_CONDITION
        if hyp.has_upper_bound and error_in_pixel * cfg.min_improvement_factor > search_length:
            return PointStatus.BAD_CONDITION

        # Stage 4: photometric search
        xs = columns[inside, None] + PATTERN[None, :, 0]
        residuals = _sample_rows(right, xs, ys) - hyp.color[None, :]
        energies = np.full(num_steps, np.inf)
        energies[inside] = huber_energy(residuals, cfg.huber_threshold)

        best = int(np.argmin(energies))
        best_energy = float(energies[best])
        far = np.abs(np.arange(num_steps) - best) * cfg.step > cfg.min_trace_radius
        second_energy = float(energies[far].min()) if far.any() else math.inf

        noise = len(PATTERN) * cfg.quality_noise**2
        quality = (second_energy + noise) / (best_energy + noise)
        hyp.energy = best_energy
        hyp.quality = quality

        energy_th = len(PATTERN) * cfg.outlier_threshold**2 * cfg.outlier_slack
        if best_energy > energy_th:
            # The match may lie in the part of the interval cut off by the image
            if d_reach < d_hi:
                return PointStatus.OUT_OF_BOUND
            return PointStatus.OUTLIER
        if quality < cfg.min_quality:
            return PointStatus.OUTLIER

        # Stage 5: sub-pixel refinement
        offset = 0.0
        if 0 < best < num_steps - 1:
            c_minus, c_plus = energies[best - 1], energies[best + 1]
            if np.isfinite(c_minus) and np.isfinite(c_plus):
                curvature = c_minus - 2.0 * best_energy + c_plus
                if curvature > 1e-12:
                    offset = float(np.clip(0.5 * (c_minus - c_plus) / curvature, -0.5, 0.5))

        disparity = max(float(disparities[best]) + offset * cfg.step, 0.0)
        hyp.u_stereo = hyp.u - disparity
        hyp.idepth = disparity / bf
        hyp.idepth_min = max(disparity - error_in_pixel, 0.0) / bf
        hyp.idepth_max = (disparity + error_in_pixel) / bf
        return PointStatus.GOOD
