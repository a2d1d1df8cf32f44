"""Per-pixel inverse-depth hypothesis and trace status."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from .camera_model import CameraModel
    from .image_pyramid import ImagePyramid

# Residual pattern (dx, dy) around the hypothesis pixel
PATTERN = np.array(
    [[0, -2], [-1, -1], [1, -1], [-2, 0], [0, 0], [2, 0], [-1, 1], [0, 2]],
    dtype=np.int64,
)
PATTERN_RADIUS = 2


class PointStatus(Enum):
    """Outcome of a stereo trace."""

    GOOD = "GOOD"  # depth bounded and converged
    OUT_OF_BOUND = "OUT_OF_BOUND"  # search left the right image
    OUTLIER = "OUTLIER"  # match too expensive or ambiguous
    SKIPPED = "SKIPPED"  # too little texture to search
    BAD_CONDITION = "BAD_CONDITION"  # degenerate geometry


@dataclass
class DepthHypothesis:
    """Inverse-depth hypothesis of one selected pixel.

    The reference intensities and the gradient structure of the residual
    pattern are captured from the left image at creation, so tracing only
    needs the right image.

    Attributes:
        u: Pixel column (level 0)
        v: Pixel row (level 0)
        level: Pyramid level at which the pixel was selected
        bucket: Gradient-histogram bin recorded by the selector
        color: (8,) reference intensities over the pattern
        grad_h: 2x2 sum of g g^T over the pattern
        idepth_min: Lower inverse-depth bound (>= 0)
        idepth_max: Upper inverse-depth bound, None while unbounded
        idepth: Inverse-depth estimate, None until traced GOOD
        status: Result of the last trace, None until traced
        u_stereo: Matched column in the right image
        energy: Huber energy of the best match
        quality: Second-best / best energy ratio
        error_in_pixel: Pixel uncertainty of the match
    """

    u: int
    v: int
    level: int
    bucket: int
    color: np.ndarray
    grad_h: np.ndarray
    idepth_min: float = 0.0
    idepth_max: float | None = None
    idepth: float | None = None
    status: PointStatus | None = None
    u_stereo: float | None = None
    energy: float | None = None
    quality: float | None = None
    error_in_pixel: float | None = None

    def __post_init__(self) -> None:
        """Validate the search interval."""
        if not math.isfinite(self.idepth_min) or self.idepth_min < 0.0:
            raise ValueError(f"idepth_min must be finite and >= 0, got {self.idepth_min}")
        if self.idepth_max is not None and not (
            math.isfinite(self.idepth_max) and self.idepth_max >= self.idepth_min
        ):
            raise ValueError(
                f"idepth_max must be finite and >= idepth_min, got {self.idepth_max}"
            )

    @classmethod
    def from_pyramid(
        cls,
        pyramid: ImagePyramid,
        u: int,
        v: int,
        level: int = 0,
        bucket: int = -1,
        idepth_min: float = 0.0,
        idepth_max: float | None = None,
    ) -> DepthHypothesis:
        """Create a hypothesis for pixel (u, v) of the left pyramid.

        Args:
            pyramid: Left image pyramid
            u: Pixel column (level 0)
            v: Pixel row (level 0)
            level: Selection level
            bucket: Selection gradient bin
            idepth_min: Initial lower bound
            idepth_max: Initial upper bound, None for unbounded

        Returns:
            DepthHypothesis with captured reference pattern

        Raises:
            ValueError: If the pattern (and its gradients) leaves the image
        """
        base = pyramid[0]
        h, w = base.shape
        margin = PATTERN_RADIUS + 1
        if not (margin <= u < w - margin and margin <= v < h - margin):
            raise ValueError(f"Pixel ({u}, {v}) too close to the border of a {w}x{h} image")

        xs = u + PATTERN[:, 0]
        ys = v + PATTERN[:, 1]
        gx = base.dx[ys, xs].astype(np.float64)
        gy = base.dy[ys, xs].astype(np.float64)
        grad_h = np.array(
            [[gx @ gx, gx @ gy], [gx @ gy, gy @ gy]],
            dtype=np.float64,
        )

        return cls(
            u=int(u),
            v=int(v),
            level=int(level),
            bucket=int(bucket),
            color=base.image[ys, xs].astype(np.float32),
            grad_h=grad_h,
            idepth_min=idepth_min,
            idepth_max=idepth_max,
        )

    @property
    def is_good(self) -> bool:
        """Return True if the last trace converged."""
        return self.status == PointStatus.GOOD

    @property
    def has_upper_bound(self) -> bool:
        return self.idepth_max is not None

    @property
    def depth(self) -> float | None:
        """Return depth, or None without a positive inverse depth."""
        if self.idepth is None or self.idepth <= 0.0:
            return None
        return 1.0 / self.idepth

    def camera_point(self, camera: CameraModel) -> np.ndarray | None:
        """Return the 3D point in the left camera frame, if depth is finite."""
        if self.depth is None:
            return None
        return camera.backproject(
            np.array([self.u]), np.array([self.v]), np.array([self.idepth])
        )[0]
