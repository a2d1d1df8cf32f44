"""Pinhole camera model of a rectified stereo rig."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class CameraModel:
    """Intrinsics of the rectified left camera plus the stereo constant bf.

    In a rectified rig, disparity and inverse depth are related by

        idepth = disparity / bf

    where bf is the baseline times the focal length fx.

    Attributes:
        fx: Focal length x (pixels)
        fy: Focal length y (pixels)
        cx: Principal point x (pixels)
        cy: Principal point y (pixels)
        bf: Baseline x focal length (pixels x distance unit)
    """

    fx: float
    fy: float
    cx: float
    cy: float
    bf: float

    def __post_init__(self) -> None:
        """Validate parameters.

        bf == 0 is accepted (a degenerate rig), every trace with it reports
        a bad condition instead of a depth.

        Raises:
            ValueError: If a parameter is non-finite, fx/fy are not positive
                or bf is negative
        """
        for name in ("fx", "fy", "cx", "cy", "bf"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ValueError(f"Camera parameter {name} must be finite, got {value}")
        if self.fx <= 0.0 or self.fy <= 0.0:
            raise ValueError(
                f"Focal lengths must be positive, got fx={self.fx}, fy={self.fy}"
            )
        if self.bf < 0.0:
            raise ValueError(f"bf must be non-negative, got {self.bf}")

    def scaled(self, level: int) -> CameraModel:
        """Return the intrinsics of pyramid level `level`.

        Every level halves fx, fy, cx, cy and bf.

        Args:
            level: Pyramid level (0 = full resolution)

        Returns:
            CameraModel for that level
        """
        if level < 0:
            raise ValueError(f"Pyramid level must be >= 0, got {level}")
        if level == 0:
            return self
        scale = 1.0 / (1 << level)
        return CameraModel(
            fx=self.fx * scale,
            fy=self.fy * scale,
            cx=self.cx * scale,
            cy=self.cy * scale,
            bf=self.bf * scale,
        )

    def pyramid(self, num_levels: int) -> list[CameraModel]:
        """Return the scaled models of levels 0..num_levels-1."""
        return [self.scaled(level) for level in range(num_levels)]

    def to_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    @property
    def baseline(self) -> float:
        """Return the stereo baseline (bf / fx)."""
        return self.bf / self.fx

    def backproject(self, u: np.ndarray, v: np.ndarray, idepth: np.ndarray) -> np.ndarray:
        """Back-project pixels with inverse depth to 3D camera coordinates.

        Args:
            u: N array of pixel columns
            v: N array of pixel rows
            idepth: N array of strictly positive inverse depths

        Returns:
            Nx3 array of points in the camera frame
        """
        u = np.asarray(u, dtype=np.float64)
        v = np.asarray(v, dtype=np.float64)
        idepth = np.asarray(idepth, dtype=np.float64)
        if np.any(idepth <= 0.0):
            raise ValueError("Inverse depths must be positive to back-project")

        z = 1.0 / idepth
        x = (u - self.cx) / self.fx * z
        y = (v - self.cy) / self.fy * z
        return np.stack([x, y, z], axis=-1).reshape(-1, 3)
