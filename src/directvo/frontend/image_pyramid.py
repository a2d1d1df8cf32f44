"""Half-resolution image pyramid with per-level gradients."""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np


@dataclass
class PyramidLevel:
    """One pyramid level.

    Attributes:
        image: HxW float32 intensities
        dx: HxW float32 horizontal central-difference gradient
        dy: HxW float32 vertical central-difference gradient
        abs_squared_grad: HxW float32 dx^2 + dy^2
    """

    image: np.ndarray
    dx: np.ndarray
    dy: np.ndarray
    abs_squared_grad: np.ndarray

    @property
    def shape(self) -> tuple[int, int]:
        """Return (height, width)."""
        return self.image.shape

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]


def _gradients(image: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Central differences, zero on the outer ring."""
    dx = np.zeros_like(image)
    dy = np.zeros_like(image)
    dx[1:-1, 1:-1] = 0.5 * (image[1:-1, 2:] - image[1:-1, :-2])
    dy[1:-1, 1:-1] = 0.5 * (image[2:, 1:-1] - image[:-2, 1:-1])
    return dx, dy


def _downsample(image: np.ndarray) -> np.ndarray:
    """2x2 box average; an odd trailing row/column is dropped."""
    h, w = image.shape[0] // 2, image.shape[1] // 2
    even = np.ascontiguousarray(image[: 2 * h, : 2 * w])
    # INTER_AREA with an exact factor of 2 is a 2x2 mean
    return cv2.resize(even, (w, h), interpolation=cv2.INTER_AREA)


class ImagePyramid:
    """Grayscale image pyramid built once per frame.

    Level k has shape (h0 // 2**k, w0 // 2**k). Each level stores the
    intensities together with the gradients needed by the selector and
    the tracer.
    """

    def __init__(self, levels: list[PyramidLevel]) -> None:
        if not levels:
            raise ValueError("Pyramid needs at least one level")
        self._levels = levels

    @classmethod
    def build(cls, image: np.ndarray, num_levels: int) -> ImagePyramid:
        """Build a pyramid from a single-channel image.

        Args:
            image: HxW grayscale image (uint8 or float)
            num_levels: Number of levels, including full resolution

        Returns:
            ImagePyramid with `num_levels` levels

        Raises:
            ValueError: If the image is empty or not 2D, or too small for
                the requested number of levels
        """
        if image is None:
            raise ValueError("Image is None")
        image = np.asarray(image)
        if image.ndim != 2:
            raise ValueError(f"Image must be 2D grayscale, got shape {image.shape}")
        if image.size == 0:
            raise ValueError("Image is empty")
        if num_levels < 1:
            raise ValueError(f"num_levels must be >= 1, got {num_levels}")

        coarsest = min(image.shape) >> (num_levels - 1)
        if coarsest < 1:
            raise ValueError(
                f"Image of shape {image.shape} is too small for {num_levels} levels"
            )

        levels = []
        current = image.astype(np.float32)
        for level in range(num_levels):
            if level > 0:
                current = _downsample(current)
            dx, dy = _gradients(current)
            levels.append(
                PyramidLevel(
                    image=current,
                    dx=dx,
                    dy=dy,
                    abs_squared_grad=dx * dx + dy * dy,
                )
            )
        return cls(levels)

    def __len__(self) -> int:
        return len(self._levels)

    def __getitem__(self, level: int) -> PyramidLevel:
        return self._levels[level]

    @property
    def num_levels(self) -> int:
        """Return number of pyramid levels."""
        return len(self._levels)

    @property
    def shape(self) -> tuple[int, int]:
        """Return (height, width) of level 0."""
        return self._levels[0].shape
