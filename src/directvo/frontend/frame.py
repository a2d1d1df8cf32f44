"""Validated rectified stereo frame."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .image_pyramid import ImagePyramid


def _as_grayscale(image: np.ndarray | None, side: str) -> np.ndarray:
    if image is None:
        raise ValueError(f"{side} image is None")
    image = np.asarray(image)
    if image.size == 0:
        raise ValueError(f"{side} image is empty")
    if image.ndim != 2:
        raise ValueError(f"{side} image must be 2D grayscale, got shape {image.shape}")
    return image


@dataclass
class StereoFrame:
    """A rectified stereo pair ready for selection and tracing.

    Attributes:
        left: Left image as float32
        right: Right image as float32
        pyramid: Image pyramid of the left image
        timestamp_ns: Frame timestamp in nanoseconds
        frame_id: Sequential frame index
    """

    left: np.ndarray
    right: np.ndarray
    pyramid: ImagePyramid
    timestamp_ns: int = 0
    frame_id: int = 0

    @classmethod
    def from_images(
        cls,
        left: np.ndarray,
        right: np.ndarray,
        num_levels: int,
        timestamp_ns: int = 0,
        frame_id: int = 0,
    ) -> StereoFrame:
        """Validate a rectified pair and build the left pyramid.

        Args:
            left: Rectified left image (grayscale)
            right: Rectified right image (grayscale)
            num_levels: Pyramid depth
            timestamp_ns: Frame timestamp in nanoseconds
            frame_id: Sequential frame index

        Returns:
            StereoFrame

        Raises:
            ValueError: If an image is missing, empty or not 2D, or the
                two images differ in size
        """
        left = _as_grayscale(left, "Left")
        right = _as_grayscale(right, "Right")
        if left.shape != right.shape:
            raise ValueError(
                f"Left and right images differ in size: {left.shape} vs {right.shape}"
            )

        pyramid = ImagePyramid.build(left, num_levels)
        return cls(
            left=pyramid[0].image,
            right=right.astype(np.float32),
            pyramid=pyramid,
            timestamp_ns=timestamp_ns,
            frame_id=frame_id,
        )

    @property
    def width(self) -> int:
        return self.left.shape[1]

    @property
    def height(self) -> int:
        return self.left.shape[0]
