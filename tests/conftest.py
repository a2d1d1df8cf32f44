"""Shared fixtures: synthetic rectified stereo pairs and camera models."""

import cv2
import numpy as np
import pytest

from directvo import CameraModel, StereoFrame, TrackerConfig

BF = 80.0
NUM_LEVELS = 4


def make_edge_pair(
    shape: tuple[int, int] = (64, 64),
    edge: int = 32,
    disparity: int = 8,
    low: int = 0,
    high: int = 200,
) -> tuple[np.ndarray, np.ndarray]:
    """Vertical step edge at `edge` in the left image, at `edge - disparity` on the right."""
    left = np.full(shape, low, dtype=np.uint8)
    left[:, edge:] = high
    right = np.full(shape, low, dtype=np.uint8)
    right[:, edge - disparity :] = high
    return left, right


def make_textured_pair(
    shape: tuple[int, int] = (64, 64),
    disparity: int = 4,
    seed: int = 7,
    sigma: float = 1.0,
) -> tuple[np.ndarray, np.ndarray]:
    """Smoothed random texture seen with a constant disparity.

    right(x - disparity) == left(x) for every column where both exist.
    """
    h, w = shape
    rng = np.random.default_rng(seed)
    noise = rng.uniform(0, 255, size=(h, w + disparity)).astype(np.float32)
    texture = cv2.GaussianBlur(noise, (0, 0), sigma)
    texture = np.clip(texture, 0, 255).astype(np.uint8)
    left = np.ascontiguousarray(texture[:, :w])
    right = np.ascontiguousarray(texture[:, disparity : disparity + w])
    return left, right


def make_frame(left: np.ndarray, right: np.ndarray, num_levels: int = NUM_LEVELS) -> StereoFrame:
    return StereoFrame.from_images(left, right, num_levels=num_levels)


@pytest.fixture
def camera() -> CameraModel:
    """Camera with bf = 80 (an 8 pixel disparity is inverse depth 0.1)."""
    return CameraModel(fx=400.0, fy=400.0, cx=32.0, cy=32.0, bf=BF)


@pytest.fixture
def config() -> TrackerConfig:
    return TrackerConfig(pyramid_levels=NUM_LEVELS)


@pytest.fixture
def edge_frame() -> StereoFrame:
    left, right = make_edge_pair()
    return make_frame(left, right)


@pytest.fixture
def textured_frame() -> StereoFrame:
    left, right = make_textured_pair()
    return make_frame(left, right)


@pytest.fixture
def flat_frame() -> StereoFrame:
    image = np.full((64, 64), 128, dtype=np.uint8)
    return make_frame(image, image.copy())
