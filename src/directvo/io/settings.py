"""Stereo settings in OpenCV FileStorage YAML format.

The settings file carries the rectified camera (``Camera.fx``, ``Camera.fy``,
``Camera.cx``, ``Camera.cy``, ``Camera.bf``) and, per side, the calibration
needed to rectify raw images (``LEFT.K``, ``LEFT.D``, ``LEFT.R``, ``LEFT.P``,
``LEFT.width``, ``LEFT.height`` and the same for ``RIGHT``).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from ..frontend.camera_model import CameraModel


@dataclass
class RectificationMaps:
    """Undistort + rectify lookup tables of one camera."""

    map_x: np.ndarray
    map_y: np.ndarray

    def apply(self, image: np.ndarray) -> np.ndarray:
        return cv2.remap(image, self.map_x, self.map_y, interpolation=cv2.INTER_LINEAR)


@dataclass
class StereoSettings:
    """Rectified camera model plus rectification maps.

    Attributes:
        camera: Camera model of the rectified left image
        image_size: (width, height) of the images
        left_maps: Rectification maps of the left camera
        right_maps: Rectification maps of the right camera
    """

    camera: CameraModel
    image_size: tuple[int, int]
    left_maps: RectificationMaps
    right_maps: RectificationMaps

    def rectify(
        self, left: np.ndarray, right: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        """Undistort and rectify a raw stereo pair.

        Args:
            left: Raw left image
            right: Raw right image

        Returns:
            Tuple of (rectified_left, rectified_right)
        """
        return self.left_maps.apply(left), self.right_maps.apply(right)


def _read_real(fs: cv2.FileStorage, key: str, path: Path) -> float:
    node = fs.getNode(key)
    if node.empty():
        raise ValueError(f"Missing {key} in {path}")
    return float(node.real())


def _read_mat(fs: cv2.FileStorage, key: str, path: Path) -> np.ndarray:
    node = fs.getNode(key)
    mat = None if node.empty() else node.mat()
    if mat is None or mat.size == 0:
        raise ValueError(f"Missing or empty matrix {key} in {path}")
    return np.asarray(mat, dtype=np.float64)


def _build_maps(
    fs: cv2.FileStorage, side: str, size: tuple[int, int], path: Path
) -> RectificationMaps:
    K = _read_mat(fs, f"{side}.K", path)
    D = _read_mat(fs, f"{side}.D", path)
    R = _read_mat(fs, f"{side}.R", path)
    P = _read_mat(fs, f"{side}.P", path)
    if K.shape != (3, 3) or R.shape != (3, 3) or P.shape[0] != 3 or P.shape[1] < 3:
        raise ValueError(f"Invalid {side} calibration shapes in {path}")

    map_x, map_y = cv2.initUndistortRectifyMap(
        cameraMatrix=K,
        distCoeffs=D.reshape(-1),
        R=R,
        newCameraMatrix=P[:3, :3],
        size=size,
        m1type=cv2.CV_32FC1,
    )
    return RectificationMaps(map_x=map_x, map_y=map_y)


def load_stereo_settings(settings_path: str | Path) -> StereoSettings:
    """Load camera model and rectification maps from a settings file.

    Args:
        settings_path: Path to the OpenCV YAML settings file

    Returns:
        StereoSettings

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If an entry is missing or the two sides differ in size
    """
    path = Path(settings_path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    if not fs.isOpened():
        raise ValueError(f"Could not open settings file: {settings_path}")

    try:
        camera = CameraModel(
            fx=_read_real(fs, "Camera.fx", path),
            fy=_read_real(fs, "Camera.fy", path),
            cx=_read_real(fs, "Camera.cx", path),
            cy=_read_real(fs, "Camera.cy", path),
            bf=_read_real(fs, "Camera.bf", path),
        )

        left_size = (
            int(_read_real(fs, "LEFT.width", path)),
            int(_read_real(fs, "LEFT.height", path)),
        )
        right_size = (
            int(_read_real(fs, "RIGHT.width", path)),
            int(_read_real(fs, "RIGHT.height", path)),
        )
        if left_size != right_size:
            raise ValueError(
                f"Left and right image sizes differ in {path}: {left_size} vs {right_size}"
            )
        if min(left_size) <= 0:
            raise ValueError(f"Invalid image size {left_size} in {path}")

        left_maps = _build_maps(fs, "LEFT", left_size, path)
        right_maps = _build_maps(fs, "RIGHT", right_size, path)
    finally:
        fs.release()

    return StereoSettings(
        camera=camera,
        image_size=left_size,
        left_maps=left_maps,
        right_maps=right_maps,
    )
