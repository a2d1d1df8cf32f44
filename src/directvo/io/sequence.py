"""Timestamped stereo image sequence (EuRoC folder layout)."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import cv2
import numpy as np


class StereoSequence:
    """Stereo images listed by a timestamps file.

    The timestamps file holds one nanosecond timestamp per line; lines that
    are blank or start with '#' are ignored. Image `<timestamp>.png` is read
    from both the left and the right folder.

    Example:
        >>> sequence = StereoSequence("mav0/cam0/data", "mav0/cam1/data", "MH01.txt")
        >>> for left, right, timestamp_ns in sequence:
        ...     print(f"Frame at {timestamp_ns}ns")
    """

    def __init__(
        self,
        left_dir: str | Path,
        right_dir: str | Path,
        timestamps_path: str | Path,
    ) -> None:
        """Initialize sequence.

        Args:
            left_dir: Folder with left images
            right_dir: Folder with right images
            timestamps_path: Text file with one timestamp per line

        Raises:
            FileNotFoundError: If a folder or the timestamps file doesn't exist
            ValueError: If the timestamps file is empty or malformed
        """
        self.left_dir = Path(left_dir)
        self.right_dir = Path(right_dir)
        self.timestamps_path = Path(timestamps_path)

        for name, path in (("Left image", self.left_dir), ("Right image", self.right_dir)):
            if not path.is_dir():
                raise FileNotFoundError(f"{name} folder not found: {path}")
        if not self.timestamps_path.exists():
            raise FileNotFoundError(f"Timestamps file not found: {self.timestamps_path}")

        self._timestamps = self._load_timestamps()
        if not self._timestamps:
            raise ValueError(f"No timestamps found in {self.timestamps_path}")

    def _load_timestamps(self) -> list[int]:
        timestamps = []
        with open(self.timestamps_path, "r") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                try:
                    timestamps.append(int(line))
                except ValueError as e:
                    raise ValueError(
                        f"Invalid timestamp on line {line_no} of {self.timestamps_path}: '{line}'"
                    ) from e
        return timestamps

    @staticmethod
    def _read_gray(path: Path, side: str) -> np.ndarray:
        if not path.exists():
            raise FileNotFoundError(f"{side} image not found: {path}")
        image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise ValueError(f"Failed to load {side.lower()} image: {path}")
        return image

    def load(self, index: int) -> tuple[np.ndarray, np.ndarray, int]:
        """Load the stereo pair at `index`.

        Returns:
            Tuple of (left_image, right_image, timestamp_ns), images as
            grayscale uint8 arrays
        """
        timestamp_ns = self._timestamps[index]
        filename = f"{timestamp_ns}.png"
        left = self._read_gray(self.left_dir / filename, "Left")
        right = self._read_gray(self.right_dir / filename, "Right")
        return left, right, timestamp_ns

    @property
    def timestamps(self) -> list[int]:
        return list(self._timestamps)

    def __len__(self) -> int:
        return len(self._timestamps)

    def __getitem__(self, index: int) -> tuple[np.ndarray, np.ndarray, int]:
        return self.load(index)

    def __iter__(self) -> Iterator[tuple[np.ndarray, np.ndarray, int]]:
        for index in range(len(self._timestamps)):
            yield self.load(index)
