"""I/O adapters for stereo sequences and calibration settings."""

from .sequence import StereoSequence
from .settings import RectificationMaps, StereoSettings, load_stereo_settings

__all__ = [
    "StereoSequence",
    "StereoSettings",
    "RectificationMaps",
    "load_stereo_settings",
]
