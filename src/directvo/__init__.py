"""Python DirectVO - pixel selection and stereo depth initialization for direct VO."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .config import SelectorConfig, TracerConfig, TrackerConfig
from .frontend import (
    CameraModel,
    CoarseTracker,
    DepthHypothesis,
    ImagePyramid,
    PixelSelector,
    PointStatus,
    SelectionMap,
    SparseDepthFrame,
    StereoFrame,
    StereoTracer,
    TracerTiming,
)
from .io import StereoSequence, StereoSettings, load_stereo_settings

__all__ = [
    "__version__",
    # Configuration
    "TrackerConfig",
    "SelectorConfig",
    "TracerConfig",
    # Camera / images
    "CameraModel",
    "ImagePyramid",
    "StereoFrame",
    # Selection
    "PixelSelector",
    "SelectionMap",
    # Tracing
    "DepthHypothesis",
    "PointStatus",
    "StereoTracer",
    "CoarseTracker",
    "SparseDepthFrame",
    "TracerTiming",
    # I/O
    "StereoSequence",
    "StereoSettings",
    "load_stereo_settings",
]
