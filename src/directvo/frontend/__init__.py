"""Frontend components: pixel selection and stereo depth initialization.

Components:
- CameraModel: Rectified stereo intrinsics with per-level scaling
- ImagePyramid: Half-resolution levels with gradients
- StereoFrame: Validated rectified stereo pair
- PixelSelector: Adaptive gradient-based pixel selection
- DepthHypothesis/PointStatus: Per-pixel inverse-depth hypothesis
- StereoTracer: Epipolar search in the right image
- CoarseTracker: Per-frame orchestration and inverse-depth maps
"""

from .camera_model import CameraModel
from .coarse_tracker import CoarseTracker, SparseDepthFrame, TracerTiming
from .depth_hypothesis import PATTERN, DepthHypothesis, PointStatus
from .frame import StereoFrame
from .image_pyramid import ImagePyramid, PyramidLevel
from .pixel_selector import PixelSelector, SelectionMap
from .stereo_tracer import StereoTracer

__all__ = [
    # Camera
    "CameraModel",
    # Images
    "ImagePyramid",
    "PyramidLevel",
    "StereoFrame",
    # Selection
    "PixelSelector",
    "SelectionMap",
    # Hypotheses
    "DepthHypothesis",
    "PointStatus",
    "PATTERN",
    # Tracing
    "StereoTracer",
    "CoarseTracker",
    "SparseDepthFrame",
    "TracerTiming",
]
