from .openness import OpennessEstimator
from .surface import Canvas, CommandRecorder, SurfaceError
from .tree import TreeRenderer
from .scheduler import FrameScheduler
from .types import HandLandmark, HandPosition, TreeFrameState

__all__ = [
    "OpennessEstimator",
    "Canvas",
    "CommandRecorder",
    "SurfaceError",
    "TreeRenderer",
    "FrameScheduler",
    "HandLandmark",
    "HandPosition",
    "TreeFrameState",
]
