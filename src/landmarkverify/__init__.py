"""Landmark Verify - AR landmark image matching and geospatial accuracy gating."""

from .capture import CameraImage, ImageCaptureManager, ImageFormat, ImagePlane
from .config import CaptureConfig, Config, GeospatialConfig, MatchingConfig
from .exceptions import InvalidTransitionError, LandmarkVerifyError, SessionError
from .geospatial import AccuracyTier, EarthState, GeospatialManager, PoseProvider
from .matcher import ImageMatchingEngine
from .models import (
    GeospatialSample,
    ImageDescriptor,
    MatchResult,
    PoseSnapshot,
    VerificationResult,
    VideoInfo,
)
from .session import ArSessionManager, SessionBackend, SessionConfig, SessionState
from .verifier import LandmarkVerifier

__version__ = "0.1.0"

__all__ = [
    "AccuracyTier",
    "ArSessionManager",
    "CameraImage",
    "CaptureConfig",
    "Config",
    "EarthState",
    "GeospatialConfig",
    "GeospatialManager",
    "GeospatialSample",
    "ImageCaptureManager",
    "ImageDescriptor",
    "ImageFormat",
    "ImageMatchingEngine",
    "ImagePlane",
    "InvalidTransitionError",
    "LandmarkVerifier",
    "LandmarkVerifyError",
    "MatchResult",
    "MatchingConfig",
    "PoseProvider",
    "PoseSnapshot",
    "SessionBackend",
    "SessionConfig",
    "SessionError",
    "SessionState",
    "VerificationResult",
    "VideoInfo",
]
