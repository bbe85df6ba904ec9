#!/usr/bin/env python3
"""Configuration dataclasses for landmarkverify package."""

from __future__ import annotations

from dataclasses import dataclass, field

# Descriptor comparison constants
HISTOGRAM_BINS = 256
EDGE_THRESHOLD = 30.0
SIMILARITY_THRESHOLD = 0.7
CONFIDENCE_BOOST = 1.2

# Geospatial accuracy constants
GEO_ACCURACY_METERS = 10.0
HIGH_ACCURACY_METERS = 5.0
MIN_POSE_CONFIDENCE = 0.5


@dataclass
class MatchingConfig:
    """Descriptor extraction and comparison settings."""

    histogram_bins: int = HISTOGRAM_BINS
    edge_threshold: float = EDGE_THRESHOLD
    similarity_threshold: float = SIMILARITY_THRESHOLD
    confidence_boost: float = CONFIDENCE_BOOST

    # Sub-score weights
    histogram_weight: float = 0.40
    color_weight: float = 0.25
    edge_weight: float = 0.15
    brightness_weight: float = 0.10
    contrast_weight: float = 0.10

    @property
    def weights(self) -> tuple[float, float, float, float, float]:
        """Weights in histogram, color, edge, brightness, contrast order."""
        return (
            self.histogram_weight,
            self.color_weight,
            self.edge_weight,
            self.brightness_weight,
            self.contrast_weight,
        )

    def validate(self) -> None:
        """Validate matching parameters.

        Raises:
            ValueError: If any parameter is invalid.
        """
        if self.histogram_bins != HISTOGRAM_BINS:
            msg = f"histogram_bins must be {HISTOGRAM_BINS} for 8-bit channels, got {self.histogram_bins}"
            raise ValueError(msg)
        if self.edge_threshold < 0:
            msg = f"edge_threshold must be >= 0, got {self.edge_threshold}"
            raise ValueError(msg)
        if not 0.0 <= self.similarity_threshold <= 1.0:
            msg = f"similarity_threshold must be in [0,1], got {self.similarity_threshold}"
            raise ValueError(msg)
        if self.confidence_boost <= 0:
            msg = f"confidence_boost must be positive, got {self.confidence_boost}"
            raise ValueError(msg)
        if any(w < 0 for w in self.weights):
            msg = f"weights must be non-negative, got {self.weights}"
            raise ValueError(msg)
        if abs(sum(self.weights) - 1.0) > 1e-6:
            msg = f"weights must sum to 1.0, got {sum(self.weights):.4f}"
            raise ValueError(msg)


@dataclass
class GeospatialConfig:
    """Accuracy gate thresholds."""

    accuracy_meters: float = GEO_ACCURACY_METERS
    high_accuracy_meters: float = HIGH_ACCURACY_METERS
    min_pose_confidence: float = MIN_POSE_CONFIDENCE

    def validate(self) -> None:
        """Validate gate thresholds.

        Raises:
            ValueError: If any threshold is invalid.
        """
        if self.accuracy_meters <= 0:
            msg = f"accuracy_meters must be positive, got {self.accuracy_meters}"
            raise ValueError(msg)
        if not 0 < self.high_accuracy_meters <= self.accuracy_meters:
            msg = (
                f"high_accuracy_meters must be in (0, {self.accuracy_meters}], "
                f"got {self.high_accuracy_meters}"
            )
            raise ValueError(msg)
        if self.min_pose_confidence < 0:
            msg = f"min_pose_confidence must be >= 0, got {self.min_pose_confidence}"
            raise ValueError(msg)


@dataclass
class CaptureConfig:
    """Frame capture and thumbnail settings."""

    thumbnail_max_width: int = 640
    thumbnail_max_height: int = 480
    jpeg_quality: int = 85
    capture_interval_s: float = 2.0

    def validate(self) -> None:
        """Validate capture parameters.

        Raises:
            ValueError: If any parameter is invalid.
        """
        if self.thumbnail_max_width <= 0 or self.thumbnail_max_height <= 0:
            msg = (
                "thumbnail size must be positive, got "
                f"{self.thumbnail_max_width}x{self.thumbnail_max_height}"
            )
            raise ValueError(msg)
        if not 0 <= self.jpeg_quality <= 100:
            msg = f"jpeg_quality must be in [0,100], got {self.jpeg_quality}"
            raise ValueError(msg)
        if self.capture_interval_s <= 0:
            msg = f"capture_interval_s must be positive, got {self.capture_interval_s}"
            raise ValueError(msg)


@dataclass
class Config:
    """Main configuration for landmark verification."""

    matching: MatchingConfig = field(default_factory=MatchingConfig)
    geospatial: GeospatialConfig = field(default_factory=GeospatialConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)

    # Verifier Settings
    top_n: int = 3  # Reference candidates kept per frame
    capture_history: int = 20  # Recent capture-loop results kept in memory
    require_location: bool = False
    stop_on_match: bool = True
    save_samples: bool = False

    # Cache Filenames
    fn_descriptors: str = "reference_descriptors.json"
    fn_results: str = "results.json"

    def validate(self) -> None:
        """Validate all nested configuration.

        Raises:
            ValueError: If any parameter is invalid.
        """
        self.matching.validate()
        self.geospatial.validate()
        self.capture.validate()
        if self.capture_history < 1:
            msg = f"capture_history must be >= 1, got {self.capture_history}"
            raise ValueError(msg)
        if self.top_n < 1:
            msg = f"top_n must be >= 1, got {self.top_n}"
            raise ValueError(msg)
